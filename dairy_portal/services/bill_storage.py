from __future__ import annotations

from typing import Protocol


class BillStorage(Protocol):
    def upload(self, *, file_name: str, content: bytes) -> str:
        """Store a rendered bill, replacing any previous upload, and return its public URL."""
        ...
