from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

from dairy_portal.config import settings

logger = logging.getLogger(__name__)


class LocalBillStorage:
    def __init__(self, root: str | Path | None = None, public_base_url: str | None = None) -> None:
        self.root = Path(root or settings.bill_storage_dir)
        self.public_base_url = (public_base_url or settings.bill_public_base_url).rstrip('/')

    def path_for(self, file_name: str) -> Path:
        candidate = (self.root / file_name).resolve()
        if candidate.parent != self.root.resolve():
            raise ValueError('Invalid bill file name')
        return candidate

    def upload(self, *, file_name: str, content: bytes) -> str:
        target = self.path_for(file_name)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + '.tmp')
            tmp.write_bytes(content)
            tmp.replace(target)
        except OSError as exc:
            logger.exception('Could not write bill %s', file_name)
            raise RuntimeError(f'Could not store bill {file_name}: {exc}') from exc
        return f'{self.public_base_url}/{quote(file_name)}'
