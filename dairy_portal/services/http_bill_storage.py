from __future__ import annotations

from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from dairy_portal.config import settings


class HttpBillStorage:
    """Object-store upload over HTTP, e.g. a storage bucket with a public read policy."""

    def __init__(self) -> None:
        if not settings.bill_storage_api_url:
            raise ValueError('BILL_STORAGE_API_URL is required when BILL_STORAGE_PROVIDER=http')
        if not settings.bill_storage_api_key:
            raise ValueError('BILL_STORAGE_API_KEY is required when BILL_STORAGE_PROVIDER=http')

        self.base_url = settings.bill_storage_api_url.rstrip('/')
        self.bucket = settings.bill_storage_bucket
        self.headers = {
            'Authorization': f'Bearer {settings.bill_storage_api_key}',
            'Content-Type': 'application/pdf',
            'Cache-Control': 'max-age=3600',
            'x-upsert': 'true',
        }

    def _object_path(self, file_name: str) -> str:
        return f"{quote(self.bucket, safe='')}/{quote(file_name, safe='')}"

    def public_url(self, file_name: str) -> str:
        return f'{self.base_url}/object/public/{self._object_path(file_name)}'

    def upload(self, *, file_name: str, content: bytes) -> str:
        path = f'/object/{self._object_path(file_name)}'
        req = Request(
            url=f'{self.base_url}{path}',
            data=content,
            headers=self.headers,
            method='PUT',
        )
        try:
            with urlopen(req, timeout=settings.bill_storage_timeout_seconds) as response:
                response.read()
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise RuntimeError(f'Bill storage error {exc.code} on {path}: {body}') from exc
        except URLError as exc:
            raise RuntimeError(f'Bill storage network error on {path}: {exc.reason}') from exc
        return self.public_url(file_name)
