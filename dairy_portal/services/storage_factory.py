from __future__ import annotations

from functools import lru_cache

from dairy_portal.config import settings
from dairy_portal.services.bill_storage import BillStorage
from dairy_portal.services.http_bill_storage import HttpBillStorage
from dairy_portal.services.local_bill_storage import LocalBillStorage


@lru_cache(maxsize=1)
def get_bill_storage() -> BillStorage:
    provider = settings.bill_storage_provider.strip().lower()
    if provider == 'http':
        return HttpBillStorage()
    return LocalBillStorage()
