from __future__ import annotations

import asyncio
import unittest
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

from fastapi import HTTPException
from starlette.datastructures import FormData

from dairy_portal.auth import Principal, Role
from dairy_portal.routers import bills
from dairy_portal.services.audit_service import list_customer_audit
from dairy_portal.services.bill_message_service import compose_bill_message
from tests.db_support import add_customer, add_delivery, make_session

OPERATOR = Principal(id=2, username='operator', role=Role.OPERATOR, active=True)
PDF_URL = 'https://files.example/bills/Asha_March_2025.pdf'


class _FormRequest:
    def __init__(self, **fields) -> None:
        self._form = FormData(list(fields.items()))
        self.headers = {}
        self.client = SimpleNamespace(host='127.0.0.1')

    async def form(self) -> FormData:
        return self._form


class ShareBillTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.asha = add_customer(self.db, 'Asha')
        add_delivery(self.db, self.asha, day=date(2025, 3, 4), total='120.00')
        self.calls: list[str] = []
        self.storage = MagicMock()
        self.storage.upload.side_effect = self._upload

        render_patch = patch('dairy_portal.routers.bills.render_bill_pdf', side_effect=self._render)
        storage_patch = patch('dairy_portal.routers.bills.get_bill_storage', return_value=self.storage)
        compose_patch = patch('dairy_portal.routers.bills.compose_bill_message', side_effect=self._compose)
        for patcher in (render_patch, storage_patch, compose_patch):
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.db.close()

    def _render(self, bill, *, business_name):
        self.calls.append('render')
        return b'%PDF-1.4'

    def _upload(self, *, file_name, content):
        self.calls.append('upload')
        return PDF_URL

    def _compose(self, bill, *, pdf_url, business_name):
        self.calls.append('compose')
        return compose_bill_message(bill, pdf_url=pdf_url, business_name=business_name)

    def _share(self, customer_id: int):
        request = _FormRequest(month='2025-03', csrf_token='t')
        return asyncio.run(bills.share_bill(customer_id, request, principal=OPERATOR, db=self.db, _=None))

    def test_uploads_before_redirecting_to_whatsapp(self) -> None:
        response = self._share(self.asha.id)

        self.assertEqual(self.calls, ['render', 'upload', 'compose'])
        self.storage.upload.assert_called_once_with(file_name='Asha_March_2025.pdf', content=b'%PDF-1.4')
        self.assertEqual(response.status_code, 303)
        location = urlparse(response.headers['location'])
        self.assertEqual(location.netloc, 'wa.me')
        self.assertEqual(location.path, '/919876543210')
        self.assertIn(PDF_URL, parse_qs(location.query)['text'][0])
        self.assertEqual([row.action for row in list_customer_audit(self.db, customer_id=self.asha.id)], ['BILL_SHARED'])

    def test_storage_failure_maps_to_bad_gateway(self) -> None:
        self.storage.upload.side_effect = RuntimeError('bucket unavailable')

        with self.assertLogs('dairy_portal.routers.bills', level='ERROR'):
            with self.assertRaises(HTTPException) as ctx:
                self._share(self.asha.id)

        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(list_customer_audit(self.db, customer_id=self.asha.id), [])

    def test_rejected_file_name_maps_to_bad_request(self) -> None:
        self.storage.upload.side_effect = ValueError('Invalid bill file name')

        with self.assertRaises(HTTPException) as ctx:
            self._share(self.asha.id)

        self.assertEqual(ctx.exception.status_code, 400)

    def test_customer_without_phone_is_not_uploaded(self) -> None:
        ravi = add_customer(self.db, 'Ravi', phone_number=None)

        with self.assertRaises(HTTPException) as ctx:
            self._share(ravi.id)

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(self.calls, [])
        self.storage.upload.assert_not_called()

    def test_unknown_customer_is_not_found(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            self._share(999)

        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == '__main__':
    unittest.main()
