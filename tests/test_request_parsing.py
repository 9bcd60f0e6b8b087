from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from fastapi import HTTPException
from starlette.datastructures import FormData

from dairy_portal.dependencies import parse_grocery_items, parse_month_param, parse_time_of_day
from dairy_portal.models import TimeOfDay
from dairy_portal.routers import bills


class RequestParsingTests(unittest.TestCase):
    def test_month_param_accepts_month_input_and_dates(self) -> None:
        today = date(2025, 3, 18)
        self.assertEqual(parse_month_param('', default=today), date(2025, 3, 1))
        self.assertEqual(parse_month_param('2025-02', default=today), date(2025, 2, 1))
        self.assertEqual(parse_month_param('2024-12-25', default=today), date(2024, 12, 1))
        with self.assertRaises(HTTPException) as ctx:
            parse_month_param('March', default=today)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_time_of_day(self) -> None:
        self.assertEqual(parse_time_of_day('evening'), TimeOfDay.EVENING)
        with self.assertRaises(HTTPException):
            parse_time_of_day('noon')

    def test_grocery_rows_skip_blanks(self) -> None:
        form = FormData(
            [
                ('grocery_name', 'Bread'),
                ('grocery_quantity', '2'),
                ('grocery_unit', 'loaf'),
                ('grocery_price', '40'),
                ('grocery_description', ''),
                ('grocery_name', ''),
                ('grocery_quantity', '1'),
                ('grocery_unit', ''),
                ('grocery_price', ''),
                ('grocery_description', ''),
            ]
        )
        items = parse_grocery_items(form)

        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].name, 'Bread')
        self.assertEqual(items[0].quantity, Decimal('2'))
        self.assertEqual(items[0].price, Decimal('40'))

    def test_grocery_row_without_price_is_rejected(self) -> None:
        form = FormData([('grocery_name', 'Bread'), ('grocery_price', '')])
        with self.assertRaisesRegex(ValueError, 'price is required'):
            parse_grocery_items(form)


class BillRenderGuardTests(unittest.TestCase):
    @patch('dairy_portal.routers.bills.render_bill_pdf')
    def test_missing_pdf_maps_to_server_error(self, render_mock) -> None:
        render_mock.return_value = None

        with self.assertRaises(HTTPException) as ctx:
            bills._render(SimpleNamespace())

        self.assertEqual(ctx.exception.status_code, 500)

    @patch('dairy_portal.routers.bills.render_bill_pdf')
    def test_rendered_pdf_is_passed_through(self, render_mock) -> None:
        render_mock.return_value = b'%PDF-1.4'
        self.assertEqual(bills._render(SimpleNamespace()), b'%PDF-1.4')


if __name__ == '__main__':
    unittest.main()
