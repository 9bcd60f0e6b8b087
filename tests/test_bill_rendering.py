from __future__ import annotations

import re
import unittest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from dairy_portal.models import TimeOfDay
from dairy_portal.services.bill_message_service import bill_file_name, compose_bill_message, whatsapp_link
from dairy_portal.services.bill_pdf_service import render_bill_pdf
from dairy_portal.services.bill_service import (
    BillCustomer,
    BillDeliveryInput,
    BillGroceryLine,
    BillPayment,
    CustomerBill,
    build_monthly_bill,
)

PAGE_RE = re.compile(rb'/Type\s*/Page(?!s)')


def _customer_bill(*, prior: str = '0', paid: str = '0', deliveries=None, previous=()) -> CustomerBill:
    rows = deliveries
    if rows is None:
        rows = [
            BillDeliveryInput(
                delivery_date=date(2025, 3, 5),
                quantity=Decimal('2'),
                milk_amount=Decimal('110.00'),
                time_of_day=TimeOfDay.MORNING,
                grocery_items=(BillGroceryLine(name='Bread', price=Decimal('40.00')),),
            )
        ]
    return CustomerBill(
        customer=BillCustomer(id=7, name='Asha Patel', address='12 Station Road', phone_number='+91 98765-43210'),
        bill=build_monthly_bill(month=date(2025, 3, 1), deliveries=rows, prior_pending_balance=Decimal(prior)),
        monthly_payments=Decimal(paid),
        previous_payments=tuple(previous),
    )


class BillMessageTests(unittest.TestCase):
    def test_file_name_uses_customer_and_period(self) -> None:
        self.assertEqual(bill_file_name('Asha  Patel', date(2025, 3, 18)), 'Asha_Patel_March_2025.pdf')

    def test_file_name_has_no_path_separators(self) -> None:
        self.assertEqual(bill_file_name('Sharma/Verma', date(2024, 5, 1)), 'Sharma_Verma_May_2024.pdf')
        self.assertEqual(bill_file_name('..\\Ravi & Sons', date(2024, 5, 1)), 'Ravi_Sons_May_2024.pdf')

    def test_message_has_two_decimal_lines_and_whole_headline(self) -> None:
        bill = _customer_bill(prior='200.50')
        message = compose_bill_message(bill, pdf_url='https://files.example/Asha.pdf', business_name='NARMADA DAIRY')

        self.assertIn('*Customer*: Asha Patel', message)
        self.assertIn('*Period*: March 2025', message)
        self.assertIn('• Total Milk: 2 Liters', message)
        self.assertIn('• Milk Amount: 110.00', message)
        self.assertIn('• Grocery Amount: 40.00', message)
        self.assertIn('• Monthly Total: 150.00', message)
        self.assertIn('• Previous Balance: 200.50', message)
        self.assertIn('*TOTAL AMOUNT: 351*', message)
        self.assertIn('https://files.example/Asha.pdf', message)

    def test_previous_balance_line_is_omitted_when_zero(self) -> None:
        message = compose_bill_message(_customer_bill(), pdf_url='u', business_name='NARMADA DAIRY')
        self.assertNotIn('Previous Balance', message)
        self.assertIn('*TOTAL AMOUNT: 150*', message)

    def test_whatsapp_link_strips_phone_and_encodes_text(self) -> None:
        link = whatsapp_link('+91 98765-43210', 'Total: 150 & more\nThanks')
        parsed = urlparse(link)

        self.assertEqual(parsed.netloc, 'wa.me')
        self.assertEqual(parsed.path, '/919876543210')
        self.assertEqual(parse_qs(parsed.query)['text'], ['Total: 150 & more\nThanks'])

    def test_whatsapp_link_requires_digits(self) -> None:
        with self.assertRaises(ValueError):
            whatsapp_link('  ', 'hello')


class BillPdfTests(unittest.TestCase):
    def test_renders_single_page_pdf(self) -> None:
        previous = [BillPayment(payment_date=date(2025, 2, 20), amount=Decimal('100.00'), payment_method='Cash')]
        content = render_bill_pdf(_customer_bill(prior='200', paid='150', previous=previous), business_name='NARMADA DAIRY')

        self.assertIsNotNone(content)
        self.assertTrue(content.startswith(b'%PDF'))
        self.assertEqual(len(PAGE_RE.findall(content)), 1)

    def test_long_grocery_lists_paginate(self) -> None:
        rows = [
            BillDeliveryInput(
                delivery_date=date(2025, 3, day),
                quantity=Decimal('1'),
                milk_amount=Decimal('60.00'),
                time_of_day=TimeOfDay.MORNING,
                grocery_items=tuple(
                    BillGroceryLine(name=f'Item {n}', price=Decimal('10.00'), description='loose')
                    for n in range(6)
                ),
            )
            for day in range(1, 32)
        ]
        content = render_bill_pdf(_customer_bill(deliveries=rows), business_name='NARMADA DAIRY')

        self.assertIsNotNone(content)
        self.assertGreater(len(PAGE_RE.findall(content)), 3)

    @patch('dairy_portal.services.bill_pdf_service._draw_summary')
    def test_layout_failure_returns_none(self, draw_summary_mock) -> None:
        draw_summary_mock.side_effect = TypeError('bad layout')

        with self.assertLogs('dairy_portal.services.bill_pdf_service', level='ERROR'):
            content = render_bill_pdf(_customer_bill(), business_name='NARMADA DAIRY')

        self.assertIsNone(content)

    def test_malformed_bill_returns_none(self) -> None:
        with self.assertLogs('dairy_portal.services.bill_pdf_service', level='ERROR'):
            content = render_bill_pdf(SimpleNamespace(), business_name='NARMADA DAIRY')

        self.assertIsNone(content)


if __name__ == '__main__':
    unittest.main()
