from __future__ import annotations

import re
from datetime import date
from urllib.parse import quote

from dairy_portal.services.bill_service import CustomerBill
from dairy_portal.services.money_utils import format_amount, format_quantity, round_whole

WA_BASE_URL = 'https://wa.me'
_UNSAFE_FILE_CHARS_RE = re.compile(r"[^\w.-]+")
_NON_DIGIT_RE = re.compile(r'\D+')


def bill_file_name(customer_name: str, month: date) -> str:
    """Storage-safe name: anything other than letters, digits, dot and dash becomes `_`."""
    stem = _UNSAFE_FILE_CHARS_RE.sub('_', f"{customer_name.strip()} {month.strftime('%B %Y')}")
    return f"{stem.strip('._') or 'bill'}.pdf"


def compose_bill_message(bill: CustomerBill, *, pdf_url: str, business_name: str) -> str:
    monthly = bill.bill
    lines = [
        f'*{business_name} - Monthly Bill*',
        '',
        f'*Customer*: {bill.customer.name}',
        f'*Period*: {monthly.period_label}',
        '',
        '*Bill Summary:*',
        f'• Total Milk: {format_quantity(monthly.total_milk)} Liters',
        f'• Milk Amount: {format_amount(monthly.total_milk_amount)}',
        f'• Grocery Amount: {format_amount(monthly.total_grocery_amount)}',
        f'• Monthly Total: {format_amount(monthly.total_monthly_amount)}',
    ]
    if monthly.prior_pending_balance > 0:
        lines.append(f'• Previous Balance: {format_amount(monthly.prior_pending_balance)}')
    lines += [
        '',
        # Headline is whole units; recipients compare it with the PDF's boxed total.
        f'*TOTAL AMOUNT: {round_whole(monthly.grand_total)}*',
        '',
        f'Download your monthly bill PDF: {pdf_url}',
        '',
        'Thank you for your business!',
        f'*{business_name}*',
    ]
    return '\n'.join(lines)


def whatsapp_link(phone_number: str | None, message: str) -> str:
    digits = _NON_DIGIT_RE.sub('', phone_number or '')
    if not digits:
        raise ValueError('Customer has no phone number to share the bill with')
    return f'{WA_BASE_URL}/{digits}?text={quote(message, safe="")}'
