from __future__ import annotations

import logging
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from dairy_portal.services.bill_service import CustomerBill, DaySummary
from dairy_portal.services.money_utils import format_amount, format_quantity, round_whole

logger = logging.getLogger(__name__)

# Layout works in millimetres measured from the top edge of an A4 page.
PAGE_WIDTH_MM = A4[0] / mm
PAGE_HEIGHT_MM = A4[1] / mm
MARGIN_MM = 20
TOP_OF_PAGE_MM = 20
ROW_LIMIT_MM = 260
SUMMARY_LIMIT_MM = 220

BRAND_BLUE = colors.Color(41 / 255, 98 / 255, 255 / 255)
INK = colors.Color(51 / 255, 65 / 255, 85 / 255)
MUTED = colors.Color(120 / 255, 120 / 255, 120 / 255)
STRIPE = colors.Color(250 / 255, 250 / 255, 250 / 255)
HEADER_FILL = colors.Color(248 / 255, 250 / 255, 252 / 255)
HIGHLIGHT_FILL = colors.Color(255 / 255, 248 / 255, 220 / 255)
RULE = colors.Color(200 / 255, 200 / 255, 200 / 255)

TABLE_COLUMNS = [
    ('Date', 25),
    ('Morning', 55),
    ('Evening', 85),
    ('Total Qty', 115),
    ('Rate', 140),
    ('Amount', 160),
    ('Grocery', 182),
]


class _BillCanvas:
    """Thin wrapper over a reportlab canvas with a top-down millimetre cursor."""

    def __init__(self, buffer: BytesIO, *, title: str) -> None:
        self.pdf = canvas.Canvas(buffer, pagesize=A4)
        self.pdf.setTitle(title)
        self.y = TOP_OF_PAGE_MM
        self.page_count = 1

    def new_page(self) -> None:
        self.pdf.showPage()
        self.page_count += 1
        self.y = TOP_OF_PAGE_MM

    def ensure_room(self, limit: float = ROW_LIMIT_MM) -> bool:
        if self.y > limit:
            self.new_page()
            return True
        return False

    def font(self, size: float, *, bold: bool = False, color=INK) -> None:
        self.pdf.setFont('Helvetica-Bold' if bold else 'Helvetica', size)
        self.pdf.setFillColor(color)

    def text(self, x: float, y: float, value: str, *, align: str = 'left') -> None:
        baseline = (PAGE_HEIGHT_MM - y) * mm
        if align == 'center':
            self.pdf.drawCentredString(x * mm, baseline, value)
        elif align == 'right':
            self.pdf.drawRightString(x * mm, baseline, value)
        else:
            self.pdf.drawString(x * mm, baseline, value)

    def band(self, x: float, y: float, width: float, height: float, fill, *, stroke=None, line_width: float = 0.5) -> None:
        self.pdf.saveState()
        self.pdf.setFillColor(fill)
        if stroke is not None:
            self.pdf.setStrokeColor(stroke)
            self.pdf.setLineWidth(line_width)
        self.pdf.rect(x * mm, (PAGE_HEIGHT_MM - y - height) * mm, width * mm, height * mm, fill=1, stroke=1 if stroke else 0)
        self.pdf.restoreState()

    def rule(self, y: float) -> None:
        self.pdf.saveState()
        self.pdf.setStrokeColor(RULE)
        self.pdf.setLineWidth(0.5)
        self.pdf.line(MARGIN_MM * mm, (PAGE_HEIGHT_MM - y) * mm, (PAGE_WIDTH_MM - MARGIN_MM) * mm, (PAGE_HEIGHT_MM - y) * mm)
        self.pdf.restoreState()


def _draw_header(doc: _BillCanvas, bill: CustomerBill, business_name: str) -> None:
    doc.band(0, 0, PAGE_WIDTH_MM, 35, BRAND_BLUE)
    doc.font(18, bold=True, color=colors.white)
    doc.text(PAGE_WIDTH_MM / 2, 15, business_name, align='center')
    doc.font(14, bold=True, color=colors.white)
    doc.text(PAGE_WIDTH_MM / 2, 25, 'MONTHLY BILL', align='center')

    doc.font(12, bold=True)
    doc.text(MARGIN_MM, 45, 'CUSTOMER DETAILS')
    doc.font(11)
    doc.text(MARGIN_MM, 55, f'Name: {bill.customer.name}')
    doc.text(MARGIN_MM, 62, f'Address: {bill.customer.address or "N/A"}')
    if bill.customer.phone_number:
        doc.text(MARGIN_MM, 69, f'Phone: {bill.customer.phone_number}')
    doc.text(MARGIN_MM, 76, f'Bill Period: {bill.bill.period_label}')
    doc.rule(82)

    doc.font(12, bold=True)
    doc.text(MARGIN_MM, 92, 'DAILY BREAKDOWN')
    doc.band(MARGIN_MM, 97, PAGE_WIDTH_MM - 2 * MARGIN_MM, 8, HEADER_FILL)
    doc.font(10, bold=True)
    for label, x in TABLE_COLUMNS:
        doc.text(x, 102, label)
    doc.y = 112


def _qty_cell(value) -> str:
    return f'{format_quantity(value)}L' if value > 0 else '-'


def _draw_day_row(doc: _BillCanvas, day: DaySummary, stripe: bool) -> None:
    if stripe:
        doc.band(MARGIN_MM, doc.y - 5, PAGE_WIDTH_MM - 2 * MARGIN_MM, 8, STRIPE)

    rate = day.average_rate
    doc.font(9)
    doc.text(25, doc.y, f'{day.day.day:02d}')
    doc.text(55, doc.y, _qty_cell(day.morning_quantity))
    doc.text(85, doc.y, _qty_cell(day.evening_quantity))
    doc.text(115, doc.y, _qty_cell(day.total_milk_quantity))
    doc.text(140, doc.y, str(round_whole(rate)) if rate is not None else '-')
    doc.text(160, doc.y, format_amount(day.total_milk_amount) if day.total_milk_amount > 0 else '-')

    items = day.grocery_items
    if not items:
        doc.text(182, doc.y, '-')
        return

    doc.text(182, doc.y, format_amount(day.total_grocery_amount))
    for item in items:
        # Sub-lines paginate on their own so long grocery lists never overflow the page.
        doc.y += 4
        doc.ensure_room()
        doc.font(7)
        doc.text(182, doc.y, f'- {item.name}: {format_amount(item.price)}')
        if item.description:
            doc.y += 3
            doc.ensure_room()
            doc.font(6, color=MUTED)
            doc.text(182, doc.y, f'  ({item.description})')


def _draw_previous_payments(doc: _BillCanvas, bill: CustomerBill) -> None:
    if not bill.previous_payments:
        return
    doc.band(MARGIN_MM, doc.y - 5, PAGE_WIDTH_MM - 2 * MARGIN_MM, 8, HEADER_FILL)
    doc.font(12, bold=True)
    doc.text(25, doc.y, 'PREVIOUS PAYMENTS')
    doc.y += 10
    doc.font(9)
    for payment in bill.previous_payments:
        if doc.ensure_room():
            doc.font(9)
        doc.text(
            25,
            doc.y,
            f'{payment.payment_date.strftime("%d/%m/%Y")} - {format_amount(payment.amount)} ({payment.payment_method})',
        )
        doc.y += 6
    doc.y += 10


def _summary_lines(bill: CustomerBill) -> list[tuple[str, str]]:
    monthly = bill.bill
    lines = [
        ('Total Milk Quantity:', f'{format_quantity(monthly.total_milk)} Liters'),
        ('Milk Amount:', format_amount(monthly.total_milk_amount)),
        ('Grocery Amount:', format_amount(monthly.total_grocery_amount)),
        ('Current Month Total:', format_amount(monthly.total_monthly_amount)),
    ]
    if monthly.prior_pending_balance > 0:
        lines.append(('Previous Outstanding:', format_amount(monthly.prior_pending_balance)))
    lines.append(('Total Outstanding:', format_amount(bill.total_outstanding)))
    if bill.monthly_payments > 0:
        lines.append(('Payment Received:', format_amount(bill.monthly_payments)))
        lines.append(('Balance After Payment:', format_amount(bill.balance_after_payment)))
    return lines


def _draw_summary(doc: _BillCanvas, bill: CustomerBill, business_name: str) -> None:
    doc.band(MARGIN_MM, doc.y - 5, PAGE_WIDTH_MM - 2 * MARGIN_MM, 8, BRAND_BLUE)
    doc.font(12, bold=True, color=colors.white)
    doc.text(25, doc.y, 'BILL SUMMARY')
    doc.y += 15

    doc.font(11)
    for label, value in _summary_lines(bill):
        if doc.ensure_room():
            doc.font(11)
        doc.text(25, doc.y, label)
        doc.text(120, doc.y, value)
        doc.y += 8

    doc.y += 5
    if doc.ensure_room():
        doc.y += 8
    doc.band(MARGIN_MM, doc.y - 8, PAGE_WIDTH_MM - 2 * MARGIN_MM, 15, HIGHLIGHT_FILL, stroke=BRAND_BLUE, line_width=1)
    doc.font(14, bold=True, color=BRAND_BLUE)
    if bill.monthly_payments > 0:
        doc.text(25, doc.y, 'BALANCE DUE:')
        doc.text(120, doc.y, str(round_whole(bill.balance_after_payment)))
    else:
        doc.text(25, doc.y, 'TOTAL OUTSTANDING:')
        doc.text(120, doc.y, str(round_whole(bill.total_outstanding)))

    doc.y += 20
    doc.ensure_room(ROW_LIMIT_MM + 10)
    doc.rule(doc.y)
    doc.y += 10
    doc.font(10, color=colors.Color(100 / 255, 100 / 255, 100 / 255))
    doc.text(PAGE_WIDTH_MM / 2, doc.y, 'Thank you for your business!', align='center')
    doc.y += 8
    doc.font(10, bold=True, color=colors.Color(100 / 255, 100 / 255, 100 / 255))
    doc.text(PAGE_WIDTH_MM / 2, doc.y, business_name, align='center')


def render_bill_pdf(bill: CustomerBill, *, business_name: str) -> bytes | None:
    """
    Lay out a monthly bill as a paginated A4 PDF.

    Returns None when the bill cannot be rendered; callers must not fall back to partial output.
    """
    try:
        buffer = BytesIO()
        doc = _BillCanvas(buffer, title=f'{business_name} - {bill.customer.name} - {bill.bill.period_label}')
        _draw_header(doc, bill, business_name)

        for index, day in enumerate(bill.bill.delivery_days):
            if doc.ensure_room():
                doc.font(9)
            _draw_day_row(doc, day, stripe=index % 2 == 0)
            doc.y += 8

        if doc.y > SUMMARY_LIMIT_MM:
            doc.new_page()
        else:
            doc.y += 15

        _draw_previous_payments(doc, bill)
        _draw_summary(doc, bill, business_name)
        doc.pdf.save()
        return buffer.getvalue()
    except Exception:
        customer = getattr(bill, 'customer', None)
        monthly = getattr(bill, 'bill', None)
        logger.exception(
            'Failed to render bill for customer %s (%s)',
            getattr(customer, 'id', None),
            getattr(monthly, 'period_label', None),
        )
        return None
