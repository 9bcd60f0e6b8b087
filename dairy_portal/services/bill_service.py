from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_portal.models import Customer, DeliveryRecord, GroceryItem, MilkType, Payment, TimeOfDay
from dairy_portal.services.balance_service import compute_pending_balance, pending_balance_before
from dairy_portal.services.money_utils import ZERO, as_decimal

PREVIOUS_PAYMENTS_LIMIT = 5
TIME_ORDER = {TimeOfDay.MORNING: 0, TimeOfDay.EVENING: 1}


@dataclass(frozen=True)
class BillGroceryLine:
    name: str
    price: Decimal
    quantity: Decimal = Decimal('1')
    unit: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class BillDeliveryInput:
    delivery_date: date
    quantity: Decimal
    milk_amount: Decimal
    time_of_day: TimeOfDay | None = None
    notes: str | None = None
    milk_type_name: str | None = None
    grocery_items: tuple[BillGroceryLine, ...] = ()
    record_id: int | None = None

    @property
    def grocery_total(self) -> Decimal:
        return sum((item.price for item in self.grocery_items), ZERO)


@dataclass(frozen=True)
class DayEntry:
    time_of_day: TimeOfDay
    milk_quantity: Decimal
    milk_amount: Decimal
    grocery_items: tuple[BillGroceryLine, ...]
    grocery_total: Decimal
    milk_type_names: tuple[str, ...] = ()
    record_ids: tuple[int, ...] = ()

    @property
    def label(self) -> str:
        return self.time_of_day.label

    def combine(self, other: DayEntry) -> DayEntry:
        names = self.milk_type_names + tuple(n for n in other.milk_type_names if n not in self.milk_type_names)
        return DayEntry(
            time_of_day=self.time_of_day,
            milk_quantity=self.milk_quantity + other.milk_quantity,
            milk_amount=self.milk_amount + other.milk_amount,
            grocery_items=self.grocery_items + other.grocery_items,
            grocery_total=self.grocery_total + other.grocery_total,
            milk_type_names=names,
            record_ids=self.record_ids + other.record_ids,
        )


@dataclass(frozen=True)
class DaySummary:
    day: date
    entries: tuple[DayEntry, ...]
    total_milk_quantity: Decimal
    total_milk_amount: Decimal
    total_grocery_amount: Decimal

    def quantity_for(self, time_of_day: TimeOfDay) -> Decimal:
        return sum((e.milk_quantity for e in self.entries if e.time_of_day == time_of_day), ZERO)

    @property
    def morning_quantity(self) -> Decimal:
        return self.quantity_for(TimeOfDay.MORNING)

    @property
    def evening_quantity(self) -> Decimal:
        return self.quantity_for(TimeOfDay.EVENING)

    @property
    def average_rate(self) -> Decimal | None:
        if self.total_milk_quantity <= 0:
            return None
        return self.total_milk_amount / self.total_milk_quantity

    @property
    def grocery_items(self) -> tuple[BillGroceryLine, ...]:
        items: tuple[BillGroceryLine, ...] = ()
        for entry in self.entries:
            items += entry.grocery_items
        return items


@dataclass(frozen=True)
class MonthlyBill:
    month_start: date
    days: tuple[DaySummary | None, ...]
    total_milk: Decimal
    total_milk_amount: Decimal
    total_grocery_amount: Decimal
    total_monthly_amount: Decimal
    prior_pending_balance: Decimal
    grand_total: Decimal

    @property
    def period_label(self) -> str:
        return self.month_start.strftime('%B %Y')

    @property
    def days_in_month(self) -> int:
        return len(self.days)

    @property
    def delivery_days(self) -> list[DaySummary]:
        return [day for day in self.days if day is not None]

    def day(self, number: int) -> DaySummary | None:
        return self.days[number - 1]


@dataclass(frozen=True)
class BillCustomer:
    id: int
    name: str
    address: str
    phone_number: str | None = None


@dataclass(frozen=True)
class BillPayment:
    payment_date: date
    amount: Decimal
    payment_method: str


@dataclass(frozen=True)
class CustomerBill:
    customer: BillCustomer
    bill: MonthlyBill
    monthly_payments: Decimal = ZERO
    previous_payments: tuple[BillPayment, ...] = field(default_factory=tuple)

    @property
    def total_outstanding(self) -> Decimal:
        return self.bill.grand_total

    @property
    def balance_after_payment(self) -> Decimal:
        return compute_pending_balance([self.bill.grand_total], [self.monthly_payments])


def month_bounds(any_day: date) -> tuple[date, date]:
    first = any_day.replace(day=1)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return first, last


def resolve_time_of_day(time_of_day: TimeOfDay | str | None, notes: str | None) -> TimeOfDay:
    """Stored time of day wins; legacy rows fall back to an "evening" substring match on notes."""
    if time_of_day:
        return TimeOfDay(time_of_day)
    if notes and 'evening' in notes.lower():
        return TimeOfDay.EVENING
    return TimeOfDay.MORNING


def _entry_from_input(row: BillDeliveryInput) -> DayEntry:
    return DayEntry(
        time_of_day=resolve_time_of_day(row.time_of_day, row.notes),
        milk_quantity=row.quantity,
        milk_amount=row.milk_amount,
        grocery_items=tuple(row.grocery_items),
        grocery_total=row.grocery_total,
        milk_type_names=(row.milk_type_name,) if row.milk_type_name else (),
        record_ids=(row.record_id,) if row.record_id is not None else (),
    )


def combine_entries(entries: Iterable[DayEntry]) -> tuple[DayEntry, ...]:
    by_time: dict[TimeOfDay, DayEntry] = {}
    for entry in entries:
        existing = by_time.get(entry.time_of_day)
        by_time[entry.time_of_day] = existing.combine(entry) if existing else entry
    return tuple(sorted(by_time.values(), key=lambda e: TIME_ORDER[e.time_of_day]))


def _summarize_day(day: date, rows: list[BillDeliveryInput]) -> DaySummary:
    entries = combine_entries(_entry_from_input(row) for row in rows)
    return DaySummary(
        day=day,
        entries=entries,
        total_milk_quantity=sum((e.milk_quantity for e in entries), ZERO),
        total_milk_amount=sum((e.milk_amount for e in entries), ZERO),
        total_grocery_amount=sum((e.grocery_total for e in entries), ZERO),
    )


def build_monthly_bill(
    *,
    month: date,
    deliveries: Iterable[BillDeliveryInput],
    prior_pending_balance: Decimal = ZERO,
) -> MonthlyBill:
    first, last = month_bounds(month)
    by_day: dict[date, list[BillDeliveryInput]] = {}
    for row in deliveries:
        if first <= row.delivery_date <= last:
            by_day.setdefault(row.delivery_date, []).append(row)

    days: list[DaySummary | None] = []
    current = first
    while current <= last:
        rows = by_day.get(current)
        days.append(_summarize_day(current, rows) if rows else None)
        current += timedelta(days=1)

    present = [day for day in days if day is not None]
    total_milk = sum((d.total_milk_quantity for d in present), ZERO)
    total_milk_amount = sum((d.total_milk_amount for d in present), ZERO)
    total_grocery_amount = sum((d.total_grocery_amount for d in present), ZERO)
    total_monthly_amount = total_milk_amount + total_grocery_amount
    return MonthlyBill(
        month_start=first,
        days=tuple(days),
        total_milk=total_milk,
        total_milk_amount=total_milk_amount,
        total_grocery_amount=total_grocery_amount,
        total_monthly_amount=total_monthly_amount,
        prior_pending_balance=prior_pending_balance,
        grand_total=total_monthly_amount + prior_pending_balance,
    )


def load_month_deliveries(db: Session, *, customer_id: int, month: date) -> list[BillDeliveryInput]:
    first, last = month_bounds(month)
    rows = db.execute(
        select(DeliveryRecord, MilkType.name.label('milk_type_name'))
        .outerjoin(MilkType, MilkType.id == DeliveryRecord.milk_type_id)
        .where(
            DeliveryRecord.customer_id == customer_id,
            DeliveryRecord.delivery_date >= first,
            DeliveryRecord.delivery_date <= last,
        )
        .order_by(DeliveryRecord.delivery_date.asc(), DeliveryRecord.id.asc())
    ).all()

    record_ids = [row.DeliveryRecord.id for row in rows]
    groceries: dict[int, list[BillGroceryLine]] = {record_id: [] for record_id in record_ids}
    if record_ids:
        for item in db.execute(
            select(GroceryItem).where(GroceryItem.delivery_record_id.in_(record_ids)).order_by(GroceryItem.id.asc())
        ).scalars():
            groceries[item.delivery_record_id].append(
                BillGroceryLine(
                    name=item.name,
                    price=as_decimal(item.price),
                    quantity=as_decimal(item.quantity),
                    unit=item.unit,
                    description=item.description,
                )
            )

    inputs: list[BillDeliveryInput] = []
    for row in rows:
        record = row.DeliveryRecord
        items = tuple(groceries.get(record.id, []))
        grocery_total = sum((item.price for item in items), ZERO)
        inputs.append(
            BillDeliveryInput(
                record_id=record.id,
                delivery_date=record.delivery_date,
                time_of_day=record.time_of_day,
                notes=record.notes,
                milk_type_name=row.milk_type_name,
                quantity=as_decimal(record.quantity),
                # Stored totals are authoritative; the milk share is what remains after groceries.
                milk_amount=as_decimal(record.total_amount) - grocery_total,
                grocery_items=items,
            )
        )
    return inputs


def _previous_payments(db: Session, *, customer_id: int, before: date) -> tuple[BillPayment, ...]:
    rows = db.execute(
        select(Payment.payment_date, Payment.amount, Payment.payment_method)
        .where(Payment.customer_id == customer_id, Payment.payment_date < before)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .limit(PREVIOUS_PAYMENTS_LIMIT)
    ).all()
    return tuple(
        BillPayment(payment_date=row.payment_date, amount=as_decimal(row.amount), payment_method=row.payment_method)
        for row in rows
    )


def _payments_within(db: Session, *, customer_id: int, first: date, last: date) -> Decimal:
    amounts = db.execute(
        select(Payment.amount).where(
            Payment.customer_id == customer_id,
            Payment.payment_date >= first,
            Payment.payment_date <= last,
        )
    ).scalars().all()
    return sum((as_decimal(amount) for amount in amounts), ZERO)


def load_monthly_bill(db: Session, *, customer_id: int, month: date) -> CustomerBill:
    customer = db.execute(select(Customer).where(Customer.id == customer_id)).scalar_one_or_none()
    if not customer:
        raise LookupError('Customer not found')

    first, last = month_bounds(month)
    bill = build_monthly_bill(
        month=first,
        deliveries=load_month_deliveries(db, customer_id=customer_id, month=first),
        prior_pending_balance=pending_balance_before(db, customer_id=customer_id, bound=first),
    )
    return CustomerBill(
        customer=BillCustomer(
            id=customer.id,
            name=customer.name,
            address=customer.address,
            phone_number=customer.phone_number,
        ),
        bill=bill,
        monthly_payments=_payments_within(db, customer_id=customer_id, first=first, last=last),
        previous_payments=_previous_payments(db, customer_id=customer_id, before=first),
    )
