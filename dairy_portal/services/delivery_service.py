from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from dairy_portal.models import Customer, DeliveryRecord, GroceryItem, MilkType, TimeOfDay
from dairy_portal.services.balance_service import refresh_customer_balance
from dairy_portal.services.bill_service import resolve_time_of_day
from dairy_portal.services.money_utils import ZERO, as_decimal, money


@dataclass(frozen=True)
class GroceryItemInput:
    name: str
    price: Decimal
    quantity: Decimal = Decimal('1')
    unit: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class DeliveryInput:
    customer_id: int
    delivery_date: date
    time_of_day: TimeOfDay
    milk_type_id: int | None = None
    quantity: Decimal = Decimal('0')
    price_per_liter: Decimal | None = None
    grocery_items: tuple[GroceryItemInput, ...] = ()
    notes: str | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def compute_delivery_total(quantity: Decimal, price_per_liter: Decimal, grocery_prices: Iterable[Decimal]) -> Decimal:
    """Stored total: the rounded milk charge plus every grocery line price."""
    milk = money(quantity * price_per_liter) if quantity > 0 else ZERO
    return milk + sum((money(price) for price in grocery_prices), ZERO)


def _clean_grocery_items(items: Sequence[GroceryItemInput]) -> list[GroceryItemInput]:
    cleaned: list[GroceryItemInput] = []
    for index, item in enumerate(items, start=1):
        name = item.name.strip()
        if not name:
            raise ValueError(f'Grocery item {index}: name is required')
        if item.price <= 0:
            raise ValueError(f'Grocery item {index}: price must be greater than zero')
        if item.quantity <= 0:
            raise ValueError(f'Grocery item {index}: quantity must be greater than zero')
        cleaned.append(
            GroceryItemInput(
                name=name,
                price=money(item.price),
                quantity=item.quantity,
                unit=(item.unit or '').strip() or None,
                description=(item.description or '').strip() or None,
            )
        )
    return cleaned


def _resolve_milk(db: Session, payload: DeliveryInput) -> tuple[int | None, Decimal, Decimal]:
    if payload.milk_type_id is None:
        if payload.quantity and payload.quantity != 0:
            raise ValueError('Select a milk type for the delivered quantity')
        return None, ZERO, ZERO

    milk_type = db.execute(select(MilkType).where(MilkType.id == payload.milk_type_id)).scalar_one_or_none()
    if not milk_type:
        raise ValueError('Milk type not found')
    if payload.quantity <= 0:
        raise ValueError('Quantity must be greater than zero')
    price = payload.price_per_liter if payload.price_per_liter is not None else as_decimal(milk_type.price_per_liter)
    if price <= 0:
        raise ValueError('Price per liter must be greater than zero')
    return milk_type.id, payload.quantity, money(price)


def _ensure_customer(db: Session, customer_id: int) -> None:
    exists = db.execute(select(Customer.id).where(Customer.id == customer_id)).scalar_one_or_none()
    if not exists:
        raise ValueError('Customer not found')


def _add_grocery_items(db: Session, *, delivery_record_id: int, items: list[GroceryItemInput]) -> None:
    db.add_all(
        [
            GroceryItem(
                delivery_record_id=delivery_record_id,
                name=item.name,
                quantity=item.quantity,
                unit=item.unit,
                price=item.price,
                description=item.description,
            )
            for item in items
        ]
    )


def create_delivery(db: Session, *, payload: DeliveryInput, principal_id: int | None = None) -> DeliveryRecord:
    _ensure_customer(db, payload.customer_id)
    milk_type_id, quantity, price = _resolve_milk(db, payload)
    items = _clean_grocery_items(payload.grocery_items)
    if milk_type_id is None and not items:
        raise ValueError('Enter a milk quantity or at least one grocery item')

    record = DeliveryRecord(
        customer_id=payload.customer_id,
        milk_type_id=milk_type_id,
        delivery_date=payload.delivery_date,
        time_of_day=TimeOfDay(payload.time_of_day),
        quantity=quantity,
        price_per_liter=price,
        total_amount=compute_delivery_total(quantity, price, [item.price for item in items]),
        notes=(payload.notes or '').strip() or None,
        created_by_principal_id=principal_id,
    )
    db.add(record)
    db.flush()
    _add_grocery_items(db, delivery_record_id=record.id, items=items)
    refresh_customer_balance(db, customer_id=payload.customer_id)
    return record


def get_delivery(db: Session, *, delivery_id: int) -> DeliveryRecord:
    record = db.execute(select(DeliveryRecord).where(DeliveryRecord.id == delivery_id)).scalar_one_or_none()
    if not record:
        raise LookupError('Delivery record not found')
    return record


def list_grocery_items(db: Session, *, delivery_id: int) -> list[GroceryItem]:
    return db.execute(
        select(GroceryItem).where(GroceryItem.delivery_record_id == delivery_id).order_by(GroceryItem.id.asc())
    ).scalars().all()


def update_delivery(db: Session, *, delivery_id: int, payload: DeliveryInput) -> DeliveryRecord:
    record = get_delivery(db, delivery_id=delivery_id)
    previous_customer_id = record.customer_id

    _ensure_customer(db, payload.customer_id)
    milk_type_id, quantity, price = _resolve_milk(db, payload)
    items = _clean_grocery_items(payload.grocery_items)
    if milk_type_id is None and not items:
        raise ValueError('Enter a milk quantity or at least one grocery item')

    record.customer_id = payload.customer_id
    record.milk_type_id = milk_type_id
    record.delivery_date = payload.delivery_date
    record.time_of_day = TimeOfDay(payload.time_of_day)
    record.quantity = quantity
    record.price_per_liter = price
    record.total_amount = compute_delivery_total(quantity, price, [item.price for item in items])
    record.notes = (payload.notes or '').strip() or None
    record.updated_at = _now()

    db.execute(delete(GroceryItem).where(GroceryItem.delivery_record_id == record.id))
    _add_grocery_items(db, delivery_record_id=record.id, items=items)
    db.flush()

    refresh_customer_balance(db, customer_id=record.customer_id)
    if previous_customer_id != record.customer_id:
        refresh_customer_balance(db, customer_id=previous_customer_id)
    return record


def delete_delivery(db: Session, *, delivery_id: int) -> DeliveryRecord:
    record = get_delivery(db, delivery_id=delivery_id)
    # Grocery lines have no database-level cascade; remove them with their parent.
    db.execute(delete(GroceryItem).where(GroceryItem.delivery_record_id == record.id))
    db.delete(record)
    db.flush()
    refresh_customer_balance(db, customer_id=record.customer_id)
    return record


def latest_delivery_for_customer(db: Session, *, customer_id: int) -> DeliveryRecord | None:
    return db.execute(
        select(DeliveryRecord)
        .where(DeliveryRecord.customer_id == customer_id, DeliveryRecord.milk_type_id.is_not(None))
        .order_by(DeliveryRecord.delivery_date.desc(), DeliveryRecord.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def count_deliveries_on(db: Session, *, day: date) -> int:
    return int(db.execute(select(func.count(DeliveryRecord.id)).where(DeliveryRecord.delivery_date == day)).scalar_one())


def list_deliveries(
    db: Session,
    *,
    search: str | None = None,
    customer_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int | None = 500,
) -> list[dict]:
    conditions = []
    if customer_id:
        conditions.append(DeliveryRecord.customer_id == customer_id)
    if from_date:
        conditions.append(DeliveryRecord.delivery_date >= from_date)
    if to_date:
        conditions.append(DeliveryRecord.delivery_date <= to_date)
    term = (search or '').strip().lower()
    if term:
        conditions.append(
            or_(
                func.lower(Customer.name).like(f'%{term}%'),
                func.lower(func.coalesce(MilkType.name, '')).like(f'%{term}%'),
                func.lower(func.coalesce(DeliveryRecord.notes, '')).like(f'%{term}%'),
            )
        )

    query = (
        select(
            DeliveryRecord,
            Customer.name.label('customer_name'),
            MilkType.name.label('milk_type_name'),
        )
        .join(Customer, Customer.id == DeliveryRecord.customer_id)
        .outerjoin(MilkType, MilkType.id == DeliveryRecord.milk_type_id)
        .order_by(DeliveryRecord.delivery_date.desc(), DeliveryRecord.id.desc())
    )
    if conditions:
        query = query.where(and_(*conditions))
    if limit:
        query = query.limit(limit)
    rows = db.execute(query).all()

    ids = [row.DeliveryRecord.id for row in rows]
    items_by_record: dict[int, list[str]] = {record_id: [] for record_id in ids}
    if ids:
        for item in db.execute(
            select(GroceryItem.delivery_record_id, GroceryItem.name, GroceryItem.price)
            .where(GroceryItem.delivery_record_id.in_(ids))
            .order_by(GroceryItem.id.asc())
        ).all():
            items_by_record[item.delivery_record_id].append(f'{item.name} ({as_decimal(item.price):.2f})')

    results = []
    for row in rows:
        record = row.DeliveryRecord
        results.append(
            {
                'id': record.id,
                'customer_id': record.customer_id,
                'customer_name': row.customer_name,
                'milk_type_name': row.milk_type_name or 'Grocery only',
                'delivery_date': record.delivery_date,
                'time_of_day': resolve_time_of_day(record.time_of_day, record.notes),
                'quantity': as_decimal(record.quantity),
                'price_per_liter': as_decimal(record.price_per_liter),
                'total_amount': as_decimal(record.total_amount),
                'notes': record.notes or '',
                'grocery_summary': ', '.join(items_by_record.get(record.id, [])),
            }
        )
    return results


def backfill_time_of_day(db: Session) -> int:
    """Populate the structured time-of-day column for legacy rows that only carry it in notes."""
    records = db.execute(select(DeliveryRecord).where(DeliveryRecord.time_of_day.is_(None))).scalars().all()
    for record in records:
        record.time_of_day = resolve_time_of_day(None, record.notes)
    db.flush()
    return len(records)
