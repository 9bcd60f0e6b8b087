from __future__ import annotations

import re

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from dairy_portal.models import Customer, CustomerBalance, DeliveryRecord, Payment

WS_RE = re.compile(r'\s+')
PHONE_RE = re.compile(r'^\+?[\d\s\-()]{7,20}$')


def normalize_name(value: str) -> str:
    return WS_RE.sub(' ', value.strip())


def _clean_phone(raw: str | None) -> str | None:
    value = (raw or '').strip()
    if not value:
        return None
    if not PHONE_RE.match(value):
        raise ValueError('Phone number is not valid')
    return value


def get_customer(db: Session, *, customer_id: int) -> Customer:
    customer = db.execute(select(Customer).where(Customer.id == customer_id)).scalar_one_or_none()
    if not customer:
        raise LookupError('Customer not found')
    return customer


def list_customers(db: Session, *, search: str | None = None) -> list[Customer]:
    query = select(Customer).order_by(Customer.name.asc())
    term = (search or '').strip()
    if term:
        like = f'%{term.lower()}%'
        query = query.where(
            or_(
                func.lower(Customer.name).like(like),
                func.lower(Customer.address).like(like),
                func.coalesce(Customer.phone_number, '').like(f'%{term}%'),
            )
        )
    return db.execute(query).scalars().all()


def _ensure_unique_name(db: Session, *, name: str, exclude_id: int | None = None) -> None:
    query = select(Customer.id).where(func.lower(Customer.name) == name.lower())
    if exclude_id is not None:
        query = query.where(Customer.id != exclude_id)
    if db.execute(query).first():
        raise ValueError('A customer with this name already exists')


def create_customer(db: Session, *, name: str, address: str, phone_number: str | None = None) -> Customer:
    clean_name = normalize_name(name)
    if not clean_name:
        raise ValueError('Customer name is required')
    _ensure_unique_name(db, name=clean_name)

    customer = Customer(name=clean_name, address=address.strip(), phone_number=_clean_phone(phone_number))
    db.add(customer)
    db.flush()
    return customer


def update_customer(
    db: Session,
    *,
    customer_id: int,
    name: str,
    address: str,
    phone_number: str | None = None,
) -> Customer:
    customer = get_customer(db, customer_id=customer_id)
    clean_name = normalize_name(name)
    if not clean_name:
        raise ValueError('Customer name is required')
    _ensure_unique_name(db, name=clean_name, exclude_id=customer.id)

    customer.name = clean_name
    customer.address = address.strip()
    customer.phone_number = _clean_phone(phone_number)
    db.flush()
    return customer


def delete_customer(db: Session, *, customer_id: int) -> Customer:
    customer = get_customer(db, customer_id=customer_id)
    has_deliveries = db.execute(
        select(DeliveryRecord.id).where(DeliveryRecord.customer_id == customer_id).limit(1)
    ).first()
    has_payments = db.execute(select(Payment.id).where(Payment.customer_id == customer_id).limit(1)).first()
    if has_deliveries or has_payments:
        raise ValueError('Customer has delivery or payment history and cannot be deleted')

    cached = db.execute(select(CustomerBalance).where(CustomerBalance.customer_id == customer_id)).scalar_one_or_none()
    if cached:
        db.delete(cached)
    db.delete(customer)
    db.flush()
    return customer
