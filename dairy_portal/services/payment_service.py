from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, can_clear_balances
from dairy_portal.models import Customer, Payment
from dairy_portal.services.balance_service import current_pending_balance, refresh_customer_balance
from dairy_portal.services.money_utils import ZERO, as_decimal, money

PAYMENT_METHODS = ('Cash', 'UPI', 'Bank Transfer', 'Cheque', 'Other')
BALANCE_CLEAR_METHOD = 'Balance Clear'


@dataclass(frozen=True)
class BulkPaymentLine:
    customer_id: int
    amount: Decimal


def _ensure_customer(db: Session, customer_id: int) -> None:
    exists = db.execute(select(Customer.id).where(Customer.id == customer_id)).scalar_one_or_none()
    if not exists:
        raise ValueError('Customer not found')


def _clean_method(raw: str | None) -> str:
    method = (raw or '').strip() or 'Cash'
    if method not in PAYMENT_METHODS:
        raise ValueError(f'Unsupported payment method: {method}')
    return method


def record_payment(
    db: Session,
    *,
    customer_id: int,
    amount: Decimal,
    payment_date: date,
    payment_method: str | None = 'Cash',
    notes: str | None = None,
    principal_id: int | None = None,
) -> Payment:
    _ensure_customer(db, customer_id)
    amount = money(amount)
    if amount <= 0:
        raise ValueError('Payment amount must be greater than zero')

    payment = Payment(
        customer_id=customer_id,
        amount=amount,
        payment_date=payment_date,
        payment_method=_clean_method(payment_method),
        notes=(notes or '').strip() or None,
        created_by_principal_id=principal_id,
    )
    db.add(payment)
    db.flush()
    refresh_customer_balance(db, customer_id=customer_id)
    return payment


def record_bulk_payments(
    db: Session,
    *,
    lines: Sequence[BulkPaymentLine],
    payment_date: date,
    payment_method: str | None = 'Cash',
    notes: str | None = None,
    principal_id: int | None = None,
) -> list[Payment]:
    """Record one payment per line with a positive amount; the whole batch shares one transaction."""
    entered = [line for line in lines if line.amount and line.amount > 0]
    if not entered:
        raise ValueError('Enter an amount for at least one customer')
    seen: set[int] = set()
    for line in entered:
        if line.customer_id in seen:
            raise ValueError('Each customer can appear only once in a bulk payment')
        seen.add(line.customer_id)

    return [
        record_payment(
            db,
            customer_id=line.customer_id,
            amount=line.amount,
            payment_date=payment_date,
            payment_method=payment_method,
            notes=notes,
            principal_id=principal_id,
        )
        for line in entered
    ]


def get_payment(db: Session, *, payment_id: int) -> Payment:
    payment = db.execute(select(Payment).where(Payment.id == payment_id)).scalar_one_or_none()
    if not payment:
        raise LookupError('Payment not found')
    return payment


def delete_payment(db: Session, *, payment_id: int) -> Payment:
    payment = get_payment(db, payment_id=payment_id)
    db.delete(payment)
    db.flush()
    refresh_customer_balance(db, customer_id=payment.customer_id)
    return payment


def clear_balance(db: Session, *, principal: Principal, customer_id: int, payment_date: date) -> Payment | None:
    """
    Settle a customer's full outstanding amount with a single synthetic payment.

    Returns None when nothing is pending.
    """
    if not can_clear_balances(principal):
        raise PermissionError('Only an administrator can clear a balance')

    pending = current_pending_balance(db, customer_id=customer_id)
    if pending <= ZERO:
        return None

    payment = Payment(
        customer_id=customer_id,
        amount=pending,
        payment_date=payment_date,
        payment_method=BALANCE_CLEAR_METHOD,
        notes=f'Balance cleared by {principal.username}',
        created_by_principal_id=principal.id,
    )
    db.add(payment)
    db.flush()
    refresh_customer_balance(db, customer_id=customer_id)
    return payment


def list_payments(
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
        conditions.append(Payment.customer_id == customer_id)
    if from_date:
        conditions.append(Payment.payment_date >= from_date)
    if to_date:
        conditions.append(Payment.payment_date <= to_date)
    term = (search or '').strip().lower()
    if term:
        conditions.append(
            or_(
                func.lower(Customer.name).like(f'%{term}%'),
                func.lower(Payment.payment_method).like(f'%{term}%'),
                func.lower(func.coalesce(Payment.notes, '')).like(f'%{term}%'),
            )
        )

    query = (
        select(Payment, Customer.name.label('customer_name'))
        .join(Customer, Customer.id == Payment.customer_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    if conditions:
        query = query.where(and_(*conditions))
    if limit:
        query = query.limit(limit)

    return [
        {
            'id': row.Payment.id,
            'customer_id': row.Payment.customer_id,
            'customer_name': row.customer_name,
            'amount': as_decimal(row.Payment.amount),
            'payment_date': row.Payment.payment_date,
            'payment_method': row.Payment.payment_method,
            'notes': row.Payment.notes or '',
        }
        for row in db.execute(query).all()
    ]
