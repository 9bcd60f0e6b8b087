from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from dairy_portal.models import Customer, CustomerBalance, DeliveryRecord, Payment
from dairy_portal.services.money_utils import ZERO, as_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerBalanceRow:
    customer_id: int
    customer_name: str
    address: str
    phone_number: str | None
    total_deliveries: Decimal
    total_payments: Decimal
    pending_amount: Decimal


@dataclass(frozen=True)
class BalanceDrift:
    customer_id: int
    customer_name: str
    cached_amount: Decimal
    recomputed_amount: Decimal


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def compute_pending_balance(delivery_totals: Iterable[Decimal], payment_amounts: Iterable[Decimal]) -> Decimal:
    """Cumulative delivery charges minus cumulative payments, floored at zero."""
    delivered = sum(delivery_totals, ZERO)
    paid = sum(payment_amounts, ZERO)
    return max(ZERO, delivered - paid)


def _ensure_customer(db: Session, customer_id: int) -> None:
    exists = db.execute(select(Customer.id).where(Customer.id == customer_id)).scalar_one_or_none()
    if not exists:
        raise ValueError('Customer not found')


def _delivery_sum(db: Session, *, customer_id: int, bound: date | None) -> Decimal:
    query = select(func.coalesce(func.sum(DeliveryRecord.total_amount), 0)).where(
        DeliveryRecord.customer_id == customer_id
    )
    if bound is not None:
        query = query.where(DeliveryRecord.delivery_date < bound)
    return as_decimal(db.execute(query).scalar_one())


def _payment_sum(db: Session, *, customer_id: int, bound: date | None) -> Decimal:
    query = select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.customer_id == customer_id)
    if bound is not None:
        query = query.where(Payment.payment_date < bound)
    return as_decimal(db.execute(query).scalar_one())


def pending_balance_before(db: Session, *, customer_id: int, bound: date) -> Decimal:
    """Balance carried into a billing period that starts on ``bound`` (exclusive)."""
    _ensure_customer(db, customer_id)
    return compute_pending_balance(
        [_delivery_sum(db, customer_id=customer_id, bound=bound)],
        [_payment_sum(db, customer_id=customer_id, bound=bound)],
    )


def current_pending_balance(db: Session, *, customer_id: int) -> Decimal:
    _ensure_customer(db, customer_id)
    return compute_pending_balance(
        [_delivery_sum(db, customer_id=customer_id, bound=None)],
        [_payment_sum(db, customer_id=customer_id, bound=None)],
    )


def _balances_query() -> Select:
    deliveries = (
        select(
            DeliveryRecord.customer_id.label('customer_id'),
            func.sum(DeliveryRecord.total_amount).label('total_amount'),
        )
        .group_by(DeliveryRecord.customer_id)
        .subquery()
    )
    payments = (
        select(
            Payment.customer_id.label('customer_id'),
            func.sum(Payment.amount).label('total_paid'),
        )
        .group_by(Payment.customer_id)
        .subquery()
    )
    return (
        select(
            Customer.id,
            Customer.name,
            Customer.address,
            Customer.phone_number,
            func.coalesce(deliveries.c.total_amount, 0).label('total_deliveries'),
            func.coalesce(payments.c.total_paid, 0).label('total_payments'),
        )
        .outerjoin(deliveries, deliveries.c.customer_id == Customer.id)
        .outerjoin(payments, payments.c.customer_id == Customer.id)
        .order_by(Customer.name.asc())
    )


def list_customer_balances(db: Session, *, only_pending: bool = False) -> list[CustomerBalanceRow]:
    rows: list[CustomerBalanceRow] = []
    for row in db.execute(_balances_query()).all():
        total_deliveries = as_decimal(row.total_deliveries)
        total_payments = as_decimal(row.total_payments)
        pending = compute_pending_balance([total_deliveries], [total_payments])
        if only_pending and pending <= 0:
            continue
        rows.append(
            CustomerBalanceRow(
                customer_id=row.id,
                customer_name=row.name,
                address=row.address,
                phone_number=row.phone_number,
                total_deliveries=total_deliveries,
                total_payments=total_payments,
                pending_amount=pending,
            )
        )
    if only_pending:
        rows.sort(key=lambda item: item.pending_amount, reverse=True)
    return rows


def refresh_customer_balance(db: Session, *, customer_id: int) -> CustomerBalance:
    """Recompute the cached balance from source rows inside the caller's transaction."""
    db.flush()
    pending = current_pending_balance(db, customer_id=customer_id)
    cached = db.execute(
        select(CustomerBalance).where(CustomerBalance.customer_id == customer_id).with_for_update()
    ).scalar_one_or_none()
    if cached is None:
        cached = CustomerBalance(customer_id=customer_id, pending_amount=pending, updated_at=_now())
        db.add(cached)
    else:
        cached.pending_amount = pending
        cached.updated_at = _now()
    db.flush()
    return cached


def find_balance_drift(db: Session) -> list[BalanceDrift]:
    cached_by_customer = {
        row.customer_id: as_decimal(row.pending_amount)
        for row in db.execute(select(CustomerBalance.customer_id, CustomerBalance.pending_amount)).all()
    }
    drift: list[BalanceDrift] = []
    for row in list_customer_balances(db):
        cached = cached_by_customer.get(row.customer_id, ZERO)
        if cached != row.pending_amount:
            drift.append(
                BalanceDrift(
                    customer_id=row.customer_id,
                    customer_name=row.customer_name,
                    cached_amount=cached,
                    recomputed_amount=row.pending_amount,
                )
            )
    if drift:
        logger.warning('Cached balances drifted for %d customer(s)', len(drift))
    return drift


def reconcile_balances(db: Session) -> int:
    customer_ids = [row[0] for row in db.execute(select(Customer.id).order_by(Customer.id.asc())).all()]
    for customer_id in customer_ids:
        refresh_customer_balance(db, customer_id=customer_id)
    return len(customer_ids)
