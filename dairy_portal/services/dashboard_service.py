from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dairy_portal.models import Customer, MilkType
from dairy_portal.services.balance_service import find_balance_drift, list_customer_balances
from dairy_portal.services.delivery_service import count_deliveries_on
from dairy_portal.services.money_utils import ZERO


@dataclass(frozen=True)
class DashboardStats:
    total_customers: int
    total_milk_types: int
    todays_deliveries: int
    customers_with_pending: int
    total_pending_amount: Decimal
    drifted_balances: int


def get_dashboard_stats(db: Session, *, today: date) -> DashboardStats:
    pending = list_customer_balances(db, only_pending=True)
    return DashboardStats(
        total_customers=int(db.execute(select(func.count(Customer.id))).scalar_one()),
        total_milk_types=int(db.execute(select(func.count(MilkType.id))).scalar_one()),
        todays_deliveries=count_deliveries_on(db, day=today),
        customers_with_pending=len(pending),
        total_pending_amount=sum((row.pending_amount for row in pending), ZERO),
        drifted_balances=len(find_balance_drift(db)),
    )
