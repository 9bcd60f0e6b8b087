from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal
from dairy_portal.models import BulkEntryRun, BulkEntryStatus, BulkEntryTerminalPolicy, Customer, DeliveryRecord, TimeOfDay
from dairy_portal.services.delivery_service import (
    DeliveryInput,
    GroceryItemInput,
    create_delivery,
    latest_delivery_for_customer,
)
from dairy_portal.services.money_utils import as_decimal


class StaleCursorError(ValueError):
    """Raised when an action was issued against a run version that has since moved on."""


@dataclass(frozen=True)
class BulkEntryCursor:
    customer_ids: tuple[int, ...]
    index: int = 0
    terminal_policy: BulkEntryTerminalPolicy = BulkEntryTerminalPolicy.STOP
    committed: int = 0
    skipped: int = 0
    finished: bool = False
    wrapped: bool = False

    @property
    def total(self) -> int:
        return len(self.customer_ids)

    @property
    def is_finished(self) -> bool:
        return self.finished

    @property
    def current_customer_id(self) -> int | None:
        if self.finished or not self.customer_ids:
            return None
        return self.customer_ids[self.index]

    def advance(self, committed: bool) -> BulkEntryCursor:
        if self.finished:
            raise ValueError('Bulk entry is already complete')
        counts = {
            'committed': self.committed + (1 if committed else 0),
            'skipped': self.skipped + (0 if committed else 1),
        }
        next_index = self.index + 1
        if next_index < self.total:
            return replace(self, index=next_index, wrapped=False, **counts)
        if self.terminal_policy == BulkEntryTerminalPolicy.WRAP:
            return replace(self, index=0, wrapped=True, **counts)
        return replace(self, index=self.total, finished=True, wrapped=False, **counts)

    def previous(self) -> BulkEntryCursor:
        if self.finished:
            raise ValueError('Bulk entry is already complete')
        return replace(self, index=max(0, self.index - 1), wrapped=False)


@dataclass(frozen=True)
class BulkEntryDraft:
    milk_type_id: int | None = None
    quantity: Decimal = Decimal('0')
    price_per_liter: Decimal | None = None
    grocery_items: tuple[GroceryItemInput, ...] = ()
    notes: str | None = None


@dataclass(frozen=True)
class BulkEntryPrefill:
    milk_type_id: int
    quantity: Decimal
    price_per_liter: Decimal


@dataclass(frozen=True)
class BulkEntryStep:
    run: BulkEntryRun
    cursor: BulkEntryCursor
    delivery: DeliveryRecord | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def cursor_for_run(run: BulkEntryRun) -> BulkEntryCursor:
    return BulkEntryCursor(
        customer_ids=tuple(run.customer_ids or ()),
        index=run.current_index,
        terminal_policy=BulkEntryTerminalPolicy(run.terminal_policy),
        committed=run.committed_count,
        skipped=run.skipped_count,
        finished=run.status == BulkEntryStatus.COMPLETED,
    )


def _store_cursor(run: BulkEntryRun, cursor: BulkEntryCursor) -> None:
    run.current_index = cursor.index
    run.committed_count = cursor.committed
    run.skipped_count = cursor.skipped
    run.version = (run.version or 0) + 1
    run.updated_at = _now()
    if cursor.finished:
        run.status = BulkEntryStatus.COMPLETED
    if (cursor.finished or cursor.wrapped) and run.completed_at is None:
        run.completed_at = run.updated_at


def start_run(
    db: Session,
    *,
    principal: Principal,
    delivery_date: date,
    time_of_day: TimeOfDay,
    terminal_policy: BulkEntryTerminalPolicy | str = BulkEntryTerminalPolicy.STOP,
) -> BulkEntryRun:
    # The customer order is frozen for the run; customers added later wait for the next round.
    customer_ids = [row[0] for row in db.execute(select(Customer.id).order_by(Customer.name.asc())).all()]
    if not customer_ids:
        raise ValueError('Add customers before starting bulk entry')

    run = BulkEntryRun(
        delivery_date=delivery_date,
        time_of_day=TimeOfDay(time_of_day),
        customer_ids=customer_ids,
        current_index=0,
        version=0,
        committed_count=0,
        skipped_count=0,
        status=BulkEntryStatus.ACTIVE,
        terminal_policy=BulkEntryTerminalPolicy(terminal_policy),
        created_by_principal_id=principal.id,
        updated_at=_now(),
    )
    db.add(run)
    db.flush()
    return run


def get_run(db: Session, *, run_id: int) -> BulkEntryRun:
    run = db.execute(select(BulkEntryRun).where(BulkEntryRun.id == run_id)).scalar_one_or_none()
    if not run:
        raise LookupError('Bulk entry run not found')
    return run


def _lock_run(db: Session, *, run_id: int, expected_version: int) -> BulkEntryRun:
    run = db.execute(select(BulkEntryRun).where(BulkEntryRun.id == run_id).with_for_update()).scalar_one_or_none()
    if not run:
        raise LookupError('Bulk entry run not found')
    if run.status == BulkEntryStatus.COMPLETED:
        raise ValueError('Bulk entry is already complete')
    if run.version != expected_version:
        raise StaleCursorError('This entry was already handled in another window; reload to continue')
    return run


def get_prefill(db: Session, *, customer_id: int) -> BulkEntryPrefill | None:
    last = latest_delivery_for_customer(db, customer_id=customer_id)
    if last is None:
        return None
    return BulkEntryPrefill(
        milk_type_id=last.milk_type_id,
        quantity=as_decimal(last.quantity),
        price_per_liter=as_decimal(last.price_per_liter),
    )


def submit_entry(
    db: Session,
    *,
    run_id: int,
    expected_version: int,
    draft: BulkEntryDraft,
    principal_id: int | None = None,
) -> BulkEntryStep:
    run = _lock_run(db, run_id=run_id, expected_version=expected_version)
    cursor = cursor_for_run(run)
    delivery = create_delivery(
        db,
        payload=DeliveryInput(
            customer_id=cursor.current_customer_id,
            delivery_date=run.delivery_date,
            time_of_day=run.time_of_day,
            milk_type_id=draft.milk_type_id,
            quantity=draft.quantity,
            price_per_liter=draft.price_per_liter,
            grocery_items=draft.grocery_items,
            notes=draft.notes,
        ),
        principal_id=principal_id,
    )
    cursor = cursor.advance(committed=True)
    _store_cursor(run, cursor)
    db.flush()
    return BulkEntryStep(run=run, cursor=cursor, delivery=delivery)


def skip_entry(db: Session, *, run_id: int, expected_version: int) -> BulkEntryStep:
    run = _lock_run(db, run_id=run_id, expected_version=expected_version)
    cursor = cursor_for_run(run).advance(committed=False)
    _store_cursor(run, cursor)
    db.flush()
    return BulkEntryStep(run=run, cursor=cursor)


def previous_entry(db: Session, *, run_id: int, expected_version: int) -> BulkEntryStep:
    run = _lock_run(db, run_id=run_id, expected_version=expected_version)
    cursor = cursor_for_run(run).previous()
    _store_cursor(run, cursor)
    db.flush()
    return BulkEntryStep(run=run, cursor=cursor)
