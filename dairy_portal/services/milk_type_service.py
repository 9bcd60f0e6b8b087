from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dairy_portal.models import DeliveryRecord, MilkType
from dairy_portal.services.money_utils import money


def list_milk_types(db: Session) -> list[MilkType]:
    return db.execute(select(MilkType).order_by(MilkType.name.asc())).scalars().all()


def get_milk_type(db: Session, *, milk_type_id: int) -> MilkType:
    milk_type = db.execute(select(MilkType).where(MilkType.id == milk_type_id)).scalar_one_or_none()
    if not milk_type:
        raise LookupError('Milk type not found')
    return milk_type


def _validate(db: Session, *, name: str, price_per_liter: Decimal, exclude_id: int | None = None) -> str:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('Milk type name is required')
    if price_per_liter <= 0:
        raise ValueError('Price per liter must be greater than zero')
    query = select(MilkType.id).where(func.lower(MilkType.name) == clean_name.lower())
    if exclude_id is not None:
        query = query.where(MilkType.id != exclude_id)
    if db.execute(query).first():
        raise ValueError('A milk type with this name already exists')
    return clean_name


def create_milk_type(
    db: Session,
    *,
    name: str,
    price_per_liter: Decimal,
    description: str | None = None,
) -> MilkType:
    clean_name = _validate(db, name=name, price_per_liter=price_per_liter)
    milk_type = MilkType(
        name=clean_name,
        price_per_liter=money(price_per_liter),
        description=(description or '').strip() or None,
    )
    db.add(milk_type)
    db.flush()
    return milk_type


def update_milk_type(
    db: Session,
    *,
    milk_type_id: int,
    name: str,
    price_per_liter: Decimal,
    description: str | None = None,
) -> MilkType:
    # Price changes never touch existing deliveries; each record keeps its own price snapshot.
    milk_type = get_milk_type(db, milk_type_id=milk_type_id)
    milk_type.name = _validate(db, name=name, price_per_liter=price_per_liter, exclude_id=milk_type.id)
    milk_type.price_per_liter = money(price_per_liter)
    milk_type.description = (description or '').strip() or None
    db.flush()
    return milk_type


def delete_milk_type(db: Session, *, milk_type_id: int) -> MilkType:
    milk_type = get_milk_type(db, milk_type_id=milk_type_id)
    in_use = db.execute(
        select(DeliveryRecord.id).where(DeliveryRecord.milk_type_id == milk_type_id).limit(1)
    ).first()
    if in_use:
        raise ValueError('Milk type is used by delivery records and cannot be deleted')
    db.delete(milk_type)
    db.flush()
    return milk_type
