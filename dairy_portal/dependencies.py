from __future__ import annotations

from datetime import date

from fastapi import HTTPException, Request
from fastapi.templating import Jinja2Templates
from starlette.datastructures import FormData

from dairy_portal.models import TimeOfDay
from dairy_portal.services.delivery_service import GroceryItemInput
from dairy_portal.services.money_utils import parse_decimal


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def parse_date_param(raw: str | None, *, field: str = 'date') -> date | None:
    value = (raw or '').strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid {field}') from exc


def parse_month_param(raw: str | None, *, default: date) -> date:
    """Accept ``YYYY-MM`` (the HTML month input) or a full ISO date; returns the first of the month."""
    value = (raw or '').strip()
    if not value:
        return default.replace(day=1)
    try:
        if len(value) == 7:
            return date.fromisoformat(f'{value}-01')
        return date.fromisoformat(value).replace(day=1)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid month') from exc


def parse_time_of_day(raw: object) -> TimeOfDay:
    value = str(raw or '').strip().upper()
    try:
        return TimeOfDay(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Choose morning or evening') from exc


def parse_optional_id(raw: object) -> int | None:
    value = str(raw or '').strip()
    return int(value) if value.isdigit() else None


def parse_grocery_items(form: FormData) -> tuple[GroceryItemInput, ...]:
    """Read the repeated grocery_* inputs; rows with a blank name and price are ignored."""
    names = form.getlist('grocery_name')
    prices = form.getlist('grocery_price')
    quantities = form.getlist('grocery_quantity')
    units = form.getlist('grocery_unit')
    descriptions = form.getlist('grocery_description')

    items: list[GroceryItemInput] = []
    for index, name in enumerate(names):
        name = str(name).strip()
        price_raw = str(prices[index]).strip() if index < len(prices) else ''
        if not name and not price_raw:
            continue
        label = f'Grocery item {len(items) + 1}'
        quantity_raw = str(quantities[index]).strip() if index < len(quantities) else ''
        items.append(
            GroceryItemInput(
                name=name,
                price=parse_decimal(price_raw, field=f'{label} price', allow_zero=False),
                quantity=parse_decimal(quantity_raw or '1', field=f'{label} quantity', allow_zero=False),
                unit=str(units[index]) if index < len(units) else None,
                description=str(descriptions[index]) if index < len(descriptions) else None,
            )
        )
    return tuple(items)
