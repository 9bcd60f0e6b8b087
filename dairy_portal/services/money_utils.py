from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from dairy_portal.config import settings

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

ROUNDING_CENTS = 'CENTS'
ROUNDING_WHOLE_UP = 'WHOLE_UP'


def money(value: Decimal | int | str, *, policy: str | None = None) -> Decimal:
    """Quantize an amount for persistence using the configured rounding policy."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    mode = (policy or settings.money_rounding).strip().upper()
    if mode == ROUNDING_WHOLE_UP:
        return amount.to_integral_value(rounding=ROUND_CEILING).quantize(CENT)
    if mode != ROUNDING_CENTS:
        raise ValueError(f'Unknown money rounding policy: {mode}')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def as_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_whole(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def format_amount(value: Decimal) -> str:
    return f'{value.quantize(CENT, rounding=ROUND_HALF_UP):.2f}'


def format_quantity(value: Decimal) -> str:
    """Render liters without trailing zeros: 2.500 -> 2.5, 2.000 -> 2."""
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal('1')))
    return format(normalized, 'f')


def parse_decimal(raw: object, *, field: str, allow_zero: bool = True, allow_blank: bool = False) -> Decimal | None:
    text = str(raw if raw is not None else '').strip()
    if text == '':
        if allow_blank:
            return None
        raise ValueError(f'{field} is required')
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f'{field} must be a number') from exc
    if not value.is_finite():
        raise ValueError(f'{field} must be a number')
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f'{field} must be greater than zero' if not allow_zero else f'{field} cannot be negative')
    return value
