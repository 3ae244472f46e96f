"""
Helpers monetarios compartidos.

Todo el cálculo se hace en Decimal con ROUND_HALF_UP (redondeo comercial).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from app.core.config import settings


Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
CENT = Decimal("0.01")
UNIT = Decimal("1")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convierte a Decimal sin arrastrar el error binario de los float."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_2(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_zero_decimal_currency(currency_code: Optional[str]) -> bool:
    return (currency_code or "").upper() in settings.ZERO_DECIMAL_CURRENCIES


def round_by_currency(value: Number, currency_code: Optional[str]) -> Decimal:
    """
    Redondeo según moneda.

    CLP/JPY/KRW: sin decimales (entero más cercano).
    USD, EUR, MXN y el resto: 2 decimales.
    """
    if is_zero_decimal_currency(currency_code):
        return to_decimal(value).quantize(UNIT, rounding=ROUND_HALF_UP)
    return round_2(value)


def money_sum(values: Iterable[Number]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)
