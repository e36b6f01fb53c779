"""Decimal helpers for on-chain integer amounts and ray-scaled indices."""

from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation

# Ray indices carry 27 fractional digits on top of the integer part.
DECIMAL_CTX = Context(prec=60)

RAY = Decimal(10) ** 27


def to_decimal(value: str | int | float | Decimal) -> Decimal:
    """Parse *value* into a Decimal; floats go through ``str`` to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        return DECIMAL_CTX.create_decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def from_onchain(value: str | int | Decimal, decimals: int) -> Decimal:
    """Scale an on-chain integer amount down by ``10 ** decimals``."""
    return DECIMAL_CTX.divide(to_decimal(value), Decimal(10) ** decimals)


def to_onchain(value: str | int | float | Decimal, decimals: int) -> str:
    """Scale a human-readable amount up to an integer string."""
    scaled = DECIMAL_CTX.multiply(to_decimal(value), Decimal(10) ** decimals)
    return str(scaled.quantize(Decimal(1)))


def ray_to_decimal(value: str | int) -> Decimal:
    return DECIMAL_CTX.divide(to_decimal(value), RAY)


def is_zero(value: str | int | Decimal | None) -> bool:
    if value is None or value == "":
        return True
    return to_decimal(value) == 0
