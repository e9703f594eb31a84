from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from uuid import uuid4 as _uuid4

CENT = Decimal("0.01")
MILLI = Decimal("0.001")


def uuid4() -> str:
    return str(_uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_decimal(value) -> Decimal:
    """Converts int/float/str/Decimal to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a number: {value!r}") from e


def round_money(value: Decimal) -> Decimal:
    # ROUND_HALF_UP on Decimal rounds half away from zero
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor(amount: Decimal) -> int:
    return int(round_money(amount) * 100)


def from_minor(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / 100).quantize(CENT)


def to_milli(quantity: Decimal) -> int:
    return int(quantity.quantize(MILLI, rounding=ROUND_HALF_UP) * 1000)


def from_milli(quantity_milli: int) -> Decimal:
    return (Decimal(quantity_milli) / 1000).quantize(MILLI)
