from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.15")


def to_money(value) -> Decimal:
    """Coerce to a 2-decimal Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        d = Decimal(str(value))
    else:
        try:
            d = Decimal(value if value is not None else 0)
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError(f"not a money amount: {value!r}")
    return d.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def platform_fee_rate() -> Decimal:
    raw = current_app.config.get("PLATFORM_FEE_RATE", DEFAULT_PLATFORM_FEE_RATE)
    try:
        rate = Decimal(str(raw))
    except InvalidOperation:
        return DEFAULT_PLATFORM_FEE_RATE
    if rate < 0 or rate >= 1:
        return DEFAULT_PLATFORM_FEE_RATE
    return rate


def fee_on(amount) -> Decimal:
    """Platform fee on a rental amount (never on the deposit)."""
    return to_money(to_money(amount) * platform_fee_rate())


def owner_share(amount) -> Decimal:
    """Default settlement: the owner keeps what the fee leaves."""
    amt = to_money(amount)
    return amt - fee_on(amt)
