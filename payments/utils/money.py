"""
NGN and points arithmetic.

All amounts are ``Decimal`` with two decimal places. Fees and commissions
round half up; conversions from NGN to points round down so a rate change
or rounding never credits more points than the money backing them.
"""
from collections import namedtuple
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from payments.conf import payment_settings

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

ExchangeRate = namedtuple("ExchangeRate", ["version", "ngn_per_point"])


def to_decimal(value) -> Decimal:
    """Convert an int, str or Decimal to a two-place Decimal."""
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats.")
    try:
        return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid monetary value: {value!r}") from exc


def rate(value) -> Decimal:
    return Decimal(str(value))


def percentage_of(amount, fraction) -> Decimal:
    return (to_decimal(amount) * rate(fraction)).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )


def current_exchange_rate() -> ExchangeRate:
    config = payment_settings.POINTS_EXCHANGE_RATE
    return ExchangeRate(
        version=str(config["version"]),
        ngn_per_point=to_decimal(config["ngn_per_point"]),
    )


def points_to_ngn(points, exchange_rate=None) -> Decimal:
    exchange_rate = exchange_rate or current_exchange_rate()
    return (to_decimal(points) * exchange_rate.ngn_per_point).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )


def ngn_to_points(amount, exchange_rate=None) -> Decimal:
    exchange_rate = exchange_rate or current_exchange_rate()
    return (to_decimal(amount) / exchange_rate.ngn_per_point).quantize(
        TWO_PLACES, rounding=ROUND_DOWN
    )


def format_ngn(amount) -> str:
    return f"₦{to_decimal(amount):,.2f}"


def format_points(points) -> str:
    return f"{to_decimal(points):,.2f} pts"
