"""
Currency and amount normalization.

The payment core uses one canonical amount representation: a Decimal in
major units (e.g. Decimal("19.99") USD). Each provider family speaks a
different native encoding, and each adapter converts at its own boundary:

    Provider family   Native encoding                 Helpers
    ---------------   -----------------------------   ------------------------------
    card              integer cents                   to_minor_units / from_minor_units
    wallet            decimal string, two places      to_decimal_string / from_decimal_string
    terminal-pos      unbounded integer cents         to_minor_units / from_minor_units

Python ints are arbitrary precision, so the terminal-pos "wide integer"
requirement is met by the same helper as the card encoding; the adapters
still call the helpers independently so the encodings never share state.

All rounding is ROUND_HALF_UP on Decimal. Floats are converted through
str() first, so 19.99 becomes Decimal("19.99") rather than the binary
approximation 19.989999999999998436805981327779591083526611328125.

Usage:
    from integrations.money import to_minor_units, to_decimal_string

    to_minor_units(19.99)              # 1999
    to_decimal_string(Decimal("25"))   # "25.00"
    from_minor_units(1999)             # Decimal("19.99")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from integrations.exceptions import PaymentValidationError

MINOR_UNITS_PER_MAJOR = 100
TWO_PLACES = Decimal("0.01")

AmountLike = Decimal | float | int | str


def to_decimal(amount: AmountLike) -> Decimal:
    """
    Convert a caller-supplied amount to a canonical Decimal.

    Args:
        amount: Decimal, float, int or numeric string in major units

    Returns:
        Decimal in major units

    Raises:
        PaymentValidationError: If the amount is not a finite number
    """
    if isinstance(amount, bool):
        raise PaymentValidationError(
            "Amount must be a number", details={"amount": amount}
        )
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise PaymentValidationError(
            f"Invalid amount: {amount!r}", details={"amount": str(amount)}
        ) from e
    if not value.is_finite():
        raise PaymentValidationError(
            f"Invalid amount: {amount!r}", details={"amount": str(amount)}
        )
    return value


def to_minor_units(amount: AmountLike) -> int:
    """
    Convert major units to integer minor units, i.e. round(amount * 100).

    Example:
        to_minor_units(19.99)   # 1999
        to_minor_units("0.005") # 1
    """
    value = to_decimal(amount) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | str | None) -> Decimal:
    """
    Convert integer minor units (possibly sent as a string) to major units.

    None is treated as zero, matching providers that omit empty money fields.
    """
    if amount is None:
        return Decimal("0.00")
    return (Decimal(int(amount)) / MINOR_UNITS_PER_MAJOR).quantize(TWO_PLACES)


def to_decimal_string(amount: AmountLike) -> str:
    """
    Format major units as a two-place decimal string.

    Example:
        to_decimal_string(25)      # "25.00"
        to_decimal_string(10.005)  # "10.01"
    """
    value = to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return f"{value:.2f}"


def from_decimal_string(value: str | None) -> Decimal | None:
    """Parse a provider decimal string ("25.00") back to a Decimal."""
    if value in (None, ""):
        return None
    return to_decimal(value)


def require_positive(amount: AmountLike, field_name: str = "amount") -> Decimal:
    """
    Convert an amount and require it to be strictly positive.

    Raises:
        PaymentValidationError: If the amount is zero or negative
    """
    value = to_decimal(amount)
    if value <= 0:
        raise PaymentValidationError(
            f"{field_name} must be positive",
            details={field_name: str(value)},
        )
    return value
