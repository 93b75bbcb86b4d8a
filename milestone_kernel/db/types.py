"""
Module: milestone_kernel.db.types
Responsibility: Precision constants and coercion helpers for base-currency
    amounts and governance token counts.  Centralizes precision and rounding so
    that every model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Amounts are Decimal with explicit
      precision; governance tokens are whole integers.

Failure modes:
    - InvalidAmountError from to_amount() on non-numeric, NaN or infinite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from milestone_kernel.exceptions import InvalidAmountError

MONEY_DECIMAL_PLACES = 9
DISPLAY_DECIMAL_PLACES = 8
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_amount(value: Decimal | str | int) -> Decimal:
    """
    Coerce a caller-supplied amount into a finite Decimal.

    Floats are accepted only through their string form so that binary
    representation noise never reaches the ledger.

    Raises:
        InvalidAmountError: if the value is not a finite number.
    """
    if isinstance(value, bool):
        raise InvalidAmountError(repr(value), "not a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAmountError(repr(value), "not a number") from exc
    if not amount.is_finite():
        raise InvalidAmountError(str(amount), "not finite")
    return amount


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a base-currency amount to the given number of decimal places.

    This is the only rounding function used for stored amounts.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
