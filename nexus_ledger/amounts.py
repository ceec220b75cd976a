"""
Amount codec: native drops, decimal strings and currency codes.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext, localcontext

from nexus_ledger.core import DROPS_PER_XRP, NATIVE_CURRENCY, ValidationError

CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3,4}$")

# Native amounts carry at most 6 decimal places (1 drop).
NATIVE_QUANTUM = Decimal("0.000001")


def parse_decimal(value, field: str = "amount") -> Decimal:
    """
    Parse a decimal string (or Decimal/int) without going through float.

    Raises:
        ValidationError: if the value is not a finite decimal number.
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        parsed = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} is not a decimal number: {value!r}") from e
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be finite: {value!r}")
    return parsed


def parse_positive(value, field: str = "amount") -> Decimal:
    parsed = parse_decimal(value, field)
    if parsed <= 0:
        raise ValidationError(f"{field} must be positive, got {value!r}")
    return parsed


def _digits_needed(value: Decimal, places: int) -> int:
    return max(getcontext().prec, len(value.as_tuple().digits), value.adjusted() + places + 2)


def format_decimal(value: Decimal) -> str:
    """Render a Decimal as a plain string with no exponent and no trailing zeros."""
    with localcontext() as ctx:
        ctx.prec = _digits_needed(value, 0)
        if value == value.to_integral_value():
            return str(value.quantize(Decimal(1)))
        return format(value.normalize(), "f")


def format_balance(value: Decimal) -> str:
    """Two-decimal balance string, e.g. ``"0.00"``."""
    with localcontext() as ctx:
        ctx.prec = _digits_needed(value, 2)
        return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))


def xrp_to_drops(value) -> str:
    """
    Convert a native amount to drops.

    drops(a) = round(a * 1,000,000), exact decimal arithmetic.
    """
    native = parse_decimal(value, "native amount")
    if native < 0:
        raise ValidationError(f"native amount cannot be negative: {value!r}")
    with localcontext() as ctx:
        ctx.prec = _digits_needed(native, 0) + 7
        drops = (native * DROPS_PER_XRP).to_integral_value(rounding=ROUND_HALF_EVEN)
    return str(int(drops))


def drops_to_xrp(drops) -> Decimal:
    """Convert a drops string back to a native amount."""
    try:
        count = int(str(drops))
    except ValueError as e:
        raise ValidationError(f"drops must be an integer string: {drops!r}") from e
    if count < 0:
        raise ValidationError(f"drops cannot be negative: {drops!r}")
    drops_value = Decimal(count)
    with localcontext() as ctx:
        ctx.prec = _digits_needed(drops_value, 0)
        return (drops_value / DROPS_PER_XRP).quantize(NATIVE_QUANTUM)


def validate_currency(currency: str) -> str:
    """Issued currency codes are 3 to 4 uppercase letters and never the native code."""
    if not isinstance(currency, str) or not CURRENCY_CODE_PATTERN.match(currency):
        raise ValidationError(f"Invalid currency code: {currency!r}")
    if currency == NATIVE_CURRENCY:
        raise ValidationError(f"{NATIVE_CURRENCY} is the native currency, not an issued one")
    return currency


def validate_account(account: str, field: str = "account") -> str:
    if not isinstance(account, str) or not account.strip():
        raise ValidationError(f"{field} is required")
    return account
