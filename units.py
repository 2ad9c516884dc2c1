"""
Decimal <-> integer token unit conversion
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext

from errors import ValidationError

# Enough digits for any uint256
_PRECISION = 80


def parse_units(amount: str, decimals: int) -> int:
    """Convert a decimal string such as "10.5" to integer base units"""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}")

    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def format_decimal(value: Decimal, places: int = 6) -> str:
    """Decimal rendered with a fixed number of fractional digits, like toFixed"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return f"{Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP):f}"


def format_units(raw: int, decimals: int, places: int = 6) -> str:
    """Integer base units rendered with a fixed number of fractional digits"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return format_decimal(Decimal(int(raw)).scaleb(-decimals), places)


def to_decimal_string(raw: int, decimals: int) -> str:
    """Shortest decimal rendering of integer base units, e.g. 10500000 -> "10.5" """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        value = Decimal(int(raw)).scaleb(-decimals)
        if value == 0:
            return "0"
        return f"{value.normalize():f}"
