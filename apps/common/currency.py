from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Final

CURRENCY_DECIMALS: Final[dict[str, int]] = {
    "IDR": 0,
    "AUD": 2,
    "USD": 2,
    "SGD": 2,
    "MYR": 2,
}

# symbol, thousands separator, decimal separator
CURRENCY_STYLE: Final[dict[str, tuple[str, str, str]]] = {
    "IDR": ("Rp ", ".", ","),
    "AUD": ("A$", ",", "."),
}


def to_decimal(value: Any) -> Decimal:
    """Coerce prices coming from JSON, forms or spreadsheets into Decimal.

    Strings like "50000" or "12.50" are accepted; anything unparsable or
    non-finite (NaN, Infinity) is zero.
    """
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return Decimal(0)
    return result if result.is_finite() else Decimal(0)


def currency_decimals(currency: str | None) -> int:
    return CURRENCY_DECIMALS.get((currency or "").upper(), 2)


def _group(digits: str, sep: str) -> str:
    out = []
    while len(digits) > 3:
        out.insert(0, digits[-3:])
        digits = digits[:-3]
    out.insert(0, digits)
    return sep.join(out)


def format_currency(amount: Any, currency: str | None = "IDR", locale: str = "id") -> str:
    """Format an amount in the display currency (e.g., 10000 IDR -> Rp 10.000).

    Rounding to the currency's minor units happens here and only here.
    """
    code = (currency or "IDR").upper()
    places = currency_decimals(code)
    value = to_decimal(amount)
    quant = Decimal(1).scaleb(-places)
    rounded = value.quantize(quant, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    rounded = abs(rounded)

    symbol, thousands, decimal_sep = CURRENCY_STYLE.get(code, (f"{code} ", ",", "."))
    whole, _, frac = f"{rounded:.{places}f}".partition(".")
    txt = _group(whole, thousands)
    if places:
        txt = f"{txt}{decimal_sep}{frac}"
    return f"{sign}{symbol}{txt}"


def format_order_number(merchant_code: str, order_number: str) -> str:
    prefix = f"{merchant_code}-"
    if not order_number or order_number.startswith(prefix):
        return order_number
    return prefix + order_number


def truncate(text: str | None, length: int = 50) -> str:
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[:length] + "..."
