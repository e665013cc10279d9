"""Total, non-throwing scalar coercion for loosely-typed store values.

Every ``coerce_*`` function returns a :class:`Coerced` carrying the converted
value (or the documented default) together with flags that let callers tell
"absent" from "present but unparseable" from a genuine zero.

Numbers are parsed with one fixed :class:`NumberFormat` rather than guessing the
locale per value: ``1,590`` is always one thousand five hundred and ninety under
the default convention and ``1.590,00`` is rejected.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
import math
import re
from typing import Any, Generic, Mapping, Optional, Pattern, TypeVar

from invoices.normalize.nodes import canonical_key, literal_value

T = TypeVar("T")

_CURRENCY_SYMBOLS = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "C$": "CAD",
    "A$": "AUD",
    "CA$": "CAD",
    "HK$": "HKD",
    "MX$": "MXN",
    "R$": "BRL",
    "₹": "INR",
    "₩": "KRW",
    "₺": "TRY",
}

_CURRENCY_CODES = {
    "USD",
    "EUR",
    "GBP",
    "JPY",
    "CAD",
    "AUD",
    "CHF",
    "CNY",
    "HKD",
    "SEK",
    "NOK",
    "DKK",
    "INR",
    "KRW",
    "SGD",
    "MXN",
    "BRL",
    "COP",
    "ARS",
    "CLP",
}

_MINUS_SIGNS = str.maketrans({"\u2212": "-", "\u2013": "-", "\u2014": "-"})
_PLAIN_DECIMAL = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")
_CODE_TOKEN = re.compile(r"[A-Za-z]{3}")
_MAX_COUNT_EXPONENT = 18

_ISO_DATETIME = re.compile(
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"(?:[T ](?P<hour>\d{2}):(?P<minute>\d{2})"
    r"(?::(?P<second>\d{2})(?:[.,](?P<fraction>\d+))?)?"
    r"(?P<tz>Z|[+-]\d{2}:?\d{2})?)?"
)


@dataclass(frozen=True, slots=True)
class Coerced(Generic[T]):
    """Result of a coercion: value plus success/absence flags."""

    value: T
    ok: bool
    missing: bool = False

    @property
    def failed(self) -> bool:
        """True when a value was present but could not be converted."""

        return not self.ok and not self.missing


@dataclass(frozen=True, slots=True)
class NumberFormat:
    """The single decimal/thousands convention applied to numeric text."""

    decimal_separator: str = "."
    thousands_separator: str = ","
    _pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.decimal_separator) != 1 or len(self.thousands_separator) != 1:
            raise ValueError("Separators must be single characters.")
        if self.decimal_separator == self.thousands_separator:
            raise ValueError("Decimal and thousands separators must differ.")
        if self.decimal_separator.isdigit() or self.thousands_separator.isdigit():
            raise ValueError("Separators cannot be digits.")
        dec = re.escape(self.decimal_separator)
        grp = re.escape(self.thousands_separator)
        pattern = re.compile(
            rf"(?P<lead>[-+])?\s*(?P<prefix>[^\d{dec}{grp}+\-]*?)\s*(?P<sign>[-+])?\s*"
            rf"(?P<number>\d{{1,3}}(?:{grp}\d{{3}})+(?:{dec}\d+)?|\d+(?:{dec}\d*)?|{dec}\d+)"
            rf"\s*(?P<trail>-)?\s*(?P<suffix>[^\d]*)"
        )
        object.__setattr__(self, "_pattern", pattern)

    @property
    def pattern(self) -> Pattern[str]:
        return self._pattern


DEFAULT_NUMBER_FORMAT = NumberFormat()


def _is_currency_value(node: Any) -> bool:
    if not isinstance(node, Mapping):
        return False
    keys = {canonical_key(key) for key in node}
    return "amount" in keys and bool(keys & {"currencycode", "currencysymbol", "currency"})


def _currency_value_part(node: Mapping[str, Any], wanted: str) -> Any:
    for key, value in node.items():
        if canonical_key(key) == wanted:
            return value
    return None


def unwrap(node: Any) -> Any:
    """Reduce literal nodes and currency-value nodes to the primitive they carry."""

    node = literal_value(node)
    if _is_currency_value(node):
        node = literal_value(_currency_value_part(node, "amount"))
    return node


def is_coercible(node: Any) -> bool:
    """True when ``node`` reduces to a primitive (or ``None``)."""

    value = unwrap(node)
    return value is None or isinstance(value, (str, int, float, Decimal, date))


def _parse_decimal_text(text: str, number_format: NumberFormat) -> Optional[Decimal]:
    compact = " ".join(text.replace("\u00a0", " ").split()).translate(_MINUS_SIGNS)
    if not compact:
        return None

    negative = False
    if compact.startswith("(") and compact.endswith(")"):
        negative = True
        compact = compact[1:-1].strip()

    if number_format.decimal_separator == "." and _PLAIN_DECIMAL.fullmatch(compact):
        if negative and compact[0] in "-+":
            return None
        try:
            parsed = Decimal(compact)
        except InvalidOperation:
            return None
        return -parsed if negative else parsed

    match = number_format.pattern.fullmatch(compact)
    if match is None:
        return None

    signs = [match.group(group) for group in ("lead", "sign", "trail") if match.group(group)]
    if len(signs) + negative > 1:
        return None
    if signs == ["-"]:
        negative = True

    number = match.group("number").replace(number_format.thousands_separator, "")
    number = number.replace(number_format.decimal_separator, ".")
    try:
        parsed = Decimal(number)
    except InvalidOperation:
        return None
    return -parsed if negative else parsed


def coerce_decimal(node: Any, number_format: NumberFormat = DEFAULT_NUMBER_FORMAT) -> Coerced[Decimal]:
    """Coerce to :class:`~decimal.Decimal`; default ``0``.

    Strips currency symbols/codes, thousands separators and trailing unit
    text (``"$1,590 MXN"`` -> ``1590``, ``"$85.44"`` -> ``85.44``).
    """

    default = Decimal("0")
    value = unwrap(node)
    if value is None:
        return Coerced(default, ok=False, missing=True)
    if isinstance(value, bool):
        return Coerced(default, ok=False)

    parsed: Optional[Decimal]
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(repr(value)) if math.isfinite(value) else None
    elif isinstance(value, str):
        if not value.strip():
            return Coerced(default, ok=False, missing=True)
        parsed = _parse_decimal_text(value, number_format)
    else:
        parsed = None

    if parsed is None or not parsed.is_finite():
        return Coerced(default, ok=False)
    return Coerced(parsed, ok=True)


def coerce_float(node: Any, number_format: NumberFormat = DEFAULT_NUMBER_FORMAT) -> Coerced[Optional[float]]:
    """Coerce to ``float`` (confidence scores); default ``None``."""

    result = coerce_decimal(node, number_format)
    if not result.ok:
        return Coerced(None, ok=False, missing=result.missing)
    return Coerced(float(result.value), ok=True)


def coerce_int(node: Any, number_format: NumberFormat = DEFAULT_NUMBER_FORMAT) -> Coerced[Optional[int]]:
    """Coerce to an integral count; fractional values fail. Default ``None``."""

    result = coerce_decimal(node, number_format)
    if not result.ok:
        return Coerced(None, ok=False, missing=result.missing)
    if result.value and abs(result.value.adjusted()) > _MAX_COUNT_EXPONENT:
        return Coerced(None, ok=False)
    if result.value != result.value.to_integral_value():
        return Coerced(None, ok=False)
    return Coerced(int(result.value), ok=True)


def coerce_string(node: Any) -> Coerced[str]:
    """Coerce to ``str``; default ``""``. Containers fail rather than being stringified."""

    value = unwrap(node)
    if value is None:
        return Coerced("", ok=False, missing=True)
    if isinstance(value, str):
        return Coerced(value, ok=True)
    if isinstance(value, bool):
        return Coerced("true" if value else "false", ok=True)
    if isinstance(value, (int, float, Decimal)):
        return Coerced(str(value), ok=True)
    if isinstance(value, (date, datetime)):
        return Coerced(value.isoformat(), ok=True)
    return Coerced("", ok=False)


def _parse_offset(text: Optional[str]) -> Optional[timezone]:
    if not text:
        return None
    if text == "Z":
        return timezone.utc
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def coerce_datetime(node: Any) -> Coerced[Optional[datetime]]:
    """Coerce ISO-8601 text to ``datetime``; anything else fails. Default ``None``."""

    value = unwrap(node)
    if value is None:
        return Coerced(None, ok=False, missing=True)
    if isinstance(value, datetime):
        return Coerced(value, ok=True)
    if isinstance(value, date):
        return Coerced(datetime(value.year, value.month, value.day), ok=True)
    if not isinstance(value, str):
        return Coerced(None, ok=False)
    text = value.strip()
    if not text:
        return Coerced(None, ok=False, missing=True)

    match = _ISO_DATETIME.fullmatch(text)
    if match is None:
        return Coerced(None, ok=False)

    fraction = (match.group("fraction") or "").ljust(6, "0")[:6]
    try:
        parsed = datetime(
            int(match.group("year")),
            int(match.group("month")),
            int(match.group("day")),
            int(match.group("hour") or 0),
            int(match.group("minute") or 0),
            int(match.group("second") or 0),
            int(fraction),
            tzinfo=_parse_offset(match.group("tz")),
        )
    except ValueError:
        return Coerced(None, ok=False)
    return Coerced(parsed, ok=True)


def coerce_date(node: Any) -> Coerced[Optional[date]]:
    """Coerce ISO-8601 text to ``date``; ambiguous forms like ``05/06/2024`` fail."""

    value = unwrap(node)
    if isinstance(value, date) and not isinstance(value, datetime):
        return Coerced(value, ok=True)
    result = coerce_datetime(value)
    if result.value is None:
        return Coerced(None, ok=result.ok, missing=result.missing)
    return Coerced(result.value.date(), ok=True)


def normalize_currency_code(text: str) -> Optional[str]:
    """Map a symbol or code (``"$"``, ``"mxn"``) to an ISO code."""

    token = text.strip()
    if not token:
        return None
    if token in _CURRENCY_SYMBOLS:
        return _CURRENCY_SYMBOLS[token]
    if _CODE_TOKEN.fullmatch(token):
        return token.upper()
    return None


def detect_currency(node: Any) -> Optional[str]:
    """Find the currency a monetary literal is denominated in, if it says."""

    if isinstance(node, Mapping) and _is_currency_value(node):
        for wanted in ("currencycode", "currency"):
            code = literal_value(_currency_value_part(node, wanted))
            if isinstance(code, str) and normalize_currency_code(code):
                return normalize_currency_code(code)
        symbol = literal_value(_currency_value_part(node, "currencysymbol"))
        if isinstance(symbol, str) and symbol.strip() in _CURRENCY_SYMBOLS:
            return _CURRENCY_SYMBOLS[symbol.strip()]
        node = _currency_value_part(node, "amount")

    value = literal_value(node)
    if not isinstance(value, str):
        return None
    tokens = value.replace("\u00a0", " ").split()
    for token in reversed(tokens):
        if token.upper() in _CURRENCY_CODES:
            return token.upper()
    compact = "".join(tokens).strip("-+()")
    for symbol, code in sorted(_CURRENCY_SYMBOLS.items(), key=lambda item: -len(item[0])):
        if compact.startswith(symbol) or compact.endswith(symbol):
            return code
    for token in tokens:
        if token[:3].upper() in _CURRENCY_CODES and not token[3:4].isalpha():
            return token[:3].upper()
    return None
