"""Closed-form value parsing: currency, numbers, dates and type coercion.

These run before any example-driven synthesis. Every function returns
``None`` for input it cannot interpret instead of raising.
"""

from __future__ import annotations

import re
from typing import Any

CURRENCY_SYMBOLS = "$€£¥₹₽₿"

_CURRENCY_STRIP_RE = re.compile(r"[\$€£¥₹₽₿\s()\-]")
_NEGATIVE_SYMBOL_RE = re.compile(r"^-[\$€£¥₹₽₿]")
_SCIENTIFIC_RE = re.compile(r"^-?\d+\.?\d*e[+-]?\d+$", re.IGNORECASE)
_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

_ISO_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})")
_MONTH_DAY_YEAR_RE = re.compile(r"^([a-zA-Z]+)\s+(\d{1,2}),?\s+(\d{4})")
_DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s+([a-zA-Z]+)\s+(\d{4})")

MONTHS = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}

TRUE_WORDS = ("true", "yes", "1", "on")
FALSE_WORDS = ("false", "no", "0", "off", "")


def normalize_number(value: float) -> int | float:
    """Collapse integral floats to int so ``3000.0`` reads as ``3000``."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def to_text(value: Any) -> str:
    """Render a value the way the query language shows it as a string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(normalize_number(value))
    return str(value)


def parse_int_prefix(text: Any) -> int | None:
    """Parse the leading integer of a string; ``None`` if there is none."""
    match = _INT_PREFIX_RE.match(to_text(text))
    if not match:
        return None
    return int(match.group(1))


def parse_float_prefix(text: Any) -> int | float | None:
    """Parse the leading decimal number of a string; ``None`` if there is none."""
    match = _FLOAT_PREFIX_RE.match(to_text(text))
    if not match:
        return None
    try:
        return normalize_number(float(match.group(1)))
    except OverflowError:
        return None


def _normalize_separators(cleaned: str) -> str:
    commas = cleaned.count(",")
    dots = cleaned.count(".")
    if not commas and not dots:
        return cleaned
    if not dots:
        # "1234,56" reads as a decimal comma, "1,234" as grouping.
        after = cleaned[cleaned.rfind(",") + 1 :]
        if commas == 1 and len(after) <= 2:
            return cleaned.replace(",", ".")
        return cleaned.replace(",", "")
    if not commas:
        if dots == 1:
            return cleaned
        return cleaned.replace(".", "")
    if cleaned.rfind(",") > cleaned.rfind("."):
        return cleaned.replace(".", "").replace(",", ".")
    return cleaned.replace(",", "")


def parse_currency(text: Any) -> int | float | None:
    """Parse a currency amount in US (``$1,234.56``) or EU (``€1.234,56``) form.

    Parenthesized amounts and a leading minus are negative.

    Returns:
        The amount, or None if no number can be read
    """
    if not isinstance(text, str) or not text:
        return None
    cleaned = text.strip()
    negative = (
        (cleaned.startswith("(") and cleaned.endswith(")"))
        or cleaned.startswith("-")
        or bool(_NEGATIVE_SYMBOL_RE.match(cleaned))
    )
    cleaned = _CURRENCY_STRIP_RE.sub("", cleaned)
    if not cleaned:
        return None
    value = parse_float_prefix(_normalize_separators(cleaned))
    if value is None:
        return None
    return -value if negative else value


def parse_number(text: Any) -> int | float | None:
    """Parse a formatted number: grouping separators, percentages, exponents."""
    if not isinstance(text, str) or not text:
        return None
    cleaned = text.strip()
    if cleaned.endswith("%"):
        value = parse_number(cleaned[:-1])
        return normalize_number(value / 100) if value is not None else None
    if _SCIENTIFIC_RE.match(cleaned):
        return normalize_number(float(cleaned))
    return parse_currency(cleaned)


def _iso(year: str | int, month: str | int, day: str | int) -> str:
    return f"{int(year):04d}-{int(month):02d}-{int(day):02d}"


def parse_date(text: Any, format_hint: str | None = None) -> str | None:
    """Parse a date into ``YYYY-MM-DD``.

    Recognizes ISO dates, numeric US or EU dates (``format_hint`` "US" or
    "EU"; a slash without a hint reads as US), ``Jan 15, 2024`` and
    ``15 Jan 2024``.
    """
    if not isinstance(text, str) or not text:
        return None
    cleaned = text.strip()
    hint = format_hint.upper() if format_hint else None

    match = _ISO_DATE_RE.match(cleaned)
    if match:
        return _iso(*match.groups())

    match = _NUMERIC_DATE_RE.match(cleaned)
    if match:
        first, second, year = match.groups()
        if hint == "EU":
            return _iso(year, second, first)
        if hint == "US" or (hint is None and "/" in cleaned):
            if int(first) <= 12 and int(second) <= 31:
                return _iso(year, first, second)

    match = _MONTH_DAY_YEAR_RE.match(cleaned)
    if match and match.group(1).lower() in MONTHS:
        return _iso(match.group(3), MONTHS[match.group(1).lower()], match.group(2))

    match = _DAY_MONTH_YEAR_RE.match(cleaned)
    if match and match.group(2).lower() in MONTHS:
        return _iso(match.group(3), MONTHS[match.group(2).lower()], match.group(1))

    return None


def coerce_value(value: Any, target_type: str) -> Any:
    """Convert a value to one of the coercion types.

    Args:
        value: Raw value, usually a string taken from the document
        target_type: date, currency, number, percent, boolean or string

    Returns:
        The converted value, or None when the conversion fails
    """
    if value is None:
        return None
    text = to_text(value)

    if target_type == "date":
        return parse_date(text)
    if target_type == "currency":
        return parse_currency(text)
    if target_type == "number":
        return parse_number(text)
    if target_type == "percent":
        if "%" in text:
            return parse_number(text)
        number = parse_number(text)
        return normalize_number(number / 100) if number is not None else None
    if target_type == "boolean":
        lower = text.strip().lower()
        if lower in TRUE_WORDS:
            return True
        if lower in FALSE_WORDS:
            return False
        return bool(text)
    if target_type == "string":
        return text
    raise ValueError(f"Unknown coercion type: {target_type}")


# =============================================================================
# Extractor primitives
# =============================================================================
# Total over their inputs: a wrong-shape operand yields None. Synthesized
# extractors evaluate through these, and compiled programs embed this
# module's source so both agree exactly.


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def regex_match(value: Any, pattern: str, group: int, flags: int = 0) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        match = re.search(pattern, value, flags)
    except re.error:
        return None
    if not match or group < 0 or group > match.re.groups:
        return None
    return match.group(group)


def regex_replace(value: Any, pattern: str, replacement: str) -> str | None:
    if not isinstance(value, str):
        return None
    try:
        return re.sub(pattern, lambda m: replacement, value)
    except re.error:
        return None


def slice_text(value: Any, start: int, end: int | None) -> str | None:
    if not isinstance(value, str):
        return None
    return value[start:end]


def split_text(value: Any, delimiter: str, index: int | None, strip: bool = True) -> Any:
    """One field of a split (``index``) or every field (``index`` None)."""
    if not isinstance(value, str) or not delimiter:
        return None
    parts = value.split(delimiter)
    if strip:
        parts = [part.strip() for part in parts]
    if index is None:
        return parts
    if index < 0 or index >= len(parts):
        return None
    return parts[index]


def to_int(value: Any) -> int | None:
    if value is None:
        return None
    return parse_int_prefix(value)


def to_float(value: Any) -> int | float | None:
    if value is None:
        return None
    return parse_float_prefix(value)


def add_numbers(left: Any, right: Any) -> int | float | None:
    if not _is_number(left) or not _is_number(right):
        return None
    return normalize_number(left + right)


def divide(value: Any, divisor: int | float) -> int | float | None:
    if not _is_number(value) or not divisor:
        return None
    return normalize_number(value / divisor)


def is_truthy(value: Any) -> bool:
    return not (value is None or value == "" or value is False or (_is_number(value) and value == 0))


def regex_test(value: Any, pattern: str, flags: int = 0) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return re.search(pattern, value, flags) is not None
    except re.error:
        return False


def classify_text(value: Any, rules: Any, default: Any = None) -> Any:
    """Output of the first ``(pattern, output)`` rule whose pattern is found."""
    for pattern, output in rules:
        if regex_test(value, pattern):
            return output
    return default


def match_date(value: Any, pattern: str, order: str, pivot: int = 50) -> str | None:
    """Reorder the three groups of a date match into ``YYYY-MM-DD``.

    Args:
        value: Text holding a date
        pattern: Regex with exactly three groups
        order: Which group is which, e.g. "dmy" or "ymd"
        pivot: Two-digit years above this are 19xx, others 20xx
    """
    if not isinstance(value, str):
        return None
    try:
        match = re.search(pattern, value, re.IGNORECASE)
    except re.error:
        return None
    if not match or match.re.groups != 3:
        return None
    parts = dict(zip(order, match.groups()))
    year, month, day = parts.get("y"), parts.get("m"), parts.get("d")
    if not year or not month or not day or not year.isdigit() or not day.isdigit():
        return None
    if len(year) == 2:
        year = ("19" if int(year) > pivot else "20") + year
    month_number = int(month) if month.isdigit() else MONTHS.get(month.lower())
    if month_number is None or not 1 <= month_number <= 12 or not 1 <= int(day) <= 31:
        return None
    return _iso(year, month_number, day)


__all__ = [
    "CURRENCY_SYMBOLS",
    "MONTHS",
    "add_numbers",
    "classify_text",
    "coerce_value",
    "divide",
    "is_truthy",
    "match_date",
    "normalize_number",
    "parse_currency",
    "parse_date",
    "parse_float_prefix",
    "parse_int_prefix",
    "parse_number",
    "regex_match",
    "regex_replace",
    "regex_test",
    "slice_text",
    "split_text",
    "to_float",
    "to_int",
    "to_text",
]
