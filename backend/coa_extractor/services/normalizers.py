"""Value normalizers for noisy COA text.

Pure helpers shared by the extraction strategies and the terpene parser:
- Numeric tokens with OCR digit confusions (O/0, l/1, I/1) and comma decimals
- Unit annotations (%, mg/g, µg/g, ppm) converted to a percentage
- ND / <LOQ markers recognised as below-detection (never zero)
- Cannabinoid range validation
- OCR-garbled test dates converted to a midnight-UTC instant
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dateutil import parser as dateparser


# Empirical conversion constants. Changing them shifts accepted terpene
# values and confidence scoring, so they are kept exactly as observed.
MG_PER_G_TO_PERCENT = 0.1
UG_PER_G_DIVISOR = 10000

PERCENT = "%"
MG_PER_G = "mg/g"
UG_PER_G = "µg/g"

# Numeric token as OCR produces it: leading digit, optional O-for-0 inside,
# decimal part that may carry O/l/I confusions.
NUMBER_PATTERN = r"\d[\dO]*(?:[.,][\dOlI]+)?"

_DIGIT_CONFUSIONS = str.maketrans({"O": "0", "o": "0", "l": "1", "I": "1", "S": "5", "s": "5"})

_UNIT_PATTERNS = [
    (re.compile(r"mg\s*/\s*g", re.IGNORECASE), MG_PER_G),
    # µ (micro sign), μ (Greek mu, what NFKC yields) and the ASCII "ug" spelling
    (re.compile(r"(?:[µμu]g\s*/\s*g|ppm)", re.IGNORECASE), UG_PER_G),
    (re.compile(r"%"), PERCENT),
]

_BELOW_DETECTION = re.compile(r"(?:\bN\.?D\.?(?![A-Z])|\bN/D\b|NOT\s+DETECTED|<\s*L\.?O\.?Q|<\s*LOD|\bBLQ\b)", re.IGNORECASE)

_MONTHS = frozenset({
    "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
})

# OCR can garble day/year digits; allow the usual letter look-alikes.
_DAY = r"[\dOlIS]{1,2}"
_YEAR = r"[\dOlIS]{4}"
_MONTH_NAME = r"([A-Z]{3})[A-Z]*\.?"

_DATE_PATTERNS = [
    re.compile(
        rf"(?:PRODUCED|TEST(?:ED)?\s*DATE|DATE\s+TESTED|TESTED|ANALY[SZ]ED)\s*:?\s*{_MONTH_NAME}\s+({_DAY})[,.\s]+({_YEAR})",
        re.IGNORECASE,
    ),
    re.compile(rf"M-\d+[A-Z]?:[^/\n]*//\s*{_MONTH_NAME}\s+({_DAY})[,.\s]+({_YEAR})", re.IGNORECASE),
    re.compile(rf"\b{_MONTH_NAME}\s+({_DAY})[,.\s]+({_YEAR})\b", re.IGNORECASE),
]

_NUMERIC_DATE_PATTERN = re.compile(
    rf"(?:PRODUCED|TEST(?:ED)?\s*DATE|DATE\s+TESTED|TESTED|ANALY[SZ]ED)\s*:?\s*({_DAY})\s*[/-]\s*({_DAY})\s*[/-]\s*({_YEAR})",
    re.IGNORECASE,
)


class Cannabinoid(str, Enum):
    """Cannabinoid fields tracked on a record, with their upper bound in percent."""
    THC = "THC"
    CBD = "CBD"
    TOTAL = "TOTAL CANNABINOIDS"


CANNABINOID_LIMITS = {
    Cannabinoid.THC: 50.0,
    Cannabinoid.CBD: 30.0,
    Cannabinoid.TOTAL: 60.0,
}


def parse_number(token: Optional[str]) -> Optional[float]:
    """
    Parse a numeric token, repairing common OCR digit confusions.

    "24,5" -> 24.5, "2O.5" -> 20.5, "0.l5" -> 0.15. Returns None for
    anything that still is not a number after repair.
    """
    if not token:
        return None
    cleaned = token.strip().translate(_DIGIT_CONFUSIONS)
    cleaned = re.sub(r"\s+", "", cleaned)
    # Comma decimals ("24,2") but not thousands separators ("1,234.5")
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def normalize_unit(text: Optional[str]) -> Optional[str]:
    """Detect the unit annotation in a cell or header: %, mg/g or µg/g."""
    if not text:
        return None
    for pattern, unit in _UNIT_PATTERNS:
        if pattern.search(text):
            return unit
    return None


def to_percent(value: float, unit: Optional[str]) -> float:
    """
    Convert a measured amount into a percentage.

    1 mg/g is taken as 0.1 % and 1 µg/g as 0.0001 %. Values without a
    unit are assumed to already be percentages.
    """
    if unit == MG_PER_G:
        return value * MG_PER_G_TO_PERCENT
    if unit == UG_PER_G:
        return value / UG_PER_G_DIVISOR
    return value


def is_below_detection(text: Optional[str]) -> bool:
    """True for ND / <LOQ style markers, which mean "absent", not zero."""
    return bool(text) and bool(_BELOW_DETECTION.search(text))


def parse_amount_to_percent(cell: Optional[str], default_unit: Optional[str] = None) -> Optional[float]:
    """
    Parse an amount cell ("5.14 mg/g", "0.514 %", "ND") into a percentage.

    The unit written in the cell wins over ``default_unit`` (usually learned
    from the column header). Below-detection markers return None.
    """
    if not cell or is_below_detection(cell):
        return None
    match = re.search(NUMBER_PATTERN, cell)
    if not match:
        return None
    value = parse_number(match.group(0))
    if value is None:
        return None
    unit = normalize_unit(cell[match.end():]) or default_unit
    return to_percent(value, unit)


def is_valid_cannabinoid(value: Optional[float], kind: Cannabinoid) -> bool:
    """Range check: THC <= 50, CBD <= 30, total <= 60, never negative."""
    if value is None:
        return False
    if value != value or value in (float("inf"), float("-inf")) or value < 0:
        return False
    return value <= CANNABINOID_LIMITS[Cannabinoid(kind)]


def _repair_digits(token: str) -> Optional[str]:
    value = parse_number(token)
    if value is None or not value.is_integer():
        return None
    return str(int(value))


def _parse_date(text: str) -> Optional[datetime]:
    """Parse a digit-repaired date string as midnight UTC; None if not a real calendar date."""
    try:
        parsed = dateparser.parse(text, dayfirst=False)
    except (ValueError, OverflowError):
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def extract_test_date(text: Optional[str]) -> Optional[datetime]:
    """
    Find a test date in COA text and return it as midnight UTC.

    Tries, in order: labelled dates ("TESTED: MAR 15, 2024"), method-code
    lines ("M-024: POTENCY // MAR 15, 2024"), any "MON DD, YYYY" token, and
    labelled numeric dates ("TEST DATE: 03/15/2024", month first unless the
    first number cannot be a month).
    """
    if not text:
        return None

    for pattern in _DATE_PATTERNS:
        for match in pattern.finditer(text):
            month = match.group(1).upper()
            day = _repair_digits(match.group(2))
            year = _repair_digits(match.group(3))
            if month not in _MONTHS or day is None or year is None:
                continue
            result = _parse_date(f"{month} {day} {year}")
            if result:
                return result

    for match in _NUMERIC_DATE_PATTERN.finditer(text):
        parts = [_repair_digits(group) for group in match.groups()]
        if None in parts:
            continue
        result = _parse_date("/".join(parts))
        if result:
            return result

    return None


def format_iso_instant(value: Optional[datetime]) -> Optional[str]:
    """Format as "YYYY-MM-DDT00:00:00.000Z"."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
