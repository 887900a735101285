# backend/rental_search/parser.py
"""Value normalizers for loosely formatted filter values.

The language backend is asked for canonical values but routinely answers with
"15k", "2 BHK" or "Semi-Furnished". These helpers map such values onto the
filter vocabulary and return None for anything they cannot read.
"""
import math
import re
from typing import Any, Iterable, List, Optional


def normalize(text: str) -> str:
    return text.lower().strip()


def _compact(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", normalize(text))


# --- Amounts ---
AMOUNT_UNITS = {
    "k": 1_000,
    "thousand": 1_000,
    "l": 100_000,
    "lac": 100_000,
    "lakh": 100_000,
    "lakhs": 100_000,
    "m": 1_000_000,
}

AMOUNT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(thousand|lakhs|lakh|lac|k|l|m)?\b")
CURRENCY_NOISE = re.compile(r"(₹|rs\.?|inr|/-|,|per\s+month|/\s*month|pm\b)")


def _finite(number: float) -> float:
    if not math.isfinite(number):
        raise ValueError(f"number out of range: {number!r}")
    return number


def to_amount(value: Any) -> Optional[int]:
    """Read a rent amount such as 15000, "15k", "₹15,000" or "1.2 lakh".

    Raises ValueError for infinite or NaN amounts; those mean the payload is
    broken, not that the amount is missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = _finite(value)
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    if not isinstance(value, str):
        return None

    cleaned = CURRENCY_NOISE.sub("", normalize(value))
    if cleaned.startswith("-"):
        return None
    match = AMOUNT_PATTERN.search(cleaned)
    if not match:
        return None
    amount, unit = match.groups()
    return int(round(_finite(float(amount) * AMOUNT_UNITS.get(unit, 1))))


def to_count(value: Any) -> Optional[int]:
    """Read a non-negative whole count such as 2, "2" or "2 bedrooms"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = _finite(value)
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 and float(value).is_integer() else None
    if not isinstance(value, str):
        return None

    match = re.search(r"(\d+)\s*(bed|beds|bedroom|bedrooms|bhk|br|room|rooms)?", normalize(value))
    if match and not normalize(value).startswith("-"):
        return int(match.group(1))
    return None


# --- Enumerations ---
PROPERTY_TYPES = {
    "1rk": "1rk",
    "rk": "1rk",
    "studio": "1rk",
    "1bhk": "1bhk",
    "2bhk": "2bhk",
    "3bhk": "3bhk",
    "4bhk": "4bhk",
    "villa": "villa",
    "independenthouse": "villa",
    "pg": "pg",
    "payingguest": "pg",
    "hostel": "pg",
}


def parse_property_type(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return PROPERTY_TYPES.get(_compact(value))


FURNISHING_WORDS = {
    "fullyfurnished": "fully_furnished",
    "fully": "fully_furnished",
    "full": "fully_furnished",
    "furnished": "fully_furnished",
    "semifurnished": "semi_furnished",
    "semi": "semi_furnished",
    "partiallyfurnished": "semi_furnished",
    "unfurnished": "unfurnished",
    "notfurnished": "unfurnished",
    "nonfurnished": "unfurnished",
    "bare": "unfurnished",
}


def parse_furnishing(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return FURNISHING_WORDS.get(_compact(value))


# --- Free text ---
def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def parse_string_list(values: Any, lower: bool = False) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [part for part in re.split(r"[,;]", values)]
    if not isinstance(values, Iterable):
        return []

    seen = set()
    items: List[str] = []
    for raw in values:
        text = clean_text(raw) if isinstance(raw, (str, int, float)) else None
        if not text:
            continue
        if lower:
            text = text.lower()
        key = text.lower()
        if key in seen:
            continue
        seen.add(key)
        items.append(text)
    return items
