"""Brand resolution for source records.

A brand is resolved by running an ordered list of strategies and taking the
first usable answer:

1. explicit ``brand`` field
2. ``Brand:`` label in the (possibly HTML) description
3. a specification keyed "brand" / "manufacturer"
4. known brand name at the start of the product name
5. first word of the name, if it is a known brand
6. the house fallback brand

The result is always title-cased.
"""

import re
from typing import Callable, Optional, Sequence, Tuple

from catalog_import.config import (
    BRAND_LABEL_STOP_TERMS,
    BRAND_STOPWORDS,
    FALLBACK_BRAND,
    KNOWN_BRANDS,
)
from catalog_import.models import RawProduct
from catalog_import.text_utils import html_to_text, title_case

__all__ = [
    "BrandStrategy",
    "BRAND_STRATEGIES",
    "extract_brand",
    "brand_from_field",
    "brand_from_description",
    "brand_from_specifications",
    "brand_from_name_prefix",
    "brand_from_first_word",
]

BrandStrategy = Callable[[RawProduct], Optional[str]]

BRAND_LABEL_RE = re.compile(r"brand\s*:\s*([^\n\r]+)", re.IGNORECASE)
BRAND_LINE_RE = re.compile(r"^\s*brand[ \t]+([^\n\r]+)", re.IGNORECASE | re.MULTILINE)
NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s\-]")

MIN_BRAND_LENGTH = 2
MAX_BRAND_LENGTH = 30

# Longest names first so "General Electric"-style entries beat their prefixes;
# sorted() is stable so equal lengths keep table order.
_BRANDS_BY_LENGTH: Tuple[str, ...] = tuple(
    sorted((b.lower() for b in KNOWN_BRANDS), key=len, reverse=True)
)
_KNOWN_BRAND_SET = frozenset(b.lower() for b in KNOWN_BRANDS)


def _usable(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value if len(value) > 1 else None


def brand_from_field(record: RawProduct) -> Optional[str]:
    return _usable(record.brand)


def brand_from_description(record: RawProduct) -> Optional[str]:
    """Scrape a ``Brand: X`` label out of the description text."""
    text = html_to_text(record.description)
    if not text:
        return None

    match = BRAND_LABEL_RE.search(text) or BRAND_LINE_RE.search(text)
    if not match:
        return None

    candidate = match.group(1)
    lower = candidate.lower()
    for term in BRAND_LABEL_STOP_TERMS:
        idx = lower.find(term.lower())
        if idx != -1:
            candidate = candidate[:idx]
            lower = lower[:idx]

    candidate = " ".join(NON_ALNUM_RE.sub("", candidate).split())
    if not MIN_BRAND_LENGTH <= len(candidate) <= MAX_BRAND_LENGTH:
        return None
    if candidate.lower() in BRAND_STOPWORDS:
        return None
    return candidate


def brand_from_specifications(record: RawProduct) -> Optional[str]:
    for spec in record.specifications:
        key = spec.key.lower()
        if "brand" in key or "manufacturer" in key:
            value = _usable(spec.value)
            if value:
                return value
    return None


def brand_from_name_prefix(record: RawProduct) -> Optional[str]:
    """Known brand that the product name starts with (whole word)."""
    name = record.name.strip().lower()
    for brand in _BRANDS_BY_LENGTH:
        if name.startswith(brand):
            rest = name[len(brand):]
            if not rest or not rest[0].isalnum():
                return brand
    return None


def brand_from_first_word(record: RawProduct) -> Optional[str]:
    words = record.name.split()
    if not words:
        return None
    first = re.sub(r"[^a-zA-Z0-9]", "", words[0])
    if len(first) > 2 and first.lower() in _KNOWN_BRAND_SET:
        return first
    return None


BRAND_STRATEGIES: Tuple[BrandStrategy, ...] = (
    brand_from_field,
    brand_from_description,
    brand_from_specifications,
    brand_from_name_prefix,
    brand_from_first_word,
)


def extract_brand(
    record: RawProduct,
    strategies: Sequence[BrandStrategy] = BRAND_STRATEGIES,
    fallback: str = FALLBACK_BRAND,
) -> str:
    """Resolve the brand name for a record. Never returns an empty string."""
    for strategy in strategies:
        brand = _usable(strategy(record))
        if brand:
            return title_case(brand)
    return title_case(fallback)
