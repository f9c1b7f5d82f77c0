"""Rule-table category classification for incoming products."""

from typing import NamedTuple, Optional, Sequence

from catalog_import.config import (
    CATEGORY_DISPLAY,
    CATEGORY_RULES,
    CATEGORY_TO_COLLECTION,
    FALLBACK_CATEGORY,
    FALLBACK_COLLECTION,
    UNCATEGORIZED_LABELS,
    CategoryRule,
)

__all__ = [
    "CategoryMatch",
    "classify",
    "match_known_category",
    "collection_for_category",
]


class CategoryMatch(NamedTuple):
    slug: str
    display: str


def match_known_category(label: Optional[str]) -> Optional[str]:
    """Map a source category label to a known category slug.

    Accepts either the slug itself or its display name (case-insensitive).
    Sentinel labels such as "All" never match.
    """
    if label is None:
        return None
    cleaned = label.strip()
    if cleaned.lower() in UNCATEGORIZED_LABELS:
        return None
    if cleaned in CATEGORY_DISPLAY:
        return cleaned
    lower = cleaned.lower()
    for slug, display in CATEGORY_DISPLAY.items():
        if lower == slug or lower == display.lower():
            return slug
    return None


def classify(
    name: str,
    source_category: Optional[str] = None,
    rules: Sequence[CategoryRule] = CATEGORY_RULES,
) -> CategoryMatch:
    """Assign a catalog category to a product.

    Args:
        name: Product title
        source_category: Category label supplied by the source, trusted when known
        rules: Ordered rule table; first rule with a matching keyword wins

    Returns:
        CategoryMatch(slug, display); falls back to small appliances
    """
    known = match_known_category(source_category)
    if known:
        return CategoryMatch(known, CATEGORY_DISPLAY[known])

    name_lower = (name or "").lower()
    for rule in rules:
        if any(keyword in name_lower for keyword in rule.keywords):
            return CategoryMatch(rule.slug, CATEGORY_DISPLAY.get(rule.slug, rule.slug))

    return CategoryMatch(FALLBACK_CATEGORY, CATEGORY_DISPLAY[FALLBACK_CATEGORY])


def collection_for_category(category_slug: str) -> str:
    """Collection handle that products of a category are linked to."""
    return CATEGORY_TO_COLLECTION.get(category_slug, FALLBACK_COLLECTION)
