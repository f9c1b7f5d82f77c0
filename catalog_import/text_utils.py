"""Text cleanup helpers shared by the extractors and the pipeline."""

import re
from typing import Optional

from bs4 import BeautifulSoup

from catalog_import.config import GENERIC_DESCRIPTION_MARKERS

__all__ = [
    "html_to_text",
    "title_case",
    "is_generic_description",
    "parse_price",
]

PRICE_RE = re.compile(r"(\d[\d.,]*)")


def html_to_text(html: Optional[str]) -> str:
    """Reduce an HTML (or plain text) description to newline-separated text.

    Block-level markup becomes line breaks so label/value pairs like
    ``<li>Brand: Midea</li><li>Color: White</li>`` end up on separate lines.
    """
    if not html:
        return ""
    if "<" not in html:
        return html
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text("\n")


def title_case(text: Optional[str]) -> str:
    """Lower-case the text, then upper-case the first letter of each word."""
    if not text:
        return ""
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split(" "))


def is_generic_description(text: Optional[str]) -> bool:
    """True for missing, too-short or boilerplate descriptions."""
    if not text:
        return True
    stripped = text.strip()
    if len(stripped) < 20:
        return True
    lower = stripped.lower()
    return any(marker in lower for marker in GENERIC_DESCRIPTION_MARKERS)


def parse_price(text: Optional[str]) -> Optional[float]:
    """Parse a display price such as ``€1,299.99`` or ``299,99 €``.

    Returns None when no number is present.
    """
    if not text:
        return None
    match = PRICE_RE.search(text)
    if not match:
        return None
    number = match.group(1).rstrip(".,")
    if "," in number and "." in number:
        # Whichever separator comes last is the decimal point
        if number.rfind(",") > number.rfind("."):
            number = number.replace(".", "").replace(",", ".")
        else:
            number = number.replace(",", "")
    elif "," in number:
        head, _, tail = number.rpartition(",")
        number = f"{head.replace(',', '')}.{tail}" if len(tail) != 3 else number.replace(",", "")
    try:
        return float(number)
    except ValueError:
        return None
