"""
Price heuristics for the fallback extraction pass.

Patterns are tried in order; the first pattern with any match over the page
text wins, and ``pick_best_match`` chooses among that pattern's matches.
Bump ``PATTERNS_VERSION`` whenever a pattern or the tie-break changes so
stored previews can be told apart.
"""
import re
from typing import List, Optional, Pattern, Tuple

PATTERNS_VERSION = "2"

_AMOUNT = r"\d[\d,]*(?:\.\d+)?"

PRICE_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("dollar_symbol", re.compile(r"\$\s?" + _AMOUNT)),
    ("rupee_symbol", re.compile(r"₹\s?" + _AMOUNT)),
    ("iso_code", re.compile(_AMOUNT + r"\s*(?:USD|EUR|GBP|CAD|AUD|INR)\b", re.IGNORECASE)),
    ("labelled", re.compile(r"price[:\s]*\$?\s?" + _AMOUNT, re.IGNORECASE)),
    ("spelled_currency", re.compile(_AMOUNT + r"\s*(?:dollars?|euros?|pounds?|rupees?)\b", re.IGNORECASE)),
)

# First currency-like substring inside an element whose class/id mentions "price"
ELEMENT_PRICE_PATTERN = re.compile(r"[$₹]?\s?" + _AMOUNT)


def _rank(match: str) -> Tuple[bool, int]:
    return ("." in match, len(match))


def pick_best_match(matches: List[str]) -> Optional[str]:
    """
    Decimal beats no decimal, then longer beats shorter, then earlier wins.

    >>> pick_best_match(["$99.99", "$1299"])
    '$99.99'
    >>> pick_best_match(["$99.99", "$129.99"])
    '$129.99'
    """
    best = None
    for match in matches:
        if best is None or _rank(match) > _rank(best):
            best = match
    return best


def clean_price(raw: str) -> str:
    return re.sub(r"\s+", " ", raw).strip()


def find_price(text: str) -> str:
    if not text:
        return ""
    for _name, pattern in PRICE_PATTERNS:
        matches = [m.group(0) for m in pattern.finditer(text)]
        if matches:
            return clean_price(pick_best_match(matches))
    return ""


def find_element_price(text: str) -> str:
    match = ELEMENT_PRICE_PATTERN.search(text or "")
    return clean_price(match.group(0)) if match else ""
