import re
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import PreformattedString, Tag

from app.features.preview.schemas.preview import ExtractedData
from app.features.preview.services import price_patterns
from app.platform.logger import get_logger

logger = get_logger("extractor_service")

Partial = Dict[str, str]
Strategy = Callable[[BeautifulSoup], Partial]

FIELDS = ("title", "image", "price", "currency", "site_name")

MIN_IMAGE_DIMENSION = 100

IMAGE_SKIP_PATTERNS = (
    "icon",
    "logo",
    "avatar",
    "thumb",
    "pixel",
    "tracking",
    "analytics",
    "favicon",
    "sprite",
    "button",
    "badge",
)

SITE_NAME_SOURCES = (
    "application-name",
    "apple-mobile-web-app-title",
    "og:site_name",
    "twitter:site",
)

OEMBED_TYPES = ("application/json+oembed", "text/xml+oembed")

NON_VISIBLE_TAGS = frozenset({"script", "style", "noscript", "template", "head", "title"})


def _meta_content(soup: BeautifulSoup, key: str) -> str:
    """content of <meta property=key> or <meta name=key>, trimmed."""
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: key})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return ""


def _leading_int(value) -> Optional[int]:
    match = re.match(r"\s*(-?\d+)", str(value or ""))
    return int(match.group(1)) if match else None


def is_significant_image(img: Tag) -> bool:
    """Skip small images, icons, logos and tracking pixels."""
    for dimension in ("width", "height"):
        size = _leading_int(img.get(dimension))
        if size is not None and size < MIN_IMAGE_DIMENSION:
            return False

    css_class = img.get("class") or []
    if isinstance(css_class, list):
        css_class = " ".join(css_class)
    combined = f"{img.get('src', '')} {img.get('alt', '')} {css_class}".lower()
    return not any(pattern in combined for pattern in IMAGE_SKIP_PATTERNS)


def visible_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    parts = []
    for string in root.find_all(string=True):
        # Comments, doctypes and CDATA are not page text
        if isinstance(string, PreformattedString):
            continue
        if string.parent is not None and string.parent.name in NON_VISIBLE_TAGS:
            continue
        parts.append(string)
    return " ".join(parts)


def _class_or_id_mentions_price(tag: Tag) -> bool:
    css_class = tag.get("class") or []
    if isinstance(css_class, list):
        css_class = " ".join(css_class)
    values = (css_class, tag.get("id") or "")
    return any("price" in value or "Price" in value for value in values)


# ── Strategies ──────────────────────────────────────────────────────────────
# Each one is pure: it reads the document and returns the fields it found.


def open_graph(soup: BeautifulSoup) -> Partial:
    found = {
        "title": _meta_content(soup, "og:title"),
        "image": _meta_content(soup, "og:image"),
        "site_name": _meta_content(soup, "og:site_name"),
        "price": _meta_content(soup, "og:price:amount"),
    }
    if found["price"]:
        found["currency"] = _meta_content(soup, "og:price:currency")
    return found


def twitter_card(soup: BeautifulSoup) -> Partial:
    return {
        "title": _meta_content(soup, "twitter:title"),
        "image": _meta_content(soup, "twitter:image"),
        "site_name": _meta_content(soup, "twitter:site"),
    }


def oembed_discovery(soup: BeautifulSoup) -> Partial:
    link = ContentExtractor.find_oembed_link(soup)
    if link:
        logger.debug(f"oEmbed link found: {link}")
    return {}


def fallback_title(soup: BeautifulSoup) -> Partial:
    title = soup.find("title")
    return {"title": title.get_text().strip() if title else ""}


def fallback_image(soup: BeautifulSoup) -> Partial:
    for img in soup.find_all("img", src=True):
        src = img["src"].strip()
        if src and is_significant_image(img):
            return {"image": src}
    return {}


def fallback_price(soup: BeautifulSoup) -> Partial:
    price = price_patterns.find_price(visible_text(soup))
    if price:
        return {"price": price}

    for element in soup.find_all(_class_or_id_mentions_price):
        price = price_patterns.find_element_price(element.get_text(" ").strip())
        if price:
            return {"price": price}
    return {}


def fallback_site_name(soup: BeautifulSoup) -> Partial:
    for key in SITE_NAME_SOURCES:
        value = _meta_content(soup, key)
        if value:
            return {"site_name": value}
    return {}


# (fields a strategy can fill, strategy) in priority order
STRATEGIES: Tuple[Tuple[FrozenSet[str], Strategy], ...] = (
    (frozenset({"title", "image", "site_name", "price", "currency"}), open_graph),
    (frozenset({"title", "image", "site_name"}), twitter_card),
    (frozenset(), oembed_discovery),
    (frozenset({"title"}), fallback_title),
    (frozenset({"image"}), fallback_image),
    (frozenset({"price"}), fallback_price),
    (frozenset({"site_name"}), fallback_site_name),
)


def merge_first_wins(accumulated: Partial, partial: Partial) -> Partial:
    """Fill only the fields that are still empty."""
    merged = dict(accumulated)
    for field, value in partial.items():
        if field in FIELDS and not merged.get(field) and value:
            merged[field] = value.strip()
    return merged


class ContentExtractor:
    """Turns an HTML document into ExtractedData. Never raises on bad markup."""

    def __init__(self, strategies=STRATEGIES):
        self.strategies = strategies

    @staticmethod
    def parse(html: str) -> BeautifulSoup:
        return BeautifulSoup(html or "", "html.parser")

    @staticmethod
    def find_oembed_link(soup: BeautifulSoup) -> str:
        for oembed_type in OEMBED_TYPES:
            link = soup.find("link", attrs={"type": oembed_type})
            if link and link.get("href"):
                return link["href"].strip()
        return ""

    def extract(self, html: str) -> ExtractedData:
        if not isinstance(html, str) or not html.strip():
            return ExtractedData()

        try:
            soup = self.parse(html)
        except Exception as e:
            # html.parser can still choke on some broken markup
            logger.warning(f"Could not parse HTML, returning empty preview: {e}")
            return ExtractedData()

        data: Partial = {}
        for fields, strategy in self.strategies:
            if fields and all(data.get(field) for field in fields):
                continue
            data = merge_first_wins(data, strategy(soup))

        return ExtractedData(**{field: data.get(field, "") for field in FIELDS})

    def missing_fields(self, data: ExtractedData) -> List[str]:
        return [field for field in FIELDS if not getattr(data, field)]
