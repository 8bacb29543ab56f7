#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Heuristic product extraction for arbitrary shop pages.

Each field (title / image / price) is an ordered cascade of rules:
 • named marketplaces (Amazon, Target, Walmart) first
 • then OpenGraph / schema.org metadata
 • then generic class-name patterns
 • then a brute-force fallback (document title, largest image, "$" text)

A rule is any callable taking a PageDocument and returning a value or None.
The first rule that yields a value wins. Nothing in here raises for a page
that simply has no product on it; missing fields come back as "".
"""

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Comment, Doctype, NavigableString, Tag

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# CONFIG
# ──────────────────────────────────────────────────────────────

MAX_TITLE_LENGTH = 500

MIN_PRICE = 0
MAX_PRICE = 100_000

DEFAULT_MIN_IMAGE_AREA = 10_000
DEFAULT_IMAGE_DENYLIST = (
    "pixel", "spacer", "1x1", "blank", "transparent",
    "icon", "logo", "sprite", "button", "badge",
    "tracking", "beacon", "analytics",
)

TITLE_SELECTORS = [
    # Amazon
    "#productTitle",
    "#title",
    # Target
    '[data-test="product-title"]',
    # Walmart / schema.org
    '[itemprop="name"]',
    # Generic e-commerce
    'h1[class*="product"]',
    'h1[class*="title"]',
    '[class*="product-title"]',
    '[class*="product-name"]',
    '[class*="ProductTitle"]',
    # OpenGraph
    'meta[property="og:title"]',
    "h1",
]

IMAGE_SELECTORS = [
    # OpenGraph / Twitter cards
    'meta[property="og:image"]',
    'meta[property="og:image:secure_url"]',
    'meta[name="twitter:image"]',
    # Amazon
    "#landingImage",
    "#imgBlkFront",
    "#main-image",
    ".a-dynamic-image",
    # Target
    '[data-test="product-image"] img',
    # Walmart
    ".prod-hero-image img",
    # Generic e-commerce
    '[class*="product-image"] img',
    '[class*="ProductImage"] img',
    '[class*="gallery"] img',
    '[class*="main-image"] img',
    '[itemprop="image"]',
    'img[itemprop="image"]',
]

PRICE_SELECTORS = [
    # Amazon
    ".a-price .a-offscreen",
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#priceblock_saleprice",
    ".a-price-whole",
    "#corePrice_feature_div .a-offscreen",
    # Target
    '[data-test="product-price"]',
    # Walmart / schema.org
    '[itemprop="price"]',
    ".price-characteristic",
    # Generic e-commerce
    '[class*="product-price"]',
    '[class*="ProductPrice"]',
    '[class*="sale-price"]',
    '[class*="current-price"]',
    ".price",
    "[data-price]",
    'meta[property="product:price:amount"]',
]

# img attributes in the order a lazy-loading page fills them
IMG_SOURCE_ATTRS = ("src", "data-src", "data-old-hires", "data-a-dynamic-image")

PRICE_NUMBER_RE = re.compile(r"[\d,]+\.?\d*")
DOLLAR_AMOUNT_RE = re.compile(r"\$[\d,]+\.?\d*")
STYLE_PX_RE = {
    "width": re.compile(r"(?:^|;)\s*width\s*:\s*(\d+(?:\.\d+)?)px", re.I),
    "height": re.compile(r"(?:^|;)\s*height\s*:\s*(\d+(?:\.\d+)?)px", re.I),
}
LEADING_INT_RE = re.compile(r"^\s*(\d+)")

INVISIBLE_TAGS = ["script", "style", "noscript", "template", "head", "title"]

# Tags that start a new line of rendered text; inline tags (b, span, sup) don't
BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "br", "dd", "div", "dl", "dt",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4",
    "h5", "h6", "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "td", "th", "tr", "ul",
}


# ──────────────────────────────────────────────────────────────
# Data
# ──────────────────────────────────────────────────────────────

@dataclass
class ExtractedProduct:
    title: str = ""
    image: str = ""
    price: str = ""
    url: str = ""
    domain: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ExtractedProduct":
        data = data or {}
        return cls(**{k: str(data.get(k) or "") for k in ("title", "image", "price", "url", "domain")})


@dataclass(frozen=True)
class ImagePolicy:
    """Tunable knobs for the image heuristics."""
    min_area: int = DEFAULT_MIN_IMAGE_AREA
    denylist: Tuple[str, ...] = field(default=DEFAULT_IMAGE_DENYLIST)


DEFAULT_IMAGE_POLICY = ImagePolicy()


class PageDocument:
    """A parsed HTML snapshot of one page, plus the URL it was loaded from."""

    def __init__(self, html: str, url: str = "", title: Optional[str] = None):
        self.url = url or ""
        self.soup = BeautifulSoup(html or "", "html.parser")
        if title is None:
            tag = self.soup.title
            title = tag.get_text() if tag else ""
        self.title = title

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def images(self) -> List[Tag]:
        return self.soup.find_all("img")

    def absolute(self, src: str) -> str:
        return urljoin(self.url, src) if self.url else src

    def visible_text(self) -> str:
        """Roughly what innerText gives: inline markup doesn't split words, blocks do."""
        root = self.soup.body or self.soup
        parts = []
        for node in root.descendants:
            if isinstance(node, Tag):
                if node.name in BLOCK_TAGS:
                    parts.append("\n")
                continue
            if not isinstance(node, NavigableString) or isinstance(node, (Comment, Doctype)):
                continue
            if node.find_parent(INVISIBLE_TAGS) is not None:
                continue
            parts.append(str(node))
        return "".join(parts)


Rule = Callable[[PageDocument], Optional[str]]


@dataclass(frozen=True)
class SelectorRule:
    """Take the first element matching `selector` and read a value off it."""
    selector: str
    read: Callable[[Tag], Optional[str]]

    def __call__(self, doc: PageDocument) -> Optional[str]:
        element = doc.select_one(self.selector)
        if element is None:
            return None
        return self.read(element)


def run_cascade(rules: Iterable[Rule], doc: PageDocument) -> Optional[str]:
    for rule in rules:
        value = rule(doc)
        if value:
            return value
    return None


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except Exception:
        return ""


def first_nonempty(*vals) -> str:
    for v in vals:
        if v and str(v).strip():
            return str(v).strip()
    return ""


def is_valid_image_url(url: Optional[str], policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> bool:
    if not url:
        return False
    lower = url.lower()
    if any(bad in lower for bad in policy.denylist):
        return False
    return url.startswith("http") or url.startswith("data:image")


def clean_price(raw: Optional[str]) -> str:
    """'$1,299.50' -> '1299.50'; anything unusable -> ''."""
    if not raw:
        return ""
    m = PRICE_NUMBER_RE.search(raw.strip())
    if not m:
        return ""
    try:
        value = float(m.group(0).replace(",", ""))
    except ValueError:
        return ""
    if MIN_PRICE < value < MAX_PRICE:
        return f"{value:.2f}"
    return ""


# ──────────────────────────────────────────────────────────────
# Title
# ──────────────────────────────────────────────────────────────

def _title_from_element(el: Tag) -> Optional[str]:
    if el.name == "meta":
        text = (el.get("content") or "").strip()
    else:
        text = el.get_text().strip()
    if text and len(text) < MAX_TITLE_LENGTH:
        return text
    return None


def title_from_document_title(doc: PageDocument) -> str:
    # "Wooden Train | Shop - Toys" -> "Wooden Train"
    return (doc.title or "").split("|")[0].split("-")[0].strip()


TITLE_RULES: List[Rule] = [SelectorRule(s, _title_from_element) for s in TITLE_SELECTORS]


def extract_title(doc: PageDocument, rules: Sequence[Rule] = TITLE_RULES) -> str:
    return run_cascade(rules, doc) or title_from_document_title(doc)


# ──────────────────────────────────────────────────────────────
# Image
# ──────────────────────────────────────────────────────────────

def _first_dynamic_image(blob: str) -> str:
    # Amazon's data-a-dynamic-image: {"https://...jpg": [w, h], ...}
    try:
        parsed = json.loads(blob)
    except ValueError:
        return ""
    if isinstance(parsed, dict) and parsed:
        return str(next(iter(parsed)))
    return ""


def _image_from_element(el: Tag, policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> Optional[str]:
    if el.name == "meta":
        content = el.get("content")
        return content if is_valid_image_url(content, policy) else None
    if el.name != "img":
        return None
    candidate = first_nonempty(*(el.get(attr) for attr in IMG_SOURCE_ATTRS))
    if candidate.startswith("{"):
        candidate = _first_dynamic_image(candidate)
    return candidate if is_valid_image_url(candidate, policy) else None


def _dimension(img: Tag, name: str) -> int:
    natural = LEADING_INT_RE.match(str(img.get(name) or ""))
    if natural:
        return int(natural.group(1))
    rendered = STYLE_PX_RE[name].search(str(img.get("style") or ""))
    if rendered:
        return int(float(rendered.group(1)))
    return 0


def largest_image(doc: PageDocument, policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> Optional[str]:
    best, best_area = None, 0
    for img in doc.images():
        area = _dimension(img, "width") * _dimension(img, "height")
        if area <= best_area or area <= policy.min_area:
            continue
        raw = (img.get("src") or "").strip()
        if not raw:
            continue
        src = doc.absolute(raw)
        if not is_valid_image_url(src, policy):
            continue
        best, best_area = src, area
    return best


def image_rules(policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> List[Rule]:
    read = partial(_image_from_element, policy=policy)
    return [SelectorRule(s, read) for s in IMAGE_SELECTORS]


IMAGE_RULES: List[Rule] = image_rules()


def extract_image(doc: PageDocument, policy: ImagePolicy = DEFAULT_IMAGE_POLICY) -> str:
    rules = IMAGE_RULES if policy == DEFAULT_IMAGE_POLICY else image_rules(policy)
    return run_cascade(rules, doc) or largest_image(doc, policy) or ""


# ──────────────────────────────────────────────────────────────
# Price
# ──────────────────────────────────────────────────────────────

def _raw_price(el: Tag) -> Optional[str]:
    if el.name == "meta":
        return el.get("content")
    if el.has_attr("data-price"):
        return el.get("data-price")
    if el.has_attr("content"):
        return el.get("content")
    return el.get_text().strip()


def _price_from_element(el: Tag) -> Optional[str]:
    return clean_price(_raw_price(el)) or None


def text_price(doc: PageDocument) -> str:
    m = DOLLAR_AMOUNT_RE.search(doc.visible_text())
    return clean_price(m.group(0)) if m else ""


PRICE_RULES: List[Rule] = [SelectorRule(s, _price_from_element) for s in PRICE_SELECTORS]


def extract_price(doc: PageDocument, rules: Sequence[Rule] = PRICE_RULES) -> str:
    return run_cascade(rules, doc) or text_price(doc)


# ──────────────────────────────────────────────────────────────
# Engine
# ──────────────────────────────────────────────────────────────

FIELD_EXTRACTORS = (
    ("title", extract_title),
    ("image", extract_image),
    ("price", extract_price),
)


def extract_product(doc: PageDocument) -> ExtractedProduct:
    fields = {}
    for name, extractor in FIELD_EXTRACTORS:
        try:
            fields[name] = extractor(doc) or ""
        except Exception as e:
            logger.debug("%s extractor failed on %s: %s", name, doc.url, e)
            fields[name] = ""
    return ExtractedProduct(url=doc.url, domain=host(doc.url), **fields)


def run_in_page(html: str, url: str) -> dict:
    """Entry point handed to a tab: returns a plain dict, never DOM objects."""
    return extract_product(PageDocument(html, url)).to_dict()
