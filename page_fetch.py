#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Server-side product scrape: download a product page and run the same
extraction cascades on it that a browser tab would, then fill remaining gaps
from structured data (JSON-LD / microdata / OpenGraph).
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import settings
import structured_data
from product_extract import PageDocument, extract_product, host

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# CONFIG
# ──────────────────────────────────────────────────────────────

TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "ref", "ref_", "tag",
}

ASIN_PATTERNS = [
    re.compile(r"/dp/([A-Z0-9]{10})", re.I),
    re.compile(r"/gp/product/([A-Z0-9]{10})", re.I),
    re.compile(r"/gp/aw/d/([A-Z0-9]{10})", re.I),
    re.compile(r"/([A-Z0-9]{10})(?:[/?]|$)", re.I),
]
ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")

DEFAULT_CURRENCY = "USD"


class FetchError(Exception):
    """The product page could not be downloaded."""


# ──────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────

def build_session() -> requests.Session:
    s = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=0.6,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False,
    )
    s.mount("https://", HTTPAdapter(max_retries=retries))
    s.mount("http://", HTTPAdapter(max_retries=retries))
    return s


def http_get(url: str, session: Optional[requests.Session] = None) -> Tuple[str, str]:
    """Returns (html, final_url)."""
    session = session or build_session()
    try:
        resp = session.get(url, headers=settings.HEADERS, timeout=settings.PAGE_TIMEOUT, allow_redirects=True)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e
    return resp.text, resp.url or url


# ──────────────────────────────────────────────────────────────
# URL helpers
# ──────────────────────────────────────────────────────────────

def normalize_url(url: str) -> str:
    """Drop tracking query parameters; anything unparseable is returned as-is."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    return urlunparse(parsed._replace(query=urlencode(query)))


def detect_retailer(url: str) -> str:
    h = host(url)
    if "amazon.com" in h or "amzn.to" in h or "amzn.com" in h:
        return "amazon"
    if "walmart.com" in h:
        return "walmart"
    if "target.com" in h:
        return "target"
    return "other"


def extract_asin(url: str) -> Optional[str]:
    for rx in ASIN_PATTERNS:
        m = rx.search(url)
        if m and ASIN_RE.match(m.group(1).upper()):
            return m.group(1).upper()
    return None


# ──────────────────────────────────────────────────────────────
# Scrape
# ──────────────────────────────────────────────────────────────

@dataclass
class ScrapedProduct:
    title: str = ""
    image: str = ""
    price: str = ""
    url: str = ""
    domain: str = ""
    currency: str = DEFAULT_CURRENCY
    retailer: str = "other"
    asin: Optional[str] = None
    original_url: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def scrape_html(html: str, url: str) -> ScrapedProduct:
    product = extract_product(PageDocument(html, url))
    currency = None
    if not (product.title and product.image and product.price):
        hints = structured_data.harvest(html, url)
        currency = structured_data.fill_missing(product, hints)
    retailer = detect_retailer(url)
    return ScrapedProduct(
        title=product.title,
        image=product.image,
        price=product.price,
        url=product.url,
        domain=product.domain,
        currency=currency or DEFAULT_CURRENCY,
        retailer=retailer,
        asin=extract_asin(url) if retailer == "amazon" else None,
        original_url=url,
    )


def scrape_url(url: str, session: Optional[requests.Session] = None) -> ScrapedProduct:
    url = normalize_url(url)
    logger.info("Scraping %s", url)
    html, final = http_get(url, session)
    scraped = scrape_html(html, final)
    scraped.original_url = url
    logger.info("Scraped %s: title=%r price=%r", host(final), scraped.title, scraped.price)
    return scraped
