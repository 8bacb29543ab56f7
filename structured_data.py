#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Structured-data harvest (JSON-LD, microdata, OpenGraph) for server-side scrapes.

Only used to fill gaps: a field the selector cascades already found is never
overwritten.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import extruct
from w3lib.html import get_base_url

from product_extract import ExtractedProduct, clean_price, first_nonempty, is_valid_image_url

logger = logging.getLogger(__name__)

SYNTAXES = ["json-ld", "microdata", "opengraph"]

# schema.org Product and its subtypes
PRODUCT_TYPES = {"product", "productgroup", "productmodel", "individualproduct", "someproducts"}


@dataclass
class StructuredHints:
    name: str = ""
    image: str = ""
    price: str = ""
    currency: str = ""
    source: str = ""


def extract_structured(html: str, url: str) -> Dict:
    base = get_base_url(html, url)
    return extruct.extract(html, base_url=base, syntaxes=SYNTAXES, errors="log")


def _type_name(t) -> str:
    # "https://schema.org/Product" / "schema:Product" -> "product"
    return str(t or "").rsplit("/", 1)[-1].rsplit(":", 1)[-1].lower()


def _is_product(types) -> bool:
    if not isinstance(types, list):
        types = [types]
    return any(_type_name(t) in PRODUCT_TYPES for t in types)


def _image_value(val) -> str:
    if isinstance(val, list):
        val = val[0] if val else ""
    if isinstance(val, dict):
        val = val.get("url") or val.get("contentUrl") or ""
    return str(val or "")


def _offer_price(offers):
    """Returns (price, currency) from an offers dict/list; lowest price wins."""
    if isinstance(offers, dict):
        offers = [offers]
    if not isinstance(offers, list):
        return "", ""
    best, best_cur = "", ""
    for o in offers:
        if not isinstance(o, dict):
            continue
        p = clean_price(str(first_nonempty(o.get("price"), o.get("lowPrice"))))
        if p and (not best or float(p) < float(best)):
            best, best_cur = p, str(o.get("priceCurrency") or "")
    return best, best_cur


def _hints_from_node(node: dict, source: str) -> StructuredHints:
    price, currency = _offer_price(node.get("offers"))
    if not price:
        price = clean_price(str(node.get("price") or ""))
        currency = str(node.get("priceCurrency") or "")
    return StructuredHints(
        name=first_nonempty(node.get("name")),
        image=_image_value(node.get("image")),
        price=price,
        currency=currency,
        source=source,
    )


def _jsonld_products(items) -> List[dict]:
    out: List[dict] = []

    def collect(node):
        if isinstance(node, dict):
            if _is_product(node.get("@type")):
                out.append(node)
            for g in node.get("@graph") or []:
                collect(g)
        elif isinstance(node, list):
            for el in node:
                collect(el)

    collect(items)
    return out


def _og_dict(og_items) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in og_items or []:
        if not isinstance(item, dict):
            continue
        for key, val in item.get("properties") or []:
            out.setdefault(str(key).lower(), val)
    return out


def harvest(html: str, url: str) -> List[StructuredHints]:
    """All product-ish hints on the page, JSON-LD first, then microdata, then OG."""
    try:
        data = extract_structured(html, url)
    except Exception as e:
        logger.debug("extruct failed for %s: %s", url, e)
        return []

    results = [_hints_from_node(n, "jsonld") for n in _jsonld_products(data.get("json-ld", []))]

    for md in data.get("microdata", []):
        if _is_product(md.get("type")):
            results.append(_hints_from_node(md.get("properties") or {}, "microdata"))

    og = _og_dict(data.get("opengraph"))
    if og:
        results.append(StructuredHints(
            name=first_nonempty(og.get("og:title")),
            image=first_nonempty(og.get("og:image")),
            price=clean_price(first_nonempty(og.get("product:price:amount"), og.get("og:price:amount"))),
            currency=first_nonempty(og.get("product:price:currency"), og.get("og:price:currency")),
            source="opengraph",
        ))
    return results


def fill_missing(product: ExtractedProduct, hints: List[StructuredHints]) -> Optional[str]:
    """
    Fill empty title/image/price on `product` in place from the hints.
    Returns the currency of the hint that supplied the price, if any.
    """
    currency = None
    for h in hints:
        if not product.title and h.name:
            product.title = h.name
        if not product.image and is_valid_image_url(h.image):
            product.image = h.image
        if not product.price and h.price:
            product.price = h.price
            currency = h.currency or None
    return currency
