#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tabs the controller can inject the extraction engine into.

A tab knows its URL and can run a page function against its own document,
handing back only what the function returns (plain, serialisable data).
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import requests

import page_fetch

logger = logging.getLogger(__name__)

# Browser-internal and extension pages never get scripts injected
RESTRICTED_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "chrome-search://",
    "chrome-untrusted://",
    "edge://",
    "brave://",
    "opera://",
    "vivaldi://",
    "about:",
    "moz-extension://",
    "safari-web-extension://",
    "devtools://",
    "view-source:",
    "https://chrome.google.com/webstore",
    "https://chromewebstore.google.com",
)

PageFunction = Callable[[str, str], Any]


def is_restricted_url(url: Optional[str]) -> bool:
    if not url:
        return True
    lower = url.strip().lower()
    return lower.startswith(RESTRICTED_PREFIXES)


class HtmlTab:
    """A page already in memory (saved HTML, a test fixture)."""

    def __init__(self, url: str, html: str):
        self.url = url
        self.html = html

    async def execute(self, func: PageFunction) -> Any:
        return await asyncio.to_thread(func, self.html, self.url)


class FetchedTab:
    """A page downloaded on first use, following redirects."""

    def __init__(self, url: str, session: Optional[requests.Session] = None):
        self.url = url
        self.session = session
        self._html: Optional[str] = None

    async def execute(self, func: PageFunction) -> Any:
        if self._html is None:
            self._html, self.url = await asyncio.to_thread(page_fetch.http_get, self.url, self.session)
        return await asyncio.to_thread(func, self._html, self.url)


class StaticTabs:
    """Tab provider that always reports the same active tab."""

    def __init__(self, tab=None):
        self.tab = tab

    async def active_tab(self):
        return self.tab
