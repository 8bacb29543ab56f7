#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Shared configuration for the wishlist capture tools.

Everything here is read once from the environment at import time:
  GIDDY_API_BASE        remote API root (default https://thegiddylist.com/api)
  GIDDY_API_TIMEOUT     seconds before a remote call is abandoned (default 10)
  GIDDY_COOKIE_DOMAIN   cookie scope used to find the session token
  GIDDY_COOKIES_FILE    Netscape cookies.txt exported from the browser
  GIDDY_STORAGE_PATH    JSON file backing the local ephemeral store
"""

import os

# ──────────────────────────────────────────────────────────────
# CONFIG
# ──────────────────────────────────────────────────────────────

API_BASE = os.environ.get("GIDDY_API_BASE", "https://thegiddylist.com/api").rstrip("/")
AUTH_PATH = "/extension/auth"
ADD_ITEM_PATH = "/wishlist/add-external"

API_TIMEOUT = float(os.environ.get("GIDDY_API_TIMEOUT", "10"))
PAGE_TIMEOUT = 20

COOKIE_DOMAIN = os.environ.get("GIDDY_COOKIE_DOMAIN", "thegiddylist.com")
COOKIES_FILE = os.environ.get("GIDDY_COOKIES_FILE", "")

STORAGE_PATH = os.environ.get(
    "GIDDY_STORAGE_PATH",
    os.path.join(os.path.expanduser("~"), ".cache", "wishlist-capture", "storage.json"),
)

# Cache windows, milliseconds
TTL_AUTH = 300_000
TTL_DEDUP_CHECK = 60_000
TTL_DEDUP_PRUNE = 300_000

SUCCESS_DISPLAY_SECONDS = 2.0

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/126.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
