#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Find the bearer token for the wishlist site in a cookie jar.

The identity provider doesn't promise a cookie name, so two tiers:
 1. a cookie whose name mentions an auth/access token
 2. a session cookie, or a provider-prefixed cookie holding an opaque blob
"""

import asyncio
import http.cookiejar
import logging
from typing import Iterable, List, Optional

import settings

logger = logging.getLogger(__name__)

TOKEN_MARKERS = ("auth-token", "access-token")
SESSION_MARKER = "session"
PROVIDER_PREFIX = "sb-"
MIN_BLOB_LENGTH = 100


def domain_matches(cookie_domain: str, domain: str) -> bool:
    cd = (cookie_domain or "").lstrip(".").lower()
    d = domain.lstrip(".").lower()
    return cd == d or cd.endswith("." + d)


def cookies_for(jar: Iterable[http.cookiejar.Cookie], domain: str) -> List[http.cookiejar.Cookie]:
    return [c for c in jar if domain_matches(c.domain, domain)]


def pick_token(cookies: List[http.cookiejar.Cookie]) -> Optional[str]:
    for c in cookies:
        if any(m in c.name.lower() for m in TOKEN_MARKERS) and c.value:
            return c.value
    for c in cookies:
        name = c.name.lower()
        value = c.value or ""
        if SESSION_MARKER in name and value:
            return value
        if name.startswith(PROVIDER_PREFIX) and len(value) > MIN_BLOB_LENGTH:
            return value
    return None


def load_cookie_jar(path: str) -> http.cookiejar.CookieJar:
    """Netscape cookies.txt as exported by browser extensions; missing file -> empty jar."""
    jar = http.cookiejar.MozillaCookieJar(path)
    try:
        jar.load(ignore_discard=True, ignore_expires=True)
    except FileNotFoundError:
        logger.info("No cookie file at %s", path)
    except http.cookiejar.LoadError as e:
        logger.warning("Could not read cookie file %s: %s", path, e)
    return jar


class SessionResolver:
    def __init__(self, jar: Iterable[http.cookiejar.Cookie], domain: str = settings.COOKIE_DOMAIN):
        self.jar = jar
        self.domain = domain

    async def resolve(self) -> Optional[str]:
        cookies = await asyncio.to_thread(cookies_for, self.jar, self.domain)
        token = pick_token(cookies)
        if token is None:
            logger.info("No session cookie for %s (%d cookies checked)", self.domain, len(cookies))
        return token
