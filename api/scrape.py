#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Serverless scrape endpoint: POST {"url": "..."} -> {"success", "data" | "error"}.
"""

import json
import logging
import os
import sys
import traceback
from http.server import BaseHTTPRequestHandler
from urllib.parse import urlparse

# Vercel runs this file with api/ as the import root; the shared modules sit at the repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from page_fetch import FetchError, scrape_url  # noqa: E402

logger = logging.getLogger(__name__)


def handle_scrape(body: bytes, scrape=scrape_url):
    """Returns (status, response_dict) for a POST body of {"url": "..."}."""
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        payload = {}
    url = payload.get("url") if isinstance(payload, dict) else None

    if not url or not isinstance(url, str):
        return 400, {"success": False, "error": "URL is required"}
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return 400, {"success": False, "error": "Invalid URL format"}

    try:
        product = scrape(url)
    except FetchError as e:
        logger.warning("%s", e)
        return 500, {"success": False, "error": "Failed to scrape product"}
    return 200, {"success": True, "data": product.to_dict()}


# This is the Vercel Serverless Function handler
class handler(BaseHTTPRequestHandler):
    def _send(self, status, obj):
        self.send_response(status)
        self.send_header('Content-type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(obj).encode('utf-8'))

    def do_POST(self):
        length = int(self.headers.get('Content-Length') or 0)
        body = self.rfile.read(length) if length else b""
        try:
            status, obj = handle_scrape(body)
        except Exception as e:
            print(f"🔥 Scrape handler crashed: {type(e).__name__}: {e}")
            traceback.print_exc()
            status, obj = 500, {"success": False, "error": "Failed to scrape product"}
        self._send(status, obj)
