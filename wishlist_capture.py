#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Capture a product page and add it to a Giddy List wishlist or registry.

Usage:
  python wishlist_capture.py URL [--html SAVED_PAGE.html] [--cookies cookies.txt]
                                 [--kid KID_ID | --registry REGISTRY_ID]

Without --kid/--registry the page is only previewed (title, image, price,
whether it was added in the last minute, and your kids/registries).

The session token is read from a Netscape cookies.txt exported from the
browser (GIDDY_COOKIES_FILE or --cookies).
"""

import argparse
import asyncio
import logging
import sys

import settings
from ephemeral_store import JsonFileStorage
from page_tabs import FetchedTab, HtmlTab, StaticTabs
from session_resolver import SessionResolver, load_cookie_jar
from submission_controller import REGISTRY, WISHLIST, Overlay, SubmissionController, View
from wishlist_api import WishlistClient

STATE_MESSAGES = {
    View.NOT_LOGGED_IN: "❌ Not logged in. Sign in at thegiddylist.com and export your cookies again.",
    View.NO_PROFILES: "❌ No kids on this account yet. Add one at thegiddylist.com first.",
    View.EXTRACTION_FAILED: "❌ Couldn't find a product on this page.",
}


def parse_args(argv):
    p = argparse.ArgumentParser(description="Add the product on a page to a wishlist or registry.")
    p.add_argument("url")
    p.add_argument("--html", help="use a saved copy of the page instead of downloading it")
    p.add_argument("--cookies", default=settings.COOKIES_FILE, help="Netscape cookies.txt for the session")
    target = p.add_mutually_exclusive_group()
    target.add_argument("--kid", help="kid id to add the item to")
    target.add_argument("--registry", help="registry id to add the item to")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def print_preview(state) -> None:
    product = state.product
    print(f"🔎 {product.domain.replace('www.', '')}")
    print(f"   • title: {product.title}")
    print(f"   • image: {product.image or '-'}")
    print(f"   • price: {'$' + product.price if product.price else '-'}")
    if state.already_added:
        print("   ⚠️ You added this page less than a minute ago.")
    print("   kids:       " + (", ".join(f"{k.name} [{k.id}]" for k in state.account.kids) or "-"))
    print("   registries: " + (", ".join(f"{r.name} [{r.id}]" for r in state.account.registries) or "-"))


async def run(args) -> int:
    if args.html:
        with open(args.html, "r", encoding="utf-8", errors="ignore") as f:
            tab = HtmlTab(args.url, f.read())
    else:
        tab = FetchedTab(args.url)

    controller = SubmissionController(
        resolver=SessionResolver(load_cookie_jar(args.cookies) if args.cookies else []),
        api=WishlistClient(),
        tabs=StaticTabs(tab),
        storage=JsonFileStorage(),
        success_display_seconds=0,
    )

    state = await controller.start()
    if state.view is not View.READY:
        print(STATE_MESSAGES.get(state.view, f"❌ {state.view.value}"))
        await controller.drain()
        return 1

    print_preview(state)
    if not (args.kid or args.registry):
        await controller.drain()
        return 0

    if args.registry:
        await controller.set_destination(REGISTRY)
        await controller.select_registry(args.registry)
    else:
        await controller.set_destination(WISHLIST)
        await controller.select_kid(args.kid)

    state = await controller.submit()
    await controller.drain()
    if state.overlay is Overlay.ERROR:
        print(f"❌ {state.error_message}")
        return 1
    print(f"✅ {state.success_message}")
    return 0


def main():
    args = parse_args(sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(run(args))
    except ValueError as e:
        print(f"❌ {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
