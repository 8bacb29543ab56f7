#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
State machine behind the capture popup.

    LOADING -> NOT_LOGGED_IN | NO_PROFILES | EXTRACTION_FAILED | READY
    READY   -> (SUBMITTING -> SUCCESS | ERROR) -> READY

The controller owns one immutable ControllerState and replaces it on every
transition, handing each new state to `on_change` (the view). Nothing in
here knows about widgets: a front end renders `state.view`, the selection
fields, `button_label` / `button_enabled`, and the two message strings.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

import settings
from ephemeral_store import AuthCache, DedupLedger, PreferenceStore, StorageBackend, UserPreferences, now_ms
from page_tabs import is_restricted_url
from product_extract import ExtractedProduct, run_in_page
from wishlist_api import AccountSnapshot, TimedOut, WishlistApiError

logger = logging.getLogger(__name__)

WISHLIST = "wishlist"
REGISTRY = "registry"
DESTINATIONS = (WISHLIST, REGISTRY)

IDLE_LABELS = {WISHLIST: "Add to Wishlist", REGISTRY: "Add to Registry"}
BUSY_LABEL = "Adding..."
DONE_LABEL = "Added!"

MISSING_SELECTION = {WISHLIST: "Please select a kid", REGISTRY: "Please select a registry"}
NETWORK_FAILURE = "Something went wrong"


class View(Enum):
    LOADING = "loading"
    NOT_LOGGED_IN = "not-logged-in"
    NO_PROFILES = "no-kids"
    EXTRACTION_FAILED = "scrape-failed"
    READY = "product-view"


class Overlay(Enum):
    NONE = "none"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ControllerState:
    view: View = View.LOADING
    overlay: Overlay = Overlay.NONE
    account: Optional[AccountSnapshot] = None
    product: Optional[ExtractedProduct] = None
    destination: str = WISHLIST
    kid_id: Optional[str] = None
    registry_id: Optional[str] = None
    already_added: bool = False
    success_message: str = ""
    error_message: str = ""

    @property
    def selected_target(self) -> Optional[str]:
        return self.registry_id if self.destination == REGISTRY else self.kid_id

    @property
    def button_label(self) -> str:
        if self.overlay is Overlay.SUBMITTING:
            return BUSY_LABEL
        if self.overlay is Overlay.SUCCESS:
            return DONE_LABEL
        return IDLE_LABELS[self.destination]

    @property
    def button_enabled(self) -> bool:
        return (
            self.view is View.READY
            and self.overlay in (Overlay.NONE, Overlay.ERROR)
            and bool(self.selected_target)
        )


def restore_selection(account: AccountSnapshot, prefs: UserPreferences) -> Dict[str, Any]:
    """Saved choices that still exist in `account`; stale ids are dropped."""
    destination = prefs.last_destination if prefs.last_destination in DESTINATIONS else WISHLIST
    if destination == REGISTRY and not account.registries:
        destination = WISHLIST
    return {
        "destination": destination,
        "kid_id": prefs.last_kid_id if account.has_kid(prefs.last_kid_id) else None,
        "registry_id": prefs.last_registry_id if account.has_registry(prefs.last_registry_id) else None,
    }


def build_payload(product: ExtractedProduct, destination: str, target: str) -> Dict[str, str]:
    key = "registryId" if destination == REGISTRY else "kidId"
    return {
        key: target,
        "title": product.title,
        "image": product.image,
        "price": product.price,
        "url": product.url,
    }


class SubmissionController:
    def __init__(
        self,
        resolver,
        api,
        tabs,
        storage: StorageBackend,
        clock: Callable[[], int] = now_ms,
        on_change: Optional[Callable[[ControllerState], None]] = None,
        success_display_seconds: float = settings.SUCCESS_DISPLAY_SECONDS,
        page_function=run_in_page,
    ):
        self.resolver = resolver
        self.api = api
        self.tabs = tabs
        self.auth_cache = AuthCache(storage, clock)
        self.dedup = DedupLedger(storage, clock)
        self.preferences = PreferenceStore(storage)
        self.on_change = on_change
        self.success_display_seconds = success_display_seconds
        self.page_function = page_function

        self.state = ControllerState()
        self.token: Optional[str] = None
        self._tasks: set = set()

    # ──────────────────────────────────────────────────────────
    # Plumbing
    # ──────────────────────────────────────────────────────────

    def _transition(self, **changes) -> ControllerState:
        self.state = replace(self.state, **changes)
        if self.on_change:
            self.on_change(self.state)
        return self.state

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        # Detached work is best effort; a failure leaves displayed state alone.
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Background task failed: %r", exc)

    async def drain(self) -> None:
        """Wait for detached tasks (snapshot refresh, label revert) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ──────────────────────────────────────────────────────────
    # Activation
    # ──────────────────────────────────────────────────────────

    async def start(self) -> ControllerState:
        self._transition(view=View.LOADING)

        cached = await self.auth_cache.load()
        token = await self.resolver.resolve()
        if not token:
            await self.auth_cache.clear()
            return self._transition(view=View.NOT_LOGGED_IN, account=None)
        self.token = token

        account = cached
        if account is None:
            account = await self.api.fetch_account(token)
            if not account.is_logged_in:
                return self._transition(view=View.NOT_LOGGED_IN, account=None)
            await self.auth_cache.save(account)

        self._transition(account=account)
        if cached is not None:
            # fast paint is on screen; refresh the cache behind it
            self._spawn(self._refresh_snapshot(token))

        if not account.kids:
            return self._transition(view=View.NO_PROFILES)

        prefs = await self.preferences.load()
        self._transition(**restore_selection(account, prefs))

        product = await self._extract()
        if product is None or not product.title:
            return self._transition(view=View.EXTRACTION_FAILED)

        already = await self.dedup.was_recently_added(product.url)
        return self._transition(view=View.READY, product=product, already_added=already)

    async def _refresh_snapshot(self, token: str) -> None:
        fresh = await self.api.fetch_account(token)
        if fresh.is_logged_in:
            await self.auth_cache.save(fresh)

    async def _extract(self) -> Optional[ExtractedProduct]:
        tab = await self.tabs.active_tab()
        if tab is None:
            return None
        if is_restricted_url(tab.url):
            logger.info("Not extracting from restricted page %s", tab.url)
            return None
        try:
            data = await tab.execute(self.page_function)
        except Exception as e:
            logger.warning("Extraction failed for %s: %s", tab.url, e)
            return None
        return ExtractedProduct.from_dict(data) if data else None

    # ──────────────────────────────────────────────────────────
    # Selection
    # ──────────────────────────────────────────────────────────

    def _cleared_messages(self) -> Dict[str, Any]:
        changes: Dict[str, Any] = {"success_message": "", "error_message": ""}
        if self.state.overlay in (Overlay.ERROR, Overlay.SUCCESS):
            changes["overlay"] = Overlay.NONE
        return changes

    async def _save_preferences(self) -> None:
        s = self.state
        try:
            await self.preferences.save(UserPreferences(s.kid_id, s.registry_id, s.destination))
        except OSError as e:
            logger.warning("Could not save preferences: %s", e)

    async def set_destination(self, destination: str) -> ControllerState:
        if destination not in DESTINATIONS:
            raise ValueError(f"Unknown destination: {destination!r}")
        self._transition(destination=destination, **self._cleared_messages())
        await self._save_preferences()
        return self.state

    async def select_kid(self, kid_id: Optional[str]) -> ControllerState:
        if kid_id and not (self.state.account and self.state.account.has_kid(kid_id)):
            raise ValueError(f"Unknown kid: {kid_id!r}")
        self._transition(kid_id=kid_id or None, **self._cleared_messages())
        await self._save_preferences()
        return self.state

    async def select_registry(self, registry_id: Optional[str]) -> ControllerState:
        if registry_id and not (self.state.account and self.state.account.has_registry(registry_id)):
            raise ValueError(f"Unknown registry: {registry_id!r}")
        self._transition(registry_id=registry_id or None, **self._cleared_messages())
        await self._save_preferences()
        return self.state

    # ──────────────────────────────────────────────────────────
    # Submission
    # ──────────────────────────────────────────────────────────

    async def submit(self) -> ControllerState:
        s = self.state
        if s.view is not View.READY or s.product is None or s.overlay is Overlay.SUBMITTING:
            return s

        target = s.selected_target
        if not target:
            return self._transition(
                overlay=Overlay.ERROR, success_message="", error_message=MISSING_SELECTION[s.destination]
            )

        self._transition(overlay=Overlay.SUBMITTING, success_message="", error_message="")
        payload = build_payload(s.product, s.destination, target)
        try:
            result = await self.api.add_item(self.token, payload)
        except TimedOut as e:
            return self._transition(overlay=Overlay.ERROR, error_message=e.message)
        except WishlistApiError as e:
            message = e.message if e.status is not None else NETWORK_FAILURE
            logger.info("Add failed (HTTP %s): %s", e.status, e.message)
            return self._transition(overlay=Overlay.ERROR, error_message=message or NETWORK_FAILURE)

        try:
            await self.dedup.record(s.product.url)
        except OSError as e:
            logger.warning("Could not record submission: %s", e)
        await self._save_preferences()

        self._transition(overlay=Overlay.SUCCESS, success_message=result.message or DONE_LABEL)
        self._spawn(self._revert_after_success())
        return self.state

    async def _revert_after_success(self) -> None:
        await asyncio.sleep(self.success_display_seconds)
        if self.state.overlay is Overlay.SUCCESS:
            self._transition(overlay=Overlay.NONE)
