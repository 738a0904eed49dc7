"""
User-intent commands routed to one cascade.

Failures surface to the caller as `CommandError` subclasses and are never
retried here. The only suppression is the duplicate-send guard: the same text
sent to the same cascade within `dup_send_window` is reported as delivered.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from . import page_scripts
from .config import MirrorConfig
from .contexts import evaluate_across_contexts
from .errors import (
    CascadeError,
    ControlNotFound,
    EmptyInput,
    InjectionRejected,
    NoControl,
    NoEditorFound,
    NoMatch,
    NotFound,
)
from .registry import Cascade, Registry
from .session_cdp import CdpConnection

logger = logging.getLogger("cascade_mirror.commands")

# Follow-up refresh delays (seconds) after a command changed the page.
BACK_REFRESH = (0.25, 0.8)
CLICK_REFRESH = (0.2, 0.6)
VIEW_ALL_REFRESH = (0.2, 0.7, 1.4)
MODE_REFRESH = (0.2,)
CONVERSATION_REFRESH = (0.5, 1.5)

HISTORY_PANEL_DELAY = 0.4

Refresher = Callable[[str], Awaitable[bool]]


def _ok(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("ok"))


def _ok_or_error(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("ok") or value.get("error"))


def _is_dict(value: Any) -> bool:
    return isinstance(value, dict)


_ENTER_KEY = {"key": "Enter", "code": "Enter", "windowsVirtualKeyCode": 13, "nativeVirtualKeyCode": 13}


class CommandRouter:
    def __init__(
        self,
        config: MirrorConfig,
        registry: Registry,
        *,
        refresh: Refresher | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.registry = registry
        self._refresh = refresh
        self._clock = clock
        self._sleep = sleep
        self._last_send: dict[str, tuple[str, float]] = {}
        self._background: set[asyncio.Task] = set()

    # ─────────────────────────────────────────────────────────────────────────
    # Plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def forget(self, cascade_id: str) -> None:
        """Drop per-cascade transient state (dedup cache)."""
        self._last_send.pop(cascade_id, None)

    def _cascade(self, cascade_id: str) -> Cascade:
        cascade = self.registry.get(cascade_id)
        if cascade is None:
            raise NotFound(f"Cascade not found: {cascade_id}")
        return cascade

    async def _evaluate(
        self,
        conn: CdpConnection,
        script: str,
        accept: Callable[[Any], bool],
        *,
        await_promise: bool = False,
    ) -> Any:
        res = await evaluate_across_contexts(conn, script, accept=accept, await_promise=await_promise)
        return None if res is None else res.value

    def _schedule_refresh(self, cascade_id: str, delays: tuple[float, ...]) -> None:
        if self._refresh is None:
            return
        for delay in delays:
            task = asyncio.ensure_future(self._delayed_refresh(cascade_id, delay))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _delayed_refresh(self, cascade_id: str, delay: float) -> None:
        await self._sleep(delay)
        try:
            await self._refresh(cascade_id)
        except CascadeError as exc:
            logger.debug("delayed_refresh_failed id=%s error=%s", cascade_id, exc)

    @property
    def pending_refreshes(self) -> int:
        return len(self._background)

    async def cancel_pending(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ─────────────────────────────────────────────────────────────────────────
    # Send
    # ─────────────────────────────────────────────────────────────────────────

    async def send_text(self, cascade_id: str, text: str) -> dict[str, Any]:
        if not str(text or "").strip():
            raise EmptyInput("send", "Empty message")
        cascade = self._cascade(cascade_id)

        now = self._clock()
        last = self._last_send.get(cascade_id)
        if last is not None and last[0] == text and now - last[1] < self.config.dup_send_window:
            logger.info("send_dedup id=%s", cascade_id)
            return {"ok": True, "method": "dedup"}
        self._last_send[cascade_id] = (text, now)

        try:
            return await self._inject(cascade.connection, text)
        except Exception:
            # A failed send must not suppress an immediate retry.
            self._last_send.pop(cascade_id, None)
            raise

    async def _inject(self, conn: CdpConnection, text: str) -> dict[str, Any]:
        script = page_scripts.inject_script(
            text,
            input_selectors=self.config.input_selectors,
            send_selectors=self.config.send_selectors,
        )
        value = await self._evaluate(conn, script, _ok, await_promise=True)
        if value is None:
            raise NoEditorFound("send", "No editor found", suggestion="Focus the chat panel and retry")

        # Page CSP refused DOM insertion: fall back to synthetic input.
        if value.get("useCdpInsert"):
            try:
                await conn.call("Input.insertText", {"text": text})
            except CascadeError as exc:
                raise InjectionRejected("send", str(exc)) from exc
        if value.get("useCdpEnter"):
            try:
                await conn.call("Input.dispatchKeyEvent", {"type": "keyDown", **_ENTER_KEY})
                await conn.call("Input.dispatchKeyEvent", {"type": "keyUp", **_ENTER_KEY})
            except CascadeError as exc:
                raise InjectionRejected("send", str(exc)) from exc
        return {"ok": True, "method": value.get("method") or "unknown"}

    # ─────────────────────────────────────────────────────────────────────────
    # Clicks
    # ─────────────────────────────────────────────────────────────────────────

    async def navigate_back(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(cascade.connection, page_scripts.click_back_script(), _ok)
        if value is None:
            raise ControlNotFound("back", "Back button not found")
        self._schedule_refresh(cascade_id, BACK_REFRESH)
        return {"ok": True}

    async def select_by_label(self, cascade_id: str, text: str, *, refresh: bool = True) -> dict[str, Any]:
        label = str(text or "").strip()
        if not label:
            raise EmptyInput("select", "Empty text")
        cascade = self._cascade(cascade_id)
        logger.info("select id=%s label=%s", cascade_id, label)
        value = await self._evaluate(cascade.connection, page_scripts.click_by_text_script(label), _ok)
        if value is None:
            raise NoMatch("select", f"No clickable element matches {label!r}")
        if refresh:
            self._schedule_refresh(cascade_id, CLICK_REFRESH)
        return {"ok": True, "matched": value.get("matched")}

    async def view_all(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(cascade.connection, page_scripts.click_view_all_script(), _ok)
        if value is None:
            try:
                await self.select_by_label(cascade_id, "view all", refresh=False)
            except NoMatch as exc:
                raise ControlNotFound("viewAll", "View all not found") from exc
        self._schedule_refresh(cascade_id, VIEW_ALL_REFRESH)
        return {"ok": True}

    # ─────────────────────────────────────────────────────────────────────────
    # Mode
    # ─────────────────────────────────────────────────────────────────────────

    async def current_mode(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(cascade.connection, page_scripts.current_mode_script(), _is_dict)
        return {"mode": (value or {}).get("mode")}

    async def switch_mode(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(
            cascade.connection, page_scripts.switch_mode_script(), _ok_or_error, await_promise=True
        )
        if not _ok(value):
            reason = (value or {}).get("error") or "Mode control not found"
            raise NoControl("mode", str(reason))
        self._schedule_refresh(cascade_id, MODE_REFRESH)
        return {"ok": True, "mode": value.get("mode")}

    # ─────────────────────────────────────────────────────────────────────────
    # Conversation history
    # ─────────────────────────────────────────────────────────────────────────

    async def list_conversations(self, cascade_id: str) -> dict[str, Any]:
        """Open the history panel, read its entries, and close it again."""
        conn = self._cascade(cascade_id).connection
        opened = await self._evaluate(conn, page_scripts.toggle_history_script(), _ok_or_error)
        if not _ok(opened):
            raise ControlNotFound("conversations", "Could not open conversations panel")
        try:
            await self._sleep(HISTORY_PANEL_DELAY)
            listed = await self._evaluate(
                conn,
                page_scripts.list_conversations_script(),
                lambda v: isinstance(v, dict) and isinstance(v.get("items"), list),
            )
        finally:
            try:
                await self._evaluate(conn, page_scripts.toggle_history_script(), _is_dict)
            except CascadeError as exc:
                logger.debug("history_close_failed id=%s error=%s", cascade_id, exc)
        return {"items": (listed or {}).get("items") or []}

    async def open_conversation(self, cascade_id: str, title: str) -> dict[str, Any]:
        wanted = str(title or "").strip()
        if not wanted:
            raise EmptyInput("conversations.open", "No title")
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(
            cascade.connection,
            page_scripts.open_conversation_script(wanted),
            _ok_or_error,
            await_promise=True,
        )
        if not _ok(value):
            raise NoMatch("conversations.open", str((value or {}).get("error") or "unknown"))
        self._schedule_refresh(cascade_id, CONVERSATION_REFRESH)
        return {"ok": True}

    # ─────────────────────────────────────────────────────────────────────────
    # Diagnostics
    # ─────────────────────────────────────────────────────────────────────────

    async def diagnose_turns(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        value = await self._evaluate(
            cascade.connection,
            page_scripts.diagnose_turns_script(self.config.root_selectors),
            _is_dict,
        )
        return value or {"error": "evaluation failed in all contexts"}


__all__ = ["CommandRouter"]
