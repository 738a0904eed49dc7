"""Async CDP transport: one WebSocket per debug target.

Outgoing calls are correlated with responses by id; unsolicited notifications
are fanned out to per-method listeners, recorded in a bounded event log and fed
to the execution-context registry, all from a single reader task.
"""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import json
import logging
from collections import deque
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

from .contexts import ExecutionContextRegistry
from .errors import CallTimeout, ConnectionClosed, ConnectionRefused, RemoteError

logger = logging.getLogger("cascade_mirror.session_cdp")

_LOCAL_HOSTNAMES = {"localhost"}
_MAX_MESSAGE_BYTES = 64 * 1024 * 1024


def _import_websockets():
    try:
        import websockets  # type: ignore[import-not-found]

        return websockets
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The CDP transport requires the 'websockets' Python package (pip install websockets)."
        ) from exc


def is_loopback_url(url: str) -> bool:
    try:
        host = (urlsplit(url).hostname or "").strip().lower()
    except ValueError:
        return False
    if not host:
        return False
    if host in _LOCAL_HOSTNAMES:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def ensure_loopback(url: str) -> None:
    if not is_loopback_url(url):
        raise ConnectionRefused(f"Refused non-local WebSocket URL: {url}")


class CdpConnection:
    """Persistent CDP channel to a single target."""

    def __init__(self, ws: Any, ws_url: str, *, call_timeout: float = 10.0, max_events: int = 2000) -> None:
        self.ws = ws
        self.ws_url = ws_url
        self.call_timeout = float(call_timeout)
        self.contexts = ExecutionContextRegistry()
        self._next_id = 1
        self._pending: dict[int, asyncio.Future] = {}
        self._pending_methods: dict[int, str] = {}
        self._listeners: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self._closed = False
        self._torn_down = False
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(), name=f"cdp-reader:{ws_url}")

    @classmethod
    async def open(
        cls,
        ws_url: str,
        *,
        open_timeout: float = 5.0,
        call_timeout: float = 10.0,
        settle_delay: float = 0.0,
    ) -> CdpConnection:
        """Connect, enable runtime notifications and give contexts time to arrive."""
        ensure_loopback(ws_url)
        websockets = _import_websockets()
        from websockets.exceptions import WebSocketException  # type: ignore[import-not-found]

        try:
            ws = await asyncio.wait_for(
                websockets.connect(ws_url, max_size=_MAX_MESSAGE_BYTES, ping_interval=None),
                timeout=open_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise CallTimeout(f"Timed out connecting to {ws_url}") from exc
        except (OSError, WebSocketException) as exc:
            raise ConnectionRefused(f"Could not connect to {ws_url}: {exc}") from exc

        conn = cls(ws, ws_url, call_timeout=call_timeout)
        try:
            await conn.call("Runtime.enable", {})
        except Exception:
            await conn.close()
            raise
        if settle_delay > 0:
            await asyncio.sleep(settle_delay)
        return conn

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def healthy(self) -> bool:
        return not self._closed and not self._reader.done()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ─────────────────────────────────────────────────────────────────────────
    # Calls
    # ─────────────────────────────────────────────────────────────────────────

    async def call(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        if self._closed:
            raise ConnectionClosed(f"Connection closed: {self.ws_url}")

        msg_id = self._next_id
        self._next_id += 1
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = fut
        self._pending_methods[msg_id] = method

        payload: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            payload["params"] = params

        try:
            await self.ws.send(json.dumps(payload))
        except Exception as exc:  # noqa: BLE001
            self._forget(msg_id)
            raise ConnectionClosed(f"CDP send failed ({method}): {exc}") from exc

        deadline = self.call_timeout if timeout is None else float(timeout)
        try:
            return await asyncio.wait_for(fut, timeout=deadline)
        except asyncio.TimeoutError:
            raise CallTimeout(f"CDP call timeout: {method}") from None
        finally:
            self._forget(msg_id)

    def _forget(self, msg_id: int) -> None:
        self._pending.pop(msg_id, None)
        self._pending_methods.pop(msg_id, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Notifications
    # ─────────────────────────────────────────────────────────────────────────

    def on(self, method: str, callback: Callable[[dict[str, Any]], None]) -> None:
        self._listeners.setdefault(method, []).append(callback)

    def off(self, method: str, callback: Callable[[dict[str, Any]], None]) -> None:
        callbacks = self._listeners.get(method)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def pop_event(self, method: str) -> dict[str, Any] | None:
        """Pop the oldest logged notification params for `method`."""
        for ev in self._events:
            if ev.get("method") == method:
                self._events.remove(ev)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound dispatch
    # ─────────────────────────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        try:
            async for raw in self.ws:
                self._dispatch(raw)
        except Exception as exc:  # noqa: BLE001
            logger.debug("cdp_reader_stopped url=%s reason=%s", self.ws_url, exc)
        finally:
            self._mark_closed("Connection lost")

    def _dispatch(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(data, dict):
            return

        msg_id = data.get("id")
        if isinstance(msg_id, int):
            fut = self._pending.get(msg_id)
            if fut is None or fut.done():
                return
            if "error" in data:
                method = self._pending_methods.get(msg_id, "call")
                fut.set_exception(RemoteError.from_payload(method, data.get("error")))
            else:
                result = data.get("result")
                fut.set_result(result if isinstance(result, dict) else {})
            return

        method = data.get("method")
        if not isinstance(method, str):
            return
        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        self._events.append({"method": method, "params": params})
        self.contexts.on_event(method, params)
        for callback in list(self._listeners.get(method, ())):
            # Listener failures must never stop the reader.
            with contextlib.suppress(Exception):
                callback(params)

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def _mark_closed(self, reason: str) -> None:
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        self._pending_methods.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(ConnectionClosed(f"{reason}: {self.ws_url}"))

    async def close(self) -> None:
        """Release the socket and fail outstanding calls. Safe to call repeatedly."""
        if self._torn_down:
            return
        self._torn_down = True
        self._mark_closed("Connection closed")
        with contextlib.suppress(Exception):
            await self.ws.close()
        reader = self._reader
        if reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reader


__all__ = ["CdpConnection", "ensure_loopback", "is_loopback_url"]
