"""Blocking inspection helpers for operators.

Lists debug targets with their match scores and, for a single target, reports
the execution contexts it exposes and what the turn-detection heuristics see in
each of them. Runs without an event loop (websocket-client).
"""

from __future__ import annotations

import json
import time
from contextlib import suppress
from typing import Any

from . import matcher, page_scripts
from .config import MirrorConfig
from .contexts import CONTEXT_CREATED, ExecutionContextRegistry
from .errors import CallTimeout, CascadeError, ConnectionClosed, ConnectionRefused, RemoteError
from .http_client import list_targets
from .matcher import TargetDescriptor
from .session_cdp import ensure_loopback


def _import_websocket():
    try:
        import websocket  # type: ignore[import-not-found]

        return websocket
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The inspection probe requires the 'websocket-client' package (pip install websocket-client)."
        ) from exc


class ProbeConnection:
    """Synchronous CDP connection; notifications read while waiting feed the context registry."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        ensure_loopback(ws_url)
        websocket = _import_websocket()
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            raise ConnectionRefused(f"Could not connect to {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self.contexts = ExecutionContextRegistry()
        self.context_info: list[dict[str, Any]] = []
        self._next_id = 1

    def _handle_event(self, data: dict[str, Any]) -> None:
        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        self.contexts.on_event(data["method"], params)
        if data["method"] == CONTEXT_CREATED and isinstance(params.get("context"), dict):
            self.context_info.append(params["context"])

    def _recv(self, remaining: float) -> dict[str, Any] | None:
        try:
            self.ws.settimeout(min(0.5, remaining))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, TimeoutError) or "timed out" in str(exc).lower():
                return None
            raise ConnectionClosed(str(exc)) from exc
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        try:
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise ConnectionClosed(str(exc)) from exc

        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CallTimeout(f"CDP call timeout: {method}")
            data = self._recv(remaining)
            if data is None:
                continue
            if isinstance(data.get("method"), str) and "id" not in data:
                self._handle_event(data)
                continue
            if data.get("id") == msg_id:
                if "error" in data:
                    raise RemoteError.from_payload(method, data["error"])
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def drain(self, duration: float) -> None:
        """Consume notifications for `duration` seconds."""
        deadline = time.time() + duration
        while (remaining := deadline - time.time()) > 0:
            data = self._recv(remaining)
            if data is not None and isinstance(data.get("method"), str) and "id" not in data:
                self._handle_event(data)

    def evaluate(self, expression: str, context_id: int | None = None) -> Any:
        params: dict[str, Any] = {"expression": expression, "returnByValue": True}
        if context_id is not None:
            params["contextId"] = context_id
        res = self.send("Runtime.evaluate", params)
        if res.get("exceptionDetails"):
            return None
        remote = res.get("result")
        return remote.get("value") if isinstance(remote, dict) else None

    def close(self) -> None:
        with suppress(Exception):
            self.ws.close()


def list_candidates(config: MirrorConfig) -> list[dict[str, Any]]:
    """Every target on the configured ports with its match and preference scores."""
    rows: list[dict[str, Any]] = []
    for port in config.ports:
        batch = [
            TargetDescriptor.from_json(raw, port)
            for raw in list_targets(config.list_url(port), timeout=config.http_timeout, max_bytes=config.http_max_bytes)
        ]
        for target in matcher.attribute_projects(batch, batch):
            rows.append(
                {
                    "port": port,
                    "type": target.type,
                    "title": target.title,
                    "url": target.url,
                    "project": target.project,
                    "score": matcher.score(target, config.title_keywords, config.url_keywords),
                    "preference": matcher.score(
                        target, config.preferred_title_keywords, config.preferred_url_keywords
                    ),
                    "fallback": matcher.matches_fallback(target, config.fallback_keyword),
                    "webSocketDebuggerUrl": target.ws_url,
                }
            )
    return rows


def inspect_target(config: MirrorConfig, ws_url: str, *, settle: float = 0.5) -> dict[str, Any]:
    """Enable runtime notifications on one target and run the diagnostics in every context."""
    conn = ProbeConnection(ws_url, timeout=config.call_timeout)
    try:
        conn.send("Runtime.enable", {})
        conn.drain(settle)
        diagnostics: list[dict[str, Any]] = []
        for context_id in [*conn.contexts.candidates(), None]:
            entry: dict[str, Any] = {"contextId": context_id}
            try:
                entry["turns"] = conn.evaluate(page_scripts.diagnose_turns_script(config.root_selectors), context_id)
                entry["buttons"] = conn.evaluate(page_scripts.button_inventory_script(), context_id)
            except CascadeError as exc:
                entry["error"] = str(exc)
            diagnostics.append(entry)
        return {
            "wsUrl": ws_url,
            "contexts": [
                {"id": c.get("id"), "name": c.get("name"), "origin": c.get("origin")} for c in conn.context_info
            ],
            "diagnostics": diagnostics,
        }
    finally:
        conn.close()


__all__ = ["ProbeConnection", "inspect_target", "list_candidates"]
