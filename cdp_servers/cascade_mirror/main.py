"""
Newline-delimited JSON front end over stdio.

Requests are `{"id", "method", "params"}`; replies are `{"id", "result"}` or
`{"id", "error"}`. Notifications (`sessionListChanged`, `snapshotChanged`,
`agentIdle`) are written as `{"method", "params"}` without an id.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from .alerts import AGENT_IDLE
from .bridge import CascadeBridge
from .config import MirrorConfig
from .errors import CommandError, InvalidParams, NotFound
from .http_client import HttpClientError

logging.basicConfig(
    level=os.environ.get("CASCADE_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("cascade_mirror")

__all__ = ["MirrorServer", "main"]

ERR_PARSE = -32700
ERR_UNKNOWN_METHOD = -32601
ERR_INVALID_PARAMS = -32602
ERR_INTERNAL = -32603
ERR_COMMAND = -32000
ERR_TRANSPORT = -32001
ERR_NOT_FOUND = -32004

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


def _write_message(payload: dict[str, Any]) -> None:
    """Write one JSON line to stdout."""
    line = (json.dumps(payload, ensure_ascii=False) + "\n").encode()
    sys.stdout.buffer.write(line)
    sys.stdout.buffer.flush()


def _require(params: dict[str, Any], key: str, method: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise InvalidParams(method, f"Missing parameter: {key}")
    return value


class MirrorServer:
    """Dispatch table from method name to bridge operation."""

    def __init__(self, bridge: CascadeBridge | None = None, write: Callable[[dict[str, Any]], None] = _write_message):
        self.bridge = bridge or CascadeBridge(MirrorConfig.from_env())
        self._write = write
        self._pending: set[asyncio.Task] = set()
        # The stdio peer is an observer for as long as it is attached.
        self._unsubscribe = self.bridge.hub.subscribe(self._notify)
        self._handlers: dict[str, Handler] = {
            "sessions.list": self._sessions_list,
            "snapshot.get": self._snapshot_get,
            "snapshot.tasks": self._snapshot_tasks,
            "styles.get": self._styles_get,
            "view.render": self._view_render,
            "send": self._send,
            "back": self._back,
            "select": self._select,
            "click": self._click,
            "mode.get": self._mode_get,
            "mode.switch": self._mode_switch,
            "viewAll": self._view_all,
            "conversations.list": self._conversations_list,
            "conversations.open": self._conversations_open,
            "debug.turns": self._debug_turns,
            "alerts.subscribe": self._alerts_subscribe,
            "alerts.unsubscribe": self._alerts_unsubscribe,
            "alerts.test": self._alerts_test,
        }

    def _notify(self, event: str, params: dict[str, Any]) -> None:
        self._write({"method": event, "params": params})

    def close(self) -> None:
        self._unsubscribe()

    # ─────────────────────────────────────────────────────────────────────────
    # Handlers
    # ─────────────────────────────────────────────────────────────────────────

    async def _sessions_list(self, params: dict[str, Any]) -> Any:
        return {"sessions": self.bridge.sessions()}

    async def _snapshot_get(self, params: dict[str, Any]) -> Any:
        return self.bridge.get_snapshot(_require(params, "id", "snapshot.get")).to_dict()

    async def _snapshot_tasks(self, params: dict[str, Any]) -> Any:
        snap = await self.bridge.tasks_view(_require(params, "id", "snapshot.tasks"))
        return snap.to_dict()

    async def _styles_get(self, params: dict[str, Any]) -> Any:
        return self.bridge.get_style_bundle(_require(params, "id", "styles.get"))

    async def _view_render(self, params: dict[str, Any]) -> Any:
        return {"html": self.bridge.render_view(_require(params, "id", "view.render"))}

    async def _send(self, params: dict[str, Any]) -> Any:
        cid = _require(params, "id", "send")
        return await self.bridge.commands.send_text(cid, str(params.get("text") or params.get("message") or ""))

    async def _back(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.navigate_back(_require(params, "id", "back"))

    async def _select(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.select_by_label(_require(params, "id", "select"), str(params.get("text") or ""))

    async def _click(self, params: dict[str, Any]) -> Any:
        cid = _require(params, "id", "click")
        text = str(params.get("text") or "")
        logger.info("click_forward id=%s text=%s", cid, text)
        return await self.bridge.commands.select_by_label(cid, text)

    async def _mode_get(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.current_mode(_require(params, "id", "mode.get"))

    async def _mode_switch(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.switch_mode(_require(params, "id", "mode.switch"))

    async def _view_all(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.view_all(_require(params, "id", "viewAll"))

    async def _conversations_list(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.list_conversations(_require(params, "id", "conversations.list"))

    async def _conversations_open(self, params: dict[str, Any]) -> Any:
        cid = _require(params, "id", "conversations.open")
        return await self.bridge.commands.open_conversation(cid, str(params.get("title") or ""))

    async def _debug_turns(self, params: dict[str, Any]) -> Any:
        return await self.bridge.commands.diagnose_turns(_require(params, "id", "debug.turns"))

    async def _alerts_subscribe(self, params: dict[str, Any]) -> Any:
        endpoint = str(params.get("endpoint") or "stdio")
        self.bridge.alerts.subscribe(endpoint, lambda payload: self._write({"method": AGENT_IDLE, "params": payload}))
        return {"ok": True, "total": self.bridge.alerts.subscriber_count}

    async def _alerts_unsubscribe(self, params: dict[str, Any]) -> Any:
        removed = self.bridge.alerts.unsubscribe(str(params.get("endpoint") or "stdio"))
        return {"ok": removed, "total": self.bridge.alerts.subscriber_count}

    async def _alerts_test(self, params: dict[str, Any]) -> Any:
        return self.bridge.alerts.send_test()

    # ─────────────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────────────

    def _reply_error(self, request_id: Any, code: int, message: str, data: Any = None) -> None:
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        self._write({"id": request_id, "error": error})

    async def dispatch(self, message: dict[str, Any]) -> None:
        if not isinstance(message, dict):
            self._reply_error(None, ERR_INVALID_PARAMS, "Request must be an object")
            return
        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") if isinstance(message.get("params"), dict) else {}

        handler = self._handlers.get(method) if isinstance(method, str) else None
        if handler is None:
            self._reply_error(request_id, ERR_UNKNOWN_METHOD, f"Method {method} not found")
            return

        logger.info("request method=%s id=%s", method, params.get("id"))
        try:
            result = await handler(params)
        except InvalidParams as e:
            self._reply_error(request_id, ERR_INVALID_PARAMS, e.reason, e.to_dict())
            return
        except CommandError as e:
            logger.info("command_error command=%s reason=%s", e.command, e.reason)
            self._reply_error(request_id, ERR_COMMAND, e.reason, e.to_dict())
            return
        except NotFound as e:
            self._reply_error(request_id, ERR_NOT_FOUND, str(e))
            return
        except HttpClientError as e:
            logger.info("transport_error method=%s error=%s", method, e)
            self._reply_error(request_id, ERR_TRANSPORT, str(e))
            return
        except Exception as exc:
            logger.exception("request_failed method=%s", method)
            self._reply_error(request_id, ERR_INTERNAL, str(exc))
            return
        self._write({"id": request_id, "result": result})

    def submit(self, message: dict[str, Any]) -> asyncio.Task:
        task = asyncio.ensure_future(self.dispatch(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def serve(self, read_line: Callable[[], bytes] | None = None) -> None:
        """Read requests until EOF while the bridge loops run."""
        read = read_line or sys.stdin.buffer.readline
        self.bridge.start()
        try:
            while True:
                raw = await asyncio.to_thread(read)
                if not raw:
                    break
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    message = json.loads(raw)
                except ValueError as exc:
                    self._reply_error(None, ERR_PARSE, f"Invalid JSON: {exc}")
                    continue
                self.submit(message)
        finally:
            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)
            self.close()
            await self.bridge.stop()


def main() -> None:
    """Entry point: serve on stdio until stdin closes."""
    server = MirrorServer()
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
