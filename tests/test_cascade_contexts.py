from __future__ import annotations

import asyncio

import pytest


def test_registry_orders_sticky_first_without_duplicates() -> None:
    from cdp_servers.cascade_mirror.contexts import ExecutionContextRegistry

    reg = ExecutionContextRegistry()
    for cid in (4, 2, 4, 9):
        reg.add(cid)
    assert reg.ids() == [4, 2, 9]
    assert reg.candidates() == [4, 2, 9]

    reg.prefer(9)
    assert reg.candidates() == [9, 4, 2]

    reg.prefer(None)
    assert reg.preferred == 9

    reg.on_event("Runtime.executionContextsCleared", {})
    assert reg.ids() == []
    assert reg.candidates() == [9]


def test_evaluate_tries_sticky_then_known_then_default() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.contexts import evaluate_across_contexts

    conn = DummyConnection(evaluate=lambda _expr: None)
    conn.contexts.add(1)
    conn.contexts.add(2)
    conn.contexts.prefer(2)

    res = asyncio.run(evaluate_across_contexts(conn, "x()", accept=lambda v: v is not None))

    assert res is None
    tried = [p.get("contextId") for _m, p in conn.calls]
    assert tried == [2, 1, None]


def test_evaluate_updates_sticky_context_on_success() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.contexts import evaluate_across_contexts

    class PickyConnection(DummyConnection):
        async def call(self, method, params=None, *, timeout=None):
            self.calls.append((method, dict(params or {})))
            ok = (params or {}).get("contextId") == 3
            return {"result": {"value": {"html": "<div/>"} if ok else None}}

    conn = PickyConnection()
    for cid in (1, 3, 5):
        conn.contexts.add(cid)

    res = asyncio.run(evaluate_across_contexts(conn, "capture()", accept=lambda v: bool(v)))

    assert res is not None
    assert res.context_id == 3
    assert conn.contexts.preferred == 3
    assert conn.contexts.candidates()[0] == 3


def test_evaluate_skips_failing_contexts_but_stops_on_closed() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.contexts import evaluate_across_contexts
    from cdp_servers.cascade_mirror.errors import ConnectionClosed, RemoteError

    class FlakyConnection(DummyConnection):
        async def call(self, method, params=None, *, timeout=None):
            cid = (params or {}).get("contextId")
            self.calls.append((method, dict(params or {})))
            if cid == 1:
                raise RemoteError("Runtime.evaluate: Cannot find context with specified id")
            if cid == 2:
                return {"exceptionDetails": {"text": "ReferenceError"}, "result": {}}
            return {"result": {"value": "default"}}

    conn = FlakyConnection()
    conn.contexts.add(1)
    conn.contexts.add(2)
    res = asyncio.run(evaluate_across_contexts(conn, "x()"))
    assert res is not None
    assert res.value == "default"
    assert res.context_id is None

    class ClosedConnection(DummyConnection):
        async def call(self, method, params=None, *, timeout=None):
            raise ConnectionClosed("Connection closed: ws://127.0.0.1:9222/x")

    closed = ClosedConnection()
    closed.contexts.add(1)
    with pytest.raises(ConnectionClosed):
        asyncio.run(evaluate_across_contexts(closed, "x()"))
