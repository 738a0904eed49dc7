from __future__ import annotations

import asyncio


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _cascade(cid: str, **kwargs):
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.registry import Cascade

    return Cascade(id=cid, connection=DummyConnection(cid), **kwargs)


def _pipeline(cascades, capture, *, clock=None, alerts=None):
    from cdp_servers.cascade_mirror.config import MirrorConfig
    from cdp_servers.cascade_mirror.registry import Registry
    from cdp_servers.cascade_mirror.snapshot import SnapshotPipeline

    registry = Registry()
    registry.swap({c.id: c for c in cascades})
    events = []
    pipeline = SnapshotPipeline(
        MirrorConfig(idle_threshold=10.0),
        registry,
        alerts=alerts,
        capture=capture,
        clock=clock or FakeClock(),
    )
    pipeline.hub.subscribe(lambda event, params: events.append((event, params)))
    return pipeline, events


def test_unchanged_content_does_not_notify() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot

    async def capture(_conn, _config):
        return Snapshot.from_capture({"html": "<p>same</p>"})

    a = _cascade("a")
    pipeline, events = _pipeline([a], capture)

    async def _main():
        first = await pipeline.poll()
        second = await pipeline.poll()
        return first, second

    first, second = asyncio.run(_main())

    assert first == ["a"]
    assert second == []
    assert events == [("snapshotChanged", {"id": "a"})]
    assert a.snapshot is not None and a.snapshot.html == "<p>same</p>"


def test_one_failing_session_does_not_block_others() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot
    from cdp_servers.cascade_mirror.errors import CallTimeout

    async def capture(conn, _config):
        if conn.name == "a":
            raise CallTimeout("Runtime.evaluate timed out")
        return Snapshot.from_capture({"html": "<p>b</p>"})

    a, b = _cascade("a"), _cascade("b")
    pipeline, events = _pipeline([a, b], capture)

    changed = asyncio.run(pipeline.poll())

    assert changed == ["b"]
    assert events == [("snapshotChanged", {"id": "b"})]
    assert a.snapshot is None


def test_refresh_once_captures_a_single_session() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot

    seen = []

    async def capture(conn, _config):
        seen.append(conn.name)
        return Snapshot.from_capture({"html": f"<p>{conn.name}</p>"})

    pipeline, events = _pipeline([_cascade("a"), _cascade("b")], capture)

    assert asyncio.run(pipeline.refresh_once("b")) is True
    assert asyncio.run(pipeline.refresh_once("missing")) is False
    assert seen == ["b"]
    assert events == [("snapshotChanged", {"id": "b"})]


def test_capture_for_evicted_session_is_dropped() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot

    a = _cascade("a")
    pipeline, events = _pipeline([a], None)

    pipeline.registry.swap({})
    assert pipeline.record(a, Snapshot.from_capture({"html": "<p>late</p>"})) is False
    assert a.snapshot is None
    assert events == []


def test_poll_is_skipped_while_scan_in_flight() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot

    calls = []

    async def capture(conn, _config):
        calls.append(conn.name)
        return Snapshot.from_capture({"html": "<p>x</p>"})

    pipeline, _events = _pipeline([_cascade("a")], capture)

    async def _main():
        blocker = asyncio.Event()
        pipeline.gate.start_scan(blocker.wait())
        skipped = await pipeline.poll()
        blocker.set()
        await asyncio.sleep(0)
        return skipped

    assert asyncio.run(_main()) == []
    assert calls == []


def test_idle_alert_fires_once_per_quiet_period() -> None:
    from cdp_servers.cascade_mirror.alerts import IdleAlertSink
    from cdp_servers.cascade_mirror.capture import Snapshot

    clock = FakeClock(100.0)
    sink = IdleAlertSink(cooldown=15.0, clock=clock)
    delivered = []
    sink.subscribe("stdio", delivered.append)
    html = {"value": "<p>one</p>"}

    async def capture(_conn, _config):
        return Snapshot.from_capture({"html": html["value"]})

    a = _cascade("a", chat_title="Refactor", project="shop")
    pipeline, _events = _pipeline([a], capture, clock=clock, alerts=sink)

    asyncio.run(pipeline.poll())
    assert delivered == []

    clock.now = 111.0
    asyncio.run(pipeline.poll())
    assert [d["body"] for d in delivered] == ["[shop] Refactor"]
    assert a.idle_notified is True

    clock.now = 130.0
    asyncio.run(pipeline.poll())
    assert len(delivered) == 1

    # New content re-arms the alert.
    html["value"] = "<p>two</p>"
    asyncio.run(pipeline.poll())
    assert a.idle_notified is False
    clock.now = 141.0
    asyncio.run(pipeline.poll())
    assert len(delivered) == 2
    assert delivered[-1]["cascadeId"] == "a"


def test_idle_cooldown_is_shared_across_sessions() -> None:
    from cdp_servers.cascade_mirror.alerts import IdleAlertSink

    clock = FakeClock(100.0)
    sink = IdleAlertSink(cooldown=15.0, clock=clock)
    delivered = []
    sink.subscribe("stdio", delivered.append)

    a = _cascade("a", last_change_at=50.0)
    b = _cascade("b", last_change_at=50.0)
    pipeline, _events = _pipeline([a, b], None, clock=clock, alerts=sink)

    assert pipeline.check_idle() == ["a", "b"]
    assert [d["cascadeId"] for d in delivered] == ["a"]
    assert a.idle_notified and b.idle_notified
