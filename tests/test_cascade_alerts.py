from __future__ import annotations

import asyncio


def test_hub_isolates_failing_listeners() -> None:
    from cdp_servers.cascade_mirror.alerts import EventHub

    hub = EventHub()
    seen = []

    def broken(_event, _params):
        raise RuntimeError("observer went away")

    hub.subscribe(broken)
    unsubscribe = hub.subscribe(lambda event, params: seen.append((event, params)))

    hub.publish("snapshotChanged", {"id": "a"})
    unsubscribe()
    unsubscribe()
    hub.publish("snapshotChanged", {"id": "b"})

    assert seen == [("snapshotChanged", {"id": "a"})]
    assert hub.observer_count == 1


def test_gone_subscriber_is_dropped_on_delivery() -> None:
    from cdp_servers.cascade_mirror.alerts import IdleAlertSink, SubscriberGone

    sink = IdleAlertSink()
    received = []

    def gone(_payload):
        raise SubscriberGone("410")

    def flaky(_payload):
        raise OSError("temporary")

    sink.subscribe("old", gone)
    sink.subscribe("flaky", flaky)
    sink.subscribe("ok", received.append)

    result = sink.send_test()

    assert result == {"ok": True, "sent": 1, "failed": 2, "total": 2}
    assert received[0]["tag"] == "test-notification"
    assert sink.subscriber_count == 2
    assert sink.unsubscribe("flaky") is True
    assert sink.unsubscribe("flaky") is False


def test_test_alert_without_subscribers() -> None:
    from cdp_servers.cascade_mirror.alerts import IdleAlertSink

    result = IdleAlertSink().send_test()

    assert result["ok"] is False
    assert result["total"] == 0


def test_idle_alert_payload_and_cooldown() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.alerts import IdleAlertSink
    from cdp_servers.cascade_mirror.registry import Cascade

    now = {"t": 0.0}
    sink = IdleAlertSink(cooldown=15.0, clock=lambda: now["t"])
    received = []
    sink.subscribe("stdio", received.append)

    plain = Cascade(id="p", connection=DummyConnection())
    assert sink.notify_idle(plain) is True
    assert received[-1] == {"title": "Agent ready", "body": "Claude Agent", "tag": "cascade-p", "cascadeId": "p"}

    now["t"] = 14.0
    assert sink.notify_idle(plain) is False
    now["t"] = 15.0
    labelled = Cascade(id="q", connection=DummyConnection(), chat_title="Deploy", project="infra")
    assert sink.notify_idle(labelled) is True
    assert received[-1]["body"] == "[infra] Deploy"


def test_cascade_close_runs_once_under_concurrency() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.registry import Cascade

    conn = DummyConnection()
    cascade = Cascade(id="a", connection=conn)

    async def _main():
        await asyncio.gather(cascade.close(), cascade.close(), cascade.close())
        await cascade.close()

    asyncio.run(_main())
    assert conn.close_calls == 1


def test_registry_swap_leaves_old_view_intact() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.registry import Cascade, Registry

    reg = Registry()
    a = Cascade(id="a", connection=DummyConnection(), window_title="win", active=True)
    reg.swap({"a": a})
    before = reg.current()

    old = reg.swap({})

    assert old is before
    assert "a" in before and "a" not in reg
    assert reg.get("a") is None
    assert a.summary() == {"id": "a", "title": "win", "project": "", "active": True}
