from __future__ import annotations

import asyncio


class DummyNetwork:
    """Serves target lists per port and hands out dummy connections."""

    def __init__(self, targets_by_port):
        self.targets_by_port = targets_by_port
        self.fetches: list[str] = []
        self.opened = []

    def fetch(self, url, *, timeout, max_bytes):  # noqa: ARG002
        self.fetches.append(url)
        port = int(url.split(":")[2].split("/")[0])
        result = self.targets_by_port.get(port, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def open(self, ws_url, **_kwargs):
        from cascade_fakes import DummyConnection

        await asyncio.sleep(0)
        conn = DummyConnection(ws_url)
        self.opened.append(conn)
        return conn


def _engine(monkeypatch, network, **overrides):  # noqa: ANN001
    from cdp_servers.cascade_mirror import discovery
    from cdp_servers.cascade_mirror.config import MirrorConfig
    from cdp_servers.cascade_mirror.registry import Registry

    async def fake_metadata(conn, _config):
        if getattr(conn, "no_chat", False):
            return None
        return {"found": True, "chatTitle": f"chat:{conn.name.rsplit('/', 1)[-1]}", "isActive": True, "contextId": 1}

    async def fake_css(_conn, _config):
        return "#claude-root { color: red; }"

    monkeypatch.setattr(discovery, "extract_metadata", fake_metadata)
    monkeypatch.setattr(discovery, "capture_css", fake_css)

    cfg = MirrorConfig(ports=[9222, 9223], **overrides)
    engine = discovery.DiscoveryEngine(cfg, Registry(), fetch_targets=network.fetch, open_connection=network.open)
    return engine


def test_only_matching_descriptor_becomes_a_session(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork(
        {
            9222: [
                target("a", "Agent panel", "vscode-webview://host/agent"),
                target("b", "Editor", "about:blank"),
            ]
        }
    )
    engine = _engine(monkeypatch, network, title_keywords=["agent"], url_keywords=["agent"])

    sessions = asyncio.run(engine.scan())

    assert len(sessions) == 1
    assert sessions[0]["title"] == "chat:a"
    assert len(network.opened) == 1
    assert network.opened[0].name.endswith("/a")


def test_rescan_reuses_healthy_connection(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)

    async def _main():
        await engine.scan()
        first = engine.registry.values()[0]
        await engine.scan()
        second = engine.registry.values()[0]
        return first, second

    first, second = asyncio.run(_main())

    assert first is second
    assert len(network.opened) == 1
    assert first.connection.close_calls == 0


def test_stale_connection_is_replaced(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)

    async def _main():
        await engine.scan()
        old = engine.registry.values()[0]
        old.connection.healthy = False
        await engine.scan()
        return old, engine.registry.values()[0]

    old, new = asyncio.run(_main())

    assert old.id == new.id
    assert old.connection is not new.connection
    assert old.connection.close_calls == 1
    assert len(network.opened) == 2


def test_missing_target_is_evicted_and_torn_down_once(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)
    evicted: list[str] = []
    engine.on_evict(evicted.append)
    published = []
    engine.hub.subscribe(lambda event, params: published.append((event, len(params["sessions"]))))

    async def _main():
        await engine.scan()
        gone = engine.registry.values()[0]
        network.targets_by_port[9222] = []
        await asyncio.gather(engine.scan(), gone.close())
        return gone

    gone = asyncio.run(_main())

    assert len(engine.registry) == 0
    assert evicted == [gone.id]
    assert gone.connection.close_calls == 1
    assert published == [("sessionListChanged", 1), ("sessionListChanged", 0)]


def test_dead_port_and_metadata_failure_are_not_fatal(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork(
        {
            9222: [target("a", "Claude", "vscode-webview://claude"), target("b", "Claude two", "vscode-webview://b")],
            9223: OSError("connection refused"),
        }
    )

    async def picky_open(ws_url, **_kwargs):
        from cascade_fakes import DummyConnection

        conn = DummyConnection(ws_url)
        conn.no_chat = ws_url.endswith("/b")
        network.opened.append(conn)
        return conn

    engine = _engine(monkeypatch, network)
    engine._open_connection = picky_open  # noqa: SLF001

    sessions = asyncio.run(engine.scan())

    assert [s["title"] for s in sessions] == ["chat:a"]
    rejected = [c for c in network.opened if c.no_chat]
    assert rejected and rejected[0].close_calls == 1


def test_fallback_keyword_used_when_nothing_matches(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork(
        {9222: [target("w", "Window", "vscode-file://vscode-app/workbench.html", type_="page")]}
    )
    engine = _engine(monkeypatch, network, title_keywords=["nothing"], url_keywords=["nothing"])

    sessions = asyncio.run(engine.scan())

    assert len(sessions) == 1


def test_overlapping_scans_share_one_cycle(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)

    async def _main():
        return await asyncio.gather(engine.scan(), engine.scan(), engine.scan())

    results = asyncio.run(_main())

    assert results[0] == results[1] == results[2]
    assert len(network.fetches) == 2
    assert len(network.opened) == 1
    assert engine.gate.scan_task is None


def test_project_label_flows_into_session_summary(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    network = DummyNetwork(
        {
            9222: [
                target("win", "main.py - shop - Visual Studio Code", "vscode-file://x/workbench.html", type_="page"),
                target("panel", "Claude", "vscode-webview://claude", parent="win"),
            ]
        }
    )
    engine = _engine(monkeypatch, network, title_keywords=["claude"], url_keywords=["claude"])

    sessions = asyncio.run(engine.scan())

    assert sessions == [{"id": sessions[0]["id"], "title": "chat:panel", "project": "shop", "active": True}]


def test_cancelled_scan_closes_unpublished_connection(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    from cdp_servers.cascade_mirror import discovery

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)
    started = []

    async def hanging_metadata(_conn, _config):
        started.append(True)
        await asyncio.sleep(10)

    monkeypatch.setattr(discovery, "extract_metadata", hanging_metadata)

    async def _main():
        scan = asyncio.ensure_future(engine.scan())
        while not started:
            await asyncio.sleep(0)
        engine.gate.scan_task.cancel()
        results = await asyncio.gather(scan, return_exceptions=True)
        return results[0]

    result = asyncio.run(_main())

    assert isinstance(result, asyncio.CancelledError)
    assert len(network.opened) == 1
    assert network.opened[0].close_calls == 1
    assert len(engine.registry) == 0


def test_scan_waits_for_inflight_poll(monkeypatch) -> None:  # noqa: ANN001
    from cascade_fakes import target

    from cdp_servers.cascade_mirror.capture import Snapshot
    from cdp_servers.cascade_mirror.snapshot import SnapshotPipeline

    network = DummyNetwork({9222: [target("a", "Claude", "vscode-webview://claude")]})
    engine = _engine(monkeypatch, network)
    order: list[str] = []
    release = None

    async def slow_capture(_conn, _config):
        order.append("poll_start")
        await release.wait()
        order.append("poll_end")
        return Snapshot.from_capture({"html": "<p>x</p>"})

    original_resolve = engine._resolve_targets  # noqa: SLF001

    async def tracked_resolve():
        order.append("scan_body")
        return await original_resolve()

    engine._resolve_targets = tracked_resolve  # noqa: SLF001
    pipeline = SnapshotPipeline(engine.config, engine.registry, gate=engine.gate, hub=engine.hub, capture=slow_capture)

    async def _main():
        nonlocal release
        release = asyncio.Event()
        await engine.scan()
        order.clear()
        poll = asyncio.ensure_future(pipeline.poll())
        while "poll_start" not in order:
            await asyncio.sleep(0)
        scan = asyncio.ensure_future(engine.scan())
        for _ in range(5):
            await asyncio.sleep(0)
        assert "scan_body" not in order
        release.set()
        await asyncio.gather(poll, scan)

    asyncio.run(_main())

    assert order == ["poll_start", "poll_end", "scan_body"]
