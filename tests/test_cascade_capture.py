from __future__ import annotations

import asyncio


def test_fingerprint_is_short_and_deterministic() -> None:
    from cdp_servers.cascade_mirror.capture import fingerprint, session_id

    assert fingerprint("<p>a</p>") == fingerprint("<p>a</p>")
    assert fingerprint("<p>a</p>") != fingerprint("<p>b</p>")
    assert len(fingerprint("")) == 16
    assert session_id("ws://127.0.0.1:9222/devtools/page/a") == fingerprint("ws://127.0.0.1:9222/devtools/page/a")


def test_leftover_editor_becomes_plain_diff_block() -> None:
    from cdp_servers.cascade_mirror.capture import strip_leftover_editors

    html = (
        '<div class="turn">'
        '<div class="W"><div><div class="monaco-editor"><span>+ added line</span></div></div></div>'
        "<p>after</p>"
        "</div>"
    )

    out = strip_leftover_editors(html)

    assert "monaco-editor" not in out
    assert '<pre class="vsc-diff-block"><code>+ added line</code></pre>' in out
    assert "<p>after</p>" in out


def test_nested_and_empty_editors() -> None:
    from cdp_servers.cascade_mirror.capture import strip_leftover_editors

    nested = '<div class="W"><div class="monaco-diff-editor"><div class="monaco-editor">x = 1</div></div></div>'
    out = strip_leftover_editors(nested)
    assert out.count("vsc-diff-block") == 1
    assert "x = 1" in out

    empty = '<div><div class="monaco-editor">  </div><p>kept</p></div>'
    out = strip_leftover_editors(empty)
    assert "monaco-editor" not in out
    assert "vsc-diff-block" not in out
    assert "<p>kept</p>" in out


def test_html_without_editors_is_untouched() -> None:
    from cdp_servers.cascade_mirror.capture import strip_leftover_editors

    html = "<div class='x'><p>hello &amp; bye</p></div>"
    assert strip_leftover_editors(html) == html
    assert strip_leftover_editors("") == ""


def test_snapshot_keeps_known_style_hints_only() -> None:
    from cdp_servers.cascade_mirror.capture import Snapshot, fingerprint

    snap = Snapshot.from_capture(
        {"html": "<p>hi</p>", "bodyBg": "#111", "fontSize": None, "scrollInfo": {"top": 3}}
    )

    assert snap.html == "<p>hi</p>"
    assert snap.hints == {"bodyBg": "#111"}
    assert snap.fingerprint == fingerprint("<p>hi</p>")
    assert snap.to_dict()["bodyBg"] == "#111"
    assert snap.to_dict()["fingerprint"] == snap.fingerprint


def test_capture_snapshot_rejects_error_results() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.capture import capture_snapshot
    from cdp_servers.cascade_mirror.config import MirrorConfig

    cfg = MirrorConfig()
    good = DummyConnection(evaluate=lambda _e: {"html": "<p>ok</p>", "bodyColor": "red"})
    bad = DummyConnection(evaluate=lambda _e: {"error": "chat container not found"})

    snap = asyncio.run(capture_snapshot(good, cfg))
    assert snap is not None
    assert snap.html == "<p>ok</p>"
    assert snap.hints == {"bodyColor": "red"}

    assert asyncio.run(capture_snapshot(bad, cfg)) is None


def test_metadata_carries_winning_context() -> None:
    from cascade_fakes import DummyConnection

    from cdp_servers.cascade_mirror.capture import capture_css, extract_metadata
    from cdp_servers.cascade_mirror.config import MirrorConfig

    cfg = MirrorConfig()
    conn = DummyConnection(evaluate=lambda _e: {"found": True, "chatTitle": "Fix tests", "isActive": False})

    meta = asyncio.run(extract_metadata(conn, cfg))

    assert meta == {"found": True, "chatTitle": "Fix tests", "isActive": False, "contextId": None}
    assert asyncio.run(extract_metadata(DummyConnection(), cfg)) is None
    assert asyncio.run(capture_css(DummyConnection(), cfg)) == ""
