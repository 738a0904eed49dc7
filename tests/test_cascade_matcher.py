from __future__ import annotations


def _descriptor(tid, title, url, type_="iframe", parent=None):
    from cdp_servers.cascade_mirror.matcher import TargetDescriptor

    return TargetDescriptor(
        id=tid,
        title=title,
        url=url,
        type=type_,
        ws_url=f"ws://127.0.0.1:9222/devtools/page/{tid}",
        port=9222,
        parent_id=parent,
    )


def test_score_counts_keywords_in_title_and_url() -> None:
    from cdp_servers.cascade_mirror import matcher

    hit = _descriptor("a", "Agent Panel", "vscode-webview://host/agent/index.html")
    miss = _descriptor("b", "Editor", "about:blank")

    assert matcher.score(hit, ["agent"], ["agent"]) == 2
    assert matcher.score(miss, ["agent"], ["agent"]) == 0
    assert matcher.matches(hit, ["agent"], ["agent"])
    assert not matcher.matches(miss, ["agent"], ["agent"])
    assert matcher.keyword_score("", ["agent"]) == 0


def test_fallback_keyword_checks_url_and_title() -> None:
    from cdp_servers.cascade_mirror import matcher

    wb = _descriptor("w", "Window", "vscode-file://vscode-app/workbench.html", type_="page")
    assert matcher.matches_fallback(wb, "workbench")
    assert not matcher.matches_fallback(wb, "")
    assert not matcher.matches_fallback(_descriptor("x", "x", "about:blank"), "workbench")


def test_rank_for_display_is_stable_and_keeps_every_target() -> None:
    from cdp_servers.cascade_mirror import matcher

    plain_1 = _descriptor("1", "Webview", "vscode-webview://one")
    claude = _descriptor("2", "Claude Code", "vscode-webview://two")
    plain_2 = _descriptor("3", "Webview", "vscode-webview://three")

    ranked = matcher.rank_for_display([plain_1, claude, plain_2], ["claude"], [])

    assert [t.id for t in ranked] == ["2", "1", "3"]


def test_project_label_from_editor_window_titles() -> None:
    from cdp_servers.cascade_mirror.matcher import project_label

    assert project_label("main.py - my-project - Visual Studio Code") == "my-project"
    assert project_label("my-project - VSCodium") == "my-project"
    assert project_label("Some browser page") == ""


def test_attribution_prefers_parent_window_then_first_label() -> None:
    from cdp_servers.cascade_mirror import matcher

    win_a = _descriptor("wa", "a.py - alpha - Visual Studio Code", "vscode-file://wb", type_="page")
    win_b = _descriptor("wb", "b.py - beta - Visual Studio Code", "vscode-file://wb", type_="page")
    child_b = _descriptor("c1", "Claude", "vscode-webview://c1", parent="wb")
    orphan = _descriptor("c2", "Claude", "vscode-webview://c2")

    out = matcher.attribute_projects([win_a, win_b, child_b, orphan], [child_b, orphan])

    assert [t.project for t in out] == ["beta", "alpha"]
    assert matcher.attribute_projects([child_b], [child_b])[0].project == ""
    # Project is display-only and does not affect identity.
    assert out[0] == child_b
