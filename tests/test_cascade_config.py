from __future__ import annotations

_ENV_KEYS = (
    "CASCADE_CDP_PORTS",
    "CASCADE_CDP_PORT_RANGE",
    "CASCADE_POLL_INTERVAL_MS",
    "CASCADE_DUP_SEND_WINDOW_MS",
    "CASCADE_TARGET_TITLE_KEYWORDS",
    "CASCADE_TARGET_URL_KEYWORDS",
    "CASCADE_FALLBACK_KEYWORD",
    "CASCADE_MIN_TEXT_LEN",
)


def _clear(monkeypatch) -> None:  # noqa: ANN001
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch) -> None:  # noqa: ANN001
    from cdp_servers.cascade_mirror.config import MirrorConfig

    _clear(monkeypatch)
    cfg = MirrorConfig.from_env()

    assert cfg.ports == list(range(9222, 9231))
    assert cfg.poll_interval == 2.0
    assert cfg.dup_send_window == 0.5
    assert cfg.fallback_keyword == "workbench"
    assert "claude" in cfg.title_keywords
    assert cfg.list_url(9222) == "http://127.0.0.1:9222/json/list"


def test_explicit_ports_take_precedence_over_range(monkeypatch) -> None:  # noqa: ANN001
    from cdp_servers.cascade_mirror.config import MirrorConfig

    _clear(monkeypatch)
    monkeypatch.setenv("CASCADE_CDP_PORTS", "9333, 9444,,x")
    monkeypatch.setenv("CASCADE_CDP_PORT_RANGE", "1-3")
    assert MirrorConfig.from_env().ports == [9333, 9444]


def test_port_range_and_single_port() -> None:
    from cdp_servers.cascade_mirror.config import parse_ports

    assert parse_ports(None, "9300-9302") == [9300, 9301, 9302]
    assert parse_ports("", "9400") == [9400]
    assert parse_ports(None, "9302-9300") == list(range(9222, 9231))


def test_keywords_are_lowercased_and_intervals_in_seconds(monkeypatch) -> None:  # noqa: ANN001
    from cdp_servers.cascade_mirror.config import MirrorConfig

    _clear(monkeypatch)
    monkeypatch.setenv("CASCADE_TARGET_TITLE_KEYWORDS", "Agent, ,Claude")
    monkeypatch.setenv("CASCADE_POLL_INTERVAL_MS", "750")
    monkeypatch.setenv("CASCADE_DUP_SEND_WINDOW_MS", "not-a-number")
    monkeypatch.setenv("CASCADE_MIN_TEXT_LEN", "5")

    cfg = MirrorConfig.from_env()

    assert cfg.title_keywords == ["agent", "claude"]
    assert cfg.poll_interval == 0.75
    assert cfg.dup_send_window == 0.5
    assert cfg.min_text_len == 5
