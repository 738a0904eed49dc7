from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_PORT_RANGE = "9222-9230"
LOOPBACK_HOST = "127.0.0.1"
WRAPPER_ID = "claude-root"

DEFAULT_TARGET_TYPES: list[str] = ["page", "iframe"]

DEFAULT_TITLE_KEYWORDS: list[str] = [
    "claude",
    "anthropic",
    "visual studio code",
    "vscode",
    "code - oss",
    "code-oss",
    "workbench",
]

DEFAULT_URL_KEYWORDS: list[str] = [
    "extensionid=anthropic.claude-code",
    "vscode-webview",
    "claude",
    "anthropic",
    "workbench",
    "code-oss",
]

DEFAULT_PREFERRED_TITLE_KEYWORDS: list[str] = ["claude", "anthropic", "agent"]

DEFAULT_PREFERRED_URL_KEYWORDS: list[str] = [
    "extensionid=anthropic.claude-code",
    "vscode-webview",
    "claude",
    "anthropic",
]

DEFAULT_ROOT_SELECTORS: list[str] = [
    "#root",
    "#app",
    '[data-testid*="claude"]',
    '[data-testid*="chat"]',
    "main",
    'section[role="main"]',
    "body",
]

DEFAULT_INPUT_SELECTORS: list[str] = [
    "#prompt-textarea",
    'textarea[data-testid*="prompt" i]',
    'textarea[data-testid*="input" i]',
    'textarea[placeholder*="message" i]',
    'textarea[placeholder*="prompt" i]',
    '[data-testid*="composer" i]',
    '[data-testid*="prompt" i]',
    '[data-testid*="input" i]',
    '[data-testid*="chat-input" i]',
    '[aria-label*="prompt" i]',
    '[aria-label*="message" i]',
    '[class*="composer" i]',
    '[class*="prompt" i]',
    '[class*="input" i]',
    '[class*="chat-input" i]',
    "textarea",
    'input[data-testid*="prompt" i]',
    'input[data-testid*="input" i]',
    'input[type="text"]',
    'input[role="textbox"]',
    '[contenteditable="true"][role="textbox"]',
    '[contenteditable="true"]',
    '[contenteditable=""]',
]

DEFAULT_SEND_SELECTORS: list[str] = [
    'button[data-testid="send-button"]',
    'button[data-testid*="send" i]',
    'button[aria-label*="Send"]',
    'button[aria-label*="send"]',
    'button[aria-label*="Submit" i]',
    'button[aria-label*="Send message" i]',
    'button[title*="send" i]',
    'button[title*="submit" i]',
    'button[type="submit"]',
    'button[class*="send"]',
    'button[class*="submit"]',
]


def parse_csv(raw: str | None, fallback: list[str]) -> list[str]:
    items = [item.strip() for item in (raw or "").split(",") if item.strip()]
    return items if items else list(fallback)


def parse_ports(ports_raw: str | None, range_raw: str | None) -> list[int]:
    """Resolve the debug port space from an explicit CSV list or an `a-b` range."""
    explicit = (ports_raw or "").strip()
    if explicit:
        return [int(p) for p in (s.strip() for s in explicit.split(",")) if p.isdigit()]

    rng = (range_raw or DEFAULT_PORT_RANGE).strip()
    if "-" in rng:
        start_raw, end_raw = rng.split("-", 1)
        try:
            start, end = int(start_raw.strip()), int(end_raw.strip())
        except ValueError:
            start, end = 0, -1
        if 0 < start <= end:
            return list(range(start, end + 1))
    if rng.isdigit():
        return [int(rng)]
    return list(range(9222, 9231))


def _env_seconds(name: str, default_ms: float) -> float:
    try:
        return float(os.environ.get(name) or default_ms) / 1000.0
    except ValueError:
        return default_ms / 1000.0


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except ValueError:
        return default


def _lowered(values: list[str]) -> list[str]:
    return [v.lower() for v in values]


@dataclass
class MirrorConfig:
    ports: list[int] = field(default_factory=lambda: list(range(9222, 9231)))
    host: str = LOOPBACK_HOST
    discovery_interval: float = 5.0
    poll_interval: float = 2.0
    min_text_len: int = 20
    dup_send_window: float = 0.5
    call_timeout: float = 10.0
    open_timeout: float = 5.0
    settle_delay: float = 0.3
    idle_threshold: float = 10.0
    alert_cooldown: float = 15.0
    http_timeout: float = 2.0
    http_max_bytes: int = 10 * 1024 * 1024
    target_types: list[str] = field(default_factory=lambda: list(DEFAULT_TARGET_TYPES))
    title_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_TITLE_KEYWORDS))
    url_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_URL_KEYWORDS))
    preferred_title_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_PREFERRED_TITLE_KEYWORDS))
    preferred_url_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_PREFERRED_URL_KEYWORDS))
    fallback_keyword: str = "workbench"
    root_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_ROOT_SELECTORS))
    input_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_INPUT_SELECTORS))
    send_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_SEND_SELECTORS))
    wrapper_id: str = WRAPPER_ID

    @classmethod
    def from_env(cls) -> MirrorConfig:
        return cls(
            ports=parse_ports(os.environ.get("CASCADE_CDP_PORTS"), os.environ.get("CASCADE_CDP_PORT_RANGE")),
            discovery_interval=_env_seconds("CASCADE_DISCOVERY_INTERVAL_MS", 5000),
            poll_interval=_env_seconds("CASCADE_POLL_INTERVAL_MS", 2000),
            min_text_len=_env_int("CASCADE_MIN_TEXT_LEN", 20),
            dup_send_window=_env_seconds("CASCADE_DUP_SEND_WINDOW_MS", 500),
            call_timeout=_env_seconds("CASCADE_CDP_CALL_TIMEOUT_MS", 10000),
            open_timeout=_env_seconds("CASCADE_CDP_OPEN_TIMEOUT_MS", 5000),
            settle_delay=_env_seconds("CASCADE_CDP_SETTLE_MS", 300),
            idle_threshold=_env_seconds("CASCADE_IDLE_THRESHOLD_MS", 10000),
            alert_cooldown=_env_seconds("CASCADE_ALERT_COOLDOWN_MS", 15000),
            http_timeout=_env_seconds("CASCADE_HTTP_TIMEOUT_MS", 2000),
            http_max_bytes=_env_int("CASCADE_HTTP_MAX_BYTES", 10 * 1024 * 1024),
            target_types=_lowered(parse_csv(os.environ.get("CASCADE_TARGET_TYPES"), DEFAULT_TARGET_TYPES)),
            title_keywords=_lowered(
                parse_csv(os.environ.get("CASCADE_TARGET_TITLE_KEYWORDS"), DEFAULT_TITLE_KEYWORDS)
            ),
            url_keywords=_lowered(parse_csv(os.environ.get("CASCADE_TARGET_URL_KEYWORDS"), DEFAULT_URL_KEYWORDS)),
            preferred_title_keywords=_lowered(
                parse_csv(os.environ.get("CASCADE_PREFERRED_TITLE_KEYWORDS"), DEFAULT_PREFERRED_TITLE_KEYWORDS)
            ),
            preferred_url_keywords=_lowered(
                parse_csv(os.environ.get("CASCADE_PREFERRED_URL_KEYWORDS"), DEFAULT_PREFERRED_URL_KEYWORDS)
            ),
            fallback_keyword=(os.environ.get("CASCADE_FALLBACK_KEYWORD") or "workbench").strip().lower(),
            root_selectors=parse_csv(os.environ.get("CASCADE_ROOT_SELECTORS"), DEFAULT_ROOT_SELECTORS),
            input_selectors=parse_csv(os.environ.get("CASCADE_INPUT_SELECTORS"), DEFAULT_INPUT_SELECTORS),
            send_selectors=parse_csv(os.environ.get("CASCADE_SEND_SELECTORS"), DEFAULT_SEND_SELECTORS),
        )

    def list_url(self, port: int) -> str:
        return f"http://{self.host}:{int(port)}/json/list"
