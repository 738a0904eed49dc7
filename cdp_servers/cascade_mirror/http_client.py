from __future__ import annotations

import json
import urllib.parse
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen


class HttpClientError(Exception):
    pass


def _build_request(url: str) -> Request:
    return Request(url, headers={"User-Agent": "cascade-mirror/1.0"})


def http_get_json(url: str, *, timeout: float = 2.0, max_bytes: int = 10 * 1024 * 1024) -> Any:
    """Fetch and decode a JSON document, refusing bodies above `max_bytes`."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    try:
        with urlopen(_build_request(url), timeout=timeout) as resp:
            body = resp.read(max_bytes + 1)
    except (TimeoutError, URLError, OSError) as exc:
        raise HttpClientError(str(exc)) from exc
    if len(body) > max_bytes:
        raise HttpClientError(f"Response from {url} exceeds {max_bytes} bytes")
    try:
        return json.loads(body.decode(errors="replace"))
    except json.JSONDecodeError as exc:
        raise HttpClientError(f"Invalid JSON from {url}: {exc}") from exc


def list_targets(url: str, *, timeout: float = 2.0, max_bytes: int = 10 * 1024 * 1024) -> list[dict[str, Any]]:
    """Return the target list served at `url`, or [] when the endpoint is unusable."""
    try:
        data = http_get_json(url, timeout=timeout, max_bytes=max_bytes)
    except HttpClientError:
        return []
    if not isinstance(data, list):
        return []
    return [t for t in data if isinstance(t, dict)]
