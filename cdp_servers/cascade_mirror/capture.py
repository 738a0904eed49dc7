"""Content capture: metadata, CSS and normalized snapshots of a cascade."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bs4 import BeautifulSoup

from . import page_scripts
from .contexts import evaluate_across_contexts

if TYPE_CHECKING:
    from .config import MirrorConfig
    from .session_cdp import CdpConnection

logger = logging.getLogger("cascade_mirror.capture")

_EDITOR_CLASSES = ("monaco-diff-editor", "monaco-editor")
_HINT_KEYS = (
    "bodyBg",
    "bodyColor",
    "textColor",
    "fontFamily",
    "fontSize",
    "lineHeight",
    "codeFontFamily",
    "codeFontSize",
    "vscodeTheme",
)


def fingerprint(text: str) -> str:
    """Short deterministic digest of captured content."""
    return hashlib.sha256(text.encode("utf-8", errors="replace")).hexdigest()[:16]


def session_id(ws_url: str) -> str:
    return fingerprint(ws_url)


@dataclass(frozen=True)
class Snapshot:
    html: str
    hints: dict[str, Any] = field(default_factory=dict)
    fingerprint: str = ""
    captured_at: float = 0.0

    @classmethod
    def from_capture(cls, data: dict[str, Any]) -> Snapshot:
        html = strip_leftover_editors(str(data.get("html") or ""))
        hints = {k: data.get(k) for k in _HINT_KEYS if data.get(k) is not None}
        return cls(html=html, hints=hints, fingerprint=fingerprint(html), captured_at=time.time())

    def to_dict(self) -> dict[str, Any]:
        return {"html": self.html, **self.hints, "fingerprint": self.fingerprint, "capturedAt": self.captured_at}


def _find_block(el: Any, root: Any) -> Any:
    """Outermost `.W` block around an editor, or the editor itself."""
    parent = el.parent
    while parent is not None and parent is not root:
        if "W" in (parent.get("class") or "").split():
            return parent
        parent = parent.parent
    return el


def _attached(el: Any, root: Any) -> bool:
    node = el
    while node is not None:
        if node is root:
            return True
        node = node.parent
    return False


def _has_editor_class(tag: Any) -> bool:
    classes = (tag.get("class") or "").split()
    return any(c in classes for c in _EDITOR_CLASSES)


def strip_leftover_editors(html: str) -> str:
    """Replace editor widgets that survived in-page conversion with plain diff blocks."""
    if not html or not any(marker in html for marker in _EDITOR_CLASSES):
        return html
    soup = BeautifulSoup(html, "html.parser", multi_valued_attributes=None)
    editors = soup.find_all(_has_editor_class)
    if not editors:
        return html
    replaced = 0
    for editor in editors:
        # Editors nested in an already replaced block are detached.
        if not _attached(editor, soup):
            continue
        block = _find_block(editor, soup)
        text = block.get_text().replace("\u00a0", " ").strip()
        if text:
            pre = soup.new_tag("pre", attrs={"class": "vsc-diff-block"})
            code = soup.new_tag("code")
            code.string = text
            pre.append(code)
            block.replace_with(pre)
        else:
            block.decompose()
        replaced += 1
    logger.debug("leftover_editors_stripped count=%d", replaced)
    return str(soup)


async def extract_metadata(conn: CdpConnection, config: MirrorConfig) -> dict[str, Any] | None:
    """Chat title and focus state, or None when no context hosts a chat surface."""
    script = page_scripts.metadata_script(config.root_selectors, config.min_text_len)
    res = await evaluate_across_contexts(conn, script, accept=lambda v: isinstance(v, dict) and bool(v.get("found")))
    if res is None:
        return None
    value = dict(res.value)
    value["contextId"] = res.context_id
    return value


async def capture_css(conn: CdpConnection, config: MirrorConfig) -> str:
    res = await evaluate_across_contexts(
        conn,
        page_scripts.css_script(config.wrapper_id),
        accept=lambda v: isinstance(v, dict) and bool(v.get("css")),
    )
    if res is None:
        return ""
    return str(res.value.get("css") or "")


async def capture_snapshot(conn: CdpConnection, config: MirrorConfig, *, keep_inputs: bool = False) -> Snapshot | None:
    """Capture normalized content; None when no context produced HTML."""
    script = page_scripts.capture_script(
        root_selectors=config.root_selectors,
        input_selectors=config.input_selectors,
        wrapper_id=config.wrapper_id,
        keep_inputs=keep_inputs,
    )
    res = await evaluate_across_contexts(
        conn,
        script,
        accept=lambda v: isinstance(v, dict) and not v.get("error") and bool(v.get("html")),
    )
    if res is None:
        return None
    return Snapshot.from_capture(res.value)


__all__ = [
    "Snapshot",
    "capture_css",
    "capture_snapshot",
    "extract_metadata",
    "fingerprint",
    "session_id",
    "strip_leftover_editors",
]
