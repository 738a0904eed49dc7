"""
Client-held display tree.

Each received snapshot is merged into the existing tree with `patch_node`, then
decorated: user turns get a content wrapper and, when long, a collapse toggle;
their sibling turns are tagged as assistant output; diff blocks are colorized;
long code blocks get a collapse toggle; hover-only clutter is dropped.

No layout engine is available here, so "long" is measured in characters and
lines rather than rendered height.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from bs4 import BeautifulSoup, NavigableString, Tag

from ..config import WRAPPER_ID
from .patch import (
    CODE_TOGGLE_CLASS,
    CONTENT_WRAPPER_CLASS,
    TOGGLE_CLASS,
    classes,
    direct_child,
    has_class,
    patch_node,
)

logger = logging.getLogger("cascade_mirror.render")

COLLAPSE_CHARS = 600
CODE_COLLAPSE_LINES = 12

_HOVER_CLUTTER = re.compile(r"group-hover:opacity-100")


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser", multi_valued_attributes=None)


def _is_clutter(tag: Tag) -> bool:
    return any(_HOVER_CLUTTER.search(c) for c in classes(tag))


def _is_diff_block(tag: Tag) -> bool:
    return tag.name == "pre" and has_class(tag, "vsc-diff-block")


def _text_len(node: Tag) -> int:
    return len(node.get_text().strip())


class DisplayTree:
    def __init__(
        self,
        wrapper_id: str = WRAPPER_ID,
        *,
        collapse_chars: int = COLLAPSE_CHARS,
        code_collapse_lines: int = CODE_COLLAPSE_LINES,
    ) -> None:
        self.wrapper_id = wrapper_id
        self.collapse_chars = collapse_chars
        self.code_collapse_lines = code_collapse_lines
        self.document = _parse("")
        self.root: Tag | None = None
        self.last_html: str | None = None

    def html(self) -> str:
        return "" if self.root is None else str(self.root)

    def apply(self, html: str) -> bool:
        """Merge a snapshot; False when nothing was applied."""
        if not html or html == self.last_html:
            return False
        incoming = _parse(html).find(id=self.wrapper_id)
        if not isinstance(incoming, Tag):
            logger.debug("snapshot_without_wrapper id=%s", self.wrapper_id)
            return False
        self.last_html = html

        if self.root is None:
            self.document.append(incoming.extract())
            self.root = incoming
        else:
            self.root = patch_node(self.root, incoming)

        self.decorate()
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Decoration
    # ─────────────────────────────────────────────────────────────────────────

    def decorate(self) -> None:
        if self.root is None:
            return
        self._remove_clutter()
        self._decorate_turns()
        self._colorize_diffs()
        self._collapse_code()

    def _new_tag(self, name: str, **attrs: str) -> Tag:
        return self.document.new_tag(name, attrs=attrs)

    def _remove_clutter(self) -> None:
        for el in self.root.find_all(_is_clutter):
            el.extract()

    def user_turns(self) -> list[Tag]:
        return self.root.find_all(attrs={"data-user-turn": "true"}) if self.root is not None else []

    def _decorate_turns(self) -> None:
        turns = self.user_turns()
        for el in turns:
            if not el.get("data-msg-styled"):
                el["data-msg-type"] = "user"
                el["data-msg-styled"] = "true"

            wrapper = direct_child(el, CONTENT_WRAPPER_CLASS)
            if wrapper is None:
                wrapper = self._new_tag("div", **{"class": CONTENT_WRAPPER_CLASS})
                for child in list(el.contents):
                    wrapper.append(child.extract())
                el.append(wrapper)

            if direct_child(el, TOGGLE_CLASS) is None and _text_len(wrapper) > self.collapse_chars:
                el["data-collapsed"] = "true"
                btn = self._new_tag("button", **{"class": TOGGLE_CLASS})
                btn.string = "Show more"
                el.append(btn)

        for el in turns:
            parent = el.parent
            if parent is None:
                continue
            for sibling in parent.children:
                if sibling is el or not isinstance(sibling, Tag) or sibling.name != "div":
                    continue
                if sibling.get("data-msg-styled") or sibling.get("data-user-turn") == "true":
                    continue
                if _text_len(sibling) < 2:
                    continue
                sibling["data-msg-type"] = "assistant"
                sibling["data-msg-styled"] = "true"

    def _colorize_diffs(self) -> None:
        for block in self.root.find_all(_is_diff_block):
            code = block.find("code")
            if code is None:
                continue
            # A later merge may have put raw text back under a colored block.
            if code.get("data-diff-colored") and code.find("span") is not None:
                continue
            code["data-diff-colored"] = "true"
            lines = code.get_text().split("\n")
            code.clear()
            for i, line in enumerate(lines):
                if line.startswith("+ "):
                    kind = "diff-add"
                elif line.startswith("- "):
                    kind = "diff-del"
                else:
                    kind = "diff-ctx"
                span = self._new_tag("span", **{"class": kind})
                span.string = line
                code.append(span)
                if i < len(lines) - 1:
                    code.append(NavigableString("\n"))

    def _code_blocks(self) -> list[Tag]:
        blocks = list(self.root.find_all(_is_diff_block))
        seen = {id(b) for b in blocks}
        for container in self.root.find_all(lambda tag: has_class(tag, "Fo")):
            for pre in container.find_all("pre"):
                if id(pre) not in seen:
                    seen.add(id(pre))
                    blocks.append(pre)
        return blocks

    def _collapse_code(self) -> None:
        for pre in self._code_blocks():
            if pre.get("data-collapse-init"):
                continue
            pre["data-collapse-init"] = "true"
            if pre.get_text().count("\n") + 1 <= self.code_collapse_lines:
                continue
            pre["data-code-collapsed"] = "true"
            btn = self._new_tag("button", **{"class": CODE_TOGGLE_CLASS})
            btn.string = "Show more"
            pre.insert_after(btn)

    # ─────────────────────────────────────────────────────────────────────────
    # Local interaction
    # ─────────────────────────────────────────────────────────────────────────

    def toggle_collapsed(self, node: Tag) -> bool:
        """Flip a user turn's or code block's collapse state; returns the new state."""
        if node.get("data-collapse-init"):
            attr = "data-code-collapsed"
            sibling = node.find_next_sibling()
            toggle = sibling if has_class(sibling, CODE_TOGGLE_CLASS) else None
        else:
            attr = "data-collapsed"
            toggle = direct_child(node, TOGGLE_CLASS)

        collapsed = node.get(attr) != "true"
        if collapsed:
            node[attr] = "true"
        else:
            del node[attr]
        if toggle is not None:
            toggle.string = "Show more" if collapsed else "Show less"
        return collapsed

    def find(self, *args: Any, **kwargs: Any) -> Tag | None:
        return self.root.find(*args, **kwargs) if self.root is not None else None


__all__ = ["CODE_COLLAPSE_LINES", "COLLAPSE_CHARS", "DisplayTree"]
