"""Positional tree patching that keeps locally-owned display state."""

from __future__ import annotations

import copy
from typing import Any

from bs4 import NavigableString, Tag

# Attributes set by the display layer itself; a fresh capture never removes them.
PRESERVED_ATTRS: tuple[str, ...] = (
    "data-msg-type",
    "data-msg-styled",
    "data-collapsed",
    "data-user-turn",
    "data-code-collapsed",
    "data-collapse-init",
    "data-diff-colored",
)

CONTENT_WRAPPER_CLASS = "user-msg-content"
TOGGLE_CLASS = "user-msg-toggle"
LABEL_CLASS = "user-msg-label"
CODE_TOGGLE_CLASS = "code-collapse-toggle"

_LOCAL_ONLY_CLASSES = (TOGGLE_CLASS, LABEL_CLASS, CODE_TOGGLE_CLASS)


def classes(node: Any) -> list[str]:
    if not isinstance(node, Tag):
        return []
    value = node.get("class")
    if isinstance(value, list):
        return value
    return (value or "").split()


def has_class(node: Any, name: str) -> bool:
    return name in classes(node)


def direct_child(node: Tag, class_name: str) -> Tag | None:
    for child in node.children:
        if isinstance(child, Tag) and has_class(child, class_name):
            return child
    return None


def clone(node: Any) -> Any:
    if isinstance(node, Tag):
        return copy.copy(node)
    return type(node)(str(node))


def _same_kind(old: Any, new: Any) -> bool:
    if type(old) is not type(new):
        return False
    if isinstance(old, Tag):
        return old.name == new.name
    return True


def _patch_attrs(old: Tag, new: Tag) -> None:
    saved = {name: old.attrs[name] for name in PRESERVED_ATTRS if name in old.attrs}
    for name in list(old.attrs):
        if name not in new.attrs and name not in PRESERVED_ATTRS:
            del old.attrs[name]
    for name, value in new.attrs.items():
        if old.attrs.get(name) != value:
            old.attrs[name] = value
    for name, value in saved.items():
        if name not in new.attrs:
            old.attrs[name] = value


def _alignable_children(node: Tag, wrapper: Tag | None) -> list[Any]:
    effective = wrapper if wrapper is not None else node
    out = []
    for child in effective.contents:
        if isinstance(child, Tag):
            names = classes(child)
            if any(c in names for c in _LOCAL_ONLY_CLASSES):
                continue
            if wrapper is None and CONTENT_WRAPPER_CLASS in names:
                continue
        out.append(child)
    return out


def patch_node(old: Any, new: Any) -> Any:
    """Merge `new` into `old` in place and return the node now occupying old's slot.

    `new` is never modified; anything taken from it is cloned.
    """
    if old is None or new is None:
        return old
    if not _same_kind(old, new):
        replacement = clone(new)
        old.replace_with(replacement)
        return replacement

    if isinstance(old, NavigableString):
        if str(old) == str(new):
            return old
        replacement = type(new)(str(new))
        old.replace_with(replacement)
        return replacement

    _patch_attrs(old, new)

    wrapper = direct_child(old, CONTENT_WRAPPER_CLASS)
    effective = wrapper if wrapper is not None else old
    old_children = _alignable_children(old, wrapper)
    new_children = list(new.contents)

    for i in range(max(len(old_children), len(new_children))):
        old_child = old_children[i] if i < len(old_children) else None
        new_child = new_children[i] if i < len(new_children) else None
        if old_child is None:
            toggle = direct_child(old, TOGGLE_CLASS)
            if toggle is not None and wrapper is None:
                toggle.insert_before(clone(new_child))
            else:
                effective.append(clone(new_child))
        elif new_child is None:
            old_child.extract()
        else:
            patch_node(old_child, new_child)
    return old


__all__ = [
    "CODE_TOGGLE_CLASS",
    "CONTENT_WRAPPER_CLASS",
    "LABEL_CLASS",
    "PRESERVED_ATTRS",
    "TOGGLE_CLASS",
    "classes",
    "clone",
    "direct_child",
    "has_class",
    "patch_node",
]
