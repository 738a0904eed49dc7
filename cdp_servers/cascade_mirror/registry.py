"""Cascade sessions and the copy-on-write registry that holds them."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .capture import Snapshot
from .session_cdp import CdpConnection


@dataclass
class Cascade:
    """One tracked agent conversation surface."""

    id: str
    connection: CdpConnection
    window_title: str = ""
    chat_title: str | None = None
    project: str = ""
    active: bool = False
    css: str = ""
    snapshot: Snapshot | None = None
    fingerprint: str | None = None
    last_change_at: float | None = None
    idle_notified: bool = False
    _closing: asyncio.Task | None = field(default=None, repr=False)

    @property
    def title(self) -> str:
        return self.chat_title or self.window_title or "Claude"

    def apply_metadata(self, meta: Mapping[str, Any]) -> None:
        if meta.get("chatTitle"):
            self.chat_title = str(meta["chatTitle"])
        if "isActive" in meta:
            self.active = bool(meta.get("isActive"))
        self.connection.contexts.prefer(meta.get("contextId"))

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "project": self.project, "active": self.active}

    async def close(self) -> None:
        """Tear the connection down once; concurrent callers share the same teardown."""
        if self._closing is None:
            self._closing = asyncio.ensure_future(self.connection.close())
        await asyncio.shield(self._closing)


class Registry:
    """Read-only view over the current id -> Cascade mapping.

    The mapping is never mutated in place: `swap` installs a fresh dict and
    returns the previous one, so readers holding the old mapping keep a
    consistent set.
    """

    def __init__(self) -> None:
        self._items: Mapping[str, Cascade] = MappingProxyType({})

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, cascade_id: object) -> bool:
        return cascade_id in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def get(self, cascade_id: str) -> Cascade | None:
        return self._items.get(cascade_id)

    def current(self) -> Mapping[str, Cascade]:
        return self._items

    def values(self) -> list[Cascade]:
        return list(self._items.values())

    def summaries(self) -> list[dict[str, Any]]:
        return [c.summary() for c in self._items.values()]

    def swap(self, new_items: dict[str, Cascade]) -> Mapping[str, Cascade]:
        old = self._items
        self._items = MappingProxyType(dict(new_items))
        return old


__all__ = ["Cascade", "Registry"]
