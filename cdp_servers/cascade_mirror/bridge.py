"""
CascadeBridge: the facade the request-routing layer talks to.

Wires discovery, the snapshot pipeline, commands and alerts around one shared
registry and operation gate, and owns the two background loops.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Any

from .alerts import EventHub, IdleAlertSink
from .capture import Snapshot, capture_snapshot
from .commands import CommandRouter
from .config import MirrorConfig
from .discovery import ConnectionOpener, DiscoveryEngine, OperationGate, TargetFetcher
from .errors import NotFound
from .http_client import list_targets
from .registry import Cascade, Registry
from .render import DisplayTree
from .snapshot import Capturer, SnapshotPipeline

logger = logging.getLogger("cascade_mirror.bridge")


class CascadeBridge:
    def __init__(
        self,
        config: MirrorConfig | None = None,
        *,
        fetch_targets: TargetFetcher = list_targets,
        open_connection: ConnectionOpener | None = None,
        capture: Capturer = capture_snapshot,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or MirrorConfig.from_env()
        self.registry = Registry()
        self.gate = OperationGate()
        self.hub = EventHub()
        self.alerts = IdleAlertSink(self.config.alert_cooldown, clock=clock)
        self.discovery = DiscoveryEngine(
            self.config,
            self.registry,
            gate=self.gate,
            hub=self.hub,
            fetch_targets=fetch_targets,
            open_connection=open_connection,
        )
        self.snapshots = SnapshotPipeline(
            self.config,
            self.registry,
            gate=self.gate,
            hub=self.hub,
            alerts=self.alerts,
            capture=capture,
            clock=clock,
        )
        self.commands = CommandRouter(self.config, self.registry, refresh=self.snapshots.refresh_once, clock=clock)
        self._capture = capture
        self._views: dict[str, DisplayTree] = {}
        self._tasks: list[asyncio.Task] = []
        self.discovery.on_evict(self._forget)

    def _forget(self, cascade_id: str) -> None:
        self.commands.forget(cascade_id)
        self._views.pop(cascade_id, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def sessions(self) -> list[dict[str, Any]]:
        return self.registry.summaries()

    def _cascade(self, cascade_id: str) -> Cascade:
        cascade = self.registry.get(cascade_id)
        if cascade is None:
            raise NotFound(f"Cascade not found: {cascade_id}")
        return cascade

    def get_snapshot(self, cascade_id: str) -> Snapshot:
        cascade = self._cascade(cascade_id)
        if cascade.snapshot is None:
            raise NotFound(f"No snapshot yet for {cascade_id}")
        return cascade.snapshot

    def get_style_bundle(self, cascade_id: str) -> dict[str, Any]:
        cascade = self._cascade(cascade_id)
        hints = dict(cascade.snapshot.hints) if cascade.snapshot is not None else {}
        return {"css": cascade.css, **hints}

    async def tasks_view(self, cascade_id: str) -> Snapshot:
        """Capture including input controls; returned directly, never stored."""
        cascade = self._cascade(cascade_id)
        snap = await self._capture(cascade.connection, self.config, keep_inputs=True)
        if snap is None:
            raise NotFound(f"Tasks view unavailable for {cascade_id}")
        return snap

    def render_view(self, cascade_id: str) -> str:
        """Merge the latest snapshot into this cascade's display tree and serialize it."""
        snap = self.get_snapshot(cascade_id)
        view = self._views.get(cascade_id)
        if view is None:
            view = self._views[cascade_id] = DisplayTree(self.config.wrapper_id)
        view.apply(snap.html)
        return view.html()

    # ─────────────────────────────────────────────────────────────────────────
    # Background loops
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def needs_polling(self) -> bool:
        return self.hub.observer_count > 0 or self.alerts.has_subscribers

    async def _discovery_loop(self) -> None:
        while True:
            try:
                await self.discovery.scan()
            except Exception:  # noqa: BLE001
                logger.exception("scan_failed")
            await asyncio.sleep(self.config.discovery_interval)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval)
            if not self.needs_polling:
                continue
            try:
                await self.snapshots.poll()
            except Exception:  # noqa: BLE001
                logger.exception("poll_failed")

    def start(self) -> None:
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._discovery_loop(), name="cascade-discovery"),
            loop.create_task(self._poll_loop(), name="cascade-poll"),
        ]
        logger.info(
            "bridge_started ports=%s discovery=%.1fs poll=%.1fs",
            ",".join(str(p) for p in self.config.ports),
            self.config.discovery_interval,
            self.config.poll_interval,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        # In-flight cycles run as their own tasks and outlive the loops.
        tasks += [t for t in (self.gate.scan_task, self.gate.poll_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.commands.cancel_pending()
        await self.discovery.close_all()
        self._views.clear()


__all__ = ["CascadeBridge"]
