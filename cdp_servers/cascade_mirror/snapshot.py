"""Snapshot pipeline: capture, fingerprint, and notify only on change."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from .alerts import SNAPSHOT_CHANGED, EventHub, IdleAlertSink
from .capture import Snapshot, capture_snapshot
from .config import MirrorConfig
from .discovery import OperationGate
from .errors import CascadeError
from .registry import Cascade, Registry

logger = logging.getLogger("cascade_mirror.snapshot")

Capturer = Callable[..., Awaitable[Snapshot | None]]


class SnapshotPipeline:
    def __init__(
        self,
        config: MirrorConfig,
        registry: Registry,
        *,
        gate: OperationGate | None = None,
        hub: EventHub | None = None,
        alerts: IdleAlertSink | None = None,
        capture: Capturer = capture_snapshot,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.registry = registry
        self.gate = gate or OperationGate()
        self.hub = hub or EventHub()
        self.alerts = alerts
        self._capture = capture
        self._clock = clock

    async def poll(self) -> list[str]:
        """One polling tick; skipped while a scan or another tick is in flight."""
        if self.gate.scanning or self.gate.polling:
            return []
        task = self.gate.start_poll(self.poll_once())
        return await asyncio.shield(task)

    async def poll_once(self) -> list[str]:
        live = [c for c in self.registry.values() if c.connection.healthy]
        results = await asyncio.gather(*(self._capture_and_record(c) for c in live))
        changed = [c.id for c, did_change in zip(live, results) if did_change]
        if self.alerts is not None and self.alerts.has_subscribers:
            self.check_idle()
        return changed

    async def refresh_once(self, cascade_id: str) -> bool:
        """Immediate single-session capture outside the tick schedule."""
        cascade = self.registry.get(cascade_id)
        if cascade is None or not cascade.connection.healthy:
            return False
        return await self._capture_and_record(cascade)

    async def _capture_and_record(self, cascade: Cascade) -> bool:
        try:
            snap = await self._capture(cascade.connection, self.config)
        except CascadeError as exc:
            logger.info("capture_failed id=%s error=%s", cascade.id, exc)
            return False
        if snap is None or not snap.html:
            return False
        return self.record(cascade, snap)

    def record(self, cascade: Cascade, snap: Snapshot) -> bool:
        # The cascade may have been evicted while the capture was pending.
        if self.registry.get(cascade.id) is not cascade:
            return False
        if snap.fingerprint == cascade.fingerprint:
            return False
        cascade.snapshot = snap
        cascade.fingerprint = snap.fingerprint
        cascade.last_change_at = self._clock()
        cascade.idle_notified = False
        self.hub.publish(SNAPSHOT_CHANGED, {"id": cascade.id})
        return True

    def check_idle(self) -> list[str]:
        """Mark cascades quiet beyond the idle threshold and raise one alert each."""
        if self.alerts is None:
            return []
        now = self._clock()
        idle: list[str] = []
        for cascade in self.registry.values():
            if cascade.last_change_at is None or cascade.idle_notified:
                continue
            if now - cascade.last_change_at <= self.config.idle_threshold:
                continue
            cascade.idle_notified = True
            idle.append(cascade.id)
            self.alerts.notify_idle(cascade)
        return idle


__all__ = ["SnapshotPipeline"]
