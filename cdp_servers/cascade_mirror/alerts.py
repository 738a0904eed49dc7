"""Outbound notifications: observer fan-out and the idle attention alert."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .registry import Cascade

logger = logging.getLogger("cascade_mirror.alerts")

SESSION_LIST_CHANGED = "sessionListChanged"
SNAPSHOT_CHANGED = "snapshotChanged"
AGENT_IDLE = "agentIdle"

Listener = Callable[[str, dict[str, Any]], None]


class EventHub:
    """Fan-out of `sessionListChanged` / `snapshotChanged` to observers."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    @property
    def observer_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: str, params: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, params)
            except Exception as exc:  # noqa: BLE001
                # A failing observer must never break discovery or polling.
                logger.warning("listener_failed event=%s error=%s", event, exc)


class SubscriberGone(Exception):
    """Raised by an alert subscriber whose endpoint no longer accepts deliveries."""


AlertDelivery = Callable[[dict[str, Any]], None]


class IdleAlertSink:
    """Delivers "agent ready" alerts to endpoint-keyed subscribers.

    A single cooldown applies across every cascade: after one alert goes out,
    further idle alerts are dropped until the cooldown has elapsed.
    """

    def __init__(self, cooldown: float = 15.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.cooldown = float(cooldown)
        self._clock = clock
        self._subscribers: dict[str, AlertDelivery] = {}
        self._last_sent: float | None = None

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, endpoint: str, deliver: AlertDelivery) -> None:
        self._subscribers[endpoint] = deliver
        logger.info("alert_subscribed endpoint=%s total=%d", endpoint, len(self._subscribers))

    def unsubscribe(self, endpoint: str) -> bool:
        return self._subscribers.pop(endpoint, None) is not None

    def _deliver(self, payload: dict[str, Any]) -> dict[str, int]:
        sent = failed = 0
        stale: list[str] = []
        for endpoint, deliver in list(self._subscribers.items()):
            try:
                deliver(payload)
                sent += 1
            except SubscriberGone:
                stale.append(endpoint)
                failed += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("alert_delivery_failed endpoint=%s error=%s", endpoint, exc)
                failed += 1
        for endpoint in stale:
            self._subscribers.pop(endpoint, None)
        return {"sent": sent, "failed": failed, "total": len(self._subscribers)}

    def notify_idle(self, cascade: Cascade) -> bool:
        """Send the idle alert for `cascade` unless gated; True when delivered."""
        if not self._subscribers:
            return False
        now = self._clock()
        if self._last_sent is not None and now - self._last_sent < self.cooldown:
            logger.debug("idle_alert_suppressed id=%s", cascade.id)
            return False
        self._last_sent = now
        title = cascade.chat_title or "Claude Agent"
        body = f"[{cascade.project}] {title}" if cascade.project else title
        logger.info("agent_idle id=%s body=%s", cascade.id, body)
        self._deliver({"title": "Agent ready", "body": body, "tag": f"cascade-{cascade.id}", "cascadeId": cascade.id})
        return True

    def send_test(self) -> dict[str, Any]:
        """Deliver a test alert, bypassing the cooldown."""
        if not self._subscribers:
            return {"ok": False, "reason": "No subscriptions", "sent": 0, "failed": 0, "total": 0}
        counts = self._deliver(
            {"title": "Claude Mirror", "body": "Test notification - alerts are working!", "tag": "test-notification"}
        )
        return {"ok": True, **counts}


__all__ = [
    "AGENT_IDLE",
    "EventHub",
    "IdleAlertSink",
    "SESSION_LIST_CHANGED",
    "SNAPSHOT_CHANGED",
    "SubscriberGone",
]
