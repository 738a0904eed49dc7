"""Discovery engine: enumerate debug targets and reconcile the cascade registry.

One scan cycle:
  1. fetch `/json/list` from every configured port (a dead port yields nothing),
  2. attribute sub-targets to their window's project label,
  3. filter by keyword score, retrying once with the fallback keyword,
  4. reuse healthy sessions, replace stale ones, open new ones,
  5. swap the registry in one step and tear down sessions that disappeared.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from . import matcher
from .alerts import SESSION_LIST_CHANGED, EventHub
from .capture import capture_css, extract_metadata, session_id
from .config import MirrorConfig
from .errors import CascadeError
from .http_client import list_targets
from .matcher import TargetDescriptor
from .registry import Cascade, Registry
from .session_cdp import CdpConnection

logger = logging.getLogger("cascade_mirror.discovery")

TargetFetcher = Callable[..., list[dict[str, Any]]]
ConnectionOpener = Callable[..., Awaitable[CdpConnection]]


class OperationGate:
    """In-flight handles shared by discovery scans and snapshot polls."""

    def __init__(self) -> None:
        self.scan_task: asyncio.Task | None = None
        self.poll_task: asyncio.Task | None = None

    @property
    def scanning(self) -> bool:
        return self.scan_task is not None and not self.scan_task.done()

    @property
    def polling(self) -> bool:
        return self.poll_task is not None and not self.poll_task.done()

    def _release(self, task: asyncio.Task) -> None:
        if self.scan_task is task:
            self.scan_task = None
        if self.poll_task is task:
            self.poll_task = None

    def start_scan(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.scan_task = task
        task.add_done_callback(self._release)
        return task

    def start_poll(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.poll_task = task
        task.add_done_callback(self._release)
        return task

    async def wait_for_poll(self) -> None:
        task = self.poll_task
        if task is not None and not task.done():
            await asyncio.wait({task})


class DiscoveryEngine:
    def __init__(
        self,
        config: MirrorConfig,
        registry: Registry,
        *,
        gate: OperationGate | None = None,
        hub: EventHub | None = None,
        fetch_targets: TargetFetcher = list_targets,
        open_connection: ConnectionOpener | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.gate = gate or OperationGate()
        self.hub = hub or EventHub()
        self._fetch_targets = fetch_targets
        self._open_connection = open_connection or CdpConnection.open
        self._evict_hooks: list[Callable[[str], None]] = []

    def on_evict(self, hook: Callable[[str], None]) -> None:
        self._evict_hooks.append(hook)

    # ─────────────────────────────────────────────────────────────────────────
    # Scan entry point
    # ─────────────────────────────────────────────────────────────────────────

    async def scan(self) -> list[dict[str, Any]]:
        """Run one scan cycle, or join the one already in flight."""
        task = self.gate.scan_task
        if task is None or task.done():
            task = self.gate.start_scan(self._scan())
        return await asyncio.shield(task)

    async def _scan(self) -> list[dict[str, Any]]:
        # A poll that started first finishes before the registry can change.
        await self.gate.wait_for_poll()

        targets = await self._resolve_targets()
        current = self.registry.current()
        ordered = self._unique_by_session(targets)

        results = await asyncio.gather(
            *(self._reconcile(sid, target, current.get(sid)) for sid, target in ordered),
            return_exceptions=True,
        )
        fresh: dict[str, Cascade] = {}
        for (sid, target), result in zip(ordered, results):
            if isinstance(result, Cascade):
                fresh[sid] = result
            elif isinstance(result, BaseException):
                logger.warning("target_setup_failed title=%s error=%s", target.title or target.url, result)

        await self._publish(fresh)
        summaries = self.registry.summaries()
        logger.debug("scan_done targets=%d sessions=%d", len(targets), len(summaries))
        return summaries

    # ─────────────────────────────────────────────────────────────────────────
    # Enumeration + matching
    # ─────────────────────────────────────────────────────────────────────────

    async def _fetch_port(self, port: int) -> list[TargetDescriptor]:
        url = self.config.list_url(port)
        try:
            raw = await asyncio.to_thread(
                self._fetch_targets,
                url,
                timeout=self.config.http_timeout,
                max_bytes=self.config.http_max_bytes,
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug("port_unavailable port=%s error=%s", port, exc)
            return []
        return [TargetDescriptor.from_json(item, port) for item in raw or [] if isinstance(item, dict)]

    def _typed(self, batch: list[TargetDescriptor]) -> list[TargetDescriptor]:
        return [t for t in batch if t.type in self.config.target_types]

    async def _resolve_targets(self) -> list[TargetDescriptor]:
        batches = await asyncio.gather(*(self._fetch_port(port) for port in self.config.ports))

        matched: list[TargetDescriptor] = []
        for batch in batches:
            hits = [
                t
                for t in self._typed(batch)
                if matcher.matches(t, self.config.title_keywords, self.config.url_keywords)
            ]
            matched.extend(matcher.attribute_projects(batch, hits))

        if not matched and self.config.fallback_keyword:
            for batch in batches:
                hits = [t for t in self._typed(batch) if matcher.matches_fallback(t, self.config.fallback_keyword)]
                matched.extend(matcher.attribute_projects(batch, hits))
            if matched:
                logger.info("fallback_match keyword=%s targets=%d", self.config.fallback_keyword, len(matched))

        return matcher.rank_for_display(
            matched,
            self.config.preferred_title_keywords,
            self.config.preferred_url_keywords,
        )

    @staticmethod
    def _unique_by_session(targets: list[TargetDescriptor]) -> list[tuple[str, TargetDescriptor]]:
        seen: set[str] = set()
        out: list[tuple[str, TargetDescriptor]] = []
        for target in targets:
            if not target.ws_url:
                continue
            sid = session_id(target.ws_url)
            if sid in seen:
                continue
            seen.add(sid)
            out.append((sid, target))
        return out

    # ─────────────────────────────────────────────────────────────────────────
    # Reconciliation
    # ─────────────────────────────────────────────────────────────────────────

    async def _reconcile(self, sid: str, target: TargetDescriptor, existing: Cascade | None) -> Cascade | None:
        if existing is not None:
            if existing.connection.healthy:
                try:
                    meta = await extract_metadata(existing.connection, self.config)
                except CascadeError as exc:
                    logger.debug("metadata_refresh_failed id=%s error=%s", sid, exc)
                    meta = None
                if meta:
                    existing.window_title = target.title
                    if target.project:
                        existing.project = target.project
                    existing.apply_metadata(meta)
                    return existing
            logger.info("stale_session id=%s", sid)
            await existing.close()
        return await self._connect(sid, target)

    async def _connect(self, sid: str, target: TargetDescriptor) -> Cascade | None:
        logger.info("connecting title=%s port=%s", target.title or target.url, target.port)
        try:
            conn = await self._open_connection(
                target.ws_url,
                open_timeout=self.config.open_timeout,
                call_timeout=self.config.call_timeout,
                settle_delay=self.config.settle_delay,
            )
        except CascadeError as exc:
            logger.debug("connect_failed id=%s error=%s", sid, exc)
            return None

        try:
            meta = await extract_metadata(conn, self.config)
            if not meta:
                await conn.close()
                return None
            css = await capture_css(conn, self.config)
        except CascadeError as exc:
            logger.debug("session_setup_failed id=%s error=%s", sid, exc)
            await conn.close()
            return None
        except BaseException:
            # Not yet published, so nothing else can tear this connection down.
            await asyncio.shield(conn.close())
            raise

        cascade = Cascade(id=sid, connection=conn, window_title=target.title, project=target.project, css=css)
        cascade.apply_metadata(meta)
        logger.info("session_added id=%s title=%s", sid, cascade.title)
        return cascade

    async def _publish(self, fresh: dict[str, Cascade]) -> None:
        old = self.registry.swap(fresh)
        for sid, cascade in old.items():
            if fresh.get(sid) is cascade:
                continue
            await cascade.close()
            if sid not in fresh:
                logger.info("session_removed id=%s", sid)
                for hook in self._evict_hooks:
                    hook(sid)
        self.hub.publish(SESSION_LIST_CHANGED, {"sessions": self.registry.summaries()})

    async def close_all(self) -> None:
        old = self.registry.swap({})
        await asyncio.gather(*(c.close() for c in old.values()), return_exceptions=True)


__all__ = ["DiscoveryEngine", "OperationGate"]
