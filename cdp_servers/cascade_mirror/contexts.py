"""Execution-context bookkeeping and multi-context script evaluation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import CascadeError, ConnectionClosed

if TYPE_CHECKING:
    from .session_cdp import CdpConnection

CONTEXT_CREATED = "Runtime.executionContextCreated"
CONTEXT_DESTROYED = "Runtime.executionContextDestroyed"
CONTEXTS_CLEARED = "Runtime.executionContextsCleared"


class ExecutionContextRegistry:
    """Ordered, de-duplicated set of live context ids plus one sticky preference."""

    def __init__(self) -> None:
        self._ids: list[int] = []
        self.preferred: int | None = None

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, context_id: object) -> bool:
        return context_id in self._ids

    def ids(self) -> list[int]:
        return list(self._ids)

    def add(self, context_id: int) -> None:
        if context_id not in self._ids:
            self._ids.append(context_id)

    def remove(self, context_id: int) -> None:
        if context_id in self._ids:
            self._ids.remove(context_id)

    def clear(self) -> None:
        self._ids.clear()

    def prefer(self, context_id: int | None) -> None:
        if context_id is not None:
            self.preferred = context_id

    def candidates(self) -> list[int]:
        """Sticky context first, then every known context in discovery order."""
        ordered: list[int] = []
        if self.preferred is not None:
            ordered.append(self.preferred)
        for cid in self._ids:
            if cid not in ordered:
                ordered.append(cid)
        return ordered

    def on_event(self, method: str, params: dict[str, Any]) -> None:
        if method == CONTEXT_CREATED:
            ctx = params.get("context")
            cid = ctx.get("id") if isinstance(ctx, dict) else None
            if isinstance(cid, int):
                self.add(cid)
        elif method == CONTEXT_DESTROYED:
            cid = params.get("executionContextId")
            if isinstance(cid, int):
                self.remove(cid)
        elif method == CONTEXTS_CLEARED:
            self.clear()


@dataclass(frozen=True)
class EvalResult:
    value: Any
    context_id: int | None


def _result_value(res: dict[str, Any]) -> tuple[bool, Any]:
    if not isinstance(res, dict) or res.get("exceptionDetails"):
        return False, None
    remote = res.get("result")
    if not isinstance(remote, dict):
        return True, None
    return True, remote.get("value")


async def evaluate_across_contexts(
    conn: CdpConnection,
    expression: str,
    *,
    accept: Callable[[Any], bool] | None = None,
    await_promise: bool = False,
    timeout: float | None = None,
) -> EvalResult | None:
    """Evaluate `expression` until some context yields an accepted value.

    Order: sticky context, known contexts, then the target's default context.
    A closed connection aborts the search with `ConnectionClosed`; every other
    per-context failure just moves on to the next candidate.
    """
    base: dict[str, Any] = {"expression": expression, "returnByValue": True}
    if await_promise:
        base["awaitPromise"] = True

    attempts: list[int | None] = [*conn.contexts.candidates(), None]
    for context_id in attempts:
        params = dict(base)
        if context_id is not None:
            params["contextId"] = context_id
        try:
            res = await conn.call("Runtime.evaluate", params, timeout=timeout)
        except ConnectionClosed:
            raise
        except CascadeError:
            continue
        ok, value = _result_value(res)
        if not ok:
            continue
        if accept is None or accept(value):
            conn.contexts.prefer(context_id)
            return EvalResult(value=value, context_id=context_id)
    return None


__all__ = [
    "CONTEXTS_CLEARED",
    "CONTEXT_CREATED",
    "CONTEXT_DESTROYED",
    "EvalResult",
    "ExecutionContextRegistry",
    "evaluate_across_contexts",
]
