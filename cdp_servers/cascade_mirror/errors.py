"""
Error taxonomy for the mirror.

Transport and capture failures derive from `CascadeError` (itself an
`HttpClientError`, so callers that already handle HTTP failures keep working).
Command failures are structured `CommandError`s whose `reason` is surfaced to
the caller unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .http_client import HttpClientError


class CascadeError(HttpClientError):
    pass


class ConnectionRefused(CascadeError):
    pass


class CallTimeout(CascadeError):
    pass


class ConnectionClosed(CascadeError):
    pass


class NotFound(CascadeError):
    pass


class RemoteError(CascadeError):
    def __init__(self, message: str, *, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data

    @classmethod
    def from_payload(cls, method: str, payload: Any) -> RemoteError:
        if isinstance(payload, dict):
            code = payload.get("code")
            message = str(payload.get("message") or "remote error")
            return cls(f"{method}: {message}", code=code if isinstance(code, int) else None, data=payload.get("data"))
        return cls(f"{method}: {payload}")


@dataclass
class CommandError(Exception):
    """Structured failure of a user-intent command."""

    command: str
    reason: str
    suggestion: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.reason)

    def __str__(self) -> str:
        return f"{self.command}: {self.reason}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": type(self).__name__, "command": self.command, "reason": self.reason}
        if self.suggestion:
            out["suggestion"] = self.suggestion
        if self.details:
            out["details"] = self.details
        return out


class EmptyInput(CommandError):
    pass


class InvalidParams(CommandError):
    """Request is missing a required parameter; not a command failure."""


class NoEditorFound(CommandError):
    pass


class InjectionRejected(CommandError):
    pass


class ControlNotFound(CommandError):
    pass


class NoMatch(CommandError):
    pass


class NoControl(CommandError):
    pass


__all__ = [
    "CallTimeout",
    "CascadeError",
    "CommandError",
    "ConnectionClosed",
    "ConnectionRefused",
    "ControlNotFound",
    "EmptyInput",
    "InjectionRejected",
    "InvalidParams",
    "NoControl",
    "NoEditorFound",
    "NoMatch",
    "NotFound",
    "RemoteError",
]
