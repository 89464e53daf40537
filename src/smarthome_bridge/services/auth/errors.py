"""Error taxonomy and out-of-band events for the authorization core."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

__all__ = [
    "AuthError",
    "ConfigurationError",
    "StatePersistenceError",
    "AuthEvent",
]


class AuthError(RuntimeError):
    """Base class for authorization core failures."""


class ConfigurationError(AuthError):
    """Raised when startup configuration (settings, service-account key) is unusable."""


class StatePersistenceError(AuthError):
    """Raised when the authorization state file cannot be read or written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(slots=True)
class AuthEvent:
    """Observation delivered on the ``auth`` channel, mostly recovered persistence errors."""

    kind: str
    error: BaseException | None = None
    detail: str = ""
    channel: str = "auth"
    timestamp: datetime = field(default_factory=_utcnow)

    def as_dict(self) -> dict[str, object]:
        return {
            "channel": self.channel,
            "kind": self.kind,
            "error": str(self.error) if self.error is not None else None,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }
