"""On-disk persistence of :class:`AuthorizationState`.

One JSON document per bridge instance::

    {"tokens": {"<token>": {"accessToken": ..., "refreshToken": ...}},
     "authcodes": {"<code>": {"expiresAt": "<ISO-8601>"}}}

Writes go to a sibling ``.tmp`` file that is then renamed over the target, so a
crash mid-write leaves the previous document intact.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import StatePersistenceError
from .legacy_store import LEGACY_AUTH_KEY, LegacyLookup
from .models import AuthorizationState

__all__ = [
    "LoadStatus",
    "LoadResult",
    "resolve_path",
    "load_state",
    "save_state",
    "migrate_legacy_store",
    "read_legacy_state",
]

_log = logging.getLogger("smarthome_bridge.auth.persistence")

FILE_PREFIX = "google-smarthome-auth-"


class LoadStatus(str, Enum):
    LOADED = "loaded"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"


@dataclass(frozen=True, slots=True)
class LoadResult:
    status: LoadStatus
    state: AuthorizationState | None = None
    error: Exception | None = None

    @property
    def found(self) -> bool:
        return self.status is LoadStatus.LOADED


def resolve_path(instance_id: str, base_dir: str | Path) -> Path:
    safe = "".join(ch for ch in str(instance_id) if ch.isalnum() or ch in ("_", "-", ".")) or "default"
    return Path(base_dir).expanduser() / f"{FILE_PREFIX}{safe}.json"


def load_state(path: Path) -> LoadResult:
    path = Path(path)
    if not path.exists():
        return LoadResult(LoadStatus.NOT_FOUND)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = AuthorizationState.from_mapping(data)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        _log.warning("failed to read auth state path=%s: %s", path, exc)
        return LoadResult(LoadStatus.CORRUPT, error=exc)
    return LoadResult(LoadStatus.LOADED, state=state)


def save_state(path: Path, state: AuthorizationState) -> Path:
    path = Path(path)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(state.as_json(), ensure_ascii=False, indent=2), encoding="utf-8")
        try:
            os.chmod(tmp, 0o600)
        except PermissionError:
            pass
        tmp.replace(path)
    except OSError as exc:
        try:
            if tmp.exists():
                tmp.unlink()
        except OSError:
            pass
        raise StatePersistenceError(f"failed to write auth state: {exc}", path=str(path)) from exc
    return path


def read_legacy_state(legacy: LegacyLookup | None) -> AuthorizationState | None:
    """Parse the legacy entry without touching either store."""
    if legacy is None:
        return None
    raw = legacy.get_item(LEGACY_AUTH_KEY)
    if raw is None:
        return None
    try:
        return AuthorizationState.from_mapping(raw)
    except (ValueError, TypeError, AttributeError) as exc:
        _log.warning("legacy auth data is malformed, leaving it in place: %s", exc)
        return None


def migrate_legacy_store(path: Path, legacy: LegacyLookup | None) -> AuthorizationState | None:
    """Move state out of the legacy store into ``path`` once.

    Does nothing when ``path`` already exists.  The legacy entry is removed only
    after the new file has been written, so an interrupted run can be retried.
    """
    path = Path(path)
    if path.exists():
        return None
    state = read_legacy_state(legacy)
    if state is None:
        return None
    save_state(path, state)
    legacy.remove_item(LEGACY_AUTH_KEY)
    _log.info("auth data migrated from legacy store to %s", path)
    return state
