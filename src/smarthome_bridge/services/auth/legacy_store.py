"""Read/write access to the legacy file-per-key store used before the flat auth file.

Each key lives in its own file named after the MD5 hex digest of the key and
holding ``{"key": ..., "value": ...}``.  Only the migration path reads from it.
"""
from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterator, Protocol

__all__ = ["LEGACY_AUTH_KEY", "DEFAULT_LEGACY_DIR", "LegacyLookup", "LegacyKeyValueStore"]

_log = logging.getLogger("smarthome_bridge.auth.legacy_store")

LEGACY_AUTH_KEY = "auth_auth"
DEFAULT_LEGACY_DIR = Path(".node-persist") / "storage"


class LegacyLookup(Protocol):
    def get_item(self, key: str) -> Any | None: ...

    def remove_item(self, key: str) -> None: ...


class LegacyKeyValueStore:
    def __init__(self, directory: str | Path | None = None) -> None:
        self._dir = Path(directory) if directory is not None else DEFAULT_LEGACY_DIR

    @property
    def directory(self) -> Path:
        return self._dir

    def _datum_path(self, key: str) -> Path:
        return self._dir / hashlib.md5(key.encode("utf-8")).hexdigest()

    def get_item(self, key: str) -> Any | None:
        path = self._datum_path(key)
        if not path.is_file():
            return None
        try:
            datum = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _log.warning("unreadable legacy datum path=%s: %s", path, exc)
            return None
        if not isinstance(datum, dict) or datum.get("key") != key:
            _log.warning("legacy datum does not match key path=%s", path)
            return None
        return datum.get("value")

    def set_item(self, key: str, value: Any) -> None:
        path = self._datum_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps({"key": key, "value": value}), encoding="utf-8")
        tmp.replace(path)

    def remove_item(self, key: str) -> None:
        try:
            self._datum_path(key).unlink()
        except FileNotFoundError:
            return

    def keys(self) -> Iterator[str]:
        if not self._dir.is_dir():
            return
        for path in sorted(self._dir.iterdir()):
            if not path.is_file() or path.suffix:
                continue
            try:
                datum = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            if isinstance(datum, dict) and isinstance(datum.get("key"), str):
                yield datum["key"]
