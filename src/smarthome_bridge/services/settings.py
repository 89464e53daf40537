"""Startup configuration for the bridge.

Values are resolved once, in order: dataclass defaults, a YAML file, then
``SMARTHOME_<FIELD>`` environment variables.  There is no reload.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from smarthome_bridge.services.auth.errors import ConfigurationError

__all__ = ["BridgeSettings", "ENV_PREFIX"]

ENV_PREFIX = "SMARTHOME_"
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class BridgeSettings:
    username: str = ""
    password: str = ""
    client_id: str = ""
    client_secret: str = ""
    jwt_key_path: Path | None = None
    base_dir: Path = Path("~/.smarthome-bridge")
    instance_id: str = "default"
    legacy_store_dir: Path | None = None
    auth_code_ttl_seconds: int = 600
    single_use_codes: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_sources(
        cls,
        config_path: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "BridgeSettings":
        values: dict[str, Any] = {}
        if config_path is not None:
            values.update(_read_yaml(Path(config_path)))
        environ = os.environ if env is None else env
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                values[f.name] = raw
        return cls().with_overrides(**values)

    def with_overrides(self, **overrides: Any) -> "BridgeSettings":
        known = {f.name: f for f in fields(self)}
        coerced: dict[str, Any] = {}
        for name, value in overrides.items():
            if name not in known or value is None:
                continue
            coerced[name] = _coerce(name, value)
        return replace(self, **coerced)

    @property
    def resolved_base_dir(self) -> Path:
        return Path(self.base_dir).expanduser().resolve()


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"config file not found: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"cannot read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")
    return data


def _coerce(name: str, value: Any) -> Any:
    if name in ("jwt_key_path", "base_dir", "legacy_store_dir"):
        text = str(value).strip()
        if not text and name == "base_dir":
            raise ConfigurationError("base_dir must not be empty")
        return Path(text).expanduser() if text else None
    if name == "auth_code_ttl_seconds":
        try:
            ttl = int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"auth_code_ttl_seconds must be an integer, got {value!r}") from exc
        if ttl <= 0:
            raise ConfigurationError("auth_code_ttl_seconds must be positive")
        return ttl
    if name == "single_use_codes":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"single_use_codes must be a boolean, got {value!r}")
    if name == "log_level":
        return str(value).upper()
    return str(value)
