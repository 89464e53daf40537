from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from .errors import ConfigurationError

__all__ = ["ServiceAccountKey"]


@dataclass(frozen=True, slots=True)
class ServiceAccountKey:
    """Service-account credential used to sign outbound calls to the assistant cloud."""

    client_email: str
    private_key: str
    project_id: str | None = None
    private_key_id: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ServiceAccountKey":
        if not isinstance(data, Mapping):
            raise ConfigurationError("service-account key must be a JSON object")
        email = data.get("client_email")
        key = data.get("private_key")
        if not isinstance(email, str) or not email:
            raise ConfigurationError("service-account key is missing client_email")
        if not isinstance(key, str) or not key:
            raise ConfigurationError("service-account key is missing private_key")
        account = cls(
            client_email=email,
            private_key=key,
            project_id=data.get("project_id"),
            private_key_id=data.get("private_key_id"),
        )
        account.load_private_key()
        return account

    @classmethod
    def from_file(cls, path: str | Path) -> "ServiceAccountKey":
        path = Path(path).expanduser()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigurationError(f"service-account key file not found: {path}") from exc
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"cannot read service-account key file {path}: {exc}") from exc
        return cls.from_mapping(data)

    def load_private_key(self) -> PrivateKeyTypes:
        try:
            return serialization.load_pem_private_key(self.private_key.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise ConfigurationError("service-account private_key is not a valid PEM key") from exc
