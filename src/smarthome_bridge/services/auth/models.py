"""Dataclasses capturing the persisted authorization state."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

__all__ = [
    "TokenRecord",
    "AuthCodeRecord",
    "AuthorizationState",
    "TokenPair",
    "parse_timestamp",
    "format_timestamp",
]


def parse_timestamp(value: str) -> datetime:
    moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class TokenRecord:
    access_token: str
    refresh_token: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TokenRecord":
        if not isinstance(data, Mapping):
            raise ValueError("token record must be a JSON object")
        access = data.get("accessToken")
        if not isinstance(access, str) or not access:
            raise ValueError("token record is missing accessToken")
        refresh = data.get("refreshToken", access)
        return cls(access_token=access, refresh_token=str(refresh))

    def as_json(self) -> dict[str, Any]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@dataclass(frozen=True, slots=True)
class AuthCodeRecord:
    expires_at: datetime
    # access token this code mints; None for codes written before binding existed
    token: str | None = None

    def is_expired(self, moment: datetime) -> bool:
        return moment > self.expires_at

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AuthCodeRecord":
        if not isinstance(data, Mapping):
            raise ValueError("auth code record must be a JSON object")
        raw = data.get("expiresAt")
        if raw is None:
            raise ValueError("auth code record is missing expiresAt")
        token = data.get("token")
        return cls(expires_at=parse_timestamp(raw), token=str(token) if token else None)

    def as_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"expiresAt": format_timestamp(self.expires_at)}
        if self.token is not None:
            payload["token"] = self.token
        return payload


@dataclass(slots=True)
class AuthorizationState:
    tokens: dict[str, TokenRecord] = field(default_factory=dict)
    auth_codes: dict[str, AuthCodeRecord] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> "AuthorizationState":
        if not isinstance(data, Mapping):
            raise ValueError("authorization state must be a JSON object")
        raw_tokens = data.get("tokens")
        raw_codes = data.get("authcodes")
        if raw_tokens is None:
            raw_tokens = {}
        if raw_codes is None:
            raw_codes = {}
        if not isinstance(raw_tokens, Mapping) or not isinstance(raw_codes, Mapping):
            raise ValueError("tokens and authcodes must be JSON objects")
        tokens = {str(key): TokenRecord.from_mapping(value) for key, value in raw_tokens.items()}
        codes = {str(key): AuthCodeRecord.from_mapping(value) for key, value in raw_codes.items()}
        return cls(tokens=tokens, auth_codes=codes)

    def as_json(self) -> dict[str, Any]:
        return {
            "tokens": {key: record.as_json() for key, record in self.tokens.items()},
            "authcodes": {key: record.as_json() for key, record in self.auth_codes.items()},
        }

    def canonical_token(self) -> TokenRecord | None:
        for record in self.tokens.values():
            return record
        return None

    def add_token(self, token: str) -> TokenRecord:
        record = TokenRecord(access_token=token, refresh_token=token)
        self.tokens[token] = record
        return record

    def copy(self) -> "AuthorizationState":
        return AuthorizationState(
            tokens={key: TokenRecord(r.access_token, r.refresh_token) for key, r in self.tokens.items()},
            auth_codes=dict(self.auth_codes),
        )


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

    def as_dict(self) -> dict[str, str]:
        return {
            "token_type": self.token_type,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }
