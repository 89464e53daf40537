"""Authorization engine: owns the token/code state of one bridge instance.

Codes move ``issued -> consumed`` on a successful exchange or become expired
once ``now > expires_at``; expiry is evaluated lazily and expired codes are
swept whenever a new code is issued.  Access tokens stay active until revoked.

All access to the state and every file write happens under a single lock, so
one engine can be shared by a threaded HTTP server.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Literal

from .credentials import CredentialStore
from .errors import AuthEvent, ConfigurationError, StatePersistenceError
from .legacy_store import LegacyLookup
from .models import AuthCodeRecord, AuthorizationState, TokenPair
from .persistence import (
    LoadStatus,
    load_state,
    migrate_legacy_store,
    read_legacy_state,
    resolve_path,
    save_state,
)
from .service_account import ServiceAccountKey
from .tokens import TokenGenerator

__all__ = ["AuthorizationEngine", "InitResult", "DEFAULT_AUTH_CODE_TTL"]

_log = logging.getLogger("smarthome_bridge.auth.engine")

DEFAULT_AUTH_CODE_TTL = timedelta(minutes=10)
_MAX_COLLISION_RETRIES = 8


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _redact(value: str) -> str:
    return value[:6] + "..." if len(value) > 6 else "***"


@dataclass(slots=True)
class InitResult:
    path: Path
    source: Literal["loaded", "migrated", "seeded"]
    errors: list[AuthEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class AuthorizationEngine:
    def __init__(
        self,
        *,
        credentials: CredentialStore | None = None,
        token_generator: TokenGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
        auth_code_ttl: timedelta = DEFAULT_AUTH_CODE_TTL,
        single_use_codes: bool = True,
        legacy_store: LegacyLookup | None = None,
        service_account: ServiceAccountKey | None = None,
        on_event: Callable[[AuthEvent], None] | None = None,
    ) -> None:
        self.credentials = credentials or CredentialStore()
        self._tokens = token_generator or TokenGenerator()
        self._clock = clock or _utcnow
        self._ttl = auth_code_ttl
        self._single_use = single_use_codes
        self._legacy = legacy_store
        self._service_account = service_account
        self._on_event = on_event
        self._lock = threading.RLock()
        self._state: AuthorizationState | None = None
        self._path: Path | None = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def initialize(self, instance_id: str, base_dir: str | Path) -> InitResult:
        """Load, migrate or seed the state for ``instance_id``.

        Never raises on persistence problems: they are returned in
        ``InitResult.errors`` and sent to ``on_event``, and the engine keeps a
        usable in-memory state regardless.
        """
        path = resolve_path(instance_id, base_dir)
        errors: list[AuthEvent] = []
        source: Literal["loaded", "migrated", "seeded"] = "loaded"
        with self._lock:
            self._path = path
            migrated = None
            try:
                migrated = migrate_legacy_store(path, self._legacy)
            except StatePersistenceError as exc:
                # legacy entry stays in place; serve its tokens from memory this run
                _log.warning("legacy auth migration could not be saved: %s", exc)
                errors.append(AuthEvent("error", exc, detail="migrate"))
                migrated = read_legacy_state(self._legacy)
            except (OSError, ValueError) as exc:
                _log.warning("legacy auth migration failed: %s", exc)
                errors.append(AuthEvent("error", exc, detail="migrate"))

            result = load_state(path)
            if result.status is LoadStatus.LOADED and result.state is not None:
                state = result.state
                source = "migrated" if migrated is not None else "loaded"
                _log.info("auth state %s from %s", source, path)
            elif migrated is not None:
                state = migrated
                source = "migrated"
            else:
                if result.status is LoadStatus.CORRUPT:
                    errors.append(AuthEvent("error", result.error, detail="load"))
                _log.info("auth state not persisted at %s, creating new", path)
                state = AuthorizationState()
                source = "seeded"

            self._state = state
            if not state.tokens:
                self._seed_token()
                event = self._persist("seed")
                if event is not None:
                    errors.append(event)

        for event in errors:
            self._emit(event)
        return InitResult(path=path, source=source, errors=errors)

    @property
    def initialized(self) -> bool:
        return self._state is not None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def state(self) -> AuthorizationState:
        with self._lock:
            return self._require_state().copy()

    # ------------------------------------------------------------------
    # authorization codes
    # ------------------------------------------------------------------
    def generate_auth_code(self) -> str:
        with self._lock:
            state = self._require_state()
            self._purge_expired(state)
            code = self._unique(state.auth_codes)
            canonical = state.canonical_token()
            state.auth_codes[code] = AuthCodeRecord(
                expires_at=self._clock() + self._ttl,
                token=canonical.access_token if canonical else None,
            )
            event = self._persist("authcode")
        if event is not None:
            self._emit(event)
        return code

    def lookup_auth_code(self, code: str) -> AuthCodeRecord | None:
        with self._lock:
            return self._require_state().auth_codes.get(code)

    def exchange_code_for_token(self, code: str) -> TokenPair | None:
        event = None
        with self._lock:
            state = self._require_state()
            record = state.auth_codes.get(code) if isinstance(code, str) else None
            if record is None:
                _log.debug("invalid code %s", _redact(str(code)))
                return None
            if record.is_expired(self._clock()):
                _log.debug("expired code %s expires_at=%s", _redact(code), record.expires_at.isoformat())
                return None

            token = state.tokens.get(record.token) if record.token else None
            if token is None:
                token = state.canonical_token()
            if token is None:
                _log.debug("could not find an access token for code %s", _redact(code))
                return None

            if self._single_use:
                del state.auth_codes[code]
                event = self._persist("consume")
            pair = TokenPair(access_token=token.access_token, refresh_token=token.refresh_token)
        if event is not None:
            self._emit(event)
        return pair

    def purge_expired_codes(self) -> int:
        with self._lock:
            removed = self._purge_expired(self._require_state())
            event = self._persist("purge") if removed else None
        if event is not None:
            self._emit(event)
        return removed

    # ------------------------------------------------------------------
    # access tokens
    # ------------------------------------------------------------------
    def is_valid_access_token(self, token: str) -> bool:
        if not isinstance(token, str):
            return False
        with self._lock:
            valid = token in self._require_state().tokens
        _log.debug("access token %s valid=%s", _redact(token), valid)
        return valid

    def revoke_token(self, token: str) -> bool:
        """Drop ``token``; a replacement is seeded when it was the last one."""
        with self._lock:
            state = self._require_state()
            if state.tokens.pop(token, None) is None:
                return False
            if not state.tokens:
                self._seed_token()
            event = self._persist("revoke")
        _log.info("access token %s revoked", _redact(token))
        if event is not None:
            self._emit(event)
        return True

    # ------------------------------------------------------------------
    # service account
    # ------------------------------------------------------------------
    def get_jwt_client_email(self) -> str:
        return self._require_service_account().client_email

    def get_jwt_private_key(self) -> str:
        return self._require_service_account().private_key

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _require_state(self) -> AuthorizationState:
        if self._state is None:
            raise RuntimeError("AuthorizationEngine.initialize() has not been called")
        return self._state

    def _require_service_account(self) -> ServiceAccountKey:
        if self._service_account is None:
            raise ConfigurationError("no service-account key configured")
        return self._service_account

    def _unique(self, existing: dict) -> str:
        for _ in range(_MAX_COLLISION_RETRIES):
            value = self._tokens.generate()
            if value not in existing:
                return value
        raise RuntimeError("token generator keeps producing colliding values")

    def _seed_token(self) -> None:
        state = self._require_state()
        token = self._unique(state.tokens)
        state.add_token(token)
        _log.info("seeded access token %s", _redact(token))

    def _purge_expired(self, state: AuthorizationState) -> int:
        now = self._clock()
        expired = [code for code, record in state.auth_codes.items() if record.is_expired(now)]
        for code in expired:
            del state.auth_codes[code]
        if expired:
            _log.debug("purged %d expired auth codes", len(expired))
        return len(expired)

    def _persist(self, reason: str) -> AuthEvent | None:
        if self._path is None or self._state is None:
            return None
        try:
            save_state(self._path, self._state)
        except StatePersistenceError as exc:
            _log.warning("failed to persist auth state (%s): %s", reason, exc)
            return AuthEvent("error", exc, detail=reason)
        return None

    def _emit(self, event: AuthEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            _log.exception("auth event listener failed")
