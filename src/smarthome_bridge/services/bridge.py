"""Root composition of the bridge: settings plus the components built from them.

HTTP handlers receive a :class:`SmartHomeBridge` (or just its engine) and call
the narrow operations below with values they extracted from the request.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from smarthome_bridge.services.auth import (
    AuthEvent,
    AuthorizationEngine,
    CredentialStore,
    InitResult,
    LegacyKeyValueStore,
    ServiceAccountKey,
)
from smarthome_bridge.services.settings import BridgeSettings

__all__ = ["SmartHomeBridge"]

_log = logging.getLogger("smarthome_bridge.bridge")


class SmartHomeBridge:
    def __init__(self, settings: BridgeSettings, engine: AuthorizationEngine) -> None:
        self.settings = settings
        self.engine = engine
        self.init_result: InitResult | None = None

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        *,
        on_event: Callable[[AuthEvent], None] | None = None,
        start: bool = True,
    ) -> "SmartHomeBridge":
        """Build every component from ``settings``.

        A broken service-account key raises :class:`ConfigurationError` here;
        persistence trouble does not, it ends up in ``init_result.errors``.
        """
        service_account = None
        if settings.jwt_key_path is not None:
            service_account = ServiceAccountKey.from_file(settings.jwt_key_path)
        credentials = CredentialStore(
            username=settings.username,
            password=settings.password,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
        engine = AuthorizationEngine(
            credentials=credentials,
            auth_code_ttl=timedelta(seconds=settings.auth_code_ttl_seconds),
            single_use_codes=settings.single_use_codes,
            legacy_store=LegacyKeyValueStore(settings.legacy_store_dir),
            service_account=service_account,
            on_event=on_event,
        )
        bridge = cls(settings, engine)
        if start:
            bridge.start()
        return bridge

    def start(self) -> InitResult:
        self.init_result = self.engine.initialize(self.settings.instance_id, self.settings.resolved_base_dir)
        if not self.init_result.ok:
            _log.warning(
                "bridge started with %d auth error(s); state kept in memory",
                len(self.init_result.errors),
            )
        return self.init_result

    def check_user_credentials(self, username: str, password: str) -> bool:
        return self.engine.credentials.is_valid_user(username, password)

    def check_client_credentials(self, client_id: str, client_secret: str | None = None) -> bool:
        return self.engine.credentials.is_valid_client(client_id, client_secret)

    def issue_authorization_code(self) -> str:
        return self.engine.generate_auth_code()

    def exchange_authorization_code(self, code: str) -> dict[str, str] | None:
        pair = self.engine.exchange_code_for_token(code)
        return pair.as_dict() if pair is not None else None

    def check_access_token(self, token: str) -> bool:
        return self.engine.is_valid_access_token(token)

    def service_account_email(self) -> str:
        return self.engine.get_jwt_client_email()

    def service_account_private_key(self) -> str:
        return self.engine.get_jwt_private_key()
