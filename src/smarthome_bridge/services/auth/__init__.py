"""Authorization and token-lifecycle core of the smart-home bridge."""
from .credentials import CredentialStore
from .engine import DEFAULT_AUTH_CODE_TTL, AuthorizationEngine, InitResult
from .errors import AuthError, AuthEvent, ConfigurationError, StatePersistenceError
from .legacy_store import LEGACY_AUTH_KEY, LegacyKeyValueStore, LegacyLookup
from .models import AuthCodeRecord, AuthorizationState, TokenPair, TokenRecord
from .persistence import (
    LoadResult,
    LoadStatus,
    load_state,
    migrate_legacy_store,
    read_legacy_state,
    resolve_path,
    save_state,
)
from .service_account import ServiceAccountKey
from .tokens import TokenGenerator

__all__ = [
    "CredentialStore",
    "DEFAULT_AUTH_CODE_TTL",
    "AuthorizationEngine",
    "InitResult",
    "AuthError",
    "AuthEvent",
    "ConfigurationError",
    "StatePersistenceError",
    "LEGACY_AUTH_KEY",
    "LegacyKeyValueStore",
    "LegacyLookup",
    "AuthCodeRecord",
    "AuthorizationState",
    "TokenPair",
    "TokenRecord",
    "LoadResult",
    "LoadStatus",
    "load_state",
    "migrate_legacy_store",
    "read_legacy_state",
    "resolve_path",
    "save_state",
    "ServiceAccountKey",
    "TokenGenerator",
]
