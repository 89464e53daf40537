from __future__ import annotations

import concurrent.futures
import json
from datetime import timedelta
from pathlib import Path

import pytest

from smarthome_bridge.services.auth import (
    LEGACY_AUTH_KEY,
    AuthorizationEngine,
    AuthorizationState,
    ConfigurationError,
    CredentialStore,
    LegacyKeyValueStore,
    ServiceAccountKey,
    TokenPair,
    load_state,
    resolve_path,
    save_state,
)


@pytest.fixture()
def events():
    return []


@pytest.fixture()
def engine(tmp_path, clock, events) -> AuthorizationEngine:
    engine = AuthorizationEngine(
        credentials=CredentialStore("owner", "pw", "assistant", "secret"),
        clock=clock,
        legacy_store=LegacyKeyValueStore(tmp_path / "legacy"),
        on_event=events.append,
    )
    engine.initialize("node-1", tmp_path)
    return engine


def _only_token(engine: AuthorizationEngine) -> str:
    tokens = list(engine.state.tokens)
    assert len(tokens) == 1
    return tokens[0]


def test_fresh_initialize_seeds_one_token(tmp_path, clock):
    engine = AuthorizationEngine(clock=clock)
    result = engine.initialize("node-1", tmp_path)
    assert result.ok
    assert result.source == "seeded"
    assert result.path == resolve_path("node-1", tmp_path)
    state = engine.state
    assert len(state.tokens) == 1
    assert state.auth_codes == {}
    token = next(iter(state.tokens.values()))
    assert token.access_token == token.refresh_token
    assert load_state(result.path).state == state


def test_initialize_loads_existing_state(tmp_path, clock):
    path = resolve_path("node-1", tmp_path)
    existing = AuthorizationState()
    existing.add_token("KEEP")
    save_state(path, existing)

    engine = AuthorizationEngine(clock=clock)
    result = engine.initialize("node-1", tmp_path)
    assert result.source == "loaded"
    assert list(engine.state.tokens) == ["KEEP"]


def test_instances_are_isolated(tmp_path, clock):
    first = AuthorizationEngine(clock=clock)
    second = AuthorizationEngine(clock=clock)
    first.initialize("a", tmp_path)
    second.initialize("b", tmp_path)
    assert first.path != second.path
    assert set(first.state.tokens).isdisjoint(second.state.tokens)


def test_initialize_migrates_legacy_store(tmp_path, clock):
    legacy = LegacyKeyValueStore(tmp_path / "legacy")
    legacy.set_item(LEGACY_AUTH_KEY, {"tokens": {"OLD": {"accessToken": "OLD", "refreshToken": "OLD"}}, "authcodes": {}})
    engine = AuthorizationEngine(clock=clock, legacy_store=legacy)
    result = engine.initialize("node-1", tmp_path)
    assert result.source == "migrated"
    assert list(engine.state.tokens) == ["OLD"]
    assert legacy.get_item(LEGACY_AUTH_KEY) is None

    again = AuthorizationEngine(clock=clock, legacy_store=legacy)
    assert again.initialize("node-1", tmp_path).source == "loaded"
    assert list(again.state.tokens) == ["OLD"]


def test_failed_migration_save_keeps_legacy_tokens_in_memory(tmp_path, clock, events, monkeypatch):
    legacy = LegacyKeyValueStore(tmp_path / "legacy")
    legacy.set_item(LEGACY_AUTH_KEY, {"tokens": {"OLD": {"accessToken": "OLD", "refreshToken": "OLD"}}, "authcodes": {}})

    def boom(self, *args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(Path, "replace", boom)
    engine = AuthorizationEngine(clock=clock, legacy_store=legacy, on_event=events.append)
    result = engine.initialize("node-1", tmp_path)
    assert result.source == "migrated"
    assert not result.ok
    assert [e.detail for e in result.errors] == ["migrate"]
    assert list(engine.state.tokens) == ["OLD"]
    assert engine.is_valid_access_token("OLD")
    assert not result.path.exists()
    assert legacy.get_item(LEGACY_AUTH_KEY) is not None

    # next start with a writable directory completes the migration
    monkeypatch.undo()
    again = AuthorizationEngine(clock=clock, legacy_store=legacy)
    assert again.initialize("node-1", tmp_path).ok
    assert list(again.state.tokens) == ["OLD"]
    assert legacy.get_item(LEGACY_AUTH_KEY) is None


def test_corrupt_file_is_reseeded_and_reported(tmp_path, clock, events):
    path = resolve_path("node-1", tmp_path)
    path.write_text("{broken", encoding="utf-8")
    engine = AuthorizationEngine(clock=clock, on_event=events.append)
    result = engine.initialize("node-1", tmp_path)
    assert result.source == "seeded"
    assert not result.ok
    assert [e.detail for e in result.errors] == ["load"]
    assert events == result.errors
    assert events[0].channel == "auth" and events[0].kind == "error"
    assert len(engine.state.tokens) == 1
    assert load_state(path).found


def test_loaded_state_without_tokens_gets_seeded(tmp_path, clock):
    path = resolve_path("node-1", tmp_path)
    path.write_text(json.dumps({"tokens": {}, "authcodes": {}}), encoding="utf-8")
    engine = AuthorizationEngine(clock=clock)
    engine.initialize("node-1", tmp_path)
    assert len(engine.state.tokens) == 1
    assert len(load_state(path).state.tokens) == 1


def test_unwritable_directory_keeps_memory_state(tmp_path, clock, events, monkeypatch):
    def boom(self, *args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(Path, "replace", boom)
    engine = AuthorizationEngine(clock=clock, on_event=events.append)
    result = engine.initialize("node-1", tmp_path)
    assert not result.ok
    assert result.errors[0].detail == "seed"
    assert engine.initialized
    token = _only_token(engine)
    assert engine.is_valid_access_token(token)
    # steady state keeps working, failures only reported
    code = engine.generate_auth_code()
    assert engine.exchange_code_for_token(code).access_token == token
    assert len(events) >= 2


def test_listener_failure_does_not_escape(tmp_path, clock):
    path = resolve_path("node-1", tmp_path)
    path.write_text("{broken", encoding="utf-8")

    def listener(event):
        raise RuntimeError("listener bug")

    engine = AuthorizationEngine(clock=clock, on_event=listener)
    assert engine.initialize("node-1", tmp_path).source == "seeded"


def test_operations_before_initialize_raise(clock):
    engine = AuthorizationEngine(clock=clock)
    assert not engine.initialized
    with pytest.raises(RuntimeError):
        engine.generate_auth_code()


def test_scenario_issue_exchange_check(engine, clock):
    token = _only_token(engine)
    code = engine.generate_auth_code()
    record = engine.lookup_auth_code(code)
    assert record.expires_at == clock() + timedelta(seconds=600)

    pair = engine.exchange_code_for_token(code)
    assert pair == TokenPair(access_token=token, refresh_token=token)
    assert pair.as_dict() == {"token_type": "bearer", "access_token": token, "refresh_token": token}
    assert engine.is_valid_access_token(token)
    assert not engine.is_valid_access_token("bogus")


def test_lookup_does_not_check_expiry(engine, clock):
    code = engine.generate_auth_code()
    clock.advance(hours=1)
    assert engine.lookup_auth_code(code) is not None
    assert engine.lookup_auth_code("unknown") is None


def test_code_valid_until_expiry_instant(engine, clock):
    code = engine.generate_auth_code()
    clock.advance(minutes=10)
    assert engine.exchange_code_for_token(code) is not None


def test_expired_code_is_rejected(engine, clock):
    code = engine.generate_auth_code()
    clock.advance(minutes=10, seconds=1)
    assert engine.exchange_code_for_token(code) is None


def test_unknown_code_is_rejected(engine):
    assert engine.exchange_code_for_token("nope") is None
    assert engine.exchange_code_for_token(None) is None  # type: ignore[arg-type]


def test_codes_are_single_use(engine):
    code = engine.generate_auth_code()
    assert engine.exchange_code_for_token(code) is not None
    assert engine.exchange_code_for_token(code) is None
    assert engine.lookup_auth_code(code) is None


def test_reusable_codes_when_configured(tmp_path, clock):
    engine = AuthorizationEngine(clock=clock, single_use_codes=False)
    engine.initialize("node-1", tmp_path)
    code = engine.generate_auth_code()
    assert engine.exchange_code_for_token(code) is not None
    assert engine.exchange_code_for_token(code) is not None


def test_custom_ttl(tmp_path, clock):
    engine = AuthorizationEngine(clock=clock, auth_code_ttl=timedelta(seconds=30))
    engine.initialize("node-1", tmp_path)
    code = engine.generate_auth_code()
    clock.advance(seconds=31)
    assert engine.exchange_code_for_token(code) is None


def test_code_is_bound_to_token_at_issue(engine):
    token = _only_token(engine)
    code = engine.generate_auth_code()
    assert engine.lookup_auth_code(code).token == token


def test_code_falls_back_to_canonical_token_when_bound_token_revoked(engine):
    original = _only_token(engine)
    code = engine.generate_auth_code()
    assert engine.revoke_token(original)
    replacement = _only_token(engine)
    assert replacement != original
    assert engine.exchange_code_for_token(code).access_token == replacement


def test_codes_survive_restart(engine, tmp_path, clock):
    code = engine.generate_auth_code()
    restarted = AuthorizationEngine(clock=clock)
    restarted.initialize("node-1", tmp_path)
    assert restarted.exchange_code_for_token(code) is not None


def test_expired_codes_are_swept_on_issue(engine, clock):
    stale = engine.generate_auth_code()
    clock.advance(minutes=11)
    fresh = engine.generate_auth_code()
    assert engine.lookup_auth_code(stale) is None
    assert engine.lookup_auth_code(fresh) is not None


def test_purge_expired_codes(engine, clock):
    engine.generate_auth_code()
    engine.generate_auth_code()
    assert engine.purge_expired_codes() == 0
    clock.advance(minutes=15)
    assert engine.purge_expired_codes() == 2
    assert engine.state.auth_codes == {}


def test_code_collision_is_regenerated(tmp_path, clock):
    class SequenceGenerator:
        def __init__(self, values):
            self._values = iter(values)

        def generate(self):
            return next(self._values)

    engine = AuthorizationEngine(clock=clock, token_generator=SequenceGenerator(["T1", "C1", "C1", "C2"]))
    engine.initialize("node-1", tmp_path)
    assert engine.generate_auth_code() == "C1"
    assert engine.generate_auth_code() == "C2"


def test_revoke_unknown_token(engine):
    assert not engine.revoke_token("missing")


def test_revoke_persists(engine, tmp_path, clock):
    token = _only_token(engine)
    engine.revoke_token(token)
    reloaded = load_state(resolve_path("node-1", tmp_path)).state
    assert token not in reloaded.tokens
    assert len(reloaded.tokens) == 1


def test_state_snapshot_cannot_mutate_engine(engine):
    token = _only_token(engine)
    engine.state.tokens.clear()
    assert engine.is_valid_access_token(token)


def test_non_string_token_is_invalid(engine):
    assert not engine.is_valid_access_token(None)  # type: ignore[arg-type]
    assert not engine.is_valid_access_token(42)  # type: ignore[arg-type]


def test_service_account_accessors(tmp_path, clock, service_account_file, private_key_pem):
    engine = AuthorizationEngine(clock=clock, service_account=ServiceAccountKey.from_file(service_account_file))
    assert engine.get_jwt_client_email() == "bridge@bridge-test.iam.gserviceaccount.com"
    assert engine.get_jwt_private_key() == private_key_pem


def test_service_account_missing(clock):
    engine = AuthorizationEngine(clock=clock)
    with pytest.raises(ConfigurationError):
        engine.get_jwt_client_email()


def test_concurrent_code_issue(engine):
    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as pool:
        codes = list(pool.map(lambda _: engine.generate_auth_code(), range(200)))
    assert len(set(codes)) == 200
    state = engine.state
    assert set(codes) == set(state.auth_codes)
    assert load_state(engine.path).state == state
