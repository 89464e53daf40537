"""Operator CLI for the bridge authorization state."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from smarthome_bridge.services.auth import (
    AuthEvent,
    ConfigurationError,
    LegacyKeyValueStore,
    StatePersistenceError,
    migrate_legacy_store,
    resolve_path,
)
from smarthome_bridge.services.bridge import SmartHomeBridge
from smarthome_bridge.services.settings import BridgeSettings

app = typer.Typer(help="Authorization state of the smart-home bridge", no_args_is_help=True)


def _redact(value: str) -> str:
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


def _report(event: AuthEvent) -> None:
    typer.secho(f"auth {event.kind} ({event.detail}): {event.error}", fg=typer.colors.YELLOW, err=True)


def _settings(ctx: typer.Context) -> BridgeSettings:
    return ctx.obj["settings"]


def _bridge(ctx: typer.Context) -> SmartHomeBridge:
    bridge = ctx.obj.get("bridge")
    if bridge is None:
        try:
            bridge = SmartHomeBridge.from_settings(_settings(ctx), on_event=_report)
        except ConfigurationError as exc:
            typer.secho(str(exc), fg=typer.colors.RED, err=True)
            raise typer.Exit(2)
        ctx.obj["bridge"] = bridge
    return bridge


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML settings file"),
    base_dir: Path | None = typer.Option(None, "--base-dir", help="Directory holding the auth state file"),
    instance_id: str | None = typer.Option(None, "--instance-id", help="Bridge instance identifier"),
):
    try:
        settings = BridgeSettings.from_sources(config).with_overrides(base_dir=base_dir, instance_id=instance_id)
    except ConfigurationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"settings": settings}


@app.command("init")
def cmd_init(ctx: typer.Context):
    """Load, migrate or create the auth state and show where it lives."""
    bridge = _bridge(ctx)
    result = bridge.init_result
    typer.echo(f"{result.source}: {result.path}")
    typer.echo(f"tokens: {len(bridge.engine.state.tokens)}")
    if not result.ok:
        raise typer.Exit(1)


@app.command("issue-code")
def cmd_issue_code(ctx: typer.Context):
    typer.echo(_bridge(ctx).issue_authorization_code())


@app.command("exchange")
def cmd_exchange(ctx: typer.Context, code: str):
    payload = _bridge(ctx).exchange_authorization_code(code)
    if payload is None:
        typer.echo("not authorized", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(payload, indent=2))


@app.command("check-token")
def cmd_check_token(ctx: typer.Context, token: str):
    if not _bridge(ctx).check_access_token(token):
        typer.echo("deny")
        raise typer.Exit(1)
    typer.echo("allow")


@app.command("revoke")
def cmd_revoke(ctx: typer.Context, token: str):
    if not _bridge(ctx).engine.revoke_token(token):
        typer.echo(f"unknown token {_redact(token)}", err=True)
        raise typer.Exit(1)
    typer.echo(f"revoked {_redact(token)}")


@app.command("purge-codes")
def cmd_purge_codes(ctx: typer.Context):
    removed = _bridge(ctx).engine.purge_expired_codes()
    typer.echo(f"purged {removed} expired code(s)")


@app.command("migrate")
def cmd_migrate(ctx: typer.Context):
    """Move auth data out of the legacy store if the state file does not exist yet."""
    settings = _settings(ctx)
    path = resolve_path(settings.instance_id, settings.resolved_base_dir)
    try:
        state = migrate_legacy_store(path, LegacyKeyValueStore(settings.legacy_store_dir))
    except (StatePersistenceError, OSError, ValueError) as exc:
        typer.secho(f"migration failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if state is None:
        typer.echo("nothing to migrate")
        return
    typer.echo(f"migrated {len(state.tokens)} token(s) to {path}")


__all__ = ["app"]
