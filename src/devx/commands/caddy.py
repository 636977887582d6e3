"""Caddy commands for devx."""

from pathlib import Path

import click

from devx.commands.common import echo_warnings, fail, get_context
from devx.core.caddy import HealthCheckResult, check_health
from devx.core.context import Context
from devx.core.errors import DevxError
from devx.core.lifecycle import sync_routes


@click.group()
def caddy() -> None:
    """Manage Caddy routes for development sessions."""


def _run_check(devx: Context) -> HealthCheckResult:
    sessions = list(devx.load_store())
    with devx.caddy_client() as client:
        return check_health(sessions, client)


def _display(result: HealthCheckResult, config_path: Path) -> None:
    click.echo("=== Caddy Status ===")
    if result.caddy_running:
        click.echo("✓ Caddy is running")
    else:
        click.echo(f"✗ Caddy is not running: {result.caddy_error}")
        click.echo("\nTo start Caddy with the devx routes, run:")
        click.echo(f"  caddy run --config {config_path}")
        return

    click.echo("\n=== Route Summary ===")
    click.echo(f"Routes needed:   {result.routes_needed}")
    click.echo(f"Routes existing: {result.routes_existing}")

    if result.route_statuses:
        click.echo("\n=== Route Details ===")
        for status in result.route_statuses:
            mark = "✓" if status.exists else "✗"
            click.echo(
                f"{mark} {status.session_name}/{status.service_name}: "
                f"{status.hostname} -> localhost:{status.port}"
            )

    missing = result.routes_needed - result.routes_existing
    if missing:
        click.echo(f"\n{missing} routes are missing. Run with --fix to create them.")


@caddy.command()
@click.option("--fix", is_flag=True, help="Republish routes and recheck")
@click.pass_context
def check(ctx: click.Context, fix: bool) -> None:
    """Check Caddy status and verify all session routes."""
    devx = get_context(ctx)
    try:
        result = _run_check(devx)
        _display(result, devx.locator.caddy_config_path)
        if fix and not result.healthy:
            click.echo("\nAttempting to fix issues...")
            echo_warnings(sync_routes(devx).warnings)
            click.echo("\nRechecking after repairs...")
            result = _run_check(devx)
            _display(result, devx.locator.caddy_config_path)
    except DevxError as e:
        fail(e)

    click.echo()
    if result.healthy:
        click.echo("✓ All routes are properly configured")
        return
    click.echo("✗ Some issues were found with Caddy routes")
    if not fix:
        click.echo("  Run 'devx caddy check --fix' to attempt automatic repair")
    raise SystemExit(1)


@caddy.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Republish the complete route set from the session store."""
    devx = get_context(ctx)
    if devx.config.disable_caddy:
        click.echo("Caddy is disabled (disable_caddy); nothing to sync.")
        return
    try:
        result = sync_routes(devx)
    except DevxError as e:
        fail(e)
    echo_warnings(result.warnings)
    click.echo(f"Wrote {result.routes} routes to {result.config_path}")
    if result.reloaded:
        click.echo("Caddy reloaded")
