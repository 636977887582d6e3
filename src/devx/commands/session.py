"""Session commands for devx.

Create, attach, remove, list and flag isolated development sessions.
"""

import click

from devx.commands.common import confirm, fail, get_context
from devx.core.errors import DevxError
from devx.core.lifecycle import (
    CreateOptions,
    SessionStatus,
    attach_session,
    clear_flag,
    clear_sessions,
    create_session,
    flag_session,
    list_sessions,
    remove_session,
)
from devx.core.naming import display_host, port_var
from devx.core.ports import legacy_port_overrides

# Column width cap for PORTS and HOSTS in `session list`
COLUMN_LIMIT = 30


@click.group()
def session() -> None:
    """Manage development sessions."""


@session.command()
@click.argument("name")
@click.option("--project", "-p", default=None, help="Registered project alias")
@click.option("--fe-port", type=int, default=None, help="Frontend (ui) port")
@click.option("--api-port", type=int, default=None, help="API port")
@click.option("--no-tmux", is_flag=True, help="Do not launch a tmux session")
@click.option("--no-editor", is_flag=True, help="Do not launch the editor")
@click.option(
    "--detach",
    is_flag=True,
    help="Replace an existing session or worktree of the same name",
)
@click.pass_context
def create(
    ctx: click.Context,
    name: str,
    project: str | None,
    fe_port: int | None,
    api_port: int | None,
    no_tmux: bool,
    no_editor: bool,
    detach: bool,
) -> None:
    """Create a new development session.

    Creates a git worktree at .worktrees/NAME on branch NAME, allocates
    service ports, publishes routes, writes .envrc and .tmuxp.yaml, then
    opens the editor and tmux.

    Examples:

        devx session create feat-login

        devx session create fix-123 --project web --no-tmux

        devx session create demo --fe-port 3000 --api-port 8080
    """
    devx = get_context(ctx)
    try:
        options = CreateOptions(
            project=project,
            ports=legacy_port_overrides(fe_port, api_port) or None,
            no_tmux=no_tmux,
            no_editor=no_editor,
            detach=detach,
        )
        create_session(devx, name, options, notify=click.echo)
    except DevxError as e:
        fail(e)


@session.command()
@click.argument("name")
@click.pass_context
def attach(ctx: click.Context, name: str) -> None:
    """Attach to an existing session.

    Clears its attention flag, reopens the editor if it is not running and
    attaches (or relaunches) the tmux session.
    """
    devx = get_context(ctx)
    try:
        result = attach_session(devx, name, notify=click.echo)
    except DevxError as e:
        fail(e)
    if result.tmux_action == "attached":
        click.echo(f"Attached to existing tmux session '{name}'")


@session.command("rm")
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def rm(ctx: click.Context, name: str, force: bool) -> None:
    """Remove a session, its worktree, routes and record."""
    devx = get_context(ctx)
    try:
        existing = devx.load_store().require(name)
    except DevxError as e:
        fail(e)

    if not force:
        click.echo(
            f"This will remove session '{name}' and its worktree at {existing.path}"
        )
        if not confirm("Are you sure? (y/N)"):
            click.echo("Aborted")
            return

    try:
        remove_session(devx, name, notify=click.echo)
    except DevxError as e:
        fail(e)


def _clip(text: str) -> str:
    if len(text) > COLUMN_LIMIT:
        return text[: COLUMN_LIMIT - 3] + "..."
    return text


def format_status_row(
    status: SessionStatus, basedomain: str = "localhost"
) -> list[str]:
    """Render one session as SLOT, NAME, BRANCH, PORTS, HOSTS, STATUS, FLAG cells."""
    s = status.session
    ports = ",".join(sorted(f"{port_var(svc)}:{port}" for svc, port in s.ports.items()))
    hosts = ",".join(sorted(display_host(h, basedomain) for h in s.routes.values()))
    parts = [f"tmux:{status.tmux}", f"editor:{status.editor}"]
    if status.caddy:
        parts.append(f"caddy:{status.caddy}")
    flag = f"! {s.attention_reason}" if s.attention_flag else ""
    slot = str(status.slot) if status.slot else ""
    return [slot, s.name, s.branch, _clip(ports), _clip(hosts), ",".join(parts), flag]


def render_table(header: list[str], rows: list[list[str]]) -> str:
    """Left-aligned columns separated by two spaces."""
    widths = [len(h) for h in header]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    lines = []
    for row in [header, ["-" * len(h) for h in header], *rows]:
        cells = [cell.ljust(w) for cell, w in zip(row, widths)]
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


@session.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List sessions with their ports, hosts and status."""
    devx = get_context(ctx)
    try:
        statuses = list_sessions(devx)
    except DevxError as e:
        fail(e)

    if not statuses:
        click.echo("No sessions found.")
        return

    header = ["#", "NAME", "BRANCH", "PORTS", "HOSTS", "STATUS", "FLAG"]
    basedomain = devx.config.basedomain
    rows = [format_status_row(s, basedomain) for s in statuses]
    click.echo(render_table(header, rows))


@session.command()
@click.argument("name")
@click.argument("reason", required=False, default="")
@click.option("--clear", "clear_", is_flag=True, help="Clear the attention flag")
@click.option("--force", is_flag=True, help="Flag even the current session")
@click.pass_context
def flag(ctx: click.Context, name: str, reason: str, clear_: bool, force: bool) -> None:
    """Flag a session as needing attention.

    REASON defaults to "manual". The session you are currently in is not
    flagged unless --force is given.

    Examples:

        devx session flag feat-login "tests finished"

        devx session flag feat-login --clear
    """
    devx = get_context(ctx)
    try:
        if clear_:
            clear_flag(devx, name)
            click.echo(f"Cleared attention flag for session '{name}'")
            return
        result = flag_session(devx, name, reason, force=force)
    except DevxError as e:
        fail(e)

    if result.skipped_current:
        click.echo(
            f"Not flagging session '{name}' because it's currently active "
            "(use --force to override)"
        )
        return
    click.echo(f"Flagged session '{name}' for attention (reason: {result.reason})")


@session.command()
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear(ctx: click.Context, force: bool) -> None:
    """Remove every session."""
    devx = get_context(ctx)
    try:
        store = devx.load_store()
    except DevxError as e:
        fail(e)

    if not len(store):
        click.echo("No sessions to clear.")
        return

    if not force:
        click.echo(f"This will remove {len(store)} sessions:")
        for s in store:
            click.echo(f"  - {s.name}")
        click.echo()
        if not confirm("Are you sure? (y/N)"):
            click.echo("Aborted")
            return

    try:
        result = clear_sessions(devx, notify=click.echo)
    except DevxError as e:
        fail(e)

    if result.warnings:
        click.echo(f"\nCompleted with {len(result.warnings)} warnings.")
    else:
        click.echo(f"\nSuccessfully removed all {len(result.removed)} sessions.")
