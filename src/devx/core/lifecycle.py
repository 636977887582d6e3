"""Session lifecycle: create, attach, remove, list, flag.

Each verb sequences the lower layers in a fixed order. Best-effort steps
(route publication, editor, tmux, teardown) turn failures into warnings on
the returned result; everything else raises a DevxError.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from devx.core.bootstrap import copy_bootstrap_files
from devx.core.caddy import (
    SyncResult,
    publish_routes,
    session_hostnames,
    session_route_ids,
)
from devx.core.cleanup import run_cleanup
from devx.core.config import Config
from devx.core.context import Context
from devx.core.envrc import write_envrc
from devx.core.errors import DevxError, ExternalUnavailable, NotFound, ValidationError
from devx.core.locator import PROJECT_DIR_NAME, TEMPLATE_FILE
from devx.core.naming import port_var, validate_session_name
from devx.core.ports import allocate_ports, validate_port_overrides
from devx.core.projects import ProjectRegistry
from devx.core.session import Session
from devx.core.state import DEFAULT_ATTENTION_REASON, SessionStore
from devx.core.tmux import (
    TmuxError,
    attach_session as attach_tmux,
    get_current_session,
    has_session,
    in_tmux,
    kill_session,
    launch_session,
    list_sessions as list_tmux_sessions,
    switch_client,
    tmux_name,
)
from devx.core.tmuxp import TMUXP_FILE, load_template, write_layout
from devx.core.worktree import create_worktree, pull_branch, remove_worktree, repo_root

Notify = Callable[[str], None]


class _Progress:
    """Collects warnings and forwards progress lines to an optional callback."""

    def __init__(self, notify: Notify | None) -> None:
        self.notify = notify
        self.warnings: list[str] = []

    def info(self, message: str) -> None:
        if self.notify is not None:
            self.notify(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        if self.notify is not None:
            self.notify(f"Warning: {message}")

    def warn_all(self, messages: list[str]) -> None:
        for message in messages:
            self.warn(message)


@dataclass
class CreateOptions:
    """Options for create_session.

    Attributes:
        project: Registry alias. Defaults to the project containing cwd.
        ports: Explicit service to port mapping instead of allocation.
        no_tmux: Do not launch tmux.
        no_editor: Do not launch the editor.
        detach: Replace an existing record or conflicting worktree.
    """

    project: str | None = None
    ports: dict[str, int] | None = None
    no_tmux: bool = False
    no_editor: bool = False
    detach: bool = False


@dataclass
class CreateResult:
    """Outcome of creating a session."""

    session: Session
    hostnames: dict[str, str] = field(default_factory=dict)
    copied: list[str] = field(default_factory=list)
    tmux_launched: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class RemoveResult:
    """Outcome of removing a session."""

    session: Session
    warnings: list[str] = field(default_factory=list)


@dataclass
class AttachResult:
    """Outcome of attaching to a session."""

    session: Session
    flag_cleared: bool = False
    editor_pid: int = 0
    tmux_action: str = ""
    warnings: list[str] = field(default_factory=list)


@dataclass
class FlagResult:
    """Outcome of flagging a session."""

    name: str
    flagged: bool
    reason: str = ""
    skipped_current: bool = False


@dataclass
class ClearResult:
    """Outcome of removing every session."""

    removed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class SessionStatus:
    """A session with the live state of its external pieces.

    Attributes:
        session: The stored record.
        tmux: "attached", "detached" or "none".
        editor: "running" or "stopped".
        caddy: "active", "stale" or "" when the session has no routes.
        slot: Quick-access slot, 0 when the session holds none.
    """

    session: Session
    tmux: str
    editor: str
    caddy: str
    slot: int = 0


def resolve_project(
    ctx: Context, registry: ProjectRegistry, alias: str | None
) -> tuple[str, Path]:
    """Pick the project a new session belongs to.

    An explicit alias wins, then the innermost registered project containing
    cwd, then the git repository cwd is in (standalone, no alias).

    Raises:
        NotFound: If the alias is not registered.
        ValidationError: If cwd is in no project and no git repository.
    """
    if alias:
        return alias, registry.get(alias).path
    if (found := registry.find_containing(ctx.cwd)) is not None:
        return found[0], found[1].path
    root = repo_root(ctx.tools.git, ctx.cwd)
    if root is None:
        raise ValidationError(
            "not in a git repository. Use 'devx project add' to register "
            "this project first"
        )
    return "", root


def _template_for(ctx: Context, config: Config, project_path: Path) -> str:
    return load_template(
        config.template_path(),
        project_path / PROJECT_DIR_NAME / TEMPLATE_FILE,
        ctx.locator.template_path,
    )


def _publish(ctx: Context, config: Config, sessions) -> SyncResult:
    return publish_routes(
        sessions,
        ctx.tools.caddy,
        ctx.locator.caddy_config_path,
        admin_listen=config.caddy_admin,
        disabled=config.disable_caddy,
    )


def create_session(
    ctx: Context,
    name: str,
    options: CreateOptions | None = None,
    notify: Notify | None = None,
) -> CreateResult:
    """Create a session: worktree, ports, record, routes, files, editor, tmux.

    Args:
        ctx: Invocation context.
        name: Session name (also the branch and tmux session name).
        options: Create options.
        notify: Receives progress and ``Warning:`` lines as they happen.

    Returns:
        CreateResult with the stored record and collected warnings.

    Raises:
        ValidationError: Bad name or ports, or the session already exists.
        NotFound: Unknown project alias.
        PortExhaustion: No free ports.
        WorktreeConflict, BranchInUse: The worktree cannot be created.
        SubprocessFailure: git failed.
    """
    options = options or CreateOptions()
    progress = _Progress(notify)

    validate_session_name(name)
    registry = ctx.load_registry()
    alias, project_path = resolve_project(ctx, registry, options.project)
    project_path = project_path.resolve()
    config = ctx.config_for(project_path)

    store = ctx.load_store()
    if name in store and not options.detach:
        raise ValidationError(f"session '{name}' already exists")

    if alias and registry.get(alias).auto_pull:
        branch = registry.get(alias).default_branch
        progress.info(f"Pulling latest changes for {branch}...")
        progress.warn_all(pull_branch(ctx.tools.git, project_path, branch))

    if options.ports:
        ports = validate_port_overrides(options.ports)
    else:
        ports = allocate_ports(config.ports, probe=ctx.port_probe)

    path, worktree_warnings = create_worktree(
        ctx.tools.git, project_path, name, options.detach
    )
    for message in worktree_warnings:
        progress.info(message)

    bootstrap = copy_bootstrap_files(project_path, path, config.bootstrap_files)
    for copied in bootstrap.copied:
        progress.info(f"  Copied: {copied}")
    progress.warn_all(bootstrap.warnings)

    now = ctx.clock()
    store.sessions.pop(name, None)
    session = store.add(
        Session(
            name=name,
            branch=name,
            path=path,
            ports=ports,
            created_at=now,
            updated_at=now,
            project_alias=alias,
            project_path=project_path,
        )
    )

    routes: dict[str, str] = {}
    hostnames = session_hostnames(session)
    if not config.disable_caddy:
        sync = _publish(ctx, config, store)
        progress.warn_all(sync.warnings)
        if sync.reloaded and hostnames:
            routes = dict(hostnames)
            session = store.update(name, lambda s: setattr(s, "routes", routes))
            for svc, hostname in routes.items():
                url = f"{config.host_scheme}://{hostname}"
                progress.info(f"Route: {url} -> {ports[svc]}")

    progress.warn_all(
        write_envrc(
            path, name, ports, routes, config.host_scheme, direnv=ctx.tools.direnv
        )
    )
    write_layout(
        path,
        _template_for(ctx, config, project_path),
        name,
        ports,
        routes,
        config.host_scheme,
    )

    progress.info(f"Created session '{name}' at {path}")
    if ports:
        allocated = " ".join(f"{port_var(svc)}={ports[svc]}" for svc in sorted(ports))
        progress.info(f"Allocated ports: {allocated}")

    if not options.no_editor:
        editor = ctx.editor(config)
        try:
            pid = editor.launch(path)
        except ExternalUnavailable as e:
            progress.warn(f"failed to launch editor: {e}")
            pid = 0
        if pid:
            progress.info(f"Opened editor: {editor.command} {path} (PID: {pid})")
            session = store.update(name, lambda s: setattr(s, "editor_pid", pid))

    tmux_launched = False
    if not options.no_tmux:
        if in_tmux(ctx.environ):
            progress.info("Already inside tmux. Session created but not launched.")
            progress.info(f"To launch manually: tmuxp load {path / TMUXP_FILE}")
        else:
            progress.info("Launching tmux session...")
            try:
                progress.warn_all(
                    launch_session(
                        ctx.tools.tmux,
                        ctx.tools.tmuxp,
                        path,
                        name,
                        settle=ctx.settle_seconds,
                    )
                )
                tmux_launched = True
            except DevxError as e:
                progress.warn(
                    f"failed to launch tmux session: {e}. "
                    f"You can manually launch with: tmuxp load {path / TMUXP_FILE}"
                )

    return CreateResult(
        session=session,
        hostnames=hostnames,
        copied=bootstrap.copied,
        tmux_launched=tmux_launched,
        warnings=progress.warnings,
    )


def _stop_processes(
    ctx: Context, store: SessionStore, session: Session, progress: _Progress
) -> None:
    """Forget the editor pid and kill the tmux session."""
    if session.editor_pid:
        store.update(session.name, lambda s: setattr(s, "editor_pid", 0))
    tmux = ctx.tools.tmux
    if not tmux.available() or not has_session(tmux, session.name):
        return
    try:
        kill_session(tmux, session.name)
        progress.info(f"Killed tmux session '{session.name}'")
    except TmuxError as e:
        progress.warn(f"failed to kill tmux session: {e}")


def _release_workspace(
    ctx: Context, config: Config, session: Session, progress: _Progress
) -> None:
    """Run the cleanup command, then remove the worktree."""
    if config.cleanup_command:
        progress.info("Running cleanup command...")
        progress.warn_all(
            run_cleanup(
                ctx.tools.shell,
                config.cleanup_command,
                session,
                ctx.environ,
                config.host_scheme,
            )
        )
    progress.warn_all(
        remove_worktree(ctx.tools.git, session.project_path, session.path)
    )


def remove_session(
    ctx: Context, name: str, notify: Notify | None = None
) -> RemoveResult:
    """Tear a session down and delete its record.

    Editor pid, tmux session, routes, cleanup command and worktree are
    handled best-effort in that order; the record is deleted last.

    Raises:
        NotFound: If the session does not exist.
    """
    progress = _Progress(notify)
    store = ctx.load_store()
    session = store.require(name)
    config = ctx.config_for(session.project_path)

    _stop_processes(ctx, store, session, progress)

    if not config.disable_caddy:
        remaining = [s for s in store if s.name != name]
        progress.warn_all(_publish(ctx, config, remaining).warnings)

    _release_workspace(ctx, config, session, progress)

    store.remove(name)
    progress.info(f"Removed session '{name}'")
    return RemoveResult(session=session, warnings=progress.warnings)


def clear_sessions(ctx: Context, notify: Notify | None = None) -> ClearResult:
    """Remove every session, then publish an empty route set."""
    progress = _Progress(notify)
    store = ctx.load_store()
    sessions = list(store)
    for session in sessions:
        progress.info(f"Removing session '{session.name}'...")
        config = ctx.config_for(session.project_path)
        _stop_processes(ctx, store, session, progress)
        _release_workspace(ctx, config, session, progress)
    removed = store.clear()
    if not ctx.config.disable_caddy:
        progress.warn_all(_publish(ctx, ctx.config, store).warnings)
    return ClearResult(removed=removed, warnings=progress.warnings)


def attach_session(
    ctx: Context, name: str, notify: Notify | None = None
) -> AttachResult:
    """Re-enter a session: clear its flag, revive the editor, attach tmux.

    The record is stamped before tmux takes over the terminal; nothing is
    written after the attach returns.

    Raises:
        NotFound: If the session or its workspace directory is gone.
    """
    progress = _Progress(notify)
    store = ctx.load_store()
    session = store.require(name)
    if not session.path.exists():
        raise NotFound(f"session path '{session.path}' no longer exists")
    config = ctx.config_for(session.project_path)
    result = AttachResult(session=session)

    progress.info(f"Attaching to session '{name}' at {session.path}")
    if session.attention_flag:
        result.flag_cleared = True
        progress.info("Cleared attention flag")

    editor = ctx.editor(config)
    if session.editor_pid and editor.is_running(session.editor_pid):
        progress.info(f"Editor is already running (PID: {session.editor_pid})")
        result.editor_pid = session.editor_pid
    elif editor.command:
        if session.editor_pid:
            progress.info(
                f"Editor process {session.editor_pid} is no longer running, "
                f"launching new instance"
            )
        try:
            pid = editor.launch(session.path)
        except ExternalUnavailable as e:
            progress.warn(f"failed to launch editor: {e}")
            pid = 0
        if pid:
            store.update(name, lambda s: setattr(s, "editor_pid", pid))
            result.editor_pid = pid

    result.session = store.record_attach(name)

    tmux = ctx.tools.tmux
    nested = in_tmux(ctx.environ)
    layout = session.path / TMUXP_FILE
    try:
        if has_session(tmux, name):
            if nested:
                switch_client(tmux, name)
            else:
                attach_tmux(tmux, name)
            result.tmux_action = "attached"
        elif layout.exists():
            progress.info("Tmux session not found, launching new session...")
            progress.warn_all(
                launch_session(
                    tmux,
                    ctx.tools.tmuxp,
                    session.path,
                    name,
                    settle=ctx.settle_seconds,
                    attach=not nested,
                )
            )
            if nested:
                switch_client(tmux, name)
            result.tmux_action = "launched"
        else:
            progress.warn(f"tmuxp config not found at {layout}")
    except DevxError as e:
        progress.warn(f"failed to attach tmux session: {e}")

    result.warnings = progress.warnings
    return result


def current_session_name(ctx: Context, store: SessionStore | None = None) -> str:
    """Best-effort guess of the session the user is working in.

    Checks, in order: cwd is a session path, cwd is inside a session path,
    the enclosing tmux session is named after a stored session.

    Returns:
        The session name, or "" if none matches.
    """
    store = store if store is not None else ctx.load_store()
    cwd = ctx.cwd.resolve()
    sessions = list(store)
    for session in sessions:
        if session.path.resolve() == cwd:
            return session.name
    for session in sessions:
        if session.path.resolve() in cwd.parents:
            return session.name
    current = get_current_session(ctx.tools.tmux, ctx.environ)
    if not current:
        return ""
    if current in store:
        return current
    for session in sessions:
        if tmux_name(session.name) == current:
            return session.name
    return ""


def flag_session(
    ctx: Context,
    name: str,
    reason: str = DEFAULT_ATTENTION_REASON,
    force: bool = False,
) -> FlagResult:
    """Flag a session for attention.

    Without force, the session the user is currently in is not flagged.

    Raises:
        ValidationError: If the name is invalid.
        NotFound: If the session does not exist.
    """
    validate_session_name(name)
    store = ctx.load_store()
    store.require(name)
    reason = reason or DEFAULT_ATTENTION_REASON
    if not force and current_session_name(ctx, store) == name:
        return FlagResult(name=name, flagged=False, reason=reason, skipped_current=True)
    store.set_attention(name, reason)
    return FlagResult(name=name, flagged=True, reason=reason)


def clear_flag(ctx: Context, name: str) -> Session:
    """Clear a session's attention flag.

    Raises:
        NotFound: If the session does not exist.
    """
    return ctx.load_store().clear_attention(name)


def sync_routes(ctx: Context) -> SyncResult:
    """Publish the route set for the current store."""
    return _publish(ctx, ctx.config, ctx.load_store())


def list_sessions(ctx: Context, probe_routes: bool = True) -> list[SessionStatus]:
    """All sessions with live tmux, editor and route status, sorted by name.

    With probe_routes false the proxy is not queried and route status is
    derived from the record alone.
    """
    store = ctx.load_store()
    sessions = list(store)
    tmux_state = {t.name: t.attached for t in list_tmux_sessions(ctx.tools.tmux)}

    live_ids: set[str] = set()
    if probe_routes and sessions and not ctx.config.disable_caddy:
        try:
            with ctx.caddy_client() as client:
                live_ids = client.route_ids()
        except ExternalUnavailable:
            live_ids = set()

    editor_probe = ctx.editor()
    statuses = []
    for session in sessions:
        attached = tmux_state.get(tmux_name(session.name))
        if attached is None:
            tmux = "none"
        elif attached:
            tmux = "attached"
        else:
            tmux = "detached"
        running = session.editor_pid and editor_probe.is_running(session.editor_pid)
        editor = "running" if running else "stopped"
        if live_ids.intersection(session_route_ids(session)):
            caddy = "active"
        elif session.routes:
            caddy = "stale"
        else:
            caddy = ""
        statuses.append(
            SessionStatus(session, tmux, editor, caddy, store.slot_for(session.name))
        )
    return statuses
