"""Main Textual app for devx TUI."""

import asyncio

from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Label, Static

from devx.core.context import Context
from devx.core.errors import DevxError
from devx.core.lifecycle import (
    CreateOptions,
    attach_session,
    clear_flag,
    create_session,
    list_sessions,
    remove_session,
)
from devx.core.naming import is_valid_session_name
from devx.core.state import MAX_SLOTS
from devx.core.updates import check_with_cache, installed_version
from devx.tui.widgets.session_table import SessionTable

# Seconds between background refreshes (tmux and editor state are not watched)
REFRESH_INTERVAL = 5.0


class NewSessionScreen(ModalScreen[str | None]):
    """Prompt for a new session name. Dismisses with the name or None."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Label("New session name:")
            yield Input(placeholder="feature-name", id="session-name")
            yield Static("", id="error")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        name = event.value.strip()
        if not is_valid_session_name(name):
            self.query_one("#error", Static).update(
                f"Invalid session name: {name!r}"
            )
            return
        self.dismiss(name)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no confirmation. Dismisses with True on yes."""

    BINDINGS = [
        ("y", "confirm", "Yes"),
        ("n", "cancel", "No"),
        ("escape", "cancel", "No"),
    ]

    def __init__(self, message: str) -> None:
        super().__init__()
        self._message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Label(self._message)
            with Horizontal():
                yield Button("Yes", variant="error", id="yes")
                yield Button("No", variant="primary", id="no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "yes")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class DevxApp(App):
    """devx TUI application.

    Lists sessions and refreshes when the session store changes. Keys 1-9
    move the cursor to the session holding that quick-access slot.
    """

    TITLE = "devx"
    BINDINGS = [
        ("n", "new_session", "New"),
        ("d", "delete_session", "Delete"),
        ("c", "clear_flag", "Clear flag"),
        ("r", "refresh", "Refresh"),
        ("q", "quit", "Quit"),
        *[
            Binding(str(slot), f"jump_slot({slot})", f"Slot {slot}", show=False)
            for slot in range(1, MAX_SLOTS + 1)
        ],
    ]
    CSS = """
    SessionTable {
        height: 1fr;
    }

    #empty-message {
        width: 100%;
        height: 100%;
        content-align: center middle;
        color: $text-muted;
    }

    ModalScreen {
        align: center middle;
    }

    #dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }

    #error {
        color: $error;
    }
    """

    def __init__(self, context: Context) -> None:
        super().__init__()
        self.context = context
        self._watcher_task: asyncio.Task | None = None
        self._update_task: asyncio.Task | None = None

    def compose(self) -> ComposeResult:
        """Compose the app layout."""
        yield Header()
        table = SessionTable()
        table.basedomain = self.context.config.basedomain
        yield table
        yield Static("No sessions. Press n to create one.", id="empty-message")
        yield Footer()

    def on_mount(self) -> None:
        """Called when the app is mounted."""
        self.refresh_sessions()
        self.set_interval(REFRESH_INTERVAL, self.refresh_sessions)
        self._watcher_task = asyncio.create_task(self._watch_sessions())
        if self.context.check_updates:
            self._update_task = asyncio.create_task(self._check_for_update())

    async def on_unmount(self) -> None:
        """Called when the app is unmounted."""
        if self._watcher_task:
            self._watcher_task.cancel()
            try:
                await self._watcher_task
            except asyncio.CancelledError:
                pass
        if self._update_task:
            self._update_task.cancel()

    def refresh_sessions(self) -> None:
        """Reload and display all sessions."""
        try:
            statuses = list_sessions(self.context, probe_routes=False)
        except DevxError as e:
            self.notify(f"Failed to load sessions: {e}", severity="error")
            return
        table = self.query_one(SessionTable)
        empty_msg = self.query_one("#empty-message", Static)

        if statuses:
            table.update_sessions(statuses)
            table.display = True
            empty_msg.display = False
            flagged = sum(1 for s in statuses if s.session.attention_flag)
            self.sub_title = f"{len(statuses)} sessions, {flagged} flagged"
        else:
            table.display = False
            empty_msg.display = True
            self.sub_title = "0 sessions"

    def _selected(self) -> str | None:
        name = self.query_one(SessionTable).selected_name()
        if name is None:
            self.notify("No session selected", severity="warning")
        return name

    def _report(self, warnings: list[str]) -> None:
        for warning in warnings:
            self.notify(f"Warning: {warning}", severity="warning")

    def action_refresh(self) -> None:
        self.refresh_sessions()

    def action_jump_slot(self, slot: int) -> None:
        """Move the cursor to the session holding a quick-access slot."""
        try:
            name = self.context.load_store().session_for_slot(slot)
        except DevxError as e:
            self.notify(f"Failed to load sessions: {e}", severity="error")
            return
        if not name or not self.query_one(SessionTable).select_name(name):
            self.notify(f"No session in slot {slot}", severity="warning")

    def action_new_session(self) -> None:
        """Ask for a name and create the session without launching tmux."""
        self.push_screen(NewSessionScreen(), self._create)

    def _create(self, name: str | None) -> None:
        if not name:
            return
        try:
            result = create_session(self.context, name, CreateOptions(no_tmux=True))
        except DevxError as e:
            self.notify(f"Failed to create session: {e}", severity="error")
            return
        self._report(result.warnings)
        self.notify(f"Created session '{name}'")
        self.refresh_sessions()

    def action_delete_session(self) -> None:
        """Confirm, then remove the selected session."""
        name = self._selected()
        if name is None:
            return

        def remove(confirmed: bool | None) -> None:
            if not confirmed:
                return
            try:
                result = remove_session(self.context, name)
            except DevxError as e:
                self.notify(f"Failed to remove session: {e}", severity="error")
                return
            self._report(result.warnings)
            self.notify(f"Removed session '{name}'")
            self.refresh_sessions()

        self.push_screen(ConfirmScreen(f"Remove session '{name}'?"), remove)

    def action_clear_flag(self) -> None:
        """Clear the attention flag of the selected session."""
        name = self._selected()
        if name is None:
            return
        try:
            clear_flag(self.context, name)
        except DevxError as e:
            self.notify(f"Failed to clear flag: {e}", severity="error")
            return
        self.refresh_sessions()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Handle row selection (enter key) to attach to the session."""
        name = str(event.row_key.value)
        try:
            with self.suspend():
                result = attach_session(self.context, name)
        except SuspendNotSupported:
            self.notify("Cannot attach from this terminal", severity="error")
            return
        except DevxError as e:
            self.notify(f"Failed to attach: {e}", severity="error")
            return
        self._report(result.warnings)
        self.refresh_sessions()

    async def _watch_sessions(self) -> None:
        """Watch the session store's directory for changes and refresh."""
        from watchfiles import awatch

        store_dir = self.context.locator.sessions_path.parent
        store_dir.mkdir(parents=True, exist_ok=True)

        try:
            async for _changes in awatch(store_dir):
                self.refresh_sessions()
        except asyncio.CancelledError:
            pass
        except FileNotFoundError:
            # Directory was deleted, recreate and restart watching
            store_dir.mkdir(parents=True, exist_ok=True)
            self.refresh_sessions()
            self._watcher_task = asyncio.create_task(self._watch_sessions())

    async def _check_for_update(self) -> None:
        """Announce a newer release, at most once per day and per release."""
        try:
            info = await asyncio.to_thread(
                check_with_cache,
                self.context.locator.update_check_path,
                installed_version(),
                self.context.index_transport,
                self.context.clock,
            )
        except (DevxError, OSError):
            # No notice when the index or the state file is unavailable
            return
        if info is not None:
            self.notify(
                f"devx {info.latest_version} is available. Run 'devx update'.",
                timeout=10,
            )
