"""Session list widget for devx TUI."""

from textual.widgets import DataTable
from textual.widgets.data_table import RowDoesNotExist

from devx.core.lifecycle import SessionStatus
from devx.core.naming import display_host, port_var


def format_row(status: SessionStatus, basedomain: str = "localhost") -> tuple[str, ...]:
    """Cells for one session: #, Name, Branch, Ports, Hosts, Tmux, Editor, Flag."""
    s = status.session
    slot = str(status.slot) if status.slot else ""
    ports = " ".join(f"{port_var(svc)}={s.ports[svc]}" for svc in sorted(s.ports))
    hosts = " ".join(
        display_host(s.routes[svc], basedomain) for svc in sorted(s.routes)
    )
    flag = ""
    if s.attention_flag:
        flag = f"! {s.attention_reason}" if s.attention_reason else "!"
    return (slot, s.name, s.branch, ports, hosts, status.tmux, status.editor, flag)


class SessionTable(DataTable):
    """DataTable widget displaying devx sessions.

    Columns: #, Name, Branch, Ports, Hosts, Tmux, Editor, Flag
    Rows are keyed by session name.
    """

    basedomain = "localhost"

    def on_mount(self) -> None:
        """Set up the table columns on mount."""
        self.add_columns(
            "#", "Name", "Branch", "Ports", "Hosts", "Tmux", "Editor", "Flag"
        )
        self.cursor_type = "row"

    def update_sessions(self, statuses: list[SessionStatus]) -> None:
        """Replace the rows, keeping the cursor on the same session if possible."""
        selected = self.selected_name()
        self.clear()
        for status in statuses:
            self.add_row(
                *format_row(status, self.basedomain), key=status.session.name
            )
        if selected is not None:
            self.select_name(selected)

    def select_name(self, name: str) -> bool:
        """Move the cursor to a session's row. Returns False if it is not shown."""
        try:
            index = self.get_row_index(name)
        except RowDoesNotExist:
            return False
        self.move_cursor(row=index)
        return True

    def selected_name(self) -> str | None:
        """Name of the session under the cursor, or None if the table is empty."""
        if self.row_count == 0:
            return None
        row = self.get_row_at(self.cursor_row)
        return str(row[1])
