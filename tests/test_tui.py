"""Tests for devx TUI."""

import httpx
import pytest

from devx.core.lifecycle import CreateOptions, SessionStatus, create_session
from devx.core.updates import UpdateCheckState
from devx.tui.app import DevxApp
from devx.tui.widgets.session_table import SessionTable, format_row


def quiet_create(ctx, name):
    return create_session(ctx, name, CreateOptions(no_tmux=True)).session


def test_format_row(ctx):
    """Test a session renders as name, branch, ports, hosts, state and flag."""
    session = quiet_create(ctx, "feat-foo")
    session.attention_flag = True
    session.attention_reason = "done"
    row = format_row(SessionStatus(session, "detached", "running", "active", 2))

    assert row[0] == "2"
    assert row[1] == "feat-foo"
    assert row[2] == "feat-foo"
    assert row[3] == f"API_PORT={session.ports['api']} UI_PORT={session.ports['ui']}"
    assert row[4] == "feat-foo-api.localhost feat-foo-ui.localhost"
    assert row[5:] == ("detached", "running", "! done")


def test_format_row_basedomain_and_no_slot(ctx):
    """Test hosts render under the base domain and a slotless row is blank."""
    session = quiet_create(ctx, "feat-foo")
    row = format_row(SessionStatus(session, "none", "stopped", ""), "dev.test")

    assert row[0] == ""
    assert row[4] == "feat-foo-api.dev.test feat-foo-ui.dev.test"


@pytest.mark.asyncio
async def test_app_launches(ctx):
    """Test that the app launches without error."""
    app = DevxApp(ctx)
    async with app.run_test():
        assert app.is_running


@pytest.mark.asyncio
async def test_app_shows_empty_message(ctx):
    """Test that empty state shows message."""
    app = DevxApp(ctx)
    async with app.run_test():
        table = app.query_one(SessionTable)
        assert table.display is False
        assert app.query_one("#empty-message").display is True


@pytest.mark.asyncio
async def test_app_displays_sessions(ctx):
    """Test that app displays sessions."""
    quiet_create(ctx, "a")
    quiet_create(ctx, "b")
    ctx.load_store().set_attention("b", "review")

    app = DevxApp(ctx)
    async with app.run_test():
        table = app.query_one(SessionTable)
        assert table.display is True
        assert table.row_count == 2
        assert table.selected_name() == "a"
        assert app.sub_title == "2 sessions, 1 flagged"


@pytest.mark.asyncio
async def test_app_slot_keys_move_cursor(ctx):
    """Test number keys jump to the session holding that slot."""
    for name in ("c", "a", "b"):
        quiet_create(ctx, name)

    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        table = app.query_one(SessionTable)
        assert table.get_row_at(0)[:2] == ["2", "a"]
        await pilot.press("1")
        assert table.selected_name() == "c"
        await pilot.press("3")
        assert table.selected_name() == "b"
        await pilot.press("7")
        assert table.selected_name() == "b"


@pytest.mark.asyncio
async def test_app_clear_flag_binding(ctx):
    """Test c clears the flag of the selected session."""
    quiet_create(ctx, "a")
    ctx.load_store().set_attention("a", "review")

    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        await pilot.press("c")
        await pilot.pause()
        assert not ctx.load_store().require("a").attention_flag
        assert app.sub_title == "1 sessions, 0 flagged"


@pytest.mark.asyncio
async def test_app_delete_binding(ctx):
    """Test d then y removes the selected session."""
    quiet_create(ctx, "a")

    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        await pilot.press("d")
        await pilot.press("y")
        await pilot.pause()
        assert "a" not in ctx.load_store()
        assert app.query_one(SessionTable).display is False


@pytest.mark.asyncio
async def test_app_delete_cancelled(ctx):
    """Test d then n keeps the session."""
    quiet_create(ctx, "a")

    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        await pilot.press("d")
        await pilot.press("n")
        await pilot.pause()
        assert "a" in ctx.load_store()


@pytest.mark.asyncio
async def test_app_new_session_binding(ctx):
    """Test n prompts for a name and creates the session."""
    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        await pilot.press("n")
        await pilot.press(*"featnew")
        await pilot.press("enter")
        await pilot.pause()
        assert "featnew" in ctx.load_store()
        assert app.query_one(SessionTable).row_count == 1
    assert ctx.tools.tmuxp.calls == []


@pytest.mark.asyncio
async def test_app_quit_binding(ctx):
    """Test that q quits the app."""
    app = DevxApp(ctx)
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert not app.is_running


@pytest.mark.asyncio
async def test_app_announces_release(git_repo, make_context):
    """Test a newer release is checked for once and recorded."""
    index = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"info": {"version": "999.0.0"}})
    )
    ctx = make_context(git_repo, index_transport=index, check_updates=True)
    app = DevxApp(ctx)
    async with app.run_test():
        await app._update_task
    state = UpdateCheckState.load(ctx.locator.update_check_path)
    assert state.last_notified_version == "999.0.0"


@pytest.mark.asyncio
async def test_app_skips_release_check(ctx):
    """Test no release check runs unless the context asks for one."""
    app = DevxApp(ctx)
    async with app.run_test():
        assert app._update_task is None
    assert not ctx.locator.update_check_path.exists()
