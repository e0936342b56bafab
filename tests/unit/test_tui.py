"""
Tests for the Textual shell: key normalization and pilot-driven runs
against fake collaborators.
"""

import threading
from unittest.mock import patch

import pytest

from arbor.focus import FocusMode
from arbor.tui import ArborApp, normalize_key

from conftest import FakeSessions, make_session


class BlockingSessions(FakeSessions):
    """Blocks briefly in wait_for_event so the listener does not spin."""

    def __init__(self):
        super().__init__()
        self._never = threading.Event()

    def wait_for_event(self, timeout=None):
        self._never.wait(0.05)
        return False


@pytest.fixture
def sessions():
    return BlockingSessions()


class TestNormalizeKey:
    @pytest.mark.parametrize("key,character,expected", [
        ("question_mark", "?", "?"),
        ("S", "S", "S"),
        ("1", "1", "1"),
        ("escape", "\x1b", "esc"),
        ("pageup", None, "pgup"),
        ("pagedown", None, "pgdown"),
        ("ctrl+j", "\n", "ctrl+enter"),
        ("ctrl+c", "\x03", "ctrl+c"),
        ("alt+w", "w", "alt+w"),
        ("enter", "\r", "enter"),
        ("space", " ", " "),
    ])
    def test_mapping(self, key, character, expected):
        assert normalize_key(key, character) == expected


class TestArborApp:
    @pytest.mark.asyncio
    async def test_startup_loads_worktrees(self, controller, state):
        state.worktree_dropdown.selected_id = ""
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert [w.branch for w in app.app_state.worktrees] == ["main", "feature-x"]
            assert app.app_state.selected_worktree().branch == "main"

    @pytest.mark.asyncio
    async def test_help_overlay_opens_and_closes(self, controller, state):
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            await pilot.press("question_mark")
            assert app.app_state.focus == FocusMode.HELP
            assert app.screen.query_one("#overlay").display

            await pilot.press("escape")
            assert app.app_state.focus == FocusMode.OUTPUT
            assert not app.screen.query_one("#overlay").display

    @pytest.mark.asyncio
    async def test_typed_prompt_reaches_input(self, controller, state):
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            await pilot.press("n", "f", "e", "a", "t")

            assert app.app_state.focus == FocusMode.INPUT
            assert app.app_state.input.text == "feat"

    @pytest.mark.asyncio
    async def test_create_worktree_round_trip(self, controller, state, factory):
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            await pilot.press("n", "f", "e", "a", "t", "enter")
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert ("new_atomic", "feat", "") in factory.calls
            assert "Created worktree feat" in app.app_state.worktree_op_messages

    @pytest.mark.asyncio
    async def test_quit_without_sessions(self, controller, state):
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            with patch.object(app, "exit") as exit_:
                await pilot.press("q")

            exit_.assert_called_once()

    @pytest.mark.asyncio
    async def test_viewed_session_output(self, controller, state, sessions):
        sessions.output = "agent says hi"
        sessions.add(make_session("p-1"))
        state.sessions = sessions.get_all_sessions()
        app = ArborApp(controller, state)

        async with app.run_test() as pilot:
            await pilot.press("1")
            await app.workers.wait_for_complete()
            await pilot.pause()

            assert app.app_state.viewing_session_id == "p-1"
            assert app._output_text == "agent says hi"
