"""
Tests for the central controller: focus dispatch, quit confirmation, toasts,
worktree and status refresh, and session snapshots.
"""

import pytest

from arbor.commands import Deferred, Quit, Schedule, names
from arbor.controller import (
    DEFERRED_REFRESH_DELAY,
    GIT_STATUS_INTERVAL,
    NORMAL_BINDINGS,
    PR_STATUS_INTERVAL,
    Controller,
)
from arbor.domain import PRInfo, SessionStatus, WorktreeStatus
from arbor.focus import KEY_DISPATCH_ORDER, FocusMode
from arbor.messages import (
    DeferredRefresh,
    ErrorOccurred,
    ExternalProcessResult,
    GitStatusTick,
    Key,
    PRStatusesLoaded,
    Resized,
    SessionsRefreshed,
    ToastTick,
    WorktreesLoaded,
    WorktreeStatusLoaded,
)
from arbor.settings import Settings
from arbor.state import AppState
from arbor.toast import TOAST_TICK_INTERVAL, ToastLevel

from conftest import FEATURE, MAIN, make_session, run_deferred, scheduled, toast_messages


def press(controller, state, *keys):
    commands = []
    for key in keys:
        state, commands = controller.reduce(state, Key(key))
    return state, commands


class TestReducerPurity:
    def test_input_state_is_not_mutated(self, controller, state):
        before = state.focus
        new_state, _ = controller.reduce(state, Key("?"))

        assert new_state.focus == FocusMode.HELP
        assert state.focus == before

    def test_unknown_message_is_ignored(self, controller, state):
        class Unknown:
            pass

        new_state, commands = controller.reduce(state, Unknown())

        assert commands == []

    def test_every_binding_resolves(self, controller):
        """Each normal-mode binding names a real handler."""
        for binding in NORMAL_BINDINGS:
            assert callable(getattr(controller, binding.handler))


class TestFocusDispatch:
    def test_dispatch_order_starts_with_overlays(self):
        assert KEY_DISPATCH_ORDER[0] == FocusMode.HELP
        assert KEY_DISPATCH_ORDER.index(FocusMode.CONFIRM) < KEY_DISPATCH_ORDER.index(FocusMode.INPUT)
        assert KEY_DISPATCH_ORDER.index(FocusMode.INPUT) < KEY_DISPATCH_ORDER.index(FocusMode.WORKTREE_DROPDOWN)

    def test_input_mode_swallows_bindings(self, controller, state):
        """Typing 'q' into the input line must not quit."""
        state, _ = press(controller, state, "n")
        assert state.focus == FocusMode.INPUT

        state, commands = press(controller, state, "q")

        assert state.input.text == "q"
        assert not any(isinstance(c, Quit) for c in commands)

    def test_confirm_ignores_unrelated_keys(self, controller, state):
        state, _ = press(controller, state, "d")
        assert state.focus == FocusMode.CONFIRM

        state, commands = press(controller, state, "x")

        assert state.focus == FocusMode.CONFIRM
        assert commands == []

    def test_unbound_key_in_normal_mode(self, controller, state):
        state, commands = press(controller, state, "z")

        assert commands == []
        assert state.focus == FocusMode.OUTPUT


class TestQuit:
    def test_quits_without_active_sessions(self, controller, state):
        state.sessions = [make_session(status=SessionStatus.COMPLETED)]

        _, commands = press(controller, state, "q")

        assert any(isinstance(c, Quit) for c in commands)

    def test_asks_when_sessions_active(self, controller, state):
        state.sessions = [make_session(), make_session("b-0002", status=SessionStatus.IDLE)]

        state, commands = press(controller, state, "q")

        assert state.confirm_quit is True
        assert not any(isinstance(c, Quit) for c in commands)
        assert toast_messages(state)[0] == (
            "2 active session(s). Press 'q' or 'y' to confirm quit, any other key to cancel"
        )

    @pytest.mark.parametrize("key", ["q", "y"])
    def test_confirm_quit(self, controller, state, key):
        state.sessions = [make_session()]
        state, _ = press(controller, state, "q")

        state, commands = press(controller, state, key)

        assert any(isinstance(c, Quit) for c in commands)

    def test_other_key_cancels(self, controller, state):
        state.sessions = [make_session()]
        state, _ = press(controller, state, "q")

        state, commands = press(controller, state, "j")

        assert state.confirm_quit is False
        assert toast_messages(state)[0] == "Quit cancelled"
        assert state.scroll_offset == 0

    def test_ctrl_c_always_quits(self, controller, state):
        state.sessions = [make_session()]

        _, commands = press(controller, state, "ctrl+c")

        assert any(isinstance(c, Quit) for c in commands)


class TestToasts:
    def test_first_toast_schedules_tick(self, controller, state):
        state, commands = controller.reduce(state, ErrorOccurred("boom"))

        assert toast_messages(state) == ["boom"]
        assert state.toasts.toasts[0].level == ToastLevel.ERROR
        ticks = scheduled(commands)
        assert len(ticks) == 1
        assert ticks[0].delay == TOAST_TICK_INTERVAL
        assert isinstance(ticks[0].message, ToastTick)

    def test_second_toast_does_not_schedule(self, controller, state):
        state, _ = controller.reduce(state, ErrorOccurred("one"))
        state, commands = controller.reduce(state, ErrorOccurred("two"))

        assert scheduled(commands) == []

    def test_tick_expires_and_stops(self, controller, state, clock):
        state, _ = controller.reduce(state, ErrorOccurred("one"))
        clock.advance(1.0)
        state, commands = controller.reduce(state, ToastTick())
        assert len(scheduled(commands)) == 1

        clock.advance(10.0)
        state, commands = controller.reduce(state, ToastTick())

        assert len(state.toasts) == 0
        assert commands == []

    def test_external_process_failure(self, controller, state):
        state, _ = controller.reduce(state, ExternalProcessResult("editor", error="not found"))

        assert toast_messages(state) == ["Failed to open editor: not found"]

    def test_external_process_success_is_silent(self, controller, state):
        state, commands = controller.reduce(state, ExternalProcessResult("tmux"))

        assert commands == []
        assert len(state.toasts) == 0


class TestWorktreeRefresh:
    def test_init_lists_worktrees_and_listens(self, controller, factory):
        state = AppState.initial("repo", "/wt", Settings())

        state, commands = controller.init(state)

        assert names(commands) == ["refresh-worktrees", "session-events"]
        loaded = commands[0].run()
        assert isinstance(loaded, WorktreesLoaded)
        assert loaded.worktrees == [MAIN, FEATURE]

    def test_refresh_error_becomes_message(self, controller, state, factory):
        def boom(output=None):
            from arbor.exceptions import WorktreeError
            raise WorktreeError("repo missing")

        controller.worktree_factory = boom
        message = controller._refresh_worktrees_cmd(state).run()

        assert message == ErrorOccurred("repo missing")

    def test_loaded_selects_first_when_nothing_selected(self, controller):
        state = AppState.initial("repo", "/wt", Settings())

        state, commands = controller.reduce(state, WorktreesLoaded([MAIN, FEATURE]))

        assert state.selected_worktree() == MAIN
        assert [i.id for i in state.worktree_dropdown.items] == ["main", "feature-x"]
        follow_up = scheduled(commands)
        assert follow_up[0].delay == DEFERRED_REFRESH_DELAY
        assert isinstance(follow_up[0].message, DeferredRefresh)

    def test_loaded_keeps_existing_selection(self, controller, state):
        state, _ = controller.reduce(state, WorktreesLoaded([MAIN, FEATURE]))

        assert state.selected_worktree() == FEATURE

    def test_deferred_refresh_starts_chains_once(self, controller, state):
        state, commands = controller.reduce(state, DeferredRefresh())

        assert "git-status:main" in names(commands)
        assert "pr-statuses" in names(commands)
        delays = sorted(s.delay for s in scheduled(commands))
        assert delays == [GIT_STATUS_INTERVAL, PR_STATUS_INTERVAL]

        state, commands = controller.reduce(state, DeferredRefresh())

        assert scheduled(commands) == []

    def test_git_tick_reschedules(self, controller, state):
        state, commands = controller.reduce(state, GitStatusTick())

        assert names(commands) == ["git-status:main", "git-status:feature-x"]
        assert isinstance(scheduled(commands)[0].message, GitStatusTick)

    def test_git_status_command_loads_status(self, controller, state, factory):
        factory.statuses["main"] = WorktreeStatus(is_dirty=True, ahead=2)

        messages = run_deferred(controller._fetch_git_statuses_cmds(state))

        assert messages[0].branch == "main"
        assert messages[0].status.ahead == 2


class TestStatusMerging:
    def test_git_then_pr_in_any_order(self, controller, state):
        """Git and PR refreshes only write their own fields."""
        pr = PRInfo(number=7, head_branch="feature-x", state="OPEN", review_decision="APPROVED")
        git = WorktreeStatus(is_dirty=True, ahead=1, behind=3, last_commit_msg="wip")

        a, _ = controller.reduce(state, WorktreeStatusLoaded("feature-x", git))
        a, _ = controller.reduce(a, PRStatusesLoaded([pr]))
        b, _ = controller.reduce(state, PRStatusesLoaded([pr]))
        b, _ = controller.reduce(b, WorktreeStatusLoaded("feature-x", git))

        for s in (a, b):
            status = s.worktree_statuses["feature-x"]
            assert status.is_dirty and status.ahead == 1 and status.behind == 3
            assert status.pr_number == 7
            assert status.pr_review_status == "APPROVED"

    def test_closed_pr_clears_fields(self, controller, state):
        state, _ = controller.reduce(state, PRStatusesLoaded([PRInfo(number=7, head_branch="feature-x")]))
        state, _ = controller.reduce(state, PRStatusesLoaded([]))

        assert state.worktree_statuses["feature-x"].pr_number == 0

    def test_dropdown_label_shows_status(self, controller, state):
        state, _ = controller.reduce(state, WorktreeStatusLoaded("feature-x", WorktreeStatus(is_dirty=True, ahead=2)))

        labels = {i.id: i.label for i in state.worktree_dropdown.items}
        assert labels["feature-x"] == "feature-x  * ↑2"


class TestSessionSnapshots:
    def test_refresh_updates_dropdowns(self, controller, state):
        snapshot = [make_session("p-1"), make_session("b-2", worktree_path=MAIN.path)]

        state, commands = controller.reduce(state, SessionsRefreshed(snapshot))

        assert [i.id for i in state.session_dropdown.items] == ["p-1"]
        badges = {i.id: i.badge for i in state.worktree_dropdown.items}
        assert badges == {"main": "[1]", "feature-x": "[1]"}
        assert commands == []

    def test_listener_result_rearms(self, controller, state):
        _, commands = controller.reduce(state, SessionsRefreshed([], from_listener=True))

        assert names(commands) == ["session-events"]

    def test_resized(self, controller, state):
        state, _ = controller.reduce(state, Resized(120, 40))

        assert (state.width, state.height) == (120, 40)


class TestControllerWiring:
    def test_accepts_protocol_fakes(self, sessions, factory):
        from arbor.protocols import SessionManagerInterface, WorktreeManagerInterface

        assert isinstance(sessions, SessionManagerInterface)
        assert isinstance(factory(None), WorktreeManagerInterface)
        Controller(sessions, factory)
