"""Tests for the pure render functions."""

import pytest

from arbor.confirm_prompt import ConfirmPrompt, options
from arbor.domain import RouteAction, RouteProposal, SessionStatus, WorktreeStatus
from arbor.dropdown import SEPARATOR_ID, Dropdown, DropdownItem
from arbor.focus import FocusMode
from arbor.pending import DeleteWorktree
from arbor.task_modal import TaskModalState
from arbor.toast import ToastLevel, ToastQueue
from arbor.tui_render import (
    render_dropdown,
    render_header,
    render_op_log,
    render_output,
    render_overlay,
    render_prompt_bar,
    render_status_bar,
    render_task_modal,
    render_toasts,
    render_welcome,
    visible_window,
)

from conftest import make_session


LINES = [f"line {i}" for i in range(10)]


class TestVisibleWindow:
    def test_bottom_anchored(self):
        assert visible_window(LINES, 0, 3) == ["line 7", "line 8", "line 9"]

    def test_scrolled_up(self):
        assert visible_window(LINES, 2, 3) == ["line 5", "line 6", "line 7"]

    def test_offset_is_clamped(self):
        assert visible_window(LINES, 999_999, 3) == ["line 0", "line 1", "line 2"]

    def test_short_output(self):
        assert visible_window(LINES[:2], 5, 3) == ["line 0", "line 1"]

    @pytest.mark.parametrize("lines,height", [([], 3), (LINES, 0)])
    def test_empty(self, lines, height):
        assert visible_window(lines, 0, height) == []


class TestHeaderAndOutput:
    def test_header_without_selection(self, state):
        state.worktree_dropdown.selected_id = ""

        text = render_header(state).plain

        assert "repo" in text
        assert "no worktree (Alt-W)" in text
        assert "no session (Alt-S)" in text

    def test_header_with_status_and_session(self, state):
        state.worktree_statuses["feature-x"] = WorktreeStatus(ahead=1, pr_number=3, pr_is_draft=True)
        state.sessions = [make_session("p-1", prompt="write docs", status=SessionStatus.IDLE)]
        state.switch_viewing_session("p-1")
        state.scroll_offset = 4

        text = render_header(state).plain

        assert "feature-x ↑1 PR#3 draft" in text
        assert "[P] write docs ○ idle" in text
        assert "↑4" in text

    def test_output_placeholder(self, state):
        assert "No session selected." in render_output(state, "ignored").plain

    def test_history_session_output_is_shown(self, state):
        state.history = [make_session("p-old", status=SessionStatus.COMPLETED)]
        state.history_worktree = state.selected_worktree().path
        state.switch_viewing_session("p-old")

        assert render_output(state, "old\noutput").plain == "old\noutput"

    def test_output_follows_scroll(self, state):
        state.sessions = [make_session("p-1")]
        state.switch_viewing_session("p-1")
        state.height = 11

        text = render_output(state, "\n".join(LINES)).plain

        assert text == "line 7\nline 8\nline 9"


class TestBars:
    def test_op_log_keeps_last_rows_and_flags_failures(self):
        text = render_op_log(["a", "b", "Failed to rebase x", "d"])

        assert text.plain == "b\nFailed to rebase x\nd\n"
        failed = [span for span in text.spans if span.style == "red"]
        assert len(failed) == 1

    def test_toasts_newest_first(self):
        queue = ToastQueue()
        queue.add("one", ToastLevel.INFO, 0)
        queue.add("two", ToastLevel.ERROR, 0)

        assert render_toasts(queue).plain == " two \n one \n"

    def test_confirm_prompt_bar(self, state):
        state.confirm = ConfirmPrompt("Delete worktree 'x'?", options(("y", "yes"), ("d", "delete branch")),
                                      DeleteWorktree("x"))
        state.focus = FocusMode.CONFIRM

        text = render_prompt_bar(state).plain

        assert text.startswith("Delete worktree 'x'?")
        assert text.count("[Esc]") == 1

    def test_input_prompt_bar(self, state):
        state.focus = FocusMode.INPUT
        state.input_prompt = "Plan prompt [Opus]: "
        state.input.set_text("hello")

        text = render_prompt_bar(state).plain

        assert text.startswith("Plan prompt [Opus]: hello█")
        assert "alt+m model" in text

    def test_prompt_bar_empty_in_normal_mode(self, state):
        assert render_prompt_bar(state).plain == ""

    def test_status_bar_counts_active(self, state):
        state.sessions = [make_session("p-1"), make_session("p-2", status=SessionStatus.FAILED)]

        assert "1 active" in render_status_bar(state).plain

    def test_status_bar_quit_confirmation(self, state):
        state.confirm_quit = True

        assert render_status_bar(state).plain == " q/y quit  any other key cancel"


class TestOverlays:
    def test_nothing_open(self, state):
        assert render_overlay(state) is None

    def test_dropdown(self):
        dropdown = Dropdown()
        dropdown.set_items([
            DropdownItem("main", "main", "[2]"),
            DropdownItem(SEPARATOR_ID, ""),
            DropdownItem("feature-x", "feature-x"),
        ])
        dropdown.selected_id = "feature-x"

        lines = render_dropdown(dropdown, "Worktrees").plain.split("\n")

        assert lines[0] == " Worktrees"
        assert lines[1] == "   main  [2]"
        assert lines[2] == "  ────────"
        assert lines[3] == " ● feature-x"

    def test_dropdown_no_matches(self):
        dropdown = Dropdown()
        dropdown.append_filter("zz")

        assert "(no matches)" in render_dropdown(dropdown, "Sessions").plain

    def test_help_overlay(self, controller, state):
        from arbor.messages import Key

        state, _ = controller.reduce(state, Key("?"))

        text = render_overlay(state).plain
        assert "Key bindings" in text
        assert "Navigation" in text

    def test_task_modal_routing(self, state):
        state.task_modal.state = TaskModalState.ROUTING
        state.task_modal.prompt = "add search"

        text = render_task_modal(state.task_modal).plain

        assert "add search" in text
        assert "Routing..." in text

    def test_task_modal_proposal(self, state):
        modal = state.task_modal
        modal.state = TaskModalState.PROPOSAL
        modal.prompt = "add search"
        modal.proposal = RouteProposal(RouteAction.CREATE_NEW, "add-search", "main", "new area")

        text = render_task_modal(modal).plain

        assert "Create new worktree add-search from main" in text
        assert "new area" in text

    def test_task_modal_error(self, state):
        modal = state.task_modal
        modal.state = TaskModalState.PROPOSAL
        modal.error = "timeout"

        assert "Routing failed: timeout" in render_task_modal(modal).plain


class TestWelcome:
    def test_no_worktrees(self, state):
        state.worktrees = []
        state.refresh_worktree_dropdown()

        text = render_welcome(state).plain

        assert "Welcome to arbor" in text
        assert "No worktrees found for repo" in text
        assert "[n]" in text
        assert "[p]" not in text

    def test_quick_start_with_worktree_summary(self, state):
        state.worktree_statuses["feature-x"] = WorktreeStatus(is_dirty=True, last_commit_msg="fix login")
        state.sessions = [make_session("p-1", status=SessionStatus.COMPLETED)]
        state.history = [make_session("p-old", status=SessionStatus.STOPPED)]
        state.history_worktree = state.selected_worktree().path

        text = render_welcome(state).plain

        assert "[p]" in text
        assert "[Alt-S]" in text
        assert "Worktree: feature-x  *" in text
        assert "Last commit: fix login" in text
        assert "Sessions: 1 live, 1 in history" in text

    def test_operation_messages_replace_hints(self, state):
        state.worktree_op_messages = ["Creating worktree feat...", "Fetching latest from origin..."]

        text = render_welcome(state).plain

        assert text == "  Creating worktree feat...\n  Fetching latest from origin...\n"
