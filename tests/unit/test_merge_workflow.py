"""Tests for the PR merge workflow."""

import pytest

from arbor.commands import names
from arbor.domain import SessionStatus, WorktreeStatus
from arbor.focus import FocusMode
from arbor.messages import Key, MergeCompleted, MergeRequested, WorktreeOpCompleted
from arbor.pending import MergePR, PostMerge
from arbor.workflows.merge import merge_pr_job, merge_preflight, reset_to_default_job

from conftest import FakeWorktreeFactory, make_session, run_deferred, toast_messages


def open_pr(**kwargs):
    fields = dict(pr_number=12, pr_state="OPEN")
    fields.update(kwargs)
    return WorktreeStatus(**fields)


class TestMergePreflight:
    """Guards run in order; the first failure wins."""

    def test_no_worktree(self):
        assert merge_preflight(None, None, []) == "Select a worktree first (Alt-W)"

    def test_status_not_loaded(self):
        assert merge_preflight("x", None, []) == "Worktree status not loaded yet"

    def test_no_pr(self):
        assert merge_preflight("x", WorktreeStatus(), []) == "No PR found for x"

    def test_pr_not_open(self):
        assert merge_preflight("x", open_pr(pr_state="MERGED"), []) == "PR #12 is MERGED"

    def test_dirty(self):
        status = open_pr(is_dirty=True, ahead=3)
        assert merge_preflight("x", status, []) == "Uncommitted changes. Commit or stash first."

    def test_unpushed(self):
        assert merge_preflight("x", open_pr(ahead=3), []) == "3 unpushed commits. Push first."

    @pytest.mark.parametrize("status", [SessionStatus.RUNNING, SessionStatus.PENDING])
    def test_active_session_blocks(self, status):
        sessions = [make_session(status=status)]
        assert merge_preflight("x", open_pr(), sessions) == "Stop active sessions first."

    @pytest.mark.parametrize("status", [SessionStatus.IDLE, SessionStatus.COMPLETED, SessionStatus.STOPPED])
    def test_idle_or_finished_sessions_allowed(self, status):
        assert merge_preflight("x", open_pr(), [make_session(status=status)]) == ""


class TestMergeJobs:
    def test_merge_keeps_worktree(self):
        factory = FakeWorktreeFactory()

        result = merge_pr_job(factory, "feature-x", "squash")

        assert factory.calls == [("merge", "feature-x", "squash", True)]
        assert result.pr_number == 42
        assert result.messages == ["Merged PR #42"]
        assert result.error == ""

    def test_merge_error(self):
        factory = FakeWorktreeFactory()
        factory.errors["merge"] = "gh pr merge: not mergeable"

        result = merge_pr_job(factory, "feature-x", "rebase")

        assert result.error == "gh pr merge: not mergeable"
        assert result.pr_number == 0

    def test_reset_reports_default_branch(self):
        result = reset_to_default_job(FakeWorktreeFactory(), "feature-x")

        assert result.ok
        assert result.messages[-1] == "Reset feature-x to main"

    def test_reset_error(self):
        factory = FakeWorktreeFactory()
        factory.errors["reset"] = "failed to fetch: offline"

        result = reset_to_default_job(factory, "feature-x")

        assert result.error == "failed to fetch: offline"


class TestMergeFlow:
    @pytest.fixture
    def mergeable(self, state):
        state.worktree_statuses["feature-x"] = open_pr(pr_review_status="APPROVED", pr_is_draft=True)
        return state

    def test_m_shows_method_prompt(self, controller, mergeable):
        state, _ = controller.reduce(mergeable, Key("m"))

        assert state.focus == FocusMode.CONFIRM
        assert state.confirm.message == "Merge PR #12 (feature-x)?\nReview: APPROVED\n[Draft PR]"
        assert [o.key for o in state.confirm.options] == ["s", "r", "m"]
        assert state.confirm.action == MergePR("feature-x", 12)

    def test_m_preflight_failure_toasts(self, controller, state):
        state, _ = controller.reduce(state, Key("m"))

        assert state.focus == FocusMode.OUTPUT
        assert toast_messages(state) == ["Worktree status not loaded yet"]

    @pytest.mark.parametrize("key,method", [("s", "squash"), ("r", "rebase"), ("m", "merge")])
    def test_method_keys(self, controller, mergeable, factory, key, method):
        state, _ = controller.reduce(mergeable, Key("m"))
        state, commands = controller.reduce(state, Key(key))

        assert state.worktree_op_messages == ["Merging PR for feature-x..."]
        assert names(commands) == ["merge:feature-x"]
        (completed,) = run_deferred(commands)
        assert factory.calls == [("merge", "feature-x", method, True)]
        assert isinstance(completed, MergeCompleted)

    def test_merge_error_toast(self, controller, state):
        msg = MergeCompleted("feature-x", messages=["Merging PR #12..."], error="merge conflict")

        state, commands = controller.reduce(state, msg)

        assert toast_messages(state) == ["merge conflict"]
        assert state.worktree_op_messages == ["Merging PR #12..."]
        assert state.focus == FocusMode.OUTPUT

    def test_success_asks_what_next(self, controller, state):
        state, _ = controller.reduce(state, MergeCompleted("feature-x", pr_number=12, messages=["Merged PR #12"]))

        assert state.focus == FocusMode.CONFIRM
        assert state.confirm.message == "PR #12 merged! What to do with worktree 'feature-x'?"
        assert [o.key for o in state.confirm.options] == ["d", "r", "k"]
        assert state.confirm.cancel_action == PostMerge("feature-x", 12)


class TestPostMerge:
    @pytest.fixture
    def merged(self, controller, state):
        state, _ = controller.reduce(state, MergeCompleted("feature-x", pr_number=12))
        return state

    def test_delete_removes_worktree_and_branch(self, controller, merged, factory):
        state, commands = controller.reduce(merged, Key("d"))

        assert state.worktree_op_messages == ["Deleting worktree feature-x..."]
        run_deferred(commands)
        assert factory.calls == [("remove", "feature-x", True)]

    def test_reset(self, controller, merged, factory):
        state, commands = controller.reduce(merged, Key("r"))

        assert state.worktree_op_messages == ["Resetting feature-x to default branch..."]
        (completed,) = run_deferred(commands)
        assert factory.calls == [("reset", "feature-x")]
        assert isinstance(completed, WorktreeOpCompleted)

    def test_keep_refreshes(self, controller, merged):
        state, commands = controller.reduce(merged, Key("k"))

        assert names(commands) == ["refresh-worktrees", "pr-statuses"]
        assert state.focus == FocusMode.OUTPUT

    def test_esc_behaves_like_keep(self, controller, merged):
        """The merge already happened, so dismissing still refreshes."""
        state, commands = controller.reduce(merged, Key("esc"))

        assert names(commands) == ["refresh-worktrees", "pr-statuses"]
        assert state.confirm is None

    def test_merge_request_without_repo(self, controller, state):
        state.repo_name = ""

        _, commands = controller.reduce(state, MergeRequested("feature-x", "squash"))

        assert commands == []
