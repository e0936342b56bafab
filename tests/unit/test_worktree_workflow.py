"""Tests for the worktree create/delete/sync workflow."""

from unittest.mock import MagicMock

from arbor.commands import names
from arbor.domain import Worktree, WorktreeOpResult
from arbor.exceptions import HookCommandError
from arbor.focus import FocusMode
from arbor.messages import (
    CreateWorktreeRequested,
    DeleteWorktreeRequested,
    Key,
    SyncRequested,
    WorktreeOpCompleted,
    WorktreesLoaded,
)
from arbor.pending import CreateWorktree, DeleteWorktree
from arbor.settings import RepoSettings, Settings
from arbor.state import AppState
from arbor.workflows.worktree import (
    CREATE_HOOK_WARNING,
    DELETE_HOOK_WARNING,
    create_worktree_job,
    delete_worktree_job,
    sync_worktrees_job,
)

from conftest import FEATURE, MAIN, FakeWorktreeFactory, make_session, run_deferred, toast_messages


class TestCreateWorktreeJob:
    def test_success_collects_output_and_hooks(self):
        factory = FakeWorktreeFactory()
        run_hooks = MagicMock(side_effect=lambda cmds, path, branch, messages: messages.append("hook ran"))

        result = create_worktree_job(factory, "feat", "", ["npm ci"], run_hooks=run_hooks)

        assert result.ok
        assert result.branch == "feat"
        assert result.messages == ["Created worktree feat", "hook ran"]
        run_hooks.assert_called_once()
        assert run_hooks.call_args[0][1] == "/wt/repo/feat"

    def test_hook_failure_is_warning(self):
        factory = FakeWorktreeFactory()
        run_hooks = MagicMock(side_effect=HookCommandError("npm ci", 1))

        result = create_worktree_job(factory, "feat", "", ["npm ci"], run_hooks=run_hooks)

        assert result.ok
        assert result.branch == "feat"
        assert result.warning == CREATE_HOOK_WARNING
        assert result.messages[-1] == "Non-fatal: on-worktree-create command failed"

    def test_manager_error(self):
        factory = FakeWorktreeFactory()
        factory.errors["new_atomic"] = "worktree already exists"
        run_hooks = MagicMock()

        result = create_worktree_job(factory, "feat", "", ["npm ci"], run_hooks=run_hooks)

        assert result.error == "worktree already exists"
        assert result.branch == ""
        run_hooks.assert_not_called()

    def test_parent_is_passed(self):
        factory = FakeWorktreeFactory()

        create_worktree_job(factory, "feat", "develop", [], run_hooks=MagicMock())

        assert factory.calls == [("new_atomic", "feat", "develop")]


class TestDeleteWorktreeJob:
    def test_hooks_run_before_remove(self):
        factory = FakeWorktreeFactory()
        order = []
        run_hooks = MagicMock(side_effect=lambda *a: order.append(list(factory.calls)))

        result = delete_worktree_job(factory, "feat", "/wt/repo/feat", True, ["cleanup"], run_hooks=run_hooks)

        assert order == [[]]
        assert factory.calls == [("remove", "feat", True)]
        assert result.ok
        assert result.messages == ["Removed worktree feat"]

    def test_hook_failure_still_removes(self):
        factory = FakeWorktreeFactory()
        run_hooks = MagicMock(side_effect=HookCommandError("cleanup", 3))

        result = delete_worktree_job(factory, "feat", "/p", False, ["cleanup"], run_hooks=run_hooks)

        assert factory.calls == [("remove", "feat", False)]
        assert result.warning == DELETE_HOOK_WARNING
        assert result.ok

    def test_remove_error(self):
        factory = FakeWorktreeFactory()
        factory.errors["remove"] = "worktree for feat not found"

        result = delete_worktree_job(factory, "feat", "/p", False, [], run_hooks=MagicMock())

        assert result.error == "worktree for feat not found"


class TestSyncJob:
    def test_sync_all(self):
        factory = FakeWorktreeFactory()

        result = sync_worktrees_job(factory)

        assert factory.calls == [("sync", "")]
        assert result.messages == ["Fetched latest changes"]

    def test_sync_failure_keeps_output(self):
        factory = FakeWorktreeFactory()
        factory.errors["sync"] = "sync failed for: feat"

        result = sync_worktrees_job(factory, "feat")

        assert result.error == "sync failed for: feat"
        assert result.messages == ["Fetched latest changes"]


class TestCreateFlow:
    def test_n_prompts_for_branch(self, controller, state):
        state, _ = controller.reduce(state, Key("n"))

        assert state.focus == FocusMode.INPUT
        assert state.input_prompt == "Branch name: "
        assert isinstance(state.input_purpose, CreateWorktree)

    def test_n_without_repo(self, controller):
        state = AppState.initial("", "/wt", Settings())

        state, _ = controller.reduce(state, Key("n"))

        assert state.focus == FocusMode.OUTPUT
        assert toast_messages(state) == ["No repository loaded"]

    def test_typed_branch_creates_worktree(self, controller, state, factory):
        state, _ = controller.reduce(state, Key("n"))
        for ch in "feat":
            state, _ = controller.reduce(state, Key(ch))
        state, commands = controller.reduce(state, Key("enter"))

        assert state.focus == FocusMode.OUTPUT
        assert state.worktree_op_messages == ["Creating worktree feat..."]
        assert names(commands) == ["create-worktree:feat"]
        (completed,) = run_deferred(commands)
        assert isinstance(completed, WorktreeOpCompleted)
        assert completed.result.branch == "feat"

    def test_blank_branch_is_ignored(self, controller, state):
        state, commands = controller.reduce(state, CreateWorktreeRequested("   "))

        assert commands == []
        assert state.worktree_op_messages == []

    def test_uses_repo_create_hooks(self, controller, state, monkeypatch):
        state.settings.set_repo_settings("repo", RepoSettings(on_worktree_create=["make setup"]))
        job = MagicMock(return_value=WorktreeOpResult(branch="feat"))
        monkeypatch.setattr("arbor.workflows.worktree.create_worktree_job", job)

        _, commands = controller.reduce(state, CreateWorktreeRequested("feat"))
        run_deferred(commands)

        assert job.call_args[0][1:] == ("feat", "", ["make setup"])

    def test_completion_selects_new_worktree(self, controller, state, factory):
        result = WorktreeOpResult(messages=["Created worktree feat"], branch="feat")
        state, commands = controller.reduce(state, WorktreeOpCompleted(result))

        assert toast_messages(state) == ["Worktree operation completed"]
        assert state.pending_worktree_select == "feat"
        assert names(commands) == ["refresh-worktrees", "pr-statuses"]

        new = Worktree("feat", "/wt/repo/feat")
        state, _ = controller.reduce(state, WorktreesLoaded([MAIN, FEATURE, new]))

        assert state.selected_worktree() == new
        assert state.pending_worktree_select == ""
        assert state.viewing_session_id == ""

    def test_completion_drops_stale_planner_prompt(self, controller, state, sessions):
        state.pending_worktree_select = "add-search"
        state.pending_planner_prompt = "add search"

        result = WorktreeOpResult(messages=["Created worktree feat"], branch="feat")
        state, _ = controller.reduce(state, WorktreeOpCompleted(result))

        assert state.pending_worktree_select == "feat"
        assert state.pending_planner_prompt == ""

        new = Worktree("feat", "/wt/repo/feat")
        state, commands = controller.reduce(state, WorktreesLoaded([MAIN, FEATURE, new]))

        assert state.selected_worktree() == new
        assert "start-planner" not in names(commands)
        assert sessions.started == []


class TestDeleteFlow:
    def test_d_asks_for_confirmation(self, controller, state):
        state, _ = controller.reduce(state, Key("d"))

        assert state.focus == FocusMode.CONFIRM
        assert state.confirm.message == "Delete worktree 'feature-x'?"
        assert state.confirm.action == DeleteWorktree("feature-x")
        assert [o.key for o in state.confirm.options] == ["y", "d"]

    def test_d_without_selection(self, controller):
        state = AppState.initial("repo", "/wt", Settings())

        state, _ = controller.reduce(state, Key("d"))

        assert toast_messages(state) == ["Select a worktree first (Alt-W)"]

    def test_y_keeps_branch(self, controller, state, factory):
        state, _ = controller.reduce(state, Key("d"))
        state, commands = controller.reduce(state, Key("y"))

        assert state.confirm is None
        assert state.focus == FocusMode.OUTPUT
        assert state.worktree_op_messages == ["Deleting worktree feature-x..."]
        run_deferred(commands)
        assert factory.calls == [("remove", "feature-x", False)]

    def test_d_deletes_branch(self, controller, state, factory):
        state, _ = controller.reduce(state, Key("d"))
        state, commands = controller.reduce(state, Key("d"))

        run_deferred(commands)
        assert factory.calls == [("remove", "feature-x", True)]

    def test_esc_cancels(self, controller, state):
        state, _ = controller.reduce(state, Key("d"))
        state, commands = controller.reduce(state, Key("esc"))

        assert commands == []
        assert state.confirm is None
        assert state.focus == FocusMode.OUTPUT

    def test_deleting_viewed_worktree_clears_view(self, controller, state):
        state.sessions = [make_session("p-1")]
        state.switch_viewing_session("p-1")

        state, _ = controller.reduce(state, DeleteWorktreeRequested("feature-x"))

        assert state.viewing_session_id == ""

    def test_unknown_branch_falls_back_to_conventional_path(self, controller, state, monkeypatch):
        job = MagicMock(return_value=WorktreeOpResult())
        monkeypatch.setattr("arbor.workflows.worktree.delete_worktree_job", job)

        _, commands = controller.reduce(state, DeleteWorktreeRequested("gone"))
        run_deferred(commands)

        assert job.call_args[0][1:3] == ("gone", "/wt/repo/gone")


class TestSyncFlow:
    def test_g_syncs_selected(self, controller, state, factory):
        state, commands = controller.reduce(state, Key("g"))

        assert state.worktree_op_messages == ["Syncing worktree feature-x..."]
        run_deferred(commands)
        assert factory.calls == [("sync", "feature-x")]

    def test_G_syncs_all(self, controller, state, factory):
        state, commands = controller.reduce(state, Key("G"))

        assert state.worktree_op_messages == ["Syncing worktrees..."]
        run_deferred(commands)
        assert factory.calls == [("sync", "")]

    def test_g_without_selection(self, controller):
        state = AppState.initial("repo", "/wt", Settings())

        state, commands = controller.reduce(state, Key("g"))

        assert toast_messages(state) == ["No worktree selected"]

    def test_sync_without_repo(self, controller):
        state = AppState.initial("", "/wt", Settings())

        state, _ = controller.reduce(state, SyncRequested(""))

        assert toast_messages(state) == ["No repository selected"]


class TestOpCompleted:
    def test_error_toast_keeps_log(self, controller, state):
        result = WorktreeOpResult(messages=["Fetched", "Failed to rebase x"], error="sync failed for: x")

        state, commands = controller.reduce(state, WorktreeOpCompleted(result))

        assert toast_messages(state) == ["sync failed for: x"]
        assert state.worktree_op_messages == ["Fetched", "Failed to rebase x"]
        assert state.pending_worktree_select == ""

    def test_warning_adds_info_toast(self, controller, state):
        result = WorktreeOpResult(messages=["x"], branch="feat", warning=CREATE_HOOK_WARNING)

        state, _ = controller.reduce(state, WorktreeOpCompleted(result))

        assert toast_messages(state) == [CREATE_HOOK_WARNING, "Worktree operation completed"]

    def test_r_refreshes(self, controller, state):
        _, commands = controller.reduce(state, Key("r"))

        assert names(commands) == ["refresh-worktrees", "pr-statuses"]
