"""
Worktree lifecycle: create, delete and sync.

Each operation posts a provisional line to the operation log, then runs as a
deferred job that captures the manager's output and any hook output into a
``WorktreeOpResult``.
"""

import io
from typing import TYPE_CHECKING, Callable, List

from ..commands import Commands, Deferred
from ..domain import WorktreeOpResult
from ..exceptions import ArborError, HookCommandError
from ..hooks import extract_hook_warning, parse_output_lines, run_hook_commands
from ..logging_config import get_logger
from ..messages import (
    CreateWorktreeRequested,
    DeleteWorktreeRequested,
    FileTreeLoaded,
    SyncRequested,
    WorktreeOpCompleted,
)
from ..confirm_prompt import options
from ..pending import CreateWorktree, DeleteWorktree
from ..protocols import WorktreeManagerFactory
from ..toast import ToastLevel

if TYPE_CHECKING:
    from ..state import AppState

logger = get_logger("workflows.worktree")

CREATE_HOOK_WARNING = "Worktree created, but on-worktree-create command failed"
DELETE_HOOK_WARNING = "Worktree delete continued, but on-worktree-delete command failed"


def create_worktree_job(
    factory: WorktreeManagerFactory,
    branch: str,
    parent: str,
    hook_commands: List[str],
    run_hooks: Callable = run_hook_commands,
) -> WorktreeOpResult:
    """Create a worktree, then run the repo's create hooks inside it.

    A failing hook leaves the worktree in place and only adds a warning.
    """
    sink = io.StringIO()
    manager = factory(sink)
    try:
        path = manager.new_atomic(branch, parent)
    except ArborError as e:
        return WorktreeOpResult(messages=parse_output_lines(sink.getvalue()), error=str(e))

    messages = parse_output_lines(sink.getvalue())
    warning = ""
    try:
        run_hooks(hook_commands, path, branch, messages)
    except HookCommandError:
        warning = CREATE_HOOK_WARNING
        messages.append("Non-fatal: on-worktree-create command failed")
    if not warning:
        warning = extract_hook_warning(messages)
    return WorktreeOpResult(messages=messages, branch=branch, warning=warning)


def delete_worktree_job(
    factory: WorktreeManagerFactory,
    branch: str,
    worktree_path: str,
    delete_branch: bool,
    hook_commands: List[str],
    run_hooks: Callable = run_hook_commands,
) -> WorktreeOpResult:
    """Run delete hooks while the files still exist, then remove the worktree."""
    sink = io.StringIO()
    manager = factory(sink)
    messages: List[str] = []
    warning = ""
    try:
        run_hooks(hook_commands, worktree_path, branch, messages)
    except HookCommandError:
        warning = DELETE_HOOK_WARNING
        messages.append("Non-fatal: on-worktree-delete command failed")

    error = ""
    try:
        manager.remove(branch, delete_branch)
    except ArborError as e:
        error = str(e)

    messages.extend(parse_output_lines(sink.getvalue()))
    if not warning:
        warning = extract_hook_warning(messages)
    return WorktreeOpResult(messages=messages, warning=warning, error=error)


def sync_worktrees_job(factory: WorktreeManagerFactory, branch: str = "") -> WorktreeOpResult:
    """Fetch and rebase one worktree, or all when ``branch`` is empty."""
    sink = io.StringIO()
    manager = factory(sink)
    error = ""
    try:
        manager.sync(branch)
    except ArborError as e:
        error = str(e)
    return WorktreeOpResult(messages=parse_output_lines(sink.getvalue()), error=error)


class WorktreeWorkflowMixin:
    """Create/delete/sync handlers for the controller."""

    def _begin_create_worktree(self, state: "AppState", key: str) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository loaded", ToastLevel.ERROR)
        return self._prompt_input(state, "Branch name: ", CreateWorktree(), "e.g. feature/my-feature")

    def _confirm_delete_worktree(self, state: "AppState", key: str) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None:
            return self._toast(state, "Select a worktree first (Alt-W)", ToastLevel.INFO)
        return self._show_confirm(
            state,
            f"Delete worktree '{worktree.branch}'?",
            options(("y", "yes, keep branch"), ("d", "yes + delete branch")),
            DeleteWorktree(worktree.branch),
        )

    def _sync_selected(self, state: "AppState", key: str) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository loaded", ToastLevel.ERROR)
        worktree = state.selected_worktree()
        if worktree is None:
            return self._toast(state, "No worktree selected", ToastLevel.ERROR)
        return self._on_sync_requested(state, SyncRequested(worktree.branch))

    def _sync_all(self, state: "AppState", key: str) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository loaded", ToastLevel.ERROR)
        return self._on_sync_requested(state, SyncRequested(""))

    def _on_create_worktree_requested(self, state: "AppState", msg: CreateWorktreeRequested) -> Commands:
        branch = msg.branch.strip()
        if not branch:
            return []
        if not state.repo_name:
            return self._toast(state, "No repository selected", ToastLevel.ERROR)

        state.worktree_op_messages = [f"Creating worktree {branch}..."]
        factory = self.worktree_factory
        hooks = state.settings.repo_settings_for(state.repo_name).on_worktree_create
        return [Deferred(
            lambda: WorktreeOpCompleted(create_worktree_job(factory, branch, "", hooks)),
            f"create-worktree:{branch}",
        )]

    def _on_delete_worktree_requested(self, state: "AppState", msg: DeleteWorktreeRequested) -> Commands:
        branch = msg.branch
        if not branch or not state.repo_name:
            return []

        selected = state.selected_worktree()
        if selected is not None and selected.branch == branch:
            state.switch_viewing_session("")

        state.worktree_op_messages = [f"Deleting worktree {branch}..."]
        worktree = state.worktree_by_branch(branch)
        path = worktree.path if worktree else f"{state.wt_root}/{state.repo_name}/{branch}"
        factory = self.worktree_factory
        hooks = state.settings.repo_settings_for(state.repo_name).on_worktree_delete
        delete_branch = msg.delete_branch
        return [Deferred(
            lambda: WorktreeOpCompleted(delete_worktree_job(factory, branch, path, delete_branch, hooks)),
            f"delete-worktree:{branch}",
        )]

    def _on_sync_requested(self, state: "AppState", msg: SyncRequested) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository selected", ToastLevel.ERROR)
        branch = msg.branch
        if branch:
            state.worktree_op_messages = [f"Syncing worktree {branch}..."]
        else:
            state.worktree_op_messages = ["Syncing worktrees..."]
        factory = self.worktree_factory
        return [Deferred(
            lambda: WorktreeOpCompleted(sync_worktrees_job(factory, branch)),
            f"sync:{branch or '*'}",
        )]

    def _on_worktree_op_completed(self, state: "AppState", msg: WorktreeOpCompleted) -> Commands:
        result = msg.result
        commands: Commands = []
        if result.error:
            commands += self._toast(state, result.error, ToastLevel.ERROR)
        elif result.messages:
            commands += self._toast(state, "Worktree operation completed", ToastLevel.SUCCESS)
        if result.warning:
            commands += self._toast(state, result.warning, ToastLevel.INFO)

        state.worktree_op_messages = list(result.messages)
        if result.branch and not result.error:
            state.pending_worktree_select = result.branch
            state.pending_planner_prompt = ""

        commands.append(self._refresh_worktrees_cmd(state))
        commands.append(self._fetch_pr_statuses_cmd())
        return commands

    def _refresh(self, state: "AppState", key: str) -> Commands:
        return [self._refresh_worktrees_cmd(state), self._fetch_pr_statuses_cmd()]

    def _refresh_file_tree_cmds(self, state: "AppState") -> Commands:
        worktree = state.selected_worktree()
        if worktree is None or not state.split_pane:
            return []
        factory = self.worktree_factory
        path = worktree.path

        def run():
            try:
                return FileTreeLoaded(path, factory(None).list_files(path))
            except ArborError as e:
                logger.warning(f"file listing failed for {path}: {e}")
                return None

        return [Deferred(run, "file-tree")]
