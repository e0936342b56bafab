"""
The "new task" flow: describe a task, let the router pick or name a worktree,
then start a planner there.
"""

from typing import TYPE_CHECKING, List, Optional

from ..commands import Commands, Deferred, Quit
from ..domain import RouteAction, RouteRequest, SessionKind, WorktreeInfo
from ..exceptions import RoutingError
from ..focus import FocusMode
from ..logging_config import get_logger
from ..messages import (
    TaskConfirmed,
    TaskProposalReady,
    TaskRouteRequested,
    TaskWorktreeCreated,
    WorktreeOpCompleted,
)
from ..protocols import TaskRouterInterface, WorktreeManagerFactory
from ..task_modal import TaskModalState
from ..text_input import TextAction
from ..toast import ToastLevel
from .worktree import create_worktree_job

if TYPE_CHECKING:
    from ..state import AppState

logger = get_logger("workflows.task_routing")


def snapshot_worktrees(state: "AppState") -> List[WorktreeInfo]:
    """Worktree context for the router, taken from the reducer's state."""
    infos = []
    for wt in state.worktrees:
        info = WorktreeInfo(name=wt.branch, path=wt.path)
        status = state.worktree_statuses.get(wt.branch)
        if status is not None:
            info.is_dirty = status.is_dirty
            info.is_ahead = status.ahead > 0
            info.pr_state = status.pr_state
            info.is_merged = status.is_merged
            info.last_commit = status.last_commit_msg
        infos.append(info)
    return infos


def route_task_job(router: Optional[TaskRouterInterface], request: RouteRequest) -> TaskProposalReady:
    if router is None:
        return TaskProposalReady(error="Task routing is not configured")
    try:
        return TaskProposalReady(proposal=router.route(request))
    except RoutingError as e:
        return TaskProposalReady(error=str(e))
    except Exception as e:
        # The modal stays in ROUTING until a proposal or an error arrives
        logger.exception("task router crashed")
        return TaskProposalReady(error=f"{type(e).__name__}: {e}")


def create_task_worktree_job(
    factory: WorktreeManagerFactory,
    branch: str,
    parent: str,
    prompt: str,
    hook_commands: List[str],
):
    result = create_worktree_job(factory, branch, parent, hook_commands)
    if not result.ok:
        return WorktreeOpCompleted(result)
    return TaskWorktreeCreated(branch, prompt, messages=result.messages, warning=result.warning)


class TaskRoutingMixin:
    """Task modal handlers for the controller."""

    def _open_task_modal(self, state: "AppState", key: str) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository loaded", ToastLevel.ERROR)
        state.task_modal.show()
        state.focus = FocusMode.TASK_MODAL
        return []

    def _close_task_modal(self, state: "AppState") -> Commands:
        state.task_modal.hide()
        state.focus = FocusMode.OUTPUT
        return []

    def _handle_task_modal_key(self, state: "AppState", key: str) -> Commands:
        modal = state.task_modal
        if key == "ctrl+c":
            return [Quit()]

        if modal.state == TaskModalState.INPUT:
            action = modal.prompt_input.handle_key(key)
            if action == TextAction.CANCEL:
                return self._close_task_modal(state)
            if action == TextAction.SUBMIT:
                prompt = modal.prompt_input.value
                if not prompt:
                    return []
                return self._on_task_route_requested(state, TaskRouteRequested(prompt))
            return []

        if modal.state == TaskModalState.ROUTING:
            if key == "esc":
                return self._close_task_modal(state)
            return []

        if modal.state == TaskModalState.PROPOSAL:
            if key == "esc":
                return self._close_task_modal(state)
            if modal.proposal is None:
                return []
            if key == "enter":
                return self._confirm_task(state)
            if key == "a":
                modal.start_adjust()
            return []

        if modal.state == TaskModalState.ADJUST:
            if modal.proposal is not None and modal.proposal.action == RouteAction.CREATE_NEW:
                action = modal.adjust_input.handle_key(key)
                if action == TextAction.CANCEL:
                    modal.back_to_proposal()
                elif action == TextAction.SUBMIT:
                    return self._confirm_task(state)
                return []
            if key == "esc":
                modal.back_to_proposal()
            elif key == "enter":
                return self._confirm_task(state)
            return []

        return self._close_task_modal(state)

    def _confirm_task(self, state: "AppState") -> Commands:
        modal = state.task_modal
        proposal = modal.proposal
        worktree = modal.adjusted_worktree()
        if proposal is None or not worktree:
            return []
        confirmed = TaskConfirmed(
            worktree=worktree,
            prompt=modal.prompt,
            parent=modal.adjusted_parent(),
            is_new=proposal.action == RouteAction.CREATE_NEW,
        )
        self._close_task_modal(state)
        return self._on_task_confirmed(state, confirmed)

    def _on_task_route_requested(self, state: "AppState", msg: TaskRouteRequested) -> Commands:
        state.task_modal.start_routing(msg.prompt)
        selected = state.selected_worktree()
        request = RouteRequest(
            prompt=msg.prompt,
            worktrees=snapshot_worktrees(state),
            repo_name=state.repo_name,
            current_branch=selected.branch if selected else "",
        )
        router = self.router
        self._logger.info("routing task", worktrees=len(request.worktrees))
        return [Deferred(lambda: route_task_job(router, request), "route-task")]

    def _on_task_proposal_ready(self, state: "AppState", msg: TaskProposalReady) -> Commands:
        modal = state.task_modal
        # The modal was closed or restarted while routing
        if modal.state != TaskModalState.ROUTING:
            return []
        if msg.error or msg.proposal is None:
            self._logger.warning("task routing failed", error=msg.error)
            modal.set_error(msg.error or "Router returned no proposal")
            return []
        modal.set_proposal(msg.proposal)
        return []

    def _on_task_confirmed(self, state: "AppState", msg: TaskConfirmed) -> Commands:
        commands = self._toast(state, "Task confirmed, starting session...", ToastLevel.SUCCESS)
        if msg.is_new:
            if not state.repo_name:
                return commands + self._toast(state, "No repository selected", ToastLevel.ERROR)
            state.worktree_op_messages = [f"Creating worktree {msg.worktree}..."]
            factory = self.worktree_factory
            hooks = state.settings.repo_settings_for(state.repo_name).on_worktree_create
            branch, parent, prompt = msg.worktree, msg.parent, msg.prompt
            return commands + [Deferred(
                lambda: create_task_worktree_job(factory, branch, parent, prompt, hooks),
                f"task-worktree:{branch}",
            )]

        if not state.worktree_dropdown.select_by_id(msg.worktree):
            return commands + self._toast(state, f"Worktree '{msg.worktree}' not found", ToastLevel.ERROR)
        state.switch_viewing_session("")
        state.refresh_session_dropdown()
        return commands + self._start_session(
            state, SessionKind.PLANNER, msg.prompt, state.default_models.get(SessionKind.PLANNER, "")
        ) + self._load_history_cmds(state)

    def _on_task_worktree_created(self, state: "AppState", msg: TaskWorktreeCreated) -> Commands:
        commands: Commands = []
        state.worktree_op_messages = list(msg.messages)
        if msg.warning:
            commands += self._toast(state, msg.warning, ToastLevel.INFO)
        state.pending_worktree_select = msg.worktree
        state.pending_planner_prompt = msg.prompt
        commands.append(self._refresh_worktrees_cmd(state))
        commands.append(self._fetch_pr_statuses_cmd())
        return commands
