"""
Merge lifecycle: preflight, confirm, merge, then decide what to do with the
merged worktree.

The post-merge prompt's cancel action is "keep" because the remote merge has
already happened; dismissing the prompt must still refresh worktree and PR
state.
"""

import io
from typing import TYPE_CHECKING, List, Optional

from ..commands import Commands, Deferred
from ..confirm_prompt import options
from ..domain import SessionInfo, SessionStatus, WorktreeOpResult, WorktreeStatus
from ..exceptions import ArborError
from ..hooks import parse_output_lines
from ..messages import (
    DeleteWorktreeRequested,
    MergeCompleted,
    MergeRequested,
    PostMergeChosen,
    WorktreeOpCompleted,
)
from ..pending import MergePR, PostMerge
from ..protocols import WorktreeManagerFactory
from ..toast import ToastLevel

if TYPE_CHECKING:
    from ..state import AppState


def merge_preflight(
    branch: Optional[str],
    status: Optional[WorktreeStatus],
    sessions: List[SessionInfo],
) -> str:
    """Return the first failing guard's message, or "" when a merge may proceed.

    Idle sessions do not block a merge; pending and running ones do.
    """
    if branch is None:
        return "Select a worktree first (Alt-W)"
    if status is None:
        return "Worktree status not loaded yet"
    if status.pr_number == 0:
        return f"No PR found for {branch}"
    if status.pr_state != "OPEN":
        return f"PR #{status.pr_number} is {status.pr_state}"
    if status.is_dirty:
        return "Uncommitted changes. Commit or stash first."
    if status.ahead > 0:
        return f"{status.ahead} unpushed commits. Push first."
    for sess in sessions:
        if not sess.status.is_terminal() and sess.status != SessionStatus.IDLE:
            return "Stop active sessions first."
    return ""


def merge_prompt_message(branch: str, status: WorktreeStatus) -> str:
    message = f"Merge PR #{status.pr_number} ({branch})?"
    if status.pr_review_status:
        message += f"\nReview: {status.pr_review_status}"
    if status.pr_is_draft:
        message += "\n[Draft PR]"
    return message


def merge_pr_job(factory: WorktreeManagerFactory, branch: str, merge_method: str) -> MergeCompleted:
    sink = io.StringIO()
    manager = factory(sink)
    try:
        pr_number = manager.merge_pr_for_branch(branch, merge_method, keep=True)
    except ArborError as e:
        return MergeCompleted(branch, messages=parse_output_lines(sink.getvalue()), error=str(e))
    return MergeCompleted(branch, pr_number=pr_number, messages=parse_output_lines(sink.getvalue()))


def reset_to_default_job(factory: WorktreeManagerFactory, branch: str) -> WorktreeOpResult:
    sink = io.StringIO()
    manager = factory(sink)
    try:
        default_branch = manager.reset_to_default(branch)
    except ArborError as e:
        return WorktreeOpResult(messages=parse_output_lines(sink.getvalue()), error=str(e))
    messages = parse_output_lines(sink.getvalue())
    messages.append(f"Reset {branch} to {default_branch}")
    return WorktreeOpResult(messages=messages)


class MergeWorkflowMixin:
    """PR merge handlers for the controller."""

    def _handle_merge_key(self, state: "AppState", key: str) -> Commands:
        worktree = state.selected_worktree()
        branch = worktree.branch if worktree else None
        status = state.worktree_statuses.get(branch) if branch else None
        sessions = state.sessions_for_worktree(worktree.path) if worktree else []

        reason = merge_preflight(branch, status, sessions)
        if reason:
            return self._toast(state, reason, ToastLevel.INFO)

        return self._show_confirm(
            state,
            merge_prompt_message(branch, status),
            options(("s", "squash"), ("r", "rebase"), ("m", "merge commit")),
            MergePR(branch, status.pr_number),
        )

    def _on_merge_requested(self, state: "AppState", msg: MergeRequested) -> Commands:
        if not msg.branch or not state.repo_name:
            return []
        state.worktree_op_messages = [f"Merging PR for {msg.branch}..."]
        factory = self.worktree_factory
        branch, method = msg.branch, msg.merge_method
        self._logger.info("merging PR", branch=branch, method=method)
        return [Deferred(lambda: merge_pr_job(factory, branch, method), f"merge:{branch}")]

    def _on_merge_completed(self, state: "AppState", msg: MergeCompleted) -> Commands:
        state.worktree_op_messages = list(msg.messages)
        if msg.error:
            return self._toast(state, msg.error, ToastLevel.ERROR)

        return self._show_confirm(
            state,
            f"PR #{msg.pr_number} merged! What to do with worktree '{msg.branch}'?",
            options(("d", "delete worktree + branch"), ("r", "reset to main"), ("k", "keep as-is")),
            PostMerge(msg.branch, msg.pr_number),
            cancel_action=PostMerge(msg.branch, msg.pr_number),
        )

    def _on_post_merge_chosen(self, state: "AppState", msg: PostMergeChosen) -> Commands:
        if msg.action == "delete":
            return self._on_delete_worktree_requested(state, DeleteWorktreeRequested(msg.branch, delete_branch=True))
        if msg.action == "reset":
            state.worktree_op_messages = [f"Resetting {msg.branch} to default branch..."]
            factory = self.worktree_factory
            branch = msg.branch
            return [Deferred(
                lambda: WorktreeOpCompleted(reset_to_default_job(factory, branch)),
                f"reset:{branch}",
            )]
        return [self._refresh_worktrees_cmd(state), self._fetch_pr_statuses_cmd()]
