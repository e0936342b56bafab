"""
Protocol definitions for external collaborators.

The controller only talks to sessions, worktrees and the task router through
these interfaces, so tests can swap in fakes and the default implementations
in ``implementations`` can be replaced.
"""

from typing import Callable, List, Optional, Protocol, TextIO, runtime_checkable

from .domain import (
    PRInfo,
    RouteProposal,
    RouteRequest,
    SessionInfo,
    SessionKind,
    Worktree,
    WorktreeStatus,
)


@runtime_checkable
class SessionManagerInterface(Protocol):
    """Interface for the agent session supervisor."""

    def start_session(self, kind: SessionKind, worktree_path: str, prompt: str, model: str) -> str:
        """Start a planner or builder session.

        Returns:
            The new session id

        Raises:
            SessionError: If the session could not be started
        """
        ...

    def stop_session(self, session_id: str) -> None:
        ...

    def send_follow_up(self, session_id: str, text: str) -> None:
        """Send a follow-up message to an idle session.

        Raises:
            SessionError: If the session is unknown or not idle
        """
        ...

    def complete_session(self, session_id: str) -> None:
        ...

    def get_all_sessions(self) -> List[SessionInfo]:
        ...

    def get_sessions_for_worktree(self, worktree_path: str) -> List[SessionInfo]:
        ...

    def get_output(self, session_id: str, lines: int = 200) -> str:
        """Recent terminal output of a live or past session, or "" if unavailable."""
        ...

    def load_history(self, worktree_path: str) -> List[SessionInfo]:
        """Finished sessions of a worktree saved by earlier runs, newest first."""
        ...

    def wait_for_event(self, timeout: Optional[float] = None) -> bool:
        """Block until a session changes state.

        Returns:
            True if an event arrived, False on timeout
        """
        ...


@runtime_checkable
class WorktreeManagerInterface(Protocol):
    """Interface for git worktree and GitHub PR operations.

    Progress lines are written to the output sink the manager was built
    with, never to the real terminal.
    """

    def list(self) -> List[Worktree]:
        ...

    def new_atomic(self, branch: str, parent: str = "") -> str:
        """Create a worktree and its branch, rolling back on failure.

        Returns:
            Path of the new worktree
        """
        ...

    def remove(self, branch: str, delete_branch: bool = False) -> None:
        ...

    def sync(self, branch: str = "") -> None:
        """Fetch and rebase one worktree, or all of them when branch is empty.

        Every worktree is attempted; the error, if any, summarizes failures.
        """
        ...

    def merge_pr_for_branch(self, branch: str, merge_method: str, keep: bool = True) -> int:
        """Merge the open PR for ``branch``.

        Returns:
            The merged PR number
        """
        ...

    def get_default_branch(self) -> str:
        ...

    def reset_to_default(self, branch: str) -> str:
        """Hard-reset a worktree to the remote default branch.

        Returns:
            The default branch name
        """
        ...

    def get_status(self, worktree: Worktree) -> WorktreeStatus:
        """Git-only status (dirty, ahead/behind, last commit)."""
        ...

    def list_open_prs(self) -> List[PRInfo]:
        ...

    def list_files(self, worktree_path: str) -> List[str]:
        """Tracked files of a worktree, relative to its root."""
        ...


# Builds a worktree manager writing progress to the given sink
WorktreeManagerFactory = Callable[[Optional[TextIO]], WorktreeManagerInterface]


@runtime_checkable
class TaskRouterInterface(Protocol):
    """Interface for the AI task router."""

    def route(self, request: RouteRequest) -> RouteProposal:
        """Propose where a task should run.

        Raises:
            RoutingError: If no proposal could be produced
        """
        ...


@runtime_checkable
class ProcessLauncherInterface(Protocol):
    """Interface for launching the editor and tmux windows."""

    def open_editor(self, path: str) -> None:
        """Start ``$EDITOR`` on a path without waiting for it.

        Raises:
            OSError: If the editor could not be spawned
        """
        ...

    def open_tmux_window(self, cwd: str) -> str:
        """Open a new tmux window in ``cwd``.

        Returns:
            The new window name
        """
        ...

    def inside_tmux(self) -> bool:
        ...
