"""
Typed messages delivered to the controller.

Keys and resizes come from the terminal; everything else is the result of a
deferred command or timer. Messages are immutable values.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .domain import (
    PRInfo,
    RouteProposal,
    SessionInfo,
    SessionKind,
    Worktree,
    WorktreeOpResult,
    WorktreeStatus,
)


class Message:
    """Base class for everything the controller reduces."""


# Terminal input

@dataclass(frozen=True)
class Key(Message):
    """A normalized keystroke: ``"q"``, ``"enter"``, ``"ctrl+c"``, ``"alt+w"``..."""

    key: str


@dataclass(frozen=True)
class Resized(Message):
    width: int
    height: int


# Worktree list and status

@dataclass(frozen=True)
class WorktreesLoaded(Message):
    worktrees: List[Worktree]


@dataclass(frozen=True)
class DeferredRefresh(Message):
    """Follow-up after a worktree list refresh so the list renders first."""


@dataclass(frozen=True)
class WorktreeStatusLoaded(Message):
    branch: str
    status: WorktreeStatus


@dataclass(frozen=True)
class PRStatusesLoaded(Message):
    prs: List[PRInfo]


@dataclass(frozen=True)
class GitStatusTick(Message):
    pass


@dataclass(frozen=True)
class PRStatusTick(Message):
    pass


# Sessions

@dataclass(frozen=True)
class SessionsRefreshed(Message):
    """Fresh session snapshot. ``from_listener`` re-arms the event listener."""

    sessions: List[SessionInfo]
    from_listener: bool = False


@dataclass(frozen=True)
class SessionStarted(Message):
    session_id: str
    kind: SessionKind
    sessions: List[SessionInfo] = field(default_factory=list)


@dataclass(frozen=True)
class HistoryLoaded(Message):
    """Finished sessions of one worktree from earlier runs."""

    worktree_path: str
    sessions: List[SessionInfo]


@dataclass(frozen=True)
class ErrorOccurred(Message):
    message: str


# Prompt input and worktree operations

@dataclass(frozen=True)
class InputSubmitted(Message):
    text: str


@dataclass(frozen=True)
class CreateWorktreeRequested(Message):
    branch: str


@dataclass(frozen=True)
class DeleteWorktreeRequested(Message):
    branch: str
    delete_branch: bool = False


@dataclass(frozen=True)
class SyncRequested(Message):
    """Sync one worktree, or every worktree when ``branch`` is empty."""

    branch: str = ""


@dataclass(frozen=True)
class WorktreeOpCompleted(Message):
    result: WorktreeOpResult


# Task routing

@dataclass(frozen=True)
class TaskRouteRequested(Message):
    prompt: str


@dataclass(frozen=True)
class TaskProposalReady(Message):
    proposal: Optional[RouteProposal] = None
    error: str = ""


@dataclass(frozen=True)
class TaskConfirmed(Message):
    worktree: str
    prompt: str
    parent: str = ""
    is_new: bool = False


@dataclass(frozen=True)
class TaskWorktreeCreated(Message):
    worktree: str
    prompt: str
    messages: List[str] = field(default_factory=list)
    warning: str = ""


# Merge

@dataclass(frozen=True)
class MergeRequested(Message):
    branch: str
    merge_method: str


@dataclass(frozen=True)
class MergeCompleted(Message):
    branch: str
    pr_number: int = 0
    messages: List[str] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class PostMergeChosen(Message):
    """``action`` is one of ``delete``, ``reset`` or ``keep``."""

    branch: str
    action: str


# Timers and external processes

@dataclass(frozen=True)
class ToastTick(Message):
    pass


@dataclass(frozen=True)
class ExternalProcessResult(Message):
    """Outcome of launching the editor (``kind="editor"``) or a tmux window."""

    kind: str
    error: str = ""


@dataclass(frozen=True)
class FileTreeLoaded(Message):
    worktree_path: str
    files: List[str] = field(default_factory=list)
