"""
Inspectable pending actions.

A confirmation prompt or the text input line remembers what it is for as one
of these small frozen records rather than as a callback. The controller turns
them into work once the user answers.
"""

from dataclasses import dataclass
from typing import Union

from .domain import SessionKind


# Actions bound to a confirmation prompt

@dataclass(frozen=True)
class DeleteWorktree:
    branch: str


@dataclass(frozen=True)
class StopSession:
    session_id: str
    title: str = ""


@dataclass(frozen=True)
class MergePR:
    branch: str
    pr_number: int = 0


@dataclass(frozen=True)
class PostMerge:
    branch: str
    pr_number: int = 0


PendingAction = Union[DeleteWorktree, StopSession, MergePR, PostMerge]


# What the text input line is collecting

@dataclass(frozen=True)
class CreateWorktree:
    pass


@dataclass(frozen=True)
class StartSession:
    kind: SessionKind
    model: str = ""


@dataclass(frozen=True)
class FollowUp:
    session_id: str


InputPurpose = Union[CreateWorktree, StartSession, FollowUp]
