"""
Exception hierarchy for Arbor.

Collaborators raise these; deferred commands turn them into messages so that
no exception ever reaches the reducer.
"""


class ArborError(Exception):
    """Base class for all Arbor errors."""


class WorktreeError(ArborError):
    """A git/gh worktree operation failed."""


class SessionError(ArborError):
    """Starting, stopping or talking to an agent session failed."""


class RoutingError(ArborError):
    """The task router could not produce a proposal."""


class HookCommandError(ArborError):
    """A user-configured worktree hook command exited non-zero."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        super().__init__(f"hook command failed ({returncode}): {command}")


class SettingsError(ArborError):
    """Settings could not be written."""
