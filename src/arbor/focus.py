"""
Focus modes: which layer owns the keyboard.
"""

from enum import Enum


class FocusMode(str, Enum):
    OUTPUT = "output"
    WORKTREE_DROPDOWN = "worktree_dropdown"
    SESSION_DROPDOWN = "session_dropdown"
    INPUT = "input"
    CONFIRM = "confirm"
    HELP = "help"
    THEME_PICKER = "theme_picker"
    REPO_SETTINGS = "repo_settings"
    ALL_SESSIONS = "all_sessions"
    TASK_MODAL = "task_modal"


# Highest priority first. Normal-mode bindings handle OUTPUT.
KEY_DISPATCH_ORDER = (
    FocusMode.HELP,
    FocusMode.THEME_PICKER,
    FocusMode.REPO_SETTINGS,
    FocusMode.ALL_SESSIONS,
    FocusMode.CONFIRM,
    FocusMode.TASK_MODAL,
    FocusMode.INPUT,
    FocusMode.WORKTREE_DROPDOWN,
    FocusMode.SESSION_DROPDOWN,
)
