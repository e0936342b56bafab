"""
Dropdown selectors, output scrolling, the file tree split pane and external
launches (editor, tmux window).
"""

import os
from typing import TYPE_CHECKING

from ..commands import Commands, Deferred, Quit
from ..dropdown import Dropdown
from ..focus import FocusMode
from ..messages import ExternalProcessResult, FileTreeLoaded
from ..protocols import ProcessLauncherInterface
from ..state import PAGE_SIZE
from ..text_input import is_printable
from ..toast import ToastLevel

if TYPE_CHECKING:
    from ..state import AppState


def open_editor_job(launcher: ProcessLauncherInterface, path: str) -> ExternalProcessResult:
    try:
        launcher.open_editor(path)
    except OSError as e:
        return ExternalProcessResult("editor", error=str(e))
    return ExternalProcessResult("editor")


def open_tmux_window_job(launcher: ProcessLauncherInterface, cwd: str) -> ExternalProcessResult:
    try:
        launcher.open_tmux_window(cwd)
    except OSError as e:
        return ExternalProcessResult("tmux", error=str(e))
    return ExternalProcessResult("tmux")


class NavigationMixin:
    """Selectors, scrolling and launch handlers for the controller."""

    # Dropdowns

    def _open_worktree_dropdown(self, state: "AppState", key: str) -> Commands:
        state.refresh_worktree_dropdown()
        state.worktree_dropdown.open()
        state.focus = FocusMode.WORKTREE_DROPDOWN
        return []

    def _open_session_dropdown(self, state: "AppState", key: str) -> Commands:
        state.refresh_session_dropdown()
        state.session_dropdown.open()
        state.focus = FocusMode.SESSION_DROPDOWN
        return []

    def _active_dropdown(self, state: "AppState") -> Dropdown:
        if state.focus == FocusMode.WORKTREE_DROPDOWN:
            return state.worktree_dropdown
        return state.session_dropdown

    def _close_dropdown(self, state: "AppState") -> None:
        self._active_dropdown(state).close()
        state.focus = FocusMode.OUTPUT

    def _handle_dropdown_key(self, state: "AppState", key: str) -> Commands:
        dropdown = self._active_dropdown(state)
        if key in ("q", "ctrl+c"):
            return [Quit()]
        if key == "?":
            return self._open_help(state, key)
        if key in ("alt+w", "alt+s"):
            self._close_dropdown(state)
            return []
        if key == "esc":
            if dropdown.filter_text:
                dropdown.clear_filter()
            else:
                self._close_dropdown(state)
            return []
        if key in ("up", "k"):
            dropdown.move_selection(-1)
        elif key in ("down", "j"):
            dropdown.move_selection(1)
        elif key == "backspace":
            dropdown.backspace_filter()
        elif key == "enter":
            return self._commit_dropdown(state)
        elif is_printable(key):
            dropdown.append_filter(key)
        return []

    def _commit_dropdown(self, state: "AppState") -> Commands:
        is_worktree = state.focus == FocusMode.WORKTREE_DROPDOWN
        item = self._active_dropdown(state).commit()
        self._close_dropdown(state)
        if item is None:
            return []
        if is_worktree:
            state.switch_viewing_session("")
            state.file_tree = []
            state.file_tree_cursor = 0
            state.refresh_session_dropdown()
            return self._load_history_cmds(state) + self._refresh_file_tree_cmds(state)
        state.switch_viewing_session(item.id)
        return []

    # Output scrolling and file tree cursor

    def _file_tree_focused(self, state: "AppState") -> bool:
        return state.split_pane and state.split_focus_left

    def _move_file_cursor(self, state: "AppState", delta: int) -> None:
        if not state.file_tree:
            state.file_tree_cursor = 0
            return
        state.file_tree_cursor = max(0, min(len(state.file_tree) - 1, state.file_tree_cursor + delta))

    def _scroll_up(self, state: "AppState", key: str) -> Commands:
        if self._file_tree_focused(state):
            self._move_file_cursor(state, -1)
        else:
            state.scroll(1)
        return []

    def _scroll_down(self, state: "AppState", key: str) -> Commands:
        if self._file_tree_focused(state):
            self._move_file_cursor(state, 1)
        else:
            state.scroll(-1)
        return []

    def _page_up(self, state: "AppState", key: str) -> Commands:
        if self._file_tree_focused(state):
            self._move_file_cursor(state, -PAGE_SIZE)
        else:
            state.scroll(PAGE_SIZE)
        return []

    def _page_down(self, state: "AppState", key: str) -> Commands:
        if self._file_tree_focused(state):
            self._move_file_cursor(state, PAGE_SIZE)
        else:
            state.scroll(-PAGE_SIZE)
        return []

    def _scroll_top(self, state: "AppState", key: str) -> Commands:
        state.scroll_to_top()
        return []

    def _scroll_bottom(self, state: "AppState", key: str) -> Commands:
        state.scroll_to_bottom()
        return []

    def _reset_scroll(self, state: "AppState", key: str) -> Commands:
        state.scroll_offset = 0
        return []

    # Split pane

    def _toggle_split(self, state: "AppState", key: str) -> Commands:
        state.split_pane = not state.split_pane
        if not state.split_pane:
            state.split_focus_left = False
            return []
        return self._refresh_file_tree_cmds(state)

    def _toggle_split_focus(self, state: "AppState", key: str) -> Commands:
        if state.split_pane:
            state.split_focus_left = not state.split_focus_left
        return []

    def _on_file_tree_loaded(self, state: "AppState", msg: FileTreeLoaded) -> Commands:
        worktree = state.selected_worktree()
        # Selection moved on while the listing ran
        if worktree is None or worktree.path != msg.worktree_path:
            return []
        state.file_tree_path = msg.worktree_path
        state.file_tree = list(msg.files)
        self._move_file_cursor(state, 0)
        return []

    def _open_selected_file(self, state: "AppState", key: str) -> Commands:
        if not self._file_tree_focused(state):
            return []
        if not state.file_tree:
            return self._toast(state, "No file selected", ToastLevel.INFO)
        name = state.file_tree[state.file_tree_cursor]
        commands = self._toast(state, f"Opening {name} in editor", ToastLevel.INFO)
        return commands + self._launch_editor(state, os.path.join(state.file_tree_path, name))

    # External launches

    def _open_editor(self, state: "AppState", key: str) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None:
            return self._toast(state, "Select a worktree first (Alt-W)", ToastLevel.INFO)
        return self._launch_editor(state, worktree.path)

    def _launch_editor(self, state: "AppState", path: str) -> Commands:
        launcher = self.launcher
        if launcher is None:
            return self._toast(state, "Failed to open editor: no launcher configured", ToastLevel.ERROR)
        return [Deferred(lambda: open_editor_job(launcher, path), "open-editor")]

    def _open_tmux_window(self, state: "AppState", key: str) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None:
            return self._toast(state, "Select a worktree first (Alt-W)", ToastLevel.INFO)
        launcher = self.launcher
        if launcher is None:
            return self._toast(state, "Failed to open tmux window: no launcher configured", ToastLevel.ERROR)
        if not launcher.inside_tmux():
            return self._toast(state, "Not inside tmux", ToastLevel.INFO)
        path = worktree.path
        commands = self._toast(state, f"Opening tmux window in {os.path.basename(path)}", ToastLevel.INFO)
        return commands + [Deferred(lambda: open_tmux_window_job(launcher, path), "open-tmux-window")]
