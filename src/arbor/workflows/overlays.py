"""
Key handlers for the full-screen overlays: help, theme picker, all sessions
and the repo settings dialog.
"""

from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, List, Optional

from ..commands import Commands, Deferred, Quit
from ..domain import SessionInfo, available_models, default_model
from ..exceptions import ArborError
from ..focus import FocusMode
from ..messages import ErrorOccurred
from ..overlays import DialogAction, DialogField, HelpSection
from ..settings import Settings
from ..toast import ToastLevel

if TYPE_CHECKING:
    from ..state import AppState


def build_help_sections(bindings) -> List[HelpSection]:
    """Group bindings by section, keeping first-seen section order."""
    sections: "OrderedDict[str, HelpSection]" = OrderedDict()
    for binding in bindings:
        if not binding.description:
            continue
        title = binding.section or "General"
        if title not in sections:
            sections[title] = HelpSection(title)
        sections[title].bindings.append((binding.display, binding.description))
    return list(sections.values())


def persist_settings_job(persist: Callable[[Settings], None], settings: Settings, failure: str):
    try:
        persist(settings)
    except ArborError as e:
        return ErrorOccurred(f"{failure}: {e}")
    return None


class OverlayHandlersMixin:
    """Help, theme picker, all-sessions and settings handlers."""

    # Help

    def _open_help(self, state: "AppState", key: str) -> Commands:
        state.help.show(build_help_sections(self.bindings), state.focus)
        state.focus = FocusMode.HELP
        return []

    def _handle_help_key(self, state: "AppState", key: str) -> Commands:
        if key in ("q", "ctrl+c"):
            return [Quit()]
        if key in ("?", "esc"):
            state.focus = state.help.previous_focus
        elif key in ("up", "k"):
            state.help.scroll_up()
        elif key in ("down", "j"):
            state.help.scroll_down()
        return []

    # Theme picker

    def _open_theme_picker(self, state: "AppState", key: str) -> Commands:
        state.theme_picker.show(state.theme_name)
        state.focus = FocusMode.THEME_PICKER
        return []

    def _handle_theme_picker_key(self, state: "AppState", key: str) -> Commands:
        picker = state.theme_picker
        if key in ("q", "ctrl+c"):
            return [Quit()]
        if key == "esc":
            state.theme_name = picker.original_theme
            state.focus = FocusMode.OUTPUT
            return []
        if key in ("up", "k"):
            picker.move_selection(-1)
            state.theme_name = picker.selected_theme
        elif key in ("down", "j"):
            picker.move_selection(1)
            state.theme_name = picker.selected_theme
        elif key == "enter":
            state.theme_name = picker.selected_theme
            state.settings.theme_name = picker.selected_theme
            state.focus = FocusMode.OUTPUT
            return self._toast(state, f"Theme set to {state.theme_name}", ToastLevel.SUCCESS) + [
                self._persist_settings_cmd(state, "Theme applied but failed to save")
            ]
        return []

    def _persist_settings_cmd(self, state: "AppState", failure: str) -> Deferred:
        persist = self.persist_settings
        settings = state.settings.copy()
        return Deferred(lambda: persist_settings_job(persist, settings, failure), "save-settings")

    # All sessions

    def _handle_all_sessions_key(self, state: "AppState", key: str) -> Commands:
        overlay = state.all_sessions
        if key in ("q", "ctrl+c"):
            return [Quit()]
        if key == "esc":
            state.focus = FocusMode.OUTPUT
        elif key in ("up", "k"):
            overlay.move_selection(-1)
        elif key in ("down", "j"):
            overlay.move_selection(1)
        elif key == "enter":
            return self._switch_to_session(state, overlay.selected_session())
        elif len(key) == 1 and key.isdigit() and key != "0":
            if overlay.select_by_number(int(key)):
                return self._switch_to_session(state, overlay.selected_session())
        return []

    def _switch_to_session(self, state: "AppState", session: Optional[SessionInfo]) -> Commands:
        state.focus = FocusMode.OUTPUT
        if session is None:
            return []
        previous = state.selected_worktree()
        for worktree in state.worktrees:
            if worktree.path == session.worktree_path:
                state.worktree_dropdown.select_by_id(worktree.branch)
                break
        state.refresh_session_dropdown()
        state.switch_viewing_session(session.id)
        state.session_dropdown.select_by_id(session.id)
        if state.selected_worktree() != previous:
            return self._load_history_cmds(state)
        return []

    # Repo settings dialog

    def _open_settings(self, state: "AppState", key: str) -> Commands:
        if not state.repo_name:
            return self._toast(state, "No repository loaded", ToastLevel.ERROR)
        state.repo_settings_dialog.show(
            state.repo_name,
            state.settings.repo_settings_for(state.repo_name),
            state.theme_name,
            state.settings.enabled_providers,
        )
        state.focus = FocusMode.REPO_SETTINGS
        return []

    def _open_settings_theme(self, state: "AppState", key: str) -> Commands:
        commands = self._open_settings(state, key)
        if state.focus == FocusMode.REPO_SETTINGS:
            state.repo_settings_dialog.focus_theme()
        return commands

    def _handle_repo_settings_key(self, state: "AppState", key: str) -> Commands:
        dialog = state.repo_settings_dialog
        action = dialog.handle_key(key)
        if action == DialogAction.QUIT:
            return [Quit()]
        if action == DialogAction.CANCEL:
            state.theme_name = dialog.original_theme
            state.focus = FocusMode.OUTPUT
            return []
        if action == DialogAction.SAVE:
            return self._save_repo_settings(state)
        if dialog.focus == DialogField.THEME:
            state.theme_name = dialog.selected_theme
        return []

    def _save_repo_settings(self, state: "AppState") -> Commands:
        dialog = state.repo_settings_dialog
        settings = state.settings
        settings.set_repo_settings(dialog.repo_name, dialog.repo_settings())
        settings.set_enabled_providers(dialog.enabled_providers())
        settings.theme_name = dialog.selected_theme
        state.theme_name = dialog.selected_theme

        allowed = {m.id for m in available_models(settings)}
        for kind, model in list(state.default_models.items()):
            if model not in allowed:
                state.default_models[kind] = default_model(settings)

        state.focus = FocusMode.OUTPUT
        return self._toast(state, "Repo settings saved", ToastLevel.SUCCESS) + [
            self._persist_settings_cmd(state, "Settings updated but failed to save")
        ]
