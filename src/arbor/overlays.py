"""
State for the full-screen overlays: help, theme picker, all sessions and the
repo settings dialog.

Each overlay is plain data plus small key handlers; the controller decides
what the result means (apply a theme, persist settings, switch session).
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

from .domain import PROVIDERS, SessionInfo
from .focus import FocusMode
from .settings import RepoSettings, parse_command_lines
from .text_input import TextAction, TextBuffer


# Textual built-in theme names offered in the picker
THEMES = [
    "textual-dark",
    "textual-light",
    "nord",
    "gruvbox",
    "dracula",
    "tokyo-night",
    "monokai",
    "solarized-light",
]
DEFAULT_THEME = THEMES[0]


def theme_index(name: str) -> int:
    try:
        return THEMES.index(name)
    except ValueError:
        return 0


@dataclass
class HelpSection:
    title: str
    bindings: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class HelpOverlay:
    sections: List[HelpSection] = field(default_factory=list)
    scroll_offset: int = 0
    previous_focus: FocusMode = FocusMode.OUTPUT

    def show(self, sections: List[HelpSection], previous_focus: FocusMode) -> None:
        self.sections = sections
        self.scroll_offset = 0
        self.previous_focus = previous_focus

    def scroll_up(self) -> None:
        if self.scroll_offset > 0:
            self.scroll_offset -= 1

    def scroll_down(self) -> None:
        self.scroll_offset += 1

    def copy(self) -> "HelpOverlay":
        return HelpOverlay(list(self.sections), self.scroll_offset, self.previous_focus)


@dataclass
class ThemePicker:
    selected: int = 0
    original_theme: str = DEFAULT_THEME

    def show(self, current_theme: str) -> None:
        self.original_theme = current_theme
        self.selected = theme_index(current_theme)

    def move_selection(self, delta: int) -> None:
        self.selected = max(0, min(len(THEMES) - 1, self.selected + delta))

    @property
    def selected_theme(self) -> str:
        return THEMES[self.selected]

    def copy(self) -> "ThemePicker":
        return ThemePicker(self.selected, self.original_theme)


@dataclass
class AllSessionsOverlay:
    sessions: List[SessionInfo] = field(default_factory=list)
    selected: int = 0

    def show(self, sessions: List[SessionInfo]) -> None:
        self.sessions = list(sessions)
        self.selected = 0

    def move_selection(self, delta: int) -> None:
        if not self.sessions:
            self.selected = 0
            return
        self.selected = max(0, min(len(self.sessions) - 1, self.selected + delta))

    def select_by_number(self, n: int) -> bool:
        """Select the 1-based ``n``-th session. Returns False when out of range."""
        if n < 1 or n > len(self.sessions):
            return False
        self.selected = n - 1
        return True

    def selected_session(self) -> Optional[SessionInfo]:
        if 0 <= self.selected < len(self.sessions):
            return self.sessions[self.selected]
        return None

    def copy(self) -> "AllSessionsOverlay":
        return AllSessionsOverlay(list(self.sessions), self.selected)


class DialogField(IntEnum):
    THEME = 0
    PROVIDERS = 1
    CREATE = 2
    DELETE = 3
    SAVE = 4
    CANCEL = 5


class DialogAction(str, Enum):
    NONE = "none"
    SAVE = "save"
    CANCEL = "cancel"
    QUIT = "quit"


@dataclass
class RepoSettingsDialog:
    """Unified settings dialog: theme, providers and per-repo hooks."""

    repo_name: str = ""
    focus: DialogField = DialogField.THEME
    theme_selected: int = 0
    original_theme: str = DEFAULT_THEME
    provider_cursor: int = 0
    provider_enabled: Dict[str, bool] = field(default_factory=dict)
    create_input: TextBuffer = field(default_factory=lambda: TextBuffer(multiline=True))
    delete_input: TextBuffer = field(default_factory=lambda: TextBuffer(multiline=True))

    def show(
        self,
        repo_name: str,
        cfg: RepoSettings,
        current_theme: str,
        enabled_providers: Optional[List[str]],
    ) -> None:
        self.repo_name = repo_name
        self.focus = DialogField.CREATE
        self.original_theme = current_theme
        self.theme_selected = theme_index(current_theme)
        self.provider_cursor = 0
        self.provider_enabled = {
            p: enabled_providers is None or p in enabled_providers for p in PROVIDERS
        }
        self.create_input.set_text("\n".join(cfg.on_worktree_create))
        self.delete_input.set_text("\n".join(cfg.on_worktree_delete))

    def focus_theme(self) -> None:
        self.focus = DialogField.THEME

    @property
    def selected_theme(self) -> str:
        return THEMES[self.theme_selected]

    def repo_settings(self) -> RepoSettings:
        return RepoSettings(
            on_worktree_create=parse_command_lines(self.create_input.text),
            on_worktree_delete=parse_command_lines(self.delete_input.text),
        )

    def enabled_providers(self) -> Optional[List[str]]:
        """Enabled providers, or None when every provider is enabled."""
        enabled = [p for p in PROVIDERS if self.provider_enabled.get(p)]
        if len(enabled) == len(PROVIDERS):
            return None
        return enabled

    def _move_focus(self, delta: int) -> None:
        self.focus = DialogField((int(self.focus) + delta) % len(DialogField))

    def _toggle_provider(self) -> None:
        provider = PROVIDERS[self.provider_cursor]
        self.provider_enabled[provider] = not self.provider_enabled.get(provider, False)

    def _move_theme(self, delta: int) -> None:
        self.theme_selected = max(0, min(len(THEMES) - 1, self.theme_selected + delta))

    def handle_key(self, key: str) -> DialogAction:
        if key == "esc":
            return DialogAction.CANCEL
        if key == "ctrl+c":
            return DialogAction.QUIT
        if key in ("ctrl+s", "ctrl+enter"):
            return DialogAction.SAVE
        if key == "tab":
            self._move_focus(1)
            return DialogAction.NONE
        if key == "shift+tab":
            self._move_focus(-1)
            return DialogAction.NONE

        if self.focus in (DialogField.CREATE, DialogField.DELETE):
            buffer = self.create_input if self.focus == DialogField.CREATE else self.delete_input
            buffer.handle_key(key)
            return DialogAction.NONE

        if key == "q" and self.focus != DialogField.PROVIDERS:
            return DialogAction.QUIT

        if self.focus == DialogField.THEME:
            if key in ("left", "h", "up", "k"):
                self._move_theme(-1)
            elif key in ("right", "l", "down", "j"):
                self._move_theme(1)
            elif key == "enter":
                self._move_focus(1)
            return DialogAction.NONE

        if self.focus == DialogField.PROVIDERS:
            if key in ("space", " ", "enter"):
                self._toggle_provider()
            elif key in ("up", "k"):
                if self.provider_cursor > 0:
                    self.provider_cursor -= 1
                else:
                    self._move_focus(-1)
            elif key in ("down", "j"):
                if self.provider_cursor < len(PROVIDERS) - 1:
                    self.provider_cursor += 1
                else:
                    self._move_focus(1)
            return DialogAction.NONE

        if key == "enter":
            return DialogAction.SAVE if self.focus == DialogField.SAVE else DialogAction.CANCEL
        if key in ("up", "left"):
            self._move_focus(-1)
        elif key in ("down", "right"):
            self._move_focus(1)
        return DialogAction.NONE

    def copy(self) -> "RepoSettingsDialog":
        return RepoSettingsDialog(
            repo_name=self.repo_name,
            focus=self.focus,
            theme_selected=self.theme_selected,
            original_theme=self.original_theme,
            provider_cursor=self.provider_cursor,
            provider_enabled=dict(self.provider_enabled),
            create_input=self.create_input.copy(),
            delete_input=self.delete_input.copy(),
        )
