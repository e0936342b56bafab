"""
Controller state.

``AppState`` is the single value threaded through the reducer. Handlers
mutate a clone, never the state they were given, so every reduce step can be
compared against its input in tests.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .confirm_prompt import ConfirmPrompt
from .domain import SessionInfo, SessionKind, Worktree, WorktreeStatus, default_model
from .dropdown import SEPARATOR_ID, Dropdown, DropdownItem
from .focus import FocusMode
from .overlays import DEFAULT_THEME, AllSessionsOverlay, HelpOverlay, RepoSettingsDialog, ThemePicker
from .pending import InputPurpose
from .settings import Settings
from .task_modal import TaskModal
from .text_input import TextBuffer
from .toast import ToastQueue

# Scrolling to the top uses a large offset; the renderer clamps it.
SCROLL_TOP = 999_999
PAGE_SIZE = 10

STATUS_ICONS = {
    "pending": "…",
    "running": "●",
    "idle": "○",
    "completed": "✓",
    "failed": "✗",
    "stopped": "■",
}


def format_worktree_status(status: WorktreeStatus) -> str:
    """Compact inline status: dirty marker, ahead/behind, PR state."""
    parts = []
    if status.is_dirty:
        parts.append("*")
    if status.ahead:
        parts.append(f"↑{status.ahead}")
    if status.behind:
        parts.append(f"↓{status.behind}")
    if status.pr_number:
        pr = f"PR#{status.pr_number}"
        if status.pr_is_draft:
            pr += " draft"
        elif status.pr_state and status.pr_state != "OPEN":
            pr += f" {status.pr_state.lower()}"
        parts.append(pr)
    return " ".join(parts)


@dataclass
class AppState:
    repo_name: str = ""
    wt_root: str = ""
    width: int = 80
    height: int = 24

    focus: FocusMode = FocusMode.OUTPUT
    confirm: Optional[ConfirmPrompt] = None
    confirm_quit: bool = False

    worktrees: List[Worktree] = field(default_factory=list)
    worktree_statuses: Dict[str, WorktreeStatus] = field(default_factory=dict)
    sessions: List[SessionInfo] = field(default_factory=list)
    history: List[SessionInfo] = field(default_factory=list)
    history_worktree: str = ""
    worktree_dropdown: Dropdown = field(default_factory=Dropdown)
    session_dropdown: Dropdown = field(default_factory=Dropdown)

    viewing_session_id: str = ""
    scroll_offset: int = 0
    scroll_positions: Dict[str, int] = field(default_factory=dict)

    input: TextBuffer = field(default_factory=TextBuffer)
    input_prompt: str = ""
    input_purpose: Optional[InputPurpose] = None

    task_modal: TaskModal = field(default_factory=TaskModal)
    help: HelpOverlay = field(default_factory=HelpOverlay)
    theme_picker: ThemePicker = field(default_factory=ThemePicker)
    all_sessions: AllSessionsOverlay = field(default_factory=AllSessionsOverlay)
    repo_settings_dialog: RepoSettingsDialog = field(default_factory=RepoSettingsDialog)

    toasts: ToastQueue = field(default_factory=ToastQueue)
    worktree_op_messages: List[str] = field(default_factory=list)
    pending_worktree_select: str = ""
    pending_planner_prompt: str = ""

    settings: Settings = field(default_factory=Settings)
    theme_name: str = DEFAULT_THEME
    default_models: Dict[SessionKind, str] = field(default_factory=dict)

    split_pane: bool = False
    split_focus_left: bool = False
    file_tree_path: str = ""
    file_tree: List[str] = field(default_factory=list)
    file_tree_cursor: int = 0

    git_status_chain_active: bool = False
    pr_status_chain_active: bool = False

    @classmethod
    def initial(cls, repo_name: str, wt_root: str, settings: Settings, toast_ttl: Optional[float] = None) -> "AppState":
        state = cls(repo_name=repo_name, wt_root=wt_root, settings=settings)
        if settings.theme_name:
            state.theme_name = settings.theme_name
        model = default_model(settings)
        state.default_models = {SessionKind.PLANNER: model, SessionKind.BUILDER: model}
        if toast_ttl is not None:
            state.toasts = ToastQueue(ttl=toast_ttl)
        return state

    def clone(self) -> "AppState":
        """Copy every mutable part so the clone can be edited freely."""
        return replace(
            self,
            worktrees=list(self.worktrees),
            worktree_statuses={k: v.copy() for k, v in self.worktree_statuses.items()},
            sessions=list(self.sessions),
            history=list(self.history),
            worktree_dropdown=self.worktree_dropdown.copy(),
            session_dropdown=self.session_dropdown.copy(),
            scroll_positions=dict(self.scroll_positions),
            input=self.input.copy(),
            task_modal=self.task_modal.copy(),
            help=self.help.copy(),
            theme_picker=self.theme_picker.copy(),
            all_sessions=self.all_sessions.copy(),
            repo_settings_dialog=self.repo_settings_dialog.copy(),
            toasts=self.toasts.copy(),
            worktree_op_messages=list(self.worktree_op_messages),
            settings=self.settings.copy(),
            default_models=dict(self.default_models),
            file_tree=list(self.file_tree),
        )

    # Viewing and scrolling

    def switch_viewing_session(self, new_id: str) -> None:
        """Save the outgoing scroll offset, then restore the incoming one."""
        if self.viewing_session_id:
            self.scroll_positions[self.viewing_session_id] = self.scroll_offset
        self.viewing_session_id = new_id
        self.scroll_offset = self.scroll_positions.get(new_id, 0)

    def scroll(self, delta: int) -> None:
        """Positive deltas scroll towards older output."""
        self.scroll_offset = max(0, self.scroll_offset + delta)

    def scroll_to_top(self) -> None:
        self.scroll_offset = SCROLL_TOP

    def scroll_to_bottom(self) -> None:
        self.scroll_offset = 0

    # Selectors

    def selected_worktree(self) -> Optional[Worktree]:
        branch = self.worktree_dropdown.selected_id
        if not branch:
            return None
        return self.worktree_by_branch(branch)

    def worktree_by_branch(self, branch: str) -> Optional[Worktree]:
        for wt in self.worktrees:
            if wt.branch == branch:
                return wt
        return None

    def session_by_id(self, session_id: str) -> Optional[SessionInfo]:
        for sess in self.sessions:
            if sess.id == session_id:
                return sess
        return None

    def selected_session(self) -> Optional[SessionInfo]:
        """The viewed session, live or from the selected worktree's history."""
        if not self.viewing_session_id:
            return None
        live = self.session_by_id(self.viewing_session_id)
        if live is not None:
            return live
        for sess in self.current_history():
            if sess.id == self.viewing_session_id:
                return sess
        return None

    def sessions_for_worktree(self, path: str) -> List[SessionInfo]:
        return [s for s in self.sessions if s.worktree_path == path]

    def current_worktree_sessions(self) -> List[SessionInfo]:
        wt = self.selected_worktree()
        if wt is None:
            return []
        return self.sessions_for_worktree(wt.path)

    def active_sessions(self) -> List[SessionInfo]:
        return [s for s in self.sessions if not s.status.is_terminal()]

    def current_history(self) -> List[SessionInfo]:
        """History of the selected worktree, minus sessions still tracked live."""
        wt = self.selected_worktree()
        if wt is None or wt.path != self.history_worktree:
            return []
        live = {s.id for s in self.sessions}
        return [s for s in self.history if s.id not in live]

    # Dropdown contents

    def refresh_worktree_dropdown(self) -> None:
        items = []
        for wt in self.worktrees:
            label = wt.branch
            status = self.worktree_statuses.get(wt.branch)
            if status is not None:
                inline = format_worktree_status(status)
                if inline:
                    label += "  " + inline
            count = len(self.sessions_for_worktree(wt.path))
            items.append(DropdownItem(id=wt.branch, label=label, badge=f"[{count}]" if count else ""))
        self.worktree_dropdown.set_items(items)

    def refresh_session_dropdown(self) -> None:
        items = []
        for sess in self.current_worktree_sessions():
            icon = "P" if sess.kind == SessionKind.PLANNER else "B"
            items.append(DropdownItem(
                id=sess.id,
                label=f"[{icon}] {sess.display_title}",
                badge=STATUS_ICONS.get(sess.status.value, ""),
            ))
        history = self.current_history()
        if items and history:
            items.append(DropdownItem(id=SEPARATOR_ID, label="History"))
        for sess in history:
            icon = "P" if sess.kind == SessionKind.PLANNER else "B"
            items.append(DropdownItem(id=sess.id, label=f"[{icon}] {sess.display_title}", badge="(history)"))
        self.session_dropdown.set_items(items)
