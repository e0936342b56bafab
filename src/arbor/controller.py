"""
Central controller.

``Controller.reduce(state, message)`` is a pure reducer: it clones the state,
routes the message and returns the new state plus the commands the shell
must execute. It never blocks and never performs I/O itself; slow work is
wrapped in ``Deferred`` commands whose results come back as messages.

Keystrokes go through an ordered focus table (overlays first, then the
confirmation prompt, task modal, input line and dropdowns). When no layer
owns the keyboard, the normal-mode binding table handles the key. Every
other message is routed by its type.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type

from .commands import Commands, Deferred, Quit, Schedule
from .confirm_prompt import ConfirmOption, ConfirmPrompt
from .domain import PRInfo, SessionKind, WorktreeStatus
from .exceptions import ArborError
from .focus import FocusMode, KEY_DISPATCH_ORDER
from .logging_config import get_structured_logger
from .messages import (
    CreateWorktreeRequested,
    DeferredRefresh,
    DeleteWorktreeRequested,
    ErrorOccurred,
    ExternalProcessResult,
    FileTreeLoaded,
    GitStatusTick,
    HistoryLoaded,
    InputSubmitted,
    Key,
    MergeCompleted,
    MergeRequested,
    Message,
    PostMergeChosen,
    PRStatusesLoaded,
    PRStatusTick,
    Resized,
    SessionsRefreshed,
    SessionStarted,
    SyncRequested,
    TaskConfirmed,
    TaskProposalReady,
    TaskRouteRequested,
    TaskWorktreeCreated,
    ToastTick,
    WorktreeOpCompleted,
    WorktreesLoaded,
    WorktreeStatusLoaded,
)
from .pending import DeleteWorktree, InputPurpose, MergePR, PendingAction, PostMerge, StopSession
from .protocols import (
    ProcessLauncherInterface,
    SessionManagerInterface,
    TaskRouterInterface,
    WorktreeManagerFactory,
)
from .settings import Settings, save_settings
from .state import AppState
from .toast import TOAST_TICK_INTERVAL, ToastLevel
from .workflows.merge import MergeWorkflowMixin
from .workflows.navigation import NavigationMixin
from .workflows.overlays import OverlayHandlersMixin
from .workflows.session import SessionWorkflowMixin
from .workflows.task_routing import TaskRoutingMixin
from .workflows.worktree import WorktreeWorkflowMixin

GIT_STATUS_INTERVAL = 10.0
PR_STATUS_INTERVAL = 60.0
DEFERRED_REFRESH_DELAY = 0.05
SESSION_EVENT_TIMEOUT = 2.0

Result = Tuple[AppState, Commands]


@dataclass(frozen=True)
class Binding:
    """A normal-mode key binding; ``description`` feeds the help overlay."""

    keys: Tuple[str, ...]
    handler: str
    description: str = ""
    section: str = ""
    label: str = ""

    @property
    def display(self) -> str:
        return self.label or "/".join(self.keys)


NORMAL_BINDINGS: List[Binding] = [
    Binding(("alt+w",), "_open_worktree_dropdown", "Open worktree selector", "Navigation", "Alt-W"),
    Binding(("alt+s",), "_open_session_dropdown", "Open session selector", "Navigation", "Alt-S"),
    Binding(("S",), "_open_all_sessions", "Show active sessions (all worktrees)", "Navigation"),
    Binding(("?",), "_open_help", "Toggle this help", "Navigation"),
    Binding(("f2",), "_toggle_split", "Toggle file tree split", "Navigation", "F2"),
    Binding(("tab",), "_toggle_split_focus", "Switch pane focus (when split)", "Navigation", "Tab"),
    Binding(("t",), "_open_task_modal", "New task (AI picks worktree)", "Sessions"),
    Binding(("p",), "_begin_planner", "Start planner session", "Sessions"),
    Binding(("b",), "_begin_builder", "Start builder session", "Sessions"),
    Binding(("f",), "_begin_follow_up", "Follow-up on idle session", "Sessions"),
    Binding(("a",), "_approve_plan", "Approve plan & start builder", "Sessions"),
    Binding(("s",), "_confirm_stop_session", "Stop session", "Sessions"),
    Binding(tuple("123456789"), "_quick_switch", "Quick switch to session N", "Sessions", "1..9"),
    Binding(("n",), "_begin_create_worktree", "Create new worktree", "Worktrees"),
    Binding(("d",), "_confirm_delete_worktree", "Delete worktree", "Worktrees"),
    Binding(("m",), "_handle_merge_key", "Merge PR", "Worktrees"),
    Binding(("g",), "_sync_selected", "Sync worktree (fetch + rebase)", "Worktrees"),
    Binding(("G",), "_sync_all", "Sync all worktrees", "Worktrees"),
    Binding(("e",), "_open_editor", "Open worktree in editor", "Worktrees"),
    Binding(("w",), "_open_tmux_window", "Open tmux window in worktree", "Worktrees"),
    Binding(("r",), "_refresh", "Refresh worktrees", "Worktrees"),
    Binding(("up", "k"), "_scroll_up", "Scroll up", "Output", "↑/k"),
    Binding(("down", "j"), "_scroll_down", "Scroll down", "Output", "↓/j"),
    Binding(("pgup",), "_page_up", "Page up", "Output", "PgUp"),
    Binding(("pgdown",), "_page_down", "Page down", "Output", "PgDn"),
    Binding(("home",), "_scroll_top", "Scroll to top", "Output", "Home"),
    Binding(("end",), "_scroll_bottom", "Scroll to bottom", "Output", "End"),
    Binding(("esc",), "_reset_scroll", "Reset scroll", "Output", "Esc"),
    Binding(("enter",), "_open_selected_file", "Open selected file (file tree)", "Output", "Enter"),
    Binding(("ctrl+l", "R"), "_open_settings", "Settings", "Settings", "Ctrl-L/R"),
    Binding(("T",), "_open_settings_theme", "Settings (theme)", "Settings"),
    Binding(("ctrl+t",), "_open_theme_picker", "Theme picker", "Settings", "Ctrl-T"),
    Binding(("q",), "_request_quit", "Quit", "General"),
    Binding(("ctrl+c",), "_quit", "Quit immediately", "General", "Ctrl-C"),
]


class Controller(
    NavigationMixin,
    OverlayHandlersMixin,
    SessionWorkflowMixin,
    WorktreeWorkflowMixin,
    MergeWorkflowMixin,
    TaskRoutingMixin,
):
    """Reduces messages into state transitions and commands."""

    bindings = NORMAL_BINDINGS

    def __init__(
        self,
        sessions: SessionManagerInterface,
        worktree_factory: WorktreeManagerFactory,
        router: Optional[TaskRouterInterface] = None,
        launcher: Optional[ProcessLauncherInterface] = None,
        clock: Callable[[], float] = time.time,
        persist_settings: Callable[[Settings], None] = save_settings,
    ):
        self.sessions = sessions
        self.worktree_factory = worktree_factory
        self.router = router
        self.launcher = launcher
        self.clock = clock
        self.persist_settings = persist_settings
        self._logger = get_structured_logger("controller")

        handlers = {
            FocusMode.HELP: self._handle_help_key,
            FocusMode.THEME_PICKER: self._handle_theme_picker_key,
            FocusMode.REPO_SETTINGS: self._handle_repo_settings_key,
            FocusMode.ALL_SESSIONS: self._handle_all_sessions_key,
            FocusMode.CONFIRM: self._handle_confirm_key,
            FocusMode.TASK_MODAL: self._handle_task_modal_key,
            FocusMode.INPUT: self._handle_input_key,
            FocusMode.WORKTREE_DROPDOWN: self._handle_dropdown_key,
            FocusMode.SESSION_DROPDOWN: self._handle_dropdown_key,
        }
        self._key_handlers = [(mode, handlers[mode]) for mode in KEY_DISPATCH_ORDER]

        self._bindings: Dict[str, Callable[[AppState, str], Commands]] = {}
        for binding in NORMAL_BINDINGS:
            for key in binding.keys:
                self._bindings[key] = getattr(self, binding.handler)

        self._message_handlers: Dict[Type[Message], Callable[[AppState, Message], Commands]] = {
            Resized: self._on_resized,
            WorktreesLoaded: self._on_worktrees_loaded,
            DeferredRefresh: self._on_deferred_refresh,
            WorktreeStatusLoaded: self._on_worktree_status_loaded,
            PRStatusesLoaded: self._on_pr_statuses_loaded,
            GitStatusTick: self._on_git_status_tick,
            PRStatusTick: self._on_pr_status_tick,
            FileTreeLoaded: self._on_file_tree_loaded,
            SessionsRefreshed: self._on_sessions_refreshed,
            SessionStarted: self._on_session_started,
            HistoryLoaded: self._on_history_loaded,
            ErrorOccurred: self._on_error,
            InputSubmitted: self._on_input_submitted,
            CreateWorktreeRequested: self._on_create_worktree_requested,
            DeleteWorktreeRequested: self._on_delete_worktree_requested,
            SyncRequested: self._on_sync_requested,
            WorktreeOpCompleted: self._on_worktree_op_completed,
            TaskRouteRequested: self._on_task_route_requested,
            TaskProposalReady: self._on_task_proposal_ready,
            TaskConfirmed: self._on_task_confirmed,
            TaskWorktreeCreated: self._on_task_worktree_created,
            MergeRequested: self._on_merge_requested,
            MergeCompleted: self._on_merge_completed,
            PostMergeChosen: self._on_post_merge_chosen,
            ExternalProcessResult: self._on_external_process_result,
            ToastTick: self._on_toast_tick,
        }

    # Entry points

    def init(self, state: AppState) -> Result:
        """Commands to run once at startup."""
        state = state.clone()
        return state, [self._refresh_worktrees_cmd(state), self._listen_for_session_events_cmd()]

    def reduce(self, state: AppState, message: Message) -> Result:
        state = state.clone()
        if isinstance(message, Key):
            return state, self._dispatch_key(state, message.key)
        handler = self._message_handlers.get(type(message))
        if handler is None:
            self._logger.debug("unhandled message", type=type(message).__name__)
            return state, []
        return state, handler(state, message)

    def _dispatch_key(self, state: AppState, key: str) -> Commands:
        for mode, handler in self._key_handlers:
            if state.focus == mode:
                return handler(state, key)
        return self._handle_normal_key(state, key)

    def _handle_normal_key(self, state: AppState, key: str) -> Commands:
        if state.confirm_quit:
            state.confirm_quit = False
            if key in ("q", "y", "ctrl+c"):
                return [Quit()]
            return self._toast(state, "Quit cancelled", ToastLevel.INFO)

        handler = self._bindings.get(key)
        if handler is None:
            return []
        return handler(state, key)

    # Shared helpers

    def _toast(self, state: AppState, message: str, level: ToastLevel) -> Commands:
        if state.toasts.add(message, level, self.clock()):
            return [Schedule(TOAST_TICK_INTERVAL, ToastTick())]
        return []

    def _show_confirm(
        self,
        state: AppState,
        message: str,
        options: List[ConfirmOption],
        action: PendingAction,
        cancel_action: Optional[PendingAction] = None,
    ) -> Commands:
        state.confirm = ConfirmPrompt(message, options, action, cancel_action)
        state.focus = FocusMode.CONFIRM
        return []

    def _prompt_input(self, state: AppState, prompt: str, purpose: InputPurpose, placeholder: str = "") -> Commands:
        state.input.reset()
        state.input.placeholder = placeholder
        state.input_prompt = prompt
        state.input_purpose = purpose
        state.focus = FocusMode.INPUT
        return []

    def _handle_confirm_key(self, state: AppState, key: str) -> Commands:
        prompt = state.confirm
        if prompt is None:
            state.focus = FocusMode.OUTPUT
            return []
        result = prompt.handle_key(key)
        if result.quit:
            return [Quit()]
        if result.inert:
            return []

        # The prompt is gone before its action resolves
        state.confirm = None
        state.focus = FocusMode.OUTPUT
        if result.cancelled:
            if prompt.cancel_action is None:
                return []
            return self._resolve_pending(state, prompt.cancel_action, "")
        return self._resolve_pending(state, prompt.action, result.matched)

    def _resolve_pending(self, state: AppState, action: PendingAction, key: str) -> Commands:
        """Turn a confirmed (or, with an empty key, cancelled) action into work."""
        if isinstance(action, DeleteWorktree):
            return self._on_delete_worktree_requested(
                state, DeleteWorktreeRequested(action.branch, delete_branch=(key == "d"))
            )
        if isinstance(action, StopSession):
            return [self._stop_session_cmd(action.session_id)]
        if isinstance(action, MergePR):
            method = {"s": "squash", "r": "rebase", "m": "merge"}[key]
            return self._on_merge_requested(state, MergeRequested(action.branch, method))
        if isinstance(action, PostMerge):
            choice = {"d": "delete", "r": "reset", "k": "keep"}.get(key, "keep")
            return self._on_post_merge_chosen(state, PostMergeChosen(action.branch, choice))
        raise TypeError(f"unknown pending action: {action!r}")

    # Deferred command builders

    def _refresh_worktrees_cmd(self, state: AppState) -> Deferred:
        factory = self.worktree_factory

        def run() -> Message:
            try:
                return WorktreesLoaded(factory(None).list())
            except ArborError as e:
                return ErrorOccurred(str(e))

        return Deferred(run, "refresh-worktrees")

    def _fetch_git_statuses_cmds(self, state: AppState) -> Commands:
        factory = self.worktree_factory
        commands: Commands = []
        for worktree in state.worktrees:
            def run(worktree=worktree) -> Optional[Message]:
                try:
                    return WorktreeStatusLoaded(worktree.branch, factory(None).get_status(worktree))
                except ArborError as e:
                    self._logger.warning("git status failed", branch=worktree.branch, error=e)
                    return None
            commands.append(Deferred(run, f"git-status:{worktree.branch}"))
        return commands

    def _fetch_pr_statuses_cmd(self) -> Deferred:
        factory = self.worktree_factory

        def run() -> Optional[Message]:
            try:
                return PRStatusesLoaded(factory(None).list_open_prs())
            except ArborError as e:
                self._logger.warning("PR status fetch failed", error=e)
                return None

        return Deferred(run, "pr-statuses")

    def _load_history_cmds(self, state: AppState) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None:
            return []
        sessions = self.sessions
        path = worktree.path

        def run() -> Message:
            try:
                return HistoryLoaded(path, sessions.load_history(path))
            except (ArborError, OSError) as e:
                return ErrorOccurred(f"Failed to load session history: {e}")

        return [Deferred(run, "load-history")]

    def _listen_for_session_events_cmd(self) -> Deferred:
        sessions = self.sessions

        def run() -> Message:
            sessions.wait_for_event(SESSION_EVENT_TIMEOUT)
            return SessionsRefreshed(sessions.get_all_sessions(), from_listener=True)

        return Deferred(run, "session-events")

    # Message handlers

    def _on_resized(self, state: AppState, msg: Resized) -> Commands:
        state.width = msg.width
        state.height = msg.height
        return []

    def _on_worktrees_loaded(self, state: AppState, msg: WorktreesLoaded) -> Commands:
        state.worktrees = list(msg.worktrees)
        state.refresh_worktree_dropdown()
        commands: Commands = [Schedule(DEFERRED_REFRESH_DELAY, DeferredRefresh())]

        if state.pending_worktree_select:
            branch = state.pending_worktree_select
            prompt = state.pending_planner_prompt
            state.pending_worktree_select = ""
            state.pending_planner_prompt = ""
            selected = state.worktree_dropdown.select_by_id(branch)
            if selected:
                state.switch_viewing_session("")
            state.refresh_session_dropdown()
            if prompt and not selected:
                self._logger.warning("queued planner dropped", worktree=branch)
                return commands + self._toast(
                    state, f"Worktree '{branch}' not found, planner not started", ToastLevel.ERROR
                )
            if prompt:
                commands = self._start_session(
                    state, SessionKind.PLANNER, prompt, state.default_models.get(SessionKind.PLANNER, "")
                ) + commands
            return commands

        if state.selected_worktree() is None and state.worktrees:
            state.worktree_dropdown.select_by_id(state.worktrees[0].branch)
        state.refresh_session_dropdown()
        return commands

    def _on_deferred_refresh(self, state: AppState, msg: DeferredRefresh) -> Commands:
        commands = self._fetch_git_statuses_cmds(state)
        commands += self._load_history_cmds(state)
        if not state.git_status_chain_active:
            state.git_status_chain_active = True
            commands.append(Schedule(GIT_STATUS_INTERVAL, GitStatusTick()))
        commands.append(self._fetch_pr_statuses_cmd())
        if not state.pr_status_chain_active:
            state.pr_status_chain_active = True
            commands.append(Schedule(PR_STATUS_INTERVAL, PRStatusTick()))
        commands.extend(self._refresh_file_tree_cmds(state))
        return commands

    def _on_git_status_tick(self, state: AppState, msg: GitStatusTick) -> Commands:
        return self._fetch_git_statuses_cmds(state) + [Schedule(GIT_STATUS_INTERVAL, GitStatusTick())]

    def _on_pr_status_tick(self, state: AppState, msg: PRStatusTick) -> Commands:
        return [self._fetch_pr_statuses_cmd(), Schedule(PR_STATUS_INTERVAL, PRStatusTick())]

    def _on_worktree_status_loaded(self, state: AppState, msg: WorktreeStatusLoaded) -> Commands:
        existing = state.worktree_statuses.get(msg.branch)
        if existing is None:
            state.worktree_statuses[msg.branch] = msg.status.copy()
        else:
            existing.merge_git(msg.status)
        state.refresh_worktree_dropdown()
        return []

    def _on_pr_statuses_loaded(self, state: AppState, msg: PRStatusesLoaded) -> Commands:
        by_branch: Dict[str, PRInfo] = {pr.head_branch: pr for pr in msg.prs}
        for worktree in state.worktrees:
            status = state.worktree_statuses.get(worktree.branch)
            if status is None:
                status = WorktreeStatus()
                state.worktree_statuses[worktree.branch] = status
            status.apply_pr(by_branch.get(worktree.branch))
        state.refresh_worktree_dropdown()
        return []

    def _on_sessions_refreshed(self, state: AppState, msg: SessionsRefreshed) -> Commands:
        state.sessions = list(msg.sessions)
        state.refresh_session_dropdown()
        state.refresh_worktree_dropdown()
        if msg.from_listener:
            return [self._listen_for_session_events_cmd()]
        return []

    def _on_history_loaded(self, state: AppState, msg: HistoryLoaded) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None or worktree.path != msg.worktree_path:
            return []
        state.history = list(msg.sessions)
        state.history_worktree = msg.worktree_path
        state.refresh_session_dropdown()
        return []

    def _on_error(self, state: AppState, msg: ErrorOccurred) -> Commands:
        self._logger.error(msg.message)
        return self._toast(state, msg.message, ToastLevel.ERROR)

    def _on_toast_tick(self, state: AppState, msg: ToastTick) -> Commands:
        if state.toasts.tick(self.clock()):
            return [Schedule(TOAST_TICK_INTERVAL, ToastTick())]
        return []

    def _on_external_process_result(self, state: AppState, msg: ExternalProcessResult) -> Commands:
        if not msg.error:
            return []
        what = "editor" if msg.kind == "editor" else "tmux window"
        return self._toast(state, f"Failed to open {what}: {msg.error}", ToastLevel.ERROR)

    # Quit

    def _request_quit(self, state: AppState, key: str) -> Commands:
        active = state.active_sessions()
        if not active:
            return [Quit()]
        state.confirm_quit = True
        return self._toast(
            state,
            f"{len(active)} active session(s). Press 'q' or 'y' to confirm quit, any other key to cancel",
            ToastLevel.INFO,
        )

    def _quit(self, state: AppState, key: str) -> Commands:
        return [Quit()]
