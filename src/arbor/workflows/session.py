"""
Agent session lifecycle: start planners and builders, follow up, approve a
plan, stop, and switch between sessions. Also owns the single-line input the
session and worktree prompts are typed into.
"""

from typing import TYPE_CHECKING

from ..commands import Commands, Deferred, Quit
from ..confirm_prompt import options
from ..domain import SessionKind, SessionStatus, available_models, default_model, find_model, next_model
from ..exceptions import ArborError
from ..focus import FocusMode
from ..messages import (
    CreateWorktreeRequested,
    ErrorOccurred,
    InputSubmitted,
    SessionsRefreshed,
    SessionStarted,
)
from ..pending import CreateWorktree, FollowUp, StartSession, StopSession
from ..protocols import SessionManagerInterface
from ..text_input import TextAction
from ..toast import ToastLevel

if TYPE_CHECKING:
    from ..state import AppState


def session_prompt(kind: SessionKind, model: str) -> str:
    found = find_model(model)
    label = found.label if found else (model or "default")
    title = "Plan" if kind == SessionKind.PLANNER else "Build"
    return f"{title} prompt [{label}]: "


def start_session_job(
    sessions: SessionManagerInterface,
    kind: SessionKind,
    worktree_path: str,
    prompt: str,
    model: str,
):
    try:
        session_id = sessions.start_session(kind, worktree_path, prompt, model)
    except ArborError as e:
        return ErrorOccurred(f"Failed to start {kind.value}: {e}")
    return SessionStarted(session_id, kind, sessions.get_all_sessions())


def approve_plan_job(sessions: SessionManagerInterface, planner_id: str, worktree_path: str, plan_file: str, model: str):
    """Close the planner and hand its plan to a fresh builder."""
    try:
        sessions.complete_session(planner_id)
        session_id = sessions.start_session(
            SessionKind.BUILDER, worktree_path, f"Implement the plan in {plan_file}", model
        )
    except ArborError as e:
        return ErrorOccurred(f"Failed to approve plan: {e}")
    return SessionStarted(session_id, SessionKind.BUILDER, sessions.get_all_sessions())


class SessionWorkflowMixin:
    """Session handlers for the controller."""

    # Starting sessions

    def _begin_planner(self, state: "AppState", key: str) -> Commands:
        return self._begin_session(state, SessionKind.PLANNER)

    def _begin_builder(self, state: "AppState", key: str) -> Commands:
        return self._begin_session(state, SessionKind.BUILDER)

    def _begin_session(self, state: "AppState", kind: SessionKind) -> Commands:
        if state.selected_worktree() is None:
            return self._toast(state, "Select a worktree first (Alt-W)", ToastLevel.INFO)
        model = state.default_models.get(kind) or default_model(state.settings)
        placeholder = "Describe what to plan..." if kind == SessionKind.PLANNER else "Describe what to build..."
        return self._prompt_input(state, session_prompt(kind, model), StartSession(kind, model), placeholder)

    def _start_session(self, state: "AppState", kind: SessionKind, prompt: str, model: str) -> Commands:
        worktree = state.selected_worktree()
        if worktree is None:
            return self._toast(state, "Select a worktree first (Alt-W)", ToastLevel.INFO)
        if not prompt.strip():
            return []
        sessions = self.sessions
        path = worktree.path
        self._logger.info("starting session", kind=kind.value, worktree=worktree.branch, model=model)
        return [Deferred(lambda: start_session_job(sessions, kind, path, prompt, model), f"start-{kind.value}")]

    def _on_session_started(self, state: "AppState", msg: SessionStarted) -> Commands:
        if msg.sessions:
            state.sessions = list(msg.sessions)
        state.switch_viewing_session(msg.session_id)
        state.scroll_offset = 0
        state.refresh_session_dropdown()
        state.refresh_worktree_dropdown()
        state.session_dropdown.select_by_id(msg.session_id)
        return self._toast(state, f"Session started: {msg.session_id[:12]}", ToastLevel.SUCCESS)

    # Acting on the viewed session

    def _begin_follow_up(self, state: "AppState", key: str) -> Commands:
        session = state.selected_session()
        if session is None or session.status != SessionStatus.IDLE:
            return self._toast(state, "No idle session for follow-up", ToastLevel.INFO)
        return self._prompt_input(state, "Follow-up: ", FollowUp(session.id))

    def _approve_plan(self, state: "AppState", key: str) -> Commands:
        session = state.selected_session()
        if (
            session is None
            or session.kind != SessionKind.PLANNER
            or session.status != SessionStatus.IDLE
            or not session.plan_file
        ):
            return self._toast(state, "No plan ready to approve", ToastLevel.INFO)
        sessions = self.sessions
        model = state.default_models.get(SessionKind.BUILDER) or session.model
        planner_id, path, plan_file = session.id, session.worktree_path, session.plan_file
        return [Deferred(lambda: approve_plan_job(sessions, planner_id, path, plan_file, model), "approve-plan")]

    def _confirm_stop_session(self, state: "AppState", key: str) -> Commands:
        session = state.selected_session()
        if session is None or session.status.is_terminal():
            return self._toast(state, "No active session to stop (Alt-S to select)", ToastLevel.INFO)
        return self._show_confirm(
            state,
            f"Stop session '{session.display_title}'?",
            options(("y", "yes")),
            StopSession(session.id, session.display_title),
        )

    def _stop_session_cmd(self, session_id: str) -> Deferred:
        sessions = self.sessions

        def run():
            try:
                sessions.stop_session(session_id)
            except ArborError as e:
                return ErrorOccurred(f"Failed to stop session: {e}")
            return SessionsRefreshed(sessions.get_all_sessions())

        return Deferred(run, f"stop-session:{session_id[:12]}")

    def _send_follow_up_cmd(self, session_id: str, text: str) -> Deferred:
        sessions = self.sessions

        def run():
            try:
                sessions.send_follow_up(session_id, text)
            except ArborError as e:
                return ErrorOccurred(f"Failed to send follow-up: {e}")
            return SessionsRefreshed(sessions.get_all_sessions())

        return Deferred(run, f"follow-up:{session_id[:12]}")

    # Switching

    def _quick_switch(self, state: "AppState", key: str) -> Commands:
        n = int(key)
        live = [s for s in state.current_worktree_sessions() if not s.status.is_terminal()]
        if n > len(live):
            return self._toast(state, f"No session #{n}", ToastLevel.INFO)
        target = live[n - 1]
        state.switch_viewing_session(target.id)
        state.session_dropdown.select_by_id(target.id)
        return []

    def _open_all_sessions(self, state: "AppState", key: str) -> Commands:
        state.all_sessions.show(state.active_sessions())
        state.focus = FocusMode.ALL_SESSIONS
        return []

    # Input line

    def _clear_input(self, state: "AppState") -> None:
        state.input.reset()
        state.input_prompt = ""
        state.input_purpose = None
        state.focus = FocusMode.OUTPUT

    def _handle_input_key(self, state: "AppState", key: str) -> Commands:
        if key == "alt+m":
            self._cycle_input_model(state)
            return []
        action = state.input.handle_key(key)
        if action == TextAction.QUIT:
            return [Quit()]
        if action == TextAction.CANCEL:
            self._clear_input(state)
            return []
        if action == TextAction.SUBMIT:
            text = state.input.value
            if not text:
                return []
            return self._on_input_submitted(state, InputSubmitted(text))
        return []

    def _cycle_input_model(self, state: "AppState") -> None:
        purpose = state.input_purpose
        if not isinstance(purpose, StartSession):
            return
        model = next_model(purpose.model, available_models(state.settings))
        state.input_purpose = StartSession(purpose.kind, model)
        state.input_prompt = session_prompt(purpose.kind, model)

    def _on_input_submitted(self, state: "AppState", msg: InputSubmitted) -> Commands:
        purpose = state.input_purpose
        self._clear_input(state)
        if isinstance(purpose, CreateWorktree):
            return self._on_create_worktree_requested(state, CreateWorktreeRequested(msg.text))
        if isinstance(purpose, StartSession):
            if purpose.model:
                state.default_models[purpose.kind] = purpose.model
            return self._start_session(state, purpose.kind, msg.text, purpose.model)
        if isinstance(purpose, FollowUp):
            return [self._send_follow_up_cmd(purpose.session_id, msg.text)]
        return []
