"""
Agent sessions running in tmux windows.

Each session is one tmux window running an agent CLI (``claude``, ``codex``
or ``gemini``) inside a worktree. Status is inferred by polling:

- a dead pane means the agent exited (completed or failed by exit status)
- a missing window means it was stopped or closed by hand
- output that stopped changing means the agent is idle, waiting for input

Planner sessions are asked to write their plan to a file under
``<worktree>/.arbor/plans/``; the plan is ready once that file exists.
"""

import hashlib
import os
import secrets
import shlex
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

import libtmux
from libtmux._internal.query_list import ObjectDoesNotExist
from libtmux.exc import LibTmuxException

from .domain import SessionInfo, SessionKind, SessionStatus, find_model
from .exceptions import SessionError
from .history import SessionStore, StoredSession
from .logging_config import get_logger

logger = get_logger("tmux_sessions")

POLL_INTERVAL = 0.5
IDLE_AFTER = 3.0
CAPTURE_LINES = 200

ADJECTIVES = [
    "happy", "wise", "calm", "brave", "bright", "clever", "gentle", "swift",
    "quiet", "bold", "eager", "steady", "lively", "sharp", "keen", "vivid",
]
NOUNS = [
    "tiger", "ocean", "river", "forest", "valley", "eagle", "wolf", "hawk",
    "fox", "falcon", "stone", "cloud", "storm", "pine", "oak", "reef",
]

PLAN_INSTRUCTIONS = (
    "\n\nWhen the plan is final, write it as markdown to {path} and stop."
)


def window_name() -> str:
    return f"{secrets.choice(ADJECTIVES)}-{secrets.choice(NOUNS)}-{secrets.token_hex(2)}"


def build_agent_command(kind: SessionKind, model: str, prompt: str) -> List[str]:
    """Argument vector for the agent CLI that serves ``model``."""
    found = find_model(model)
    provider = found.provider if found else "claude"
    args = [provider]
    if model:
        args += ["--model", model]
    if provider == "claude" and kind == SessionKind.PLANNER:
        args += ["--permission-mode", "plan"]
    if provider == "gemini":
        args += ["--prompt-interactive", prompt]
    else:
        args.append(prompt)
    return args


@dataclass
class _Tracked:
    info: SessionInfo
    window_id: str = ""
    output_hash: str = ""
    last_change: float = 0.0
    last_output: str = ""
    stopping: bool = False
    archived: bool = False


class TmuxSessionManager:
    """Production implementation of SessionManagerInterface."""

    def __init__(
        self,
        tmux_session: str = "arbor",
        socket_name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        store: Optional[SessionStore] = None,
    ):
        self.tmux_session = tmux_session
        self._socket_name = socket_name or os.environ.get("ARBOR_TMUX_SOCKET")
        self._server: Optional[libtmux.Server] = None
        self._clock = clock
        self._store = store
        self._lock = threading.Lock()
        self._sessions: Dict[str, _Tracked] = {}
        self._plan_files: Dict[str, str] = {}

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _get_session(self) -> libtmux.Session:
        try:
            return self.server.sessions.get(session_name=self.tmux_session)
        except ObjectDoesNotExist:
            return self.server.new_session(session_name=self.tmux_session, attach=False)

    def _get_window(self, window_id: str) -> Optional[libtmux.Window]:
        try:
            return self.server.windows.get(window_id=window_id)
        except (LibTmuxException, ObjectDoesNotExist):
            return None

    def _tracked(self, session_id: str) -> _Tracked:
        tracked = self._sessions.get(session_id)
        if tracked is None:
            raise SessionError(f"unknown session: {session_id}")
        return tracked

    # Lifecycle

    def start_session(self, kind: SessionKind, worktree_path: str, prompt: str, model: str) -> str:
        session_id = f"{kind.value[0]}-{secrets.token_hex(6)}"
        plan_file = ""
        agent_prompt = prompt
        if kind == SessionKind.PLANNER:
            plan_dir = Path(worktree_path) / ".arbor" / "plans"
            plan_dir.mkdir(parents=True, exist_ok=True)
            plan_file = str(plan_dir / f"{session_id}.md")
            agent_prompt += PLAN_INSTRUCTIONS.format(path=plan_file)

        name = window_name()
        command = " ".join(shlex.quote(a) for a in build_agent_command(kind, model, agent_prompt))
        try:
            window = self._get_session().new_window(
                window_name=name,
                start_directory=worktree_path,
                window_shell=command,
                attach=False,
            )
            # Keep the pane after exit so its status can be read
            window.cmd("set-option", "-w", "remain-on-exit", "on")
        except LibTmuxException as e:
            raise SessionError(f"failed to create tmux window {name!r}: {e}") from e

        info = SessionInfo(
            id=session_id,
            kind=kind,
            status=SessionStatus.PENDING,
            worktree_path=worktree_path,
            prompt=prompt,
            model=model,
            window_name=name,
            started_at=self._clock(),
        )
        with self._lock:
            self._sessions[session_id] = _Tracked(
                info=info, window_id=window.window_id, last_change=self._clock()
            )
            # plan_file is only published once the file exists
            self._plan_files[session_id] = plan_file
        logger.info(f"started {kind.value} {session_id} in {worktree_path} (window {name})")
        return session_id

    def _kill(self, tracked: _Tracked) -> None:
        window = self._get_window(tracked.window_id)
        if window is None:
            return
        tracked.last_output = self._capture(tracked) or tracked.last_output
        try:
            window.kill()
        except LibTmuxException as e:
            raise SessionError(f"failed to kill tmux window {tracked.info.window_name!r}: {e}") from e

    def stop_session(self, session_id: str) -> None:
        with self._lock:
            tracked = self._tracked(session_id)
            tracked.stopping = True
        self._kill(tracked)
        with self._lock:
            tracked.info = replace(tracked.info, status=SessionStatus.STOPPED)
        self._archive(tracked)
        logger.info(f"stopped session {session_id}")

    def complete_session(self, session_id: str) -> None:
        with self._lock:
            tracked = self._tracked(session_id)
            tracked.stopping = True
        self._kill(tracked)
        with self._lock:
            tracked.info = replace(tracked.info, status=SessionStatus.COMPLETED)
        self._archive(tracked)

    def send_follow_up(self, session_id: str, text: str) -> None:
        with self._lock:
            tracked = self._tracked(session_id)
            if tracked.info.status != SessionStatus.IDLE:
                raise SessionError(f"session {session_id} is not idle")
        window = self._get_window(tracked.window_id)
        if window is None or not window.panes:
            raise SessionError(f"tmux window for {session_id} is gone")
        pane = window.panes[0]
        try:
            pane.send_keys(text, enter=False)
            time.sleep(0.1)
            pane.send_keys("", enter=True)
        except LibTmuxException as e:
            raise SessionError(f"failed to send follow-up: {e}") from e
        with self._lock:
            tracked.info = replace(tracked.info, status=SessionStatus.RUNNING)
            tracked.last_change = self._clock()

    # Queries

    def get_all_sessions(self) -> List[SessionInfo]:
        with self._lock:
            return sorted((t.info for t in self._sessions.values()), key=lambda s: s.started_at)

    def get_sessions_for_worktree(self, worktree_path: str) -> List[SessionInfo]:
        return [s for s in self.get_all_sessions() if s.worktree_path == worktree_path]

    def get_output(self, session_id: str, lines: int = CAPTURE_LINES) -> str:
        with self._lock:
            tracked = self._sessions.get(session_id)
        if tracked is None:
            return self._history_output(session_id)
        return self._capture(tracked, lines) or tracked.last_output

    def _history_output(self, session_id: str) -> str:
        if self._store is None:
            return ""
        record = self._store.load(session_id)
        return record.output if record is not None else ""

    def load_history(self, worktree_path: str) -> List[SessionInfo]:
        """Finished sessions of a worktree saved by earlier runs."""
        if self._store is None:
            return []
        return self._store.list_sessions(worktree_path)

    def _capture(self, tracked: _Tracked, lines: int = CAPTURE_LINES) -> str:
        window = self._get_window(tracked.window_id)
        if window is None or not window.panes:
            return ""
        try:
            captured = window.panes[0].capture_pane(start=-lines)
        except LibTmuxException:
            return ""
        if isinstance(captured, list):
            return "\n".join(captured)
        return captured or ""

    # Status polling

    def _pane_exit(self, window: libtmux.Window) -> Optional[int]:
        """Exit status of a dead pane, or None while the agent still runs."""
        try:
            out = window.panes[0].cmd("display-message", "-p", "#{pane_dead} #{pane_dead_status}").stdout
        except (LibTmuxException, IndexError):
            return None
        parts = (out[0] if out else "").split()
        if not parts or parts[0] != "1":
            return None
        return int(parts[1]) if len(parts) > 1 and parts[1].lstrip("-").isdigit() else 0

    def _poll_one(self, tracked: _Tracked, now: float) -> SessionStatus:
        current = tracked.info.status
        if current.is_terminal():
            return current
        window = self._get_window(tracked.window_id)
        if window is None:
            return SessionStatus.STOPPED if tracked.stopping else SessionStatus.COMPLETED
        exit_status = self._pane_exit(window)
        if exit_status is not None:
            tracked.last_output = self._capture(tracked) or tracked.last_output
            return SessionStatus.COMPLETED if exit_status == 0 else SessionStatus.FAILED

        output = self._capture(tracked)
        if output:
            tracked.last_output = output
        digest = hashlib.sha1(output.encode("utf-8", "replace")).hexdigest()
        if digest != tracked.output_hash:
            tracked.output_hash = digest
            tracked.last_change = now
            return SessionStatus.RUNNING
        if now - tracked.last_change >= IDLE_AFTER:
            return SessionStatus.IDLE
        return current

    def poll(self) -> bool:
        """Refresh every session's status. Returns True if anything changed."""
        now = self._clock()
        changed = False
        with self._lock:
            tracked_list = list(self._sessions.items())
        for session_id, tracked in tracked_list:
            status = self._poll_one(tracked, now)
            plan_file = tracked.info.plan_file
            candidate = self._plan_files.get(session_id, "")
            if candidate and not plan_file and os.path.exists(candidate):
                plan_file = candidate
            if status != tracked.info.status or plan_file != tracked.info.plan_file:
                with self._lock:
                    tracked.info = replace(tracked.info, status=status, plan_file=plan_file)
                logger.debug(f"session {session_id} -> {status.value}")
                changed = True
                if status.is_terminal():
                    self._archive(tracked)
        return changed

    def _archive(self, tracked: _Tracked) -> None:
        """Save a finished session to the history store once."""
        if self._store is None or tracked.archived:
            return
        tracked.archived = True
        record = StoredSession(tracked.info, completed_at=self._clock(), output=tracked.last_output)
        try:
            self._store.save(record)
        except OSError as e:
            logger.warning(f"failed to save history for {tracked.info.id}: {e}")

    def wait_for_event(self, timeout: Optional[float] = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.poll():
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(POLL_INTERVAL)
