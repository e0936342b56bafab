"""
Unit test configuration for Arbor.

Fake collaborators for the controller plus a fixed clock, and an isolated
state directory so no test touches the real ~/.arbor.
"""

from typing import Dict, List, Optional

import pytest

from arbor.commands import Deferred, Schedule
from arbor.controller import Controller
from arbor.domain import PRInfo, SessionInfo, SessionKind, SessionStatus, Worktree, WorktreeStatus
from arbor.exceptions import RoutingError, SessionError, WorktreeError
from arbor.settings import Settings
from arbor.state import AppState


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Point ARBOR_STATE_DIR at a temp directory for every test."""
    state_dir = tmp_path / "arbor-state"
    monkeypatch.setenv("ARBOR_STATE_DIR", str(state_dir))
    return state_dir


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSessions:
    """In-memory SessionManagerInterface."""

    def __init__(self):
        self.sessions: Dict[str, SessionInfo] = {}
        self.started: List[tuple] = []
        self.stopped: List[str] = []
        self.completed: List[str] = []
        self.follow_ups: List[tuple] = []
        self.fail_start: Optional[str] = None
        self.fail_stop: Optional[str] = None
        self.fail_follow_up: Optional[str] = None
        self.output = ""
        self.history: Dict[str, List[SessionInfo]] = {}
        self._counter = 0

    def add(self, info: SessionInfo) -> SessionInfo:
        self.sessions[info.id] = info
        return info

    def start_session(self, kind, worktree_path, prompt, model):
        if self.fail_start:
            raise SessionError(self.fail_start)
        self._counter += 1
        session_id = f"{kind.value[0]}-session-{self._counter:04d}"
        self.started.append((kind, worktree_path, prompt, model))
        self.sessions[session_id] = SessionInfo(
            id=session_id, kind=kind, status=SessionStatus.RUNNING,
            worktree_path=worktree_path, prompt=prompt, model=model,
        )
        return session_id

    def stop_session(self, session_id):
        if self.fail_stop:
            raise SessionError(self.fail_stop)
        self.stopped.append(session_id)
        self.sessions[session_id].status = SessionStatus.STOPPED

    def send_follow_up(self, session_id, text):
        if self.fail_follow_up:
            raise SessionError(self.fail_follow_up)
        self.follow_ups.append((session_id, text))

    def complete_session(self, session_id):
        self.completed.append(session_id)
        if session_id in self.sessions:
            self.sessions[session_id].status = SessionStatus.COMPLETED

    def get_all_sessions(self):
        return list(self.sessions.values())

    def get_sessions_for_worktree(self, worktree_path):
        return [s for s in self.sessions.values() if s.worktree_path == worktree_path]

    def get_output(self, session_id, lines=200):
        return self.output

    def load_history(self, worktree_path):
        return list(self.history.get(worktree_path, []))

    def wait_for_event(self, timeout=None):
        return False


class FakeWorktreeManager:
    """Records calls; writes progress lines to its sink like the real one."""

    def __init__(self, owner: "FakeWorktreeFactory", output=None):
        self.owner = owner
        self.output = output

    def _say(self, line: str) -> None:
        if self.output is not None:
            self.output.write(line + "\n")

    def list(self):
        return list(self.owner.worktrees)

    def new_atomic(self, branch, parent=""):
        self.owner.calls.append(("new_atomic", branch, parent))
        if self.owner.errors.get("new_atomic"):
            raise WorktreeError(self.owner.errors["new_atomic"])
        self._say(f"Created worktree {branch}")
        return f"/wt/repo/{branch}"

    def remove(self, branch, delete_branch=False):
        self.owner.calls.append(("remove", branch, delete_branch))
        if self.owner.errors.get("remove"):
            raise WorktreeError(self.owner.errors["remove"])
        self._say(f"Removed worktree {branch}")

    def sync(self, branch=""):
        self.owner.calls.append(("sync", branch))
        self._say("Fetched latest changes")
        if self.owner.errors.get("sync"):
            raise WorktreeError(self.owner.errors["sync"])

    def merge_pr_for_branch(self, branch, merge_method, keep=True):
        self.owner.calls.append(("merge", branch, merge_method, keep))
        if self.owner.errors.get("merge"):
            raise WorktreeError(self.owner.errors["merge"])
        self._say(f"Merged PR #{self.owner.pr_number}")
        return self.owner.pr_number

    def get_default_branch(self):
        return "main"

    def reset_to_default(self, branch):
        self.owner.calls.append(("reset", branch))
        if self.owner.errors.get("reset"):
            raise WorktreeError(self.owner.errors["reset"])
        return "main"

    def get_status(self, worktree):
        return self.owner.statuses.get(worktree.branch, WorktreeStatus())

    def list_open_prs(self):
        return list(self.owner.prs)

    def list_files(self, worktree_path):
        return list(self.owner.files)


class FakeWorktreeFactory:
    """WorktreeManagerFactory whose managers share one call log."""

    def __init__(self, worktrees: Optional[List[Worktree]] = None):
        self.worktrees: List[Worktree] = list(worktrees or [])
        self.statuses: Dict[str, WorktreeStatus] = {}
        self.prs: List[PRInfo] = []
        self.files: List[str] = []
        self.calls: List[tuple] = []
        self.errors: Dict[str, str] = {}
        self.pr_number = 42

    def __call__(self, output=None):
        return FakeWorktreeManager(self, output)


class FakeRouter:
    def __init__(self, proposal=None, error: str = ""):
        self.proposal = proposal
        self.error = error
        self.requests = []

    def route(self, request):
        self.requests.append(request)
        if self.error:
            raise RoutingError(self.error)
        return self.proposal


class FakeLauncher:
    def __init__(self, in_tmux: bool = True, error: str = ""):
        self.in_tmux = in_tmux
        self.error = error
        self.editor_paths: List[str] = []
        self.windows: List[str] = []

    def open_editor(self, path):
        if self.error:
            raise OSError(self.error)
        self.editor_paths.append(path)

    def open_tmux_window(self, cwd):
        if self.error:
            raise OSError(self.error)
        self.windows.append(cwd)
        return cwd.rsplit("/", 1)[-1]

    def inside_tmux(self):
        return self.in_tmux


MAIN = Worktree(branch="main", path="/wt/repo/main", commit="aaaa1111")
FEATURE = Worktree(branch="feature-x", path="/wt/repo/feature-x", commit="bbbb2222")


def make_session(
    session_id: str = "p-0001",
    kind: SessionKind = SessionKind.PLANNER,
    status: SessionStatus = SessionStatus.RUNNING,
    worktree_path: str = FEATURE.path,
    **kwargs,
) -> SessionInfo:
    return SessionInfo(id=session_id, kind=kind, status=status, worktree_path=worktree_path, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions():
    return FakeSessions()


@pytest.fixture
def factory():
    return FakeWorktreeFactory([MAIN, FEATURE])


@pytest.fixture
def router():
    return FakeRouter()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def saved_settings():
    return []


@pytest.fixture
def controller(sessions, factory, router, launcher, clock, saved_settings):
    return Controller(
        sessions=sessions,
        worktree_factory=factory,
        router=router,
        launcher=launcher,
        clock=clock,
        persist_settings=saved_settings.append,
    )


@pytest.fixture
def state():
    """Repo loaded with both worktrees listed and feature-x selected."""
    state = AppState.initial("repo", "/wt", Settings())
    state.worktrees = [MAIN, FEATURE]
    state.refresh_worktree_dropdown()
    state.worktree_dropdown.select_by_id(FEATURE.branch)
    return state


def deferred(commands) -> List[Deferred]:
    return [c for c in commands if isinstance(c, Deferred)]


def scheduled(commands) -> List[Schedule]:
    return [c for c in commands if isinstance(c, Schedule)]


def run_deferred(commands) -> list:
    """Run every deferred body inline, as the shell's workers would."""
    return [c.run() for c in deferred(commands)]


def toast_messages(state) -> List[str]:
    return [t.message for t in state.toasts.toasts]
