"""
Domain types shared by the controller and its collaborators.

Worktrees, their git/PR status, agent sessions, task-routing proposals and
the agent model registry. These are plain dataclasses with no behaviour
beyond small predicates and copy helpers.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional


@dataclass
class Worktree:
    """A git worktree checked out from the repo's bare clone."""

    branch: str
    path: str
    commit: str = ""


@dataclass
class PRInfo:
    """An open pull request as reported by ``gh pr list``."""

    number: int
    head_branch: str
    url: str = ""
    state: str = "OPEN"
    is_draft: bool = False
    review_decision: str = ""


@dataclass
class WorktreeStatus:
    """Cached status for one worktree.

    Git fields and PR fields are refreshed by independent commands; each
    refresh only writes its own fields so results may arrive in any order.
    """

    is_dirty: bool = False
    ahead: int = 0
    behind: int = 0
    last_commit_time: Optional[datetime] = None
    last_commit_msg: str = ""

    pr_number: int = 0
    pr_url: str = ""
    pr_state: str = ""
    pr_is_draft: bool = False
    pr_review_status: str = ""

    def merge_git(self, other: "WorktreeStatus") -> None:
        self.is_dirty = other.is_dirty
        self.ahead = other.ahead
        self.behind = other.behind
        self.last_commit_time = other.last_commit_time
        self.last_commit_msg = other.last_commit_msg

    def apply_pr(self, pr: Optional[PRInfo]) -> None:
        """Set PR fields from ``pr``, or clear them when there is no open PR."""
        if pr is None:
            self.pr_number = 0
            self.pr_url = ""
            self.pr_state = ""
            self.pr_is_draft = False
            self.pr_review_status = ""
            return
        self.pr_number = pr.number
        self.pr_url = pr.url
        self.pr_state = pr.state
        self.pr_is_draft = pr.is_draft
        self.pr_review_status = pr.review_decision

    @property
    def is_merged(self) -> bool:
        return self.pr_state == "MERGED"

    def copy(self) -> "WorktreeStatus":
        return replace(self)


class SessionKind(str, Enum):
    PLANNER = "planner"
    BUILDER = "builder"


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    IDLE = "idle"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.STOPPED)


@dataclass
class SessionInfo:
    """Snapshot of one agent session owned by the session manager."""

    id: str
    kind: SessionKind
    status: SessionStatus
    worktree_path: str
    prompt: str = ""
    title: str = ""
    model: str = ""
    plan_file: str = ""
    window_name: str = ""
    started_at: float = 0.0

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        prompt = self.prompt.strip().splitlines()[0] if self.prompt.strip() else ""
        if len(prompt) > 40:
            prompt = prompt[:37] + "..."
        return prompt or self.id[:12]


class RouteAction(str, Enum):
    USE_EXISTING = "use_existing"
    CREATE_NEW = "create_new"


@dataclass
class RouteProposal:
    action: RouteAction
    worktree: str
    parent: str = ""
    reasoning: str = ""


@dataclass
class WorktreeInfo:
    """Worktree context handed to the task router."""

    name: str
    path: str
    is_dirty: bool = False
    is_ahead: bool = False
    pr_state: str = ""
    is_merged: bool = False
    last_commit: str = ""


@dataclass
class RouteRequest:
    prompt: str
    worktrees: List[WorktreeInfo] = field(default_factory=list)
    repo_name: str = ""
    current_branch: str = ""


@dataclass
class WorktreeOpResult:
    """Outcome of a create/delete/sync/reset run.

    ``branch`` is only set by a successful create.
    """

    messages: List[str] = field(default_factory=list)
    branch: str = ""
    warning: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


# Agent models, grouped by provider

PROVIDERS = ["claude", "codex", "gemini"]


@dataclass(frozen=True)
class AgentModel:
    id: str
    label: str
    provider: str


MODELS: List[AgentModel] = [
    AgentModel("opus", "Opus", "claude"),
    AgentModel("sonnet", "Sonnet", "claude"),
    AgentModel("haiku", "Haiku", "claude"),
    AgentModel("gpt-5-codex", "GPT-5 Codex", "codex"),
    AgentModel("gemini-2.5-pro", "Gemini 2.5 Pro", "gemini"),
]


def find_model(model_id: str) -> Optional[AgentModel]:
    for model in MODELS:
        if model.id == model_id:
            return model
    return None


def available_models(settings) -> List[AgentModel]:
    """Models whose provider is enabled in ``settings``."""
    return [m for m in MODELS if settings.is_provider_enabled(m.provider)]


def default_model(settings) -> str:
    models = available_models(settings)
    return models[0].id if models else ""


def next_model(current: str, models: List[AgentModel]) -> str:
    """Cycle to the model after ``current``, wrapping around."""
    if not models:
        return current
    ids = [m.id for m in models]
    if current not in ids:
        return ids[0]
    return ids[(ids.index(current) + 1) % len(ids)]
