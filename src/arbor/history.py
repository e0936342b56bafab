"""
Session history.

Sessions that reached a terminal state are written as JSON under
``<state dir>/sessions/<repo>/<worktree>/<session id>.json`` so they can be
listed and re-read after Arbor restarts.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .domain import SessionInfo, SessionKind, SessionStatus
from .logging_config import get_logger
from .settings import get_state_dir

logger = get_logger("history")

MAX_OUTPUT_CHARS = 200_000


def worktree_key(worktree_path: str) -> str:
    """Directory name used for a worktree's history."""
    return Path(worktree_path).name


@dataclass
class StoredSession:
    """A finished session and the last output captured from it."""

    info: SessionInfo
    repo_name: str = ""
    completed_at: float = 0.0
    output: str = ""

    def to_dict(self) -> dict:
        info = self.info
        return {
            "id": info.id,
            "kind": info.kind.value,
            "status": info.status.value,
            "repo_name": self.repo_name,
            "worktree_path": info.worktree_path,
            "prompt": info.prompt,
            "title": info.title,
            "model": info.model,
            "plan_file": info.plan_file,
            "started_at": info.started_at,
            "completed_at": self.completed_at,
            "output": self.output[-MAX_OUTPUT_CHARS:],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredSession":
        """Build a record from parsed JSON.

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        session_id = data.get("id")
        worktree_path = data.get("worktree_path")
        if not isinstance(session_id, str) or not session_id:
            raise ValueError("missing session id")
        if not isinstance(worktree_path, str):
            raise ValueError("missing worktree path")
        info = SessionInfo(
            id=session_id,
            kind=SessionKind(data.get("kind")),
            status=SessionStatus(data.get("status")),
            worktree_path=worktree_path,
            prompt=_text(data, "prompt"),
            title=_text(data, "title"),
            model=_text(data, "model"),
            plan_file=_text(data, "plan_file"),
            started_at=_number(data, "started_at"),
        )
        return cls(
            info=info,
            repo_name=_text(data, "repo_name"),
            completed_at=_number(data, "completed_at"),
            output=_text(data, "output"),
        )


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _number(data: dict, key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


class SessionStore:
    """JSON files of finished sessions for one repository."""

    def __init__(self, repo_name: str, base_dir: Optional[Path] = None):
        self.repo_name = repo_name
        self.base_dir = base_dir or get_state_dir() / "sessions"

    @property
    def repo_dir(self) -> Path:
        return self.base_dir / self.repo_name

    def _path(self, worktree_path: str, session_id: str) -> Path:
        return self.repo_dir / worktree_key(worktree_path) / f"{session_id}.json"

    def save(self, record: StoredSession) -> Path:
        """Write one record, replacing any earlier copy.

        Raises:
            OSError: If the file cannot be written
        """
        path = self._path(record.info.worktree_path, record.info.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = record.to_dict()
        data["repo_name"] = self.repo_name
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
        tmp.replace(path)
        return path

    def _read(self, path: Path) -> Optional[StoredSession]:
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"skipping unreadable history file {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"skipping malformed history file {path}")
            return None
        try:
            return StoredSession.from_dict(data)
        except ValueError as e:
            logger.warning(f"skipping malformed history file {path}: {e}")
            return None

    def list_sessions(self, worktree_path: str) -> List[SessionInfo]:
        """Finished sessions of a worktree, most recently started first."""
        directory = self.repo_dir / worktree_key(worktree_path)
        if not directory.is_dir():
            return []
        records = [self._read(p) for p in sorted(directory.glob("*.json"))]
        infos = [r.info for r in records if r is not None]
        return sorted(infos, key=lambda s: s.started_at, reverse=True)

    def load(self, session_id: str) -> Optional[StoredSession]:
        """Find a record by id in any worktree of the repository."""
        if not self.repo_dir.is_dir():
            return None
        for path in self.repo_dir.glob(f"*/{session_id}.json"):
            record = self._read(path)
            if record is not None:
                return record
        return None
