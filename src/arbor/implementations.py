"""
Real implementations of the worktree and process-launch interfaces.

``GitWorktreeManager`` drives ``git`` and ``gh`` through subprocesses against a
bare-clone layout::

    <wt_root>/<repo>/
        .bare/          shared objects
        main/           one directory per worktree
        feature-x/

Progress lines go to the output sink the manager was built with so the TUI
can show them in its operation log.
"""

import json
import os
import shlex
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO

from .domain import PRInfo, Worktree, WorktreeStatus
from .exceptions import WorktreeError
from .logging_config import get_logger

logger = get_logger("implementations")

GIT_TIMEOUT = 120
LAST_COMMIT_MAX = 50
# Directories never shown in the file tree
IGNORED_DIRS = {".git", ".arbor", "node_modules", "__pycache__"}


def parse_worktree_list(output: str) -> List[Worktree]:
    """Parse ``git worktree list --porcelain``, skipping the bare entry."""
    worktrees: List[Worktree] = []
    current: Dict[str, str] = {}

    def flush():
        if current.get("worktree") and "bare" not in current:
            branch = current.get("branch", "").replace("refs/heads/", "", 1) or "(detached)"
            worktrees.append(Worktree(
                branch=branch,
                path=current["worktree"],
                commit=current.get("HEAD", "")[:8],
            ))

    for line in output.split("\n"):
        if not line:
            flush()
            current = {}
        elif line.startswith("worktree "):
            current["worktree"] = line[len("worktree "):]
        elif line.startswith("HEAD "):
            current["HEAD"] = line[len("HEAD "):]
        elif line.startswith("branch "):
            current["branch"] = line[len("branch "):]
        elif line == "bare":
            current["bare"] = "true"
    flush()
    return worktrees


def repo_name_from_url(url: str) -> str:
    """Repository name of an ssh (``git@host:user/repo.git``) or https clone URL."""
    path = url.strip().rstrip("/")
    if path.startswith("git@") and ":" in path:
        path = path.rsplit(":", 1)[1]
    name = path.rsplit("/", 1)[-1]
    return name[:-len(".git")] if name.endswith(".git") else name


def list_repos(wt_root: Path) -> List[str]:
    """Repositories under the worktree root, i.e. directories holding a ``.bare`` clone."""
    if not wt_root.is_dir():
        return []
    return sorted(p.name for p in wt_root.iterdir() if (p / ".bare").is_dir())


class GitWorktreeManager:
    """Production implementation of WorktreeManagerInterface."""

    def __init__(
        self,
        wt_root: str,
        repo_name: str,
        output: Optional[TextIO] = None,
        run: Callable = subprocess.run,
    ):
        self.wt_root = wt_root
        self.repo_name = repo_name
        self.output = output
        self._run = run

    @property
    def repo_dir(self) -> Path:
        return Path(self.wt_root) / self.repo_name

    @property
    def bare_dir(self) -> Path:
        return self.repo_dir / ".bare"

    def _say(self, line: str) -> None:
        if self.output is not None:
            self.output.write(line + "\n")

    def _exec(self, cmd: List[str], cwd) -> subprocess.CompletedProcess:
        try:
            return self._run(cmd, cwd=str(cwd), capture_output=True, text=True, timeout=GIT_TIMEOUT)
        except (OSError, subprocess.SubprocessError) as e:
            raise WorktreeError(f"{cmd[0]} failed: {e}") from e

    def _git(self, args: List[str], cwd, check: bool = True) -> subprocess.CompletedProcess:
        result = self._exec(["git", *args], cwd)
        if check and result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            logger.debug(f"git {' '.join(args)} failed in {cwd}: {detail}")
            raise WorktreeError(f"git {args[0]}: {detail}" if detail else f"git {args[0]} failed")
        return result

    def _gh(self, args: List[str], cwd) -> str:
        result = self._exec(["gh", *args], cwd)
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise WorktreeError(f"gh {' '.join(args[:2])}: {detail}" if detail else f"gh {args[0]} failed")
        return result.stdout

    def _require_repo(self) -> None:
        if not self.bare_dir.exists():
            raise WorktreeError(f"repository not initialized: {self.bare_dir} not found")

    def _path_for(self, branch: str) -> str:
        for wt in self.list():
            if wt.branch == branch:
                return wt.path
        raise WorktreeError(f"worktree for {branch} not found")

    def _gh_dir(self) -> str:
        worktrees = self.list()
        return worktrees[0].path if worktrees else str(self.bare_dir)

    # Listing and status

    def list(self) -> List[Worktree]:
        if not self.bare_dir.exists():
            return []
        result = self._git(["worktree", "list", "--porcelain"], self.bare_dir)
        return parse_worktree_list(result.stdout)

    def get_default_branch(self) -> str:
        result = self._git(["symbolic-ref", "refs/remotes/origin/HEAD"], self.bare_dir, check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().replace("refs/remotes/origin/", "", 1)
        for branch in ("main", "master"):
            found = self._git(["rev-parse", "--verify", f"refs/heads/{branch}"], self.bare_dir, check=False)
            if found.returncode == 0:
                return branch
        return "main"

    def get_status(self, worktree: Worktree) -> WorktreeStatus:
        status = WorktreeStatus()
        porcelain = self._git(["status", "--porcelain"], worktree.path)
        status.is_dirty = bool(porcelain.stdout.strip())

        if worktree.branch != "(detached)":
            counts = self._git(
                ["rev-list", "--left-right", "--count", f"origin/{worktree.branch}...HEAD"],
                worktree.path,
                check=False,
            )
            parts = counts.stdout.split()
            if counts.returncode == 0 and len(parts) == 2:
                status.behind, status.ahead = int(parts[0]), int(parts[1])

        log = self._git(["log", "-1", "--format=%ct|%s"], worktree.path, check=False)
        if log.returncode == 0 and "|" in log.stdout:
            ts, msg = log.stdout.strip().split("|", 1)
            if ts.isdigit():
                status.last_commit_time = datetime.fromtimestamp(int(ts))
            status.last_commit_msg = msg[:LAST_COMMIT_MAX]
        return status

    def list_open_prs(self) -> List[PRInfo]:
        if not self.list():
            return []
        out = self._gh(
            ["pr", "list", "--state", "open", "--json", "number,headRefName,url,state,isDraft,reviewDecision"],
            self._gh_dir(),
        )
        try:
            rows = json.loads(out or "[]")
        except json.JSONDecodeError as e:
            raise WorktreeError(f"unexpected gh output: {e}") from e
        return [
            PRInfo(
                number=row.get("number", 0),
                head_branch=row.get("headRefName", ""),
                url=row.get("url", ""),
                state=row.get("state", "OPEN"),
                is_draft=bool(row.get("isDraft")),
                review_decision=row.get("reviewDecision") or "",
            )
            for row in rows
        ]

    def list_files(self, worktree_path: str) -> List[str]:
        result = self._git(["ls-files"], worktree_path, check=False)
        if result.returncode == 0:
            return sorted(line for line in result.stdout.split("\n") if line)

        files = []
        for root, dirs, names in os.walk(worktree_path):
            dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
            for name in names:
                files.append(os.path.relpath(os.path.join(root, name), worktree_path))
        return sorted(files)

    # Mutations

    def init(self, url: str) -> str:
        """Clone ``url`` into the bare layout and check out its default branch.

        Returns:
            Path of the default-branch worktree
        """
        if self.bare_dir.exists():
            raise WorktreeError(f"repository already initialized at {self.repo_dir}")
        try:
            self.repo_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorktreeError(f"cannot create {self.repo_dir}: {e}") from e

        self._say(f"Cloning {url} as bare repository...")
        self._git(["clone", "--bare", url, str(self.bare_dir)], self.repo_dir)
        self._git(["config", "remote.origin.fetch", "+refs/heads/*:refs/remotes/origin/*"], self.bare_dir)
        self._git(["fetch", "origin"], self.bare_dir)

        default = self.get_default_branch()
        path = self.repo_dir / default
        self._say(f"Creating main worktree at {path}...")
        self._git(["worktree", "add", str(path), default], self.bare_dir)
        self._say(f"Initialized {self.repo_name} at {self.repo_dir}")
        return str(path)

    def new_atomic(self, branch: str, parent: str = "") -> str:
        """Create ``branch`` from ``origin/<parent>`` in its own worktree.

        If any step after ``worktree add`` fails, the worktree and branch are
        removed again before the error is raised.
        """
        self._require_repo()
        path = self.repo_dir / branch
        if path.exists():
            raise WorktreeError(f"worktree already exists: {path}")

        base = parent or self.get_default_branch()
        self._say("Fetching latest from origin...")
        self._git(["fetch", "origin"], self.bare_dir)

        self._say(f"Creating worktree {branch} from {base}...")
        self._git(["worktree", "add", "-b", branch, str(path), f"origin/{base}"], self.bare_dir)
        try:
            self._git(["config", f"branch.{branch}.description", f"parent:{base}"], path)
        except WorktreeError:
            self._say(f"Rolling back worktree {branch}...")
            self._git(["worktree", "remove", "--force", str(path)], self.bare_dir, check=False)
            self._git(["branch", "-D", branch], self.bare_dir, check=False)
            raise

        self._say(f"Created worktree at {path}")
        return str(path)

    def remove(self, branch: str, delete_branch: bool = False) -> None:
        path = self._path_for(branch)
        self._say(f"Removing worktree {branch}...")
        self._git(["worktree", "remove", path], self.bare_dir)
        self._say(f"Removed worktree {branch}")

        if not delete_branch:
            return
        self._say(f"Deleting local branch {branch}...")
        if self._git(["branch", "-D", branch], self.bare_dir, check=False).returncode == 0:
            self._say(f"Deleted local branch {branch}")
        else:
            self._say(f"Failed to delete local branch {branch}")
        self._say(f"Deleting remote branch {branch}...")
        if self._git(["push", "origin", "--delete", branch], self.bare_dir, check=False).returncode == 0:
            self._say(f"Deleted remote branch {branch}")
        else:
            self._say(f"Remote branch {branch} may not exist")

    def _parent_branch(self, worktree: Worktree) -> str:
        result = self._git(["config", f"branch.{worktree.branch}.description"], worktree.path, check=False)
        description = result.stdout.strip()
        if description.startswith("parent:"):
            return description[len("parent:"):]
        return ""

    def sync(self, branch: str = "") -> None:
        self._require_repo()
        self._say("Fetching from origin...")
        self._git(["fetch", "--all", "--prune"], self.bare_dir)
        self._say("Fetched latest changes")

        worktrees = [wt for wt in self.list() if wt.branch != "(detached)"]
        if branch:
            worktrees = [wt for wt in worktrees if wt.branch == branch]
            if not worktrees:
                raise WorktreeError(f"worktree for branch {branch!r} not found")

        default = self.get_default_branch()
        failed: List[str] = []
        for wt in worktrees:
            parent = self._parent_branch(wt)
            if parent and parent in failed:
                self._say(f"Skipping {wt.branch} - ancestor branch {parent} failed to rebase")
                failed.append(wt.branch)
                continue
            target = f"origin/{parent or default}"
            self._say(f"Rebasing {wt.branch} onto {target}...")
            result = self._git(["rebase", "--autostash", target], wt.path, check=False)
            if result.returncode != 0:
                self._git(["rebase", "--abort"], wt.path, check=False)
                self._say(f"Failed to rebase {wt.branch} - resolve conflicts manually in {wt.path}")
                failed.append(wt.branch)
            else:
                self._say(f"Rebased {wt.branch}")

        if failed:
            raise WorktreeError(f"sync failed for: {', '.join(failed)}")

    def merge_pr_for_branch(self, branch: str, merge_method: str, keep: bool = True) -> int:
        path = self._path_for(branch)
        default = self.get_default_branch()
        if branch == default:
            raise WorktreeError(f"cannot merge the default branch ({default})")

        out = self._gh(["pr", "view", branch, "--json", "number,state,reviewDecision"], path)
        try:
            pr = json.loads(out)
        except json.JSONDecodeError as e:
            raise WorktreeError(f"no PR found for branch {branch}: {e}") from e
        number = int(pr.get("number", 0))
        if pr.get("reviewDecision") and pr["reviewDecision"] != "APPROVED":
            self._say(f"PR #{number} review status: {pr['reviewDecision']}")

        self._say(f"Merging PR #{number} for branch {branch}...")
        args = ["pr", "merge", str(number), f"--{merge_method}"]
        if not keep:
            args.append("--delete-branch")
        self._gh(args, path)
        self._say(f"Merged PR #{number}")

        self._git(["fetch", "--prune"], self.bare_dir, check=False)
        if not keep:
            self.remove(branch, delete_branch=True)
        return number

    def reset_to_default(self, branch: str) -> str:
        default = self.get_default_branch()
        path = self._path_for(branch)
        try:
            self._git(["fetch", "origin"], path)
        except WorktreeError as e:
            raise WorktreeError(f"failed to fetch: {e}") from e
        try:
            self._git(["reset", "--hard", f"origin/{default}"], path)
        except WorktreeError as e:
            raise WorktreeError(f"failed to reset: {e}") from e
        return default


def worktree_manager_factory(wt_root: str, repo_name: str) -> Callable[[Optional[TextIO]], GitWorktreeManager]:
    """Bind the repo location; the controller supplies the output sink."""

    def build(output: Optional[TextIO]) -> GitWorktreeManager:
        return GitWorktreeManager(wt_root, repo_name, output)

    return build


class ProcessLauncher:
    """Production implementation of ProcessLauncherInterface."""

    def __init__(self, popen: Callable = subprocess.Popen, run: Callable = subprocess.run):
        self._popen = popen
        self._run = run

    def inside_tmux(self) -> bool:
        return bool(os.environ.get("TMUX"))

    def open_editor(self, path: str) -> None:
        editor = os.environ.get("EDITOR") or "vi"
        cwd = path if os.path.isdir(path) else os.path.dirname(path) or None
        if self.inside_tmux():
            # A terminal editor needs its own window; the TUI owns this one
            command = " ".join([editor, shlex.quote(path)])
            self._tmux(["new-window", "-c", cwd or os.getcwd(), command])
            return
        self._popen(
            [*shlex.split(editor), path],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    def open_tmux_window(self, cwd: str) -> str:
        name = os.path.basename(cwd.rstrip("/")) or "arbor"
        self._tmux(["new-window", "-n", name, "-c", cwd])
        return name

    def _tmux(self, args: List[str]) -> None:
        try:
            result = self._run(["tmux", *args], capture_output=True, text=True, timeout=10)
        except subprocess.SubprocessError as e:
            raise OSError(f"tmux {args[0]} failed: {e}") from e
        if result.returncode != 0:
            raise OSError((result.stderr or "").strip() or f"tmux {args[0]} exited {result.returncode}")
