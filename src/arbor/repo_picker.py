"""
Repository picker shown when Arbor starts outside any known repository.

``RepoPicker`` is the key-driven model (list with a type-to-filter line, and
a URL prompt for cloning a new repository). ``RepoPickerApp`` is a small
Textual app that draws it and runs listing and cloning on thread workers.
"""

import io
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult
from textual.css.query import NoMatches
from textual.widgets import Static

from .exceptions import ArborError
from .implementations import GitWorktreeManager, list_repos, repo_name_from_url
from .logging_config import get_logger
from .text_input import TextAction, TextBuffer, is_printable
from .tui import normalize_key

logger = get_logger("repo_picker")

URL_PLACEHOLDER = "https://github.com/user/repo"
MAX_VISIBLE_REPOS = 10


class PickerMode(str, Enum):
    LIST = "list"
    URL_INPUT = "url_input"
    CLONING = "cloning"


@dataclass
class PickerResult:
    """What the app must do after a keystroke."""

    quit: bool = False
    chosen: str = ""
    reload: bool = False
    clone_url: str = ""
    clone_name: str = ""


def valid_repo_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


@dataclass
class RepoPicker:
    repos: List[str] = field(default_factory=list)
    filter_text: str = ""
    cursor: int = 0
    mode: PickerMode = PickerMode.LIST
    url: TextBuffer = field(default_factory=lambda: TextBuffer(placeholder=URL_PLACEHOLDER))
    loading: bool = True
    error: str = ""
    clone_error: str = ""
    cloning: str = ""

    def filtered(self) -> List[str]:
        needle = self.filter_text.lower()
        return [r for r in self.repos if needle in r.lower()]

    def highlighted(self) -> Optional[str]:
        visible = self.filtered()
        if 0 <= self.cursor < len(visible):
            return visible[self.cursor]
        return None

    def set_repos(self, repos: List[str], select: str = "") -> None:
        self.repos = list(repos)
        self.loading = False
        self.error = ""
        if select and select in self.repos:
            self.filter_text = ""
            self.cursor = self.repos.index(select)
        else:
            self.cursor = max(0, min(self.cursor, len(self.filtered()) - 1))

    def load_failed(self, error: str) -> None:
        self.loading = False
        self.error = error

    def clone_succeeded(self) -> None:
        self.mode = PickerMode.LIST
        self.url.reset()
        self.cloning = ""
        self.clone_error = ""
        self.loading = True

    def clone_failed(self, error: str) -> None:
        self.mode = PickerMode.URL_INPUT
        self.cloning = ""
        self.clone_error = error

    def handle_key(self, key: str) -> PickerResult:
        if key == "ctrl+c":
            return PickerResult(quit=True)
        if self.mode == PickerMode.CLONING:
            return PickerResult()
        if self.mode == PickerMode.URL_INPUT:
            return self._handle_url_key(key)
        return self._handle_list_key(key)

    def _handle_list_key(self, key: str) -> PickerResult:
        if key == "esc":
            if self.filter_text:
                self._set_filter("")
                return PickerResult()
            return PickerResult(quit=True)
        if key in ("j", "down"):
            self.cursor = min(self.cursor + 1, max(0, len(self.filtered()) - 1))
            return PickerResult()
        if key in ("k", "up"):
            self.cursor = max(0, self.cursor - 1)
            return PickerResult()
        if key == "enter":
            chosen = self.highlighted()
            return PickerResult(quit=chosen is not None, chosen=chosen or "")
        if key == "backspace":
            if self.filter_text:
                self._set_filter(self.filter_text[:-1])
            return PickerResult()
        # q, r and a are commands only while no filter is typed
        if not self.filter_text:
            if key == "q":
                return PickerResult(quit=True)
            if key == "r":
                self.loading = True
                return PickerResult(reload=True)
            if key == "a":
                self.mode = PickerMode.URL_INPUT
                self.url.reset()
                self.clone_error = ""
                return PickerResult()
        if is_printable(key):
            self._set_filter(self.filter_text + key)
        return PickerResult()

    def _handle_url_key(self, key: str) -> PickerResult:
        action = self.url.handle_key(key)
        if action == TextAction.CANCEL:
            self.mode = PickerMode.LIST
            self.url.reset()
            self.clone_error = ""
        elif action == TextAction.QUIT:
            return PickerResult(quit=True)
        elif action == TextAction.SUBMIT:
            url = self.url.value
            if not url:
                return PickerResult()
            name = repo_name_from_url(url)
            if not valid_repo_name(name):
                self.clone_error = "could not determine repository name from URL"
                return PickerResult()
            self.mode = PickerMode.CLONING
            self.cloning = url
            self.clone_error = ""
            return PickerResult(clone_url=url, clone_name=name)
        return PickerResult()

    def _set_filter(self, text: str) -> None:
        self.filter_text = text
        self.cursor = 0


def render_repo_picker(picker: RepoPicker, wt_root: str, height: int = 24) -> Text:
    t = Text()
    if picker.mode == PickerMode.CLONING:
        t.append("arbor - Cloning repository\n\n", style="bold")
        t.append(f"  Cloning {picker.cloning}...\n\n")
        t.append("  This may take a moment.\n", style="dim")
        return t

    if picker.mode == PickerMode.URL_INPUT:
        t.append("arbor - Add repository\n\n", style="bold")
        t.append("  Enter a git URL:\n\n  > ")
        if picker.url.text:
            t.append(picker.url.text)
        else:
            t.append(picker.url.placeholder, style="dim italic")
        t.append("\n")
        if picker.clone_error:
            t.append(f"\n  Error: {picker.clone_error}\n", style="bold red")
        t.append("\n  e.g. https://github.com/user/repo\n", style="dim")
        t.append("       git@github.com:user/repo.git\n\n", style="dim")
        t.append("  Enter clone  Esc back\n", style="dim")
        return t

    t.append("arbor - Choose repository\n\n", style="bold")
    if picker.loading:
        t.append("  Loading repositories...\n", style="dim")
        return t
    if picker.error:
        t.append(f"  Error: {picker.error}\n\n", style="bold red")
        t.append("  Press [r] to retry or [q] to quit\n", style="dim")
        return t
    if not picker.repos:
        t.append(f"  No repos found in {wt_root}\n\n", style="dim")
        t.append("  Press [a] to add a repository\n\n", style="dim")
        t.append("  Press [q] to quit\n", style="dim")
        return t

    t.append("  Select a repo (type to filter, ↑/↓ then Enter):\n\n")
    if picker.filter_text:
        t.append("  Filter: ", style="dim")
        t.append(f"{picker.filter_text}\n\n")
    visible = picker.filtered()
    if not visible:
        t.append(f'  No matches for "{picker.filter_text}"\n', style="dim")
    else:
        rows = max(1, min(MAX_VISIBLE_REPOS, height - 10))
        start = max(0, picker.cursor - rows + 1)
        end = min(start + rows, len(visible))
        if start > 0:
            t.append("    ↑ more\n", style="dim")
        for idx in range(start, end):
            if idx == picker.cursor:
                t.append(f"  > {visible[idx]}\n", style="bold reverse")
            else:
                t.append(f"    {visible[idx]}\n")
        if end < len(visible):
            t.append("    ↓ more\n", style="dim")
    t.append("\n  Enter open  a add repo  Esc clear filter/quit  q quit\n", style="dim")
    return t


def clone_repository(wt_root: str, name: str, url: str) -> str:
    """Clone ``url`` as repository ``name``; returns the main worktree path."""
    return GitWorktreeManager(wt_root, name, output=io.StringIO()).init(url)


class RepoPickerApp(App, inherit_bindings=False):
    """Choose or clone a repository; exits with the chosen name or None."""

    AUTO_FOCUS = None
    BINDINGS = []

    def __init__(
        self,
        wt_root: Path,
        lister: Callable[[Path], List[str]] = list_repos,
        cloner: Callable[[str, str, str], str] = clone_repository,
    ):
        super().__init__()
        self.wt_root = wt_root
        self.picker = RepoPicker()
        self._lister = lister
        self._cloner = cloner

    def compose(self) -> ComposeResult:
        yield Static(id="picker")

    def on_mount(self) -> None:
        self.title = "arbor"
        self.redraw()
        self._load_repos()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        result = self.picker.handle_key(normalize_key(event.key, event.character))
        if result.quit:
            self.exit(result.chosen or None)
            return
        if result.reload:
            self._load_repos()
        if result.clone_url:
            self._clone(result.clone_name, result.clone_url)
        self.redraw()

    def redraw(self) -> None:
        try:
            widget = self.query_one("#picker", Static)
        except NoMatches:
            return
        widget.update(render_repo_picker(self.picker, str(self.wt_root), self.size.height))

    @work(thread=True, exclusive=True, group="repo_list")
    def _load_repos(self, select: str = "") -> None:
        try:
            repos = self._lister(self.wt_root)
        except OSError as e:
            logger.warning(f"listing repositories in {self.wt_root} failed: {e}")
            self.call_from_thread(self._repos_failed, str(e))
            return
        self.call_from_thread(self._repos_loaded, repos, select)

    def _repos_loaded(self, repos: List[str], select: str) -> None:
        self.picker.set_repos(repos, select)
        self.redraw()

    def _repos_failed(self, error: str) -> None:
        self.picker.load_failed(error)
        self.redraw()

    @work(thread=True, exclusive=True, group="repo_clone")
    def _clone(self, name: str, url: str) -> None:
        logger.info(f"cloning {url} as {name}")
        try:
            self._cloner(str(self.wt_root), name, url)
        except ArborError as e:
            logger.warning(f"clone of {url} failed: {e}")
            self.call_from_thread(self._clone_failed, str(e))
            return
        self.call_from_thread(self._clone_done, name)

    def _clone_done(self, name: str) -> None:
        self.picker.clone_succeeded()
        self.redraw()
        self._load_repos(name)

    def _clone_failed(self, error: str) -> None:
        self.picker.clone_failed(error)
        self.redraw()


def run_repo_picker(wt_root: Path) -> Optional[str]:
    """Run the picker full screen and return the chosen repository, if any."""
    return RepoPickerApp(wt_root).run()
