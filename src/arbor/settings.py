"""
Persistent user settings.

Settings live in ``~/.arbor/settings.json`` (or ``$ARBOR_STATE_DIR``). They
hold the theme name, the optional list of enabled agent providers and the
per-repository worktree hook commands.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import SettingsError


def get_state_dir() -> Path:
    """Base directory for Arbor state (settings, logs).

    Respects ARBOR_STATE_DIR so tests never touch the real home directory.
    """
    override = os.environ.get("ARBOR_STATE_DIR")
    if override:
        return Path(override)
    return Path.home() / ".arbor"


def get_settings_path() -> Path:
    return get_state_dir() / "settings.json"


def normalize_commands(commands: Optional[List[str]]) -> List[str]:
    """Trim every command and drop blank ones.

    A bare string counts as one command. Any other non-list value yields none.
    """
    if isinstance(commands, str):
        commands = [commands]
    if not isinstance(commands, (list, tuple)):
        return []
    return [c.strip() for c in commands if isinstance(c, str) and c.strip()]


def parse_command_lines(text: str) -> List[str]:
    """Split a multi-line text field into normalized commands."""
    return normalize_commands(text.split("\n"))


@dataclass
class RepoSettings:
    """Hook commands for one repository."""

    on_worktree_create: List[str] = field(default_factory=list)
    on_worktree_delete: List[str] = field(default_factory=list)

    def normalized(self) -> "RepoSettings":
        return RepoSettings(
            on_worktree_create=normalize_commands(self.on_worktree_create),
            on_worktree_delete=normalize_commands(self.on_worktree_delete),
        )

    def is_empty(self) -> bool:
        return not self.on_worktree_create and not self.on_worktree_delete

    def to_dict(self) -> dict:
        data = {}
        if self.on_worktree_create:
            data["on_worktree_create"] = list(self.on_worktree_create)
        if self.on_worktree_delete:
            data["on_worktree_delete"] = list(self.on_worktree_delete)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RepoSettings":
        return cls(
            on_worktree_create=normalize_commands(data.get("on_worktree_create")),
            on_worktree_delete=normalize_commands(data.get("on_worktree_delete")),
        ).normalized()


@dataclass
class Settings:
    """User preferences.

    ``enabled_providers`` is tri-state: None means every provider is enabled,
    while an explicit list (even an empty one) restricts to its members.
    """

    theme_name: str = ""
    enabled_providers: Optional[List[str]] = None
    repos: Dict[str, RepoSettings] = field(default_factory=dict)

    def is_provider_enabled(self, provider: str) -> bool:
        if self.enabled_providers is None:
            return True
        return provider in self.enabled_providers

    def set_enabled_providers(self, providers: Optional[List[str]]) -> None:
        self.enabled_providers = None if providers is None else list(providers)

    def repo_settings_for(self, repo: str) -> RepoSettings:
        cfg = self.repos.get(repo)
        if cfg is None:
            return RepoSettings()
        return RepoSettings(list(cfg.on_worktree_create), list(cfg.on_worktree_delete))

    def set_repo_settings(self, repo: str, cfg: RepoSettings) -> None:
        """Store normalized hooks for a repo, dropping the entry once empty."""
        repo = repo.strip()
        if not repo:
            return
        cfg = cfg.normalized()
        if cfg.is_empty():
            self.repos.pop(repo, None)
            return
        self.repos[repo] = cfg

    def copy(self) -> "Settings":
        return Settings(
            theme_name=self.theme_name,
            enabled_providers=None if self.enabled_providers is None else list(self.enabled_providers),
            repos={name: self.repo_settings_for(name) for name in self.repos},
        )

    def to_dict(self) -> dict:
        data: dict = {"theme_name": self.theme_name}
        if self.enabled_providers is not None:
            data["enabled_providers"] = list(self.enabled_providers)
        repos = {}
        for name, cfg in self.repos.items():
            cfg = cfg.normalized()
            if not cfg.is_empty():
                repos[name] = cfg.to_dict()
        if repos:
            data["repos"] = repos
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        theme = data.get("theme_name")
        settings = cls(theme_name=theme if isinstance(theme, str) else "")
        providers = data.get("enabled_providers")
        if isinstance(providers, list):
            settings.enabled_providers = [p for p in providers if isinstance(p, str)]
        repos = data.get("repos")
        if not isinstance(repos, dict):
            repos = {}
        for name, raw in repos.items():
            if isinstance(name, str) and isinstance(raw, dict):
                settings.set_repo_settings(name, RepoSettings.from_dict(raw))
        return settings


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read settings, returning defaults when the file is missing or invalid."""
    path = path or get_settings_path()
    if not path.exists():
        return Settings()
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return Settings()
    if not isinstance(data, dict):
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    """Write settings as indented JSON.

    Raises:
        SettingsError: If the directory or file cannot be written
    """
    path = path or get_settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(settings.to_dict(), f, indent=2)
    except OSError as e:
        raise SettingsError(f"failed to save settings: {e}") from e
