"""
CLI interface for Arbor using Typer.
"""

import os
import shutil
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from . import __version__
from .implementations import list_repos

app = typer.Typer(
    name="arbor",
    help="Terminal control room for git worktrees and their AI sessions",
    no_args_is_help=False,
    rich_markup_mode="rich",
)

console = Console(stderr=True)

DEFAULT_ROOT = "~/worktrees"


def default_root() -> Path:
    return Path(os.environ.get("ARBOR_WT_ROOT", DEFAULT_ROOT)).expanduser()


def detect_repo(root: Path, cwd: Optional[Path] = None) -> Optional[str]:
    """Find the repository whose worktree contains ``cwd``.

    A repository is a directory directly under ``root`` that holds a
    ``.bare`` clone.
    """
    cwd = (cwd or Path.cwd()).resolve()
    root = root.resolve()
    for candidate in [cwd, *cwd.parents]:
        if candidate.parent == root and (candidate / ".bare").is_dir():
            return candidate.name
    return None


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"arbor {__version__}")
        raise typer.Exit()


@app.command()
def main_command(
    repo: Annotated[
        Optional[str],
        typer.Argument(help="Repository name under the worktree root (detected from the current directory)"),
    ] = None,
    root: Annotated[
        Optional[Path],
        typer.Option("--root", help="Worktree root directory [default: ~/worktrees]"),
    ] = None,
    tmux_session: Annotated[
        str,
        typer.Option("--tmux-session", help="tmux session that hosts agent windows"),
    ] = "arbor",
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to ~/.arbor/logs/tui.log"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit"),
    ] = False,
):
    """Open the worktree dashboard for a repository."""
    import logging

    from .controller import Controller
    from .history import SessionStore
    from .implementations import ProcessLauncher, worktree_manager_factory
    from .logging_config import setup_cli_logging, setup_tui_logging
    from .repo_picker import run_repo_picker
    from .router_client import ChatTaskRouter
    from .settings import load_settings
    from .state import AppState
    from .tmux_sessions import TmuxSessionManager
    from .tui import run_tui

    level = logging.DEBUG if verbose else logging.INFO
    cli_logger = setup_cli_logging(verbose)

    wt_root = (root or default_root()).expanduser()
    repo_name = repo or detect_repo(wt_root)
    if not repo_name and sys.stdout.isatty():
        cli_logger.debug(f"no repository detected under {wt_root}, opening picker")
        setup_tui_logging(level=level)
        repo_name = run_repo_picker(wt_root)
        if not repo_name:
            raise typer.Exit()
    if not repo_name:
        console.print(f"[red]Error:[/red] no repository found under {wt_root}")
        repos = list_repos(wt_root)
        if repos:
            console.print(f"Available: {', '.join(repos)}")
        raise typer.Exit(code=1)
    if not (wt_root / repo_name).is_dir():
        console.print(f"[red]Error:[/red] {wt_root / repo_name} does not exist")
        raise typer.Exit(code=1)

    if shutil.which("tmux") is None:
        console.print("[red]Error:[/red] tmux is required but was not found on PATH")
        raise typer.Exit(code=1)
    if not sys.stdout.isatty():
        console.print("[red]Error:[/red] must run in a TTY terminal")
        raise typer.Exit(code=1)

    logger = setup_tui_logging(level=level)
    logger.info(f"arbor {__version__} starting for {repo_name} in {wt_root}")

    router = ChatTaskRouter()
    controller = Controller(
        sessions=TmuxSessionManager(tmux_session=tmux_session, store=SessionStore(repo_name)),
        worktree_factory=worktree_manager_factory(str(wt_root), repo_name),
        router=router if router.available else None,
        launcher=ProcessLauncher(),
    )
    state = AppState.initial(repo_name, str(wt_root), load_settings())
    run_tui(controller, state)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
