"""
Per-repository worktree hook commands.

Hooks run through ``sh -c`` inside the worktree with ``WT_BRANCH`` and
``WT_PATH`` set. Their output is captured into the operation log; nothing is
written to the terminal the TUI is drawing on.
"""

import os
import subprocess
from typing import Callable, List

from .exceptions import HookCommandError
from .logging_config import get_logger

logger = get_logger("hooks")

HOOK_TIMEOUT = 300

HOOK_WARNING = "Worktree operation completed, but hook command failed"


def parse_output_lines(output: str) -> List[str]:
    """Split captured output into trimmed, non-empty lines."""
    return [line.strip() for line in output.split("\n") if line.strip()]


def _indented(text: str) -> List[str]:
    return ["  " + line for line in text.strip().split("\n") if line]


def run_hook_commands(
    commands: List[str],
    worktree_path: str,
    branch: str,
    messages: List[str],
    run: Callable = subprocess.run,
) -> None:
    """Run hook commands in order, appending their output to ``messages``.

    Stops at the first failing command.

    Raises:
        HookCommandError: If a command exits non-zero or cannot be spawned
    """
    env = dict(os.environ)
    env["WT_BRANCH"] = branch
    env["WT_PATH"] = worktree_path

    for command in commands:
        command = command.strip()
        if not command:
            continue
        messages.append(f"Running: {command}")
        logger.info(f"hook: {command} (branch={branch})")
        try:
            result = run(
                ["sh", "-c", command],
                cwd=worktree_path,
                env=env,
                capture_output=True,
                text=True,
                timeout=HOOK_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            messages.append(f"Command failed: {command}")
            messages.append(f"  {e}")
            raise HookCommandError(command, -1) from e

        if result.returncode != 0:
            messages.append(f"Command failed: {command}")
            if result.stderr:
                messages.extend(_indented(result.stderr))
            logger.warning(f"hook failed rc={result.returncode}: {command}")
            raise HookCommandError(command, result.returncode)

        if result.stdout:
            messages.extend(_indented(result.stdout))


def extract_hook_warning(messages: List[str]) -> str:
    """Warn when a collaborator reported its own hook failure in the log."""
    for message in messages:
        if "hook failed" in message.lower():
            return HOOK_WARNING
    return ""
