"""
Pure render functions for the TUI.

Each function takes controller state (or a piece of it) and returns a Rich
``Text``. No Textual imports, so the layout can be unit-tested directly.
"""

import os
from typing import List, Optional

from rich.text import Text

from .confirm_prompt import ConfirmPrompt
from .domain import PROVIDERS, RouteAction, SessionKind
from .dropdown import Dropdown
from .focus import FocusMode
from .overlays import THEMES, AllSessionsOverlay, DialogField, HelpOverlay, RepoSettingsDialog, ThemePicker
from .state import STATUS_ICONS, AppState, format_worktree_status
from .task_modal import TaskModal, TaskModalState
from .text_input import TextBuffer
from .toast import ToastLevel, ToastQueue

TOAST_STYLES = {
    ToastLevel.SUCCESS: "bold green",
    ToastLevel.INFO: "bold cyan",
    ToastLevel.ERROR: "bold red",
}

STATUS_STYLES = {
    "pending": "dim",
    "running": "yellow",
    "idle": "green",
    "completed": "blue",
    "failed": "red",
    "stopped": "dim",
}

# Rows taken by header, op log, prompt bar and status bar
CHROME_ROWS = 8
OP_LOG_ROWS = 3


def output_height(state: AppState) -> int:
    return max(1, state.height - CHROME_ROWS)


def visible_window(lines: List[str], scroll_offset: int, height: int) -> List[str]:
    """Lines shown for a bottom-anchored view scrolled up by ``scroll_offset``."""
    if height <= 0 or not lines:
        return []
    max_offset = max(0, len(lines) - height)
    offset = min(max(0, scroll_offset), max_offset)
    end = len(lines) - offset
    return lines[max(0, end - height):end]


def render_header(state: AppState) -> Text:
    t = Text()
    t.append(" arbor ", style="bold reverse")
    t.append(f" {state.repo_name or '(no repo)'}", style="bold")

    worktree = state.selected_worktree()
    t.append("  ⎇ ", style="dim")
    if worktree is None:
        t.append("no worktree (Alt-W)", style="dim")
    else:
        t.append(worktree.branch, style="bold cyan")
        status = state.worktree_statuses.get(worktree.branch)
        if status is not None:
            inline = format_worktree_status(status)
            if inline:
                t.append(f" {inline}", style="yellow")

    session = state.selected_session()
    t.append("  ▸ ", style="dim")
    if session is None:
        t.append("no session (Alt-S)", style="dim")
    else:
        kind = "P" if session.kind == SessionKind.PLANNER else "B"
        t.append(f"[{kind}] {session.display_title} ", style="bold")
        t.append(
            f"{STATUS_ICONS.get(session.status.value, '')} {session.status.value}",
            style=STATUS_STYLES.get(session.status.value, ""),
        )
    if state.scroll_offset:
        t.append(f"  ↑{state.scroll_offset}", style="magenta")
    return t


def _key_hint(t: Text, key: str, action: str, description: str) -> None:
    t.append(f"  {'[' + key + ']':<12}", style="bold cyan")
    t.append(f"{action:<18} ")
    t.append(description + "\n", style="dim")


def render_welcome(state: AppState) -> Text:
    """Placeholder for the output pane when no session is being viewed."""
    t = Text()
    if state.worktree_op_messages:
        for line in state.worktree_op_messages:
            t.append(f"  {line}\n")
        return t

    if not state.worktrees:
        t.append("  Welcome to arbor\n\n", style="bold")
        t.append(f"  No worktrees found for {state.repo_name or '(no repo)'}\n\n", style="dim")
        t.append("  Get started:\n\n")
        _key_hint(t, "t", "New task", "Describe what you want; AI picks the branch")
        _key_hint(t, "n", "New worktree", "Create a branch manually")
        _key_hint(t, "Alt-W", "Worktrees", "Browse and select worktrees")
        _key_hint(t, "?", "Help", "Show all keyboard shortcuts")
        return t

    t.append("  No session selected.\n\n", style="bold")
    t.append("  Quick start:\n\n")
    _key_hint(t, "t", "New task", "Describe what you want; AI picks the worktree")
    _key_hint(t, "p", "Plan", "Start a planning session on current worktree")
    _key_hint(t, "b", "Build", "Start a builder session on current worktree")
    _key_hint(t, "Alt-S", "Sessions", "Browse and switch sessions")
    _key_hint(t, "?", "Help", "Show all keyboard shortcuts")

    worktree = state.selected_worktree()
    if worktree is None:
        return t
    t.append(f"\n  Worktree: {worktree.branch}", style="bold")
    status = state.worktree_statuses.get(worktree.branch)
    inline = format_worktree_status(status) if status is not None else ""
    if inline:
        t.append(f"  {inline}")
    t.append("\n")
    if status is not None and status.last_commit_msg:
        t.append(f"  Last commit: {status.last_commit_msg}\n", style="dim")
    live = len(state.current_worktree_sessions())
    past = len(state.current_history())
    if live or past:
        t.append(f"  Sessions: {live} live, {past} in history\n", style="dim")
    return t


def render_output(state: AppState, output: str) -> Text:
    if state.selected_session() is None:
        return render_welcome(state)
    lines = output.split("\n") if output else []
    return Text("\n".join(visible_window(lines, state.scroll_offset, output_height(state))))


def render_file_tree(state: AppState) -> Text:
    t = Text()
    title_style = "bold reverse" if state.split_focus_left else "bold"
    t.append(" Files \n", style=title_style)
    if not state.file_tree:
        t.append(" (loading...)" if state.selected_worktree() else " (no worktree)", style="dim")
        return t
    height = output_height(state) - 1
    start = max(0, min(state.file_tree_cursor - height // 2, len(state.file_tree) - height))
    for idx in range(start, min(len(state.file_tree), start + height)):
        style = "reverse" if idx == state.file_tree_cursor and state.split_focus_left else ""
        t.append(f" {state.file_tree[idx]}\n", style=style)
    return t


def render_op_log(messages: List[str]) -> Text:
    t = Text()
    for line in messages[-OP_LOG_ROWS:]:
        style = "red" if line.lower().startswith(("failed", "command failed", "non-fatal")) else "dim"
        t.append(line + "\n", style=style)
    return t


def render_toasts(toasts: ToastQueue) -> Text:
    t = Text()
    for toast in toasts.visible():
        t.append(f" {toast.message} \n", style=TOAST_STYLES.get(toast.level, ""))
    return t


def _buffer_text(buffer: TextBuffer, t: Text, focused: bool = True) -> None:
    if not buffer.text and buffer.placeholder:
        t.append(buffer.placeholder, style="dim italic")
        if focused:
            t.append("█", style="blink")
        return
    t.append(buffer.text[:buffer.cursor])
    if focused:
        t.append("█", style="blink")
    t.append(buffer.text[buffer.cursor:])


def render_confirm(prompt: ConfirmPrompt) -> Text:
    t = Text()
    t.append(prompt.message, style="bold yellow")
    t.append("  ")
    for key, label in prompt.hints():
        t.append(f"[{key}]", style="bold cyan")
        t.append(f" {label}  ")
    return t


def render_prompt_bar(state: AppState) -> Text:
    if state.focus == FocusMode.CONFIRM and state.confirm is not None:
        return render_confirm(state.confirm)
    if state.focus == FocusMode.INPUT:
        t = Text()
        t.append(state.input_prompt, style="bold")
        _buffer_text(state.input, t)
        if state.input_prompt.startswith(("Plan", "Build")):
            t.append("   alt+m model", style="dim")
        return t
    return Text()


def render_dropdown(dropdown: Dropdown, title: str) -> Text:
    t = Text()
    t.append(f" {title}", style="bold")
    if dropdown.filter_text:
        t.append(f"  /{dropdown.filter_text}", style="yellow")
    t.append("\n")
    items = dropdown.filtered()
    if not items:
        t.append("  (no matches)\n", style="dim")
    for idx, item in enumerate(items):
        if not item.selectable:
            t.append("  ────────\n", style="dim")
            continue
        marker = "●" if item.id == dropdown.selected_id else " "
        style = "reverse" if idx == dropdown.cursor else ""
        t.append(f" {marker} {item.label}", style=style)
        if item.badge:
            t.append(f"  {item.badge}", style="dim")
        t.append("\n")
    return t


def render_help(help_overlay: HelpOverlay, height: int) -> Text:
    lines: List[Text] = []
    for section in help_overlay.sections:
        lines.append(Text(f"  {section.title}", style="bold bright_white"))
        lines.append(Text("  " + "─" * 44, style="dim"))
        for keys, description in section.bindings:
            row = Text()
            row.append(f"  {keys:<12}", style="bold cyan")
            row.append(description)
            lines.append(row)
        lines.append(Text())
    start = min(help_overlay.scroll_offset, max(0, len(lines) - height))
    t = Text()
    t.append(" Key bindings   ?/esc close  j/k scroll\n\n", style="bold")
    for line in lines[start:start + height]:
        t.append_text(line)
        t.append("\n")
    return t


def render_theme_picker(picker: ThemePicker) -> Text:
    t = Text()
    t.append(" Theme   j/k preview  enter save  esc revert\n\n", style="bold")
    for idx, name in enumerate(THEMES):
        style = "reverse" if idx == picker.selected else ""
        marker = "*" if name == picker.original_theme else " "
        t.append(f" {marker} {name}\n", style=style)
    return t


def render_all_sessions(overlay: AllSessionsOverlay) -> Text:
    t = Text()
    t.append(" Active sessions   enter/1-9 switch  esc close\n\n", style="bold")
    if not overlay.sessions:
        t.append("  (no active sessions)\n", style="dim")
    for idx, sess in enumerate(overlay.sessions):
        style = "reverse" if idx == overlay.selected else ""
        kind = "P" if sess.kind == SessionKind.PLANNER else "B"
        t.append(f" {idx + 1}. [{kind}] {sess.display_title}", style=style)
        t.append(f"  {os.path.basename(sess.worktree_path)}", style="cyan")
        t.append(
            f"  {STATUS_ICONS.get(sess.status.value, '')} {sess.status.value}\n",
            style=STATUS_STYLES.get(sess.status.value, ""),
        )
    return t


def render_repo_settings(dialog: RepoSettingsDialog) -> Text:
    t = Text()
    t.append(f" Settings: {dialog.repo_name}   tab next  ctrl+s save  esc cancel\n\n", style="bold")

    def label(field: DialogField, text: str) -> None:
        style = "bold reverse" if dialog.focus == field else "bold"
        t.append(f" {text}\n", style=style)

    label(DialogField.THEME, "Theme")
    t.append(f"   ◀ {dialog.selected_theme} ▶\n\n")

    label(DialogField.PROVIDERS, "Agent providers")
    for idx, provider in enumerate(PROVIDERS):
        box = "[x]" if dialog.provider_enabled.get(provider) else "[ ]"
        cursor = dialog.focus == DialogField.PROVIDERS and idx == dialog.provider_cursor
        t.append(f"   {box} {provider}\n", style="reverse" if cursor else "")
    t.append("\n")

    label(DialogField.CREATE, "On worktree create (one command per line)")
    _buffer_text(dialog.create_input, t, dialog.focus == DialogField.CREATE)
    t.append("\n\n")
    label(DialogField.DELETE, "On worktree delete (one command per line)")
    _buffer_text(dialog.delete_input, t, dialog.focus == DialogField.DELETE)
    t.append("\n\n")

    t.append(" [ Save ]", style="bold reverse" if dialog.focus == DialogField.SAVE else "bold")
    t.append("  ")
    t.append("[ Cancel ]", style="bold reverse" if dialog.focus == DialogField.CANCEL else "bold")
    return t


def render_task_modal(modal: TaskModal) -> Text:
    t = Text()
    t.append(" New task\n\n", style="bold")
    if modal.state == TaskModalState.INPUT:
        t.append(" Describe the task:\n ")
        _buffer_text(modal.prompt_input, t)
        t.append("\n\n enter route  esc cancel", style="dim")
        return t

    t.append(f" {modal.prompt}\n\n", style="italic")
    if modal.state == TaskModalState.ROUTING:
        t.append(" Routing...", style="yellow")
        t.append("\n\n esc cancel", style="dim")
        return t

    if modal.proposal is None:
        t.append(f" Routing failed: {modal.error}\n", style="bold red")
        t.append("\n esc close", style="dim")
        return t

    proposal = modal.proposal
    if proposal.action == RouteAction.CREATE_NEW:
        t.append(" Create new worktree ", style="bold")
        if modal.state == TaskModalState.ADJUST:
            _buffer_text(modal.adjust_input, t)
        else:
            t.append(proposal.worktree, style="bold cyan")
        t.append(f" from {proposal.parent}\n")
    else:
        t.append(" Use existing worktree ", style="bold")
        t.append(f"{proposal.worktree}\n", style="bold cyan")
    if proposal.reasoning:
        t.append(f" {proposal.reasoning}\n", style="dim")

    if modal.state == TaskModalState.ADJUST:
        t.append("\n enter confirm  esc back", style="dim")
    else:
        t.append("\n enter confirm  a adjust  esc cancel", style="dim")
    return t


def render_overlay(state: AppState) -> Optional[Text]:
    """Content of the centered overlay box, or None when nothing is open."""
    focus = state.focus
    if focus == FocusMode.HELP:
        return render_help(state.help, max(5, state.height - 8))
    if focus == FocusMode.THEME_PICKER:
        return render_theme_picker(state.theme_picker)
    if focus == FocusMode.ALL_SESSIONS:
        return render_all_sessions(state.all_sessions)
    if focus == FocusMode.REPO_SETTINGS:
        return render_repo_settings(state.repo_settings_dialog)
    if focus == FocusMode.TASK_MODAL:
        return render_task_modal(state.task_modal)
    if focus == FocusMode.WORKTREE_DROPDOWN:
        return render_dropdown(state.worktree_dropdown, "Worktrees")
    if focus == FocusMode.SESSION_DROPDOWN:
        return render_dropdown(state.session_dropdown, "Sessions")
    return None


def render_status_bar(state: AppState) -> Text:
    t = Text()
    if state.confirm_quit:
        t.append(" q/y quit  any other key cancel", style="bold yellow")
        return t
    hints = [
        ("?", "help"), ("alt+w", "worktree"), ("alt+s", "session"), ("t", "task"),
        ("p", "plan"), ("b", "build"), ("n", "new"), ("m", "merge"), ("q", "quit"),
    ]
    for key, label in hints:
        t.append(f" {key}", style="bold cyan")
        t.append(f" {label} ", style="dim")
    active = len(state.active_sessions())
    if active:
        t.append(f"  {active} active", style="yellow")
    return t
