"""
Textual shell for Arbor.

The app owns no behaviour of its own. Every keystroke and every worker
result becomes a message for ``Controller.reduce``; the commands it returns
are executed here:

- ``Deferred`` runs on a Textual thread worker and posts its result back
  via ``call_from_thread``
- ``Schedule`` becomes a one-shot timer
- ``Quit`` exits the app

After each reduce step the widgets are redrawn from the new state.
"""

from typing import List, Optional

from textual import events, work
from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.css.query import NoMatches
from textual.screen import Screen
from textual.widgets import Static

from . import __version__
from .commands import Commands, Deferred, Quit, Schedule
from .controller import Controller
from .logging_config import get_logger
from .messages import ErrorOccurred, Key, Message, Resized
from .state import AppState
from .tui_render import (
    render_file_tree,
    render_header,
    render_op_log,
    render_output,
    render_overlay,
    render_prompt_bar,
    render_status_bar,
    render_toasts,
)

logger = get_logger("tui")

OUTPUT_REFRESH_INTERVAL = 1.0

# Textual key names that differ from the controller's
KEY_ALIASES = {
    "escape": "esc",
    "pageup": "pgup",
    "pagedown": "pgdown",
    "ctrl+j": "ctrl+enter",
}


def normalize_key(key: str, character: Optional[str]) -> str:
    """Map a Textual key event onto the controller's key names.

    Printable characters win over Textual's names so that ``?``, ``S`` and
    digits arrive as typed.
    """
    if (
        character
        and len(character) == 1
        and character.isprintable()
        and not key.startswith(("ctrl+", "alt+"))
    ):
        return character
    return KEY_ALIASES.get(key, key)


class MainScreen(Screen, inherit_bindings=False):
    """Single screen; forwards every key to the controller."""

    def compose(self) -> ComposeResult:
        yield Static(id="header")
        with Horizontal(id="body"):
            yield Static(id="file-tree")
            yield Static(id="output")
        yield Static(id="op-log")
        yield Static(id="prompt-bar")
        yield Static(id="status-bar")
        yield Static(id="overlay")
        yield Static(id="toasts")

    def on_mount(self) -> None:
        self.app.redraw()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.app.handle_key(normalize_key(event.key, event.character))


class ArborApp(App, inherit_bindings=False):
    """Arbor TUI"""

    AUTO_FOCUS = None
    CSS_PATH = "tui.tcss"
    BINDINGS = []

    def __init__(self, controller: Controller, state: AppState):
        super().__init__()
        self.controller = controller
        self.app_state = state
        self._output_text = ""
        self._output_session_id = ""

    def get_default_screen(self) -> Screen:
        return MainScreen()

    def on_mount(self) -> None:
        self.title = f"arbor v{__version__}"
        self.app_state, commands = self.controller.init(self.app_state)
        self.apply_message(Resized(self.size.width, self.size.height))
        self._execute(commands)
        self.set_interval(OUTPUT_REFRESH_INTERVAL, self._refresh_output)

    def on_resize(self, event: events.Resize) -> None:
        self.apply_message(Resized(event.size.width, event.size.height))

    # Reduce loop

    def handle_key(self, key: str) -> None:
        self.apply_message(Key(key))

    def apply_message(self, message: Message) -> None:
        previous_session = self.app_state.viewing_session_id
        self.app_state, commands = self.controller.reduce(self.app_state, message)
        self._execute(commands)
        self.redraw()
        if self.app_state.viewing_session_id != previous_session:
            self._refresh_output()

    def _execute(self, commands: Commands) -> None:
        for command in commands:
            if isinstance(command, Deferred):
                self._run_deferred(command)
            elif isinstance(command, Schedule):
                message = command.message
                self.set_timer(command.delay, lambda message=message: self.apply_message(message))
            elif isinstance(command, Quit):
                self.exit()
            else:
                logger.warning(f"unknown command: {command!r}")

    @work(thread=True)
    def _run_deferred(self, command: Deferred) -> None:
        """Run slow work off the main thread, then feed the result back."""
        try:
            result = command.run()
        except Exception as e:
            logger.exception(f"deferred command {command.name} crashed")
            result = ErrorOccurred(f"{command.name} failed: {e}")
        if result is not None:
            self.call_from_thread(self.apply_message, result)

    # Session output

    def _refresh_output(self) -> None:
        session_id = self.app_state.viewing_session_id
        if not session_id:
            self._output_text = ""
            self._output_session_id = ""
            self.redraw()
            return
        self._fetch_output_async(session_id)

    @work(thread=True, exclusive=True, group="session_output")
    def _fetch_output_async(self, session_id: str) -> None:
        text = self.controller.sessions.get_output(session_id)
        self.call_from_thread(self._apply_output, session_id, text)

    def _apply_output(self, session_id: str, text: str) -> None:
        if session_id != self.app_state.viewing_session_id:
            return
        self._output_session_id = session_id
        self._output_text = text
        self.redraw()

    # Drawing

    def redraw(self) -> None:
        try:
            self._draw()
        except NoMatches:
            # Screen not composed yet; its on_mount redraws
            return

    def _draw(self) -> None:
        state = self.app_state
        if state.theme_name and state.theme_name != self.theme:
            self.theme = state.theme_name

        screen = self.screen
        screen.query_one("#header", Static).update(render_header(state))
        output = self._output_text if self._output_session_id == state.viewing_session_id else ""
        screen.query_one("#output", Static).update(render_output(state, output))

        tree = screen.query_one("#file-tree", Static)
        tree.display = state.split_pane
        if state.split_pane:
            tree.update(render_file_tree(state))

        screen.query_one("#op-log", Static).update(render_op_log(state.worktree_op_messages))
        screen.query_one("#prompt-bar", Static).update(render_prompt_bar(state))
        screen.query_one("#status-bar", Static).update(render_status_bar(state))

        overlay = screen.query_one("#overlay", Static)
        content = render_overlay(state)
        overlay.display = content is not None
        if content is not None:
            overlay.update(content)

        toasts = screen.query_one("#toasts", Static)
        toasts.display = len(state.toasts) > 0
        toasts.update(render_toasts(state.toasts))


def run_tui(controller: Controller, state: AppState) -> None:
    ArborApp(controller, state).run()


__all__: List[str] = ["ArborApp", "MainScreen", "normalize_key", "run_tui"]
