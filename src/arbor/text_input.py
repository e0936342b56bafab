"""
Editable text buffer driven by normalized key names.

Used for the single-line prompt input, the task modal and the hook command
fields of the repo settings dialog. The buffer is plain data so it can be
cloned with the rest of the controller state.
"""

from dataclasses import dataclass
from enum import Enum


class TextAction(str, Enum):
    HANDLED = "handled"
    UNHANDLED = "unhandled"
    SUBMIT = "submit"
    CANCEL = "cancel"
    QUIT = "quit"


def is_printable(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


@dataclass
class TextBuffer:
    text: str = ""
    cursor: int = 0
    multiline: bool = False
    placeholder: str = ""

    @property
    def value(self) -> str:
        return self.text.strip()

    def set_text(self, text: str) -> None:
        self.text = text
        self.cursor = len(text)

    def reset(self) -> None:
        self.text = ""
        self.cursor = 0

    def insert(self, chars: str) -> None:
        self.text = self.text[:self.cursor] + chars + self.text[self.cursor:]
        self.cursor += len(chars)

    def handle_key(self, key: str) -> TextAction:
        """Apply one keystroke.

        Enter submits a single-line buffer and inserts a newline in a
        multi-line one (ctrl+enter always submits).
        """
        if key == "esc":
            return TextAction.CANCEL
        if key == "ctrl+c":
            return TextAction.QUIT
        if key == "ctrl+enter":
            return TextAction.SUBMIT
        if key == "enter":
            if self.multiline:
                self.insert("\n")
                return TextAction.HANDLED
            return TextAction.SUBMIT
        if key == "backspace":
            if self.cursor > 0:
                self.text = self.text[:self.cursor - 1] + self.text[self.cursor:]
                self.cursor -= 1
            return TextAction.HANDLED
        if key == "delete":
            self.text = self.text[:self.cursor] + self.text[self.cursor + 1:]
            return TextAction.HANDLED
        if key == "left":
            self.cursor = max(0, self.cursor - 1)
            return TextAction.HANDLED
        if key == "right":
            self.cursor = min(len(self.text), self.cursor + 1)
            return TextAction.HANDLED
        if key in ("home", "ctrl+a"):
            self.cursor = 0
            return TextAction.HANDLED
        if key in ("end", "ctrl+e"):
            self.cursor = len(self.text)
            return TextAction.HANDLED
        if key == "ctrl+u":
            self.text = self.text[self.cursor:]
            self.cursor = 0
            return TextAction.HANDLED
        if key == "space":
            self.insert(" ")
            return TextAction.HANDLED
        if is_printable(key):
            self.insert(key)
            return TextAction.HANDLED
        return TextAction.UNHANDLED

    def copy(self) -> "TextBuffer":
        return TextBuffer(self.text, self.cursor, self.multiline, self.placeholder)
