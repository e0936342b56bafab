"""
Single-keypress confirmation prompt.

The prompt never guesses: Esc cancels, Ctrl-C quits, an option key matches
and every other key is ignored so a typo cannot dismiss a destructive choice.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .pending import PendingAction


@dataclass(frozen=True)
class ConfirmOption:
    key: str
    label: str


@dataclass(frozen=True)
class ConfirmResult:
    matched: str = ""
    cancelled: bool = False
    quit: bool = False

    @property
    def inert(self) -> bool:
        return not (self.matched or self.cancelled or self.quit)


@dataclass
class ConfirmPrompt:
    """A message, its options and the action to resolve once answered.

    ``cancel_action`` is resolved on Esc; when None, Esc simply dismisses.
    """

    message: str
    options: List[ConfirmOption]
    action: PendingAction
    cancel_action: Optional[PendingAction] = None

    def handle_key(self, key: str) -> ConfirmResult:
        if key == "esc":
            return ConfirmResult(cancelled=True)
        if key == "ctrl+c":
            return ConfirmResult(quit=True)
        for option in self.options:
            if key == option.key:
                return ConfirmResult(matched=option.key)
        return ConfirmResult()

    def hints(self) -> List[Tuple[str, str]]:
        """(key, label) pairs for rendering, including the Esc hint."""
        return [(o.key, o.label) for o in self.options] + [("Esc", "cancel")]


def options(*pairs: Tuple[str, str]) -> List[ConfirmOption]:
    return [ConfirmOption(key, label) for key, label in pairs]
