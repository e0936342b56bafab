"""
Commands returned by the controller.

The reducer never performs I/O. It returns commands describing the work and
the Textual shell executes them: ``Deferred`` bodies run on a worker thread
and their returned message is posted back, ``Schedule`` becomes a timer and
``Quit`` exits the app.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from .messages import Message


class Command:
    pass


@dataclass(frozen=True)
class Deferred(Command):
    """Run ``run`` off the UI thread and deliver its result, if any."""

    run: Callable[[], Optional[Message]]
    name: str = "deferred"


@dataclass(frozen=True)
class Schedule(Command):
    """Deliver ``message`` after ``delay`` seconds."""

    delay: float
    message: Message


@dataclass(frozen=True)
class Quit(Command):
    pass


Commands = List[Command]


def names(commands: Commands) -> List[str]:
    """Names of the deferred commands in a batch, handy in tests and logs."""
    return [c.name for c in commands if isinstance(c, Deferred)]
