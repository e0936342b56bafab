"""
State of the "new task" modal: prompt entry, routing, proposal, adjustment.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .domain import RouteAction, RouteProposal
from .text_input import TextBuffer


class TaskModalState(str, Enum):
    HIDDEN = "hidden"
    INPUT = "input"
    ROUTING = "routing"
    PROPOSAL = "proposal"
    ADJUST = "adjust"


@dataclass
class TaskModal:
    state: TaskModalState = TaskModalState.HIDDEN
    prompt_input: TextBuffer = field(default_factory=lambda: TextBuffer(placeholder="Describe the task..."))
    adjust_input: TextBuffer = field(default_factory=TextBuffer)
    prompt: str = ""
    proposal: Optional[RouteProposal] = None
    error: str = ""

    @property
    def visible(self) -> bool:
        return self.state != TaskModalState.HIDDEN

    def show(self) -> None:
        self.state = TaskModalState.INPUT
        self.prompt_input.reset()
        self.adjust_input.reset()
        self.prompt = ""
        self.proposal = None
        self.error = ""

    def hide(self) -> None:
        self.state = TaskModalState.HIDDEN

    def start_routing(self, prompt: str) -> None:
        self.prompt = prompt
        self.proposal = None
        self.error = ""
        self.state = TaskModalState.ROUTING

    def set_proposal(self, proposal: RouteProposal) -> None:
        self.proposal = proposal
        self.error = ""
        self.state = TaskModalState.PROPOSAL

    def set_error(self, error: str) -> None:
        """Routing failed; shown in the proposal view with nothing to confirm."""
        self.proposal = None
        self.error = error
        self.state = TaskModalState.PROPOSAL

    def start_adjust(self) -> None:
        if self.proposal is None:
            return
        self.adjust_input.set_text(self.proposal.worktree)
        self.state = TaskModalState.ADJUST

    def back_to_proposal(self) -> None:
        if self.proposal is not None:
            self.set_proposal(self.proposal)

    def adjusted_worktree(self) -> str:
        if self.proposal is None:
            return ""
        if self.proposal.action == RouteAction.CREATE_NEW and self.adjust_input.value:
            return self.adjust_input.value
        return self.proposal.worktree

    def adjusted_parent(self) -> str:
        return self.proposal.parent if self.proposal else ""

    def copy(self) -> "TaskModal":
        return TaskModal(
            state=self.state,
            prompt_input=self.prompt_input.copy(),
            adjust_input=self.adjust_input.copy(),
            prompt=self.prompt,
            proposal=self.proposal,
            error=self.error,
        )
