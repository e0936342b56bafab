"""
Filterable dropdown list used for worktree and session selection.
"""

from dataclasses import dataclass, field
from typing import List, Optional


SEPARATOR_ID = "---separator---"


@dataclass
class DropdownItem:
    id: str
    label: str
    badge: str = ""

    @property
    def selectable(self) -> bool:
        return self.id != SEPARATOR_ID


@dataclass
class Dropdown:
    """A list with a committed selection and a highlight cursor.

    The cursor moves over the filtered items while the dropdown is open;
    ``selected_id`` only changes when the highlighted item is committed.
    """

    items: List[DropdownItem] = field(default_factory=list)
    selected_id: str = ""
    cursor: int = 0
    filter_text: str = ""
    is_open: bool = False

    def set_items(self, items: List[DropdownItem]) -> None:
        self.items = list(items)
        if self.selected_id and not any(i.id == self.selected_id for i in self.items):
            self.selected_id = ""
        self._clamp_cursor()

    def filtered(self) -> List[DropdownItem]:
        if not self.filter_text:
            return list(self.items)
        needle = self.filter_text.lower()
        return [
            i for i in self.items
            if i.selectable and (needle in i.label.lower() or needle in i.id.lower())
        ]

    def open(self) -> None:
        self.is_open = True
        self.filter_text = ""
        visible = self.filtered()
        self.cursor = 0
        for idx, item in enumerate(visible):
            if item.id == self.selected_id:
                self.cursor = idx
                break

    def close(self) -> None:
        self.is_open = False
        self.filter_text = ""

    def move_selection(self, delta: int) -> None:
        """Move the cursor, stepping over separators."""
        visible = self.filtered()
        if not visible:
            self.cursor = 0
            return
        cursor = max(0, min(self.cursor + delta, len(visible) - 1))
        step = 1 if delta > 0 else -1
        while 0 <= cursor < len(visible) and not visible[cursor].selectable:
            cursor += step
        if 0 <= cursor < len(visible):
            self.cursor = cursor

    def highlighted(self) -> Optional[DropdownItem]:
        visible = self.filtered()
        if 0 <= self.cursor < len(visible):
            return visible[self.cursor]
        return None

    def commit(self) -> Optional[DropdownItem]:
        """Make the highlighted item the selection, if it is selectable."""
        item = self.highlighted()
        if item is None or not item.selectable:
            return None
        self.selected_id = item.id
        return item

    def select_by_id(self, item_id: str) -> bool:
        for item in self.items:
            if item.id == item_id and item.selectable:
                self.selected_id = item_id
                return True
        return False

    def selected_item(self) -> Optional[DropdownItem]:
        for item in self.items:
            if item.id == self.selected_id:
                return item
        return None

    def append_filter(self, ch: str) -> None:
        self.filter_text += ch
        self.cursor = 0

    def backspace_filter(self) -> None:
        self.filter_text = self.filter_text[:-1]
        self.cursor = 0

    def clear_filter(self) -> None:
        self.filter_text = ""
        self.cursor = 0

    def _clamp_cursor(self) -> None:
        count = len(self.filtered())
        if count == 0:
            self.cursor = 0
        else:
            self.cursor = max(0, min(self.cursor, count - 1))

    def copy(self) -> "Dropdown":
        return Dropdown(
            items=list(self.items),
            selected_id=self.selected_id,
            cursor=self.cursor,
            filter_text=self.filter_text,
            is_open=self.is_open,
        )
