"""Tests for the filterable dropdown."""

from arbor.dropdown import SEPARATOR_ID, Dropdown, DropdownItem


def make_dropdown():
    dropdown = Dropdown()
    dropdown.set_items([
        DropdownItem("main", "main"),
        DropdownItem("feature-x", "feature-x"),
        DropdownItem(SEPARATOR_ID, ""),
        DropdownItem("fix-login", "fix-login"),
    ])
    return dropdown


class TestDropdown:
    def test_open_puts_cursor_on_selection(self):
        dropdown = make_dropdown()
        dropdown.select_by_id("fix-login")
        dropdown.open()

        assert dropdown.is_open
        assert dropdown.highlighted().id == "fix-login"

    def test_cursor_moves_without_committing(self):
        dropdown = make_dropdown()
        dropdown.select_by_id("main")
        dropdown.open()
        dropdown.move_selection(1)

        assert dropdown.highlighted().id == "feature-x"
        assert dropdown.selected_id == "main"

    def test_cursor_is_clamped(self):
        dropdown = make_dropdown()
        dropdown.open()
        dropdown.move_selection(-5)
        assert dropdown.cursor == 0
        dropdown.move_selection(50)
        assert dropdown.cursor == 3

    def test_movement_steps_over_separator(self):
        dropdown = make_dropdown()
        dropdown.open()
        dropdown.move_selection(2)

        assert dropdown.highlighted().id == "fix-login"

        dropdown.move_selection(-1)
        assert dropdown.highlighted().id == "feature-x"

    def test_commit_separator_is_rejected(self):
        dropdown = make_dropdown()
        dropdown.open()
        dropdown.cursor = 2

        assert dropdown.commit() is None
        assert dropdown.selected_id == ""

    def test_filter_matches_label_and_hides_separator(self):
        dropdown = make_dropdown()
        dropdown.open()
        dropdown.append_filter("f")

        assert [i.id for i in dropdown.filtered()] == ["feature-x", "fix-login"]

        dropdown.append_filter("i")
        assert [i.id for i in dropdown.filtered()] == ["fix-login"]
        assert dropdown.commit().id == "fix-login"

    def test_backspace_and_clear_filter(self):
        dropdown = make_dropdown()
        dropdown.append_filter("fi")
        dropdown.backspace_filter()
        assert dropdown.filter_text == "f"
        dropdown.clear_filter()
        assert len(dropdown.filtered()) == 4

    def test_set_items_drops_missing_selection(self):
        dropdown = make_dropdown()
        dropdown.select_by_id("fix-login")
        dropdown.set_items([DropdownItem("main", "main")])

        assert dropdown.selected_id == ""
        assert dropdown.selected_item() is None

    def test_select_by_id_unknown(self):
        assert make_dropdown().select_by_id("nope") is False
