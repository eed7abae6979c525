"""
Tests for keyboard parsing and key translation.
"""

import pytest

from netinspect.commands import (
    BeginFilterEdit,
    CloseDetail,
    EndFilterEdit,
    FilterBackspace,
    FilterInput,
    GoToEnd,
    Navigate,
    Quit,
    ToggleDetail,
)
from netinspect.errors import ConfigError
from netinspect.keys import KeyReader, KeyTranslator, build_bindings, parse_keys


class TestParseKeys:
    """Tests for splitting raw terminal input."""

    def test_printable(self):
        assert parse_keys("jk/") == ["j", "k", "/"]

    def test_arrow_sequences(self):
        assert parse_keys("\x1b[A\x1b[B\x1b[C\x1b[D") == ["UP", "DOWN", "RIGHT", "LEFT"]

    def test_page_and_home_keys(self):
        assert parse_keys("\x1b[5~\x1b[6~\x1b[H\x1b[F") == ["PGUP", "PGDN", "HOME", "END"]

    def test_lone_escape(self):
        assert parse_keys("\x1b") == ["ESC"]
        assert parse_keys("\x1bq") == ["ESC", "q"]

    def test_control_keys(self):
        assert parse_keys("\r\x7f\t") == ["ENTER", "BACKSPACE", "TAB"]

    def test_unprintable_dropped(self):
        assert parse_keys("\x01a") == ["a"]


class TestKeyTranslator:
    """Tests for key to command mapping."""

    def test_default_bindings(self):
        translator = KeyTranslator()

        assert translator.translate("j") == Navigate(1)
        assert translator.translate("UP") == Navigate(-1)
        assert translator.translate("G") == GoToEnd()
        assert translator.translate("ENTER") == ToggleDetail()
        assert translator.translate("ESC") == CloseDetail()
        assert translator.translate("q") == Quit()

    def test_unbound_key(self):
        assert KeyTranslator().translate("z") is None

    def test_filter_edit_mode(self):
        """Test keys become filter input until Enter or Esc."""
        translator = KeyTranslator()

        assert translator.translate("/") == BeginFilterEdit()
        assert translator.editing
        assert translator.translate("q") == FilterInput("q")
        assert translator.translate("BACKSPACE") == FilterBackspace()
        assert translator.translate("UP") is None
        assert translator.translate("ENTER") == EndFilterEdit()
        assert not translator.editing
        assert translator.translate("q") == Quit()

    def test_escape_ends_edit(self):
        translator = KeyTranslator()
        translator.translate("/")

        assert translator.translate("ESC") == EndFilterEdit()
        assert not translator.editing

    def test_custom_bindings(self):
        translator = KeyTranslator(build_bindings({"down": ["n"], "quit": "x"}))

        assert translator.translate("n") == Navigate(1)
        assert translator.translate("x") == Quit()
        assert translator.translate("j") == Navigate(1)


class TestBuildBindings:
    """Tests for merging configured bindings."""

    def test_defaults_kept(self):
        bindings = build_bindings()
        assert bindings["q"] == "quit"

    def test_unknown_command(self):
        with pytest.raises(ConfigError, match="launch"):
            build_bindings({"launch": ["l"]})

    @pytest.mark.parametrize("keys", [None, 5, [1], [""], ["n", None], {"n": 1}])
    def test_invalid_keys(self, keys):
        with pytest.raises(ConfigError, match="Keys for down"):
            build_bindings({"down": keys})

    def test_copy_and_delete_defaults(self):
        bindings = build_bindings()

        assert bindings["y"] == "copy"
        assert bindings["d"] == "delete"


class TestKeyReader:
    """Tests for submitting translated keys."""

    def test_feed_submits_commands_in_order(self):
        submitted = []
        reader = KeyReader(submitted.append, KeyTranslator())

        reader.feed("jj/ab\r\x1b[B")

        assert submitted == [
            Navigate(1),
            Navigate(1),
            BeginFilterEdit(),
            FilterInput("a"),
            FilterInput("b"),
            EndFilterEdit(),
            Navigate(1),
        ]
