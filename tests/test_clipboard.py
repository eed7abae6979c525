"""
Tests for clipboard access.
"""

import subprocess

import pytest

from netinspect import clipboard
from netinspect.clipboard import clipboard_commands, copy_to_clipboard
from netinspect.errors import ClipboardUnavailable


@pytest.fixture
def fake_run(monkeypatch):
    """Replace subprocess.run; commands named "missing" are not installed."""
    calls = []

    def run(command, input=None, **kwargs):
        calls.append((command[0], input))
        if command[0] == "missing":
            raise FileNotFoundError(command[0])
        if command[0] == "broken":
            raise subprocess.CalledProcessError(1, command)
        return subprocess.CompletedProcess(command, 0)

    monkeypatch.setattr(clipboard.subprocess, "run", run)
    return calls


def use_commands(monkeypatch, *names):
    monkeypatch.setattr(clipboard, "clipboard_commands", lambda: [[n] for n in names])


class TestClipboardCommands:
    """Tests for per-platform command selection."""

    def test_macos(self):
        assert clipboard_commands("darwin") == [["pbcopy"]]

    def test_windows(self):
        assert clipboard_commands("win32") == [["clip"]]

    def test_linux_tries_several(self):
        names = [command[0] for command in clipboard_commands("linux")]
        assert names == ["wl-copy", "xclip", "xsel"]


class TestCopyToClipboard:
    """Tests for copying text."""

    def test_first_installed_command_used(self, monkeypatch, fake_run):
        use_commands(monkeypatch, "missing", "works", "never")

        copy_to_clipboard("curl api.test/items")

        assert fake_run == [
            ("missing", b"curl api.test/items"),
            ("works", b"curl api.test/items"),
        ]

    def test_nothing_installed(self, monkeypatch, fake_run):
        use_commands(monkeypatch, "missing", "missing")

        with pytest.raises(ClipboardUnavailable, match="no clipboard command"):
            copy_to_clipboard("text")

    def test_command_failure(self, monkeypatch, fake_run):
        use_commands(monkeypatch, "broken", "missing")

        with pytest.raises(ClipboardUnavailable, match="broken"):
            copy_to_clipboard("text")
