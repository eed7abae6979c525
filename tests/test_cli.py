"""
Tests for the command line interface and headless mode.
"""

import logging
import socket
import threading

import pytest

from netinspect.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_TRANSPORT_UNAVAILABLE,
    create_parser,
    format_transaction,
    main,
    run_headless,
)
from netinspect.config import InspectorConfig
from netinspect.inspector import Inspector


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers main() attached to the package logger."""
    yield
    logger = logging.getLogger("netinspect")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class TestParser:
    """Tests for argument parsing."""

    def test_defaults_are_unset(self):
        """Test unset options stay None so config file values apply."""
        args = create_parser().parse_args([])

        assert args.port is None
        assert args.body_cap is None
        assert args.retention is None
        assert not args.unbounded_bodies
        assert not args.headless

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--log-level", "loud"])


class TestExitCodes:
    """Tests for process exit codes."""

    def test_config_error(self, capsys):
        assert main(["--retention", "0"]) == EXIT_CONFIG_ERROR
        assert "retention_ceiling" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yml")]) == EXIT_CONFIG_ERROR

    def test_bad_key_binding(self, tmp_path):
        path = tmp_path / "keys.yml"
        path.write_text("keybindings:\n  fly: [f]\n")
        assert main(["--config", str(path)]) == EXIT_CONFIG_ERROR

    @pytest.mark.parametrize("contents", [
        "keybindings:\n  down:\n",
        "log_level: 5\n",
        "host: 12\n",
        "log_file: [a, b]\n",
    ])
    def test_mistyped_config_value(self, tmp_path, capsys, contents):
        path = tmp_path / "netinspect.yml"
        path.write_text(contents)

        assert main(["--config", str(path), "--headless"]) == EXIT_CONFIG_ERROR
        assert capsys.readouterr().err.startswith("Error: ")

    def test_transport_unavailable(self, capsys):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            port = blocker.getsockname()[1]
            code = main(["--headless", "--host", "127.0.0.1", "--port", str(port)])
        finally:
            blocker.close()

        assert code == EXIT_TRANSPORT_UNAVAILABLE
        assert "Cannot listen" in capsys.readouterr().err


class TestHeadless:
    """Tests for headless mode."""

    def test_format_transaction(self, store, events):
        for event in events.full("1", status=201):
            store.apply(event)

        line = format_transaction(store.get("1"))

        assert line.startswith("GET api.test/items -> 201 (")
        assert line.endswith("completed")

    def test_format_failed_transaction(self, store, events):
        store.apply(events.started("1"))
        store.apply(events.closed("1", error="ECONNRESET"))

        line = format_transaction(store.get("1"))

        assert "-> ---" in line
        assert line.endswith("failed: ECONNRESET")

    def test_logs_closed_transactions(self, events, caplog):
        caplog.set_level(logging.INFO, logger="netinspect")
        inspector = Inspector(InspectorConfig(refresh_rate=100.0))
        for event in events.full("1") + [events.started("2")]:
            inspector.submit_event(event)

        stop_event = threading.Event()
        stop_event.set()
        run_headless(inspector, stop_event)

        lines = [r.getMessage() for r in caplog.records if "->" in r.getMessage()]
        assert len(lines) == 1
        assert lines[0].startswith("GET api.test/items -> 200")
