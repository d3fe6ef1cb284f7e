"""Tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.logging import RichHandler

from vcf_dumper.logging_config import reset_logging, setup_logging


class TestSetupLogging:
    """Tests for setup_logging and reset_logging."""

    def test_handlers_and_log_file(self, tmp_path: Path) -> None:
        """A rich console handler and a rotating file handler are installed."""
        log_file = setup_logging(log_dir=str(tmp_path), job_name="export")

        assert log_file.parent == tmp_path / "logs"
        assert log_file.name.startswith("export_")
        handler_types = {type(h) for h in logging.getLogger().handlers}
        assert {RichHandler, RotatingFileHandler} <= handler_types

    def test_debug_messages_reach_file(self, tmp_path: Path) -> None:
        """DEBUG records are written to the file while the console stays at WARNING."""
        log_file = setup_logging(log_dir=str(tmp_path))

        logging.getLogger("vcf_dumper.test").debug("window 1:1-20000 exported")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "window 1:1-20000 exported" in log_file.read_text()

    def test_second_call_keeps_first_configuration(self, tmp_path: Path) -> None:
        """Repeated setup returns the first log file."""
        first = setup_logging(log_dir=str(tmp_path / "a"))
        second = setup_logging(log_dir=str(tmp_path / "b"))

        assert second == first
        assert not (tmp_path / "b").exists()

    def test_reset_removes_handlers(self, tmp_path: Path) -> None:
        """reset_logging closes the installed handlers and allows a new setup."""
        setup_logging(log_dir=str(tmp_path / "a"))

        reset_logging()

        assert not any(
            isinstance(h, (RichHandler, RotatingFileHandler)) for h in logging.getLogger().handlers
        )
        assert setup_logging(log_dir=str(tmp_path / "b")).parent == tmp_path / "b" / "logs"
