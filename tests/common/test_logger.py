"""Tests for logging utilities."""

import logging

import pytest
from rich.logging import RichHandler

from common.logger import get_logger, setup_logging


@pytest.fixture
def bare_root():
    """Run with an unconfigured root logger and restore it afterwards."""
    root = logging.getLogger()
    saved = list(root.handlers)
    saved_level = root.level
    root.handlers.clear()
    yield root
    for handler in root.handlers:
        if handler not in saved:
            handler.close()
    root.handlers[:] = saved
    root.setLevel(saved_level)


def _rich_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, RichHandler)]


class TestGetLogger:
    """Tests for get_logger function."""

    def test_returns_named_logger(self):
        logger = get_logger("ipsw_diff.test.module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "ipsw_diff.test.module"

    def test_default_level_is_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        logger = get_logger("ipsw_diff.test.default")
        assert logger.level == logging.INFO

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        logger = get_logger("ipsw_diff.test.env_level")
        assert logger.level == logging.DEBUG

    def test_reuses_existing_logger(self, bare_root):
        """Repeated calls must not stack handlers."""
        logger1 = get_logger("ipsw_diff.test.reuse")
        logger2 = get_logger("ipsw_diff.test.reuse")
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_records_propagate_to_caplog(self, caplog):
        logger = get_logger("ipsw_diff.test.output")

        with caplog.at_level(logging.INFO):
            logger.warning("No dyld_shared_cache for x86_64 found for old - skipping")

        assert "No dyld_shared_cache for x86_64" in caplog.text

    def test_info_level_filters_debug(self, caplog):
        logger = get_logger("ipsw_diff.test.filter", level="INFO")

        with caplog.at_level(logging.DEBUG):
            logger.debug("$ ipsw extract --kernel")
            logger.info("Extracting arm64e...")

        assert "ipsw extract" not in caplog.text
        assert "Extracting arm64e..." in caplog.text


class TestSetupLogging:
    def test_log_file_receives_records(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        log_file = tmp_path / "run.log"
        root = logging.getLogger()
        saved = list(root.handlers)
        saved_level = root.level
        try:
            setup_logging(level="INFO", log_file=str(log_file))
            logging.getLogger("ipsw_diff.test.file").info("Inferred OLD_BUILD: 20C69")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in root.handlers:
                if handler not in saved:
                    handler.close()
            root.handlers[:] = saved
            root.setLevel(saved_level)

        assert "Inferred OLD_BUILD: 20C69" in log_file.read_text()

    def test_existing_loggers_stop_rendering_on_their_own(self, bare_root):
        logger = get_logger("ipsw_diff.test.before_setup")
        assert len(_rich_handlers(logger)) == 1

        setup_logging(level="INFO")

        assert _rich_handlers(logger) == []
        assert len(_rich_handlers(bare_root)) == 1

    def test_loggers_after_setup_use_root_only(self, bare_root):
        setup_logging(level="INFO")
        logger = get_logger("ipsw_diff.test.after_setup")

        assert logger.handlers == []
        assert logger.propagate
