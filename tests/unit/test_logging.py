"""Unit tests for logging infrastructure."""
import logging
from mcv.infrastructure.logging import setup_logging


def test_setup_logging_creates_log_file(tmp_path):
    """Test that setup_logging creates the log directory and file."""
    log_file = tmp_path / "logs" / "conversion.log"

    logger = setup_logging(log_file, debug=False)

    assert isinstance(logger, logging.Logger)
    assert log_file.exists()
    assert "Logging initialized" in log_file.read_text()


def test_setup_logging_debug_mode(tmp_path):
    logger = setup_logging(tmp_path / "debug.log", debug=True)
    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_normal_mode(tmp_path):
    logger = setup_logging(tmp_path / "info.log", debug=False)
    assert logger.getEffectiveLevel() == logging.INFO


def test_setup_logging_replaces_previous_handlers(tmp_path):
    first = tmp_path / "first.log"
    second = tmp_path / "second.log"
    setup_logging(first)
    setup_logging(second)

    logging.getLogger("mcv.test").info("after switch")

    assert "after switch" in second.read_text()
    assert "after switch" not in first.read_text()
