"""
Unit tests for logging utilities.

Tests verify:
- Logging setup and configuration
- Function call decorator behavior
- Correlation IDs and JSON formatting
"""

import json
import logging

from mediadrop.utils.logging import (
    JSONFormatter,
    _short_repr,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_function_call,
    set_correlation_id,
    setup_logging,
)


def test_setup_logging_configures_root_logger() -> None:
    """Test that setup_logging properly configures the root logger."""
    setup_logging(level="DEBUG")
    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.INFO

    setup_logging(level="INFO")


def test_setup_logging_json_mode(monkeypatch) -> None:
    """Test that LOG_FORMAT=json installs the JSON formatter."""
    monkeypatch.setenv("LOG_FORMAT", "json")
    setup_logging(level="INFO")

    root_logger = logging.getLogger()
    assert any(isinstance(h.formatter, JSONFormatter) for h in root_logger.handlers)

    monkeypatch.delenv("LOG_FORMAT")
    setup_logging(level="INFO")


def test_get_logger_returns_logger_instance() -> None:
    """Test that get_logger returns a valid logger instance."""
    logger = get_logger("test_module")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "test_module"


def test_log_function_call_decorator_logs_entry_and_exit() -> None:
    """Test that log_function_call decorator logs function entry and exit."""

    @log_function_call
    def sample_function(x: int, y: int) -> int:
        """Sample function for testing decorator."""
        return x + y

    result = sample_function(2, 3)
    assert result == 5
    assert sample_function.__name__ == "sample_function"


def test_log_function_call_decorator_handles_exceptions() -> None:
    """Test that log_function_call decorator properly logs exceptions."""

    @log_function_call
    def failing_function() -> None:
        """Function that raises an exception."""
        raise ValueError("Test exception")

    try:
        failing_function()
        assert False, "Exception should have been raised"
    except ValueError as e:
        assert str(e) == "Test exception"


def test_correlation_id_roundtrip() -> None:
    """Test setting, reading and clearing the correlation ID."""
    set_correlation_id("speech.mp4-1")
    assert get_correlation_id() == "speech.mp4-1"

    clear_correlation_id()
    generated = get_correlation_id()
    assert generated and generated != "speech.mp4-1"
    # Generated ID sticks for the context
    assert get_correlation_id() == generated
    clear_correlation_id()


def test_json_formatter_output() -> None:
    """Test that JSONFormatter emits parseable JSON with extra fields."""
    set_correlation_id("cake.jpg-0")
    record = logging.LogRecord(
        name="mediadrop.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Chunk %d accepted",
        args=(3,),
        exc_info=None,
    )
    record.offset = 786432

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["logger"] == "mediadrop.test"
    assert data["message"] == "Chunk 3 accepted"
    assert data["correlation_id"] == "cake.jpg-0"
    assert data["extra"] == {"offset": 786432}
    clear_correlation_id()


def test_short_repr_hides_payloads() -> None:
    """Test that byte payloads and long values are not logged verbatim."""
    assert _short_repr(b"\x00" * 2048) == "<2048 bytes>"

    long_value = "x" * 1000
    shortened = _short_repr(long_value)
    assert len(shortened) < 300
    assert shortened.endswith("...")
