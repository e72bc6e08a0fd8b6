# tests/test_logger.py
"""Test logging setup and the match failures report"""

import logging

import pytest

from spot_matcher.core.logger import (
    ErrorOnlyFilter,
    format_no_match_message,
    get_logger,
    log_match_failure,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def logs(temp_dir):
    setup_logging(temp_dir, console_level="CRITICAL")
    yield temp_dir / "logs"
    shutdown_logging()


def read_log(logs_dir, prefix):
    (path,) = logs_dir.glob(f"{prefix}_*.log")
    return path.read_text(encoding="utf-8")


class TestSetupLogging:
    """Test handler configuration"""

    def test_creates_log_files(self, logs):
        """Test that one file of each kind is created"""
        names = sorted(path.name.split("_2")[0] for path in logs.iterdir())

        assert names == ["log_errors", "log_full", "match_failures"]

    def test_levels_are_routed(self, logs):
        """Test that the errors log only receives errors"""
        logger = get_logger("spot_matcher.test")
        logger.debug("debug details")
        logger.error("something broke")
        shutdown_logging()

        full = read_log(logs, "log_full")
        errors = read_log(logs, "log_errors")
        assert "debug details" in full
        assert "something broke" in full
        assert "debug details" not in errors
        assert "something broke" in errors

    def test_console_only(self):
        """Test setup without an output directory"""
        setup_logging(None)
        try:
            assert len(logging.getLogger().handlers) == 1
        finally:
            shutdown_logging()

    def test_shutdown_removes_handlers(self, temp_dir):
        """Test that shutdown leaves no handlers behind"""
        setup_logging(temp_dir)
        shutdown_logging()

        assert logging.getLogger().handlers == []


class TestMatchFailures:
    """Test the match failures report"""

    def test_failure_is_reported(self, logs):
        """Test the report entry for an unmatched track"""
        log_match_failure(
            get_logger("spot_matcher.test"),
            track_name="Hello",
            artist="Adele",
            reason="no candidates",
            search_url="https://www.youtube.com/results?search_query=Adele+Hello+official+video",
            spotify_url="https://open.spotify.com/track/abc",
        )
        get_logger("spot_matcher.test").warning("unrelated warning")
        shutdown_logging()

        report = read_log(logs, "match_failures")
        assert report == (
            "Adele - Hello\n"
            "Reason: no candidates\n"
            "Spotify: https://open.spotify.com/track/abc\n"
            "Search: https://www.youtube.com/results?search_query=Adele+Hello+official+video\n\n"
        )

    def test_no_match_message(self):
        """Test the console message"""
        message = format_no_match_message("Adele", "Hello", "all rejected")

        assert "Adele - Hello" in message
        assert "(all rejected)" in message

    def test_error_only_filter(self):
        """Test the errors log filter"""
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "msg", None, None)

        assert not ErrorOnlyFilter().filter(record)
        record.levelno = logging.ERROR
        assert ErrorOnlyFilter().filter(record)
