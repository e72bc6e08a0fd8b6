"""
Logging configuration for spot-matcher.

This module sets up the logging system with multiple outputs:
    - Console: Real-time progress with tqdm-compatible, colored formatting
    - log_full.log: Complete log of all events (DEBUG and above)
    - log_errors.log: Only ERROR and CRITICAL level messages
    - match_failures.log: Tracks that could not be matched, with the
      failure reason and a manual YouTube search URL

Log File Locations:
    All log files are created in output_dir/logs, one set per run,
    distinguished by a timestamp suffix.

Usage:
    from spot_matcher.core.logger import setup_logging, get_logger

    setup_logging(output_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting conversion")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

import colorama
from colorama import Fore, Style
from tqdm import tqdm


# Initialize colorama for Windows compatibility
colorama.init()


# Log file name prefixes (created in output_dir/logs)
LOG_FULL_PREFIX = "log_full"
LOG_ERRORS_PREFIX = "log_errors"
MATCH_FAILURES_PREFIX = "match_failures"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that colors the level name on console output.

    Colors:
        - DEBUG: Cyan
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bright Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Style.BRIGHT + Fore.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Fore.WHITE)
        message = f"{color}{record.levelname}{Style.RESET_ALL}: {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Uses tqdm.write(), which prints above any active bar instead of
    interleaving with its carriage-return updates.

    Attributes:
        stream: The output stream (defaults to sys.stderr).
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class MatchFailureHandler(logging.Handler):
    """
    Handler that captures unmatched tracks for the match failures report.

    Listens for log records carrying match failure information and writes
    them to match_failures_<timestamp>.log in a human-readable format:

        Artist Name - Song Title
        Reason: no candidates
        Spotify: https://open.spotify.com/track/xxxxx
        Search: https://www.youtube.com/results?search_query=Artist+Name+Song+Title

    The handler looks for these extra fields in log records:
        - 'match_failed_track_name'
        - 'match_failed_track_artist'
        - 'match_failed_reason'
        - 'match_failed_spotify_url'
        - 'match_failed_search_url'

    Records without 'match_failed_track_name' are ignored.

    Attributes:
        report_path: Path to the report file.
        report_file: Open file handle (None until open() is called).
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "match_failed_track_name"):
            return

        if self.report_file is None:
            return

        try:
            track_name = getattr(record, "match_failed_track_name", "Unknown")
            artist = getattr(record, "match_failed_track_artist", "Unknown")
            reason = getattr(record, "match_failed_reason", "")
            spotify_url = getattr(record, "match_failed_spotify_url", "")
            search_url = getattr(record, "match_failed_search_url", "")

            self.report_file.write(f"{artist} - {track_name}\n")
            self.report_file.write(f"Reason: {reason}\n")
            if spotify_url:
                self.report_file.write(f"Spotify: {spotify_url}\n")
            self.report_file.write(f"Search: {search_url}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            self.report_file.close()
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(output_dir: Path | None = None, console_level: str = "INFO") -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        output_dir: Directory where log files will be created, in a 'logs'
                    subdirectory. None configures console logging only,
                    which is what the HTTP server uses under test.
        console_level: Minimum level name shown on the console.

    Behavior:
        1. Configure root logger level to DEBUG, dropping old handlers
        2. Console handler (TqdmLoggingHandler, colored, console_level)
        3. If output_dir is given, create output_dir/logs and add:
           - log_full_{timestamp}.log at DEBUG
           - log_errors_{timestamp}.log filtered to ERROR+
           - match_failures_{timestamp}.log via MatchFailureHandler

    Thread Safety:
        Not thread-safe. Call it once from the main thread.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    # Third-party clients are chatty at DEBUG
    for noisy in ("urllib3", "spotipy", "aiohttp.access", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if output_dir is None:
        return

    logs_dir = output_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    file_formatter = logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT)

    full_handler = logging.FileHandler(
        logs_dir / f"{LOG_FULL_PREFIX}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(file_formatter)
    root_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        logs_dir / f"{LOG_ERRORS_PREFIX}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(file_formatter)
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    failures_handler = MatchFailureHandler(logs_dir / f"{MATCH_FAILURES_PREFIX}_{timestamp}.log")
    failures_handler.open()
    root_logger.addHandler(failures_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called propagate to an
        unconfigured root logger and produce no console output.
    """
    return logging.getLogger(name)


def format_matched_message(artist: str, name: str, url: str, is_official: bool) -> str:
    """Format a 'Matched' message with colors."""
    label = "Matched" if is_official else "Matched (unofficial)"
    color = Fore.GREEN if is_official else Fore.YELLOW
    return (
        f"{color}{label}{Style.RESET_ALL}: "
        f"{artist} - {name} -> "
        f"{Fore.CYAN}{url}{Style.RESET_ALL}"
    )


def format_no_match_message(artist: str, name: str, reason: str) -> str:
    """Format a 'No match' message with colors."""
    return (
        f"{Fore.RED}No match{Style.RESET_ALL}: "
        f"{artist} - {name} "
        f"({reason})"
    )


def format_progress_message(completed: int, total: int, matched: int, failed: int) -> str:
    """Format a progress message."""
    return (
        f"Progress: {completed}/{total} "
        f"(matched: {Fore.GREEN}{matched}{Style.RESET_ALL}, "
        f"failed: {Fore.RED}{failed}{Style.RESET_ALL})"
    )


def log_match_failure(
    logger: logging.Logger,
    track_name: str,
    artist: str,
    reason: str,
    search_url: str,
    spotify_url: str = ""
) -> None:
    """
    Log a track that could not be matched.

    Logs a WARNING with the extra fields MatchFailureHandler picks up to
    write the match failures report.

    Example:
        log_match_failure(
            logger,
            track_name="Song Title",
            artist="Artist Name",
            reason="no candidates",
            search_url="https://www.youtube.com/results?search_query=Artist+Name+Song+Title",
            spotify_url="https://open.spotify.com/track/xxx",
        )
    """
    logger.warning(
        format_no_match_message(artist, track_name, reason),
        extra={
            "match_failed_track_name": track_name,
            "match_failed_track_artist": artist,
            "match_failed_reason": reason,
            "match_failed_spotify_url": spotify_url,
            "match_failed_search_url": search_url,
        }
    )


def shutdown_logging() -> None:
    """
    Flush and close all handlers on the root logger, then remove them.

    Typically called in a finally block at application exit.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)
