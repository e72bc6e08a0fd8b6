"""
Core module for spot-matcher.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading, validation and processing profiles
    - database: Thread-safe SQLite cache for completed conversions
    - logger: Logging system with multiple outputs
    - progress: Rich progress bar for polled jobs

Usage:
    from spot_matcher.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        SpotMatcherError, ConfigError, DatabaseError
    )
"""

from spot_matcher.core.config import (
    PROFILES,
    Config,
    JobsConfig,
    MatchingConfig,
    OutputConfig,
    ProcessingConfig,
    SearchConfig,
    SpotifyConfig,
    default_config,
    get_profile,
    load_config,
)
from spot_matcher.core.database import Database
from spot_matcher.core.exceptions import (
    ConfigError,
    DatabaseError,
    JobNotFoundError,
    SearchError,
    SpotifyError,
    SpotMatcherError,
)
from spot_matcher.core.logger import (
    get_logger,
    log_match_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "SearchConfig",
    "MatchingConfig",
    "ProcessingConfig",
    "OutputConfig",
    "JobsConfig",
    "PROFILES",
    "default_config",
    "get_profile",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "SpotMatcherError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "SearchError",
    "JobNotFoundError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_match_failure",
    "shutdown_logging",
]
