"""
Exception classes for spot-matcher.

This module defines the custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, so callers can log context without parsing strings.

Exception Hierarchy:
    SpotMatcherError (base)
        ConfigError - Configuration file issues
        DatabaseError - Result cache (SQLite) issues
        SpotifyError - Spotify API issues
        SearchError - YouTube search transport issues
        JobNotFoundError - Unknown or deleted job id

Only ConfigError, DatabaseError and SpotifyError are meant to reach the
user. SearchError never escapes the candidate search adapter, which turns
it into a typed search outcome.
"""


class SpotMatcherError(Exception):
    """
    Base exception for all spot-matcher errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., track info, URLs).

    Example:
        try:
            config = load_config()
        except SpotMatcherError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'file_path': Path of a file involved in the error
                     - 'query': Search query that failed
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotMatcherError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Explicit config path not found
        - config.yaml has invalid YAML syntax
        - A section is not a mapping, or a value has the wrong type
        - Timeouts that do not nest (per-query < per-track < per-batch < global)
        - Unknown processing profile

    Example:
        raise ConfigError(
            "Unknown processing profile: 'turbo'",
            details={'profile': 'turbo', 'available': ['fast', 'background', 'chunked']}
        )
    """
    pass


class DatabaseError(SpotMatcherError):
    """
    Raised when the result cache database cannot be read or written.

    The cache is a performance optimization only. Callers that merely
    save results after a job should log this error and carry on; the CLI
    reports it with exit code 2 when it happens while loading.
    """
    pass


class SpotifyError(SpotMatcherError):
    """
    Raised when there's an issue with the Spotify API.

    Common causes:
        - Invalid or expired credentials (CRITICAL)
        - Rate limiting (may be recoverable with retry)
        - Playlist not found or private
        - Network connectivity issues

    Attributes:
        is_auth_error: True if this is an authentication error (CRITICAL).
        is_rate_limit: True if this is a rate limit error (may retry).
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_auth_error: bool = False,
        is_rate_limit: bool = False
    ) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.is_rate_limit = is_rate_limit


class SearchError(SpotMatcherError):
    """
    Raised by a search backend when a single query fails at the transport level.

    The candidate search adapter catches this (and any other exception
    raised by a backend) and reports the query as failed instead of
    propagating it.

    Attributes:
        is_redirect: True for redirect-class failures (redirect loops,
                     consent-page redirects). The adapter never re-issues a
                     query that failed this way.

    Example:
        raise SearchError(
            "Exceeded 30 redirects",
            details={'query': 'Queen Bohemian Rhapsody official video'},
            is_redirect=True
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_redirect: bool = False
    ) -> None:
        super().__init__(message, details)
        self.is_redirect = is_redirect


class JobNotFoundError(SpotMatcherError):
    """
    Raised when a caller asks for a job id the registry does not know.

    The registry's query methods return None/False for unknown ids; this
    exception is used by JobRegistry.require() for surfaces (CLI, HTTP)
    that prefer to branch on an exception.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
        self.job_id = job_id
