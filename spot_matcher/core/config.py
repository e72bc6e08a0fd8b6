"""
Configuration management for spot-matcher.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml, with secrets optionally
supplied through environment variables (or a .env file).

The configuration file contains:
    - Spotify API credentials (client_id, client_secret)
    - Search politeness settings (rate limit, language)
    - Matching policy (timeouts, query limits, official-video threshold)
    - Processing profile and batch orchestration overrides
    - Output directory for logs and the result cache
    - Job retention settings

Configuration File Location:
    config.yaml in the current working directory, or an explicit path.
    Without a file, defaults plus environment overrides are used.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"

    matching:
      per_query_timeout: 3.0
      track_budget: 8.0
      official_threshold: 2
      known_answers_file: null

    processing:
      profile: background     # fast | background | chunked
      batch_size: 20          # optional override of the profile value

    output:
      directory: "~/.spot-matcher"

Environment Overrides:
    SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTMATCH_OUTPUT_DIR,
    SPOTMATCH_PROFILE
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from spot_matcher.core.exceptions import ConfigError

# Load environment variables from .env file if present
load_dotenv()


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_OUTPUT_DIRECTORY = "~/.spot-matcher"


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify API credentials configuration.

    These credentials are obtained from the Spotify Developer Dashboard:
    https://developer.spotify.com/dashboard

    Attributes:
        client_id: The Spotify application client ID.
        client_secret: The Spotify application client secret.
    """
    client_id: str = ""
    client_secret: str = ""

    @property
    def is_configured(self) -> bool:
        """True when both credentials are present."""
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class SearchConfig:
    """
    YouTube search transport settings.

    Attributes:
        rate_limit: Maximum number of searches started per rate_period.
                    None disables throttling.
        rate_period: Throttling window in seconds.
        language: Interface language passed to the YouTube Music client.
    """
    rate_limit: int | None = 10
    rate_period: float = 1.0
    language: str = "en"


@dataclass(frozen=True)
class MatchingConfig:
    """
    Per-track matching policy.

    Attributes:
        per_query_timeout: Seconds one search query may take.
        max_results_per_query: Candidates requested per query.
        max_queries_per_pass: Upper bound on queries tried in one pass (<= 10).
        max_passes: 1 = primary pass only, 2 = primary pass plus the
                    advanced retry pass for tracks the orchestrator marks.
        track_budget: Total seconds one track may spend across its queries.
        error_backoff: Base pause in seconds after a failed query, multiplied
                       by the number of consecutive failures. 0 disables it.
        official_threshold: Minimum official score for is_official.
        fallback_to_first: Accept the first search result when no candidate
                           passes the relevance filter.
        failed_cache_ttl: Seconds a failed track stays in the failed-query
                          cache. None keeps entries for the process lifetime.
        known_answers_file: Optional YAML file of known track -> video answers.
    """
    per_query_timeout: float = 3.0
    max_results_per_query: int = 12
    max_queries_per_pass: int = 6
    max_passes: int = 2
    track_budget: float = 8.0
    error_backoff: float = 0.25
    official_threshold: int = 2
    fallback_to_first: bool = True
    failed_cache_ttl: float | None = None
    known_answers_file: Path | None = None


@dataclass(frozen=True)
class ProcessingConfig:
    """
    Batch orchestration policy.

    The three profiles in PROFILES stand in for the fast (synchronous,
    hard deadline), background (long-running, polite) and chunked
    (externally paginated) ways of running a conversion. All of them are
    the same orchestrator with different numbers.

    Attributes:
        profile: Name of the profile these values were derived from.
        batch_size: Number of tracks matched concurrently per batch.
        per_batch_timeout: Seconds a whole batch may take before salvage.
        salvage_timeout: Seconds each track gets when salvaged individually.
        global_timeout: Optional hard deadline for the whole job, in seconds.
        max_consecutive_batch_failures: Circuit breaker threshold.
        inter_batch_delay: Pause in seconds after a successful batch.
        retry_failed: Run the advanced retry pass for unmatched tracks.
        adaptive_chunks: Size job windows by playlist length (50/100/200)
                         when the caller does not give max_tracks.
    """
    profile: str = "background"
    batch_size: int = 10
    per_batch_timeout: float = 30.0
    salvage_timeout: float = 3.0
    global_timeout: float | None = None
    max_consecutive_batch_failures: int = 3
    inter_batch_delay: float = 0.3
    retry_failed: bool = True
    adaptive_chunks: bool = False


PROFILES: dict[str, ProcessingConfig] = {
    "fast": ProcessingConfig(
        profile="fast",
        batch_size=50,
        per_batch_timeout=10.0,
        salvage_timeout=2.0,
        global_timeout=30.0,
        max_consecutive_batch_failures=2,
        inter_batch_delay=0.1,
        retry_failed=False,
    ),
    "background": ProcessingConfig(),
    "chunked": ProcessingConfig(
        profile="chunked",
        batch_size=50,
        per_batch_timeout=20.0,
        salvage_timeout=3.0,
        inter_batch_delay=0.1,
        retry_failed=False,
        adaptive_chunks=True,
    ),
}


@dataclass(frozen=True)
class OutputConfig:
    """
    Output configuration.

    Attributes:
        directory: Directory holding logs/ and the result cache database.
                   Path expansion is performed (~ is expanded).
        console_level: Minimum level shown on the console.
    """
    directory: Path
    console_level: str = "INFO"

    @property
    def database_path(self) -> Path:
        return self.directory / "results.db"


@dataclass(frozen=True)
class JobsConfig:
    """
    Job registry housekeeping.

    Attributes:
        retention_hours: Completed jobs idle for longer than this are removed.
        gc_interval: Seconds between garbage-collection sweeps (HTTP server).
    """
    retention_hours: float = 24.0
    gc_interval: float = 3600.0

    @property
    def retention_seconds(self) -> float:
        return self.retention_hours * 3600.0


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Profile: {config.processing.profile}")
        print(f"Batch size: {config.processing.batch_size}")
    """
    spotify: SpotifyConfig
    search: SearchConfig
    matching: MatchingConfig
    processing: ProcessingConfig
    output: OutputConfig
    jobs: JobsConfig


def default_config(profile: str | None = None) -> Config:
    """Return a Config built only from defaults and environment overrides."""
    return _apply_environment(_build_config({}, profile))


def get_profile(name: str) -> ProcessingConfig:
    """
    Look up a processing profile by name.

    Raises:
        ConfigError: If the profile does not exist.
    """
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigError(
            f"Unknown processing profile: '{name}'",
            details={"profile": name, "available": sorted(PROFILES)}
        ) from None


def load_config(config_path: Path | None = None, profile: str | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory
                     and falls back to defaults when it is absent.
        profile: Optional processing profile name. Takes precedence over
                 SPOTMATCH_PROFILE and processing.profile; processing
                 overrides from the file still apply on top of it.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, the file has
                     invalid YAML syntax, a section has the wrong shape, a
                     value is invalid, or the timeouts do not nest.

    Behavior:
        1. Locate config file (explicit path or CWD/config.yaml)
        2. Read and parse YAML content
        3. Validate sections and values, resolving the processing profile
        4. Apply environment overrides (SPOTIFY_CLIENT_ID, ...)
        5. Check that per-query < per-track < per-batch < global timeouts
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        return _validated(default_config(profile))

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid "all defaults" configuration
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return _validated(_apply_environment(_build_config(raw_config, profile)))


def _build_config(raw_config: dict[str, Any], profile: str | None = None) -> Config:
    for section in ("spotify", "search", "matching", "processing", "output", "jobs"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        spotify=_parse_spotify_config(raw_config.get("spotify") or {}),
        search=_parse_search_config(raw_config.get("search") or {}),
        matching=_parse_matching_config(raw_config.get("matching") or {}),
        processing=_parse_processing_config(raw_config.get("processing") or {}, profile),
        output=_parse_output_config(raw_config.get("output") or {}),
        jobs=_parse_jobs_config(raw_config.get("jobs") or {}),
    )


def _parse_spotify_config(section: dict[str, Any]) -> SpotifyConfig:
    client_id = section.get("client_id") or ""
    client_secret = section.get("client_secret") or ""
    if not isinstance(client_id, str) or not isinstance(client_secret, str):
        raise ConfigError(
            "Spotify credentials must be strings",
            details={"section": "spotify"}
        )
    return SpotifyConfig(client_id=client_id.strip(), client_secret=client_secret.strip())


def _parse_search_config(section: dict[str, Any]) -> SearchConfig:
    defaults = SearchConfig()
    language = section.get("language", defaults.language)
    if not isinstance(language, str) or not language:
        raise ConfigError(
            "search.language must be a non-empty string",
            details={"section": "search", "field": "language"}
        )
    return SearchConfig(
        rate_limit=_get_number(section, "search", "rate_limit", defaults.rate_limit,
                               integer=True, allow_none=True),
        rate_period=_get_number(section, "search", "rate_period", defaults.rate_period),
        language=language,
    )


def _parse_matching_config(section: dict[str, Any]) -> MatchingConfig:
    defaults = MatchingConfig()

    max_queries = _get_number(section, "matching", "max_queries_per_pass",
                              defaults.max_queries_per_pass, integer=True)
    if max_queries > 10:
        raise ConfigError(
            "matching.max_queries_per_pass must be at most 10",
            details={"section": "matching", "field": "max_queries_per_pass", "value": max_queries}
        )

    max_passes = _get_number(section, "matching", "max_passes", defaults.max_passes, integer=True)
    if max_passes not in (1, 2):
        raise ConfigError(
            "matching.max_passes must be 1 or 2",
            details={"section": "matching", "field": "max_passes", "value": max_passes}
        )

    known_answers = section.get("known_answers_file")
    known_answers_file = Path(known_answers).expanduser() if known_answers else None

    return MatchingConfig(
        per_query_timeout=_get_number(section, "matching", "per_query_timeout",
                                      defaults.per_query_timeout),
        max_results_per_query=_get_number(section, "matching", "max_results_per_query",
                                          defaults.max_results_per_query, integer=True),
        max_queries_per_pass=max_queries,
        max_passes=max_passes,
        track_budget=_get_number(section, "matching", "track_budget", defaults.track_budget),
        error_backoff=_get_number(section, "matching", "error_backoff",
                                  defaults.error_backoff, minimum=0.0),
        official_threshold=_get_number(section, "matching", "official_threshold",
                                       defaults.official_threshold, integer=True),
        fallback_to_first=_get_bool(section, "matching", "fallback_to_first",
                                    defaults.fallback_to_first),
        failed_cache_ttl=_get_number(section, "matching", "failed_cache_ttl",
                                     defaults.failed_cache_ttl, allow_none=True),
        known_answers_file=known_answers_file,
    )


def _parse_processing_config(section: dict[str, Any], profile: str | None = None) -> ProcessingConfig:
    profile_name = profile or os.getenv("SPOTMATCH_PROFILE") or section.get("profile") or "background"
    base = get_profile(profile_name)

    overrides: dict[str, Any] = {}
    for field_info in fields(ProcessingConfig):
        name = field_info.name
        if name == "profile" or name not in section:
            continue
        default = getattr(base, name)
        if isinstance(default, bool):
            overrides[name] = _get_bool(section, "processing", name, default)
        elif name == "global_timeout":
            overrides[name] = _get_number(section, "processing", name, default, allow_none=True)
        elif name in ("batch_size", "max_consecutive_batch_failures"):
            overrides[name] = _get_number(section, "processing", name, default, integer=True)
        elif name == "inter_batch_delay":
            overrides[name] = _get_number(section, "processing", name, default, minimum=0.0)
        else:
            overrides[name] = _get_number(section, "processing", name, default)

    return replace(base, **overrides)


def _parse_output_config(section: dict[str, Any]) -> OutputConfig:
    directory = section.get("directory") or DEFAULT_OUTPUT_DIRECTORY
    if not isinstance(directory, str):
        raise ConfigError(
            "output.directory must be a string",
            details={"section": "output", "field": "directory"}
        )

    level = str(section.get("console_level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(
            f"Invalid output.console_level: '{level}'",
            details={"section": "output", "field": "console_level", "value": level}
        )

    return OutputConfig(directory=Path(directory).expanduser(), console_level=level)


def _parse_jobs_config(section: dict[str, Any]) -> JobsConfig:
    defaults = JobsConfig()
    return JobsConfig(
        retention_hours=_get_number(section, "jobs", "retention_hours", defaults.retention_hours),
        gc_interval=_get_number(section, "jobs", "gc_interval", defaults.gc_interval),
    )


def _apply_environment(config: Config) -> Config:
    """
    Apply environment variable overrides.

    Environment variables take precedence over file-based configuration
    so credentials do not have to live in config.yaml.
    """
    spotify = config.spotify
    client_id = os.getenv("SPOTIFY_CLIENT_ID")
    client_secret = os.getenv("SPOTIFY_CLIENT_SECRET")
    if client_id or client_secret:
        spotify = SpotifyConfig(
            client_id=client_id or spotify.client_id,
            client_secret=client_secret or spotify.client_secret,
        )

    output = config.output
    output_dir = os.getenv("SPOTMATCH_OUTPUT_DIR")
    if output_dir:
        output = replace(output, directory=Path(output_dir).expanduser())

    return replace(config, spotify=spotify, output=output)


def _validated(config: Config) -> Config:
    """Check that the timeouts nest: per query < per track < per batch < global."""
    matching = config.matching
    processing = config.processing

    chain = [
        ("matching.per_query_timeout", matching.per_query_timeout),
        ("matching.track_budget", matching.track_budget),
        ("processing.per_batch_timeout", processing.per_batch_timeout),
    ]
    if processing.global_timeout is not None:
        chain.append(("processing.global_timeout", processing.global_timeout))

    for (inner_name, inner), (outer_name, outer) in zip(chain, chain[1:]):
        if inner >= outer:
            raise ConfigError(
                f"{inner_name} ({inner}) must be smaller than {outer_name} ({outer})",
                details={"inner": inner_name, "outer": outer_name}
            )

    if processing.salvage_timeout > processing.per_batch_timeout:
        raise ConfigError(
            "processing.salvage_timeout must not exceed processing.per_batch_timeout",
            details={
                "salvage_timeout": processing.salvage_timeout,
                "per_batch_timeout": processing.per_batch_timeout,
            }
        )

    return config


def _get_number(
    section: dict[str, Any],
    section_name: str,
    key: str,
    default: Any,
    integer: bool = False,
    allow_none: bool = False,
    minimum: float | None = None
) -> Any:
    """
    Read a numeric field, validating type and range.

    Values must be positive unless a minimum is given (then >= minimum).
    Booleans are rejected even though they are ints in Python.
    """
    if key not in section:
        return default

    value = section[key]
    if value is None:
        if allow_none:
            return None
        raise ConfigError(
            f"{section_name}.{key} must not be null",
            details={"section": section_name, "field": key}
        )

    expected = int if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, expected):
        raise ConfigError(
            f"{section_name}.{key} must be {'an integer' if integer else 'a number'}",
            details={"section": section_name, "field": key, "value": value}
        )

    too_small = value < minimum if minimum is not None else value <= 0
    if too_small:
        bound = f">= {minimum}" if minimum is not None else "positive"
        raise ConfigError(
            f"{section_name}.{key} must be {bound}",
            details={"section": section_name, "field": key, "value": value}
        )

    return value if integer else float(value)


def _get_bool(section: dict[str, Any], section_name: str, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(
            f"{section_name}.{key} must be true or false",
            details={"section": section_name, "field": key, "value": value}
        )
    return value
