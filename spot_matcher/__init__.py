"""
spot-matcher: Convert Spotify playlists into YouTube video lists.

This package matches every track of a Spotify playlist to a YouTube video,
preferring official videos, and builds watch_videos playlist URLs from the
matches. Conversions run as asynchronous jobs that can be polled, paused,
resumed and deleted.

Architecture:
    spotify/: Track source
        - Fetch playlist items with spotipy
        - Flatten them into (name, artist) Tracks

    youtube/: Per-track matching
        - Generate ordered search queries per track
        - Search through a bounded, never-raising adapter (ytmusicapi)
        - Rank candidates by official-video indicators and relevance
        - Known-answers override and failed-query cache

    jobs/: Asynchronous orchestration
        - Concurrent batches with per-batch and global deadlines
        - Salvage of timed-out batches, advanced retry pass
        - Circuit breaker on consecutive failed batches
        - Job registry with pause/resume/delete and garbage collection

Modules:
    core/       - Configuration, result cache, logging, exceptions, progress
    spotify/    - Spotify API client and Track model
    youtube/    - Query generation, search, ranking, track matching
    jobs/       - Job model, batch orchestrator, job registry
    utils/      - URL helpers and track windowing
    cli.py      - Command-line interface
    server.py   - HTTP job API

Usage:
    Command Line:
        spotmatch convert --url "https://open.spotify.com/playlist/..."
        spotmatch convert --tracks-file tracks.json --profile fast
        spotmatch serve --port 8080

    Python API:
        from spot_matcher import JobRegistry, SpotifyClient, load_config

        config = load_config()
        tracks = SpotifyClient(
            config.spotify.client_id, config.spotify.client_secret
        ).fetch_tracks(playlist_url)

        registry = JobRegistry.from_config(config)
        job_id = registry.create(tracks)
        job = await registry.wait(job_id)
        print(job.summary()["youtubeUrls"])

Dependencies:
    - spotipy: Spotify API client
    - ytmusicapi: YouTube Music search
    - asyncio-throttle: Search rate limiting
    - rapidfuzz: Fuzzy title confidence
    - aiohttp: HTTP job API
    - click / rich-click: CLI framework
    - rich / tqdm / colorama: Progress and console output
    - pyyaml / python-dotenv: Configuration
"""

__version__ = "0.1.0"
__author__ = "spot-matcher"
__license__ = "MIT"

from spot_matcher.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    JobNotFoundError,
    SearchError,
    SpotifyError,
    SpotMatcherError,
    get_logger,
    load_config,
    setup_logging,
)
from spot_matcher.jobs import BatchOrchestrator, Job, JobRegistry, JobStatus
from spot_matcher.spotify import SpotifyClient, Track
from spot_matcher.youtube import MatchResult, TrackMatcher

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "SpotMatcherError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "SearchError",
    "JobNotFoundError",
    # Pipeline
    "SpotifyClient",
    "Track",
    "TrackMatcher",
    "MatchResult",
    "BatchOrchestrator",
    "Job",
    "JobStatus",
    "JobRegistry",
]
