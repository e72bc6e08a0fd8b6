"""
Command-line interface for spot-matcher.

This module implements the CLI using Click, with rich-click for help
formatting and colors.

Commands:
    spotmatch convert --url <playlist_url>      Convert a Spotify playlist
    spotmatch convert --tracks-file <file>      Convert a JSON track list
    spotmatch serve                             Run the HTTP job API

Usage:
    # Convert a whole playlist with the background profile
    spotmatch convert --url "https://open.spotify.com/playlist/..."

    # Fast profile: hard 30s deadline, no retry pass
    spotmatch convert --url "https://..." --profile fast

    # Convert tracks 101-200 of a large playlist
    spotmatch convert --url "https://..." --start 101 --max 100

    # Tracks from a file, results written as JSON
    spotmatch convert --tracks-file tracks.json --json results.json

Track files:
    A JSON list of {"name": ..., "artist": ...} objects, or an object with
    such a list under "tracks".

Exit codes:
    1   Configuration error
    2   Database error
    3   Spotify error
    4   Other spot-matcher error (including failed jobs)
    130 Interrupted
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import rich_click as click
from aiohttp import web

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "cli convert": [
        {
            "name": "Input Sources",
            "options": ["--url", "--tracks-file"],
        },
        {
            "name": "Window",
            "options": ["--start", "--max"],
        },
        {
            "name": "Processing",
            "options": ["--profile", "--config", "--no-cache"],
        },
        {
            "name": "Output",
            "options": ["--json"],
        },
    ],
}

from spot_matcher import __version__
from spot_matcher.core import (
    PROFILES,
    Config,
    ConfigError,
    Database,
    DatabaseError,
    SpotifyError,
    SpotMatcherError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from spot_matcher.core.logger import format_no_match_message
from spot_matcher.core.progress import MatchingProgressBar
from spot_matcher.jobs import Job, JobRegistry, JobStatus
from spot_matcher.server import create_app
from spot_matcher.spotify import SpotifyClient, Track
from spot_matcher.utils import build_watch_videos_urls, extract_playlist_id

logger = get_logger(__name__)


# Seconds between status polls while a job runs
POLL_INTERVAL = 0.25


@click.group()
@click.version_option(__version__, prog_name="spot-matcher")
def cli() -> None:
    """
    spot-matcher: Convert Spotify playlists into YouTube video lists.

    Every track is matched to a YouTube video, preferring official videos.
    Matches are turned into watch_videos playlist URLs of up to 50 videos.

    \b
    BASIC USAGE:
        spotmatch convert --url "https://open.spotify.com/playlist/..."
        spotmatch convert --tracks-file tracks.json
        spotmatch serve --port 8080
    """


# =============================================================================
# convert
# =============================================================================

@cli.command()
@click.option(
    "--url",
    type=str,
    default=None,
    metavar="<spotify-url>",
    help="Spotify playlist URL, URI or id"
)
@click.option(
    "--tracks-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<tracks.json>",
    help="JSON file with a list of {name, artist} tracks"
)
@click.option(
    "--start",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="1-based position of the first track to convert"
)
@click.option(
    "--max", "max_tracks",
    type=click.IntRange(min=1),
    default=None,
    help="Number of tracks to convert from --start"
)
@click.option(
    "--profile",
    type=click.Choice(sorted(PROFILES)),
    default=None,
    help="Processing profile (overrides config.yaml)"
)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--no-cache",
    is_flag=True,
    help="Ignore cached results of a previous conversion"
)
@click.option(
    "--json", "json_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<results.json>",
    help="Write summary and per-track results as JSON"
)
def convert(
    url: Optional[str],
    tracks_file: Optional[Path],
    start: int,
    max_tracks: Optional[int],
    profile: Optional[str],
    config_path: Optional[Path],
    no_cache: bool,
    json_path: Optional[Path]
) -> None:
    """
    Convert a playlist into YouTube videos.

    \b
    Runs the conversion as a job, shows its progress, then prints the
    watch_videos URLs and the tracks that could not be matched together
    with a manual YouTube search link for each.
    """
    if bool(url) == bool(tracks_file):
        raise click.UsageError("Use exactly one of --url or --tracks-file")

    playlist_id = None
    if url:
        playlist_id = extract_playlist_id(url)
        if playlist_id is None:
            raise click.UsageError("--url must be a Spotify playlist URL, URI or id")

    _run_convert({
        "url": url,
        "playlist_id": playlist_id,
        "tracks_file": tracks_file,
        "start": start,
        "max_tracks": max_tracks,
        "profile": profile,
        "config_path": config_path,
        "no_cache": no_cache,
        "json_path": json_path,
    })


def _run_convert(options: dict) -> None:
    """
    Execute a conversion based on CLI options.

    This is the main orchestration function that:
    1. Loads configuration and sets up logging
    2. Answers from the result cache when possible
    3. Reads tracks from Spotify or a file
    4. Runs the job while polling its progress
    5. Reports results

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    database: Database | None = None

    try:
        config = _load_configuration(options["config_path"], options["profile"])
        config.output.directory.mkdir(parents=True, exist_ok=True)
        setup_logging(config.output.directory, config.output.console_level)
        logger.info(f"spot-matcher {__version__} starting (profile: {config.processing.profile})")

        database = Database(config.output.database_path)
        playlist_id = options["playlist_id"]
        whole_playlist = options["start"] == 1 and options["max_tracks"] is None

        if playlist_id and whole_playlist and not options["no_cache"]:
            cached = database.load_results(playlist_id)
            if cached is not None:
                logger.info(f"Using cached results for playlist {playlist_id}")
                _print_cached(cached)
                if options["json_path"]:
                    _write_json(options["json_path"], {"cached": True, "results": cached})
                return

        if options["url"]:
            client = SpotifyClient(config.spotify.client_id, config.spotify.client_secret)
            tracks = client.fetch_tracks(options["url"])
        else:
            tracks = _load_tracks_file(options["tracks_file"])
        logger.info(f"Loaded {len(tracks)} tracks")

        try:
            job = asyncio.run(_run_job(
                config, tracks, playlist_id, options["start"], options["max_tracks"], database
            ))
        except ValueError as e:
            raise click.UsageError(str(e)) from e

        if job.status is JobStatus.FAILED:
            raise SpotMatcherError(f"Job failed: {job.error}", details={"job_id": job.id})

        _print_summary(job)
        if options["json_path"]:
            _write_json(options["json_path"], {
                "summary": job.summary(),
                "status": job.status_report(),
                "results": job.track_results(),
            })

        logger.info("spot-matcher completed successfully")

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_auth_error:
            click.echo("Check SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except SpotMatcherError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        if database is not None:
            database.close()
        shutdown_logging()


def _load_configuration(config_path: Path | None, profile: str | None) -> Config:
    """
    Load configuration, with --profile replacing the configured base profile.

    Raises:
        ConfigError: If configuration is invalid or the profile is unknown.
    """
    return load_config(config_path, profile=profile)


def _load_tracks_file(path: Path) -> list[Track]:
    """
    Read tracks from a JSON file.

    Raises:
        ConfigError: If the file is not valid JSON or a track is malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(
            f"Failed to read tracks file: {e}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e

    if isinstance(document, dict):
        document = document.get("tracks")
    if not isinstance(document, list):
        raise ConfigError(
            "Tracks file must contain a list of tracks",
            details={"file_path": str(path)}
        )

    try:
        return [Track.from_dict(item) for item in document]
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid track in tracks file: {e}",
            details={"file_path": str(path)}
        ) from e


async def _run_job(
    config: Config,
    tracks: list[Track],
    playlist_key: str | None,
    start: int,
    max_tracks: int | None,
    database: Database
) -> Job:
    """Run one job to completion while a progress bar polls its status."""
    registry = JobRegistry.from_config(config, database=database)
    job_id = registry.create(tracks, playlist_key, start, max_tracks)
    job = registry.require(job_id)

    try:
        with MatchingProgressBar(total=len(job.tracks)) as progress:
            while True:
                report = registry.status(job_id)
                counters = report["progress"]
                progress.set_counts(counters["current"], counters["found"], counters["failed"])
                if report["status"] in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
                    break
                await asyncio.sleep(POLL_INTERVAL)
        # Let the task finish caching the results
        await registry.wait(job_id)
    finally:
        await registry.shutdown()

    return registry.require(job_id)


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise SpotMatcherError(
            f"Failed to write {path}: {e}",
            details={"file_path": str(path)}
        ) from e
    logger.info(f"Results written to {path}")


# =============================================================================
# Reporting
# =============================================================================

def _print_summary(job: Job) -> None:
    """Print the conversion summary, playlist URLs and unmatched tracks."""
    summary = job.summary()

    logger.info("=" * 60)
    logger.info("CONVERSION SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Found:            {summary['found']}/{summary['total']} ({summary['successRate']}%)")
    logger.info(f"Processing time:  {summary['processingTime']}s")
    if summary["stoppedEarly"]:
        logger.warning(f"Stopped early:    {summary['stopReason']} ({job.error})")
    if summary["originalUrl"]:
        logger.info(f"Spotify playlist: {summary['originalUrl']}")

    for index, url in enumerate(summary["youtubeUrls"], start=1):
        logger.info(f"YouTube playlist {index}: {url}")

    for miss in summary["notFound"]:
        logger.info(format_no_match_message(miss["artist"], miss["name"], miss["status"]))
        logger.info(f"    {miss['searchUrl']}")

    if job.window is not None and job.window.has_more:
        logger.info(
            f"{job.window.total_available - job.window.end_track} more tracks: "
            f"continue with --start {job.window.next_start_from_track}"
        )
    logger.info("=" * 60)


def _print_cached(rows: list[dict[str, Any]]) -> None:
    video_ids = [row["youtubeVideoId"] for row in rows if row.get("youtubeVideoId")]
    logger.info(f"Found:            {len(video_ids)}/{len(rows)} (cached)")
    for index, url in enumerate(build_watch_videos_urls(video_ids), start=1):
        logger.info(f"YouTube playlist {index}: {url}")
    for row in rows:
        if not row.get("youtubeVideoId"):
            logger.info(format_no_match_message(row["artist"], row["name"], row.get("status", "")))


# =============================================================================
# serve
# =============================================================================

@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", type=int, default=8080, show_default=True, help="Port to listen on")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
def serve(host: str, port: int, config_path: Optional[Path]) -> None:
    """
    Run the HTTP job API.

    \b
    POST   /api/jobs                 Start a job (tracks or playlist URL)
    GET    /api/jobs                 List jobs
    GET    /api/jobs/{id}            Job status
    GET    /api/jobs/{id}/results    Per-track results and summary
    POST   /api/jobs/{id}/pause      Pause at the next batch boundary
    POST   /api/jobs/{id}/resume     Resume from the cursor
    DELETE /api/jobs/{id}            Delete a job
    """
    database: Database | None = None
    try:
        config = load_config(config_path)
        config.output.directory.mkdir(parents=True, exist_ok=True)
        setup_logging(config.output.directory, config.output.console_level)

        database = Database(config.output.database_path)
        registry = JobRegistry.from_config(config, database=database)
        spotify_client = None
        if config.spotify.is_configured:
            spotify_client = SpotifyClient(config.spotify.client_id, config.spotify.client_secret)
        else:
            logger.warning("Spotify credentials missing: only track lists will be accepted")

        app = create_app(
            registry,
            spotify_client=spotify_client,
            gc_interval=config.jobs.gc_interval,
        )
        logger.info(f"Serving on http://{host}:{port}")
        web.run_app(app, host=host, port=port, print=None)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        sys.exit(3)

    finally:
        if database is not None:
            database.close()
        shutdown_logging()


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spotmatch` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
