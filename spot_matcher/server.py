"""
HTTP job API for spot-matcher, built on aiohttp.web.

Routes:
    POST   /api/jobs                 Start a job, 202 with the job id
    GET    /api/jobs                 Status of every job
    GET    /api/jobs/{job_id}        Status of one job
    GET    /api/jobs/{job_id}/results  Status, summary and per-track results
    POST   /api/jobs/{job_id}/pause  Pause at the next batch boundary
    POST   /api/jobs/{job_id}/resume Resume from the cursor
    DELETE /api/jobs/{job_id}        Delete a job

POST /api/jobs body (JSON):
    {"tracks": [{"name": "...", "artist": "..."}, ...]}
    or
    {"playlistUrl": "https://open.spotify.com/playlist/..."}
    with optional "startFromTrack" (1-based) and "maxTracks".

Errors are JSON objects {"error": "..."}: 400 for malformed bodies, 404 for
unknown job ids, 409 for invalid pause/resume transitions, 429/502 for
Spotify failures and 503 when a playlist URL is given without Spotify
credentials.
"""

import asyncio
import json
from typing import Any

from aiohttp import web

from spot_matcher.core.exceptions import SpotifyError
from spot_matcher.core.logger import get_logger
from spot_matcher.jobs.registry import JobRegistry
from spot_matcher.spotify.client import SpotifyClient
from spot_matcher.spotify.models import Track
from spot_matcher.utils import extract_playlist_id


logger = get_logger(__name__)


DEFAULT_GC_INTERVAL = 3600.0

REGISTRY_KEY = web.AppKey("registry", JobRegistry)
SPOTIFY_KEY = web.AppKey("spotify_client", object)
GC_INTERVAL_KEY = web.AppKey("gc_interval", float)
GC_TASK_KEY = web.AppKey("gc_task", asyncio.Task)


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _registry(request: web.Request) -> JobRegistry:
    return request.app[REGISTRY_KEY]


# =============================================================================
# Request parsing
# =============================================================================

def _parse_positive_int(body: dict[str, Any], key: str, default: int | None) -> int | None:
    value = body.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{key}' must be a positive integer")
    return value


def _parse_tracks(raw_tracks: Any) -> list[Track]:
    if not isinstance(raw_tracks, list):
        raise ValueError("'tracks' must be a list")
    tracks = []
    for index, item in enumerate(raw_tracks):
        if not isinstance(item, dict):
            raise ValueError(f"Track {index} must be an object")
        try:
            tracks.append(Track.from_dict(item))
        except ValueError as e:
            raise ValueError(f"Track {index}: {e}") from e
    return tracks


# =============================================================================
# Handlers
# =============================================================================

async def create_job(request: web.Request) -> web.Response:
    """Start a job from a track list or a Spotify playlist URL."""
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return _error(400, "Request body must be JSON")
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object")

    try:
        start_from_track = _parse_positive_int(body, "startFromTrack", 1)
        max_tracks = _parse_positive_int(body, "maxTracks", None)
    except ValueError as e:
        return _error(400, str(e))

    playlist_key = None
    if "tracks" in body:
        try:
            tracks = _parse_tracks(body["tracks"])
        except ValueError as e:
            return _error(400, str(e))
    elif isinstance(body.get("playlistUrl"), str):
        playlist_key = extract_playlist_id(body["playlistUrl"])
        if playlist_key is None:
            return _error(400, "'playlistUrl' is not a Spotify playlist URL")
        client = request.app[SPOTIFY_KEY]
        if client is None:
            return _error(503, "Spotify credentials are not configured")
        try:
            tracks = await asyncio.to_thread(client.fetch_tracks, body["playlistUrl"])
        except SpotifyError as e:
            logger.warning(f"Spotify fetch failed for {playlist_key}: {e.message}")
            return _error(429 if e.is_rate_limit else 502, e.message)
    else:
        return _error(400, "Provide 'tracks' or 'playlistUrl'")

    registry = _registry(request)
    try:
        job_id = registry.create(tracks, playlist_key, start_from_track, max_tracks)
    except ValueError as e:
        return _error(400, str(e))

    report = registry.status(job_id)
    return web.json_response(
        {
            "jobId": job_id,
            "status": report["status"],
            "totalTracks": report["progress"]["total"],
            "statusUrl": f"/api/jobs/{job_id}",
            "resultsUrl": f"/api/jobs/{job_id}/results",
            "job": report,
        },
        status=202,
    )


async def list_jobs(request: web.Request) -> web.Response:
    jobs = _registry(request).list_all()
    return web.json_response({"jobs": [job.status_report() for job in jobs]})


async def get_job(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    report = _registry(request).status(job_id)
    if report is None:
        return _error(404, f"Job not found: {job_id}")
    return web.json_response(report)


async def get_results(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    job = _registry(request).get(job_id)
    if job is None:
        return _error(404, f"Job not found: {job_id}")
    return web.json_response({
        "status": job.status_report(),
        "summary": job.summary(),
        "tracks": job.track_results(),
    })


async def pause_job(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    registry = _registry(request)
    if job_id not in registry:
        return _error(404, f"Job not found: {job_id}")
    if not registry.pause(job_id):
        return _error(409, "Only processing jobs can be paused")
    return web.json_response(registry.status(job_id))


async def resume_job(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    registry = _registry(request)
    if job_id not in registry:
        return _error(404, f"Job not found: {job_id}")
    if not registry.resume(job_id):
        return _error(409, "Only paused jobs can be resumed")
    return web.json_response(registry.status(job_id))


async def delete_job(request: web.Request) -> web.Response:
    job_id = request.match_info["job_id"]
    if not _registry(request).delete(job_id):
        return _error(404, f"Job not found: {job_id}")
    return web.json_response({"deleted": job_id})


# =============================================================================
# Application
# =============================================================================

async def _gc_loop(app: web.Application) -> None:
    registry = app[REGISTRY_KEY]
    interval = app[GC_INTERVAL_KEY]
    while True:
        await asyncio.sleep(interval)
        registry.gc()


async def _on_startup(app: web.Application) -> None:
    app[GC_TASK_KEY] = asyncio.create_task(_gc_loop(app))


async def _on_cleanup(app: web.Application) -> None:
    task = app[GC_TASK_KEY]
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    await app[REGISTRY_KEY].shutdown()


def create_app(
    registry: JobRegistry,
    spotify_client: SpotifyClient | None = None,
    gc_interval: float = DEFAULT_GC_INTERVAL
) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        registry: Job registry serving every request.
        spotify_client: Used for playlistUrl requests; None disables them.
        gc_interval: Seconds between registry.gc() sweeps.

    Returns:
        The configured web.Application.
    """
    app = web.Application()
    app[REGISTRY_KEY] = registry
    app[SPOTIFY_KEY] = spotify_client
    app[GC_INTERVAL_KEY] = gc_interval

    app.router.add_post("/api/jobs", create_job)
    app.router.add_get("/api/jobs", list_jobs)
    app.router.add_get("/api/jobs/{job_id}", get_job)
    app.router.add_get("/api/jobs/{job_id}/results", get_results)
    app.router.add_post("/api/jobs/{job_id}/pause", pause_job)
    app.router.add_post("/api/jobs/{job_id}/resume", resume_job)
    app.router.add_delete("/api/jobs/{job_id}", delete_job)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app
