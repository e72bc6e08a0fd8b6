"""
Job model for asynchronous track matching.

A Job is the unit of asynchronous work over a fixed, ordered track list.
It is created by the JobRegistry, driven forward by the BatchOrchestrator
and polled by callers through snapshots and reports.

Lifecycle:
    PROCESSING --pause--> PAUSED --resume--> PROCESSING
    PROCESSING --cursor reaches the end / circuit breaker / deadline--> COMPLETED
    PROCESSING --unexpected orchestration error--> FAILED

Invariants:
    - results[i] is the outcome of tracks[i]; results only ever grow
    - cursor == len(results)
    - stats are derived from results and updated together with them
"""

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from spot_matcher.spotify.models import Track
from spot_matcher.utils import (
    TrackWindow,
    build_watch_videos_url,
    build_watch_videos_urls,
    manual_search_url,
    spotify_playlist_url,
)
from spot_matcher.youtube.models import FailureReason, MatchResult


# Share of tracks a conversion aims to match
SUCCESS_TARGET_RATIO = 0.9


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class StopReason(str, Enum):
    """Why a job completed before every track was attempted."""
    CIRCUIT_BREAKER = "circuit_breaker"
    GLOBAL_TIMEOUT = "global_timeout"


@dataclass
class JobStats:
    """
    Counters derived from a job's results.

    Attributes:
        total: Number of tracks in the job.
        processed: Number of tracks with a result.
        found: Results that matched a video.
        failed: Results that did not.
    """
    total: int
    processed: int = 0
    found: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> int:
        """Percentage of processed tracks that were found, rounded."""
        if self.processed == 0:
            return 0
        return round(self.found / self.processed * 100)

    @property
    def percentage(self) -> int:
        """Percentage of tracks processed, rounded."""
        if self.total == 0:
            return 100
        return round(self.processed / self.total * 100)

    @property
    def target(self) -> int:
        return math.ceil(self.total * SUCCESS_TARGET_RATIO)

    @property
    def target_met(self) -> bool:
        return self.found >= self.target

    def record(self, result: MatchResult) -> None:
        self.processed += 1
        if result.matched:
            self.found += 1
        else:
            self.failed += 1


@dataclass
class Job:
    """
    Asynchronous matching job.

    The BatchOrchestrator is the only writer of results, cursor, stats and
    status while the job is PROCESSING. The registry only flips status for
    pause/resume. Readers should use snapshot() or the report methods.

    Attributes:
        id: Unique job id.
        tracks: Tracks to match, fixed at creation.
        playlist_key: Spotify playlist id (or caller key) the tracks came from.
        window: Position of these tracks within a larger playlist, if windowed.
        results: One MatchResult per processed track, in track order.
        cursor: Index of the next unprocessed track.
        status: Lifecycle state.
        stats: Counters derived from results.
        start_time: Creation time (UTC).
        last_update: Time of the last change (UTC).
        finished_at: Time the job reached COMPLETED or FAILED.
        stop_reason: Set when the job completed early.
        error: Error text for FAILED jobs and early stops.
        batches_processed: Number of batches recorded.
    """
    id: str
    tracks: tuple[Track, ...]
    playlist_key: str | None = None
    window: TrackWindow | None = None
    results: list[MatchResult] = field(default_factory=list)
    cursor: int = 0
    status: JobStatus = JobStatus.PROCESSING
    stats: JobStats = field(init=False)
    start_time: datetime = field(default_factory=_utcnow)
    last_update: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None
    stop_reason: StopReason | None = None
    error: str | None = None
    batches_processed: int = 0

    def __post_init__(self) -> None:
        self.tracks = tuple(self.tracks)
        self.stats = JobStats(total=len(self.tracks))

    # =========================================================================
    # State
    # =========================================================================

    @property
    def remaining(self) -> int:
        return len(self.tracks) - self.cursor

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def stopped_early(self) -> bool:
        return self.stop_reason is not None

    def touch(self) -> None:
        self.last_update = _utcnow()

    # =========================================================================
    # Mutation (orchestrator)
    # =========================================================================

    def record_batch(self, results: Sequence[MatchResult]) -> None:
        """
        Append one batch of results, in track order, and advance the cursor.

        Raises:
            ValueError: If the batch would run past the end of the track list.
        """
        if len(results) > self.remaining:
            raise ValueError(
                f"Batch of {len(results)} results exceeds the {self.remaining} remaining tracks"
            )
        for result in results:
            self.results.append(result)
            self.stats.record(result)
        self.cursor += len(results)
        self.batches_processed += 1
        self.touch()

    def fail_remaining(self, reason: FailureReason, message: str) -> int:
        """Record every unprocessed track as not found. Returns how many were marked."""
        count = self.remaining
        for _ in range(count):
            result = MatchResult.failure(reason, last_error=message)
            self.results.append(result)
            self.stats.record(result)
        self.cursor += count
        self.touch()
        return count

    def complete(self) -> None:
        self.status = JobStatus.COMPLETED
        self.finished_at = _utcnow()
        self.touch()

    def stop_early(self, reason: StopReason, message: str) -> None:
        """Mark the remainder as failed with message and complete the job."""
        self.fail_remaining(FailureReason.ERROR, message)
        self.stop_reason = reason
        self.error = message
        self.complete()

    def fail(self, error: str) -> None:
        self.status = JobStatus.FAILED
        self.error = error
        self.finished_at = _utcnow()
        self.touch()

    # =========================================================================
    # Reporting
    # =========================================================================

    def snapshot(self) -> "Job":
        """Detached copy that later orchestration does not change."""
        clone = copy.copy(self)
        clone.results = list(self.results)
        clone.stats = copy.copy(self.stats)
        return clone

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        end = self.finished_at or now or _utcnow()
        return max(0.0, (end - self.start_time).total_seconds())

    def estimated_time_remaining(self, now: datetime | None = None) -> int | None:
        """
        Seconds left, extrapolated from the average time per processed track.

        0 once the job is finished, None before the first batch.
        """
        if self.is_finished or self.remaining == 0:
            return 0
        if self.stats.processed == 0:
            return None
        elapsed = self.elapsed_seconds(now)
        estimate = (elapsed / self.stats.processed) * self.stats.total - elapsed
        return max(0, round(estimate))

    def status_report(self, now: datetime | None = None) -> dict[str, Any]:
        """Pollable status: lifecycle, progress counters, timing and window."""
        report: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "progress": {
                "current": self.stats.processed,
                "total": self.stats.total,
                "percentage": self.stats.percentage,
                "found": self.stats.found,
                "failed": self.stats.failed,
                "successRate": self.stats.success_rate,
                "target": self.stats.target,
                "targetMet": self.stats.target_met,
            },
            "timing": {
                "startTime": self.start_time.isoformat(),
                "lastUpdate": self.last_update.isoformat(),
                "estimatedTimeRemaining": self.estimated_time_remaining(now),
            },
            "stopReason": self.stop_reason.value if self.stop_reason else None,
            "stoppedEarly": self.stopped_early,
            "error": self.error,
        }
        if self.window is not None:
            report.update(self.window.to_dict())
        return report

    def track_results(self) -> list[dict[str, Any]]:
        """Processed tracks joined with their results, in track order."""
        rows: list[dict[str, Any]] = []
        for track, result in zip(self.tracks, self.results):
            rows.append({
                "name": track.name,
                "artist": track.artist,
                "album": track.album,
                "spotifyId": track.spotify_id,
                "youtubeVideoId": result.video_id,
                "youtubeUrl": result.url,
                "youtubeTitle": result.title,
                "youtubeChannel": result.channel_name,
                "isOfficial": result.is_official,
                "matchedQuery": result.matched_query,
                "reason": result.reason.value if result.reason else None,
                "status": result.status_text,
                "searchUrl": None if result.matched else manual_search_url(track.artist, track.name),
            })
        return rows

    def video_ids(self) -> list[str]:
        """Every matched video id, in track order. Never truncated."""
        return [result.video_id for result in self.results if result.video_id]

    def summary(self, now: datetime | None = None) -> dict[str, Any]:
        """Conversion summary with watch_videos playlist URLs and misses."""
        video_ids = self.video_ids()
        return {
            "id": self.id,
            "status": self.status.value,
            "playlistKey": self.playlist_key,
            "originalUrl": spotify_playlist_url(self.playlist_key) if self.playlist_key else None,
            "videoIds": video_ids,
            "youtubeUrl": build_watch_videos_url(video_ids),
            "youtubeUrls": build_watch_videos_urls(video_ids),
            "total": self.stats.total,
            "found": self.stats.found,
            "failed": self.stats.failed,
            "successRate": self.stats.success_rate,
            "targetMet": self.stats.target_met,
            "processingTime": round(self.elapsed_seconds(now), 1),
            "stoppedEarly": self.stopped_early,
            "stopReason": self.stop_reason.value if self.stop_reason else None,
            "notFound": [
                {
                    "name": row["name"],
                    "artist": row["artist"],
                    "status": row["status"],
                    "searchUrl": row["searchUrl"],
                }
                for row in self.track_results()
                if not row["youtubeVideoId"]
            ],
        }
