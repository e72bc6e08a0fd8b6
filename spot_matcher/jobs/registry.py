"""
Job registry for spot-matcher.

The JobRegistry owns every Job in the process. create() allocates a job,
hands it to the BatchOrchestrator as an independent asyncio task and
returns the job id immediately; callers then poll status and results.

Concurrency:
    One orchestration task per job, and the orchestrator is the only writer
    of a job's results while it is PROCESSING. pause() and resume() only
    flip the status, which the orchestrator reads at its next batch boundary.
    Everything runs on one event loop, so no locking is needed.

Query methods (get, status, results, summary, pause, resume, delete) return
None/False for unknown ids. require() raises JobNotFoundError instead.
"""

import asyncio
import itertools
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

from spot_matcher.core.config import Config
from spot_matcher.core.database import Database
from spot_matcher.core.exceptions import DatabaseError, JobNotFoundError
from spot_matcher.core.logger import get_logger
from spot_matcher.jobs.models import Job, JobStatus
from spot_matcher.jobs.orchestrator import BatchOrchestrator
from spot_matcher.spotify.models import Track
from spot_matcher.utils import adaptive_chunk_size, window_tracks
from spot_matcher.youtube.known_answers import KnownAnswers
from spot_matcher.youtube.matcher import TrackMatcher
from spot_matcher.youtube.search import CandidateSearchAdapter, SearchBackend


logger = get_logger(__name__)


DEFAULT_RETENTION_SECONDS = 24 * 3600.0


class JobRegistry:
    """
    In-process registry of asynchronous matching jobs.

    Args:
        orchestrator: Orchestrator that drives every job of this registry.
        database: Optional result cache; completed, unwindowed jobs with a
                  playlist key are saved to it.
        retention: Default age in seconds after which gc() drops finished jobs.

    Example:
        registry = JobRegistry(BatchOrchestrator(matcher, config.processing))
        job_id = registry.create(tracks, playlist_key="37i9dQZF1DXcBWIGoYBM5M")
        ...
        report = registry.status(job_id)
    """

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        database: Database | None = None,
        retention: float = DEFAULT_RETENTION_SECONDS
    ) -> None:
        self.orchestrator = orchestrator
        self.database = database
        self.retention = retention
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._counter = itertools.count(1)

    @classmethod
    def from_config(
        cls,
        config: Config,
        backend: SearchBackend | None = None,
        database: Database | None = None,
        on_batch: Callable[[Job], None] | None = None
    ) -> "JobRegistry":
        """
        Build the whole matching pipeline from configuration.

        Args:
            config: Application configuration.
            backend: Raw search backend; the ytmusicapi backend when None.
            database: Optional result cache.
            on_batch: Optional per-batch callback for the orchestrator.

        Raises:
            ConfigError: If the known-answers file cannot be loaded.
        """
        known_answers = None
        if config.matching.known_answers_file is not None:
            known_answers = KnownAnswers.from_yaml(config.matching.known_answers_file)

        search = CandidateSearchAdapter.from_config(config.search, config.matching, backend)
        matcher = TrackMatcher(search, known_answers=known_answers, config=config.matching)
        orchestrator = BatchOrchestrator(matcher, config.processing, on_batch=on_batch)
        return cls(orchestrator, database=database, retention=config.jobs.retention_seconds)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    # =========================================================================
    # Creation
    # =========================================================================

    def _new_id(self, playlist_key: str | None) -> str:
        return f"{playlist_key or 'job'}_{int(time.time() * 1000)}_{next(self._counter)}"

    def create(
        self,
        tracks: Sequence[Track],
        playlist_key: str | None = None,
        start_from_track: int = 1,
        max_tracks: int | None = None
    ) -> str:
        """
        Create a job and start processing it in the background.

        Must be called from a running event loop. Returns without waiting
        for any matching.

        Args:
            tracks: Full ordered track list.
            playlist_key: Spotify playlist id (or other caller key).
            start_from_track: 1-based position of the first track to process.
            max_tracks: Window length. None means to the end, or the adaptive
                        chunk size when the processing profile asks for it.

        Returns:
            The new job id.

        Raises:
            ValueError: If the window is invalid.
        """
        if max_tracks is None and self.orchestrator.config.adaptive_chunks:
            max_tracks = adaptive_chunk_size(len(tracks))

        selected, window = window_tracks(tracks, start_from_track, max_tracks)
        windowed = start_from_track != 1 or window.has_more

        job = Job(
            id=self._new_id(playlist_key),
            tracks=tuple(selected),
            playlist_key=playlist_key,
            window=window if windowed else None,
        )
        self._jobs[job.id] = job
        self._start(job)

        logger.info(
            f"Created job {job.id}: {len(selected)} tracks "
            f"({window.start_from_track}-{window.end_track} of {window.total_available})"
        )
        return job.id

    def _start(self, job: Job) -> None:
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"job-{job.id}")
        self._tasks[job.id] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(job.id) is finished:
                del self._tasks[job.id]

        task.add_done_callback(_forget)

    async def _run(self, job: Job) -> None:
        try:
            await self.orchestrator.process(job)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Job {job.id} failed")
            job.fail(str(e) or type(e).__name__)
            return

        if job.status is JobStatus.COMPLETED:
            await self._save(job)

    async def _save(self, job: Job) -> None:
        if self.database is None or job.playlist_key is None:
            return
        if job.stopped_early or job.window is not None:
            return
        try:
            await asyncio.to_thread(self.database.save_results, job.playlist_key, job.track_results())
        except DatabaseError as e:
            logger.warning(f"Could not cache results of job {job.id}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.snapshot() if job else None

    def require(self, job_id: str) -> Job:
        """
        Like get(), but raises for unknown ids.

        Raises:
            JobNotFoundError: If no job has this id.
        """
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def status(self, job_id: str) -> dict[str, Any] | None:
        job = self._jobs.get(job_id)
        return job.status_report() if job else None

    def results(self, job_id: str) -> list[dict[str, Any]] | None:
        job = self._jobs.get(job_id)
        return job.track_results() if job else None

    def summary(self, job_id: str) -> dict[str, Any] | None:
        job = self._jobs.get(job_id)
        return job.summary() if job else None

    def list_all(self) -> list[Job]:
        return [job.snapshot() for job in self._jobs.values()]

    # =========================================================================
    # Control
    # =========================================================================

    def pause(self, job_id: str) -> bool:
        """Pause a PROCESSING job at its next batch boundary."""
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.PROCESSING:
            return False
        job.status = JobStatus.PAUSED
        job.touch()
        logger.info(f"Pausing job {job.id} at the next batch boundary")
        return True

    def resume(self, job_id: str) -> bool:
        """Resume a PAUSED job from its cursor."""
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.PAUSED:
            return False
        job.status = JobStatus.PROCESSING
        job.touch()

        # A task still inside its last batch picks the new status up itself
        task = self._tasks.get(job_id)
        if task is None or task.done():
            self._start(job)
        logger.info(f"Resumed job {job.id} at track {job.cursor}/{len(job.tracks)}")
        return True

    def delete(self, job_id: str) -> bool:
        """Remove a job, cancelling its orchestration task if it is running."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        task = self._tasks.pop(job_id, None)
        if task is not None and not task.done():
            task.cancel()
        logger.info(f"Deleted job {job_id}")
        return True

    def gc(self, max_age: float | None = None, now: datetime | None = None) -> int:
        """
        Drop finished jobs whose last update is older than max_age seconds.

        Returns:
            Number of jobs removed.
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(
            seconds=self.retention if max_age is None else max_age
        )
        stale = [
            job_id for job_id, job in self._jobs.items()
            if job.is_finished and job.last_update < cutoff
        ]
        for job_id in stale:
            self.delete(job_id)
        if stale:
            logger.info(f"Garbage-collected {len(stale)} finished jobs")
        return len(stale)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def wait(self, job_id: str, timeout: float | None = None) -> Job | None:
        """Wait for the job's orchestration task to stop, then return a snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self.get(job_id)

    async def shutdown(self) -> None:
        """Cancel every running orchestration task."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
