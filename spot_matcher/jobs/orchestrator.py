"""
Batch orchestration for spot-matcher jobs.

BatchOrchestrator drives one Job forward batch by batch:

    1. Take the next batch_size tracks at the cursor
    2. Match them concurrently, bounded by the per-batch timeout
       (or what is left of the global deadline, if sooner)
    3. If the batch missed its deadline, cancel the stragglers and salvage
       each of them concurrently with the short salvage budget
    4. Otherwise, run the advanced retry pass for tracks that found nothing,
       within what is left of the batch deadline
    5. Record the results in track order and advance the cursor
    6. Count failed batches; trip the circuit breaker after too many in a row
    7. Sleep inter_batch_delay after a successful batch

The loop checks job.status between batches, so a pause takes effect at the
next batch boundary and never splits a batch.

A batch counts as failed when it missed its deadline, or when every one of
its tracks ended TIMEOUT/ERROR after actually issuing queries (tracks
short-circuited by the failed-query cache do not count).
"""

import asyncio
import time
from typing import Callable, Sequence

from spot_matcher.core.config import ProcessingConfig
from spot_matcher.core.logger import format_progress_message, get_logger
from spot_matcher.jobs.models import Job, JobStatus, StopReason
from spot_matcher.spotify.models import Track
from spot_matcher.youtube.matcher import TrackMatcher
from spot_matcher.youtube.models import FailureReason, MatchResult


logger = get_logger(__name__)


CIRCUIT_BREAKER_MESSAGE = "circuit breaker: consecutive batch failures"
GLOBAL_TIMEOUT_MESSAGE = "global timeout exceeded"
UNRESOLVED_MESSAGE = "track did not resolve within the batch"

_SYSTEMIC_REASONS = (FailureReason.TIMEOUT, FailureReason.ERROR)
_RETRYABLE_REASONS = (FailureReason.NO_CANDIDATES, FailureReason.ALL_REJECTED)


def _fill_unresolved(results: list[MatchResult | None], message: str) -> list[MatchResult]:
    """Replace unresolved slots with TIMEOUT failures, keeping batch order."""
    return [
        result if result is not None else MatchResult.failure(FailureReason.TIMEOUT, message)
        for result in results
    ]


class BatchOrchestrator:
    """
    Run a job's tracks through the TrackMatcher in concurrent batches.

    Args:
        matcher: The track matcher shared by all jobs.
        config: Processing policy (batch size, timeouts, circuit breaker).
        on_batch: Optional callback invoked with the job after every batch.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        matcher: TrackMatcher,
        config: ProcessingConfig | None = None,
        on_batch: Callable[[Job], None] | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.matcher = matcher
        self.config = config or ProcessingConfig()
        self.on_batch = on_batch
        self._clock = clock

    @property
    def retry_enabled(self) -> bool:
        return self.config.retry_failed and self.matcher.supports_retry

    async def process(self, job: Job) -> None:
        """
        Drive job until it completes or is paused.

        The global deadline, if configured, is measured from the start of
        this call, so a resumed job gets a fresh one.

        Args:
            job: The job to process. Must be in PROCESSING state.
        """
        config = self.config
        deadline = None
        if config.global_timeout is not None:
            deadline = self._clock() + config.global_timeout

        consecutive_failures = 0
        total = len(job.tracks)

        while job.cursor < total and job.status is JobStatus.PROCESSING:
            if deadline is not None and self._clock() >= deadline:
                logger.warning(
                    f"Job {job.id}: global timeout of {config.global_timeout:.1f}s exceeded, "
                    f"marking {job.remaining} remaining tracks as failed"
                )
                job.stop_early(StopReason.GLOBAL_TIMEOUT, GLOBAL_TIMEOUT_MESSAGE)
                return

            batch = job.tracks[job.cursor:job.cursor + config.batch_size]
            results, timed_out = await self._run_batch(batch, deadline)
            job.record_batch(results)

            failed = timed_out or self._is_systemic_failure(results)
            logger.debug(
                f"Job {job.id} batch {job.batches_processed}: "
                + format_progress_message(job.stats.processed, total, job.stats.found, job.stats.failed)
            )
            if self.on_batch is not None:
                self.on_batch(job)

            if failed:
                consecutive_failures += 1
                logger.warning(
                    f"Job {job.id}: batch {job.batches_processed} failed "
                    f"({consecutive_failures}/{config.max_consecutive_batch_failures} in a row)"
                )
                if consecutive_failures >= config.max_consecutive_batch_failures and job.remaining:
                    logger.warning(
                        f"Job {job.id}: circuit breaker tripped, "
                        f"marking {job.remaining} remaining tracks as failed"
                    )
                    job.stop_early(StopReason.CIRCUIT_BREAKER, CIRCUIT_BREAKER_MESSAGE)
                    return
            else:
                consecutive_failures = 0
                if job.remaining and config.inter_batch_delay > 0:
                    await asyncio.sleep(config.inter_batch_delay)

        if job.cursor >= total and not job.is_finished:
            job.complete()
            logger.info(
                f"Job {job.id} completed: {job.stats.found}/{total} found "
                f"({job.stats.success_rate}%)"
            )
        elif job.status is JobStatus.PAUSED:
            logger.info(f"Job {job.id} paused at track {job.cursor}/{total}")

    # =========================================================================
    # Batch execution
    # =========================================================================

    async def _run_batch(
        self,
        batch: Sequence[Track],
        deadline: float | None
    ) -> tuple[list[MatchResult], bool]:
        """
        Match one batch. Returns the results in batch order and whether the
        batch missed its deadline.
        """
        started = self._clock()
        timeout = self.config.per_batch_timeout
        limited_by_global = False
        if deadline is not None and deadline - started < timeout:
            timeout = max(0.0, deadline - started)
            limited_by_global = True

        tasks = [asyncio.create_task(self.matcher.match_track(track)) for track in batch]
        try:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
        finally:
            await self._cancel_pending(tasks)

        results: list[MatchResult | None] = [
            self._task_result(task, track) if task in done else None
            for task, track in zip(tasks, batch)
        ]
        timed_out = bool(pending)

        if timed_out:
            logger.warning(
                f"Batch of {len(batch)} tracks exceeded {timeout:.1f}s, "
                f"{len(pending)} tracks unresolved"
            )
            if limited_by_global:
                return _fill_unresolved(results, GLOBAL_TIMEOUT_MESSAGE), timed_out
            results = await self._salvage(batch, results, deadline)
        elif self.retry_enabled:
            remaining = timeout - (self._clock() - started)
            results = await self._retry_pass(batch, results, remaining)

        return _fill_unresolved(results, UNRESOLVED_MESSAGE), timed_out

    async def _salvage(
        self,
        batch: Sequence[Track],
        results: list[MatchResult | None],
        deadline: float | None
    ) -> list[MatchResult | None]:
        """Re-match every unresolved track concurrently with the salvage budget."""
        budget = self.config.salvage_timeout
        if deadline is not None:
            budget = min(budget, max(0.0, deadline - self._clock()))

        indices = [i for i, result in enumerate(results) if result is None]
        logger.info(f"Salvaging {len(indices)} tracks with {budget:.1f}s each")

        salvaged = await asyncio.gather(
            *(self.matcher.match_track(batch[i], budget=budget) for i in indices),
            return_exceptions=True,
        )
        for i, outcome in zip(indices, salvaged):
            if isinstance(outcome, MatchResult):
                results[i] = outcome
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                logger.error(f"Salvage of {batch[i].display_name} raised: {outcome!r}")
                results[i] = MatchResult.failure(FailureReason.ERROR, str(outcome) or type(outcome).__name__)
        return results

    async def _retry_pass(
        self,
        batch: Sequence[Track],
        results: list[MatchResult | None],
        timeout: float
    ) -> list[MatchResult | None]:
        """Advanced pass for tracks that searched fine but found nothing usable."""
        indices = [
            i for i, result in enumerate(results)
            if result is not None and not result.matched
            and result.reason in _RETRYABLE_REASONS
        ]
        if not indices or timeout <= 0:
            return results

        logger.debug(f"Retrying {len(indices)} tracks with advanced queries")
        tasks = {
            i: asyncio.create_task(self.matcher.match_track(batch[i], retry=True))
            for i in indices
        }
        try:
            done, _ = await asyncio.wait(tasks.values(), timeout=timeout)
        finally:
            await self._cancel_pending(tasks.values())

        for i, task in tasks.items():
            if task not in done:
                continue
            retried = self._task_result(task, batch[i])
            if retried.matched:
                results[i] = retried
        return results

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _cancel_pending(tasks) -> None:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _task_result(task: asyncio.Task, track: Track) -> MatchResult:
        error = task.exception()
        if error is None:
            return task.result()
        logger.error(f"Matching {track.display_name} raised: {error!r}")
        return MatchResult.failure(FailureReason.ERROR, str(error) or type(error).__name__)

    @staticmethod
    def _is_systemic_failure(results: Sequence[MatchResult]) -> bool:
        if not results:
            return False
        if any(result.matched or result.reason not in _SYSTEMIC_REASONS for result in results):
            return False
        return sum(result.queries_attempted for result in results) > 0
