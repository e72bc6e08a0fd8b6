"""
Asynchronous jobs for spot-matcher.

Components:
    - Job, JobStats, JobStatus, StopReason: Job record and lifecycle
    - BatchOrchestrator: Concurrent batches, salvage, retry pass, circuit breaker
    - JobRegistry: Fire-and-forget creation, polling, pause/resume/delete, gc

Usage:
    from spot_matcher.jobs import JobRegistry

    registry = JobRegistry.from_config(config)
    job_id = registry.create(tracks, playlist_key=playlist_id)
    print(registry.status(job_id)["progress"])
"""

from spot_matcher.jobs.models import Job, JobStats, JobStatus, StopReason
from spot_matcher.jobs.orchestrator import (
    CIRCUIT_BREAKER_MESSAGE,
    GLOBAL_TIMEOUT_MESSAGE,
    BatchOrchestrator,
)
from spot_matcher.jobs.registry import JobRegistry

__all__ = [
    "Job",
    "JobStats",
    "JobStatus",
    "StopReason",
    "BatchOrchestrator",
    "CIRCUIT_BREAKER_MESSAGE",
    "GLOBAL_TIMEOUT_MESSAGE",
    "JobRegistry",
]
