# tests/test_registry.py
"""Test the job registry"""

import asyncio
import re
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from conftest import (
    FAST_MATCHING,
    FAST_PROCESSING,
    EchoBackend,
    build_matcher,
    numbered_tracks,
)
from spot_matcher.core.config import default_config
from spot_matcher.core.database import Database
from spot_matcher.core.exceptions import ConfigError, JobNotFoundError
from spot_matcher.jobs.models import JobStatus
from spot_matcher.jobs.orchestrator import BatchOrchestrator
from spot_matcher.jobs.registry import JobRegistry


def make_registry(backend=None, processing=FAST_PROCESSING, **kwargs):
    matcher = build_matcher(backend if backend is not None else EchoBackend())
    return JobRegistry(BatchOrchestrator(matcher, processing), **kwargs)


class BrokenOrchestrator(BatchOrchestrator):
    async def process(self, job):
        raise RuntimeError("kaput")


class SlowDatabase:
    """Result cache whose writes block the calling thread"""

    def __init__(self, delay):
        self.delay = delay
        self.saved = {}

    def save_results(self, playlist_key, track_results):
        time.sleep(self.delay)
        self.saved[playlist_key] = track_results


class TestCreate:
    """Test job creation"""

    @pytest.mark.asyncio
    async def test_create_returns_immediately(self):
        """Test that creation does not wait for matching"""
        registry = make_registry(EchoBackend(delay=0.05))

        job_id = registry.create(numbered_tracks(6), playlist_key="pl1")
        report = registry.status(job_id)

        assert re.fullmatch(r"pl1_\d+_1", job_id)
        assert report["status"] == "processing"
        assert report["progress"]["current"] == 0
        assert report["timing"]["estimatedTimeRemaining"] is None
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_ids_are_unique(self):
        """Test the id format without a playlist key"""
        registry = make_registry()

        first = registry.create(numbered_tracks(1))
        second = registry.create(numbered_tracks(1))

        assert first != second
        assert first.startswith("job_")
        assert len(registry) == 2
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_job_runs_to_completion(self):
        """Test status, results and summary of a finished job"""
        registry = make_registry()
        tracks = numbered_tracks(12)

        job_id = registry.create(tracks, playlist_key="pl1")
        job = await registry.wait(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETED
        assert registry.status(job_id)["progress"]["percentage"] == 100
        assert registry.status(job_id)["timing"]["estimatedTimeRemaining"] == 0
        assert [row["youtubeVideoId"] for row in registry.results(job_id)] == [
            f"vid-{track.artist}" for track in tracks
        ]
        assert registry.summary(job_id)["found"] == 12

    @pytest.mark.asyncio
    async def test_window(self):
        """Test a window inside a longer playlist"""
        registry = make_registry()

        job_id = registry.create(numbered_tracks(10), start_from_track=3, max_tracks=4)
        job = await registry.wait(job_id, timeout=5)
        report = registry.status(job_id)

        assert [track.artist for track in job.tracks] == ["Artist002", "Artist003", "Artist004", "Artist005"]
        assert report["startFromTrack"] == 3
        assert report["endTrack"] == 6
        assert report["totalAvailable"] == 10
        assert report["hasMore"]
        assert report["nextStartFromTrack"] == 7

    @pytest.mark.asyncio
    async def test_invalid_window(self):
        """Test that a bad window is rejected before any job exists"""
        registry = make_registry()

        with pytest.raises(ValueError):
            registry.create(numbered_tracks(5), start_from_track=6)
        with pytest.raises(ValueError):
            registry.create(numbered_tracks(5), start_from_track=0)
        with pytest.raises(ValueError):
            registry.create(numbered_tracks(5), max_tracks=0)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_adaptive_chunks(self):
        """Test that the chunked profile sizes the window itself"""
        registry = make_registry(processing=replace(FAST_PROCESSING, adaptive_chunks=True))

        job_id = registry.create(numbered_tracks(120))
        report = registry.status(job_id)

        assert report["progress"]["total"] == 100
        assert report["hasMore"]
        assert report["nextStartFromTrack"] == 101
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_orchestration_error_fails_job(self):
        """Test that an unexpected error marks the job FAILED"""
        registry = JobRegistry(BrokenOrchestrator(build_matcher(EchoBackend()), FAST_PROCESSING))

        job_id = registry.create(numbered_tracks(3))
        job = await registry.wait(job_id, timeout=5)

        assert job.status is JobStatus.FAILED
        assert job.error == "kaput"
        assert registry.status(job_id)["status"] == "failed"


class TestQueries:
    """Test lookups for unknown and known ids"""

    @pytest.mark.asyncio
    async def test_unknown_ids(self):
        """Test that unknown ids give None/False"""
        registry = make_registry()

        assert registry.get("nope") is None
        assert registry.status("nope") is None
        assert registry.results("nope") is None
        assert registry.summary("nope") is None
        assert not registry.pause("nope")
        assert not registry.resume("nope")
        assert not registry.delete("nope")
        assert "nope" not in registry
        with pytest.raises(JobNotFoundError):
            registry.require("nope")

    @pytest.mark.asyncio
    async def test_list_all(self):
        """Test listing snapshots"""
        registry = make_registry()
        ids = {registry.create(numbered_tracks(2)) for _ in range(3)}

        assert {job.id for job in registry.list_all()} == ids
        await registry.shutdown()


class TestControl:
    """Test pause, resume, delete and gc"""

    @pytest.mark.asyncio
    async def test_pause_before_first_batch(self):
        """Test pausing a job that has not started matching"""
        registry = make_registry(EchoBackend(delay=0.02))

        job_id = registry.create(numbered_tracks(6), playlist_key="pl1")
        assert registry.pause(job_id)
        job = await registry.wait(job_id, timeout=5)

        assert job.status is JobStatus.PAUSED
        assert job.cursor == 0
        assert not registry.pause(job_id)

    @pytest.mark.asyncio
    async def test_pause_waits_for_batch_boundary(self):
        """Test that a pause never splits a batch"""
        registry = make_registry(EchoBackend(delay=0.05), processing=replace(FAST_PROCESSING, batch_size=2))

        job_id = registry.create(numbered_tracks(6))
        await asyncio.sleep(0.01)
        assert registry.pause(job_id)
        job = await registry.wait(job_id, timeout=5)

        assert job.status is JobStatus.PAUSED
        assert job.cursor == 2
        assert registry.status(job_id)["status"] == "paused"

    @pytest.mark.asyncio
    async def test_resume_continues_from_cursor(self):
        """Test that a resumed job finishes every track exactly once"""
        registry = make_registry(EchoBackend(delay=0.05), processing=replace(FAST_PROCESSING, batch_size=2))
        tracks = numbered_tracks(6)

        job_id = registry.create(tracks)
        await asyncio.sleep(0.01)
        registry.pause(job_id)
        await registry.wait(job_id, timeout=5)

        assert not registry.resume("unknown")
        assert registry.resume(job_id)
        assert not registry.resume(job_id)
        job = await registry.wait(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETED
        assert job.video_ids() == [f"vid-{track.artist}" for track in tracks]
        assert job.batches_processed == 3

    @pytest.mark.asyncio
    async def test_pause_completed_job(self):
        """Test that finished jobs cannot be paused"""
        registry = make_registry()
        job_id = registry.create(numbered_tracks(2))
        await registry.wait(job_id, timeout=5)

        assert not registry.pause(job_id)

    @pytest.mark.asyncio
    async def test_delete_running_job(self):
        """Test that deleting cancels the orchestration task"""
        registry = make_registry(EchoBackend(delay=0.5))

        job_id = registry.create(numbered_tracks(3))
        await asyncio.sleep(0.01)

        assert registry.delete(job_id)
        assert registry.get(job_id) is None
        assert not registry.delete(job_id)
        assert await registry.wait(job_id) is None

    @pytest.mark.asyncio
    async def test_gc_removes_only_old_finished_jobs(self):
        """Test garbage collection by age and state"""
        registry = make_registry(EchoBackend(delays={"Artist000": 0.0}, delay=0.5))
        tracks = numbered_tracks(2)
        finished_id = registry.create(tracks[:1])
        await registry.wait(finished_id, timeout=5)
        running_id = registry.create(tracks[1:])

        later = datetime.now(timezone.utc) + timedelta(hours=2)

        assert registry.gc(max_age=3600, now=datetime.now(timezone.utc)) == 0
        assert registry.gc(max_age=3600, now=later) == 1
        assert finished_id not in registry
        assert running_id in registry
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_gc_default_retention(self):
        """Test that gc() uses the registry retention"""
        registry = make_registry(retention=60)
        job_id = registry.create(numbered_tracks(1))
        await registry.wait(job_id, timeout=5)

        assert registry.gc() == 0
        assert registry.gc(now=datetime.now(timezone.utc) + timedelta(seconds=61)) == 1

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self):
        """Test that shutdown leaves no task behind"""
        registry = make_registry(EchoBackend(delay=0.5))
        job_id = registry.create(numbered_tracks(3))
        await asyncio.sleep(0.01)

        await registry.shutdown()

        assert registry.status(job_id)["status"] == "processing"
        assert registry._tasks == {}


class TestDatabaseCache:
    """Test saving completed jobs to the result cache"""

    @pytest.mark.asyncio
    async def test_completed_job_is_saved(self, temp_dir):
        """Test that a complete, unwindowed job is cached under its key"""
        database = Database(temp_dir / "results.db")
        registry = make_registry(database=database)

        job_id = registry.create(numbered_tracks(4), playlist_key="pl1")
        await registry.wait(job_id, timeout=5)

        assert database.load_results("pl1") == registry.results(job_id)
        database.close()

    @pytest.mark.asyncio
    async def test_windowed_and_unkeyed_jobs_are_not_saved(self, temp_dir):
        """Test that partial results never reach the cache"""
        database = Database(temp_dir / "results.db")
        registry = make_registry(database=database)

        windowed = registry.create(numbered_tracks(4), playlist_key="pl1", max_tracks=2)
        unkeyed = registry.create(numbered_tracks(4))
        await registry.wait(windowed, timeout=5)
        await registry.wait(unkeyed, timeout=5)

        assert database.load_results("pl1") is None
        assert database.list_playlists() == []
        database.close()

    @pytest.mark.asyncio
    async def test_save_does_not_block_the_loop(self):
        """Test that the cache write runs outside the event loop"""
        database = SlowDatabase(delay=0.3)
        registry = make_registry(database=database)
        job_id = registry.create(numbered_tracks(2), playlist_key="pl1")

        ticks = 0
        for _ in range(500):
            if "pl1" in database.saved:
                break
            ticks += 1
            await asyncio.sleep(0.01)
        await registry.wait(job_id, timeout=5)

        assert "pl1" in database.saved
        assert ticks >= 10


class TestFromConfig:
    """Test building the pipeline from configuration"""

    @pytest.mark.asyncio
    async def test_from_config(self):
        """Test that configuration reaches the orchestrator and matcher"""
        config = replace(default_config(), matching=FAST_MATCHING, processing=FAST_PROCESSING)
        registry = JobRegistry.from_config(config, backend=EchoBackend())

        assert registry.orchestrator.config is FAST_PROCESSING
        assert registry.orchestrator.matcher.config is FAST_MATCHING
        assert registry.retention == config.jobs.retention_seconds

        job_id = registry.create(numbered_tracks(3))
        job = await registry.wait(job_id, timeout=5)
        assert job.stats.found == 3

    def test_known_answers_file(self, temp_dir):
        """Test that the known-answers table is loaded"""
        path = temp_dir / "known.yaml"
        path.write_text('answers:\n  "queen bohemian rhapsody":\n    video_id: fJ9rUzIMcZQ\n')
        matching = replace(FAST_MATCHING, known_answers_file=path)
        config = replace(default_config(), matching=matching, processing=FAST_PROCESSING)

        registry = JobRegistry.from_config(config, backend=EchoBackend())

        assert len(registry.orchestrator.matcher.known_answers) == 1

    def test_missing_known_answers_file(self, temp_dir):
        """Test that a missing known-answers file is a configuration error"""
        matching = replace(FAST_MATCHING, known_answers_file=temp_dir / "missing.yaml")
        config = replace(default_config(), matching=matching)

        with pytest.raises(ConfigError):
            JobRegistry.from_config(config, backend=EchoBackend())
