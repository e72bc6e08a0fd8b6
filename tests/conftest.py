"""Test configuration and fixtures"""

import asyncio
import tempfile
from pathlib import Path
from typing import Any

import pytest

from spot_matcher.core.config import MatchingConfig, ProcessingConfig
from spot_matcher.spotify.models import Track
from spot_matcher.youtube.matcher import FailedQueryCache, TrackMatcher
from spot_matcher.youtube.search import CandidateSearchAdapter


# Response that makes the fake backend never answer
HANG = object()


def make_raw_video(
    video_id: str,
    title: str,
    channel: str = "Some Channel",
    description: str | None = None
) -> dict[str, Any]:
    """Raw search result in the shape ytmusicapi returns for videos."""
    raw: dict[str, Any] = {
        "resultType": "video",
        "videoId": video_id,
        "title": title,
        "artists": [{"name": channel, "id": None}],
        "views": "1M",
        "duration": "3:45",
        "thumbnails": [
            {"url": f"https://i.ytimg.com/vi/{video_id}/sddefault.jpg", "width": 400, "height": 225},
        ],
    }
    if description is not None:
        raw["description"] = description
    return raw


class FakeSearchBackend:
    """
    Deterministic async search backend.

    Responses are chosen by the first rule whose pattern is a substring of
    the (lowercased) query; the default applies otherwise. A response is a
    list of raw results, an exception instance to raise, or HANG.
    """

    def __init__(self, default: Any = None, delay: float = 0.0) -> None:
        self.rules: list[tuple[str, Any]] = []
        self.default = [] if default is None else default
        self.delay = delay
        self.calls: list[str] = []

    def add(self, pattern: str, response: Any) -> "FakeSearchBackend":
        self.rules.append((pattern.lower(), response))
        return self

    def calls_matching(self, pattern: str) -> list[str]:
        return [query for query in self.calls if pattern.lower() in query.lower()]

    async def __call__(self, query: str, limit: int) -> Any:
        self.calls.append(query)
        response = self.default
        for pattern, value in self.rules:
            if pattern in query.lower():
                response = value
                break

        if response is HANG:
            await asyncio.sleep(3600)
        if isinstance(response, BaseException):
            raise response
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(response, list):
            return [dict(item) if isinstance(item, dict) else item for item in response][:limit]
        return response


class EchoBackend(FakeSearchBackend):
    """
    Answers every query with one video titled after the query.

    The video id is derived from the first query word (the artist), so each
    track gets its own id. Queries naming any word in missing get no results.
    """

    def __init__(self, delays=None, missing=(), delay: float = 0.0) -> None:
        super().__init__(delay=delay)
        self.delays = delays or {}
        self.missing = set(missing)

    async def __call__(self, query: str, limit: int) -> Any:
        self.calls.append(query)
        artist = query.split()[0].strip('"')
        delay = self.delays.get(artist, self.delay)
        if delay:
            await asyncio.sleep(delay)
        if any(word.strip('"') in self.missing for word in query.split()):
            return []
        return [make_raw_video(f"vid-{artist}", query)]


def numbered_tracks(count: int) -> list[Track]:
    """Tracks whose artist and title are single distinct words."""
    return [
        Track(name=f"Song{i:03d}", artist=f"Artist{i:03d}", spotify_id=f"id{i}")
        for i in range(count)
    ]


# Short timeouts so failure paths finish quickly
FAST_MATCHING = MatchingConfig(
    per_query_timeout=0.2,
    max_results_per_query=10,
    max_queries_per_pass=6,
    max_passes=2,
    track_budget=1.0,
    error_backoff=0.0,
)

FAST_PROCESSING = ProcessingConfig(
    profile="test",
    batch_size=5,
    per_batch_timeout=3.0,
    salvage_timeout=0.3,
    global_timeout=None,
    max_consecutive_batch_failures=3,
    inter_batch_delay=0.0,
    retry_failed=True,
)


def build_matcher(
    backend: FakeSearchBackend,
    config: MatchingConfig = FAST_MATCHING,
    failed_cache: FailedQueryCache | None = None,
    **kwargs: Any
) -> TrackMatcher:
    search = CandidateSearchAdapter(
        backend,
        max_results=config.max_results_per_query,
        timeout=config.per_query_timeout,
    )
    return TrackMatcher(
        search,
        failed_cache=failed_cache if failed_cache is not None else FailedQueryCache(),
        config=config,
        **kwargs,
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def raw_video():
    """Factory for raw ytmusicapi-style video results"""
    return make_raw_video


@pytest.fixture
def fake_backend():
    """Empty fake search backend (every query finds nothing)"""
    return FakeSearchBackend()


@pytest.fixture
def sample_tracks():
    """Three tracks: official match, unofficial match, no match"""
    return [
        Track(name="Bohemian Rhapsody", artist="Queen", spotify_id="track1"),
        Track(name="Obscure Demo", artist="Garage Band", spotify_id="track2"),
        Track(name="Nothing Here", artist="Nobody Knows", spotify_id="track3"),
    ]


@pytest.fixture
def scenario_backend(raw_video):
    """Backend answering the sample_tracks scenario"""
    backend = FakeSearchBackend()
    backend.add("bohemian rhapsody", [
        raw_video("fJ9rUzIMcZQ", "Queen - Bohemian Rhapsody (Official Video Remastered)", "Queen Official"),
    ])
    backend.add("obscure demo", [
        raw_video("demo1234567", "Garage Band Obscure Demo live in a basement", "random uploader"),
    ])
    return backend


@pytest.fixture
def sample_track_data():
    """Sample Spotify playlist item for testing"""
    return {
        "track": {
            "id": "test_track_123",
            "type": "track",
            "name": "Test Song",
            "artists": [
                {"id": "artist_123", "name": "Test Artist"},
                {"id": "artist_456", "name": "Other Artist"},
            ],
            "album": {"id": "album_123", "name": "Test Album"},
            "duration_ms": 210000,
            "is_local": False,
        }
    }
