"""
Utility functions for spot-matcher.

This module provides small helpers used across the application:
    - Spotify URL parsing
    - YouTube URL builders (watch, watch_videos, manual search)
    - Track windowing for externally paginated (chunked) jobs

Usage:
    from spot_matcher.utils import (
        extract_playlist_id,
        build_watch_videos_urls,
        window_tracks,
    )
"""

import re
from dataclasses import dataclass
from typing import Iterator, Sequence, TypeVar
from urllib.parse import quote_plus


T = TypeVar("T")

# YouTube accepts at most this many ids in one watch_videos URL
WATCH_VIDEOS_LIMIT = 50

WATCH_VIDEOS_URL = "https://www.youtube.com/watch_videos?video_ids={}"
SEARCH_URL = "https://www.youtube.com/results?search_query={}"
SPOTIFY_PLAYLIST_URL = "https://open.spotify.com/playlist/{}"

_PLAYLIST_ID_PATTERN = re.compile(r"playlist[/:]([A-Za-z0-9]+)")
_BARE_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{22}$")


# =============================================================================
# Spotify
# =============================================================================

def extract_playlist_id(playlist_ref: str) -> str | None:
    """
    Extract a Spotify playlist id from a URL, URI or bare id.

    Examples:
        "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=abc" -> "37i9dQZF1DXcBWIGoYBM5M"
        "spotify:playlist:37i9dQZF1DXcBWIGoYBM5M" -> "37i9dQZF1DXcBWIGoYBM5M"
        "37i9dQZF1DXcBWIGoYBM5M" -> "37i9dQZF1DXcBWIGoYBM5M"
        "https://example.com" -> None
    """
    playlist_ref = playlist_ref.strip()
    match = _PLAYLIST_ID_PATTERN.search(playlist_ref)
    if match:
        return match.group(1)
    if _BARE_ID_PATTERN.match(playlist_ref):
        return playlist_ref
    return None


def spotify_playlist_url(playlist_id: str) -> str:
    return SPOTIFY_PLAYLIST_URL.format(playlist_id)


# =============================================================================
# YouTube
# =============================================================================

def manual_search_url(artist: str, name: str) -> str:
    """YouTube search URL a user can open for a track that was not matched."""
    return SEARCH_URL.format(quote_plus(f"{artist} {name} official video"))


def build_watch_videos_url(video_ids: Sequence[str]) -> str | None:
    """
    Build a watch_videos URL for the first WATCH_VIDEOS_LIMIT ids.

    Returns None when there are no ids. Callers that need every id use
    build_watch_videos_urls().
    """
    if not video_ids:
        return None
    return WATCH_VIDEOS_URL.format(",".join(video_ids[:WATCH_VIDEOS_LIMIT]))


def build_watch_videos_urls(video_ids: Sequence[str]) -> list[str]:
    """One watch_videos URL per chunk of WATCH_VIDEOS_LIMIT ids, in order."""
    return [
        WATCH_VIDEOS_URL.format(",".join(chunk))
        for chunk in chunked(video_ids, WATCH_VIDEOS_LIMIT)
    ]


# =============================================================================
# Sequences and windows
# =============================================================================

def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most size items."""
    if size < 1:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def adaptive_chunk_size(total: int) -> int:
    """Window size for chunked processing: 50 below 100 tracks, 100 below 500, else 200."""
    if total < 100:
        return 50
    if total < 500:
        return 100
    return 200


@dataclass(frozen=True)
class TrackWindow:
    """
    A slice of a larger track list, with 1-based positions.

    Attributes:
        start_from_track: First track of the window (1-based).
        end_track: Last track of the window (1-based, inclusive).
        total_available: Length of the full track list.
        has_more: Whether tracks remain after this window.
        next_start_from_track: Where the next window starts, or None.
    """
    start_from_track: int
    end_track: int
    total_available: int

    @property
    def has_more(self) -> bool:
        return self.end_track < self.total_available

    @property
    def next_start_from_track(self) -> int | None:
        return self.end_track + 1 if self.has_more else None

    def to_dict(self) -> dict[str, int | bool | None]:
        return {
            "startFromTrack": self.start_from_track,
            "endTrack": self.end_track,
            "totalAvailable": self.total_available,
            "hasMore": self.has_more,
            "nextStartFromTrack": self.next_start_from_track,
        }


def window_tracks(
    tracks: Sequence[T],
    start_from_track: int = 1,
    max_tracks: int | None = None
) -> tuple[list[T], TrackWindow]:
    """
    Select a window of tracks.

    Args:
        tracks: The full ordered track list.
        start_from_track: 1-based position of the first track.
        max_tracks: Window length; None means to the end of the list.

    Raises:
        ValueError: If start_from_track < 1, start_from_track is past the
                    end of a non-empty list, or max_tracks < 1.
    """
    total = len(tracks)
    if start_from_track < 1:
        raise ValueError("start_from_track must be at least 1")
    if total and start_from_track > total:
        raise ValueError(f"start_from_track {start_from_track} is past the last track ({total})")
    if max_tracks is not None and max_tracks < 1:
        raise ValueError("max_tracks must be at least 1")

    start = start_from_track - 1
    end = total if max_tracks is None else min(total, start + max_tracks)
    selected = list(tracks[start:end])
    return selected, TrackWindow(
        start_from_track=start_from_track,
        end_track=end,
        total_available=total,
    )


__all__ = [
    "WATCH_VIDEOS_LIMIT",
    "TrackWindow",
    "adaptive_chunk_size",
    "build_watch_videos_url",
    "build_watch_videos_urls",
    "chunked",
    "extract_playlist_id",
    "manual_search_url",
    "spotify_playlist_url",
    "window_tracks",
]
