"""
Data models for YouTube search and matching.

This module defines the typed values that flow through the matching
pipeline:

    Candidate      One parsed search-result video
    SearchOutcome  What one search query produced (candidates + status)
    MatchResult    Terminal per-track outcome (found, or not found with a reason)

No raw search dictionaries travel past Candidate.from_raw().
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={}"

# Matches the id in "youtube.com/watch?v=<id>" and "youtu.be/<id>" links
_VIDEO_ID_PATTERN = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([^&\n?#]+)")


def extract_video_id(url: str | None) -> str | None:
    """
    Extract the video id from a YouTube watch or short link.

    Examples:
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=1" -> "dQw4w9WgXcQ"
        "https://youtu.be/dQw4w9WgXcQ" -> "dQw4w9WgXcQ"
        "https://example.com" -> None
    """
    if not url:
        return None
    match = _VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


@dataclass(frozen=True)
class Candidate:
    """
    Immutable representation of one search-result video.

    Candidates are produced per query and never persisted.

    Attributes:
        video_id: YouTube video ID.
                  Example: "fJ9rUzIMcZQ"

        title: Video title as it appears on YouTube.
               Example: "Queen – Bohemian Rhapsody (Official Video Remastered)"

        channel_name: Uploading channel or credited artist.
                      Example: "Queen Official"

        description: Video description, when the backend provides one.

        published_at: Publication date text, when available.

        thumbnail_url: URL of the largest thumbnail, when available.
    """

    video_id: str
    title: str
    channel_name: str
    description: str | None = None
    published_at: str | None = None
    thumbnail_url: str | None = None

    @property
    def url(self) -> str:
        return YOUTUBE_WATCH_URL.format(self.video_id)

    @classmethod
    def from_raw(cls, result: dict[str, Any]) -> "Candidate | None":
        """
        Create a Candidate from a raw search result.

        Understands ytmusicapi video results as well as the plainer shapes
        returned by scraping libraries (url/link, author, channel.name).

        Args:
            result: One raw search result object.

        Returns:
            The parsed Candidate, or None when the item has no usable video
            id or title (such items are skipped by the search adapter).

        Behavior:
            1. video id from 'videoId', else parsed from 'url' or 'link'
            2. title must be a non-empty string
            3. channel from artists[0].name, then 'author', then channel.name
            4. optional description, published date and last thumbnail url
        """
        if not isinstance(result, dict):
            return None

        video_id = result.get("videoId")
        if not isinstance(video_id, str) or not video_id:
            video_id = extract_video_id(result.get("url")) or extract_video_id(result.get("link"))
        if not video_id:
            return None

        title = result.get("title")
        if not isinstance(title, str) or not title.strip():
            return None

        return cls(
            video_id=video_id,
            title=title.strip(),
            channel_name=_channel_name(result),
            description=_optional_text(result.get("description")),
            published_at=_optional_text(
                result.get("publishedAt") or result.get("uploadDate") or result.get("year")
            ),
            thumbnail_url=_thumbnail_url(result),
        )


def _channel_name(result: dict[str, Any]) -> str:
    artists = result.get("artists")
    if isinstance(artists, list) and artists:
        first = artists[0]
        if isinstance(first, dict) and first.get("name"):
            return str(first["name"])

    author = result.get("author")
    if isinstance(author, str) and author:
        return author

    channel = result.get("channel")
    if isinstance(channel, dict) and channel.get("name"):
        return str(channel["name"])
    if isinstance(channel, str):
        return channel

    return ""


def _thumbnail_url(result: dict[str, Any]) -> str | None:
    thumbnails = result.get("thumbnails")
    if isinstance(thumbnails, list) and thumbnails:
        last = thumbnails[-1]
        if isinstance(last, dict) and last.get("url"):
            return str(last["url"])

    thumbnail = result.get("thumbnail")
    if isinstance(thumbnail, str) and thumbnail:
        return thumbnail
    return None


def _optional_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class SearchStatus(str, Enum):
    """How a single search query ended."""
    OK = "ok"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass(frozen=True)
class SearchOutcome:
    """
    Result of one search query.

    An empty candidate tuple with status OK means "the search worked and
    found nothing". TIMEOUT and ERROR mean the search itself failed, and
    always come with an empty candidate tuple.

    Attributes:
        query: The query string that was issued.
        candidates: Parsed candidates in search-result order.
        status: OK, TIMEOUT or ERROR.
        error: Error text for failed searches.
        is_redirect: True when the failure was redirect-class.
        elapsed: Seconds the query took.
    """

    query: str
    candidates: tuple[Candidate, ...] = ()
    status: SearchStatus = SearchStatus.OK
    error: str | None = None
    is_redirect: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is SearchStatus.OK

    @classmethod
    def failed(
        cls,
        query: str,
        status: SearchStatus,
        error: str,
        is_redirect: bool = False,
        elapsed: float = 0.0
    ) -> "SearchOutcome":
        return cls(
            query=query,
            candidates=(),
            status=status,
            error=error,
            is_redirect=is_redirect,
            elapsed=elapsed,
        )


class FailureReason(str, Enum):
    """Why a track ended without a match."""
    NO_CANDIDATES = "no_candidates"
    ALL_REJECTED = "all_rejected"
    TIMEOUT = "timeout"
    ERROR = "error"

    @property
    def description(self) -> str:
        return _FAILURE_DESCRIPTIONS[self]


_FAILURE_DESCRIPTIONS = {
    FailureReason.NO_CANDIDATES: "No videos found",
    FailureReason.ALL_REJECTED: "No relevant video found",
    FailureReason.TIMEOUT: "Search timed out",
    FailureReason.ERROR: "Search failed",
}


@dataclass(frozen=True)
class MatchResult:
    """
    Terminal outcome of matching one track.

    Exactly one of the two shapes is populated:
        - found:     matched=True, video fields set, reason None
        - not found: matched=False, video fields None, reason set

    Build instances with success() and failure(); the constructor checks
    the shape and raises ValueError on a mixed one.

    Attributes:
        matched: Whether a video was selected.
        video_id: Selected video id (found only).
        title: Selected video title (found only).
        channel_name: Selected video channel (found only).
        is_official: Official-video heuristic verdict (found only).
        matched_query: Query that produced the match, or "known-answer".
        official_score: Number of official indicators the video hit.
        confidence: Fuzzy similarity between "artist title" and the video
                    title, 0.0 to 1.0. Informational only.
        reason: Failure class (not found only).
        last_error: Last search error text seen, if any.
        queries_attempted: Search queries issued for this track.

    Example:
        result = await matcher.match_track(track)
        if result.matched:
            print(f"Found: {result.url} (official: {result.is_official})")
        else:
            print(f"No match: {result.reason.description}")
    """

    matched: bool
    video_id: str | None = None
    title: str | None = None
    channel_name: str | None = None
    is_official: bool = False
    matched_query: str | None = None
    official_score: int = 0
    confidence: float = 0.0
    reason: FailureReason | None = None
    last_error: str | None = None
    queries_attempted: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        if self.matched:
            if not self.video_id or self.reason is not None:
                raise ValueError("A found result needs a video id and no failure reason")
        elif self.reason is None or self.video_id is not None:
            raise ValueError("A not-found result needs a reason and no video id")

    @property
    def url(self) -> str | None:
        """The watch URL if matched, None otherwise."""
        return YOUTUBE_WATCH_URL.format(self.video_id) if self.video_id else None

    @property
    def status_text(self) -> str:
        """Human-readable one-line status."""
        if self.matched:
            return "Found official video" if self.is_official else "Found video (may be unofficial)"
        assert self.reason is not None
        if self.last_error and self.reason in (FailureReason.TIMEOUT, FailureReason.ERROR):
            return f"{self.reason.description}: {self.last_error}"
        return self.reason.description

    @classmethod
    def success(
        cls,
        candidate: Candidate,
        is_official: bool,
        matched_query: str,
        official_score: int = 0,
        confidence: float = 0.0,
        queries_attempted: int = 0
    ) -> "MatchResult":
        """Create a found result from the selected candidate."""
        return cls(
            matched=True,
            video_id=candidate.video_id,
            title=candidate.title,
            channel_name=candidate.channel_name,
            is_official=is_official,
            matched_query=matched_query,
            official_score=official_score,
            confidence=confidence,
            queries_attempted=queries_attempted,
        )

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        last_error: str | None = None,
        queries_attempted: int = 0
    ) -> "MatchResult":
        """Create a not-found result."""
        return cls(
            matched=False,
            reason=reason,
            last_error=last_error,
            queries_attempted=queries_attempted,
        )
