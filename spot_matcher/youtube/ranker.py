"""
Candidate ranking for YouTube matching.

Picks the best candidate from one query's results, or reports that none is
acceptable. Selection works in two steps:

    1. Official-video scoring: each candidate gets one point per indicator
       it hits (vevo/official channel, "official video" in the title, the
       channel being the artist, ...). is_official means the score reached
       the threshold (2 by default, so a single weak signal is not enough).

    2. Relevance filter: a candidate is relevant when its title contains at
       least one artist token and at least one song-title token. Among
       relevant candidates the first official one wins, else the first
       relevant one. When nothing is relevant, the first search result is
       taken (search engines already rank by relevance) unless that
       fallback is disabled.

Search-result order is the only popularity signal available, so ties are
always broken by position.

Each ranked candidate also carries a rapidfuzz similarity between
"artist title" and the video title. It is reported, not used for selection.
"""

import re
from dataclasses import dataclass
from typing import Sequence

from rapidfuzz import fuzz

from spot_matcher.youtube.models import Candidate


# Default minimum official score for is_official
OFFICIAL_THRESHOLD = 2

# Words ignored when building relevance tokens
STOP_WORDS = frozenset({"the", "and", "feat", "ft"})

_PUNCTUATION = re.compile(r"[^\w\s]")


def _normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    return " ".join(_PUNCTUATION.sub(" ", text.lower()).split())


def relevance_tokens(text: str) -> set[str]:
    """
    Build the token set used by the relevance filter.

    One-letter words and STOP_WORDS are dropped. If that leaves nothing
    (e.g. the song "The The"), all words are used.
    """
    words = _normalize_text(text).split()
    tokens = {word for word in words if len(word) > 1 and word not in STOP_WORDS}
    return tokens or set(words)


@dataclass(frozen=True)
class RankedCandidate:
    """
    A candidate selected by the ranker.

    Attributes:
        candidate: The selected Candidate.
        official_score: Number of official indicators hit.
        is_official: official_score >= threshold.
        relevant: Whether it passed the relevance filter (False means it
                  was chosen by the first-result fallback).
        position: Index in the search results.
        confidence: Fuzzy similarity 0.0-1.0 between "artist title" and
                    the video title.
    """
    candidate: Candidate
    official_score: int
    is_official: bool
    relevant: bool
    position: int
    confidence: float


class CandidateRanker:
    """
    Select the best candidate for a track from one list of search results.

    Args:
        official_threshold: Minimum official score for is_official.
        fallback_to_first: Accept the first result when no candidate passes
                           the relevance filter.

    Example:
        ranker = CandidateRanker()
        best = ranker.rank(outcome.candidates, "Queen", "Bohemian Rhapsody")
        if best is not None:
            print(best.candidate.video_id, best.is_official)
    """

    def __init__(
        self,
        official_threshold: int = OFFICIAL_THRESHOLD,
        fallback_to_first: bool = True
    ) -> None:
        self.official_threshold = official_threshold
        self.fallback_to_first = fallback_to_first

    def score_official(self, candidate: Candidate, artist: str, title: str) -> int:
        """Count the official-video indicators a candidate hits."""
        video_title = candidate.title.lower()
        channel = candidate.channel_name.lower()
        description = (candidate.description or "").lower()
        artist_lower = artist.lower().strip()
        title_lower = title.lower().strip()
        first_artist_word = artist_lower.split(" ")[0] if artist_lower else ""

        indicators = [
            # Channel
            "vevo" in channel,
            "official" in channel,
            bool(first_artist_word) and first_artist_word in channel,
            # Title
            "official video" in video_title,
            "official music video" in video_title,
            "(official" in video_title,
            # Description
            "official music video" in description,
            "official video" in description,
            # Exact channel matches
            channel == artist_lower,
            channel == artist_lower + "vevo",
            channel == artist_lower.replace(" ", ""),
            # Title names both the artist and the song
            bool(artist_lower) and artist_lower in video_title and title_lower in video_title,
        ]
        return sum(1 for hit in indicators if hit)

    def is_relevant(self, candidate: Candidate, artist: str, title: str) -> bool:
        """True when the video title shares a token with both the artist and the song."""
        words = set(_normalize_text(candidate.title).split())
        return bool(words & relevance_tokens(artist)) and bool(words & relevance_tokens(title))

    def confidence(self, candidate: Candidate, artist: str, title: str) -> float:
        return fuzz.token_set_ratio(
            _normalize_text(f"{artist} {title}"),
            _normalize_text(candidate.title),
        ) / 100.0

    def rank(
        self,
        candidates: Sequence[Candidate],
        artist: str,
        title: str
    ) -> RankedCandidate | None:
        """
        Pick the best candidate.

        Args:
            candidates: Candidates in search-result order.
            artist: Artist string used for the query (cleaned).
            title: Song title used for the query (cleaned).

        Returns:
            The selected RankedCandidate, or None when the list is empty or
            nothing is relevant and the first-result fallback is disabled.
        """
        if not candidates:
            return None

        first_relevant: tuple[int, Candidate, int] | None = None
        for position, candidate in enumerate(candidates):
            if not self.is_relevant(candidate, artist, title):
                continue
            score = self.score_official(candidate, artist, title)
            if score >= self.official_threshold:
                return self._ranked(candidate, score, True, position, artist, title)
            if first_relevant is None:
                first_relevant = (position, candidate, score)

        if first_relevant is not None:
            position, candidate, score = first_relevant
            return self._ranked(candidate, score, True, position, artist, title)

        if not self.fallback_to_first:
            return None

        candidate = candidates[0]
        score = self.score_official(candidate, artist, title)
        return self._ranked(candidate, score, False, 0, artist, title)

    def _ranked(
        self,
        candidate: Candidate,
        score: int,
        relevant: bool,
        position: int,
        artist: str,
        title: str
    ) -> RankedCandidate:
        return RankedCandidate(
            candidate=candidate,
            official_score=score,
            is_official=score >= self.official_threshold,
            relevant=relevant,
            position=position,
            confidence=self.confidence(candidate, artist, title),
        )
