"""
YouTube matching module for spot-matcher.

This module resolves tracks to YouTube videos.

Components:
    - Candidate, SearchOutcome, MatchResult: Data models
    - QueryGenerator: Ordered search queries per track
    - CandidateSearchAdapter: Bounded, never-raising search wrapper
    - CandidateRanker: Official-video scoring and relevance selection
    - KnownAnswers: Optional known track -> video override table
    - TrackMatcher, FailedQueryCache: Per-track matching state machine

Usage:
    from spot_matcher.youtube import CandidateSearchAdapter, TrackMatcher

    matcher = TrackMatcher(CandidateSearchAdapter(), config=config.matching)
    result = await matcher.match_track(track)
"""

from spot_matcher.youtube.known_answers import KnownAnswer, KnownAnswers
from spot_matcher.youtube.matcher import FailedQueryCache, TrackMatcher
from spot_matcher.youtube.models import (
    Candidate,
    FailureReason,
    MatchResult,
    SearchOutcome,
    SearchStatus,
)
from spot_matcher.youtube.queries import QueryGenerator
from spot_matcher.youtube.ranker import CandidateRanker, RankedCandidate
from spot_matcher.youtube.search import CandidateSearchAdapter, YTMusicSearchBackend

__all__ = [
    # Models
    "Candidate",
    "SearchOutcome",
    "SearchStatus",
    "MatchResult",
    "FailureReason",
    # Pipeline
    "QueryGenerator",
    "CandidateSearchAdapter",
    "YTMusicSearchBackend",
    "CandidateRanker",
    "RankedCandidate",
    "KnownAnswer",
    "KnownAnswers",
    "TrackMatcher",
    "FailedQueryCache",
]
