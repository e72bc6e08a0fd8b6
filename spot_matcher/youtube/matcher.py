"""
Track matching for spot-matcher.

TrackMatcher resolves one Track to a terminal MatchResult by driving the
query generator, the candidate search adapter and the ranker:

    Init -> TryingQueries -> Found | Exhausted

Matching Algorithm:
    1. Known answers (if configured): a hit returns Found without searching
    2. Failed-query cache: a track that already failed in this process
       returns NotFound(TIMEOUT) without searching (skipped on retry)
    3. For each query of the pass, in order:
       - search; a timeout or error is logged and the next query is tried,
         after a short backoff that grows with consecutive failures
       - rank the candidates; the first acceptable one ends the track
    4. Exhausted: NotFound with the reason that best describes the pass
       (ALL_REJECTED if candidates were seen, TIMEOUT/ERROR if every search
       failed, NO_CANDIDATES otherwise), recorded in the failed-query cache

The primary pass runs for every track. The advanced pass (broader queries)
only runs when a caller asks for it with retry=True, which the batch
orchestrator does for tracks that ended NO_CANDIDATES or ALL_REJECTED.

Failure semantics:
    match_track() never raises (cancellation excepted). The whole track is
    bounded by the per-track budget; every error path ends in
    MatchResult.failure() with a reason.

Usage:
    matcher = TrackMatcher(CandidateSearchAdapter(), config=config.matching)
    result = await matcher.match_track(Track(name="Hello", artist="Adele"))
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Callable

from spot_matcher.core.config import MatchingConfig
from spot_matcher.core.logger import (
    format_matched_message,
    get_logger,
    log_match_failure,
)
from spot_matcher.spotify.models import Track
from spot_matcher.utils import manual_search_url
from spot_matcher.youtube.known_answers import KnownAnswers
from spot_matcher.youtube.models import (
    Candidate,
    FailureReason,
    MatchResult,
    SearchStatus,
)
from spot_matcher.youtube.queries import QueryGenerator, clean_artist, clean_title
from spot_matcher.youtube.ranker import CandidateRanker
from spot_matcher.youtube.search import CandidateSearchAdapter


logger = get_logger(__name__)


KNOWN_ANSWER_QUERY = "known-answer"
PREVIOUSLY_FAILED_MESSAGE = "previously failed in this session"

_WHITESPACE = re.compile(r"\s+")


def _normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text.lower()).strip()


# =============================================================================
# FAILED QUERY CACHE
# =============================================================================

class FailedQueryCache:
    """
    Set of (artist, title) pairs known to have failed in this process.

    Lookups are by normalized key (lowercase, collapsed whitespace), so the
    same song listed in two playlists shares one entry.

    Entries never expire unless a ttl is given. Pass a fresh instance to
    each matcher that needs isolation (tests do).

    Args:
        ttl: Optional lifetime of an entry in seconds.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, float] = {}

    @staticmethod
    def key(track: Track) -> str:
        return f"{_normalize_text(track.artist)}|{_normalize_text(track.name)}"

    def add(self, track: Track) -> None:
        self._entries[self.key(track)] = self._clock()

    def discard(self, track: Track) -> None:
        self._entries.pop(self.key(track), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, track: Track) -> bool:
        key = self.key(track)
        added = self._entries.get(key)
        if added is None:
            return False
        if self.ttl is not None and self._clock() - added >= self.ttl:
            del self._entries[key]
            return False
        return True

    def __len__(self) -> int:
        if self.ttl is not None:
            now = self._clock()
            expired = [key for key, added in self._entries.items() if now - added >= self.ttl]
            for key in expired:
                del self._entries[key]
        return len(self._entries)


# =============================================================================
# TRACK MATCHER
# =============================================================================

@dataclass
class _PassState:
    """Mutable bookkeeping for one pass, readable after a budget timeout."""
    queries_attempted: int = 0
    successful_searches: int = 0
    failed_searches: int = 0
    consecutive_failures: int = 0
    candidates_seen: bool = False
    last_error: str | None = None
    last_status: SearchStatus | None = None


class TrackMatcher:
    """
    Resolve a single track to a MatchResult.

    Args:
        search: The candidate search adapter.
        ranker: Candidate ranker; built from config when None.
        queries: Query generator; built from config when None.
        failed_cache: Failed-query cache; a private one is built when None.
        known_answers: Optional known-answers override table.
        config: Matching policy (timeouts, limits, thresholds).
    """

    def __init__(
        self,
        search: CandidateSearchAdapter,
        ranker: CandidateRanker | None = None,
        queries: QueryGenerator | None = None,
        failed_cache: FailedQueryCache | None = None,
        known_answers: KnownAnswers | None = None,
        config: MatchingConfig | None = None
    ) -> None:
        self.config = config or MatchingConfig()
        self.search = search
        self.ranker = ranker or CandidateRanker(
            official_threshold=self.config.official_threshold,
            fallback_to_first=self.config.fallback_to_first,
        )
        self.queries = queries or QueryGenerator(self.config.max_queries_per_pass)
        self.failed_cache = (
            failed_cache if failed_cache is not None
            else FailedQueryCache(ttl=self.config.failed_cache_ttl)
        )
        self.known_answers = known_answers

    @property
    def supports_retry(self) -> bool:
        """True when the advanced retry pass is allowed (max_passes >= 2)."""
        return self.config.max_passes >= 2

    async def match_track(
        self,
        track: Track,
        *,
        retry: bool = False,
        budget: float | None = None
    ) -> MatchResult:
        """
        Match one track.

        Args:
            track: The track to match.
            retry: Run the advanced pass instead of the primary one, ignoring
                   the failed-query cache.
            budget: Total seconds for this track; defaults to the configured
                    track budget. The batch orchestrator passes a shorter one
                    when salvaging.

        Returns:
            MatchResult, never raises.
        """
        known = self._known_answer(track)
        if known is not None:
            return known

        if not retry and track in self.failed_cache:
            logger.debug(f"Skipping previously failed: {track.display_name}")
            return MatchResult.failure(FailureReason.TIMEOUT, PREVIOUSLY_FAILED_MESSAGE)

        artist = clean_artist(track.artist)
        title = clean_title(track.name)
        queries = self.queries.generate(track.artist, track.name, advanced=retry)
        limit = budget if budget is not None else self.config.track_budget

        state = _PassState()
        try:
            result = await asyncio.wait_for(
                self._run_queries(queries, artist, title, state), limit
            )
        except asyncio.TimeoutError:
            result = MatchResult.failure(
                FailureReason.TIMEOUT,
                state.last_error or f"track budget of {limit:.1f}s exhausted",
                queries_attempted=state.queries_attempted,
            )
        except Exception as e:
            logger.exception(f"Unexpected error while matching {track.display_name}")
            result = MatchResult.failure(
                FailureReason.ERROR, str(e) or type(e).__name__,
                queries_attempted=state.queries_attempted,
            )

        if result.matched:
            self.failed_cache.discard(track)
            logger.debug(format_matched_message(track.artist, track.name, result.url, result.is_official))
        else:
            self.failed_cache.add(track)
            log_match_failure(
                logger,
                track_name=track.name,
                artist=track.artist,
                reason=result.status_text,
                search_url=manual_search_url(track.artist, track.name),
                spotify_url=track.spotify_url or "",
            )
        return result

    def _known_answer(self, track: Track) -> MatchResult | None:
        if self.known_answers is None:
            return None
        answer = self.known_answers.lookup(track.artist, track.name)
        if answer is None:
            return None
        candidate = Candidate(
            video_id=answer.video_id,
            title=answer.title,
            channel_name=answer.channel_name,
        )
        return MatchResult.success(
            candidate,
            is_official=answer.official,
            matched_query=KNOWN_ANSWER_QUERY,
            official_score=self.ranker.score_official(candidate, track.artist, track.name),
            confidence=1.0,
        )

    async def _run_queries(
        self,
        queries: tuple[str, ...],
        artist: str,
        title: str,
        state: _PassState
    ) -> MatchResult:
        for query in queries:
            outcome = await self.search.search(query)
            state.queries_attempted += 1

            if not outcome.ok:
                state.failed_searches += 1
                state.consecutive_failures += 1
                state.last_error = outcome.error
                state.last_status = outcome.status
                logger.debug(f"Query failed ({outcome.status.value}): {query}: {outcome.error}")
                if self.config.error_backoff > 0:
                    await asyncio.sleep(self.config.error_backoff * state.consecutive_failures)
                continue

            state.successful_searches += 1
            state.consecutive_failures = 0
            if not outcome.candidates:
                continue

            state.candidates_seen = True
            best = self.ranker.rank(outcome.candidates, artist, title)
            if best is None:
                continue

            return MatchResult.success(
                best.candidate,
                is_official=best.is_official,
                matched_query=query,
                official_score=best.official_score,
                confidence=best.confidence,
                queries_attempted=state.queries_attempted,
            )

        return self._exhausted(state)

    @staticmethod
    def _exhausted(state: _PassState) -> MatchResult:
        if state.candidates_seen:
            reason = FailureReason.ALL_REJECTED
        elif state.successful_searches == 0 and state.failed_searches > 0:
            if state.last_status is SearchStatus.TIMEOUT:
                reason = FailureReason.TIMEOUT
            else:
                reason = FailureReason.ERROR
        else:
            reason = FailureReason.NO_CANDIDATES

        return MatchResult.failure(
            reason,
            last_error=state.last_error,
            queries_attempted=state.queries_attempted,
        )
