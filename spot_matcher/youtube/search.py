"""
Candidate search adapter.

The YouTube search dependency is an unauthenticated scrape: it redirects,
hangs or errors unpredictably. CandidateSearchAdapter turns it into a
total, bounded function:

    outcome = await adapter.search("Queen Bohemian Rhapsody official video")

always returns a SearchOutcome within the per-query timeout (plus a small
scheduling margin), and never raises. Callers tell "no results" (status OK,
empty candidates) apart from "search failed" (status TIMEOUT or ERROR).

Backends:
    A backend is any callable backend(query, limit) returning a list of raw
    result dicts. Coroutine functions (and objects with an async __call__)
    are awaited directly; plain callables run in a thread pool owned by the
    adapter.
    YTMusicSearchBackend, the default, wraps ytmusicapi.

Redirect-class failures block the exact query string for the lifetime of
the adapter: it is never sent to the backend again.
"""

import asyncio
import inspect
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable

import requests
from asyncio_throttle import Throttler
from ytmusicapi import YTMusic

from spot_matcher.core.config import MatchingConfig, SearchConfig
from spot_matcher.core.exceptions import SearchError
from spot_matcher.core.logger import get_logger
from spot_matcher.youtube.models import Candidate, SearchOutcome, SearchStatus


logger = get_logger(__name__)


SearchBackend = Callable[[str, int], "list[dict[str, Any]] | Awaitable[list[dict[str, Any]]]"]

# Substrings (lowercase) that mark an error as redirect-class
REDIRECT_PATTERNS = (
    "redirect",
    "consent.youtube",
    "too many redirects",
)

REDIRECT_BLOCKED_MESSAGE = "query previously failed with a redirect error"

# Seconds a single HTTP request to YouTube Music may block a worker thread
DEFAULT_REQUEST_TIMEOUT = 10.0

# Worker threads for synchronous backends
DEFAULT_SEARCH_WORKERS = 8


def is_redirect_error(error: BaseException) -> bool:
    """True for redirect loops and consent-page redirects."""
    if isinstance(error, SearchError) and error.is_redirect:
        return True
    text = f"{type(error).__name__} {error}".lower()
    return any(pattern in text for pattern in REDIRECT_PATTERNS)


def _is_async_backend(backend: Any) -> bool:
    if inspect.iscoroutinefunction(backend):
        return True
    call = getattr(backend, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


# =============================================================================
# DEFAULT BACKEND
# =============================================================================

class TimeoutSession(requests.Session):
    """requests session that applies a default timeout to every request."""

    def __init__(self, timeout: float) -> None:
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


class YTMusicSearchBackend:
    """
    Synchronous search backend on top of ytmusicapi.

    The YTMusic client is created lazily on first use, so constructing the
    backend never touches the network. ytmusicapi sets no timeout of its
    own, so the client gets a TimeoutSession: a stalled request ends with
    an error instead of holding its worker thread forever.

    Args:
        language: Interface language for YouTube Music.
        client: Optional pre-built YTMusic instance (tests inject a mock).
        request_timeout: Transport timeout in seconds for each HTTP request.
    """

    def __init__(
        self,
        language: str = "en",
        client: YTMusic | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    ) -> None:
        self.language = language
        self.request_timeout = request_timeout
        self._client = client
        self._lock = threading.Lock()

    def _get_client(self) -> YTMusic:
        with self._lock:
            if self._client is None:
                self._client = YTMusic(
                    language=self.language,
                    requests_session=TimeoutSession(self.request_timeout),
                )
            return self._client

    def __call__(self, query: str, limit: int) -> list[dict[str, Any]]:
        """
        Search videos for a query.

        Raises:
            SearchError: Wrapping whatever ytmusicapi raised, with
                         is_redirect set for redirect-class failures.
        """
        try:
            return self._get_client().search(query, filter="videos", limit=limit)
        except Exception as e:
            raise SearchError(
                f"YouTube Music search failed: {e}",
                details={"query": query, "original_error": str(e)},
                is_redirect=is_redirect_error(e)
            ) from e


# =============================================================================
# ADAPTER
# =============================================================================

class CandidateSearchAdapter:
    """
    Total, bounded wrapper around a search backend.

    Args:
        backend: Search backend; defaults to YTMusicSearchBackend().
        max_results: Default number of candidates per query.
        timeout: Default per-query timeout in seconds. Time spent waiting
                 for the throttler counts against it.
        rate_limit: Optional maximum number of queries per rate_period,
                    shared by every search issued through this adapter.
        rate_period: Throttling window in seconds.
        max_workers: Threads reserved for a synchronous backend. Searches
                     queue for a free thread when all of them are busy.

    Example:
        adapter = CandidateSearchAdapter(timeout=3.0, rate_limit=10)
        outcome = await adapter.search("Queen Bohemian Rhapsody official video")
        if outcome.ok:
            for candidate in outcome.candidates:
                print(candidate.title)
    """

    def __init__(
        self,
        backend: SearchBackend | None = None,
        *,
        max_results: int = 12,
        timeout: float = 3.0,
        rate_limit: int | None = None,
        rate_period: float = 1.0,
        max_workers: int = DEFAULT_SEARCH_WORKERS
    ) -> None:
        self._backend = backend if backend is not None else YTMusicSearchBackend()
        self._is_async = _is_async_backend(self._backend)
        self._executor = None if self._is_async else ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="search"
        )
        self.max_results = max_results
        self.timeout = timeout
        self._throttler = (
            Throttler(rate_limit=rate_limit, period=rate_period) if rate_limit else None
        )
        self._blocked_queries: set[str] = set()

    @classmethod
    def from_config(
        cls,
        search_config: SearchConfig,
        matching_config: MatchingConfig,
        backend: SearchBackend | None = None
    ) -> "CandidateSearchAdapter":
        if backend is None:
            backend = YTMusicSearchBackend(
                language=search_config.language,
                request_timeout=matching_config.per_query_timeout,
            )
        return cls(
            backend,
            max_results=matching_config.max_results_per_query,
            timeout=matching_config.per_query_timeout,
            rate_limit=search_config.rate_limit,
            rate_period=search_config.rate_period,
        )

    @property
    def blocked_queries(self) -> frozenset[str]:
        """Queries that failed with a redirect error and will not be re-issued."""
        return frozenset(self._blocked_queries)

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        timeout: float | None = None
    ) -> SearchOutcome:
        """
        Run one query against the backend.

        Never raises (except asyncio.CancelledError, which is propagated).

        Returns:
            SearchOutcome with:
            - status OK and the parsed candidates (possibly none)
            - status TIMEOUT when the query exceeded its timeout
            - status ERROR on a backend exception or malformed response,
              with is_redirect set for redirect-class failures
        """
        limit = max_results or self.max_results
        deadline = timeout if timeout is not None else self.timeout

        if query in self._blocked_queries:
            return SearchOutcome.failed(
                query, SearchStatus.ERROR, REDIRECT_BLOCKED_MESSAGE, is_redirect=True
            )

        start = time.monotonic()
        try:
            raw_results = await asyncio.wait_for(self._call_backend(query, limit), deadline)
        except asyncio.TimeoutError:
            elapsed = time.monotonic() - start
            logger.debug(f"Search timed out after {elapsed:.1f}s: {query}")
            return SearchOutcome.failed(
                query, SearchStatus.TIMEOUT, f"timed out after {deadline:.1f}s", elapsed=elapsed
            )
        except Exception as e:
            elapsed = time.monotonic() - start
            redirect = is_redirect_error(e)
            if redirect:
                self._blocked_queries.add(query)
                logger.warning(f"Redirect error, query will not be retried: {query}")
            else:
                logger.debug(f"Search failed for '{query}': {e}")
            return SearchOutcome.failed(
                query, SearchStatus.ERROR, str(e) or type(e).__name__,
                is_redirect=redirect, elapsed=elapsed
            )

        elapsed = time.monotonic() - start

        if not isinstance(raw_results, (list, tuple)):
            logger.debug(f"Malformed search response for '{query}': {type(raw_results).__name__}")
            return SearchOutcome.failed(
                query, SearchStatus.ERROR, "malformed search response", elapsed=elapsed
            )

        candidates: list[Candidate] = []
        for raw in raw_results:
            candidate = Candidate.from_raw(raw)
            if candidate is None:
                continue
            candidates.append(candidate)
            if len(candidates) >= limit:
                break

        logger.debug(f"Search '{query}': {len(candidates)} candidates in {elapsed:.2f}s")
        return SearchOutcome(query=query, candidates=tuple(candidates), elapsed=elapsed)

    async def _call_backend(self, query: str, limit: int) -> Any:
        if self._throttler is not None:
            async with self._throttler:
                return await self._invoke(query, limit)
        return await self._invoke(query, limit)

    async def _invoke(self, query: str, limit: int) -> Any:
        if self._is_async:
            return await self._backend(query, limit)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._backend, query, limit)
