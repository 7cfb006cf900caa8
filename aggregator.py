import time
from collections import OrderedDict
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from search_engine import FieldSelector, ScoredMatch, SearchEngine

logger = logging.getLogger("aggregator")

DEFAULT_SOURCE_LIMIT = 10
MIN_QUERY_LENGTH = 2
CACHE_TTL = 300.0
CACHE_MAX_ENTRIES = 256
SUGGESTION_SOURCE_LIMIT = 5
MAX_SUGGESTIONS = 10


class Suggestion(BaseModel):
    text: str
    type: str
    subtitle: Optional[str] = None
    link: Optional[str] = None


class SourceFailure(BaseModel):
    source: str
    error: str


class GlobalSearchResult(BaseModel):
    query: str
    results: Dict[str, List[ScoredMatch]] = Field(default_factory=dict)
    # only sources that failed have an entry
    errors: Dict[str, SourceFailure] = Field(default_factory=dict)
    total: int = 0

    def __getitem__(self, name: str) -> List[ScoredMatch]:
        return self.results[name]

    def failed(self, name: str) -> bool:
        return name in self.errors

    def to_dict(self) -> Dict[str, Any]:
        flat: Dict[str, Any] = dict(self.results)
        flat["total"] = self.total
        return flat


class NamedSource:
    """A named record collection the aggregator can query.

    `fetch(query, limit)` may be a coroutine function or a plain blocking
    callable; blocking ones are pushed to a worker thread. Returned records
    are scored against `fields` but keep the order the source gave them.
    """

    def __init__(self, name: str, fetch: Callable[[str, int], Any],
                 fields: Iterable[FieldSelector] = (),
                 suggest: Optional[Callable[[Any], Suggestion]] = None):
        self.name = name
        self.fetch = fetch
        self.suggest = suggest
        self._scorer = SearchEngine(fields=fields)

    @classmethod
    def from_engine(cls, name: str, engine: SearchEngine,
                    suggest: Optional[Callable[[Any], Suggestion]] = None) -> "NamedSource":
        """Expose an in-memory SearchEngine as a source."""
        def fetch(query: str, limit: int) -> List[Any]:
            return [m.record for m in engine.search(query, limit=limit)]

        source = cls(name, fetch, suggest=suggest)
        source._scorer = engine
        return source

    async def query(self, query: str, limit: int) -> List[Any]:
        if inspect.iscoroutinefunction(self.fetch):
            records = await self.fetch(query, limit)
        else:
            records = await asyncio.to_thread(self.fetch, query, limit)
            if inspect.isawaitable(records):
                records = await records
        if records is None:
            return []
        return list(records)[:limit]

    def rank(self, query: str, records: Sequence[Any]) -> List[ScoredMatch]:
        matches = []
        for record in records:
            score, field = self._scorer.score_record(query, record)
            matches.append(ScoredMatch(record=record, score=score, matched_field=field))
        return matches


class SearchAggregator:
    """Fans one query out to several named sources and collects per-source results.

    A failing source yields an empty list plus an entry in `errors`; the
    others are unaffected. Results are not re-ranked across sources.
    Concurrent calls are allowed and independent; discarding stale results is
    up to the caller.
    """

    def __init__(self, sources: Iterable[NamedSource], limit: int = DEFAULT_SOURCE_LIMIT,
                 min_query_length: int = MIN_QUERY_LENGTH, cache_ttl: float = CACHE_TTL,
                 cache_max_entries: int = CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        self.sources: List[NamedSource] = list(sources)
        names = [s.name for s in self.sources]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate source names: {names}")
        self.limit = limit
        self.min_query_length = min_query_length
        self.cache_ttl = cache_ttl
        self.cache_max_entries = cache_max_entries
        self._clock = clock
        self._cache: "OrderedDict[Tuple[str, int, Tuple[str, ...]], Tuple[float, GlobalSearchResult]]" = {}

    @property
    def source_names(self) -> List[str]:
        return [s.name for s in self.sources]

    def _select(self, include: Optional[Iterable[str]]) -> List[NamedSource]:
        if include is None:
            return list(self.sources)
        wanted = set(include)
        unknown = wanted - set(self.source_names)
        if unknown:
            raise ValueError(f"Unknown search sources: {sorted(unknown)}")
        return [s for s in self.sources if s.name in wanted]

    async def _run_source(self, source: NamedSource, query: str, limit: int) -> List[ScoredMatch]:
        records = await source.query(query, limit)
        return source.rank(query, records)

    async def global_search(self, query: str, limit: Optional[int] = None,
                            include: Optional[Iterable[str]] = None) -> GlobalSearchResult:
        text = (query or "").strip()
        limit = self.limit if limit is None else limit
        selected = self._select(include)

        if len(text) < self.min_query_length:
            return GlobalSearchResult(query=text, results={s.name: [] for s in selected})

        key = (text, limit, tuple(s.name for s in selected))
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug("Serving %r from cache", text)
            return cached

        outcomes = await asyncio.gather(
            *(self._run_source(source, text, limit) for source in selected),
            return_exceptions=True,
        )

        results: Dict[str, List[ScoredMatch]] = {}
        errors: Dict[str, SourceFailure] = {}
        for source, outcome in zip(selected, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Search source %s failed for %r: %s", source.name, text, outcome,
                               exc_info=outcome)
                results[source.name] = []
                errors[source.name] = SourceFailure(
                    source=source.name, error=str(outcome) or type(outcome).__name__,
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[source.name] = outcome

        result = GlobalSearchResult(
            query=text,
            results=results,
            errors=errors,
            total=sum(len(matches) for matches in results.values()),
        )
        if not errors:
            self._cache_put(key, result)
        return result

    async def get_search_suggestions(self, query: str, limit: int = MAX_SUGGESTIONS) -> List[Suggestion]:
        if len((query or "").strip()) < self.min_query_length:
            return []
        result = await self.global_search(query, limit=SUGGESTION_SOURCE_LIMIT)
        suggestions: List[Suggestion] = []
        for source in self.sources:
            if source.suggest is None:
                continue
            for match in result.results.get(source.name, []):
                try:
                    suggestions.append(source.suggest(match.record))
                except Exception:
                    logger.exception("Could not build suggestion from %s record", source.name)
        return suggestions[:limit]

    def clear_cache(self) -> None:
        self._cache.clear()

    def _cache_get(self, key) -> Optional[GlobalSearchResult]:
        if self.cache_ttl <= 0:
            return None
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return result.model_copy(deep=True)

    def _cache_put(self, key, result: GlobalSearchResult) -> None:
        if self.cache_ttl <= 0:
            return
        now = self._clock()
        self._cache.pop(key, None)
        # entries are in insertion order, so expired ones sit at the front
        while self._cache:
            oldest_key, (stored_at, _) = next(iter(self._cache.items()))
            if now - stored_at <= self.cache_ttl and len(self._cache) < self.cache_max_entries:
                break
            del self._cache[oldest_key]
        self._cache[key] = (now, result.model_copy(deep=True))


async def global_search(query: str, sources: Iterable[NamedSource], limit: int = DEFAULT_SOURCE_LIMIT,
                        min_query_length: int = MIN_QUERY_LENGTH,
                        include: Optional[Iterable[str]] = None) -> GlobalSearchResult:
    """One-shot fan-out without caching."""
    aggregator = SearchAggregator(sources, limit=limit, min_query_length=min_query_length, cache_ttl=0)
    return await aggregator.global_search(query, include=include)
