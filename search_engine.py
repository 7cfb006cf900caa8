import re
import logging
from collections.abc import Mapping
from functools import partial
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger("search_engine")

EXACT_SCORE = 1.0
PREFIX_SCORE = 0.9
SUBSTRING_SCORE = 0.7

DEFAULT_THRESHOLD = 0.3
DEFAULT_LIMIT = 50
# fuzzy similarity must beat the cutoff and is then scaled down below the substring tier
FUZZY_CUTOFF = 0.5
FUZZY_SCALE = 0.5

FieldAccessor = Callable[[Any], Any]
FieldSelector = Union[str, Tuple[str, FieldAccessor]]


class ScoredMatch(BaseModel):
    record: Any
    score: Optional[float] = None
    matched_field: Optional[str] = None


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance, one unit per insertion, deletion or substitution."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def calculate_score(query: str, text: str, fuzzy_cutoff: float = FUZZY_CUTOFF,
                    fuzzy_scale: float = FUZZY_SCALE) -> float:
    """Relevance of `text` for `query` in [0, 1]; the first tier that applies wins.

    exact (case-insensitive) 1.0, prefix 0.9, substring 0.7, otherwise the
    normalized edit-distance similarity scaled by `fuzzy_scale` when it is
    above `fuzzy_cutoff`, else 0.
    """
    if not query or not text:
        return 0.0
    query_lower = query.lower()
    text_lower = text.lower()

    if text_lower == query_lower:
        return EXACT_SCORE
    if text_lower.startswith(query_lower):
        return PREFIX_SCORE
    if query_lower in text_lower:
        return SUBSTRING_SCORE

    distance = levenshtein_distance(query_lower, text_lower)
    similarity = 1 - distance / max(len(query_lower), len(text_lower))
    if similarity > fuzzy_cutoff:
        return similarity * fuzzy_scale
    return 0.0


def get_nested_value(record: Any, path: str) -> Any:
    """Follow a dot path ("manager.name") through mappings and attributes."""
    current = record
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def normalize_fields(fields: Iterable[FieldSelector]) -> List[Tuple[str, FieldAccessor]]:
    normalized = []
    for field in fields:
        if isinstance(field, str):
            normalized.append((field, partial(get_nested_value, path=field)))
        elif isinstance(field, tuple) and len(field) == 2 and callable(field[1]):
            normalized.append((str(field[0]), field[1]))
        else:
            raise TypeError(f"Unsupported field selector: {field!r}")
    return normalized


def highlight_search_terms(text: str, query: str, before: str = "<mark>", after: str = "</mark>") -> str:
    if not text or not query:
        return text
    pattern = re.compile(re.escape(query), re.IGNORECASE)
    return pattern.sub(lambda m: f"{before}{m.group(0)}{after}", text)


class SearchEngine:
    """In-memory fuzzy relevance search over arbitrary records.

    - build_index(records): replaces the searchable collection
    - search(query): returns ScoredMatch objects, best first
    Records are opaque; fields are dot paths or (name, accessor) pairs. With
    no fields configured every top-level string value of a record is searched.
    """

    def __init__(self, records: Iterable[Any] = (), fields: Iterable[FieldSelector] = (),
                 threshold: float = DEFAULT_THRESHOLD, limit: int = DEFAULT_LIMIT,
                 fuzzy_cutoff: float = FUZZY_CUTOFF, fuzzy_scale: float = FUZZY_SCALE):
        if not 0 < fuzzy_scale <= 1:
            raise ValueError("fuzzy_scale must be in (0, 1]")
        if not 0 <= fuzzy_cutoff < 1:
            raise ValueError("fuzzy_cutoff must be in [0, 1)")
        self.records: List[Any] = list(records)
        self.fields = normalize_fields(fields)
        self.threshold = threshold
        self.limit = limit
        self.fuzzy_cutoff = fuzzy_cutoff
        self.fuzzy_scale = fuzzy_scale

    def build_index(self, records: Iterable[Any], fields: Optional[Iterable[FieldSelector]] = None) -> None:
        self.records = list(records)
        if fields is not None:
            self.fields = normalize_fields(fields)

    def update_fields(self, fields: Iterable[FieldSelector]) -> None:
        self.fields = normalize_fields(fields)

    def score(self, query: str, text: str) -> float:
        return calculate_score(query, text, self.fuzzy_cutoff, self.fuzzy_scale)

    def _field_values(self, record: Any) -> Iterator[Tuple[str, Any]]:
        if self.fields:
            for name, accessor in self.fields:
                yield name, accessor(record)
        elif isinstance(record, Mapping):
            yield from record.items()
        elif hasattr(record, "__dict__"):
            yield from vars(record).items()

    def score_record(self, query: str, record: Any) -> Tuple[float, Optional[str]]:
        """Best score over the searched fields and the field that produced it."""
        best, matched = 0.0, None
        for name, value in self._field_values(record):
            if not isinstance(value, str):
                continue
            score = self.score(query, value)
            if score > best:
                best, matched = score, name
                if best == EXACT_SCORE:
                    break
        return best, matched

    def search(self, query: str, threshold: Optional[float] = None,
               limit: Optional[int] = None) -> List[ScoredMatch]:
        threshold = self.threshold if threshold is None else threshold
        limit = self.limit if limit is None else limit
        if limit <= 0:
            return []

        q = (query or "").strip()
        if not q:
            # browse mode: nothing typed yet, show the head of the collection
            return [ScoredMatch(record=r) for r in self.records[:limit]]

        matches = []
        for record in self.records:
            score, field = self.score_record(q, record)
            if score >= threshold:
                matches.append(ScoredMatch(record=record, score=score, matched_field=field))

        # sort is stable, equal scores keep input order
        matches.sort(key=lambda m: -m.score)
        logger.debug("Query %r matched %d of %d records", q, len(matches), len(self.records))
        return matches[:limit]


def search(query: str, records: Sequence[Any], fields: Iterable[FieldSelector] = (),
           threshold: float = DEFAULT_THRESHOLD, limit: int = DEFAULT_LIMIT) -> List[ScoredMatch]:
    return SearchEngine(records, fields, threshold=threshold, limit=limit).search(query)
