"""
Memory stream for Miniville agents.

Based on the Stanford Generative Agents memory stream: every experience is a
natural-language record with a timestamp and an importance (poignancy) score,
and retrieval ranks records by the unweighted sum of three signals:

- relevance: cosine similarity of sparse TF-IDF vectors (query vs record)
- recency: 0.99 ** elapsed simulated hours
- importance: importance / 10

Relevance uses term-frequency statistics instead of embedding vectors, so the
stream keeps an incrementally maintained document-frequency index. The index
only ever grows, which means the same query can score differently later in a
run. Each ``retrieve`` call snapshots the index once so every candidate within
one call is scored against identical statistics.

Usage:
    stream = MemoryStream()
    stream.add("Klaus likes coffee", timestamp=now, importance=5)
    hits = stream.retrieve("coffee", now, k=8)
"""

import itertools
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from miniville.schemas import (
    DEFAULT_IMPORTANCE,
    MEMORY_TYPES,
    MemoryRecord,
    ScoredMemory,
    coerce_importance,
)


STOPWORDS = frozenset(
    [
        "the", "a", "an", "and", "or", "to", "of", "in", "on", "for", "with", "at",
        "from", "by", "as", "is", "are", "was", "were", "be",
        "i", "you", "he", "she", "they", "we", "me", "my", "your", "his", "her",
        "their", "our",
        "this", "that", "it", "its", "there", "here", "then", "so", "but",
    ]
)

MIN_TOKEN_LENGTH = 2
RECENCY_DECAY = 0.99

# Anything that is not a Unicode letter/number or whitespace is punctuation.
_PUNCTUATION_RE = re.compile(r"[^\w\s]+|_+")
_WHITESPACE_RE = re.compile(r"\s+")


def tokenize(text: str) -> List[str]:
    """Split text into lowercase content tokens.

    Punctuation is replaced by spaces, whitespace collapsed, and tokens shorter
    than two characters or in the stopword set are dropped.
    """

    cleaned = _PUNCTUATION_RE.sub(" ", text.lower().replace("\u3000", " "))
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    if not cleaned:
        return []
    return [
        token
        for token in cleaned.split(" ")
        if token and len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def term_frequencies(tokens: Iterable[str]) -> Dict[str, int]:
    """Count occurrences of each token."""

    counts: Dict[str, int] = {}
    for token in tokens:
        counts[token] = counts.get(token, 0) + 1
    return counts


def cosine_sparse(vec_a: Mapping[str, float], vec_b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse vectors; 0.0 if either has zero norm."""

    dot = 0.0
    norm_a = 0.0
    for key, weight_a in vec_a.items():
        norm_a += weight_a * weight_a
        weight_b = vec_b.get(key)
        if weight_b is not None:
            dot += weight_a * weight_b
    norm_b = sum(weight * weight for weight in vec_b.values())

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def recency_score(timestamp: datetime, now: datetime) -> float:
    """Exponential decay by elapsed simulated hours; future records count as 0h."""

    hours = max(0.0, (now - timestamp).total_seconds() / 3600.0)
    return RECENCY_DECAY ** hours


class MemoryStream:
    """Append-only memory stream with TF-IDF + recency + importance retrieval.

    Records are kept in insertion order, which is also chronological order;
    they are never reordered or deleted. Record ids come from a counter owned
    by the stream instance, so two streams never share id state.

    The document-frequency map counts, for each token, how many records contain
    it at least once. Counts are only ever incremented.
    """

    def __init__(self) -> None:
        self._records: List[MemoryRecord] = []
        self._df: Dict[str, int] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MemoryRecord]:
        return iter(tuple(self._records))

    @property
    def records(self) -> Tuple[MemoryRecord, ...]:
        return tuple(self._records)

    @property
    def document_frequency(self) -> Dict[str, int]:
        """Copy of the document-frequency index."""
        return dict(self._df)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(
        self,
        text: str,
        timestamp: datetime,
        importance: Any = DEFAULT_IMPORTANCE,
        memory_type: str = "observation",
        *,
        prefix: str = "mem",
    ) -> MemoryRecord:
        """Append a record and update the document-frequency index.

        Args:
            text: Natural-language memory content
            timestamp: Simulated time the memory was formed
            importance: Rating; coerced to an int in [1, 10] (default 3)
            memory_type: observation, action or reflection
            prefix: Id prefix (e.g. "seed", "mem", "ref")

        Returns:
            The stored MemoryRecord

        Raises:
            ValueError: If memory_type is not a known memory type
        """

        if memory_type not in MEMORY_TYPES:
            raise ValueError(
                f"Unknown memory type '{memory_type}'; expected one of {', '.join(MEMORY_TYPES)}"
            )

        tf = term_frequencies(tokenize(text))
        record = MemoryRecord(
            record_id=f"{prefix}_{next(self._ids)}",
            timestamp=timestamp,
            text=text,
            importance=coerce_importance(importance),
            memory_type=memory_type,
            term_frequency=tf,
        )
        self._records.append(record)
        for token in tf:
            self._df[token] = self._df.get(token, 0) + 1
        return record

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def idf(self, token: str, *, df: Optional[Mapping[str, int]] = None, total: Optional[int] = None) -> float:
        """Smoothed inverse document frequency: ln((N+1)/(df+1)) + 1."""

        df_map = self._df if df is None else df
        n = total if total is not None else (len(self._records) or 1)
        return math.log((n + 1) / (df_map.get(token, 0) + 1)) + 1.0

    def tfidf(
        self,
        tf_map: Mapping[str, int],
        *,
        df: Optional[Mapping[str, int]] = None,
        total: Optional[int] = None,
    ) -> Dict[str, float]:
        """Build a fresh TF-IDF vector from a term-frequency map."""

        return {
            token: count * self.idf(token, df=df, total=total)
            for token, count in tf_map.items()
        }

    def retrieve(
        self,
        query: str,
        now: datetime,
        k: int = 8,
        types: Optional[Sequence[str]] = None,
    ) -> List[ScoredMemory]:
        """Return the top ``k`` records by relevance + recency + importance.

        Ties keep insertion order (the sort is stable). The document-frequency
        index and record count are frozen for the duration of the call.

        Args:
            query: Free text describing the current situation
            now: Current simulated time
            k: Maximum number of results
            types: Optional memory types to restrict candidates to

        Returns:
            ScoredMemory list sorted by non-increasing score
        """

        if k <= 0:
            return []

        df_snapshot = dict(self._df)
        total = len(self._records) or 1
        query_vec = self.tfidf(term_frequencies(tokenize(query)), df=df_snapshot, total=total)

        scored: List[ScoredMemory] = []
        for record in self._records:
            if types is not None and record.memory_type not in types:
                continue

            record_vec = self.tfidf(record.term_counts(), df=df_snapshot, total=total)
            relevance = cosine_sparse(query_vec, record_vec)
            recency = recency_score(record.timestamp, now)
            importance = record.importance / 10.0

            scored.append(
                ScoredMemory(
                    record=record,
                    score=relevance + recency + importance,
                    relevance=relevance,
                    recency=recency,
                    importance=importance,
                )
            )

        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:k]

    def recent(self, n: int = 10) -> List[MemoryRecord]:
        """Return the last ``n`` records in insertion order."""

        if n <= 0:
            return []
        return self._records[-n:]
