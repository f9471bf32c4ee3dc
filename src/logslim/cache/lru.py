"""LRU memoization used by a single clustering invocation.

Three independent caches wrap the hot spots of clustering:
  - TokenizationCache: text -> token list
  - StructuralMatchCache: (sig_a, sig_b) sorted pair -> bool
  - ScoreCache: SHA-256 of event lines -> score

They are owned by RunCaches, created fresh for every pipeline run and never
shared between concurrent runs, so none of them needs a lock.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Generic, Hashable, List, Optional, Sequence, TypeVar

from logslim.config import CacheConfig
from logslim.similarity.structural import (
    StructuralProfile,
    profiles_should_cluster,
    structural_profile,
)
from logslim.token.tokenizer import tokenize
from logslim.utils import content_hash

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheStats:
    size: int
    maxsize: int
    hits: int
    misses: int
    evictions: int

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total if self.total else 0.0

    def as_dict(self) -> Dict[str, float]:
        d = asdict(self)
        d["hit_rate"] = round(self.hit_rate, 4)
        return d


class LRUCache(Generic[K, V]):
    """Bounded memo: get() returns the cached value or computes and inserts it.

    The most recently used entry sits at the end of the OrderedDict; when the
    cache grows past maxsize the entry at the front is evicted.
    """

    def __init__(self, maxsize: int, compute: Optional[Callable[[K], V]] = None) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self._compute = compute
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: K, compute: Optional[Callable[[K], V]] = None) -> V:
        value = self._data.get(key, _MISSING)
        if value is not _MISSING:
            self._data.move_to_end(key)
            self.hits += 1
            return value  # type: ignore[return-value]
        self.misses += 1
        fn = compute or self._compute
        if fn is None:
            raise KeyError(key)
        value = fn(key)
        self.put(key, value)
        return value

    def put(self, key: K, value: V) -> None:
        self._data[key] = value
        self._data.move_to_end(key)
        while len(self._data) > self.maxsize:
            self._data.popitem(last=False)
            self.evictions += 1

    def peek(self, key: K, default: Optional[V] = None) -> Optional[V]:
        """Read without touching recency or counters."""
        return self._data.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> List[K]:
        """Keys from least to most recently used."""
        return list(self._data.keys())

    def clear(self) -> None:
        self._data.clear()
        self.hits = self.misses = self.evictions = 0

    def stats(self) -> CacheStats:
        return CacheStats(len(self._data), self.maxsize, self.hits, self.misses, self.evictions)


class TokenizationCache:
    def __init__(self, tokenizer: Callable[[str], List[str]] = tokenize, maxsize: int = 5000) -> None:
        self.tokenizer = tokenizer
        self._cache: LRUCache[str, List[str]] = LRUCache(maxsize, tokenizer)

    def tokens(self, text: str) -> List[str]:
        if not text:
            return []
        return self._cache.get(text)

    def stats(self) -> CacheStats:
        return self._cache.stats()

    def clear(self) -> None:
        self._cache.clear()


class StructuralMatchCache:
    """Memoizes should-cluster-by-structure decisions for signature pairs."""

    def __init__(self, maxsize: int = 1000) -> None:
        self._pairs: LRUCache[tuple, bool] = LRUCache(maxsize)
        # per-text pattern profiles, so a pair miss costs set operations only
        self._profiles: LRUCache[str, StructuralProfile] = LRUCache(maxsize * 2, structural_profile)

    def should_cluster(self, a: str, b: str) -> bool:
        if not a or not b:
            return False
        key = (a, b) if a <= b else (b, a)
        return self._pairs.get(
            key, lambda k: profiles_should_cluster(self._profiles.get(k[0]), self._profiles.get(k[1]))
        )

    def profile(self, text: str) -> StructuralProfile:
        return self._profiles.get(text)

    def stats(self) -> CacheStats:
        return self._pairs.stats()

    def clear(self) -> None:
        self._pairs.clear()
        self._profiles.clear()


class ScoreCache:
    """Score memo keyed by content hash, so identical events score once."""

    def __init__(self, scorer: Callable[[Sequence[str]], float], maxsize: int = 2000) -> None:
        self.scorer = scorer
        self._cache: LRUCache[str, float] = LRUCache(maxsize)

    def score(self, lines: Sequence[str]) -> float:
        return self._cache.get(content_hash(lines), lambda _key: self.scorer(lines))

    def stats(self) -> CacheStats:
        return self._cache.stats()

    def clear(self) -> None:
        self._cache.clear()


@dataclass
class RunCaches:
    tokens: TokenizationCache
    structure: StructuralMatchCache
    scores: Optional[ScoreCache] = None

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        scorer: Optional[Callable[[Sequence[str]], float]] = None,
        tokenizer: Callable[[str], List[str]] = tokenize,
    ) -> "RunCaches":
        return cls(
            tokens=TokenizationCache(tokenizer, config.tokenization_size),
            structure=StructuralMatchCache(config.structural_size),
            scores=ScoreCache(scorer, config.score_size) if scorer is not None else None,
        )

    def stats(self) -> Dict[str, Dict[str, float]]:
        out = {
            "tokenization": self.tokens.stats().as_dict(),
            "structural": self.structure.stats().as_dict(),
        }
        if self.scores is not None:
            out["score"] = self.scores.stats().as_dict()
        return out

    def clear(self) -> None:
        self.tokens.clear()
        self.structure.clear()
        if self.scores is not None:
            self.scores.clear()
