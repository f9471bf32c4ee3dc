"""Per-invocation LRU memoization."""
from logslim.cache.lru import (
    CacheStats,
    LRUCache,
    RunCaches,
    ScoreCache,
    StructuralMatchCache,
    TokenizationCache,
)

__all__ = [
    "CacheStats", "LRUCache", "RunCaches", "ScoreCache",
    "StructuralMatchCache", "TokenizationCache",
]
