"""Greedy single-pass clustering with adaptive thresholds."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from logslim.cache.lru import RunCaches
from logslim.cluster.strategy import ClusteringStrategy
from logslim.config import ClusteringConfig
from logslim.similarity.metrics import jaccard, normalized_levenshtein, weighted_jaccard
from logslim.types import AdaptiveThresholds, Cluster, LogEvent
from logslim.utils import Deadline, last_n_keys

logger = logging.getLogger(__name__)


class FlatAdaptiveStrategy(ClusteringStrategy):
    """Exact signature hit first, then a bounded scan of recent clusters.

    Only the last `cluster_sample_size` cluster keys are candidates, and at
    most `max_checks_per_event` of them are examined, so an event similar to
    an old cluster can start a new one.
    """

    name = "flat"

    def __init__(self, thresholds: AdaptiveThresholds, config: Optional[ClusteringConfig] = None) -> None:
        super().__init__()
        config = config or ClusteringConfig()
        self.thresholds = thresholds
        self.sample_size = config.cluster_sample_size
        self.max_checks = config.max_checks_per_event
        self._similarity = weighted_jaccard if config.enhanced_tokenization else jaccard
        self.counters: Dict[str, int] = {"exact": 0, "structural": 0, "similar": 0, "created": 0}

    def initialize(
        self,
        events: Sequence[LogEvent],
        caches: Optional[RunCaches] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        super().initialize(events, caches, deadline)
        for key in self.counters:
            self.counters[key] = 0

    def _tokens(self, text: str) -> List[str]:
        return self.run_caches.tokens.tokens(text)

    def find_similar_key(self, clusters: Mapping[str, Cluster], key: str, category: str) -> Optional[str]:
        if not key or not clusters:
            return None
        caches = self.run_caches
        t = self.thresholds
        key_tokens: Optional[List[str]] = None
        best: Optional[str] = None
        best_distance = float("inf")
        best_jaccard = 0.0

        for checked, other in enumerate(last_n_keys(clusters, self.sample_size), 1):
            if checked > self.max_checks:
                break
            self.deadline.check("flat candidate scan")
            if clusters[other].primary_category != category:
                continue
            if caches.structure.should_cluster(key, other):
                self.counters["structural"] += 1
                return other

            distance = normalized_levenshtein(other, key, max_ratio=t.distance_threshold)
            if distance > t.distance_threshold:
                continue
            if key_tokens is None:
                key_tokens = self._tokens(key)
            similarity = self._similarity(key_tokens, self._tokens(other))
            if distance <= t.distance_strict or similarity >= t.jaccard_threshold:
                if best is None or distance < best_distance or (
                    distance == best_distance and similarity > best_jaccard
                ):
                    best, best_distance, best_jaccard = other, distance, similarity

        if best is not None:
            self.counters["similar"] += 1
        return best

    def find_or_create_key(self, clusters: Mapping[str, Cluster], event: LogEvent) -> str:
        key = event.key
        if key in clusters:
            self.counters["exact"] += 1
            return key
        similar = self.find_similar_key(clusters, key, event.primary_category)
        if similar is not None:
            return similar
        self.counters["created"] += 1
        return key

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update(self.counters)
        return out
