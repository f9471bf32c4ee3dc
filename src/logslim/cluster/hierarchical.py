"""Multi-level clustering over a MinHash/LSH neighbour index.

All assignments are computed up front in initialize(): one LSH index over
the MinHash signatures of every event signature, then one pass per level,
strictest first. A pass takes the first unassigned event as seed, pulls its
LSH neighbours that are still unassigned, and keeps those whose combined
similarity reaches the level's threshold. A seed nobody joins goes back to
the pool for the next, looser level; the last level keeps it as a
singleton. Clusters formed at one level are never reopened.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from logslim.cache.lru import RunCaches
from logslim.cluster.strategy import ClusteringStrategy
from logslim.config import HierarchicalConfig, IndexConfig, LevelConfig
from logslim.exceptions import PipelineTimeoutError, WorkerError
from logslim.index.lsh import LSHIndex
from logslim.index.minhash import MinHash
from logslim.similarity.metrics import jaccard, normalized_levenshtein
from logslim.similarity.structural import profile_similarity
from logslim.token.tokenizer import tokenize_basic
from logslim.types import Cluster, LogEvent
from logslim.utils import Deadline
from logslim.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


class HierarchicalStrategy(ClusteringStrategy):
    name = "hierarchical"

    def __init__(
        self,
        config: Optional[HierarchicalConfig] = None,
        index_config: Optional[IndexConfig] = None,
        pool: Optional[WorkerPool] = None,
    ) -> None:
        super().__init__()
        self.config = config or HierarchicalConfig()
        self.index_config = index_config or IndexConfig()
        self.pool = pool
        self.minhash = MinHash(self.index_config.num_perm, self.index_config.seed)
        self._assigned: Dict[LogEvent, Tuple[str, int]] = {}
        self.level_counts: List[int] = [0] * len(self.config.levels)
        self.counters: Dict[str, int] = {"pool_batches": 0, "inline_batches": 0, "fallback_batches": 0}
        self.index_stats: Dict[str, float] = {}

    # --- signatures ---

    def _inline(self, texts: Sequence[str]) -> np.ndarray:
        return self.minhash.signatures([tokenize_basic(t) for t in texts])

    def compute_signatures(self, texts: Sequence[str], deadline: Optional[Deadline] = None) -> np.ndarray:
        """Signature matrix in text order, offloading batches to the pool when one is set."""
        deadline = deadline or Deadline(None)
        step = max(1, self.config.pool_batch_size)
        spans = [(start, min(start + step, len(texts))) for start in range(0, len(texts), step)]
        out = np.empty((len(texts), self.minhash.num_perm), dtype=np.uint64)

        if self.pool is None or self.pool.closed or len(spans) < 2:
            for start, end in spans:
                deadline.check("minhash signatures")
                out[start:end] = self._inline(texts[start:end])
                self.counters["inline_batches"] += 1
            return out

        futures: List[Tuple[int, int, Future]] = []
        for start, end in spans:
            payload = {"texts": list(texts[start:end]),
                       "num_perm": self.minhash.num_perm, "seed": self.minhash.seed}
            futures.append((start, end, self.pool.run("compute_signatures", payload)))

        for start, end, future in futures:
            try:
                block = future.result(timeout=deadline.remaining())
            except FutureTimeoutError as exc:
                for _start, _end, pending in futures:
                    pending.cancel()
                raise PipelineTimeoutError(
                    f"timed out waiting for signature batch {start}:{end}") from exc
            except WorkerError as exc:
                logger.warning("signature batch %d:%d failed in pool (%s); computing inline",
                               start, end, exc)
                deadline.check("minhash signatures")
                out[start:end] = self._inline(texts[start:end])
                self.counters["fallback_batches"] += 1
                continue
            out[start:end] = block
            self.counters["pool_batches"] += 1
        return out

    # --- similarity ---

    def combined_similarity(self, a: str, b: str, level: LevelConfig) -> float:
        """Structural bonus when the shapes agree, else 0.6*(1-d) + 0.4*jaccard."""
        structure = self.run_caches.structure
        if structure.should_cluster(a, b):
            return self.config.structural_bonus_high
        shape = profile_similarity(structure.profile(a), structure.profile(b))
        if shape >= 0.8:
            return self.config.structural_bonus_high
        if shape >= 0.6:
            return self.config.structural_bonus_medium

        distance = normalized_levenshtein(a, b, max_ratio=level.distance_threshold)
        if distance > level.distance_threshold:
            return 0.0
        overlap = jaccard(tokenize_basic(a), tokenize_basic(b))
        return 0.6 * max(0.0, 1.0 - distance) + 0.4 * overlap

    # --- strategy interface ---

    def initialize(
        self,
        events: Sequence[LogEvent],
        caches: Optional[RunCaches] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        super().initialize(events, caches, deadline)
        deadline = self.deadline
        self._assigned.clear()
        self.level_counts = [0] * len(self.config.levels)
        if not events:
            return

        texts = [e.key for e in events]
        signatures = self.compute_signatures(texts, deadline)
        index = LSHIndex(self.index_config.bands, self.index_config.rows)
        for i, sig in enumerate(signatures):
            index.add(i, sig)
        self.index_stats = index.stats()

        used_keys: Dict[str, int] = {}
        pool: List[int] = list(range(len(events)))
        last = len(self.config.levels) - 1

        for level_no, level in enumerate(self.config.levels):
            deadline.check(f"hierarchical level {level_no + 1}")
            unassigned = dict.fromkeys(pool)
            returned: List[int] = []
            lsh_threshold = min(level.distance_threshold, level.similarity_threshold)

            stage = f"hierarchical level {level_no + 1} seed scan"
            while unassigned:
                deadline.check(stage)
                seed = next(iter(unassigned))
                del unassigned[seed]
                members = [seed]
                for j, _estimate in index.query(signatures[seed], lsh_threshold):
                    if j not in unassigned:
                        continue
                    deadline.check(stage)
                    if self.combined_similarity(texts[seed], texts[j], level) >= level.similarity_threshold:
                        members.append(j)
                        del unassigned[j]

                if len(members) == 1 and level_no < last:
                    returned.append(seed)
                    continue

                key = texts[seed]
                if key in used_keys:
                    used_keys[key] += 1
                    key = f"{key}#{used_keys[key]}"
                else:
                    used_keys[key] = 1
                for m in members:
                    self._assigned[events[m]] = (key, level_no)
                self.level_counts[level_no] += 1

            pool = returned
            logger.debug("level %d: %d clusters, %d seeds deferred",
                         level_no + 1, self.level_counts[level_no], len(returned))

    def find_or_create_key(self, clusters: Mapping[str, Cluster], event: LogEvent) -> str:
        try:
            return self._assigned[event][0]
        except KeyError:
            raise KeyError("event was not part of the initialized event list") from None

    def update_metadata(self, cluster: Cluster, event: LogEvent) -> None:
        if cluster.level is None:
            cluster.level = self._assigned[event][1]

    def cleanup(self) -> None:
        super().cleanup()
        self._assigned.clear()

    def stats(self) -> Dict[str, Any]:
        out = super().stats()
        out.update(self.counters)
        out["clusters_per_level"] = list(self.level_counts)
        out["index"] = dict(self.index_stats)
        return out
