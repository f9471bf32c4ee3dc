"""Batch driver shared by all strategies."""
from __future__ import annotations

import logging
from typing import Dict, Generator, List, Optional, Sequence

from logslim.cache.lru import RunCaches
from logslim.cluster.strategy import ClusteringStrategy
from logslim.types import BatchProgress, Cluster, LogEvent
from logslim.utils import Deadline

logger = logging.getLogger(__name__)

ClusterMap = Dict[str, Cluster]


def assign_event(clusters: ClusterMap, strategy: ClusteringStrategy, event: LogEvent) -> Cluster:
    key = strategy.find_or_create_key(clusters, event)
    cluster = clusters.get(key)
    if cluster is None:
        cluster = Cluster(key, event)
        clusters[key] = cluster
    cluster.add(event)
    strategy.update_metadata(cluster, event)
    return cluster


def iter_clusters(
    events: Sequence[LogEvent],
    strategy: ClusteringStrategy,
    caches: Optional[RunCaches] = None,
    batch_size: int = 50,
    deadline: Optional[Deadline] = None,
) -> Generator[BatchProgress, None, ClusterMap]:
    """Cluster events batch by batch, yielding progress after each batch.

    The generator's return value is the key -> Cluster map in creation order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    deadline = deadline or Deadline(None)
    clusters: ClusterMap = {}
    total = len(events)
    total_batches = (total + batch_size - 1) // batch_size

    strategy.initialize(events, caches, deadline)
    try:
        for batch_no, start in enumerate(range(0, total, batch_size), 1):
            deadline.check(f"clustering batch {batch_no}/{total_batches}")
            for event in events[start:start + batch_size]:
                assign_event(clusters, strategy, event)
            progress = BatchProgress(
                batch=batch_no,
                total_batches=total_batches,
                processed=min(start + batch_size, total),
                clusters=len(clusters),
                elapsed=deadline.elapsed,
            )
            logger.debug("batch %d/%d: %d events, %d clusters",
                         batch_no, total_batches, progress.processed, progress.clusters)
            yield progress
        deadline.check("clustering")
    finally:
        strategy.cleanup()
    return clusters


def build_clusters(
    events: Sequence[LogEvent],
    strategy: ClusteringStrategy,
    caches: Optional[RunCaches] = None,
    batch_size: int = 50,
    deadline: Optional[Deadline] = None,
) -> List[Cluster]:
    """Run iter_clusters to completion; clusters sorted by size, largest first."""
    gen = iter_clusters(events, strategy, caches, batch_size, deadline)
    while True:
        try:
            next(gen)
        except StopIteration as done:
            clusters = done.value
            break
    return sorted(clusters.values(), key=lambda c: -c.size)
