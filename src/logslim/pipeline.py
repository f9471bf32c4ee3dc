"""End-to-end entry point: text in, ordered clusters out.

    validate -> segment -> tag order -> score cutoffs -> validate events
    -> adaptive thresholds -> strategy -> batch driver
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional

from logslim.cache.lru import RunCaches
from logslim.cluster.engine import build_clusters
from logslim.cluster.flat import FlatAdaptiveStrategy
from logslim.cluster.hierarchical import HierarchicalStrategy
from logslim.cluster.strategy import ClusteringStrategy
from logslim.cluster.thresholds import compute_adaptive_thresholds
from logslim.config import Config, load_config
from logslim.events.scoring import compute_event_score
from logslim.events.segmenter import SegmenterRules, split_into_events
from logslim.token.tokenizer import tokenize, tokenize_basic
from logslim.types import OTHER, AdaptiveThresholds, Cluster, LogEvent
from logslim.utils import Deadline
from logslim.validation import InputValidator
from logslim.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    batch_size: Optional[int] = None   # defaults to config.clustering.batch_size
    hierarchical: bool = False
    timeout: Optional[float] = None    # seconds; defaults to config.timeout
    workers: bool = False              # hierarchical: own a pool built from config.workers


@dataclass
class PipelineResult:
    clusters: List[Cluster]
    events: List[LogEvent]
    thresholds: Optional[AdaptiveThresholds]
    cache_stats: Dict[str, Dict[str, float]] = field(default_factory=dict)
    strategy_stats: Dict[str, Any] = field(default_factory=dict)
    elapsed: float = 0.0


def passes_cutoff(event: LogEvent, config: Config) -> bool:
    if event.primary_category == OTHER:
        return event.score > config.cutoffs.other
    return event.score > config.cutoffs.non_other


def make_strategy(
    options: RunOptions,
    config: Config,
    thresholds: AdaptiveThresholds,
    pool: Optional[WorkerPool] = None,
) -> ClusteringStrategy:
    if options.hierarchical:
        return HierarchicalStrategy(config.clustering.hierarchical, config.index, pool)
    return FlatAdaptiveStrategy(thresholds, config.clustering)


def run_pipeline(
    text: str,
    options: Optional[RunOptions] = None,
    config: Optional[Config] = None,
    pool: Optional[WorkerPool] = None,
) -> PipelineResult:
    options = options or RunOptions()
    config = config or load_config()
    deadline = Deadline(options.timeout if options.timeout is not None else config.timeout)
    validator = InputValidator(config.limits)

    size_mb = validator.validate_log_input(text)
    if not text.strip():
        return PipelineResult(clusters=[], events=[], thresholds=None, elapsed=deadline.elapsed)

    rules = SegmenterRules.from_config(config.segmenter)
    tokenizer = tokenize if config.clustering.enhanced_tokenization else tokenize_basic
    caches = RunCaches.from_config(
        config.caches, scorer=partial(compute_event_score, rules=rules.scoring), tokenizer=tokenizer)

    events = split_into_events(text, score_cache=caches.scores, deadline=deadline, rules=rules)
    for order, event in enumerate(events):
        event.tag_order(order)
    kept = [e for e in events if passes_cutoff(e, config)]
    validator.validate_events(kept)
    deadline.check("segmentation")

    thresholds = compute_adaptive_thresholds(kept, config.clustering.adaptive)
    owned_pool: Optional[WorkerPool] = None
    if options.hierarchical and options.workers and pool is None:
        pool = owned_pool = WorkerPool.from_config(config.workers)
    try:
        strategy = make_strategy(options, config, thresholds, pool)
        logger.info("%.2fMB -> %d events (%d after cutoffs), strategy=%s",
                    size_mb, len(events), len(kept), strategy.name)
        clusters = build_clusters(
            kept, strategy, caches,
            batch_size=options.batch_size or config.clustering.batch_size,
            deadline=deadline,
        )
    finally:
        if owned_pool is not None:
            owned_pool.close()
    deadline.check("result assembly")
    result = PipelineResult(
        clusters=clusters,
        events=kept,
        thresholds=thresholds,
        cache_stats=caches.stats(),
        strategy_stats=strategy.stats(),
        elapsed=deadline.elapsed,
    )
    logger.info("%d clusters in %.2fs", len(clusters), result.elapsed)
    logger.debug("cache stats: %s", result.cache_stats)
    caches.clear()
    return result


def cluster_log(
    text: str,
    options: Optional[RunOptions] = None,
    config: Optional[Config] = None,
    pool: Optional[WorkerPool] = None,
) -> List[Cluster]:
    return run_pipeline(text, options, config, pool).clusters
