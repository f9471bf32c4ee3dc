"""logslim: compress noisy logs into deduplicated event clusters.

Features:
- Event segmentation with secret redaction, stack-trace folding and templates
- Importance scoring and priority-ordered categorization
- Flat adaptive clustering (exact signature, edit distance, weighted Jaccard)
- Hierarchical clustering over a MinHash/LSH neighbour index
- Per-run LRU caches for tokens, structural matches and scores
- Optional process pool for MinHash computation
"""
from logslim.cluster import FlatAdaptiveStrategy, HierarchicalStrategy, build_clusters, iter_clusters
from logslim.config import Config, load_config
from logslim.events import split_into_events
from logslim.pipeline import PipelineResult, RunOptions, cluster_log, run_pipeline
from logslim.types import AdaptiveThresholds, BatchProgress, Cluster, LogEvent
from logslim.workers import WorkerPool

__version__ = "0.3.0"

__all__ = [
    "AdaptiveThresholds", "BatchProgress", "Cluster", "Config", "FlatAdaptiveStrategy",
    "HierarchicalStrategy", "LogEvent", "PipelineResult", "RunOptions", "WorkerPool",
    "build_clusters", "cluster_log", "iter_clusters", "load_config", "run_pipeline",
    "split_into_events",
]
