"""Clustering engine: batch driver plus flat and hierarchical strategies."""
from logslim.cluster.engine import assign_event, build_clusters, iter_clusters
from logslim.cluster.flat import FlatAdaptiveStrategy
from logslim.cluster.hierarchical import HierarchicalStrategy
from logslim.cluster.strategy import ClusteringStrategy
from logslim.cluster.thresholds import compute_adaptive_thresholds

__all__ = [
    "ClusteringStrategy", "FlatAdaptiveStrategy", "HierarchicalStrategy",
    "assign_event", "build_clusters", "compute_adaptive_thresholds", "iter_clusters",
]
