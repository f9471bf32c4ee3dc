"""Tests for the clustering driver and strategies."""
import time

import pytest

from logslim.bench.datasets import synthetic_log
from logslim.cache.lru import RunCaches
from logslim.cluster.engine import build_clusters, iter_clusters
from logslim.cluster.flat import FlatAdaptiveStrategy
from logslim.cluster.hierarchical import HierarchicalStrategy
from logslim.cluster.thresholds import compute_adaptive_thresholds
from logslim.config import AdaptiveConfig, CacheConfig, ClusteringConfig, HierarchicalConfig
from logslim.events.segmenter import split_into_events
from logslim.exceptions import PipelineTimeoutError
from logslim.pipeline import RunOptions, run_pipeline
from logslim.types import AdaptiveThresholds, Cluster, merge_template_line
from logslim.utils import Deadline

LOOSE = AdaptiveThresholds(distance_threshold=0.2, distance_strict=0.05, jaccard_threshold=0.5,
                           avg_length=35.0, total_events=3)


def _events(*lines):
    events = split_into_events("\n".join(lines))
    for i, event in enumerate(events):
        event.tag_order(i)
    return events


def _membership(clusters):
    return [[e.order for e in c.events] for c in clusters]


class TestThresholds:
    def test_small_short_dataset_loosens(self):
        events = _events("[a] x", "[b] y")
        t = compute_adaptive_thresholds(events)
        assert t.total_events == 2
        assert t.distance_threshold == pytest.approx(0.01 * 1.2 * 1.3)
        assert t.distance_strict == pytest.approx(0.001 * 1.2 * 1.3)
        assert t.jaccard_threshold == 1.0  # 0.99 * 1.56 capped

    def test_large_long_dataset_tightens(self):
        lines = [f"[svc] a fairly long message number {i} about the cache layer" for i in range(200)]
        t = compute_adaptive_thresholds(_events(*lines), AdaptiveConfig())
        assert t.total_events == 200
        assert t.avg_length > 20
        assert t.distance_threshold == pytest.approx(0.01 * 0.4 * 0.7)
        assert t.jaccard_threshold == pytest.approx(0.99 * 0.4 * 0.7)


class TestClusterModel:
    def test_merge_template_line(self):
        assert merge_template_line("User {USER} logged in", "User {USER} logged out") == "User {USER} logged {*}"
        assert merge_template_line("a b", "a b c") == "a b"

    def test_copy_on_write(self):
        a, b = _events("ERROR: db at 10.0.0.1:5432 down", "ERROR: db at 10.0.0.1:5432 down")
        cluster = Cluster(a.key, a)
        cluster.add(a)
        cluster.add(b)
        assert not cluster.is_materialized
        assert cluster.placeholders == a.placeholders

    def test_materializes_on_new_value(self):
        a, b = _events("ERROR: db at 10.0.0.1:5432 down", "ERROR: db at 10.0.0.2:5432 down")
        cluster = Cluster(a.key, a)
        cluster.add(a)
        cluster.add(b)
        assert cluster.is_materialized
        assert cluster.placeholder_values("{IP}") == {"10.0.0.1", "10.0.0.2"}
        assert a.placeholders["{IP}"] == frozenset({"10.0.0.1"})

    def test_primary_category_promoted_only_when_overtaken(self):
        net, auth1, auth2 = _events("ERROR: socket closed", "ERROR: login rejected", "ERROR: login expired")
        cluster = Cluster("k", net)
        cluster.add(net)
        cluster.add(auth1)
        assert cluster.primary_category == "Network"
        cluster.add(auth2)
        assert cluster.primary_category == "Authentication"


class TestDriver:
    def test_yields_progress_per_batch(self, refused_text):
        events = _events(*refused_text.splitlines())
        strategy = FlatAdaptiveStrategy(compute_adaptive_thresholds(events))
        gen = iter_clusters(events, strategy, RunCaches.from_config(CacheConfig()), batch_size=2)
        progress = []
        while True:
            try:
                progress.append(next(gen))
            except StopIteration as done:
                clusters = done.value
                break
        assert [p.processed for p in progress] == [2, 3]
        assert progress[-1].total_batches == 2
        assert list(clusters) == [events[0].key]

    def test_deadline_checked_between_batches(self, refused_text):
        events = _events(*refused_text.splitlines())
        strategy = FlatAdaptiveStrategy(compute_adaptive_thresholds(events))
        with pytest.raises(PipelineTimeoutError):
            build_clusters(events, strategy, batch_size=1, deadline=Deadline(0.0))

    def test_deadline_checked_after_last_batch(self, refused_text, manual_deadline):
        events = _events(*refused_text.splitlines())
        strategy = FlatAdaptiveStrategy(compute_adaptive_thresholds(events))
        with pytest.raises(PipelineTimeoutError, match=r"during clustering \(elapsed"):
            build_clusters(events, strategy, batch_size=50, deadline=manual_deadline(1.0))
        assert not strategy.initialized

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            build_clusters([], FlatAdaptiveStrategy(LOOSE), batch_size=0)

    def test_sorted_by_size(self):
        events = _events("[a] one thing", "[b] other thing here now", "[a] one thing")
        clusters = build_clusters(events, FlatAdaptiveStrategy(compute_adaptive_thresholds(events)))
        assert [c.size for c in clusters] == [2, 1]


class TestFlatStrategy:
    def test_connection_refused_scenario(self, refused_text):
        events = _events(*refused_text.splitlines())
        clusters = build_clusters(events, FlatAdaptiveStrategy(compute_adaptive_thresholds(events)))
        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.size == 3
        assert len(cluster.placeholder_values("{IP}")) == 3
        assert len(cluster.placeholder_values("{PORT}")) == 3
        assert cluster.template_lines == ("ERROR: connection refused to db at {IP}:{PORT}",)

    def test_similar_signature_joins(self):
        events = _events("[svc] cache warmed for region north",
                         "[svc] cache warmed for region south")
        strategy = FlatAdaptiveStrategy(LOOSE)
        clusters = build_clusters(events, strategy)
        assert len(clusters) == 1
        assert strategy.stats()["similar"] == 1
        assert clusters[0].template_lines == ("[svc] cache warmed for region {*}",)

    def test_recent_window_is_bounded(self):
        lines = ["[svc] cache warmed for region north",
                 "[db] vacuum finished on table users",
                 "[svc] cache warmed for region south"]
        narrow = FlatAdaptiveStrategy(LOOSE, ClusteringConfig(cluster_sample_size=1))
        assert len(build_clusters(_events(*lines), narrow)) == 3
        wide = FlatAdaptiveStrategy(LOOSE)
        assert len(build_clusters(_events(*lines), wide)) == 2

    def test_candidate_scan_checks_deadline(self, manual_deadline):
        events = _events("[svc] cache warmed for region north",
                         "[svc] cache warmed for region south")
        with pytest.raises(PipelineTimeoutError, match="flat candidate scan"):
            build_clusters(events, FlatAdaptiveStrategy(LOOSE), deadline=manual_deadline(1.0))

    def test_membership_idempotent(self, toy_text):
        first = run_pipeline(toy_text)
        second = run_pipeline(toy_text)
        assert _membership(first.clusters) == _membership(second.clusters)

    def test_uninitialized_strategy(self):
        strategy = FlatAdaptiveStrategy(LOOSE)
        event = _events("[a] x")[0]
        with pytest.raises(RuntimeError):
            strategy.find_or_create_key({"other": Cluster("other", event)}, event)

    def test_synthetic_log_collapses(self, synthetic_text):
        start = time.monotonic()
        result = run_pipeline(synthetic_text, RunOptions(timeout=120))
        assert 0 < len(result.clusters) <= 60
        assert time.monotonic() - start < 120
        assert sum(c.size for c in result.clusters) == len(result.events)


class TestHierarchicalStrategy:
    def test_connection_refused_scenario(self, refused_text):
        events = _events(*refused_text.splitlines())
        clusters = build_clusters(events, HierarchicalStrategy())
        assert len(clusters) == 1
        assert clusters[0].size == 3
        assert clusters[0].level == 0
        assert len(clusters[0].placeholder_values("{IP}")) == 3

    def test_distinct_groups_stay_apart(self):
        events = _events("[svc] cache warmed for region north",
                         "[db] vacuum finished on table users",
                         "[svc] cache warmed for region north",
                         "[db] vacuum finished on table users")
        clusters = build_clusters(events, HierarchicalStrategy())
        assert _membership(clusters) == [[0, 2], [1, 3]]
        assert all(c.level == 0 for c in clusters)

    def test_lonely_seed_deferred_to_last_level(self):
        events = _events("[svc] cache warmed for region north",
                         "[svc] cache warmed for region north",
                         "[db] vacuum finished on table users")
        strategy = HierarchicalStrategy()
        clusters = build_clusters(events, strategy)
        levels = {tuple(e.order for e in c.events): c.level for c in clusters}
        assert levels == {(0, 1): 0, (2,): 2}
        assert strategy.stats()["clusters_per_level"] == [1, 0, 1]

    def test_seed_scan_checks_deadline(self, manual_deadline):
        config = HierarchicalConfig(levels=[{"distance_threshold": 0.1, "similarity_threshold": 0.9}])
        events = _events("[a] alpha beta", "[b] gamma delta")
        strategy = HierarchicalStrategy(config)
        with pytest.raises(PipelineTimeoutError, match="level 1 seed scan"):
            strategy.initialize(events, RunCaches.from_config(CacheConfig()), manual_deadline(2.0))

    def test_unknown_event_raises(self):
        strategy = HierarchicalStrategy()
        strategy.initialize(_events("[a] x"), RunCaches.from_config(CacheConfig()))
        with pytest.raises(KeyError):
            strategy.find_or_create_key({}, _events("[b] y")[0])

    def test_synthetic_subset(self):
        result = run_pipeline(synthetic_log(n_lines=1500, n_templates=20, seed=3),
                              RunOptions(hierarchical=True, timeout=120))
        assert 0 < len(result.clusters) <= 20
        assert result.strategy_stats["strategy"] == "hierarchical"

    def test_custom_levels(self):
        config = HierarchicalConfig(levels=[{"distance_threshold": 0.1, "similarity_threshold": 0.9}])
        events = _events("[a] alpha beta", "[b] gamma delta")
        clusters = build_clusters(events, HierarchicalStrategy(config))
        assert len(clusters) == 2
        assert {c.level for c in clusters} == {0}
