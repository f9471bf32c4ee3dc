"""Tests for configuration loading and malformed-entry handling."""
import pytest

from logslim.config import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_NOISE_PATTERNS,
    Config,
    IndexConfig,
    SegmenterConfig,
    load_config,
)
from logslim.exceptions import ConfigError


class TestDefaults:
    def test_default_values(self, config):
        assert config.clustering.batch_size == 50
        assert config.index.num_perm == config.index.bands * config.index.rows == 100
        assert [lv.similarity_threshold for lv in config.clustering.hierarchical.levels] == [0.85, 0.70, 0.50]
        assert config.caches.tokenization_size == 5000
        assert config.limits.max_events == 50_000
        assert config.timeout == 90.0

    def test_placeholder_rules_compile(self, config):
        names = [r.placeholder for r in config.segmenter.placeholder_rules]
        assert names[:4] == ["{TIMESTAMP}", "{UUID}", "{IP}", "{PORT}"]
        for rule in config.segmenter.placeholder_rules:
            rule.compile()


class TestMalformedEntries:
    def test_bad_regex_dropped(self):
        cfg = SegmenterConfig(noise_patterns=["heartbeat", "([unclosed", 42])
        assert cfg.noise_patterns == ["heartbeat"]

    def test_all_bad_falls_back_to_defaults(self):
        cfg = SegmenterConfig(noise_patterns=["(", "["])
        assert cfg.noise_patterns == DEFAULT_NOISE_PATTERNS

    def test_bad_category_rule_dropped(self):
        cfg = SegmenterConfig(category_rules=[
            {"name": "Broken", "pattern": "(oops"},
            {"name": "Disk", "pattern": "disk full", "priority": 3},
        ])
        assert [r.name for r in cfg.category_rules] == ["Disk"]

    def test_category_rules_all_invalid(self):
        cfg = SegmenterConfig(category_rules=[{"pattern": "no name"}])
        assert len(cfg.category_rules) == len(DEFAULT_CATEGORY_RULES)

    def test_non_numeric_weights_dropped(self):
        cfg = SegmenterConfig(
            message_weights=[{"pattern": "boom", "weight": "heavy"}, {"pattern": "oops", "weight": 2}],
            status_weights={"500": "x", "404": 1},
        )
        assert [m.pattern for m in cfg.message_weights] == ["oops"]
        assert cfg.status_weights == {"404": 1.0}

    def test_placeholder_group_out_of_range_dropped(self):
        cfg = SegmenterConfig(placeholder_rules=[
            {"placeholder": "{X}", "pattern": "x(\\d+)", "group": 3},
            {"placeholder": "{Y}", "pattern": "y(\\d+)", "group": 1},
        ])
        assert [r.placeholder for r in cfg.placeholder_rules] == ["{Y}"]

    def test_latency_buckets_sorted(self):
        cfg = SegmenterConfig(latency_buckets=[{"min_ms": 900, "weight": 2}, {"min_ms": 100, "weight": 1}])
        assert [b.min_ms for b in cfg.latency_buckets] == [100, 900]

    def test_index_shape_repaired(self):
        assert IndexConfig(num_perm=64, bands=16, rows=4).num_perm == 64
        assert IndexConfig(num_perm=50, bands=20, rows=5).num_perm == 100


class TestLoading:
    def test_env_and_overrides_merge(self, monkeypatch):
        monkeypatch.setenv("LOGSLIM_CONFIG_JSON", '{"clustering": {"batch_size": 10, "max_checks_per_event": 7}}')
        cfg = load_config({"clustering": {"batch_size": 20}})
        assert cfg.clustering.batch_size == 20
        assert cfg.clustering.max_checks_per_event == 7

    def test_bad_env_json_ignored(self, monkeypatch):
        monkeypatch.setenv("LOGSLIM_CONFIG_JSON", "{not json")
        assert load_config().clustering.batch_size == 50

    def test_env_ignored_when_disabled(self, monkeypatch):
        monkeypatch.setenv("LOGSLIM_CONFIG_JSON", '{"timeout": 1}')
        assert load_config(use_env=False).timeout == 90.0

    def test_from_json(self):
        assert Config.from_json(b'{"timeout": null}').timeout is None
        with pytest.raises(ConfigError):
            Config.from_json("[1, 2]")
        with pytest.raises(ConfigError):
            Config.from_json("{broken")

    def test_default_noise(self):
        assert SegmenterConfig().noise_patterns == DEFAULT_NOISE_PATTERNS
