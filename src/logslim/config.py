"""logslim configuration.

Everything the core consumes as data lives here: noise and placeholder rules,
category rules, score weights, adaptive threshold bases, cache sizes and the
MinHash/LSH shape. Malformed entries (bad regexes, non-numeric weights) are
dropped with a warning and the defaults fill in for anything left empty.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Callable

import orjson
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from logslim.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_VAR = "LOGSLIM_CONFIG_JSON"


# --- rule models ---

class PlaceholderRule(BaseModel):
    placeholder: str
    pattern: str
    group: int = 0               # capture group recorded as the value
    replacement: str | None = None  # re expand() template, defaults to the placeholder
    ignore_case: bool = True

    def compile(self) -> re.Pattern[str]:
        regex = re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)
        if self.group > regex.groups:
            raise ValueError(f"group {self.group} not in pattern with {regex.groups} groups")
        return regex


class CategoryRule(BaseModel):
    name: str
    pattern: str
    priority: int = 99

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE)


class MessageWeight(BaseModel):
    pattern: str
    weight: float
    label: str = ""
    ignore_case: bool = True

    def compile(self) -> re.Pattern[str]:
        return re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)


class LatencyBucket(BaseModel):
    min_ms: float = Field(ge=0)
    weight: float
    label: str = ""


DEFAULT_NOISE_PATTERNS = ["heartbeat", "healthcheck", "debug"]

DEFAULT_PLACEHOLDER_RULES = [
    {"placeholder": "{TIMESTAMP}",
     "pattern": r"\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?"},
    {"placeholder": "{UUID}",
     "pattern": r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b"},
    {"placeholder": "{IP}", "pattern": r"\b(?:\d{1,3}\.){3}\d{1,3}\b"},
    {"placeholder": "{PORT}", "pattern": r"(\{IP\}):(\d{1,5})\b", "group": 2,
     "replacement": r"\1:{PORT}"},
    {"placeholder": "{HEXID}", "pattern": r"\b0x[0-9a-f]+\b"},
    {"placeholder": "{SESSION}", "pattern": r"\b(session(?:_?id)?[=:]\s*)([\w-]+)", "group": 2,
     "replacement": r"\1{SESSION}"},
    {"placeholder": "{USER}", "pattern": r"\b(user(?:_?id)?[=:]\s*)([\w@.-]+)", "group": 2,
     "replacement": r"\1{USER}"},
    {"placeholder": "{ID}", "pattern": r"\b(id=)([0-9a-f-]+)", "group": 2,
     "replacement": r"\1{ID}"},
]

DEFAULT_CATEGORY_RULES = [
    {"name": "Authentication", "priority": 5,
     "pattern": r"auth|oauth|token|login|unauthorized|forbidden|credential"},
    {"name": "Network", "priority": 10,
     "pattern": r"timeout|network|ECONN|fetch failed|DNS|socket|connection"},
    {"name": "Performance", "priority": 12,
     "pattern": r"Violation|took \d+ms|performance|slow script|long task"},
    {"name": "Database", "priority": 15,
     "pattern": r"database|postgres|mongo|sql|prisma|query failed"},
    {"name": "Rate Limit", "priority": 20,
     "pattern": r"rate limit|too many requests|\b429\b"},
    {"name": "Error", "priority": 90,
     "pattern": r"error|exception|failed|unhandled rejection"},
]

DEFAULT_MESSAGE_WEIGHTS = [
    {"pattern": r"error|fail|exception|timed out|denied", "weight": 3, "label": "error-ish"},
    {"pattern": r"\[.*?ERROR.*?\]", "weight": 3, "label": "[ERROR] block"},
    {"pattern": r"warn|deprecated", "weight": 1, "label": "warn/deprecated"},
    {"pattern": r"\b(?:WORKFLOW_|EditorClient)", "weight": 1, "label": "workflow/editor"},
    {"pattern": r"authentication|unauthorized|permission", "weight": 1, "label": "auth"},
    {"pattern": r"access granted", "weight": -2, "label": "access granted (success)"},
]

DEFAULT_LATENCY_BUCKETS = [
    {"min_ms": 500, "weight": 1, "label": "latency>=500ms"},
    {"min_ms": 1000, "weight": 2, "label": "latency>=1000ms"},
    {"min_ms": 5000, "weight": 3, "label": "latency>=5000ms"},
]

DEFAULT_STATUS_WEIGHTS = {"2xx": -1.0, "4xx": 2.0, "5xx": 4.0, "401": 3.0, "403": 3.0, "404": 3.0}


def _keep_valid(
    raw: Any,
    model: type[BaseModel],
    default: list[dict[str, Any]],
    what: str,
    check: Callable[[Any], Any] | None = None,
) -> list[Any]:
    """Validate list entries one by one, dropping the ones that fail."""
    if raw is None:
        return [model.model_validate(d) for d in default]
    if not isinstance(raw, (list, tuple)):
        logger.warning("%s: expected a list, got %s; using defaults", what, type(raw).__name__)
        return [model.model_validate(d) for d in default]
    kept = []
    for entry in raw:
        try:
            item = entry if isinstance(entry, model) else model.model_validate(entry)
            if check is not None:
                check(item)
        except (ValidationError, re.error, TypeError, ValueError) as exc:
            logger.warning("%s: dropping malformed entry %r (%s)", what, entry, exc)
            continue
        kept.append(item)
    if not kept:
        logger.warning("%s: no valid entries left; using defaults", what)
        return [model.model_validate(d) for d in default]
    return kept


class SegmenterConfig(BaseModel):
    noise_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_NOISE_PATTERNS))
    placeholder_rules: list[PlaceholderRule] = Field(
        default_factory=lambda: [PlaceholderRule(**d) for d in DEFAULT_PLACEHOLDER_RULES])
    category_rules: list[CategoryRule] = Field(
        default_factory=lambda: [CategoryRule(**d) for d in DEFAULT_CATEGORY_RULES])
    message_weights: list[MessageWeight] = Field(
        default_factory=lambda: [MessageWeight(**d) for d in DEFAULT_MESSAGE_WEIGHTS])
    latency_buckets: list[LatencyBucket] = Field(
        default_factory=lambda: [LatencyBucket(**d) for d in DEFAULT_LATENCY_BUCKETS])
    status_weights: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_STATUS_WEIGHTS))
    stack_preview_frames: int = 0
    compress_threshold: int = 2048  # bytes of raw event text before zstd kicks in

    @field_validator("noise_patterns", mode="before")
    @classmethod
    def _noise(cls, v: Any) -> list[str]:
        if not isinstance(v, (list, tuple)):
            return list(DEFAULT_NOISE_PATTERNS)
        kept = []
        for p in v:
            if not isinstance(p, str):
                logger.warning("noise_patterns: dropping non-string pattern %r", p)
                continue
            try:
                re.compile(p)
            except re.error as exc:
                logger.warning("noise_patterns: dropping invalid regex %r (%s)", p, exc)
                continue
            kept.append(p)
        return kept or list(DEFAULT_NOISE_PATTERNS)

    @field_validator("placeholder_rules", mode="before")
    @classmethod
    def _placeholders(cls, v: Any) -> list[PlaceholderRule]:
        return _keep_valid(v, PlaceholderRule, DEFAULT_PLACEHOLDER_RULES, "placeholder_rules",
                           check=lambda r: r.compile())

    @field_validator("category_rules", mode="before")
    @classmethod
    def _categories(cls, v: Any) -> list[CategoryRule]:
        return _keep_valid(v, CategoryRule, DEFAULT_CATEGORY_RULES, "category_rules",
                           check=lambda r: r.compile())

    @field_validator("message_weights", mode="before")
    @classmethod
    def _messages(cls, v: Any) -> list[MessageWeight]:
        return _keep_valid(v, MessageWeight, DEFAULT_MESSAGE_WEIGHTS, "message_weights",
                           check=lambda r: r.compile())

    @field_validator("latency_buckets", mode="before")
    @classmethod
    def _latency(cls, v: Any) -> list[LatencyBucket]:
        buckets = _keep_valid(v, LatencyBucket, DEFAULT_LATENCY_BUCKETS, "latency_buckets")
        return sorted(buckets, key=lambda b: b.min_ms)

    @field_validator("status_weights", mode="before")
    @classmethod
    def _status(cls, v: Any) -> dict[str, float]:
        if not isinstance(v, dict):
            return dict(DEFAULT_STATUS_WEIGHTS)
        kept: dict[str, float] = {}
        for code, weight in v.items():
            try:
                kept[str(code)] = float(weight)
            except (TypeError, ValueError):
                logger.warning("status_weights: dropping non-numeric weight %r for %s", weight, code)
        return kept or dict(DEFAULT_STATUS_WEIGHTS)


class AdaptiveConfig(BaseModel):
    base_distance_threshold: float = 0.01
    base_distance_strict: float = 0.001
    base_jaccard_threshold: float = 0.99
    small_dataset_threshold: int = 50
    medium_dataset_threshold: int = 200
    small_dataset_multiplier: float = 1.2
    large_dataset_multiplier: float = 0.4
    short_log_threshold: int = 20
    short_log_multiplier: float = 1.3
    long_log_multiplier: float = 0.7


class LevelConfig(BaseModel):
    distance_threshold: float
    similarity_threshold: float


class HierarchicalConfig(BaseModel):
    levels: list[LevelConfig] = Field(default_factory=lambda: [
        LevelConfig(distance_threshold=0.15, similarity_threshold=0.85),
        LevelConfig(distance_threshold=0.25, similarity_threshold=0.70),
        LevelConfig(distance_threshold=0.40, similarity_threshold=0.50),
    ])
    structural_bonus_high: float = 0.9
    structural_bonus_medium: float = 0.7
    pool_batch_size: int = 200  # event signatures per worker task


class ClusteringConfig(BaseModel):
    batch_size: int = Field(default=50, ge=1)
    cluster_sample_size: int = Field(default=200, ge=1)
    max_checks_per_event: int = Field(default=50, ge=1)
    enhanced_tokenization: bool = True
    adaptive: AdaptiveConfig = Field(default_factory=AdaptiveConfig)
    hierarchical: HierarchicalConfig = Field(default_factory=HierarchicalConfig)


class CacheConfig(BaseModel):
    tokenization_size: int = Field(default=5000, ge=1)
    structural_size: int = Field(default=1000, ge=1)
    score_size: int = Field(default=2000, ge=1)


class IndexConfig(BaseModel):
    num_perm: int = Field(default=100, ge=1)
    bands: int = Field(default=20, ge=1)
    rows: int = Field(default=5, ge=1)
    seed: int = 1

    @model_validator(mode="after")
    def _shape(self) -> "IndexConfig":
        if self.bands * self.rows != self.num_perm:
            logger.warning(
                "index: bands*rows (%d*%d) != num_perm (%d); using num_perm=%d",
                self.bands, self.rows, self.num_perm, self.bands * self.rows,
            )
            self.num_perm = self.bands * self.rows
        return self


class WorkerConfig(BaseModel):
    size: int | None = None
    mp_context: str = "spawn"
    max_inflight_per_worker: int = Field(default=2, ge=1)
    max_retries: int = Field(default=1, ge=0)


class InputLimits(BaseModel):
    max_log_size_mb: float = 100.0
    max_events: int = 50_000
    max_event_chars: int = 1_000_000


class ScoreCutoffs(BaseModel):
    non_other: float = -1.0
    other: float = 0.0


class Config(BaseModel):
    segmenter: SegmenterConfig = Field(default_factory=SegmenterConfig)
    clustering: ClusteringConfig = Field(default_factory=ClusteringConfig)
    caches: CacheConfig = Field(default_factory=CacheConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    workers: WorkerConfig = Field(default_factory=WorkerConfig)
    limits: InputLimits = Field(default_factory=InputLimits)
    cutoffs: ScoreCutoffs = Field(default_factory=ScoreCutoffs)
    timeout: float | None = 90.0

    @classmethod
    def from_json(cls, data: str | bytes) -> "Config":
        try:
            raw = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise ConfigError(f"invalid config JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError("config JSON must be an object")
        return cls.model_validate(raw)


def _deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _env_overrides() -> dict[str, Any]:
    raw = os.environ.get(ENV_VAR)
    if not raw:
        return {}
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        logger.warning("failed to parse %s: %s", ENV_VAR, exc)
        return {}
    return value if isinstance(value, dict) else {}


def load_config(overrides: dict[str, Any] | None = None, *, use_env: bool = True) -> Config:
    """Build a Config from defaults, LOGSLIM_CONFIG_JSON and explicit overrides."""
    merged: dict[str, Any] = {}
    if use_env:
        merged = _deep_merge(merged, _env_overrides())
    if overrides:
        merged = _deep_merge(merged, overrides)
    return Config.model_validate(merged)
