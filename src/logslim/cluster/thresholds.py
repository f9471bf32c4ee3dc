"""Adaptive similarity thresholds scaled to the size and shape of one run."""
from __future__ import annotations

from typing import Optional, Sequence

from logslim.config import AdaptiveConfig
from logslim.types import AdaptiveThresholds, LogEvent


def compute_adaptive_thresholds(
    events: Sequence[LogEvent], config: Optional[AdaptiveConfig] = None
) -> AdaptiveThresholds:
    """Scale the base thresholds by dataset size and average signature length.

    Small datasets and short signatures loosen matching; large datasets and
    long signatures tighten it. Both multipliers apply to all three values.
    """
    config = config or AdaptiveConfig()
    total = len(events)
    avg_length = sum(len(e.key) for e in events) / total if total else 0.0

    multiplier = 1.0
    if total <= config.small_dataset_threshold:
        multiplier *= config.small_dataset_multiplier
    elif total >= config.medium_dataset_threshold:
        multiplier *= config.large_dataset_multiplier

    if avg_length <= config.short_log_threshold:
        multiplier *= config.short_log_multiplier
    else:
        multiplier *= config.long_log_multiplier

    return AdaptiveThresholds(
        distance_threshold=config.base_distance_threshold * multiplier,
        distance_strict=config.base_distance_strict * multiplier,
        jaccard_threshold=min(1.0, config.base_jaccard_threshold * multiplier),
        avg_length=avg_length,
        total_events=total,
    )
