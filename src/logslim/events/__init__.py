"""Event segmentation and scoring."""
from logslim.events.scoring import ScoringRules, compute_event_score, line_score
from logslim.events.segmenter import (
    SegmenterRules,
    apply_placeholders,
    build_template,
    categorize,
    create_event,
    event_boundary,
    fold_stack_trace,
    is_noise,
    is_stack_frame,
    normalize_line,
    redact_sensitive,
    split_into_events,
    structural_signature,
)

__all__ = [
    "ScoringRules", "SegmenterRules", "apply_placeholders", "build_template",
    "categorize", "compute_event_score", "create_event", "event_boundary",
    "fold_stack_trace", "is_noise", "is_stack_frame", "line_score",
    "normalize_line", "redact_sensitive", "split_into_events",
    "structural_signature",
]
