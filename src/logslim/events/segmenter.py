"""Split raw log text into scored, templated events.

An event is a run of lines opened by a structural marker (ISO date,
file:line, [tag], level keyword or leading HTTP verb). Each event is
cleaned up in a fixed order:

    drop noise/blank lines -> redact secrets -> fold stack frames
    -> score, template, signature, category

Events left with no informative lines are discarded.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from logslim.cache.lru import ScoreCache
from logslim.config import SegmenterConfig
from logslim.events.scoring import ScoringRules, compute_event_score
from logslim.mem.line_store import StoredLines
from logslim.types import OTHER, LogEvent
from logslim.utils import Deadline

logger = logging.getLogger(__name__)

NEWLINE = re.compile(r"\r?\n")

_BOUNDARY_MARKERS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^[A-Za-z0-9_.-]+:\d+"),
    re.compile(r"^\[[^\]]+\]"),
    re.compile(r"\b(?:Error|Exception|Warning|WARN|INFO|DEBUG|TRACE|ERROR|FATAL|CRITICAL)\b"),
    re.compile(r"^(?:GET|POST|PUT|DELETE|PATCH)\s"),
)

# secrets
_JWT = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")
_SECRET_ASSIGN = re.compile(r"\b(token|authorization|api_key|password|secret)=([^\s&,;]+)", re.I)
_LONG_HEX = re.compile(r"\b[0-9a-f]{16,}\b", re.I)
_API_KEY = re.compile(r"\b[A-Za-z0-9]{32,}\b")

# stack frames
_FRAME_PREFIX = re.compile(r"^(?:at\s|@|react_stack_bottom_frame|runWithFiberInDEV)")
_FRAME_MARKER = re.compile(r"react-dom_client|next@|webpack-internal|node:")
_PY_FRAME = re.compile(r"^File \"[^\"]+\", line \d+")

# signature normalization, applied in order
_NORMALIZERS: Tuple[Tuple[re.Pattern[str], str], ...] = (
    (re.compile(r" in \d+(?:\.\d+)?ms\b"), " in XXXms"),
    (re.compile(r"\?v=[\w-]+"), "?v=VERSION"),
    (re.compile(r"\b(flowId|tenantId|flowVersionId): [\w-]+"), r"\1: ID"),
    (re.compile(r"\btimestamp: \d+"), "timestamp: TIMESTAMP"),
    (re.compile(r"\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?"), "TIMESTAMP"),
    (re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.I), "UUID"),
    (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "IP"),
    (re.compile(r"\b[0-9a-f]{16,}\b", re.I), "HEX"),
    (re.compile(r"\b(pid|processId|process_id)=\d+", re.I), r"\1=ID"),
    (re.compile(r"\buser(?:_?id)?[:=]\s*[\w@.-]+", re.I), "user=USER"),
    (re.compile(r"\bsession(?:_?id)?[:=]\s*[\w-]+", re.I), "session=SESSION"),
    (re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.I), "EMAIL"),
    (_JWT, "TOKEN"),
)
_ERROR_CLASS = re.compile(r"\b[A-Za-z]+Error:")
_WORD_CHUNK = re.compile(r"[A-Za-z0-9_]+(?:[./-][A-Za-z0-9_]+)*")
_IDENT_HINT = re.compile(r"[0-9_./]|[a-z][A-Z]")
_DIGITS = re.compile(r"\d+")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class _Placeholder:
    name: str
    regex: re.Pattern[str]
    group: int
    replacement: Optional[str]


@dataclass(frozen=True)
class SegmenterRules:
    """SegmenterConfig with every regex compiled once."""
    noise: Tuple[re.Pattern[str], ...]
    placeholders: Tuple[_Placeholder, ...]
    categories: Tuple[Tuple[str, re.Pattern[str], int], ...]
    scoring: ScoringRules
    stack_preview_frames: int = 0
    compress_threshold: int = 2048

    @classmethod
    def from_config(cls, config: Optional[SegmenterConfig] = None) -> "SegmenterRules":
        config = config or SegmenterConfig()
        return cls(
            noise=tuple(re.compile(p, re.IGNORECASE) for p in config.noise_patterns),
            placeholders=tuple(
                _Placeholder(r.placeholder, r.compile(), r.group, r.replacement)
                for r in config.placeholder_rules
            ),
            categories=tuple((r.name, r.compile(), r.priority) for r in config.category_rules),
            scoring=ScoringRules.from_config(config),
            stack_preview_frames=max(0, config.stack_preview_frames),
            compress_threshold=config.compress_threshold,
        )


# --- boundaries & filtering ---

def event_boundary(line: str, has_current: bool) -> bool:
    """True when line opens a new event while another one is open."""
    trimmed = line.strip()
    if not trimmed or not has_current:
        return False
    return any(marker.search(trimmed) for marker in _BOUNDARY_MARKERS)


def is_noise(line: str, rules: SegmenterRules) -> bool:
    return any(p.search(line) for p in rules.noise)


def redact_sensitive(line: str) -> str:
    line = _JWT.sub("{JWT}", line)
    line = _SECRET_ASSIGN.sub(r"\1={TOKEN}", line)
    line = _LONG_HEX.sub("{HEX}", line)
    return _API_KEY.sub("{API_KEY}", line)


# --- stack traces ---

def is_stack_frame(line: str) -> bool:
    trimmed = line.strip()
    return bool(
        _FRAME_PREFIX.match(trimmed)
        or " @ " in trimmed
        or _PY_FRAME.match(trimmed)
        or _FRAME_MARKER.search(trimmed)
    )


def stack_signature(frames: Sequence[str]) -> str:
    for frame in frames:
        normalized = _SPACES.sub(" ", normalize_line(frame)).strip()
        if normalized:
            return re.sub(r"[A-Za-z_]+", "X", _DIGITS.sub("N", normalized))
    return "Stacktrace"


def fold_stack_trace(lines: Sequence[str], preview: int = 0) -> List[str]:
    """Collapse runs of stack frames into one [STACKTRACE sig] x n marker.

    With preview > 0 the first and last `preview` frames follow the marker.
    Indented source lines under a Python `File "...", line N` frame belong
    to that frame.
    """
    out: List[str] = []
    frames: List[str] = []

    def flush() -> None:
        if not frames:
            return
        out.append(f"[STACKTRACE {stack_signature(frames)}] × {len(frames)}")
        if preview > 0:
            if len(frames) <= 2 * preview:
                out.extend(frames)
            else:
                out.extend(frames[:preview])
                out.extend(frames[-preview:])
        frames.clear()

    for line in lines:
        if is_stack_frame(line):
            frames.append(line)
            continue
        if frames and line[:1].isspace() and _PY_FRAME.match(frames[-1].strip()):
            frames.append(line)
            continue
        flush()
        out.append(line)
    flush()
    return out


# --- templates ---

def apply_placeholders(line: str, rules: SegmenterRules, values: Dict[str, Set[str]]) -> str:
    """Replace volatile substrings with placeholders, recording the originals."""
    for rule in rules.placeholders:
        def _sub(m: re.Match[str], rule: _Placeholder = rule) -> str:
            out = m.expand(rule.replacement) if rule.replacement else rule.name
            if out == m.group(0):
                return out
            value = m.group(rule.group)
            if value:
                values.setdefault(rule.name, set()).add(value)
            return out
        line = rule.regex.sub(_sub, line)
    return line


def build_template(lines: Sequence[str], rules: SegmenterRules) -> Tuple[Tuple[str, ...], Dict[str, FrozenSet[str]]]:
    values: Dict[str, Set[str]] = {}
    template = tuple(apply_placeholders(line, rules, values) for line in lines)
    return template, {name: frozenset(v) for name, v in values.items()}


# --- signatures ---

def normalize_line(line: str) -> str:
    for regex, repl in _NORMALIZERS:
        line = regex.sub(repl, line)
    return _ERROR_CLASS.sub("ERROR:", line, count=1)


def _mask_identifier(m: re.Match[str]) -> str:
    word = m.group(0)
    if not any(c.isalpha() for c in word):
        return word
    return "X" if _IDENT_HINT.search(word) else word


def structural_signature(lines: Sequence[str]) -> str:
    """Coarse per-line shape: volatile values normalized, identifiers -> X, digits -> N."""
    out = []
    for line in lines:
        line = _WORD_CHUNK.sub(_mask_identifier, normalize_line(line))
        line = _SPACES.sub(" ", _DIGITS.sub("N", line)).strip()
        if line:
            out.append(line)
    return "\n".join(out)


def categorize(lines: Sequence[str], rules: SegmenterRules) -> str:
    """Name of the matching category rule with the lowest priority number."""
    joined = "\n".join(lines)
    best: Optional[Tuple[int, str]] = None
    for name, regex, priority in rules.categories:
        if regex.search(joined) and (best is None or priority < best[0]):
            best = (priority, name)
    return best[1] if best else OTHER


# --- events ---

def create_event(
    lines: Sequence[str],
    rules: SegmenterRules,
    score_cache: Optional[ScoreCache] = None,
) -> Optional[LogEvent]:
    kept = [line for line in lines if line.strip() and not is_noise(line, rules)]
    if not kept:
        return None
    processed = fold_stack_trace([redact_sensitive(line) for line in kept], rules.stack_preview_frames)
    if score_cache is not None:
        score = score_cache.score(processed)
    else:
        score = compute_event_score(processed, rules.scoring)
    template, placeholders = build_template(processed, rules)
    return LogEvent(
        raw=StoredLines.from_lines(lines, rules.compress_threshold),
        processed_lines=tuple(processed),
        template_lines=template,
        placeholders=placeholders,
        signature=structural_signature(processed),
        score=score,
        primary_category=categorize(processed, rules),
    )


def split_into_events(
    text: str,
    config: Optional[SegmenterConfig] = None,
    score_cache: Optional[ScoreCache] = None,
    deadline: Optional[Deadline] = None,
    rules: Optional[SegmenterRules] = None,
) -> List[LogEvent]:
    """Segment text into events, in input order."""
    rules = rules or SegmenterRules.from_config(config)
    events: List[LogEvent] = []
    current: List[str] = []
    dropped = 0

    def close() -> None:
        nonlocal dropped
        if not current:
            return
        event = create_event(current, rules, score_cache)
        if event is None:
            dropped += 1
        else:
            events.append(event)

    for i, line in enumerate(NEWLINE.split(text)):
        if deadline is not None and i % 5000 == 0:
            deadline.check("segmentation")
        if event_boundary(line, bool(current)):
            close()
            current = []
        current.append(line)
    close()

    logger.debug("segmented %d events (%d discarded as uninformative)", len(events), dropped)
    return events
