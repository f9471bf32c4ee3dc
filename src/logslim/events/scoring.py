"""Event importance scoring.

A line earns points for HTTP status codes (exact code weight first, class
weight otherwise), for the highest latency bucket it reaches and for every
message pattern it matches. An event sums its lines and adds diversity
bonuses for distinct URLs, numbers and longer tokens.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from logslim.config import SegmenterConfig

_STATUS_IN_CONTEXT = re.compile(r"\b(?:status|code|HTTP/\d(?:\.\d)?)[\s:=]*([1-5]\d{2})\b", re.I)
_STATUS_AFTER_REQUEST = re.compile(r"\b(?:GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\s+\S+\s+([1-5]\d{2})\b")
_LATENCY = re.compile(r"(\d+(?:\.\d+)?)\s*ms\b", re.I)
_URL = re.compile(r"https?://\S+", re.I)
_NUMBER = re.compile(r"\b\d+\b")
_WORD = re.compile(r"\b\w{3,}\b")


@dataclass(frozen=True)
class ScoringRules:
    messages: Tuple[Tuple[re.Pattern[str], float], ...]
    latency: Tuple[Tuple[float, float], ...]  # (min_ms, weight), ascending
    status: Dict[str, float]

    @classmethod
    def from_config(cls, config: SegmenterConfig) -> "ScoringRules":
        return cls(
            messages=tuple((m.compile(), m.weight) for m in config.message_weights),
            latency=tuple((b.min_ms, b.weight) for b in sorted(config.latency_buckets, key=lambda b: b.min_ms)),
            status=dict(config.status_weights),
        )


def status_codes(line: str) -> List[str]:
    """Status codes found in a status-code context, in order, without repeats."""
    found: List[str] = []
    for regex in (_STATUS_IN_CONTEXT, _STATUS_AFTER_REQUEST):
        for m in regex.finditer(line):
            if m.group(1) not in found:
                found.append(m.group(1))
    return found


def status_weight(code: str, weights: Dict[str, float]) -> float:
    if code in weights:
        return weights[code]
    return weights.get(f"{code[0]}xx", 0.0)


def latency_weight(line: str, buckets: Sequence[Tuple[float, float]]) -> float:
    values = [float(m.group(1)) for m in _LATENCY.finditer(line)]
    if not values:
        return 0.0
    peak = max(values)
    weight = 0.0
    for min_ms, w in buckets:
        if peak >= min_ms:
            weight = w
    return weight


def line_score(line: str, rules: ScoringRules) -> float:
    score = sum(status_weight(code, rules.status) for code in status_codes(line))
    score += latency_weight(line, rules.latency)
    for regex, weight in rules.messages:
        if regex.search(line):
            score += weight
    return score


def diversity_bonus(lines: Iterable[str]) -> float:
    urls, numbers, words = set(), set(), set()
    for line in lines:
        urls.update(u.lower() for u in _URL.findall(line))
        numbers.update(_NUMBER.findall(line))
        words.update(_WORD.findall(line.lower()))
    bonus = 0.0
    if len(urls) > 1:
        bonus += 2 * len(urls)
    if len(numbers) > 2:
        bonus += len(numbers)
    if len(words) > 10:
        bonus += len(words) // 5
    return bonus


def compute_event_score(lines: Sequence[str], rules: ScoringRules) -> float:
    return sum(line_score(line, rules) for line in lines) + diversity_bonus(lines)
