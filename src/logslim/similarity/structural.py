"""Structural pattern analysis.

Recognizes common log shapes (HTTP errors, stack frames, auth/network/db
failures) so that two lines with the same high-priority shape can be grouped
even when their text differs a lot.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple


@dataclass(frozen=True)
class StructuralPattern:
    name: str
    regex: re.Pattern[str]
    category: str
    priority: int


STRUCTURAL_PATTERNS: Tuple[StructuralPattern, ...] = (
    StructuralPattern("http_error", re.compile(r"(?:GET|POST|PUT|DELETE|PATCH)\s+https?://\S+ (\d{3})", re.I), "HTTP", 1),
    StructuralPattern("stacktrace_java", re.compile(r"\s+at\s+\S+\([^)]+\)"), "StackTrace", 1),
    StructuralPattern("stacktrace_python", re.compile(r"\s+File\s+\"[^\"]+\",\s+line\s+\d+,", re.I), "StackTrace", 1),
    StructuralPattern("log_level_timestamp", re.compile(r"\[(?:DEBUG|INFO|WARN|ERROR|FATAL|TRACE)\]\s+\d{4}-\d{2}-\d{2}", re.I), "LogEntry", 2),
    StructuralPattern("uuid_reference", re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.I), "UUID", 3),
    StructuralPattern("json_error_response", re.compile(r"\"error\"\s*:\s*\{[^}]*\"message\"\s*:\s*\"[^\"]*\"", re.I), "JSON", 2),
    StructuralPattern("database_error", re.compile(r"(?:SQLSTATE|ORA-|MySQL|PostgreSQL).*error", re.I), "Database", 1),
    StructuralPattern("auth_error", re.compile(r"unauthorized|forbidden|authentication.*failed|invalid.*token", re.I), "Authentication", 1),
    StructuralPattern("network_error", re.compile(r"connection.*refused|timeout|ECONNRESET|ENOTFOUND", re.I), "Network", 1),
    StructuralPattern("file_system_error", re.compile(r"ENOENT|EACCES|EPERM|file.*not.*found", re.I), "FileSystem", 1),
)

_SIGNATURE_RULES = (
    (re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.I), "{UUID}"),
    (re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d{3})?Z?"), "{TIMESTAMP}"),
    (re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "{IP}"),
    (re.compile(r"https?://\S+"), "{URL}"),
    (re.compile(r"\d+"), "{NUMBER}"),
    (re.compile(r"\"[^\"]*\""), "{STRING}"),
    (re.compile(r"'[^']*'"), "{STRING}"),
)
_ELEMENT_SPLIT = re.compile(r"[^a-zA-Z0-9{}_-]")


@dataclass(frozen=True)
class StructuralProfile:
    """Everything structural_similarity needs to know about one text."""
    names: FrozenSet[str]
    high_priority: FrozenSet[str]
    categories: FrozenSet[str]
    signature: str


def detect_structural_patterns(text: str) -> List[StructuralPattern]:
    return [p for p in STRUCTURAL_PATTERNS if p.regex.search(text)]


def extract_structural_signature(text: str) -> str:
    """Normalize variable parts so only the shape of the text remains."""
    signature = text
    for regex, repl in _SIGNATURE_RULES:
        signature = regex.sub(repl, signature)
    return signature


def structural_profile(text: str) -> StructuralProfile:
    found = detect_structural_patterns(text)
    return StructuralProfile(
        names=frozenset(p.name for p in found),
        high_priority=frozenset(p.name for p in found if p.priority == 1),
        categories=frozenset(p.category for p in found),
        signature=extract_structural_signature(text),
    )


def profile_similarity(a: StructuralProfile, b: StructuralProfile) -> float:
    common_high = a.high_priority & b.high_priority
    if common_high:
        return 0.9 + 0.05 * len(common_high)

    common_categories = a.categories & b.categories
    if common_categories:
        return 0.7 + 0.1 * len(common_categories)

    if a.signature == b.signature:
        return 0.8

    elements_a = [e for e in _ELEMENT_SPLIT.split(a.signature) if "{" in e]
    elements_b = [e for e in _ELEMENT_SPLIT.split(b.signature) if "{" in e]
    max_elements = max(len(elements_a), len(elements_b))
    if max_elements == 0:
        return 0.0
    common = sum(1 for e in elements_a if e in elements_b)
    return common / max_elements * 0.6


def structural_similarity(text_a: str, text_b: str) -> float:
    return profile_similarity(structural_profile(text_a), structural_profile(text_b))


def profiles_should_cluster(a: StructuralProfile, b: StructuralProfile) -> bool:
    sim = profile_similarity(a, b)
    if sim >= 0.9:
        return True
    if sim >= 0.8:
        return bool(a.high_priority & b.high_priority)
    return False


def should_cluster_by_structure(text_a: str, text_b: str) -> bool:
    """True when two texts share a strong structural shape."""
    return profiles_should_cluster(structural_profile(text_a), structural_profile(text_b))


def group_by_structure(texts: Iterable[str]) -> Dict[str, List[str]]:
    groups: Dict[str, List[str]] = {}
    for text in texts:
        groups.setdefault(extract_structural_signature(text), []).append(text)
    return groups
