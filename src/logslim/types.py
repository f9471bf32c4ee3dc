"""Core data types: events, clusters and per-run thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Set, Tuple

from logslim.mem.line_store import StoredLines

OTHER = "Other"
WILDCARD = "{*}"


@dataclass(eq=False)
class LogEvent:
    """A bounded group of log lines treated as one clustering/scoring unit.

    Treated as immutable once built by the segmenter; only ``order`` is
    assigned afterwards (see tag_order).
    """
    raw: StoredLines
    processed_lines: Tuple[str, ...]
    template_lines: Tuple[str, ...]
    placeholders: Mapping[str, FrozenSet[str]]
    signature: str
    score: float
    primary_category: str = OTHER
    order: int = -1

    def __post_init__(self) -> None:
        if len(self.template_lines) != len(self.processed_lines):
            raise ValueError(
                f"template/processed line count mismatch: "
                f"{len(self.template_lines)} != {len(self.processed_lines)}"
            )

    @property
    def raw_lines(self) -> List[str]:
        return self.raw.lines()

    @property
    def text(self) -> str:
        return "\n".join(self.processed_lines)

    @property
    def key(self) -> str:
        """Exact-match clustering key."""
        return self.signature or "\n".join(self.template_lines)

    def tag_order(self, order: int) -> None:
        self.order = order


@dataclass(frozen=True)
class AdaptiveThresholds:
    distance_threshold: float
    distance_strict: float
    jaccard_threshold: float
    avg_length: float
    total_events: int


def merge_template_line(a: str, b: str) -> str:
    """Replace differing whitespace tokens with a wildcard.

    "User {USER} logged in"  + "User {USER} logged out" -> "User {USER} logged {*}"
    Lines with a different token count are left as ``a``.
    """
    if a == b:
        return a
    ta = a.split()
    tb = b.split()
    if len(ta) != len(tb):
        return a
    return " ".join(x if x == y else WILDCARD for x, y in zip(ta, tb))


class Cluster:
    """A group of events sharing a representative signature.

    Template lines and the placeholder map start out borrowed from the seed
    event. An owned copy is made the first time a member actually changes
    them; read them through the properties.
    """

    def __init__(self, key: str, seed: LogEvent, level: Optional[int] = None) -> None:
        self.signature = key
        self.seed = seed
        self.events: List[LogEvent] = []
        self.category_counts: Dict[str, int] = {}
        self.primary_category = seed.primary_category or OTHER
        self.level = level

        self._template_lines: Sequence[str] = seed.template_lines
        self._placeholders: Mapping[str, FrozenSet[str] | Set[str]] = seed.placeholders
        self._owns_template = False
        self._owns_placeholders = False

    # --- accessors ---

    @property
    def template_lines(self) -> Tuple[str, ...]:
        return tuple(self._template_lines)

    @property
    def placeholders(self) -> Dict[str, FrozenSet[str]]:
        return {name: frozenset(values) for name, values in self._placeholders.items()}

    def placeholder_values(self, name: str) -> FrozenSet[str]:
        return frozenset(self._placeholders.get(name, ()))

    @property
    def is_materialized(self) -> bool:
        """True once the cluster holds its own copy of seed data."""
        return self._owns_template or self._owns_placeholders

    @property
    def size(self) -> int:
        return len(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self) -> str:
        return (f"Cluster(size={len(self.events)}, category={self.primary_category!r}, "
                f"level={self.level}, signature={self.signature[:40]!r})")

    # --- mutation ---

    def _own_placeholders(self) -> Dict[str, Set[str]]:
        if not self._owns_placeholders:
            self._placeholders = {k: set(v) for k, v in self._placeholders.items()}
            self._owns_placeholders = True
        return self._placeholders  # type: ignore[return-value]

    def merge_placeholders(self, values: Mapping[str, FrozenSet[str]]) -> None:
        for name, vals in values.items():
            current = self._placeholders.get(name)
            missing = [v for v in vals if current is None or v not in current]
            if not missing:
                continue
            owned = self._own_placeholders()
            owned.setdefault(name, set()).update(missing)

    def absorb_template(self, template_lines: Sequence[str]) -> None:
        if len(template_lines) != len(self._template_lines):
            return
        merged = [merge_template_line(a, b) for a, b in zip(self._template_lines, template_lines)]
        if merged == list(self._template_lines):
            return
        self._template_lines = merged
        self._owns_template = True

    def count_category(self, category: str) -> None:
        category = category or OTHER
        self.category_counts[category] = self.category_counts.get(category, 0) + 1
        if self.category_counts[category] > self.category_counts.get(self.primary_category, 0):
            self.primary_category = category

    def add(self, event: LogEvent) -> None:
        self.events.append(event)
        self.merge_placeholders(event.placeholders)
        if event is not self.seed:
            self.absorb_template(event.template_lines)
        self.count_category(event.primary_category)


@dataclass
class BatchProgress:
    """Emitted by the clustering driver after every batch."""
    batch: int
    total_batches: int
    processed: int
    clusters: int
    elapsed: float = 0.0
    extra: Dict[str, float] = field(default_factory=dict)
