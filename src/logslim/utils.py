"""Shared utilities."""

from __future__ import annotations

import hashlib
import time
from itertools import islice
from typing import Any, Iterator, Mapping, Sequence, TypeVar

from logslim.exceptions import PipelineTimeoutError

K = TypeVar("K")


def content_hash(lines: Sequence[str] | str) -> str:
    """SHA-256 over the content, so equal text hashes equal regardless of identity."""
    text = lines if isinstance(lines, str) else "\n".join(lines)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def last_n_keys(mapping: Mapping[K, Any], n: int) -> Iterator[K]:
    """Yield the last n keys of an insertion-ordered mapping, oldest first."""
    size = len(mapping)
    if size <= n:
        yield from mapping.keys()
        return
    yield from islice(mapping.keys(), size - n, None)


class Deadline:
    """Wall-clock budget for one pipeline invocation."""

    def __init__(self, seconds: float | None) -> None:
        self.seconds = seconds
        self._start = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start

    def remaining(self) -> float | None:
        if self.seconds is None:
            return None
        return max(0.0, self.seconds - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.seconds is not None and self.elapsed >= self.seconds

    def check(self, stage: str = "") -> None:
        if self.expired:
            where = f" during {stage}" if stage else ""
            raise PipelineTimeoutError(
                f"pipeline exceeded {self.seconds:.1f}s{where} (elapsed {self.elapsed:.2f}s)"
            )
