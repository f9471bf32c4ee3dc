"""Interface shared by every clustering strategy."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from logslim.cache.lru import RunCaches
from logslim.config import CacheConfig
from logslim.types import Cluster, LogEvent
from logslim.utils import Deadline


class ClusteringStrategy(ABC):
    """Decides which cluster key an event belongs to.

    The driver calls initialize() once with the full event list, then
    find_or_create_key() and update_metadata() for every event in order,
    and cleanup() when it is done.
    """

    name = "base"

    def __init__(self) -> None:
        self.caches: Optional[RunCaches] = None
        self.deadline = Deadline(None)
        self.initialized = False

    def initialize(
        self,
        events: Sequence[LogEvent],
        caches: Optional[RunCaches] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        self.caches = caches if caches is not None else RunCaches.from_config(CacheConfig())
        self.deadline = deadline or Deadline(None)
        self.initialized = True

    @abstractmethod
    def find_or_create_key(self, clusters: Mapping[str, Cluster], event: LogEvent) -> str:
        """Key of an existing cluster the event joins, or a new key."""

    @property
    def run_caches(self) -> RunCaches:
        if self.caches is None:
            raise RuntimeError(f"{type(self).__name__}.initialize() has not been called")
        return self.caches

    def update_metadata(self, cluster: Cluster, event: LogEvent) -> None:
        pass

    def cleanup(self) -> None:
        self.initialized = False

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"strategy": self.name}
        if self.caches is not None:
            out["caches"] = self.caches.stats()
        return out
