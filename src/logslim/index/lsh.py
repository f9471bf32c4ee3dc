"""Locality-Sensitive Hashing index over MinHash signatures.

A signature of length B*R is cut into B bands of R rows. Two items whose
slices agree in ANY band become candidates; candidates are then verified
against the full signature. With the default 20 bands of 5 rows, a pair
with Jaccard s becomes a candidate with probability 1 - (1 - s^5)^20:
about 0.98 at s=0.6 and under 0.05 at s=0.2.

The band parameters control the trade-off:
  - More bands = higher recall (catches more similar pairs)
  - More rows per band = higher precision (fewer false candidates)
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Hashable, Iterable, List, Set, Tuple

import numpy as np

from logslim.index.minhash import MinHash


class LSHIndex:
    """In-memory banded index. Item ids are any hashable value."""

    def __init__(self, bands: int = 20, rows: int = 5) -> None:
        if bands < 1 or rows < 1:
            raise ValueError("bands and rows must be >= 1")
        self.bands = bands
        self.rows = rows
        # band_id -> band slice bytes -> set of item ids
        self._buckets: List[Dict[bytes, Set[Hashable]]] = [defaultdict(set) for _ in range(bands)]
        # item_id -> signature (for full-signature verification)
        self._signatures: Dict[Hashable, np.ndarray] = {}
        self._seq: Dict[Hashable, int] = {}
        self._next_seq = 0

    @property
    def signature_length(self) -> int:
        return self.bands * self.rows

    def _check(self, sig: np.ndarray) -> np.ndarray:
        sig = np.asarray(sig, dtype=np.uint64)
        if sig.shape != (self.signature_length,):
            raise ValueError(
                f"signature length {sig.shape} does not match bands*rows="
                f"{self.bands}*{self.rows}={self.signature_length}"
            )
        return sig

    def _band_keys(self, sig: np.ndarray) -> List[bytes]:
        r = self.rows
        return [sig[b * r:(b + 1) * r].tobytes() for b in range(self.bands)]

    def add(self, item_id: Hashable, sig: np.ndarray) -> None:
        """Index an item. Re-adding an id replaces its previous signature."""
        sig = self._check(sig)
        if item_id in self._signatures:
            self.remove(item_id)
        self._signatures[item_id] = sig
        self._seq[item_id] = self._next_seq
        self._next_seq += 1
        for band_id, key in enumerate(self._band_keys(sig)):
            self._buckets[band_id][key].add(item_id)

    def remove(self, item_id: Hashable) -> None:
        sig = self._signatures.pop(item_id, None)
        if sig is None:
            return
        self._seq.pop(item_id, None)
        for band_id, key in enumerate(self._band_keys(sig)):
            bucket = self._buckets[band_id].get(key)
            if bucket is not None:
                bucket.discard(item_id)
                if not bucket:
                    del self._buckets[band_id][key]

    def query_candidates(self, sig: np.ndarray) -> Set[Hashable]:
        """Ids sharing at least one band with sig (unverified)."""
        sig = self._check(sig)
        candidates: Set[Hashable] = set()
        for band_id, key in enumerate(self._band_keys(sig)):
            bucket = self._buckets[band_id].get(key)
            if bucket:
                candidates.update(bucket)
        return candidates

    def query(self, sig: np.ndarray, threshold: float = 0.0) -> List[Tuple[Hashable, float]]:
        """Candidates whose estimated similarity to sig is >= threshold.

        Returned as (item_id, similarity), most similar first; ties keep
        insertion order.
        """
        sig = self._check(sig)
        if MinHash.is_empty(sig):
            return []
        candidates = sorted(self.query_candidates(sig), key=self._seq.__getitem__)
        if not candidates:
            return []
        matrix = np.stack([self._signatures[c] for c in candidates])
        sims = np.count_nonzero(matrix == sig, axis=1) / self.signature_length
        results = [(c, float(s)) for c, s in zip(candidates, sims) if s >= threshold]
        results.sort(key=lambda pair: -pair[1])
        return results

    def rebuild(self, entries: Iterable[Tuple[Hashable, np.ndarray]]) -> None:
        """Bulk rebuild from (item_id, signature) pairs."""
        self._buckets = [defaultdict(set) for _ in range(self.bands)]
        self._signatures.clear()
        self._seq.clear()
        self._next_seq = 0
        for item_id, sig in entries:
            self.add(item_id, sig)

    @property
    def size(self) -> int:
        return len(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)

    def __contains__(self, item_id: Hashable) -> bool:
        return item_id in self._signatures

    def stats(self) -> Dict[str, float]:
        bucket_sizes = [len(b) for band in self._buckets for b in band.values()]
        return {
            "items": len(self._signatures),
            "bands": self.bands,
            "rows": self.rows,
            "buckets": len(bucket_sizes),
            "max_bucket": max(bucket_sizes, default=0),
            "avg_bucket": (sum(bucket_sizes) / len(bucket_sizes)) if bucket_sizes else 0.0,
        }
