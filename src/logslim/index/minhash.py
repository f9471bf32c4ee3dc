"""MinHash signatures for Jaccard estimation.

k affine hash functions h_i(x) = (a_i * x + b_i) mod p over the Mersenne
prime p = 2^31 - 1. Tokens are first mapped to 32-bit integers with BLAKE2b
so that signatures are identical across processes (Python's str hash is
salted per interpreter). With 32-bit x and 31-bit a, a*x + b stays below
2^64, so the whole projection runs in uint64 numpy arithmetic.

The fraction of equal signature positions is an unbiased estimate of the
Jaccard similarity of the two token sets; its standard error is roughly
sqrt(J(1-J)/k).
"""
from __future__ import annotations

import hashlib
from typing import Iterable, Sequence

import numpy as np

MERSENNE_PRIME = (1 << 31) - 1
EMPTY = np.uint64(np.iinfo(np.uint64).max)  # signature value of an empty token set


def token_hash(token: str) -> int:
    """Stable 32-bit hash of a token."""
    return int.from_bytes(hashlib.blake2b(token.encode("utf-8"), digest_size=4).digest(), "little")


class MinHash:
    """Generator of fixed-length MinHash signatures."""

    def __init__(self, num_perm: int = 100, seed: int = 1) -> None:
        if num_perm < 1:
            raise ValueError("num_perm must be >= 1")
        self.num_perm = num_perm
        self.seed = seed
        rng = np.random.default_rng(seed)
        self._a = rng.integers(1, MERSENNE_PRIME, size=num_perm, dtype=np.uint64)
        self._b = rng.integers(0, MERSENNE_PRIME, size=num_perm, dtype=np.uint64)

    def empty(self) -> np.ndarray:
        return np.full(self.num_perm, EMPTY, dtype=np.uint64)

    def signature(self, tokens: Iterable[str]) -> np.ndarray:
        unique = set(tokens)
        if not unique:
            return self.empty()
        x = np.fromiter((token_hash(t) for t in unique), dtype=np.uint64, count=len(unique))
        # (k, n) projections, minimum per hash function
        proj = (np.outer(self._a, x) + self._b[:, None]) % np.uint64(MERSENNE_PRIME)
        return proj.min(axis=1)

    def signatures(self, token_lists: Sequence[Iterable[str]]) -> np.ndarray:
        """Signature matrix of shape (len(token_lists), num_perm)."""
        out = np.empty((len(token_lists), self.num_perm), dtype=np.uint64)
        for i, tokens in enumerate(token_lists):
            out[i] = self.signature(tokens)
        return out

    @staticmethod
    def is_empty(sig: np.ndarray) -> bool:
        return bool(np.all(sig == EMPTY))

    @staticmethod
    def similarity(sig_a: np.ndarray, sig_b: np.ndarray) -> float:
        """Estimated Jaccard similarity; 0.0 if either side is an empty set."""
        if sig_a.shape != sig_b.shape:
            raise ValueError(f"signature shapes differ: {sig_a.shape} vs {sig_b.shape}")
        if MinHash.is_empty(sig_a) or MinHash.is_empty(sig_b):
            return 0.0
        return float(np.count_nonzero(sig_a == sig_b)) / sig_a.shape[0]
