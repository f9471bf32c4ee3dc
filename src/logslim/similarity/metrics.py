"""String and set similarity metrics."""
from __future__ import annotations

from collections import Counter
from typing import Optional, Sequence

import numpy as np
from rapidfuzz.distance import Levenshtein

from logslim.token.tokenizer import calculate_token_weights


def levenshtein(a: str, b: str, max_distance: Optional[int] = None) -> int:
    """Edit distance; clamped to max_distance + 1 once max_distance is exceeded."""
    return Levenshtein.distance(a, b, score_cutoff=max_distance)


def normalized_levenshtein(a: str, b: str, max_ratio: Optional[float] = None) -> float:
    """Edit distance divided by the longer length; 0.0 for two empty strings.

    max_ratio bounds the work: any result above it is reported as 1.0.
    """
    return Levenshtein.normalized_distance(a, b, score_cutoff=max_ratio)


def jaccard(tokens_a: Sequence[str], tokens_b: Sequence[str]) -> float:
    if not tokens_a or not tokens_b:
        return 0.0
    set_a, set_b = set(tokens_a), set(tokens_b)
    union = len(set_a | set_b)
    return len(set_a & set_b) / union if union else 0.0


def weighted_jaccard(tokens_a: Sequence[str], tokens_b: Sequence[str]) -> float:
    """sum(min(wA, wB)) / sum(max(wA, wB)) over the token union."""
    if not tokens_a or not tokens_b:
        return 0.0
    wa = calculate_token_weights(tokens_a)
    wb = calculate_token_weights(tokens_b)
    inter = 0.0
    union = 0.0
    for token in wa.keys() | wb.keys():
        x = wa.get(token, 0.0)
        y = wb.get(token, 0.0)
        inter += min(x, y)
        union += max(x, y)
    return inter / union if union else 0.0


def cosine_similarity(vec_a: Sequence[float] | np.ndarray, vec_b: Sequence[float] | np.ndarray) -> float:
    """Cosine of two numeric vectors; -inf on length mismatch or zero norm."""
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    if a.ndim != 1 or a.shape != b.shape or a.size == 0:
        return float("-inf")
    na = float(np.linalg.norm(a))
    nb = float(np.linalg.norm(b))
    if na == 0.0 or nb == 0.0:
        return float("-inf")
    return float(np.dot(a, b) / (na * nb))


def token_cosine(tokens_a: Sequence[str], tokens_b: Sequence[str]) -> float:
    """Cosine over token-count vectors; 0.0 if either side is empty."""
    if not tokens_a or not tokens_b:
        return 0.0
    ca, cb = Counter(tokens_a), Counter(tokens_b)
    vocab = sorted(ca.keys() | cb.keys())
    sim = cosine_similarity([ca[t] for t in vocab], [cb[t] for t in vocab])
    return max(0.0, sim)
