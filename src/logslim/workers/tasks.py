"""Task handlers executed inside worker processes.

Each handler takes the request payload and returns something picklable.
"""
from __future__ import annotations

import os
import time
from typing import Any, Dict

import numpy as np

from logslim.index.minhash import MinHash
from logslim.token.tokenizer import tokenize_basic


def compute_signatures(payload: Dict[str, Any]) -> np.ndarray:
    """MinHash signature matrix, one row per text, over basic tokens."""
    texts = payload["texts"]
    minhash = MinHash(num_perm=int(payload.get("num_perm", 100)), seed=int(payload.get("seed", 1)))
    return minhash.signatures([tokenize_basic(text) for text in texts])


def ping(payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
    delay = float((payload or {}).get("delay", 0.0))
    if delay > 0:
        time.sleep(delay)
    return {"pong": True, "pid": os.getpid()}
