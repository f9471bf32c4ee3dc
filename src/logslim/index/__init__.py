"""Approximate set-similarity index: MinHash signatures bucketed by LSH bands."""
from logslim.index.lsh import LSHIndex
from logslim.index.minhash import EMPTY, MERSENNE_PRIME, MinHash, token_hash

__all__ = ["LSHIndex", "MinHash", "EMPTY", "MERSENNE_PRIME", "token_hash"]
