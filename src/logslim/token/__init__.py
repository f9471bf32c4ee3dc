from logslim.token.tokenizer import (
    STOP_WORDS,
    calculate_token_weights,
    is_technical_token,
    ngrams,
    token_stats,
    tokenize,
    tokenize_basic,
)

__all__ = [
    "STOP_WORDS", "calculate_token_weights", "is_technical_token", "ngrams",
    "token_stats", "tokenize", "tokenize_basic",
]
