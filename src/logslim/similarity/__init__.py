from logslim.similarity.metrics import (
    cosine_similarity,
    jaccard,
    levenshtein,
    normalized_levenshtein,
    token_cosine,
    weighted_jaccard,
)
from logslim.similarity.structural import (
    detect_structural_patterns,
    extract_structural_signature,
    should_cluster_by_structure,
    structural_similarity,
)

__all__ = [
    "cosine_similarity", "jaccard", "levenshtein", "normalized_levenshtein",
    "token_cosine", "weighted_jaccard",
    "detect_structural_patterns", "extract_structural_signature",
    "should_cluster_by_structure", "structural_similarity",
]
