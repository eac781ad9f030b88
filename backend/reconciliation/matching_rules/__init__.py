"""
Matching Rules Module
"""

from .similarity import (
    SimilarityScorer,
    similarity_scorer,
    levenshtein,
    name_similarity,
    score_amount,
    score_name,
    score_time,
    score_breakdown,
    total_score,
    match_reasons,
    confidence_level,
)
from .evaluator import MatchEvaluator, MatchSuggestion

__all__ = [
    "SimilarityScorer", "similarity_scorer", "levenshtein", "name_similarity",
    "score_amount", "score_name", "score_time", "score_breakdown", "total_score",
    "match_reasons", "confidence_level",
    "MatchEvaluator", "MatchSuggestion",
]
