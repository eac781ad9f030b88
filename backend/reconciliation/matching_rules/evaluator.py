"""
Match Evaluator

Turns a raw candidate list into a ranked, explainable recommendation set:

1. Collapse duplicate orders (candidate passes may overlap)
2. Score every unique order with the similarity scorer
3. Drop anything below the minimum surfacing score
4. Sort by score, most recent order first on ties
5. Keep the top N

Pure: no I/O, no session, no clock.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from reconciliation.matching_rules.similarity import (
    score_breakdown,
    match_reasons,
    confidence_level,
    to_utc,
)

DEFAULT_MIN_SCORE = 0.3
DEFAULT_TOP_N = 5


@dataclass
class MatchSuggestion:
    """
    One ranked candidate order for a deposit.
    """
    order_id: str
    score: float
    reasons: List[str]
    breakdown: Dict[str, float] = field(default_factory=dict)
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    total_amount: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def confidence_level(self) -> str:
        return confidence_level(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "score": self.score,
            "reasons": self.reasons,
            "orderNumber": self.order_number,
            "customerName": self.customer_name,
            "totalAmount": self.total_amount,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "confidenceLevel": self.confidence_level,
            "breakdown": self.breakdown,
        }


class MatchEvaluator:
    """
    Ranks candidate orders for one deposit.

    ``min_score`` and ``top_n`` come from settings in the service layer;
    the defaults here are the production values.
    """

    def __init__(self, min_score: float = DEFAULT_MIN_SCORE, top_n: int = DEFAULT_TOP_N):
        self.min_score = min_score
        self.top_n = top_n

    def evaluate(self, deposit: Any, candidates: Iterable[Any]) -> List[MatchSuggestion]:
        unique: Dict[str, Any] = {}
        for order in candidates:
            unique.setdefault(str(order.id), order)

        suggestions = []
        for order_id, order in unique.items():
            breakdown = score_breakdown(deposit, order)
            score = breakdown["total"]
            if score < self.min_score:
                continue

            suggestions.append(MatchSuggestion(
                order_id=order_id,
                score=score,
                reasons=match_reasons(deposit, order, score),
                breakdown=breakdown,
                order_number=getattr(order, "order_number", None),
                customer_name=order.customer_name,
                total_amount=order.total_amount,
                created_at=to_utc(order.created_at),
            ))

        # Stable sorts, least significant key first: order id, recency, score
        suggestions.sort(key=lambda s: s.order_id)
        suggestions.sort(key=lambda s: s.created_at, reverse=True)
        suggestions.sort(key=lambda s: s.score, reverse=True)

        return suggestions[:self.top_n]

    def best(self, deposit: Any, candidates: Iterable[Any]) -> Optional[MatchSuggestion]:
        ranked = self.evaluate(deposit, candidates)
        return ranked[0] if ranked else None
