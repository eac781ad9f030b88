"""
Deposit-to-Order Similarity Scoring

Scores how likely a bank deposit pays a given order.

Weights (sum to 1.0):
- amount: 0.5  (exact 0.5, <=5% 0.4, <=10% 0.3, <=20% 0.2)
- name:   0.3  (normalized edit-distance similarity of depositor vs customer)
- time:   0.2  (<=1 day 0.2, <=3 days 0.15, <=7 days 0.1, <=30 days 0.05)

Amount differences are always relative to the order amount, the reference
value being paid. The candidate search uses the same denominator.

Works on any objects exposing ``amount``/``depositor_name``/
``transaction_date`` (deposit) and ``total_amount``/``customer_name``/
``created_at`` (order): ORM rows and canonical webhook events alike.
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

WEIGHT_AMOUNT = 0.5
WEIGHT_NAME = 0.3
WEIGHT_TIME = 0.2

MAX_SCORE = 1.0

# (max relative difference, score)
AMOUNT_BANDS = [
    (0.05, 0.4),
    (0.10, 0.3),
    (0.20, 0.2),
]

# (max day difference, score)
TIME_BANDS = [
    (1, 0.2),
    (3, 0.15),
    (7, 0.1),
    (30, 0.05),
]

NAME_CONTAINMENT_SIMILARITY = 0.8

# Confidence levels shown next to candidates, highest first
CONFIDENCE_LEVELS = [
    (0.9, "high"),
    (0.7, "medium"),
    (0.5, "low"),
]

REASON_BASIC_MATCH = "basic match"

_WHITESPACE = re.compile(r"\s+")

Timestamp = Union[datetime, date, str]


def to_utc(value: Timestamp) -> datetime:
    """Coerce a datetime, date or ISO string to an aware UTC datetime.

    Naive values are taken to be UTC already.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_name(name: Optional[str]) -> str:
    """Lowercase and drop all whitespace."""
    return _WHITESPACE.sub("", name or "").lower()


def levenshtein(a: str, b: str) -> int:
    """Unit-cost edit distance, computed per code point."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def name_similarity(depositor_name: Optional[str], customer_name: Optional[str]) -> float:
    """Similarity in [0, 1] between two names after normalization."""
    a = normalize_name(depositor_name)
    b = normalize_name(customer_name)

    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return NAME_CONTAINMENT_SIMILARITY

    return max(0.0, 1 - levenshtein(a, b) / max(len(a), len(b)))


def score_amount(deposit_amount: int, order_amount: int) -> float:
    if deposit_amount == order_amount:
        return WEIGHT_AMOUNT
    if not order_amount:
        return 0.0

    relative_diff = abs(deposit_amount - order_amount) / abs(order_amount)
    for limit, score in AMOUNT_BANDS:
        if relative_diff <= limit:
            return score
    return 0.0


def score_name(depositor_name: Optional[str], customer_name: Optional[str]) -> float:
    return name_similarity(depositor_name, customer_name) * WEIGHT_NAME


def day_difference(deposit_timestamp: Timestamp, order_created_at: Timestamp) -> float:
    delta = to_utc(deposit_timestamp) - to_utc(order_created_at)
    return abs(delta.total_seconds()) / 86400


def score_time(deposit_timestamp: Timestamp, order_created_at: Timestamp) -> float:
    days = day_difference(deposit_timestamp, order_created_at)
    for limit, score in TIME_BANDS:
        if days <= limit:
            return score
    return 0.0


def score_breakdown(deposit: Any, order: Any) -> Dict[str, float]:
    """Sub-scores and clamped total for a deposit/order pair."""
    amount = score_amount(deposit.amount, order.total_amount)
    name = score_name(deposit.depositor_name, order.customer_name)
    time = score_time(deposit.transaction_date, order.created_at)
    total = min(MAX_SCORE, max(0.0, amount + name + time))
    return {
        "amount": amount,
        "name": round(name, 4),
        "time": time,
        "total": round(total, 4),
    }


def total_score(deposit: Any, order: Any) -> float:
    """Weighted match score, always within [0, 1]."""
    return score_breakdown(deposit, order)["total"]


def _amount_reason(score: float) -> Optional[str]:
    if score >= WEIGHT_AMOUNT:
        return "amount matches exactly"
    if score >= 0.4:
        return "amount within 5%"
    if score >= 0.3:
        return "amount within 10%"
    if score >= 0.2:
        return "amount within 20%"
    return None


def _name_reason(similarity: float) -> Optional[str]:
    if similarity >= 0.9:
        return "name very similar"
    if similarity >= 0.7:
        return "name similar"
    if similarity >= 0.5:
        return "name partially similar"
    return None


def _time_reason(score: float) -> Optional[str]:
    if score >= 0.2:
        return "order within 1 day"
    if score >= 0.15:
        return "order within 3 days"
    if score >= 0.1:
        return "order within 7 days"
    if score >= 0.05:
        return "order within 30 days"
    return None


def match_reasons(deposit: Any, order: Any, score: Optional[float] = None) -> List[str]:
    """Human-readable justification, strongest criterion first.

    ``score`` is the caller's already computed total; when it is zero no
    reason can apply and the generic one is returned without rescoring.
    """
    if score is not None and score <= 0:
        return [REASON_BASIC_MATCH]

    amount = score_amount(deposit.amount, order.total_amount)
    similarity = name_similarity(deposit.depositor_name, order.customer_name)
    time = score_time(deposit.transaction_date, order.created_at)

    ranked: List[Tuple[float, Optional[str]]] = [
        (amount, _amount_reason(amount)),
        (similarity * WEIGHT_NAME, _name_reason(similarity)),
        (time, _time_reason(time)),
    ]
    # sorted() is stable, so equal sub-scores keep amount > name > time order
    ranked = sorted(ranked, key=lambda item: item[0], reverse=True)

    reasons = [reason for _, reason in ranked if reason]
    return reasons or [REASON_BASIC_MATCH]


def confidence_level(score: float) -> str:
    for floor, label in CONFIDENCE_LEVELS:
        if score >= floor:
            return label
    return "very_low"


class SimilarityScorer:
    """
    Deterministic, explainable scorer for (deposit, order) pairs.

    Stateless; the module-level ``similarity_scorer`` is shared.
    """

    score_amount = staticmethod(score_amount)
    score_name = staticmethod(score_name)
    score_time = staticmethod(score_time)
    score_breakdown = staticmethod(score_breakdown)
    total_score = staticmethod(total_score)
    match_reasons = staticmethod(match_reasons)
    confidence_level = staticmethod(confidence_level)


similarity_scorer = SimilarityScorer()
