"""
Unit Tests for Deposit/Order Similarity Scoring

Tests:
- Levenshtein distance
- Amount, name and time sub-scores and their bands
- Total score bounds and the exact-match case
- Match reasons ordering and the generic fallback
- Confidence levels

Run with: pytest tests/test_similarity.py -v
"""

import itertools
from datetime import date, datetime, timedelta, timezone

import pytest

from reconciliation.matching_rules.similarity import (
    levenshtein,
    name_similarity,
    normalize_name,
    score_amount,
    score_name,
    score_time,
    score_breakdown,
    total_score,
    match_reasons,
    confidence_level,
    to_utc,
    similarity_scorer,
)

from conftest import deposit_like, order_like, TX_DATE


class TestLevenshtein:
    """Test edit distance."""

    def test_identical(self):
        assert levenshtein("kim", "kim") == 0

    def test_single_insertion(self):
        assert levenshtein("kim", "kimm") == 1

    def test_empty_string(self):
        assert levenshtein("", "abc") == 3
        assert levenshtein("abc", "") == 3

    def test_classic_example(self):
        assert levenshtein("kitten", "sitting") == 3

    def test_symmetric(self):
        assert levenshtein("minsu", "minsoo") == levenshtein("minsoo", "minsu")

    def test_hangul_counts_characters_not_bytes(self):
        """One differing syllable is one edit, whatever its UTF-8 length."""
        assert levenshtein("김민수", "김민호") == 1
        assert levenshtein("김민수", "김민수") == 0


class TestNameScore:
    """Test depositor / customer name similarity."""

    def test_normalization_ignores_case_and_spaces(self):
        assert normalize_name("  Kim  Min su ") == "kimminsu"
        assert score_name("Kim Minsu", "kimminsu") == pytest.approx(0.3)

    def test_containment_scores_point_eight(self):
        assert name_similarity("Kim", "Kim Minsu") == pytest.approx(0.8)
        assert score_name("Kim Minsu", "Kim") == pytest.approx(0.24)

    def test_edit_distance_similarity(self):
        # kimminsu -> kimminsoo: 2 edits over 9 characters
        assert name_similarity("Kim Minsu", "Kim Minsoo") == pytest.approx(1 - 2 / 9)

    def test_empty_name_scores_zero(self):
        assert score_name("", "Kim Minsu") == 0.0
        assert score_name("Kim Minsu", None) == 0.0
        assert score_name("   ", "   ") == 0.0

    def test_unrelated_names_score_zero(self):
        assert score_name("Lee", "Kim Minsu") == 0.0


class TestAmountScore:
    """Test amount closeness bands."""

    @pytest.mark.parametrize("deposit,order,expected", [
        (50000, 50000, 0.5),
        (52000, 50000, 0.4),
        (52500, 50000, 0.4),
        (54000, 50000, 0.3),
        (59000, 50000, 0.2),
        (60000, 50000, 0.2),
        (61000, 50000, 0.0),
        (40000, 50000, 0.2),
    ])
    def test_bands(self, deposit, order, expected):
        assert score_amount(deposit, order) == expected

    def test_order_amount_is_denominator(self):
        """5% of the order amount, though 5.26% of the deposit."""
        assert score_amount(47500, 50000) == 0.4

    def test_zero_order_amount(self):
        assert score_amount(100, 0) == 0.0


class TestTimeScore:
    """Test time proximity bands."""

    @pytest.mark.parametrize("days,expected", [
        (0, 0.2),
        (1, 0.2),
        (2, 0.15),
        (3, 0.15),
        (5, 0.1),
        (7, 0.1),
        (20, 0.05),
        (30, 0.05),
        (31, 0.0),
    ])
    def test_bands(self, days, expected):
        assert score_time(TX_DATE, TX_DATE - timedelta(days=days)) == expected

    def test_direction_does_not_matter(self):
        assert score_time(TX_DATE, TX_DATE + timedelta(days=2)) == 0.15

    def test_accepts_dates_and_strings(self):
        assert score_time("2024-01-15", "2024-01-15") == 0.2
        assert score_time(date(2024, 1, 15), "2024-01-17T00:00:00Z") == 0.15

    def test_naive_timestamps_are_utc(self):
        naive = datetime(2024, 1, 15, 10, 0)
        assert to_utc(naive) == TX_DATE
        assert score_time(naive, TX_DATE) == 0.2


class TestTotalScore:
    """Test combined score."""

    def test_exact_match_scores_one(self):
        deposit = deposit_like(amount=50000, depositor_name="Kim Minsu", transaction_date="2024-01-15")
        order = order_like(total_amount=50000, customer_name="Kim Minsu", created_at="2024-01-15")

        breakdown = score_breakdown(deposit, order)

        assert breakdown["amount"] == 0.5
        assert breakdown["name"] == pytest.approx(0.3)
        assert breakdown["time"] == 0.2
        assert breakdown["total"] == 1.0
        assert total_score(deposit, order) == 1.0

    def test_score_always_within_bounds(self):
        amounts = [0, 1, 40000, 47500, 50000, 55000, 60000, 100000]
        names = ["", "Kim Minsu", "kim", "Lee Jiwon", "김민수"]
        offsets = [0, 1, 4, 15, 45]

        for amount, name, offset in itertools.product(amounts, names, offsets):
            deposit = deposit_like(amount=amount, depositor_name=name)
            order = order_like(created_at=TX_DATE - timedelta(days=offset))
            score = total_score(deposit, order)
            assert 0.0 <= score <= 1.0

    def test_scorer_instance_matches_functions(self):
        deposit = deposit_like(amount=52000)
        order = order_like()
        assert similarity_scorer.total_score(deposit, order) == total_score(deposit, order)


class TestMatchReasons:
    """Test human-readable reasons."""

    def test_exact_match_reasons(self):
        reasons = match_reasons(deposit_like(), order_like())
        assert reasons == ["amount matches exactly", "name very similar", "order within 1 day"]

    def test_reasons_follow_sub_score_magnitude(self):
        deposit = deposit_like(amount=59000)
        order = order_like(total_amount=50000)

        reasons = match_reasons(deposit, order)

        # name 0.3 > amount 0.2 == time 0.2 (ties keep amount before time)
        assert reasons == ["name very similar", "amount within 20%", "order within 1 day"]

    def test_basic_match_fallback(self):
        deposit = deposit_like(amount=100000, depositor_name="Lee")
        order = order_like(created_at=TX_DATE - timedelta(days=60))

        assert total_score(deposit, order) == 0.0
        assert match_reasons(deposit, order) == ["basic match"]
        assert match_reasons(deposit, order, 0.0) == ["basic match"]

    def test_deterministic(self):
        deposit = deposit_like(amount=54000, depositor_name="Kim Minsoo")
        order = order_like(created_at=TX_DATE - timedelta(days=5))
        assert match_reasons(deposit, order) == match_reasons(deposit, order)


class TestConfidenceLevel:
    """Test confidence labels."""

    @pytest.mark.parametrize("score,label", [
        (1.0, "high"),
        (0.9, "high"),
        (0.75, "medium"),
        (0.7, "medium"),
        (0.5, "low"),
        (0.49, "very_low"),
        (0.0, "very_low"),
    ])
    def test_levels(self, score, label):
        assert confidence_level(score) == label
