"""Trust score and review aggregation tests (pure, no database)."""

from types import SimpleNamespace

import pytest

from agritrace.services.reviews import average_rating
from agritrace.services.trust import (
    TrustInputs,
    _round_one_decimal,
    compute_trust_score,
    trust_factors,
    trust_score_for_batch,
)


@pytest.mark.unit
class TestTrustScore:

    def test_no_factors_scores_zero(self):
        score = compute_trust_score(TrustInputs(quality_grade=None))
        assert score.score == 0.0
        assert score.factors == []

    def test_single_factor_is_not_diluted(self):
        """Weights renormalise over the factors that have data."""
        score = compute_trust_score(TrustInputs(farmer_rating=3.0, quality_grade=None))
        assert score.score == 3.0

    def test_full_scenario(self):
        # (4.0×0.4 + 5×0.2 + 5×0.2 + 4.5×0.2) / 1.0 = 4.5
        inputs = TrustInputs(
            farmer_rating=4.0,
            quality_grade="A",
            completed_transactions=3,
            total_transactions=3,
            average_review_rating=4.5,
            review_count=2,
        )
        assert compute_trust_score(inputs).score == 4.5

    def test_history_caps_at_three_completions(self):
        few = TrustInputs(quality_grade=None, completed_transactions=1, total_transactions=1)
        many = TrustInputs(quality_grade=None, completed_transactions=7, total_transactions=7)
        assert compute_trust_score(few).score == pytest.approx(1.7)
        assert compute_trust_score(many).score == 5.0

    def test_pending_transactions_count_but_score_zero(self):
        inputs = TrustInputs(quality_grade=None, completed_transactions=0, total_transactions=2)
        factors = trust_factors(inputs)
        assert [f.name for f in factors] == ["transaction_history"]
        assert compute_trust_score(inputs).score == 0.0

    def test_unrated_farmer_is_skipped(self):
        inputs = TrustInputs(farmer_rating=0.0, quality_grade="B")
        assert [f.name for f in trust_factors(inputs)] == ["quality_grade"]
        assert compute_trust_score(inputs).score == 4.0

    def test_rounds_to_one_decimal(self):
        # 2.0 / 0.6 = 3.33…
        assert compute_trust_score(
            TrustInputs(farmer_rating=4.0, quality_grade="D")
        ).score == 3.3

    def test_exact_halves_round_up(self):
        assert _round_one_decimal(4.25) == 4.3
        assert _round_one_decimal(0.25) == 0.3
        assert compute_trust_score(
            TrustInputs(quality_grade=None, average_review_rating=4.25, review_count=4)
        ).score == 4.3

    @pytest.mark.parametrize("inputs", [
        # (5×0.2 + 4.5×0.2) / 0.4 is 4.7499… in binary floating point
        TrustInputs(quality_grade="A", average_review_rating=4.5, review_count=2),
        TrustInputs(quality_grade=None, average_review_rating=4.75, review_count=4),
        TrustInputs(farmer_rating=4.75, quality_grade=None),
    ], ids=["grade-and-reviews", "reviews-only", "farmer-only"])
    def test_exact_four_seventy_five_rounds_up(self, inputs):
        assert compute_trust_score(inputs).score == 4.8

    def test_deterministic(self):
        inputs = TrustInputs(farmer_rating=3.7, quality_grade="C", review_count=3,
                             average_review_rating=2.9, completed_transactions=2,
                             total_transactions=4)
        assert compute_trust_score(inputs) == compute_trust_score(inputs)

    @pytest.mark.parametrize("lower,higher", [("D", "C"), ("C", "B"), ("B", "A")])
    def test_better_grade_never_lowers_score(self, lower, higher):
        base = dict(farmer_rating=3.0, review_count=2, average_review_rating=3.5,
                    completed_transactions=1, total_transactions=2)
        low = compute_trust_score(TrustInputs(quality_grade=lower, **base)).score
        high = compute_trust_score(TrustInputs(quality_grade=higher, **base)).score
        assert high >= low

    def test_higher_farmer_rating_never_lowers_score(self):
        scores = [
            compute_trust_score(TrustInputs(farmer_rating=r, quality_grade="B")).score
            for r in (1.0, 2.5, 4.0, 5.0)
        ]
        assert scores == sorted(scores)

    def test_score_for_batch_counts_completed_transactions(self):
        batch = SimpleNamespace(quality_grade="A", average_rating=4.5, review_count=2)
        farmer = SimpleNamespace(rating=4.0)
        txns = [SimpleNamespace(status="completed")] * 3 + [SimpleNamespace(status="cancelled")]
        score = trust_score_for_batch(batch, farmer, txns)
        assert score.score == 4.5
        assert {f.name for f in score.factors} == {
            "farmer_rating", "quality_grade", "transaction_history", "reviews",
        }


@pytest.mark.unit
class TestAverageRating:

    def test_empty_is_zero(self):
        assert average_rating([]) == 0.0

    def test_exact_mean(self):
        assert average_rating([5, 4, 4, 2]) == 3.75
        assert average_rating([1]) == 1.0
