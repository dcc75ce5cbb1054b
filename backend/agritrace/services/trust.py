"""Trust score — a 0–5 provenance confidence figure for a batch.

Weighted partial-credit average.  Each factor only counts when there is
data for it, and the weights are renormalised over the factors that
count:

    factor               weight   contribution
    farmer rating         0.4     farmer's profile rating (if > 0)
    quality grade         0.2     A→5, B→4, C→3, D→2 (if graded)
    transaction history   0.2     min(completed / 3, 1) × 5 (if any txns)
    consumer reviews      0.2     average review rating (if any reviews)

    score = round(Σ contribution × weight / Σ weight, 1)   (0 if no factor)

The sums are taken in ``Decimal`` and halves round up, so 4.75 is 4.8
whichever factors produce it.

The computation is pure.  The batch detail view and the QR scan both go
through ``trust_score_for_batch``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from agritrace.models.transaction import TransactionStatus

FARMER_RATING_WEIGHT = 0.4
QUALITY_WEIGHT = 0.2
HISTORY_WEIGHT = 0.2
REVIEW_WEIGHT = 0.2

GRADE_SCORES: dict[str, float] = {"A": 5.0, "B": 4.0, "C": 3.0, "D": 2.0}

# Completed transfers needed for full credit on the history factor
FULL_HISTORY_COUNT = 3
MAX_SCORE = 5.0


@dataclass(frozen=True)
class TrustInputs:
    farmer_rating: float | None = None
    quality_grade: str | None = None
    completed_transactions: int = 0
    total_transactions: int = 0
    average_review_rating: float = 0.0
    review_count: int = 0


@dataclass(frozen=True)
class TrustFactor:
    name: str
    weight: float
    contribution: float


@dataclass(frozen=True)
class TrustScore:
    score: float
    factors: list[TrustFactor] = field(default_factory=list)


def _decimal(value: float) -> Decimal:
    return Decimal(str(value))


def _round_one_decimal(value: float | Decimal) -> float:
    return float(_decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def trust_factors(inputs: TrustInputs) -> list[TrustFactor]:
    """Return the factors that have data, in weight order."""
    factors: list[TrustFactor] = []

    if inputs.farmer_rating is not None and inputs.farmer_rating > 0:
        factors.append(TrustFactor("farmer_rating", FARMER_RATING_WEIGHT, inputs.farmer_rating))

    grade_score = GRADE_SCORES.get(inputs.quality_grade or "")
    if grade_score is not None:
        factors.append(TrustFactor("quality_grade", QUALITY_WEIGHT, grade_score))

    if inputs.total_transactions > 0:
        history = min(inputs.completed_transactions / FULL_HISTORY_COUNT, 1) * MAX_SCORE
        factors.append(TrustFactor("transaction_history", HISTORY_WEIGHT, history))

    if inputs.review_count > 0:
        factors.append(TrustFactor("reviews", REVIEW_WEIGHT, inputs.average_review_rating))

    return factors


def compute_trust_score(inputs: TrustInputs) -> TrustScore:
    factors = trust_factors(inputs)
    if not factors:
        return TrustScore(score=0.0, factors=[])

    # Summed in Decimal so equal exact scores round the same way
    total_weight = sum((_decimal(f.weight) for f in factors), Decimal(0))
    weighted = sum(
        (_decimal(f.contribution) * _decimal(f.weight) for f in factors), Decimal(0),
    )
    score = min(max(weighted / total_weight, Decimal(0)), _decimal(MAX_SCORE))
    return TrustScore(score=_round_one_decimal(score), factors=factors)


def trust_score_for_batch(batch, farmer, transactions: Iterable) -> TrustScore:
    """Score a loaded batch from its farmer and ledger entries."""
    statuses = [t.status for t in transactions]
    inputs = TrustInputs(
        farmer_rating=farmer.rating if farmer is not None else None,
        quality_grade=batch.quality_grade,
        completed_transactions=sum(
            1 for s in statuses if s == TransactionStatus.COMPLETED.value
        ),
        total_transactions=len(statuses),
        average_review_rating=batch.average_rating,
        review_count=batch.review_count,
    )
    return compute_trust_score(inputs)
