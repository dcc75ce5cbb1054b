"""Schemas for the provenance view, trust score and QR payloads."""

from datetime import date

from pydantic import BaseModel, Field

from agritrace.models.identity import IdentityRole
from agritrace.schemas.batch import BatchOut, ReviewOut, TransportConditionOut
from agritrace.schemas.transaction import TransactionOut


class IdentityBrief(BaseModel):
    id: str
    name: str
    role: IdentityRole
    rating: float | None = None

    model_config = {"from_attributes": True}


class TrustFactorOut(BaseModel):
    name: str
    weight: float
    contribution: float

    model_config = {"from_attributes": True}


class TrustScoreOut(BaseModel):
    score: float
    factors: list[TrustFactorOut] = []

    model_config = {"from_attributes": True}


class Provenance(BaseModel):
    origin: dict
    harvest_date: date
    farmer: IdentityBrief | None = None
    current_owner: IdentityBrief | None = None
    transport_history: list[TransportConditionOut] = []


class BatchDetailOut(BatchOut):
    farmer_name: str | None = None
    current_owner_name: str | None = None
    trust_score: float = 0.0
    reviews: list[ReviewOut] = []


class BatchProvenanceOut(BaseModel):
    """Response for batch detail, QR scan and lookup by batch code."""
    batch: BatchDetailOut
    transactions: list[TransactionOut]
    trust_score: TrustScoreOut
    provenance: Provenance

    @classmethod
    def from_view(cls, view) -> "BatchProvenanceOut":
        """Build from a ``services.provenance.ProvenanceView``."""
        batch = view.batch
        detail = BatchDetailOut.model_validate(batch)
        detail.farmer_name = view.farmer.name if view.farmer else None
        detail.current_owner_name = view.current_owner.name if view.current_owner else None
        detail.trust_score = view.trust.score

        return cls(
            batch=detail,
            transactions=[TransactionOut.model_validate(t) for t in view.transactions],
            trust_score=TrustScoreOut.model_validate(view.trust),
            provenance=Provenance(
                origin=view.origin,
                harvest_date=batch.harvest_date,
                farmer=IdentityBrief.model_validate(view.farmer) if view.farmer else None,
                current_owner=(
                    IdentityBrief.model_validate(view.current_owner)
                    if view.current_owner else None
                ),
                transport_history=[
                    TransportConditionOut.model_validate(c) for c in view.transport_history
                ],
            ),
        )


# ── QR ───────────────────────────────────────────────────────

class QRPayloadRequest(BaseModel):
    batch_id: str


class QRPayloadOut(BaseModel):
    payload: dict
    # The exact text to encode in the label
    data: str


class QRScanRequest(BaseModel):
    qr_data: str = Field(..., min_length=1)
