"""Schemas for identity profiles and counterparty ratings."""

from datetime import datetime

from pydantic import BaseModel, Field

from agritrace.models.identity import IdentityRole


class IdentityOut(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None
    role: IdentityRole
    rating: float
    rating_count: int
    is_approved: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    # Optional: the transaction this rating is about; the rater must be a party
    transaction_id: str | None = None
