"""Pydantic schemas for batch registration, edits, reviews and custody logs."""

from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator


# ── Create ───────────────────────────────────────────────────

class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    country: str | None = None


class QualityIn(BaseModel):
    grade: str | None = "A"
    moisture: float | None = Field(None, ge=0, le=100)
    purity: float | None = Field(None, ge=0, le=100)
    defects: float | None = Field(None, ge=0, le=100)
    # [{"name": "Organic", "issued_by": "...", "valid_until": "..."}]
    certifications: list[dict] | None = None


class BatchCreate(BaseModel):
    """Payload for POST /api/batches — the farmer is the caller."""
    crop: str
    variety: str = Field(..., min_length=1, max_length=100)
    quantity: float = Field(..., gt=0)
    unit: str = "kg"
    expected_price: float = Field(..., ge=0)
    harvest_date: date
    # [longitude, latitude]
    origin_coordinates: list[float]

    origin_address: Address | None = None
    quality: QualityIn | None = None


# ── Update (partial) ─────────────────────────────────────────

class BatchUpdate(BaseModel):
    variety: str | None = Field(None, min_length=1, max_length=100)
    expected_price: float | None = Field(None, ge=0)
    quality: QualityIn | None = None


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class TransportConditionCreate(BaseModel):
    temperature: float | None = None
    humidity: float | None = Field(None, ge=0, le=100)
    coordinates: list[float] | None = None
    notes: str | None = None


class LocationUpdate(BaseModel):
    coordinates: list[float]
    address: str | None = None


# ── Response ─────────────────────────────────────────────────

class BatchOut(BaseModel):
    id: str
    batch_code: str
    farmer_id: str
    crop: str
    variety: str
    harvest_date: date
    unit: str
    initial_quantity: float
    quantity_remaining: float
    expected_price: float

    origin_longitude: float
    origin_latitude: float
    origin_address: dict | None

    quality_grade: str | None
    quality_moisture: float | None
    quality_purity: float | None
    quality_defects: float | None
    certifications: list[dict] | None

    status: str
    current_owner_id: str
    current_longitude: float | None
    current_latitude: float | None
    current_address: str | None
    location_updated_at: datetime | None

    average_rating: float
    review_count: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── List (lightweight) ───────────────────────────────────────

class BatchSummary(BaseModel):
    id: str
    batch_code: str
    farmer_id: str
    crop: str
    variety: str
    quantity_remaining: float
    unit: str
    expected_price: float
    quality_grade: str | None
    status: str
    current_owner_id: str
    average_rating: float
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewOut(BaseModel):
    id: str
    reviewer_id: str
    reviewer_name: str | None = None
    rating: int
    comment: str | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _extract_reviewer_name(cls, data):
        # Only read the relationship when it was eager-loaded
        loaded = getattr(data, "__dict__", {})
        reviewer = loaded.get("reviewer")
        if reviewer is not None:
            data.__dict__["reviewer_name"] = reviewer.name
        return data


class TransportConditionOut(BaseModel):
    id: str
    temperature: float | None
    humidity: float | None
    longitude: float | None
    latitude: float | None
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime

    model_config = {"from_attributes": True}
