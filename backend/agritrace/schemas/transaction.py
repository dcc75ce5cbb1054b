"""Pydantic schemas for ledger transactions."""

from datetime import datetime

from pydantic import BaseModel, Field


# ── Create ───────────────────────────────────────────────────

class TransactionLocation(BaseModel):
    coordinates: list[float] | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None


class TransactionTransport(BaseModel):
    vehicle_number: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    estimated_arrival: datetime | None = None
    actual_arrival: datetime | None = None
    transport_cost: float | None = Field(None, ge=0)


class TransactionCreate(BaseModel):
    """Payload for POST /api/transactions — the sender is the caller."""
    batch_id: str
    to_id: str
    type: str
    quantity: float = Field(..., gt=0)
    price_per_unit: float = Field(..., ge=0)

    unit: str | None = None
    payment_method: str | None = None
    location: TransactionLocation | None = None
    transport: TransactionTransport | None = None
    documents: list[dict] | None = None
    notes: str | None = None


# ── Update ───────────────────────────────────────────────────

class TransactionTermsUpdate(BaseModel):
    quantity: float | None = Field(None, gt=0)
    price_per_unit: float | None = Field(None, ge=0)


class TransactionStatusUpdate(BaseModel):
    status: str
    notes: str | None = None
    dispute_reason: str | None = None
    resolution: str | None = None


class QualityCheckCreate(BaseModel):
    grade: str
    moisture: float | None = Field(None, ge=0, le=100)
    purity: float | None = Field(None, ge=0, le=100)
    defects: float | None = Field(None, ge=0, le=100)
    notes: str | None = None


# ── Response ─────────────────────────────────────────────────

class TransactionOut(BaseModel):
    id: str
    transaction_code: str
    batch_id: str
    from_id: str
    to_id: str
    type: str
    quantity: float
    unit: str
    price_per_unit: float
    total_amount: float
    payment_method: str
    payment_status: str
    status: str
    notes: str | None
    dispute_reason: str | None
    resolution: str | None
    completed_at: datetime | None

    qc_grade: str | None
    qc_moisture: float | None
    qc_purity: float | None
    qc_defects: float | None
    qc_notes: str | None
    qc_performed_by: str | None
    qc_checked_at: datetime | None
    has_quality_check: bool = False

    longitude: float | None
    latitude: float | None
    address: str | None
    city: str | None
    state: str | None

    vehicle_number: str | None
    driver_name: str | None
    driver_phone: str | None
    estimated_arrival: datetime | None
    actual_arrival: datetime | None
    transport_cost: float | None

    documents: list[dict] | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransactionSummary(BaseModel):
    id: str
    transaction_code: str
    batch_id: str
    from_id: str
    to_id: str
    type: str
    quantity: float
    unit: str
    total_amount: float
    status: str
    has_quality_check: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}
