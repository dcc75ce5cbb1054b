"""Batch — one harvested lot of a crop.

A Batch is registered by the farmer who harvested it and then moves down
the chain of custody (farmer → distributor → retailer → consumer).  The
row is the single source of truth for what is left of the lot and who
holds it; only ``registry.apply_transfer_effect`` may change
``quantity_remaining`` or ``current_owner_id``.

Lifecycle:  harvested → in-transit / at-mandi / at-retailer → sold
            (``expired`` is set by operators; ``sold`` is terminal)
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Float,
    ForeignKey, Index, Integer, JSON, String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agritrace.database import Base


class CropType(str, enum.Enum):
    WHEAT = "wheat"
    RICE = "rice"
    CORN = "corn"
    POTATO = "potato"
    TOMATO = "tomato"
    ONION = "onion"
    SUGARCANE = "sugarcane"
    COTTON = "cotton"
    OTHER = "other"


class QuantityUnit(str, enum.Enum):
    KG = "kg"
    QUINTAL = "quintal"
    TON = "ton"
    BAG = "bag"
    PIECE = "piece"


class QualityGrade(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class BatchStatus(str, enum.Enum):
    HARVESTED = "harvested"
    IN_TRANSIT = "in-transit"
    AT_MANDI = "at-mandi"
    AT_RETAILER = "at-retailer"
    SOLD = "sold"
    EXPIRED = "expired"


class Batch(Base):
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("quantity_remaining >= 0", name="ck_batches_quantity_non_negative"),
        Index("ix_batches_farmer_status", "farmer_id", "status"),
        Index("ix_batches_crop_status", "crop", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Shareable code printed in the QR payload: BATCH-YYYYMMDD-XXXXXXXX
    batch_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Origin ───────────────────────────────────────────────
    farmer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False, index=True
    )
    origin_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    origin_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    # {"street", "city", "state", "pincode", "country"}
    origin_address: Mapped[dict | None] = mapped_column(JSON)

    # ── Produce ──────────────────────────────────────────────
    crop: Mapped[str] = mapped_column(String(30), nullable=False)
    variety: Mapped[str] = mapped_column(String(100), nullable=False)
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default=QuantityUnit.KG.value)
    initial_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    quantity_remaining: Mapped[float] = mapped_column(Float, nullable=False)
    expected_price: Mapped[float] = mapped_column(Float, nullable=False)

    # ── Quality ──────────────────────────────────────────────
    quality_grade: Mapped[str | None] = mapped_column(String(1), default=QualityGrade.A.value)
    quality_moisture: Mapped[float | None] = mapped_column(Float)
    quality_purity: Mapped[float | None] = mapped_column(Float)
    quality_defects: Mapped[float | None] = mapped_column(Float)
    certifications: Mapped[list | None] = mapped_column(JSON)

    # ── Custody ──────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchStatus.HARVESTED.value, index=True
    )
    current_owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False, index=True
    )
    current_longitude: Mapped[float | None] = mapped_column(Float)
    current_latitude: Mapped[float | None] = mapped_column(Float)
    current_address: Mapped[str | None] = mapped_column(String(500))
    location_updated_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Reviews (derived) ────────────────────────────────────
    average_rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Metadata ─────────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    # lazy="select" everywhere; callers use selectinload() explicitly.
    farmer = relationship("Identity", foreign_keys=[farmer_id])
    current_owner = relationship("Identity", foreign_keys=[current_owner_id])
    reviews = relationship(
        "BatchReview", back_populates="batch",
        order_by="BatchReview.created_at",
    )
    transport_conditions = relationship(
        "TransportCondition", back_populates="batch",
        order_by="TransportCondition.recorded_at",
    )
    transactions = relationship("Transaction", back_populates="batch")
