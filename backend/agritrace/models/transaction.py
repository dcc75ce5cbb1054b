"""Transaction — one recorded transfer of a batch between two identities.

Transactions are the ledger entries of the chain of custody.  A row is
created in ``initiated`` and moves through the state machine in
``services/ledger.py``; the batch is only touched at the single moment
the row enters ``completed``.

State machine:
    initiated   → in_progress | completed | cancelled | disputed
    in_progress → completed | cancelled | disputed
    disputed    → completed | cancelled
    completed, cancelled: terminal
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint, DateTime, Float, ForeignKey,
    Index, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from agritrace.database import Base


class TransactionType(str, enum.Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    AUCTION = "auction"


class TransactionStatus(str, enum.Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CRYPTO = "crypto"
    CREDIT = "credit"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transactions_quantity_positive"),
        CheckConstraint("price_per_unit >= 0", name="ck_transactions_price_non_negative"),
        Index("ix_transactions_batch_created", "batch_id", "created_at"),
        Index("ix_transactions_type_status", "type", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    transaction_code: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Parties ──────────────────────────────────────────────
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )
    from_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False, index=True
    )
    to_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    # ── Terms ────────────────────────────────────────────────
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    price_per_unit: Mapped[float] = mapped_column(Float, nullable=False)
    # Always quantity × price_per_unit; maintained by _recompute_total
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMethod.CASH.value
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.INITIATED.value, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text)
    dispute_reason: Mapped[str | None] = mapped_column(Text)
    resolution: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Quality check (optional, attached by an inspector) ──
    qc_grade: Mapped[str | None] = mapped_column(String(1))
    qc_moisture: Mapped[float | None] = mapped_column(Float)
    qc_purity: Mapped[float | None] = mapped_column(Float)
    qc_defects: Mapped[float | None] = mapped_column(Float)
    qc_notes: Mapped[str | None] = mapped_column(Text)
    qc_performed_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("identities.id")
    )
    qc_checked_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Handover location ────────────────────────────────────
    longitude: Mapped[float | None] = mapped_column(Float)
    latitude: Mapped[float | None] = mapped_column(Float)
    address: Mapped[str | None] = mapped_column(String(500))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))

    # ── Transport ────────────────────────────────────────────
    vehicle_number: Mapped[str | None] = mapped_column(String(30))
    driver_name: Mapped[str | None] = mapped_column(String(100))
    driver_phone: Mapped[str | None] = mapped_column(String(20))
    estimated_arrival: Mapped[datetime | None] = mapped_column(DateTime)
    actual_arrival: Mapped[datetime | None] = mapped_column(DateTime)
    transport_cost: Mapped[float | None] = mapped_column(Float)

    # [{"type": "invoice", "url": "...", "uploaded_at": "..."}]
    documents: Mapped[list | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    batch = relationship("Batch", back_populates="transactions")
    sender = relationship("Identity", foreign_keys=[from_id])
    recipient = relationship("Identity", foreign_keys=[to_id])

    @validates("quantity", "price_per_unit")
    def _recompute_total(self, key, value):
        quantity = value if key == "quantity" else self.quantity
        price = value if key == "price_per_unit" else self.price_per_unit
        if quantity is not None and price is not None:
            self.total_amount = quantity * price
        return value

    @property
    def has_quality_check(self) -> bool:
        return self.qc_grade is not None
