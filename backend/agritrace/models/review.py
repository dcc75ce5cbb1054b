"""BatchReview — immutable consumer review of a batch.

One row per (batch, reviewer); the unique constraint backs up the
service-level duplicate check when two submissions race.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agritrace.database import Base


class BatchReview(Base):
    __tablename__ = "batch_reviews"
    __table_args__ = (
        UniqueConstraint("batch_id", "reviewer_id", name="uq_batch_reviews_batch_reviewer"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_batch_reviews_rating_range"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )
    reviewer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    batch = relationship("Batch", back_populates="reviews")
    reviewer = relationship("Identity")
