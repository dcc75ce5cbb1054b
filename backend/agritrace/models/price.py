"""MarketPrice — one observed wholesale price for a crop at a market.

Rows are posted by distributors, government price reporters and admins and
form the public price board farmers compare their asking price against.
``price_average`` is always the midpoint of ``price_min`` and ``price_max``.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Float,
    ForeignKey, Index, String,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from agritrace.database import Base


class PriceSource(str, enum.Enum):
    MANDI = "mandi"
    FARMER = "farmer"
    DISTRIBUTOR = "distributor"
    GOVERNMENT = "government"
    API = "api"


class MarketPrice(Base):
    __tablename__ = "market_prices"
    __table_args__ = (
        CheckConstraint("price_min >= 0 AND price_max >= price_min", name="ck_market_prices_range"),
        Index("ix_market_prices_crop_observed", "crop", "observed_at"),
        Index("ix_market_prices_crop_variety_observed", "crop", "variety", "observed_at"),
        Index("ix_market_prices_observed_active", "observed_at", "is_active"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── What ─────────────────────────────────────────────────
    crop: Mapped[str] = mapped_column(String(30), nullable=False)
    variety: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Where ────────────────────────────────────────────────
    market_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    market_city: Mapped[str | None] = mapped_column(String(100))
    market_state: Mapped[str | None] = mapped_column(String(100))
    market_address: Mapped[str | None] = mapped_column(String(500))
    market_longitude: Mapped[float | None] = mapped_column(Float)
    market_latitude: Mapped[float | None] = mapped_column(Float)

    # ── Price (per unit) ─────────────────────────────────────
    price_min: Mapped[float] = mapped_column(Float, nullable=False)
    price_max: Mapped[float] = mapped_column(Float, nullable=False)
    price_average: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    # ── Supply & quality ─────────────────────────────────────
    quantity_available: Mapped[float] = mapped_column(Float, default=0.0)
    quantity_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    quality_grade: Mapped[str | None] = mapped_column(String(1), default="A")
    quality_moisture: Mapped[float | None] = mapped_column(Float)
    quality_purity: Mapped[float | None] = mapped_column(Float)

    # ── Provenance of the figure ─────────────────────────────
    source: Mapped[str] = mapped_column(String(20), nullable=False, default=PriceSource.MANDI.value)
    recorded_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("identities.id"), nullable=False
    )
    observed_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    @validates("price_min", "price_max")
    def _recompute_average(self, key, value):
        low = value if key == "price_min" else self.price_min
        high = value if key == "price_max" else self.price_max
        if low is not None and high is not None:
            self.price_average = (low + high) / 2
        return value
