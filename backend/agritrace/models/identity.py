"""Identity — a marketplace participant (farmer, distributor, retailer, ...).

Credentials live with the external auth service; this table only holds
what the ledger needs for ownership and role checks, plus the profile
reputation that feeds the trust score.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from agritrace.database import Base


class IdentityRole(str, enum.Enum):
    FARMER = "farmer"
    DISTRIBUTOR = "distributor"
    RETAILER = "retailer"
    CONSUMER = "consumer"
    GOVERNMENT = "government"
    ADMIN = "admin"


class Identity(Base):
    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    phone: Mapped[str | None] = mapped_column(String(20))
    role: Mapped[IdentityRole] = mapped_column(
        SAEnum(IdentityRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    # Profile reputation: running average of ratings received from
    # counterparties.  0 means "not rated yet".
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)

    is_approved: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
