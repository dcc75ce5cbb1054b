"""Aggregate model imports for Alembic auto-detection."""

from agritrace.models.identity import Identity, IdentityRole  # noqa: F401
from agritrace.models.batch import (  # noqa: F401
    Batch, BatchStatus, CropType, QualityGrade, QuantityUnit,
)
from agritrace.models.review import BatchReview  # noqa: F401
from agritrace.models.transport_condition import TransportCondition  # noqa: F401
from agritrace.models.transaction import (  # noqa: F401
    PaymentMethod, PaymentStatus, Transaction, TransactionStatus, TransactionType,
)
from agritrace.models.activity_log import ActivityLog  # noqa: F401
from agritrace.models.price import MarketPrice, PriceSource  # noqa: F401

__all__ = [
    "Identity", "IdentityRole",
    "Batch", "BatchStatus", "CropType", "QualityGrade", "QuantityUnit",
    "BatchReview", "TransportCondition",
    "Transaction", "TransactionStatus", "TransactionType",
    "PaymentMethod", "PaymentStatus",
    "ActivityLog",
    "MarketPrice", "PriceSource",
]
