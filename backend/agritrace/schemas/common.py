"""Envelope shared by the paginated listings.

The marketplace (``GET /api/batches/``), a participant's ledger
(``GET /api/transactions/``) and the oversight reports all answer with
the same page shape, so clients page through them the same way:

    {"items": [...], "total": 132, "limit": 50, "offset": 50}

``total`` counts every row matching the filters, not just this page.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

ItemT = TypeVar("ItemT")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    items: list[ItemT]
    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
