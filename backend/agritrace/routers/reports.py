"""Reporting router — read-only enumerations for regulators and admins.

Endpoints:
    GET /api/reports/batches        Every batch (inactive included) in a date range
    GET /api/reports/transactions   Every transaction in a date range
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import require_role
from agritrace.database import get_db
from agritrace.models.identity import Identity, IdentityRole
from agritrace.schemas.batch import BatchOut
from agritrace.schemas.common import PaginatedResponse
from agritrace.schemas.transaction import TransactionOut
from agritrace.services import ledger, registry

router = APIRouter()

require_reporter = require_role(IdentityRole.GOVERNMENT, IdentityRole.ADMIN)


@router.get("/batches", response_model=PaginatedResponse[BatchOut])
async def report_batches(
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    crop: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(require_reporter),
):
    items, total = await registry.list_batches(
        db,
        crop=crop,
        created_from=date_from,
        created_to=date_to,
        include_inactive=True,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[BatchOut.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/transactions", response_model=PaginatedResponse[TransactionOut])
async def report_transactions(
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    txn_type: str | None = Query(None, alias="type"),
    txn_status: str | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(require_reporter),
):
    items, total = await ledger.list_transactions(
        db,
        type=txn_type,
        status=txn_status,
        created_from=date_from,
        created_to=date_to,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[TransactionOut.model_validate(t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )
