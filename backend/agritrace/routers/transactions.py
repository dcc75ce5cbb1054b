"""Transaction router — the ledger's HTTP surface.

Endpoints:
    POST   /api/transactions/                       Open a transfer (current owner)
    GET    /api/transactions/                       List my transactions (admins: all)
    GET    /api/transactions/batch/{batch_id}       Provenance chain, newest first
    GET    /api/transactions/{txn_id}               Single transaction
    PATCH  /api/transactions/{txn_id}               Edit terms while initiated
    PUT    /api/transactions/{txn_id}/status        Move through the state machine
    POST   /api/transactions/{txn_id}/quality-check Attach an inspection record
"""

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import get_current_identity, is_admin, require_quality_inspector
from agritrace.database import get_db
from agritrace.middleware.exceptions import AuthorizationError
from agritrace.models.identity import Identity
from agritrace.models.transaction import TransactionStatus
from agritrace.schemas.common import PaginatedResponse
from agritrace.schemas.transaction import (
    QualityCheckCreate,
    TransactionCreate,
    TransactionOut,
    TransactionStatusUpdate,
    TransactionSummary,
    TransactionTermsUpdate,
)
from agritrace.services import attestation, ledger, registry
from agritrace.utils.activity import log_activity
from agritrace.utils.cache import commit_and_invalidate

router = APIRouter()


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    txn = await ledger.create_transaction(
        db,
        batch_id=body.batch_id,
        from_id=identity.id,
        to_id=body.to_id,
        type=body.type,
        quantity=body.quantity,
        price_per_unit=body.price_per_unit,
        unit=body.unit,
        payment_method=body.payment_method,
        location=body.location.model_dump() if body.location else None,
        transport=body.transport.model_dump() if body.transport else None,
        documents=body.documents,
        notes=body.notes,
    )

    await log_activity(
        db, identity,
        action="created",
        entity_type="transaction",
        entity_id=txn.id,
        entity_code=txn.transaction_code,
        summary=f"Opened {txn.type} {txn.transaction_code}: {txn.quantity:g} {txn.unit} @ {txn.price_per_unit:g}",
    )

    background_tasks.add_task(
        attestation.record_transaction, attestation.transaction_payload(txn),
    )
    return TransactionOut.model_validate(txn)


# ── List ─────────────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[TransactionSummary])
async def list_transactions(
    txn_type: str | None = Query(None, alias="type"),
    txn_status: str | None = Query(None, alias="status"),
    batch_id: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    items, total = await ledger.list_transactions(
        db,
        viewer_id=None if is_admin(identity) else identity.id,
        type=txn_type,
        status=txn_status,
        batch_id=batch_id,
        created_from=date_from,
        created_to=date_to,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[TransactionSummary.model_validate(t) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/batch/{batch_id}", response_model=list[TransactionOut])
async def list_batch_transactions(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    """Full provenance chain of a batch, visible to any participant."""
    txns = await ledger.list_for_batch(db, batch_id)
    return [TransactionOut.model_validate(t) for t in txns]


# ── Single transaction ───────────────────────────────────────

@router.get("/{txn_id}", response_model=TransactionOut)
async def get_transaction(
    txn_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    txn = await ledger.get_transaction(db, txn_id)
    if not is_admin(identity) and identity.id not in (txn.from_id, txn.to_id):
        raise AuthorizationError("Only parties to the transaction may view it")
    return TransactionOut.model_validate(txn)


@router.patch("/{txn_id}", response_model=TransactionOut)
async def update_terms(
    txn_id: str,
    body: TransactionTermsUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    txn = await ledger.update_terms(
        db, txn_id, identity.id,
        quantity=body.quantity,
        price_per_unit=body.price_per_unit,
    )
    return TransactionOut.model_validate(txn)


# ── Status ───────────────────────────────────────────────────

@router.put("/{txn_id}/status", response_model=TransactionOut)
async def update_status(
    txn_id: str,
    body: TransactionStatusUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Move the transaction; completing it moves quantity and ownership.

    The status write and the batch update commit together or not at all.
    """
    txn = await ledger.set_status(
        db, txn_id, identity.id, body.status,
        notes=body.notes,
        dispute_reason=body.dispute_reason,
        resolution=body.resolution,
        is_admin=is_admin(identity),
    )

    if txn.status == TransactionStatus.COMPLETED.value:
        batch = await registry.get_batch(db, txn.batch_id)
        background_tasks.add_task(
            attestation.record_transaction,
            attestation.transaction_payload(txn, batch.batch_code),
        )

    await log_activity(
        db, identity,
        action="status_changed",
        entity_type="transaction",
        entity_id=txn.id,
        entity_code=txn.transaction_code,
        summary=f"{txn.transaction_code} → {txn.status}",
        details={"status": txn.status, "notes": body.notes},
    )
    if txn.status == TransactionStatus.COMPLETED.value:
        await commit_and_invalidate(db, "batches:*")
    return TransactionOut.model_validate(txn)


# ── Quality check ────────────────────────────────────────────

@router.post("/{txn_id}/quality-check", response_model=TransactionOut)
async def add_quality_check(
    txn_id: str,
    body: QualityCheckCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_quality_inspector),
):
    txn = await ledger.add_quality_check(
        db, txn_id, identity.id, body.grade,
        moisture=body.moisture,
        purity=body.purity,
        defects=body.defects,
        notes=body.notes,
    )

    await log_activity(
        db, identity,
        action="quality_checked",
        entity_type="transaction",
        entity_id=txn.id,
        entity_code=txn.transaction_code,
        summary=f"Graded {txn.transaction_code} {body.grade}",
    )
    return TransactionOut.model_validate(txn)
