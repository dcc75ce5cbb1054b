"""Batch router — registration, marketplace listing and custody updates.

Endpoints:
    POST   /api/batches/                              Register a harvested batch (farmer)
    GET    /api/batches/                              List active batches (with filters)
    GET    /api/batches/mine                          Batches I registered / hold
    GET    /api/batches/{batch_id}                    Detail with transactions + trust score
    PATCH  /api/batches/{batch_id}                    Edit variety / price / quality (farmer)
    DELETE /api/batches/{batch_id}                    Soft-delete (farmer)
    GET    /api/batches/{batch_id}/reviews            Reviews, oldest first
    POST   /api/batches/{batch_id}/reviews            Add a review
    GET    /api/batches/{batch_id}/transport-conditions  Cold-chain log
    POST   /api/batches/{batch_id}/transport-conditions  Log a cold-chain reading (owner)
    PUT    /api/batches/{batch_id}/location           Update current location (owner)
"""

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import get_current_identity, require_role
from agritrace.database import get_db
from agritrace.models.identity import Identity, IdentityRole
from agritrace.schemas.batch import (
    BatchCreate,
    BatchOut,
    BatchSummary,
    BatchUpdate,
    LocationUpdate,
    ReviewCreate,
    ReviewOut,
    TransportConditionCreate,
    TransportConditionOut,
)
from agritrace.schemas.common import PaginatedResponse
from agritrace.schemas.provenance import BatchProvenanceOut
from agritrace.services import attestation, provenance, registry
from agritrace.utils.activity import log_activity
from agritrace.utils.cache import cached, commit_and_invalidate

router = APIRouter()


# ── Register ─────────────────────────────────────────────────

@router.post("/", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: BatchCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_role(IdentityRole.FARMER)),
):
    """Register a harvested batch.

    The caller becomes the first owner; the origin becomes the current
    location.  Attestation is queued after the response.
    """
    batch = await registry.create_batch(
        db,
        farmer_id=identity.id,
        crop=body.crop,
        variety=body.variety,
        quantity=body.quantity,
        unit=body.unit,
        expected_price=body.expected_price,
        harvest_date=body.harvest_date,
        origin_coordinates=body.origin_coordinates,
        origin_address=body.origin_address.model_dump(exclude_none=True) if body.origin_address else None,
        quality=body.quality.model_dump(exclude_none=True) if body.quality else None,
    )

    await log_activity(
        db, identity,
        action="created",
        entity_type="batch",
        entity_id=batch.id,
        entity_code=batch.batch_code,
        summary=f"Registered {batch.batch_code}: {batch.initial_quantity:g} {batch.unit} {batch.crop} ({batch.variety})",
    )
    await commit_and_invalidate(db, "batches:*")

    background_tasks.add_task(attestation.register_batch, attestation.batch_payload(batch))
    return BatchOut.model_validate(batch)


# ── List batches ─────────────────────────────────────────────

@router.get("/", response_model=PaginatedResponse[BatchSummary])
@cached(ttl=60, prefix="batches")  # Cache for 1 minute (stock changes with every transfer)
async def list_batches(
    crop: str | None = Query(None),
    batch_status: str | None = Query(None, alias="status"),
    farmer_id: str | None = Query(None),
    owner_id: str | None = Query(None),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    items, total = await registry.list_batches(
        db,
        crop=crop,
        status=batch_status,
        farmer_id=farmer_id,
        owner_id=owner_id,
        min_price=min_price,
        max_price=max_price,
        created_from=date_from,
        created_to=date_to,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[BatchSummary.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/mine", response_model=PaginatedResponse[BatchSummary])
async def list_my_batches(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Farmers see what they registered; everyone else what they hold."""
    if identity.role == IdentityRole.FARMER:
        filters = {"farmer_id": identity.id}
    else:
        filters = {"owner_id": identity.id}
    items, total = await registry.list_batches(db, limit=limit, offset=offset, **filters)
    return PaginatedResponse(
        items=[BatchSummary.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Single batch detail ──────────────────────────────────────

@router.get("/{batch_id}", response_model=BatchProvenanceOut)
async def get_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    view = await provenance.get_batch_with_provenance(db, batch_id)
    return BatchProvenanceOut.from_view(view)


# ── Update / delete ──────────────────────────────────────────

@router.patch("/{batch_id}", response_model=BatchOut)
async def update_batch(
    batch_id: str,
    body: BatchUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    fields = body.model_dump(exclude_unset=True)
    batch = await registry.update_batch(db, batch_id, identity.id, fields)

    await log_activity(
        db, identity,
        action="updated",
        entity_type="batch",
        entity_id=batch.id,
        entity_code=batch.batch_code,
        summary=f"Updated {', '.join(sorted(fields)) or 'nothing'} on {batch.batch_code}",
    )
    await commit_and_invalidate(db, "batches:*")
    return BatchOut.model_validate(batch)


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Soft-delete: the batch stays readable by id, code and QR scan."""
    batch = await registry.deactivate(db, batch_id, identity.id)

    await log_activity(
        db, identity,
        action="deactivated",
        entity_type="batch",
        entity_id=batch.id,
        entity_code=batch.batch_code,
        summary=f"Deactivated batch {batch.batch_code}",
    )
    await commit_and_invalidate(db, "batches:*")


# ── Reviews ──────────────────────────────────────────────────

@router.get("/{batch_id}/reviews", response_model=list[ReviewOut])
async def list_reviews(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    reviews = await registry.list_reviews(db, batch_id)
    return [ReviewOut.model_validate(r) for r in reviews]


@router.post(
    "/{batch_id}/reviews",
    response_model=BatchOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_review(
    batch_id: str,
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    batch = await registry.add_review(db, batch_id, identity.id, body.rating, body.comment)

    await log_activity(
        db, identity,
        action="reviewed",
        entity_type="batch",
        entity_id=batch.id,
        entity_code=batch.batch_code,
        summary=f"Rated {batch.batch_code} {body.rating}/5",
    )
    await commit_and_invalidate(db, "batches:*")
    return BatchOut.model_validate(batch)


# ── Custody log ──────────────────────────────────────────────

@router.get(
    "/{batch_id}/transport-conditions",
    response_model=list[TransportConditionOut],
)
async def list_transport_conditions(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    """Cold-chain readings in the order they were taken."""
    readings = await registry.list_transport_conditions(db, batch_id)
    return [TransportConditionOut.model_validate(r) for r in readings]


@router.post(
    "/{batch_id}/transport-conditions",
    response_model=TransportConditionOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_transport_condition(
    batch_id: str,
    body: TransportConditionCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    reading = await registry.record_transport_condition(
        db,
        batch_id,
        identity.id,
        temperature=body.temperature,
        humidity=body.humidity,
        coordinates=body.coordinates,
        notes=body.notes,
    )

    await log_activity(
        db, identity,
        action="condition_recorded",
        entity_type="batch",
        entity_id=batch_id,
        summary="Recorded transport conditions",
        details={"temperature": body.temperature, "humidity": body.humidity},
    )
    return TransportConditionOut.model_validate(reading)


@router.put("/{batch_id}/location", response_model=BatchOut)
async def update_location(
    batch_id: str,
    body: LocationUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    batch = await registry.update_location(
        db, batch_id, identity.id, body.coordinates, body.address,
    )

    await log_activity(
        db, identity,
        action="location_updated",
        entity_type="batch",
        entity_id=batch.id,
        entity_code=batch.batch_code,
        summary=f"Moved {batch.batch_code} to [{batch.current_longitude}, {batch.current_latitude}]",
    )
    return BatchOut.model_validate(batch)
