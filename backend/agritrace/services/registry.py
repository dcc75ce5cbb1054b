"""Batch registry — the single source of truth for batch state.

Handles:
  - Registering a harvested batch (initial owner and location = farmer/origin)
  - Farmer-only edits and soft deactivation
  - Consumer reviews, with the average recomputed from every stored rating
  - Cold-chain readings and location updates by the current custodian
  - ``apply_transfer_effect``: the only code path that changes quantity,
    owner and custody status, done as one conditional UPDATE so concurrent
    completions cannot overdraw the batch
"""

import logging
from datetime import date, datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agritrace.middleware.exceptions import (
    AuthorizationError,
    DuplicateReviewError,
    InsufficientQuantityError,
    NotFoundError,
    ValidationError,
)
from agritrace.models.batch import Batch, BatchStatus, CropType, QualityGrade, QuantityUnit
from agritrace.models.identity import Identity
from agritrace.models.review import BatchReview
from agritrace.models.transport_condition import TransportCondition
from agritrace.services.reviews import average_rating
from agritrace.utils.numbering import generate_code

logger = logging.getLogger("agritrace.registry")

CROPS = {c.value for c in CropType}
UNITS = {u.value for u in QuantityUnit}
GRADES = {g.value for g in QualityGrade}

# Fields a farmer may edit after registration
EDITABLE_FIELDS = {"variety", "expected_price", "quality"}


# ── Validation helpers ───────────────────────────────────────

def validate_coordinates(coordinates) -> tuple[float, float]:
    """Return (longitude, latitude) or raise ValidationError."""
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        raise ValidationError(
            "Coordinates must be a [longitude, latitude] pair"
        )
    try:
        longitude, latitude = (float(c) for c in coordinates)
    except (TypeError, ValueError):
        raise ValidationError("Coordinates must be numeric")
    if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValidationError(
            f"Coordinates out of range: [{longitude}, {latitude}]"
        )
    return longitude, latitude


def _validate_quality(quality: dict | None) -> dict:
    quality = dict(quality or {})
    grade = quality.get("grade", QualityGrade.A.value)
    if grade is not None and grade not in GRADES:
        raise ValidationError(f"Invalid quality grade: {grade}")
    for key in ("moisture", "purity", "defects"):
        value = quality.get(key)
        if value is not None and not 0 <= value <= 100:
            raise ValidationError(f"Quality {key} must be a percentage between 0 and 100")
    quality["grade"] = grade
    return quality


def _apply_quality(batch: Batch, quality: dict) -> None:
    batch.quality_grade = quality.get("grade")
    batch.quality_moisture = quality.get("moisture")
    batch.quality_purity = quality.get("purity")
    batch.quality_defects = quality.get("defects")
    batch.certifications = quality.get("certifications") or []


# ── Lookups ──────────────────────────────────────────────────

async def get_identity(db: AsyncSession, identity_id: str) -> Identity:
    identity = await db.get(Identity, identity_id)
    if identity is None or not identity.is_active:
        raise NotFoundError("Identity", identity_id)
    return identity


async def get_batch(
    db: AsyncSession,
    batch_id: str,
    *,
    for_update: bool = False,
    refresh: bool = False,
) -> Batch:
    stmt = select(Batch).where(Batch.id == batch_id)
    if for_update:
        stmt = stmt.with_for_update()
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


async def get_batch_by_code(db: AsyncSession, batch_code: str) -> Batch:
    batch = (
        await db.execute(select(Batch).where(Batch.batch_code == batch_code))
    ).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", batch_code)
    return batch


# ── Create ───────────────────────────────────────────────────

async def create_batch(
    db: AsyncSession,
    *,
    farmer_id: str,
    crop: str,
    variety: str,
    quantity: float,
    unit: str,
    expected_price: float,
    harvest_date: date,
    origin_coordinates,
    origin_address: dict | None = None,
    quality: dict | None = None,
) -> Batch:
    """Register a harvested batch owned by ``farmer_id``.

    Raises:
        ValidationError for an unknown crop/unit, non-positive quantity,
        negative price or malformed origin coordinates.
        NotFoundError if the farmer identity does not exist.
    """
    if crop not in CROPS:
        raise ValidationError(f"Invalid crop type: {crop}")
    if unit not in UNITS:
        raise ValidationError(f"Invalid unit: {unit}")
    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if expected_price is None or expected_price < 0:
        raise ValidationError("Expected price must not be negative")
    if not variety or not variety.strip():
        raise ValidationError("Crop variety is required")
    longitude, latitude = validate_coordinates(origin_coordinates)
    quality = _validate_quality(quality)

    await get_identity(db, farmer_id)

    address = dict(origin_address or {})
    address.setdefault("country", "India")
    now = datetime.utcnow()

    batch = Batch(
        batch_code=generate_code("batch", now),
        farmer_id=farmer_id,
        crop=crop,
        variety=variety.strip(),
        initial_quantity=quantity,
        quantity_remaining=quantity,
        unit=unit,
        expected_price=expected_price,
        harvest_date=harvest_date,
        origin_longitude=longitude,
        origin_latitude=latitude,
        origin_address=address,
        status=BatchStatus.HARVESTED.value,
        current_owner_id=farmer_id,
        current_longitude=longitude,
        current_latitude=latitude,
        current_address=_format_address(address),
        location_updated_at=now,
        average_rating=0.0,
        review_count=0,
        is_active=True,
    )
    _apply_quality(batch, quality)
    db.add(batch)
    await db.flush()  # populate batch.id

    logger.info(
        "Registered batch %s: %g %s %s for farmer %s",
        batch.batch_code, quantity, unit, crop, farmer_id,
    )
    return batch


def _format_address(address: dict) -> str | None:
    parts = [
        address.get(k) for k in ("street", "city", "state", "pincode", "country")
    ]
    text = ", ".join(p for p in parts if p)
    return text or None


# ── Update / deactivate ──────────────────────────────────────

async def update_batch(
    db: AsyncSession,
    batch_id: str,
    requester_id: str,
    fields: dict,
) -> Batch:
    """Apply farmer edits.  Quantity, owner and status are never editable."""
    batch = await get_batch(db, batch_id)
    if batch.farmer_id != requester_id:
        raise AuthorizationError("Only the farmer who registered this batch may edit it")

    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")

    if "variety" in fields:
        variety = fields["variety"]
        if not variety or not variety.strip():
            raise ValidationError("Crop variety is required")
        batch.variety = variety.strip()
    if "expected_price" in fields:
        price = fields["expected_price"]
        if price is None or price < 0:
            raise ValidationError("Expected price must not be negative")
        batch.expected_price = price
    if "quality" in fields:
        _apply_quality(batch, _validate_quality(fields["quality"]))

    await db.flush()
    return batch


async def deactivate(db: AsyncSession, batch_id: str, requester_id: str) -> Batch:
    """Soft-delete: the batch stays readable but leaves active listings."""
    batch = await get_batch(db, batch_id)
    if batch.farmer_id != requester_id:
        raise AuthorizationError("Only the farmer who registered this batch may deactivate it")
    batch.is_active = False
    await db.flush()
    logger.info("Deactivated batch %s", batch.batch_code)
    return batch


# ── Reviews ──────────────────────────────────────────────────

async def add_review(
    db: AsyncSession,
    batch_id: str,
    reviewer_id: str,
    rating: int,
    comment: str | None = None,
) -> Batch:
    """Append a review and recompute the batch's average rating.

    Raises:
        DuplicateReviewError if ``reviewer_id`` already reviewed the batch.
    """
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")

    # Row lock serialises concurrent reviews on the same batch
    batch = await get_batch(db, batch_id, for_update=True)
    await get_identity(db, reviewer_id)

    existing = await db.scalar(
        select(BatchReview.id).where(
            BatchReview.batch_id == batch_id,
            BatchReview.reviewer_id == reviewer_id,
        )
    )
    if existing is not None:
        raise DuplicateReviewError(batch_id, reviewer_id)

    db.add(BatchReview(
        batch_id=batch_id,
        reviewer_id=reviewer_id,
        rating=rating,
        comment=comment,
    ))
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateReviewError(batch_id, reviewer_id)

    ratings = (
        await db.execute(
            select(BatchReview.rating).where(BatchReview.batch_id == batch_id)
        )
    ).scalars().all()
    batch.average_rating = average_rating(ratings)
    batch.review_count = len(ratings)
    await db.flush()
    return batch


async def list_reviews(db: AsyncSession, batch_id: str) -> list[BatchReview]:
    """Reviews of a batch, oldest first, with reviewer names loaded."""
    await get_batch(db, batch_id)
    result = await db.execute(
        select(BatchReview)
        .options(selectinload(BatchReview.reviewer))
        .where(BatchReview.batch_id == batch_id)
        .order_by(BatchReview.created_at)
    )
    return list(result.scalars().all())


# ── Custody effects ──────────────────────────────────────────

async def apply_transfer_effect(
    db: AsyncSession,
    batch_id: str,
    quantity: float,
    new_owner_id: str,
    is_ownership_changing: bool,
    custody_status: str | None = None,
) -> Batch:
    """Decrement quantity and (optionally) reassign the owner, atomically.

    The check and the write are one UPDATE guarded by
    ``quantity_remaining >= quantity``, so the database decides which of
    two racing transfers wins.  Quantity, owner and status change in the
    same statement; readers never see one without the others.

    ``custody_status`` is the status to record when the batch is not sold
    out (e.g. ``at-retailer``); ``sold`` always wins once nothing remains,
    and a sold batch never matches the guard again.

    Raises:
        InsufficientQuantityError when the guard fails; never clamps.
        NotFoundError for an unknown batch.
    """
    if quantity is None or quantity <= 0:
        raise ValidationError("Transfer quantity must be greater than zero")

    remaining_after = Batch.quantity_remaining - quantity
    values = {
        "quantity_remaining": remaining_after,
        "status": case(
            (remaining_after <= 0, BatchStatus.SOLD.value),
            else_=custody_status if custody_status is not None else Batch.status,
        ),
        "updated_at": datetime.utcnow(),
    }
    if is_ownership_changing:
        values["current_owner_id"] = new_owner_id

    result = await db.execute(
        update(Batch)
        .where(
            Batch.id == batch_id,
            Batch.quantity_remaining >= quantity,
            Batch.status != BatchStatus.SOLD.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        batch = await get_batch(db, batch_id, refresh=True)
        logger.warning(
            "Transfer of %g rejected on batch %s: %g remaining (status %s)",
            quantity, batch.batch_code, batch.quantity_remaining, batch.status,
        )
        raise InsufficientQuantityError(quantity, batch.quantity_remaining)

    batch = await get_batch(db, batch_id, refresh=True)
    logger.info(
        "Applied transfer of %g on batch %s: %g remaining, owner %s, status %s",
        quantity, batch.batch_code, batch.quantity_remaining,
        batch.current_owner_id, batch.status,
    )
    return batch


async def record_transport_condition(
    db: AsyncSession,
    batch_id: str,
    requester_id: str,
    *,
    temperature: float | None = None,
    humidity: float | None = None,
    coordinates=None,
    notes: str | None = None,
) -> TransportCondition:
    """Append a cold-chain reading.  Only the current custodian may log."""
    batch = await get_batch(db, batch_id)
    if batch.current_owner_id != requester_id:
        raise AuthorizationError("Only the current owner may record transport conditions")
    if humidity is not None and not 0 <= humidity <= 100:
        raise ValidationError("Humidity must be between 0 and 100")

    longitude = latitude = None
    if coordinates is not None:
        longitude, latitude = validate_coordinates(coordinates)

    reading = TransportCondition(
        batch_id=batch_id,
        temperature=temperature,
        humidity=humidity,
        longitude=longitude,
        latitude=latitude,
        notes=notes,
        recorded_by=requester_id,
    )
    db.add(reading)
    await db.flush()
    return reading


async def list_transport_conditions(db: AsyncSession, batch_id: str) -> list[TransportCondition]:
    await get_batch(db, batch_id)
    result = await db.execute(
        select(TransportCondition)
        .where(TransportCondition.batch_id == batch_id)
        .order_by(TransportCondition.recorded_at)
    )
    return list(result.scalars().all())


async def update_location(
    db: AsyncSession,
    batch_id: str,
    requester_id: str,
    coordinates,
    address: str | None = None,
) -> Batch:
    batch = await get_batch(db, batch_id)
    if batch.current_owner_id != requester_id:
        raise AuthorizationError("Only the current owner may update the batch location")
    batch.current_longitude, batch.current_latitude = validate_coordinates(coordinates)
    batch.current_address = address
    batch.location_updated_at = datetime.utcnow()
    await db.flush()
    return batch


# ── Listings ─────────────────────────────────────────────────

async def list_batches(
    db: AsyncSession,
    *,
    crop: str | None = None,
    status: str | None = None,
    farmer_id: str | None = None,
    owner_id: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    include_inactive: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Batch], int]:
    """Return (page, total) of batches, newest first."""
    stmt = select(Batch)
    if not include_inactive:
        stmt = stmt.where(Batch.is_active == True)  # noqa: E712
    if crop:
        stmt = stmt.where(Batch.crop == crop)
    if status:
        stmt = stmt.where(Batch.status == status)
    if farmer_id:
        stmt = stmt.where(Batch.farmer_id == farmer_id)
    if owner_id:
        stmt = stmt.where(Batch.current_owner_id == owner_id)
    if min_price is not None:
        stmt = stmt.where(Batch.expected_price >= min_price)
    if max_price is not None:
        stmt = stmt.where(Batch.expected_price <= max_price)
    if created_from:
        stmt = stmt.where(Batch.created_at >= created_from)
    if created_to:
        stmt = stmt.where(Batch.created_at <= created_to)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(
        stmt.order_by(Batch.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total
