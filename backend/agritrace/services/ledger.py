"""Transaction ledger — validates transfers and applies them to batches.

Handles:
  - Opening a transfer (only the batch's current owner may, and only for
    quantity that is still available)
  - Editing terms while the transfer is still ``initiated``
  - Status changes through the state machine; entering ``completed``
    calls ``registry.apply_transfer_effect`` exactly once, in the same
    database transaction as the status write
  - Quality checks attached by inspectors
  - Provenance listings (newest first)

Both writes of a completion are conditional UPDATEs: the status write is
guarded by the status we validated against, the batch write by the
remaining quantity.  If either guard loses a race the whole database
transaction is rolled back by the caller's session.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.middleware.exceptions import (
    AuthorizationError,
    InsufficientQuantityError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from agritrace.models.batch import BatchStatus, QualityGrade
from agritrace.models.identity import Identity, IdentityRole
from agritrace.models.transaction import (
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from agritrace.services import registry
from agritrace.utils.numbering import generate_code

logger = logging.getLogger("agritrace.ledger")

TYPES = {t.value for t in TransactionType}
STATUSES = {s.value for s in TransactionStatus}
PAYMENT_METHODS = {m.value for m in PaymentMethod}
GRADES = {g.value for g in QualityGrade}

_S = TransactionStatus
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    _S.INITIATED.value: {
        _S.IN_PROGRESS.value, _S.COMPLETED.value, _S.CANCELLED.value, _S.DISPUTED.value,
    },
    _S.IN_PROGRESS.value: {_S.COMPLETED.value, _S.CANCELLED.value, _S.DISPUTED.value},
    _S.DISPUTED.value: {_S.COMPLETED.value, _S.CANCELLED.value},
    _S.COMPLETED.value: set(),
    _S.CANCELLED.value: set(),
}

# A purchase is the buyer's view of a sale; it records the movement of
# quantity but must not reassign the owner a second time.
OWNERSHIP_CHANGING_TYPES = {
    TransactionType.SALE.value,
    TransactionType.TRANSFER.value,
    TransactionType.AUCTION.value,
}

# Where the batch sits once a given role takes custody of it
CUSTODY_STATUS_BY_ROLE = {
    IdentityRole.DISTRIBUTOR: BatchStatus.AT_MANDI.value,
    IdentityRole.RETAILER: BatchStatus.AT_RETAILER.value,
}


def is_ownership_changing(transaction_type: str) -> bool:
    return transaction_type in OWNERSHIP_CHANGING_TYPES


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


# ── Lookups ──────────────────────────────────────────────────

async def get_transaction(
    db: AsyncSession,
    transaction_id: str,
    *,
    refresh: bool = False,
) -> Transaction:
    stmt = select(Transaction).where(Transaction.id == transaction_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    txn = (await db.execute(stmt)).scalar_one_or_none()
    if txn is None:
        raise NotFoundError("Transaction", transaction_id)
    return txn


# ── Create ───────────────────────────────────────────────────

async def create_transaction(
    db: AsyncSession,
    *,
    batch_id: str,
    from_id: str,
    to_id: str,
    type: str,
    quantity: float,
    price_per_unit: float,
    unit: str | None = None,
    payment_method: str | None = None,
    location: dict | None = None,
    transport: dict | None = None,
    documents: list[dict] | None = None,
    notes: str | None = None,
) -> Transaction:
    """Open a transfer of ``quantity`` from the batch's current owner.

    Raises:
        ValidationError for an unknown type/unit/payment method, a
        non-positive quantity, a negative price, or a self-transfer.
        NotFoundError if the batch (or an active one) or recipient is unknown.
        AuthorizationError if ``from_id`` is not the current owner.
        InsufficientQuantityError if quantity exceeds what remains.
    """
    if type not in TYPES:
        raise ValidationError(f"Invalid transaction type: {type}")
    if quantity is None or quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if price_per_unit is None or price_per_unit < 0:
        raise ValidationError("Price per unit must not be negative")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {payment_method}")
    if unit is not None and unit not in registry.UNITS:
        raise ValidationError(f"Invalid unit: {unit}")

    batch = await registry.get_batch(db, batch_id)
    if not batch.is_active:
        raise NotFoundError("Batch", batch_id)
    if batch.current_owner_id != from_id:
        raise AuthorizationError(
            "Only the current owner may initiate a transfer of this batch"
        )
    if quantity > batch.quantity_remaining:
        raise InsufficientQuantityError(quantity, batch.quantity_remaining)

    await registry.get_identity(db, to_id)
    if to_id == from_id:
        raise ValidationError("Cannot transfer a batch to its current owner")

    location = location or {}
    longitude = latitude = None
    if location.get("coordinates") is not None:
        longitude, latitude = registry.validate_coordinates(location["coordinates"])
    transport = transport or {}

    txn = Transaction(
        transaction_code=generate_code("transaction"),
        batch_id=batch_id,
        from_id=from_id,
        to_id=to_id,
        type=type,
        unit=unit or batch.unit,
        quantity=quantity,
        price_per_unit=price_per_unit,
        payment_method=payment_method or PaymentMethod.CASH.value,
        status=TransactionStatus.INITIATED.value,
        longitude=longitude,
        latitude=latitude,
        address=location.get("address"),
        city=location.get("city"),
        state=location.get("state"),
        vehicle_number=transport.get("vehicle_number"),
        driver_name=transport.get("driver_name"),
        driver_phone=transport.get("driver_phone"),
        estimated_arrival=transport.get("estimated_arrival"),
        actual_arrival=transport.get("actual_arrival"),
        transport_cost=transport.get("transport_cost"),
        documents=documents or [],
        notes=notes,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        "Opened %s %s on batch %s: %g %s @ %g from %s to %s",
        txn.type, txn.transaction_code, batch.batch_code,
        quantity, txn.unit, price_per_unit, from_id, to_id,
    )
    return txn


# ── Edit terms ───────────────────────────────────────────────

async def update_terms(
    db: AsyncSession,
    transaction_id: str,
    requester_id: str,
    *,
    quantity: float | None = None,
    price_per_unit: float | None = None,
) -> Transaction:
    """Change quantity and/or price while the transfer is still ``initiated``.

    ``total_amount`` is recomputed by the model whenever either changes.
    """
    txn = await get_transaction(db, transaction_id)
    if txn.from_id != requester_id:
        raise AuthorizationError("Only the initiating party may change the terms")
    if txn.status != TransactionStatus.INITIATED.value:
        raise InvalidStateTransitionError(
            txn.status,
            txn.status,
            message=f"Terms can only change while initiated (status is '{txn.status}')",
        )

    if quantity is not None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        batch = await registry.get_batch(db, txn.batch_id)
        if quantity > batch.quantity_remaining:
            raise InsufficientQuantityError(quantity, batch.quantity_remaining)
        txn.quantity = quantity
    if price_per_unit is not None:
        if price_per_unit < 0:
            raise ValidationError("Price per unit must not be negative")
        txn.price_per_unit = price_per_unit

    await db.flush()
    return txn


# ── Status changes ───────────────────────────────────────────

async def set_status(
    db: AsyncSession,
    transaction_id: str,
    requester_id: str,
    new_status: str,
    *,
    notes: str | None = None,
    dispute_reason: str | None = None,
    resolution: str | None = None,
    is_admin: bool = False,
) -> Transaction:
    """Move a transaction through the state machine.

    Entering ``completed`` applies the batch effect once; entering
    ``cancelled`` leaves the batch untouched.

    Raises:
        AuthorizationError unless the requester is a party or an admin.
        ValidationError for an unknown status.
        InvalidStateTransitionError for an illegal move, including any
        move out of ``completed`` / ``cancelled``.
        InsufficientQuantityError if the batch no longer has the quantity.
    """
    txn = await get_transaction(db, transaction_id)
    if not is_admin and requester_id not in (txn.from_id, txn.to_id):
        raise AuthorizationError("Only parties to the transaction may change its status")
    if new_status not in STATUSES:
        raise ValidationError(f"Invalid transaction status: {new_status}")

    current = txn.status
    if not can_transition(current, new_status):
        raise InvalidStateTransitionError(current, new_status)

    now = datetime.utcnow()
    values: dict = {"status": new_status, "updated_at": now}
    if notes:
        values["notes"] = notes
    if dispute_reason:
        values["dispute_reason"] = dispute_reason
    if resolution:
        values["resolution"] = resolution
    if new_status == TransactionStatus.COMPLETED.value:
        values["completed_at"] = now

    result = await db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Someone else moved it between our read and our write
        txn = await get_transaction(db, transaction_id, refresh=True)
        raise InvalidStateTransitionError(txn.status, new_status)

    if new_status == TransactionStatus.COMPLETED.value:
        ownership = is_ownership_changing(txn.type)
        custody_status = None
        if ownership:
            recipient = await db.get(Identity, txn.to_id)
            if recipient is not None:
                custody_status = CUSTODY_STATUS_BY_ROLE.get(recipient.role)
        await registry.apply_transfer_effect(
            db,
            txn.batch_id,
            txn.quantity,
            txn.to_id,
            is_ownership_changing=ownership,
            custody_status=custody_status,
        )

    txn = await get_transaction(db, transaction_id, refresh=True)
    logger.info(
        "Transaction %s: %s → %s by %s",
        txn.transaction_code, current, new_status, requester_id,
    )
    return txn


# ── Quality checks ───────────────────────────────────────────

async def add_quality_check(
    db: AsyncSession,
    transaction_id: str,
    performer_id: str,
    grade: str,
    *,
    moisture: float | None = None,
    purity: float | None = None,
    defects: float | None = None,
    notes: str | None = None,
) -> Transaction:
    """Attach an inspection record.  Does not change the status."""
    if grade not in GRADES:
        raise ValidationError(f"Invalid quality grade: {grade}")
    txn = await get_transaction(db, transaction_id)
    await registry.get_identity(db, performer_id)

    txn.qc_grade = grade
    txn.qc_moisture = moisture
    txn.qc_purity = purity
    txn.qc_defects = defects
    txn.qc_notes = notes
    txn.qc_performed_by = performer_id
    txn.qc_checked_at = datetime.utcnow()
    await db.flush()
    return txn


# ── Listings ─────────────────────────────────────────────────

async def list_for_batch(db: AsyncSession, batch_id: str) -> list[Transaction]:
    """All transactions of a batch, newest first."""
    await registry.get_batch(db, batch_id)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.batch_id == batch_id)
        .order_by(Transaction.created_at.desc())
    )
    return list(result.scalars().all())


async def list_transactions(
    db: AsyncSession,
    *,
    viewer_id: str | None = None,
    type: str | None = None,
    status: str | None = None,
    batch_id: str | None = None,
    from_id: str | None = None,
    to_id: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    """Return (page, total), newest first.

    ``viewer_id`` restricts results to transactions the viewer is party
    to; pass None for an unrestricted (admin / reporting) view.
    """
    stmt = select(Transaction)
    if viewer_id:
        stmt = stmt.where(
            or_(Transaction.from_id == viewer_id, Transaction.to_id == viewer_id)
        )
    if type:
        stmt = stmt.where(Transaction.type == type)
    if status:
        stmt = stmt.where(Transaction.status == status)
    if batch_id:
        stmt = stmt.where(Transaction.batch_id == batch_id)
    if from_id:
        stmt = stmt.where(Transaction.from_id == from_id)
    if to_id:
        stmt = stmt.where(Transaction.to_id == to_id)
    if created_from:
        stmt = stmt.where(Transaction.created_at >= created_from)
    if created_to:
        stmt = stmt.where(Transaction.created_at <= created_to)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(
        stmt.order_by(Transaction.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total
