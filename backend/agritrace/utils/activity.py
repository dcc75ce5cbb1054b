"""Audit trail for ledger writes.

Each router that changes a batch, a transaction, an identity's reputation
or the market price board records one ``ActivityLog`` row naming the actor
and the thing touched, e.g. after a completed transfer:

    await log_activity(
        db, identity, action="status_changed", entity_type="transaction",
        entity_id=txn.id, entity_code=txn.transaction_code,
        summary="TXN-20240301-0A1B2C3D → completed",
        details={"status": "completed"},
    )

The row joins the request's session and commits or rolls back with the
write it describes.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.models.activity_log import ActivityLog
from agritrace.models.identity import Identity

ENTITY_TYPES = frozenset({"batch", "transaction", "identity", "price"})

ACTIONS = frozenset({
    "created",
    "updated",
    "deactivated",
    "reviewed",
    "condition_recorded",
    "location_updated",
    "status_changed",
    "quality_checked",
    "rated",
})


async def log_activity(
    db: AsyncSession,
    actor: Identity,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    if action not in ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown activity entity type: {entity_type}")

    # The actor's name is copied so the trail survives profile edits
    entry = ActivityLog(
        actor_id=actor.id,
        actor_name=actor.name,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_code=entity_code,
        summary=summary,
        details=details,
    )
    db.add(entry)
    return entry
