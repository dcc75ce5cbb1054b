"""Identity profiles — registration and counterparty reputation.

Profile reputation is a running average updated one rating at a time:

    new = (current × count + rating) / (count + 1)    rounded to 0.1

Profile ratings are not stored individually; batch review averages
(``services/reviews.py``) are recomputed from every stored rating.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.middleware.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from agritrace.models.identity import Identity, IdentityRole
from agritrace.models.transaction import Transaction

logger = logging.getLogger("agritrace.identities")


async def create_identity(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    role: str,
    phone: str | None = None,
) -> Identity:
    try:
        role_enum = IdentityRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role: {role}")

    existing = await db.scalar(select(Identity.id).where(Identity.email == email))
    if existing is not None:
        raise ValidationError(f"Email already registered: {email}")

    identity = Identity(name=name, email=email, role=role_enum, phone=phone)
    db.add(identity)
    await db.flush()
    return identity


async def rate_identity(
    db: AsyncSession,
    target_id: str,
    rater_id: str,
    rating: int,
    transaction_id: str | None = None,
) -> Identity:
    """Fold one counterparty rating into ``target_id``'s reputation."""
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5")
    if target_id == rater_id:
        raise ValidationError("You cannot rate yourself")

    if transaction_id is not None:
        txn = await db.get(Transaction, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        if rater_id not in (txn.from_id, txn.to_id):
            raise AuthorizationError("You are not a party to this transaction")

    target = (
        await db.execute(
            select(Identity).where(Identity.id == target_id).with_for_update()
        )
    ).scalar_one_or_none()
    if target is None or not target.is_active:
        raise NotFoundError("Identity", target_id)

    count = target.rating_count or 0
    current = target.rating or 0.0
    target.rating = round((current * count + rating) / (count + 1), 1)
    target.rating_count = count + 1
    await db.flush()

    logger.info(
        "Identity %s rated %d by %s (now %.1f over %d ratings)",
        target_id, rating, rater_id, target.rating, target.rating_count,
    )
    return target
