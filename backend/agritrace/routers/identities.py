"""Identity router — profiles and counterparty ratings.

Endpoints:
    GET /api/identities/me                 My profile
    GET /api/identities/{identity_id}      Public profile
    PUT /api/identities/{identity_id}/rating  Rate a counterparty
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import get_current_identity
from agritrace.database import get_db
from agritrace.models.identity import Identity
from agritrace.schemas.identity import IdentityOut, RatingRequest
from agritrace.services import identities, registry
from agritrace.utils.activity import log_activity

router = APIRouter()


@router.get("/me", response_model=IdentityOut)
async def get_me(identity: Identity = Depends(get_current_identity)):
    return IdentityOut.model_validate(identity)


@router.get("/{identity_id}", response_model=IdentityOut)
async def get_identity(
    identity_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    target = await registry.get_identity(db, identity_id)
    return IdentityOut.model_validate(target)


@router.put("/{identity_id}/rating", response_model=IdentityOut)
async def rate_identity(
    identity_id: str,
    body: RatingRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    target = await identities.rate_identity(
        db, identity_id, identity.id, body.rating, body.transaction_id,
    )

    await log_activity(
        db, identity,
        action="rated",
        entity_type="identity",
        entity_id=target.id,
        summary=f"Rated {target.name} {body.rating}/5",
        details={"transaction_id": body.transaction_id},
    )
    return IdentityOut.model_validate(target)
