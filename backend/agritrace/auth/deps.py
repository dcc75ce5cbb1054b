"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_identity   → decode JWT, load identity from DB, return Identity
  require_role(...)      → restrict to specific roles
  require_quality_inspector → distributor, government or admin
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.jwt import decode_token
from agritrace.database import get_db
from agritrace.models.identity import Identity, IdentityRole

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core identity dependency ────────────────────────────────

async def get_current_identity(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Decode the JWT, load the identity, and return it."""
    payload = decode_token(token)
    identity_id: str | None = payload.get("sub")
    if not identity_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = await db.get(Identity, identity_id)
    if not identity or not identity.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Identity not found or inactive",
        )
    if not identity.is_approved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account pending approval",
        )
    return identity


# ── Role-based access control ───────────────────────────────

def require_role(*roles: IdentityRole):
    """Dependency factory — restrict to one or more roles.

    Usage:
        @router.post("/")
        async def create(identity: Identity = Depends(require_role(IdentityRole.FARMER))):
            ...
    """
    async def _check(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return identity

    return _check


require_quality_inspector = require_role(
    IdentityRole.DISTRIBUTOR, IdentityRole.GOVERNMENT, IdentityRole.ADMIN,
)


def is_admin(identity: Identity) -> bool:
    return identity.role == IdentityRole.ADMIN
