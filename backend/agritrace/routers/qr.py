"""QR router — label payloads and consumer scans.

Endpoints:
    POST /api/qr/payload             Payload text for a farmer's own batch
    POST /api/qr/scan                Parse scanned text → provenance view
    GET  /api/qr/batch/{batch_code}  Provenance view by batch code
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import get_current_identity, require_role
from agritrace.database import get_db
from agritrace.models.identity import Identity, IdentityRole
from agritrace.schemas.provenance import (
    BatchProvenanceOut,
    QRPayloadOut,
    QRPayloadRequest,
    QRScanRequest,
)
from agritrace.services import provenance

router = APIRouter()


@router.post("/payload", response_model=QRPayloadOut)
async def build_payload(
    body: QRPayloadRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_role(IdentityRole.FARMER)),
):
    payload, data = await provenance.qr_payload_for_batch(db, body.batch_id, identity.id)
    return QRPayloadOut(payload=payload, data=data)


@router.post("/scan", response_model=BatchProvenanceOut)
async def scan(
    body: QRScanRequest,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    view = await provenance.scan_qr_payload(db, body.qr_data)
    return BatchProvenanceOut.from_view(view)


@router.get("/batch/{batch_code}", response_model=BatchProvenanceOut)
async def get_by_code(
    batch_code: str,
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    view = await provenance.get_batch_with_provenance(db, batch_code=batch_code)
    return BatchProvenanceOut.from_view(view)
