"""Provenance view and QR payloads.

Read-only.  Assembles everything a consumer sees when they look a batch
up by id, by batch code, or by scanning the JSON a QR label carries:

  - the batch with its farmer, current owner, reviews and cold-chain log
  - every ledger transaction, newest first
  - the trust score (``services/trust.py``)

QR payload format (the text encoded in the label; rendering the image is
left to the client):

    {"batchId": "BATCH-20240301-1A2B3C4D", "crop": "wheat",
     "variety": "Sharbati", "harvestDate": "2024-03-01",
     "farmer": {"id": "...", "name": "..."},
     "origin": {"coordinates": [77.2, 28.6], "address": {...}},
     "timestamp": "2024-03-02T10:00:00+00:00"}
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agritrace.middleware.exceptions import AuthorizationError, NotFoundError, ValidationError
from agritrace.models.batch import Batch
from agritrace.models.identity import Identity
from agritrace.models.review import BatchReview
from agritrace.models.transaction import Transaction
from agritrace.models.transport_condition import TransportCondition
from agritrace.services.trust import TrustScore, trust_score_for_batch

logger = logging.getLogger("agritrace.provenance")


@dataclass
class ProvenanceView:
    batch: Batch
    transactions: list[Transaction]
    trust: TrustScore
    farmer: Identity | None = None
    current_owner: Identity | None = None
    transport_history: list[TransportCondition] = field(default_factory=list)

    @property
    def origin(self) -> dict:
        return {
            "coordinates": [self.batch.origin_longitude, self.batch.origin_latitude],
            "address": self.batch.origin_address or {},
        }


def _batch_query():
    return select(Batch).options(
        selectinload(Batch.farmer),
        selectinload(Batch.current_owner),
        selectinload(Batch.reviews).selectinload(BatchReview.reviewer),
        selectinload(Batch.transport_conditions),
    ).execution_options(populate_existing=True)


async def _assemble(db: AsyncSession, batch: Batch) -> ProvenanceView:
    result = await db.execute(
        select(Transaction)
        .options(selectinload(Transaction.sender), selectinload(Transaction.recipient))
        .where(Transaction.batch_id == batch.id)
        .order_by(Transaction.created_at.desc())
    )
    transactions = list(result.scalars().all())
    return ProvenanceView(
        batch=batch,
        transactions=transactions,
        trust=trust_score_for_batch(batch, batch.farmer, transactions),
        farmer=batch.farmer,
        current_owner=batch.current_owner,
        transport_history=list(batch.transport_conditions),
    )


async def get_batch_with_provenance(
    db: AsyncSession,
    batch_id: str | None = None,
    *,
    batch_code: str | None = None,
) -> ProvenanceView:
    """Look a batch up by id or by its shareable code."""
    if batch_code is not None:
        stmt = _batch_query().where(Batch.batch_code == batch_code)
        identifier = batch_code
    elif batch_id is not None:
        stmt = _batch_query().where(Batch.id == batch_id)
        identifier = batch_id
    else:
        raise ValidationError("A batch id or batch code is required")

    batch = (await db.execute(stmt)).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", identifier)
    return await _assemble(db, batch)


# ── QR payloads ──────────────────────────────────────────────

def build_qr_payload(batch: Batch, farmer: Identity, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "batchId": batch.batch_code,
        "crop": batch.crop,
        "variety": batch.variety,
        "harvestDate": batch.harvest_date.isoformat() if batch.harvest_date else None,
        "farmer": {"id": farmer.id, "name": farmer.name},
        "origin": {
            "coordinates": [batch.origin_longitude, batch.origin_latitude],
            "address": batch.origin_address or {},
        },
        "timestamp": now.isoformat(),
    }


async def qr_payload_for_batch(
    db: AsyncSession,
    batch_id: str,
    requester_id: str,
) -> tuple[dict, str]:
    """Return (payload, encoded text) for a farmer's own batch."""
    batch = (
        await db.execute(_batch_query().where(Batch.id == batch_id))
    ).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    if batch.farmer_id != requester_id:
        raise AuthorizationError("Only the farmer who registered this batch may label it")

    payload = build_qr_payload(batch, batch.farmer)
    return payload, json.dumps(payload, separators=(",", ":"))


def parse_qr_payload(data: str) -> str:
    """Return the batch code carried by a scanned payload."""
    if not data or not isinstance(data, str):
        raise ValidationError("QR data is required")
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        raise ValidationError("Invalid QR code data")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid QR code data")
    batch_code = payload.get("batchId")
    if not isinstance(batch_code, str) or not batch_code:
        raise ValidationError("QR code data does not name a batch")
    return batch_code


async def scan_qr_payload(db: AsyncSession, data: str) -> ProvenanceView:
    batch_code = parse_qr_payload(data)
    logger.info("QR scan for batch %s", batch_code)
    return await get_batch_with_provenance(db, batch_code=batch_code)
