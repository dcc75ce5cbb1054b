"""Attestation sink — best-effort mirror of batches and transfers to an
external ledger.

Local state is authoritative.  Calls happen after the request's database
transaction has committed (routers schedule them with FastAPI
``BackgroundTasks``), and any failure is logged and dropped; nothing
here can roll back or fail a request.

Configure with ``ATTESTATION_URL``; when empty, ``NullAttestationSink``
is used and calls are no-ops.
"""

import logging

import httpx

from agritrace.config import settings
from agritrace.models.batch import Batch
from agritrace.models.transaction import Transaction

logger = logging.getLogger("agritrace.attestation")


class AttestationSink:
    async def register_batch(self, payload: dict) -> None:
        raise NotImplementedError

    async def record_transaction(self, payload: dict) -> None:
        raise NotImplementedError


class NullAttestationSink(AttestationSink):
    async def register_batch(self, payload: dict) -> None:
        return None

    async def record_transaction(self, payload: dict) -> None:
        return None


class HttpAttestationSink(AttestationSink):
    """POSTs JSON to ``{base_url}/batches`` and ``{base_url}/transactions``."""

    def __init__(self, base_url: str, timeout: float = 5.0, transport=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict) -> None:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()

    async def register_batch(self, payload: dict) -> None:
        await self._post("/batches", payload)

    async def record_transaction(self, payload: dict) -> None:
        await self._post("/transactions", payload)


_sink: AttestationSink | None = None


def get_sink() -> AttestationSink:
    global _sink
    if _sink is None:
        if settings.attestation_url:
            _sink = HttpAttestationSink(
                settings.attestation_url, settings.attestation_timeout_seconds,
            )
        else:
            _sink = NullAttestationSink()
    return _sink


def set_sink(sink: AttestationSink | None) -> None:
    """Override the process-wide sink (None resets to the configured one)."""
    global _sink
    _sink = sink


# ── Payloads ─────────────────────────────────────────────────

def batch_payload(batch: Batch) -> dict:
    return {
        "batchId": batch.batch_code,
        "farmerId": batch.farmer_id,
        "crop": batch.crop,
        "variety": batch.variety,
        "quantity": batch.initial_quantity,
        "unit": batch.unit,
        "harvestDate": batch.harvest_date.isoformat() if batch.harvest_date else None,
        "origin": [batch.origin_longitude, batch.origin_latitude],
    }


def transaction_payload(txn: Transaction, batch_code: str | None = None) -> dict:
    return {
        "transactionId": txn.transaction_code,
        "batchId": batch_code or txn.batch_id,
        "from": txn.from_id,
        "to": txn.to_id,
        "type": txn.type,
        "status": txn.status,
        "quantity": txn.quantity,
        "pricePerUnit": txn.price_per_unit,
        "totalAmount": txn.total_amount,
    }


# ── Fire-and-forget entry points ─────────────────────────────

async def register_batch(payload: dict) -> None:
    try:
        await get_sink().register_batch(payload)
    except (httpx.HTTPError, OSError) as e:
        logger.warning("Attestation of batch %s failed: %s", payload.get("batchId"), e)


async def record_transaction(payload: dict) -> None:
    try:
        await get_sink().record_transaction(payload)
    except (httpx.HTTPError, OSError) as e:
        logger.warning(
            "Attestation of transaction %s failed: %s", payload.get("transactionId"), e,
        )
