"""Shareable code generation for batches and transactions.

Codes are printed on labels and embedded in QR payloads, so they must be
unique without a round-trip to the database:

  batch:        BATCH-{YYYYMMDD}-{8 hex}
  transaction:  TXN-{YYYYMMDD}-{8 hex}
"""

import secrets
from datetime import datetime

PREFIXES = {
    "batch": "BATCH",
    "transaction": "TXN",
}


def generate_code(entity: str, now: datetime | None = None) -> str:
    prefix = PREFIXES[entity]
    today = (now or datetime.utcnow()).strftime("%Y%m%d")
    return f"{prefix}-{today}-{secrets.token_hex(4).upper()}"
