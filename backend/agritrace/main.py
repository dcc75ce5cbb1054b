"""AgriTrace API — produce provenance from farm to shelf."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agritrace.config import settings
from agritrace.middleware.exceptions import register_exception_handlers
from agritrace.routers import batches, health, identities, prices, qr, reports, transactions
from agritrace.utils.cache import close_redis

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("agritrace")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AgriTrace starting (environment=%s)", settings.environment)
    yield
    await close_redis()
    logger.info("AgriTrace stopped")


app = FastAPI(
    title="AgriTrace",
    description="Agricultural supply-chain traceability: batches, custody transfers and provenance",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(transactions.router, prefix="/api/transactions", tags=["transactions"])
app.include_router(qr.router, prefix="/api/qr", tags=["qr"])
app.include_router(identities.router, prefix="/api/identities", tags=["identities"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
app.include_router(prices.router, prefix="/api/prices", tags=["prices"])
