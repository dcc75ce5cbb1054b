"""Price router — the market price board.

Endpoints:
    GET  /api/prices/                      Current prices (filter by crop, market)
    GET  /api/prices/top-crops             Latest price of each crop
    GET  /api/prices/trends/{crop}         One crop over the last N days
    GET  /api/prices/markets               Markets that have reported prices
    GET  /api/prices/compare/{batch_id}    Batch asking price vs. recent market average
    POST /api/prices/                      Post an observation (distributor, government, admin)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.auth.deps import get_current_identity, require_role
from agritrace.database import get_db
from agritrace.models.identity import Identity, IdentityRole
from agritrace.schemas.price import MarketOut, PriceComparisonOut, PriceCreate, PriceOut
from agritrace.services import prices
from agritrace.utils.activity import log_activity
from agritrace.utils.cache import cached, commit_and_invalidate

router = APIRouter()

require_price_reporter = require_role(
    IdentityRole.DISTRIBUTOR, IdentityRole.GOVERNMENT, IdentityRole.ADMIN,
)


# ── Board ────────────────────────────────────────────────────

@router.get("/", response_model=list[PriceOut])
@cached(ttl=300, prefix="prices")
async def list_prices(
    crop: str | None = Query(None),
    market: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    items = await prices.list_prices(db, crop=crop, market=market, limit=limit)
    return [PriceOut.model_validate(p) for p in items]


@router.get("/top-crops", response_model=list[PriceOut])
@cached(ttl=300, prefix="prices")
async def top_crops(
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    """Most recent observation of every crop, freshest first."""
    items = await prices.latest_by_crop(db)
    return [PriceOut.model_validate(p) for p in items]


@router.get("/trends/{crop}", response_model=list[PriceOut])
async def price_trend(
    crop: str,
    days: int = Query(prices.DEFAULT_TREND_DAYS, ge=1, le=prices.MAX_TREND_DAYS),
    market: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    items = await prices.price_trend(db, crop, days=days, market=market)
    return [PriceOut.model_validate(p) for p in items]


@router.get("/markets", response_model=list[MarketOut])
async def list_markets(
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    latest = await prices.list_markets(db)
    return [MarketOut.from_latest(p) for p in latest]


@router.get("/compare/{batch_id}", response_model=PriceComparisonOut)
async def compare_batch(
    batch_id: str,
    days: int = Query(prices.DEFAULT_TREND_DAYS, ge=1, le=prices.MAX_TREND_DAYS),
    db: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
):
    comparison = await prices.compare_to_market(db, batch_id, days=days)
    return PriceComparisonOut.model_validate(comparison)


# ── Report a price ───────────────────────────────────────────

@router.post("/", response_model=PriceOut, status_code=status.HTTP_201_CREATED)
async def record_price(
    body: PriceCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(require_price_reporter),
):
    location = body.market.location
    supply = body.quantity
    price = await prices.record_price(
        db,
        identity.id,
        crop=body.crop,
        variety=body.variety,
        market_name=body.market.name,
        price_min=body.price.min,
        price_max=body.price.max,
        unit=body.price.unit,
        market_city=location.city if location else None,
        market_state=location.state if location else None,
        market_address=location.address if location else None,
        market_coordinates=location.coordinates if location else None,
        quantity_available=supply.available if supply else 0.0,
        quantity_unit=supply.unit if supply else None,
        quality=body.quality.model_dump(exclude_none=True) if body.quality else None,
        source=body.source,
        observed_at=body.observed_at,
    )

    await log_activity(
        db, identity,
        action="created",
        entity_type="price",
        entity_id=price.id,
        summary=f"{price.crop} at {price.market_name}: {price.price_min:g}-{price.price_max:g}/{price.unit}",
    )
    await commit_and_invalidate(db, "prices:*")
    return PriceOut.model_validate(price)
