"""Market price board.

Distributors, government price reporters and admins post observed mandi
prices; everyone else reads them:

  - ``list_prices``: newest first, filtered by crop and market name
  - ``latest_by_crop``: the most recent observation of each crop
  - ``price_trend``: one crop's observations over the last N days, oldest first
  - ``list_markets``: every market that has reported, most recent first
  - ``compare_to_market``: a batch's asking price against the recent average
    for the same crop and unit

The ledger never reads this table.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.middleware.exceptions import ValidationError
from agritrace.models.price import MarketPrice, PriceSource
from agritrace.services import registry

logger = logging.getLogger("agritrace.prices")

SOURCES = {s.value for s in PriceSource}

DEFAULT_TREND_DAYS = 30
MAX_TREND_DAYS = 365


@dataclass
class PriceComparison:
    batch_id: str
    crop: str
    unit: str
    expected_price: float
    market_average: float | None
    sample_count: int
    # Signed: positive when the asking price is above the market
    variance_pct: float | None


# ── Validation helpers ───────────────────────────────────────

def _validate_crop(crop: str) -> str:
    if crop not in registry.CROPS:
        raise ValidationError(f"Invalid crop: {crop}")
    return crop


def _validate_range(price_min: float, price_max: float) -> None:
    if price_min < 0 or price_max < 0:
        raise ValidationError("Prices cannot be negative")
    if price_min > price_max:
        raise ValidationError(
            f"Minimum price {price_min:g} exceeds maximum price {price_max:g}"
        )


def _variance_pct(expected: float, average: float) -> float:
    if not average:
        return 0.0
    return round((expected - average) / average * 100, 2)


# ── Writes ───────────────────────────────────────────────────

async def record_price(
    db: AsyncSession,
    recorded_by: str,
    *,
    crop: str,
    variety: str,
    market_name: str,
    price_min: float,
    price_max: float,
    unit: str,
    market_city: str | None = None,
    market_state: str | None = None,
    market_address: str | None = None,
    market_coordinates=None,
    quantity_available: float = 0.0,
    quantity_unit: str | None = None,
    quality: dict | None = None,
    source: str = PriceSource.MANDI.value,
    observed_at: datetime | None = None,
) -> MarketPrice:
    """Add one observation to the board.  The average is the range midpoint."""
    await registry.get_identity(db, recorded_by)
    _validate_crop(crop)
    variety = (variety or "").strip()
    market_name = (market_name or "").strip()
    if not variety:
        raise ValidationError("Variety is required")
    if not market_name:
        raise ValidationError("Market name is required")
    _validate_range(price_min, price_max)

    quantity_unit = quantity_unit or unit
    for value in (unit, quantity_unit):
        if value not in registry.UNITS:
            raise ValidationError(f"Invalid unit: {value}")
    if quantity_available < 0:
        raise ValidationError("Available quantity cannot be negative")
    if source not in SOURCES:
        raise ValidationError(f"Invalid price source: {source}")

    quality = dict(quality or {})
    grade = quality.get("grade") or "A"
    if grade not in registry.GRADES:
        raise ValidationError(f"Invalid quality grade: {grade}")
    for key in ("moisture", "purity"):
        value = quality.get(key)
        if value is not None and not 0 <= value <= 100:
            raise ValidationError(f"Quality {key} must be a percentage between 0 and 100")

    longitude = latitude = None
    if market_coordinates is not None:
        longitude, latitude = registry.validate_coordinates(market_coordinates)

    price = MarketPrice(
        crop=crop,
        variety=variety,
        market_name=market_name,
        market_city=market_city,
        market_state=market_state,
        market_address=market_address,
        market_longitude=longitude,
        market_latitude=latitude,
        price_min=price_min,
        price_max=price_max,
        unit=unit,
        quantity_available=quantity_available,
        quantity_unit=quantity_unit,
        quality_grade=grade,
        quality_moisture=quality.get("moisture"),
        quality_purity=quality.get("purity"),
        source=source,
        recorded_by=recorded_by,
        observed_at=observed_at or datetime.utcnow(),
    )
    db.add(price)
    await db.flush()

    logger.info(
        "Recorded %s (%s) at %s: %g-%g per %s",
        crop, variety, market_name, price_min, price_max, unit,
    )
    return price


# ── Reads ────────────────────────────────────────────────────

def _market_filter(market: str | None) -> list:
    if not market:
        return []
    return [MarketPrice.market_name.icontains(market, autoescape=True)]


async def list_prices(
    db: AsyncSession,
    *,
    crop: str | None = None,
    market: str | None = None,
    limit: int = 50,
) -> list[MarketPrice]:
    stmt = select(MarketPrice).where(MarketPrice.is_active.is_(True), *_market_filter(market))
    if crop:
        stmt = stmt.where(MarketPrice.crop == crop)
    stmt = stmt.order_by(MarketPrice.observed_at.desc(), MarketPrice.created_at.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


def _latest_per(*partition_by):
    """Newest active row of each partition, newest partitions first."""
    ranked = (
        select(
            MarketPrice.id,
            func.row_number().over(
                partition_by=partition_by,
                order_by=(MarketPrice.observed_at.desc(), MarketPrice.created_at.desc()),
            ).label("position"),
        )
        .where(MarketPrice.is_active.is_(True))
        .subquery()
    )
    return (
        select(MarketPrice)
        .join(ranked, ranked.c.id == MarketPrice.id)
        .where(ranked.c.position == 1)
        .order_by(MarketPrice.observed_at.desc())
    )


async def latest_by_crop(db: AsyncSession) -> list[MarketPrice]:
    result = await db.execute(_latest_per(MarketPrice.crop))
    return list(result.scalars().all())


async def list_markets(db: AsyncSession) -> list[MarketPrice]:
    """Latest observation per (market, city, state); its time is the market's last update."""
    result = await db.execute(
        _latest_per(MarketPrice.market_name, MarketPrice.market_city, MarketPrice.market_state)
    )
    return list(result.scalars().all())


async def price_trend(
    db: AsyncSession,
    crop: str,
    *,
    days: int = DEFAULT_TREND_DAYS,
    market: str | None = None,
    now: datetime | None = None,
) -> list[MarketPrice]:
    _validate_crop(crop)
    if not 1 <= days <= MAX_TREND_DAYS:
        raise ValidationError(f"Trend window must be between 1 and {MAX_TREND_DAYS} days")
    since = (now or datetime.utcnow()) - timedelta(days=days)

    result = await db.execute(
        select(MarketPrice)
        .where(
            MarketPrice.crop == crop,
            MarketPrice.is_active.is_(True),
            MarketPrice.observed_at >= since,
            *_market_filter(market),
        )
        .order_by(MarketPrice.observed_at, MarketPrice.created_at)
    )
    return list(result.scalars().all())


async def compare_to_market(
    db: AsyncSession,
    batch_id: str,
    *,
    days: int = DEFAULT_TREND_DAYS,
    now: datetime | None = None,
) -> PriceComparison:
    """Compare a batch's expected price with recent averages in the same unit."""
    batch = await registry.get_batch(db, batch_id)
    since = (now or datetime.utcnow()) - timedelta(days=days)

    average, count = (
        await db.execute(
            select(func.avg(MarketPrice.price_average), func.count(MarketPrice.id))
            .where(
                MarketPrice.crop == batch.crop,
                MarketPrice.unit == batch.unit,
                MarketPrice.is_active.is_(True),
                MarketPrice.observed_at >= since,
            )
        )
    ).one()

    market_average = round(float(average), 2) if count else None
    return PriceComparison(
        batch_id=batch.id,
        crop=batch.crop,
        unit=batch.unit,
        expected_price=batch.expected_price,
        market_average=market_average,
        sample_count=count,
        variance_pct=(
            _variance_pct(batch.expected_price, market_average)
            if market_average is not None else None
        ),
    )
