"""Pydantic schemas for the market price board."""

from datetime import datetime

from pydantic import BaseModel, Field


# ── Create ───────────────────────────────────────────────────

class MarketLocationIn(BaseModel):
    # [longitude, latitude]
    coordinates: list[float] | None = None
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)


class MarketIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: MarketLocationIn | None = None


class PriceRangeIn(BaseModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    unit: str


class SupplyIn(BaseModel):
    available: float = Field(0, ge=0)
    unit: str | None = None


class PriceQualityIn(BaseModel):
    grade: str | None = "A"
    moisture: float | None = Field(None, ge=0, le=100)
    purity: float | None = Field(None, ge=0, le=100)


class PriceCreate(BaseModel):
    """Payload for POST /api/prices (distributor, government, admin)."""
    crop: str
    variety: str = Field(..., min_length=1, max_length=100)
    market: MarketIn
    price: PriceRangeIn
    quantity: SupplyIn | None = None
    quality: PriceQualityIn | None = None
    source: str = "mandi"
    observed_at: datetime | None = None


# ── Response ─────────────────────────────────────────────────

class PriceOut(BaseModel):
    id: str
    crop: str
    variety: str
    market_name: str
    market_city: str | None
    market_state: str | None
    market_longitude: float | None
    market_latitude: float | None
    price_min: float
    price_max: float
    price_average: float
    unit: str
    quantity_available: float
    quantity_unit: str
    quality_grade: str | None
    source: str
    observed_at: datetime

    model_config = {"from_attributes": True}


class MarketOut(BaseModel):
    name: str
    city: str | None
    state: str | None
    longitude: float | None
    latitude: float | None
    last_updated: datetime

    @classmethod
    def from_latest(cls, price) -> "MarketOut":
        return cls(
            name=price.market_name,
            city=price.market_city,
            state=price.market_state,
            longitude=price.market_longitude,
            latitude=price.market_latitude,
            last_updated=price.observed_at,
        )


class PriceComparisonOut(BaseModel):
    batch_id: str
    crop: str
    unit: str
    expected_price: float
    market_average: float | None
    sample_count: int
    variance_pct: float | None

    model_config = {"from_attributes": True}
