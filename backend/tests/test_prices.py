"""Market price board: recording, board queries and batch comparison."""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.middleware.exceptions import NotFoundError, ValidationError
from agritrace.services import prices

from conftest import headers_for

NOW = datetime(2024, 3, 10, 12, 0)


async def post_price(
    db: AsyncSession,
    reporter,
    *,
    crop: str = "wheat",
    market: str = "Indore Mandi",
    low: float = 20,
    high: float = 24,
    unit: str = "kg",
    days_ago: float = 0,
    **kwargs,
):
    return await prices.record_price(
        db,
        reporter.id,
        crop=crop,
        variety=kwargs.pop("variety", "Sharbati"),
        market_name=market,
        price_min=low,
        price_max=high,
        unit=unit,
        observed_at=NOW - timedelta(days=days_ago),
        **kwargs,
    )


@pytest.mark.unit
@pytest.mark.asyncio
class TestRecordPrice:

    async def test_average_and_defaults(self, db_session: AsyncSession, distributor):
        price = await post_price(
            db_session, distributor, low=2100, high=2300, unit="quintal",
            market_city="Indore", market_state="Madhya Pradesh",
            market_coordinates=[75.86, 22.72],
        )
        assert price.price_average == 2200
        assert price.quantity_unit == "quintal"
        assert price.quality_grade == "A"
        assert price.source == "mandi"
        assert (price.market_longitude, price.market_latitude) == (75.86, 22.72)
        assert price.recorded_by == distributor.id

    async def test_average_follows_edits(self, db_session: AsyncSession, distributor):
        price = await post_price(db_session, distributor, low=20, high=24)
        price.price_max = 30
        assert price.price_average == 25

    @pytest.mark.parametrize("overrides", [
        {"crop": "saffron"},
        {"low": 30, "high": 20},
        {"low": -1, "high": 20},
        {"unit": "crate"},
        {"quantity_unit": "crate"},
        {"source": "rumour"},
        {"quality": {"grade": "E"}},
        {"quality": {"moisture": 140}},
        {"market": "   "},
        {"variety": ""},
        {"market_coordinates": [200, 10]},
        {"quantity_available": -5},
    ])
    async def test_invalid_input(self, db_session: AsyncSession, distributor, overrides):
        with pytest.raises(ValidationError):
            await post_price(db_session, distributor, **overrides)

    async def test_unknown_reporter(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await prices.record_price(
                db_session, "missing",
                crop="wheat", variety="Sharbati", market_name="Indore Mandi",
                price_min=20, price_max=24, unit="kg",
            )


@pytest.mark.unit
@pytest.mark.asyncio
class TestBoard:

    async def test_list_filters_and_order(self, db_session: AsyncSession, distributor):
        old = await post_price(db_session, distributor, days_ago=3)
        new = await post_price(db_session, distributor, days_ago=1)
        await post_price(db_session, distributor, crop="rice", market="Azadpur Mandi")
        hidden = await post_price(db_session, distributor)
        hidden.is_active = False
        await db_session.flush()

        wheat = await prices.list_prices(db_session, crop="wheat")
        assert [p.id for p in wheat] == [new.id, old.id]

        azadpur = await prices.list_prices(db_session, market="azadpur")
        assert [p.crop for p in azadpur] == ["rice"]

        assert len(await prices.list_prices(db_session, limit=2)) == 2

    async def test_market_filter_is_literal(self, db_session: AsyncSession, distributor):
        await post_price(db_session, distributor, market="Indore Mandi")
        assert await prices.list_prices(db_session, market="%") == []

    async def test_latest_by_crop(self, db_session: AsyncSession, distributor):
        await post_price(db_session, distributor, low=18, high=20, days_ago=5)
        wheat_now = await post_price(db_session, distributor, low=22, high=26, days_ago=1)
        rice = await post_price(db_session, distributor, crop="rice", days_ago=2)

        latest = await prices.latest_by_crop(db_session)
        assert [p.id for p in latest] == [wheat_now.id, rice.id]
        assert latest[0].price_average == 24

    async def test_markets(self, db_session: AsyncSession, distributor):
        await post_price(db_session, distributor, market="Indore Mandi", days_ago=4)
        await post_price(db_session, distributor, market="Indore Mandi", days_ago=2)
        await post_price(db_session, distributor, market="Azadpur Mandi", days_ago=3)

        markets = await prices.list_markets(db_session)
        assert [(m.market_name, m.observed_at) for m in markets] == [
            ("Indore Mandi", NOW - timedelta(days=2)),
            ("Azadpur Mandi", NOW - timedelta(days=3)),
        ]

    async def test_trend_window(self, db_session: AsyncSession, distributor):
        await post_price(db_session, distributor, days_ago=40)
        first = await post_price(db_session, distributor, days_ago=20)
        second = await post_price(db_session, distributor, days_ago=2)
        await post_price(db_session, distributor, crop="rice", days_ago=2)

        trend = await prices.price_trend(db_session, "wheat", now=NOW)
        assert [p.id for p in trend] == [first.id, second.id]

        week = await prices.price_trend(db_session, "wheat", days=7, now=NOW)
        assert [p.id for p in week] == [second.id]

    @pytest.mark.parametrize("crop,days", [("saffron", 30), ("wheat", 0), ("wheat", 400)])
    async def test_trend_rejects(self, db_session: AsyncSession, crop, days):
        with pytest.raises(ValidationError):
            await prices.price_trend(db_session, crop, days=days, now=NOW)


@pytest.mark.unit
@pytest.mark.asyncio
class TestCompareToMarket:

    async def test_asking_above_market(self, db_session: AsyncSession, batch, distributor):
        # Batch asks 25/kg for wheat
        await post_price(db_session, distributor, low=18, high=22, days_ago=1)
        await post_price(db_session, distributor, low=19, high=21, days_ago=3)
        await post_price(db_session, distributor, low=2000, high=2200, unit="quintal")
        await post_price(db_session, distributor, low=40, high=40, days_ago=60)

        comparison = await prices.compare_to_market(db_session, batch.id, now=NOW)
        assert comparison.market_average == 20
        assert comparison.sample_count == 2
        assert comparison.variance_pct == 25.0
        assert (comparison.crop, comparison.unit, comparison.expected_price) == ("wheat", "kg", 25)

    async def test_no_market_data(self, db_session: AsyncSession, batch):
        comparison = await prices.compare_to_market(db_session, batch.id, now=NOW)
        assert comparison.market_average is None
        assert comparison.sample_count == 0
        assert comparison.variance_pct is None

    async def test_unknown_batch(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await prices.compare_to_market(db_session, "missing")


PRICE_BODY = {
    "crop": "wheat",
    "variety": "Sharbati",
    "market": {
        "name": "Indore Mandi",
        "location": {"coordinates": [75.86, 22.72], "city": "Indore", "state": "Madhya Pradesh"},
    },
    "price": {"min": 22, "max": 26, "unit": "kg"},
    "quality": {"grade": "B"},
}


@pytest.mark.api
@pytest.mark.asyncio
class TestPriceEndpoints:

    async def test_post_and_read_board(self, client: AsyncClient, distributor, farmer, batch):
        resp = await client.post("/api/prices/", json=PRICE_BODY, headers=headers_for(distributor))
        assert resp.status_code == 201, resp.text
        created = resp.json()
        assert created["price_average"] == 24
        assert created["quality_grade"] == "B"
        assert created["market_city"] == "Indore"

        headers = headers_for(farmer)
        board = (await client.get("/api/prices/?crop=wheat", headers=headers)).json()
        assert [p["id"] for p in board] == [created["id"]]

        top = (await client.get("/api/prices/top-crops", headers=headers)).json()
        assert [p["crop"] for p in top] == ["wheat"]

        trend = (await client.get("/api/prices/trends/wheat?days=7", headers=headers)).json()
        assert len(trend) == 1

        markets = (await client.get("/api/prices/markets", headers=headers)).json()
        assert [(m["name"], m["city"]) for m in markets] == [("Indore Mandi", "Indore")]

        comparison = (await client.get(f"/api/prices/compare/{batch.id}", headers=headers)).json()
        assert comparison["market_average"] == 24
        assert comparison["variance_pct"] == pytest.approx(4.17)

    async def test_only_price_reporters_post(self, client: AsyncClient, farmer, consumer):
        for identity in (farmer, consumer):
            resp = await client.post("/api/prices/", json=PRICE_BODY, headers=headers_for(identity))
            assert resp.status_code == 403

    async def test_inverted_range(self, client: AsyncClient, distributor):
        body = {**PRICE_BODY, "price": {"min": 30, "max": 20, "unit": "kg"}}
        resp = await client.post("/api/prices/", json=body, headers=headers_for(distributor))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_unknown_crop_trend(self, client: AsyncClient, farmer):
        resp = await client.get("/api/prices/trends/saffron", headers=headers_for(farmer))
        assert resp.status_code == 422

    async def test_requires_auth(self, client: AsyncClient):
        assert (await client.get("/api/prices/")).status_code == 401
