"""Batch registry service tests."""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from agritrace.middleware.exceptions import (
    AuthorizationError,
    DuplicateReviewError,
    InsufficientQuantityError,
    NotFoundError,
    ValidationError,
)
from agritrace.models.batch import BatchStatus
from agritrace.models.identity import IdentityRole
from agritrace.services import registry

from conftest import make_batch, make_identity


@pytest.mark.unit
@pytest.mark.asyncio
class TestCreateBatch:

    async def test_creation_defaults(self, db_session: AsyncSession, farmer):
        batch = await make_batch(db_session, farmer, quantity=750)

        assert batch.quantity_remaining == 750
        assert batch.initial_quantity == 750
        assert batch.status == BatchStatus.HARVESTED.value
        assert batch.current_owner_id == farmer.id
        assert (batch.current_longitude, batch.current_latitude) == (77.2090, 28.6139)
        assert batch.quality_grade == "A"
        assert batch.average_rating == 0.0
        assert batch.review_count == 0
        assert batch.is_active is True
        assert batch.batch_code.startswith("BATCH-")
        assert batch.origin_address["country"] == "India"

    async def test_codes_are_unique(self, db_session: AsyncSession, farmer):
        first = await make_batch(db_session, farmer)
        second = await make_batch(db_session, farmer)
        assert first.batch_code != second.batch_code

    @pytest.mark.parametrize("overrides", [
        {"crop": "durian"},
        {"unit": "bushel"},
        {"quantity": 0},
        {"quantity": -5},
        {"expected_price": -1},
        {"origin_coordinates": [77.2]},
        {"origin_coordinates": [77.2, 28.6, 10]},
        {"origin_coordinates": [200, 28.6]},
        {"origin_coordinates": [77.2, -95]},
        {"origin_coordinates": ["east", "north"]},
        {"quality": {"grade": "Z"}},
        {"quality": {"grade": "A", "moisture": 140}},
    ])
    async def test_rejects_invalid_input(self, db_session: AsyncSession, farmer, overrides):
        with pytest.raises(ValidationError):
            await make_batch(db_session, farmer, **overrides)

    async def test_unknown_farmer(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await registry.create_batch(
                db_session,
                farmer_id="no-such-farmer",
                crop="rice",
                variety="Basmati",
                quantity=10,
                unit="quintal",
                expected_price=3000,
                harvest_date=date(2024, 10, 1),
                origin_coordinates=[75.8, 30.9],
            )


@pytest.mark.unit
@pytest.mark.asyncio
class TestLookupAndEdit:

    async def test_get_by_id_and_code(self, db_session: AsyncSession, batch):
        assert (await registry.get_batch(db_session, batch.id)).id == batch.id
        assert (await registry.get_batch_by_code(db_session, batch.batch_code)).id == batch.id

    async def test_get_unknown(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await registry.get_batch(db_session, "missing")
        with pytest.raises(NotFoundError):
            await registry.get_batch_by_code(db_session, "BATCH-00000000-FFFFFFFF")

    async def test_farmer_edits_allowed_fields(self, db_session: AsyncSession, batch, farmer):
        updated = await registry.update_batch(
            db_session, batch.id, farmer.id,
            {"variety": "Lokwan", "expected_price": 27.5, "quality": {"grade": "B", "purity": 98}},
        )
        assert updated.variety == "Lokwan"
        assert updated.expected_price == 27.5
        assert updated.quality_grade == "B"
        assert updated.quality_purity == 98
        assert updated.quantity_remaining == 1000

    async def test_quantity_is_not_editable(self, db_session: AsyncSession, batch, farmer):
        with pytest.raises(ValidationError):
            await registry.update_batch(db_session, batch.id, farmer.id, {"quantity_remaining": 5})

    async def test_only_farmer_may_edit(self, db_session: AsyncSession, batch, distributor):
        with pytest.raises(AuthorizationError):
            await registry.update_batch(db_session, batch.id, distributor.id, {"variety": "X"})

    async def test_deactivate(self, db_session: AsyncSession, batch, farmer, distributor):
        with pytest.raises(AuthorizationError):
            await registry.deactivate(db_session, batch.id, distributor.id)

        await registry.deactivate(db_session, batch.id, farmer.id)

        # Still readable, but gone from active listings
        assert (await registry.get_batch(db_session, batch.id)).is_active is False
        items, total = await registry.list_batches(db_session)
        assert total == 0 and items == []
        items, total = await registry.list_batches(db_session, include_inactive=True)
        assert total == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestReviews:

    async def test_average_is_exact_mean(self, db_session: AsyncSession, batch, farmer):
        ratings = [5, 4, 4, 2, 3]
        for i, rating in enumerate(ratings):
            reviewer = await make_identity(db_session, IdentityRole.CONSUMER, f"Reviewer {i}")
            updated = await registry.add_review(db_session, batch.id, reviewer.id, rating)

        assert updated.review_count == len(ratings)
        assert updated.average_rating == sum(ratings) / len(ratings)
        assert len(await registry.list_reviews(db_session, batch.id)) == len(ratings)

    async def test_duplicate_review_rejected(self, db_session: AsyncSession, batch, consumer):
        await registry.add_review(db_session, batch.id, consumer.id, 5, "Excellent grain")

        with pytest.raises(DuplicateReviewError):
            await registry.add_review(db_session, batch.id, consumer.id, 1)

        refreshed = await registry.get_batch(db_session, batch.id, refresh=True)
        assert refreshed.average_rating == 5.0
        assert refreshed.review_count == 1

    @pytest.mark.parametrize("rating", [0, 6, 3.5])
    async def test_rating_range(self, db_session: AsyncSession, batch, consumer, rating):
        with pytest.raises(ValidationError):
            await registry.add_review(db_session, batch.id, consumer.id, rating)


@pytest.mark.unit
@pytest.mark.asyncio
class TestTransferEffect:

    async def test_decrements_and_reassigns(self, db_session: AsyncSession, batch, distributor):
        updated = await registry.apply_transfer_effect(
            db_session, batch.id, 400, distributor.id, True, BatchStatus.AT_MANDI.value,
        )
        assert updated.quantity_remaining == 600
        assert updated.current_owner_id == distributor.id
        assert updated.status == BatchStatus.AT_MANDI.value

    async def test_keeps_owner_when_not_ownership_changing(
        self, db_session: AsyncSession, batch, farmer, distributor,
    ):
        updated = await registry.apply_transfer_effect(
            db_session, batch.id, 400, distributor.id, False,
        )
        assert updated.quantity_remaining == 600
        assert updated.current_owner_id == farmer.id
        assert updated.status == BatchStatus.HARVESTED.value

    async def test_sold_when_exhausted_and_stays_sold(
        self, db_session: AsyncSession, batch, distributor, retailer,
    ):
        sold = await registry.apply_transfer_effect(
            db_session, batch.id, 1000, distributor.id, True, BatchStatus.AT_MANDI.value,
        )
        assert sold.quantity_remaining == 0
        assert sold.status == BatchStatus.SOLD.value

        with pytest.raises(InsufficientQuantityError):
            await registry.apply_transfer_effect(db_session, batch.id, 1, retailer.id, True)

        again = await registry.get_batch(db_session, batch.id, refresh=True)
        assert again.status == BatchStatus.SOLD.value
        assert again.current_owner_id == distributor.id

    async def test_never_clamps(self, db_session: AsyncSession, batch, distributor):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            await registry.apply_transfer_effect(db_session, batch.id, 1000.5, distributor.id, True)
        assert exc_info.value.available == 1000

        unchanged = await registry.get_batch(db_session, batch.id, refresh=True)
        assert unchanged.quantity_remaining == 1000

    async def test_sequence_never_goes_negative(self, db_session: AsyncSession, batch, farmer):
        remaining = 1000
        for qty in (100, 250, 300, 350):
            updated = await registry.apply_transfer_effect(db_session, batch.id, qty, farmer.id, False)
            remaining -= qty
            assert updated.quantity_remaining == remaining
        assert updated.status == BatchStatus.SOLD.value


@pytest.mark.unit
@pytest.mark.asyncio
class TestCustodyLog:

    async def test_owner_records_conditions(self, db_session: AsyncSession, batch, farmer):
        reading = await registry.record_transport_condition(
            db_session, batch.id, farmer.id,
            temperature=4.5, humidity=62, coordinates=[77.3, 28.7], notes="Reefer truck",
        )
        assert reading.longitude == 77.3
        history = await registry.list_transport_conditions(db_session, batch.id)
        assert [r.id for r in history] == [reading.id]

    async def test_non_owner_cannot_record(self, db_session: AsyncSession, batch, distributor):
        with pytest.raises(AuthorizationError):
            await registry.record_transport_condition(
                db_session, batch.id, distributor.id, temperature=5,
            )

    async def test_update_location(self, db_session: AsyncSession, batch, farmer, distributor):
        moved = await registry.update_location(
            db_session, batch.id, farmer.id, [72.87, 19.07], "APMC Vashi, Mumbai",
        )
        assert (moved.current_longitude, moved.current_latitude) == (72.87, 19.07)
        assert moved.current_address == "APMC Vashi, Mumbai"
        assert (moved.origin_longitude, moved.origin_latitude) == (77.2090, 28.6139)

        with pytest.raises(AuthorizationError):
            await registry.update_location(db_session, batch.id, distributor.id, [72.0, 19.0])


@pytest.mark.unit
@pytest.mark.asyncio
class TestListBatches:

    async def test_filters_and_order(self, db_session: AsyncSession, farmer):
        wheat = await make_batch(db_session, farmer, expected_price=20)
        rice = await make_batch(db_session, farmer, crop="rice", variety="Basmati", expected_price=80)

        items, total = await registry.list_batches(db_session)
        assert total == 2
        assert [b.id for b in items] == [rice.id, wheat.id]

        items, total = await registry.list_batches(db_session, crop="rice")
        assert [b.id for b in items] == [rice.id]

        items, total = await registry.list_batches(db_session, min_price=50)
        assert [b.id for b in items] == [rice.id]

        items, total = await registry.list_batches(db_session, max_price=50, farmer_id=farmer.id)
        assert [b.id for b in items] == [wheat.id]

        items, total = await registry.list_batches(db_session, limit=1)
        assert total == 2 and len(items) == 1
