"""Error body and database error mapping."""

import json

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.requests import Request

from agritrace.middleware.exceptions import (
    InsufficientQuantityError,
    InvalidStateTransitionError,
    database_exception_handler,
    error_body,
    operational_exception_handler,
)


def fake_request() -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/batches/b-1/reviews",
        "headers": [],
        "query_string": b"",
    })


@pytest.mark.unit
class TestErrorBody:

    def test_details_only_when_present(self):
        assert error_body("X", "msg") == {"error": {"code": "X", "message": "msg"}}
        assert error_body("X", "msg", {"a": 1})["error"]["details"] == {"a": 1}

    def test_quantity_message(self):
        exc = InsufficientQuantityError(600, 500)
        assert exc.status_code == 409
        assert exc.message == "Insufficient quantity available: requested 600, remaining 500"

    def test_transition_message(self):
        exc = InvalidStateTransitionError("completed", "cancelled")
        assert exc.message == "Cannot move transaction from 'completed' to 'cancelled'"


@pytest.mark.unit
@pytest.mark.asyncio
class TestDatabaseErrors:

    @pytest.mark.parametrize("driver_message,status_code,code", [
        ("UNIQUE constraint failed: batch_reviews.batch_id, batch_reviews.reviewer_id",
         409, "DUPLICATE_REVIEW"),
        ("UNIQUE constraint failed: identities.email", 409, "DUPLICATE_RECORD"),
        ("FOREIGN KEY constraint failed", 422, "FOREIGN_KEY_VIOLATION"),
        ("NOT NULL constraint failed: batches.crop", 422, "NULL_VALUE_NOT_ALLOWED"),
        ("CHECK constraint failed", 422, "INTEGRITY_ERROR"),
    ])
    async def test_integrity_mapping(self, driver_message, status_code, code):
        exc = IntegrityError("INSERT ...", {}, Exception(driver_message))
        response = await database_exception_handler(fake_request(), exc)
        assert response.status_code == status_code
        assert json.loads(response.body)["error"]["code"] == code

    async def test_operational_error_is_503(self):
        exc = OperationalError("UPDATE ...", {}, Exception("database is locked"))
        response = await operational_exception_handler(fake_request(), exc)
        assert response.status_code == 503
        assert json.loads(response.body)["error"]["code"] == "DATABASE_UNAVAILABLE"
