"""Attestation sink tests; the external service is faked with httpx.MockTransport."""

import json
from types import SimpleNamespace

import httpx
import pytest

from agritrace.services import attestation


@pytest.fixture(autouse=True)
def reset_sink():
    yield
    attestation.set_sink(None)


def recording_transport(calls: list, status_code: int = 201):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.url.path, json.loads(request.content)))
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.MockTransport(handler)


@pytest.mark.unit
@pytest.mark.asyncio
class TestHttpSink:

    async def test_posts_batches_and_transactions(self):
        calls = []
        attestation.set_sink(attestation.HttpAttestationSink(
            "http://ledger.test/api/", transport=recording_transport(calls),
        ))

        await attestation.register_batch({"batchId": "BATCH-1"})
        await attestation.record_transaction({"transactionId": "TXN-1"})

        assert calls == [
            ("/api/batches", {"batchId": "BATCH-1"}),
            ("/api/transactions", {"transactionId": "TXN-1"}),
        ]

    async def test_server_error_is_swallowed(self, caplog):
        calls = []
        attestation.set_sink(attestation.HttpAttestationSink(
            "http://ledger.test", transport=recording_transport(calls, status_code=503),
        ))

        await attestation.register_batch({"batchId": "BATCH-1"})

        assert len(calls) == 1
        assert "Attestation of batch BATCH-1 failed" in caplog.text

    async def test_connection_error_is_swallowed(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        attestation.set_sink(attestation.HttpAttestationSink(
            "http://ledger.test", transport=httpx.MockTransport(refuse),
        ))
        await attestation.record_transaction({"transactionId": "TXN-1"})

    async def test_sink_raises_directly(self):
        sink = attestation.HttpAttestationSink(
            "http://ledger.test", transport=recording_transport([], status_code=500),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await sink.register_batch({"batchId": "BATCH-1"})


@pytest.mark.unit
@pytest.mark.asyncio
class TestDefaultSink:

    async def test_null_sink_without_url(self, monkeypatch):
        monkeypatch.setattr(attestation.settings, "attestation_url", "")
        attestation.set_sink(None)
        sink = attestation.get_sink()
        assert isinstance(sink, attestation.NullAttestationSink)
        assert await sink.register_batch({"batchId": "X"}) is None

    async def test_http_sink_with_url(self, monkeypatch):
        monkeypatch.setattr(attestation.settings, "attestation_url", "http://ledger.test")
        attestation.set_sink(None)
        sink = attestation.get_sink()
        assert isinstance(sink, attestation.HttpAttestationSink)
        assert sink.base_url == "http://ledger.test"


@pytest.mark.unit
class TestPayloads:

    def test_transaction_payload_uses_batch_code(self):
        txn = SimpleNamespace(
            transaction_code="TXN-20240301-AAAA0000",
            batch_id="b-1",
            from_id="f-1",
            to_id="d-1",
            type="sale",
            status="completed",
            quantity=500,
            price_per_unit=25,
            total_amount=12500,
        )
        payload = attestation.transaction_payload(txn, "BATCH-20240301-1A2B3C4D")
        assert payload["batchId"] == "BATCH-20240301-1A2B3C4D"
        assert payload["totalAmount"] == 12500
        assert attestation.transaction_payload(txn)["batchId"] == "b-1"
