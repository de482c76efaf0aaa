"""
Tests for the external collaborators: custody service client and clock.

The custody service is replaced by ``httpx.MockTransport``; no network is used.
"""

from __future__ import annotations

import json

import httpx
import pytest

from aria_control.core.errors import CollaboratorFailure
from aria_control.integrations.clock import FixedClock, SystemClock, read_clock
from aria_control.integrations.custody_client import CustodyClient
from aria_control.processor import Processor

from support import PROGRAM_ID, BrokenClock, signer, writable


def _client(handler) -> CustodyClient:
    return CustodyClient(
        "http://custody.test", api_key="secret", transport=httpx.MockTransport(handler)
    )


class TestCustodyClient:
    def test_transfer_settled(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"id": "tx-9", "status": "settled", "amount": "1000"}
            )

        client = _client(handler)
        receipt = client.transfer("src", "vault", "owner", 1000)
        client.close()

        assert receipt.transfer_id == "tx-9"
        assert receipt.amount == 1000
        assert seen["path"] == "/v1/transfers"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "source": "src",
            "destination": "vault",
            "authority": "owner",
            "amount": "1000",
        }

    def test_transfer_not_settled(self):
        client = _client(
            lambda request: httpx.Response(200, json={"id": "tx-1", "status": "rejected"})
        )
        with pytest.raises(CollaboratorFailure):
            client.transfer("src", "vault", "owner", 1)

    def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(402, json={"error": "insufficient"}))
        with pytest.raises(CollaboratorFailure, match="402"):
            client.transfer("src", "vault", "owner", 1)

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CollaboratorFailure):
            _client(handler).transfer("src", "vault", "owner", 1)

    def test_get_balance(self):
        client = _client(lambda request: httpx.Response(200, json={"balance": "42"}))
        assert client.get_balance("vault") == 42

    @pytest.mark.parametrize(
        "body",
        [
            {"status": "settled"},
            {"id": "tx-2", "status": "settled"},
            {"id": "tx-3", "status": "settled", "amount": "lots"},
            ["settled"],
        ],
    )
    def test_malformed_transfer_reply(self, body):
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(CollaboratorFailure):
            client.transfer("src", "vault", "owner", 1)

    def test_settled_amount_must_match(self):
        client = _client(
            lambda request: httpx.Response(
                200, json={"id": "tx-4", "status": "settled", "amount": "999"}
            )
        )
        with pytest.raises(CollaboratorFailure, match="requested 1000"):
            client.transfer("src", "vault", "owner", 1000)

    def test_malformed_balance_reply(self):
        client = _client(lambda request: httpx.Response(200, json={"held": 1}))
        with pytest.raises(CollaboratorFailure):
            client.get_balance("vault")

    def test_malformed_reply_is_a_failed_outcome(self, engine, clock):
        client = _client(lambda request: httpx.Response(200, json={"status": "settled"}))
        processor = Processor(engine, PROGRAM_ID, clock, client)

        outcome = processor.process(
            json.dumps({"kind": "lock_tokens", "amount": 5, "lock_duration": 60}),
            [writable("lock-1"), writable("src"), writable("vault"), signer("owner")],
        )
        client.close()

        assert not outcome.ok
        assert outcome.error_code == "collaborator_failure"
        with processor.SessionLocal() as session:
            assert not processor.store(session).exists("lock-1")


class TestClock:
    def test_fixed_clock(self):
        clock = FixedClock(1000)
        assert read_clock(clock) == 1000
        clock.advance(600)
        assert read_clock(clock) == 1600
        clock.set(5)
        assert read_clock(clock) == 5

    def test_system_clock(self):
        assert read_clock(SystemClock()) > 1_600_000_000

    def test_negative_reading(self):
        with pytest.raises(CollaboratorFailure):
            read_clock(FixedClock(-1))

    def test_failing_clock(self):
        with pytest.raises(CollaboratorFailure):
            read_clock(BrokenClock())
