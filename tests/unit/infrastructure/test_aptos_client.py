"""Unit tests for the Aptos REST ledger client using httpx.MockTransport."""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Callable, Optional

import httpx
import pytest

from streamlock.domain.errors import (
    ContractError,
    LedgerAccessError,
    SegmentAlreadyPaidError,
)
from streamlock.infrastructure.ledger.account import Ed25519Account
from streamlock.infrastructure.ledger.aptos_client import (
    AptosLedgerClient,
    parse_abort_code,
    user_transaction_hash,
)

NODE_URL = "http://node.test/v1"
TX_HASH = "0x" + "12" * 32
SIGNING_MESSAGE = bytes.fromhex("b5e9" * 8)
RAW_TXN = b"raw-transaction-bytes"
SALTED_SIGNING_MESSAGE = hashlib.sha3_256(b"APTOS::RawTransaction").digest() + RAW_TXN


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any
) -> AptosLedgerClient:
    kwargs.setdefault("gas_unit_price", 100)
    return AptosLedgerClient(
        NODE_URL, "testnet", transport=httpx.MockTransport(handler), **kwargs
    )


def _committed(success: bool = True, vm_status: str = "Executed successfully"):
    return {
        "hash": TX_HASH,
        "type": "user_transaction",
        "success": success,
        "vm_status": vm_status,
        "sender": "0x1",
        "gas_used": "12",
        "gas_unit_price": "100",
        "events": [
            {
                "type": "0xc0::protocol::SegmentPaidEvent",
                "sequence_number": "3",
                "data": {"session_id": "1", "segment_index": "0", "amount": "100"},
            }
        ],
    }


class TestParseAbortCode:
    """Test parse_abort_code."""

    @pytest.mark.parametrize(
        "vm_status, expected",
        [
            ("Move abort in 0xc0::protocol: E_SEGMENT_ALREADY_PAID(0x1000f): ", 15),
            ("Move abort in 0xc0::protocol: abort code: 7", 7),
            ("Move abort: code 3", 3),
            ("Executed successfully", 0),
            ("", 0),
        ],
    )
    def test_parse(self, vm_status: str, expected: int) -> None:
        assert parse_abort_code(vm_status) == expected


class TestReads:
    """Transaction lookup, balances and view calls."""

    async def test_get_transaction_parses_events(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/v1/transactions/by_hash/{TX_HASH}"
            return httpx.Response(200, json=_committed())

        async with _client(handler) as client:
            txn = await client.get_transaction(TX_HASH)

        assert txn is not None
        assert txn.success
        assert txn.gas_fee == 1200
        assert txn.events[0].is_type("SegmentPaidEvent")
        assert txn.events[0].sequence_number == 3

    async def test_unknown_transaction_is_none(self) -> None:
        async with _client(lambda r: httpx.Response(404, json={})) as client:
            assert await client.get_transaction(TX_HASH) is None

    async def test_server_error_is_ledger_access_error(self) -> None:
        async with _client(lambda r: httpx.Response(503, text="down")) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.get_transaction(TX_HASH)
        assert exc_info.value.details["status_code"] == 503

    async def test_unreachable_node(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(LedgerAccessError):
                await client.get_transaction(TX_HASH)

    async def test_get_balance(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/v1/view"
            assert body["function"] == "0x1::coin::balance"
            assert body["type_arguments"] == ["0x1::aptos_coin::AptosCoin"]
            return httpx.Response(200, json=["1234"])

        async with _client(handler) as client:
            assert await client.get_balance("0xabc") == 1234

    async def test_unfunded_account_has_zero_balance(self) -> None:
        async with _client(lambda r: httpx.Response(400, json={})) as client:
            assert await client.get_balance("0xabc") == 0

    async def test_view_encodes_arguments(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(200, json=[True])

        async with _client(handler) as client:
            result = await client.view("0xc0::protocol::f", [7, b"\x01\x02", "x"])

        assert result == [True]
        assert seen["arguments"] == ["7", "0x0102", "x"]


class _Node:
    """Scripted fullnode covering one submission."""

    def __init__(
        self,
        committed: dict[str, Any],
        signing_message: bytes = SIGNING_MESSAGE,
        submit_response: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.committed = committed
        self.signing_message = signing_message
        self.submit_response = submit_response
        self.submitted: dict[str, Any] = {}
        self.sequence_numbers: list[str] = []
        self.polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.startswith("/v1/accounts/"):
            return httpx.Response(200, json={"sequence_number": "5"})
        if path == "/v1/transactions/encode_submission":
            return httpx.Response(200, json="0x" + self.signing_message.hex())
        if path == "/v1/transactions":
            self.submitted = json.loads(request.content)
            self.sequence_numbers.append(self.submitted["sequence_number"])
            if self.submit_response is not None:
                return self.submit_response(request)
            return httpx.Response(202, json={"hash": TX_HASH})
        if path == f"/v1/transactions/by_hash/{TX_HASH}":
            self.polls += 1
            if self.polls == 1:
                return httpx.Response(
                    200, json={"hash": TX_HASH, "type": "pending_transaction"}
                )
            return httpx.Response(200, json=self.committed)
        return httpx.Response(404, json={})


class TestSubmit:
    """Build, sign, submit and confirm."""

    async def test_submit_entry_function(self) -> None:
        account = Ed25519Account.generate()
        node = _Node(_committed())

        async with _client(node, poll_interval=0) as client:
            result = await client.submit_entry_function(
                account, "0xc0::protocol::pay_for_segment", ["1", 0]
            )

        assert result.hash == TX_HASH
        assert result.success
        assert result.gas_fee == 1200
        assert node.polls == 2

        submitted = node.submitted
        assert submitted["sender"] == account.address
        assert submitted["sequence_number"] == "5"
        assert submitted["gas_unit_price"] == "100"
        assert submitted["payload"]["arguments"] == ["1", "0"]
        signature = submitted["signature"]
        assert signature["public_key"] == account.public_key_hex
        assert account.verify(
            SIGNING_MESSAGE, bytes.fromhex(signature["signature"][2:])
        )

    async def test_aborted_transaction_raises_contract_error(self) -> None:
        node = _Node(
            _committed(success=False, vm_status="Move abort: E_NOT_CREATOR(0x10004)")
        )
        async with _client(node, poll_interval=0) as client:
            with pytest.raises(ContractError) as exc_info:
                await client.submit_entry_function(
                    Ed25519Account.generate(), "0xc0::protocol::deactivate_video", []
                )
        assert exc_info.value.abort_code == 4
        assert exc_info.value.tx_hash == TX_HASH

    async def test_already_paid_abort(self) -> None:
        node = _Node(_committed(success=False, vm_status="abort code: 15"))
        async with _client(node, poll_interval=0) as client:
            with pytest.raises(SegmentAlreadyPaidError):
                await client.transfer(Ed25519Account.generate(), "0x2", 10)

    async def test_confirmation_timeout_carries_hash(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"hash": TX_HASH, "type": "pending_transaction"}
            )

        async with _client(handler, confirmation_timeout=0) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.wait_for_transaction(TX_HASH)
        assert exc_info.value.details["tx_hash"] == TX_HASH

    async def test_gas_price_estimate(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/estimate_gas_price"
            return httpx.Response(200, json={"gas_estimate": 150})

        client = AptosLedgerClient(
            NODE_URL, "testnet", transport=httpx.MockTransport(handler)
        )
        try:
            assert await client.get_gas_unit_price() == 150
        finally:
            await client.aclose()


def _signed_transaction_hash(submitted: dict[str, Any]) -> str:
    """Hash of a submitted Ed25519 transaction, rebuilt from its BCS bytes."""
    public_key = bytes.fromhex(submitted["signature"]["public_key"][2:])
    signature = bytes.fromhex(submitted["signature"]["signature"][2:])
    signed = RAW_TXN + b"\x00" + b"\x20" + public_key + b"\x40" + signature
    salt = hashlib.sha3_256(b"APTOS::Transaction").digest()
    return "0x" + hashlib.sha3_256(salt + b"\x00" + signed).hexdigest()


class TestSubmissionOutcome:
    """Errors around submission tell callers whether a transaction may exist."""

    async def test_lost_submit_response_carries_local_hash(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("no response", request=request)

        node = _Node(
            _committed(),
            signing_message=SALTED_SIGNING_MESSAGE,
            submit_response=timeout,
        )
        async with _client(node, poll_interval=0) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.submit_entry_function(
                    Ed25519Account.generate(), "0xc0::protocol::pay_for_segment", []
                )

        assert exc_info.value.details["tx_hash"] == _signed_transaction_hash(
            node.submitted
        )

    async def test_server_error_on_submit_carries_local_hash(self) -> None:
        node = _Node(
            _committed(),
            signing_message=SALTED_SIGNING_MESSAGE,
            submit_response=lambda r: httpx.Response(502, text="bad gateway"),
        )
        async with _client(node, poll_interval=0) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.transfer(Ed25519Account.generate(), "0x2", 10)

        assert exc_info.value.details["tx_hash"] == _signed_transaction_hash(
            node.submitted
        )

    async def test_rejected_submission_has_no_hash(self) -> None:
        node = _Node(
            _committed(),
            signing_message=SALTED_SIGNING_MESSAGE,
            submit_response=lambda r: httpx.Response(
                400, json={"error_code": "invalid_transaction_update"}
            ),
        )
        async with _client(node, poll_interval=0) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.transfer(Ed25519Account.generate(), "0x2", 10)

        assert "tx_hash" not in exc_info.value.details
        assert exc_info.value.details["submitted"] is False

    async def test_confirmation_failure_carries_node_hash(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/v1/transactions/by_hash/"):
                return httpx.Response(503, text="down")
            return node(request)

        node = _Node(_committed())
        async with _client(handler, poll_interval=0) as client:
            with pytest.raises(LedgerAccessError) as exc_info:
                await client.transfer(Ed25519Account.generate(), "0x2", 10)

        assert exc_info.value.details["tx_hash"] == TX_HASH

    def test_local_hash_matches_bcs_layout(self) -> None:
        public_key = bytes(range(32))
        signature = bytes(range(64))
        submitted = {
            "signature": {
                "public_key": "0x" + public_key.hex(),
                "signature": "0x" + signature.hex(),
            }
        }

        assert user_transaction_hash(
            SALTED_SIGNING_MESSAGE, public_key, signature
        ) == _signed_transaction_hash(submitted)
        assert user_transaction_hash(SIGNING_MESSAGE, public_key, signature) is None


class TestSequenceNumbers:
    """Concurrent submissions from one account."""

    async def test_concurrent_submissions_use_consecutive_numbers(self) -> None:
        account = Ed25519Account.generate()
        node = _Node(_committed())

        async with _client(node, poll_interval=0) as client:
            await asyncio.gather(
                client.transfer(account, "0x2", 10),
                client.transfer(account, "0x3", 10),
            )

        assert sorted(node.sequence_numbers) == ["5", "6"]

    async def test_rejected_submission_releases_its_number(self) -> None:
        account = Ed25519Account.generate()
        responses = [
            httpx.Response(400, json={"error_code": "sequence_number_too_old"}),
            httpx.Response(202, json={"hash": TX_HASH}),
        ]
        node = _Node(_committed(), submit_response=lambda r: responses.pop(0))

        async with _client(node, poll_interval=0) as client:
            with pytest.raises(LedgerAccessError):
                await client.transfer(account, "0x2", 10)
            await client.transfer(account, "0x2", 10)

        assert node.sequence_numbers == ["5", "5"]
