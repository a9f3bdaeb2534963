"""Async client for the Aptos fullnode REST API."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from types import TracebackType
from typing import Any, Optional, Sequence, Type

import httpx

from ...domain.constants import APTOS_COIN
from ...domain.errors import ContractError, LedgerAccessError
from ...domain.shared.ledger_client_protocol import LedgerSigner
from ...domain.shared.ledger_types import (
    ContractEvent,
    LedgerTransaction,
    TransactionResult,
)
from ..http.http_client import AsyncHttpClient, HttpRequestError, HttpResponseError

logger = logging.getLogger(__name__)

_ABORT_CODE_PATTERNS = (
    re.compile(r"abort code:?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\((0x[0-9a-fA-F]+)\)"),
    re.compile(r"code (\d+)"),
)


def parse_abort_code(vm_status: str) -> int:
    """Extract the Move abort reason from a VM status string (0 if absent).

    The error category in the upper bits (``0x1000f`` -> ``15``) is dropped.
    """
    for pattern in _ABORT_CODE_PATTERNS:
        match = pattern.search(vm_status or "")
        if match:
            return int(match.group(1), 0) & 0xFFFF
    return 0


_RAW_TRANSACTION_SALT = hashlib.sha3_256(b"APTOS::RawTransaction").digest()
_TRANSACTION_SALT = hashlib.sha3_256(b"APTOS::Transaction").digest()


def user_transaction_hash(
    signing_message: bytes, public_key: bytes, signature: bytes
) -> Optional[str]:
    """Hash the node assigns to a signed Ed25519 user transaction.

    The signing message is the salted BCS raw transaction, so the signed
    transaction is the raw bytes followed by the Ed25519 authenticator. Returns
    None if ``signing_message`` is not a raw transaction signing message.
    """
    if not signing_message.startswith(_RAW_TRANSACTION_SALT):
        return None
    raw_txn = signing_message[len(_RAW_TRANSACTION_SALT) :]
    signed_txn = (
        raw_txn
        + b"\x00"
        + bytes([len(public_key)])
        + public_key
        + bytes([len(signature)])
        + signature
    )
    # Transaction::UserTransaction is variant 0.
    digest = hashlib.sha3_256(_TRANSACTION_SALT + b"\x00" + signed_txn).digest()
    return "0x" + digest.hex()


def _parse_transaction(data: dict[str, Any]) -> LedgerTransaction:
    events = [
        ContractEvent(
            type=e.get("type", ""),
            data=e.get("data") or {},
            sequence_number=int(e.get("sequence_number", 0)),
        )
        for e in data.get("events") or []
    ]
    return LedgerTransaction(
        hash=data["hash"],
        type=data.get("type", ""),
        success=bool(data.get("success", False)),
        vm_status=data.get("vm_status", ""),
        sender=data.get("sender"),
        gas_used=int(data.get("gas_used", 0)),
        gas_unit_price=int(data.get("gas_unit_price", 0)),
        events=events,
    )


class AptosLedgerClient:
    """REST implementation of ``LedgerClientProtocol``.

    Transactions are built as JSON entry function payloads, turned into a
    signing message by ``/transactions/encode_submission``, signed locally with
    Ed25519 and submitted. Confirmation polls ``/transactions/by_hash``.
    Sequence numbers are handed out per sender under a lock, so one client
    can submit for the same account from concurrent tasks.
    """

    def __init__(
        self,
        node_url: str,
        network: str,
        *,
        timeout: float = 10.0,
        max_gas_amount: int = 200_000,
        gas_unit_price: Optional[int] = None,
        expiration_seconds: int = 60,
        confirmation_timeout: float = 30.0,
        poll_interval: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.network = network
        self._http = AsyncHttpClient(node_url, timeout=timeout, transport=transport)
        self._max_gas_amount = max_gas_amount
        self._gas_unit_price = gas_unit_price
        self._expiration_seconds = expiration_seconds
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._sender_locks: dict[str, asyncio.Lock] = {}
        self._next_sequence: dict[str, int] = {}

    async def _get_json(self, path: str) -> Any:
        try:
            resp = await self._http.get(path)
        except HttpResponseError as e:
            raise LedgerAccessError(
                f"Ledger returned {e.response.status_code} for {path}",
                details={"status_code": e.response.status_code},
            ) from e
        except HttpRequestError as e:
            raise LedgerAccessError(f"Could not reach ledger node: {e}") from e
        return resp.json()

    async def _post_json(self, path: str, payload: Any) -> Any:
        try:
            resp = await self._http.post(path, json=payload)
        except HttpResponseError as e:
            raise LedgerAccessError(
                f"Ledger returned {e.response.status_code} for {path}: "
                f"{e.response.text}",
                details={"status_code": e.response.status_code},
            ) from e
        except HttpRequestError as e:
            raise LedgerAccessError(f"Could not reach ledger node: {e}") from e
        return resp.json()

    # Reads

    async def get_transaction(self, tx_hash: str) -> Optional[LedgerTransaction]:
        try:
            resp = await self._http.request("GET", f"/transactions/by_hash/{tx_hash}")
        except HttpRequestError as e:
            raise LedgerAccessError(f"Could not reach ledger node: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise LedgerAccessError(
                f"Ledger returned {resp.status_code} for transaction {tx_hash}",
                details={"status_code": resp.status_code},
            )
        try:
            return _parse_transaction(resp.json())
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerAccessError(f"Unexpected transaction format: {e}") from e

    async def get_sequence_number(self, address: str) -> int:
        data = await self._get_json(f"/accounts/{address}")
        return int(data["sequence_number"])

    async def get_gas_unit_price(self) -> int:
        if self._gas_unit_price is not None:
            return self._gas_unit_price
        data = await self._get_json("/estimate_gas_price")
        return int(data["gas_estimate"])

    async def view(
        self,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str] = (),
    ) -> list[Any]:
        payload = {
            "function": function,
            "type_arguments": list(type_arguments),
            "arguments": [_encode_argument(a) for a in arguments],
        }
        result = await self._post_json("/view", payload)
        if not isinstance(result, list):
            raise LedgerAccessError(f"Unexpected view response for {function}")
        return result

    async def get_balance(self, address: str) -> int:
        try:
            result = await self.view(
                "0x1::coin::balance", [address], type_arguments=[APTOS_COIN]
            )
        except LedgerAccessError as e:
            # Unfunded accounts have no coin store yet.
            if e.details.get("status_code") in (400, 404):
                return 0
            raise
        return int(result[0])

    # Writes

    async def submit_entry_function(
        self,
        signer: LedgerSigner,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str] = (),
    ) -> TransactionResult:
        """Sign and submit an entry function call, then wait for it to commit.

        Submissions from one sender are serialized so concurrent callers get
        consecutive sequence numbers. A ``LedgerAccessError`` raised after the
        transaction may have reached the node carries ``details["tx_hash"]``;
        one raised for a rejected submission has ``details["submitted"]`` set
        to False.
        """
        async with self._sender_lock(signer.address):
            tx_hash = await self._sign_and_submit(
                signer, function, arguments, type_arguments
            )

        try:
            committed = await self.wait_for_transaction(tx_hash)
        except LedgerAccessError as e:
            e.details.setdefault("tx_hash", tx_hash)
            raise
        result = TransactionResult(
            hash=committed.hash,
            success=committed.success,
            vm_status=committed.vm_status,
            gas_used=committed.gas_used,
            gas_fee=committed.gas_fee,
            events=committed.events,
        )
        if not committed.success:
            raise ContractError.from_abort_code(
                parse_abort_code(committed.vm_status), tx_hash=tx_hash
            )
        return result

    def _sender_lock(self, address: str) -> asyncio.Lock:
        lock = self._sender_locks.get(address)
        if lock is None:
            lock = self._sender_locks[address] = asyncio.Lock()
        return lock

    async def _next_sequence_number(self, address: str) -> int:
        # The node only counts committed transactions, so a cached value is
        # ahead of it while earlier submissions are still pending.
        sequence_number = max(
            await self.get_sequence_number(address),
            self._next_sequence.get(address, 0),
        )
        self._next_sequence[address] = sequence_number + 1
        return sequence_number

    async def _sign_and_submit(
        self,
        signer: LedgerSigner,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str],
    ) -> str:
        sequence_number = await self._next_sequence_number(signer.address)
        try:
            return await self._submit(
                signer, sequence_number, function, arguments, type_arguments
            )
        except Exception:
            self._next_sequence.pop(signer.address, None)
            raise

    async def _submit(
        self,
        signer: LedgerSigner,
        sequence_number: int,
        function: str,
        arguments: Sequence[Any],
        type_arguments: Sequence[str],
    ) -> str:
        gas_unit_price = await self.get_gas_unit_price()

        txn: dict[str, Any] = {
            "sender": signer.address,
            "sequence_number": str(sequence_number),
            "max_gas_amount": str(self._max_gas_amount),
            "gas_unit_price": str(gas_unit_price),
            "expiration_timestamp_secs": str(
                int(time.time()) + self._expiration_seconds
            ),
            "payload": {
                "type": "entry_function_payload",
                "function": function,
                "type_arguments": list(type_arguments),
                "arguments": [_encode_argument(a) for a in arguments],
            },
        }

        signing_message_hex = await self._post_json(
            "/transactions/encode_submission", txn
        )
        signing_message = bytes.fromhex(str(signing_message_hex).removeprefix("0x"))
        signature = signer.sign(signing_message)
        txn["signature"] = {
            "type": "ed25519_signature",
            "public_key": signer.public_key_hex,
            "signature": "0x" + signature.hex(),
        }

        expected_hash = user_transaction_hash(
            signing_message,
            bytes.fromhex(signer.public_key_hex.removeprefix("0x")),
            signature,
        )

        try:
            pending = await self._post_json("/transactions", txn)
        except LedgerAccessError as e:
            status_code = e.details.get("status_code")
            if status_code is not None and 400 <= status_code < 500:
                e.details["submitted"] = False
            elif expected_hash is not None:
                e.details["tx_hash"] = expected_hash
            raise
        tx_hash = pending["hash"]
        if expected_hash is not None and tx_hash.lower() != expected_hash:
            logger.warning(
                "Node hash %s differs from local hash %s", tx_hash, expected_hash
            )
        logger.info("Submitted %s from %s as %s", function, signer.address, tx_hash)
        return tx_hash

    async def wait_for_transaction(self, tx_hash: str) -> LedgerTransaction:
        deadline = time.monotonic() + self._confirmation_timeout
        while True:
            txn = await self.get_transaction(tx_hash)
            if txn is not None and not txn.is_pending:
                return txn
            if time.monotonic() >= deadline:
                raise LedgerAccessError(
                    f"Timed out waiting for transaction {tx_hash}",
                    details={"tx_hash": tx_hash},
                )
            await asyncio.sleep(self._poll_interval)

    async def transfer(
        self, signer: LedgerSigner, recipient: str, amount: int
    ) -> TransactionResult:
        return await self.submit_entry_function(
            signer, "0x1::aptos_account::transfer", [recipient, amount]
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AptosLedgerClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()


def _encode_argument(value: Any) -> Any:
    """JSON argument encoding: u64 as decimal strings, byte vectors as hex."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value
