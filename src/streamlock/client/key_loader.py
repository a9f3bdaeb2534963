"""Client-side key acquisition: request, pay, retry, verify, cache.

Per segment the loader walks an explicit state machine::

    IDLE -> REQUESTING -> (CHALLENGED -> PAYING -> RETRYING) -> VERIFYING -> CACHED
                                                                 \\-> FAILED

Concurrent ``load_key`` calls for the same index share one task, so a segment
is paid for at most once per cycle. Keys are only cached after their Merkle
proof checks out against the commitment root read from the ledger.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from ..application.creator.dtos import KeyResponseDTO, PaymentClaimDTO
from ..crypto.cipher import decrypt_segment
from ..crypto.commitment import MerkleProof, b64_to_bytes, verify_proof
from ..domain.constants import AES_IV_LENGTH, AES_KEY_LENGTH
from ..domain.errors import (
    InvalidProofError,
    KeyLoaderClosedError,
    LedgerAccessError,
    SegmentAlreadyPaidError,
    StreamLockError,
    ValidationError,
    VerificationError,
    VideoNotActiveError,
    VideoNotFoundError,
)
from ..domain.shared.ledger_types import TransactionResult
from ..infrastructure.http.http_client import HttpRequestError
from ..infrastructure.key_server.key_client import KeyServerClient, KeyServerResponse
from .key_cache import KeyCache, SegmentKey
from .payment_client import CommitmentRootSource, SegmentPayer
from .retry import RetryPolicy
from .session_manager import ViewingSessionManager

logger = logging.getLogger(__name__)


class KeyLoadState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    CHALLENGED = "challenged"
    PAYING = "paying"
    RETRYING = "retrying"
    VERIFYING = "verifying"
    CACHED = "cached"
    FAILED = "failed"


class _Retry(Exception):
    """Internal signal: this attempt failed in a retryable way."""

    def __init__(self, cause: Exception):
        super().__init__(str(cause))
        self.cause = cause


def _error_message(body: dict[str, Any], default: str) -> str:
    for key in ("error", "detail", "message"):
        value = body.get(key)
        if value:
            return str(value)
    return default


class ClientKeyLoader:
    """Acquires verified segment keys for one video and one viewing session."""

    def __init__(
        self,
        *,
        video_id: str,
        key_client: KeyServerClient,
        payer: SegmentPayer,
        root_source: CommitmentRootSource,
        ledger_video_id: Optional[str] = None,
        session: Optional[ViewingSessionManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[KeyCache] = None,
        total_segments: Optional[int] = None,
        on_payment: Optional[Callable[[int, TransactionResult], None]] = None,
        on_state_change: Optional[Callable[[int, KeyLoadState], None]] = None,
    ) -> None:
        self.video_id = video_id
        self.ledger_video_id = ledger_video_id or video_id
        self.key_client = key_client
        self.payer = payer
        self.root_source = root_source
        self.session = session
        self.retry_policy = retry_policy or RetryPolicy()
        self.total_segments = total_segments
        self._cache = cache or KeyCache()
        self._on_payment = on_payment
        self._on_state_change = on_state_change

        self._states: dict[int, KeyLoadState] = {}
        self._inflight: dict[int, asyncio.Task[SegmentKey]] = {}
        self._payments: dict[int, str] = {}
        # Payment attempts that may have committed without a known hash.
        self._unsettled: set[int] = set()
        self._commitment_root: Optional[bytes] = None
        self._root_lock = asyncio.Lock()
        self._closed = False

    # Public API

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cache(self) -> KeyCache:
        return self._cache

    def state_of(self, segment_index: int) -> KeyLoadState:
        return self._states.get(segment_index, KeyLoadState.IDLE)

    def payment_for(self, segment_index: int) -> Optional[str]:
        """Hash of the payment transaction recorded for a segment, if any."""
        return self._payments.get(segment_index)

    async def load_key(self, segment_index: int) -> SegmentKey:
        """Return the verified key for ``segment_index``, paying if required.

        Raises:
            IntegrityError: the released key does not match the on-chain commitment.
            EscrowError: the session cannot pay for the segment.
            ValidationError / VideoNotFoundError / VideoNotActiveError: rejected
                by the key server.
            VerificationError: retries exhausted.
            KeyLoaderClosedError: the loader was closed.
        """
        self._ensure_open()
        if segment_index < 0 or (
            self.total_segments is not None and segment_index >= self.total_segments
        ):
            raise ValidationError(f"Segment index {segment_index} out of range")

        cached = self._cache.get(segment_index)
        if cached is not None:
            return cached

        task = self._inflight.get(segment_index)
        if task is None:
            task = self._start(segment_index)

        result = await asyncio.shield(task)
        self._ensure_open()
        return result

    def prefetch(self, start: int, count: int) -> list[int]:
        """Start acquisitions for upcoming segments. Returns the scheduled indices."""
        self._ensure_open()
        end = start + count
        if self.total_segments is not None:
            end = min(end, self.total_segments)
        scheduled: list[int] = []
        for index in range(max(start, 0), end):
            if index in self._inflight or self._cache.get(index) is not None:
                continue
            self._start(index)
            scheduled.append(index)
        return scheduled

    async def decrypt(self, segment_index: int, ciphertext: bytes) -> bytes:
        key = await self.load_key(segment_index)
        return decrypt_segment(ciphertext, key.key, key.iv)

    async def close(self, *, wait: bool = True) -> None:
        """Stop handing out keys.

        Submitted payments are never cancelled. With ``wait`` the call returns
        once in-flight acquisitions settle, so their payments are accounted.
        """
        self._closed = True
        self._cache.clear()
        pending = list(self._inflight.values())
        if wait and pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Internals

    def _ensure_open(self) -> None:
        if self._closed:
            raise KeyLoaderClosedError()

    def _set_state(self, segment_index: int, state: KeyLoadState) -> None:
        self._states[segment_index] = state
        if self._on_state_change is not None:
            self._on_state_change(segment_index, state)

    def _start(self, segment_index: int) -> asyncio.Task[SegmentKey]:
        task = asyncio.create_task(
            self._run(segment_index), name=f"load-key-{self.video_id}-{segment_index}"
        )
        self._inflight[segment_index] = task
        task.add_done_callback(lambda t, i=segment_index: self._on_done(i, t))
        return task

    def _on_done(self, segment_index: int, task: asyncio.Task[SegmentKey]) -> None:
        if self._inflight.get(segment_index) is task:
            del self._inflight[segment_index]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                "Key acquisition for segment %d ended with %r",
                segment_index,
                task.exception(),
            )

    async def _run(self, segment_index: int) -> SegmentKey:
        try:
            return await self._acquire(segment_index)
        except BaseException:
            self._set_state(segment_index, KeyLoadState.FAILED)
            raise

    async def _acquire(self, segment_index: int) -> SegmentKey:
        claim: Optional[PaymentClaimDTO] = None
        payments_this_cycle = 0
        failures = 0
        last_error: Optional[Exception] = None
        self._set_state(segment_index, KeyLoadState.REQUESTING)

        while True:
            self._ensure_open()
            known_hash = self._payments.get(segment_index)
            if claim is None and known_hash:
                claim = self._claim(known_hash)
            try:
                response = await self._request(segment_index, claim)

                if response.status_code == 200:
                    self._set_state(segment_index, KeyLoadState.VERIFYING)
                    key = await self._verify(segment_index, response.body)
                    self._ensure_open()
                    self._cache.put(key)
                    self._set_state(segment_index, KeyLoadState.CACHED)
                    return key

                if response.status_code == 402:
                    self._set_state(segment_index, KeyLoadState.CHALLENGED)
                    if claim is not None and not await self.payer.payment_failed(
                        claim.tx_hash
                    ):
                        # Paid; the server has not confirmed it yet.
                        raise _Retry(
                            VerificationError(
                                _error_message(
                                    response.body, "Payment not yet verified"
                                ),
                                details={"tx_hash": claim.tx_hash},
                            )
                        )
                    if payments_this_cycle >= self.retry_policy.max_attempts:
                        raise VerificationError(
                            f"Gave up paying for segment {segment_index}",
                            details={"payments": payments_this_cycle},
                        )
                    claim = await self._pay(segment_index, response.body)
                    payments_this_cycle += 1
                    self._set_state(segment_index, KeyLoadState.RETRYING)
                    continue

                self._raise_for_status(segment_index, response)

            except _Retry as retry:
                last_error = retry.cause
                failures += 1
                if failures >= self.retry_policy.max_attempts:
                    break
                self._set_state(segment_index, KeyLoadState.RETRYING)
                logger.info(
                    "Retrying key for segment %d (%d/%d): %s",
                    segment_index,
                    failures,
                    self.retry_policy.max_attempts,
                    retry.cause,
                )
                await self.retry_policy.backoff(failures - 1)

        raise VerificationError(
            f"Could not obtain key for segment {segment_index} "
            f"after {failures} attempts",
            details={"segment_index": segment_index},
        ) from last_error

    async def _request(
        self, segment_index: int, claim: Optional[PaymentClaimDTO]
    ) -> KeyServerResponse:
        try:
            return await self.key_client.request_key(
                self.video_id, segment_index, claim
            )
        except HttpRequestError as e:
            raise _Retry(e) from e

    def _raise_for_status(
        self, segment_index: int, response: KeyServerResponse
    ) -> None:
        status = response.status_code
        message = _error_message(response.body, f"Key server returned {status}")
        if status in (400, 422):
            raise ValidationError(message, details={"segment_index": segment_index})
        if status == 403:
            raise VideoNotActiveError(self.video_id)
        if status == 404:
            raise VideoNotFoundError(self.video_id)
        error = StreamLockError(
            message, code="KEY_SERVER_ERROR", details={"status": status}
        )
        raise _Retry(error)

    def _claim(self, tx_hash: str) -> PaymentClaimDTO:
        return PaymentClaimDTO(tx_hash=tx_hash, network=self.payer.network)

    def _check_challenge(self, body: dict[str, Any]) -> None:
        accepts = body.get("accepts")
        if not isinstance(accepts, list) or not accepts:
            return
        network = accepts[0].get("network") if isinstance(accepts[0], dict) else None
        if network is not None and network != self.payer.network:
            raise ValidationError(
                f"Key server asks for payment on {network!r}, "
                f"payer is on {self.payer.network!r}"
            )

    async def _pay(
        self, segment_index: int, challenge: dict[str, Any]
    ) -> PaymentClaimDTO:
        self._check_challenge(challenge)
        if self.session is not None:
            self.session.ensure_can_pay(segment_index)

        if segment_index in self._unsettled:
            await self._settle(segment_index)

        self._set_state(segment_index, KeyLoadState.PAYING)
        try:
            result = await self.payer.pay_for_segment(segment_index)
        except SegmentAlreadyPaidError as e:
            known_hash = self._payments.get(segment_index)
            if known_hash is None:
                raise self._unrecoverable_payment(segment_index) from e
            return self._claim(known_hash)
        except LedgerAccessError as e:
            tx_hash = e.details.get("tx_hash")
            if tx_hash:
                # Submitted but unconfirmed: present it and let the server decide.
                self._payments[segment_index] = tx_hash
            elif e.details.get("submitted") is not False:
                self._unsettled.add(segment_index)
            raise _Retry(e) from e

        self._payments[segment_index] = result.hash
        if self.session is not None:
            self.session.account_payment(segment_index)
        if self._on_payment is not None:
            self._on_payment(segment_index, result)
        return self._claim(result.hash)

    async def _settle(self, segment_index: int) -> None:
        """Find out whether an earlier hash-less payment attempt committed."""
        try:
            paid = await self.payer.is_segment_paid(segment_index)
        except LedgerAccessError as e:
            raise _Retry(e) from e
        if paid:
            raise self._unrecoverable_payment(segment_index)
        self._unsettled.discard(segment_index)

    def _unrecoverable_payment(self, segment_index: int) -> VerificationError:
        return VerificationError(
            f"Segment {segment_index} is already paid but its payment "
            "transaction is unknown",
            details={"segment_index": segment_index},
        )

    async def _get_commitment_root(self) -> bytes:
        async with self._root_lock:
            if self._commitment_root is None:
                self._commitment_root = await self.root_source.get_commitment_root(
                    self.ledger_video_id
                )
            return self._commitment_root

    async def _verify(self, segment_index: int, body: dict[str, Any]) -> SegmentKey:
        try:
            response = KeyResponseDTO.model_validate(body)
            key = b64_to_bytes(response.key)
            iv = b64_to_bytes(response.iv)
            proof = MerkleProof.from_dict(response.proof.model_dump())
        except Exception as e:
            raise InvalidProofError(
                segment_index, f"malformed key response: {e}"
            ) from e

        if response.segment_index != segment_index or proof.index != segment_index:
            raise InvalidProofError(segment_index, "segment index mismatch")
        if len(key) != AES_KEY_LENGTH or len(iv) != AES_IV_LENGTH:
            raise InvalidProofError(segment_index, "key material has wrong length")

        try:
            root = await self._get_commitment_root()
        except LedgerAccessError as e:
            raise _Retry(e) from e

        if not verify_proof(key, proof, expected_root=root):
            raise InvalidProofError(
                segment_index, "proof does not match the on-chain commitment"
            )
        return SegmentKey(segment_index=segment_index, key=key, iv=iv)
