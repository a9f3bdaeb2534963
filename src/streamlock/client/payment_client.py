"""On-chain segment payments and the commitment root lookup for the viewer."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..domain.errors import LedgerAccessError, VideoNotFoundError
from ..domain.shared.ledger_client_protocol import LedgerSigner
from ..domain.shared.ledger_types import TransactionResult
from ..infrastructure.ledger.contract import ProtocolContract
from .session_keys import SessionKeyManager

logger = logging.getLogger(__name__)


class SegmentPayer(Protocol):
    """What the key loader needs to pay for a segment."""

    network: str

    async def pay_for_segment(self, segment_index: int) -> TransactionResult:
        """Submit and confirm a payment. Raises ``ContractError`` on abort."""
        ...

    async def payment_failed(self, tx_hash: str) -> bool:
        """True only if the ledger shows ``tx_hash`` committed and failed."""
        ...

    async def is_segment_paid(self, segment_index: int) -> bool:
        """Whether the ledger records a payment for ``segment_index``."""
        ...


class CommitmentRootSource(Protocol):
    async def get_commitment_root(self, video_id: str) -> bytes: ...


class SessionSegmentPayer:
    """Pays for segments of one session with the session's signer."""

    def __init__(
        self,
        contract: ProtocolContract,
        signer: LedgerSigner,
        session_id: str,
        price_per_segment: int,
        *,
        session_keys: Optional[SessionKeyManager] = None,
    ):
        self.contract = contract
        self.signer = signer
        self.session_id = session_id
        self.price_per_segment = price_per_segment
        self.session_keys = session_keys

    @property
    def network(self) -> str:
        return self.contract.ledger.network

    async def pay_for_segment(self, segment_index: int) -> TransactionResult:
        result = await self.contract.pay_for_segment(
            self.signer, self.session_id, segment_index
        )
        logger.info(
            "Paid segment %d of session %s in %s",
            segment_index,
            self.session_id,
            result.hash,
        )
        if self.session_keys is not None and self.session_keys.state is not None:
            try:
                await self.session_keys.record_payment(
                    self.price_per_segment, result.gas_fee
                )
            except Exception as e:
                # The payment is committed; the next balance sync corrects this.
                logger.warning(
                    "Could not record payment %s for session key: %s", result.hash, e
                )
        return result

    async def is_segment_paid(self, segment_index: int) -> bool:
        return await self.contract.is_segment_paid(self.session_id, segment_index)

    async def payment_failed(self, tx_hash: str) -> bool:
        try:
            txn = await self.contract.ledger.get_transaction(tx_hash)
        except LedgerAccessError as e:
            logger.warning("Could not check payment %s: %s", tx_hash, e)
            return False
        if txn is None or txn.is_pending:
            return False
        return not txn.success


class OnChainCommitmentSource:
    """Reads the immutable commitment root registered for a video."""

    def __init__(self, contract: ProtocolContract):
        self.contract = contract

    async def get_commitment_root(self, video_id: str) -> bytes:
        video = await self.contract.get_video(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        return bytes.fromhex(video.commitment_root)
