"""Payment verification against the ledger (fail closed)."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ....domain.creator.entities import Video
from ....domain.errors import LedgerAccessError, PaymentVerificationError
from ....domain.shared.ledger_client_protocol import LedgerClientProtocol
from ....domain.shared.ledger_types import (
    LedgerTransaction,
    SegmentPaid,
    parse_segment_paid_event,
)
from ..dtos import PaymentClaimDTO

logger = logging.getLogger(__name__)


def _same_address(a: str, b: str) -> bool:
    def norm(x: str) -> str:
        x = x.lower()
        return x[2:].lstrip("0") if x.startswith("0x") else x.lstrip("0")

    return norm(a) == norm(b)


class PaymentVerifier:
    """Resolves a payment claim to verified / not verified.

    Any ledger error, ambiguous match or unexpected format is "not verified".
    """

    def __init__(
        self,
        ledger: LedgerClientProtocol,
        contract_address: Optional[str] = None,
    ):
        self.ledger = ledger
        self.contract_address = contract_address

    async def verify(
        self, claim: PaymentClaimDTO, video: Video, segment_index: int
    ) -> bool:
        try:
            await self.check(claim, video, segment_index)
        except LedgerAccessError as e:
            logger.warning(
                "Transient ledger failure verifying %s for %s/%d: %s",
                claim.tx_hash,
                video.video_id,
                segment_index,
                e,
            )
            return False
        except PaymentVerificationError as e:
            logger.info(
                "Payment %s rejected for %s/%d: %s",
                claim.tx_hash,
                video.video_id,
                segment_index,
                e.reason,
            )
            return False
        except Exception:
            logger.exception(
                "Unexpected error verifying payment %s; treating as unverified",
                claim.tx_hash,
            )
            return False
        return True

    async def check(
        self, claim: PaymentClaimDTO, video: Video, segment_index: int
    ) -> SegmentPaid:
        """Like :meth:`verify` but raises with the rejection reason.

        Raises:
            LedgerAccessError: ledger unreachable.
            PaymentVerificationError: the transaction does not pay for this segment.
        """
        if claim.network != self.ledger.network:
            raise PaymentVerificationError(
                claim.tx_hash, f"network mismatch: {claim.network}"
            )

        txn = await self.ledger.get_transaction(claim.tx_hash)
        if txn is None:
            raise PaymentVerificationError(claim.tx_hash, "transaction not found")
        if not txn.is_user_transaction:
            raise PaymentVerificationError(
                claim.tx_hash, f"unexpected transaction type: {txn.type}"
            )
        if not txn.success:
            raise PaymentVerificationError(
                claim.tx_hash, f"transaction failed: {txn.vm_status}"
            )

        matches = self._matching_events(txn, claim.tx_hash, video, segment_index)
        if not matches:
            raise PaymentVerificationError(
                claim.tx_hash, f"no payment event for segment {segment_index}"
            )
        if len(matches) > 1:
            raise PaymentVerificationError(
                claim.tx_hash, "ambiguous: multiple matching payment events"
            )

        paid = matches[0]
        if paid.amount < video.price_per_segment:
            raise PaymentVerificationError(
                claim.tx_hash,
                f"amount {paid.amount} below price {video.price_per_segment}",
            )
        return paid

    def _matching_events(
        self,
        txn: LedgerTransaction,
        tx_hash: str,
        video: Video,
        segment_index: int,
    ) -> list[SegmentPaid]:
        matches: list[SegmentPaid] = []
        for event in txn.events:
            if self.contract_address and not _same_address(
                event.type.split("::", 1)[0], self.contract_address
            ):
                continue
            try:
                paid = parse_segment_paid_event(event)
            except PydanticValidationError as e:
                raise PaymentVerificationError(
                    tx_hash, f"malformed payment event: {e.error_count()} errors"
                ) from e
            if paid is None or paid.segment_index != segment_index:
                continue
            if paid.video_id != video.ledger_video_id:
                continue
            matches.append(paid)
        return matches
