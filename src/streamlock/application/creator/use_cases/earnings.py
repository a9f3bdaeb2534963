"""Creator earnings: read the on-chain counters and withdraw them."""

from __future__ import annotations

import logging
from typing import Optional

from ....domain.errors import ContractError
from ....domain.shared.ledger_client_protocol import LedgerSigner
from ....domain.shared.ledger_types import parse_earnings_withdrawn_event
from ....infrastructure.ledger.account import normalize_address
from ....infrastructure.ledger.contract import ProtocolContract
from ..dtos import CreatorEarningsDTO, WithdrawalDTO

logger = logging.getLogger(__name__)


class CreatorEarningsService:
    def __init__(
        self,
        contract: ProtocolContract,
        creator_signer: Optional[LedgerSigner] = None,
    ):
        self.contract = contract
        self.creator_signer = creator_signer

    async def get_earnings(self, creator_address: str) -> CreatorEarningsDTO:
        address = normalize_address(creator_address)
        creator = await self.contract.get_creator(address)
        if creator is None:
            return CreatorEarningsDTO(creator_address=address, is_registered=False)
        return CreatorEarningsDTO(
            creator_address=address,
            is_registered=True,
            total_earnings=creator.total_earnings,
            pending_withdrawal=creator.pending_withdrawal,
            total_videos=creator.total_videos,
        )

    async def withdraw(self, creator_address: str) -> WithdrawalDTO:
        """Move the pending balance of ``creator_address`` to its account.

        Only the creator whose key this server holds can withdraw; the
        transaction is signed with that key.
        """
        signer = self.creator_signer
        if signer is None or normalize_address(creator_address) != signer.address:
            raise PermissionError("Only the configured creator can withdraw earnings")

        result = await self.contract.withdraw_earnings(signer)
        for event in result.events:
            withdrawn = parse_earnings_withdrawn_event(event)
            if withdrawn is not None:
                logger.info(
                    "Creator %s withdrew %d in %s",
                    signer.address,
                    withdrawn.amount,
                    result.hash,
                )
                return WithdrawalDTO(
                    creator_address=signer.address,
                    amount=withdrawn.amount,
                    tx_hash=result.hash,
                )
        raise ContractError(
            f"withdraw_earnings {result.hash} emitted no EarningsWithdrawnEvent"
        )
