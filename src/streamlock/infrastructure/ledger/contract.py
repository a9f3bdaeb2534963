"""Typed wrapper over the on-chain ``protocol`` module."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ...domain.constants import entry_function_id
from ...domain.errors import LedgerAccessError
from ...domain.shared.ledger_client_protocol import (
    LedgerClientProtocol,
    LedgerSigner,
)
from ...domain.shared.ledger_types import (
    OnChainCreator,
    OnChainSession,
    OnChainVideo,
    TransactionResult,
)

logger = logging.getLogger(__name__)


class ProtocolContract:
    """Entry and view functions of the deployed contract."""

    def __init__(self, ledger: LedgerClientProtocol, contract_address: str):
        self.ledger = ledger
        self.contract_address = contract_address

    def function_id(self, name: str) -> str:
        return entry_function_id(self.contract_address, name)

    async def _execute(
        self, signer: LedgerSigner, name: str, arguments: list[Any]
    ) -> TransactionResult:
        return await self.ledger.submit_entry_function(
            signer, self.function_id(name), arguments
        )

    # Entry functions

    async def register_video(
        self,
        signer: LedgerSigner,
        *,
        content_uri: str,
        thumbnail_uri: str,
        duration_seconds: int,
        total_segments: int,
        commitment_root: bytes,
        price_per_segment: int,
    ) -> TransactionResult:
        return await self._execute(
            signer,
            "register_video",
            [
                content_uri,
                thumbnail_uri,
                duration_seconds,
                total_segments,
                commitment_root,
                price_per_segment,
            ],
        )

    async def update_video_price(
        self, signer: LedgerSigner, video_id: str, new_price: int
    ) -> TransactionResult:
        return await self._execute(signer, "update_video_price", [video_id, new_price])

    async def deactivate_video(
        self, signer: LedgerSigner, video_id: str
    ) -> TransactionResult:
        return await self._execute(signer, "deactivate_video", [video_id])

    async def start_session(
        self,
        signer: LedgerSigner,
        *,
        video_id: str,
        prepaid_segments: int,
        max_duration_seconds: int,
    ) -> TransactionResult:
        return await self._execute(
            signer,
            "start_session",
            [video_id, prepaid_segments, max_duration_seconds],
        )

    async def pay_for_segment(
        self, signer: LedgerSigner, session_id: str, segment_index: int
    ) -> TransactionResult:
        return await self._execute(
            signer, "pay_for_segment", [session_id, segment_index]
        )

    async def top_up_session(
        self, signer: LedgerSigner, session_id: str, additional_segments: int
    ) -> TransactionResult:
        return await self._execute(
            signer, "top_up_session", [session_id, additional_segments]
        )

    async def end_session(
        self, signer: LedgerSigner, session_id: str
    ) -> TransactionResult:
        return await self._execute(signer, "end_session", [session_id])

    async def withdraw_earnings(self, signer: LedgerSigner) -> TransactionResult:
        return await self._execute(signer, "withdraw_earnings", [])

    # View functions

    async def get_video(self, video_id: str) -> Optional[OnChainVideo]:
        """Return the registered video, or None if it does not exist.

        Transport failures propagate as ``LedgerAccessError`` so callers can
        tell "unknown video" apart from "ledger unreachable".
        """
        try:
            result = await self.ledger.view(self.function_id("get_video"), [video_id])
        except LedgerAccessError as e:
            if e.details.get("status_code") in (400, 404):
                return None
            raise
        if len(result) < 8:
            logger.warning("Invalid get_video response for %s: %r", video_id, result)
            return None
        (
            creator,
            content_uri,
            thumbnail_uri,
            duration_seconds,
            total_segments,
            commitment_root,
            price_per_segment,
            is_active,
        ) = result[:8]
        return OnChainVideo(
            video_id=video_id,
            creator=creator,
            content_uri=content_uri,
            thumbnail_uri=thumbnail_uri,
            duration_seconds=duration_seconds,
            total_segments=total_segments,
            commitment_root=commitment_root,
            price_per_segment=price_per_segment,
            is_active=bool(is_active),
        )

    async def get_session(self, session_id: str) -> Optional[OnChainSession]:
        try:
            result = await self.ledger.view(
                self.function_id("get_session"), [session_id]
            )
        except LedgerAccessError as e:
            if e.details.get("status_code") in (400, 404):
                return None
            raise
        if len(result) < 7:
            logger.warning(
                "Invalid get_session response for %s: %r", session_id, result
            )
            return None
        (
            video_id,
            viewer,
            creator,
            segments_paid,
            prepaid_balance,
            total_paid,
            is_active,
        ) = result[:7]
        return OnChainSession(
            session_id=session_id,
            video_id=video_id,
            viewer=viewer,
            creator=creator,
            segments_paid=segments_paid,
            prepaid_balance=prepaid_balance,
            total_paid=total_paid,
            is_active=bool(is_active),
        )

    async def get_creator(self, address: str) -> Optional[OnChainCreator]:
        """Earnings counters of a creator, or None if never registered."""
        try:
            result = await self.ledger.view(self.function_id("get_creator"), [address])
        except LedgerAccessError as e:
            if e.details.get("status_code") in (400, 404):
                return None
            raise
        if len(result) < 3:
            logger.warning("Invalid get_creator response for %s: %r", address, result)
            return None
        total_earnings, pending_withdrawal, total_videos = result[:3]
        return OnChainCreator(
            address=address,
            total_earnings=total_earnings,
            pending_withdrawal=pending_withdrawal,
            total_videos=total_videos,
        )

    async def get_segment_price(self, video_id: str) -> int:
        result = await self.ledger.view(
            self.function_id("get_segment_price"), [video_id]
        )
        return int(result[0])

    async def is_segment_paid(self, session_id: str, segment_index: int) -> bool:
        result = await self.ledger.view(
            self.function_id("is_segment_paid"), [session_id, segment_index]
        )
        return bool(result[0])
