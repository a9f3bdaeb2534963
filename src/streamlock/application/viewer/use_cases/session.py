"""Viewer session use cases: open, fund, top up and settle an escrow session."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ....client.payment_client import SessionSegmentPayer
from ....client.session_keys import (
    ESTIMATED_GAS_PER_TX,
    SessionKeyConfig,
    SessionKeyManager,
    calculate_funding_amount,
)
from ....client.session_manager import ViewingSessionManager
from ....domain.constants import (
    DEFAULT_PREPAID_SEGMENTS,
    SESSION_ENDED_EVENT,
    SESSION_EXPIRY_SECONDS,
    SESSION_STARTED_EVENT,
)
from ....domain.errors import (
    InsufficientBalanceError,
    VideoNotActiveError,
    VideoNotFoundError,
)
from ....domain.shared.ledger_client_protocol import (
    LedgerClientProtocol,
    LedgerSigner,
)
from ....domain.shared.ledger_types import (
    OnChainVideo,
    parse_session_ended_event,
    parse_session_started_event,
)
from ....infrastructure.ledger.contract import ProtocolContract
from ..dtos import SessionSettlement

logger = logging.getLogger(__name__)


class ViewerSessionService:
    """Opens and settles sessions for one funding owner.

    Sessions are signed either by the owner directly or by a delegated
    session key funded from the owner's account.
    """

    def __init__(
        self,
        contract: ProtocolContract,
        owner: LedgerSigner,
        session_keys: Optional[SessionKeyManager] = None,
        *,
        per_tx_gas_estimate: int = ESTIMATED_GAS_PER_TX,
        transfer_gas_reserve: int = ESTIMATED_GAS_PER_TX,
        max_duration_seconds: int = SESSION_EXPIRY_SECONDS,
    ):
        self.contract = contract
        self.owner = owner
        self.session_keys = session_keys
        self.per_tx_gas_estimate = per_tx_gas_estimate
        self.transfer_gas_reserve = transfer_gas_reserve
        self.max_duration_seconds = max_duration_seconds
        self._signers: dict[str, LedgerSigner] = {}

    @property
    def ledger(self) -> LedgerClientProtocol:
        return self.contract.ledger

    async def _load_video(self, video_id: str) -> OnChainVideo:
        video = await self.contract.get_video(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        if not video.is_active:
            raise VideoNotActiveError(video_id)
        return video

    def _signer_for(self, session: ViewingSessionManager) -> LedgerSigner:
        signer = self._signers.get(session.session_id)
        if signer is not None:
            return signer
        if session.uses_session_key and self.session_keys is not None:
            account = self.session_keys.account
            if account is not None:
                return account
        return self.owner

    async def start_session(
        self,
        video_id: str,
        prepaid_segments: int = DEFAULT_PREPAID_SEGMENTS,
        *,
        signer: Optional[LedgerSigner] = None,
    ) -> ViewingSessionManager:
        """Escrow ``prepaid_segments`` worth of payment and open a session."""
        if prepaid_segments <= 0:
            raise ValueError("prepaid_segments must be > 0")
        video = await self._load_video(video_id)
        signer = signer or self.owner

        result = await self.contract.start_session(
            signer,
            video_id=video_id,
            prepaid_segments=prepaid_segments,
            max_duration_seconds=self.max_duration_seconds,
        )
        event = result.find_event(SESSION_STARTED_EVENT)
        started = parse_session_started_event(event) if event is not None else None
        if started is None:
            raise RuntimeError(
                f"start_session {result.hash} did not emit {SESSION_STARTED_EVENT}"
            )

        session = ViewingSessionManager(
            session_id=started.session_id,
            video_id=video_id,
            viewer=signer.address,
            price_per_segment=video.price_per_segment,
            prepaid_balance=started.prepaid_amount,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=self.max_duration_seconds),
            uses_session_key=signer is not self.owner,
        )
        self._signers[session.session_id] = signer
        logger.info(
            "Started session %s on video %s with %d octas escrowed",
            session.session_id,
            video_id,
            started.prepaid_amount,
        )
        return session

    async def start_with_session_key(
        self,
        video_id: str,
        config: SessionKeyConfig,
        prepaid_segments: Optional[int] = None,
    ) -> ViewingSessionManager:
        """Fund a fresh session key and open the session with it.

        The key is stored before the funding transfer. On any failure from the
        transfer onwards, whatever reached the key is swept back.
        """
        if self.session_keys is None:
            raise RuntimeError("No session key manager configured")
        if self.session_keys.account is not None:
            raise RuntimeError("Sweep the current session key before funding another")
        video = await self._load_video(video_id)
        segments = (
            prepaid_segments or config.estimated_segments or DEFAULT_PREPAID_SEGMENTS
        )
        funding = calculate_funding_amount(
            config, video.price_per_segment, self.per_tx_gas_estimate
        )

        account = self.session_keys.generate()
        # Persisted before funding so a crash mid-transfer leaves a sweepable key.
        await self.session_keys.initialize(self.owner.address, config, funding)

        try:
            await self.ledger.transfer(self.owner, account.address, funding)
            logger.info(
                "Funded session key %s with %d octas", account.address, funding
            )
            await self.sync_balance()
            escrow = segments * video.price_per_segment
            if not self.session_keys.can_afford(escrow, self.per_tx_gas_estimate):
                state = self.session_keys.state
                raise InsufficientBalanceError(
                    required=escrow + self.per_tx_gas_estimate,
                    available=state.current_balance if state else 0,
                )
            session = await self.start_session(video_id, segments, signer=account)
            await self.session_keys.set_session_info(session.session_id, video_id)
            await self.sync_balance()
            return session
        except Exception:
            await self.return_funds()
            raise

    async def top_up(
        self, session: ViewingSessionManager, additional_segments: int
    ) -> int:
        """Escrow more segments. Returns the amount added."""
        if additional_segments <= 0:
            raise ValueError("additional_segments must be > 0")
        signer = self._signer_for(session)
        await self.contract.top_up_session(
            signer, session.session_id, additional_segments
        )
        amount = additional_segments * session.price_per_segment
        session.add_balance(amount)
        if session.uses_session_key:
            await self.sync_balance()
        logger.info("Topped up session %s by %d", session.session_id, amount)
        return amount

    async def end_session(
        self, session: ViewingSessionManager, *, return_funds: bool = True
    ) -> SessionSettlement:
        """Close the session and collect the refund of unspent escrow."""
        signer = self._signer_for(session)
        try:
            result = await self.contract.end_session(signer, session.session_id)
        except Exception:
            if return_funds and session.uses_session_key:
                await self.return_funds()
            raise
        session.end()
        self._signers.pop(session.session_id, None)

        event = result.find_event(SESSION_ENDED_EVENT)
        ended = parse_session_ended_event(event) if event is not None else None
        if ended is None:
            logger.warning(
                "end_session %s emitted no %s, settling from local bookkeeping",
                result.hash,
                SESSION_ENDED_EVENT,
            )
            segments_watched = len(session.paid_segments)
            total_paid = session.total_paid
            refunded = session.remaining_balance
        else:
            segments_watched = ended.segments_watched
            total_paid = ended.total_paid
            refunded = ended.refunded

        returned = None
        if return_funds and session.uses_session_key:
            returned = await self.return_funds()

        return SessionSettlement(
            session_id=session.session_id,
            segments_watched=segments_watched,
            total_paid=total_paid,
            refunded=refunded,
            tx_hash=result.hash,
            returned_to_owner=returned,
        )

    async def sync_balance(self) -> Optional[int]:
        """Replace the session key's local balance with the ledger balance."""
        if self.session_keys is None or self.session_keys.account is None:
            return None
        if self.session_keys.state is None:
            return None
        balance = await self.ledger.get_balance(self.session_keys.account.address)
        await self.session_keys.set_balance(balance)
        return balance

    async def return_funds(self) -> Optional[int]:
        """Sweep the session key's balance, minus a gas reserve, to the owner.

        Best effort: failures are logged and the key is kept so the sweep can
        be retried. Returns the amount sent, or None if nothing was attempted
        or the sweep failed.
        """
        if self.session_keys is None or self.session_keys.account is None:
            return None
        account = self.session_keys.account
        try:
            balance = await self.ledger.get_balance(account.address)
            amount = balance - self.transfer_gas_reserve
            if amount > 0:
                await self.ledger.transfer(account, self.owner.address, amount)
                logger.info(
                    "Returned %d octas from session key %s to %s",
                    amount,
                    account.address,
                    self.owner.address,
                )
            else:
                amount = 0
            await self.session_keys.destroy()
            return amount
        except Exception as e:
            logger.warning(
                "Could not return funds from session key %s: %s", account.address, e
            )
            return None

    async def recover_session_key(self) -> Optional[int]:
        """Sweep a key left behind by an earlier run of this owner."""
        if self.session_keys is None:
            return None
        if not await self.session_keys.restore(self.owner.address):
            return None
        assert self.session_keys.account is not None
        logger.info("Recovering session key %s", self.session_keys.account.address)
        return await self.return_funds()

    def make_payer(self, session: ViewingSessionManager) -> SessionSegmentPayer:
        """Payer that signs ``pay_for_segment`` with the session's signer."""
        return SessionSegmentPayer(
            self.contract,
            self._signer_for(session),
            session.session_id,
            session.price_per_segment,
            session_keys=self.session_keys if session.uses_session_key else None,
        )
