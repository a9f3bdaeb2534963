"""Ephemeral delegated signing keys for autonomous segment payments.

Lifecycle: generate -> fund (one owner-signed transfer) -> sign payments ->
destroy, sweeping the residual balance back to the funding owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..domain.constants import SESSION_EXPIRY_SECONDS
from ..domain.viewer.entities import SessionKeyState
from ..domain.viewer.session_key_repository import SessionKeyRepository
from ..infrastructure.ledger.account import Ed25519Account

logger = logging.getLogger(__name__)

DEFAULT_GAS_BUFFER_PERCENT = 20

# 0.001 APT in octas
ESTIMATED_GAS_PER_TX = 100_000

# start_session + end_session + the fund return transfer
SESSION_OVERHEAD_TX_COUNT = 3

DEFAULT_ESTIMATED_SEGMENTS = 10


@dataclass(frozen=True)
class SessionKeyConfig:
    """How much to delegate to a session key.

    ``spending_limit`` of 0 means "price the estimated segments".
    """

    spending_limit: int
    estimated_segments: int = DEFAULT_ESTIMATED_SEGMENTS
    gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT
    expires_in_seconds: int = SESSION_EXPIRY_SECONDS

    def __post_init__(self) -> None:
        if self.spending_limit < 0:
            raise ValueError("spending_limit must be >= 0")
        if self.estimated_segments < 0:
            raise ValueError("estimated_segments must be >= 0")
        if self.gas_buffer_percent < 0:
            raise ValueError("gas_buffer_percent must be >= 0")


def calculate_funding_amount(
    config: SessionKeyConfig,
    segment_price: int,
    per_tx_gas_estimate: int = ESTIMATED_GAS_PER_TX,
) -> int:
    """Amount to transfer to a new session key.

    base + base * gas_buffer_percent / 100
         + (estimated_segments + 3) * per_tx_gas_estimate

    where base is the spending limit, or ``segment_price * estimated_segments``
    when no limit was given.
    """
    base = config.spending_limit
    if base == 0 and config.estimated_segments:
        base = segment_price * config.estimated_segments
    gas_buffer = base * config.gas_buffer_percent // 100
    tx_count = config.estimated_segments + SESSION_OVERHEAD_TX_COUNT
    return base + gas_buffer + tx_count * per_tx_gas_estimate


class SessionKeyManager:
    """Holds the live session key and its advisory spend counters."""

    def __init__(self, repository: Optional[SessionKeyRepository] = None):
        self._repository = repository
        self._account: Optional[Ed25519Account] = None
        self._state: Optional[SessionKeyState] = None

    @property
    def account(self) -> Optional[Ed25519Account]:
        return self._account

    @property
    def state(self) -> Optional[SessionKeyState]:
        return self._state

    @property
    def is_active(self) -> bool:
        return (
            self._account is not None
            and self._state is not None
            and not self._state.is_expired()
        )

    def generate(self) -> Ed25519Account:
        self._account = Ed25519Account.generate()
        self._state = None
        return self._account

    async def initialize(
        self,
        funding_owner: str,
        config: SessionKeyConfig,
        funded_amount: int,
    ) -> SessionKeyState:
        """Record and persist a key about to be funded with ``funded_amount``."""
        if self._account is None:
            raise RuntimeError("Generate a session key before initializing it")
        self._state = SessionKeyState(
            address=self._account.address,
            private_key_hex=self._account.private_key_hex,
            funding_owner=funding_owner,
            spending_limit=config.spending_limit,
            funded_amount=funded_amount,
            current_balance=funded_amount,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=config.expires_in_seconds),
        )
        await self._persist()
        return self._state

    def _require_state(self) -> SessionKeyState:
        if self._state is None:
            raise RuntimeError("No active session key")
        return self._state

    async def _persist(self) -> None:
        if self._repository is not None and self._state is not None:
            await self._repository.save(self._state)

    async def set_balance(self, balance: int) -> None:
        """Replace the local balance with the on-chain value."""
        state = self._require_state()
        state.current_balance = max(0, balance)
        await self._persist()

    async def set_session_info(self, session_id: str, video_id: str) -> None:
        state = self._require_state()
        state.session_id = session_id
        state.video_id = video_id
        await self._persist()

    async def record_payment(self, segment_amount: int, gas_used: int) -> None:
        state = self._require_state()
        state.segment_spend += segment_amount
        state.gas_spend += gas_used
        state.segments_paid += 1
        spent = segment_amount + gas_used
        state.current_balance = max(0, state.current_balance - spent)
        await self._persist()

    def can_afford(
        self, segment_amount: int, estimated_gas: int = ESTIMATED_GAS_PER_TX
    ) -> bool:
        if self._state is None:
            return False
        return self._state.current_balance >= segment_amount + estimated_gas

    def affordable_segments(
        self, segment_price: int, per_tx_gas_estimate: int = ESTIMATED_GAS_PER_TX
    ) -> int:
        if self._state is None or segment_price <= 0:
            return 0
        return self._state.current_balance // (segment_price + per_tx_gas_estimate)

    async def restore(self, funding_owner: str) -> bool:
        """Reload a persisted, unexpired key for ``funding_owner``."""
        if self._repository is None:
            return False
        state = await self._repository.get(funding_owner)
        if state is None:
            return False
        account = Ed25519Account.from_private_key_hex(state.private_key_hex)
        if account.address != state.address:
            logger.warning("Discarding stored session key with mismatched address")
            await self._repository.delete(funding_owner)
            return False
        self._account = account
        self._state = state
        return True

    async def destroy(self) -> None:
        """Forget the key locally and in storage. Sweep funds first."""
        if self._repository is not None and self._state is not None:
            await self._repository.delete(self._state.funding_owner)
        self._account = None
        self._state = None
