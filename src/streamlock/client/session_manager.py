"""Client-side bookkeeping for one viewing session (prepaid escrow)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..domain.constants import DEFAULT_TOPUP_THRESHOLD, SESSION_EXPIRY_SECONDS
from ..domain.errors import (
    InsufficientBalanceError,
    InvalidSegmentIndexError,
    SessionExpiredError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViewingSessionManager:
    """Tracks escrow and paid segments for a session.

    ``prepaid_balance`` is the total escrowed (including top-ups);
    ``remaining_segments = prepaid_balance // price_per_segment - len(paid)``.
    The ledger stays authoritative; these numbers drive UI and top-up prompts.
    """

    def __init__(
        self,
        *,
        session_id: str,
        video_id: str,
        viewer: str,
        price_per_segment: int,
        prepaid_balance: int,
        expires_at: Optional[datetime] = None,
        uses_session_key: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if price_per_segment <= 0:
            raise ValueError("price_per_segment must be > 0")
        if prepaid_balance < 0:
            raise ValueError("prepaid_balance must be >= 0")
        self.session_id = session_id
        self.video_id = video_id
        self.viewer = viewer
        self.price_per_segment = price_per_segment
        self.prepaid_balance = prepaid_balance
        self.uses_session_key = uses_session_key
        self._clock = clock
        self.expires_at = expires_at or (
            clock() + timedelta(seconds=SESSION_EXPIRY_SECONDS)
        )
        self.is_active = True
        self._paid: set[int] = set()

    @property
    def paid_segments(self) -> frozenset[int]:
        return frozenset(self._paid)

    @property
    def total_paid(self) -> int:
        return len(self._paid) * self.price_per_segment

    @property
    def remaining_balance(self) -> int:
        return max(0, self.prepaid_balance - self.total_paid)

    @property
    def remaining_segments(self) -> int:
        return max(0, self.prepaid_balance // self.price_per_segment - len(self._paid))

    def is_low_balance(self, threshold: int = DEFAULT_TOPUP_THRESHOLD) -> bool:
        """True when ``remaining_segments`` is at or below ``threshold``."""
        return self.remaining_segments <= threshold

    def is_expired(self) -> bool:
        return self._clock() >= self.expires_at

    def can_afford_segment(self) -> bool:
        return self.remaining_segments > 0

    def is_segment_paid(self, segment_index: int) -> bool:
        return segment_index in self._paid

    def ensure_can_pay(self, segment_index: int) -> None:
        """Raise if paying for ``segment_index`` is not allowed right now."""
        if segment_index < 0:
            raise InvalidSegmentIndexError(segment_index)
        if not self.is_active or self.is_expired():
            raise SessionExpiredError(self.session_id)
        if segment_index in self._paid:
            return
        if not self.can_afford_segment():
            raise InsufficientBalanceError(
                required=self.price_per_segment, available=self.remaining_balance
            )

    def account_payment(self, segment_index: int) -> None:
        """Record a payment that already happened on-chain. Never raises."""
        self._paid.add(segment_index)

    def mark_segment_paid(self, segment_index: int) -> None:
        self.ensure_can_pay(segment_index)
        self.account_payment(segment_index)

    def add_balance(self, amount: int) -> None:
        if amount <= 0:
            raise ValueError("top-up amount must be > 0")
        self.prepaid_balance += amount

    def next_unpaid_segment(self, current: int, total_segments: int) -> Optional[int]:
        for index in range(max(current, 0), total_segments):
            if index not in self._paid:
                return index
        return None

    def end(self) -> None:
        self.is_active = False

    def snapshot(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "video_id": self.video_id,
            "viewer": self.viewer,
            "prepaid_balance": self.prepaid_balance,
            "total_paid": self.total_paid,
            "remaining_balance": self.remaining_balance,
            "remaining_segments": self.remaining_segments,
            "paid_segments": sorted(self._paid),
            "expires_at": self.expires_at.isoformat(),
            "is_active": self.is_active,
        }
