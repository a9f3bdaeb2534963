"""Unit tests for ViewingSessionManager escrow bookkeeping."""

from datetime import datetime, timedelta, timezone

import pytest

from streamlock.client.session_manager import ViewingSessionManager
from streamlock.domain.errors import (
    InsufficientBalanceError,
    InvalidSegmentIndexError,
    SessionExpiredError,
)

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        return self.now


def _session(prepaid: int = 1000, price: int = 100, **kwargs) -> ViewingSessionManager:
    return ViewingSessionManager(
        session_id="s-1",
        video_id="v-1",
        viewer="0xviewer",
        price_per_segment=price,
        prepaid_balance=prepaid,
        **kwargs,
    )


class TestBalances:
    """Test remaining_segments / remaining_balance arithmetic."""

    def test_example_scenario(self) -> None:
        """1000 escrowed at 100 per segment: 10 left, 9 after paying segment 3."""
        session = _session(1000, 100)
        assert session.remaining_segments == 10

        session.mark_segment_paid(3)

        assert session.remaining_segments == 9
        assert session.paid_segments == frozenset({3})
        assert session.total_paid == 100
        assert session.remaining_balance == 900

    def test_rounds_down_partial_segments(self) -> None:
        session = _session(950, 100)
        assert session.remaining_segments == 9

    def test_top_up_adds_to_escrow(self) -> None:
        session = _session(200, 100)
        session.mark_segment_paid(0)
        session.add_balance(300)
        assert session.prepaid_balance == 500
        assert session.remaining_segments == 4
        assert session.remaining_balance == 400

    @pytest.mark.parametrize("amount", [0, -5])
    def test_top_up_rejects_non_positive(self, amount: int) -> None:
        with pytest.raises(ValueError):
            _session().add_balance(amount)

    def test_low_balance_threshold(self) -> None:
        session = _session(600, 100)
        assert not session.is_low_balance(threshold=5)
        session.mark_segment_paid(0)
        assert session.is_low_balance(threshold=5)

    @pytest.mark.parametrize(
        ("price", "prepaid"), [(0, 100), (-1, 100), (100, -1)]
    )
    def test_rejects_invalid_construction(self, price: int, prepaid: int) -> None:
        with pytest.raises(ValueError):
            _session(prepaid, price)


class TestPaymentRules:
    """Test ensure_can_pay / mark_segment_paid."""

    def test_insufficient_balance(self) -> None:
        session = _session(200, 100)
        session.mark_segment_paid(0)
        session.mark_segment_paid(1)
        with pytest.raises(InsufficientBalanceError) as exc:
            session.mark_segment_paid(2)
        assert exc.value.details["required"] == 100
        assert exc.value.details["available"] == 0

    def test_repaying_same_segment_is_idempotent(self) -> None:
        session = _session(100, 100)
        session.mark_segment_paid(0)
        session.mark_segment_paid(0)
        assert session.paid_segments == frozenset({0})
        assert session.total_paid == 100

    def test_negative_index(self) -> None:
        with pytest.raises(InvalidSegmentIndexError):
            _session().mark_segment_paid(-1)

    def test_expired_session_cannot_pay(self) -> None:
        clock = _Clock()
        session = _session(
            expires_at=NOW + timedelta(minutes=10), clock=clock
        )
        clock.now = NOW + timedelta(minutes=10)
        assert session.is_expired()
        with pytest.raises(SessionExpiredError):
            session.mark_segment_paid(0)

    def test_ended_session_cannot_pay(self) -> None:
        session = _session()
        session.end()
        with pytest.raises(SessionExpiredError):
            session.ensure_can_pay(0)

    def test_account_payment_never_raises(self) -> None:
        """Payments already made on-chain are recorded even after the session ended."""
        session = _session(100, 100)
        session.end()
        session.account_payment(0)
        session.account_payment(1)
        assert session.paid_segments == frozenset({0, 1})
        assert session.remaining_segments == 0
        assert session.remaining_balance == 0


class TestNavigation:
    def test_next_unpaid_segment(self) -> None:
        session = _session()
        for index in (0, 1, 3):
            session.mark_segment_paid(index)
        assert session.next_unpaid_segment(0, 5) == 2
        assert session.next_unpaid_segment(3, 5) == 4
        assert session.next_unpaid_segment(5, 5) is None

    def test_snapshot(self) -> None:
        session = _session(1000, 100)
        session.mark_segment_paid(2)
        snap = session.snapshot()
        assert snap["remaining_segments"] == 9
        assert snap["paid_segments"] == [2]
        assert snap["is_active"] is True
