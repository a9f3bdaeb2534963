"""Ledger-facing value types and event parsing.

Values mirror the Aptos fullnode REST representation: u64 amounts arrive as
decimal strings, byte vectors as ``0x`` hex strings.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import (
    EARNINGS_WITHDRAWN_EVENT,
    SEGMENT_PAID_EVENT,
    SESSION_ENDED_EVENT,
    SESSION_STARTED_EVENT,
    VIDEO_REGISTERED_EVENT,
)


class _LedgerModel(BaseModel):
    """Ledger ids may arrive as JSON numbers; keep them as strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True)


def _bytes_field_to_hex(value: Any) -> str:
    """Byte vectors may be rendered as ``0x`` hex or as a list of ints."""
    if isinstance(value, str):
        return value[2:].lower() if value.startswith("0x") else value.lower()
    if isinstance(value, list):
        return bytes(int(b) for b in value).hex()
    raise ValueError(f"Unsupported byte vector encoding: {type(value).__name__}")


class ContractEvent(BaseModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    sequence_number: int = 0

    def is_type(self, event_name: str) -> bool:
        """Match by struct name suffix (``<addr>::protocol::<event_name>``)."""
        return self.type.split("<", 1)[0].endswith(f"::{event_name}")


class LedgerTransaction(BaseModel):
    """A committed (or pending) transaction as reported by the ledger."""

    hash: str
    type: str
    success: bool = False
    vm_status: str = ""
    sender: Optional[str] = None
    gas_used: int = 0
    gas_unit_price: int = 0
    events: list[ContractEvent] = Field(default_factory=list)

    @property
    def is_user_transaction(self) -> bool:
        return self.type == "user_transaction"

    @property
    def is_pending(self) -> bool:
        return self.type == "pending_transaction"

    @property
    def gas_fee(self) -> int:
        return self.gas_used * self.gas_unit_price


class TransactionResult(BaseModel):
    """Outcome of a transaction submitted and confirmed by this process."""

    hash: str
    success: bool
    vm_status: str = ""
    gas_used: int = 0
    gas_fee: int = 0
    events: list[ContractEvent] = Field(default_factory=list)

    def find_event(self, event_name: str) -> Optional[ContractEvent]:
        return next((e for e in self.events if e.is_type(event_name)), None)


class OnChainVideo(_LedgerModel):
    video_id: str
    creator: str
    content_uri: str = ""
    thumbnail_uri: str = ""
    duration_seconds: int = 0
    total_segments: int
    commitment_root: str
    price_per_segment: int
    is_active: bool

    @field_validator("commitment_root", mode="before")
    @classmethod
    def normalize_root(cls, v: Any) -> str:
        return _bytes_field_to_hex(v)


class OnChainSession(_LedgerModel):
    session_id: str
    video_id: str
    viewer: str
    creator: str
    segments_paid: int
    prepaid_balance: int
    total_paid: int
    is_active: bool


class OnChainCreator(_LedgerModel):
    address: str
    total_earnings: int
    pending_withdrawal: int
    total_videos: int


class SegmentPaid(_LedgerModel):
    session_id: str
    video_id: str
    segment_index: int
    amount: int
    timestamp: int = 0


class SessionStarted(_LedgerModel):
    session_id: str
    video_id: str
    viewer: str
    prepaid_amount: int
    timestamp: int = 0


class SessionEnded(_LedgerModel):
    session_id: str
    segments_watched: int
    total_paid: int
    refunded: int
    timestamp: int = 0


class VideoRegistered(_LedgerModel):
    video_id: str
    creator: str
    total_segments: int
    price_per_segment: int
    commitment_root: str
    timestamp: int = 0

    @field_validator("commitment_root", mode="before")
    @classmethod
    def normalize_root(cls, v: Any) -> str:
        return _bytes_field_to_hex(v)


class EarningsWithdrawn(_LedgerModel):
    creator: str
    amount: int
    timestamp: int = 0


def parse_segment_paid_event(event: ContractEvent) -> Optional[SegmentPaid]:
    """Returns None for other event types. Raises on a malformed payload."""
    if not event.is_type(SEGMENT_PAID_EVENT):
        return None
    return SegmentPaid.model_validate(event.data)


def parse_session_started_event(event: ContractEvent) -> Optional[SessionStarted]:
    if not event.is_type(SESSION_STARTED_EVENT):
        return None
    return SessionStarted.model_validate(event.data)


def parse_session_ended_event(event: ContractEvent) -> Optional[SessionEnded]:
    if not event.is_type(SESSION_ENDED_EVENT):
        return None
    return SessionEnded.model_validate(event.data)


def parse_video_registered_event(event: ContractEvent) -> Optional[VideoRegistered]:
    if not event.is_type(VIDEO_REGISTERED_EVENT):
        return None
    return VideoRegistered.model_validate(event.data)


def parse_earnings_withdrawn_event(
    event: ContractEvent,
) -> Optional[EarningsWithdrawn]:
    if not event.is_type(EARNINGS_WITHDRAWN_EVENT):
        return None
    return EarningsWithdrawn.model_validate(event.data)
