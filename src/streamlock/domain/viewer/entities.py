"""Viewer domain entities: delegated session key state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer


class SessionKeyState(BaseModel):
    """Persisted state of an ephemeral signing key.

    ``segment_spend`` and ``gas_spend`` are advisory; the ledger balance of
    ``address`` is the real limit.
    """

    address: str
    private_key_hex: str
    funding_owner: str
    spending_limit: int = Field(..., ge=0)
    funded_amount: int = Field(..., ge=0)
    current_balance: int = Field(..., ge=0)
    segment_spend: int = 0
    gas_spend: int = 0
    segments_paid: int = 0
    session_id: Optional[str] = None
    video_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime

    @field_serializer("created_at", "expires_at")
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()

    @property
    def total_spent(self) -> int:
        return self.segment_spend + self.gas_spend

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at
