"""DTOs for the viewer application layer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class SessionSettlement(BaseModel):
    """Outcome of ending a viewing session on-chain."""

    session_id: str
    segments_watched: int = Field(..., ge=0)
    total_paid: int = Field(..., ge=0)
    refunded: int = Field(..., ge=0)
    tx_hash: str
    returned_to_owner: Optional[int] = Field(
        default=None,
        description="Amount swept from the session key back to its owner, if any",
    )
