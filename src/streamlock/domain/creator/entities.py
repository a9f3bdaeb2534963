"""Creator domain entities: Video."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


class Video(BaseModel):
    """A registered video whose segment keys are committed on-chain.

    ``commitment_root`` and ``total_segments`` never change after registration.
    The master secret lives in the secret store under ``video_id``.
    """

    video_id: str = Field(..., min_length=1, max_length=128)
    creator_address: str
    on_chain_video_id: Optional[str] = None
    total_segments: int = Field(..., gt=0)
    price_per_segment: int = Field(..., gt=0)
    commitment_root: str = Field(..., description="Hex-encoded Merkle root")
    segment_duration: float = Field(default=5.0, gt=0)
    content_uri: str = ""
    thumbnail_uri: str = ""
    duration_seconds: int = Field(default=0, ge=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @field_validator("commitment_root")
    @classmethod
    def validate_commitment_root(cls, v: str) -> str:
        raw = v[2:] if v.startswith("0x") else v
        try:
            root = bytes.fromhex(raw)
        except ValueError as e:
            raise ValueError(f"commitment_root must be hex: {e}") from e
        if len(root) != 32:
            raise ValueError("commitment_root must be 32 bytes")
        return raw.lower()

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @property
    def commitment_root_bytes(self) -> bytes:
        return bytes.fromhex(self.commitment_root)

    @property
    def ledger_video_id(self) -> str:
        """Identifier used in contract calls and events."""
        return self.on_chain_video_id or self.video_id

    def is_valid_segment(self, segment_index: int) -> bool:
        return 0 <= segment_index < self.total_segments

    def deactivate(self) -> None:
        """Stop releasing keys for this video."""
        self.is_active = False
        self.updated_at = datetime.now(timezone.utc)

    def activate(self) -> None:
        self.is_active = True
        self.updated_at = datetime.now(timezone.utc)

    def update_price(self, creator_address: str, new_price: int) -> None:
        """Change the per-segment price. Only the owning creator may do this."""
        if creator_address != self.creator_address:
            raise PermissionError("Only the owning creator can update the price")
        if new_price <= 0:
            raise ValueError("price_per_segment must be > 0")
        self.price_per_segment = new_price
        self.updated_at = datetime.now(timezone.utc)
