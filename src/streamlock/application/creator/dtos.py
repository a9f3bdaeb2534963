"""DTOs for the key-release server and the creator video endpoints."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class MerkleProofDTO(BaseModel):
    """Inclusion proof on the wire. Hashes are lowercase hex."""

    leaf: str
    siblings: list[str]
    root: str
    index: int = Field(..., ge=0)


class KeyResponseDTO(BaseModel):
    """200 body: released key material for one segment."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., description="Base64 16-byte AES key")
    iv: str = Field(..., description="Base64 16-byte CBC IV")
    proof: MerkleProofDTO
    segment_index: int = Field(..., ge=0, alias="segmentIndex")


class PaymentExtraDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(..., alias="videoId")
    segment_index: int = Field(..., alias="segmentIndex")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    contract_address: str = Field(..., alias="contractAddress")
    function: str


class PaymentOptionDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scheme: str = "exact"
    network: str
    max_amount_required: str = Field(..., alias="maxAmountRequired")
    resource: str
    pay_to: str = Field(..., alias="payTo")
    description: Optional[str] = None
    mime_type: str = Field(default="application/json", alias="mimeType")
    extra: PaymentExtraDTO


class PaymentRequiredDTO(BaseModel):
    """402 body describing how to pay for a segment."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: int = Field(..., alias="protocolVersion")
    x402_version: int = Field(..., alias="x402Version")
    error: Optional[str] = None
    accepts: list[PaymentOptionDTO]


class PaymentClaimDTO(BaseModel):
    """Parsed ``X-Payment`` header."""

    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="txHash")
    network: str

    @field_validator("tx_hash")
    @classmethod
    def validate_tx_hash(cls, v: str) -> str:
        if not _TX_HASH_RE.match(v):
            raise ValueError("txHash must be 0x followed by 64 hex digits")
        return v.lower()

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        if not v:
            raise ValueError("network cannot be empty")
        return v


class RegisterVideoDTO(BaseModel):
    """Creator request to register and commit a new video."""

    video_id: str = Field(..., min_length=1, max_length=128)
    total_segments: int = Field(..., gt=0, le=100_000)
    price_per_segment: int = Field(..., gt=0)
    segment_duration: float = Field(default=5.0, gt=0)
    content_uri: str = ""
    thumbnail_uri: str = ""
    duration_seconds: int = Field(default=0, ge=0)


class UpdatePriceDTO(BaseModel):
    price_per_segment: int = Field(..., gt=0)


class VideoResponseDTO(BaseModel):
    video_id: str
    creator_address: str
    on_chain_video_id: Optional[str]
    total_segments: int
    price_per_segment: int
    commitment_root: str
    segment_duration: float
    content_uri: str
    thumbnail_uri: str
    duration_seconds: int
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]


class RegisteredVideoDTO(BaseModel):
    """Registration result: video plus the packaging artifacts."""

    video: VideoResponseDTO
    playlist: str
    tx_hash: Optional[str] = None


class CreatorEarningsDTO(BaseModel):
    creator_address: str
    is_registered: bool
    total_earnings: int = 0
    pending_withdrawal: int = 0
    total_videos: int = 0


class WithdrawalDTO(BaseModel):
    creator_address: str
    amount: int
    tx_hash: str
