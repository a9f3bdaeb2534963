"""Per-segment key and IV derivation (HKDF-SHA256 over a per-video master secret)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..domain.constants import (
    AES_IV_LENGTH,
    AES_KEY_LENGTH,
    HKDF_INFO_IV,
    HKDF_INFO_KEY,
    HKDF_SALT,
    MASTER_SECRET_LENGTH,
)
from ..domain.errors import InvalidSegmentIndexError, ValidationError


@dataclass(frozen=True)
class SegmentKeyMaterial:
    """Key/IV pair for one segment."""

    key: bytes
    iv: bytes


def generate_master_secret() -> bytes:
    """Generate a fresh 256-bit master secret."""
    return os.urandom(MASTER_SECRET_LENGTH)


def _validate_inputs(master_secret: bytes, segment_index: int) -> None:
    if not isinstance(master_secret, (bytes, bytearray)):
        raise ValidationError("Master secret must be bytes")
    if len(master_secret) != MASTER_SECRET_LENGTH:
        raise ValidationError(
            f"Master secret must be {MASTER_SECRET_LENGTH} bytes, "
            f"got {len(master_secret)}",
            details={"length": len(master_secret)},
        )
    if segment_index < 0:
        raise InvalidSegmentIndexError(segment_index)


def _hkdf(master_secret: bytes, info: str, length: int) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=HKDF_SALT,
        info=info.encode("utf-8"),
    )
    return hkdf.derive(bytes(master_secret))


def derive_segment_key(
    master_secret: bytes, video_id: str, segment_index: int
) -> bytes:
    """Derive the 16-byte AES key for ``(video_id, segment_index)``.

    Raises:
        ValidationError: if the master secret is not 32 bytes or the index is negative.
    """
    _validate_inputs(master_secret, segment_index)
    return _hkdf(
        master_secret, f"{HKDF_INFO_KEY}:{video_id}:{segment_index}", AES_KEY_LENGTH
    )


def derive_segment_iv(
    master_secret: bytes, video_id: str, segment_index: int
) -> bytes:
    """Derive the 16-byte CBC IV for ``(video_id, segment_index)``."""
    _validate_inputs(master_secret, segment_index)
    return _hkdf(
        master_secret, f"{HKDF_INFO_IV}:{video_id}:{segment_index}", AES_IV_LENGTH
    )


def derive_segment_key_pair(
    master_secret: bytes, video_id: str, segment_index: int
) -> SegmentKeyMaterial:
    return SegmentKeyMaterial(
        key=derive_segment_key(master_secret, video_id, segment_index),
        iv=derive_segment_iv(master_secret, video_id, segment_index),
    )


def derive_all_segment_keys(
    master_secret: bytes, video_id: str, total_segments: int
) -> list[bytes]:
    """Derive keys for indices ``0..total_segments-1`` (commitment input order)."""
    if total_segments <= 0:
        raise ValidationError("total_segments must be > 0")
    return [
        derive_segment_key(master_secret, video_id, i) for i in range(total_segments)
    ]


def derive_all_segment_ivs(
    master_secret: bytes, video_id: str, total_segments: int
) -> list[bytes]:
    if total_segments <= 0:
        raise ValidationError("total_segments must be > 0")
    return [
        derive_segment_iv(master_secret, video_id, i) for i in range(total_segments)
    ]
