"""Unit tests for per-segment key and IV derivation."""

import pytest

from streamlock.crypto.keys import (
    derive_all_segment_ivs,
    derive_all_segment_keys,
    derive_segment_iv,
    derive_segment_key,
    derive_segment_key_pair,
    generate_master_secret,
)
from streamlock.domain.errors import InvalidSegmentIndexError, ValidationError

MASTER = bytes(range(32))


class TestDeriveSegmentKey:
    """Test derive_segment_key."""

    def test_deterministic(self) -> None:
        """Same inputs always give the same key."""
        assert derive_segment_key(MASTER, "video-1", 3) == derive_segment_key(
            MASTER, "video-1", 3
        )

    def test_key_is_16_bytes(self) -> None:
        assert len(derive_segment_key(MASTER, "video-1", 0)) == 16

    def test_distinct_across_indices(self) -> None:
        keys = {derive_segment_key(MASTER, "video-1", i) for i in range(64)}
        assert len(keys) == 64

    def test_distinct_across_videos(self) -> None:
        """Different video ids with the same secret never share a key."""
        assert derive_segment_key(MASTER, "video-1", 0) != derive_segment_key(
            MASTER, "video-2", 0
        )

    def test_distinct_across_secrets(self) -> None:
        other = bytes(reversed(MASTER))
        assert derive_segment_key(MASTER, "video-1", 0) != derive_segment_key(
            other, "video-1", 0
        )

    def test_key_and_iv_differ(self) -> None:
        """Key and IV for the same segment come from separate derivations."""
        pair = derive_segment_key_pair(MASTER, "video-1", 5)
        assert pair.key != pair.iv
        assert pair.key == derive_segment_key(MASTER, "video-1", 5)
        assert pair.iv == derive_segment_iv(MASTER, "video-1", 5)

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_rejects_wrong_secret_length(self, length: int) -> None:
        with pytest.raises(ValidationError, match="32 bytes"):
            derive_segment_key(b"\x01" * length, "video-1", 0)

    def test_rejects_negative_index(self) -> None:
        with pytest.raises(InvalidSegmentIndexError):
            derive_segment_key(MASTER, "video-1", -1)

    def test_rejects_negative_index_for_iv(self) -> None:
        with pytest.raises(InvalidSegmentIndexError):
            derive_segment_iv(MASTER, "video-1", -1)


class TestDeriveAll:
    """Test bulk derivation helpers."""

    def test_keys_in_index_order(self) -> None:
        keys = derive_all_segment_keys(MASTER, "video-1", 4)
        assert keys == [derive_segment_key(MASTER, "video-1", i) for i in range(4)]

    def test_ivs_in_index_order(self) -> None:
        ivs = derive_all_segment_ivs(MASTER, "video-1", 3)
        assert ivs == [derive_segment_iv(MASTER, "video-1", i) for i in range(3)]

    @pytest.mark.parametrize("total", [0, -1])
    def test_rejects_non_positive_total(self, total: int) -> None:
        with pytest.raises(ValidationError):
            derive_all_segment_keys(MASTER, "video-1", total)


class TestGenerateMasterSecret:
    def test_length_and_randomness(self) -> None:
        a = generate_master_secret()
        b = generate_master_secret()
        assert len(a) == 32
        assert a != b
