"""HLS packaging of encrypted segments.

Segment IVs in the playlist and the IVs used for encryption come from the same
``derive_segment_iv(master_secret, video_id, index)`` call, so they cannot
drift apart.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...crypto.cipher import encrypt_segment
from ...crypto.keys import derive_segment_iv, derive_segment_key
from ...domain.constants import DEFAULT_SEGMENT_DURATION
from ...domain.errors import ValidationError

DEFAULT_QUALITY = "720p"


def segment_filename(index: int) -> str:
    return f"segment_{index:03d}.ts"


def key_uri(key_server_base_url: str, video_id: str, index: int) -> str:
    return f"{key_server_base_url.rstrip('/')}/videos/{video_id}/key/{index}"


@dataclass
class HLSPackage:
    master_playlist: str
    media_playlists: dict[str, str]
    segments: dict[str, bytes] = field(default_factory=dict)


def generate_master_playlist(
    quality: str = DEFAULT_QUALITY,
    bandwidth: int = 2_500_000,
    resolution: str = "1280x720",
) -> str:
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:4",
        "",
        f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},RESOLUTION={resolution}",
        f"{quality}/playlist.m3u8",
    ]
    return "\n".join(lines) + "\n"


def generate_media_playlist(
    video_id: str,
    ivs: Sequence[bytes],
    key_server_base_url: str,
    durations: Optional[Sequence[float]] = None,
) -> str:
    """Media playlist with one ``#EXT-X-KEY`` per segment."""
    if durations is None:
        durations = [DEFAULT_SEGMENT_DURATION] * len(ivs)
    if len(durations) != len(ivs):
        raise ValidationError("durations and ivs must have the same length")
    if not ivs:
        raise ValidationError("Cannot build a playlist with zero segments")

    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:4",
        f"#EXT-X-TARGETDURATION:{math.ceil(max(durations))}",
        "#EXT-X-MEDIA-SEQUENCE:0",
        "#EXT-X-PLAYLIST-TYPE:VOD",
    ]
    for i, (iv, duration) in enumerate(zip(ivs, durations)):
        lines.append("")
        uri = key_uri(key_server_base_url, video_id, i)
        lines.append(f'#EXT-X-KEY:METHOD=AES-128,URI="{uri}",IV=0x{iv.hex()}')
        lines.append(f"#EXTINF:{duration:.3f},")
        lines.append(segment_filename(i))
    lines.append("")
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def playlist_for_video(
    master_secret: bytes,
    video_id: str,
    total_segments: int,
    key_server_base_url: str,
    segment_duration: float = DEFAULT_SEGMENT_DURATION,
) -> str:
    """Media playlist for an already-registered video (no segment bytes needed)."""
    ivs = [derive_segment_iv(master_secret, video_id, i) for i in range(total_segments)]
    return generate_media_playlist(
        video_id, ivs, key_server_base_url, [segment_duration] * total_segments
    )


def package_segments(
    master_secret: bytes,
    video_id: str,
    segments: Sequence[bytes],
    key_server_base_url: str,
    durations: Optional[Sequence[float]] = None,
    quality: str = DEFAULT_QUALITY,
) -> HLSPackage:
    """Encrypt raw segments and build the playlists that reference them."""
    ivs: list[bytes] = []
    encrypted: dict[str, bytes] = {}
    for i, plaintext in enumerate(segments):
        key = derive_segment_key(master_secret, video_id, i)
        iv = derive_segment_iv(master_secret, video_id, i)
        ivs.append(iv)
        encrypted[f"{quality}/{segment_filename(i)}"] = encrypt_segment(
            plaintext, key, iv
        )

    media_playlist = generate_media_playlist(
        video_id, ivs, key_server_base_url, durations
    )
    return HLSPackage(
        master_playlist=generate_master_playlist(quality),
        media_playlists={quality: media_playlist},
        segments=encrypted,
    )
