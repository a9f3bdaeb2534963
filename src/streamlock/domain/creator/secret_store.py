"""Capability interfaces for per-video secrets and commitment trees.

Protocol code only depends on these; backends (in-memory, Redis, ...) are
swappable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ...crypto.commitment import CommitmentTree


class MasterSecretStore(ABC):
    """``video_id -> master secret`` storage."""

    @abstractmethod
    async def get(self, video_id: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def set(self, video_id: str, secret: bytes) -> None:
        pass

    @abstractmethod
    async def delete(self, video_id: str) -> bool:
        pass


class CommitmentTreeStore(ABC):
    """``video_id -> commitment tree`` storage."""

    @abstractmethod
    async def get(self, video_id: str) -> Optional[CommitmentTree]:
        pass

    @abstractmethod
    async def set(self, video_id: str, tree: CommitmentTree) -> None:
        pass

    @abstractmethod
    async def delete(self, video_id: str) -> bool:
        pass
