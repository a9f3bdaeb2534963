"""Video domain repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .entities import Video


class VideoRepository(ABC):
    """Abstract repository interface for Video entities."""

    @abstractmethod
    async def create(self, video: Video) -> Video:
        """Persist a newly registered video. Raises ValueError if it exists."""
        pass

    @abstractmethod
    async def get_by_id(self, video_id: str) -> Optional[Video]:
        pass

    @abstractmethod
    async def get_all(self, skip: int = 0, limit: int = 100) -> List[Video]:
        pass

    @abstractmethod
    async def get_by_creator(self, creator_address: str) -> List[Video]:
        pass

    @abstractmethod
    async def update(self, video: Video) -> Video:
        """Persist mutable fields (price, activity)."""
        pass

    @abstractmethod
    async def delete(self, video_id: str) -> bool:
        pass
