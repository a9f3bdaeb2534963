"""Video repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import List, Optional

from ...domain.creator.entities import Video
from ...domain.creator.video_repository import VideoRepository
from ..storage import KeyValueStore


class VideoRepositoryImpl(VideoRepository):
    """Video repository using a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, video: Video) -> Video:
        video_key = f"video:{video.video_id}"
        stored = await self.store.set_if_absent(video_key, video.model_dump_json())
        if not stored:
            raise ValueError(f"Video {video.video_id} already exists")

        created_ts = video.created_at.timestamp()
        await self.store.zadd("videos:all", {video.video_id: created_ts})
        await self.store.zadd(
            f"videos:creator:{video.creator_address}", {video.video_id: created_ts}
        )
        return video

    async def get_by_id(self, video_id: str) -> Optional[Video]:
        data = await self.store.get(f"video:{video_id}")
        if not data:
            return None
        return Video.model_validate_json(data)

    async def _load_many(self, ids: list[str]) -> List[Video]:
        videos: List[Video] = []
        for video_id in ids:
            data = await self.store.get(f"video:{video_id}")
            if data:
                videos.append(Video.model_validate_json(data))
        return videos

    async def get_all(self, skip: int = 0, limit: int = 100) -> List[Video]:
        ids = await self.store.zrevrange("videos:all", skip, skip + limit - 1)
        return await self._load_many(ids)

    async def get_by_creator(self, creator_address: str) -> List[Video]:
        ids = await self.store.zrevrange(f"videos:creator:{creator_address}", 0, -1)
        return await self._load_many(ids)

    async def update(self, video: Video) -> Video:
        video_key = f"video:{video.video_id}"
        existing_raw = await self.store.get(video_key)
        if not existing_raw:
            raise ValueError(f"Video {video.video_id} not found")
        existing = Video.model_validate_json(existing_raw)
        if (
            existing.commitment_root != video.commitment_root
            or existing.total_segments != video.total_segments
        ):
            raise ValueError("commitment_root and total_segments are immutable")
        await self.store.set(video_key, video.model_dump_json())
        return video

    async def delete(self, video_id: str) -> bool:
        video_key = f"video:{video_id}"
        existing_raw = await self.store.get(video_key)
        if not existing_raw:
            return False
        video = Video.model_validate_json(existing_raw)

        await self.store.delete(video_key)
        await self.store.zrem("videos:all", video_id)
        await self.store.zrem(f"videos:creator:{video.creator_address}", video_id)
        return True
