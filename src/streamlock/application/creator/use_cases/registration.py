"""Use cases for registering and managing creator videos."""

from __future__ import annotations

import logging
from typing import List, Optional

from ....crypto.commitment import CommitmentTree
from ....crypto.keys import derive_all_segment_keys, generate_master_secret
from ....domain.creator.entities import Video
from ....domain.creator.secret_store import CommitmentTreeStore, MasterSecretStore
from ....domain.creator.video_repository import VideoRepository
from ....domain.errors import VideoNotFoundError
from ....domain.shared.ledger_client_protocol import LedgerSigner
from ....domain.shared.ledger_types import parse_video_registered_event
from ....infrastructure.ledger.contract import ProtocolContract
from ..dtos import (
    RegisteredVideoDTO,
    RegisterVideoDTO,
    UpdatePriceDTO,
    VideoResponseDTO,
)
from ..packager import playlist_for_video

logger = logging.getLogger(__name__)


class VideoRegistrationService:
    """Creates the per-video secret and commitment, and publishes the root.

    When no contract/signer is configured the video is registered locally
    only (``on_chain_video_id`` stays empty).
    """

    def __init__(
        self,
        video_repository: VideoRepository,
        secret_store: MasterSecretStore,
        tree_store: CommitmentTreeStore,
        *,
        key_server_base_url: str,
        contract: Optional[ProtocolContract] = None,
        creator_signer: Optional[LedgerSigner] = None,
    ):
        self.video_repository = video_repository
        self.secret_store = secret_store
        self.tree_store = tree_store
        self.key_server_base_url = key_server_base_url
        self.contract = contract
        self.creator_signer = creator_signer

    @property
    def publishes_on_chain(self) -> bool:
        return self.contract is not None and self.creator_signer is not None

    def _check_publisher(self, creator_address: str) -> None:
        # On-chain calls are signed with the configured key, so only its
        # owner may drive them.
        if self.publishes_on_chain:
            assert self.creator_signer is not None
            if creator_address != self.creator_signer.address:
                raise PermissionError(
                    "Only the configured creator can publish videos on chain"
                )

    async def register_video(
        self, dto: RegisterVideoDTO, creator_address: Optional[str] = None
    ) -> RegisteredVideoDTO:
        """Register ``dto`` for ``creator_address``.

        The video record is created inactive first, which claims ``video_id``
        atomically. Secret and tree are written only after the claim succeeds,
        and everything is removed again if publishing fails.
        """
        if creator_address is None:
            if self.creator_signer is None:
                raise ValueError("creator_address is required")
            creator_address = self.creator_signer.address
        self._check_publisher(creator_address)

        master_secret = generate_master_secret()
        keys = derive_all_segment_keys(master_secret, dto.video_id, dto.total_segments)
        tree = CommitmentTree.build(keys)

        video = Video(
            video_id=dto.video_id,
            creator_address=creator_address,
            total_segments=dto.total_segments,
            price_per_segment=dto.price_per_segment,
            commitment_root=tree.root_hex,
            segment_duration=dto.segment_duration,
            content_uri=dto.content_uri,
            thumbnail_uri=dto.thumbnail_uri,
            duration_seconds=dto.duration_seconds,
            is_active=False,
        )
        await self.video_repository.create(video)

        tx_hash: Optional[str] = None
        try:
            await self.secret_store.set(video.video_id, master_secret)
            await self.tree_store.set(video.video_id, tree)
            if self.publishes_on_chain:
                tx_hash, video.on_chain_video_id = await self._publish(dto, tree)
        except Exception:
            logger.warning("Registration of %s failed, rolling back", video.video_id)
            await self._discard(video.video_id)
            raise

        video.activate()
        await self.video_repository.update(video)
        logger.info(
            "Registered video %s (%d segments, root %s)",
            video.video_id,
            video.total_segments,
            video.commitment_root,
        )

        playlist = playlist_for_video(
            master_secret,
            video.video_id,
            video.total_segments,
            self.key_server_base_url,
            video.segment_duration,
        )
        return RegisteredVideoDTO(
            video=VideoResponseDTO.model_validate(video.model_dump()),
            playlist=playlist,
            tx_hash=tx_hash,
        )

    async def _publish(
        self, dto: RegisterVideoDTO, tree: CommitmentTree
    ) -> tuple[str, str]:
        assert self.contract is not None and self.creator_signer is not None
        result = await self.contract.register_video(
            self.creator_signer,
            content_uri=dto.content_uri,
            thumbnail_uri=dto.thumbnail_uri,
            duration_seconds=dto.duration_seconds,
            total_segments=dto.total_segments,
            commitment_root=tree.root,
            price_per_segment=dto.price_per_segment,
        )
        for event in result.events:
            registered = parse_video_registered_event(event)
            if registered is not None:
                return result.hash, registered.video_id
        raise RuntimeError(
            f"register_video {result.hash} emitted no VideoRegisteredEvent"
        )

    async def _discard(self, video_id: str) -> None:
        await self.tree_store.delete(video_id)
        await self.secret_store.delete(video_id)
        await self.video_repository.delete(video_id)

    async def _get(self, video_id: str) -> Video:
        video = await self.video_repository.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        return video

    async def get_video(self, video_id: str) -> VideoResponseDTO:
        video = await self._get(video_id)
        return VideoResponseDTO.model_validate(video.model_dump())

    async def list_videos(
        self, skip: int = 0, limit: int = 100
    ) -> List[VideoResponseDTO]:
        videos = await self.video_repository.get_all(skip=skip, limit=limit)
        return [VideoResponseDTO.model_validate(v.model_dump()) for v in videos]

    async def get_playlist(self, video_id: str) -> str:
        video = await self._get(video_id)
        master_secret = await self.secret_store.get(video_id)
        if master_secret is None:
            raise RuntimeError(f"Master secret missing for video {video_id}")
        return playlist_for_video(
            master_secret,
            video.video_id,
            video.total_segments,
            self.key_server_base_url,
            video.segment_duration,
        )

    async def update_price(
        self, video_id: str, dto: UpdatePriceDTO, creator_address: str
    ) -> VideoResponseDTO:
        video = await self._get(video_id)
        video.update_price(creator_address, dto.price_per_segment)
        if self.publishes_on_chain and video.on_chain_video_id:
            assert self.contract is not None and self.creator_signer is not None
            await self.contract.update_video_price(
                self.creator_signer, video.on_chain_video_id, dto.price_per_segment
            )
        await self.video_repository.update(video)
        return VideoResponseDTO.model_validate(video.model_dump())

    async def deactivate_video(
        self, video_id: str, creator_address: str
    ) -> VideoResponseDTO:
        video = await self._get(video_id)
        if creator_address != video.creator_address:
            raise PermissionError("Only the owning creator can deactivate a video")
        if self.publishes_on_chain and video.on_chain_video_id:
            assert self.contract is not None and self.creator_signer is not None
            await self.contract.deactivate_video(
                self.creator_signer, video.on_chain_video_id
            )
        video.deactivate()
        await self.video_repository.update(video)
        return VideoResponseDTO.model_validate(video.model_dump())
