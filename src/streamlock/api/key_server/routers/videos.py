"""Creator video API routes."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ....application.creator.dtos import (
    RegisteredVideoDTO,
    RegisterVideoDTO,
    UpdatePriceDTO,
    VideoResponseDTO,
)
from ....application.creator.use_cases.registration import VideoRegistrationService
from ....domain.errors import ContractError, VideoNotFoundError
from ....middleware.ed25519 import authenticated_creator
from ..dependencies import get_video_registration_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post(
    "/", response_model=RegisteredVideoDTO, status_code=status.HTTP_201_CREATED
)
async def register_video(
    video_data: RegisterVideoDTO,
    creator_address: str = Depends(authenticated_creator),
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> RegisteredVideoDTO:
    """Commit to the segment keys of a new video and publish its root."""
    try:
        return await registration_service.register_video(video_data, creator_address)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ContractError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("/", response_model=List[VideoResponseDTO])
async def list_videos(
    skip: int = 0,
    limit: int = 100,
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> List[VideoResponseDTO]:
    """List registered videos with pagination."""
    return await registration_service.list_videos(skip=skip, limit=limit)


@router.get("/{video_id}", response_model=VideoResponseDTO)
async def get_video(
    video_id: str,
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> VideoResponseDTO:
    try:
        return await registration_service.get_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{video_id}/playlist.m3u8", response_class=Response)
async def get_playlist(
    video_id: str,
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> Response:
    """HLS media playlist with one key URI per segment."""
    try:
        playlist = await registration_service.get_playlist(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return Response(content=playlist, media_type="application/vnd.apple.mpegurl")


@router.patch("/{video_id}/price", response_model=VideoResponseDTO)
async def update_price(
    video_id: str,
    payload: UpdatePriceDTO,
    creator_address: str = Depends(authenticated_creator),
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> VideoResponseDTO:
    try:
        return await registration_service.update_price(
            video_id, payload, creator_address
        )
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{video_id}/deactivation", response_model=VideoResponseDTO)
async def deactivate_video(
    video_id: str,
    creator_address: str = Depends(authenticated_creator),
    registration_service: VideoRegistrationService = Depends(
        get_video_registration_service
    ),
) -> VideoResponseDTO:
    """Stop releasing keys for a video. Already-released keys stay valid."""
    try:
        return await registration_service.deactivate_video(video_id, creator_address)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
