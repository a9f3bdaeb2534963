"""Segment key release routes."""

from __future__ import annotations

import logging
import time
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Gauge, Histogram

from ....application.creator.dtos import KeyResponseDTO, PaymentRequiredDTO
from ....application.creator.use_cases.key_release import KeyReleaseService
from ....domain.constants import PAYMENT_HEADER
from ....domain.errors import (
    IntegrityError,
    ValidationError,
    VideoNotActiveError,
    VideoNotFoundError,
)
from ..dependencies import get_key_release_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["keys"])


KEY_RELEASE_DURATION_BUCKETS = (
    [round(0.5 * i, 1) for i in range(1, 21)]  # 0.5ms..10ms
    + [float(x) for x in range(15, 55, 5)]  # 15..50ms
    + [float(x) for x in range(100, 1100, 100)]  # ledger lookups
    + [float("inf")]
)

key_requests_total = Counter(
    "key_requests_total",
    "Total segment key requests processed",
    ["status"],
)

key_request_duration_milliseconds = Histogram(
    "key_request_duration_milliseconds",
    "Wall time to process a segment key request (ms)",
    ["status"],
    buckets=KEY_RELEASE_DURATION_BUCKETS,
)

key_requests_inprogress = Gauge(
    "key_requests_inprogress",
    "Number of segment key requests currently being processed",
    multiprocess_mode="livesum",
)


def _observe(label: str, start_time: float) -> None:
    key_requests_total.labels(status=label).inc()
    elapsed = (time.perf_counter() - start_time) * 1000
    key_request_duration_milliseconds.labels(status=label).observe(elapsed)


@router.get(
    "/{video_id}/key/{segment_index}",
    response_model=KeyResponseDTO,
    responses={
        status.HTTP_402_PAYMENT_REQUIRED: {"model": PaymentRequiredDTO},
    },
)
async def get_segment_key(
    video_id: str = Path(..., description="Video identifier"),
    segment_index: int = Path(..., description="Zero-based segment index"),
    session_id: Optional[str] = Query(default=None, description="Viewing session"),
    x_payment: Optional[str] = Header(default=None, alias=PAYMENT_HEADER),
    key_service: KeyReleaseService = Depends(get_key_release_service),
) -> Union[KeyResponseDTO, JSONResponse]:
    """Release the key for a paid segment, or answer 402 with payment terms."""
    start_time = time.perf_counter()
    key_requests_inprogress.inc()
    try:
        outcome = await key_service.handle_key_request(
            video_id, segment_index, x_payment, session_id=session_id
        )
        if isinstance(outcome, PaymentRequiredDTO):
            _observe(
                "verification_failed" if outcome.error else "payment_required",
                start_time,
            )
            return JSONResponse(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                content=outcome.model_dump(by_alias=True, exclude_none=True),
            )
        _observe("success", start_time)
        return outcome
    except VideoNotFoundError as e:
        _observe("client_error", start_time)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except VideoNotActiveError as e:
        _observe("client_error", start_time)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValidationError as e:
        _observe("client_error", start_time)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IntegrityError as e:
        _observe("server_error", start_time)
        logger.error("Refusing to release %s/%d: %s", video_id, segment_index, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Key material failed its integrity check",
        )
    except Exception as e:
        _observe("server_error", start_time)
        logger.exception("Key release failed for %s/%d", video_id, segment_index)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to release key: {str(e)}",
        )
    finally:
        key_requests_inprogress.dec()
