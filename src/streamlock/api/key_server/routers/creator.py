"""Creator earnings API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ....application.creator.dtos import CreatorEarningsDTO, WithdrawalDTO
from ....application.creator.use_cases.earnings import CreatorEarningsService
from ....domain.errors import ContractError, InvalidAddressError, LedgerAccessError
from ....middleware.ed25519 import authenticated_creator
from ..dependencies import get_creator_earnings_service

router = APIRouter(prefix="/creator", tags=["creator"])


@router.get("/{creator_address}/earnings", response_model=CreatorEarningsDTO)
async def get_earnings(
    creator_address: str,
    earnings_service: CreatorEarningsService = Depends(get_creator_earnings_service),
) -> CreatorEarningsDTO:
    try:
        return await earnings_service.get_earnings(creator_address)
    except InvalidAddressError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except LedgerAccessError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )


@router.post("/withdrawal", response_model=WithdrawalDTO)
async def withdraw_earnings(
    creator_address: str = Depends(authenticated_creator),
    earnings_service: CreatorEarningsService = Depends(get_creator_earnings_service),
) -> WithdrawalDTO:
    """Withdraw the pending earnings of the signing creator."""
    try:
        return await earnings_service.withdraw(creator_address)
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ContractError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except LedgerAccessError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        )
