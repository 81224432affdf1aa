# fleet/fines/router.py

import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fleet.core.clock import Clock, get_clock
from fleet.core.db import get_db
from fleet.fines.exceptions import FineError, FineNotFoundError
from fleet.fines.models import FineStatus
from fleet.fines.schemas import (
    AuthorityPaymentRequest,
    AuthorityPaymentResponse,
    FineActionRequest,
    FineActionResponse,
    FineCreateRequest,
    FineResponse,
    PaginatedFineResponse,
)
from fleet.fines.services import FineService
from fleet.ledger.exceptions import LedgerError
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/fines", tags=["Fines"])


def get_fine_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> FineService:
    """Provides an instance of FineService with the current DB session."""
    return FineService(db, clock=clock)


@router.post("", response_model=FineResponse, status_code=status.HTTP_201_CREATED, summary="Log a Fine")
def create_fine(
    request: FineCreateRequest,
    fine_service: FineService = Depends(get_fine_service),
):
    try:
        return fine_service.create_fine(**request.model_dump())
    except (FineError, LedgerError) as e:
        logger.warning("Business logic error in create_fine: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error creating fine: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while creating the fine.") from e


@router.get("", response_model=PaginatedFineResponse, summary="List Fines")
def list_fines(
    customer_id: Optional[int] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    fine_status: Optional[FineStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    fine_service: FineService = Depends(get_fine_service),
):
    """Lists fines, newest first, filtered by customer, vehicle or status."""
    try:
        items, total_items = fine_service.list_fines(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            status=fine_status,
            page=page,
            per_page=per_page,
        )
        return PaginatedFineResponse(
            items=items,
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_items / per_page) if total_items > 0 else 0,
        )
    except Exception as e:
        logger.error("Error listing fines: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while retrieving fines.") from e


@router.get("/{fine_id}", response_model=FineResponse, summary="Get Fine Details")
def get_fine(
    fine_id: int,
    fine_service: FineService = Depends(get_fine_service),
):
    try:
        return fine_service.get_fine(fine_id)
    except FineNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error getting fine %s: %s", fine_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while retrieving the fine.") from e


@router.post("/{fine_id}/actions", response_model=FineActionResponse, summary="Charge, Waive or Appeal a Fine")
def apply_fine_action(
    fine_id: int,
    request: FineActionRequest,
    fine_service: FineService = Depends(get_fine_service),
):
    """
    Runs a lifecycle action on a fine. Rejected actions come back with
    success=false and the reason; only an unknown fine is a 404.
    """
    result = fine_service.apply_fine_action(fine_id, request.action)
    if not result.success and result.error_code == "NotFound":
        raise HTTPException(status_code=404, detail=result.error)
    return result


@router.post(
    "/{fine_id}/authority-payments",
    response_model=AuthorityPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a Payment to the Issuing Authority",
)
def record_authority_payment(
    fine_id: int,
    request: AuthorityPaymentRequest,
    fine_service: FineService = Depends(get_fine_service),
):
    try:
        return fine_service.record_authority_payment(fine_id, **request.model_dump())
    except FineNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (FineError, LedgerError) as e:
        logger.warning("Business logic error in record_authority_payment: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error recording authority payment for fine %s: %s", fine_id, e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An error occurred while recording the authority payment.",
        ) from e
