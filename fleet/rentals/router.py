# fleet/rentals/router.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fleet.core.clock import Clock, get_clock
from fleet.core.db import get_db
from fleet.ledger.exceptions import LedgerError
from fleet.ledger.schemas import LedgerEntryResponse
from fleet.payments.exceptions import CustomerNotFoundError
from fleet.rentals.exceptions import RentalError, RentalNotFoundError
from fleet.rentals.schemas import (
    RentalChargeRequest,
    RentalChargesResponse,
    RentalCloseRequest,
    RentalCreateRequest,
    RentalResponse,
)
from fleet.rentals.services import RentalService
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/rentals", tags=["Rentals"])


def get_rental_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> RentalService:
    """Provides an instance of RentalService with the current DB session."""
    return RentalService(db, clock=clock)


@router.post("", response_model=RentalResponse, status_code=status.HTTP_201_CREATED, summary="Create a Rental")
def create_rental(
    request: RentalCreateRequest,
    rental_service: RentalService = Depends(get_rental_service),
):
    try:
        return rental_service.create_rental(**request.model_dump())
    except CustomerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (RentalError, LedgerError) as e:
        logger.warning("Business logic error in create_rental: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error creating rental: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while creating the rental.") from e


@router.post("/{rental_id}/charges", response_model=RentalChargesResponse, summary="Create Rental Charges")
def create_rental_charges(
    rental_id: int,
    request: RentalChargeRequest,
    rental_service: RentalService = Depends(get_rental_service),
):
    """
    Creates the charge for one due date, or every monthly charge due so far.
    Existing charges are returned unchanged.
    """
    try:
        if request.due_date:
            charges = [rental_service.create_rental_charge(rental_id, request.due_date, request.amount)]
        else:
            charges = rental_service.generate_rental_charges(rental_id, through=request.through)
        return RentalChargesResponse(
            rental_id=rental_id,
            charges=[LedgerEntryResponse.model_validate(c) for c in charges],
        )
    except RentalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (RentalError, LedgerError) as e:
        logger.warning("Business logic error in create_rental_charges: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error creating charges for rental %s: %s", rental_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while creating rental charges.") from e


@router.post("/{rental_id}/close", response_model=RentalResponse, summary="Close a Rental")
def close_rental(
    rental_id: int,
    request: RentalCloseRequest,
    rental_service: RentalService = Depends(get_rental_service),
):
    try:
        return rental_service.close_rental(rental_id, request.end_date)
    except RentalNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except RentalError as e:
        logger.warning("Business logic error in close_rental: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error closing rental %s: %s", rental_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while closing the rental.") from e
