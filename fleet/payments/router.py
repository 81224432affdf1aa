# fleet/payments/router.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fleet.allocation.services import AllocationService
from fleet.core.clock import Clock, get_clock
from fleet.core.db import get_db
from fleet.ledger.exceptions import InsufficientRemainingError, InvalidAmountError, LedgerError
from fleet.payments.exceptions import CustomerNotFoundError, PaymentError, PaymentNotFoundError
from fleet.payments.schemas import (
    ApplyPaymentResponse,
    PaymentApplicationResponse,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentResponse,
)
from fleet.payments.services import PaymentService
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Provides an instance of PaymentService with the current DB session."""
    return PaymentService(db)


def get_allocation_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> AllocationService:
    """Provides an instance of AllocationService with the current DB session."""
    return AllocationService(db, clock=clock)


def _run_allocation(allocation_service: AllocationService, payment_id: int) -> ApplyPaymentResponse:
    """Applies a payment, turning engine failures into an ok=False response."""
    try:
        result = allocation_service.apply_payment(payment_id)
        return ApplyPaymentResponse(
            ok=True,
            payment_id=payment_id,
            applied_total=result.applied_total,
            remaining_credit=result.remaining_credit,
        )
    except PaymentNotFoundError:
        raise
    except (InsufficientRemainingError, InvalidAmountError) as e:
        # Broken invariants, never expected in normal operation
        logger.error("Integrity error applying payment %s: %s", payment_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    except (PaymentError, LedgerError) as e:
        logger.warning("Allocation failed for payment %s: %s", payment_id, e)
        return ApplyPaymentResponse(ok=False, payment_id=payment_id, error=str(e))


@router.post("", response_model=PaymentCreateResponse, status_code=status.HTTP_201_CREATED, summary="Record a Payment")
def create_payment(
    request: PaymentCreateRequest,
    payment_service: PaymentService = Depends(get_payment_service),
    allocation_service: AllocationService = Depends(get_allocation_service),
):
    """Records a customer payment and applies it to their open charges."""
    try:
        payment = payment_service.record_payment(**request.model_dump())
        allocation = _run_allocation(allocation_service, payment.id)
        payment = payment_service.get_payment(payment.id)
        return PaymentCreateResponse(
            payment=PaymentResponse.model_validate(payment),
            allocation=allocation,
        )
    except HTTPException:
        raise
    except CustomerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (PaymentError, LedgerError) as e:
        logger.warning("Business logic error in create_payment: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error recording payment: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while recording the payment.") from e


@router.post("/{payment_id}/apply", response_model=ApplyPaymentResponse, summary="Apply a Payment")
def apply_payment(
    payment_id: int,
    allocation_service: AllocationService = Depends(get_allocation_service),
):
    """Re-runs allocation for a payment. Safe to call repeatedly."""
    try:
        return _run_allocation(allocation_service, payment_id)
    except HTTPException:
        raise
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error applying payment %s: %s", payment_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while applying the payment.") from e


@router.get("/{payment_id}", response_model=PaymentResponse, summary="Get Payment Details")
def get_payment(
    payment_id: int,
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        return payment_service.get_payment(payment_id)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error getting payment %s: %s", payment_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while retrieving the payment.") from e


@router.get(
    "/{payment_id}/applications",
    response_model=List[PaymentApplicationResponse],
    summary="List a Payment's Applications",
)
def list_payment_applications(
    payment_id: int,
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        return payment_service.list_applications(payment_id)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error listing applications for payment %s: %s", payment_id, e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An error occurred while retrieving payment applications.",
        ) from e
