# fleet/customers/router.py

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fleet.core.clock import Clock, get_clock
from fleet.core.db import get_db
from fleet.customers.schemas import (
    CustomerBalanceResponse,
    CustomerCreateRequest,
    CustomerResponse,
    CustomerStatementResponse,
)
from fleet.customers.services import CustomerService
from fleet.payments.exceptions import CustomerNotFoundError
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> CustomerService:
    """Provides an instance of CustomerService with the current DB session."""
    return CustomerService(db, clock=clock)


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED, summary="Create a Customer")
def create_customer(
    request: CustomerCreateRequest,
    customer_service: CustomerService = Depends(get_customer_service),
):
    try:
        return customer_service.create_customer(**request.model_dump())
    except Exception as e:
        logger.error("Error creating customer: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while creating the customer.") from e


@router.get("/{customer_id}/balance", response_model=CustomerBalanceResponse, summary="Customer Balance")
def get_customer_balance(
    customer_id: int,
    customer_service: CustomerService = Depends(get_customer_service),
):
    try:
        return customer_service.get_balance_with_status(customer_id)
    except CustomerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error getting balance for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while retrieving the balance.") from e


@router.get("/{customer_id}/statement", response_model=CustomerStatementResponse, summary="Customer Statement")
def get_customer_statement(
    customer_id: int,
    start_date: Optional[date] = Query(None, alias="from"),
    end_date: Optional[date] = Query(None, alias="to"),
    customer_service: CustomerService = Depends(get_customer_service),
):
    """Ledger entries with a running balance, optionally limited to a date range."""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="'from' must not be after 'to'.")
    try:
        return customer_service.get_statement(customer_id, start_date, end_date)
    except CustomerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error("Error building statement for customer %s: %s", customer_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="An error occurred while building the statement.") from e
