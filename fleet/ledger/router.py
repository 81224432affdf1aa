# fleet/ledger/router.py

import math
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fleet.core.db import get_db
from fleet.ledger.exceptions import LedgerError
from fleet.ledger.models import EntryType, LedgerCategory
from fleet.ledger.schemas import PaginatedLedgerEntryResponse
from fleet.ledger.services import LedgerService
from fleet.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ledger", tags=["Ledger"])


def get_ledger_service(db: Session = Depends(get_db)) -> LedgerService:
    """Provides an instance of LedgerService with the current DB session."""
    return LedgerService(db)


@router.get(
    "/customers/{customer_id}/entries",
    response_model=PaginatedLedgerEntryResponse,
    summary="List a Customer's Ledger Entries",
)
def list_customer_entries(
    customer_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    entry_type: Optional[EntryType] = Query(None, description="Charge or Payment"),
    category: Optional[LedgerCategory] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    open_only: bool = Query(False, description="Only charges with an unsettled remainder"),
    include_voided: bool = Query(True),
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    """
    Retrieves a customer's ledger entries in entry order, with optional
    filtering by type, category and entry date range.
    """
    try:
        items, total_items = ledger_service.list_customer_entries(
            customer_id,
            entry_type=entry_type,
            category=category,
            start_date=start_date,
            end_date=end_date,
            open_only=open_only,
            include_voided=include_voided,
            page=page,
            per_page=per_page,
        )
        total_pages = math.ceil(total_items / per_page) if total_items > 0 else 0
        return PaginatedLedgerEntryResponse(
            items=items,
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
        )
    except LedgerError as e:
        logger.warning("Business logic error in list_customer_entries: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Error listing ledger entries: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An error occurred while retrieving ledger entries.",
        ) from e
