# fleet/fines/schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet.fines.models import FineLiability, FineStatus, FineType
from fleet.fines.services import FineAction


class FineCreateRequest(BaseModel):
    """Request schema for logging a new fine against a vehicle."""
    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "vehicle_id": 3,
                "customer_id": 12,
                "type": "PCN",
                "reference_no": "PCN-2025-001",
                "amount": 60.00,
                "issue_date": "2025-01-10",
                "due_date": "2025-02-10",
                "liability": "Customer",
            }
        ]
    })

    vehicle_id: int
    customer_id: Optional[int] = None
    type: FineType = FineType.PCN
    reference_no: Optional[str] = Field(None, max_length=100)
    amount: Decimal = Field(..., gt=0)
    issue_date: date
    due_date: date
    liability: FineLiability = FineLiability.CUSTOMER
    notes: Optional[str] = Field(None, max_length=2000)


class FineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_id: int
    customer_id: Optional[int] = None
    type: FineType
    reference_no: Optional[str] = None
    amount: Decimal
    issue_date: date
    due_date: date
    liability: FineLiability
    status: FineStatus
    charged_at: Optional[datetime] = None
    appealed_at: Optional[datetime] = None
    waived_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class FineActionRequest(BaseModel):
    action: FineAction = Field(..., description="charge | waive | appeal | submit_appeal | appeal_successful | appeal_rejected")


class FineActionResponse(BaseModel):
    """Outcome of a fine action. success=False carries the error instead of an HTTP failure."""
    model_config = ConfigDict(from_attributes=True)

    success: bool
    fine_id: int
    status: Optional[str] = None
    charged_amount: Decimal
    remaining_amount: Decimal
    error: Optional[str] = None
    error_code: Optional[str] = None


class AuthorityPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_date: date
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=255)


class AuthorityPaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    fine_id: int
    amount: Decimal
    payment_date: date
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class PaginatedFineResponse(BaseModel):
    """Paginated response for fines."""

    items: List[FineResponse]
    total_items: int = Field(..., description="Total number of fines matching filters")
    page: int
    per_page: int
    total_pages: int
