# fleet/rentals/schemas.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet.ledger.schemas import LedgerEntryResponse
from fleet.rentals.models import RentalStatus


class RentalCreateRequest(BaseModel):
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: Optional[date] = Field(None, description="Exclusive; leave empty for open-ended rentals")
    monthly_amount: Decimal = Field(..., gt=0)


class RentalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: Optional[date] = None
    monthly_amount: Decimal
    status: RentalStatus


class RentalChargeRequest(BaseModel):
    """
    Either a single due_date (optionally with an amount override), or
    neither to generate every charge due up to today.
    """
    due_date: Optional[date] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    through: Optional[date] = None


class RentalChargesResponse(BaseModel):
    rental_id: int
    charges: List[LedgerEntryResponse]


class RentalCloseRequest(BaseModel):
    end_date: Optional[date] = None
