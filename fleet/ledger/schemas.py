# fleet/ledger/schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet.ledger.models import EntryType, LedgerCategory


class LedgerEntryResponse(BaseModel):
    """Response schema for a single ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    vehicle_id: Optional[int] = None
    rental_id: Optional[int] = None
    payment_id: Optional[int] = None
    entry_date: date
    due_date: Optional[date] = None
    type: EntryType
    category: LedgerCategory
    amount: Decimal
    remaining_amount: Decimal
    reference: Optional[str] = None
    voided_at: Optional[datetime] = None


class PaginatedLedgerEntryResponse(BaseModel):
    """Paginated response for a customer's ledger entries."""

    items: List[LedgerEntryResponse]
    total_items: int = Field(..., description="Total number of entries matching filters")
    page: int
    per_page: int
    total_pages: int
