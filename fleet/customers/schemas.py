# fleet/customers/schemas.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet.customers.models import CustomerStatus
from fleet.ledger.models import EntryType, LedgerCategory


class BalanceStatus(str, PyEnum):
    IN_DEBT = "In Debt"
    IN_CREDIT = "In Credit"
    SETTLED = "Settled"


class CustomerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: CustomerStatus


class CustomerBalanceResponse(BaseModel):
    """Balance summary. balance > 0 means the customer owes money."""

    customer_id: int
    balance: Decimal
    status: BalanceStatus
    total_charges: Decimal
    total_payments: Decimal
    outstanding: Decimal = Field(..., description="Unsettled remainder on open charges")
    credit: Decimal = Field(..., description="Unapplied payment credit, initial fees excluded")
    overdue: Decimal = Field(..., description="Unsettled remainder on charges past due")
    refund_due: Decimal = Field(Decimal("0"), description="Applied to charges since voided, owed back")


class StatementLine(BaseModel):
    entry_id: int
    entry_date: date
    due_date: Optional[date] = None
    type: EntryType
    category: LedgerCategory
    reference: Optional[str] = None
    amount: Decimal
    remaining_amount: Decimal
    voided: bool = False
    refunded: Decimal = Decimal("0")
    running_balance: Decimal


class CustomerStatementResponse(BaseModel):
    customer_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    opening_balance: Decimal
    closing_balance: Decimal
    lines: List[StatementLine]
