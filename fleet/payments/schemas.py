# fleet/payments/schemas.py

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet.payments.models import PaymentMethod, PaymentStatus, PaymentType


class PaymentCreateRequest(BaseModel):
    """
    Request schema for recording a customer payment. The payment is applied
    to the customer's open charges straight away.
    """
    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "customer_id": 12,
                "amount": 1000.00,
                "payment_date": "2024-01-01",
                "payment_type": "Rental",
                "method": "Bank Transfer",
                "rental_id": 4,
            },
            {
                "customer_id": 12,
                "amount": 500.00,
                "payment_date": "2024-01-01",
                "payment_type": "InitialFee",
                "method": "Card",
            },
        ]
    })

    customer_id: int
    amount: Decimal = Field(..., gt=0, description="Amount received (must be positive)")
    payment_date: date
    payment_type: PaymentType
    method: PaymentMethod = PaymentMethod.OTHER
    rental_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=255)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    rental_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    amount: Decimal
    payment_date: date
    payment_type: PaymentType
    method: PaymentMethod
    remaining_amount: Decimal
    status: PaymentStatus


class PaymentApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payment_id: int
    charge_entry_id: int
    amount_applied: Decimal


class ApplyPaymentResponse(BaseModel):
    """Outcome of an allocation run."""
    ok: bool
    payment_id: int
    applied_total: Decimal = Decimal("0.00")
    remaining_credit: Decimal = Decimal("0.00")
    error: Optional[str] = None


class PaymentCreateResponse(BaseModel):
    payment: PaymentResponse
    allocation: ApplyPaymentResponse
