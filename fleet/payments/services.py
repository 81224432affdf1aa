# fleet/payments/services.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet.customers.repository import CustomerRepository
from fleet.ledger.exceptions import InsufficientRemainingError, InvalidAmountError
from fleet.payments.exceptions import CustomerNotFoundError, PaymentError
from fleet.payments.models import (
    Payment,
    PaymentApplication,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from fleet.payments.repository import PaymentRepository
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)


def payment_status_for(amount: Decimal, remaining: Decimal) -> PaymentStatus:
    """
    The one rule for a payment's status:
    nothing left -> Applied, nothing used -> Credit, otherwise Partial.
    """
    remaining = to_money(remaining)
    if remaining <= ZERO:
        return PaymentStatus.APPLIED
    if remaining >= to_money(amount):
        return PaymentStatus.CREDIT
    return PaymentStatus.PARTIAL


class PaymentService:
    """
    Business Logic Layer for recording customer payments.
    Allocation itself lives in AllocationService.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PaymentRepository(db)
        self.customer_repo = CustomerRepository(db)

    def create_payment(
        self,
        customer_id: int,
        amount: Decimal,
        payment_date: date,
        payment_type: PaymentType,
        method: PaymentMethod = PaymentMethod.OTHER,
        rental_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Payment:
        """
        Adds a payment with its full amount available as credit. Flushes only.

        Raises:
            InvalidAmountError: amount is zero or negative
            CustomerNotFoundError: no such customer
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Payment amount must be positive, got {amount}.")
        if not self.customer_repo.get_customer(customer_id):
            raise CustomerNotFoundError(customer_id=customer_id)

        payment = Payment(
            customer_id=customer_id,
            rental_id=rental_id,
            vehicle_id=vehicle_id,
            amount=amount,
            payment_date=payment_date,
            payment_type=payment_type,
            method=method,
            notes=notes,
            remaining_amount=amount,
            status=PaymentStatus.CREDIT,
        )
        return self.repo.create_payment(payment)

    def record_payment(self, **payment_data) -> Payment:
        """Creates a payment in its own transaction."""
        try:
            payment = self.create_payment(**payment_data)
            self.db.commit()
            return payment
        except (InvalidAmountError, CustomerNotFoundError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to record payment.", error=str(e), exc_info=True)
            raise PaymentError(f"Failed to record payment: {str(e)}") from e

    def reduce_remaining(self, payment: Payment, by_amount: Decimal) -> Payment:
        """
        Draws down a payment's unapplied remainder and re-derives its status.

        Raises:
            InvalidAmountError: by_amount is zero or negative
            InsufficientRemainingError: by_amount exceeds what is left
        """
        by_amount = to_money(by_amount)
        if by_amount <= 0:
            raise InvalidAmountError(f"Reduction must be positive, got {by_amount}.")
        remaining = to_money(payment.remaining_amount)
        if by_amount > remaining:
            raise InsufficientRemainingError("payment", payment.id, remaining, by_amount)

        new_remaining = remaining - by_amount
        return self.repo.update_remaining(
            payment, new_remaining, payment_status_for(payment.amount, new_remaining)
        )

    def reduce_remaining_by_id(self, payment_id: int, by_amount: Decimal) -> Payment:
        payment = self.repo.get_payment_by_id(payment_id, for_update=True)
        return self.reduce_remaining(payment, by_amount)

    def get_payment(self, payment_id: int) -> Payment:
        return self.repo.get_payment_by_id(payment_id)

    def list_applications(self, payment_id: int) -> List[PaymentApplication]:
        self.repo.get_payment_by_id(payment_id)
        return self.repo.list_applications_for_payment(payment_id)
