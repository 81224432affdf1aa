# fleet/payments/repository.py

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet.payments.exceptions import PaymentNotFoundError
from fleet.payments.models import Payment, PaymentApplication, PaymentStatus, PaymentType
from fleet.utils.logger import get_logger

logger = get_logger(__name__)

CREDIT_BEARING = (PaymentStatus.CREDIT, PaymentStatus.PARTIAL)


class PaymentRepository:
    """
    Data Access Layer for payments and their applications to charges.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, payment: Payment) -> Payment:
        """Adds a new Payment to the session and flushes it to get an id."""
        self.db.add(payment)
        self.db.flush()
        self.db.refresh(payment)
        logger.info(
            "Created new Payment",
            payment_id=payment.id,
            customer_id=payment.customer_id,
            amount=str(payment.amount),
            payment_type=payment.payment_type.value,
        )
        return payment

    def get_payment_by_id(self, payment_id: int, for_update: bool = False) -> Payment:
        """
        Fetches a single payment by its ID.
        Raises PaymentNotFoundError if not found.
        """
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = self.db.execute(stmt).scalar_one_or_none()
        if not payment:
            raise PaymentNotFoundError(payment_id=payment_id)
        return payment

    def update_remaining(self, payment: Payment, new_remaining: Decimal, status: PaymentStatus) -> Payment:
        payment.remaining_amount = new_remaining
        payment.status = status
        self.db.flush()
        return payment

    def get_credit_payments_for_customer(
        self,
        customer_id: int,
        exclude_ids: Optional[List[int]] = None,
        for_update: bool = False,
    ) -> List[Payment]:
        """
        Fetches credit-bearing payments (Credit or Partial, remaining > 0) for
        a customer. InitialFee payments never carry usable credit and are left
        out at the query level.
        """
        stmt = select(Payment).where(
            Payment.customer_id == customer_id,
            Payment.status.in_(CREDIT_BEARING),
            Payment.remaining_amount > 0,
            Payment.payment_type != PaymentType.INITIAL_FEE,
        )
        if exclude_ids:
            stmt = stmt.where(Payment.id.not_in(exclude_ids))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        stmt = stmt.order_by(Payment.payment_date.asc(), Payment.id.asc())
        return list(self.db.execute(stmt).scalars().all())

    def list_customer_ids_with_credit(self) -> List[int]:
        stmt = (
            select(Payment.customer_id)
            .where(
                Payment.status.in_(CREDIT_BEARING),
                Payment.remaining_amount > 0,
                Payment.payment_type != PaymentType.INITIAL_FEE,
            )
            .distinct()
            .order_by(Payment.customer_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    # --- Applications ---
    #
    # Allocation reads these after taking the customer lock. With for_update
    # they are locking reads, so they see rows committed by an earlier run
    # rather than the transaction's snapshot.

    def create_application(self, application: PaymentApplication) -> PaymentApplication:
        self.db.add(application)
        self.db.flush()
        self.db.refresh(application)
        logger.info(
            "Created PaymentApplication",
            application_id=application.id,
            payment_id=application.payment_id,
            charge_entry_id=application.charge_entry_id,
            amount=str(application.amount_applied),
        )
        return application

    def get_application(
        self, payment_id: int, charge_entry_id: int, for_update: bool = False
    ) -> Optional[PaymentApplication]:
        stmt = select(PaymentApplication).where(
            PaymentApplication.payment_id == payment_id,
            PaymentApplication.charge_entry_id == charge_entry_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_applications_for_payment(self, payment_id: int, for_update: bool = False) -> List[PaymentApplication]:
        stmt = (
            select(PaymentApplication)
            .where(PaymentApplication.payment_id == payment_id)
            .order_by(PaymentApplication.id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def list_applications_for_charge(self, charge_entry_id: int, for_update: bool = False) -> List[PaymentApplication]:
        stmt = (
            select(PaymentApplication)
            .where(PaymentApplication.charge_entry_id == charge_entry_id)
            .order_by(PaymentApplication.id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def sum_applied_for_payment(self, payment_id: int, for_update: bool = False) -> Decimal:
        if for_update:
            return _total(self.list_applications_for_payment(payment_id, for_update=True))
        stmt = select(func.coalesce(func.sum(PaymentApplication.amount_applied), 0)).where(
            PaymentApplication.payment_id == payment_id
        )
        return Decimal(str(self.db.execute(stmt).scalar()))

    def sum_applied_for_charge(self, charge_entry_id: int, for_update: bool = False) -> Decimal:
        if for_update:
            return _total(self.list_applications_for_charge(charge_entry_id, for_update=True))
        stmt = select(func.coalesce(func.sum(PaymentApplication.amount_applied), 0)).where(
            PaymentApplication.charge_entry_id == charge_entry_id
        )
        return Decimal(str(self.db.execute(stmt).scalar()))


def _total(applications: List[PaymentApplication]) -> Decimal:
    return sum((Decimal(str(a.amount_applied)) for a in applications), Decimal("0"))
