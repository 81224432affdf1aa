# fleet/allocation/services.py

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet.allocation.ordering import (
    can_settle,
    charge_fifo_key,
    fifo_sorted,
    payment_fifo_key,
)
from fleet.core.clock import Clock, SystemClock
from fleet.core.config import settings
from fleet.customers.repository import CustomerRepository
from fleet.ledger.exceptions import InvalidAmountError, LedgerError
from fleet.ledger.models import LedgerCategory, LedgerEntry
from fleet.ledger.repository import LedgerRepository
from fleet.ledger.services import LedgerService
from fleet.payments.exceptions import CustomerNotFoundError, PaymentAllocationError, PaymentError
from fleet.payments.models import Payment, PaymentApplication, PaymentType
from fleet.payments.repository import PaymentRepository
from fleet.payments.services import PaymentService, payment_status_for
from fleet.pnl.services import PnLService
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)


@dataclass
class AllocationResult:
    """Outcome of one apply_payment run."""
    payment_id: int
    applied_total: Decimal = ZERO
    remaining_credit: Decimal = ZERO
    applications: List[PaymentApplication] = field(default_factory=list)


@dataclass
class SweepResult:
    """Aggregate counters for credit sweeps."""
    customers_affected: int = 0
    payments_processed: int = 0
    total_credit_applied: Decimal = ZERO

    def result(self) -> Dict:
        return {
            "customers_affected": self.customers_affected,
            "payments_processed": self.payments_processed,
            "total_credit_applied": str(self.total_credit_applied),
        }


class AllocationService:
    """
    FIFO allocation of payments against charges.

    Two directions share one comparator and one eligibility rule:
    - apply_payment: one payment walks the customer's open charges.
    - allocate_available_credit: one new charge walks the customer's
      credit-bearing payments.

    Every run takes the customer row FOR UPDATE first, so runs for the same
    customer are serialised, and each (payment, charge) pair is applied at
    most once.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None, scope_by_rental: Optional[bool] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.scope_by_rental = (
            settings.allocation_scope_by_rental if scope_by_rental is None else scope_by_rental
        )
        self.customer_repo = CustomerRepository(db)
        self.ledger_repo = LedgerRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.ledger_service = LedgerService(db, clock=self.clock)
        self.payment_service = PaymentService(db)
        self.pnl_service = PnLService(db)

    # --- Payment -> charges ---

    def apply_payment(self, payment_id: int) -> AllocationResult:
        """
        Applies a payment's unapplied remainder to the customer's open charges
        in FIFO order and commits the run.

        Re-running on a fully applied payment is a no-op. Whatever cannot be
        applied stays on the payment as credit.

        Raises:
            PaymentNotFoundError: unknown payment
            InvalidAmountError: the payment's amount is not positive
            PaymentAllocationError: database failure, run rolled back
        """
        try:
            # customer_id is immutable; every row below is re-read under the customer lock
            customer_id = self.payment_repo.get_payment_by_id(payment_id).customer_id
            self._lock_customer(customer_id)
            payment = self.payment_repo.get_payment_by_id(payment_id, for_update=True)

            if to_money(payment.amount) <= 0:
                raise InvalidAmountError(f"Payment {payment.id} has non-positive amount {payment.amount}.")

            self.ledger_service.create_payment_mirror_entry(payment)

            if payment.payment_type == PaymentType.INITIAL_FEE:
                # Recognised as revenue up front; never settles charges.
                self.pnl_service.post_safely(self.pnl_service.post_initial_fee, payment)
                self.db.commit()
                logger.info("Recorded initial fee payment", payment_id=payment.id, amount=str(payment.amount))
                return AllocationResult(payment_id=payment.id, remaining_credit=to_money(payment.remaining_amount))

            if to_money(payment.remaining_amount) <= 0:
                self.db.commit()
                return AllocationResult(payment_id=payment.id)

            self._reconcile_payment(payment)

            charges = self.ledger_repo.get_open_charges_for_customer(payment.customer_id, for_update=True)
            candidates = fifo_sorted(
                [c for c in charges if can_settle(payment, c, self.scope_by_rental)],
                charge_fifo_key,
            )

            result = AllocationResult(payment_id=payment.id)
            for charge in candidates:
                if to_money(payment.remaining_amount) <= 0:
                    break
                application = self._apply_pair(payment, charge, to_money(charge.remaining_amount))
                if application:
                    result.applications.append(application)
                    result.applied_total += to_money(application.amount_applied)

            result.remaining_credit = to_money(payment.remaining_amount)
            self.db.commit()

            logger.info(
                "Applied payment",
                payment_id=payment.id,
                customer_id=payment.customer_id,
                applied_total=str(result.applied_total),
                remaining_credit=str(result.remaining_credit),
                applications=len(result.applications),
                status=payment.status.value,
            )
            return result

        except (LedgerError, PaymentError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to apply payment.", payment_id=payment_id, error=str(e), exc_info=True)
            raise PaymentAllocationError(f"Failed to apply payment {payment_id}: {str(e)}") from e

    # --- Charge -> credit ---

    def allocate_available_credit(self, customer_id: int, charge_id: int, amount_needed: Decimal) -> Decimal:
        """
        Settles one charge from the customer's standing credit, oldest payment
        first, until amount_needed is covered or the credit runs out.

        Runs inside the caller's transaction (flush only). Returns the total
        allocated.
        """
        self._lock_customer(customer_id)
        charge = self.ledger_repo.get_entry_by_id(charge_id, for_update=True)

        needed = min(to_money(amount_needed), to_money(charge.remaining_amount))
        if needed <= 0 or not charge.is_open:
            return ZERO

        payments = self.payment_repo.get_credit_payments_for_customer(customer_id, for_update=True)
        candidates = fifo_sorted(
            [p for p in payments if can_settle(p, charge, self.scope_by_rental)],
            payment_fifo_key,
        )

        total = ZERO
        for payment in candidates:
            if needed <= 0:
                break
            self._reconcile_payment(payment)
            application = self._apply_pair(payment, charge, needed)
            if application:
                applied = to_money(application.amount_applied)
                needed -= applied
                total += applied

        if total > 0:
            logger.info(
                "Allocated available credit to charge",
                customer_id=customer_id,
                charge_id=charge.id,
                allocated=str(total),
                charge_remaining=str(charge.remaining_amount),
            )
        return total

    # --- Sweeps ---

    def sweep_customer_credit(self, customer_id: int) -> SweepResult:
        """Re-runs apply_payment for each credit-bearing payment of a customer, oldest first."""
        result = SweepResult()
        payments = self.payment_repo.get_credit_payments_for_customer(customer_id)
        for payment in fifo_sorted(payments, payment_fifo_key):
            outcome = self.apply_payment(payment.id)
            result.payments_processed += 1
            result.total_credit_applied += outcome.applied_total
        if result.total_credit_applied > 0:
            result.customers_affected = 1
        return result

    def reapply_all_payments(self) -> Dict:
        """Sweeps every customer holding credit. Returns aggregate counters."""
        totals = SweepResult()
        for customer_id in self.payment_repo.list_customer_ids_with_credit():
            swept = self.sweep_customer_credit(customer_id)
            totals.customers_affected += swept.customers_affected
            totals.payments_processed += swept.payments_processed
            totals.total_credit_applied += swept.total_credit_applied
        logger.info("Re-applied all payments", **totals.result())
        return totals.result()

    # --- Internals ---

    def _lock_customer(self, customer_id: int) -> None:
        if not self.customer_repo.get_customer(customer_id, for_update=True):
            raise CustomerNotFoundError(customer_id=customer_id)

    def _apply_pair(self, payment: Payment, charge: LedgerEntry, cap: Decimal) -> Optional[PaymentApplication]:
        """
        Applies min(cap, charge remaining, payment remaining) of payment to
        charge. Skips pairs that already carry an application.
        """
        if self.payment_repo.get_application(payment.id, charge.id, for_update=True):
            logger.info("Application already exists, skipping", payment_id=payment.id, charge_id=charge.id)
            return None

        self._reconcile_charge(charge)
        to_apply = min(cap, to_money(charge.remaining_amount), to_money(payment.remaining_amount))
        if to_apply <= 0:
            return None

        application = self.payment_repo.create_application(
            PaymentApplication(payment_id=payment.id, charge_entry_id=charge.id, amount_applied=to_apply)
        )
        self.ledger_service.reduce_remaining(charge, to_apply)
        self.payment_service.reduce_remaining(payment, to_apply)
        self.pnl_service.post_safely(self.pnl_service.post_application_revenue, application, charge, payment)

        if to_money(charge.remaining_amount) == 0:
            self._notify_charge_settled(charge)
        return application

    def _reconcile_payment(self, payment: Payment) -> None:
        """
        Realigns remaining_amount with the payment's application rows, and
        does the same for every charge those rows point at.
        """
        applications = self.payment_repo.list_applications_for_payment(payment.id, for_update=True)
        for application in applications:
            self._reconcile_charge(self.ledger_repo.get_entry_by_id(application.charge_entry_id, for_update=True))

        applied = sum((to_money(a.amount_applied) for a in applications), ZERO)
        expected = to_money(payment.amount) - applied
        expected = max(to_money(expected), ZERO)
        if expected != to_money(payment.remaining_amount):
            logger.warning(
                "Payment remainder out of step with applications, realigning",
                payment_id=payment.id,
                stored=str(payment.remaining_amount),
                expected=str(expected),
            )
            self.payment_repo.update_remaining(payment, expected, payment_status_for(payment.amount, expected))

    def _reconcile_charge(self, charge: LedgerEntry) -> None:
        expected = to_money(charge.amount) - self.payment_repo.sum_applied_for_charge(charge.id, for_update=True)
        expected = max(to_money(expected), ZERO)
        if expected != to_money(charge.remaining_amount):
            logger.warning(
                "Charge remainder out of step with applications, realigning",
                charge_id=charge.id,
                stored=str(charge.remaining_amount),
                expected=str(expected),
            )
            self.ledger_repo.update_remaining(charge, expected)

    def _notify_charge_settled(self, charge: LedgerEntry) -> None:
        """
        Notify the owning module when a charge is fully settled.
        Only fine charges have a status to keep in step.
        """
        if charge.category != LedgerCategory.FINE or not (charge.reference or "").startswith("FINE-"):
            return
        try:
            with self.db.begin_nested():
                from fleet.fines.services import FineService
                FineService(self.db, clock=self.clock).mark_paid_from_settlement(charge)
        except Exception as e:
            # Don't fail the allocation if the fine status update fails
            logger.error(
                "Failed to notify fine module about settled charge",
                charge_id=charge.id,
                reference=charge.reference,
                error=str(e),
                exc_info=True,
            )
