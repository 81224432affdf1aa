# fleet/fines/services.py

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet.core.clock import Clock, SystemClock
from fleet.fines.exceptions import (
    AuthorityPaymentExistsError,
    FineError,
    NoCustomerAssignedError,
    NotCustomerLiabilityError,
    UnknownFineActionError,
)
from fleet.fines.models import AuthorityPayment, Fine, FineLiability, FineStatus
from fleet.fines.repository import FineRepository
from fleet.fines.state_machine import SETTLES_ON_PAYMENT, ensure_not_processed, ensure_transition
from fleet.ledger.exceptions import InvalidAmountError, LedgerError
from fleet.ledger.models import LedgerCategory, LedgerEntry
from fleet.ledger.repository import LedgerRepository
from fleet.ledger.services import LedgerService
from fleet.payments.exceptions import PaymentError
from fleet.payments.repository import PaymentRepository
from fleet.pnl.services import PnLService
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)

CHARGE_REFERENCE_PREFIX = "FINE-"


class FineAction(str, PyEnum):
    CHARGE = "charge"
    WAIVE = "waive"
    APPEAL = "appeal"
    SUBMIT_APPEAL = "submit_appeal"
    APPEAL_SUCCESSFUL = "appeal_successful"
    APPEAL_REJECTED = "appeal_rejected"


@dataclass
class FineActionResult:
    """Outcome of apply_fine_action. Never raised, always returned."""
    success: bool
    fine_id: int
    status: Optional[str] = None
    charged_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    error: Optional[str] = None
    error_code: Optional[str] = None


def fine_id_from_reference(reference: str) -> Optional[int]:
    if not reference or not reference.startswith(CHARGE_REFERENCE_PREFIX):
        return None
    try:
        return int(reference[len(CHARGE_REFERENCE_PREFIX):])
    except ValueError:
        return None


class FineService:
    """
    Fine lifecycle: charge, waive and the appeal flow.

    Every status change is validated against the transition table. Every
    side effect (ledger charge, cost posting, refund reversals, voiding) is
    keyed so a retried action after a partial failure does not repeat it.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.repo = FineRepository(db)
        self.ledger_repo = LedgerRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.ledger_service = LedgerService(db, clock=self.clock)
        self.pnl_service = PnLService(db)

    # --- Records ---

    def create_fine(
        self,
        vehicle_id: int,
        amount: Decimal,
        issue_date: date,
        due_date: date,
        customer_id: Optional[int] = None,
        liability: FineLiability = FineLiability.CUSTOMER,
        **extra,
    ) -> Fine:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Fine amount must be positive, got {amount}.")
        try:
            fine = self.repo.create_fine(
                Fine(
                    vehicle_id=vehicle_id,
                    customer_id=customer_id,
                    amount=amount,
                    issue_date=issue_date,
                    due_date=due_date,
                    liability=liability,
                    status=FineStatus.OPEN,
                    **extra,
                )
            )
            self.db.commit()
            return fine
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to create fine.", error=str(e), exc_info=True)
            raise FineError(f"Failed to create fine: {str(e)}") from e

    def get_fine(self, fine_id: int) -> Fine:
        return self.repo.get_fine_by_id(fine_id)

    def list_fines(
        self,
        customer_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        status: Optional[FineStatus] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Fine], int]:
        return self.repo.list_fines(
            customer_id=customer_id, vehicle_id=vehicle_id, status=status, page=page, per_page=per_page
        )

    def get_charge(self, fine: Fine) -> Optional[LedgerEntry]:
        return self.ledger_repo.get_charge_by_reference(fine.charge_reference)

    # --- Transitions ---

    def charge(self, fine_id: int) -> Fine:
        """
        Charges a customer-liability fine to the customer's account, settles
        it from any standing credit and marks it Charged or Paid.
        """
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)

        ensure_not_processed(fine.id, fine.status, FineStatus.CHARGED)
        if fine.liability != FineLiability.CUSTOMER:
            raise NotCustomerLiabilityError(fine.id)
        if not fine.customer_id:
            raise NoCustomerAssignedError(fine.id)
        ensure_transition(fine.status, FineStatus.CHARGED)

        charge, insert_result = self.ledger_service.create_charge(
            customer_id=fine.customer_id,
            category=LedgerCategory.FINE,
            amount=fine.amount,
            entry_date=fine.issue_date,
            due_date=fine.due_date,
            vehicle_id=fine.vehicle_id,
            reference=fine.charge_reference,
        )
        self.pnl_service.post_safely(self.pnl_service.post_fine_cost, fine)

        # Imported here: the allocation engine calls back into this module.
        from fleet.allocation.services import AllocationService
        allocated = AllocationService(self.db, clock=self.clock).allocate_available_credit(
            fine.customer_id, charge.id, charge.remaining_amount
        )

        now = self.clock.now()
        target = FineStatus.PAID if to_money(charge.remaining_amount) <= 0 else FineStatus.CHARGED
        fine.status = target
        fine.charged_at = fine.charged_at or now
        if target == FineStatus.PAID:
            fine.resolved_at = now
        self.db.flush()

        logger.info(
            "Charged fine to customer",
            fine_id=fine.id,
            customer_id=fine.customer_id,
            charge_id=charge.id,
            charge_insert=insert_result.value,
            allocated=str(allocated),
            status=fine.status.value,
        )
        return fine

    def waive(self, fine_id: int) -> Fine:
        """Waives a fine, reversing any accounting already done for it."""
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)
        return self._reverse_and_close(fine, FineStatus.WAIVED)

    def appeal(self, fine_id: int) -> Fine:
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)
        ensure_transition(fine.status, FineStatus.APPEALED)
        fine.status = FineStatus.APPEALED
        fine.appealed_at = self.clock.now()
        self.db.flush()
        logger.info("Fine appealed", fine_id=fine.id)
        return fine

    def submit_appeal(self, fine_id: int) -> Fine:
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)
        ensure_transition(fine.status, FineStatus.APPEAL_SUBMITTED)
        fine.status = FineStatus.APPEAL_SUBMITTED
        self.db.flush()
        logger.info("Fine appeal submitted", fine_id=fine.id)
        return fine

    def appeal_successful(self, fine_id: int) -> Fine:
        """A won appeal is accounted for exactly like a waiver."""
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)
        return self._reverse_and_close(fine, FineStatus.APPEAL_SUCCESSFUL)

    def appeal_rejected(self, fine_id: int) -> Fine:
        fine = self.repo.get_fine_by_id(fine_id, for_update=True)
        ensure_transition(fine.status, FineStatus.APPEAL_REJECTED)
        fine.status = FineStatus.APPEAL_REJECTED
        self.db.flush()
        logger.info("Fine appeal rejected", fine_id=fine.id)
        return fine

    def mark_paid_from_settlement(self, charge: LedgerEntry) -> Optional[Fine]:
        """
        Called by the allocation engine when a FINE- charge reaches zero.
        Moves a Charged fine to Paid; any other status is left alone.
        """
        fine_id = fine_id_from_reference(charge.reference)
        if fine_id is None:
            return None
        fine = self.repo.find_fine(fine_id)
        if not fine or fine.status not in SETTLES_ON_PAYMENT:
            return fine
        ensure_transition(fine.status, FineStatus.PAID)
        fine.status = FineStatus.PAID
        fine.resolved_at = self.clock.now()
        self.db.flush()
        logger.info("Fine paid through settlement", fine_id=fine.id, charge_id=charge.id)
        return fine

    def _reverse_and_close(self, fine: Fine, target: FineStatus) -> Fine:
        ensure_not_processed(fine.id, fine.status, target)
        if self.repo.authority_payment_exists(fine.id):
            raise AuthorityPaymentExistsError(fine.id)
        ensure_transition(fine.status, target)

        now = self.clock.now()
        charge = self.get_charge(fine)
        refunds = 0
        if charge:
            self.pnl_service.post_safely(self.pnl_service.cancel_fine_cost, fine)
            for application in self.payment_repo.list_applications_for_charge(charge.id, for_update=True):
                outcome = self.pnl_service.post_safely(self.pnl_service.post_fine_refund, fine, application, now)
                if outcome is not None and outcome.created:
                    refunds += 1
            # The charge stays as history; it just leaves the open pool.
            self.ledger_service.void_charge(charge)

        fine.status = target
        if target == FineStatus.WAIVED:
            fine.waived_at = now
        fine.resolved_at = now
        self.db.flush()

        logger.info(
            "Fine closed with reversal",
            fine_id=fine.id,
            status=target.value,
            had_charge=charge is not None,
            refunds_posted=refunds,
        )
        return fine

    # --- Authority payments ---

    def record_authority_payment(
        self,
        fine_id: int,
        amount: Decimal,
        payment_date: date,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AuthorityPayment:
        """Records money paid to the issuing authority and books it as a fine cost."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Authority payment amount must be positive, got {amount}.")
        try:
            fine = self.repo.get_fine_by_id(fine_id, for_update=True)
            authority_payment = self.repo.create_authority_payment(
                AuthorityPayment(
                    fine_id=fine.id,
                    amount=amount,
                    payment_date=payment_date,
                    payment_method=payment_method,
                    notes=notes,
                )
            )
            self.pnl_service.post_safely(self.pnl_service.post_authority_payment_cost, authority_payment, fine)
            self.db.commit()
            return authority_payment
        except FineError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to record authority payment.", fine_id=fine_id, error=str(e), exc_info=True)
            raise FineError(f"Failed to record authority payment: {str(e)}") from e

    # --- Entry point ---

    def apply_fine_action(self, fine_id: int, action) -> FineActionResult:
        """
        Runs one fine action in its own transaction and reports the outcome.
        Errors come back in the result rather than being raised.
        """
        handlers: Dict[FineAction, Callable[[int], Fine]] = {
            FineAction.CHARGE: self.charge,
            FineAction.WAIVE: self.waive,
            FineAction.APPEAL: self.appeal,
            FineAction.SUBMIT_APPEAL: self.submit_appeal,
            FineAction.APPEAL_SUCCESSFUL: self.appeal_successful,
            FineAction.APPEAL_REJECTED: self.appeal_rejected,
        }
        try:
            try:
                fine_action = FineAction(action)
            except ValueError as e:
                raise UnknownFineActionError(action) from e

            fine = handlers[fine_action](fine_id)
            self.db.commit()
            return self._result(fine_id, success=True, fine=fine, action=fine_action)

        except (FineError, LedgerError, PaymentError) as e:
            self.db.rollback()
            logger.warning("Fine action rejected", fine_id=fine_id, action=str(action), error=str(e))
            return self._result(fine_id, success=False, error=str(e), error_code=getattr(e, "code", None))
        except Exception as e:
            self.db.rollback()
            logger.error("Fine action failed", fine_id=fine_id, action=str(action), error=str(e), exc_info=True)
            return self._result(fine_id, success=False, error="An unexpected error occurred.", error_code="InternalError")

    def _result(
        self,
        fine_id: int,
        success: bool,
        fine: Optional[Fine] = None,
        action: Optional[FineAction] = None,
        **kwargs,
    ) -> FineActionResult:
        """
        Amounts are only reported for a successful charge: the fine amount and
        what is still owed on it after standing credit was drawn. Every other
        outcome, failures included, reports zero.
        """
        fine = fine or self.repo.find_fine(fine_id)
        result = FineActionResult(success=success, fine_id=fine_id, **kwargs)
        if fine is None:
            return result
        result.status = fine.status.value
        if success and action == FineAction.CHARGE:
            charge = self.get_charge(fine)
            result.charged_amount = to_money(fine.amount)
            result.remaining_amount = to_money(charge.remaining_amount) if charge else to_money(fine.amount)
        return result
