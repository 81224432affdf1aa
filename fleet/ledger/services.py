# fleet/ledger/services.py

from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from fleet.core.clock import Clock, SystemClock
from fleet.core.idempotency import InsertResult
from fleet.ledger.exceptions import (
    DuplicateReferenceError,
    InsufficientRemainingError,
    InvalidAmountError,
    InvalidLedgerOperationError,
)
from fleet.ledger.models import EntryType, LedgerCategory, LedgerEntry
from fleet.ledger.repository import LedgerRepository
from fleet.ledger.schemas import LedgerEntryResponse
from fleet.payments.models import PaymentType
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)


class LedgerService:
    """
    Business Logic Layer for the customer ledger.
    Creates charges and payment mirrors and is the only writer of a charge's
    remaining_amount. Methods flush; the caller commits.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.repo = LedgerRepository(db)
        self.clock = clock or SystemClock()

    def create_charge(
        self,
        customer_id: int,
        category: LedgerCategory,
        amount: Decimal,
        entry_date: date,
        due_date: Optional[date] = None,
        vehicle_id: Optional[int] = None,
        rental_id: Optional[int] = None,
        reference: Optional[str] = None,
        strict: bool = False,
    ) -> Tuple[LedgerEntry, InsertResult]:
        """
        Creates a new Charge with remaining_amount equal to its amount.

        When ``reference`` is already taken by a charge, the existing charge is
        returned tagged SKIPPED, which is what automated producers (fine
        charging, rental charge generation) rely on for safe retries. Callers
        that treat a repeat as a bug pass ``strict=True``.

        Raises:
            InvalidAmountError: amount is zero or negative
            DuplicateReferenceError: reference exists and strict is set
        """
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(f"Charge amount must be positive, got {amount}.")

        if reference:
            existing = self.repo.get_charge_by_reference(reference)
            if existing:
                if strict:
                    raise DuplicateReferenceError(reference)
                logger.info(
                    "Charge already exists for reference, skipping",
                    reference=reference,
                    entry_id=existing.id,
                )
                return existing, InsertResult.SKIPPED

        entry = LedgerEntry(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            rental_id=rental_id,
            entry_date=entry_date,
            due_date=due_date,
            type=EntryType.CHARGE,
            category=category,
            amount=amount,
            remaining_amount=amount,
            reference=reference,
        )
        self.repo.create_entry(entry)
        logger.info(
            "Created charge",
            entry_id=entry.id,
            customer_id=customer_id,
            category=category.value,
            amount=str(amount),
            due_date=due_date.isoformat() if due_date else None,
            reference=reference,
        )
        return entry, InsertResult.CREATED

    def create_payment_mirror_entry(self, payment) -> Tuple[LedgerEntry, InsertResult]:
        """
        Writes the Payment-type ledger row for a received payment
        (amount = -payment.amount). Idempotent on payment_id.
        """
        existing = self.repo.get_mirror_for_payment(payment.id)
        if existing:
            return existing, InsertResult.SKIPPED

        entry = LedgerEntry(
            customer_id=payment.customer_id,
            vehicle_id=payment.vehicle_id,
            rental_id=payment.rental_id,
            payment_id=payment.id,
            entry_date=payment.payment_date,
            type=EntryType.PAYMENT,
            category=_mirror_category(payment),
            amount=-to_money(payment.amount),
            remaining_amount=ZERO,
        )
        self.repo.create_entry(entry)
        return entry, InsertResult.CREATED

    def reduce_remaining(self, charge: LedgerEntry, by_amount: Decimal) -> LedgerEntry:
        """
        Draws down a charge's remaining_amount.

        Raises:
            InvalidAmountError: by_amount is zero or negative
            InsufficientRemainingError: by_amount exceeds what is left
            InvalidLedgerOperationError: the entry is not a charge
        """
        by_amount = to_money(by_amount)
        if by_amount <= 0:
            raise InvalidAmountError(f"Reduction must be positive, got {by_amount}.")
        if charge.type != EntryType.CHARGE:
            raise InvalidLedgerOperationError(f"Ledger entry {charge.id} is not a charge.")

        remaining = to_money(charge.remaining_amount)
        if by_amount > remaining:
            raise InsufficientRemainingError("charge", charge.id, remaining, by_amount)

        return self.repo.update_remaining(charge, remaining - by_amount)

    def reduce_remaining_by_id(self, charge_id: int, by_amount: Decimal) -> LedgerEntry:
        charge = self.repo.get_entry_by_id(charge_id, for_update=True)
        return self.reduce_remaining(charge, by_amount)

    def void_charge(self, charge: LedgerEntry) -> LedgerEntry:
        """Takes a charge out of the open pool. Amounts are left untouched."""
        if charge.voided_at is not None:
            return charge
        return self.repo.mark_voided(charge, self.clock.now())

    def list_customer_entries(self, customer_id: int, **kwargs) -> Tuple[List[LedgerEntryResponse], int]:
        """Fetches and formats a customer's ledger entries."""
        entries, total_items = self.repo.list_entries_for_customer(customer_id, **kwargs)
        items = [LedgerEntryResponse.model_validate(e) for e in entries]
        return items, total_items


def _mirror_category(payment) -> LedgerCategory:
    return {
        PaymentType.RENTAL: LedgerCategory.RENTAL,
        PaymentType.INITIAL_FEE: LedgerCategory.INITIAL_FEES,
        PaymentType.FINE: LedgerCategory.FINE,
    }.get(payment.payment_type, LedgerCategory.OTHER)
