# fleet/customers/repository.py

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from fleet.customers.models import Customer
from fleet.ledger.models import EntryType, LedgerCategory, LedgerEntry
from fleet.payments.models import Payment, PaymentApplication, PaymentStatus, PaymentType


def _dec(value) -> Decimal:
    return Decimal(str(value or 0))


class CustomerRepository:
    """
    Data Access Layer for customers and the aggregate reads the balance
    views are built on.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_customer(self, customer: Customer) -> Customer:
        self.db.add(customer)
        self.db.flush()
        self.db.refresh(customer)
        return customer

    def get_customer(self, customer_id: int, for_update: bool = False) -> Optional[Customer]:
        """
        Fetches a customer by id. With for_update the row lock serialises
        every allocation run for that customer.
        """
        stmt = select(Customer).where(Customer.id == customer_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def sum_charges(self, customer_id: int) -> Decimal:
        """Sum of non-voided charge amounts."""
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.type == EntryType.CHARGE,
            LedgerEntry.voided_at.is_(None),
        )
        return _dec(self.db.execute(stmt).scalar())

    def sum_payment_mirrors(self, customer_id: int) -> Decimal:
        """
        Sum of mirrored payment amounts, returned as a positive figure.
        Initial fee payments are revenue, not account credit, and are left out.
        """
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.type == EntryType.PAYMENT,
            LedgerEntry.category != LedgerCategory.INITIAL_FEES,
        )
        return -_dec(self.db.execute(stmt).scalar())

    def sum_open_remaining(self, customer_id: int, due_before: Optional[date] = None) -> Decimal:
        """Sum of remaining_amount over open charges, optionally only those overdue."""
        stmt = select(func.coalesce(func.sum(LedgerEntry.remaining_amount), 0)).where(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.type == EntryType.CHARGE,
            LedgerEntry.voided_at.is_(None),
            LedgerEntry.remaining_amount > 0,
        )
        if due_before:
            stmt = stmt.where(LedgerEntry.due_date.is_not(None), LedgerEntry.due_date < due_before)
        return _dec(self.db.execute(stmt).scalar())

    def sum_unapplied_credit(self, customer_id: int) -> Decimal:
        """Unapplied payment remainder, leaving out InitialFee payments."""
        stmt = select(func.coalesce(func.sum(Payment.remaining_amount), 0)).where(
            Payment.customer_id == customer_id,
            Payment.status.in_((PaymentStatus.CREDIT, PaymentStatus.PARTIAL)),
            Payment.payment_type != PaymentType.INITIAL_FEE,
        )
        return _dec(self.db.execute(stmt).scalar())

    def list_statement_entries(
        self, customer_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> List[LedgerEntry]:
        stmt = select(LedgerEntry).where(LedgerEntry.customer_id == customer_id)
        if start_date:
            stmt = stmt.where(LedgerEntry.entry_date >= start_date)
        if end_date:
            stmt = stmt.where(LedgerEntry.entry_date <= end_date)
        # Charges before payments on the same day.
        type_order = case((LedgerEntry.type == EntryType.CHARGE, 0), else_=1)
        stmt = stmt.order_by(LedgerEntry.entry_date.asc(), type_order, LedgerEntry.id.asc())
        return list(self.db.execute(stmt).scalars().all())

    def net_before(self, customer_id: int, before: date) -> Decimal:
        """Signed ledger total (voided charges excluded) for entries dated before a day."""
        stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.entry_date < before,
            LedgerEntry.voided_at.is_(None),
            ~((LedgerEntry.type == EntryType.PAYMENT) & (LedgerEntry.category == LedgerCategory.INITIAL_FEES)),
        )
        return _dec(self.db.execute(stmt).scalar())

    # --- Money applied to voided charges ---
    #
    # A payment applied to a charge that is later voided stays applied; the
    # amount is owed back to the customer as a refund and no longer sits on
    # the account. Balance and statement both take it out of the payments.

    def _applied_to_voided(self, customer_id: int):
        return (
            select(func.coalesce(func.sum(PaymentApplication.amount_applied), 0))
            .join(LedgerEntry, LedgerEntry.id == PaymentApplication.charge_entry_id)
            .where(LedgerEntry.customer_id == customer_id, LedgerEntry.voided_at.is_not(None))
        )

    def sum_applied_to_voided(self, customer_id: int, before: Optional[date] = None) -> Decimal:
        """Total applied to voided charges, optionally only charges dated before a day."""
        stmt = self._applied_to_voided(customer_id)
        if before:
            stmt = stmt.where(LedgerEntry.entry_date < before)
        return _dec(self.db.execute(stmt).scalar())

    def applied_by_charge(self, charge_ids: List[int]) -> Dict[int, Decimal]:
        if not charge_ids:
            return {}
        stmt = (
            select(PaymentApplication.charge_entry_id, func.sum(PaymentApplication.amount_applied))
            .where(PaymentApplication.charge_entry_id.in_(charge_ids))
            .group_by(PaymentApplication.charge_entry_id)
        )
        return {charge_id: _dec(total) for charge_id, total in self.db.execute(stmt).all()}
