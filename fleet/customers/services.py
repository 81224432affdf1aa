# fleet/customers/services.py

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from fleet.core.clock import Clock, SystemClock
from fleet.customers.models import Customer, CustomerStatus
from fleet.customers.repository import CustomerRepository
from fleet.customers.schemas import (
    BalanceStatus,
    CustomerBalanceResponse,
    CustomerStatementResponse,
    StatementLine,
)
from fleet.ledger.models import EntryType, LedgerCategory
from fleet.payments.exceptions import CustomerNotFoundError
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)


def balance_status_for(balance: Decimal) -> BalanceStatus:
    if balance > 0:
        return BalanceStatus.IN_DEBT
    if balance < 0:
        return BalanceStatus.IN_CREDIT
    return BalanceStatus.SETTLED


class CustomerService:
    """
    Read-side views over a customer's ledger: balance, credit, overdue and
    statement. Voided charges never count towards any figure.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.repo = CustomerRepository(db)

    def create_customer(self, name: str, email: Optional[str] = None, phone: Optional[str] = None) -> Customer:
        customer = self.repo.create_customer(
            Customer(name=name, email=email, phone=phone, status=CustomerStatus.INACTIVE)
        )
        self.db.commit()
        return customer

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.repo.get_customer(customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id=customer_id)
        return customer

    def get_net_position(self, customer_id: int) -> Decimal:
        """Charges minus payments. Positive means the customer owes money."""
        return to_money(self.repo.sum_charges(customer_id) - self._payments_on_account(customer_id))

    def get_refund_due(self, customer_id: int) -> Decimal:
        """Money applied to charges that were later voided, owed back to the customer."""
        return to_money(self.repo.sum_applied_to_voided(customer_id))

    def _payments_on_account(self, customer_id: int) -> Decimal:
        return to_money(self.repo.sum_payment_mirrors(customer_id) - self.repo.sum_applied_to_voided(customer_id))

    def get_credit(self, customer_id: int) -> Decimal:
        """Unapplied payment credit, excluding initial fees."""
        return to_money(self.repo.sum_unapplied_credit(customer_id))

    def get_overdue_total(self, customer_id: int, today: Optional[date] = None) -> Decimal:
        """Outstanding remainder on charges due before today."""
        today = today or self.clock.today()
        return to_money(self.repo.sum_open_remaining(customer_id, due_before=today))

    def get_balance_with_status(self, customer_id: int) -> CustomerBalanceResponse:
        self.get_customer(customer_id)
        total_charges = to_money(self.repo.sum_charges(customer_id))
        total_payments = self._payments_on_account(customer_id)
        balance = total_charges - total_payments
        return CustomerBalanceResponse(
            customer_id=customer_id,
            balance=balance,
            status=balance_status_for(balance),
            total_charges=total_charges,
            total_payments=total_payments,
            outstanding=to_money(self.repo.sum_open_remaining(customer_id)),
            credit=self.get_credit(customer_id),
            overdue=self.get_overdue_total(customer_id),
            refund_due=self.get_refund_due(customer_id),
        )

    def get_statement(
        self,
        customer_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> CustomerStatementResponse:
        """
        Ledger entries in date order with a running balance. The opening
        balance carries everything dated before start_date.

        A voided charge adds nothing itself, but whatever was applied to it
        is counted on its line as a refund, offsetting the payment that paid it.
        """
        self.get_customer(customer_id)
        opening = ZERO
        if start_date:
            opening = to_money(
                self.repo.net_before(customer_id, start_date)
                + self.repo.sum_applied_to_voided(customer_id, before=start_date)
            )

        entries = self.repo.list_statement_entries(customer_id, start_date, end_date)
        refunded_by_charge = self.repo.applied_by_charge([e.id for e in entries if e.voided_at is not None])

        running = opening
        lines = []
        for entry in entries:
            voided = entry.voided_at is not None
            refunded = to_money(refunded_by_charge.get(entry.id, ZERO))
            if voided:
                running += refunded
            elif not (entry.type == EntryType.PAYMENT and entry.category == LedgerCategory.INITIAL_FEES):
                running += to_money(entry.amount)
            lines.append(
                StatementLine(
                    entry_id=entry.id,
                    entry_date=entry.entry_date,
                    due_date=entry.due_date,
                    type=entry.type,
                    category=entry.category,
                    reference=entry.reference,
                    amount=to_money(entry.amount),
                    remaining_amount=to_money(entry.remaining_amount),
                    voided=voided,
                    refunded=refunded,
                    running_balance=running,
                )
            )

        return CustomerStatementResponse(
            customer_id=customer_id,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            closing_balance=running,
            lines=lines,
        )
