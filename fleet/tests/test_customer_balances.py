# fleet/tests/test_customer_balances.py

import pytest
from datetime import date
from decimal import Decimal

from fleet.allocation.services import AllocationService
from fleet.customers.schemas import BalanceStatus
from fleet.customers.services import CustomerService, balance_status_for
from fleet.fines.services import FineService
from fleet.ledger.models import EntryType, LedgerCategory
from fleet.ledger.services import LedgerService
from fleet.payments.exceptions import CustomerNotFoundError
from fleet.payments.models import PaymentType
from fleet.tests.factories import create_test_charge, create_test_fine, create_test_payment


@pytest.fixture
def customer_service(db_session, clock):
    """Customer service fixture"""
    return CustomerService(db_session, clock=clock)


@pytest.fixture
def pay(db_session, clock, sample_customer):
    """Records and applies a payment for the sample customer."""
    def _pay(amount, payment_date, payment_type=PaymentType.RENTAL):
        payment = create_test_payment(db_session, sample_customer, amount, payment_date, payment_type=payment_type)
        AllocationService(db_session, clock=clock).apply_payment(payment.id)
        return payment
    return _pay


class TestBalanceStatus:

    @pytest.mark.parametrize(
        "balance, expected",
        [("10.00", BalanceStatus.IN_DEBT), ("-0.01", BalanceStatus.IN_CREDIT), ("0.00", BalanceStatus.SETTLED)],
    )
    def test_status_for(self, balance, expected):
        assert balance_status_for(Decimal(balance)) == expected


class TestBalances:
    """Test the balance figures"""

    def test_new_customer_is_settled(self, customer_service, sample_customer):
        balance = customer_service.get_balance_with_status(sample_customer.id)

        assert balance.status == BalanceStatus.SETTLED
        assert balance.balance == Decimal("0.00")

    def test_part_paid_account(self, customer_service, pay, sample_customer, db_session):
        """
        SCENARIO: Two 1000.00 monthly charges, 1500.00 paid, plus a 300.00 initial fee
        EXPECTED: 500.00 in debt, all of it overdue; the initial fee is not credit
        """
        create_test_charge(db_session, sample_customer, "1000.00", date(2024, 1, 1))
        create_test_charge(db_session, sample_customer, "1000.00", date(2024, 2, 1))
        pay("1500.00", date(2024, 1, 15))
        pay("300.00", date(2024, 1, 1), payment_type=PaymentType.INITIAL_FEE)

        balance = customer_service.get_balance_with_status(sample_customer.id)

        assert balance.total_charges == Decimal("2000.00")
        assert balance.total_payments == Decimal("1500.00")
        assert balance.balance == Decimal("500.00")
        assert balance.status == BalanceStatus.IN_DEBT
        assert balance.outstanding == Decimal("500.00")
        assert balance.credit == Decimal("0.00")
        assert balance.overdue == Decimal("500.00")
        assert customer_service.get_net_position(sample_customer.id) == Decimal("500.00")

    def test_overpaid_account_is_in_credit(self, customer_service, pay, sample_customer, db_session):
        create_test_charge(db_session, sample_customer, "100.00", date(2024, 2, 1))
        pay("250.00", date(2024, 2, 1))

        balance = customer_service.get_balance_with_status(sample_customer.id)

        assert balance.balance == Decimal("-150.00")
        assert balance.status == BalanceStatus.IN_CREDIT
        assert customer_service.get_credit(sample_customer.id) == Decimal("150.00")

    def test_voided_charge_not_counted(self, customer_service, sample_customer, db_session, clock):
        charge = create_test_charge(db_session, sample_customer, "60.00", date(2024, 2, 10),
                                    category=LedgerCategory.FINE, reference="FINE-77")
        LedgerService(db_session, clock=clock).void_charge(charge)
        db_session.commit()

        balance = customer_service.get_balance_with_status(sample_customer.id)

        assert balance.total_charges == Decimal("0.00")
        assert balance.outstanding == Decimal("0.00")
        assert balance.overdue == Decimal("0.00")

    def test_overdue_uses_given_day(self, customer_service, sample_customer, db_session):
        create_test_charge(db_session, sample_customer, "1000.00", date(2024, 3, 1))

        assert customer_service.get_overdue_total(sample_customer.id) == Decimal("0.00")
        assert customer_service.get_overdue_total(sample_customer.id, today=date(2024, 3, 2)) == Decimal("1000.00")

    def test_waived_paid_fine_is_refund_due_not_credit(
        self, customer_service, pay, sample_customer, sample_vehicle, db_session, clock
    ):
        """
        SCENARIO: A 60.00 fine is charged, paid in full, then waived
        EXPECTED: The account is settled, not in credit; the 60.00 shows as a refund due
        """
        fine = create_test_fine(db_session, sample_vehicle, sample_customer)
        fine_service = FineService(db_session, clock=clock)
        fine_service.apply_fine_action(fine.id, "charge")
        pay("60.00", date(2024, 2, 20))
        assert fine_service.apply_fine_action(fine.id, "waive").success

        balance = customer_service.get_balance_with_status(sample_customer.id)

        assert balance.total_charges == Decimal("0.00")
        assert balance.total_payments == Decimal("0.00")
        assert balance.balance == Decimal("0.00")
        assert balance.status == BalanceStatus.SETTLED
        assert balance.credit == Decimal("0.00")
        assert balance.refund_due == Decimal("60.00")
        assert customer_service.get_net_position(sample_customer.id) == Decimal("0.00")

    def test_unknown_customer(self, customer_service):
        with pytest.raises(CustomerNotFoundError):
            customer_service.get_balance_with_status(5555)


class TestStatement:
    """Test the running-balance statement"""

    def test_running_balance_with_opening(self, customer_service, pay, sample_customer, db_session):
        create_test_charge(db_session, sample_customer, "1000.00", date(2024, 1, 1))
        create_test_charge(db_session, sample_customer, "1000.00", date(2024, 2, 1))
        pay("1500.00", date(2024, 1, 15))
        pay("300.00", date(2024, 1, 1), payment_type=PaymentType.INITIAL_FEE)

        statement = customer_service.get_statement(sample_customer.id, start_date=date(2024, 2, 1))

        assert statement.opening_balance == Decimal("-500.00")
        assert [line.type for line in statement.lines] == [EntryType.CHARGE]
        assert statement.lines[0].running_balance == Decimal("500.00")
        assert statement.closing_balance == Decimal("500.00")

    def test_same_day_charge_listed_before_payment(self, customer_service, pay, sample_customer, db_session):
        pay("100.00", date(2024, 1, 1))
        create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))

        statement = customer_service.get_statement(sample_customer.id)

        assert [line.type for line in statement.lines] == [EntryType.CHARGE, EntryType.PAYMENT]
        assert [line.running_balance for line in statement.lines] == [Decimal("100.00"), Decimal("0.00")]

    def test_voided_line_shown_but_not_counted(self, customer_service, sample_customer, db_session, clock):
        create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))
        voided = create_test_charge(db_session, sample_customer, "60.00", date(2024, 1, 5),
                                    category=LedgerCategory.FINE, reference="FINE-78")
        LedgerService(db_session, clock=clock).void_charge(voided)
        db_session.commit()

        statement = customer_service.get_statement(sample_customer.id)

        assert [line.voided for line in statement.lines] == [False, True]
        assert statement.closing_balance == Decimal("100.00")

    def test_refund_on_voided_line_offsets_its_payment(
        self, customer_service, pay, sample_customer, sample_vehicle, db_session, clock
    ):
        fine = create_test_fine(db_session, sample_vehicle, sample_customer)
        fine_service = FineService(db_session, clock=clock)
        fine_service.apply_fine_action(fine.id, "charge")
        pay("60.00", date(2024, 2, 20))
        fine_service.apply_fine_action(fine.id, "waive")

        statement = customer_service.get_statement(sample_customer.id)
        later = customer_service.get_statement(sample_customer.id, start_date=date(2024, 3, 1))

        assert [line.voided for line in statement.lines] == [True, False]
        assert [line.refunded for line in statement.lines] == [Decimal("60.00"), Decimal("0.00")]
        assert [line.running_balance for line in statement.lines] == [Decimal("60.00"), Decimal("0.00")]
        assert statement.closing_balance == Decimal("0.00")
        assert later.opening_balance == Decimal("0.00")
