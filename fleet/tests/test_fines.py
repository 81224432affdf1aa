# fleet/tests/test_fines.py

import pytest
from datetime import date
from decimal import Decimal

from fleet.allocation.services import AllocationService
from fleet.fines.exceptions import (
    AuthorityPaymentExistsError,
    FineAlreadyProcessedError,
    InvalidFineTransitionError,
    NoCustomerAssignedError,
    NotCustomerLiabilityError,
)
from fleet.fines.models import FineLiability, FineStatus
from fleet.fines.services import FineService, fine_id_from_reference
from fleet.fines.state_machine import (
    PROCESSED_STATUSES,
    TERMINAL_STATUSES,
    can_transition,
    ensure_not_processed,
)
from fleet.ledger.models import LedgerCategory
from fleet.ledger.repository import LedgerRepository
from fleet.payments.models import PaymentType
from fleet.pnl.models import PnLSide
from fleet.tests.factories import create_test_fine, create_test_payment, pnl_entries


@pytest.fixture
def fine_service(db_session, clock):
    """Fine service fixture"""
    return FineService(db_session, clock=clock)


@pytest.fixture
def allocation_service(db_session, clock):
    return AllocationService(db_session, clock=clock)


@pytest.fixture
def sample_fine(db_session, sample_vehicle, sample_customer):
    return create_test_fine(db_session, sample_vehicle, sample_customer)


def fine_costs(db_session, fine):
    return pnl_entries(db_session, source_ref=f"fine:{fine.id}", side=PnLSide.COST)


def fine_refunds(db_session):
    return pnl_entries(db_session, is_reversal=True)


class TestStateMachine:
    """The transition table"""

    @pytest.mark.parametrize(
        "current, target",
        [
            (FineStatus.OPEN, FineStatus.APPEALED),
            (FineStatus.OPEN, FineStatus.CHARGED),
            (FineStatus.APPEALED, FineStatus.APPEAL_SUBMITTED),
            (FineStatus.APPEAL_SUBMITTED, FineStatus.APPEAL_REJECTED),
            (FineStatus.APPEAL_REJECTED, FineStatus.CHARGED),
            (FineStatus.CHARGED, FineStatus.PAID),
            (FineStatus.PAID, FineStatus.WAIVED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (FineStatus.CHARGED, FineStatus.APPEALED),
            (FineStatus.PAID, FineStatus.CHARGED),
            (FineStatus.APPEAL_SUBMITTED, FineStatus.CHARGED),
            (FineStatus.WAIVED, FineStatus.OPEN),
            (FineStatus.APPEAL_SUCCESSFUL, FineStatus.WAIVED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {FineStatus.WAIVED, FineStatus.APPEAL_SUCCESSFUL}

    @pytest.mark.parametrize(
        "current, target",
        [
            (FineStatus.CHARGED, FineStatus.CHARGED),
            (FineStatus.PAID, FineStatus.CHARGED),
            (FineStatus.WAIVED, FineStatus.CHARGED),
            (FineStatus.APPEAL_SUCCESSFUL, FineStatus.CHARGED),
            (FineStatus.WAIVED, FineStatus.WAIVED),
            (FineStatus.APPEAL_SUCCESSFUL, FineStatus.WAIVED),
            (FineStatus.WAIVED, FineStatus.APPEAL_SUCCESSFUL),
        ],
    )
    def test_repeat_is_already_processed(self, current, target):
        assert current in PROCESSED_STATUSES[target]
        with pytest.raises(FineAlreadyProcessedError):
            ensure_not_processed(1, current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (FineStatus.OPEN, FineStatus.CHARGED),
            (FineStatus.APPEAL_REJECTED, FineStatus.CHARGED),
            (FineStatus.PAID, FineStatus.WAIVED),
            (FineStatus.CHARGED, FineStatus.WAIVED),
            (FineStatus.OPEN, FineStatus.APPEALED),
        ],
    )
    def test_first_run_is_not_processed(self, current, target):
        ensure_not_processed(1, current, target)

    def test_reference_parsing(self):
        assert fine_id_from_reference("FINE-17") == 17
        assert fine_id_from_reference("FINE-x") is None
        assert fine_id_from_reference("RENTAL-1-2024-01-01") is None


class TestChargeFine:
    """Test charging fines to customers"""

    def test_charge_without_credit_then_waive(self, fine_service, sample_fine, sample_customer, db_session, clock):
        """
        SCENARIO: A 60.00 fine is charged with no credit on account, then waived
        EXPECTED: Charged with the full amount outstanding and the cost posted;
                  the waiver removes the cost, posts no refunds and voids the charge
        """
        fine = fine_service.charge(sample_fine.id)
        db_session.commit()

        charge = fine_service.get_charge(fine)
        assert fine.status == FineStatus.CHARGED
        assert fine.charged_at == clock.now()
        assert charge.reference == f"FINE-{fine.id}"
        assert charge.category == LedgerCategory.FINE
        assert charge.entry_date == date(2024, 2, 10)
        assert charge.due_date == date(2024, 3, 10)
        assert charge.remaining_amount == Decimal("60.00")
        assert len(fine_costs(db_session, fine)) == 1

        fine_service.waive(fine.id)
        db_session.commit()

        assert fine.status == FineStatus.WAIVED
        assert fine.waived_at == clock.now()
        assert fine.resolved_at == clock.now()
        assert fine_costs(db_session, fine) == []
        assert fine_refunds(db_session) == []
        assert charge.voided_at is not None
        assert LedgerRepository(db_session).get_open_charges_for_customer(sample_customer.id) == []

    def test_paid_fine_waived_once(self, fine_service, allocation_service, sample_fine, sample_customer, db_session):
        """
        SCENARIO: The charged fine is paid in full, then waived twice
        EXPECTED: Paid through settlement; the waiver posts exactly one -60.00
                  refund and the repeat is rejected without a second refund
        """
        fine_service.charge(sample_fine.id)
        db_session.commit()

        payment = create_test_payment(db_session, sample_customer, "60.00", date(2024, 3, 1),
                                      payment_type=PaymentType.FINE)
        allocation_service.apply_payment(payment.id)

        assert sample_fine.status == FineStatus.PAID
        assert sample_fine.resolved_at is not None

        fine_service.waive(sample_fine.id)
        db_session.commit()

        (refund,) = fine_refunds(db_session)
        assert refund.amount == Decimal("-60.00")
        assert refund.source_ref == f"refund:{sample_fine.id}:{payment.id}"
        assert sample_fine.status == FineStatus.WAIVED

        with pytest.raises(FineAlreadyProcessedError):
            fine_service.waive(sample_fine.id)
        db_session.rollback()

        assert len(fine_refunds(db_session)) == 1

    def test_double_charge_creates_one_charge(self, fine_service, sample_fine, sample_customer, db_session):
        """
        SCENARIO: The same charge action arrives twice
        EXPECTED: One FINE- charge and one cost posting; the repeat reports AlreadyProcessed
        """
        first = fine_service.apply_fine_action(sample_fine.id, "charge")
        second = fine_service.apply_fine_action(sample_fine.id, "charge")

        assert first.success
        assert not second.success
        assert second.error_code == "AlreadyProcessed"
        assert second.status == FineStatus.CHARGED.value

        charges, total = LedgerRepository(db_session).list_entries_for_customer(sample_customer.id)
        assert total == 1
        assert len(fine_costs(db_session, sample_fine)) == 1

    def test_existing_credit_pays_fine_immediately(
        self, fine_service, allocation_service, sample_fine, sample_customer, db_session, clock
    ):
        payment = create_test_payment(db_session, sample_customer, "100.00", date(2024, 1, 15))
        allocation_service.apply_payment(payment.id)

        fine = fine_service.charge(sample_fine.id)
        db_session.commit()

        assert fine.status == FineStatus.PAID
        assert fine.resolved_at == clock.now()
        assert fine_service.get_charge(fine).remaining_amount == Decimal("0.00")
        assert payment.remaining_amount == Decimal("40.00")

    def test_business_liability_cannot_be_charged(self, fine_service, sample_vehicle, sample_customer, db_session):
        fine = create_test_fine(db_session, sample_vehicle, sample_customer, liability=FineLiability.BUSINESS)

        with pytest.raises(NotCustomerLiabilityError):
            fine_service.charge(fine.id)

    def test_fine_without_customer_cannot_be_charged(self, fine_service, sample_vehicle, db_session):
        fine = create_test_fine(db_session, sample_vehicle)

        with pytest.raises(NoCustomerAssignedError):
            fine_service.charge(fine.id)


class TestAppealFlow:
    """Test the appeal path"""

    def test_appeal_only_from_open(self, fine_service, sample_fine, db_session):
        fine_service.charge(sample_fine.id)

        with pytest.raises(InvalidFineTransitionError):
            fine_service.appeal(sample_fine.id)

    def test_rejected_appeal_can_be_charged(self, fine_service, sample_fine, db_session, clock):
        fine_service.appeal(sample_fine.id)
        assert sample_fine.appealed_at == clock.now()
        fine_service.submit_appeal(sample_fine.id)
        fine_service.appeal_rejected(sample_fine.id)

        fine = fine_service.charge(sample_fine.id)

        assert fine.status == FineStatus.CHARGED

    def test_successful_appeal_closes_without_waived_stamp(self, fine_service, sample_fine, db_session):
        fine_service.appeal(sample_fine.id)
        fine_service.submit_appeal(sample_fine.id)

        fine = fine_service.appeal_successful(sample_fine.id)

        assert fine.status == FineStatus.APPEAL_SUCCESSFUL
        assert fine.waived_at is None
        assert fine.resolved_at is not None
        assert fine_service.get_charge(fine) is None


class TestAuthorityPayments:
    """Test payments made to the issuing authority"""

    def test_authority_payment_posts_cost_and_blocks_waive(self, fine_service, sample_fine, db_session):
        authority_payment = fine_service.record_authority_payment(
            sample_fine.id, Decimal("60.00"), date(2024, 2, 20), payment_method="Card"
        )

        (cost,) = pnl_entries(db_session, source_ref=f"authority:{authority_payment.id}")
        assert cost.side == PnLSide.COST
        assert cost.amount == Decimal("60.00")
        assert cost.entry_date == date(2024, 2, 20)

        with pytest.raises(AuthorityPaymentExistsError):
            fine_service.waive(sample_fine.id)


class TestApplyFineAction:
    """The result-returning entry point"""

    def test_success_reports_amounts(self, fine_service, sample_fine):
        result = fine_service.apply_fine_action(sample_fine.id, "charge")

        assert result.success
        assert result.status == "Charged"
        assert result.charged_amount == Decimal("60.00")
        assert result.remaining_amount == Decimal("60.00")
        assert result.error is None

    def test_charge_reports_remainder_after_credit(
        self, fine_service, allocation_service, sample_fine, sample_customer, db_session
    ):
        payment = create_test_payment(db_session, sample_customer, "40.00", date(2024, 1, 15))
        allocation_service.apply_payment(payment.id)

        result = fine_service.apply_fine_action(sample_fine.id, "charge")

        assert result.status == "Charged"
        assert result.charged_amount == Decimal("60.00")
        assert result.remaining_amount == Decimal("20.00")

    def test_waive_reports_no_amounts(self, fine_service, sample_fine):
        """
        SCENARIO: A charged fine is waived through the entry point
        EXPECTED: Success with status Waived; amounts are only reported for a charge
        """
        fine_service.apply_fine_action(sample_fine.id, "charge")

        result = fine_service.apply_fine_action(sample_fine.id, "waive")

        assert result.success
        assert result.status == "Waived"
        assert result.charged_amount == Decimal("0")
        assert result.remaining_amount == Decimal("0")

    def test_appeal_reports_no_amounts(self, fine_service, sample_fine):
        result = fine_service.apply_fine_action(sample_fine.id, "appeal")

        assert result.success
        assert result.status == "Appealed"
        assert (result.charged_amount, result.remaining_amount) == (Decimal("0"), Decimal("0"))

    def test_rejected_charge_reports_no_amounts(self, fine_service, sample_fine):
        fine_service.apply_fine_action(sample_fine.id, "charge")
        fine_service.apply_fine_action(sample_fine.id, "waive")

        result = fine_service.apply_fine_action(sample_fine.id, "charge")

        assert not result.success
        assert result.error_code == "AlreadyProcessed"
        assert result.status == "Waived"
        assert (result.charged_amount, result.remaining_amount) == (Decimal("0"), Decimal("0"))

    def test_unknown_action(self, fine_service, sample_fine):
        result = fine_service.apply_fine_action(sample_fine.id, "shred")

        assert not result.success
        assert result.error_code == "InvalidTransition"
        assert result.status == "Open"

    def test_unknown_fine(self, fine_service):
        result = fine_service.apply_fine_action(999, "waive")

        assert not result.success
        assert result.error_code == "NotFound"
        assert result.status is None

    def test_failed_action_rolls_back(self, fine_service, sample_vehicle, db_session):
        fine = create_test_fine(db_session, sample_vehicle)

        result = fine_service.apply_fine_action(fine.id, "charge")

        assert result.error_code == "NoCustomerAssigned"
        assert fine_service.get_fine(fine.id).status == FineStatus.OPEN
