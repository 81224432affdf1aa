# fleet/tests/test_ledger.py

import pytest
from datetime import date
from decimal import Decimal

from fleet.core.idempotency import InsertResult
from fleet.ledger.exceptions import (
    ChargeNotFoundError,
    DuplicateReferenceError,
    InsufficientRemainingError,
    InvalidAmountError,
    InvalidLedgerOperationError,
)
from fleet.ledger.models import EntryType, LedgerCategory
from fleet.ledger.repository import LedgerRepository
from fleet.ledger.services import LedgerService
from fleet.tests.factories import create_test_charge, create_test_payment


@pytest.fixture
def ledger_service(db_session, clock):
    """Ledger service fixture"""
    return LedgerService(db_session, clock=clock)


class TestCreateCharge:
    """Test charge creation and its idempotency key"""

    def test_charge_starts_fully_outstanding(self, ledger_service, sample_customer, sample_vehicle, db_session):
        charge, result = ledger_service.create_charge(
            customer_id=sample_customer.id,
            category=LedgerCategory.RENTAL,
            amount=Decimal("1000.00"),
            entry_date=date(2024, 1, 1),
            due_date=date(2024, 1, 1),
            vehicle_id=sample_vehicle.id,
        )
        db_session.commit()

        assert result == InsertResult.CREATED
        assert charge.type == EntryType.CHARGE
        assert charge.amount == Decimal("1000.00")
        assert charge.remaining_amount == Decimal("1000.00")
        assert charge.is_open

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, ledger_service, sample_customer, amount):
        with pytest.raises(InvalidAmountError):
            ledger_service.create_charge(
                customer_id=sample_customer.id,
                category=LedgerCategory.OTHER,
                amount=Decimal(amount),
                entry_date=date(2024, 1, 1),
            )

    def test_repeated_reference_is_skipped(self, ledger_service, sample_customer, db_session):
        """
        SCENARIO: An automated job creates FINE-1 twice
        EXPECTED: One charge; the second call returns it tagged SKIPPED
        """
        first, first_result = ledger_service.create_charge(
            customer_id=sample_customer.id,
            category=LedgerCategory.FINE,
            amount=Decimal("60.00"),
            entry_date=date(2024, 2, 10),
            reference="FINE-1",
        )
        second, second_result = ledger_service.create_charge(
            customer_id=sample_customer.id,
            category=LedgerCategory.FINE,
            amount=Decimal("60.00"),
            entry_date=date(2024, 2, 10),
            reference="FINE-1",
        )

        assert first_result == InsertResult.CREATED
        assert second_result == InsertResult.SKIPPED
        assert first.id == second.id
        entries, total = LedgerRepository(db_session).list_entries_for_customer(sample_customer.id)
        assert total == 1

    def test_strict_duplicate_raises(self, ledger_service, sample_customer):
        create_kwargs = dict(
            customer_id=sample_customer.id,
            category=LedgerCategory.OTHER,
            amount=Decimal("10.00"),
            entry_date=date(2024, 1, 5),
            reference="MANUAL-1",
        )
        ledger_service.create_charge(**create_kwargs)
        with pytest.raises(DuplicateReferenceError):
            ledger_service.create_charge(strict=True, **create_kwargs)


class TestReduceRemaining:
    """Test drawing down a charge's remaining amount"""

    def test_partial_reduction(self, ledger_service, sample_customer, db_session):
        charge = create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))

        ledger_service.reduce_remaining_by_id(charge.id, Decimal("40.00"))

        assert charge.remaining_amount == Decimal("60.00")
        assert charge.is_open

    def test_reduction_to_zero_settles_charge(self, ledger_service, sample_customer, db_session):
        charge = create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))

        ledger_service.reduce_remaining(charge, Decimal("100.00"))

        assert charge.remaining_amount == Decimal("0.00")
        assert not charge.is_open

    def test_over_reduction_raises(self, ledger_service, sample_customer, db_session):
        charge = create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))

        with pytest.raises(InsufficientRemainingError):
            ledger_service.reduce_remaining(charge, Decimal("100.01"))
        assert charge.remaining_amount == Decimal("100.00")

    def test_non_positive_reduction_raises(self, ledger_service, sample_customer, db_session):
        charge = create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))

        with pytest.raises(InvalidAmountError):
            ledger_service.reduce_remaining(charge, Decimal("0"))

    def test_unknown_charge_raises_not_found(self, ledger_service):
        with pytest.raises(ChargeNotFoundError):
            ledger_service.reduce_remaining_by_id(424242, Decimal("1.00"))

    def test_payment_mirror_cannot_be_reduced(self, ledger_service, sample_customer, db_session):
        payment = create_test_payment(db_session, sample_customer, "50.00", date(2024, 1, 1))
        mirror, _ = ledger_service.create_payment_mirror_entry(payment)

        with pytest.raises(InvalidLedgerOperationError):
            ledger_service.reduce_remaining(mirror, Decimal("1.00"))


class TestPaymentMirror:
    """Test the Payment-type ledger rows mirroring received payments"""

    def test_mirror_is_negative_and_idempotent(self, ledger_service, sample_customer, db_session):
        payment = create_test_payment(db_session, sample_customer, "500.00", date(2024, 1, 1))

        mirror, result = ledger_service.create_payment_mirror_entry(payment)
        again, again_result = ledger_service.create_payment_mirror_entry(payment)

        assert result == InsertResult.CREATED
        assert again_result == InsertResult.SKIPPED
        assert mirror.id == again.id
        assert mirror.type == EntryType.PAYMENT
        assert mirror.amount == Decimal("-500.00")
        assert mirror.remaining_amount == Decimal("0.00")
        assert mirror.payment_id == payment.id
        assert mirror.category == LedgerCategory.RENTAL


class TestVoidAndQueries:
    """Test voiding and the open-charge query"""

    def test_voided_charge_leaves_open_pool(self, ledger_service, sample_customer, db_session, clock):
        kept = create_test_charge(db_session, sample_customer, "100.00", date(2024, 1, 1))
        voided = create_test_charge(db_session, sample_customer, "60.00", date(2024, 1, 2),
                                    category=LedgerCategory.FINE, reference="FINE-9")

        ledger_service.void_charge(voided)
        db_session.commit()

        open_ids = [c.id for c in LedgerRepository(db_session).get_open_charges_for_customer(sample_customer.id)]
        assert open_ids == [kept.id]
        assert voided.voided_at == clock.now()
        # Amounts stay as history
        assert voided.remaining_amount == Decimal("60.00")

    def test_void_is_idempotent(self, ledger_service, sample_customer, db_session, clock):
        charge = create_test_charge(db_session, sample_customer, "60.00", date(2024, 1, 2))
        ledger_service.void_charge(charge)
        first_stamp = charge.voided_at

        ledger_service.void_charge(charge)

        assert charge.voided_at == first_stamp

    def test_list_entries_filters_and_paginates(self, ledger_service, sample_customer, db_session):
        for month in (1, 2, 3):
            create_test_charge(db_session, sample_customer, "100.00", date(2024, month, 1))
        payment = create_test_payment(db_session, sample_customer, "100.00", date(2024, 1, 15))
        ledger_service.create_payment_mirror_entry(payment)
        db_session.commit()

        items, total = ledger_service.list_customer_entries(sample_customer.id, page=1, per_page=2)
        assert total == 4
        assert len(items) == 2
        assert items[0].entry_date == date(2024, 1, 1)

        charges, charge_total = ledger_service.list_customer_entries(
            sample_customer.id, entry_type=EntryType.CHARGE
        )
        assert charge_total == 3
        assert all(item.type == EntryType.CHARGE for item in charges)
