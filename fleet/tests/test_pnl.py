# fleet/tests/test_pnl.py

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from fleet.core.idempotency import InsertResult
from fleet.ledger.models import LedgerCategory
from fleet.pnl.models import PnLCategory, PnLSide
from fleet.pnl.services import PnLService, posting_reference
from fleet.tests.factories import create_test_fine, create_test_payment, pnl_entries


@pytest.fixture
def pnl_service(db_session):
    """P&L service fixture"""
    return PnLService(db_session)


class TestPostings:
    """Test idempotent postings"""

    def test_initial_fee_posted_once(self, pnl_service, sample_customer, sample_vehicle, db_session):
        payment = create_test_payment(db_session, sample_customer, "500.00", date(2024, 1, 1), vehicle=sample_vehicle)

        assert pnl_service.post_initial_fee(payment) == InsertResult.CREATED
        assert pnl_service.post_initial_fee(payment) == InsertResult.SKIPPED

        entries = pnl_entries(db_session, category=PnLCategory.INITIAL_FEES)
        assert len(entries) == 1
        assert entries[0].reference == f"payment:{payment.id}:Revenue:Initial Fees"
        assert entries[0].amount == Decimal("500.00")
        assert entries[0].entry_date == date(2024, 1, 1)

    def test_application_revenue_uses_charge_category(self, pnl_service, db_session):
        charge = SimpleNamespace(id=40, category=LedgerCategory.FINE, vehicle_id=None, customer_id=None)
        payment = SimpleNamespace(id=12, payment_date=date(2024, 2, 1), vehicle_id=None)
        application = SimpleNamespace(amount_applied=Decimal("35.00"))

        assert pnl_service.post_application_revenue(application, charge, payment) == InsertResult.CREATED

        (entry,) = pnl_entries(db_session)
        assert (entry.side, entry.category, entry.amount) == (PnLSide.REVENUE, PnLCategory.FINES, Decimal("35.00"))
        assert entry.source_ref == "application:12:40"

    def test_other_category_has_no_posting(self, pnl_service, db_session):
        charge = SimpleNamespace(id=41, category=LedgerCategory.OTHER, vehicle_id=None, customer_id=None)
        payment = SimpleNamespace(id=13, payment_date=date(2024, 2, 1), vehicle_id=None)

        assert pnl_service.post_application_revenue(SimpleNamespace(amount_applied=Decimal("5")), charge, payment) is None
        assert pnl_entries(db_session) == []

    def test_fine_cost_and_cancel(self, pnl_service, sample_customer, sample_vehicle, db_session):
        fine = create_test_fine(db_session, sample_vehicle, sample_customer)

        assert pnl_service.post_fine_cost(fine) == InsertResult.CREATED
        assert pnl_service.post_fine_cost(fine) == InsertResult.SKIPPED
        (cost,) = pnl_entries(db_session, side=PnLSide.COST)
        assert cost.amount == Decimal("60.00")
        assert cost.entry_date == fine.issue_date

        assert pnl_service.cancel_fine_cost(fine) is True
        assert pnl_service.cancel_fine_cost(fine) is False
        assert pnl_entries(db_session, side=PnLSide.COST) == []

    def test_refund_reversal_posted_once_per_payment(self, pnl_service, sample_customer, sample_vehicle, db_session):
        fine = create_test_fine(db_session, sample_vehicle, sample_customer)
        application = SimpleNamespace(payment_id=7, amount_applied=Decimal("60.00"))

        first = pnl_service.post_fine_refund(fine, application, datetime(2024, 3, 1, 9, tzinfo=timezone.utc))
        second = pnl_service.post_fine_refund(fine, application, datetime(2024, 3, 2, 9, tzinfo=timezone.utc))

        assert first == InsertResult.CREATED
        assert second == InsertResult.SKIPPED
        (refund,) = pnl_entries(db_session, is_reversal=True)
        assert refund.amount == Decimal("-60.00")
        assert refund.source_ref == f"refund:{fine.id}:7"
        assert refund.reference.startswith(f"refund:{fine.id}:7:")

    def test_posting_reference_format(self):
        assert posting_reference("fine:3", PnLSide.COST, PnLCategory.FINES) == "fine:3:Cost:Fines"


class TestSafePosting:
    """Posting failures must not escape"""

    def test_failure_is_swallowed(self, pnl_service, sample_customer, db_session):
        def broken_posting():
            raise RuntimeError("boom")

        assert pnl_service.post_safely(broken_posting) is None

    def test_success_passes_result_through(self, pnl_service, sample_customer, sample_vehicle, db_session):
        payment = create_test_payment(db_session, sample_customer, "20.00", date(2024, 1, 1), vehicle=sample_vehicle)

        assert pnl_service.post_safely(pnl_service.post_initial_fee, payment) == InsertResult.CREATED


class TestVehicleSummary:
    """Test per-vehicle totals"""

    def test_summary_nets_revenue_and_cost(self, pnl_service, sample_customer, sample_vehicle, db_session):
        payment = create_test_payment(db_session, sample_customer, "500.00", date(2024, 1, 1), vehicle=sample_vehicle)
        pnl_service.post_initial_fee(payment)
        pnl_service.post_fine_cost(create_test_fine(db_session, sample_vehicle, sample_customer))
        db_session.commit()

        summary = pnl_service.vehicle_summary(sample_vehicle.id)

        assert summary.revenue == {"Initial Fees": Decimal("500.00")}
        assert summary.cost == {"Fines": Decimal("60.00")}
        assert summary.total_revenue == Decimal("500.00")
        assert summary.total_cost == Decimal("60.00")
        assert summary.net == Decimal("440.00")
