# fleet/tests/factories.py

"""Helpers that build committed test rows through the real services."""

from datetime import date
from decimal import Decimal

from sqlalchemy import select

from fleet.fines.models import Fine, FineLiability, FineStatus, FineType
from fleet.ledger.models import LedgerCategory
from fleet.ledger.services import LedgerService
from fleet.payments.models import PaymentApplication, PaymentMethod, PaymentType
from fleet.payments.services import PaymentService
from fleet.pnl.models import PnLEntry


def create_test_charge(db_session, customer, amount, due_date, vehicle=None, rental=None,
                       category=LedgerCategory.RENTAL, entry_date=None, reference=None):
    """Helper to create a committed charge."""
    charge, _ = LedgerService(db_session).create_charge(
        customer_id=customer.id,
        category=category,
        amount=Decimal(str(amount)),
        entry_date=entry_date or due_date,
        due_date=due_date,
        vehicle_id=vehicle.id if vehicle else None,
        rental_id=rental.id if rental else None,
        reference=reference,
    )
    db_session.commit()
    return charge


def create_test_payment(db_session, customer, amount, payment_date, payment_type=PaymentType.RENTAL,
                        vehicle=None, rental=None):
    """Helper to create a committed, not yet applied, payment."""
    payment = PaymentService(db_session).create_payment(
        customer_id=customer.id,
        amount=Decimal(str(amount)),
        payment_date=payment_date,
        payment_type=payment_type,
        method=PaymentMethod.BANK_TRANSFER,
        vehicle_id=vehicle.id if vehicle else None,
        rental_id=rental.id if rental else None,
    )
    db_session.commit()
    return payment


def create_test_fine(db_session, vehicle, customer=None, amount="60.00",
                     liability=FineLiability.CUSTOMER, status=FineStatus.OPEN):
    """Helper to create a committed fine."""
    fine = Fine(
        vehicle_id=vehicle.id,
        customer_id=customer.id if customer else None,
        type=FineType.PCN,
        reference_no="PCN-2024-001",
        amount=Decimal(amount),
        issue_date=date(2024, 2, 10),
        due_date=date(2024, 3, 10),
        liability=liability,
        status=status,
    )
    db_session.add(fine)
    db_session.commit()
    return fine


def applications_for(db_session, payment_id=None, charge_id=None):
    stmt = select(PaymentApplication).order_by(PaymentApplication.id)
    if payment_id is not None:
        stmt = stmt.where(PaymentApplication.payment_id == payment_id)
    if charge_id is not None:
        stmt = stmt.where(PaymentApplication.charge_entry_id == charge_id)
    return list(db_session.execute(stmt).scalars().all())


def pnl_entries(db_session, **filters):
    stmt = select(PnLEntry).order_by(PnLEntry.id)
    for column, value in filters.items():
        stmt = stmt.where(getattr(PnLEntry, column) == value)
    return list(db_session.execute(stmt).scalars().all())
