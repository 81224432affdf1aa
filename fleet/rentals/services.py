# fleet/rentals/services.py

import calendar
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet.allocation.services import AllocationService
from fleet.core.clock import Clock, SystemClock
from fleet.customers.models import Customer, CustomerStatus
from fleet.ledger.exceptions import InvalidAmountError, LedgerError
from fleet.ledger.models import LedgerCategory, LedgerEntry
from fleet.ledger.services import LedgerService
from fleet.payments.exceptions import CustomerNotFoundError
from fleet.rentals.exceptions import InvalidRentalOperationError, RentalError, RentalNotFoundError
from fleet.rentals.models import Rental, RentalStatus
from fleet.utils.logger import get_logger
from fleet.utils.money import to_money
from fleet.vehicles.models import Vehicle, VehicleStatus

logger = get_logger(__name__)


def rental_charge_reference(rental_id: int, due_date: date) -> str:
    return f"RENTAL-{rental_id}-{due_date.isoformat()}"


def add_months(start: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def monthly_due_dates(start: date, end: Optional[date], through: date) -> List[date]:
    """
    Due dates for a rental: start_date and each monthly anniversary, up to
    and including `through`, stopping before the (exclusive) end date.
    """
    dates = []
    n = 0
    while True:
        due = add_months(start, n)
        if due > through or (end is not None and due >= end):
            break
        dates.append(due)
        n += 1
    return dates


class RentalService:
    """
    Rental agreements and the monthly charges they produce.

    Each monthly charge is keyed RENTAL-{rental}-{due date}, so running the
    generator repeatedly never duplicates a month. Every new charge is
    immediately offered to the customer's standing credit.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.ledger_service = LedgerService(db, clock=self.clock)
        self.allocation_service = AllocationService(db, clock=self.clock)

    def get_rental(self, rental_id: int, for_update: bool = False) -> Rental:
        stmt = select(Rental).where(Rental.id == rental_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        rental = self.db.execute(stmt).scalar_one_or_none()
        if not rental:
            raise RentalNotFoundError(rental_id)
        return rental

    def list_active_rental_ids(self) -> List[int]:
        stmt = select(Rental.id).where(Rental.status == RentalStatus.ACTIVE).order_by(Rental.id)
        return list(self.db.execute(stmt).scalars().all())

    def create_rental(
        self,
        customer_id: int,
        vehicle_id: int,
        start_date: date,
        monthly_amount: Decimal,
        end_date: Optional[date] = None,
    ) -> Rental:
        """Opens a rental, marks the vehicle Rented and the customer Active."""
        monthly_amount = to_money(monthly_amount)
        if monthly_amount <= 0:
            raise InvalidAmountError(f"Monthly amount must be positive, got {monthly_amount}.")
        if end_date and end_date <= start_date:
            raise InvalidRentalOperationError("Rental end date must be after its start date.")

        customer = self.db.get(Customer, customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id=customer_id)
        vehicle = self.db.get(Vehicle, vehicle_id)
        if not vehicle:
            raise InvalidRentalOperationError(f"Vehicle {vehicle_id} not found.")
        if vehicle.status != VehicleStatus.AVAILABLE:
            raise InvalidRentalOperationError(f"Vehicle {vehicle.reg} is not available ({vehicle.status.value}).")

        try:
            rental = Rental(
                customer_id=customer_id,
                vehicle_id=vehicle_id,
                start_date=start_date,
                end_date=end_date,
                monthly_amount=monthly_amount,
                status=RentalStatus.ACTIVE,
            )
            self.db.add(rental)
            vehicle.status = VehicleStatus.RENTED
            customer.status = CustomerStatus.ACTIVE
            self.db.flush()
            self.db.commit()
            logger.info("Created rental", rental_id=rental.id, customer_id=customer_id, vehicle_id=vehicle_id)
            return rental
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to create rental.", error=str(e), exc_info=True)
            raise RentalError(f"Failed to create rental: {str(e)}") from e

    def create_rental_charge(self, rental_id: int, due_date: date, amount: Optional[Decimal] = None) -> LedgerEntry:
        """
        Creates (or finds) the rental's charge for one due date, applies the
        customer's standing credit to it and commits.
        """
        try:
            rental = self.get_rental(rental_id)
            charge, insert_result = self.ledger_service.create_charge(
                customer_id=rental.customer_id,
                category=LedgerCategory.RENTAL,
                amount=amount if amount is not None else rental.monthly_amount,
                entry_date=due_date,
                due_date=due_date,
                vehicle_id=rental.vehicle_id,
                rental_id=rental.id,
                reference=rental_charge_reference(rental.id, due_date),
            )
            if insert_result.created:
                self.allocation_service.allocate_available_credit(
                    rental.customer_id, charge.id, charge.remaining_amount
                )
            self.db.commit()
            return charge
        except (LedgerError, RentalError, CustomerNotFoundError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to create rental charge.", rental_id=rental_id, error=str(e), exc_info=True)
            raise RentalError(f"Failed to create rental charge: {str(e)}") from e

    def generate_rental_charges(self, rental_id: int, through: Optional[date] = None) -> List[LedgerEntry]:
        """Creates every monthly charge due from start_date up to `through` (default today)."""
        through = through or self.clock.today()
        rental = self.get_rental(rental_id)
        charges = [
            self.create_rental_charge(rental.id, due)
            for due in monthly_due_dates(rental.start_date, rental.end_date, through)
        ]
        logger.info("Generated rental charges", rental_id=rental.id, through=through.isoformat(), count=len(charges))
        return charges

    def generate_next_rental_charge(self, rental_id: int) -> Optional[LedgerEntry]:
        """Creates the first monthly charge the rental does not have yet."""
        rental = self.get_rental(rental_id)
        existing = self.db.execute(
            select(func.max(LedgerEntry.due_date)).where(
                LedgerEntry.rental_id == rental.id,
                LedgerEntry.category == LedgerCategory.RENTAL,
            )
        ).scalar()
        due = rental.start_date
        n = 0
        while existing is not None and due <= existing:
            n += 1
            due = add_months(rental.start_date, n)
        if rental.end_date is not None and due >= rental.end_date:
            return None
        return self.create_rental_charge(rental.id, due)

    def close_rental(self, rental_id: int, end_date: Optional[date] = None) -> Rental:
        """
        Closes a rental, frees the vehicle and marks the customer Inactive
        when they have no other active rental.
        """
        try:
            rental = self.get_rental(rental_id, for_update=True)
            if rental.status == RentalStatus.CLOSED:
                raise InvalidRentalOperationError(f"Rental {rental_id} is already closed.")

            rental.end_date = end_date or self.clock.today()
            rental.status = RentalStatus.CLOSED
            vehicle = self.db.get(Vehicle, rental.vehicle_id)
            if vehicle and vehicle.status == VehicleStatus.RENTED:
                vehicle.status = VehicleStatus.AVAILABLE
            self.db.flush()

            still_active = self.db.execute(
                select(func.count()).select_from(Rental).where(
                    Rental.customer_id == rental.customer_id,
                    Rental.status == RentalStatus.ACTIVE,
                )
            ).scalar()
            if not still_active:
                customer = self.db.get(Customer, rental.customer_id)
                customer.status = CustomerStatus.INACTIVE

            self.db.commit()
            logger.info("Closed rental", rental_id=rental.id, end_date=rental.end_date.isoformat())
            return rental
        except RentalError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to close rental.", rental_id=rental_id, error=str(e), exc_info=True)
            raise RentalError(f"Failed to close rental: {str(e)}") from e
