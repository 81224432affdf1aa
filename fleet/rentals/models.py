# fleet/rentals/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Date, Enum, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet.core.db import AuditMixin, Base


class RentalStatus(str, PyEnum):
    """Lifecycle of a rental agreement."""

    ACTIVE = "Active"
    CLOSED = "Closed"


class Rental(Base, AuditMixin):
    """
    Agreement linking one customer to one vehicle for [start_date, end_date).
    Generates one Rental-category charge per month.
    """

    __tablename__ = "rentals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, comment="Exclusive end; open-ended when null")
    monthly_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[RentalStatus] = mapped_column(
        Enum(RentalStatus), nullable=False, default=RentalStatus.ACTIVE, index=True
    )

    customer: Mapped["Customer"] = relationship(back_populates="rentals", lazy="select")
    vehicle: Mapped["Vehicle"] = relationship(lazy="select")

    def __repr__(self) -> str:
        return (
            f"<Rental(id={self.id}, customer_id={self.customer_id}, vehicle_id={self.vehicle_id}, "
            f"status='{self.status}')>"
        )
