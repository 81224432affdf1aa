# fleet/vehicles/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Date, Enum, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet.core.db import AuditMixin, Base


class VehicleStatus(str, PyEnum):
    """Fleet availability of a vehicle."""

    AVAILABLE = "Available"
    RENTED = "Rented"
    MAINTENANCE = "Maintenance"
    SOLD = "Sold"


class Vehicle(Base, AuditMixin):
    """A fleet asset. Target of ledger entries and P&L postings."""

    __tablename__ = "vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    reg: Mapped[str] = mapped_column(String(16), unique=True, nullable=False, index=True, comment="Registration plate")
    make: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[VehicleStatus] = mapped_column(
        Enum(VehicleStatus), nullable=False, default=VehicleStatus.AVAILABLE, index=True
    )
    purchase_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    acquisition_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, reg='{self.reg}', status='{self.status}')>"
