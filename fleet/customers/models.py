# fleet/customers/models.py

from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet.core.db import AuditMixin, Base


class CustomerStatus(str, PyEnum):
    """Active while the customer holds at least one active rental."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class Customer(Base, AuditMixin):
    """A renter. Owns rentals, payments, fines and ledger entries."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Full or company name")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[CustomerStatus] = mapped_column(
        Enum(CustomerStatus), nullable=False, default=CustomerStatus.INACTIVE, index=True,
        comment="Derived from having an active rental"
    )

    rentals: Mapped[list["Rental"]] = relationship(back_populates="customer", lazy="select")

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name='{self.name}', status='{self.status}')>"
