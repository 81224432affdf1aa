# fleet/fines/models.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet.core.db import AuditMixin, Base


class FineType(str, PyEnum):
    PCN = "PCN"
    SPEEDING = "Speeding"
    OTHER = "Other"


class FineLiability(str, PyEnum):
    """Who ultimately bears the fine."""
    CUSTOMER = "Customer"
    BUSINESS = "Business"


class FineStatus(str, PyEnum):
    """Closed set of fine states. Transitions live in fleet.fines.state_machine."""
    OPEN = "Open"
    APPEALED = "Appealed"
    APPEAL_SUBMITTED = "Appeal Submitted"
    APPEAL_SUCCESSFUL = "Appeal Successful"
    APPEAL_REJECTED = "Appeal Rejected"
    CHARGED = "Charged"
    PAID = "Paid"
    WAIVED = "Waived"


class Fine(Base, AuditMixin):
    """
    A penalty notice against a vehicle, optionally attributed to the customer
    renting it at the time. Charging a customer-liability fine creates the
    FINE-{id} charge on the customer's ledger.
    """
    __tablename__ = "fines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # --- Entity Links ---
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    vehicle_id: Mapped[int] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)

    # --- Notice Details ---
    type: Mapped[FineType] = mapped_column(Enum(FineType), nullable=False, default=FineType.PCN)
    reference_no: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True, comment="Authority's notice number")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    liability: Mapped[FineLiability] = mapped_column(
        Enum(FineLiability), nullable=False, default=FineLiability.CUSTOMER
    )
    status: Mapped[FineStatus] = mapped_column(
        Enum(FineStatus), nullable=False, default=FineStatus.OPEN, index=True
    )

    # --- Lifecycle Stamps ---
    charged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    appealed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    waived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    customer: Mapped[Optional["Customer"]] = relationship(lazy="select")
    vehicle: Mapped["Vehicle"] = relationship(lazy="select")
    authority_payments: Mapped[list["AuthorityPayment"]] = relationship(
        back_populates="fine",
        lazy="select",
        order_by="AuthorityPayment.id",
    )

    @property
    def charge_reference(self) -> str:
        return f"FINE-{self.id}"

    def __repr__(self) -> str:
        return f"<Fine(id={self.id}, vehicle_id={self.vehicle_id}, amount={self.amount}, status='{self.status}')>"


class AuthorityPayment(Base, AuditMixin):
    """Money paid by the business to the issuing authority for a fine."""
    __tablename__ = "authority_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    fine_id: Mapped[int] = mapped_column(Integer, ForeignKey("fines.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    fine: Mapped["Fine"] = relationship(back_populates="authority_payments", lazy="select")
