# fleet/payments/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet.core.db import AuditMixin, Base


class PaymentType(str, PyEnum):
    """What the customer says the money is for."""
    RENTAL = "Rental"
    INITIAL_FEE = "InitialFee"
    FINE = "Fine"


class PaymentMethod(str, PyEnum):
    """Enumeration for the payment method used."""
    CASH = "Cash"
    CARD = "Card"
    BANK_TRANSFER = "Bank Transfer"
    OTHER = "Other"


class PaymentStatus(str, PyEnum):
    """
    Derived allocation status of a payment.
    Always computed by payment_status_for(); never set by hand.
    """
    APPLIED = "Applied"
    PARTIAL = "Partial"
    CREDIT = "Credit"


class Payment(Base, AuditMixin):
    """
    A sum received from a customer. The allocation engine draws
    remaining_amount down as it settles open charges; whatever is left is
    standing credit for the customer.
    """
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # --- Entity Links ---
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    rental_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("rentals.id"), nullable=True, index=True)
    vehicle_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=True, index=True)

    # --- Payment Details ---
    payment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="The total amount received from the customer.")
    payment_type: Mapped[PaymentType] = mapped_column(Enum(PaymentType), nullable=False, index=True)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.OTHER)
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # --- Allocation Tracking ---
    remaining_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Portion not yet applied to any charge"
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.CREDIT,
        index=True,
    )

    # --- Relationships ---
    customer: Mapped["Customer"] = relationship(lazy="select")
    applications: Mapped[list["PaymentApplication"]] = relationship(
        back_populates="payment",
        lazy="select",
        order_by="PaymentApplication.id",
    )

    __table_args__ = (
        CheckConstraint("remaining_amount >= 0", name="ck_payment_remaining_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, customer_id={self.customer_id}, type='{self.payment_type}', "
            f"amount={self.amount}, remaining={self.remaining_amount}, status='{self.status}')>"
        )


class PaymentApplication(Base, AuditMixin):
    """
    Audit row for one slice of a payment applied to one charge.
    At most one row per (payment, charge) pair.
    """
    __tablename__ = "payment_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    payment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    charge_entry_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ledger_entries.id"),
        nullable=False,
        index=True,
        comment="The Charge ledger entry this slice settled"
    )
    amount_applied: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Relationships
    payment: Mapped["Payment"] = relationship(back_populates="applications", lazy="select")
    charge: Mapped["LedgerEntry"] = relationship(foreign_keys=[charge_entry_id], lazy="select")

    __table_args__ = (
        UniqueConstraint("payment_id", "charge_entry_id", name="uq_payment_application_pair"),
        CheckConstraint("amount_applied > 0", name="ck_application_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentApplication(payment_id={self.payment_id}, "
            f"charge_entry_id={self.charge_entry_id}, amount={self.amount_applied})>"
        )
