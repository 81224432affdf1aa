# fleet/ledger/models.py

"""
Customer ledger - SQLAlchemy 2.x

One table holds both sides of a customer's account:
- Charge entries: obligations with a mutable remaining_amount that the
  allocation engine draws down.
- Payment entries: mirrors of received payments (negative amount) so that the
  ledger alone yields the customer's net position.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet.core.db import AuditMixin, Base


class EntryType(str, PyEnum):
    """Side of the customer account an entry sits on."""

    CHARGE = "Charge"
    PAYMENT = "Payment"


class LedgerCategory(str, PyEnum):
    """What a charge (or mirrored payment) is for."""

    RENTAL = "Rental"
    INITIAL_FEES = "Initial Fees"
    FINE = "Fine"
    OTHER = "Other"


class LedgerEntry(Base, AuditMixin):
    """
    Canonical event record for a customer's account.

    Core rules:
    - Charges start with remaining_amount == amount and are only drawn down by
      the allocation engine; 0 <= remaining_amount <= amount at all times.
    - A charge is fully settled iff remaining_amount == 0.
    - reference is the idempotency key for generated charges (FINE-{id},
      RENTAL-{rental}-{due}); payment_id is the key for payment mirrors.
    - Entries are never deleted. A waived fine's charge is stamped voided_at and
      drops out of the open-charge pool, keeping its amounts as history.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # --- Entity Links ---
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=True, index=True)
    rental_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("rentals.id"), nullable=True, index=True)
    payment_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("payments.id"), nullable=True, unique=True,
        comment="Back-reference when this entry mirrors a payment"
    )

    # --- Dates ---
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)

    # --- Classification ---
    type: Mapped[EntryType] = mapped_column(Enum(EntryType), nullable=False, index=True)
    category: Mapped[LedgerCategory] = mapped_column(Enum(LedgerCategory), nullable=False, index=True)

    # --- Amounts ---
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False,
        comment="Signed: positive for charges, negative for mirrored payments"
    )
    remaining_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"),
        comment="Unsettled portion of a charge; always 0 for payment mirrors"
    )

    reference: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, unique=True,
        comment="Idempotency key for generated charges"
    )
    voided_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="Set when the originating fine was waived"
    )

    customer: Mapped["Customer"] = relationship(lazy="select")
    vehicle: Mapped[Optional["Vehicle"]] = relationship(lazy="select")

    __table_args__ = (
        CheckConstraint("remaining_amount >= 0", name="ck_ledger_remaining_non_negative"),
        Index("idx_ledger_customer_type_remaining", "customer_id", "type", "remaining_amount"),
        Index("idx_ledger_rental_due", "rental_id", "due_date"),
    )

    @property
    def is_open(self) -> bool:
        return (
            self.type == EntryType.CHARGE
            and self.voided_at is None
            and Decimal(self.remaining_amount) > 0
        )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, type='{self.type}', category='{self.category}', "
            f"amount={self.amount}, remaining={self.remaining_amount})>"
        )
