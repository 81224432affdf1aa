# fleet/pnl/models.py

from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Boolean, Date, Enum, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet.core.db import AuditMixin, Base


class PnLSide(str, PyEnum):
    REVENUE = "Revenue"
    COST = "Cost"


class PnLCategory(str, PyEnum):
    RENTAL = "Rental"
    INITIAL_FEES = "Initial Fees"
    FINES = "Fines"


class PnLEntry(Base, AuditMixin):
    """
    Per-vehicle profit and loss posting derived from ledger events.

    Derived data: every row can be rebuilt from payments, applications and
    fines. reference is the idempotency key, "{source_ref}:{side}:{category}"
    for ordinary postings and a timestamped key for refund reversals.
    """

    __tablename__ = "pnl_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    vehicle_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("vehicles.id"), nullable=True, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("customers.id"), nullable=True, index=True)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    side: Mapped[PnLSide] = mapped_column(Enum(PnLSide), nullable=False)
    category: Mapped[PnLCategory] = mapped_column(Enum(PnLCategory), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="Negative for reversals")

    source_ref: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True,
        comment="Originating event, e.g. payment:12, application:12:40, fine:7"
    )
    reference: Mapped[str] = mapped_column(String(191), nullable=False, unique=True)
    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_pnl_vehicle_side_category", "vehicle_id", "side", "category"),
    )

    def __repr__(self) -> str:
        return (
            f"<PnLEntry(id={self.id}, side='{self.side}', category='{self.category}', "
            f"amount={self.amount}, reference='{self.reference}')>"
        )
