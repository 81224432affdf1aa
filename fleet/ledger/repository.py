# fleet/ledger/repository.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet.ledger.exceptions import ChargeNotFoundError
from fleet.ledger.models import EntryType, LedgerCategory, LedgerEntry
from fleet.utils.logger import get_logger

logger = get_logger(__name__)


class LedgerRepository:
    """
    Data Access Layer for the customer ledger.
    Handles all database interactions for LedgerEntry. Writes only flush;
    the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Adds a new LedgerEntry to the session and flushes it to get an id."""
        self.db.add(entry)
        self.db.flush()
        self.db.refresh(entry)
        logger.info(
            "Created new LedgerEntry",
            entry_id=entry.id,
            type=entry.type.value,
            category=entry.category.value,
            amount=str(entry.amount),
        )
        return entry

    def get_entry_by_id(self, entry_id: int, for_update: bool = False) -> LedgerEntry:
        """
        Fetches a single ledger entry by its ID.
        Raises ChargeNotFoundError if not found.
        """
        stmt = select(LedgerEntry).where(LedgerEntry.id == entry_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        entry = self.db.execute(stmt).scalar_one_or_none()
        if not entry:
            raise ChargeNotFoundError(charge_id=entry_id)
        return entry

    def get_charge_by_reference(self, reference: str) -> Optional[LedgerEntry]:
        """Returns the charge carrying the given idempotency reference, or None."""
        stmt = select(LedgerEntry).where(
            LedgerEntry.reference == reference,
            LedgerEntry.type == EntryType.CHARGE,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_mirror_for_payment(self, payment_id: int) -> Optional[LedgerEntry]:
        """Returns the Payment-type entry mirroring the given payment, or None."""
        stmt = select(LedgerEntry).where(
            LedgerEntry.payment_id == payment_id,
            LedgerEntry.type == EntryType.PAYMENT,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def update_remaining(self, entry: LedgerEntry, new_remaining: Decimal) -> LedgerEntry:
        """Persists a new remaining_amount on a charge."""
        entry.remaining_amount = new_remaining
        self.db.flush()
        return entry

    def mark_voided(self, entry: LedgerEntry, voided_at: datetime) -> LedgerEntry:
        entry.voided_at = voided_at
        self.db.flush()
        logger.info("Voided LedgerEntry", entry_id=entry.id, reference=entry.reference)
        return entry

    def get_open_charges_for_customer(
        self,
        customer_id: int,
        rental_id: Optional[int] = None,
        exclude_ids: Optional[List[int]] = None,
        for_update: bool = False,
    ) -> List[LedgerEntry]:
        """
        Fetches every open (remaining > 0, not voided) charge for a customer.
        Ordering is left to the allocation engine's FIFO comparator.
        """
        stmt = select(LedgerEntry).where(
            LedgerEntry.customer_id == customer_id,
            LedgerEntry.type == EntryType.CHARGE,
            LedgerEntry.remaining_amount > 0,
            LedgerEntry.voided_at.is_(None),
        )
        if rental_id:
            stmt = stmt.where(LedgerEntry.rental_id == rental_id)
        if exclude_ids:
            stmt = stmt.where(LedgerEntry.id.not_in(exclude_ids))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        stmt = stmt.order_by(LedgerEntry.id)
        return list(self.db.execute(stmt).scalars().all())

    def list_entries_for_customer(
        self,
        customer_id: int,
        entry_type: Optional[EntryType] = None,
        category: Optional[LedgerCategory] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        open_only: bool = False,
        include_voided: bool = True,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
    ) -> Tuple[List[LedgerEntry], int]:
        """
        Fetches a filtered, paginated list of a customer's ledger entries in
        entry order.
        """
        stmt = select(LedgerEntry).where(LedgerEntry.customer_id == customer_id)

        if entry_type:
            stmt = stmt.where(LedgerEntry.type == entry_type)
        if category:
            stmt = stmt.where(LedgerEntry.category == category)
        if start_date:
            stmt = stmt.where(LedgerEntry.entry_date >= start_date)
        if end_date:
            stmt = stmt.where(LedgerEntry.entry_date <= end_date)
        if open_only:
            stmt = stmt.where(LedgerEntry.remaining_amount > 0)
        if not include_voided:
            stmt = stmt.where(LedgerEntry.voided_at.is_(None))

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total_items = self.db.execute(count_stmt).scalar()

        stmt = stmt.order_by(LedgerEntry.entry_date.asc(), LedgerEntry.id.asc())

        if page and per_page:
            stmt = stmt.offset((page - 1) * per_page).limit(per_page)

        entries = list(self.db.execute(stmt).scalars().all())
        return entries, total_items
