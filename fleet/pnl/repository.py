# fleet/pnl/repository.py

from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from fleet.pnl.models import PnLCategory, PnLEntry, PnLSide
from fleet.utils.logger import get_logger

logger = get_logger(__name__)


class PnLRepository:
    """Data Access Layer for P&L postings."""

    def __init__(self, db: Session):
        self.db = db

    def exists_by_reference(self, reference: str) -> bool:
        stmt = select(func.count()).select_from(PnLEntry).where(PnLEntry.reference == reference)
        return self.db.execute(stmt).scalar() > 0

    def reversal_exists(self, source_ref: str) -> bool:
        stmt = select(func.count()).select_from(PnLEntry).where(
            PnLEntry.source_ref == source_ref,
            PnLEntry.is_reversal.is_(True),
        )
        return self.db.execute(stmt).scalar() > 0

    def create_entry(self, entry: PnLEntry) -> PnLEntry:
        self.db.add(entry)
        self.db.flush()
        logger.info(
            "Created PnLEntry",
            reference=entry.reference,
            side=entry.side.value,
            category=entry.category.value,
            amount=str(entry.amount),
        )
        return entry

    def delete_by_reference(self, reference: str) -> int:
        result = self.db.execute(delete(PnLEntry).where(PnLEntry.reference == reference))
        self.db.flush()
        return result.rowcount or 0

    def totals_for_vehicle(self, vehicle_id: int) -> List[Tuple[PnLSide, PnLCategory, Decimal]]:
        stmt = (
            select(PnLEntry.side, PnLEntry.category, func.sum(PnLEntry.amount))
            .where(PnLEntry.vehicle_id == vehicle_id)
            .group_by(PnLEntry.side, PnLEntry.category)
        )
        return [(side, category, Decimal(str(total or 0))) for side, category, total in self.db.execute(stmt).all()]
