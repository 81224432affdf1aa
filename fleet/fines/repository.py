# fleet/fines/repository.py

from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet.fines.exceptions import FineNotFoundError
from fleet.fines.models import AuthorityPayment, Fine, FineStatus
from fleet.utils.logger import get_logger

logger = get_logger(__name__)


class FineRepository:
    """Data Access Layer for fines and authority payments."""

    def __init__(self, db: Session):
        self.db = db

    def create_fine(self, fine: Fine) -> Fine:
        self.db.add(fine)
        self.db.flush()
        self.db.refresh(fine)
        logger.info("Created new Fine", fine_id=fine.id, vehicle_id=fine.vehicle_id, amount=str(fine.amount))
        return fine

    def get_fine_by_id(self, fine_id: int, for_update: bool = False) -> Fine:
        """
        Fetches a single fine by its ID.
        Raises FineNotFoundError if not found.
        """
        stmt = select(Fine).where(Fine.id == fine_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        fine = self.db.execute(stmt).scalar_one_or_none()
        if not fine:
            raise FineNotFoundError(fine_id=fine_id)
        return fine

    def find_fine(self, fine_id: int) -> Optional[Fine]:
        return self.db.get(Fine, fine_id)

    def list_fines(
        self,
        customer_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        status: Optional[FineStatus] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
    ) -> Tuple[List[Fine], int]:
        stmt = select(Fine)
        if customer_id:
            stmt = stmt.where(Fine.customer_id == customer_id)
        if vehicle_id:
            stmt = stmt.where(Fine.vehicle_id == vehicle_id)
        if status:
            stmt = stmt.where(Fine.status == status)

        total_items = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar()

        stmt = stmt.order_by(Fine.issue_date.desc(), Fine.id.desc())
        if page and per_page:
            stmt = stmt.offset((page - 1) * per_page).limit(per_page)
        return list(self.db.execute(stmt).scalars().all()), total_items

    def create_authority_payment(self, authority_payment: AuthorityPayment) -> AuthorityPayment:
        self.db.add(authority_payment)
        self.db.flush()
        self.db.refresh(authority_payment)
        logger.info(
            "Created AuthorityPayment",
            authority_payment_id=authority_payment.id,
            fine_id=authority_payment.fine_id,
            amount=str(authority_payment.amount),
        )
        return authority_payment

    def authority_payment_exists(self, fine_id: int) -> bool:
        stmt = select(func.count()).select_from(AuthorityPayment).where(AuthorityPayment.fine_id == fine_id)
        return self.db.execute(stmt).scalar() > 0
