# fleet/pnl/services.py

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from fleet.core.idempotency import InsertResult
from fleet.ledger.models import LedgerCategory
from fleet.pnl.models import PnLCategory, PnLEntry, PnLSide
from fleet.pnl.repository import PnLRepository
from fleet.pnl.schemas import VehiclePnLSummary
from fleet.utils.logger import get_logger
from fleet.utils.money import ZERO, to_money

logger = get_logger(__name__)

CHARGE_TO_PNL_CATEGORY = {
    LedgerCategory.RENTAL: PnLCategory.RENTAL,
    LedgerCategory.FINE: PnLCategory.FINES,
    LedgerCategory.INITIAL_FEES: PnLCategory.INITIAL_FEES,
}


def posting_reference(source_ref: str, side: PnLSide, category: PnLCategory) -> str:
    return f"{source_ref}:{side.value}:{category.value}"


class PnLService:
    """
    Posts per-vehicle P&L entries from ledger events.

    Every insert checks its reference first and reports CREATED or SKIPPED,
    so replaying any event is harmless. Postings are derived data: callers in
    the allocation and fine engines go through post_safely() so that a
    posting failure never undoes the ledger change that triggered it.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PnLRepository(db)

    def post_safely(self, fn: Callable, *args, **kwargs) -> Optional[InsertResult]:
        """Runs one posting inside a SAVEPOINT; failures are logged and dropped."""
        try:
            with self.db.begin_nested():
                return fn(*args, **kwargs)
        except Exception as e:
            logger.error(
                "P&L posting failed, ledger state kept",
                posting=getattr(fn, "__name__", str(fn)),
                error=str(e),
                exc_info=True,
            )
            return None

    def _post(
        self,
        source_ref: str,
        side: PnLSide,
        category: PnLCategory,
        amount: Decimal,
        entry_date: date,
        vehicle_id: Optional[int],
        customer_id: Optional[int],
        reference: Optional[str] = None,
        is_reversal: bool = False,
    ) -> InsertResult:
        reference = reference or posting_reference(source_ref, side, category)
        if self.repo.exists_by_reference(reference):
            logger.info("P&L posting already exists, skipping", reference=reference)
            return InsertResult.SKIPPED

        self.repo.create_entry(
            PnLEntry(
                vehicle_id=vehicle_id,
                customer_id=customer_id,
                entry_date=entry_date,
                side=side,
                category=category,
                amount=to_money(amount),
                source_ref=source_ref,
                reference=reference,
                is_reversal=is_reversal,
            )
        )
        return InsertResult.CREATED

    def post_initial_fee(self, payment) -> InsertResult:
        """Revenue/Initial Fees for the whole payment amount on the payment date."""
        return self._post(
            source_ref=f"payment:{payment.id}",
            side=PnLSide.REVENUE,
            category=PnLCategory.INITIAL_FEES,
            amount=payment.amount,
            entry_date=payment.payment_date,
            vehicle_id=payment.vehicle_id,
            customer_id=payment.customer_id,
        )

    def post_application_revenue(self, application, charge, payment) -> Optional[InsertResult]:
        """
        Revenue for the slice of a payment applied to a charge. Only the
        applied amount is ever recognised. Charges in the Other category
        have no P&L line and are skipped.
        """
        category = CHARGE_TO_PNL_CATEGORY.get(charge.category)
        if category is None:
            logger.info("No P&L category for charge, skipping", charge_id=charge.id, category=charge.category.value)
            return None
        return self._post(
            source_ref=f"application:{payment.id}:{charge.id}",
            side=PnLSide.REVENUE,
            category=category,
            amount=application.amount_applied,
            entry_date=payment.payment_date,
            vehicle_id=charge.vehicle_id or payment.vehicle_id,
            customer_id=charge.customer_id,
        )

    def post_fine_cost(self, fine) -> InsertResult:
        """Cost/Fines for the full fine amount, dated on issue."""
        return self._post(
            source_ref=f"fine:{fine.id}",
            side=PnLSide.COST,
            category=PnLCategory.FINES,
            amount=fine.amount,
            entry_date=fine.issue_date,
            vehicle_id=fine.vehicle_id,
            customer_id=fine.customer_id,
        )

    def cancel_fine_cost(self, fine) -> bool:
        """Removes the fine's Cost/Fines posting. Returns False when there was none."""
        reference = posting_reference(f"fine:{fine.id}", PnLSide.COST, PnLCategory.FINES)
        deleted = self.repo.delete_by_reference(reference)
        if deleted:
            logger.info("Cancelled fine cost posting", fine_id=fine.id, reference=reference)
        return deleted > 0

    def post_fine_refund(self, fine, application, when: datetime) -> InsertResult:
        """
        Negative Revenue/Fines for one payment application on a waived fine's
        charge. At most one reversal exists per (fine, payment).
        """
        source_ref = f"refund:{fine.id}:{application.payment_id}"
        if self.repo.reversal_exists(source_ref):
            logger.info("Refund reversal already posted, skipping", source_ref=source_ref)
            return InsertResult.SKIPPED
        return self._post(
            source_ref=source_ref,
            side=PnLSide.REVENUE,
            category=PnLCategory.FINES,
            amount=-to_money(application.amount_applied),
            entry_date=when.date(),
            vehicle_id=fine.vehicle_id,
            customer_id=fine.customer_id,
            reference=f"{source_ref}:{when.strftime('%Y%m%d%H%M%S%f')}",
            is_reversal=True,
        )

    def post_authority_payment_cost(self, authority_payment, fine) -> InsertResult:
        """Cost/Fines for money paid to the issuing authority."""
        return self._post(
            source_ref=f"authority:{authority_payment.id}",
            side=PnLSide.COST,
            category=PnLCategory.FINES,
            amount=authority_payment.amount,
            entry_date=authority_payment.payment_date,
            vehicle_id=fine.vehicle_id,
            customer_id=fine.customer_id,
        )

    def vehicle_summary(self, vehicle_id: int) -> VehiclePnLSummary:
        """Revenue, cost and net totals for a vehicle, broken down by category."""
        revenue = {}
        cost = {}
        for side, category, total in self.repo.totals_for_vehicle(vehicle_id):
            bucket = revenue if side == PnLSide.REVENUE else cost
            bucket[category.value] = to_money(total)

        total_revenue = to_money(sum(revenue.values(), ZERO))
        total_cost = to_money(sum(cost.values(), ZERO))
        return VehiclePnLSummary(
            vehicle_id=vehicle_id,
            revenue=revenue,
            cost=cost,
            total_revenue=total_revenue,
            total_cost=total_cost,
            net=total_revenue - total_cost,
        )
