# fleet/payments/tasks.py

"""
Celery Task Definitions for the Payments Module.

Nightly sweep that re-applies standing customer credit to any charges that
were created or reopened since the last run.
"""

from celery import shared_task

from fleet.allocation.services import AllocationService
from fleet.core.db import SessionLocal
from fleet.utils.logger import get_logger

logger = get_logger(__name__)


@shared_task(name="payments.reapply_customer_credit")
def reapply_customer_credit_task():
    """Runs apply_payment for every credit-bearing payment of every customer."""
    logger.info("Executing Celery task: reapply_customer_credit")

    db = SessionLocal()
    try:
        result = AllocationService(db).reapply_all_payments()
        logger.info("Credit re-apply complete", **result)
        return result
    except Exception as e:
        logger.error("Credit re-apply task failed", error=str(e), exc_info=True)
        raise
    finally:
        db.close()
