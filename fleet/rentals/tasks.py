# fleet/rentals/tasks.py

"""
Celery Task Definitions for the Rentals Module.

Daily generation of monthly rental charges for every active rental.
"""

from celery import shared_task

from fleet.core.db import SessionLocal
from fleet.rentals.services import RentalService
from fleet.utils.logger import get_logger

logger = get_logger(__name__)


@shared_task(name="rentals.generate_monthly_charges")
def generate_monthly_charges_task():
    """
    Creates any monthly charge that has come due for each active rental.
    Charges already present are skipped, so the task can run as often as needed.
    """
    logger.info("Executing Celery task: generate_monthly_charges")

    db = SessionLocal()
    try:
        service = RentalService(db)
        rentals_processed = 0
        charges_seen = 0
        failed = 0

        for rental_id in service.list_active_rental_ids():
            try:
                charges = service.generate_rental_charges(rental_id)
                charges_seen += len(charges)
                rentals_processed += 1
            except Exception as e:
                failed += 1
                logger.error(
                    "Failed to generate charges for rental",
                    rental_id=rental_id,
                    error=str(e),
                    exc_info=True,
                )

        result = {
            "rentals_processed": rentals_processed,
            "charges_seen": charges_seen,
            "failed": failed,
        }
        logger.info("Monthly rental charge generation complete", **result)
        return result
    finally:
        db.close()
