### fleet/worker/config.py

"""
Celery settings for the fleet worker and beat.

Both periodic jobs run in business time: charges first, then the credit
sweep, so new charges are settled from standing credit the same night.
"""

from celery.schedules import crontab

from fleet.core.config import settings

broker_url = settings.celery_broker
result_backend = settings.celery_backend

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = settings.business_timezone
enable_utc = True

# Allocation runs are short; anything past ten minutes is stuck on a lock
task_soft_time_limit = 9 * 60
task_time_limit = 10 * 60
task_acks_late = True
worker_prefetch_multiplier = 1
broker_connection_retry_on_startup = True

beat_schedule = {
    "rentals-generate-monthly-charges": {
        "task": "rentals.generate_monthly_charges",
        "schedule": crontab(hour=1, minute=0),
    },
    "payments-reapply-customer-credit": {
        "task": "payments.reapply_customer_credit",
        "schedule": crontab(hour=2, minute=0),
    },
}
