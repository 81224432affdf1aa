### fleet/worker/app.py

"""
Main Celery Application Configuration

Sets up the Celery instance with Redis as broker and result backend and
discovers the tasks modules.
"""

# Third party imports
from celery import Celery

# Import all models to ensure they're registered with SQLAlchemy
# This must happen before any database operations in tasks
import fleet.models  # noqa: F401

# Create Celery Instance
app = Celery("fleet_scheduler")

# Configure celery from separate config file
app.config_from_object("fleet.worker.config")

# Auto discover tasks from different modules
app.autodiscover_tasks(
    [
        "fleet.payments",
        "fleet.rentals",
    ]
)

if __name__ == "__main__":
    app.start()
