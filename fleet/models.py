# fleet/models.py

"""
Imports every model so that SQLAlchemy can resolve string relationships.
This must happen before any database operations.
"""

import fleet.customers.models  # noqa: F401
import fleet.fines.models  # noqa: F401
import fleet.ledger.models  # noqa: F401
import fleet.payments.models  # noqa: F401
import fleet.pnl.models  # noqa: F401
import fleet.rentals.models  # noqa: F401
import fleet.vehicles.models  # noqa: F401
