# fleet/core/idempotency.py

from enum import Enum as PyEnum


class InsertResult(str, PyEnum):
    """
    Outcome of an idempotent insert.

    Every side-effecting insert in the ledger, allocation and P&L layers looks
    up its idempotency key first and reports whether it wrote a row or found
    one already there.
    """

    CREATED = "Created"
    SKIPPED = "AlreadySkipped"

    @property
    def created(self) -> bool:
        return self is InsertResult.CREATED
