# fleet/ledger/exceptions.py

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code = "LedgerError"


class ChargeNotFoundError(LedgerError):
    """Raised when a ledger charge cannot be found."""

    code = "NotFound"

    def __init__(self, charge_id=None, reference: str = None):
        self.charge_id = charge_id
        self.reference = reference
        if reference:
            super().__init__(f"Ledger charge with reference '{reference}' not found.")
        else:
            super().__init__(f"Ledger charge with ID '{charge_id}' not found.")


class DuplicateReferenceError(LedgerError):
    """Raised when a strict charge insert hits an existing reference."""

    code = "DuplicateReference"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"A charge with reference '{reference}' already exists.")


class InsufficientRemainingError(LedgerError):
    """
    Raised when a reduction exceeds what is left on a charge or payment.
    Indicates broken invariants; never expected in normal operation.
    """

    code = "InsufficientRemaining"

    def __init__(self, entity: str, entity_id, remaining: Decimal, requested: Decimal):
        self.entity = entity
        self.entity_id = entity_id
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"Cannot reduce {entity} {entity_id} by {requested}: only {remaining} remaining."
        )


class InvalidAmountError(LedgerError):
    """Raised for zero or negative money amounts where a positive one is required."""

    code = "InvalidAmount"


class InvalidLedgerOperationError(LedgerError):
    """Raised for logical errors in ledger operations."""

    code = "InvalidLedgerOperation"
