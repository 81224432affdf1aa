# fleet/fines/exceptions.py

class FineError(Exception):
    """Base exception for all fine lifecycle errors."""
    code = "FineError"


class FineNotFoundError(FineError):
    """Raised when a specific fine cannot be found."""
    code = "NotFound"

    def __init__(self, fine_id=None):
        self.fine_id = fine_id
        super().__init__(f"Fine with ID '{fine_id}' not found.")


class FineAlreadyProcessedError(FineError):
    """Raised when an action repeats one the fine has already been through."""
    code = "AlreadyProcessed"

    def __init__(self, fine_id, status):
        self.fine_id = fine_id
        self.status = status
        super().__init__(f"Fine {fine_id} has already been processed (status: {status}).")


class InvalidFineTransitionError(FineError):
    """Raised when the state machine does not allow the requested move."""
    code = "InvalidTransition"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move fine from '{current}' to '{target}'.")


class NotCustomerLiabilityError(FineError):
    code = "NotCustomerLiability"

    def __init__(self, fine_id):
        self.fine_id = fine_id
        super().__init__(f"Fine {fine_id} is a business liability and cannot be charged to a customer.")


class NoCustomerAssignedError(FineError):
    code = "NoCustomerAssigned"

    def __init__(self, fine_id):
        self.fine_id = fine_id
        super().__init__(f"Fine {fine_id} has no customer assigned.")


class AuthorityPaymentExistsError(FineError):
    """Raised on waive once the business has already paid the authority."""
    code = "AuthorityPaymentExists"

    def __init__(self, fine_id):
        self.fine_id = fine_id
        super().__init__(
            f"Fine {fine_id} has been paid to the authority and cannot be waived. "
            "Charge it to the customer's account instead."
        )


class UnknownFineActionError(FineError):
    code = "InvalidTransition"

    def __init__(self, action):
        self.action = action
        super().__init__(f"Unknown fine action '{action}'.")
