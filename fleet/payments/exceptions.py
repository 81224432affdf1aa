# fleet/payments/exceptions.py

class PaymentError(Exception):
    """Base exception for all payment processing errors."""
    code = "PaymentError"


class PaymentNotFoundError(PaymentError):
    """Raised when a specific payment cannot be found."""
    code = "NotFound"

    def __init__(self, payment_id=None):
        self.payment_id = payment_id
        super().__init__(f"Payment with ID '{payment_id}' not found.")


class CustomerNotFoundError(PaymentError):
    """Raised when a payment names a customer that does not exist."""
    code = "NotFound"

    def __init__(self, customer_id=None):
        self.customer_id = customer_id
        super().__init__(f"Customer with ID '{customer_id}' not found.")


class PaymentAllocationError(PaymentError):
    """Raised when an allocation run fails and is rolled back."""
    code = "AllocationFailed"
