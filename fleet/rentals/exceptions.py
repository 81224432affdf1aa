# fleet/rentals/exceptions.py

class RentalError(Exception):
    """Base exception for all rental errors."""
    code = "RentalError"


class RentalNotFoundError(RentalError):
    code = "NotFound"

    def __init__(self, rental_id=None):
        self.rental_id = rental_id
        super().__init__(f"Rental with ID '{rental_id}' not found.")


class InvalidRentalOperationError(RentalError):
    """Raised for logical errors in rental operations."""
    code = "InvalidRentalOperation"
