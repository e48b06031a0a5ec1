"""Domain errors raised by the service layer.

Each carries the HTTP status the API layer answers with.
"""


class FarmBidError(Exception):
    """Base exception for marketplace operations."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(FarmBidError):
    """Raised when a referenced bid, auction, product or order does not exist."""

    status_code = 404


class ConflictError(FarmBidError):
    """Raised when a bid or auction is not in the state a transition requires."""

    status_code = 409


class InvalidBidError(FarmBidError):
    """Raised when a bid amount or quantity is below what the auction accepts."""

    status_code = 422


class InvalidAuctionError(FarmBidError):
    """Raised when auction parameters are inconsistent."""

    status_code = 422


class PermissionDeniedError(FarmBidError):
    """Raised when the caller does not own the resource it is acting on."""

    status_code = 403
