"""Errors raised by the order proxy and rendered as ``{error, message}`` JSON."""
from typing import Optional


class StorefrontError(Exception):
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class InvalidRequestError(StorefrontError):
    status_code = 400
    error = "Invalid request"


class ProviderError(StorefrontError):
    """A Printful or Stripe call failed or answered with a non-success status."""


class PaymentNotCompletedError(StorefrontError):
    error = "Failed to process order"

    def __init__(self, payment_status: Optional[str] = None) -> None:
        super().__init__("Payment not completed")
        self.payment_status = payment_status


class FulfillmentError(StorefrontError):
    """Payment succeeded but the fulfillment order was rejected.

    The order stays in the fulfillment ledger as ``failed`` so it can be
    retried or reconciled by hand.
    """

    error = "Failed to process order"

    def __init__(self, message: str, session_id: str) -> None:
        super().__init__(message)
        self.session_id = session_id


class ForbiddenError(StorefrontError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(StorefrontError):
    status_code = 404
    error = "Not Found"
