"""
QR Payment Exception Hierarchy

Stable error codes for the QR payment lifecycle. Each error carries the
HTTP status the API layer answers with.
"""
from typing import Optional, Dict, Any


class QRPaymentError(Exception):
    """
    Base exception for all QR payment errors.

    Subclasses fix the error code and HTTP status; callers map the codes
    to distinct user messages (unknown, already processed, timed out).
    """

    http_status = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


class TransactionNotFoundError(QRPaymentError):
    """
    No record matches the transaction ID.

    Raised by status checks, confirmation and cancellation.
    """

    http_status = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr_payment:not_found", message, details)


class StateConflictError(QRPaymentError):
    """
    Confirm or cancel attempted against a record that is not pending.

    Examples:
    - Confirming a completed transaction
    - Cancelling a cancelled transaction

    Answers 404 to keep the "not found or not pending" contract of the
    confirm and cancel endpoints.
    """

    http_status = 404

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "qr_payment:state_conflict"
    ):
        super().__init__(error_code, message, details)


class TransactionExpiredError(StateConflictError):
    """
    Confirmation attempted after expires_at.

    A subclass of StateConflictError: an expired record is terminal, so
    this is also a state conflict.
    """

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, error_code="qr_payment:expired")


class PaymentValidationError(QRPaymentError):
    """
    Malformed input to create.

    Examples:
    - amount <= 0
    - Unsupported currency code
    """

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr_payment:validation_error", message, details)


class WebhookSignatureError(QRPaymentError):
    """Gateway callback signature missing or invalid."""

    http_status = 401

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("qr_payment:signature_invalid", message, details)
