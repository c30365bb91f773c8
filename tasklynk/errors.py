"""Error taxonomy for the TaskLynk core.

Every recoverable failure is raised as a ``MarketplaceError`` subclass carrying a
stable ``code`` plus enough structure for the caller to render a useful message
(current state, unmet requirements, the minimum legal amount, ...).
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Stable error codes surfaced to API callers."""

    INVALID_STATE = "INVALID_STATE"
    SUBMISSION_INCOMPLETE = "SUBMISSION_INCOMPLETE"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    AMOUNT_BELOW_MINIMUM = "AMOUNT_BELOW_MINIMUM"
    UNKNOWN_SERVICE = "UNKNOWN_SERVICE"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class MarketplaceError(Exception):
    """Base exception for all TaskLynk core errors."""

    code: ErrorCode = ErrorCode.INVALID_STATE

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, **self.details}


class NotFoundError(MarketplaceError):
    """Order, payment or catalog record does not exist."""

    code = ErrorCode.NOT_FOUND


class ForbiddenError(MarketplaceError):
    """Actor is not allowed to perform the operation."""

    code = ErrorCode.FORBIDDEN


class InvalidStateError(MarketplaceError):
    """Operation is not legal in the record's current state."""

    code = ErrorCode.INVALID_STATE


class TransitionError(MarketplaceError):
    """A requested order transition was refused.

    ``unmet_requirements`` is only populated for submission-gate failures and
    names every missing deliverable individually.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        current_state: str,
        attempted_event: str,
        unmet_requirements: Optional[List[str]] = None,
    ):
        self.current_state = current_state
        self.attempted_event = attempted_event
        self.unmet_requirements = list(unmet_requirements or [])
        details: Dict[str, Any] = {
            "current_state": current_state,
            "attempted_event": attempted_event,
        }
        if self.unmet_requirements:
            details["unmet_requirements"] = self.unmet_requirements
        super().__init__(message, code=code, details=details)


class UnknownServiceError(MarketplaceError):
    """Catalog key is not in the service catalog."""

    code = ErrorCode.UNKNOWN_SERVICE

    def __init__(self, catalog_key: str):
        self.catalog_key = catalog_key
        super().__init__(
            f"Unknown service type: {catalog_key}", details={"catalog_key": catalog_key}
        )


class AmountBelowMinimumError(MarketplaceError):
    """A custom amount is lower than the computed catalog minimum."""

    code = ErrorCode.AMOUNT_BELOW_MINIMUM

    def __init__(self, amount: Decimal, minimum: Decimal):
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Amount {amount} is below the minimum of {minimum}",
            details={"amount": str(amount), "minimum": str(minimum)},
        )


class AmountMismatchError(MarketplaceError):
    """Payment amount does not equal the order amount."""

    code = ErrorCode.AMOUNT_MISMATCH

    def __init__(self, amount: Decimal, expected: Decimal):
        self.amount = amount
        self.expected = expected
        super().__init__(
            f"Payment amount {amount} does not match order amount {expected}",
            details={"amount": str(amount), "expected": str(expected)},
        )


class GatewayError(MarketplaceError):
    """Payment gateway rejected a request or could not be reached.

    When raised by the engine after a failed charge submission, ``payment``
    holds the (now failed) payment record.
    """

    code = ErrorCode.GATEWAY_ERROR

    def __init__(self, message: str, payment: Any = None, status_code: Optional[int] = None):
        self.payment = payment
        self.status_code = status_code
        details: Dict[str, Any] = {}
        if payment is not None:
            details["payment_id"] = payment.id
        if status_code is not None:
            details["gateway_status"] = status_code
        super().__init__(message, details=details)


class PaymentConflictError(MarketplaceError):
    """A payment compare-and-set lost a race that a retry could not explain."""

    code = ErrorCode.CONFLICT


class WebhookSignatureError(MarketplaceError):
    """Inbound webhook failed signature or shared-secret validation."""

    code = ErrorCode.INVALID_SIGNATURE
