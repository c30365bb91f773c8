"""Payment models.

All monetary values use Decimal. A payment record is never reused: a retry
after a failure creates a new record.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class PaymentStatus(str, Enum):
    """Payment lifecycle states. confirmed and failed are terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    MOBILE_MONEY = "mobile_money"
    CARD = "card"
    DIRECT = "direct"  # manual transfer, confirmed by an administrator


class FailureReason(str, Enum):
    TIMEOUT = "TIMEOUT"
    DECLINED = "DECLINED"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    DUPLICATE = "DUPLICATE"


class PaymentOutcome(str, Enum):
    """What the gateway says about a charge."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# Failures after which initiating a fresh payment is safe
RETRY_SAFE_REASONS = frozenset({FailureReason.TIMEOUT.value, FailureReason.GATEWAY_ERROR.value})


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Payment:
    """A client payment against an order."""

    order_id: int
    payer_id: int
    amount: Decimal
    method: str
    id: Optional[int] = None
    payee_id: Optional[int] = None
    payer_reference: Optional[str] = None  # phone number or email
    provider_reference: Optional[str] = None
    checkout_url: Optional[str] = None
    receipt_id: Optional[str] = None
    status: str = PaymentStatus.PENDING.value
    failure_reason: Optional[str] = None
    failure_detail: Optional[str] = None
    provider_confirmed: bool = False
    confirmed_by_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != PaymentStatus.PENDING.value

    @property
    def requires_admin_confirmation(self) -> bool:
        return self.method == PaymentMethod.DIRECT.value

    @property
    def retry_safe(self) -> bool:
        """True when the payment failed in a way that allows starting a new one."""
        return self.status == PaymentStatus.FAILED.value and self.failure_reason in (
            RETRY_SAFE_REASONS
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "order_id": self.order_id,
            "payer_id": self.payer_id,
            "payee_id": self.payee_id,
            "amount": str(self.amount),
            "method": self.method,
            "payer_reference": self.payer_reference,
            "provider_reference": self.provider_reference,
            "checkout_url": self.checkout_url,
            "receipt_id": self.receipt_id,
            "status": self.status,
            "failure_reason": self.failure_reason,
            "failure_detail": self.failure_detail,
            "retry_safe": self.retry_safe,
            "provider_confirmed": self.provider_confirmed,
            "confirmed_by_admin": self.confirmed_by_admin,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "confirmed_at": _iso(self.confirmed_at),
            "failed_at": _iso(self.failed_at),
        }


@dataclass(frozen=True)
class WebhookPayload:
    """Provider callback normalised across gateways."""

    provider_reference: str
    outcome: PaymentOutcome
    receipt_id: Optional[str] = None
    detail: Optional[str] = None
