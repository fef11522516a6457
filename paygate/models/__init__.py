"""ORM models package."""
from .audit_log import PaymentAuditLog
from .base import Base, TimestampMixin
from .subscription import Subscription
from .transaction import EntitlementStatus, PaymentTransaction, TransactionState
from .user import SubscriptionStatus, User, UserRole

__all__ = [
    "Base",
    "EntitlementStatus",
    "PaymentAuditLog",
    "PaymentTransaction",
    "Subscription",
    "SubscriptionStatus",
    "TimestampMixin",
    "TransactionState",
    "User",
    "UserRole",
]
