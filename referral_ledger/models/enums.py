"""
Enumerations shared by the referral ledger models and services.

Stored in the database as their string values.
"""

from enum import StrEnum


class ProfileType(StrEnum):
    """Kind of reward a profile grants."""

    CUSTOMER = "CUSTOMER"  # One-time bill credit
    AFFILIATE = "AFFILIATE"  # Recurring cash payout


class RewardType(StrEnum):
    """How a reward amount is derived from a payment."""

    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    HYBRID = "HYBRID"


class AssignmentStatus(StrEnum):
    """Referrer assignment status."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"


class ReferralStatus(StrEnum):
    """Lifecycle of one referred person."""

    CLICKED = "CLICKED"
    REGISTERED = "REGISTERED"
    CONVERTED = "CONVERTED"
    QUALIFIED = "QUALIFIED"
    REFUNDED = "REFUNDED"
    FRAUDULENT = "FRAUDULENT"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Abort states cannot move forward again."""
        return self in REFERRAL_TERMINAL_STATUSES


REFERRAL_TERMINAL_STATUSES = frozenset({
    ReferralStatus.REFUNDED,
    ReferralStatus.FRAUDULENT,
    ReferralStatus.CANCELLED,
})

# Referrals that can still earn commissions
REFERRAL_ACTIVE_STATUSES = (
    ReferralStatus.REGISTERED,
    ReferralStatus.CONVERTED,
    ReferralStatus.QUALIFIED,
)

# Forward order for non-terminal states
REFERRAL_FORWARD_ORDER = (
    ReferralStatus.CLICKED,
    ReferralStatus.REGISTERED,
    ReferralStatus.CONVERTED,
    ReferralStatus.QUALIFIED,
)


class CommissionStatus(StrEnum):
    """Ledger row status."""

    PENDING = "PENDING"  # Waiting for grace period
    QUALIFIED = "QUALIFIED"  # Counted as earned, payable
    PAID = "PAID"  # Sent through payout rail
    CREDITED = "CREDITED"  # Applied as bill credit
    CANCELLED = "CANCELLED"
    ADJUSTED = "ADJUSTED"  # Needs manual reconciliation


# Money has already left the system for these rows
COMMISSION_SETTLED_STATUSES = (
    CommissionStatus.PAID,
    CommissionStatus.CREDITED,
    CommissionStatus.ADJUSTED,
)


class PayoutStatus(StrEnum):
    """Payout request status."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


PAYOUT_OPEN_STATUSES = (PayoutStatus.PENDING, PayoutStatus.PROCESSING)


class PayoutMethod(StrEnum):
    """How a payout leaves the system."""

    MANUAL = "MANUAL"
    BANK_TRANSFER = "BANK_TRANSFER"
    STRIPE_CONNECT = "STRIPE_CONNECT"


class ActorType(StrEnum):
    """Who performed an audited action."""

    SYSTEM = "SYSTEM"
    ADMIN = "ADMIN"
    USER = "USER"


class AuditAction(StrEnum):
    """Audited ledger actions."""

    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    ASSIGNMENT_STATUS_CHANGED = "ASSIGNMENT_STATUS_CHANGED"
    ASSIGNMENT_OVERRIDE_UPDATED = "ASSIGNMENT_OVERRIDE_UPDATED"
    CHARGEBACK_DETECTED = "CHARGEBACK_DETECTED"
    PAYOUT_REQUESTED = "PAYOUT_REQUESTED"
    PAYOUT_PROCESSING = "PAYOUT_PROCESSING"
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"
    CREDIT_APPLIED = "CREDIT_APPLIED"
