"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from referral_ledger.models.assignment import ReferralAssignment
from referral_ledger.models.audit_log import ReferralAuditLog
from referral_ledger.models.base import Base
from referral_ledger.models.click import ReferralClick
from referral_ledger.models.commission import ReferralCommission
from referral_ledger.models.enums import (
    ActorType,
    AssignmentStatus,
    AuditAction,
    CommissionStatus,
    PayoutMethod,
    PayoutStatus,
    ProfileType,
    ReferralStatus,
    RewardType,
)
from referral_ledger.models.payout import ReferralPayout
from referral_ledger.models.profile import ReferralProfile
from referral_ledger.models.referral import Referral
from referral_ledger.models.user import User

__all__ = [
    # Base
    "Base",
    # Enums
    "ActorType",
    "AssignmentStatus",
    "AuditAction",
    "CommissionStatus",
    "PayoutMethod",
    "PayoutStatus",
    "ProfileType",
    "ReferralStatus",
    "RewardType",
    # Core Models
    "User",
    "ReferralProfile",
    "ReferralAssignment",
    "Referral",
    "ReferralCommission",
    # Payouts and tracking
    "ReferralPayout",
    "ReferralClick",
    "ReferralAuditLog",
]
