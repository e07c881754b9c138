"""
Services.

Business logic layer.
"""

from referral_ledger.services.base_service import BaseService, ServiceResult
from referral_ledger.services.referral import (
    AdjustmentHandler,
    CommissionCalculator,
    QualificationSweeper,
    ReferralEventHandler,
    ReferralTracker,
)


__all__ = [
    "BaseService",
    "ServiceResult",
    "AdjustmentHandler",
    "CommissionCalculator",
    "QualificationSweeper",
    "ReferralEventHandler",
    "ReferralTracker",
]
