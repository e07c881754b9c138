"""
Referral ledger services package.

- policy: Reward policy structs, merge and amount arithmetic
- attribution_resolver: Code -> active assignment + effective policy
- referral_tracker: Clicks, leads and registrations
- commission_calculator: One idempotent ledger row per payment
- adjustment_handler: Refunds and chargebacks
- qualification_sweeper: Periodic PENDING -> QUALIFIED promotion
- assignment_manager / profile_registry: Administration
- payout_manager: Payout requests and bill credits
- statistics: Dashboard queries
- event_handler: Inbound event routing
"""

from referral_ledger.services.referral.adjustment_handler import (
    AdjustmentHandler,
    AdjustmentOutcome,
    AdjustmentResult,
)
from referral_ledger.services.referral.assignment_manager import (
    AssignmentManager,
    generate_referral_code,
)
from referral_ledger.services.referral.attribution_resolver import (
    AttributionResolver,
    ResolvedAttribution,
    effective_policy,
)
from referral_ledger.services.referral.commission_calculator import (
    CommissionCalculator,
    CommissionOutcome,
    CommissionResult,
)
from referral_ledger.services.referral.event_handler import ReferralEventHandler
from referral_ledger.services.referral.events import (
    PaymentChargedBack,
    PaymentRefunded,
    PaymentSucceeded,
    UserRegistered,
)
from referral_ledger.services.referral.payout_manager import (
    PayoutManager,
    PayoutOutcome,
    PayoutRequestResult,
)
from referral_ledger.services.referral.policy import (
    RewardPolicy,
    compute_reward,
    merge_policy,
)
from referral_ledger.services.referral.profile_registry import ProfileRegistry
from referral_ledger.services.referral.qualification_sweeper import (
    QualificationSweeper,
    SweepResult,
)
from referral_ledger.services.referral.referral_tracker import (
    AttributionMetadata,
    ReferralTracker,
    RegistrationResult,
)
from referral_ledger.services.referral.statistics import (
    AssignmentSummary,
    ReferralStatistics,
)


__all__ = [
    # Policy
    "RewardPolicy",
    "compute_reward",
    "merge_policy",
    "effective_policy",
    # Attribution
    "AttributionResolver",
    "ResolvedAttribution",
    "AttributionMetadata",
    "ReferralTracker",
    "RegistrationResult",
    # Ledger
    "CommissionCalculator",
    "CommissionOutcome",
    "CommissionResult",
    "AdjustmentHandler",
    "AdjustmentOutcome",
    "AdjustmentResult",
    "QualificationSweeper",
    "SweepResult",
    # Administration
    "AssignmentManager",
    "generate_referral_code",
    "ProfileRegistry",
    "PayoutManager",
    "PayoutOutcome",
    "PayoutRequestResult",
    # Queries
    "ReferralStatistics",
    "AssignmentSummary",
    # Events
    "ReferralEventHandler",
    "PaymentSucceeded",
    "PaymentRefunded",
    "PaymentChargedBack",
    "UserRegistered",
]
