"""
Referral ledger business constants.

Values that define the ledger's arithmetic and code format. Anything an
operator may want to tune per deployment lives in settings instead.
"""

from decimal import Decimal

# Payment providers report amounts in minor units (cents)
MINOR_UNITS_PER_MAJOR = Decimal("100")

# Reward amounts are rounded to cents
MONEY_QUANTUM = Decimal("0.01")

# Referral code format: PREFIX + random characters.
# Excludes look-alike characters (0/O, 1/I).
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_PREFIX = "RF"
REFERRAL_CODE_RANDOM_LENGTH = 6
REFERRAL_CODE_MAX_ATTEMPTS = 10

# Grace period before an AFFILIATE commission qualifies (days)
DEFAULT_GRACE_PERIOD_DAYS = 30

# Fallback payout threshold when a policy has no payoutSettings.minThreshold
DEFAULT_PAYOUT_THRESHOLD = 500.0

DEFAULT_CURRENCY = "USD"

# Source IP recorded for registrations synthesized from checkout metadata
PAYMENT_WEBHOOK_SOURCE = "PAYMENT_WEBHOOK"

# Actor id used for audit entries written by the system itself
SYSTEM_ACTOR_ID = "SYSTEM"

# Default policy for newly created AFFILIATE profiles
DEFAULT_AFFILIATE_POLICY: dict = {
    "reward": {"type": "PERCENTAGE", "percentage": "0.15"},
    "calculation_base": "FIRST_PAYMENT",
    "duration": {"type": "PERMANENT"},
    "limits": {"max_active_referrals": 100, "max_monthly_commission": "10000"},
    "tiers": [
        {"min_referrals": 0, "percentage": "0.10"},
        {"min_referrals": 5, "percentage": "0.15"},
        {"min_referrals": 20, "percentage": "0.20"},
    ],
    "qualification": {"grace_period_days": 30, "min_subscription_days": 30},
    "payout_settings": {
        "min_threshold": "500",
        "auto_payout_enabled": True,
        "auto_payout_day": 15,
    },
}

# Default policy for the self-serve CUSTOMER profile (one-time bill credit)
DEFAULT_CUSTOMER_POLICY: dict = {
    "reward": {"type": "FIXED", "fixed_amount": "20"},
    "calculation_base": "FIRST_PAYMENT",
    "duration": {"type": "ONE_TIME"},
    "limits": {},
    "tiers": [],
    "qualification": {"min_referrals": 5, "grace_period_days": 0},
    "payout_settings": {"min_threshold": "0", "auto_payout_enabled": False},
}

# Dramatiq time limit for one qualification sweep (ms)
SWEEP_TIME_LIMIT_MS = 300_000
