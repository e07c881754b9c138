"""
Reward policy structures and arithmetic.

A profile stores its policy as JSON; an assignment may store a partial
override. ``merge_policy`` combines the two group by group and
``RewardPolicy.from_dict`` turns the result into typed, validated structs.
Everything here is pure: no database access.
"""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from referral_ledger.config.constants import (
    DEFAULT_GRACE_PERIOD_DAYS,
    MONEY_QUANTUM,
)
from referral_ledger.models.enums import ProfileType, RewardType
from referral_ledger.utils.exceptions import InvalidPolicyError


# Groups merged key-by-key; any other top-level key is replaced wholesale
POLICY_GROUPS = (
    "reward",
    "duration",
    "limits",
    "qualification",
    "payout_settings",
)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def quantize_money(amount: Decimal) -> Decimal:
    """Round an amount to cents."""
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def normalize_keys(data: Any) -> Any:
    """
    Convert camelCase keys to snake_case recursively.

    Policies exported from the admin UI use camelCase
    (``gracePeriodDays``); the ledger stores snake_case.
    """
    if isinstance(data, dict):
        return {_snake(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def merge_policy(
    base: dict[str, Any], override: dict[str, Any] | None
) -> dict[str, Any]:
    """
    Merge an assignment override onto a profile policy.

    Each group in ``POLICY_GROUPS`` is merged independently: a key present in
    the override replaces the base key (even when its value is None), an
    absent key falls through to the base. Other top-level keys (``tiers``,
    ``calculation_base``) are replaced as a whole when present.

    Args:
        base: Profile policy
        override: Assignment override (may be None or partial)

    Returns:
        New merged dict; inputs are not modified
    """
    base = normalize_keys(base or {})
    if not override:
        return base
    override = normalize_keys(override)

    merged = dict(base)
    for key, value in override.items():
        if key not in POLICY_GROUPS:
            merged[key] = value

    for group in POLICY_GROUPS:
        merged[group] = {
            **(base.get(group) or {}),
            **(override.get(group) or {}),
        }

    return merged


def _decimal(value: Any, name: str, default: Decimal | None = None) -> Decimal | None:
    if value is None:
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidPolicyError(f"{name} must be a number, got {value!r}") from e
    if result < 0:
        raise InvalidPolicyError(f"{name} must not be negative")
    return result


def _int(value: Any, name: str, default: int | None = None) -> int | None:
    if value is None:
        return default
    try:
        result = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidPolicyError(f"{name} must be an integer, got {value!r}") from e
    if result < 0:
        raise InvalidPolicyError(f"{name} must not be negative")
    return result


@dataclass(frozen=True)
class RewardConfig:
    """Reward formula: percentage of the payment, fixed amount, or both."""

    type: RewardType = RewardType.PERCENTAGE
    percentage: Decimal = Decimal("0")
    fixed_amount: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RewardConfig":
        raw_type = data.get("type") or RewardType.PERCENTAGE.value
        try:
            reward_type = RewardType(str(raw_type).upper())
        except ValueError as e:
            raise InvalidPolicyError(f"Unknown reward type: {raw_type!r}") from e
        return cls(
            type=reward_type,
            percentage=_decimal(data.get("percentage"), "reward.percentage", Decimal("0")),
            fixed_amount=_decimal(data.get("fixed_amount"), "reward.fixed_amount", Decimal("0")),
        )


@dataclass(frozen=True)
class DurationConfig:
    """How long a referral keeps paying (informational for now)."""

    type: str = "PERMANENT"
    months: int | None = None
    max_amount: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DurationConfig":
        return cls(
            type=str(data.get("type") or "PERMANENT").upper(),
            months=_int(data.get("months"), "duration.months"),
            max_amount=_decimal(data.get("max_amount"), "duration.max_amount"),
        )


@dataclass(frozen=True)
class LimitsConfig:
    """Caps on what an assignment can accrue."""

    max_active_referrals: int | None = None
    max_monthly_commission: Decimal | None = None
    max_annual_commission: Decimal | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LimitsConfig":
        return cls(
            max_active_referrals=_int(
                data.get("max_active_referrals"), "limits.max_active_referrals"
            ),
            max_monthly_commission=_decimal(
                data.get("max_monthly_commission"), "limits.max_monthly_commission"
            ),
            max_annual_commission=_decimal(
                data.get("max_annual_commission"), "limits.max_annual_commission"
            ),
        )


@dataclass(frozen=True)
class QualificationConfig:
    """When a reward becomes payable."""

    min_referrals: int = 0
    grace_period_days: int | None = None
    min_subscription_days: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QualificationConfig":
        return cls(
            min_referrals=_int(data.get("min_referrals"), "qualification.min_referrals", 0),
            grace_period_days=_int(
                data.get("grace_period_days"), "qualification.grace_period_days"
            ),
            min_subscription_days=_int(
                data.get("min_subscription_days"), "qualification.min_subscription_days"
            ),
        )


@dataclass(frozen=True)
class PayoutSettings:
    """Payout request rules."""

    min_threshold: Decimal | None = None
    auto_payout_enabled: bool = False
    auto_payout_day: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PayoutSettings":
        return cls(
            min_threshold=_decimal(data.get("min_threshold"), "payout_settings.min_threshold"),
            auto_payout_enabled=bool(data.get("auto_payout_enabled", False)),
            auto_payout_day=_int(data.get("auto_payout_day"), "payout_settings.auto_payout_day"),
        )


@dataclass(frozen=True)
class Tier:
    """Rate unlocked once an assignment has ``min_referrals`` conversions."""

    min_referrals: int
    percentage: Decimal


@dataclass(frozen=True)
class RewardPolicy:
    """Effective reward policy of one assignment."""

    reward: RewardConfig = field(default_factory=RewardConfig)
    calculation_base: str = "FIRST_PAYMENT"
    duration: DurationConfig = field(default_factory=DurationConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    qualification: QualificationConfig = field(default_factory=QualificationConfig)
    payout_settings: PayoutSettings = field(default_factory=PayoutSettings)
    tiers: tuple[Tier, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RewardPolicy":
        """
        Parse and validate a (merged) policy dict.

        Raises:
            InvalidPolicyError: On unknown reward type or bad numbers
        """
        data = normalize_keys(data or {})
        if not isinstance(data, dict):
            raise InvalidPolicyError("Policy must be a JSON object")

        tiers = []
        for index, raw in enumerate(data.get("tiers") or []):
            if not isinstance(raw, dict):
                raise InvalidPolicyError(f"tiers[{index}] must be an object")
            tiers.append(Tier(
                min_referrals=_int(raw.get("min_referrals"), f"tiers[{index}].min_referrals", 0),
                percentage=_decimal(raw.get("percentage"), f"tiers[{index}].percentage", Decimal("0")),
            ))

        return cls(
            reward=RewardConfig.from_dict(data.get("reward") or {}),
            calculation_base=str(data.get("calculation_base") or "FIRST_PAYMENT"),
            duration=DurationConfig.from_dict(data.get("duration") or {}),
            limits=LimitsConfig.from_dict(data.get("limits") or {}),
            qualification=QualificationConfig.from_dict(data.get("qualification") or {}),
            payout_settings=PayoutSettings.from_dict(data.get("payout_settings") or {}),
            tiers=tuple(sorted(tiers, key=lambda t: t.min_referrals)),
        )

    def select_rate(self, total_converted: int) -> Decimal:
        """
        Pick the reward rate for an assignment's conversion count.

        The tier with the highest ``min_referrals`` not above
        ``total_converted`` wins; with no matching tier (or no tiers) the
        base ``reward.percentage`` applies.

        Args:
            total_converted: Conversions counted before the current payment

        Returns:
            Rate as a fraction (0.15 = 15%)
        """
        applicable = [t for t in self.tiers if t.min_referrals <= total_converted]
        if applicable:
            return max(applicable, key=lambda t: t.min_referrals).percentage
        return self.reward.percentage

    def grace_period_days(self, profile_type: ProfileType) -> int:
        """Days between payment and qualification (0 for CUSTOMER credits)."""
        if profile_type == ProfileType.CUSTOMER:
            return 0
        if self.qualification.grace_period_days is None:
            return DEFAULT_GRACE_PERIOD_DAYS
        return self.qualification.grace_period_days


@dataclass(frozen=True)
class RewardBreakdown:
    """Result of applying a policy to one payment."""

    rate: Decimal
    fixed_amount: Decimal
    total: Decimal


def compute_reward(
    policy: RewardPolicy, base_amount: Decimal, total_converted: int
) -> RewardBreakdown:
    """
    Compute the reward for a payment.

    PERCENTAGE -> base * rate; FIXED -> fixed amount; HYBRID -> both.

    Args:
        policy: Effective policy
        base_amount: Payment amount in decimal currency units
        total_converted: Assignment conversions before this payment

    Returns:
        Rate applied (0 for FIXED), fixed part and rounded total
    """
    reward = policy.reward

    if reward.type == RewardType.PERCENTAGE:
        rate = policy.select_rate(total_converted)
        fixed = Decimal("0")
        total = base_amount * rate
    elif reward.type == RewardType.FIXED:
        rate = Decimal("0")
        fixed = reward.fixed_amount
        total = fixed
    elif reward.type == RewardType.HYBRID:
        rate = policy.select_rate(total_converted)
        fixed = reward.fixed_amount
        total = base_amount * rate + fixed
    else:
        raise InvalidPolicyError(f"Unsupported reward type: {reward.type}")

    return RewardBreakdown(rate=rate, fixed_amount=fixed, total=quantize_money(total))


def apply_monthly_cap(
    amount: Decimal, cap: Decimal | None, month_total: Decimal
) -> tuple[Decimal, bool]:
    """
    Clamp a reward to the remaining monthly headroom.

    Args:
        amount: Computed reward
        cap: Monthly maximum (None = unlimited)
        month_total: Non-cancelled rewards already created this month

    Returns:
        (allowed amount, whether it was clamped); the amount may be 0
    """
    if cap is None or month_total + amount <= cap:
        return amount, False
    headroom = max(Decimal("0"), cap - month_total)
    return quantize_money(headroom), True
