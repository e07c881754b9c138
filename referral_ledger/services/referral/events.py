"""
Inbound events.

Typed shapes of the payment and registration events the ledger consumes.
Payloads arrive as dicts (webhook JSON, queue messages); ``from_dict``
accepts camelCase or snake_case keys and raises InvalidEventError on
missing or malformed fields. Amounts are minor units (cents).
"""

from dataclasses import dataclass
from typing import Any

from referral_ledger.config.constants import DEFAULT_CURRENCY
from referral_ledger.services.referral.policy import normalize_keys
from referral_ledger.utils.exceptions import InvalidEventError


def _payload(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidEventError("Event payload must be an object")
    return normalize_keys(data)


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or not str(value).strip():
        raise InvalidEventError(f"Missing required field: {key}")
    return str(value).strip()


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def _minor_units(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        raise InvalidEventError(f"Missing required field: {key}")
    if isinstance(value, bool):
        raise InvalidEventError(f"{key} must be an integer amount in minor units")
    try:
        amount = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidEventError(
            f"{key} must be an integer amount in minor units"
        ) from e
    if amount != value and str(amount) != str(value):
        raise InvalidEventError(f"{key} must be an integer amount in minor units")
    if amount < 0:
        raise InvalidEventError(f"{key} must not be negative")
    return amount


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidEventError(f"{key} must be an integer") from e


@dataclass(frozen=True)
class PaymentSucceeded:
    """A payment was captured."""

    payment_id: str
    customer_id: str | None
    amount: int
    currency: str = DEFAULT_CURRENCY
    invoice_id: str | None = None
    user_id: int | None = None
    referral_code_hint: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentSucceeded":
        data = _payload(data)
        event = cls(
            payment_id=_required_str(data, "payment_id"),
            customer_id=_optional_str(data, "customer_id"),
            amount=_minor_units(data, "amount"),
            currency=(_optional_str(data, "currency") or DEFAULT_CURRENCY).upper(),
            invoice_id=_optional_str(data, "invoice_id"),
            user_id=_optional_int(data, "user_id"),
            referral_code_hint=(
                _optional_str(data, "referral_code_hint")
                or _optional_str(data, "referral_code")
            ),
        )
        if event.user_id is None and event.customer_id is None:
            raise InvalidEventError("Either user_id or customer_id is required")
        return event


@dataclass(frozen=True)
class PaymentRefunded:
    """A payment was refunded, fully or in part."""

    payment_id: str
    refunded_amount: int
    is_full_refund: bool

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentRefunded":
        data = _payload(data)
        if "is_full_refund" not in data:
            raise InvalidEventError("Missing required field: is_full_refund")
        return cls(
            payment_id=_required_str(data, "payment_id"),
            refunded_amount=_minor_units(data, "refunded_amount"),
            is_full_refund=bool(data["is_full_refund"]),
        )


@dataclass(frozen=True)
class PaymentChargedBack:
    """A payment was disputed and charged back."""

    payment_id: str

    @classmethod
    def from_dict(cls, data: Any) -> "PaymentChargedBack":
        data = _payload(data)
        return cls(payment_id=_required_str(data, "payment_id"))


@dataclass(frozen=True)
class UserRegistered:
    """A user signed up with a referral code."""

    referral_code: str
    referred_email: str
    referred_user_id: int
    source_ip: str | None = None
    user_agent: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "UserRegistered":
        data = _payload(data)
        email = _required_str(data, "referred_email")
        if "@" not in email:
            raise InvalidEventError("referred_email is not an email address")
        user_id = _optional_int(data, "referred_user_id")
        if user_id is None:
            raise InvalidEventError("Missing required field: referred_user_id")
        return cls(
            referral_code=_required_str(data, "referral_code"),
            referred_email=email,
            referred_user_id=user_id,
            source_ip=_optional_str(data, "source_ip"),
            user_agent=_optional_str(data, "user_agent"),
            utm_source=_optional_str(data, "utm_source"),
            utm_medium=_optional_str(data, "utm_medium"),
            utm_campaign=_optional_str(data, "utm_campaign"),
        )
