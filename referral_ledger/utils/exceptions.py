"""
Referral ledger exceptions.

Only malformed input and missing resources are raised. Expected business
outcomes (no referrer, duplicate delivery, monthly cap, refund after payout)
are returned as outcome values on result objects.
"""


class ReferralError(Exception):
    """Base class for referral ledger errors."""

    error_code = "REFERRAL_ERROR"

    def __init__(self, message: str) -> None:
        """Initialize with a human-readable message."""
        super().__init__(message)
        self.message = message


class InvalidCodeError(ReferralError):
    """Referral code is unknown, expired or its referrer is not active."""

    error_code = "INVALID_CODE"


class SelfReferralError(ReferralError):
    """Referred email belongs to the referrer."""

    error_code = "SELF_REFERRAL"


class NotFoundError(ReferralError):
    """Requested resource does not exist."""

    error_code = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """User is not known to the ledger."""

    error_code = "USER_NOT_FOUND"


class ProfileNotFoundError(NotFoundError):
    """Profile does not exist."""

    error_code = "PROFILE_NOT_FOUND"


class AssignmentNotFoundError(NotFoundError):
    """Assignment does not exist."""

    error_code = "ASSIGNMENT_NOT_FOUND"


class PayoutNotFoundError(NotFoundError):
    """Payout does not exist."""

    error_code = "PAYOUT_NOT_FOUND"


class ConflictError(ReferralError):
    """Write collides with an existing unique row."""

    error_code = "CONFLICT"


class ProfileInUseError(ConflictError):
    """Profile is still referenced by assignments."""

    error_code = "PROFILE_IN_USE"


class DuplicateAssignmentError(ConflictError):
    """User already has an assignment or the code/slug is taken."""

    error_code = "DUPLICATE_ASSIGNMENT"


class InvalidEventError(ReferralError):
    """Inbound event or policy payload is malformed."""

    error_code = "INVALID_EVENT"


class InvalidTransitionError(ReferralError):
    """Requested status change is not allowed from the current state."""

    error_code = "INVALID_TRANSITION"


class InvalidPolicyError(InvalidEventError):
    """Reward policy JSON cannot be parsed or has invalid values."""

    error_code = "INVALID_POLICY"
