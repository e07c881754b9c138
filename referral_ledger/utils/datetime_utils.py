"""
Datetime utilities.

Provides timezone-aware datetime functions.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def start_of_month(moment: datetime | None = None) -> datetime:
    """
    Get the first instant of the calendar month (UTC).

    Args:
        moment: Reference time (defaults to now)

    Returns:
        Midnight of day 1 of the month containing ``moment``
    """
    moment = moment or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_days(moment: datetime, days: int) -> datetime:
    """Shift a datetime by whole days."""
    return moment + timedelta(days=days)
