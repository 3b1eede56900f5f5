"""Plans, billing intervals, and subscription period arithmetic.

Pure domain functions. No DB access.
"""

import calendar
from datetime import datetime, timedelta, timezone
from enum import StrEnum


class Plan(StrEnum):
    """Paid tiers. ``free`` is the implicit tier and is never purchasable."""

    PRO = "pro"
    BUSINESS = "business"


FREE_TIER = "free"


class BillingInterval(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    TRIAL = "trial"


class SubscriptionStatus(StrEnum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class TransactionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


def parse_plan(value: object) -> Plan | None:
    try:
        return Plan(str(value or "").strip().lower())
    except ValueError:
        return None


def parse_billing_interval(value: object) -> BillingInterval:
    """Unknown or missing intervals are treated as monthly."""
    try:
        return BillingInterval(str(value or "").strip().lower())
    except ValueError:
        return BillingInterval.MONTHLY


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month addition, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_period_end(start: datetime, interval: BillingInterval, trial_days: int) -> datetime:
    if interval == BillingInterval.YEARLY:
        return add_months(start, 12)
    if interval == BillingInterval.TRIAL:
        return start + timedelta(days=trial_days)
    return add_months(start, 1)


def status_for_interval(interval: BillingInterval) -> SubscriptionStatus:
    if interval == BillingInterval.TRIAL:
        return SubscriptionStatus.TRIALING
    return SubscriptionStatus.ACTIVE


def as_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
