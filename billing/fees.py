"""Membership fee schedule and billing-period arithmetic."""

from __future__ import annotations

import calendar
from datetime import datetime
from typing import Optional

from drivers.models import Driver

from .policy import BillingPolicy, default_billing_policy


def membership_fee(month_number: int, policy: Optional[BillingPolicy] = None) -> int:
    """
    Fee for the given 1-based membership month. Steps up for the first
    months and stays flat on the last tier afterwards.
    """
    policy = policy or default_billing_policy()
    if month_number < 1:
        raise ValueError(f"month_number must be >= 1, got {month_number}")
    index = min(month_number, len(policy.fee_tiers)) - 1
    return policy.fee_tiers[index]


def amount_due(driver: Driver, policy: Optional[BillingPolicy] = None) -> int:
    """What the driver owes to renew into the next period."""
    return membership_fee(driver.current_month + 1, policy)


def add_months(moment: datetime, months: int = 1) -> datetime:
    """
    Calendar-month addition. The day is clamped to the end of shorter
    months (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
