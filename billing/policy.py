"""
Purpose: Central configuration for membership billing.
What it does:

Stores the fee schedule and the time windows of the membership cycle:

FEE_TIERS = (100000, 135000, 170000, 200000)
PAYMENT_CLEARANCE_HOURS = 48
PAYMENT_REMINDER_DAYS = 7

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class BillingPolicy:
    """
    Central configuration for membership billing.
    """

    # --- Fee schedule (IDR) ---
    # Month 1, 2, 3, then the last tier flat for month 4 onwards.
    fee_tiers: Tuple[int, ...] = (100000, 135000, 170000, 200000)

    # --- Clearance window ---
    # A driver who uploaded proof may keep driving for this long while an
    # admin verifies it. Past the window the proof needs manual review.
    clearance_hours: int = 48

    # --- Reminders ---
    # Start asking for payment this many days before the period ends.
    reminder_days: int = 7

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if not self.fee_tiers:
            raise ValueError("fee_tiers must not be empty")

        if any(later < earlier for earlier, later in zip(self.fee_tiers, self.fee_tiers[1:])):
            raise ValueError("fee_tiers must be non-decreasing")

        if self.clearance_hours <= 0:
            raise ValueError("clearance_hours must be > 0")

        if self.reminder_days <= 0:
            raise ValueError("reminder_days must be > 0")


def default_billing_policy() -> BillingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = BillingPolicy()
    p.validate()
    return p


def billing_policy_from_env() -> BillingPolicy:
    """
    Default policy with overrides read from the environment / .env file.

    Example in .env:
    PAYMENT_CLEARANCE_HOURS=48
    PAYMENT_REMINDER_DAYS=7
    """
    load_dotenv()
    p = BillingPolicy()

    overrides = {}
    if os.getenv("PAYMENT_CLEARANCE_HOURS"):
        overrides["clearance_hours"] = int(os.getenv("PAYMENT_CLEARANCE_HOURS"))
    if os.getenv("PAYMENT_REMINDER_DAYS"):
        overrides["reminder_days"] = int(os.getenv("PAYMENT_REMINDER_DAYS"))

    p = replace(p, **overrides)
    p.validate()
    return p
