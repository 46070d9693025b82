"""
Purpose: Membership billing state machine.
What it does:
Tracks a driver's monthly billing period, the payment proof lifecycle, the
48-hour clearance window and late-payment deactivation.

States:
    ACTIVE -> PENDING_PAYMENT -> PAYMENT_VERIFICATION -> ACTIVE   (renewal)
    PENDING_PAYMENT / ACTIVE -> DEACTIVATED                       (period ended unpaid)
    PAYMENT_VERIFICATION -> PENDING_PAYMENT                        (proof rejected)
    DEACTIVATED -> PENDING_PAYMENT                                 (proof approved)

Money decisions are never automatic: an expired clearance window only raises
a MANUAL_REVIEW_REQUIRED notice.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from common.clock import ensure_aware
from common.exceptions import InvariantViolation
from common.results import Result
from drivers.models import Driver, MembershipStatus

from .fees import add_months, amount_due
from .models import PaymentProof, PaymentStatus
from .policy import BillingPolicy, default_billing_policy

# The next period starts right after the previous one ends.
PERIOD_GAP = timedelta(milliseconds=1)


class BillingError(str, Enum):
    PROOF_ALREADY_DECIDED = "proof_already_decided"
    PROOF_MONTH_MISMATCH = "proof_month_mismatch"
    DUPLICATE_PENDING_PROOF = "duplicate_pending_proof"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    CONFLICT = "conflict"


class GoOnlineError(str, Enum):
    DEACTIVATED = "deactivated"
    MEMBERSHIP_EXPIRED = "membership_expired"


class MembershipSignal(str, Enum):
    VERIFICATION_STARTED = "verification_started"
    MANUAL_REVIEW_REQUIRED = "manual_review_required"
    DEACTIVATED = "deactivated"
    PAYMENT_REMINDER = "payment_reminder"


@dataclass(frozen=True)
class MembershipNotice:
    """Something the caller should tell a driver or an admin about."""
    signal: MembershipSignal
    driver_id: str
    message: str
    proof_id: Optional[str] = None


@dataclass(frozen=True)
class TickResult:
    driver: Optional[Driver]
    notices: Tuple[MembershipNotice, ...] = ()

    @property
    def changed(self) -> bool:
        return self.driver is not None


@dataclass(frozen=True)
class VerificationOutcome:
    driver: Driver
    proof: PaymentProof


# ---------------------------------------------------------------------------
# Period helpers
# ---------------------------------------------------------------------------

def is_membership_expired(driver: Driver, now: datetime) -> bool:
    ensure_aware(now, "now")
    return driver.period_end is not None and now > driver.period_end


def days_until_expiry(driver: Driver, now: datetime) -> int:
    """Whole days left in the period, rounded up. Negative once expired."""
    ensure_aware(now, "now")
    if driver.period_end is None:
        return 0
    return math.ceil((driver.period_end - now).total_seconds() / 86400)


def clearance_deadline(proof: PaymentProof, policy: Optional[BillingPolicy] = None) -> datetime:
    policy = policy or default_billing_policy()
    return proof.uploaded_at + timedelta(hours=policy.clearance_hours)


def remaining_clearance_hours(proof: PaymentProof, now: datetime, policy: Optional[BillingPolicy] = None) -> int:
    ensure_aware(now, "now")
    seconds = (clearance_deadline(proof, policy) - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))


def pending_proof_for_next_period(driver: Driver, proofs: Iterable[PaymentProof]) -> Optional[PaymentProof]:
    """
    The most recent undecided proof this driver uploaded for the month they
    are renewing into.
    """
    candidates = [
        p for p in proofs
        if p.driver_id == driver.id
        and p.is_pending
        and p.month_number == driver.current_month + 1
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.uploaded_at)


def _notified_this_period(driver: Driver) -> bool:
    if driver.notification_sent_at is None:
        return False
    if driver.period_start is None:
        return True
    return driver.notification_sent_at >= driver.period_start


# ---------------------------------------------------------------------------
# Background evaluation
# ---------------------------------------------------------------------------

def tick(
    driver: Driver,
    proofs: Iterable[PaymentProof],
    now: datetime,
    policy: Optional[BillingPolicy] = None,
) -> TickResult:
    """
    Periodic evaluation of one driver. Idempotent: running it again with the
    same inputs (and the driver it returned) changes nothing further.
    """
    policy = policy or default_billing_policy()
    ensure_aware(now, "now")

    updated = driver
    notices: List[MembershipNotice] = []
    pending = pending_proof_for_next_period(driver, proofs)

    # 1. An uploaded proof puts the driver under verification, whenever the
    #    sweep first sees it. Past the clearance window only an admin decides.
    if pending is not None:
        within_clearance = now < clearance_deadline(pending, policy)
        if updated.membership_status not in (MembershipStatus.PAYMENT_VERIFICATION, MembershipStatus.DEACTIVATED):
            updated = replace(updated, membership_status=MembershipStatus.PAYMENT_VERIFICATION)
            if within_clearance:
                notices.append(MembershipNotice(
                    MembershipSignal.VERIFICATION_STARTED,
                    driver.id,
                    f"{driver.name}'s payment is under verification "
                    f"({remaining_clearance_hours(pending, now, policy)}h remaining)",
                    proof_id=pending.id,
                ))
        if not within_clearance:
            notices.append(MembershipNotice(
                MembershipSignal.MANUAL_REVIEW_REQUIRED,
                driver.id,
                f"Payment clearance expired for {driver.name} "
                f"({policy.clearance_hours}h passed). Manual review required.",
                proof_id=pending.id,
            ))

    # 2. Period ended with nothing uploaded: deactivate and force offline.
    if is_membership_expired(updated, now) and pending is None:
        if updated.membership_status != MembershipStatus.DEACTIVATED:
            updated = replace(updated, membership_status=MembershipStatus.DEACTIVATED, is_online=False)
            notices.append(MembershipNotice(
                MembershipSignal.DEACTIVATED,
                driver.id,
                f"{driver.name}'s account deactivated due to late payment "
                f"(expired {abs(days_until_expiry(driver, now))} days ago)",
            ))
        elif updated.is_online:
            updated = replace(updated, is_online=False)

    # 3. Reminder window before the period ends.
    else:
        days_left = days_until_expiry(updated, now)
        if (
            pending is None
            and 0 < days_left <= policy.reminder_days
            and updated.membership_status == MembershipStatus.ACTIVE
        ):
            if _notified_this_period(updated):
                updated = replace(updated, membership_status=MembershipStatus.PENDING_PAYMENT)
            else:
                updated = replace(
                    updated,
                    membership_status=MembershipStatus.PENDING_PAYMENT,
                    notification_sent_at=now,
                )
                notices.append(MembershipNotice(
                    MembershipSignal.PAYMENT_REMINDER,
                    driver.id,
                    f"Payment reminder sent to {driver.name} ({days_left} days remaining, "
                    f"Rp {amount_due(driver, policy):,} due)",
                ))

    return TickResult(driver=updated if updated != driver else None, notices=tuple(notices))


# ---------------------------------------------------------------------------
# Admin decision
# ---------------------------------------------------------------------------

def reactivate(driver: Driver) -> Driver:
    """A deactivated driver comes back as PENDING_PAYMENT, never straight to ACTIVE."""
    if driver.membership_status != MembershipStatus.DEACTIVATED:
        return driver
    return replace(driver, membership_status=MembershipStatus.PENDING_PAYMENT)


def verify_payment(
    driver: Driver,
    proof: PaymentProof,
    approved: bool,
    admin_id: str,
    now: datetime,
    rejection_reason: Optional[str] = None,
) -> Result[VerificationOutcome]:
    """
    Apply an admin's decision on an uploaded proof. `admin_id` is trusted;
    authorisation happens before this is called.
    """
    ensure_aware(now, "now")

    if proof.driver_id != driver.id:
        raise InvariantViolation(f"Proof {proof.id} belongs to {proof.driver_id}, not {driver.id}")

    if not proof.is_pending:
        return Result.fail(
            BillingError.PROOF_ALREADY_DECIDED,
            f"Proof {proof.id} was already {proof.status.value}",
        )

    if not approved:
        rejected = replace(
            proof,
            status=PaymentStatus.REJECTED,
            verified_at=now,
            verified_by=admin_id,
            rejection_reason=rejection_reason or "Payment proof rejected",
        )
        updated_driver = driver
        if driver.membership_status != MembershipStatus.DEACTIVATED:
            updated_driver = replace(driver, membership_status=MembershipStatus.PENDING_PAYMENT)
        return Result.ok(VerificationOutcome(updated_driver, rejected), "Payment rejected, new proof required")

    if proof.month_number != driver.current_month + 1:
        return Result.fail(
            BillingError.PROOF_MONTH_MISMATCH,
            f"Proof is for month {proof.month_number}, driver is renewing into month {driver.current_month + 1}",
        )

    verified = replace(
        proof,
        status=PaymentStatus.VERIFIED,
        verified_at=now,
        verified_by=admin_id,
        rejection_reason=None,
    )

    next_start = (driver.period_end or now) + PERIOD_GAP
    was_deactivated = driver.membership_status == MembershipStatus.DEACTIVATED
    updated_driver = replace(
        reactivate(driver) if was_deactivated else replace(driver, membership_status=MembershipStatus.ACTIVE),
        current_month=driver.current_month + 1,
        period_start=next_start,
        period_end=add_months(next_start, 1),
        last_payment_at=now,
        notification_sent_at=None,
    )
    return Result.ok(VerificationOutcome(updated_driver, verified), "Payment verified, membership renewed")


# ---------------------------------------------------------------------------
# Driver-side operations
# ---------------------------------------------------------------------------

def can_go_online(driver: Driver, now: datetime) -> Result[None]:
    if driver.membership_status == MembershipStatus.DEACTIVATED:
        return Result.fail(
            GoOnlineError.DEACTIVATED,
            "Your account is deactivated due to late payment. Please pay your membership fee to reactivate.",
        )

    # PAYMENT_VERIFICATION is a grace period: the driver has paid and waits on us.
    if is_membership_expired(driver, now) and driver.membership_status != MembershipStatus.PAYMENT_VERIFICATION:
        return Result.fail(
            GoOnlineError.MEMBERSHIP_EXPIRED,
            "Your membership has expired. Please make payment to continue using the platform.",
        )

    return Result.ok()


def submit_payment_proof(
    driver: Driver,
    proof_id: str,
    evidence_ref: str,
    now: datetime,
    existing_proofs: Iterable[PaymentProof] = (),
    amount: Optional[int] = None,
    policy: Optional[BillingPolicy] = None,
) -> Result[PaymentProof]:
    """
    Record an uploaded proof for the month the driver is renewing into.
    The driver's status is left alone; the next tick moves it to
    PAYMENT_VERIFICATION.
    """
    ensure_aware(now, "now")
    due = amount_due(driver, policy)

    if pending_proof_for_next_period(driver, existing_proofs) is not None:
        return Result.fail(
            BillingError.DUPLICATE_PENDING_PROOF,
            "A payment proof for this period is already awaiting verification",
        )

    amount = due if amount is None else amount
    if amount < due:
        return Result.fail(BillingError.INSUFFICIENT_AMOUNT, f"Amount due is Rp {due:,}, got Rp {amount:,}")

    return Result.ok(PaymentProof(
        id=proof_id,
        driver_id=driver.id,
        month_number=driver.current_month + 1,
        amount=amount,
        evidence_ref=evidence_ref,
        uploaded_at=now,
    ))
