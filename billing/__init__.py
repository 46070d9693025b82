"""
Membership billing package.

Public API:
- Domain models: PaymentProof, PaymentStatus
- Policy: BillingPolicy, default_billing_policy
- Fee schedule: membership_fee, amount_due
- State machine: tick, verify_payment, can_go_online, submit_payment_proof
- Service: MembershipService, MembershipSweepMonitor
"""
from .models import PaymentProof, PaymentStatus
from .policy import BillingPolicy, default_billing_policy, billing_policy_from_env
from .fees import membership_fee, amount_due
from .membership import (
    BillingError,
    GoOnlineError,
    MembershipSignal,
    MembershipNotice,
    TickResult,
    VerificationOutcome,
    tick,
    verify_payment,
    can_go_online,
    submit_payment_proof,
    reactivate,
)
from .service import MembershipService, MembershipSweepMonitor, SweepReport

__all__ = [
    "PaymentProof",
    "PaymentStatus",
    "BillingPolicy",
    "default_billing_policy",
    "billing_policy_from_env",
    "membership_fee",
    "amount_due",
    "BillingError",
    "GoOnlineError",
    "MembershipSignal",
    "MembershipNotice",
    "TickResult",
    "VerificationOutcome",
    "tick",
    "verify_payment",
    "can_go_online",
    "submit_payment_proof",
    "reactivate",
    "MembershipService",
    "MembershipSweepMonitor",
    "SweepReport",
]
