import pytest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from billing.fees import add_months, amount_due, membership_fee
from billing.membership import (
    BillingError,
    GoOnlineError,
    MembershipSignal,
    can_go_online,
    days_until_expiry,
    reactivate,
    remaining_clearance_hours,
    submit_payment_proof,
    tick,
    verify_payment,
)
from billing.models import PaymentProof, PaymentStatus
from common.exceptions import InvariantViolation
from dispatch.state_machines.driver_state import DriverStateException, go_online
from drivers.models import MembershipStatus


@pytest.fixture
def driver(make_driver):
    return make_driver(is_online=True)


@pytest.fixture
def make_proof(driver):
    def _make(uploaded_at, month_number=2, proof_id="proof_1", driver_id=None, **overrides):
        return PaymentProof(
            id=proof_id,
            driver_id=driver_id or driver.id,
            month_number=month_number,
            amount=135000,
            evidence_ref="uploads/transfer.jpg",
            uploaded_at=uploaded_at,
            **overrides,
        )
    return _make


# --- Fee schedule ---

@pytest.mark.parametrize(
    "month, fee",
    [(1, 100000), (2, 135000), (3, 170000), (4, 200000), (5, 200000), (24, 200000)],
)
def test_membership_fee_schedule(month, fee):
    assert membership_fee(month) == fee


def test_membership_fee_rejects_month_zero():
    with pytest.raises(ValueError):
        membership_fee(0)


def test_amount_due_is_for_next_month(driver):
    assert amount_due(driver) == 135000
    assert amount_due(replace(driver, current_month=3)) == 200000


def test_add_months_clamps_day():
    jan_31 = datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)

    assert add_months(jan_31) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert add_months(datetime(2025, 12, 15, tzinfo=timezone.utc)) == datetime(2026, 1, 15, tzinfo=timezone.utc)


# --- Tick ---

def test_expired_period_deactivates_and_locks_out(driver, t0):
    """
    Driver approved at t0 never pays. One day after the period ends the
    tick deactivates them, forces them offline and they cannot go back online.
    """
    now = t0 + timedelta(days=31)

    result = tick(driver, [], now)

    assert result.changed
    assert result.driver.membership_status == MembershipStatus.DEACTIVATED
    assert result.driver.is_online is False
    assert [n.signal for n in result.notices] == [MembershipSignal.DEACTIVATED]

    lockout = can_go_online(result.driver, now)
    assert lockout.error == GoOnlineError.DEACTIVATED
    assert go_online(result.driver, now).error == GoOnlineError.DEACTIVATED


def test_recent_proof_opens_grace_period(driver, make_proof, t0):
    """
    Period already over, but a proof uploaded 10 hours ago keeps the
    driver in PAYMENT_VERIFICATION and able to drive.
    """
    now = t0 + timedelta(days=30, hours=2)
    proof = make_proof(uploaded_at=now - timedelta(hours=10))

    result = tick(driver, [proof], now)

    assert result.driver.membership_status == MembershipStatus.PAYMENT_VERIFICATION
    assert [n.signal for n in result.notices] == [MembershipSignal.VERIFICATION_STARTED]
    assert result.notices[0].proof_id == "proof_1"
    assert remaining_clearance_hours(proof, now) == 38

    assert can_go_online(result.driver, now).success
    assert go_online(replace(result.driver, is_online=False), now).value.is_online


def test_expired_membership_without_verification_cannot_go_online(driver, t0):
    now = t0 + timedelta(days=30, minutes=1)

    assert can_go_online(driver, now).error == GoOnlineError.MEMBERSHIP_EXPIRED


def test_clearance_window_passed_requires_manual_review(driver, make_proof, t0):
    """Nothing is decided automatically; only a notice is raised."""
    verifying = replace(driver, membership_status=MembershipStatus.PAYMENT_VERIFICATION)
    proof = make_proof(uploaded_at=t0 + timedelta(days=25))
    now = t0 + timedelta(days=28)

    result = tick(verifying, [proof], now)

    assert not result.changed
    assert [n.signal for n in result.notices] == [MembershipSignal.MANUAL_REVIEW_REQUIRED]
    assert result.notices[0].proof_id == proof.id


def test_outcome_does_not_depend_on_sweep_schedule(driver, make_proof, t0):
    """
    Proof uploaded 10 hours before the period ends. A driver swept an hour
    after the upload and one first swept on day 32 (clearance long gone)
    end up in the same state and may both go online.
    """
    proof = make_proof(uploaded_at=driver.period_end - timedelta(hours=10))
    day_32 = t0 + timedelta(days=32)

    frequent = driver
    for now in (proof.uploaded_at + timedelta(hours=1), day_32):
        frequent = tick(frequent, [proof], now).driver or frequent

    sparse_result = tick(driver, [proof], day_32)
    sparse = sparse_result.driver

    assert sparse.membership_status == frequent.membership_status == MembershipStatus.PAYMENT_VERIFICATION
    assert can_go_online(sparse, day_32).success
    assert can_go_online(frequent, day_32).success
    assert [n.signal for n in sparse_result.notices] == [MembershipSignal.MANUAL_REVIEW_REQUIRED]
    assert not tick(sparse, [proof], day_32).changed


def test_reminder_sent_once_per_period(driver, t0):
    now = t0 + timedelta(days=25)

    first = tick(driver, [], now)
    assert first.driver.membership_status == MembershipStatus.PENDING_PAYMENT
    assert first.driver.notification_sent_at == now
    assert [n.signal for n in first.notices] == [MembershipSignal.PAYMENT_REMINDER]
    assert "135,000" in first.notices[0].message

    later = tick(first.driver, [], now + timedelta(days=1))
    assert not later.changed
    assert later.notices == ()


def test_no_reminder_outside_window(driver, t0):
    result = tick(driver, [], t0 + timedelta(days=10))

    assert not result.changed
    assert result.notices == ()
    assert days_until_expiry(driver, t0 + timedelta(days=10)) == 20


def test_tick_is_idempotent(driver, make_proof, t0):
    scenarios = [
        (t0 + timedelta(days=25), []),
        (t0 + timedelta(days=31), []),
        (t0 + timedelta(days=30, hours=2), [make_proof(uploaded_at=t0 + timedelta(days=30))]),
    ]
    for now, proofs in scenarios:
        once = tick(driver, proofs, now)
        twice = tick(once.driver or driver, proofs, now)
        assert not twice.changed


def test_deactivated_driver_online_is_forced_offline(driver, t0):
    stale = replace(driver, membership_status=MembershipStatus.DEACTIVATED, is_online=True)

    result = tick(stale, [], t0 + timedelta(days=40))

    assert result.driver.is_online is False
    assert result.notices == ()


def test_proof_for_wrong_month_is_ignored(driver, make_proof, t0):
    now = t0 + timedelta(days=31)
    old_proof = make_proof(uploaded_at=now - timedelta(hours=1), month_number=1)

    result = tick(driver, [old_proof], now)

    assert result.driver.membership_status == MembershipStatus.DEACTIVATED


def test_other_drivers_proofs_are_ignored(driver, make_proof, t0):
    now = t0 + timedelta(days=31)
    foreign = make_proof(uploaded_at=now - timedelta(hours=1), driver_id="driver_2")

    result = tick(driver, [foreign], now)

    assert result.driver.membership_status == MembershipStatus.DEACTIVATED


# --- Admin decision ---

def test_approved_payment_renews_period(driver, make_proof, t0):
    verifying = replace(driver, membership_status=MembershipStatus.PAYMENT_VERIFICATION)
    proof = make_proof(uploaded_at=t0 + timedelta(days=29))
    now = t0 + timedelta(days=30, hours=5)

    outcome = verify_payment(verifying, proof, True, "admin_1", now).unwrap()

    renewed = outcome.driver
    assert renewed.membership_status == MembershipStatus.ACTIVE
    assert renewed.current_month == 2
    assert renewed.period_start == driver.period_end + timedelta(milliseconds=1)
    assert renewed.period_end == add_months(renewed.period_start, 1)
    assert renewed.last_payment_at == now
    assert renewed.notification_sent_at is None

    assert outcome.proof.status == PaymentStatus.VERIFIED
    assert outcome.proof.verified_by == "admin_1"
    assert outcome.proof.verified_at == now


def test_approved_payment_for_deactivated_driver(driver, make_proof, t0):
    """A deactivated driver comes back as PENDING_PAYMENT, never straight to ACTIVE."""
    deactivated = replace(driver, membership_status=MembershipStatus.DEACTIVATED, is_online=False)
    proof = make_proof(uploaded_at=t0 + timedelta(days=32))

    outcome = verify_payment(deactivated, proof, True, "admin_1", t0 + timedelta(days=33)).unwrap()

    assert outcome.driver.membership_status == MembershipStatus.PENDING_PAYMENT
    assert outcome.driver.current_month == 2
    assert reactivate(deactivated).membership_status == MembershipStatus.PENDING_PAYMENT


def test_rejected_payment(driver, make_proof, t0):
    verifying = replace(driver, membership_status=MembershipStatus.PAYMENT_VERIFICATION)
    proof = make_proof(uploaded_at=t0 + timedelta(days=29))
    now = t0 + timedelta(days=29, hours=3)

    outcome = verify_payment(verifying, proof, False, "admin_1", now).unwrap()

    assert outcome.driver.membership_status == MembershipStatus.PENDING_PAYMENT
    assert outcome.driver.current_month == 1
    assert outcome.proof.status == PaymentStatus.REJECTED
    assert outcome.proof.rejection_reason == "Payment proof rejected"

    again = verify_payment(outcome.driver, outcome.proof, True, "admin_2", now)
    assert again.error == BillingError.PROOF_ALREADY_DECIDED


def test_rejecting_keeps_deactivated_driver_deactivated(driver, make_proof, t0):
    deactivated = replace(driver, membership_status=MembershipStatus.DEACTIVATED)
    proof = make_proof(uploaded_at=t0 + timedelta(days=32))

    outcome = verify_payment(deactivated, proof, False, "admin_1", t0 + timedelta(days=33), "Blurry image").unwrap()

    assert outcome.driver.membership_status == MembershipStatus.DEACTIVATED
    assert outcome.proof.rejection_reason == "Blurry image"


def test_approving_proof_for_wrong_month_fails(driver, make_proof, t0):
    proof = make_proof(uploaded_at=t0 + timedelta(days=29), month_number=3)

    result = verify_payment(driver, proof, True, "admin_1", t0 + timedelta(days=29))

    assert result.error == BillingError.PROOF_MONTH_MISMATCH


def test_proof_of_another_driver_is_an_invariant_violation(driver, make_proof, t0):
    proof = make_proof(uploaded_at=t0, driver_id="driver_2")

    with pytest.raises(InvariantViolation):
        verify_payment(driver, proof, True, "admin_1", t0)


def test_month_only_moves_forward_by_one(driver, t0):
    current = driver
    for expected_month in range(2, 7):
        now = current.period_end - timedelta(days=2)
        proof = submit_payment_proof(current, f"proof_{expected_month}", "uploads/x.jpg", now).unwrap()
        current = verify_payment(current, proof, True, "admin_1", now).unwrap().driver

        assert current.current_month == expected_month
        assert current.membership_status == MembershipStatus.ACTIVE


# --- Driver side ---

def test_submit_payment_proof(driver, t0):
    now = t0 + timedelta(days=26)

    proof = submit_payment_proof(driver, "proof_1", "uploads/transfer.jpg", now).unwrap()

    assert proof.month_number == 2
    assert proof.amount == 135000
    assert proof.status == PaymentStatus.PROOF_UPLOADED
    assert proof.uploaded_at == now

    duplicate = submit_payment_proof(driver, "proof_2", "uploads/again.jpg", now, existing_proofs=[proof])
    assert duplicate.error == BillingError.DUPLICATE_PENDING_PROOF


def test_submit_payment_proof_rejects_short_amount(driver, t0):
    result = submit_payment_proof(driver, "proof_1", "uploads/transfer.jpg", t0, amount=100000)

    assert result.error == BillingError.INSUFFICIENT_AMOUNT


def test_unverified_driver_going_online_is_a_bug(make_driver, t0):
    with pytest.raises(DriverStateException):
        go_online(make_driver(is_verified=False), t0)
