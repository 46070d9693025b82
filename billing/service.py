"""
Purpose: Membership service (store-backed billing workflow).
What it does:
- submit_proof: driver uploads a transfer screenshot for the next month
- review_proof: admin approves / rejects it
- run_sweep: periodic tick over every driver (verification window,
  deactivation, reminders, expired penalty cleanup)

MembershipSweepMonitor runs the sweep on a background thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from common.clock import Clock, SystemClock
from common.results import Result
from drivers.pricing import clear_expired_penalty
from storage.memory import DRIVERS, PROOFS, InMemoryStore, VersionConflict, Write

from .membership import (
    BillingError,
    MembershipNotice,
    VerificationOutcome,
    submit_payment_proof,
    tick,
    verify_payment,
)
from .models import PaymentProof
from .policy import BillingPolicy, default_billing_policy

logger = logging.getLogger(__name__)


def _driver_lock(driver_id: str) -> str:
    return f"driver_{driver_id}"


def _proof_lock(proof_id: str) -> str:
    return f"proof_{proof_id}"


@dataclass
class SweepReport:
    evaluated: int = 0
    updated_driver_ids: List[str] = field(default_factory=list)
    notices: List[MembershipNotice] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    penalties_cleared: int = 0


class MembershipService:
    def __init__(
        self,
        store: InMemoryStore,
        policy: Optional[BillingPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.policy = policy or default_billing_policy()
        self.clock = clock or SystemClock()

    def submit_proof(
        self,
        driver_id: str,
        proof_id: str,
        evidence_ref: str,
        amount: Optional[int] = None,
    ) -> Result[PaymentProof]:
        now = self.clock.now()
        with self.store.lock(_driver_lock(driver_id)):
            driver = self.store.get(DRIVERS, driver_id).record
            result = submit_payment_proof(
                driver,
                proof_id,
                evidence_ref,
                now,
                existing_proofs=self.store.proofs_for_driver(driver_id),
                amount=amount,
                policy=self.policy,
            )
            if not result.success:
                return result

            self.store.insert(PROOFS, result.value)

        logger.info("Driver %s uploaded proof %s for month %s", driver_id, proof_id, result.value.month_number)
        return result

    def review_proof(
        self,
        proof_id: str,
        approved: bool,
        admin_id: str,
        rejection_reason: Optional[str] = None,
    ) -> Result[VerificationOutcome]:
        now = self.clock.now()
        proof_entry = self.store.get(PROOFS, proof_id)
        driver_id = proof_entry.record.driver_id

        with self.store.lock(_proof_lock(proof_id), _driver_lock(driver_id)):
            proof_entry = self.store.get(PROOFS, proof_id)
            driver_entry = self.store.get(DRIVERS, driver_id)

            result = verify_payment(
                driver_entry.record,
                proof_entry.record,
                approved,
                admin_id,
                now,
                rejection_reason=rejection_reason,
            )
            if not result.success:
                return result

            outcome = result.value
            try:
                self.store.commit([
                    Write(PROOFS, outcome.proof, proof_entry.version),
                    Write(DRIVERS, outcome.driver, driver_entry.version),
                ])
            except VersionConflict:
                return Result.fail(BillingError.CONFLICT, "Driver or proof changed, please refresh")

        logger.info(
            "Proof %s %s by %s; driver %s is now %s (month %s)",
            proof_id,
            outcome.proof.status.value,
            admin_id,
            driver_id,
            outcome.driver.membership_status.value,
            outcome.driver.current_month,
        )
        return result

    def run_sweep(self) -> SweepReport:
        """
        One pass over every driver. A driver whose record changed between
        read and commit is skipped and picked up again on the next sweep.
        """
        now = self.clock.now()
        report = SweepReport()

        for entry in self.store.all(DRIVERS):
            driver_id = entry.record.id
            with self.store.lock(_driver_lock(driver_id)):
                current = self.store.get(DRIVERS, driver_id)
                report.evaluated += 1

                outcome = tick(current.record, self.store.proofs_for_driver(driver_id), now, self.policy)
                report.notices.extend(outcome.notices)

                updated = outcome.driver or current.record
                cleaned = clear_expired_penalty(updated, now)
                if cleaned is not updated:
                    report.penalties_cleared += 1

                if cleaned == current.record:
                    continue

                try:
                    self.store.commit([Write(DRIVERS, cleaned, current.version)])
                except VersionConflict:
                    report.conflicts.append(driver_id)
                    continue

                report.updated_driver_ids.append(driver_id)

        if report.updated_driver_ids or report.conflicts:
            logger.info(
                "Membership sweep: %s evaluated, %s updated, %s conflicts, %s penalties cleared",
                report.evaluated,
                len(report.updated_driver_ids),
                len(report.conflicts),
                report.penalties_cleared,
            )
        return report


class MembershipSweepMonitor:
    """Runs MembershipService.run_sweep every `interval_seconds` on a daemon thread."""

    def __init__(
        self,
        service: MembershipService,
        interval_seconds: float,
        on_report: Optional[Callable[[SweepReport], None]] = None,
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self.on_report = on_report
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self):
        if not self._thread.is_alive():
            logger.info("Starting membership sweep monitor (interval=%ss)", self.interval_seconds)
            self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout)

    def run_once(self) -> SweepReport:
        report = self.service.run_sweep()
        if self.on_report:
            self.on_report(report)
        return report

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:  # pragma: no cover - best effort logging
                logger.exception("Membership sweep monitor encountered an error")
