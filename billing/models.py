"""
Purpose: Domain models for membership billing.
What it does:
Defines PaymentProof (a manually uploaded transfer screenshot plus the admin
decision on it) and its status enum.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from common.clock import ensure_aware


class PaymentStatus(str, Enum):
    PROOF_UPLOADED = "proof_uploaded"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PaymentProof:
    id: str
    driver_id: str
    month_number: int
    amount: int
    evidence_ref: str
    uploaded_at: datetime
    status: PaymentStatus = PaymentStatus.PROOF_UPLOADED

    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    def __post_init__(self):
        ensure_aware(self.uploaded_at, "uploaded_at")
        ensure_aware(self.verified_at, "verified_at")
        if self.month_number < 1:
            raise ValueError(f"month_number must be >= 1, got {self.month_number}")

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PROOF_UPLOADED
