"""
Purpose: Core data models for the drivers domain.
What it does:
Defines the structure of a Driver, its vehicle class and membership status
without relying on any ORM or storage constraints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Tuple

from common.clock import ensure_aware


class VehicleClass(str, Enum):
    BIKE = "Bike"
    TUKTUK = "Tuktuk"
    CAR = "Car"
    BOX_LORRY = "Box Lorry"
    FLATBED_LORRY = "Flatbed Lorry"


class MembershipStatus(str, Enum):
    """
    Monthly membership billing state.
    PAYMENT_VERIFICATION is the 48-hour clearance window after a proof upload.
    DEACTIVATED is reached only through late payment.
    """
    ACTIVE = "active"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_VERIFICATION = "payment_verification"
    DEACTIVATED = "deactivated"


class Language(str, Enum):
    INDONESIAN = "Indonesian (Bahasa Indonesia)"
    ENGLISH = "English"
    JAVANESE = "Javanese (Bahasa Jawa)"
    SUNDANESE = "Sundanese (Bahasa Sunda)"
    CHINESE = "Chinese (Mandarin)"
    ARABIC = "Arabic"
    DUTCH = "Dutch"
    JAPANESE = "Japanese"
    KOREAN = "Korean"
    FRENCH = "French"
    GERMAN = "German"
    SPANISH = "Spanish"


# First billing period after registration approval.
INITIAL_PERIOD_DAYS = 30


@dataclass(frozen=True)
class Driver:
    """
    A stateless snapshot of a Driver at a specific point in time.
    Every governance operation returns a new instance via dataclasses.replace.
    """
    id: str
    name: str
    vehicle_class: VehicleClass

    rating: float = 5.0
    is_online: bool = False
    is_verified: bool = False
    trips_completed: int = 0
    cancellation_count: int = 0
    languages: Tuple[Language, ...] = ()

    # --- Pricing ---
    custom_rate: Optional[int] = None
    last_rate_update_at: Optional[datetime] = None
    next_rate_update_allowed_at: Optional[datetime] = None
    hourly_rate: Optional[int] = None
    offers_hourly_rental: bool = False

    # --- Cancellation penalty ---
    # `now < penalty_until` is the only test for "under penalty".
    penalty_until: Optional[datetime] = None
    penalty_reason: Optional[str] = None
    # custom_rate is shown as the legal minimum while penalised; this is the
    # rate the driver had picked, resumed once the penalty is over.
    rate_before_penalty: Optional[int] = None

    # --- Membership ---
    membership_status: MembershipStatus = MembershipStatus.ACTIVE
    current_month: int = 1
    membership_started_at: Optional[datetime] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    last_payment_at: Optional[datetime] = None
    notification_sent_at: Optional[datetime] = None

    def __post_init__(self):
        if self.current_month < 1:
            raise ValueError(f"current_month must be >= 1, got {self.current_month}")
        for name in (
            "last_rate_update_at",
            "next_rate_update_allowed_at",
            "penalty_until",
            "membership_started_at",
            "period_start",
            "period_end",
            "last_payment_at",
            "notification_sent_at",
        ):
            ensure_aware(getattr(self, name), name)

    @classmethod
    def new(
        cls,
        driver_id: str,
        name: str,
        vehicle_class: str | VehicleClass,
        approved_at: datetime,
        rating: float = 5.0,
        is_verified: bool = True,
        languages: Iterable[str | Language] = (),
    ) -> Driver:
        """
        Registration approval: Active, month 1, first period of 30 days.
        """
        if isinstance(vehicle_class, str):
            vehicle_class = VehicleClass(vehicle_class)
        ensure_aware(approved_at, "approved_at")

        return cls(
            id=driver_id,
            name=name,
            vehicle_class=vehicle_class,
            rating=rating,
            is_verified=is_verified,
            languages=tuple(Language(lang) for lang in languages),
            membership_status=MembershipStatus.ACTIVE,
            current_month=1,
            membership_started_at=approved_at,
            period_start=approved_at,
            period_end=approved_at + timedelta(days=INITIAL_PERIOD_DAYS),
        )

    @property
    def is_deactivated(self) -> bool:
        return self.membership_status == MembershipStatus.DEACTIVATED

    def speaks(self, language: Language) -> bool:
        return language in self.languages
