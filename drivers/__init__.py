"""
Drivers domain package.

Public API:
- Domain models: Driver, VehicleClass, MembershipStatus, Language
- Policy: DriverPolicy, default_driver_policy
- Rate governor: legal_minimum, max_allowed, effective_rate, validate_new_rate
"""
from .models import Driver, VehicleClass, MembershipStatus, Language
from .policy import DriverPolicy, default_driver_policy, driver_policy_from_env
from .pricing import (
    RateError,
    legal_minimum,
    max_allowed,
    effective_rate,
    validate_new_rate,
    is_under_penalty,
    resumed_rate,
    clear_expired_penalty,
    validate_hourly_rate,
)

__all__ = [
    "Driver",
    "VehicleClass",
    "MembershipStatus",
    "Language",
    "DriverPolicy",
    "default_driver_policy",
    "driver_policy_from_env",
    "RateError",
    "legal_minimum",
    "max_allowed",
    "effective_rate",
    "validate_new_rate",
    "is_under_penalty",
    "resumed_rate",
    "clear_expired_penalty",
    "validate_hourly_rate",
]
