#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Scoring / ranking + broadcast cap
#Cancellation & penalty engine
#Dispatcher orchestrator (the "one call" entry point over a store)

from .candidate_filter import build_base_candidates
from .scoring import rank_candidates, broadcast_set
from .selector import select_candidates, candidates_for_booking
from .cancellation import (
    CancellationError,
    CancellationLog,
    CancellationOutcome,
    handle_driver_cancellation,
    customer_notice,
    penalty_details,
    reliability_score,
)
from .dispatcher import Dispatcher, DispatchError, DispatchResult

__all__ = [
    "build_base_candidates",
    "rank_candidates",
    "broadcast_set",
    "select_candidates",
    "candidates_for_booking",
    "CancellationError",
    "CancellationLog",
    "CancellationOutcome",
    "handle_driver_cancellation",
    "customer_notice",
    "penalty_details",
    "reliability_score",
    "Dispatcher",
    "DispatchError",
    "DispatchResult",
]
