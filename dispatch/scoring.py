#Purpose: Ranking (the "who is best" layer).
#Takes candidates (already eligible) and produces an ordered list:
#rating, highest first
#fewest cancellations when ratings tie (reliability over raw rating)
#driver id as the final deterministic tie-break
#optional: speakers of the customer's preferred language first (stable)
#Output: ranked drivers for the offer broadcast.

from typing import Iterable, List, Optional

from drivers.models import Driver, Language


def rank_candidates(candidates: Iterable[Driver], preferred_language: Optional[Language] = None) -> List[Driver]:
    ranked = sorted(candidates, key=lambda d: (-d.rating, d.cancellation_count, d.id))

    if preferred_language is None:
        return ranked

    speakers = [d for d in ranked if d.speaks(preferred_language)]
    others = [d for d in ranked if not d.speaks(preferred_language)]
    return speakers + others


def broadcast_set(candidates: List[Driver], cap: int = 10) -> List[str]:
    """
    Ids of the drivers to notify: the first min(cap, len(candidates)).
    Caps the fan-out so one booking never pings an unbounded pool.
    """
    return [driver.id for driver in candidates[:max(0, cap)]]
