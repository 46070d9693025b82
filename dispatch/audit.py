"""
Purpose: Audit export for cancellation history.
What it does:
Turns the append-only CancellationLog records into pandas DataFrames for
reporting (who cancels, how often, how many rebooking attempts a booking
needed).
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Iterable

import pandas as pd

from .cancellation import CancellationLog

COLUMNS = [
    "id",
    "driver_id",
    "booking_id",
    "booking_kind",
    "vehicle_class",
    "cancelled_at",
    "reason",
    "penalty_hours",
    "rebooking_attempt",
]


def cancellation_frame(logs: Iterable[CancellationLog]) -> pd.DataFrame:
    rows = []
    for log in logs:
        row = asdict(log)
        row["booking_kind"] = log.booking_kind.value
        row["vehicle_class"] = log.vehicle_class.value
        rows.append(row)

    df = pd.DataFrame(rows, columns=COLUMNS)
    df["cancelled_at"] = pd.to_datetime(df["cancelled_at"], utc=True)
    return df.sort_values(["cancelled_at", "id"]).reset_index(drop=True)


def cancellation_summary(logs: Iterable[CancellationLog]) -> pd.DataFrame:
    """
    One row per driver: number of cancellations, most recent one, and the
    highest rebooking attempt they caused. Sorted worst offenders first.
    """
    df = cancellation_frame(logs)
    if df.empty:
        return pd.DataFrame(columns=["driver_id", "cancellations", "last_cancelled_at", "max_rebooking_attempt"])

    summary = (
        df.groupby("driver_id")
        .agg(
            cancellations=("id", "count"),
            last_cancelled_at=("cancelled_at", "max"),
            max_rebooking_attempt=("rebooking_attempt", "max"),
        )
        .reset_index()
    )
    return summary.sort_values(["cancellations", "driver_id"], ascending=[False, True]).reset_index(drop=True)
