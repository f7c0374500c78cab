"""End-to-end orchestration of the encrypted scoring modes."""

from .driver import (
    CancellationToken,
    DriverState,
    LatencyTracker,
    RunReport,
    ScoringDriver,
)

__all__ = [
    "ScoringDriver",
    "DriverState",
    "CancellationToken",
    "LatencyTracker",
    "RunReport",
]
