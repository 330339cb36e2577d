"""
Cooldown and backoff arithmetic for the polling system.

These are pure functions so the gate applied to background ticks can be
reasoned about (and tested) without a running controller.
"""

from dataclasses import dataclass
from enum import Enum

DEFAULT_MAX_BACKOFF_SECONDS = 300.0


class GateDecision(str, Enum):
    """Outcome of the background fetch gate."""

    PROCEED = "proceed"
    COOLDOWN = "cooldown"
    BACKOFF = "backoff"


@dataclass(frozen=True)
class ErrorState:
    """Snapshot of the error bookkeeping for display."""

    consecutive_errors: int
    in_backoff: bool
    backoff_seconds: float


def backoff_window(
    consecutive_errors: int,
    max_consecutive_errors: int,
    cooldown_seconds: float,
    max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
) -> float:
    """
    Calculate the minimum spacing required after repeated failures.

    Below the threshold the window is zero. Reaching the threshold doubles the
    cooldown, and every further failure doubles it again, up to the cap.

    Args:
        consecutive_errors: Failures since the last success
        max_consecutive_errors: Threshold at which backoff kicks in
        cooldown_seconds: Base cooldown
        max_backoff_seconds: Upper bound for the window

    Returns:
        Backoff window in seconds
    """
    if consecutive_errors < max_consecutive_errors:
        return 0.0

    exponent = consecutive_errors - max_consecutive_errors + 1
    # Keep the exponent bounded so a long outage cannot overflow the float.
    exponent = min(exponent, 32)
    return min(cooldown_seconds * (2**exponent), max_backoff_seconds)


def evaluate_gate(
    now: float,
    last_fetch_time: float,
    consecutive_errors: int,
    max_consecutive_errors: int,
    cooldown_seconds: float,
    max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
) -> GateDecision:
    """
    Decide whether a background tick may fetch.

    Returns:
        PROCEED, or the reason the tick should be skipped
    """
    elapsed = now - last_fetch_time
    if elapsed < cooldown_seconds:
        return GateDecision.COOLDOWN

    if consecutive_errors >= max_consecutive_errors:
        window = backoff_window(
            consecutive_errors,
            max_consecutive_errors,
            cooldown_seconds,
            max_backoff_seconds,
        )
        if elapsed < window:
            return GateDecision.BACKOFF

    return GateDecision.PROCEED
