"""
Polling system for the MamaCare monitor.

This package contains the controller that keeps stale-while-revalidate
snapshots of upstream data, together with its gate arithmetic, error
classification and metrics.
"""

from .classification import ErrorKind, default_classifier, http_classifier
from .controller import ControllerState, PollingController, Snapshot
from .results import FetchFailure, FetchSuccess, as_fetch_fn, with_timeout

__all__ = [
    "ControllerState",
    "ErrorKind",
    "FetchFailure",
    "FetchSuccess",
    "PollingController",
    "Snapshot",
    "as_fetch_fn",
    "default_classifier",
    "http_classifier",
    "with_timeout",
]
