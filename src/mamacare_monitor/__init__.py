"""
MamaCare Monitor

Polls the MamaCare maternal-health API and keeps stale-while-revalidate
snapshots of dashboard, patient activity and notification data.
"""

__version__ = "0.1.0"
__author__ = "MamaCare Monitor"
__email__ = "support@example.com"

from .api_client import MamaCareAPIClient
from .config import Settings
from .exceptions import MonitorError
from .monitors import DashboardMonitor, PatientActivityMonitor
from .notifications import NotificationCenter
from .polling import PollingController

__all__ = [
    "Settings",
    "MamaCareAPIClient",
    "MonitorError",
    "PollingController",
    "DashboardMonitor",
    "PatientActivityMonitor",
    "NotificationCenter",
]
