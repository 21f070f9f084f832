"""QuestLink: adb discovery and session recovery for a Quest on a robot network."""
from __future__ import annotations

from questlink.bridge import AdbClient, DeviceEntry, NetworkAddress
from questlink.config import ToolConfig
from questlink.discovery import DiscoveryEngine, DiscoveryResult
from questlink.netscan import NmapScanner, ScanResult, plan_scan
from questlink.reconnect import ReconnectionSupervisor, RetryPlan
from questlink.subnet import resolve_subnet

__version__ = "0.1.0"

__all__ = [
    "AdbClient",
    "DeviceEntry",
    "DiscoveryEngine",
    "DiscoveryResult",
    "NetworkAddress",
    "NmapScanner",
    "ReconnectionSupervisor",
    "RetryPlan",
    "ScanResult",
    "ToolConfig",
    "plan_scan",
    "resolve_subnet",
]
