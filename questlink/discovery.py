"""Locate the Quest on the team subnet and bind an adb session to it."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from questlink.bridge import AdbClient, NetworkAddress
from questlink.config import ToolConfig
from questlink.errors import TransportError
from questlink.events import EventLogger
from questlink.netscan import NmapScanner
from questlink.subnet import resolve_subnet

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


@dataclass(slots=True)
class DiscoveryResult:
    subnet: str
    address: Optional[NetworkAddress] = None
    probed: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.address is not None


class DiscoveryEngine:
    """Scan, connect, verify, retreat.

    Candidates are tried strictly in the order the scanner reported them and
    the first one that shows up in the adb device listing wins. There is no
    attempt to rank several responsive hosts: the robot network is expected to
    carry exactly one headset.
    """

    def __init__(
        self,
        adb: AdbClient,
        scanner: NmapScanner,
        *,
        config: ToolConfig | None = None,
        events: Optional[EventLogger] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.adb = adb
        self.scanner = scanner
        self.config = config or adb.config
        self.events = events
        self._progress = progress

    async def discover(self, team: str) -> DiscoveryResult:
        subnet = resolve_subnet(team)
        self.scanner.ensure_installed()

        result = DiscoveryResult(subnet=subnet)
        self._notify("scan", f"{subnet}.0/24")
        await self._log("scan_start", status="pending", subnet=subnet)

        await self.adb.reset_server()
        scan = await self.scanner.scan_subnet(subnet)
        await self._log(
            "scan_complete",
            status="ok",
            value=float(len(scan)),
            subnet=subnet,
            candidates=list(scan.candidates),
        )

        for host in scan:
            address = NetworkAddress(host=host, port=self.config.port)
            result.probed.append(host)
            self._notify("candidate", address.endpoint)
            if await self._probe(address):
                result.address = address
                await self._log("candidate_verified", status="ok", address=address.endpoint)
                logger.info("Quest found at %s", address)
                return result
            await self._log("candidate_rejected", status="failed", address=address.endpoint)

        await self._log("discovery_failed", status="failed", subnet=subnet, probed=len(result.probed))
        return result

    async def _probe(self, address: NetworkAddress) -> bool:
        await self._log("candidate_probe", status="pending", address=address.endpoint)
        try:
            reply = await self.adb.connect(address, timeout=self.config.connect_timeout)
            logger.debug("adb connect %s: %s", address, reply)
        except TransportError as exc:
            logger.debug("connect to %s failed: %s", address, exc)

        try:
            verified = await self.adb.is_connected(address, timeout=self.config.verify_timeout)
        except TransportError as exc:
            logger.debug("verifying %s failed: %s", address, exc)
            verified = False
        if verified:
            return True

        try:
            await self.adb.disconnect(address, timeout=self.config.connect_timeout)
        except TransportError as exc:
            logger.debug("cleanup disconnect of %s failed: %s", address, exc)
        return False

    def _notify(self, stage: str, detail: str) -> None:
        if self._progress is not None:
            self._progress(stage, detail)

    async def _log(self, event: str, **payload: Any) -> None:
        if not self.events:
            return
        try:
            await self.events.log_async(event, **payload)
        except OSError:
            logger.debug("Event logging failed for %s", event, exc_info=True)


__all__ = ["DiscoveryEngine", "DiscoveryResult", "ProgressCallback"]
