"""Session recovery around app restarts that bounce the headset's network link."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, Tuple

from questlink.bridge import AdbClient, NetworkAddress
from questlink.config import ToolConfig
from questlink.errors import ReconnectExhaustedError, TransportError
from questlink.events import EventLogger

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[str, str], None]


@dataclass(frozen=True, slots=True)
class RetryPlan:
    """Bounded attempts with a linearly growing wait: ``step * attempt``."""

    max_attempts: int = 5
    step: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.step <= 0:
            raise ValueError("step must be positive")

    def delay(self, attempt: int) -> float:
        return self.step * attempt

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        for attempt in range(1, self.max_attempts + 1):
            yield attempt, self.delay(attempt)

    @property
    def budget(self) -> float:
        return sum(delay for _, delay in self)


@dataclass(slots=True)
class RestartOutcome:
    address: Optional[NetworkAddress]
    reconnected: bool = False
    attempts: int = 0
    waited: float = 0.0


class ReconnectionSupervisor:
    """Run a disruptive action and repair the adb session if it dropped.

    Restarting QuestNav resets the headset's USB Ethernet interface, which can
    take the adb-over-TCP session down with it. The supervisor remembers the
    address in use before the action, checks the device listing afterwards
    and, if the service port is gone, reconnects following :class:`RetryPlan`.
    """

    def __init__(
        self,
        adb: AdbClient,
        *,
        config: ToolConfig | None = None,
        plan: Optional[RetryPlan] = None,
        events: Optional[EventLogger] = None,
        sleep: Optional[Sleeper] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.adb = adb
        self.config = config or adb.config
        self.plan = plan or RetryPlan(self.config.retry_attempts, self.config.retry_step)
        self.events = events
        self._sleep: Sleeper = sleep or asyncio.sleep
        self._progress = progress

    async def capture_address(self) -> Optional[NetworkAddress]:
        """Address of the first listed session on the service port, if any."""
        try:
            entries = await self.adb.devices()
        except TransportError as exc:
            logger.warning("Could not read device listing before restart: %s", exc)
            return None
        for entry in entries:
            if not entry.on_port(self.config.port):
                continue
            address = entry.address()
            if address is not None:
                return address
        return None

    async def restart_app(self) -> RestartOutcome:
        return await self.supervise(self._restart_sequence)

    async def supervise(self, action: Callable[[], Awaitable[Any]]) -> RestartOutcome:
        captured = await self.capture_address()
        await self._log("supervise_start", status="pending", address=captured.endpoint if captured else None)

        await action()

        if await self._session_alive():
            await self._log("session_survived", status="ok")
            return RestartOutcome(address=captured)

        self._notify("reset", captured.endpoint if captured else "")
        return await self.reconnect(captured)

    async def reconnect(self, address: Optional[NetworkAddress]) -> RestartOutcome:
        if address is None:
            await self._log("reconnect_failed", status="error", message="no captured address")
            raise ReconnectExhaustedError(None, 0)

        try:
            await self.adb.disconnect()
        except TransportError as exc:
            logger.debug("clearing stale sessions failed: %s", exc)
        await self._sleep(self.config.disconnect_settle)

        outcome = RestartOutcome(address=address, reconnected=True)
        for attempt, window in self.plan:
            outcome.attempts = attempt
            self._notify("attempt", str(attempt))
            await self._log("reconnect_attempt", status="pending", attempt=attempt, address=address.endpoint)
            try:
                await self.adb.connect(address, timeout=self.config.connect_timeout)
            except TransportError as exc:
                logger.info("Reconnection attempt %d to %s failed: %s", attempt, address, exc)

            waited, alive = await self._await_session(window)
            outcome.waited += waited
            if alive:
                await self._log("reconnect_attempt", status="ok", attempt=attempt, value=outcome.waited)
                return outcome

        await self._log("reconnect_failed", status="error", attempts=self.plan.max_attempts)
        raise ReconnectExhaustedError(address.endpoint, self.plan.max_attempts)

    async def _restart_sequence(self) -> None:
        package = self.config.app_package
        # adb shell can fail here if the link drops mid-command; the probe afterwards decides.
        try:
            await self.adb.shell("am", "force-stop", package)
        except TransportError as exc:
            logger.warning("force-stop of %s failed: %s", package, exc)
        await self._sleep(self.config.stop_settle)
        try:
            await self.adb.shell("monkey", "-p", package, "1")
        except TransportError as exc:
            logger.warning("launching %s failed: %s", package, exc)
        await self._sleep(self.config.launch_settle)

    async def _await_session(self, window: float) -> Tuple[float, bool]:
        """Poll the device listing for up to *window* seconds."""
        waited = 0.0
        while waited < window:
            pause = min(self.config.poll_interval, window - waited)
            await self._sleep(pause)
            waited += pause
            if await self._session_alive():
                return waited, True
        return waited, False

    async def _session_alive(self) -> bool:
        try:
            return await self.adb.is_connected()
        except TransportError as exc:
            logger.debug("device listing failed: %s", exc)
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


__all__ = ["ReconnectionSupervisor", "RestartOutcome", "RetryPlan"]
