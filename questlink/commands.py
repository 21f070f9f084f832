"""Operator commands that act on an already connected Quest."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

from questlink.bridge import AdbClient, require_tool, run_interactive
from questlink.config import ToolConfig
from questlink.errors import InvalidArgumentError, NoConnectionError
from questlink.reconnect import ProgressCallback, ReconnectionSupervisor, RestartOutcome

logger = logging.getLogger(__name__)

InteractiveRunner = Callable[[Sequence[str]], Awaitable[int]]


def validate_apk(path: Optional[str]) -> Path:
    if not path:
        raise InvalidArgumentError(
            "APK path required", hint="Usage: questlink redeploy path/to/app.apk"
        )
    apk = Path(path).expanduser()
    if not apk.is_file():
        raise InvalidArgumentError(f"APK file not found: {path}")
    return apk


class DeviceCommands:
    """Pass-through operations guarded by a live-session check.

    Every public method except :meth:`status` checks once that the adb server
    lists a session on the service port, then announces each step through
    *progress* before acting.
    """

    def __init__(
        self,
        adb: AdbClient,
        supervisor: ReconnectionSupervisor,
        *,
        config: ToolConfig | None = None,
        interactive: Optional[InteractiveRunner] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.adb = adb
        self.supervisor = supervisor
        self.config = config or adb.config
        self._interactive: InteractiveRunner = interactive or run_interactive
        self._progress = progress

    async def ensure_connected(self) -> None:
        if not await self.adb.is_connected():
            raise NoConnectionError()

    async def status(self) -> str:
        return await self.adb.listing()

    async def restart(self) -> RestartOutcome:
        await self.ensure_connected()
        return await self._restart()

    async def setup(self) -> RestartOutcome:
        await self.ensure_connected()
        self._notify("guardian")
        await self.adb.shell("setprop", "debug.oculus.guardian_pause", "1")
        return await self._restart()

    async def redeploy(self, apk_path: Optional[str]) -> RestartOutcome:
        apk = validate_apk(apk_path)
        await self.ensure_connected()
        self._notify("install", str(apk))
        logger.info("Installing %s", apk)
        await self.adb.install(apk)
        return await self._restart()

    async def stop_wireless(self) -> None:
        await self.ensure_connected()
        self._notify("wireless")
        await self.adb.shell("settings", "put", "global", "bluetooth_on", "0")
        await self.adb.shell("settings", "put", "global", "wifi_on", "0")
        self._notify("reboot")
        await self.adb.reboot()

    async def reboot(self) -> None:
        await self.ensure_connected()
        await self.adb.reboot()

    async def shutdown(self) -> None:
        await self.ensure_connected()
        await self.adb.shell("reboot", "-p")

    async def logs(self, pattern: Optional[str] = None) -> AsyncIterator[str]:
        """Stream app log lines, keeping only those containing *pattern*."""
        await self.ensure_connected()
        self._notify("logs")
        async for line in self.adb.stream_logcat(f"{self.config.log_tag}:*"):
            if pattern and pattern not in line:
                continue
            yield line

    async def screen(self) -> int:
        await self.ensure_connected()
        scrcpy = require_tool(self.config.scrcpy_path, "scrcpy")
        argv = [scrcpy, "--crop", self.config.mirror_crop, "-b", self.config.mirror_bitrate]
        return await self._interactive(argv)

    async def _restart(self) -> RestartOutcome:
        self._notify("restart")
        return await self.supervisor.restart_app()

    def _notify(self, stage: str, detail: str = "") -> None:
        if self._progress is not None:
            self._progress(stage, detail)


__all__ = ["DeviceCommands", "validate_apk"]
