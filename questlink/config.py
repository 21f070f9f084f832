"""Configuration bundle shared by the discovery, reconnection and command layers."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

APP_PACKAGE = "com.DerpyCatAviationLLC.QuestNav"
QUEST_PORT = 5555


@dataclass(slots=True)
class ToolConfig:
    """Tool locations, device constants and timing budget for one invocation.

    Durations are seconds. ``connect_timeout`` and ``verify_timeout`` bound a
    single probe during discovery; the settle windows are the fixed pauses that
    let the headset's USB Ethernet interface come back after the app restarts.
    """

    adb_path: str = "adb"
    nmap_path: str = "nmap"
    scrcpy_path: str = "scrcpy"
    app_package: str = APP_PACKAGE
    port: int = QUEST_PORT
    reserved_hosts: Tuple[int, ...] = (1, 2)

    connect_timeout: float = 3.0
    verify_timeout: float = 1.0
    command_timeout: float = 30.0
    scan_timeout: float = 120.0
    install_timeout: Optional[float] = 300.0

    stop_settle: float = 3.0
    launch_settle: float = 5.0
    disconnect_settle: float = 2.0

    retry_attempts: int = 5
    retry_step: float = 2.0
    poll_interval: float = 0.5

    mirror_crop: str = "1920:1080:0:0"
    mirror_bitrate: str = "10M"
    log_tag: str = "Unity"

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.retry_attempts <= 0:
            raise ValueError("retry_attempts must be positive")
        if self.retry_step <= 0:
            raise ValueError("retry_step must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    def override(self, **changes: Any) -> "ToolConfig":
        """Return a copy with every non-``None`` value in *changes* applied."""
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied) if applied else self


__all__ = ["APP_PACKAGE", "QUEST_PORT", "ToolConfig"]
