"""Tests for the connected-device pass-through commands."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from unittest.mock import patch

from questlink.bridge import NetworkAddress
from questlink.commands import DeviceCommands, validate_apk
from questlink.config import ToolConfig
from questlink.errors import InvalidArgumentError, NoConnectionError
from questlink.reconnect import RestartOutcome


class _FakeAdb:
    def __init__(self, connected: bool = True, log_lines: Sequence[str] = ()) -> None:
        self.config = ToolConfig()
        self.connected = connected
        self.log_lines = list(log_lines)
        self.checks = 0
        self.calls: List[Tuple] = []

    async def is_connected(self, address: Optional[NetworkAddress] = None, *, timeout: Optional[float] = None) -> bool:
        self.checks += 1
        return self.connected

    async def listing(self, *, timeout: Optional[float] = None) -> str:
        return "List of devices attached\n10.51.52.42:5555\tdevice\n"

    async def shell(self, *command: str, timeout: Optional[float] = None) -> str:
        self.calls.append(("shell", *command))
        return ""

    async def install(self, apk: Path) -> str:
        self.calls.append(("install", str(apk)))
        return "Success"

    async def reboot(self) -> None:
        self.calls.append(("reboot",))

    async def stream_logcat(self, *filterspecs: str) -> AsyncIterator[str]:
        self.calls.append(("logcat", *filterspecs))
        for line in self.log_lines:
            yield line


class _FakeSupervisor:
    def __init__(self) -> None:
        self.restarts = 0

    async def restart_app(self) -> RestartOutcome:
        self.restarts += 1
        return RestartOutcome(address=NetworkAddress("10.51.52.42", 5555))


class ValidateApkTest(unittest.TestCase):
    def test_missing_argument(self) -> None:
        with self.assertRaises(InvalidArgumentError) as ctx:
            validate_apk(None)
        self.assertIn("redeploy", ctx.exception.hint)

    def test_nonexistent_file(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            validate_apk("/no/such/file.apk")

    def test_existing_file(self) -> None:
        with tempfile.NamedTemporaryFile(suffix=".apk") as handle:
            self.assertEqual(validate_apk(handle.name), Path(handle.name))


class DeviceCommandsTest(unittest.IsolatedAsyncioTestCase):
    def _commands(self, adb: _FakeAdb, supervisor: Optional[_FakeSupervisor] = None) -> DeviceCommands:
        return DeviceCommands(adb, supervisor or _FakeSupervisor())  # type: ignore[arg-type]

    async def test_commands_require_a_live_session(self) -> None:
        commands = self._commands(_FakeAdb(connected=False))
        for name in ("restart", "setup", "stop_wireless", "reboot", "shutdown", "screen"):
            with self.subTest(command=name), self.assertRaises(NoConnectionError):
                await getattr(commands, name)()

    async def test_status_does_not_require_a_session(self) -> None:
        commands = self._commands(_FakeAdb(connected=False))
        first = await commands.status()
        self.assertEqual(first, await commands.status())

    async def test_redeploy_rejects_missing_apk_before_anything_else(self) -> None:
        adb = _FakeAdb(connected=False)
        supervisor = _FakeSupervisor()
        with self.assertRaises(InvalidArgumentError):
            await self._commands(adb, supervisor).redeploy("/no/such/file.apk")
        self.assertEqual(adb.calls, [])
        self.assertEqual(supervisor.restarts, 0)

    async def test_redeploy_installs_then_restarts(self) -> None:
        adb = _FakeAdb()
        supervisor = _FakeSupervisor()
        with tempfile.NamedTemporaryFile(suffix=".apk") as handle:
            await self._commands(adb, supervisor).redeploy(handle.name)
        self.assertEqual(adb.calls, [("install", handle.name)])
        self.assertEqual(supervisor.restarts, 1)

    async def test_setup_pauses_guardian_then_restarts(self) -> None:
        adb = _FakeAdb()
        supervisor = _FakeSupervisor()
        await self._commands(adb, supervisor).setup()
        self.assertEqual(adb.calls, [("shell", "setprop", "debug.oculus.guardian_pause", "1")])
        self.assertEqual(supervisor.restarts, 1)

    async def test_each_command_checks_the_session_once(self) -> None:
        with tempfile.NamedTemporaryFile(suffix=".apk") as handle:
            for name, args in (("setup", ()), ("restart", ()), ("redeploy", (handle.name,)), ("stop_wireless", ())):
                with self.subTest(command=name):
                    adb = _FakeAdb()
                    await getattr(self._commands(adb), name)(*args)
                    self.assertEqual(adb.checks, 1)

    async def test_steps_are_announced_after_the_session_check(self) -> None:
        stages: List[Tuple[str, str]] = []
        commands = DeviceCommands(
            _FakeAdb(), _FakeSupervisor(), progress=lambda stage, detail: stages.append((stage, detail))
        )  # type: ignore[arg-type]
        with tempfile.NamedTemporaryFile(suffix=".apk") as handle:
            await commands.redeploy(handle.name)
        await commands.setup()
        await commands.stop_wireless()

        self.assertEqual(
            stages,
            [
                ("install", handle.name),
                ("restart", ""),
                ("guardian", ""),
                ("restart", ""),
                ("wireless", ""),
                ("reboot", ""),
            ],
        )

    async def test_nothing_is_announced_without_a_session(self) -> None:
        stages: List[str] = []
        commands = DeviceCommands(
            _FakeAdb(connected=False), _FakeSupervisor(), progress=lambda stage, detail: stages.append(stage)
        )  # type: ignore[arg-type]
        with tempfile.NamedTemporaryFile(suffix=".apk") as handle:
            with self.assertRaises(NoConnectionError):
                await commands.redeploy(handle.name)
        with self.assertRaises(NoConnectionError):
            await commands.setup()
        self.assertEqual(stages, [])

    async def test_stop_wireless_disables_radios_and_reboots(self) -> None:
        adb = _FakeAdb()
        await self._commands(adb).stop_wireless()
        self.assertEqual(
            adb.calls,
            [
                ("shell", "settings", "put", "global", "bluetooth_on", "0"),
                ("shell", "settings", "put", "global", "wifi_on", "0"),
                ("reboot",),
            ],
        )

    async def test_shutdown_powers_off(self) -> None:
        adb = _FakeAdb()
        await self._commands(adb).shutdown()
        self.assertEqual(adb.calls, [("shell", "reboot", "-p")])

    async def test_logs_filter_by_substring(self) -> None:
        adb = _FakeAdb(log_lines=["I Unity: [QuestNav] pose", "I Unity: frame", "W Unity: [QuestNav] drift"])
        commands = self._commands(adb)

        everything = [line async for line in commands.logs()]
        filtered = [line async for line in commands.logs("[QuestNav]")]

        self.assertEqual(len(everything), 3)
        self.assertEqual(filtered, ["I Unity: [QuestNav] pose", "W Unity: [QuestNav] drift"])
        self.assertIn(("logcat", "Unity:*"), adb.calls)

    async def test_screen_launches_scrcpy_with_profile(self) -> None:
        launched: List[Sequence[str]] = []

        async def interactive(argv: Sequence[str]) -> int:
            launched.append(list(argv))
            return 0

        commands = DeviceCommands(_FakeAdb(), _FakeSupervisor(), interactive=interactive)  # type: ignore[arg-type]
        with patch("questlink.commands.require_tool", return_value="/usr/bin/scrcpy"):
            self.assertEqual(await commands.screen(), 0)
        self.assertEqual(launched, [["/usr/bin/scrcpy", "--crop", "1920:1080:0:0", "-b", "10M"]])


if __name__ == "__main__":
    unittest.main()
