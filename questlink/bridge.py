"""Async wrapper around the adb command-line client."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, FrozenSet, List, Optional, Sequence

from questlink.config import ToolConfig
from questlink.errors import MissingToolError, TransportError, TransportTimeout

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


@dataclass(slots=True)
class CommandResult:
	"""Outcome of one finished subprocess; stderr is folded into ``output``."""

	argv: tuple[str, ...]
	returncode: int
	output: str

	@property
	def ok(self) -> bool:
		return self.returncode == 0


Runner = Callable[[Sequence[str], Optional[float]], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
	"""Run *argv* to completion, killing it if *timeout* elapses."""
	try:
		proc = await asyncio.create_subprocess_exec(
			*argv,
			stdin=asyncio.subprocess.DEVNULL,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.STDOUT,
		)
	except FileNotFoundError as exc:
		raise MissingToolError(Path(argv[0]).name) from exc

	try:
		stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
	except asyncio.TimeoutError as exc:
		with contextlib.suppress(ProcessLookupError):
			proc.kill()
		await proc.wait()
		raise TransportTimeout(argv, timeout or 0.0) from exc

	output = stdout.decode("utf-8", errors="replace") if stdout else ""
	return CommandResult(argv=tuple(argv), returncode=proc.returncode or 0, output=output)


async def run_interactive(argv: Sequence[str]) -> int:
	"""Run *argv* attached to the operator's terminal and return its exit code."""
	try:
		proc = await asyncio.create_subprocess_exec(*argv)
	except FileNotFoundError as exc:
		raise MissingToolError(Path(argv[0]).name) from exc
	try:
		return await proc.wait()
	finally:
		if proc.returncode is None:
			with contextlib.suppress(ProcessLookupError):
				proc.terminate()
			await proc.wait()


def require_tool(path: str, name: Optional[str] = None) -> str:
	"""Resolve *path* on ``$PATH`` or raise :class:`MissingToolError`."""
	resolved = shutil.which(path)
	if resolved is None:
		raise MissingToolError(name or Path(path).name)
	return resolved


@dataclass(frozen=True, slots=True)
class NetworkAddress:
	host: str
	port: int

	@property
	def endpoint(self) -> str:
		return f"{self.host}:{self.port}"

	@classmethod
	def parse(cls, endpoint: str) -> "NetworkAddress":
		host, sep, port = endpoint.rpartition(":")
		if not sep or not host or not port.isdigit():
			raise ValueError(f"not a host:port endpoint: {endpoint!r}")
		return cls(host=host, port=int(port))

	def __str__(self) -> str:
		return self.endpoint


@dataclass(frozen=True, slots=True)
class DeviceEntry:
	"""One row of ``adb devices``; ``state`` is device, offline, unauthorized..."""

	serial: str
	state: str

	def on_port(self, port: int) -> bool:
		return self.serial.endswith(f":{port}")

	def address(self) -> Optional[NetworkAddress]:
		try:
			return NetworkAddress.parse(self.serial)
		except ValueError:
			return None


def _decode_line(raw: bytes) -> str:
	return bytes(raw).decode("utf-8", errors="replace").rstrip("\r")


def parse_devices(output: str) -> List[DeviceEntry]:
	entries: List[DeviceEntry] = []
	for raw in output.splitlines():
		line = raw.strip()
		if not line or line.startswith("*") or line.lower().startswith("list of devices"):
			continue
		parts = line.split()
		state = parts[1] if len(parts) > 1 else "unknown"
		entries.append(DeviceEntry(serial=parts[0], state=state))
	return entries


class AdbClient:
	"""Blocking-style adb calls, one subprocess per call.

	The adb server owns all session state. Nothing here caches which device is
	connected: callers ask :meth:`active_sessions` whenever they need to know.
	"""

	def __init__(self, config: ToolConfig | None = None, *, runner: Optional[Runner] = None) -> None:
		self.config = config or ToolConfig()
		self._runner: Runner = runner or run_command

	def ensure_installed(self) -> str:
		return require_tool(self.config.adb_path, "adb")

	# ------------------------------------------------------------------
	# Server and session management
	# ------------------------------------------------------------------
	async def reset_server(self) -> None:
		"""Restart the adb server so stale TCP registrations are dropped."""
		await self._adb("kill-server", check=False)
		await self._adb("start-server")

	async def connect(self, address: NetworkAddress, *, timeout: Optional[float] = None) -> str:
		result = await self._adb("connect", address.endpoint, timeout=timeout)
		return result.output.strip()

	async def disconnect(self, address: Optional[NetworkAddress] = None, *, timeout: Optional[float] = None) -> None:
		"""Disconnect *address*, or every TCP session when it is ``None``."""
		args = ("disconnect", address.endpoint) if address else ("disconnect",)
		await self._adb(*args, timeout=timeout)

	async def listing(self, *, timeout: Optional[float] = None) -> str:
		result = await self._adb("devices", timeout=timeout)
		return result.output

	async def devices(self, *, timeout: Optional[float] = None) -> List[DeviceEntry]:
		return parse_devices(await self.listing(timeout=timeout))

	async def active_sessions(self, *, timeout: Optional[float] = None) -> FrozenSet[str]:
		return frozenset(entry.serial for entry in await self.devices(timeout=timeout))

	async def is_connected(self, address: Optional[NetworkAddress] = None, *, timeout: Optional[float] = None) -> bool:
		"""True if *address* (or any session on the service port) is listed."""
		sessions = await self.active_sessions(timeout=timeout)
		if address is not None:
			return address.endpoint in sessions
		suffix = f":{self.config.port}"
		return any(serial.endswith(suffix) for serial in sessions)

	# ------------------------------------------------------------------
	# Device operations
	# ------------------------------------------------------------------
	async def shell(self, *command: str, timeout: Optional[float] = None) -> str:
		result = await self._adb("shell", *command, timeout=timeout)
		return result.output

	async def install(self, apk: Path) -> str:
		result = await self._adb("install", "-r", "-d", str(apk), timeout=self.config.install_timeout)
		if "Failure" in result.output:
			raise TransportError(result.argv, result.returncode, result.output)
		return result.output

	async def reboot(self) -> None:
		await self._adb("reboot")

	async def stream_logcat(self, *filterspecs: str) -> AsyncIterator[str]:
		"""Yield logcat lines until the stream ends or the consumer stops.

		Output is read in fixed-size chunks and split on newlines here, so a
		single line may be arbitrarily long.
		"""
		argv = [self.config.adb_path, "logcat", "-s", *filterspecs]
		try:
			proc = await asyncio.create_subprocess_exec(
				*argv,
				stdin=asyncio.subprocess.DEVNULL,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.STDOUT,
			)
		except FileNotFoundError as exc:
			raise MissingToolError("adb") from exc

		pending = bytearray()
		try:
			while True:
				chunk = await proc.stdout.read(_READ_CHUNK)
				if not chunk:
					break
				pending.extend(chunk)
				*complete, rest = pending.split(b"\n")
				pending = bytearray(rest)
				for raw in complete:
					yield _decode_line(raw)
			if pending:
				yield _decode_line(pending)
			await proc.wait()
		finally:
			if proc.returncode is None:
				with contextlib.suppress(ProcessLookupError):
					proc.terminate()
				await proc.wait()

	async def _adb(self, *args: str, timeout: Optional[float] = None, check: bool = True) -> CommandResult:
		argv = [self.config.adb_path, *args]
		effective = timeout if timeout is not None else self.config.command_timeout
		logger.debug("running %s (timeout=%s)", " ".join(argv), effective)
		result = await self._runner(argv, effective)
		if check and not result.ok:
			raise TransportError(argv, result.returncode, result.output)
		return result


__all__ = [
	"AdbClient",
	"CommandResult",
	"DeviceEntry",
	"NetworkAddress",
	"Runner",
	"parse_devices",
	"require_tool",
	"run_command",
	"run_interactive",
]
