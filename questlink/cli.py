"""QuestLink command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from questlink.bridge import AdbClient
from questlink.commands import DeviceCommands
from questlink.config import ToolConfig
from questlink.discovery import DiscoveryEngine
from questlink.errors import DiscoveryNotFoundError, InvalidArgumentError, QuestLinkError
from questlink.events import EventLogger
from questlink.netscan import NmapScanner
from questlink.reconnect import ReconnectionSupervisor, RestartOutcome

logger = logging.getLogger(__name__)


class _ConsoleProgress:
	"""Turns discovery and reconnection progress into operator status lines."""

	def __init__(self, console: Console) -> None:
		self.console = console

	def __call__(self, stage: str, detail: str) -> None:
		if stage == "scan":
			self.console.print(f"[green]Scanning network {detail} for Quest...[/green]")
			self.console.print("Running quick network scan...")
		elif stage == "candidate":
			host = detail.rpartition(":")[0]
			self.console.print(f"[yellow]Found device at {host}, attempting ADB connection...[/yellow]")
		elif stage == "reset":
			self.console.print("Network reset detected, reconnecting...")
		elif stage == "attempt":
			self.console.print(f"Reconnection attempt {detail}...")
		elif stage == "restart":
			self.console.print("Restarting QuestNav...")
		elif stage == "guardian":
			self.console.print("Disabling Guardian...")
		elif stage == "install":
			self.console.print(f"Installing APK from: {escape(detail)}")
		elif stage == "wireless":
			self.console.print("Disabling wireless connections...")
		elif stage == "reboot":
			self.console.print("Rebooting...")
		elif stage == "logs":
			self.console.print("Starting log stream...")


@dataclass
class _Context:
	console: Console
	config: ToolConfig
	adb: AdbClient
	scanner: NmapScanner
	commands: DeviceCommands
	progress: _ConsoleProgress
	events: Optional[EventLogger] = None


def _build_config(args: argparse.Namespace) -> ToolConfig:
	return ToolConfig().override(
		adb_path=args.adb,
		nmap_path=args.nmap,
		scrcpy_path=args.scrcpy,
		port=args.port,
		app_package=args.package,
	)


def _build_context(args: argparse.Namespace, config: ToolConfig, console: Console) -> _Context:
	events = EventLogger(args.log, static_extra={"command": args.command}) if args.log else None
	progress = _ConsoleProgress(console)
	adb = AdbClient(config)
	supervisor = ReconnectionSupervisor(adb, config=config, events=events, progress=progress)
	return _Context(
		console=console,
		config=config,
		adb=adb,
		scanner=NmapScanner(config),
		commands=DeviceCommands(adb, supervisor, config=config, progress=progress),
		progress=progress,
		events=events,
	)


def _report_restart(ctx: _Context, outcome: RestartOutcome) -> int:
	if outcome.reconnected:
		ctx.console.print("[green]Successfully reconnected![/green]")
	else:
		ctx.console.print("[green]App restarted successfully[/green]")
	return 0


async def _cmd_connect(ctx: _Context, args: argparse.Namespace) -> int:
	if not args.team:
		raise InvalidArgumentError("Team number required")
	engine = DiscoveryEngine(
		ctx.adb,
		ctx.scanner,
		config=ctx.config,
		events=ctx.events,
		progress=ctx.progress,
	)
	result = await engine.discover(args.team)
	if not result.found:
		raise DiscoveryNotFoundError(result.subnet)
	ctx.console.print(f"[green]Successfully connected to Quest at {result.address}![/green]")
	return 0


async def _cmd_stopwireless(ctx: _Context, args: argparse.Namespace) -> int:
	await ctx.commands.stop_wireless()
	return 0


async def _cmd_setup(ctx: _Context, args: argparse.Namespace) -> int:
	return _report_restart(ctx, await ctx.commands.setup())


async def _cmd_restart(ctx: _Context, args: argparse.Namespace) -> int:
	return _report_restart(ctx, await ctx.commands.restart())


async def _cmd_redeploy(ctx: _Context, args: argparse.Namespace) -> int:
	return _report_restart(ctx, await ctx.commands.redeploy(args.apk))


async def _cmd_screen(ctx: _Context, args: argparse.Namespace) -> int:
	returncode = await ctx.commands.screen()
	return 0 if returncode == 0 else 1


async def _cmd_reboot(ctx: _Context, args: argparse.Namespace) -> int:
	await ctx.commands.reboot()
	return 0


async def _cmd_shutdown(ctx: _Context, args: argparse.Namespace) -> int:
	await ctx.commands.shutdown()
	return 0


async def _cmd_status(ctx: _Context, args: argparse.Namespace) -> int:
	listing = await ctx.commands.status()
	ctx.console.print(listing.rstrip("\n"), highlight=False, markup=False)
	return 0


async def _cmd_logs(ctx: _Context, args: argparse.Namespace) -> int:
	async for line in ctx.commands.logs(args.filter):
		ctx.console.print(line, highlight=False, markup=False, soft_wrap=True)
	return 0


_COMMANDS = (
	("connect", "Find and connect to Quest on robot network (e.g., 5152)", _cmd_connect),
	("stopwireless", "Disable WiFi and Bluetooth and reboot", _cmd_stopwireless),
	("setup", "Disable guardian and restart app", _cmd_setup),
	("restart", "Restart the QuestNav app", _cmd_restart),
	("redeploy", "Install APK from path and restart app", _cmd_redeploy),
	("screen", "Launch scrcpy for screen mirroring", _cmd_screen),
	("reboot", "Reboot the Quest", _cmd_reboot),
	("shutdown", "Shutdown the Quest", _cmd_shutdown),
	("status", "Check ADB connection status", _cmd_status),
	("logs", "Show app logs, optionally filtered by string", _cmd_logs),
)


_COMMAND_NAMES = frozenset(name for name, _, _ in _COMMANDS) | {"help"}


def _add_global_options(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("--adb", help="Path to the adb binary")
	parser.add_argument("--nmap", help="Path to the nmap binary")
	parser.add_argument("--scrcpy", help="Path to the scrcpy binary")
	parser.add_argument("--port", type=int, help="adb TCP port on the Quest (default 5555)")
	parser.add_argument("--package", help="Android package of the app to restart")
	parser.add_argument("--log", help="Append discovery/reconnection events to this CSV file")
	parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="questlink", description="Quest development tools")
	_add_global_options(parser)

	sub = parser.add_subparsers(dest="command", metavar="command")
	parsers = {}
	for name, help_text, handler in _COMMANDS:
		parsers[name] = sub.add_parser(name, help=help_text)
		parsers[name].set_defaults(handler=handler)
	parsers["connect"].add_argument("team", nargs="?", help="Team number, e.g. 5152")
	parsers["redeploy"].add_argument("apk", nargs="?", help="Path to the APK to install")
	parsers["logs"].add_argument("filter", nargs="?", help="Only show lines containing this string")
	sub.add_parser("help", help="Show this message")
	return parser


def _is_known_command(argv: Optional[List[str]]) -> bool:
	"""False when the first token after the global options names no command."""
	globals_only = argparse.ArgumentParser(add_help=False)
	_add_global_options(globals_only)
	_, rest = globals_only.parse_known_args(argv)
	if not rest or rest[0].startswith("-"):
		return True
	return rest[0] in _COMMAND_NAMES


def _configure_logging(verbosity: int) -> None:
	level = logging.WARNING
	if verbosity == 1:
		level = logging.INFO
	elif verbosity > 1:
		level = logging.DEBUG
	logging.basicConfig(
		level=level,
		format="%(message)s",
		datefmt="[%X]",
		handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
		force=True,
	)


async def _dispatch(args: argparse.Namespace, config: ToolConfig, console: Console) -> int:
	ctx = _build_context(args, config, console)
	ctx.adb.ensure_installed()
	timer = contextlib.nullcontext()
	if ctx.events:
		timer = ctx.events.timer("command", name=args.command)
	with timer:
		return await args.handler(ctx, args)


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser()
	if not _is_known_command(argv):
		parser.print_help()
		return 0
	args = parser.parse_args(argv)
	if getattr(args, "handler", None) is None:
		parser.print_help()
		return 0

	_configure_logging(args.verbose)
	console = Console()
	errors = Console(stderr=True)
	try:
		config = _build_config(args)
	except ValueError as exc:
		_print_error(errors, InvalidArgumentError(str(exc)))
		return 1
	try:
		return asyncio.run(_dispatch(args, config, console))
	except QuestLinkError as exc:
		_print_error(errors, exc)
		return 1
	except KeyboardInterrupt:
		errors.print("[yellow]Interrupted[/yellow]")
		return 130


def _print_error(console: Console, exc: QuestLinkError) -> None:
	console.print(f"[red]Error: {escape(str(exc))}[/red]", highlight=False)
	if exc.hint:
		console.print(f"[yellow]{escape(exc.hint)}[/yellow]", highlight=False)


if __name__ == "__main__":
	sys.exit(main())
