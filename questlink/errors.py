"""Exception hierarchy surfaced to the operator by the CLI."""
from __future__ import annotations

from typing import Optional, Sequence


class QuestLinkError(Exception):
    """Base class for every failure the CLI reports with exit status 1.

    ``hint`` carries the follow-up guidance printed under the error line.
    """

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.hint = hint


class MissingToolError(QuestLinkError):
    """A required command-line tool (adb, nmap, scrcpy) is not installed."""

    _HINTS = {
        "adb": "Please install Android platform tools.",
        "nmap": "Please install nmap first.",
        "scrcpy": "Please install it first.",
    }

    def __init__(self, tool: str) -> None:
        super().__init__(f"{tool} not found.", hint=self._HINTS.get(tool))
        self.tool = tool


class NoConnectionError(QuestLinkError):
    def __init__(self) -> None:
        super().__init__("Quest not connected.", hint="Use 'connect' command first.")


class DiscoveryNotFoundError(QuestLinkError):
    """The scan finished without any candidate accepting an adb session."""

    def __init__(self, subnet: str) -> None:
        super().__init__(f"Could not find Quest on network {subnet}.0/24")
        self.subnet = subnet


class InvalidArgumentError(QuestLinkError):
    pass


class ReconnectExhaustedError(QuestLinkError):
    """The restart dropped the session and the retry plan did not restore it."""

    def __init__(self, address: Optional[str], attempts: int) -> None:
        if address:
            message = (
                f"Failed to reconnect to {address} after {attempts} attempts. "
                "The network interface might need more time to stabilize."
            )
        else:
            message = "Connection lost and no previous Quest address is known to reconnect to."
        super().__init__(message, hint="You can try: questlink connect <team> to reconnect manually.")
        self.address = address
        self.attempts = attempts


class TransportError(QuestLinkError):
    """A subprocess call to adb or nmap failed."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int], output: str = "") -> None:
        command = " ".join(argv)
        detail = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"'{command}' failed ({returncode}): {detail}")
        self.argv = tuple(argv)
        self.returncode = returncode
        self.output = output


class TransportTimeout(TransportError):
    def __init__(self, argv: Sequence[str], timeout: float) -> None:
        super().__init__(argv, None, f"timed out after {timeout:g}s")
        self.timeout = timeout


__all__ = [
    "DiscoveryNotFoundError",
    "InvalidArgumentError",
    "MissingToolError",
    "NoConnectionError",
    "QuestLinkError",
    "ReconnectExhaustedError",
    "TransportError",
    "TransportTimeout",
]
