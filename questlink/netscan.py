"""Host discovery on the robot subnet using nmap ping scans."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from questlink.bridge import Runner, require_tool, run_command
from questlink.config import ToolConfig
from questlink.errors import TransportError

logger = logging.getLogger(__name__)

_REPORT_RE = re.compile(r"^Nmap scan report for (?:(?P<name>\S+) \((?P<paren>[^)]+)\)|(?P<bare>\S+))\s*$")


@dataclass(frozen=True, slots=True)
class ScanPlan:
	"""The CIDR to sweep and the reserved hosts left out of it."""

	subnet: str
	cidr: str
	excluded: Tuple[str, ...]


@dataclass(slots=True)
class ScanResult:
	"""Candidates in the order nmap reported them, reserved hosts removed."""

	plan: ScanPlan
	candidates: Tuple[str, ...]
	responsive: int = 0

	def __iter__(self):
		return iter(self.candidates)

	def __len__(self) -> int:
		return len(self.candidates)


def plan_scan(subnet: str, reserved: Iterable[int] = (1, 2)) -> ScanPlan:
	return ScanPlan(
		subnet=subnet,
		cidr=f"{subnet}.0/24",
		excluded=tuple(f"{subnet}.{host}" for host in reserved),
	)


def parse_report(output: str) -> List[str]:
	"""Pull host addresses out of nmap's normal output, in report order."""
	hosts: List[str] = []
	for line in output.splitlines():
		match = _REPORT_RE.match(line.strip())
		if not match:
			continue
		hosts.append(match.group("paren") or match.group("bare"))
	return hosts


def select_candidates(hosts: Sequence[str], excluded: Iterable[str]) -> Tuple[str, ...]:
	"""Drop reserved and repeated hosts while keeping the scan order."""
	skip = set(excluded)
	seen: set[str] = set()
	candidates: List[str] = []
	for host in hosts:
		if host in skip or host in seen:
			continue
		seen.add(host)
		candidates.append(host)
	return tuple(candidates)


class NmapScanner:
	"""Runs ``nmap -n -sn`` and reports which hosts answered."""

	def __init__(self, config: ToolConfig | None = None, *, runner: Optional[Runner] = None) -> None:
		self.config = config or ToolConfig()
		self._runner: Runner = runner or run_command

	def ensure_installed(self) -> str:
		return require_tool(self.config.nmap_path, "nmap")

	async def scan(self, cidr: str, exclude: Sequence[str] = ()) -> List[str]:
		argv = [self.config.nmap_path, "-n", "-sn"]
		if exclude:
			argv += ["--exclude", ",".join(exclude)]
		argv.append(cidr)
		logger.info("Scanning %s (excluding %s)", cidr, ", ".join(exclude) or "nothing")
		result = await self._runner(argv, self.config.scan_timeout)
		if not result.ok:
			raise TransportError(argv, result.returncode, result.output)
		return parse_report(result.output)

	async def scan_subnet(self, subnet: str) -> ScanResult:
		plan = plan_scan(subnet, self.config.reserved_hosts)
		hosts = await self.scan(plan.cidr, plan.excluded)
		candidates = select_candidates(hosts, plan.excluded)
		if len(candidates) != len(hosts):
			logger.debug("Dropped %d reserved or repeated hosts from scan", len(hosts) - len(candidates))
		return ScanResult(plan=plan, candidates=candidates, responsive=len(hosts))


__all__ = [
	"NmapScanner",
	"ScanPlan",
	"ScanResult",
	"parse_report",
	"plan_scan",
	"select_candidates",
]
