"""Team number to robot subnet mapping."""
from __future__ import annotations

from questlink.errors import InvalidArgumentError


def resolve_subnet(team: str, *, strict: bool = True) -> str:
    """Return the ``10.TE.AM`` prefix for *team*.

    Only the first four characters are used: ``"5152"`` maps to
    ``"10.51.52"``. With ``strict=False`` the identifier is sliced without any
    checks, so ``"254"`` silently becomes ``"10.25.4"``; the default rejects
    anything that is not four or five digits instead.
    """
    team = team.strip()
    if strict:
        if not team:
            raise InvalidArgumentError("Team number required")
        if not team.isascii() or not team.isdigit():
            raise InvalidArgumentError(f"Team number must contain only digits: {team!r}")
        if not 4 <= len(team) <= 5:
            raise InvalidArgumentError(
                f"Team number must have 4 or 5 digits to derive a subnet: {team!r}"
            )
    return f"10.{team[0:2]}.{team[2:4]}"


__all__ = ["resolve_subnet"]
