"""Roster configuration for supported site/sport combinations."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Tuple, Union

from nexusdfs.models.player import ROLE_ORDER, Position


@dataclass(frozen=True)
class RosterRules:
    site: str
    sport: str
    salary_cap: int
    roster_order: Tuple[Position, ...]
    captain_positions: FrozenSet[Position]
    captain_multiplier: float
    export_order: Tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.roster_order)

    @property
    def captain_slots(self) -> Tuple[int, ...]:
        return tuple(
            idx for idx, position in enumerate(self.roster_order) if position in self.captain_positions
        )

    def with_salary_cap(self, salary_cap: int) -> "RosterRules":
        return replace(self, salary_cap=salary_cap)


_ROSTER_RULES: Dict[Tuple[str, str], RosterRules] = {
    ("DK_CAPTAIN", "LOL"): RosterRules(
        site="DK_CAPTAIN",
        sport="LOL",
        salary_cap=50_000,
        roster_order=ROLE_ORDER,
        captain_positions=frozenset(ROLE_ORDER[:5]),
        captain_multiplier=1.5,
        export_order=("CPT", "FLEX", "FLEX", "FLEX", "FLEX", "TEAM"),
    ),
}

DEFAULT_SITE = "DK_CAPTAIN"
DEFAULT_SPORT = "LOL"


def get_rules(site: str = DEFAULT_SITE, sport: str = DEFAULT_SPORT) -> RosterRules:
    """Fetch rules for a site/sport pair, raising KeyError if missing."""

    key = (site.upper(), sport.upper())
    if key not in _ROSTER_RULES:
        raise KeyError(f"No roster rules configured for site={site!r}, sport={sport!r}")
    return _ROSTER_RULES[key]


def get_rules_by_key(site_key: Union[str, Tuple[str, str]]) -> RosterRules:
    """Resolve rules using either "SITE_SPORT" or (site, sport)."""

    if isinstance(site_key, tuple):
        site, sport = site_key
        return get_rules(site, sport)

    if not isinstance(site_key, str):
        raise TypeError("site_key must be a str or (site, sport) tuple")

    site, sep, sport = site_key.rpartition("_")
    if not sep or not site:
        raise ValueError(f"site_key must look like 'SITE_SPORT', got {site_key!r}")
    return get_rules(site, sport)

