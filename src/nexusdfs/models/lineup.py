"""Lineup value types.

``Lineup`` is the compact form the samplers work with: pool indices in role
order plus the captain designation. ``LineupResult`` is the scored, immutable
snapshot handed to callers once a batch is finalized.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Tuple


@dataclass(frozen=True)
class Lineup:
    slots: Tuple[int, ...]
    captain_slot: int
    source: str = ""

    @property
    def captain_index(self) -> int:
        return self.slots[self.captain_slot]

    @property
    def fingerprint(self) -> Tuple[int, ...]:
        return tuple(sorted(self.slots))

    def with_slot(self, slot: int, player_index: int) -> "Lineup":
        slots = list(self.slots)
        slots[slot] = player_index
        return replace(self, slots=tuple(slots))

    def with_captain(self, captain_slot: int) -> "Lineup":
        return replace(self, captain_slot=captain_slot)

    def tagged(self, source: str) -> "Lineup":
        return replace(self, source=source)


@dataclass(frozen=True)
class LineupPlayer:
    player_id: str
    name: str
    team: str
    position: str
    salary: int
    projection: float
    ownership: float
    is_captain: bool = False


@dataclass(frozen=True)
class LineupResult:
    lineup_id: str
    captain_id: str
    players: Tuple[LineupPlayer, ...]
    salary: int
    projection: float
    nexus_score: float
    roi: float
    stack_signature: str
    stack_type: str
    avg_ownership: float
    total_ownership: float
    algorithm: str
    formula: str
    label: str | None = None

    @property
    def signature(self) -> Tuple[str, ...]:
        return tuple(sorted(player.player_id for player in self.players))
