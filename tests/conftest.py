from __future__ import annotations

import pytest

from nexusdfs.config import OptimizerSettings, get_rules
from nexusdfs.models import ContestDescriptor, PlayerRecord, Position
from nexusdfs.optimizer.player_pool import PlayerPool

ROLES = ("TOP", "JNG", "MID", "ADC", "SUP", "TEAM")


@pytest.fixture(scope="module")
def anyio_backend():
    return "asyncio"


def make_player(
    player_id: str,
    position: str,
    team: str,
    *,
    salary: int = 5000,
    projection: float = 20.0,
    ownership: float = 10.0,
) -> PlayerRecord:
    return PlayerRecord(
        player_id=player_id,
        name=f"{team} {position} {player_id}",
        team=team,
        position=Position(position),
        salary=salary,
        projection=projection,
        ownership=ownership,
    )


def slate_players(teams: tuple[str, ...] = ("A", "B", "C", "D")) -> list[PlayerRecord]:
    """One player per role for each team with varied salary, projection and ownership."""

    players = []
    for team_idx, team in enumerate(teams):
        for role_idx, role in enumerate(ROLES):
            players.append(
                make_player(
                    f"{team.lower()}{role_idx}",
                    role,
                    team,
                    salary=4000 + 500 * ((team_idx + role_idx) % 6),
                    projection=40.0 + 2.0 * role_idx + (team_idx % 3),
                    ownership=5.0 + 9.0 * team_idx + role_idx,
                )
            )
    return players


def slate_payload(teams: tuple[str, ...] = ("A", "B", "C", "D")) -> list[dict]:
    return [
        {
            "id": player.player_id,
            "name": player.name,
            "team": player.team,
            "position": player.position.value,
            "salary": player.salary,
            "projected_points": player.projection,
            "ownership": player.ownership,
        }
        for player in slate_players(teams)
    ]


def scenario_a_players() -> list[PlayerRecord]:
    """Twelve players: two per role, all salaried 5 000 with 20 points and 10% ownership."""

    players = []
    for role_idx, role in enumerate(ROLES):
        players.append(make_player(f"a{role_idx}", role, "A"))
        players.append(make_player(f"b{role_idx}", role, "B"))
    return players


@pytest.fixture
def rules():
    return get_rules()


@pytest.fixture
def slate_pool() -> PlayerPool:
    return PlayerPool(slate_players())


@pytest.fixture
def gpp() -> ContestDescriptor:
    return ContestDescriptor(type="gpp", field_size=1000)


@pytest.fixture
def settings() -> OptimizerSettings:
    return OptimizerSettings(workers=1, seed=7)
