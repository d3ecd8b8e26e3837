import pytest

from nexusdfs.config import get_rules
from nexusdfs.errors import InvalidInput
from nexusdfs.models import ContestDescriptor, Lineup
from nexusdfs.optimizer.player_pool import PlayerPool
from nexusdfs.optimizer.scoring import (
    NEXUS_FORMULAS,
    LineupScorer,
    estimate_roi,
    lineup_salary,
    nexus_score,
    projected_points,
    score_components,
    stack_signature,
    stack_type,
)

from .conftest import ROLES, make_player, scenario_a_players

RULES = get_rules()


def _lineup(pool: PlayerPool, ids, captain_slot: int = 0) -> Lineup:
    return Lineup(slots=tuple(pool.index_of(player_id) for player_id in ids), captain_slot=captain_slot)


def _two_team_pool(own_a: float = 5.0, own_b: float = 15.0) -> PlayerPool:
    players = []
    for idx, role in enumerate(ROLES):
        players.append(make_player(f"a{idx}", role, "A", projection=40.0, ownership=own_a))
        players.append(make_player(f"b{idx}", role, "B", projection=40.0, ownership=own_b))
    return PlayerPool(players)


def _scenario_b_pool(projection: float) -> PlayerPool:
    players = [make_player(f"a{idx}", role, "A", projection=projection, ownership=15.0) for idx, role in enumerate(ROLES[:5])]
    players.append(make_player("bt", "TEAM", "B", salary=4000, projection=20.0, ownership=5.0))
    players.append(make_player("ct", "TEAM", "C", salary=4000, projection=20.0, ownership=5.0))
    return PlayerPool(players)


def test_salary_rounds_captain_half_up():
    players = scenario_a_players()
    players[0] = make_player("a0", "TOP", "A", salary=4999)
    pool = PlayerPool(players)
    lineup = _lineup(pool, ["a0", "a1", "a2", "a3", "a4", "a5"], captain_slot=0)
    assert lineup_salary(lineup, pool, RULES) == 32_499


def test_captain_counts_one_and_a_half_times():
    pool = PlayerPool(scenario_a_players())
    lineup = _lineup(pool, ["a0", "b1", "a2", "b3", "a4", "b5"], captain_slot=2)
    assert lineup_salary(lineup, pool, RULES) == 32_500
    assert projected_points(lineup, pool, RULES) == pytest.approx(130.0)


def test_scenario_a_scores_at_floor():
    pool = PlayerPool(scenario_a_players())
    lineup = _lineup(pool, ["a0", "a1", "b2", "b3", "a4", "b5"], captain_slot=3)
    assert nexus_score(lineup, pool, rules=RULES) == 25.0


def test_stack_signature_and_type():
    pool = PlayerPool(scenario_a_players())
    four_two = _lineup(pool, ["a0", "a1", "a2", "a3", "b4", "b5"])
    assert stack_signature(four_two, pool) == "4|2"
    assert stack_type(four_two, pool) == "4-2"

    three_three = _lineup(pool, ["a0", "b1", "a2", "b3", "a4", "b5"])
    assert stack_signature(three_three, pool) == "3|3"


def test_canonical_formula_matches_components():
    pool = _two_team_pool(own_a=10.0, own_b=10.0)
    lineup = _lineup(pool, [f"a{idx}" for idx in range(6)])
    components = score_components(lineup, pool, RULES)
    assert components.projected_points == pytest.approx(260.0)
    assert components.leverage == pytest.approx(1.0)
    assert components.stack_bonus == 12
    assert nexus_score(lineup, pool, rules=RULES) == 32.0


def test_leverage_clamped_to_range():
    pool = _two_team_pool()
    chalk = _lineup(pool, [f"b{idx}" for idx in range(6)])
    contrarian = _lineup(pool, [f"a{idx}" for idx in range(6)])
    assert score_components(contrarian, pool, RULES).leverage == pytest.approx(1.5)
    assert score_components(chalk, pool, RULES).leverage == pytest.approx(0.5)
    assert nexus_score(contrarian, pool, rules=RULES) == 45.0
    assert nexus_score(chalk, pool, rules=RULES) == 25.0


def test_five_stack_bonus():
    pool = _scenario_b_pool(projection=30.0)
    lineup = _lineup(pool, ["a0", "a1", "a2", "a3", "a4", "bt"])
    assert stack_signature(lineup, pool) == "5"
    assert score_components(lineup, pool, RULES).stack_bonus == 9
    assert nexus_score(lineup, pool, rules=RULES) >= 25.0


def test_five_stack_with_strong_projections_scores_high():
    pool = _scenario_b_pool(projection=60.0)
    lineup = _lineup(pool, ["a0", "a1", "a2", "a3", "a4", "ct"])
    assert nexus_score(lineup, pool, rules=RULES) > 35.0


@pytest.mark.parametrize("formula", sorted(NEXUS_FORMULAS))
def test_every_formula_stays_in_range(formula):
    pool = _two_team_pool()
    for ids in ([f"a{idx}" for idx in range(6)], [f"b{idx}" for idx in range(6)]):
        score = nexus_score(_lineup(pool, ids), pool, formula, RULES)
        assert 25.0 <= score <= 65.0
        assert round(score, 1) == score


def test_unknown_formula_rejected():
    pool = _two_team_pool()
    with pytest.raises(InvalidInput, match="Unknown scoring formula"):
        LineupScorer(pool, RULES, "moonshot")


def test_scorer_matches_nexus_score_and_exposes_raw_fitness():
    pool = _two_team_pool(own_a=10.0, own_b=10.0)
    scorer = LineupScorer(pool, RULES)
    lineup = _lineup(pool, [f"a{idx}" for idx in range(6)])
    assert scorer(lineup) == nexus_score(lineup, pool, rules=RULES)
    assert scorer.fitness(lineup) == pytest.approx(32.0)


@pytest.mark.parametrize(
    ("contest_type", "expected"),
    [("cash", 2.0), ("double_up", 3.0), ("gpp", 10.0), ("single_entry", 6.0)],
)
def test_estimate_roi_by_contest(contest_type, expected):
    contest = ContestDescriptor(type=contest_type)
    assert estimate_roi(110.0, 100.0, contest) == pytest.approx(expected)


def test_estimate_roi_zero_mean():
    assert estimate_roi(100.0, 0.0, ContestDescriptor()) == 0.0
