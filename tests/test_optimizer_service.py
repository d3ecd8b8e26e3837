from collections import Counter
from itertools import count

import pytest

from nexusdfs.config import OptimizerSettings, get_rules
from nexusdfs.errors import Cancelled, ExposureInfeasible, Infeasible
from nexusdfs.models import ContestDescriptor, ExposureSetting, StackRecord
from nexusdfs.optimizer import build_lineups
from nexusdfs.optimizer.context import CancellationToken
from nexusdfs.optimizer.exposure import compile_bounds
from nexusdfs.optimizer.player_pool import PlayerPool
from nexusdfs.optimizer.strategies import StrategyRegistry

from .conftest import ROLES, make_player, scenario_a_players, slate_players

RULES = get_rules()
SETTINGS = OptimizerSettings(workers=1)


def _ids():
    sequence = count(1)
    return lambda: f"L{next(sequence):03d}"


def _build(pool, count_, strategy="cash_game", *, exposure=(), custom_config=None, seed=7, token=None, progress=None, contest=None):
    contest = contest or ContestDescriptor()
    resolved = StrategyRegistry().resolve(strategy, contest=contest, custom_config=custom_config)
    return build_lineups(
        pool,
        rules=RULES,
        settings=SETTINGS,
        strategy=resolved,
        count=count_,
        bounds=compile_bounds(exposure, pool),
        contest=contest,
        token=token or CancellationToken(),
        seed=seed,
        formula=resolved.formula or "canonical",
        next_lineup_id=_ids(),
        progress=progress,
    )


def test_build_lineups_generates_scored_batch():
    pool = PlayerPool(slate_players())
    output = _build(pool, 8)

    lineups = output.lineups
    assert len(lineups) == 8
    assert {lineup.lineup_id for lineup in lineups} == {f"L{idx:03d}" for idx in range(1, 9)}
    scores = [lineup.nexus_score for lineup in lineups]
    assert scores == sorted(scores, reverse=True)
    assert len({lineup.signature for lineup in lineups}) == 8
    for lineup in lineups:
        assert lineup.salary <= RULES.salary_cap
        assert [player.position for player in lineup.players] == list(ROLES)
        assert sum(player.is_captain for player in lineup.players) == 1
        assert lineup.players[5].is_captain is False
        assert 25.0 <= lineup.nexus_score <= 65.0
        assert lineup.algorithm == "monte_carlo"
        assert lineup.formula == "canonical"

    summary = output.summary
    assert summary["generated"] == 8
    assert summary["requested"] == 8
    assert summary["cancelled"] is False
    assert summary["source_distribution"] == {"monte_carlo": 8}
    assert output.message is None
    assert sum(usage.count for usage in output.player_usage) == 48


def test_scenario_a_single_lineup():
    pool = PlayerPool(scenario_a_players(), [StackRecord(team="A", stack_plus=10)])
    output = _build(pool, 1, "balanced")
    lineup = output.lineups[0]
    assert lineup.salary == 32_500
    assert lineup.nexus_score == 25.0
    assert lineup.projection == pytest.approx(130.0)


def test_team_minimums_are_met():
    pool = PlayerPool(slate_players())
    exposure = [ExposureSetting(scope="team", key="A", min=50), ExposureSetting(scope="team", key="B", min=50)]
    output = _build(pool, 10, "balanced", exposure=exposure, custom_config={"genetic": {"population_size": 50, "generations": 20}})

    with_a = sum(1 for lineup in output.lineups if any(player.team == "A" for player in lineup.players))
    with_b = sum(1 for lineup in output.lineups if any(player.team == "B" for player in lineup.players))
    assert len(output.lineups) == 10
    assert with_a >= 5
    assert with_b >= 5


def test_global_max_exposure_caps_every_player():
    pool = PlayerPool(slate_players())
    output = _build(pool, 10, exposure=[ExposureSetting(scope="global", max=50)])

    usage = Counter(player.player_id for lineup in output.lineups for player in lineup.players)
    assert len(output.lineups) == 10
    assert max(usage.values()) <= 5


def _two_team_pool() -> PlayerPool:
    return PlayerPool(
        scenario_a_players(),
        [StackRecord(team="A", stack_plus=5), StackRecord(team="B", stack_plus=5)],
    )


def test_short_batch_that_cannot_hold_team_max_fails():
    # Every 4-2 lineup on a two-team slate holds team A, so no short batch
    # can keep A under half.
    pool = _two_team_pool()
    with pytest.raises(ExposureInfeasible) as excinfo:
        _build(pool, 200, exposure=[ExposureSetting(scope="team", key="A", max=50)])
    assert excinfo.value.entity == "team:A"


def test_short_batch_is_trimmed_under_stack_max():
    pool = _two_team_pool()
    output = _build(
        pool,
        200,
        exposure=[ExposureSetting(scope="team_stack", key="A", stack_size=4, max=20)],
        custom_config={"stack_distribution": {"4-2": 1.0}},
    )

    lineups = output.lineups
    assert 0 < len(lineups) < 200
    stacked_a = sum(1 for lineup in lineups if sum(player.team == "A" for player in lineup.players) == 4)
    assert stacked_a <= 0.2 * len(lineups)
    assert output.summary["stats"]["max_trims"] > 0
    report = {entry["entity"]: entry for entry in output.summary["exposure"]}
    assert report["team_stack:A/4"]["exposure"] <= 20.0
    assert output.summary["generated"] == len(lineups)
    assert "exhausting attempts" in output.message


def test_maximums_hold_alongside_backfilled_minimums():
    pool = PlayerPool(slate_players())
    exposure = [
        ExposureSetting(scope="team", key="A", min=60),
        ExposureSetting(scope="player", key="a0", max=20),
    ]
    output = _build(pool, 10, exposure=exposure)

    lineups = output.lineups
    with_a = sum(1 for lineup in lineups if any(player.team == "A" for player in lineup.players))
    with_a0 = sum(1 for lineup in lineups if any(player.player_id == "a0" for player in lineup.players))
    assert with_a >= 0.6 * len(lineups)
    assert with_a0 <= 0.2 * len(lineups)


def test_unreachable_player_minimum_reports_entity():
    players = slate_players()
    players.append(make_player("X", "TOP", "A", salary=45_000, projection=80.0))
    pool = PlayerPool(players)
    with pytest.raises(ExposureInfeasible) as excinfo:
        _build(pool, 6, exposure=[ExposureSetting(scope="player", key="X", min=50)])
    assert excinfo.value.entity == "player:X"


def test_barbell_portfolio():
    players = []
    for team_idx, team in enumerate(("A", "B", "C", "D")):
        for role_idx, role in enumerate(ROLES):
            players.append(
                make_player(
                    f"{team.lower()}{role_idx}",
                    role,
                    team,
                    projection=40.0 + 4.0 * ((team_idx + role_idx) % 6),
                    ownership=5.0 + 10.0 * team_idx + (role_idx % 3),
                )
            )
    pool = PlayerPool(players)
    # The 7/7/6 split depends only on portfolio_size. A multiplier of 10
    # instead of the default 25 keeps the 200 candidates well inside what
    # twenty-four players yield before refill runs dry.
    output = _build(
        pool,
        20,
        "portfolio",
        custom_config={"portfolio_size": 20, "bulk_multiplier": 10, "hybrid": {"distribution": {"monte_carlo": 1.0}}},
    )

    labels = Counter(lineup.label for lineup in output.lineups)
    assert labels == {"floor": 7, "ceiling": 7, "balanced": 6}
    assert output.summary["portfolio"]["candidates"] == 200

    def mean_ownership(label):
        picked = [lineup.avg_ownership for lineup in output.lineups if lineup.label == label]
        return sum(picked) / len(picked)

    assert mean_ownership("floor") >= mean_ownership("ceiling")


def test_salary_infeasible_pool():
    players = [make_player(f"x{idx}", role, "A", salary=10_000) for idx, role in enumerate(ROLES)]
    pool = PlayerPool(players)
    with pytest.raises(Infeasible):
        _build(pool, 3)


def test_cancellation_returns_partial_batch():
    pool = PlayerPool(slate_players())
    token = CancellationToken()
    events = []

    def progress(percent, status, current=None, target=None):
        events.append(percent)
        if percent >= 10:
            token.cancel()

    output = _build(pool, 100, token=token, progress=progress)

    assert output.cancelled
    assert 0 < len(output.lineups) < 100
    assert "cancelled" in output.message
    assert events == sorted(events)
    for lineup in output.lineups:
        assert lineup.salary <= RULES.salary_cap


def test_expired_deadline_cancels_before_any_lineup():
    pool = PlayerPool(slate_players())
    token = CancellationToken(deadline_seconds=1e-9)
    with pytest.raises(Cancelled) as excinfo:
        _build(pool, 5, token=token)
    assert excinfo.value.accepted == 0
    assert token.reason == "deadline exceeded"


def test_same_seed_reproduces_batch():
    pool = PlayerPool(slate_players())
    first = _build(pool, 6, "balanced", seed=42, custom_config={"genetic": {"population_size": 50, "generations": 20}})
    second = _build(pool, 6, "balanced", seed=42, custom_config={"genetic": {"population_size": 50, "generations": 20}})
    assert [(lineup.signature, lineup.captain_id) for lineup in first.lineups] == [
        (lineup.signature, lineup.captain_id) for lineup in second.lineups
    ]


def test_formula_override_is_reported():
    pool = PlayerPool(slate_players())
    output = _build(pool, 4, custom_config={"formula": "ceiling"})
    assert output.summary["formula"] == "ceiling"
    assert {lineup.formula for lineup in output.lineups} == {"ceiling"}


def test_roi_uses_contest_multiplier():
    pool = PlayerPool(slate_players())
    cash = _build(pool, 5, contest=ContestDescriptor(type="cash"))
    gpp = _build(pool, 5, contest=ContestDescriptor(type="gpp"))
    top_cash = max(abs(lineup.roi) for lineup in cash.lineups)
    top_gpp = max(abs(lineup.roi) for lineup in gpp.lineups)
    assert top_gpp == pytest.approx(top_cash * 5, abs=0.05)
