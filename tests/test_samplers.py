from collections import Counter
import random

import pytest

from nexusdfs.config import get_rules
from nexusdfs.optimizer.constraints import feasible
from nexusdfs.optimizer.context import BatchContext, CancellationToken
from nexusdfs.optimizer.exposure import BatchCounters
from nexusdfs.optimizer.hybrid import HybridDriver, largest_remainder
from nexusdfs.optimizer.player_pool import PlayerPool
from nexusdfs.optimizer.sampling import AnnealingSampler, GeneticSampler, MonteCarloSampler
from nexusdfs.optimizer.scoring import LineupScorer, stack_type
from nexusdfs.optimizer.strategies import AnnealingConfig, GeneticConfig, HybridConfig, MonteCarloConfig

from .conftest import make_player, slate_players

RULES = get_rules()
SMALL_GENETIC = {"population_size": 50, "generations": 20, "stall_generations": 2}


def _context(pool: PlayerPool, target: int, token: CancellationToken | None = None) -> BatchContext:
    counters = BatchCounters(pool, [], target)
    return BatchContext(
        pool,
        RULES,
        LineupScorer(pool, RULES),
        counters,
        token or CancellationToken(),
        target=target,
    )


def _assert_valid_batch(context: BatchContext, pool: PlayerPool) -> None:
    lineups = context.accepted
    assert len({lineup.fingerprint for lineup in lineups}) == len(lineups)
    for lineup in lineups:
        assert feasible(lineup, pool, RULES).ok


def test_largest_remainder_split():
    order = ("monte_carlo", "genetic", "simulated_annealing")
    weights = {"monte_carlo": 0.6, "genetic": 0.3, "simulated_annealing": 0.1}
    assert largest_remainder(10, weights, order) == {"monte_carlo": 6, "genetic": 3, "simulated_annealing": 1}
    assert largest_remainder(7, weights, order) == {"monte_carlo": 4, "genetic": 2, "simulated_annealing": 1}
    assert largest_remainder(3, {"a": 0.5, "b": 0.5}) == {"a": 2, "b": 1}
    assert largest_remainder(0, weights, order) == {"monte_carlo": 0, "genetic": 0, "simulated_annealing": 0}


def test_monte_carlo_draws_stack_patterns():
    pool = PlayerPool(slate_players())
    context = _context(pool, 12)
    sampler = MonteCarloSampler(pool, RULES, MonteCarloConfig(), counters=context.counters, rng=random.Random(3))

    accepted = sampler.run(context, 12)

    assert accepted == 12
    _assert_valid_batch(context, pool)
    for lineup in context.accepted:
        assert lineup.source == "monte_carlo"
        assert stack_type(lineup, pool) in {"4-2", "4-1-1"}


def test_monte_carlo_leverage_is_an_ownership_exponent():
    players = slate_players()
    players.append(make_player("z", "MID", "A", projection=30.0, ownership=0.0))
    pool = PlayerPool(players)
    counters = BatchCounters(pool, [], 1)
    a0 = pool.index_of("a0")

    def weight(multiplier, idx):
        config = MonteCarloConfig(leverage_multiplier=multiplier)
        return MonteCarloSampler(pool, RULES, config, counters=counters, rng=random.Random(1))._player_weight(idx)

    # a0 projects 40 at 5% ownership; z has no ownership and is floored at 0.1.
    assert weight(1.0, a0) == pytest.approx(40.0 / 5.0)
    assert weight(2.0, a0) == pytest.approx(40.0 / 25.0)
    assert weight(0.2, a0) == pytest.approx(40.0 / 5.0 ** 0.2)
    assert weight(1.0, pool.index_of("z")) == pytest.approx(300.0)


def test_monte_carlo_forced_player_and_stack_size():
    pool = PlayerPool(slate_players())
    counters = BatchCounters(pool, [], 1)
    sampler = MonteCarloSampler(pool, RULES, MonteCarloConfig(), counters=counters, rng=random.Random(5))
    forced = pool.index_of("c2")

    for _ in range(5):
        lineup = sampler.draw(forced_player=forced, stack_size=3)
        assert lineup is not None
        assert forced in lineup.slots
        assert sum(1 for idx in lineup.slots if pool[idx].team == "C") >= 3


def test_monte_carlo_respects_cancellation():
    pool = PlayerPool(slate_players())
    token = CancellationToken()
    token.cancel("stop")
    context = _context(pool, 5, token)
    sampler = MonteCarloSampler(pool, RULES, MonteCarloConfig(), counters=context.counters, rng=random.Random(1))
    assert sampler.run(context, 5) == 0
    assert token.reason == "stop"


def test_genetic_population_is_ranked_best_first():
    pool = PlayerPool(slate_players())
    context = _context(pool, 5)
    scorer = context.scorer
    sampler = GeneticSampler(
        pool,
        RULES,
        GeneticConfig(**SMALL_GENETIC),
        counters=context.counters,
        scorer=scorer,
        rng=random.Random(11),
    )
    seen_generations = []
    ranked = sampler.evolve(lambda: False, on_generation=lambda generation, mean: seen_generations.append(generation))

    fitness = [scorer.fitness(lineup) for lineup in ranked]
    assert fitness == sorted(fitness, reverse=True)
    assert seen_generations and seen_generations[0] == 1
    assert all(feasible(lineup, pool, RULES).ok for lineup in ranked)


def test_genetic_crossover_duplicate_is_redrawn_by_projection():
    players = slate_players()
    players.append(make_player("hi", "JNG", "C", projection=95.0))
    players.append(make_player("lo", "JNG", "D", projection=0.5))
    pool = PlayerPool(players)
    context = _context(pool, 5)
    sampler = GeneticSampler(
        pool,
        RULES,
        GeneticConfig(**SMALL_GENETIC),
        counters=context.counters,
        scorer=context.scorer,
        rng=random.Random(5),
    )
    base = [pool.index_of(player_id) for player_id in ("a0", "a0", "a2", "a3", "a4", "a5")]

    picks = Counter()
    for _ in range(300):
        slots = list(base)
        sampler._resample_duplicates(slots)
        assert slots[0] == base[0]
        assert len(set(slots)) == 6
        assert pool[slots[1]].position.value == "JNG"
        picks[pool[slots[1]].player_id] += 1

    assert picks["hi"] > picks["a1"] > picks["lo"]


def test_genetic_run_fills_quota():
    pool = PlayerPool(slate_players())
    context = _context(pool, 5)
    sampler = GeneticSampler(
        pool,
        RULES,
        GeneticConfig(**SMALL_GENETIC),
        counters=context.counters,
        scorer=context.scorer,
        rng=random.Random(2),
    )
    assert sampler.run(context, 5) == 5
    _assert_valid_batch(context, pool)
    assert {lineup.source for lineup in context.accepted} == {"genetic"}


def test_annealing_never_returns_worse_start():
    pool = PlayerPool(slate_players())
    context = _context(pool, 3)
    sampler = AnnealingSampler(
        pool,
        RULES,
        AnnealingConfig(),
        counters=context.counters,
        scorer=context.scorer,
        rng=random.Random(4),
    )
    start = sampler.seeder.draw()
    result = sampler.anneal(start, context)
    assert context.scorer.fitness(result) >= context.scorer.fitness(start)
    assert feasible(result, pool, RULES).ok
    assert result.source == "simulated_annealing"

    assert sampler.run(context, 3) == 3
    _assert_valid_batch(context, pool)


def _hybrid_config() -> HybridConfig:
    return HybridConfig(
        distribution={"monte_carlo": 0.6, "genetic": 0.3, "simulated_annealing": 0.1},
        genetic=GeneticConfig(**SMALL_GENETIC),
    )


def _run_hybrid(seed: int, workers: int = 1):
    pool = PlayerPool(slate_players())
    context = _context(pool, 10)
    driver = HybridDriver(pool, RULES, context.scorer, seed=seed, workers=workers)
    outcome = driver.run(context, _hybrid_config(), 10)
    return pool, context, outcome


def test_hybrid_allocation_and_fill():
    pool, context, outcome = _run_hybrid(seed=21)
    assert outcome.allocation == {"monte_carlo": 6, "genetic": 3, "simulated_annealing": 1}
    assert context.full
    assert not outcome.parallel
    _assert_valid_batch(context, pool)
    assert context.stats.attempts > 0


def test_hybrid_is_deterministic_for_a_seed():
    _, first, _ = _run_hybrid(seed=99)
    _, second, _ = _run_hybrid(seed=99)
    assert [(lineup.slots, lineup.captain_slot) for lineup in first.accepted] == [
        (lineup.slots, lineup.captain_slot) for lineup in second.accepted
    ]


def test_hybrid_parallel_workers_share_the_batch():
    pool, context, outcome = _run_hybrid(seed=5, workers=3)
    assert outcome.parallel
    assert len(context.accepted) == 10
    _assert_valid_batch(context, pool)


@pytest.mark.parametrize("fingerprint_source", ["submit", "seed"])
def test_context_rejects_duplicates(fingerprint_source):
    pool = PlayerPool(slate_players())
    context = _context(pool, 3)
    sampler = MonteCarloSampler(pool, RULES, MonteCarloConfig(), counters=context.counters, rng=random.Random(8))
    lineup = sampler.draw()
    if fingerprint_source == "submit":
        assert context.submit(lineup)
    else:
        context.seed([lineup])
    assert not context.submit(lineup.with_captain((lineup.captain_slot + 1) % 5))
    assert len(context) == 1
