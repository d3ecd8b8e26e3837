import pytest

from nexusdfs.errors import InvalidInput, UnknownStrategy
from nexusdfs.models import ContestDescriptor
from nexusdfs.optimizer.strategies import (
    DEFAULT_PRESETS,
    AnnealingConfig,
    GeneticConfig,
    HybridConfig,
    MonteCarloConfig,
    PortfolioConfig,
    StrategyRegistry,
    as_hybrid,
    parse_stack_pattern,
    recommend_distribution,
)


def test_registry_lists_every_preset():
    registry = StrategyRegistry()
    assert registry.names() == [preset.key for preset in DEFAULT_PRESETS]
    assert {"recommended", "balanced", "cash_game", "tournament", "contrarian", "constraint_focused", "portfolio"} <= set(
        registry.names()
    )


def test_unknown_strategy():
    with pytest.raises(UnknownStrategy) as excinfo:
        StrategyRegistry().resolve("yolo", contest=ContestDescriptor())
    assert excinfo.value.name == "yolo"


def test_resolve_merges_custom_config_and_extracts_formula():
    resolved = StrategyRegistry().resolve(
        "cash_game",
        contest=ContestDescriptor(type="cash"),
        custom_config={"randomness": 0.6, "formula": "ceiling"},
    )
    assert isinstance(resolved.config, MonteCarloConfig)
    assert resolved.config.randomness == 0.6
    assert resolved.config.leverage_multiplier == 0.4
    assert resolved.formula == "ceiling"
    assert resolved.algorithm == "monte_carlo"


def test_resolve_keeps_preset_kind():
    resolved = StrategyRegistry().resolve(
        "tournament",
        contest=ContestDescriptor(),
        custom_config={"kind": "monte_carlo", "generations": 20},
    )
    assert isinstance(resolved.config, GeneticConfig)
    assert resolved.config.generations == 20
    assert resolved.config.population_size == 120


@pytest.mark.parametrize(
    "custom_config",
    [
        {"population_size": 10},
        {"bogus": 1},
        {"monte_carlo": {"randomness": 0.95}},
        {"formula": 3},
    ],
)
def test_resolve_rejects_invalid_custom_config(custom_config):
    with pytest.raises(InvalidInput):
        StrategyRegistry().resolve("contrarian", contest=ContestDescriptor(), custom_config=custom_config)


def test_weight_maps_replace_preset_values():
    resolved = StrategyRegistry().resolve(
        "balanced",
        contest=ContestDescriptor(),
        custom_config={"distribution": {"genetic": 1.0}},
    )
    assert resolved.config.distribution == {"monte_carlo": 0.0, "genetic": 1.0, "simulated_annealing": 0.0}

    portfolio = StrategyRegistry().resolve(
        "portfolio",
        contest=ContestDescriptor(),
        custom_config={"portfolio_size": 20, "hybrid": {"distribution": {"monte_carlo": 1.0}}},
    )
    assert isinstance(portfolio.config, PortfolioConfig)
    assert portfolio.config.portfolio_size == 20
    assert portfolio.config.hybrid.distribution["monte_carlo"] == 1.0
    assert portfolio.config.hybrid.distribution["genetic"] == 0.0


def test_recommended_distribution_follows_contest():
    registry = StrategyRegistry()
    gpp = registry.resolve("recommended", contest=ContestDescriptor(type="gpp", field_size=1000))
    assert isinstance(gpp.config, HybridConfig)
    assert gpp.algorithm == "hybrid"
    assert gpp.config.distribution["genetic"] == pytest.approx(0.7)

    cash = registry.resolve("recommended", contest=ContestDescriptor(type="cash"))
    assert cash.config.distribution["monte_carlo"] == pytest.approx(0.8)

    heavy = recommend_distribution(ContestDescriptor(type="cash"), constraint_count=30)
    assert heavy["simulated_annealing"] == pytest.approx(0.5)
    large = recommend_distribution(ContestDescriptor(field_size=20_000), constraint_count=0)
    assert large["genetic"] == pytest.approx(0.6)


def test_stack_patterns():
    assert parse_stack_pattern("4-1-1") == (4, 1, 1)
    assert parse_stack_pattern("2-4") == (4, 2)
    for bad in ("7", "3-3-1", "4-x", "0-4"):
        with pytest.raises(ValueError):
            parse_stack_pattern(bad)

    config = MonteCarloConfig(stack_distribution={"2-4": 1, "4-2": 1, "3-3": 2})
    assert config.stack_distribution == {"4-2": 0.5, "3-3": 0.5}


def test_distribution_validation():
    with pytest.raises(ValueError):
        HybridConfig(distribution={"magic": 1.0})
    with pytest.raises(ValueError):
        HybridConfig(distribution={"genetic": 0.0})
    with pytest.raises(ValueError):
        PortfolioConfig(barbell={"floor": 0.5, "ceiling": 0.5, "balanced": 0.5})


def test_as_hybrid_wraps_single_algorithms():
    assert as_hybrid(MonteCarloConfig()).distribution["monte_carlo"] == 1.0
    genetic = GeneticConfig(monte_carlo={"randomness": 0.7})
    hybrid = as_hybrid(genetic)
    assert hybrid.distribution["genetic"] == 1.0
    assert hybrid.monte_carlo.randomness == 0.7
    assert as_hybrid(AnnealingConfig()).distribution["simulated_annealing"] == 1.0


def test_describe_reports_suitability_and_usage():
    registry = StrategyRegistry()
    registry.record_usage("balanced", [30.0, 40.0], [1.0, 3.0])

    described = registry.describe(ContestDescriptor(type="cash"), complexity_score=4)
    assert described["cash_game"]["suitable"]
    assert not described["tournament"]["suitable"]
    assert not described["constraint_focused"]["suitable"]
    assert described["recommended"]["recommended"]

    performance = described["balanced"]["performance"]
    assert performance["usage"] == 1
    assert performance["lineups"] == 2
    assert performance["average_nexus_score"] == 35.0
    assert performance["average_roi"] == 2.0

    assert registry.describe(ContestDescriptor(), complexity_score=12)["constraint_focused"]["suitable"]
