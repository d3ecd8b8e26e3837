"""Lineup samplers: Monte Carlo, genetic and simulated annealing."""

from .annealing import AnnealingSampler
from .genetic import GeneticSampler
from .monte_carlo import MonteCarloSampler

__all__ = ["AnnealingSampler", "GeneticSampler", "MonteCarloSampler"]
