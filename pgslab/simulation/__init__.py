"""
Phenotype simulation
"""

from .phenotype import SimulatedPhenotype, simulate_phenotype, split_train_test

__all__ = ['SimulatedPhenotype', 'simulate_phenotype', 'split_train_test']
