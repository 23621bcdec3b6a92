"""
Phenotype simulation from real genotypes

A quantitative trait is simulated as y = g + e where g is the genetic value
of a random set of causal SNPs (standardized genotypes, rescaled to variance
h2) and e is Gaussian noise with variance 1 - h2. Giving a prevalence K turns
the trait into a liability: individuals above the 1 - K normal quantile are
cases.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np
from scipy import stats

from ..utils.data_types import GenotypeMatrix


@dataclass
class SimulatedPhenotype:
    """Result of :func:`simulate_phenotype`."""

    values: np.ndarray
    liability: np.ndarray
    genetic_values: np.ndarray
    causal_indices: np.ndarray
    effects: np.ndarray
    allelic_effects: np.ndarray
    h2: float
    prevalence: Optional[float] = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_binary(self) -> bool:
        return self.prevalence is not None

    @property
    def n_causal(self) -> int:
        return len(self.causal_indices)

    def true_weights(self, n_markers: int) -> np.ndarray:
        """Per-allele causal effects expanded to a vector over all markers."""
        weights = np.zeros(n_markers)
        weights[self.causal_indices] = self.allelic_effects
        return weights


def _draw_effects(rng: np.random.Generator, n: int, effects_dist: str) -> np.ndarray:
    if effects_dist == 'gaussian':
        return rng.standard_normal(n)
    if effects_dist == 'laplace':
        return rng.laplace(0.0, 1.0, n)
    raise ValueError(f"Unknown effects distribution: {effects_dist}")


def simulate_phenotype(geno: Union[GenotypeMatrix, np.ndarray],
                       h2: float,
                       n_causal: int,
                       prevalence: Optional[float] = None,
                       alpha: float = -1.0,
                       effects_dist: str = 'gaussian',
                       ind_row: Optional[np.ndarray] = None,
                       ind_possible: Optional[np.ndarray] = None,
                       seed: Optional[int] = None) -> SimulatedPhenotype:
    """Simulate a (binary) phenotype with a given heritability.

    Args:
        geno: Genotype matrix (individuals x markers)
        h2: Heritability on the liability scale, in (0, 1]
        n_causal: Number of causal variants
        prevalence: Proportion of cases K; None for a continuous trait
        alpha: Standardized effects are multiplied by (2 p (1 - p))^(alpha / 2);
            -1 gives larger per-allele effects to rarer variants, 0 leaves the
            standardized effects unchanged
        effects_dist: 'gaussian' or 'laplace'
        ind_row: Individuals to simulate for (default all)
        ind_possible: Markers allowed to be causal (default all)
        seed: Random seed

    Returns:
        SimulatedPhenotype
    """
    if not (0.0 < h2 <= 1.0):
        raise ValueError("h2 must be in (0, 1]")
    if prevalence is not None and not (0.0 < prevalence < 1.0):
        raise ValueError("prevalence must be in (0, 1)")

    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))

    candidates = np.arange(geno.n_markers) if ind_possible is None else np.asarray(ind_possible, dtype=int)
    if not (1 <= n_causal <= len(candidates)):
        raise ValueError(f"n_causal must be between 1 and {len(candidates)}")

    rng = np.random.default_rng(seed)
    causal = np.sort(rng.choice(candidates, size=n_causal, replace=False))

    G = geno.get_columns_imputed(causal, ind_row=ind_row)
    freq = G.mean(axis=0) / 2.0
    sd = G.std(axis=0)
    polymorphic = sd > 0

    effects = _draw_effects(rng, n_causal, effects_dist)
    with np.errstate(divide='ignore'):
        effects = effects * np.where(polymorphic, (2 * freq * (1 - freq)) ** (alpha / 2.0), 0.0)

    Z = np.zeros_like(G)
    Z[:, polymorphic] = (G[:, polymorphic] - G[:, polymorphic].mean(axis=0)) / sd[polymorphic]
    genetic = Z @ effects

    g_sd = genetic.std()
    if g_sd == 0:
        raise ValueError("Simulated genetic values have no variance; choose polymorphic causal SNPs")
    scale = np.sqrt(h2) / g_sd
    genetic = genetic * scale
    effects = effects * scale
    genetic = genetic - genetic.mean()

    noise = rng.standard_normal(len(genetic)) * np.sqrt(1.0 - h2)
    liability = genetic + noise

    if prevalence is None:
        values = liability.copy()
    else:
        threshold = stats.norm.isf(prevalence)
        values = (liability > threshold).astype(np.float64)

    allelic = np.zeros(n_causal)
    allelic[polymorphic] = effects[polymorphic] / sd[polymorphic]

    return SimulatedPhenotype(
        values=values,
        liability=liability,
        genetic_values=genetic,
        causal_indices=causal,
        effects=effects,
        allelic_effects=allelic,
        h2=float(h2),
        prevalence=prevalence,
        metadata={'alpha': alpha, 'effects_dist': effects_dist, 'seed': seed},
    )


def split_train_test(n: int,
                     n_test: Optional[int] = None,
                     test_fraction: Optional[float] = None,
                     seed: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Randomly split individuals into sorted, disjoint training and test sets."""
    if n < 2:
        raise ValueError("Need at least 2 individuals to split")
    if n_test is None:
        if test_fraction is None:
            test_fraction = 0.2
        if not (0.0 < test_fraction < 1.0):
            raise ValueError("test_fraction must be in (0, 1)")
        n_test = int(round(n * test_fraction))
    if not (1 <= n_test < n):
        raise ValueError(f"n_test must be between 1 and {n - 1}")

    rng = np.random.default_rng(seed)
    test = np.sort(rng.choice(n, size=n_test, replace=False))
    train = np.setdiff1d(np.arange(n), test)
    return train, test
