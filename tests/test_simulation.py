import numpy as np
import pytest

from pgslab.simulation.phenotype import simulate_phenotype, split_train_test
from pgslab.utils.data_types import GenotypeMatrix


def _random_genotypes(n: int = 400, m: int = 60, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    freq = rng.uniform(0.05, 0.5, m)
    return rng.binomial(2, freq, size=(n, m)).astype(np.int8)


def test_quantitative_phenotype_has_exact_genetic_variance() -> None:
    geno = _random_genotypes()

    sim = simulate_phenotype(geno, h2=0.4, n_causal=10, seed=1)

    assert sim.genetic_values.var() == pytest.approx(0.4)
    assert sim.n_causal == 10
    assert len(np.unique(sim.causal_indices)) == 10
    assert not sim.is_binary
    np.testing.assert_allclose(sim.values, sim.liability)

    # Per-allele effects reproduce the genetic values up to a constant
    G = geno[:, sim.causal_indices].astype(float)
    recon = G @ sim.allelic_effects
    np.testing.assert_allclose(recon - recon.mean(), sim.genetic_values, atol=1e-10)


def test_binary_phenotype_matches_prevalence() -> None:
    geno = _random_genotypes(n=4000, m=40)

    sim = simulate_phenotype(GenotypeMatrix(geno), h2=0.5, n_causal=20, prevalence=0.2, seed=3)

    assert sim.is_binary
    assert set(np.unique(sim.values)) == {0.0, 1.0}
    assert sim.values.mean() == pytest.approx(0.2, abs=0.03)


def test_simulation_is_reproducible_and_respects_candidates() -> None:
    geno = _random_genotypes()
    candidates = np.arange(20, 40)

    a = simulate_phenotype(geno, h2=0.3, n_causal=5, ind_possible=candidates, seed=7)
    b = simulate_phenotype(geno, h2=0.3, n_causal=5, ind_possible=candidates, seed=7)

    np.testing.assert_array_equal(a.causal_indices, b.causal_indices)
    np.testing.assert_allclose(a.values, b.values)
    assert np.all(np.isin(a.causal_indices, candidates))

    weights = a.true_weights(geno.shape[1])
    assert np.count_nonzero(weights) <= 5
    np.testing.assert_allclose(weights[a.causal_indices], a.allelic_effects)


def test_laplace_effects_and_subset_rows() -> None:
    geno = _random_genotypes()
    rows = np.arange(100)

    sim = simulate_phenotype(geno, h2=0.6, n_causal=8, effects_dist="laplace", ind_row=rows, seed=2)

    assert len(sim.values) == 100
    assert sim.genetic_values.var() == pytest.approx(0.6)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"h2": 0.0, "n_causal": 5},
        {"h2": 1.5, "n_causal": 5},
        {"h2": 0.5, "n_causal": 0},
        {"h2": 0.5, "n_causal": 61},
        {"h2": 0.5, "n_causal": 5, "prevalence": 1.0},
        {"h2": 0.5, "n_causal": 5, "effects_dist": "cauchy"},
    ],
)
def test_simulation_rejects_invalid_arguments(kwargs) -> None:
    with pytest.raises(ValueError):
        simulate_phenotype(_random_genotypes(), seed=0, **kwargs)


def test_split_train_test_partitions_individuals() -> None:
    train, test = split_train_test(100, n_test=25, seed=4)

    assert len(test) == 25
    assert len(np.intersect1d(train, test)) == 0
    np.testing.assert_array_equal(np.sort(np.concatenate([train, test])), np.arange(100))
    assert np.all(np.diff(test) > 0)

    train_f, test_f = split_train_test(10, test_fraction=0.3, seed=4)
    assert len(test_f) == 3

    with pytest.raises(ValueError):
        split_train_test(10, n_test=10)
    with pytest.raises(ValueError):
        split_train_test(10, test_fraction=1.5)
