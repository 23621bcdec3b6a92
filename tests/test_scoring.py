import numpy as np
import pandas as pd
import pytest

from pgslab.association.glm import PGS_GLM
from pgslab.prs.clumping import PGS_GridClumping
from pgslab.prs.scoring import (
    PGS_GridPRS,
    PGS_Score,
    PGS_Stacking,
    all_snp_weights,
    clumped_weights,
    ct_weights,
    default_lp_thresholds,
    threshold_weights,
)
from pgslab.utils.data_types import GenotypeMap, GenotypeMatrix


def _make_data(n: int = 400, m: int = 40, seed: int = 0):
    rng = np.random.default_rng(seed)
    geno = rng.binomial(2, rng.uniform(0.1, 0.5, m), size=(n, m)).astype(np.int8)
    geno_map = GenotypeMap(pd.DataFrame({
        "SNP": [f"rs{i}" for i in range(m)],
        "CHROM": ["1"] * (m // 2) + ["2"] * (m - m // 2),
        "POS": (np.arange(m) % (m // 2)) * 5_000 + 1_000,
    }))
    beta = np.zeros(m)
    beta[[1, 7, 22, 30]] = [0.8, -0.6, 0.7, 0.5]
    return geno, geno_map, beta


def test_score_matches_matrix_product() -> None:
    geno, _, beta = _make_data()
    expected = geno.astype(float) @ beta
    np.testing.assert_allclose(PGS_Score(geno, beta, maxLine=3), expected)

    rows = np.array([5, 2, 9])
    cols = np.array([1, 7, 22])
    sub = PGS_Score(GenotypeMatrix(geno), beta[cols], ind_row=rows, ind_col=cols)
    np.testing.assert_allclose(sub, geno[np.ix_(rows, cols)].astype(float) @ beta[cols])

    W = np.column_stack([beta, np.ones(len(beta))])
    both = PGS_Score(geno, W)
    assert both.shape == (geno.shape[0], 2)
    np.testing.assert_allclose(both[:, 1], geno.sum(axis=1))


def test_score_imputes_missing_and_validates() -> None:
    geno = np.array([[0, 2], [-9, 1], [2, 0]], dtype=np.int8)
    scores = PGS_Score(geno, np.array([1.0, 0.0]))
    np.testing.assert_allclose(scores, [0.0, 1.0, 2.0])

    with pytest.raises(ValueError):
        PGS_Score(geno, np.array([1.0, np.nan]))
    with pytest.raises(ValueError):
        PGS_Score(geno, np.array([1.0, 2.0, 3.0]))


def test_weight_builders() -> None:
    betas = np.array([0.5, np.nan, -0.2, 0.1])
    lpval = np.array([3.0, 5.0, 1.0, 2.0])

    np.testing.assert_allclose(all_snp_weights(betas), [0.5, 0.0, -0.2, 0.1])
    np.testing.assert_allclose(threshold_weights(betas, lpval, 2.0), [0.5, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(clumped_weights(betas, [2, 3]), [0.0, 0.0, -0.2, 0.1])
    np.testing.assert_allclose(ct_weights(betas, lpval, [0, 2, 3], 1.5), [0.5, 0.0, 0.0, 0.1])

    with pytest.raises(ValueError):
        threshold_weights(betas, lpval[:2], 1.0)


def test_default_lp_thresholds() -> None:
    lpval = np.array([0.01, 0.5, np.nan, 12.0])
    thr = default_lp_thresholds(lpval, n=10)
    assert len(thr) == 10
    assert thr[0] == pytest.approx(0.9999 * 0.1)
    assert thr[-1] < 12.0
    assert np.all(np.diff(thr) > 0)

    assert default_lp_thresholds(np.array([0.05, 0.05]))[0] == pytest.approx(0.9999 * 0.05)
    # Starts at 0.1 even when every SNP is more significant
    high = default_lp_thresholds(np.array([2.0, 5.0, 8.0]), n=4)
    np.testing.assert_allclose(high, 0.9999 * np.geomspace(0.1, 8.0, 4))
    with pytest.raises(ValueError):
        default_lp_thresholds(np.array([np.nan]))


def _ct_setup(binary: bool, seed: int = 1):
    geno, geno_map, beta = _make_data(n=500, seed=seed)
    rng = np.random.default_rng(seed)
    g = geno.astype(float) @ beta
    liability = (g - g.mean()) / g.std() + rng.standard_normal(len(g))
    y = (liability > 0.5).astype(float) if binary else liability
    res = PGS_GLM(y, geno, verbose=False)
    lpval = -np.log10(res.pvalues)
    grid = PGS_GridClumping(geno, geno_map, lpval, grid_thr_r2=(0.2, 0.8),
                            grid_base_size=(50,), verbose=False)
    grid_prs = PGS_GridPRS(geno, res.effects, lpval, grid,
                           lp_thresholds=default_lp_thresholds(lpval, n=8), verbose=False)
    return geno, y, grid_prs


def test_grid_prs_columns_reproduce_scores() -> None:
    geno, _, grid_prs = _ct_setup(binary=False)

    assert grid_prs.n_scores == 16
    assert list(grid_prs.params.columns) == ['grid_index', 'thr_r2', 'base_size', 'size',
                                             'thr_lp', 'n_snps']
    for k in (0, 5, 15):
        w = grid_prs.column_weights(k)
        assert np.count_nonzero(w) == grid_prs.params['n_snps'].iloc[k]
        np.testing.assert_allclose(PGS_Score(geno, w), grid_prs.scores[:, k])

    metric = np.zeros(grid_prs.n_scores)
    metric[3] = 1.0
    assert grid_prs.best(metric) == 3
    with pytest.raises(ValueError):
        grid_prs.best(np.zeros(2))


@pytest.mark.parametrize("family", ["gaussian", "binomial"])
def test_stacking_weights_reproduce_linear_predictor(family: str) -> None:
    geno, y, grid_prs = _ct_setup(binary=(family == "binomial"), seed=2)

    result = PGS_Stacking(grid_prs, y, family=family, cv=3, n_alphas=10, seed=0, verbose=False)

    assert result.family == family
    assert result.weights.shape == (geno.shape[1],)
    assert result.n_selected_scores >= 1
    direct = PGS_Score(geno, result.weights) + result.intercept
    np.testing.assert_allclose(direct, grid_prs.scores @ result.coef + result.intercept,
                               rtol=1e-8, atol=1e-8)
    assert np.corrcoef(direct, y)[0, 1] > 0.3


def test_stacking_validation() -> None:
    _, y, grid_prs = _ct_setup(binary=False, seed=3)
    with pytest.raises(ValueError):
        PGS_Stacking(grid_prs, y, family="binomial", verbose=False)
    with pytest.raises(ValueError):
        PGS_Stacking(grid_prs, y, family="poisson", verbose=False)
    with pytest.raises(ValueError):
        PGS_Stacking(grid_prs, y[:10], family="gaussian", verbose=False)
