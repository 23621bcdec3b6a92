import numpy as np
import pytest

from pgslab.association.logistic import PGS_LogisticGWAS
from pgslab.utils.stats import effective_sample_size


def _case_control(n: int = 600, m: int = 8, seed: int = 0):
    rng = np.random.default_rng(seed)
    geno = rng.binomial(2, rng.uniform(0.15, 0.5, m), size=(n, m)).astype(np.int8)
    eta = -1.0 + 1.0 * geno[:, 2] - 0.4 * geno[:, 5]
    y = (rng.random(n) < 1 / (1 + np.exp(-eta))).astype(float)
    return geno, y


def test_logistic_matches_statsmodels_logit() -> None:
    sm = pytest.importorskip("statsmodels.api")
    geno, y = _case_control()
    rng = np.random.default_rng(9)
    cv = rng.standard_normal((len(y), 1))

    res = PGS_LogisticGWAS(y, geno, CV=cv, maxLine=3, verbose=False)

    for j in range(geno.shape[1]):
        X = sm.add_constant(np.column_stack([cv, geno[:, j]]))
        fit = sm.Logit(y, X).fit(disp=0)
        assert res.effects[j] == pytest.approx(fit.params[-1], rel=1e-5, abs=1e-8)
        assert res.se[j] == pytest.approx(fit.bse[-1], rel=1e-5)
        assert res.pvalues[j] == pytest.approx(fit.pvalues[-1], rel=1e-4)
    assert res.pvalues[2] < 1e-4
    assert np.all(res.niter > 0)


def test_logistic_effective_sample_size_and_rows() -> None:
    geno, y = _case_control()
    rows = np.arange(300)

    res = PGS_LogisticGWAS(y[rows], geno, ind_train=rows, verbose=False)

    n_case = int(y[rows].sum())
    assert res.n_eff == pytest.approx(effective_sample_size(n_case, 300 - n_case))
    assert res.n_markers == geno.shape[1]


def test_logistic_monomorphic_snp_fails_gracefully() -> None:
    geno, y = _case_control()
    geno[:, 0] = 2

    with pytest.warns(UserWarning, match="could not be fitted"):
        res = PGS_LogisticGWAS(y, geno, verbose=False)

    assert np.isnan(res.effects[0])
    assert np.isnan(res.se[0])
    assert res.pvalues[0] == 1.0
    assert res.zscores[0] == 0.0
    assert np.all(np.isfinite(res.effects[1:]))


def test_logistic_rejects_bad_outcomes() -> None:
    geno, y = _case_control()
    with pytest.raises(ValueError):
        PGS_LogisticGWAS(y * 2, geno, verbose=False)
    with pytest.raises(ValueError):
        PGS_LogisticGWAS(np.zeros_like(y), geno, verbose=False)
    with pytest.raises(ValueError):
        PGS_LogisticGWAS(y[:10], geno, verbose=False)
