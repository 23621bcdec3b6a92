import numpy as np
import pytest
from scipy import stats

from pgslab.utils import stats as stats_utils


def test_bonferroni_correction_scales_threshold() -> None:
    pvalues = np.array([0.01, 0.5, 0.02])

    corrected, threshold = stats_utils.bonferroni_correction(pvalues, alpha=0.05)

    assert threshold == pytest.approx(0.05 / 3)
    np.testing.assert_allclose(corrected, np.array([0.03, 1.0, 0.06]))


def test_fdr_correction_bh_procedure() -> None:
    pvalues = np.array([0.001, 0.01, 0.2, 0.5])

    rejected, corrected = stats_utils.fdr_correction(pvalues, alpha=0.05)

    np.testing.assert_array_equal(rejected, np.array([True, True, False, False]))
    np.testing.assert_allclose(corrected, np.array([0.004, 0.02, 0.26666667, 0.5]))

    with pytest.raises(ValueError):
        stats_utils.fdr_correction(pvalues, method="by")


def test_genomic_inflation_factor_null_is_one() -> None:
    chi2_median = stats.chi2.ppf(0.5, df=1)
    pvalues = np.full(11, stats.chi2.sf(chi2_median, df=1))

    assert stats_utils.genomic_inflation_factor(pvalues) == pytest.approx(1.0)
    assert stats_utils.genomic_inflation_factor(np.array([np.nan, 0.0])) == 1.0


def test_qq_plot_data_sorted_and_filtered() -> None:
    expected, observed = stats_utils.qq_plot_data(np.array([0.5, np.nan, 0.01, 0.2]))

    np.testing.assert_allclose(observed, [0.01, 0.2, 0.5])
    np.testing.assert_allclose(expected, [0.25, 0.5, 0.75])


def test_effective_sample_size() -> None:
    assert stats_utils.effective_sample_size(100, 100) == pytest.approx(200.0)
    assert stats_utils.effective_sample_size(50, 450) == pytest.approx(4 / (1 / 50 + 1 / 450))
    with pytest.raises(ValueError):
        stats_utils.effective_sample_size(0, 10)


def test_log10_pvalue_from_z_matches_scipy_and_stays_finite() -> None:
    z = np.array([0.0, 1.96, -3.0, 5.0])
    expected = -np.log10(2 * stats.norm.sf(np.abs(z)))

    np.testing.assert_allclose(stats_utils.log10_pvalue_from_z(z), expected, rtol=1e-10)
    np.testing.assert_allclose(stats_utils.pvalue_from_z(z), 2 * stats.norm.sf(np.abs(z)))

    huge = stats_utils.log10_pvalue_from_z(np.array([60.0]))
    assert np.isfinite(huge[0])
    assert huge[0] > 700


def test_chi2_from_pvalue_inverts_sf() -> None:
    chi2 = np.array([0.5, 3.84, 25.0])
    np.testing.assert_allclose(stats_utils.chi2_from_pvalue(stats.chi2.sf(chi2, df=1)), chi2)
