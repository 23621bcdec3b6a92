"""
Statistical utilities for GWAS and polygenic score analysis
"""

import numpy as np
from typing import Tuple
from scipy import stats, special

LN10 = np.log(10.0)


def bonferroni_correction(pvalues: np.ndarray, alpha: float = 0.05) -> Tuple[np.ndarray, float]:
    """Apply Bonferroni correction for multiple testing

    Args:
        pvalues: Array of p-values
        alpha: Family-wise error rate (default: 0.05)

    Returns:
        Tuple of (corrected_pvalues, corrected_threshold)
    """
    n_tests = len(pvalues)
    corrected_threshold = alpha / n_tests
    corrected_pvalues = np.minimum(pvalues * n_tests, 1.0)

    return corrected_pvalues, corrected_threshold


def fdr_correction(pvalues: np.ndarray, alpha: float = 0.05, method: str = 'bh') -> Tuple[np.ndarray, np.ndarray]:
    """Apply False Discovery Rate correction (Benjamini-Hochberg)

    Args:
        pvalues: Array of p-values
        alpha: False discovery rate (default: 0.05)
        method: Method ('bh' for Benjamini-Hochberg)

    Returns:
        Tuple of (rejected_hypotheses, corrected_pvalues)
    """
    if method != 'bh':
        raise ValueError(f"Unknown method: {method}")

    pvalues = np.asarray(pvalues)
    order = np.argsort(pvalues)
    reverse_order = order.argsort()

    n = len(pvalues)
    ranks = np.arange(1, n + 1)
    corrected = pvalues[order] * n / ranks
    corrected = np.minimum.accumulate(corrected[::-1])[::-1]
    corrected_pvalues = np.minimum(corrected[reverse_order], 1.0)

    return corrected_pvalues <= alpha, corrected_pvalues


def genomic_inflation_factor(pvalues: np.ndarray) -> float:
    """Calculate genomic inflation factor (lambda)

    Args:
        pvalues: Array of p-values

    Returns:
        Genomic inflation factor (lambda)
    """
    pvalues = np.asarray(pvalues, dtype=np.float64)
    valid_pvals = pvalues[np.isfinite(pvalues) & (pvalues > 0)]
    if len(valid_pvals) == 0:
        return 1.0

    chi2_values = stats.chi2.isf(valid_pvals, df=1)
    return float(np.median(chi2_values) / stats.chi2.ppf(0.5, df=1))


def qq_plot_data(pvalues: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Prepare data for Q-Q plot

    Returns:
        Tuple of (expected_pvalues, observed_pvalues) for plotting
    """
    pvalues = np.asarray(pvalues, dtype=np.float64)
    valid_pvals = np.sort(pvalues[np.isfinite(pvalues) & (pvalues > 0)])
    n = len(valid_pvals)
    if n == 0:
        return np.array([]), np.array([])

    expected_pvals = np.arange(1, n + 1) / (n + 1)
    return expected_pvals, valid_pvals


def effective_sample_size(n_case: float, n_control: float) -> float:
    """Effective sample size of a case-control study: 4 / (1/n_case + 1/n_control)."""
    if n_case <= 0 or n_control <= 0:
        raise ValueError("Case and control counts must both be positive")
    return 4.0 / (1.0 / n_case + 1.0 / n_control)


def pvalue_from_z(z: np.ndarray) -> np.ndarray:
    """Two-sided normal p-values."""
    z = np.asarray(z, dtype=np.float64)
    return 2.0 * special.ndtr(-np.abs(z))


def log10_pvalue_from_z(z: np.ndarray) -> np.ndarray:
    """-log10 of two-sided normal p-values, finite even when p underflows."""
    z = np.asarray(z, dtype=np.float64)
    return -(np.log(2.0) + special.log_ndtr(-np.abs(z))) / LN10


def chi2_from_pvalue(pvalues: np.ndarray) -> np.ndarray:
    """1-df chi-square statistics matching the given p-values."""
    return stats.chi2.isf(np.asarray(pvalues, dtype=np.float64), df=1)
