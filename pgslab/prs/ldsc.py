"""
LD score regression (LDSC)

chi2_j = intercept + h2 * N_j * l_j / M, where l_j is the LD score of SNP j and
M the number of SNPs the LD scores were computed over. The fit is a weighted
least-squares regression, re-weighted for heteroscedasticity and for counting
correlated SNPs several times; standard errors come from a block jackknife
over contiguous SNP blocks.

Two steps as in LDSC: the intercept is estimated on SNPs with chi2 < 30, then
the slope is re-estimated on all SNPs with the intercept held fixed.
"""

from typing import Optional, Tuple, Union

import numpy as np


def _wls(x: np.ndarray, y: np.ndarray, w: np.ndarray,
         intercept: Optional[float] = None) -> Tuple[float, float]:
    """Weighted least squares of y on x; returns (intercept, slope)."""
    if intercept is not None:
        slope = np.sum(w * x * (y - intercept)) / np.sum(w * x * x)
        return float(intercept), float(slope)
    W = np.sum(w)
    WX = np.sum(w * x)
    WY = np.sum(w * y)
    WXX = np.sum(w * x * x)
    WXY = np.sum(w * x * y)
    denom = W * WXX - WX ** 2
    if denom <= 1e-10 * W * WXX:
        raise ValueError("LD scores have no variation; cannot fit LDSC")
    slope = (W * WXY - WX * WY) / denom
    return float((WY - slope * WX) / W), float(slope)


def _irwls(x: np.ndarray, y: np.ndarray, ld_score: np.ndarray,
           intercept: Optional[float], n_iter: int = 2) -> Tuple[float, float]:
    """Iteratively re-weighted fit; x = N l / M so the slope is h2."""
    # Start from unweighted estimates
    w = np.ones_like(x)
    a, b = _wls(x, y, w, intercept)
    for _ in range(n_iter):
        h2 = min(max(b, 0.0), 1.0)
        a_w = max(a, 1.0) if intercept is None else a
        het = 1.0 / (2.0 * (a_w + h2 * x) ** 2)
        w = het / np.maximum(ld_score, 1.0)
        a, b = _wls(x, y, w, intercept)
    return a, b


def _jackknife(x: np.ndarray, y: np.ndarray, ld_score: np.ndarray,
               intercept: Optional[float],
               blocks: int) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """Full-data estimates and block-jackknife standard errors."""
    full = _irwls(x, y, ld_score, intercept)
    n = len(x)
    n_blocks = min(blocks, n)
    bounds = np.linspace(0, n, n_blocks + 1).astype(int)
    delete = np.empty((n_blocks, 2))
    for k in range(n_blocks):
        keep = np.ones(n, dtype=bool)
        keep[bounds[k]:bounds[k + 1]] = False
        delete[k] = _irwls(x[keep], y[keep], ld_score[keep], intercept)
    se = np.sqrt((n_blocks - 1) / n_blocks * np.sum((delete - delete.mean(axis=0)) ** 2, axis=0))
    return full, (float(se[0]), float(se[1]))


def PGS_LDSC(ld_score: np.ndarray,
             ld_size: float,
             chi2: np.ndarray,
             sample_size: Union[float, np.ndarray],
             blocks: int = 200,
             intercept: Optional[float] = None,
             chi2_thr1: float = 30.0,
             chi2_thr2: float = np.inf) -> Tuple[float, float, float, float]:
    """LD score regression estimate of SNP heritability.

    Args:
        ld_score: LD score of each SNP
        ld_size: Number of SNPs used to compute the LD scores (M)
        chi2: Association chi-square statistics (z^2)
        sample_size: GWAS sample size (scalar or per SNP)
        blocks: Number of jackknife blocks
        intercept: Fix the intercept (e.g. 1) and only estimate h2
        chi2_thr1: Only SNPs below this chi2 are used to estimate the intercept
        chi2_thr2: Only SNPs below this chi2 are used to estimate h2

    Returns:
        (intercept, intercept_se, h2, h2_se); intercept_se is NaN when the
        intercept was fixed.
    """
    ld_score = np.asarray(ld_score, dtype=np.float64)
    chi2 = np.asarray(chi2, dtype=np.float64)
    if ld_score.shape != chi2.shape:
        raise ValueError("ld_score and chi2 must have the same length")
    sample_size = np.broadcast_to(np.asarray(sample_size, dtype=np.float64), chi2.shape).copy()
    if ld_size <= 0:
        raise ValueError("ld_size must be positive")
    if np.any(sample_size <= 0):
        raise ValueError("sample_size must be positive")
    if blocks < 2:
        raise ValueError("Need at least 2 jackknife blocks")

    finite = np.isfinite(ld_score) & np.isfinite(chi2)
    ld_score, chi2, sample_size = ld_score[finite], chi2[finite], sample_size[finite]
    x = ld_score * sample_size / ld_size

    int_se = np.nan
    if intercept is None:
        sub1 = chi2 < chi2_thr1
        if sub1.sum() < 3:
            raise ValueError("Too few SNPs below chi2_thr1 to estimate the intercept")
        (intercept, _), (int_se, _) = _jackknife(x[sub1], chi2[sub1], ld_score[sub1],
                                                 None, blocks)

    sub2 = chi2 < chi2_thr2
    if sub2.sum() < 2:
        raise ValueError("Too few SNPs below chi2_thr2 to estimate h2")
    (_, h2), (_, h2_se) = _jackknife(x[sub2], chi2[sub2], ld_score[sub2],
                                     float(intercept), blocks)
    return float(intercept), float(int_se), float(h2), float(h2_se)
