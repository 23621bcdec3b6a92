"""
Polygenic scores from SNP weights, and the clumping + thresholding family

- PGS_Score: G[:, cols] @ w over imputed dosages, in marker batches
- weight builders for all-SNP, thresholded, clumped and C+T models
- PGS_GridPRS: one score per (clumping r2, window, p-value threshold)
- PGS_Stacking: stacked C+T (SCT), an L1-penalized regression over the grid
  of C+T scores collapsed back into a single weight vector over SNPs
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from sklearn.linear_model import LassoCV, LogisticRegressionCV
from sklearn.preprocessing import StandardScaler

from ..utils.data_types import GenotypeMatrix
from .clumping import ClumpingGrid


def PGS_Score(geno: Union[GenotypeMatrix, np.ndarray],
              weights: np.ndarray,
              ind_row: Optional[np.ndarray] = None,
              ind_col: Optional[np.ndarray] = None,
              maxLine: int = 1000) -> np.ndarray:
    """Polygenic scores: sum over markers of imputed dosage times weight.

    Args:
        geno: Genotype matrix (individuals x markers)
        weights: Vector (or matrix with one column per score) aligned with
            ``ind_col`` (all markers when ``ind_col`` is None)
        ind_row: Individuals to score
        ind_col: Markers the weights refer to
        maxLine: Markers loaded per batch

    Returns:
        Scores of shape (n,) for a weight vector or (n, k) for a matrix.
    """
    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))
    ind_col = np.arange(geno.n_markers) if ind_col is None else np.asarray(ind_col, dtype=int)
    W = np.asarray(weights, dtype=np.float64)
    vector = W.ndim == 1
    if vector:
        W = W[:, np.newaxis]
    if W.shape[0] != len(ind_col):
        raise ValueError("Weights must have one row per marker in ind_col")
    if not np.all(np.isfinite(W)):
        raise ValueError("Weights contain non-finite values")

    n = geno.n_individuals if ind_row is None else len(ind_row)
    scores = np.zeros((n, W.shape[1]))

    # Markers with zero weight in every score contribute nothing
    used = np.where(np.any(W != 0, axis=1))[0]
    for start in range(0, len(used), maxLine):
        rows = used[start:start + maxLine]
        G = geno.get_columns_imputed(ind_col[rows], ind_row=ind_row)
        scores += G @ W[rows]
    return scores[:, 0] if vector else scores


def all_snp_weights(betas: np.ndarray) -> np.ndarray:
    """Use every marginal effect as a weight."""
    weights = np.asarray(betas, dtype=np.float64).copy()
    weights[~np.isfinite(weights)] = 0.0
    return weights


def threshold_weights(betas: np.ndarray, lpval: np.ndarray, lp_threshold: float) -> np.ndarray:
    """Keep effects with -log10(p) above ``lp_threshold`` (p < 10^-threshold)."""
    weights = all_snp_weights(betas)
    lpval = np.asarray(lpval, dtype=np.float64)
    if lpval.shape != weights.shape:
        raise ValueError("betas and lpval must have the same length")
    weights[~(lpval > lp_threshold)] = 0.0
    return weights


def clumped_weights(betas: np.ndarray, keep: np.ndarray) -> np.ndarray:
    """Keep effects of the clumped SNPs only."""
    weights = all_snp_weights(betas)
    mask = np.zeros(len(weights), dtype=bool)
    mask[np.asarray(keep, dtype=int)] = True
    weights[~mask] = 0.0
    return weights


def ct_weights(betas: np.ndarray, lpval: np.ndarray, keep: np.ndarray,
               lp_threshold: float) -> np.ndarray:
    """Clumping + thresholding weights."""
    weights = threshold_weights(betas, lpval, lp_threshold)
    mask = np.zeros(len(weights), dtype=bool)
    mask[np.asarray(keep, dtype=int)] = True
    weights[~mask] = 0.0
    return weights


def default_lp_thresholds(lpval: np.ndarray, n: int = 50) -> np.ndarray:
    """Geometric sequence of -log10(p) thresholds from 0.1 up to the maximum.

    The sequence is shrunk by a hair so that the top SNP passes the last
    threshold.
    """
    lpval = np.asarray(lpval, dtype=np.float64)
    lpval = lpval[np.isfinite(lpval)]
    if lpval.size == 0:
        raise ValueError("No finite -log10(p) values")
    upper = float(lpval.max())
    if upper <= 0.1:
        return np.array([0.9999 * upper])
    return 0.9999 * np.geomspace(0.1, upper, n)


@dataclass
class GridPRS:
    """Scores for every (clumping, threshold) combination."""

    scores: np.ndarray
    params: pd.DataFrame
    grid: ClumpingGrid
    betas: np.ndarray
    lpval: np.ndarray
    lp_thresholds: np.ndarray

    @property
    def n_scores(self) -> int:
        return self.scores.shape[1]

    def column_weights(self, column: int) -> np.ndarray:
        """SNP weights producing score column ``column``."""
        row = self.params.iloc[column]
        entry = self.grid.entries[int(row['grid_index'])]
        return ct_weights(self.betas, self.lpval, entry.keep, float(row['thr_lp']))

    def best(self, metric: np.ndarray) -> int:
        """Column with the largest metric value (e.g. AUC on training data)."""
        metric = np.asarray(metric, dtype=np.float64)
        if len(metric) != self.n_scores:
            raise ValueError("Need one metric value per score column")
        return int(np.nanargmax(metric))


def PGS_GridPRS(geno: Union[GenotypeMatrix, np.ndarray],
                betas: np.ndarray,
                lpval: np.ndarray,
                grid: ClumpingGrid,
                lp_thresholds: Optional[np.ndarray] = None,
                ind_row: Optional[np.ndarray] = None,
                maxLine: int = 1000,
                verbose: bool = True) -> GridPRS:
    """C+T scores over a clumping grid and a sequence of p-value thresholds."""
    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))
    betas = all_snp_weights(betas)
    lpval = np.asarray(lpval, dtype=np.float64)
    if len(betas) != geno.n_markers or len(lpval) != geno.n_markers:
        raise ValueError("betas and lpval must have one value per marker")
    if lp_thresholds is None:
        lp_thresholds = default_lp_thresholds(lpval)
    lp_thresholds = np.asarray(lp_thresholds, dtype=np.float64)

    start = time.time()
    blocks = []
    rows: List[Dict[str, Any]] = []
    for g, entry in enumerate(grid):
        keep = entry.keep
        passed = lpval[keep][:, np.newaxis] > lp_thresholds[np.newaxis, :]
        W = np.where(passed, betas[keep][:, np.newaxis], 0.0)
        blocks.append(PGS_Score(geno, W, ind_row=ind_row, ind_col=keep, maxLine=maxLine))
        for t, thr in enumerate(lp_thresholds):
            rows.append({'grid_index': g, 'thr_r2': entry.thr_r2, 'base_size': entry.base_size,
                         'size': entry.size, 'thr_lp': float(thr),
                         'n_snps': int(np.count_nonzero(W[:, t]))})

    n = geno.n_individuals if ind_row is None else len(ind_row)
    scores = np.hstack(blocks) if blocks else np.zeros((n, 0))
    if verbose:
        print(f"Grid of C+T scores: {scores.shape[1]} scores in {time.time() - start:.2f}s")
    return GridPRS(scores=scores, params=pd.DataFrame(rows), grid=grid, betas=betas,
                   lpval=lpval, lp_thresholds=lp_thresholds)


@dataclass
class StackingResult:
    """Stacked C+T model."""

    weights: np.ndarray
    intercept: float
    coef: np.ndarray
    family: str
    estimator: Any = field(repr=False, default=None)

    @property
    def n_selected_scores(self) -> int:
        return int(np.count_nonzero(self.coef))


def PGS_Stacking(grid_prs: GridPRS,
                 y: np.ndarray,
                 family: str = 'binomial',
                 cv: int = 5,
                 n_alphas: int = 20,
                 seed: Optional[int] = None,
                 verbose: bool = True) -> StackingResult:
    """Stack the C+T scores with an L1-penalized regression.

    Score columns are standardized, the penalty is chosen by cross-validation,
    and the fitted coefficients are mapped back to a single SNP weight vector:
    weights = sum_k coef_k / sd_k * w_k, where w_k are the C+T weights of
    score column k.

    Args:
        grid_prs: Scores of the individuals in ``y``
        y: 0/1 status (binomial) or trait values (gaussian)
        family: 'binomial' or 'gaussian'
        cv: Number of cross-validation folds
        n_alphas: Number of penalty values tried
        seed: Random seed for the CV folds
        verbose: Print the number of selected scores

    Returns:
        StackingResult whose ``weights`` score new individuals with PGS_Score
        (plus ``intercept`` on the link scale).
    """
    y = np.asarray(y, dtype=np.float64).ravel()
    X = grid_prs.scores
    if X.shape[0] != len(y):
        raise ValueError("y must have one value per scored individual")
    if X.shape[1] == 0:
        raise ValueError("No C+T scores to stack")

    sd = X.std(axis=0)
    usable = sd > 0
    scaler = StandardScaler().fit(X[:, usable])
    Xs = scaler.transform(X[:, usable])

    if family == 'binomial':
        if not np.all(np.isin(y, (0.0, 1.0))):
            raise ValueError("y must contain only 0 and 1 for family='binomial'")
        model = LogisticRegressionCV(Cs=n_alphas, cv=cv, penalty='l1', solver='liblinear',
                                     scoring='roc_auc', random_state=seed, max_iter=1000)
        model.fit(Xs, y)
        coef_sc = model.coef_.ravel()
        intercept_sc = float(model.intercept_[0])
    elif family == 'gaussian':
        alpha_max = float(np.max(np.abs(Xs.T @ (y - y.mean())))) / len(y)
        if alpha_max <= 0:
            raise ValueError("Scores are uncorrelated with y; nothing to stack")
        alphas = np.geomspace(alpha_max, alpha_max * 1e-3, n_alphas)
        model = LassoCV(alphas=alphas, cv=cv, random_state=seed, max_iter=10000)
        model.fit(Xs, y)
        coef_sc = np.asarray(model.coef_).ravel()
        intercept_sc = float(model.intercept_)
    else:
        raise ValueError(f"Unknown family: {family}")

    coef = np.zeros(X.shape[1])
    coef[usable] = coef_sc / scaler.scale_
    intercept = intercept_sc - float(np.sum(coef_sc * scaler.mean_ / scaler.scale_))

    weights = np.zeros(len(grid_prs.betas))
    for k in np.where(coef != 0)[0]:
        weights += coef[k] * grid_prs.column_weights(k)

    if verbose:
        print(f"Stacking ({family}): {int(np.count_nonzero(coef))} of {X.shape[1]} scores selected, "
              f"{int(np.count_nonzero(weights))} SNPs with non-zero weight")
    return StackingResult(weights=weights, intercept=intercept, coef=coef, family=family,
                          estimator=model)
