"""
Windowed linkage-disequilibrium (LD) correlation matrix.

Correlations are computed chromosome by chromosome, only between SNPs that
lie within a window of each other, and stored as a sparse symmetric matrix.
The inner products over individuals run in a numba kernel over a
Fortran-ordered block of standardized genotypes.
"""

import time
from typing import Dict, Optional, Union

import numba
import numpy as np
import pandas as pd
from scipy import sparse, stats

from ..utils.data_types import CorrelationMatrix, GenotypeMap, GenotypeMatrix


@numba.jit(nopython=True, cache=True)
def _windowed_correlations(Z, ends, r_min):
    """Correlations r(j, k) for j < k < ends[j] with |r| >= r_min.

    Z holds standardized genotypes (mean 0, population SD 1), so the Pearson
    correlation is the inner product divided by n.
    """
    n, m = Z.shape
    total = 0
    for j in range(m):
        total += max(ends[j] - j - 1, 0)
    rows = np.empty(total, dtype=np.int64)
    cols = np.empty(total, dtype=np.int64)
    vals = np.empty(total, dtype=np.float64)
    c = 0
    for j in range(m):
        for k in range(j + 1, ends[j]):
            s = 0.0
            for i in range(n):
                s += Z[i, j] * Z[i, k]
            r = s / n
            if r != 0.0 and abs(r) >= r_min:
                rows[c] = j
                cols[c] = k
                vals[c] = r
                c += 1
    return rows[:c], cols[:c], vals[:c]


def _group_markers_by_chrom(chrom_values: np.ndarray) -> Dict[str, np.ndarray]:
    """Return marker indices grouped by chromosome, in order of first appearance."""
    groups: Dict[str, np.ndarray] = {}
    labels, first = np.unique(chrom_values, return_index=True)
    for label in labels[np.argsort(first)]:
        groups[str(label)] = np.where(chrom_values == label)[0]
    return groups


def correlation_threshold(n: int, thr_r2: float = 0.0, alpha: float = 1.0) -> float:
    """Smallest |r| kept given an r^2 threshold and a significance level.

    A correlation is significant at level ``alpha`` when its t statistic
    r sqrt((n-2) / (1-r^2)) exceeds the two-sided t quantile with n-2 d.f.
    """
    if not (0.0 <= thr_r2 <= 1.0):
        raise ValueError("thr_r2 must be in [0, 1]")
    if not (0.0 < alpha <= 1.0):
        raise ValueError("alpha must be in (0, 1]")
    r_min = np.sqrt(thr_r2)
    if alpha < 1.0:
        df = n - 2
        if df <= 0:
            raise ValueError("Need at least 3 individuals to test correlations")
        t_q = stats.t.isf(alpha / 2.0, df)
        r_min = max(r_min, t_q / np.sqrt(df + t_q ** 2))
    return float(r_min)


def window_ends(coords: np.ndarray, size: float) -> np.ndarray:
    """Exclusive end index of the window starting at each (sorted) coordinate."""
    return np.searchsorted(coords, coords + size, side='right').astype(np.int64)


def PGS_LD(geno: Union[GenotypeMatrix, np.ndarray],
           geno_map: Optional[GenotypeMap] = None,
           size: float = 500,
           thr_r2: float = 0.0,
           alpha: float = 1.0,
           ind_row: Optional[np.ndarray] = None,
           ind_col: Optional[np.ndarray] = None,
           use_genetic_map: bool = False,
           fill_diag: bool = True,
           verbose: bool = True) -> CorrelationMatrix:
    """Sparse LD correlation matrix between nearby SNPs.

    Args:
        geno: Genotype matrix (individuals x markers)
        geno_map: Map giving CHROM and POS; without it all markers are treated
            as one chromosome and ``size`` counts SNPs
        size: Window size: kb when using physical positions, size / 1000 cM
            with ``use_genetic_map``, or a number of SNPs without a map
        thr_r2: Drop correlations with r^2 below this threshold
        alpha: Drop correlations not significant at this level (1 keeps all)
        ind_row: Individuals used to estimate correlations
        ind_col: Markers included (output is ordered like ``ind_col``)
        use_genetic_map: Use the map's CM column for windows
        fill_diag: Put 1 on the diagonal even for monomorphic SNPs
        verbose: Print progress

    Returns:
        CorrelationMatrix of shape (len(ind_col), len(ind_col))
    """
    if size <= 0:
        raise ValueError("size must be positive")
    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))

    ind_col = np.arange(geno.n_markers) if ind_col is None else np.asarray(ind_col, dtype=int)
    n = geno.n_individuals if ind_row is None else len(ind_row)
    r_min = correlation_threshold(n, thr_r2=thr_r2, alpha=alpha)
    m = len(ind_col)

    if geno_map is not None:
        if geno_map.n_markers != geno.n_markers:
            raise ValueError("Map and genotype matrix have different numbers of markers")
        map_df = geno_map.to_dataframe().iloc[ind_col]
        chroms = map_df['CHROM'].astype(str).to_numpy()
        if use_genetic_map:
            if 'CM' not in map_df.columns:
                raise ValueError("Map has no CM column for genetic-distance windows")
            coords = map_df['CM'].to_numpy(dtype=np.float64)
            width = size / 1000.0
        else:
            coords = map_df['POS'].to_numpy(dtype=np.float64)
            width = size * 1000.0
    else:
        chroms = np.full(m, '1')
        coords = np.arange(m, dtype=np.float64)
        width = float(size)

    start = time.time()
    all_rows, all_cols, all_vals = [], [], []
    diag = np.ones(m)
    for chrom, idx in _group_markers_by_chrom(chroms).items():
        order = np.argsort(coords[idx], kind='stable')
        idx = idx[order]
        Z = np.asfortranarray(geno.standardized_columns(ind_col[idx], ind_row=ind_row))
        ends = window_ends(coords[idx], width)
        rows, cols, vals = _windowed_correlations(Z, ends, r_min)
        all_rows.append(idx[rows])
        all_cols.append(idx[cols])
        all_vals.append(vals)
        if not fill_diag:
            diag[idx] = (np.abs(Z).sum(axis=0) > 0).astype(np.float64)
        if verbose:
            print(f"   LD chromosome {chrom}: {len(idx)} SNPs, {len(vals)} correlated pairs")

    rows = np.concatenate(all_rows) if all_rows else np.zeros(0, dtype=np.int64)
    cols = np.concatenate(all_cols) if all_cols else np.zeros(0, dtype=np.int64)
    vals = np.concatenate(all_vals) if all_vals else np.zeros(0)
    diag_idx = np.arange(m)
    coo = sparse.coo_matrix(
        (np.concatenate([vals, vals, diag]),
         (np.concatenate([rows, cols, diag_idx]), np.concatenate([cols, rows, diag_idx]))),
        shape=(m, m),
    )
    corr = CorrelationMatrix(coo.tocsc())
    if verbose:
        print(f"LD matrix: {m} SNPs, {corr.nnz} non-zero entries ({time.time() - start:.2f}s)")
    return corr


def ld_scores(corr: CorrelationMatrix) -> np.ndarray:
    """LD scores (sum of r^2 over the window, the SNP itself included)."""
    return corr.ld_scores()


def ld_summary(corr: CorrelationMatrix) -> pd.DataFrame:
    """Per-SNP number of LD partners and LD score."""
    mat = corr.to_sparse()
    return pd.DataFrame({
        'n_partners': np.diff(mat.indptr) - 1,
        'ld_score': corr.ld_scores(),
    })
