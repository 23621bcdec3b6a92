"""LD clumping of SNPs, single run and over a grid of (r2, window) parameters"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numba
import numpy as np
import pandas as pd

from ..matrix.ld import _group_markers_by_chrom
from ..utils.data_types import GenotypeMap, GenotypeMatrix


@numba.jit(nopython=True, cache=True)
def _clump_kernel(Z, order, lo, hi, thr_r2):
    """Greedy clumping over standardized genotypes of one chromosome.

    SNPs are visited in ``order``; SNP j is kept unless its squared
    correlation with an already-kept SNP in [lo[j], hi[j]) exceeds thr_r2.
    """
    n, m = Z.shape
    keep = np.zeros(m, dtype=np.bool_)
    for t in range(order.shape[0]):
        j = order[t]
        ok = True
        for k in range(lo[j], hi[j]):
            if keep[k]:
                s = 0.0
                for i in range(n):
                    s += Z[i, j] * Z[i, k]
                r = s / n
                if r * r > thr_r2:
                    ok = False
                    break
        keep[j] = ok
    return keep


@dataclass
class ClumpingGridEntry:
    """Markers kept by one clumping run of the grid."""

    thr_r2: float
    size: float
    base_size: float
    keep: np.ndarray

    @property
    def n_kept(self) -> int:
        return len(self.keep)


@dataclass
class ClumpingGrid:
    """Clumping results for every (thr_r2, base_size) pair."""

    entries: List[ClumpingGridEntry] = field(default_factory=list)
    n_markers: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'thr_r2': [e.thr_r2 for e in self.entries],
            'base_size': [e.base_size for e in self.entries],
            'size': [e.size for e in self.entries],
            'n_kept': [e.n_kept for e in self.entries],
        })


def _chromosome_layout(geno_map: Optional[GenotypeMap], n_markers: int,
                       ) -> Tuple[np.ndarray, np.ndarray, float]:
    """Chromosome labels, coordinates, and the coordinate units per kb."""
    if geno_map is None:
        return np.full(n_markers, '1'), np.arange(n_markers, dtype=np.float64), 0.0
    if geno_map.n_markers != n_markers:
        raise ValueError("Map and genotype matrix have different numbers of markers")
    chroms = geno_map.chromosomes.astype(str).to_numpy()
    coords = geno_map.positions.to_numpy(dtype=np.float64)
    return chroms, coords, 1000.0


def _prepare_chromosome(geno: GenotypeMatrix, idx: np.ndarray, coords: np.ndarray,
                        ind_row: Optional[np.ndarray]) -> Tuple[np.ndarray, np.ndarray]:
    """Sort one chromosome's markers by coordinate and standardize them."""
    idx = idx[np.argsort(coords[idx], kind='stable')]
    Z = np.asfortranarray(geno.standardized_columns(idx, ind_row=ind_row))
    return idx, Z


def _clump_chromosome(Z: np.ndarray, coords: np.ndarray, S: np.ndarray,
                      candidate: np.ndarray, width: float, thr_r2: float) -> np.ndarray:
    """Boolean keep-mask over one coordinate-sorted chromosome."""
    lo = np.searchsorted(coords, coords - width, side='left').astype(np.int64)
    hi = np.searchsorted(coords, coords + width, side='right').astype(np.int64)
    positions = np.where(candidate)[0]
    # Decreasing S, ties broken by marker position
    order = positions[np.lexsort((positions, -S[positions]))].astype(np.int64)
    return _clump_kernel(Z, order, lo, hi, thr_r2)


def _validate_priority(S: np.ndarray, n_markers: int) -> np.ndarray:
    S = np.asarray(S, dtype=np.float64)
    if S.shape != (n_markers,):
        raise ValueError("S must have one value per marker")
    return np.where(np.isfinite(S), S, -np.inf)


def PGS_Clumping(geno: Union[GenotypeMatrix, np.ndarray],
                 geno_map: Optional[GenotypeMap] = None,
                 S: Optional[np.ndarray] = None,
                 thr_r2: float = 0.2,
                 size: Optional[float] = None,
                 exclude: Optional[Sequence[int]] = None,
                 ind_row: Optional[np.ndarray] = None,
                 verbose: bool = False) -> np.ndarray:
    """Clump SNPs: keep a set of weakly correlated SNPs favouring high priority.

    Args:
        geno: Genotype matrix (individuals x markers)
        geno_map: Map with CHROM and POS; without it all markers form one
            chromosome and ``size`` counts SNPs
        S: Priority per marker (e.g. -log10 p); defaults to MAF
        thr_r2: Squared-correlation threshold in (0, 1]
        size: Window radius in kb (default 100 / thr_r2)
        exclude: Markers that are never kept
        ind_row: Individuals used to compute correlations
        verbose: Print the number of kept SNPs

    Returns:
        Sorted array of kept marker indices.
    """
    if not (0.0 < thr_r2 <= 1.0):
        raise ValueError("thr_r2 must be in (0, 1]")
    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))
    m = geno.n_markers
    if size is None:
        size = 100.0 / thr_r2
    if size <= 0:
        raise ValueError("size must be positive")

    if S is None:
        S = geno.calculate_maf(ind_row=ind_row)
    S = _validate_priority(S, m)

    candidate = np.ones(m, dtype=bool)
    if exclude is not None:
        candidate[np.asarray(exclude, dtype=int)] = False

    chroms, coords, per_kb = _chromosome_layout(geno_map, m)
    width = size * per_kb if per_kb else float(size)

    kept: List[np.ndarray] = []
    for idx in _group_markers_by_chrom(chroms).values():
        idx, Z = _prepare_chromosome(geno, idx, coords, ind_row)
        mask = _clump_chromosome(Z, coords[idx], S[idx], candidate[idx], width, thr_r2)
        kept.append(idx[mask])

    keep = np.sort(np.concatenate(kept)) if kept else np.zeros(0, dtype=int)
    if verbose:
        print(f"Clumping (r2 > {thr_r2}, {size:g} kb): kept {len(keep)} of {m} SNPs")
    return keep


def PGS_GridClumping(geno: Union[GenotypeMatrix, np.ndarray],
                     geno_map: Optional[GenotypeMap],
                     lpS: np.ndarray,
                     grid_thr_r2: Sequence[float] = (0.01, 0.05, 0.1, 0.2, 0.5, 0.8, 0.95),
                     grid_base_size: Sequence[float] = (50, 100, 200, 500),
                     exclude: Optional[Sequence[int]] = None,
                     ind_row: Optional[np.ndarray] = None,
                     verbose: bool = True) -> ClumpingGrid:
    """Clump once per (thr_r2, base_size) pair with window base_size / thr_r2 kb.

    Standardized genotypes of each chromosome are computed once and shared by
    all grid points.
    """
    if not isinstance(geno, GenotypeMatrix):
        geno = GenotypeMatrix(np.asarray(geno))
    m = geno.n_markers
    for thr in grid_thr_r2:
        if not (0.0 < thr <= 1.0):
            raise ValueError("All grid_thr_r2 values must be in (0, 1]")
    S = _validate_priority(lpS, m)

    candidate = np.ones(m, dtype=bool)
    if exclude is not None:
        candidate[np.asarray(exclude, dtype=int)] = False

    chroms, coords, per_kb = _chromosome_layout(geno_map, m)
    params = [(thr, base) for thr in grid_thr_r2 for base in grid_base_size]
    kept: Dict[Tuple[float, float], List[np.ndarray]] = {key: [] for key in params}

    start = time.time()
    for idx in _group_markers_by_chrom(chroms).values():
        idx, Z = _prepare_chromosome(geno, idx, coords, ind_row)
        for thr, base in params:
            size = base / thr
            width = size * per_kb if per_kb else float(size)
            mask = _clump_chromosome(Z, coords[idx], S[idx], candidate[idx], width, thr)
            kept[(thr, base)].append(idx[mask])

    grid = ClumpingGrid(n_markers=m)
    for thr, base in params:
        parts = kept[(thr, base)]
        keep = np.sort(np.concatenate(parts)) if parts else np.zeros(0, dtype=int)
        grid.entries.append(ClumpingGridEntry(thr_r2=float(thr), size=float(base / thr),
                                              base_size=float(base), keep=keep))
    if verbose:
        print(f"Grid clumping: {len(params)} parameter sets in {time.time() - start:.2f}s")
    return grid
