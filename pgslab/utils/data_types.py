"""
Core data structures for pgslab
"""

import numpy as np
import pandas as pd
from scipy import sparse
from typing import Optional, Union, Tuple, Dict, Any, List
from pathlib import Path

MISSING = -9


class GenotypeMap:
    """SNP map information

    Expected columns: [SNP, CHROM, POS] plus optional REF, ALT (PLINK A2/A1)
    and CM (genetic position in centimorgans).
    """

    def __init__(self, data: Union[pd.DataFrame, str, Path], metadata: Optional[Dict[str, Any]] = None):
        if isinstance(data, (str, Path)):
            self.data = pd.read_csv(data)
        elif isinstance(data, pd.DataFrame):
            self.data = data.copy()
        else:
            raise ValueError("Data must be DataFrame or file path")

        self.metadata: Dict[str, Any] = dict(metadata) if metadata else {}

        # Validate required columns
        required_cols = ['SNP', 'CHROM', 'POS']
        for col in required_cols:
            if col not in self.data.columns:
                raise ValueError(f"Missing required column: {col}")
        self.data = self.data.reset_index(drop=True)

    @property
    def snp_ids(self) -> pd.Series:
        """SNP identifiers"""
        return self.data['SNP']

    @property
    def chromosomes(self) -> pd.Series:
        """Chromosome labels"""
        return self.data['CHROM']

    @property
    def positions(self) -> pd.Series:
        """Physical positions (bp)"""
        return self.data['POS']

    @property
    def genetic_positions(self) -> Optional[pd.Series]:
        """Genetic positions (cM), when the map carries them"""
        if 'CM' not in self.data.columns:
            return None
        return self.data['CM']

    @property
    def n_markers(self) -> int:
        """Number of markers"""
        return len(self.data)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to pandas DataFrame"""
        return self.data.copy()

    def subset(self, indices: Union[np.ndarray, List[int]]) -> "GenotypeMap":
        """Return a GenotypeMap restricted to the given marker indices."""
        indices = np.asarray(indices, dtype=int)
        return GenotypeMap(self.data.iloc[indices].reset_index(drop=True), metadata=self.metadata)

    def with_metadata(self, **metadata: Any) -> "GenotypeMap":
        """Return a new GenotypeMap with merged metadata dictionary."""
        merged = dict(self.metadata)
        merged.update(metadata)
        return GenotypeMap(self.data.copy(), metadata=merged)


class GenotypeMatrix:
    """Genotype dosage matrix (individuals x markers) with missing-data handling

    Dosages count copies of the ALT allele (PLINK A1) and missing calls are
    coded -9. Major alleles are pre-computed once so that imputed batches can
    be produced cheaply.
    """

    def __init__(self, data: Union[np.ndarray, str, Path],
                 shape: Optional[Tuple[int, int]] = None,
                 dtype: np.dtype = np.int8,
                 precompute_alleles: bool = True,
                 is_imputed: bool = False):

        if isinstance(data, np.memmap):
            self._data = data
            self._is_memmap = True
        elif isinstance(data, np.ndarray):
            self._data = data
            self._is_memmap = False
        elif isinstance(data, (str, Path)):
            if shape is None:
                raise ValueError("Shape required for memory-mapped files")
            self._data = np.memmap(data, dtype=dtype, mode='r', shape=shape)
            self._is_memmap = True
        else:
            raise ValueError("Data must be array or file path")

        if self._data.ndim != 2:
            raise ValueError("Genotype matrix must be 2D (individuals x markers)")

        self._is_imputed = is_imputed
        self._major_alleles = None
        if precompute_alleles and not self._is_imputed:
            self._precompute_major_alleles()

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape (n_individuals, n_markers)"""
        return self._data.shape

    @property
    def n_individuals(self) -> int:
        return self.shape[0]

    @property
    def n_markers(self) -> int:
        return self.shape[1]

    @property
    def is_imputed(self) -> bool:
        """Whether missing values (-9) have been pre-imputed."""
        return self._is_imputed

    @property
    def major_alleles(self) -> Optional[np.ndarray]:
        """Pre-computed major alleles for all markers"""
        return self._major_alleles

    def __getitem__(self, key):
        return self._data[key]

    def get_batch(self, marker_start: int, marker_end: int) -> np.ndarray:
        """Get batch of markers for efficient processing"""
        return self._data[:, marker_start:marker_end]

    def subset_individuals(self, indices: Union[np.ndarray, list]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix restricted to a subset of individuals."""
        indexer = np.asarray(indices)
        if indexer.dtype != bool:
            indexer = indexer.astype(int)
        return GenotypeMatrix(
            np.ascontiguousarray(self._data[indexer, :]),
            precompute_alleles=not self._is_imputed,
            is_imputed=self._is_imputed,
        )

    def subset_markers(self, indices: Union[np.ndarray, list]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix restricted to a subset of markers."""
        indexer = np.asarray(indices)
        if indexer.dtype != bool:
            indexer = indexer.astype(int)
        return GenotypeMatrix(
            np.ascontiguousarray(self._data[:, indexer]),
            precompute_alleles=not self._is_imputed,
            is_imputed=self._is_imputed,
        )

    def calculate_allele_frequencies(self, batch_size: int = 1000,
                                     ind_row: Optional[np.ndarray] = None) -> np.ndarray:
        """Frequency of the ALT allele for each marker, ignoring missing calls.

        Args:
            batch_size: Number of markers to process per batch.
            ind_row: Optional subset of individuals.
        """
        n_markers = self.n_markers
        frequencies = np.zeros(n_markers)
        for start in range(0, n_markers, batch_size):
            end = min(start + batch_size, n_markers)
            batch = self.get_batch(start, end)
            if ind_row is not None:
                batch = batch[ind_row]
            batch = batch.astype(np.float64)
            batch[batch == MISSING] = np.nan
            with np.errstate(invalid='ignore'):
                means = np.nanmean(batch, axis=0) if batch.shape[0] else np.full(end - start, np.nan)
            frequencies[start:end] = np.nan_to_num(means, nan=0.0) / 2.0
        return frequencies

    def calculate_maf(self, batch_size: int = 1000,
                      ind_row: Optional[np.ndarray] = None) -> np.ndarray:
        """Calculate minor allele frequencies."""
        frequencies = self.calculate_allele_frequencies(batch_size=batch_size, ind_row=ind_row)
        return np.minimum(frequencies, 1 - frequencies)

    def _precompute_major_alleles(self, batch_size: int = 1000):
        """Pre-compute the most frequent dosage of every marker."""
        n_markers = self.n_markers
        self._major_alleles = np.zeros(n_markers, dtype=np.int8)

        for start in range(0, n_markers, batch_size):
            end = min(start + batch_size, n_markers)
            batch = self.get_batch(start, end)
            if batch.size == 0:
                continue
            counts = np.stack([np.sum(batch == val, axis=0) for val in (0, 1, 2)], axis=0)
            # Entirely missing markers fall back to 0 (argmax of zeros)
            self._major_alleles[start:end] = np.argmax(counts, axis=0)

    def _impute(self, values: np.ndarray, fill: Optional[np.ndarray],
                fill_value: Optional[float]) -> np.ndarray:
        missing_mask = (values == MISSING) | np.isnan(values)
        if not missing_mask.any():
            return values
        if fill_value is not None:
            values[missing_mask] = fill_value
        elif fill is not None:
            values[missing_mask] = np.broadcast_to(fill, values.shape)[missing_mask]
        else:
            values[missing_mask] = 0.0
        return values

    def get_batch_imputed(self, marker_start: int, marker_end: int, *,
                          fill_value: Optional[float] = None,
                          dtype: np.dtype = np.float64) -> np.ndarray:
        """Get batch of markers with missing data imputed.

        Args:
            marker_start: Inclusive start index
            marker_end: Exclusive end index
            fill_value: Optional constant to impute missing genotypes.
                If None, the pre-computed major allele is used.
            dtype: Output dtype for the returned array (default float64).
        """
        batch = self._data[:, marker_start:marker_end].astype(dtype, copy=True)
        if self._is_imputed or batch.size == 0:
            return batch
        fill = None
        if self._major_alleles is not None:
            fill = self._major_alleles[marker_start:marker_end].astype(dtype)
        return self._impute(batch, fill, fill_value)

    def get_columns_imputed(self, indices: Union[np.ndarray, list], *,
                            fill_value: Optional[float] = None,
                            dtype: np.dtype = np.float64,
                            ind_row: Optional[np.ndarray] = None) -> np.ndarray:
        """Get arbitrary marker columns with missing data imputed.

        Returns an array of shape (n_individuals, len(indices)), or
        (len(ind_row), len(indices)) when a row subset is given.
        """
        indices = np.asarray(indices, dtype=int)
        if ind_row is None:
            batch = self._data[:, indices].astype(dtype, copy=True)
        else:
            batch = self._data[np.ix_(np.asarray(ind_row, dtype=int), indices)].astype(dtype, copy=True)
        if self._is_imputed or batch.size == 0:
            return batch
        fill = None
        if self._major_alleles is not None:
            fill = self._major_alleles[indices].astype(dtype)
        return self._impute(batch, fill, fill_value)

    def standardized_columns(self, indices: Union[np.ndarray, list],
                             ind_row: Optional[np.ndarray] = None) -> np.ndarray:
        """Imputed columns centered to mean 0 and scaled to unit variance.

        Monomorphic columns are returned as zeros so that they correlate with
        nothing.
        """
        X = self.get_columns_imputed(indices, ind_row=ind_row)
        mean = X.mean(axis=0)
        sd = X.std(axis=0)
        X -= mean
        nonzero = sd > 0
        X[:, nonzero] /= sd[nonzero]
        X[:, ~nonzero] = 0.0
        return X


class AssociationResults:
    """GWAS association results structure

    Standard format: [Effect, SE, P-value] for each marker, with optional
    z-scores, effective sample sizes and Newton iteration counts.
    """

    def __init__(self, effects: np.ndarray, se: np.ndarray, pvalues: np.ndarray,
                 snp_map: Optional[GenotypeMap] = None,
                 zscores: Optional[np.ndarray] = None,
                 n_eff: Optional[Union[float, np.ndarray]] = None,
                 niter: Optional[np.ndarray] = None):

        if not (len(effects) == len(se) == len(pvalues)):
            raise ValueError("All result arrays must have same length")
        if zscores is not None and len(zscores) != len(effects):
            raise ValueError("All result arrays must have same length")

        self.effects = np.asarray(effects, dtype=np.float64)
        self.se = np.asarray(se, dtype=np.float64)
        self.pvalues = np.asarray(pvalues, dtype=np.float64)
        self.snp_map = snp_map
        self.zscores = None if zscores is None else np.asarray(zscores, dtype=np.float64)
        self.n_eff = n_eff
        self.niter = niter

    @property
    def n_markers(self) -> int:
        return len(self.effects)

    @property
    def log10_pvalues(self) -> np.ndarray:
        """-log10 p-values, computed from z-scores when available to avoid underflow."""
        from .stats import log10_pvalue_from_z

        if self.zscores is not None:
            z = self.zscores
        else:
            with np.errstate(divide='ignore', invalid='ignore'):
                z = self.effects / self.se
        lp = log10_pvalue_from_z(z)
        lp[~np.isfinite(lp)] = 0.0
        return lp

    def n_eff_array(self) -> np.ndarray:
        """Per-marker effective sample size."""
        if self.n_eff is None:
            raise ValueError("Effective sample size was not recorded for these results")
        return np.broadcast_to(np.asarray(self.n_eff, dtype=np.float64), (self.n_markers,)).copy()

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to pandas DataFrame"""
        df = pd.DataFrame({
            'Effect': self.effects,
            'SE': self.se,
            'P-value': self.pvalues
        })
        if self.zscores is not None:
            df['Z'] = self.zscores
        if self.n_eff is not None:
            df['N'] = self.n_eff_array()

        if self.snp_map is not None:
            df.insert(0, 'Pos', self.snp_map.positions.values)
            df.insert(0, 'Chr', self.snp_map.chromosomes.values)
            df.insert(0, 'SNP', self.snp_map.snp_ids.values)
        return df

    def to_numpy(self) -> np.ndarray:
        """Convert to numpy array [Effect, SE, P-value]"""
        return np.column_stack([self.effects, self.se, self.pvalues])


class CorrelationMatrix:
    """Sparse SNP-by-SNP correlation (LD) matrix

    Stored as a symmetric scipy CSC matrix with a unit diagonal. Pairs outside
    the LD window, or on different chromosomes, are structural zeros.
    """

    def __init__(self, data: Union[sparse.spmatrix, np.ndarray]):
        if sparse.issparse(data):
            matrix = sparse.csc_matrix(data, dtype=np.float64)
        elif isinstance(data, np.ndarray):
            matrix = sparse.csc_matrix(data.astype(np.float64))
        else:
            raise ValueError("Data must be a scipy sparse matrix or numpy array")

        if matrix.shape[0] != matrix.shape[1]:
            raise ValueError("Correlation matrix must be square")
        matrix.sort_indices()
        self._data = matrix

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape

    @property
    def n_markers(self) -> int:
        return self._data.shape[0]

    @property
    def nnz(self) -> int:
        return self._data.nnz

    def to_sparse(self) -> sparse.csc_matrix:
        """Underlying CSC matrix (not copied)."""
        return self._data

    def to_dense(self) -> np.ndarray:
        return self._data.toarray()

    def ld_scores(self) -> np.ndarray:
        """LD score of each SNP: sum of squared correlations with all SNPs (itself included)."""
        return np.asarray(self._data.multiply(self._data).sum(axis=0)).ravel()

    def subset(self, indices: Union[np.ndarray, List[int]]) -> "CorrelationMatrix":
        indices = np.asarray(indices, dtype=int)
        return CorrelationMatrix(self._data[indices][:, indices])

    def is_symmetric(self, atol: float = 1e-10) -> bool:
        diff = self._data - self._data.T
        return diff.nnz == 0 or np.max(np.abs(diff.data)) <= atol


class PGSModel:
    """Polygenic score model: one weight per marker (zero when excluded)."""

    def __init__(self, name: str, weights: np.ndarray, params: Optional[Dict[str, Any]] = None):
        weights = np.asarray(weights, dtype=np.float64)
        if weights.ndim != 1:
            raise ValueError("Model weights must be a 1D vector over markers")
        self.name = name
        self.weights = weights
        self.params: Dict[str, Any] = dict(params) if params else {}

    @property
    def n_markers(self) -> int:
        return len(self.weights)

    @property
    def n_nonzero(self) -> int:
        return int(np.count_nonzero(self.weights))

    def to_dataframe(self, snp_map: Optional[GenotypeMap] = None, drop_zero: bool = True) -> pd.DataFrame:
        df = pd.DataFrame({'Weight': self.weights})
        if snp_map is not None:
            if snp_map.n_markers != self.n_markers:
                raise ValueError("Map and model weights have different numbers of markers")
            df.insert(0, 'SNP', snp_map.snp_ids.values)
            if 'ALT' in snp_map.data.columns:
                df.insert(1, 'A1', snp_map.data['ALT'].values)
        if drop_zero:
            df = df[df['Weight'] != 0].reset_index(drop=True)
        return df

    def __repr__(self) -> str:
        return f"PGSModel(name='{self.name}', n_nonzero={self.n_nonzero})"
