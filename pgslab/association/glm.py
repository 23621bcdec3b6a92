"""
General Linear Model (GLM) scan for quantitative traits.

Algorithm (Frisch-Waugh-Lovell with a precomputed covariate inverse):
- Build covariate matrix X = [1 | CV] and its inverse cross-product.
- Process SNPs in batches G (missing dosages imputed):
      B21 = G^T X (X^T X)^-1,  B22 = G^T G - B21 X^T G
      beta = (G^T y - G^T X beta_cov) / B22
      SSE  = y^T y - (beta_cov_new^T X^T y + beta G^T y)
      se   = sqrt(SSE / df / B22),  df = n - p - 1
      p    = 2 * t.sf(|beta / se|, df)
"""

from typing import Optional, Union
from concurrent.futures import ThreadPoolExecutor
import numpy as np
from scipy import stats

from ..utils.data_types import GenotypeMatrix, AssociationResults


def _as_trait_vector(phe: np.ndarray) -> np.ndarray:
    phe = np.asarray(phe)
    if phe.ndim == 2:
        if phe.shape[1] != 2:
            raise ValueError("Phenotype must be a vector or a 2-column array [ID, trait]")
        phe = phe[:, 1]
    return phe.astype(np.float64)


def _load_genotype_batch(geno: Union[GenotypeMatrix, np.ndarray], start: int, end: int,
                         ind_row: Optional[np.ndarray]) -> np.ndarray:
    """Load an imputed genotype batch. Thread-safe for prefetching."""
    cols = np.arange(start, end)
    if isinstance(geno, GenotypeMatrix):
        return geno.get_columns_imputed(cols, ind_row=ind_row)
    G = np.asarray(geno)[:, start:end] if ind_row is None else np.asarray(geno)[np.ix_(ind_row, cols)]
    G = G.astype(np.float64)
    missing = (G == -9) | np.isnan(G)
    if missing.any():
        col_means = np.nanmean(np.where(missing, np.nan, G), axis=0)
        G[missing] = np.broadcast_to(np.nan_to_num(col_means), G.shape)[missing]
    return G


def PGS_GLM(phe: np.ndarray,
            geno: Union[GenotypeMatrix, np.ndarray],
            CV: Optional[np.ndarray] = None,
            ind_train: Optional[np.ndarray] = None,
            maxLine: int = 5000,
            verbose: bool = True) -> AssociationResults:
    """Linear-regression GWAS scan.

    Args:
        phe: Trait vector (or n x 2 array [ID, trait]) for the individuals in
            ``ind_train`` (all individuals when ``ind_train`` is None)
        geno: GenotypeMatrix or numpy array (n x m)
        CV: Covariates aligned with ``phe`` (optional)
        ind_train: Rows of ``geno`` to use
        maxLine: Markers per batch
        verbose: Print brief progress

    Returns:
        AssociationResults with effects per allele copy, SEs, t-test p-values
        and z-scores (signed normal quantiles of the p-values).
    """
    y = _as_trait_vector(phe)
    if isinstance(geno, GenotypeMatrix):
        n_all, m = geno.n_individuals, geno.n_markers
    else:
        n_all, m = np.asarray(geno).shape
    if ind_train is not None:
        ind_train = np.asarray(ind_train, dtype=int)
    n = n_all if ind_train is None else len(ind_train)
    if len(y) != n:
        raise ValueError("Phenotype length must match the number of individuals used")
    if not np.all(np.isfinite(y)):
        raise ValueError("Phenotype contains missing or non-finite values")

    if CV is not None:
        CV = np.asarray(CV, dtype=np.float64)
        if CV.ndim == 1:
            CV = CV[:, np.newaxis]
        if CV.shape[0] != n:
            raise ValueError("Covariate matrix must have same number of rows as phenotypes")
        X = np.column_stack([np.ones(n), CV])
    else:
        X = np.ones((n, 1))

    XT = X.T
    iXX = np.linalg.pinv(XT @ X, rcond=1e-10)
    xy = XT @ y
    beta_cov = iXX @ xy
    yy = float(y @ y)
    p = X.shape[1]
    df = n - p - 1
    if df <= 0:
        raise ValueError("Degrees of freedom must be positive; check covariates")

    effects = np.zeros(m)
    ses = np.full(m, np.nan)
    pvals = np.ones(m)
    tvals = np.zeros(m)

    batch_size = max(1, min(maxLine, m))
    starts = list(range(0, m, batch_size))

    def process(G: np.ndarray, start: int, end: int) -> None:
        with np.errstate(divide='ignore', over='ignore', invalid='ignore'):
            xs = XT @ G
            sy = G.T @ y
            ss = np.sum(G * G, axis=0)
            B21 = xs.T @ iXX
            B22 = ss - np.einsum('ij,ji->i', B21, xs)
            valid = B22 > 1e-8
            invB22 = np.where(valid, 1.0 / B22, 0.0)
            beta = invB22 * (sy - xs.T @ beta_cov)
            beta_cov_new = beta_cov[np.newaxis, :] - beta[:, np.newaxis] * B21
            ve = np.maximum((yy - (beta_cov_new @ xy + beta * sy)) / df, 0.0)
            se = np.sqrt(ve * invB22)
            t = np.where(valid & (se > 0), beta / se, 0.0)
        effects[start:end] = np.where(valid, beta, 0.0)
        ses[start:end] = np.where(valid, se, np.nan)
        tvals[start:end] = t
        pvals[start:end] = np.where(valid, 2.0 * stats.t.sf(np.abs(t), df), 1.0)

    if len(starts) > 2:
        # Prefetch the next batch while the current one is processed
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(_load_genotype_batch, geno, 0, min(batch_size, m), ind_train)
            for start in starts:
                end = min(start + batch_size, m)
                G = future.result()
                if end < m:
                    future = executor.submit(_load_genotype_batch, geno, end,
                                             min(end + batch_size, m), ind_train)
                process(G, start, end)
    else:
        for start in starts:
            end = min(start + batch_size, m)
            process(_load_genotype_batch(geno, start, end, ind_train), start, end)

    # Underflowed p-values keep t itself as z
    with np.errstate(divide='ignore'):
        zscores = np.where(pvals > 0, np.sign(tvals) * stats.norm.isf(pvals / 2.0), tvals)

    if verbose:
        valid_tests = int(np.sum(np.isfinite(ses)))
        print(f"GLM complete. {valid_tests}/{m} markers tested")
        if valid_tests > 0:
            print(f"Minimum p-value: {np.nanmin(pvals):.2e}")

    return AssociationResults(effects, ses, pvals, zscores=zscores, n_eff=float(n))
