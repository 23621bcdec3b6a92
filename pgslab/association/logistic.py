"""
Logistic-regression GWAS scan for case/control traits.

Each SNP j is tested in the model logit(P(y = 1)) = X b + g_j beta_j with
X = [1 | CV]. Instead of fitting SNPs one at a time, a block of SNPs is fit
simultaneously: every Newton-Raphson step builds the (p+1) x (p+1) Hessians
of all SNPs in the block with einsum and solves them in one batched call.
All fits start from the covariates-only (null) model, which usually needs
only a few steps to converge.
"""

import warnings
from typing import Optional, Tuple, Union

import numpy as np
from scipy import special

from ..utils.data_types import GenotypeMatrix, AssociationResults
from ..utils.stats import effective_sample_size, pvalue_from_z
from .glm import _load_genotype_batch


def _fit_null_model(y: np.ndarray, X: np.ndarray, max_iter: int, tol: float) -> np.ndarray:
    """Covariates-only logistic regression via Newton-Raphson."""
    mean_y = y.mean()
    b = np.zeros(X.shape[1])
    b[0] = np.log(mean_y / (1.0 - mean_y))
    for _ in range(max_iter):
        mu = special.expit(X @ b)
        w = mu * (1.0 - mu)
        H = X.T @ (X * w[:, np.newaxis])
        step = np.linalg.solve(H, X.T @ (y - mu))
        b += step
        if np.max(np.abs(step)) < tol:
            break
    return b


def _batched_hessian(X: np.ndarray, G: np.ndarray, w: np.ndarray) -> np.ndarray:
    """Hessians of [X | g_j] for all SNPs j in the block: shape (b, p+1, p+1)."""
    p = X.shape[1]
    b = G.shape[1]
    H = np.empty((b, p + 1, p + 1))
    H[:, :p, :p] = np.einsum('ik,ib,il->bkl', X, w, X, optimize=True)
    wg = w * G
    H_cg = X.T @ wg
    H[:, :p, p] = H_cg.T
    H[:, p, :p] = H_cg.T
    H[:, p, p] = np.sum(wg * G, axis=0)
    return H


def _solve_each(H: np.ndarray, rhs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Solve H x = rhs per SNP; singular systems are flagged instead of raising."""
    try:
        return np.linalg.solve(H, rhs[..., np.newaxis])[..., 0], np.zeros(len(H), dtype=bool)
    except np.linalg.LinAlgError:
        out = np.zeros_like(rhs)
        singular = np.zeros(len(H), dtype=bool)
        for j in range(len(H)):
            try:
                out[j] = np.linalg.solve(H[j], rhs[j])
            except np.linalg.LinAlgError:
                singular[j] = True
        return out, singular


def _fit_block(y: np.ndarray, X: np.ndarray, G: np.ndarray, b0: np.ndarray,
               max_iter: int, tol: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Newton-Raphson for a block of SNPs.

    Returns:
        (beta, se, niter) for the SNP coefficient; failed fits have NaN
        beta/se and niter = max_iter + 1.
    """
    n, p = X.shape
    n_snp = G.shape[1]
    coefs = np.zeros((n_snp, p + 1))
    coefs[:, :p] = b0
    niter = np.zeros(n_snp, dtype=np.int32)
    active = np.ones(n_snp, dtype=bool)
    failed = np.zeros(n_snp, dtype=bool)

    # Monomorphic SNPs carry no information
    failed |= G.std(axis=0) == 0
    active &= ~failed

    for it in range(1, max_iter + 1):
        idx = np.where(active)[0]
        if idx.size == 0:
            break
        Ga = G[:, idx]
        ca = coefs[idx]
        with np.errstate(over='ignore', invalid='ignore'):
            eta = X @ ca[:, :p].T + Ga * ca[:, p]
            mu = special.expit(eta)
            w = mu * (1.0 - mu)
            resid = y[:, np.newaxis] - mu
            score = np.empty((idx.size, p + 1))
            score[:, :p] = (X.T @ resid).T
            score[:, p] = np.sum(Ga * resid, axis=0)
            H = _batched_hessian(X, Ga, w)

        step, singular = _solve_each(H, score)
        bad = singular | ~np.all(np.isfinite(step), axis=1)
        step[bad] = 0.0
        coefs[idx] = ca + step
        niter[idx] = it

        done = np.max(np.abs(step), axis=1) < tol
        failed[idx[bad]] = True
        active[idx[done | bad]] = False

    failed |= active  # still not converged after max_iter
    niter[active] = max_iter + 1

    # Standard errors from the inverse Hessian at the estimates
    beta = coefs[:, p].copy()
    se = np.full(n_snp, np.nan)
    ok = np.where(~failed)[0]
    if ok.size:
        with np.errstate(over='ignore', invalid='ignore'):
            eta = X @ coefs[ok, :p].T + G[:, ok] * coefs[ok, p]
            mu = special.expit(eta)
            H = _batched_hessian(X, G[:, ok], mu * (1.0 - mu))
        unit = np.zeros((ok.size, p + 1))
        unit[:, p] = 1.0
        col, singular = _solve_each(H, unit)
        with np.errstate(invalid='ignore'):
            se[ok] = np.sqrt(col[:, p])
        se[ok[singular]] = np.nan
        failed[ok[singular | ~np.isfinite(se[ok])]] = True

    beta[failed] = np.nan
    se[failed] = np.nan
    return beta, se, niter


def PGS_LogisticGWAS(y01: np.ndarray,
                     geno: Union[GenotypeMatrix, np.ndarray],
                     CV: Optional[np.ndarray] = None,
                     ind_train: Optional[np.ndarray] = None,
                     maxLine: int = 1000,
                     max_iter: int = 20,
                     tol: float = 1e-8,
                     verbose: bool = True) -> AssociationResults:
    """Per-SNP logistic regression of a 0/1 trait.

    Args:
        y01: Case/control status (0/1) of the individuals in ``ind_train``
            (all individuals when ``ind_train`` is None)
        geno: GenotypeMatrix or numpy array (n x m)
        CV: Covariates aligned with ``y01`` (optional)
        ind_train: Rows of ``geno`` to use
        maxLine: Markers fitted simultaneously
        max_iter: Maximum Newton-Raphson iterations per SNP
        tol: Convergence threshold on the largest coefficient update
        verbose: Print brief progress

    Returns:
        AssociationResults with per-allele log-odds ratios, Wald SEs, z-scores,
        two-sided p-values, iteration counts and the case/control effective
        sample size. SNPs that failed to fit have NaN effect/SE and p = 1.
    """
    y = np.asarray(y01, dtype=np.float64).ravel()
    if not np.all(np.isin(y, (0.0, 1.0))):
        raise ValueError("y01 must contain only 0 and 1")
    n_case = int(y.sum())
    n_control = len(y) - n_case
    if n_case == 0 or n_control == 0:
        raise ValueError("y01 must contain both cases and controls")

    if isinstance(geno, GenotypeMatrix):
        n_all, m = geno.n_individuals, geno.n_markers
    else:
        n_all, m = np.asarray(geno).shape
    if ind_train is not None:
        ind_train = np.asarray(ind_train, dtype=int)
    n = n_all if ind_train is None else len(ind_train)
    if len(y) != n:
        raise ValueError("y01 length must match the number of individuals used")

    if CV is not None:
        CV = np.asarray(CV, dtype=np.float64)
        if CV.ndim == 1:
            CV = CV[:, np.newaxis]
        if CV.shape[0] != n:
            raise ValueError("Covariate matrix must have same number of rows as y01")
        X = np.column_stack([np.ones(n), CV])
    else:
        X = np.ones((n, 1))

    b0 = _fit_null_model(y, X, max_iter=max_iter, tol=tol)

    effects = np.full(m, np.nan)
    ses = np.full(m, np.nan)
    niter = np.zeros(m, dtype=np.int32)
    batch_size = max(1, min(maxLine, m))
    for start in range(0, m, batch_size):
        end = min(start + batch_size, m)
        G = _load_genotype_batch(geno, start, end, ind_train)
        effects[start:end], ses[start:end], niter[start:end] = _fit_block(y, X, G, b0, max_iter, tol)

    with np.errstate(divide='ignore', invalid='ignore'):
        z = effects / ses
    failed = ~np.isfinite(z)
    z[failed] = 0.0
    pvals = pvalue_from_z(z)
    pvals[failed] = 1.0

    if failed.any():
        warnings.warn(f"{int(failed.sum())} of {m} SNPs could not be fitted (monomorphic, "
                      f"separated or not converged after {max_iter} iterations)")

    if verbose:
        print(f"Logistic GWAS complete. {m - int(failed.sum())}/{m} markers tested "
              f"({n_case} cases, {n_control} controls)")
        if (~failed).any():
            print(f"Minimum p-value: {np.min(pvals[~failed]):.2e}")

    return AssociationResults(effects, ses, pvals, zscores=z,
                              n_eff=effective_sample_size(n_case, n_control),
                              niter=niter)
