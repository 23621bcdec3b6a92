"""
LDpred2: Bayesian shrinkage of GWAS effects using an LD matrix.

Effects follow a point-normal prior: with probability p a SNP is causal and
its effect is drawn from N(0, h2 / (m p)) on the standardized scale. Given
marginal effects and an LD matrix R, the posterior is explored by a Gibbs
sampler that sweeps over SNPs, keeping R @ beta up to date incrementally from
the CSC columns of R.

All computations use the scale of the z-scores divided by sqrt(n):
    scale = sqrt(n * se^2 + beta^2),  beta_hat = beta / scale
and results are brought back to the per-allele scale by multiplying with
``scale``.

Models:
- PGS_LDpredInf: infinitesimal model, closed form
  (R + diag(m / (n h2)))^-1 beta_hat
- PGS_LDpredGrid: one Gibbs chain per (p, h2, sparse) grid point
- PGS_LDpredAuto: p and h2 are sampled along the chain
"""

import time
import warnings
from dataclasses import dataclass, field
from itertools import product
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numba
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import sparse
from scipy.sparse.linalg import spsolve
from scipy.stats import median_abs_deviation
from tqdm import tqdm

from ..utils.data_types import AssociationResults, CorrelationMatrix

BETA_COLUMNS = ('beta', 'beta_se', 'n_eff')
P_MIN = 1e-5


# ----------------------------------------------------------------------------
# Gibbs kernels
# ----------------------------------------------------------------------------

@numba.jit(nopython=True, cache=True)
def _update_dotprods(dotprods, indptr, indices, data, j, diff, shrink_corr):
    for idx in range(indptr[j], indptr[j + 1]):
        i = indices[idx]
        if i == j:
            dotprods[i] += data[idx] * diff
        else:
            dotprods[i] += shrink_corr * data[idx] * diff


@numba.jit(nopython=True, cache=True)
def _gibbs_grid(indptr, indices, data, diag, beta_hat, n_vec, p, h2, sparse_mode,
                burn_in, num_iter, seed):
    """One LDpred2-grid chain; returns the posterior mean effects."""
    np.random.seed(seed)
    m = beta_hat.shape[0]
    curr_beta = np.zeros(m)
    avg_beta = np.zeros(m)
    dotprods = np.zeros(m)

    h2_per_var = h2 / (m * p)
    inv_odd_p = (1.0 - p) / p

    for k in range(-burn_in, num_iter):
        for j in range(m):
            resid = beta_hat[j] - (dotprods[j] - diag[j] * curr_beta[j])
            C1 = h2_per_var * n_vec[j]
            C2 = 1.0 / (1.0 + 1.0 / C1)
            C3 = C2 / n_vec[j]
            C4 = C2 * resid
            postp = 1.0 / (1.0 + inv_odd_p * np.sqrt(1.0 + C1) * np.exp(-C4 * C4 / C3 / 2.0))

            if sparse_mode and postp < p:
                samp = 0.0
                post_mean = 0.0
            else:
                post_mean = C4 * postp
                if postp > np.random.random():
                    samp = np.random.normal(C4, np.sqrt(C3))
                else:
                    samp = 0.0

            if k >= 0:
                avg_beta[j] += post_mean

            diff = samp - curr_beta[j]
            if diff != 0.0:
                curr_beta[j] = samp
                _update_dotprods(dotprods, indptr, indices, data, j, diff, 1.0)

    return avg_beta / num_iter


@numba.jit(nopython=True, cache=True)
def _gibbs_auto(indptr, indices, data, diag, beta_hat, n_vec, p_init, h2_init,
                burn_in, num_iter, report_step, sparse_mode, allow_jump_sign,
                shrink_corr, seed):
    """One LDpred2-auto chain, sampling p and h2 after every sweep."""
    np.random.seed(seed)
    m = beta_hat.shape[0]
    curr_beta = np.zeros(m)
    avg_beta = np.zeros(m)
    avg_postp = np.zeros(m)
    dotprods = np.zeros(m)
    path_p = np.empty(burn_in + num_iter)
    path_h2 = np.empty(burn_in + num_iter)
    n_report = num_iter // report_step
    sample_beta = np.zeros((m, n_report))

    p = p_init
    h2 = h2_init
    avg_p = 0.0
    avg_h2 = 0.0
    c_report = 0

    for k in range(-burn_in, num_iter):
        h2_per_var = h2 / (m * p)
        inv_odd_p = (1.0 - p) / p
        nb_causal = 0

        for j in range(m):
            resid = beta_hat[j] - (dotprods[j] - diag[j] * curr_beta[j])
            C1 = h2_per_var * n_vec[j]
            C2 = 1.0 / (1.0 + 1.0 / C1)
            C3 = C2 / n_vec[j]
            C4 = C2 * resid
            postp = 1.0 / (1.0 + inv_odd_p * np.sqrt(1.0 + C1) * np.exp(-C4 * C4 / C3 / 2.0))

            if sparse_mode and postp < p:
                samp = 0.0
                post_mean = 0.0
            else:
                post_mean = C4 * postp
                if postp > np.random.random():
                    samp = np.random.normal(C4, np.sqrt(C3))
                    nb_causal += 1
                else:
                    samp = 0.0

            if not allow_jump_sign and samp * curr_beta[j] < 0.0:
                samp = 0.0
                nb_causal -= 1

            if k >= 0:
                avg_beta[j] += post_mean
                avg_postp[j] += postp

            diff = samp - curr_beta[j]
            if diff != 0.0:
                curr_beta[j] = samp
                _update_dotprods(dotprods, indptr, indices, data, j, diff, shrink_corr)

        p = min(max(np.random.beta(1.0 + nb_causal, 1.0 + m - nb_causal), P_MIN), 1.0)
        h2 = max(np.dot(curr_beta, dotprods), 0.001)

        path_p[k + burn_in] = p
        path_h2[k + burn_in] = h2
        if k >= 0:
            avg_p += p
            avg_h2 += h2
            if (k + 1) % report_step == 0 and c_report < n_report:
                sample_beta[:, c_report] = curr_beta
                c_report += 1

    return (avg_beta / num_iter, avg_postp / num_iter, avg_p / num_iter, avg_h2 / num_iter,
            path_p, path_h2, sample_beta)


# ----------------------------------------------------------------------------
# Inputs
# ----------------------------------------------------------------------------

def _prepare_sumstats(corr: CorrelationMatrix,
                      df_beta: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Validate (beta, beta_se, n_eff) and return (beta_hat, n_eff, scale)."""
    missing = [c for c in BETA_COLUMNS if c not in df_beta]
    if missing:
        raise ValueError(f"df_beta is missing columns: {missing}")
    beta = np.asarray(df_beta['beta'], dtype=np.float64)
    beta_se = np.asarray(df_beta['beta_se'], dtype=np.float64)
    n_eff = np.asarray(df_beta['n_eff'], dtype=np.float64)
    if len(beta) != corr.n_markers:
        raise ValueError(f"df_beta has {len(beta)} rows but the LD matrix has {corr.n_markers} SNPs")
    if not (np.all(np.isfinite(beta)) and np.all(np.isfinite(beta_se)) and np.all(np.isfinite(n_eff))):
        raise ValueError("df_beta contains missing or non-finite values")
    if np.any(n_eff <= 0):
        raise ValueError("n_eff must be positive for all SNPs")
    if np.any(beta_se <= 0):
        raise ValueError("beta_se must be positive for all SNPs")

    scale = np.sqrt(n_eff * beta_se ** 2 + beta ** 2)
    return beta / scale, n_eff, scale


def df_beta_from_results(results: AssociationResults) -> pd.DataFrame:
    """Table of (beta, beta_se, n_eff) from GWAS results."""
    return pd.DataFrame({
        'beta': results.effects,
        'beta_se': results.se,
        'n_eff': results.n_eff_array(),
    })


def _csc_arrays(corr: CorrelationMatrix) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    mat = corr.to_sparse()
    return (mat.indptr.astype(np.int64), mat.indices.astype(np.int64),
            mat.data.astype(np.float64), mat.diagonal().astype(np.float64))


def _resolve_seed(seed: Optional[int]) -> int:
    if seed is None:
        seed = int(np.random.default_rng().integers(0, 2 ** 31 - 1))
    return int(seed) % (2 ** 31)


def _check_sweeps(burn_in: int, num_iter: int) -> None:
    if burn_in < 0:
        raise ValueError("burn_in must be non-negative")
    if num_iter < 1:
        raise ValueError("num_iter must be at least 1")


def seq_log(start: float, stop: float, n: int) -> np.ndarray:
    """n values evenly spaced on the log scale between start and stop."""
    if start <= 0 or stop <= 0:
        raise ValueError("seq_log bounds must be positive")
    return np.exp(np.linspace(np.log(start), np.log(stop), n))


def grid_param(p_seq: Optional[Sequence[float]] = None,
               h2_seq: Sequence[float] = (0.1,),
               sparse: Iterable[bool] = (False, True)) -> pd.DataFrame:
    """All combinations of p, h2 and sparse as a table with columns p, h2, sparse."""
    if p_seq is None:
        p_seq = seq_log(1e-5, 1.0, 21)
    rows = list(product(p_seq, h2_seq, sparse))
    return pd.DataFrame({
        'p': [float(r[0]) for r in rows],
        'h2': [float(r[1]) for r in rows],
        'sparse': [bool(r[2]) for r in rows],
    })


# ----------------------------------------------------------------------------
# LDpred2-inf
# ----------------------------------------------------------------------------

def PGS_LDpredInf(corr: CorrelationMatrix, df_beta: pd.DataFrame, h2: float) -> np.ndarray:
    """Infinitesimal-model effects.

    Args:
        corr: LD matrix of the m SNPs
        df_beta: DataFrame with columns beta, beta_se, n_eff
        h2: Heritability (> 0)

    Returns:
        Per-allele effects of length m.
    """
    if not h2 > 0:
        raise ValueError("h2 must be positive")
    beta_hat, n_eff, scale = _prepare_sumstats(corr, df_beta)
    m = corr.n_markers
    A = corr.to_sparse() + sparse.diags(m / (n_eff * h2))
    beta_inf = spsolve(sparse.csc_matrix(A), beta_hat)
    return np.asarray(beta_inf).ravel() * scale


# ----------------------------------------------------------------------------
# LDpred2-grid
# ----------------------------------------------------------------------------

def _run_grid_row(arrays, beta_hat, n_eff, p, h2, sparse_mode, burn_in, num_iter, seed):
    indptr, indices, data, diag = arrays
    return _gibbs_grid(indptr, indices, data, diag, beta_hat, n_eff, p, h2, sparse_mode,
                       burn_in, num_iter, seed)


def PGS_LDpredGrid(corr: CorrelationMatrix,
                   df_beta: pd.DataFrame,
                   grid_param: pd.DataFrame,
                   burn_in: int = 50,
                   num_iter: int = 100,
                   n_jobs: int = 1,
                   seed: Optional[int] = None,
                   verbose: bool = True) -> np.ndarray:
    """Run one Gibbs chain per row of ``grid_param``.

    Args:
        corr: LD matrix of the m SNPs
        df_beta: DataFrame with columns beta, beta_se, n_eff
        grid_param: Table with columns p, h2, sparse
        burn_in: Sweeps discarded before averaging
        num_iter: Sweeps averaged
        n_jobs: Worker processes (grid rows run in parallel)
        seed: Row i uses seed + i, so results do not depend on n_jobs
        verbose: Show progress

    Returns:
        (m, n_grid) matrix of per-allele effects.
    """
    _check_sweeps(burn_in, num_iter)
    for col in ('p', 'h2', 'sparse'):
        if col not in grid_param:
            raise ValueError(f"grid_param is missing column '{col}'")
    p_vals = grid_param['p'].to_numpy(dtype=np.float64)
    h2_vals = grid_param['h2'].to_numpy(dtype=np.float64)
    sparse_vals = grid_param['sparse'].to_numpy(dtype=bool)
    if np.any(~(p_vals > 0)) or np.any(p_vals > 1):
        raise ValueError("p must be in (0, 1]")
    if np.any(~(h2_vals > 0)):
        raise ValueError("h2 must be positive")

    beta_hat, n_eff, scale = _prepare_sumstats(corr, df_beta)
    arrays = _csc_arrays(corr)
    seed = _resolve_seed(seed)
    n_grid = len(grid_param)

    start = time.time()
    rows = tqdm(range(n_grid), desc="LDpred2-grid", disable=not verbose)
    if n_jobs > 1 and n_grid > 1:
        results = Parallel(n_jobs=min(n_jobs, n_grid), backend='loky')(
            delayed(_run_grid_row)(arrays, beta_hat, n_eff, p_vals[i], h2_vals[i],
                                   sparse_vals[i], burn_in, num_iter, seed + i)
            for i in rows
        )
    else:
        results = [
            _run_grid_row(arrays, beta_hat, n_eff, p_vals[i], h2_vals[i], sparse_vals[i],
                          burn_in, num_iter, seed + i)
            for i in rows
        ]

    beta_grid = np.column_stack(results) * scale[:, np.newaxis] if results else np.zeros((len(scale), 0))
    if verbose:
        print(f"LDpred2-grid: {n_grid} models, {burn_in + num_iter} sweeps each "
              f"({time.time() - start:.2f}s)")
    return beta_grid


# ----------------------------------------------------------------------------
# LDpred2-auto
# ----------------------------------------------------------------------------

@dataclass
class LDpredAutoChain:
    """Output of one LDpred2-auto chain (effects on the per-allele scale)."""

    beta_est: np.ndarray
    postp_est: np.ndarray
    p_est: float
    h2_est: float
    path_p_est: np.ndarray
    path_h2_est: np.ndarray
    corr_est: float
    p_init: float
    h2_init: float
    sample_beta: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)), repr=False)


def _run_auto_chain(arrays, beta_hat, n_eff, p_init, h2_init, burn_in, num_iter, report_step,
                    sparse_mode, allow_jump_sign, shrink_corr, seed):
    indptr, indices, data, diag = arrays
    return _gibbs_auto(indptr, indices, data, diag, beta_hat, n_eff, p_init, h2_init,
                       burn_in, num_iter, report_step, sparse_mode, allow_jump_sign,
                       shrink_corr, seed)


def PGS_LDpredAuto(corr: CorrelationMatrix,
                   df_beta: pd.DataFrame,
                   h2_init: float,
                   vec_p_init: Sequence[float] = (0.1,),
                   burn_in: int = 500,
                   num_iter: int = 200,
                   sparse: bool = False,
                   allow_jump_sign: bool = True,
                   shrink_corr: float = 1.0,
                   report_step: Optional[int] = None,
                   n_jobs: int = 1,
                   seed: Optional[int] = None,
                   verbose: bool = True) -> List[LDpredAutoChain]:
    """LDpred2-auto: one chain per initial value of p.

    Args:
        corr: LD matrix of the m SNPs
        df_beta: DataFrame with columns beta, beta_se, n_eff
        h2_init: Starting heritability (e.g. from LDSC)
        vec_p_init: Starting proportions of causal variants, one chain each
        burn_in: Sweeps discarded before averaging
        num_iter: Sweeps averaged
        sparse: Force effects of SNPs with posterior inclusion below p to 0
        allow_jump_sign: When False, a draw of opposite sign to the current
            effect is replaced by 0
        shrink_corr: Multiplier in (0, 1] for off-diagonal correlations
        report_step: Keep the sampled effects every ``report_step`` sweeps
            after burn-in (default: none kept)
        n_jobs: Worker processes
        seed: Chain i uses seed + i
        verbose: Show progress

    Returns:
        List of LDpredAutoChain, in the order of ``vec_p_init``.
    """
    _check_sweeps(burn_in, num_iter)
    if not h2_init > 0:
        raise ValueError("h2_init must be positive")
    p_inits = np.asarray(vec_p_init, dtype=np.float64)
    if p_inits.size == 0:
        raise ValueError("vec_p_init must contain at least one value")
    if np.any(~(p_inits > 0)) or np.any(p_inits > 1):
        raise ValueError("p_init values must be in (0, 1]")
    if not (0.0 < shrink_corr <= 1.0):
        raise ValueError("shrink_corr must be in (0, 1]")
    if report_step is None:
        report_step = num_iter + 1
    if report_step < 1:
        raise ValueError("report_step must be at least 1")

    beta_hat, n_eff, scale = _prepare_sumstats(corr, df_beta)
    arrays = _csc_arrays(corr)
    seed = _resolve_seed(seed)
    n_chains = len(p_inits)

    start = time.time()
    chains_idx = tqdm(range(n_chains), desc="LDpred2-auto", disable=not verbose)
    args = (burn_in, num_iter, report_step, bool(sparse), bool(allow_jump_sign), float(shrink_corr))
    if n_jobs > 1 and n_chains > 1:
        raw = Parallel(n_jobs=min(n_jobs, n_chains), backend='loky')(
            delayed(_run_auto_chain)(arrays, beta_hat, n_eff, p_inits[i], float(h2_init),
                                     *args, seed + i)
            for i in chains_idx
        )
    else:
        raw = [_run_auto_chain(arrays, beta_hat, n_eff, p_inits[i], float(h2_init), *args, seed + i)
               for i in chains_idx]

    mat = corr.to_sparse()
    chains = []
    for i, (beta_sc, postp, p_est, h2_est, path_p, path_h2, sample_beta) in enumerate(raw):
        pred = mat @ beta_sc
        if np.std(pred) > 0:
            corr_est = float(np.corrcoef(pred, beta_hat)[0, 1])
        else:
            corr_est = 0.0
        chains.append(LDpredAutoChain(
            beta_est=beta_sc * scale,
            postp_est=postp,
            p_est=float(p_est),
            h2_est=float(h2_est),
            path_p_est=path_p,
            path_h2_est=path_h2,
            corr_est=corr_est,
            p_init=float(p_inits[i]),
            h2_init=float(h2_init),
            sample_beta=sample_beta * scale[:, np.newaxis],
        ))

    if verbose:
        summary = ", ".join(f"p={c.p_est:.2g}/h2={c.h2_est:.3f}" for c in chains[:5])
        more = " ..." if len(chains) > 5 else ""
        print(f"LDpred2-auto: {n_chains} chains ({time.time() - start:.2f}s); {summary}{more}")
    return chains


def filter_auto_chains(chains: Sequence[LDpredAutoChain],
                       pred_ranges: Union[Sequence[float], np.ndarray],
                       n_mad: float = 3.0) -> np.ndarray:
    """Indices of chains whose prediction spread is close to the median.

    Chains that diverged or got stuck produce predictions whose spread (e.g.
    the SD of scores in a validation set) stands out; chains more than
    ``n_mad`` (normal-scaled) median absolute deviations from the median are
    dropped.
    """
    pred_ranges = np.asarray(pred_ranges, dtype=np.float64)
    if len(pred_ranges) != len(chains):
        raise ValueError("Need one prediction range per chain")
    finite = np.isfinite(pred_ranges)
    if not finite.any():
        raise ValueError("No chain has a finite prediction range")
    center = np.median(pred_ranges[finite])
    mad = median_abs_deviation(pred_ranges[finite], scale='normal')
    keep = finite & (np.abs(pred_ranges - center) <= n_mad * mad)
    if keep.sum() < len(chains):
        warnings.warn(f"Dropping {len(chains) - int(keep.sum())} of {len(chains)} LDpred2-auto chains")
    return np.where(keep)[0]


def combine_auto_chains(chains: Sequence[LDpredAutoChain],
                        keep: Optional[Sequence[int]] = None) -> np.ndarray:
    """Average the effects of the kept chains."""
    if keep is None:
        keep = range(len(chains))
    selected = [chains[i].beta_est for i in keep]
    if not selected:
        raise ValueError("No LDpred2-auto chains to combine")
    return np.mean(np.column_stack(selected), axis=1)
