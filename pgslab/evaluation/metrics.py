"""
Predictive accuracy of polygenic scores

- AUC / AUCBoot for case/control traits
- squared correlation and partial correlation (with covariates) for
  quantitative traits
- compare_models: one row per model, ranked by accuracy
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.metrics import roc_auc_score


def _check_binary(pred: np.ndarray, target: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    pred = np.asarray(pred, dtype=np.float64).ravel()
    target = np.asarray(target, dtype=np.float64).ravel()
    if pred.shape != target.shape:
        raise ValueError("pred and target must have the same length")
    if not np.all(np.isin(target, (0.0, 1.0))):
        raise ValueError("target must contain only 0 and 1")
    if target.min() == target.max():
        raise ValueError("target must contain both cases and controls")
    if not np.all(np.isfinite(pred)):
        raise ValueError("pred contains non-finite values")
    return pred, target


def AUC(pred: np.ndarray, target: np.ndarray) -> float:
    """Area under the ROC curve (ties count one half)."""
    pred, target = _check_binary(pred, target)
    return float(roc_auc_score(target, pred))


def AUCBoot(pred: np.ndarray, target: np.ndarray, nboot: int = 1000,
            seed: Optional[int] = None) -> Tuple[float, float, float, float]:
    """Bootstrap AUC.

    Resamples with a single class are redrawn.

    Returns:
        (mean, 2.5% quantile, 97.5% quantile, sd) of the bootstrap AUCs
    """
    pred, target = _check_binary(pred, target)
    if nboot < 2:
        raise ValueError("nboot must be at least 2")
    rng = np.random.default_rng(seed)
    n = len(pred)
    aucs = np.empty(nboot)
    b = 0
    while b < nboot:
        idx = rng.integers(0, n, size=n)
        y = target[idx]
        if y.min() == y.max():
            continue
        aucs[b] = roc_auc_score(y, pred[idx])
        b += 1
    q_low, q_high = np.quantile(aucs, [0.025, 0.975])
    return float(aucs.mean()), float(q_low), float(q_high), float(aucs.std(ddof=1))


def r2_score(pred: np.ndarray, target: np.ndarray) -> float:
    """Squared Pearson correlation between scores and trait."""
    pred = np.asarray(pred, dtype=np.float64).ravel()
    target = np.asarray(target, dtype=np.float64).ravel()
    if pred.shape != target.shape:
        raise ValueError("pred and target must have the same length")
    if pred.std() == 0 or target.std() == 0:
        return 0.0
    return float(np.corrcoef(pred, target)[0, 1] ** 2)


def pcor(pred: np.ndarray, target: np.ndarray, covariates: Optional[np.ndarray] = None,
         alpha: float = 0.05) -> Tuple[float, float, float]:
    """Partial correlation of scores and trait given covariates, with a Fisher-z CI.

    Returns:
        (r, lower, upper)
    """
    pred = np.asarray(pred, dtype=np.float64).ravel()
    target = np.asarray(target, dtype=np.float64).ravel()
    if pred.shape != target.shape:
        raise ValueError("pred and target must have the same length")
    n = len(pred)
    X = np.ones((n, 1))
    if covariates is not None:
        covariates = np.asarray(covariates, dtype=np.float64)
        if covariates.ndim == 1:
            covariates = covariates[:, np.newaxis]
        if covariates.shape[0] != n:
            raise ValueError("covariates must have one row per individual")
        X = np.column_stack([X, covariates])
    k = X.shape[1] - 1
    df = n - 3 - k
    if df <= 0:
        raise ValueError("Not enough individuals for the number of covariates")

    res_pred = pred - X @ np.linalg.lstsq(X, pred, rcond=None)[0]
    res_target = target - X @ np.linalg.lstsq(X, target, rcond=None)[0]
    if res_pred.std() == 0 or res_target.std() == 0:
        return 0.0, np.nan, np.nan
    r = float(np.corrcoef(res_pred, res_target)[0, 1])

    z = np.arctanh(np.clip(r, -0.999999, 0.999999))
    q = stats.norm.isf(alpha / 2.0)
    half = q / np.sqrt(df)
    return r, float(np.tanh(z - half)), float(np.tanh(z + half))


def evaluate_score(pred: np.ndarray, target: np.ndarray, binary: bool,
                   covariates: Optional[np.ndarray] = None,
                   nboot: int = 1000, seed: Optional[int] = None) -> Dict[str, float]:
    """Accuracy of one score: AUC with bootstrap CI, or r2 with Fisher-z CI."""
    if binary:
        mean, low, high, sd = AUCBoot(pred, target, nboot=nboot, seed=seed)
        return {'metric': 'AUC', 'value': AUC(pred, target), 'lower': low, 'upper': high,
                'boot_mean': mean, 'boot_sd': sd}
    r, low, high = pcor(pred, target, covariates)
    lower = 0.0 if low <= 0 <= high else min(low ** 2, high ** 2)
    return {'metric': 'R2', 'value': r ** 2, 'lower': lower, 'upper': max(low ** 2, high ** 2),
            'r': r}


def compare_models(scores_by_model: Dict[str, np.ndarray],
                   target: np.ndarray,
                   binary: bool,
                   n_snps: Optional[Dict[str, int]] = None,
                   covariates: Optional[np.ndarray] = None,
                   nboot: int = 1000,
                   seed: Optional[int] = None) -> pd.DataFrame:
    """Evaluate several scores on the same individuals, best model first.

    Returns:
        DataFrame with columns Model, n_snps, Metric, Value, Lower, Upper
    """
    if not scores_by_model:
        raise ValueError("No models to compare")
    rows = []
    for name, pred in scores_by_model.items():
        res = evaluate_score(pred, target, binary, covariates=covariates, nboot=nboot, seed=seed)
        rows.append({
            'Model': name,
            'n_snps': (n_snps or {}).get(name, np.nan),
            'Metric': res['metric'],
            'Value': res['value'],
            'Lower': res['lower'],
            'Upper': res['upper'],
        })
    df = pd.DataFrame(rows)
    return df.sort_values('Value', ascending=False, kind='stable').reset_index(drop=True)
