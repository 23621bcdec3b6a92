"""
Figures for comparing polygenic score models
"""

from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from ..prs.ldpred import LDpredAutoChain


def plot_model_comparison(comparison: pd.DataFrame,
                          title: str = "",
                          figsize: Tuple[int, int] = (8, 4)) -> plt.Figure:
    """Bar chart of model accuracy with confidence intervals

    Args:
        comparison: Output of compare_models (Model, Metric, Value, Lower, Upper)
    """
    fig, ax = plt.subplots(figsize=figsize)
    if comparison.empty:
        ax.text(0.5, 0.5, 'No models to compare', ha='center', va='center', transform=ax.transAxes)
        return fig

    df = comparison.reset_index(drop=True)
    x = np.arange(len(df))
    values = df['Value'].to_numpy(dtype=np.float64)
    lower = np.clip(values - df['Lower'].to_numpy(dtype=np.float64), 0, None)
    upper = np.clip(df['Upper'].to_numpy(dtype=np.float64) - values, 0, None)
    palette = sns.color_palette('viridis', len(df))

    ax.bar(x, values, color=palette, alpha=0.9)
    ax.errorbar(x, values, yerr=np.vstack([np.nan_to_num(lower), np.nan_to_num(upper)]),
                fmt='none', ecolor='black', capsize=3, linewidth=1)
    ax.set_xticks(x)
    ax.set_xticklabels(df['Model'], rotation=45, ha='right')
    metric = str(df['Metric'].iloc[0])
    ax.set_ylabel(metric)
    if metric == 'AUC':
        ax.axhline(0.5, color='grey', linestyle='--', linewidth=1)
        ax.set_ylim(min(0.45, float(np.nanmin(df['Lower'])) - 0.02), 1.0)
    if title:
        ax.set_title(title)
    ax.grid(True, axis='y', alpha=0.3)
    plt.tight_layout()
    return fig


def plot_score_distribution(scores: np.ndarray,
                            target: np.ndarray,
                            binary: bool,
                            title: str = "",
                            figsize: Tuple[int, int] = (6, 4)) -> plt.Figure:
    """Score densities of cases and controls, or scores against the trait"""
    scores = np.asarray(scores, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    if scores.shape != target.shape:
        raise ValueError("scores and target must have the same length")

    fig, ax = plt.subplots(figsize=figsize)
    if binary:
        df = pd.DataFrame({'Score': scores,
                           'Status': np.where(target == 1, 'Case', 'Control')})
        sns.kdeplot(data=df, x='Score', hue='Status', common_norm=False, fill=True,
                    alpha=0.4, ax=ax, warn_singular=False)
    else:
        ax.scatter(scores, target, s=6, alpha=0.6, edgecolors='none')
        ax.set_xlabel('Score')
        ax.set_ylabel('Trait')
    if title:
        ax.set_title(title)
    plt.tight_layout()
    return fig


def plot_ct_grid(params: pd.DataFrame,
                 metric: np.ndarray,
                 metric_name: str = "AUC",
                 figsize: Tuple[int, int] = (9, 4)) -> plt.Figure:
    """Accuracy of the C+T scores against the p-value threshold

    One line per clumping r2, one line style per window base size.
    """
    df = params.copy()
    if len(df) != len(metric):
        raise ValueError("Need one metric value per C+T score")
    df['metric'] = np.asarray(metric, dtype=np.float64)
    df['thr_r2'] = df['thr_r2'].astype(str)

    fig, ax = plt.subplots(figsize=figsize)
    sns.lineplot(data=df, x='thr_lp', y='metric', hue='thr_r2', style='base_size',
                 marker='o', markersize=3, ax=ax)
    ax.set_xscale('log')
    ax.set_xlabel(r'Threshold on $-\log_{10}(P)$')
    ax.set_ylabel(metric_name)
    ax.grid(True, alpha=0.3)
    plt.tight_layout()
    return fig


def plot_ldpred_grid(params: pd.DataFrame,
                     metric: np.ndarray,
                     metric_name: str = "AUC",
                     figsize: Tuple[int, int] = (10, 4)) -> plt.Figure:
    """Accuracy of LDpred2-grid models against p, by h2, non-sparse and sparse panels"""
    df = params.copy()
    if len(df) != len(metric):
        raise ValueError("Need one metric value per grid model")
    df['metric'] = np.asarray(metric, dtype=np.float64)
    df['h2'] = df['h2'].map(lambda v: f"{v:.3g}")

    panels = sorted(df['sparse'].unique())
    fig, axes = plt.subplots(1, len(panels), figsize=figsize, sharey=True, squeeze=False)
    for ax, sparse_value in zip(axes[0], panels):
        sub = df[df['sparse'] == sparse_value]
        sns.lineplot(data=sub, x='p', y='metric', hue='h2', marker='o', ax=ax)
        ax.set_xscale('log')
        ax.set_title(f"sparse = {bool(sparse_value)}")
        ax.set_xlabel('Proportion of causal variants (p)')
        ax.set_ylabel(metric_name)
        ax.grid(True, alpha=0.3)
    plt.tight_layout()
    return fig


def plot_auto_chains(chains: Sequence[LDpredAutoChain],
                     keep: Optional[Sequence[int]] = None,
                     figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
    """Sampled p and h2 along each LDpred2-auto chain; dropped chains in grey"""
    kept = set(range(len(chains))) if keep is None else set(int(i) for i in keep)
    fig, (ax_p, ax_h2) = plt.subplots(2, 1, figsize=figsize, sharex=True)
    palette = sns.color_palette('husl', max(len(chains), 1))
    for i, chain in enumerate(chains):
        color = palette[i] if i in kept else 'lightgrey'
        steps = np.arange(1, len(chain.path_p_est) + 1)
        ax_p.plot(steps, chain.path_p_est, color=color, linewidth=0.8)
        ax_h2.plot(steps, chain.path_h2_est, color=color, linewidth=0.8)
    ax_p.set_yscale('log')
    ax_p.set_ylabel('p')
    ax_h2.set_ylabel('h2')
    ax_h2.set_xlabel('Gibbs sweep')
    for ax in (ax_p, ax_h2):
        ax.grid(True, alpha=0.3)
    plt.tight_layout()
    return fig


def plot_effect_comparison(estimated: np.ndarray,
                           true_effects: np.ndarray,
                           title: str = "",
                           figsize: Tuple[int, int] = (5, 5)) -> plt.Figure:
    """Estimated against true per-allele effects, with the identity line"""
    estimated = np.asarray(estimated, dtype=np.float64)
    true_effects = np.asarray(true_effects, dtype=np.float64)
    if estimated.shape != true_effects.shape:
        raise ValueError("estimated and true_effects must have the same length")

    fig, ax = plt.subplots(figsize=figsize)
    causal = true_effects != 0
    ax.scatter(true_effects[~causal], estimated[~causal], s=4, alpha=0.4, c='grey',
               edgecolors='none', label='Non-causal')
    ax.scatter(true_effects[causal], estimated[causal], s=12, alpha=0.8, c='red',
               edgecolors='none', label='Causal')
    finite = np.concatenate([estimated[np.isfinite(estimated)], true_effects])
    lim = float(np.max(np.abs(finite))) if finite.size else 1.0
    ax.plot([-lim, lim], [-lim, lim], 'k--', linewidth=1)
    ax.set_xlabel('True effect')
    ax.set_ylabel('Estimated effect')
    ax.legend(fontsize=8)
    if title:
        ax.set_title(title)
    plt.tight_layout()
    return fig
