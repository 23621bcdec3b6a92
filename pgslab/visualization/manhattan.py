"""
Manhattan and Q-Q plots for the tutorial GWAS
"""

import re
import warnings
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from ..utils.data_types import AssociationResults, GenotypeMap
from ..utils.stats import bonferroni_correction, fdr_correction, genomic_inflation_factor, qq_plot_data


def PGS_Report(results: Union[AssociationResults, Dict[str, AssociationResults]],
               map_data: Optional[GenotypeMap] = None,
               threshold: float = 5e-8,
               suggestive_threshold: float = 1e-5,
               plot_types: Sequence[str] = ("manhattan", "qq"),
               output_prefix: Union[str, Path] = "PGS_gwas",
               dpi: int = 150,
               figsize: Tuple[int, int] = (10, 4),
               colors: Optional[List[str]] = None,
               point_size: float = 8.0,
               causal_indices: Optional[np.ndarray] = None,
               save_plots: bool = True,
               verbose: bool = True) -> Dict:
    """Plots and summary statistics for one or several GWAS scans

    Args:
        results: AssociationResults or dict name -> AssociationResults
        map_data: Map used to place markers on chromosomes
        threshold: Genome-wide significance threshold
        suggestive_threshold: Suggestive threshold (summary only)
        plot_types: Any of "manhattan", "qq", "density"
        output_prefix: Prefix of the PNG files
        dpi: Resolution of saved figures
        figsize: Manhattan figure size
        colors: Alternating chromosome colors
        point_size: Marker size
        causal_indices: Markers to highlight (e.g. simulated causal SNPs)
        save_plots: Write PNG files
        verbose: Print progress

    Returns:
        Dictionary with 'plots', 'summary' and 'files_created'
    """
    if verbose:
        print("Generating GWAS visualization report...")

    report = {'plots': {}, 'summary': {}, 'files_created': []}

    if isinstance(results, AssociationResults):
        results_dict = {'GWAS': results}
    elif isinstance(results, dict):
        results_dict = results
    else:
        raise ValueError("Results must be AssociationResults or a dictionary of them")

    for method_name, result_obj in results_dict.items():
        if not isinstance(result_obj, AssociationResults):
            raise ValueError(f"Invalid result object for method {method_name}")

        log_pvalues = result_obj.log10_pvalues
        valid_mask = np.isfinite(result_obj.pvalues) & (result_obj.pvalues <= 1)
        if not valid_mask.any():
            warnings.warn(f"No valid p-values found for method {method_name}")
            continue

        method_plots = {}
        if "manhattan" in plot_types:
            if verbose:
                print(f"Creating Manhattan plot for {method_name}...")
            fig = create_manhattan_plot(log_pvalues, map_data=map_data, threshold=threshold,
                                        figsize=figsize, colors=colors, point_size=point_size,
                                        highlight=causal_indices)
            method_plots['manhattan'] = fig
            if save_plots:
                filename = f"{output_prefix}_{method_name}_manhattan.png"
                fig.savefig(filename, dpi=dpi, bbox_inches='tight')
                report['files_created'].append(filename)

        if "qq" in plot_types:
            if verbose:
                print(f"Creating Q-Q plot for {method_name}...")
            fig = create_qq_plot(result_obj.pvalues[valid_mask], title=f"Q-Q Plot - {method_name}")
            method_plots['qq'] = fig
            if save_plots:
                filename = f"{output_prefix}_{method_name}_qq.png"
                fig.savefig(filename, dpi=dpi, bbox_inches='tight')
                report['files_created'].append(filename)

        if "density" in plot_types:
            fig = create_pvalue_density_plot(result_obj.pvalues[valid_mask],
                                             title=f"P-value Distribution - {method_name}")
            method_plots['density'] = fig
            if save_plots:
                filename = f"{output_prefix}_{method_name}_density.png"
                fig.savefig(filename, dpi=dpi, bbox_inches='tight')
                report['files_created'].append(filename)

        report['plots'][method_name] = method_plots

        summary = calculate_gwas_summary(result_obj.pvalues, result_obj.effects,
                                         threshold=threshold,
                                         suggestive_threshold=suggestive_threshold)
        report['summary'][method_name] = summary
        if verbose:
            print(f"Summary for {method_name}:")
            print(f"  Total markers: {summary['n_markers']}")
            print(f"  Significant hits: {summary['n_significant']}")
            print(f"  Suggestive hits: {summary['n_suggestive']}")
            print(f"  Bonferroni / FDR hits: {summary['n_bonferroni']} / {summary['n_fdr']}")
            print(f"  Minimum p-value: {summary['min_pvalue']:.2e}")
            print(f"  Lambda GC: {summary['lambda_gc']:.3f}")

    if verbose:
        print(f"Report generation complete. Created {len(report['files_created'])} plot files.")
    return report


def create_manhattan_plot(log_pvalues: np.ndarray,
                          map_data: Optional[GenotypeMap] = None,
                          threshold: float = 5e-8,
                          title: str = "",
                          figsize: Tuple[int, int] = (10, 4),
                          colors: Optional[List[str]] = None,
                          point_size: float = 8.0,
                          highlight: Optional[np.ndarray] = None) -> plt.Figure:
    """Manhattan plot of -log10 p-values

    Args:
        log_pvalues: -log10 p-value per marker
        map_data: Map with CHROM/POS; markers are plotted in order without it
        threshold: Significance line (p scale); 0 disables it
        title: Plot title
        figsize: Figure size
        colors: Alternating chromosome colors
        point_size: Point size
        highlight: Marker indices drawn as red triangles

    Returns:
        matplotlib Figure object
    """
    log_pvalues = np.asarray(log_pvalues, dtype=np.float64)
    fig, ax = plt.subplots(figsize=figsize)

    if map_data is not None:
        if map_data.n_markers != len(log_pvalues):
            raise ValueError("Map and p-values have different numbers of markers")
        x = plot_manhattan_with_positions(ax, map_data.chromosomes.astype(str).to_numpy(),
                                          map_data.positions.to_numpy(dtype=np.float64),
                                          log_pvalues, colors=colors, point_size=point_size)
    else:
        x = plot_manhattan_sequential(ax, log_pvalues, point_size=point_size)

    if highlight is not None and len(highlight) > 0:
        highlight = np.asarray(highlight, dtype=int)
        ax.scatter(x[highlight], log_pvalues[highlight], marker='^', s=point_size * 3,
                   c='red', alpha=0.9, edgecolors='black', linewidth=0.5, zorder=10,
                   label='Causal SNPs')
        ax.legend(loc='upper right', fontsize=8)

    if threshold > 0:
        ax.axhline(y=-np.log10(threshold), color='red', linestyle='--', alpha=0.8, linewidth=1.5)

    ax.set_ylabel(r'$-\log_{10}(P)$', fontsize=12)
    if title and title.strip():
        ax.set_title(title)
    plt.tight_layout()
    return fig


def _natural_sort_key(value) -> List[Union[int, str]]:
    """Key for natural sorting of chromosome labels ('2' before '10')."""
    text = str(value).strip()
    if not text:
        return [""]
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r'(\d+)', text)]


def plot_manhattan_with_positions(ax, chromosomes: np.ndarray, positions: np.ndarray,
                                  log_pvalues: np.ndarray, colors: Optional[List[str]] = None,
                                  point_size: float = 8.0) -> np.ndarray:
    """Plot markers along concatenated chromosomes; returns the x coordinate of each marker."""
    if colors is None:
        colors = ['#1f77b4', '#ff7f0e']

    x = np.zeros(len(log_pvalues), dtype=np.float64)
    tick_positions = []
    tick_labels = []
    current_pos = 0.0

    for i, chrom in enumerate(sorted(np.unique(chromosomes), key=_natural_sort_key)):
        idx = np.where(chromosomes == chrom)[0]
        chrom_positions = positions[idx]
        min_pos, max_pos = chrom_positions.min(), chrom_positions.max()
        # Chromosome width in Mb, at least one unit so small maps stay visible
        chrom_length = max((max_pos - min_pos) / 1e6, 1.0)
        if max_pos > min_pos:
            x[idx] = current_pos + (chrom_positions - min_pos) / (max_pos - min_pos) * chrom_length
        else:
            x[idx] = current_pos + chrom_length / 2

        ax.scatter(x[idx], log_pvalues[idx], c=colors[i % len(colors)], s=point_size,
                   alpha=0.8, edgecolors='none')
        tick_positions.append(current_pos + chrom_length / 2)
        tick_labels.append(str(chrom))
        current_pos += chrom_length

    ax.set_xticks(tick_positions)
    ax.set_xticklabels(tick_labels)
    ax.set_xlabel('Chromosome', fontsize=12)
    return x


def plot_manhattan_sequential(ax, log_pvalues: np.ndarray, point_size: float = 8.0) -> np.ndarray:
    """Plot markers in their index order."""
    x = np.arange(len(log_pvalues), dtype=np.float64)
    ax.scatter(x, log_pvalues, c='#1f77b4', s=point_size, alpha=0.8, edgecolors='none')
    ax.set_xlabel('Marker', fontsize=12)
    return x


def create_qq_plot(pvalues: np.ndarray,
                   title: str = "Q-Q Plot",
                   figsize: Tuple[int, int] = (6, 6)) -> plt.Figure:
    """Q-Q plot of observed against expected -log10 p-values, with lambda GC in the title"""
    fig, ax = plt.subplots(figsize=figsize)
    pvalues = np.asarray(pvalues, dtype=np.float64)
    expected, observed = qq_plot_data(pvalues[pvalues <= 1])

    if len(observed) == 0:
        ax.text(0.5, 0.5, 'No valid p-values for Q-Q plot',
                ha='center', va='center', transform=ax.transAxes)
        ax.set_title(title)
        return fig

    exp_log = -np.log10(expected)
    obs_log = -np.log10(observed)

    ax.scatter(exp_log, obs_log, alpha=0.6, s=4, edgecolors='none')
    max_val = max(np.max(exp_log), np.max(obs_log))
    ax.plot([0, max_val], [0, max_val], 'r--', alpha=0.8, label='Null hypothesis')

    lambda_gc = genomic_inflation_factor(observed)
    ax.set_xlabel(r'Expected $-\log_{10}(P)$')
    ax.set_ylabel(r'Observed $-\log_{10}(P)$')
    ax.set_title(f'{title}\nλ = {lambda_gc:.3f}')
    ax.grid(True, alpha=0.3)
    ax.legend()
    plt.tight_layout()
    return fig


def create_pvalue_density_plot(pvalues: np.ndarray,
                               title: str = "P-value Distribution",
                               figsize: Tuple[int, int] = (8, 4)) -> plt.Figure:
    """Histograms of p-values and of -log10 p-values"""
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=figsize)
    pvalues = np.asarray(pvalues, dtype=np.float64)
    valid = pvalues[(pvalues > 0) & (pvalues <= 1) & ~np.isnan(pvalues)]

    if len(valid) == 0:
        for ax in (ax1, ax2):
            ax.text(0.5, 0.5, 'No valid p-values', ha='center', va='center', transform=ax.transAxes)
        fig.suptitle(title)
        return fig

    sns.histplot(valid, bins=50, stat='density', color='skyblue', ax=ax1)
    ax1.axhline(y=1.0, color='red', linestyle='--', alpha=0.7, label='Uniform (null)')
    ax1.set_xlabel('P-value')
    ax1.legend()

    sns.histplot(-np.log10(valid), bins=50, stat='density', color='lightcoral', ax=ax2)
    ax2.set_xlabel(r'$-\log_{10}(P)$')

    plt.tight_layout()
    fig.suptitle(title, y=1.02)
    return fig


def calculate_gwas_summary(pvalues: np.ndarray,
                           effects: np.ndarray,
                           threshold: float = 5e-8,
                           suggestive_threshold: float = 1e-5) -> Dict:
    """Hit counts (fixed thresholds, Bonferroni, 5% FDR), smallest p-value, lambda GC and effect range"""
    pvalues = np.asarray(pvalues, dtype=np.float64)
    effects = np.asarray(effects, dtype=np.float64)
    valid_mask = ~np.isnan(pvalues) & (pvalues > 0) & (pvalues <= 1)
    valid_pvalues = pvalues[valid_mask]
    valid_effects = effects[valid_mask]

    if len(valid_pvalues) == 0:
        return {
            'n_markers': 0,
            'n_significant': 0,
            'n_suggestive': 0,
            'n_bonferroni': 0,
            'n_fdr': 0,
            'min_pvalue': np.nan,
            'median_pvalue': np.nan,
            'lambda_gc': np.nan,
            'mean_effect': np.nan,
            'effect_range': (np.nan, np.nan)
        }

    n_significant = int(np.sum(valid_pvalues < threshold))
    n_suggestive = int(np.sum(valid_pvalues < suggestive_threshold)) - n_significant
    _, bonferroni_threshold = bonferroni_correction(valid_pvalues)
    fdr_rejected, _ = fdr_correction(valid_pvalues)

    with np.errstate(invalid='ignore'):
        mean_effect = float(np.nanmean(valid_effects)) if np.isfinite(valid_effects).any() else np.nan
    return {
        'n_markers': len(valid_pvalues),
        'n_significant': n_significant,
        'n_suggestive': n_suggestive,
        'n_bonferroni': int(np.sum(valid_pvalues < bonferroni_threshold)),
        'n_fdr': int(np.sum(fdr_rejected)),
        'min_pvalue': float(np.min(valid_pvalues)),
        'median_pvalue': float(np.median(valid_pvalues)),
        'lambda_gc': genomic_inflation_factor(valid_pvalues),
        'mean_effect': mean_effect,
        'effect_range': (float(np.nanmin(valid_effects)), float(np.nanmax(valid_effects)))
                        if np.isfinite(valid_effects).any() else (np.nan, np.nan),
    }
