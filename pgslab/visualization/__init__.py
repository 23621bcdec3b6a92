"""
Visualization of GWAS results and polygenic score models
"""

from .manhattan import (
    PGS_Report,
    create_manhattan_plot,
    create_qq_plot,
    create_pvalue_density_plot,
    calculate_gwas_summary,
)
from .pgs_plots import (
    plot_model_comparison,
    plot_score_distribution,
    plot_ct_grid,
    plot_ldpred_grid,
    plot_auto_chains,
    plot_effect_comparison,
)

__all__ = [
    'PGS_Report',
    'create_manhattan_plot',
    'create_qq_plot',
    'create_pvalue_density_plot',
    'calculate_gwas_summary',
    'plot_model_comparison',
    'plot_score_distribution',
    'plot_ct_grid',
    'plot_ldpred_grid',
    'plot_auto_chains',
    'plot_effect_comparison',
]
