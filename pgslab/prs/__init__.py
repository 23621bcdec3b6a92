"""
Polygenic score models: clumping, thresholding, stacking, LDSC and LDpred2
"""

from .clumping import PGS_Clumping, PGS_GridClumping, ClumpingGrid, ClumpingGridEntry
from .scoring import (
    PGS_Score,
    PGS_GridPRS,
    PGS_Stacking,
    GridPRS,
    StackingResult,
    all_snp_weights,
    threshold_weights,
    clumped_weights,
    ct_weights,
    default_lp_thresholds,
)
from .ldsc import PGS_LDSC
from .ldpred import (
    PGS_LDpredInf,
    PGS_LDpredGrid,
    PGS_LDpredAuto,
    LDpredAutoChain,
    grid_param,
    seq_log,
    df_beta_from_results,
    filter_auto_chains,
    combine_auto_chains,
)

__all__ = [
    'PGS_Clumping',
    'PGS_GridClumping',
    'ClumpingGrid',
    'ClumpingGridEntry',
    'PGS_Score',
    'PGS_GridPRS',
    'PGS_Stacking',
    'GridPRS',
    'StackingResult',
    'all_snp_weights',
    'threshold_weights',
    'clumped_weights',
    'ct_weights',
    'default_lp_thresholds',
    'PGS_LDSC',
    'PGS_LDpredInf',
    'PGS_LDpredGrid',
    'PGS_LDpredAuto',
    'LDpredAutoChain',
    'grid_param',
    'seq_log',
    'df_beta_from_results',
    'filter_auto_chains',
    'combine_auto_chains',
]
