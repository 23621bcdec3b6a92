"""
pgslab: polygenic score construction and evaluation from PLINK genotypes

GWAS on a training set, LD matrices, clumping and thresholding (C+T),
stacked C+T (SCT), LD score regression and LDpred2 (inf, grid and auto),
with the accuracy of every model compared on a test set.
"""

import os
import warnings

# Numba's threading layer triggers OpenMP deprecation warnings on some systems
os.environ.setdefault('KMP_WARNINGS', 'off')

warnings.filterwarnings('ignore', message='.*omp_set_nested.*deprecated.*')
warnings.filterwarnings('ignore', category=UserWarning, message='.*omp_set_nested.*')

__version__ = "0.1.0"

from .data.load_genotype_plink import load_genotype_plink
from .association.glm import PGS_GLM
from .association.logistic import PGS_LogisticGWAS
from .matrix.ld import PGS_LD
from .prs.clumping import PGS_Clumping, PGS_GridClumping
from .prs.scoring import PGS_Score, PGS_GridPRS, PGS_Stacking
from .prs.ldsc import PGS_LDSC
from .prs.ldpred import PGS_LDpredInf, PGS_LDpredGrid, PGS_LDpredAuto
from .simulation.phenotype import simulate_phenotype, split_train_test
from .evaluation.metrics import AUC, AUCBoot, compare_models
from .visualization.manhattan import PGS_Report
from .pipelines.tutorial import PGSTutorialPipeline

__all__ = [
    'load_genotype_plink',
    'PGS_GLM',
    'PGS_LogisticGWAS',
    'PGS_LD',
    'PGS_Clumping',
    'PGS_GridClumping',
    'PGS_Score',
    'PGS_GridPRS',
    'PGS_Stacking',
    'PGS_LDSC',
    'PGS_LDpredInf',
    'PGS_LDpredGrid',
    'PGS_LDpredAuto',
    'simulate_phenotype',
    'split_train_test',
    'AUC',
    'AUCBoot',
    'compare_models',
    'PGS_Report',
    'PGSTutorialPipeline',
]
