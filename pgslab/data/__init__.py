"""
Input/output: PLINK genotypes, summary statistics, LD matrices
"""

from .load_genotype_plink import load_genotype_plink, write_plink, read_fam
from .sumstats import (
    SUMSTATS_COLUMNS,
    results_to_sumstats,
    write_ma,
    read_ma,
    match_sumstats,
    load_phenotype_file,
)
from .io_utils import (
    save_correlation_matrix,
    load_correlation_matrix,
    save_association_results,
    load_association_results,
    save_scores,
)

__all__ = [
    'load_genotype_plink',
    'write_plink',
    'read_fam',
    'SUMSTATS_COLUMNS',
    'results_to_sumstats',
    'write_ma',
    'read_ma',
    'match_sumstats',
    'load_phenotype_file',
    'save_correlation_matrix',
    'load_correlation_matrix',
    'save_association_results',
    'load_association_results',
    'save_scores',
]
