"""
Association testing methods for GWAS analysis
"""

from .glm import PGS_GLM
from .logistic import PGS_LogisticGWAS

__all__ = ['PGS_GLM', 'PGS_LogisticGWAS']
