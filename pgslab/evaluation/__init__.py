"""
Accuracy metrics for polygenic scores
"""

from .metrics import AUC, AUCBoot, r2_score, pcor, evaluate_score, compare_models

__all__ = ['AUC', 'AUCBoot', 'r2_score', 'pcor', 'evaluate_score', 'compare_models']
