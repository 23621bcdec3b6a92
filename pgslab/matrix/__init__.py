"""
LD matrix computation
"""

from .ld import PGS_LD, ld_scores, ld_summary

__all__ = ['PGS_LD', 'ld_scores', 'ld_summary']
