"""
Command line interface of the PGS tutorial pipeline
"""

from .utils import parse_args, normalize_outputs, normalize_models

__all__ = ['parse_args', 'normalize_outputs', 'normalize_models']
