"""
Shared data structures and statistics helpers
"""

from .data_types import (
    GenotypeMap,
    GenotypeMatrix,
    AssociationResults,
    CorrelationMatrix,
    PGSModel,
)

__all__ = [
    'GenotypeMap',
    'GenotypeMatrix',
    'AssociationResults',
    'CorrelationMatrix',
    'PGSModel',
]
