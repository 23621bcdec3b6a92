"""
End-to-end polygenic score workflows
"""

from .tutorial import PGSTutorialPipeline, MODEL_CHOICES, OUTPUT_CHOICES

__all__ = ['PGSTutorialPipeline', 'MODEL_CHOICES', 'OUTPUT_CHOICES']
