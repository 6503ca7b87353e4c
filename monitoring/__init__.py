"""
Monitoring module for neuroevolve.
Provides per-generation statistics collection and export.
"""

from .metrics import GenerationMetricsCollector, GenerationStats

__all__ = ["GenerationMetricsCollector", "GenerationStats"]
