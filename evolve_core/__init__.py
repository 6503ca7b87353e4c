"""
evolve_core - configuration and command-line tooling for neuroevolve.
"""

from evolve_core.config import (
    Config,
    EvaluationSettings,
    EvolutionSettings,
    LoggingSettings,
    NoveltySettings,
    SelectionSettings,
    get_config,
)

__all__ = [
    "Config",
    "EvolutionSettings",
    "SelectionSettings",
    "NoveltySettings",
    "EvaluationSettings",
    "LoggingSettings",
    "get_config",
]
