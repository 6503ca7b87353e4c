"""
Evolution module for neuroevolve.
Provides NSGA-II selection, novelty search and bulk fitness evaluation.
"""

from .engine import EvolutionEngine, EvolutionResult, GenerationResult
from .fitness import BulkFitnessEvaluator, EvaluationSummary
from .interfaces import (
    Behaviour,
    BulkFitnessFunction,
    Chromosome,
    FitnessRecord,
    ObjectiveDirection,
    ReproductionOperator,
    SpeciationStrategy,
    Species,
    Transcriber,
)
from .novelty import NoveltySearch, RealVectorBehaviour
from .nsga2 import fast_non_dominated_sort, get_top, sort_by_crowded_comparison
from .selector import NSGAIISelector, SelectionReport

__all__ = [
    "EvolutionEngine",
    "EvolutionResult",
    "GenerationResult",
    "BulkFitnessEvaluator",
    "EvaluationSummary",
    "Behaviour",
    "BulkFitnessFunction",
    "Chromosome",
    "FitnessRecord",
    "ObjectiveDirection",
    "ReproductionOperator",
    "SpeciationStrategy",
    "Species",
    "Transcriber",
    "NoveltySearch",
    "RealVectorBehaviour",
    "NSGAIISelector",
    "SelectionReport",
    "fast_non_dominated_sort",
    "get_top",
    "sort_by_crowded_comparison",
]
