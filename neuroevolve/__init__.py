"""
neuroevolve - Multi-objective neuroevolution selection core.
"""

from neuroevolve.errors import (
    BehaviourDistanceError,
    ChromosomeNotInSpeciesError,
    ContractViolationError,
    EmptyCurrentPopulationError,
    EvolutionError,
    InvalidConfigError,
)
from neuroevolve.logging_config import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    "EvolutionError",
    "InvalidConfigError",
    "ContractViolationError",
    "BehaviourDistanceError",
    "EmptyCurrentPopulationError",
    "ChromosomeNotInSpeciesError",
    "configure_logging",
    "get_logger",
]
