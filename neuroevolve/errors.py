"""
Error taxonomy for neuroevolve.
Provides structured errors for configuration problems and contract violations.
"""

import logging
from functools import wraps
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class EvolutionError(Exception):
    """Base exception for neuroevolve errors."""

    def __init__(
        self,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly error record."""
        return {
            "error": {
                "code": self.code,
                "message": str(self),
                "details": self.details,
            }
        }


class InvalidConfigError(EvolutionError):
    """Raised when configuration is invalid."""

    def __init__(self, errors: list):
        super().__init__(
            "Invalid configuration: " + "; ".join(str(e) for e in errors),
            "INVALID_CONFIG",
            {"errors": errors},
        )
        self.errors = errors


class ContractViolationError(EvolutionError):
    """Raised when a plug-in or caller breaks a documented contract."""

    def __init__(
        self,
        message: str,
        code: str = "CONTRACT_VIOLATION",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)


class BehaviourDistanceError(ContractViolationError):
    """Raised when a Behaviour distance falls outside [0, 1]."""

    def __init__(self, distance: float, behaviour_type: str):
        super().__init__(
            f"Values returned by {behaviour_type}.distance_from() must be in the range "
            f"[0, 1] but a value of {distance} was found",
            "BEHAVIOUR_DISTANCE_OUT_OF_RANGE",
            {"distance": distance, "behaviour_type": behaviour_type},
        )


class EmptyCurrentPopulationError(ContractViolationError):
    """Raised when novelty is requested before any current-population behaviour is known."""

    def __init__(self):
        super().__init__(
            "The current population in the novelty archive has zero size",
            "EMPTY_CURRENT_POPULATION",
        )


class ChromosomeNotInSpeciesError(ContractViolationError):
    """Raised when a chromosome is treated as a member of a species it is not in."""

    def __init__(self, chromosome_id: int, species_id: int):
        super().__init__(
            f"Chromosome {chromosome_id} is not a member of species {species_id}",
            "CHROMOSOME_NOT_IN_SPECIES",
            {"chromosome_id": chromosome_id, "species_id": species_id},
        )


def handle_cli_error(func: Callable[..., int]) -> Callable[..., int]:
    """Decorator to convert neuroevolve errors into a CLI exit code.

    Usage:
        @handle_cli_error
        def cmd_validate(args) -> int:
            ...
    """

    @wraps(func)
    def wrapper(*args, **kwargs) -> int:
        try:
            return func(*args, **kwargs)
        except EvolutionError as e:
            logger.error(f"{e.code}: {e}")
            print(f"Error [{e.code}]: {e}")
            return 1

    return wrapper
