"""neuroevolve: Core Interface Definitions"""

import itertools
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from neuroevolve.errors import ChromosomeNotInSpeciesError, ContractViolationError

# Enumerations (Core Only)


class ObjectiveDirection(Enum):
    """Whether larger or smaller objective values are better."""

    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


class NoveltyMode(Enum):
    """Archive admission policy; exactly one per run."""

    THRESHOLD = "threshold"
    PROBABILISTIC = "probabilistic"


class PerformanceTarget(Enum):
    """Direction of the task performance target."""

    HIGHER = "higher"
    LOWER = "lower"


# Behaviour (exposed to evaluator plug-ins)


class Behaviour(ABC):
    """Descriptor of what an individual does, comparable by distance.

    Implementations must return distances in [0, 1]. A behaviour is never
    mutated once it has been admitted to a novelty archive.
    """

    @abstractmethod
    def distance_from(self, other: "Behaviour") -> float:
        pass

    @abstractmethod
    def default_threshold(self) -> float:
        pass

    def render_archive(self, archive: Sequence["Behaviour"]) -> Any:
        raise NotImplementedError(
            f"{type(self).__name__} does not support archive rendering"
        )


# Data Classes (Essentials)

_id_lock = threading.Lock()
_id_counter = itertools.count()


def next_chromosome_id() -> int:
    """Monotonic identifier source for chromosomes created without one."""
    with _id_lock:
        return next(_id_counter)


def dominates(
    a: Sequence[float],
    b: Sequence[float],
    directions: Optional[Sequence[ObjectiveDirection]] = None,
) -> bool:
    """True iff a is no worse than b on every objective and better on one."""
    if directions is not None and len(directions) != len(a):
        raise ContractViolationError(
            f"{len(directions)} objective directions given for {len(a)} objectives"
        )
    better = False
    for m, (va, vb) in enumerate(zip(a, b)):
        if directions is not None and directions[m] is ObjectiveDirection.MINIMIZE:
            va, vb = -va, -vb
        if va < vb:
            return False
        if va > vb:
            better = True
    return better


def _check_unit_range(value: float, what: str) -> None:
    if not math.isnan(value) and (value < 0 or value > 1):
        raise ValueError(f"{what} must be in the range [0, 1], but {value} was given")


@dataclass(eq=False)
class Chromosome:
    """An individual; fitness values hold one entry per objective.

    crowding_distance and rank are scratch state owned by the selection pass.
    They are reset on every ranking and carry no meaning between generations.
    """

    fitness_values: List[float]
    id: int = field(default_factory=next_chromosome_id)
    performance: float = math.nan
    fitness: float = math.nan
    crowding_distance: float = 0.0
    rank: int = 0
    novelty: float = 0.0
    species: Optional["Species"] = None
    is_elite: bool = False
    is_selected_for_next_generation: bool = False
    behaviours: List[Behaviour] = field(default_factory=list)
    material: Any = None

    @property
    def objective_count(self) -> int:
        return len(self.fitness_values)

    def get_fitness_value(self, objective: Optional[int] = None) -> float:
        """Overall fitness when objective is None, else the objective's value."""
        if objective is None:
            return self.fitness
        return self.fitness_values[objective]

    def set_fitness_value(self, value: float, objective: Optional[int] = None) -> None:
        _check_unit_range(value, "Fitness values")
        if objective is None:
            self.fitness = value
        else:
            self.fitness_values[objective] = value

    def set_performance_value(self, value: float) -> None:
        _check_unit_range(value, "Performance values")
        self.performance = value

    def dominates(
        self,
        other: "Chromosome",
        directions: Optional[Sequence[ObjectiveDirection]] = None,
    ) -> bool:
        return dominates(self.fitness_values, other.fitness_values, directions)

    def __repr__(self) -> str:
        return f"Chromosome(id={self.id}, fitness_values={self.fitness_values})"


_species_ids = itertools.count()


@dataclass(eq=False)
class Species:
    """Ordered group of chromosomes sharing a compatibility bucket."""

    chromosomes: List[Chromosome] = field(default_factory=list)
    id: int = field(default_factory=lambda: next(_species_ids))
    stagnant_generations_count: int = 0
    age: int = 0
    best_performance_ever: float = 0.0
    contains_best_performing: bool = False
    elite_count: int = 0

    def __len__(self) -> int:
        return len(self.chromosomes)

    def __contains__(self, chromosome: object) -> bool:
        return any(c is chromosome for c in self.chromosomes)

    @property
    def size(self) -> int:
        return len(self.chromosomes)

    def add(self, chromosome: Chromosome) -> bool:
        """Add a chromosome; False if it is already a member."""
        if chromosome.species is not None and chromosome.species is not self:
            raise ValueError(
                f"Chromosome {chromosome.id} is already a member of species "
                f"{chromosome.species.id}"
            )
        if chromosome in self:
            return False
        chromosome.species = self
        self.chromosomes.append(chromosome)
        return True

    def remove(self, chromosome: Chromosome) -> bool:
        for i, c in enumerate(self.chromosomes):
            if c is chromosome:
                del self.chromosomes[i]
                chromosome.species = None
                return True
        return False

    def get_best_performing(self) -> Optional[Chromosome]:
        """Highest performance, ties broken by lowest id; NaN counts as worst."""
        if not self.chromosomes:
            return None

        def key(c: Chromosome):
            perf = -math.inf if math.isnan(c.performance) else c.performance
            return (-perf, c.id)

        return min(self.chromosomes, key=key)

    def new_generation(self) -> None:
        """Age the species and update its stagnation counter."""
        self.age += 1
        best = self.get_best_performing()
        if best is None or math.isnan(best.performance):
            return
        if best.performance <= self.best_performance_ever:
            self.stagnant_generations_count += 1
        else:
            self.stagnant_generations_count = 0
            self.best_performance_ever = best.performance

    def set_elites(self, elites: Sequence[Chromosome]) -> None:
        """Mark the given members elite and every other member non-elite."""
        for e in elites:
            if e not in self:
                raise ChromosomeNotInSpeciesError(e.id, self.id)
        elite_ids = {id(e) for e in elites}
        self.elite_count = 0
        for c in self.chromosomes:
            c.is_elite = id(c) in elite_ids
            if c.is_elite:
                self.elite_count += 1


@dataclass
class FitnessRecord:
    """Result of evaluating one chromosome."""

    fitness_values: List[float]
    performance: Optional[float] = None
    behaviours: List[Behaviour] = field(default_factory=list)


# Core Interfaces (Plug-in seams)


class BulkFitnessFunction(ABC):
    """Evaluator plug-in; called concurrently from worker threads."""

    @abstractmethod
    def evaluate(
        self, chromosome: Chromosome, substrate: Any, eval_thread_index: int
    ) -> FitnessRecord:
        pass

    def fitness_objectives_count(self) -> int:
        return 1

    def novelty_objective_count(self) -> int:
        return 0

    def objective_labels(self) -> List[str]:
        name = type(self).__name__
        labels = [f"F{i} {name}" for i in range(self.fitness_objectives_count())]
        labels += [f"N{i} {name}" for i in range(self.novelty_objective_count())]
        return labels

    def fitness_values_stable(self) -> bool:
        """True if re-evaluating a chromosome always yields the same values."""
        return False

    def initialise_evaluation(self) -> None:
        pass

    def finalise_evaluation(self) -> None:
        pass


class Transcriber(ABC):
    """Genotype to phenotype decoder."""

    @abstractmethod
    def transcribe(self, chromosome: Chromosome) -> Any:
        """Return a substrate, or None if the chromosome decodes to a dud."""


class IdentityTranscriber(Transcriber):
    def transcribe(self, chromosome: Chromosome) -> Any:
        return chromosome


class SpeciationStrategy(ABC):
    """Assigns chromosomes to species each generation."""

    @abstractmethod
    def speciate(
        self, chromosomes: List[Chromosome], species: List[Species]
    ) -> List[Species]:
        pass


class ReproductionOperator(ABC):
    """Produces the next population from selected parents."""

    @abstractmethod
    def reproduce(
        self,
        parents: List[Chromosome],
        species: List[Species],
        population_size: int,
    ) -> List[Chromosome]:
        pass


# Constants (Defaults)

DEFAULT_POPULATION_SIZE = 100
DEFAULT_SURVIVAL_RATE = 0.2
DEFAULT_NOVELTY_K = 30
DEFAULT_ARCHIVE_THRESHOLD = 0.05
