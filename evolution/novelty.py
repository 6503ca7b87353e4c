"""
Novelty archive for novelty search.

Novelty is the mean distance from a behaviour to its k nearest neighbours in
the archive plus the current generation. Behaviours are queued for admission
during evaluation and merged into the archive once per generation.
"""

import logging
import math
import random
import threading
from itertools import chain
from typing import List, Optional, Sequence

import numpy as np

from evolution.interfaces import (
    DEFAULT_ARCHIVE_THRESHOLD,
    DEFAULT_POPULATION_SIZE,
    Behaviour,
    NoveltyMode,
)
from evolve_core.config import NoveltySettings
from evolve_core.schemas import validate_novelty_settings
from neuroevolve.errors import (
    BehaviourDistanceError,
    ContractViolationError,
    EmptyCurrentPopulationError,
)

logger = logging.getLogger(__name__)


class RealVectorBehaviour(Behaviour):
    """Behaviour described by a vector of values in [0, 1]."""

    def __init__(self, values: Sequence[float]):
        p = np.asarray(values, dtype=float).ravel()
        if p.size == 0:
            raise ValueError("RealVectorBehaviour requires at least one value")
        if not np.all((p >= 0) & (p <= 1)):
            raise ValueError(
                f"Values for RealVectorBehaviour must be in the range [0, 1], "
                f"but got {p.tolist()}"
            )
        p.setflags(write=False)
        self.p = p

    @property
    def dimension(self) -> int:
        return int(self.p.size)

    def distance_from(self, other: Behaviour) -> float:
        if not isinstance(other, RealVectorBehaviour):
            raise TypeError(
                f"Cannot compare RealVectorBehaviour with {type(other).__name__}"
            )
        if other.dimension != self.dimension:
            raise ValueError(
                f"Dimension mismatch: {self.dimension} != {other.dimension}"
            )
        return float(np.abs(self.p - other.p).sum() / self.dimension)

    def default_threshold(self) -> float:
        return 1.0 / self.dimension

    def render_archive(self, archive: Sequence[Behaviour]) -> np.ndarray:
        """One row per archived behaviour; empty (0, dimension) if none."""
        if not archive:
            return np.empty((0, self.dimension))
        return np.vstack([b.p for b in archive])  # type: ignore[attr-defined]

    def __repr__(self) -> str:
        return f"RealVectorBehaviour({np.array2string(self.p, precision=3)})"


class NoveltySearch:
    """
    Archive of previously seen behaviours with adaptive admission.

    In threshold mode a behaviour is queued for admission when nothing already
    archived or queued lies within the current threshold. The threshold shrinks
    after a run of generations without admissions and grows when a generation
    admits too many. In probabilistic mode each tested behaviour is queued with
    a fixed probability.

    test_novelty may be called from many threads. finished_evaluation must be
    called once per generation after every test_novelty call has returned.
    """

    NO_NEW_ARCHIVE_GENERATIONS = 10
    THRESHOLD_DECAY = 0.95
    THRESHOLD_GROWTH = 1.2
    TOO_MANY_ADDITIONS_PROPORTION = 0.01

    def __init__(
        self,
        settings: Optional[NoveltySettings] = None,
        population_size: int = DEFAULT_POPULATION_SIZE,
        seed: Optional[int] = None,
    ):
        self.settings = settings or NoveltySettings()
        validate_novelty_settings(self.settings)

        self.k = self.settings.k
        if self.settings.add_probability is not None:
            self.mode = NoveltyMode.PROBABILISTIC
            self.add_probability: Optional[float] = self.settings.add_probability
        else:
            self.mode = NoveltyMode.THRESHOLD
            self.add_probability = None

        self._initial_threshold = (
            self.settings.archive_threshold
            if self.settings.archive_threshold is not None
            else DEFAULT_ARCHIVE_THRESHOLD
        )
        self.archive_threshold_min = (
            self.settings.archive_threshold_min
            if self.settings.archive_threshold_min is not None
            else self._initial_threshold * 0.05
        )
        self.too_many_additions = max(
            1, int(math.floor(population_size * self.TOO_MANY_ADDITIONS_PROPORTION + 0.5))
        )

        self._lock = threading.Lock()
        self._rng = random.Random(seed)
        self._in_flight = 0
        self.reset()

        logger.info(
            f"Novelty archive in {self.mode.value} mode (k={self.k}, "
            f"threshold={self._archive_threshold:.4f}, "
            f"max additions per generation={self.too_many_additions})"
        )

    def reset(self) -> None:
        """Empty the archive, queue and current population and zero the counters."""
        with self._lock:
            if self._in_flight > 0:
                raise ContractViolationError(
                    "Cannot reset the novelty archive while novelty tests are running"
                )
            self.archive: List[Behaviour] = []
            self.to_archive: List[Behaviour] = []
            self.current_pop: List[Behaviour] = []
            self._archive_threshold = self._initial_threshold
            self.no_new_archive_count = 0

    @property
    def archive_size(self) -> int:
        return len(self.archive)

    @property
    def archive_threshold(self) -> float:
        return self._archive_threshold

    def set_current_population(self, behaviours: Sequence[Behaviour]) -> None:
        self.current_pop = list(behaviours)

    def add_to_current_population(self, behaviour: Behaviour) -> None:
        with self._lock:
            self.current_pop.append(behaviour)

    def test_novelty(self, behaviour: Behaviour) -> float:
        """
        Return the novelty of a behaviour and possibly queue it for admission.

        Raises:
            EmptyCurrentPopulationError: if no current-population behaviour is set
            BehaviourDistanceError: if a distance falls outside [0, 1]
        """
        with self._lock:
            self._in_flight += 1
        try:
            if not self.current_pop:
                raise EmptyCurrentPopulationError()

            distances = []
            for other in chain(self.archive, self.current_pop):
                distances.append(self._checked_distance(behaviour, other))
            distances.sort()

            k = min(self.k, len(distances))
            novelty = sum(distances[:k]) / k

            if self.mode is NoveltyMode.PROBABILISTIC:
                with self._lock:
                    admit = self._rng.random() < self.add_probability
                    if admit:
                        self.to_archive.append(behaviour)
            else:
                # The archive is only mutated by finished_evaluation
                if not self._contains_similar(self.archive, behaviour):
                    with self._lock:
                        if not self._contains_similar(self.to_archive, behaviour):
                            self.to_archive.append(behaviour)

            return novelty
        finally:
            with self._lock:
                self._in_flight -= 1

    def _checked_distance(self, a: Behaviour, b: Behaviour) -> float:
        d = a.distance_from(b)
        if math.isnan(d) or d < 0 or d > 1:
            raise BehaviourDistanceError(d, type(a).__name__)
        return d

    def _contains_similar(self, behaviours: Sequence[Behaviour], b: Behaviour) -> bool:
        threshold = self._archive_threshold
        return any(self._checked_distance(b, other) < threshold for other in behaviours)

    def finished_evaluation(self) -> int:
        """
        Adapt the threshold and merge queued behaviours into the archive.

        Returns the number of behaviours admitted this generation.

        Raises:
            ContractViolationError: if a test_novelty call is still running
        """
        with self._lock:
            if self._in_flight > 0:
                raise ContractViolationError(
                    f"finished_evaluation called while {self._in_flight} novelty "
                    f"test(s) are still running",
                    details={"in_flight": self._in_flight},
                )
            admitted = list(self.to_archive)
            self.to_archive.clear()

        if self.mode is NoveltyMode.THRESHOLD:
            self._adapt_threshold(len(admitted))

        if admitted:
            self.archive.extend(admitted)
            logger.debug(
                f"Novelty archive size is now {len(self.archive)} "
                f"(archive threshold is {self._archive_threshold:.4f})",
                extra={"archive_size": len(self.archive)},
            )

        self.current_pop = []
        return len(admitted)

    def _adapt_threshold(self, admitted: int) -> None:
        if admitted == 0:
            self.no_new_archive_count += 1
            if self.no_new_archive_count == self.NO_NEW_ARCHIVE_GENERATIONS:
                self._archive_threshold = max(
                    self._archive_threshold * self.THRESHOLD_DECAY,
                    self.archive_threshold_min,
                )
                self.no_new_archive_count = 0
                logger.debug(f"Archive threshold lowered to {self._archive_threshold:.4f}")
        else:
            self.no_new_archive_count = 0
            if admitted > self.too_many_additions:
                self._archive_threshold *= self.THRESHOLD_GROWTH
                logger.debug(f"Archive threshold raised to {self._archive_threshold:.4f}")

    def render_archive(self):
        """Render the archive using the first archived behaviour's renderer."""
        if not self.archive:
            return None
        return self.archive[0].render_archive(self.archive)
