"""
Non-dominated sorting and crowding distance for NSGA-II.

Implements the ranking half of Deb et al., "A Fast and Elitist Multiobjective
Genetic Algorithm: NSGA-II", IEEE Transactions on Evolutionary Computation,
vol. 6, no. 2, 2002.
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from evolution.interfaces import Chromosome, ObjectiveDirection
from neuroevolve.errors import ContractViolationError

logger = logging.getLogger(__name__)


def domination_matrix(
    values: np.ndarray,
    directions: Optional[Sequence[ObjectiveDirection]] = None,
) -> np.ndarray:
    """Boolean matrix where [p, q] is True iff row p dominates row q.

    Args:
        values: (N, M) objective values, one row per individual
        directions: Per-objective direction, all maximize if omitted

    Raises:
        ContractViolationError: if directions and columns differ in number
    """
    if directions is not None:
        if len(directions) != values.shape[1]:
            raise ContractViolationError(
                f"{len(directions)} objective directions given for "
                f"{values.shape[1]} objectives",
                details={"directions": len(directions), "objectives": values.shape[1]},
            )
        signs = np.array(
            [-1.0 if d is ObjectiveDirection.MINIMIZE else 1.0 for d in directions]
        )
        values = values * signs
    no_worse = np.all(values[:, None, :] >= values[None, :, :], axis=2)
    better = np.any(values[:, None, :] > values[None, :, :], axis=2)
    return no_worse & better


def fast_non_dominated_sort(
    individuals: Sequence[Chromosome],
    directions: Optional[Sequence[ObjectiveDirection]] = None,
) -> List[List[Chromosome]]:
    """
    Partition individuals into Pareto fronts, ascending by rank.

    Each individual gets a dense index for the duration of the call; the
    dominated sets and domination counts are plain arrays over those indices.
    Front 0 keeps input order, later fronts are in discovery order.
    """
    n = len(individuals)
    if n == 0:
        return []

    values = np.array([c.fitness_values for c in individuals], dtype=float)
    dominates = domination_matrix(values, directions)

    dominated: List[np.ndarray] = [np.flatnonzero(row) for row in dominates]
    domination_count = dominates.sum(axis=0).astype(int)

    fronts: List[List[Chromosome]] = []
    current = [i for i in range(n) if domination_count[i] == 0]
    while current:
        fronts.append([individuals[i] for i in current])
        following = []
        for p in current:
            for q in dominated[p]:
                domination_count[q] -= 1
                if domination_count[q] == 0:
                    following.append(int(q))
        current = following

    logger.debug(
        f"Sorted {n} individuals into {len(fronts)} fronts "
        f"(sizes {[len(f) for f in fronts]})"
    )
    return fronts


def sort_by_crowded_comparison(individuals: List[Chromosome]) -> List[Chromosome]:
    """
    Assign crowding distances within one front and sort it in place.

    Boundary individuals of every objective get infinite distance. Objectives
    whose values are all equal contribute nothing. The result is ordered by
    descending crowding distance, ties broken by ascending id.
    """
    if not individuals:
        return individuals

    for c in individuals:
        c.crowding_distance = 0.0

    last = len(individuals) - 1
    for m in range(individuals[0].objective_count):
        individuals.sort(key=lambda c: (c.fitness_values[m], c.id))

        # Boundary points are always kept; an infinity is never lowered
        individuals[0].crowding_distance = math.inf
        individuals[last].crowding_distance = math.inf

        low = individuals[0].fitness_values[m]
        high = individuals[last].fitness_values[m]
        if low == high:
            continue

        value_range = high - low
        for i in range(1, last):
            gap = individuals[i + 1].fitness_values[m] - individuals[i - 1].fitness_values[m]
            individuals[i].crowding_distance += gap / value_range

    individuals.sort(key=lambda c: (-c.crowding_distance, c.id))
    return individuals


def get_top(fronts: List[List[Chromosome]], num_to_select: int) -> List[Chromosome]:
    """
    Take whole fronts while they fit, then fill from the next front by crowding.

    Returns min(num_to_select, total individuals) chromosomes. The partially
    used front is sorted in place by the crowded comparison.
    """
    top: List[Chromosome] = []
    num_to_select = max(0, num_to_select)

    i = 0
    while i < len(fronts) and len(top) + len(fronts[i]) <= num_to_select:
        top.extend(fronts[i])
        i += 1

    if i < len(fronts) and len(top) < num_to_select:
        front = sort_by_crowded_comparison(fronts[i])
        top.extend(front[: num_to_select - len(top)])

    return top


def assign_ranks(fronts: List[List[Chromosome]]) -> None:
    """Write each chromosome's front index onto its rank field."""
    for rank, front in enumerate(fronts):
        for c in front:
            c.rank = rank
