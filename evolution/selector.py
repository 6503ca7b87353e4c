"""
NSGA-II based parent and elite selection.

Parents and elites are chosen per species from a species-local non-dominated
sort. The overall fitness of every individual is then derived from its front
in a population-wide sort, so that reproduction can allot offspring to species
by average fitness as in NEAT.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from evolution.interfaces import Chromosome, ObjectiveDirection, Species
from evolution.nsga2 import (
    assign_ranks,
    fast_non_dominated_sort,
    get_top,
    sort_by_crowded_comparison,
)
from evolve_core.config import SelectionSettings

logger = logging.getLogger(__name__)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _order_tail_front(chosen: List[Chromosome], fronts: List[List[Chromosome]]) -> None:
    """Crowding-sort the tail of chosen when it is a whole front.

    A partially taken front is already in crowded order from get_top.
    """
    taken = 0
    for front in fronts:
        if taken + len(front) > len(chosen):
            return
        taken += len(front)
        if taken == len(chosen):
            chosen[-len(front) :] = sort_by_crowded_comparison(front)
            return


@dataclass
class SelectionReport:
    """What one select() call did, for monitoring and debugging."""

    target: int = 0
    selected: Dict[int, List[int]] = field(default_factory=dict)
    elites: Dict[int, List[int]] = field(default_factory=dict)
    skipped_species: List[int] = field(default_factory=list)
    front_sizes: List[int] = field(default_factory=list)
    removed: int = 0
    added: int = 0
    result_size: int = 0

    @property
    def elite_count(self) -> int:
        return sum(len(ids) for ids in self.elites.values())


class NSGAIISelector:
    """
    Species-aware multi-objective selector.

    Usage per generation:
        selector.add(species, chromosomes, best_performing)
        parents = selector.select()
        selector.empty()
    """

    def __init__(
        self,
        settings: Optional[SelectionSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or SelectionSettings()
        self.rng = rng or random.Random()
        self.directions: Optional[List[ObjectiveDirection]] = (
            [ObjectiveDirection(d) for d in self.settings.objective_directions]
            if self.settings.objective_directions
            else None
        )
        self.population: List[Chromosome] = []
        self.species: List[Species] = []
        self.num_chromosomes = 0
        self.best_performing: Optional[Chromosome] = None
        self.last_report: Optional[SelectionReport] = None

    @property
    def changes_overall_fitness(self) -> bool:
        """select() overwrites every chromosome's overall fitness."""
        return True

    def add(
        self,
        species: Sequence[Species],
        chromosomes: Sequence[Chromosome],
        best_performing: Optional[Chromosome],
    ) -> None:
        """Accumulate a batch of species and their chromosomes."""
        self.num_chromosomes += len(chromosomes)
        self.population.extend(chromosomes)
        self.species.extend(species)
        self.best_performing = best_performing
        for s in species:
            s.contains_best_performing = best_performing is not None and best_performing in s

    def empty(self) -> None:
        """Clear accumulated state ready for the next generation."""
        self.population = []
        self.species = []
        self.num_chromosomes = 0
        self.best_performing = None

    def select(self) -> List[Chromosome]:
        """
        Choose parents for the next generation.

        Returns exactly round(num_chromosomes * survival_rate) chromosomes unless
        the elites alone exceed that number, in which case all elites are kept.
        """
        settings = self.settings
        report = SelectionReport()
        result: List[Chromosome] = []
        selected_per_species: Dict[int, int] = {}

        for s in self.species:
            if self._is_stagnant(s):
                s.set_elites([])
                selected_per_species[s.id] = 0
                report.skipped_species.append(s.id)
                continue

            fronts = fast_non_dominated_sort(s.chromosomes, self.directions)

            num_parents = max(1, round_half_up(settings.survival_rate * s.size))
            if s.contains_best_performing:
                num_parents = max(num_parents, settings.elitism_min_to_select)
            selected = get_top(fronts, num_parents)
            self._ensure_best_included(s, selected, fronts)

            elites: List[Chromosome] = []
            if s.size >= settings.elitism_min_species_size:
                num_elites = round_half_up(settings.elitism_proportion * s.size)
                num_elites = max(num_elites, settings.elitism_min_to_select)
                num_elites = min(num_elites, num_parents)
                if num_elites > 0:
                    elites = get_top(fronts, num_elites)
            self._ensure_best_included(s, elites, fronts)
            s.set_elites(elites)

            result.extend(selected)
            selected_per_species[s.id] = len(selected)
            report.selected[s.id] = [c.id for c in selected]
            report.elites[s.id] = [c.id for c in elites]

        target = round_half_up(self.num_chromosomes * settings.survival_rate)
        report.target = target
        if len(result) > target:
            report.removed = self._trim(result, target, selected_per_species)
        elif len(result) < target:
            report.added = self._top_up(result, target)

        selected_ids = {id(c) for c in result}
        for c in self.population:
            c.is_selected_for_next_generation = id(c) in selected_ids

        fronts = fast_non_dominated_sort(self.population, self.directions)
        assign_ranks(fronts)
        self._assign_overall_fitness(fronts)
        report.front_sizes = [len(f) for f in fronts]
        report.result_size = len(result)
        self.last_report = report

        self._log_report(report)
        return result

    def _is_stagnant(self, s: Species) -> bool:
        return (
            len(self.species) > 1
            and s.stagnant_generations_count >= self.settings.max_stagnant_generations
            and s.age >= self.settings.min_age
            and not s.contains_best_performing
        )

    def _ensure_best_included(
        self,
        s: Species,
        chosen: List[Chromosome],
        fronts: List[List[Chromosome]],
    ) -> None:
        """Put the population-wide best performer into chosen if it belongs to s.

        It replaces the lowest ranked member: the last one after the tail front
        is ordered by crowded comparison.
        """
        best = self.best_performing
        if best is None or not s.contains_best_performing:
            return
        if any(c is best for c in chosen):
            return
        if chosen:
            _order_tail_front(chosen, fronts)
            chosen[-1] = best
        else:
            chosen.append(best)

    def _trim(
        self,
        result: List[Chromosome],
        target: int,
        selected_per_species: Dict[int, int],
    ) -> int:
        """Randomly remove non-elites until result has target members."""
        self.rng.shuffle(result)
        to_remove = len(result) - target
        removed = 0

        # Spare a species' last remaining parent on the first pass
        for spare_single_parents in (True, False):
            i = len(result) - 1
            while i >= 0 and removed < to_remove:
                c = result[i]
                sid = c.species.id if c.species is not None else None
                single = sid is not None and selected_per_species.get(sid, 0) <= 1
                if not c.is_elite and not (spare_single_parents and single):
                    del result[i]
                    removed += 1
                    if sid is not None:
                        selected_per_species[sid] = selected_per_species.get(sid, 0) - 1
                i -= 1
            if removed == to_remove:
                break

        if removed < to_remove:
            logger.warning(
                f"Elites alone exceed the survival target: keeping {len(result)} "
                f"chromosomes, target was {target}"
            )
        return removed

    def _top_up(self, result: List[Chromosome], target: int) -> int:
        """Randomly add chromosomes from the whole population until result has target members."""
        present = {id(c) for c in result}
        candidates = list(self.population)
        self.rng.shuffle(candidates)
        added = 0
        for c in candidates:
            if len(result) >= target:
                break
            if id(c) not in present:
                result.append(c)
                present.add(id(c))
                added += 1
        return added

    def _assign_overall_fitness(self, fronts: List[List[Chromosome]]) -> None:
        rank_max = len(fronts) - 1
        for rank, front in enumerate(fronts):
            if rank_max == 0:
                overall = 1.0
            else:
                overall = ((rank_max - rank) / rank_max) ** 2
            for c in front:
                c.set_fitness_value(overall)

    def _log_report(self, report: SelectionReport) -> None:
        logger.info(
            f"Selected {report.result_size} of {self.num_chromosomes} chromosomes "
            f"(target {report.target}, {report.elite_count} elites, "
            f"{len(report.skipped_species)} species skipped, "
            f"{len(report.front_sizes)} fronts)"
        )
        if logger.isEnabledFor(logging.DEBUG):
            for sid, ids in report.selected.items():
                logger.debug(
                    f"Species {sid}: parents {ids}, elites {report.elites.get(sid, [])}",
                    extra={"species_id": sid},
                )
