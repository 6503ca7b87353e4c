"""
Evolution Engine implementation for neuroevolve.
Central orchestrator for the generation loop: evaluate, speciate, select, reproduce.
"""

import logging
import math
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from evolution.fitness import BulkFitnessEvaluator, EvaluationSummary
from evolution.interfaces import (
    BulkFitnessFunction,
    Chromosome,
    PerformanceTarget,
    ReproductionOperator,
    SpeciationStrategy,
    Species,
    Transcriber,
)
from evolution.selector import NSGAIISelector, SelectionReport
from evolve_core.config import Config
from monitoring.metrics import GenerationMetricsCollector, GenerationStats
from neuroevolve.errors import InvalidConfigError
from neuroevolve.logging_config import get_logger

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Result of one generation"""

    generation: int
    population: List[Chromosome]
    parents: List[Chromosome]
    next_population: List[Chromosome]
    species: List[Species]
    evaluation: EvaluationSummary
    selection: Optional[SelectionReport]
    best_chromosome: Optional[Chromosome]
    duration_ms: float

    @property
    def best_performance(self) -> float:
        return self.evaluation.best_performance


@dataclass
class EvolutionResult:
    """Result of an evolution run"""

    generations: int
    final_population: List[Chromosome]
    best_chromosome: Optional[Chromosome]
    best_performance: float
    target_reached: bool
    duration_seconds: float
    history: List[GenerationStats] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)


class EvolutionEngine:
    """
    Generation loop for multi-objective neuroevolution.

    Speciation and reproduction are supplied by the caller; evaluation,
    novelty and selection are handled here.
    """

    def __init__(
        self,
        fitness_evaluator: BulkFitnessEvaluator,
        selector: NSGAIISelector,
        speciation: SpeciationStrategy,
        reproduction: ReproductionOperator,
        config: Optional[Config] = None,
        metrics: Optional[GenerationMetricsCollector] = None,
    ):
        self.fitness_evaluator = fitness_evaluator
        self.selector = selector
        self.speciation = speciation
        self.reproduction = reproduction
        self.config = config or Config()
        self.metrics = metrics or GenerationMetricsCollector()
        self._check_objective_directions()

        self.current_generation = 0
        self.species: List[Species] = []
        self.event_listeners: List[Tuple[str, Callable]] = []
        self.elog = get_logger("evolution.engine")

    def _check_objective_directions(self) -> None:
        directions = self.selector.directions
        objectives = self.fitness_evaluator.objective_count
        if directions is not None and len(directions) != objectives:
            raise InvalidConfigError(
                [
                    f"selection.objective_directions has {len(directions)} entries but "
                    f"the fitness function defines {objectives} objectives "
                    f"({self.fitness_evaluator.fitness_objectives} fitness, "
                    f"{self.fitness_evaluator.novelty_objectives} novelty)"
                ]
            )

    @classmethod
    def from_config(
        cls,
        fitness_function: BulkFitnessFunction,
        speciation: SpeciationStrategy,
        reproduction: ReproductionOperator,
        config: Optional[Config] = None,
        transcriber: Optional[Transcriber] = None,
    ) -> "EvolutionEngine":
        """Build the evaluator and selector from configuration."""
        config = config or Config()
        seed = config.evolution.random_seed
        evaluator = BulkFitnessEvaluator(
            fitness_function,
            settings=config.evaluation,
            novelty_settings=config.novelty,
            population_size=config.evolution.population_size,
            transcriber=transcriber,
            seed=seed,
        )
        selector = NSGAIISelector(config.selection, rng=random.Random(seed))
        return cls(evaluator, selector, speciation, reproduction, config)

    async def run_generation(self, population: List[Chromosome]) -> GenerationResult:
        """
        Run one generation.

        Steps:
        1. Evaluate fitness and novelty
        2. Speciate and age species
        3. Select parents and elites
        4. Reproduce into the next population
        """
        generation = self.current_generation
        start = time.perf_counter()
        self.elog.set_context(generation=generation)
        self.elog.generation_start(generation, len(population))
        self._emit_event(
            "generation_started", {"generation": generation, "population": population}
        )

        try:
            summary = await self.fitness_evaluator.evaluate(population)
            for size, threshold, added in zip(
                summary.archive_sizes, summary.archive_thresholds, summary.archive_additions
            ):
                if added:
                    self.elog.archive_updated(size, threshold)

            best = summary.best_chromosome
            self.species = [
                s for s in self.speciation.speciate(population, self.species) if s.size > 0
            ]
            for s in self.species:
                s.new_generation()

            self.selector.add(self.species, population, best)
            parents = self.selector.select()
            report = self.selector.last_report
            self.selector.empty()

            if report is not None:
                stagnant = {s.id: s.stagnant_generations_count for s in self.species}
                for sid in report.skipped_species:
                    self.elog.species_skipped(sid, stagnant.get(sid, 0))

            next_population = self.reproduction.reproduce(
                parents, self.species, self.config.evolution.population_size
            )

            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.record(
                self._generation_stats(generation, population, summary, report, duration_ms)
            )

            result = GenerationResult(
                generation=generation,
                population=population,
                parents=parents,
                next_population=next_population,
                species=list(self.species),
                evaluation=summary,
                selection=report,
                best_chromosome=best,
                duration_ms=duration_ms,
            )

            self.elog.generation_complete(generation, summary.best_performance, duration_ms)
            self._emit_event(
                "generation_completed", {"generation": generation, "result": result}
            )
            self.current_generation += 1
            return result

        except Exception as e:
            logger.error(f"Generation {generation} failed: {e}")
            self._emit_event(
                "evolution_failed", {"generation": generation, "error": str(e)}
            )
            raise
        finally:
            self.elog.clear_context()

    async def evolve(
        self, population: List[Chromosome], n_generations: Optional[int] = None
    ) -> EvolutionResult:
        """Run generations until the limit or the performance target is reached."""
        n_generations = n_generations or self.config.evolution.max_generations
        start = time.perf_counter()
        first_generation = self.current_generation

        best: Optional[Chromosome] = None
        best_performance = math.nan
        target_reached = False

        for _ in range(n_generations):
            result = await self.run_generation(population)
            if self._is_better(result.best_performance, best_performance):
                best = result.best_chromosome
                best_performance = result.best_performance
            population = result.next_population

            if self.fitness_evaluator.end_run:
                target_reached = True
                logger.info("Performance target reached, ending evolution")
                break

        generations = self.current_generation - first_generation
        duration = time.perf_counter() - start
        self.elog.evolution_complete(generations, best_performance, int(duration * 1000))

        evolution_result = EvolutionResult(
            generations=generations,
            final_population=population,
            best_chromosome=best,
            best_performance=best_performance,
            target_reached=target_reached,
            duration_seconds=duration,
            history=self.metrics.get_history(generations),
        )
        self._emit_event("evolution_completed", {"result": evolution_result})
        return evolution_result

    def _is_better(self, candidate: float, incumbent: float) -> bool:
        if math.isnan(candidate):
            return False
        if math.isnan(incumbent):
            return True
        if self.fitness_evaluator.target_type is PerformanceTarget.LOWER:
            return candidate < incumbent
        return candidate > incumbent

    def _generation_stats(
        self,
        generation: int,
        population: List[Chromosome],
        summary: EvaluationSummary,
        report: Optional[SelectionReport],
        duration_ms: float,
    ) -> GenerationStats:
        performances = [c.performance for c in population if not math.isnan(c.performance)]
        fitnesses = [c.fitness for c in population if not math.isnan(c.fitness)]
        return GenerationStats(
            generation=generation,
            population_size=len(population),
            species_count=len(self.species),
            front_count=len(report.front_sizes) if report else 0,
            first_front_size=report.front_sizes[0] if report and report.front_sizes else 0,
            selected_count=report.result_size if report else 0,
            elite_count=report.elite_count if report else 0,
            best_performance=summary.best_performance,
            mean_performance=(
                sum(performances) / len(performances) if performances else math.nan
            ),
            best_fitness=max(fitnesses) if fitnesses else math.nan,
            mean_fitness=sum(fitnesses) / len(fitnesses) if fitnesses else math.nan,
            archive_size=summary.archive_sizes[0] if summary.archive_sizes else 0,
            archive_threshold=(
                summary.archive_thresholds[0] if summary.archive_thresholds else math.nan
            ),
            evaluation_failures=summary.failures,
            duration_ms=duration_ms,
        )

    def add_event_listener(self, event_type: str, callback: Callable):
        """Add event listener for evolution events"""
        self.event_listeners.append((event_type, callback))

    def _emit_event(self, event_type: str, data: Dict[str, Any]):
        """Emit event to all registered listeners"""
        for listener_type, callback in self.event_listeners:
            if listener_type == event_type:
                try:
                    callback(data)
                except Exception as e:
                    logger.error(f"Event listener error: {e}")
