"""
Bulk fitness evaluation for neuroevolve.
Evaluates a generation concurrently on a worker thread pool, fills novelty
objectives from the novelty archives and derives each chromosome's overall
fitness as a weighted sum of its objectives.
"""

import asyncio
import logging
import math
import os
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence

from evolution.interfaces import (
    DEFAULT_POPULATION_SIZE,
    BulkFitnessFunction,
    Chromosome,
    FitnessRecord,
    IdentityTranscriber,
    PerformanceTarget,
    Transcriber,
)
from evolution.novelty import NoveltySearch
from evolve_core.config import EvaluationSettings, NoveltySettings
from neuroevolve.errors import ContractViolationError, InvalidConfigError

logger = logging.getLogger(__name__)


@dataclass
class EvaluationSummary:
    """Outcome of evaluating one generation"""

    generation: int
    evaluated: int = 0
    skipped_stable: int = 0
    duds: int = 0
    failures: int = 0
    best_performance: float = math.nan
    best_chromosome: Optional[Chromosome] = None
    archive_sizes: List[int] = field(default_factory=list)
    archive_thresholds: List[float] = field(default_factory=list)
    archive_additions: List[int] = field(default_factory=list)
    end_run: bool = False
    duration_ms: float = 0.0


class BulkFitnessEvaluator:
    """
    Two-phase concurrent evaluator.

    Phase 1 transcribes and evaluates every chromosome on the thread pool.
    Phase 2 starts only once phase 1 has completed and computes novelty
    objectives, after which every novelty archive merges its queue once.
    """

    def __init__(
        self,
        fitness_function: BulkFitnessFunction,
        settings: Optional[EvaluationSettings] = None,
        novelty_settings: Optional[NoveltySettings] = None,
        population_size: int = DEFAULT_POPULATION_SIZE,
        transcriber: Optional[Transcriber] = None,
        seed: Optional[int] = None,
    ):
        self.fitness_function = fitness_function
        self.settings = settings or EvaluationSettings()
        self.transcriber = transcriber or IdentityTranscriber()
        self.max_threads = self.settings.max_threads or os.cpu_count() or 1

        self.fitness_objectives = fitness_function.fitness_objectives_count()
        self.novelty_objectives = fitness_function.novelty_objective_count()
        self.objective_count = self.fitness_objectives + self.novelty_objectives
        self.weights = self._normalised_weights(self.settings.objective_weights)

        self.novelty_archives: List[NoveltySearch] = [
            NoveltySearch(novelty_settings, population_size, seed)
            for _ in range(self.novelty_objectives)
        ]

        self.target_type = PerformanceTarget(self.settings.target_performance_type)
        self.best_performances: Deque[float] = deque(
            maxlen=self.settings.target_performance_average_count
        )
        self.best_performance = math.nan
        self.end_run = False
        self.generation = 0

        logger.info(
            f"Fitness evaluation with {self.max_threads} threads, objectives "
            f"{fitness_function.objective_labels()}, weights "
            f"{[round(w, 4) for w in self.weights]}"
        )

    def _normalised_weights(self, weights: Optional[Sequence[float]]) -> List[float]:
        if weights is None:
            return [1.0 / self.objective_count] * self.objective_count
        if len(weights) != self.objective_count:
            raise InvalidConfigError(
                [
                    f"evaluation.objective_weights has {len(weights)} values but the "
                    f"fitness function defines {self.objective_count} objectives "
                    f"(novelty objectives are weighted after fitness objectives)"
                ]
            )
        total = float(sum(weights))
        return [w / total for w in weights]

    async def evaluate(self, chromosomes: Sequence[Chromosome]) -> EvaluationSummary:
        """Evaluate a generation and return what happened."""
        start = time.perf_counter()
        summary = EvaluationSummary(generation=self.generation)
        self.fitness_function.initialise_evaluation()

        to_evaluate: List[Chromosome] = []
        for c in chromosomes:
            if self.fitness_function.fitness_values_stable() and self._has_values(c):
                summary.skipped_stable += 1
            else:
                to_evaluate.append(c)

        evaluated: List[Chromosome] = []
        with ThreadPoolExecutor(
            max_workers=self.max_threads, thread_name_prefix="fitness"
        ) as executor:
            await self._fitness_phase(executor, to_evaluate, evaluated, summary)

            scored = [c for c in chromosomes if self._has_values(c)]
            if self.novelty_archives:
                await self._novelty_phase(executor, scored)
                for archive in self.novelty_archives:
                    summary.archive_additions.append(archive.finished_evaluation())
                    summary.archive_sizes.append(archive.archive_size)
                    summary.archive_thresholds.append(archive.archive_threshold)

        for c in scored:
            self._set_overall_fitness(c)
        scored_ids = {id(c) for c in scored}
        for c in chromosomes:
            if id(c) not in scored_ids:
                # Duds and failed first evaluations rank last
                c.fitness_values = [0.0] * self.objective_count
                c.set_fitness_value(0.0)
        summary.evaluated = len(evaluated)

        self._track_best_performance(scored, summary)
        self.fitness_function.finalise_evaluation()

        summary.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Generation {self.generation} evaluated: {summary.evaluated} evaluated, "
            f"{summary.skipped_stable} unchanged, {summary.duds} duds, "
            f"{summary.failures} failures, best performance "
            f"{summary.best_performance:.4f}",
            extra={"generation": self.generation, "duration_ms": summary.duration_ms},
        )
        self.generation += 1
        return summary

    async def _fitness_phase(
        self,
        executor: ThreadPoolExecutor,
        chromosomes: Sequence[Chromosome],
        evaluated: List[Chromosome],
        summary: EvaluationSummary,
    ) -> None:
        loop = asyncio.get_running_loop()
        slots: asyncio.Queue = asyncio.Queue()
        for index in range(self.max_threads):
            slots.put_nowait(index)

        async def evaluate_chromosome(c: Chromosome) -> None:
            thread_index = await slots.get()
            try:
                record = await loop.run_in_executor(
                    executor, self._evaluate_one, c, thread_index
                )
                if record is None:
                    summary.duds += 1
                    return
                self._apply_record(c, record)
                evaluated.append(c)
            except Exception as e:
                summary.failures += 1
                logger.error(
                    f"Evaluation of chromosome {c.id} failed: {e}",
                    extra={"chromosome_id": c.id},
                )
            finally:
                slots.put_nowait(thread_index)

        await asyncio.gather(*(evaluate_chromosome(c) for c in chromosomes))

    def _evaluate_one(
        self, chromosome: Chromosome, thread_index: int
    ) -> Optional[FitnessRecord]:
        substrate = self.transcriber.transcribe(chromosome)
        if substrate is None:
            return None
        return self.fitness_function.evaluate(chromosome, substrate, thread_index)

    def _apply_record(self, c: Chromosome, record: FitnessRecord) -> None:
        values = [float(v) for v in record.fitness_values]
        if len(values) != self.fitness_objectives:
            raise ContractViolationError(
                f"{type(self.fitness_function).__name__} returned {len(values)} "
                f"fitness values, expected {self.fitness_objectives}"
            )
        for v in values:
            if not 0 <= v <= 1:
                raise ValueError(f"Fitness values must be in the range [0, 1], but {v} was given")
        performance = record.performance
        if performance is not None and not math.isnan(performance):
            if not 0 <= performance <= 1:
                raise ValueError(
                    f"Performance values must be in the range [0, 1], "
                    f"but {performance} was given"
                )
        if len(record.behaviours) < self.novelty_objectives:
            raise ContractViolationError(
                f"{type(self.fitness_function).__name__} returned "
                f"{len(record.behaviours)} behaviours, expected {self.novelty_objectives}"
            )

        novelty = (
            c.fitness_values[self.fitness_objectives :]
            if len(c.fitness_values) == self.objective_count
            else [0.0] * self.novelty_objectives
        )
        c.fitness_values = values + list(novelty)
        c.behaviours = list(record.behaviours)
        if performance is not None:
            c.set_performance_value(performance)

    def _has_values(self, c: Chromosome) -> bool:
        return len(c.fitness_values) == self.objective_count and not any(
            math.isnan(v) for v in c.fitness_values[: self.fitness_objectives]
        )

    async def _novelty_phase(
        self, executor: ThreadPoolExecutor, chromosomes: Sequence[Chromosome]
    ) -> None:
        for n, archive in enumerate(self.novelty_archives):
            archive.set_current_population([c.behaviours[n] for c in chromosomes])

        loop = asyncio.get_running_loop()

        def novelty_values(c: Chromosome) -> List[float]:
            return [
                archive.test_novelty(c.behaviours[n])
                for n, archive in enumerate(self.novelty_archives)
            ]

        results = await asyncio.gather(
            *(loop.run_in_executor(executor, novelty_values, c) for c in chromosomes)
        )
        for c, values in zip(chromosomes, results):
            for n, value in enumerate(values):
                c.set_fitness_value(value, self.fitness_objectives + n)
            c.novelty = sum(values) / len(values)

    def _set_overall_fitness(self, c: Chromosome) -> None:
        overall = sum(w * v for w, v in zip(self.weights, c.fitness_values))
        c.set_fitness_value(min(1.0, max(0.0, overall)))
        if self.settings.force_performance_fitness:
            c.set_performance_value(c.fitness)

    def _track_best_performance(
        self, chromosomes: Sequence[Chromosome], summary: EvaluationSummary
    ) -> None:
        candidates = [c for c in chromosomes if not math.isnan(c.performance)]
        if candidates:
            if self.target_type is PerformanceTarget.HIGHER:
                best = min(candidates, key=lambda c: (-c.performance, c.id))
            else:
                best = min(candidates, key=lambda c: (c.performance, c.id))
            summary.best_chromosome = best
            summary.best_performance = best.performance
            self.best_performance = best.performance
            self.best_performances.append(best.performance)

        self.end_run = False
        if len(self.best_performances) == self.best_performances.maxlen:
            average = sum(self.best_performances) / len(self.best_performances)
            target = self.settings.target_performance
            if (self.target_type is PerformanceTarget.HIGHER and average >= target) or (
                self.target_type is PerformanceTarget.LOWER and average <= target
            ):
                self.end_run = True
                logger.info(
                    f"Target performance {target} reached (average of last "
                    f"{len(self.best_performances)} best: {average:.4f})"
                )
        summary.end_run = self.end_run
