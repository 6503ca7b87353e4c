"""
Unit tests for BulkFitnessEvaluator.
Tests two-phase evaluation, novelty objectives, failure isolation and run targets.
"""

import threading

import pytest

from evolution.fitness import BulkFitnessEvaluator
from evolution.interfaces import BulkFitnessFunction, Chromosome, FitnessRecord, Transcriber
from evolution.novelty import RealVectorBehaviour
from evolve_core.config import EvaluationSettings, NoveltySettings
from neuroevolve.errors import InvalidConfigError


class VectorFitness(BulkFitnessFunction):
    """Fitness function that reads objective values straight from the genome"""

    def __init__(self, novelty: int = 0, stable: bool = False):
        self.novelty = novelty
        self.stable = stable
        self.fail_ids = set()
        self.calls = 0
        self.thread_indices = set()
        self.initialised = 0
        self.finalised = 0
        self._lock = threading.Lock()

    def fitness_objectives_count(self) -> int:
        return 2

    def novelty_objective_count(self) -> int:
        return self.novelty

    def fitness_values_stable(self) -> bool:
        return self.stable

    def initialise_evaluation(self) -> None:
        self.initialised += 1

    def finalise_evaluation(self) -> None:
        self.finalised += 1

    def evaluate(self, chromosome, substrate, eval_thread_index):
        with self._lock:
            self.calls += 1
            self.thread_indices.add(eval_thread_index)
        if chromosome.id in self.fail_ids:
            raise RuntimeError("simulator crashed")
        genome = list(substrate.material)
        return FitnessRecord(
            fitness_values=genome,
            performance=genome[0],
            behaviours=[RealVectorBehaviour(genome) for _ in range(self.novelty)],
        )


class OverrunPerformance(VectorFitness):
    """Reports a performance above 1 for selected chromosomes"""

    def __init__(self):
        super().__init__()
        self.overrun_ids = set()

    def evaluate(self, chromosome, substrate, eval_thread_index):
        record = super().evaluate(chromosome, substrate, eval_thread_index)
        if chromosome.id in self.overrun_ids:
            record.performance = 1.7
        return record


class SkipMissingGenome(Transcriber):
    def transcribe(self, chromosome):
        return None if chromosome.material is None else chromosome


def make_population(genomes):
    return [
        Chromosome(fitness_values=[], id=1000 + i, material=g) for i, g in enumerate(genomes)
    ]


@pytest.fixture
def population():
    return make_population([(0.2, 0.6), (0.9, 0.5), (0.4, 0.4), (0.1, 0.8)])


class TestFitnessPhase:
    """Test objective values and overall fitness."""

    @pytest.mark.asyncio
    async def test_writes_values_and_overall_fitness(self, population):
        evaluator = BulkFitnessEvaluator(VectorFitness(), EvaluationSettings(max_threads=2))

        summary = await evaluator.evaluate(population)

        assert summary.evaluated == 4
        assert summary.failures == 0
        assert population[0].fitness_values == [0.2, 0.6]
        assert population[0].performance == pytest.approx(0.2)
        assert population[0].fitness == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_weighted_sum(self, population):
        settings = EvaluationSettings(max_threads=2, objective_weights=[3.0, 1.0])
        evaluator = BulkFitnessEvaluator(VectorFitness(), settings)

        await evaluator.evaluate(population)

        assert evaluator.weights == pytest.approx([0.75, 0.25])
        assert population[1].fitness == pytest.approx(0.75 * 0.9 + 0.25 * 0.5)

    def test_weight_count_mismatch(self):
        settings = EvaluationSettings(objective_weights=[1.0, 1.0, 1.0])
        with pytest.raises(InvalidConfigError):
            BulkFitnessEvaluator(VectorFitness(), settings)

    @pytest.mark.asyncio
    async def test_thread_indices_within_pool(self):
        fitness = VectorFitness()
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=3))
        population = make_population([(0.5, 0.5)] * 20)

        await evaluator.evaluate(population)

        assert fitness.calls == 20
        assert fitness.thread_indices <= {0, 1, 2}

    @pytest.mark.asyncio
    async def test_lifecycle_hooks(self, population):
        fitness = VectorFitness()
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=2))

        await evaluator.evaluate(population)

        assert fitness.initialised == 1
        assert fitness.finalised == 1

    @pytest.mark.asyncio
    async def test_force_performance_fitness(self, population):
        settings = EvaluationSettings(max_threads=2, force_performance_fitness=True)
        evaluator = BulkFitnessEvaluator(VectorFitness(), settings)

        await evaluator.evaluate(population)

        for c in population:
            assert c.performance == pytest.approx(c.fitness)

    @pytest.mark.asyncio
    async def test_stable_values_not_reevaluated(self, population):
        fitness = VectorFitness(stable=True)
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=2))

        await evaluator.evaluate(population)
        summary = await evaluator.evaluate(population)

        assert fitness.calls == 4
        assert summary.skipped_stable == 4
        assert summary.evaluated == 0


class TestFailureIsolation:
    """Test that one bad evaluation does not lose the generation."""

    @pytest.mark.asyncio
    async def test_failure_counted_and_logged(self, population, caplog):
        fitness = VectorFitness()
        fitness.fail_ids.add(population[2].id)
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=2))

        summary = await evaluator.evaluate(population)

        assert summary.failures == 1
        assert summary.evaluated == 3
        assert population[0].fitness_values == [0.2, 0.6]
        assert population[2].fitness_values == [0.0, 0.0]
        assert population[2].fitness == 0.0
        assert "simulator crashed" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_values(self, population):
        fitness = VectorFitness()
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=2))
        await evaluator.evaluate(population)

        fitness.fail_ids.add(population[1].id)
        summary = await evaluator.evaluate(population)

        assert summary.failures == 1
        assert population[1].fitness_values == [0.9, 0.5]

    @pytest.mark.asyncio
    async def test_out_of_range_performance_keeps_previous_state(self, population):
        fitness = OverrunPerformance()
        evaluator = BulkFitnessEvaluator(fitness, EvaluationSettings(max_threads=2))
        await evaluator.evaluate(population)
        target = population[0]

        fitness.overrun_ids.add(target.id)
        target.material = (0.9, 0.5)
        summary = await evaluator.evaluate(population)

        assert summary.failures == 1
        assert target.fitness_values == [0.2, 0.6]
        assert target.performance == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_out_of_range_values_are_failures(self):
        evaluator = BulkFitnessEvaluator(VectorFitness(), EvaluationSettings(max_threads=1))
        population = make_population([(0.5, 1.5), (0.5, 0.5)])

        summary = await evaluator.evaluate(population)

        assert summary.failures == 1
        assert population[0].fitness_values == [0.0, 0.0]

    @pytest.mark.asyncio
    async def test_duds_skipped(self):
        evaluator = BulkFitnessEvaluator(
            VectorFitness(), EvaluationSettings(max_threads=2), transcriber=SkipMissingGenome()
        )
        population = make_population([(0.5, 0.5), None, (0.3, 0.3)])

        summary = await evaluator.evaluate(population)

        assert summary.duds == 1
        assert summary.evaluated == 2
        assert population[1].fitness_values == [0.0, 0.0]


class TestNoveltyPhase:
    """Test novelty objectives."""

    @pytest.mark.asyncio
    async def test_novelty_objective_filled(self):
        evaluator = BulkFitnessEvaluator(
            VectorFitness(novelty=1),
            EvaluationSettings(max_threads=2),
            NoveltySettings(archive_threshold=0.1),
        )
        population = make_population([(0.0, 0.0), (1.0, 1.0)])

        summary = await evaluator.evaluate(population)

        for c in population:
            assert len(c.fitness_values) == 3
            assert c.fitness_values[2] == pytest.approx(0.5)
            assert c.novelty == pytest.approx(0.5)
        assert population[1].fitness == pytest.approx(2.5 / 3)
        assert summary.archive_additions == [2]
        assert summary.archive_sizes == [2]
        assert evaluator.novelty_archives[0].current_pop == []

    @pytest.mark.asyncio
    async def test_archive_persists_across_generations(self):
        evaluator = BulkFitnessEvaluator(
            VectorFitness(novelty=1),
            EvaluationSettings(max_threads=2),
            NoveltySettings(archive_threshold=0.1),
        )
        await evaluator.evaluate(make_population([(0.0, 0.0), (1.0, 1.0)]))
        summary = await evaluator.evaluate(make_population([(0.0, 0.0), (0.5, 0.5)]))

        assert summary.archive_additions == [1]
        assert evaluator.novelty_archives[0].archive_size == 3


class TestRunTarget:
    """Test best performance tracking and end-of-run detection."""

    @pytest.mark.asyncio
    async def test_end_run_after_average_window(self):
        settings = EvaluationSettings(
            max_threads=1, target_performance=0.8, target_performance_average_count=2
        )
        evaluator = BulkFitnessEvaluator(VectorFitness(), settings)
        population = make_population([(0.9, 0.5), (0.3, 0.3)])

        first = await evaluator.evaluate(population)
        assert first.best_performance == pytest.approx(0.9)
        assert first.best_chromosome is population[0]
        assert not first.end_run

        second = await evaluator.evaluate(population)
        assert second.end_run
        assert evaluator.end_run

    @pytest.mark.asyncio
    async def test_target_not_reached(self, population):
        settings = EvaluationSettings(max_threads=2, target_performance=0.95)
        evaluator = BulkFitnessEvaluator(VectorFitness(), settings)

        summary = await evaluator.evaluate(population)

        assert not summary.end_run

    @pytest.mark.asyncio
    async def test_lower_is_better(self):
        settings = EvaluationSettings(
            max_threads=1, target_performance=0.2, target_performance_type="lower"
        )
        evaluator = BulkFitnessEvaluator(VectorFitness(), settings)
        population = make_population([(0.6, 0.5), (0.1, 0.5)])

        summary = await evaluator.evaluate(population)

        assert summary.best_chromosome is population[1]
        assert summary.best_performance == pytest.approx(0.1)
        assert summary.end_run

    @pytest.mark.asyncio
    async def test_generation_counter(self, population):
        evaluator = BulkFitnessEvaluator(VectorFitness(), EvaluationSettings(max_threads=2))
        first = await evaluator.evaluate(population)
        second = await evaluator.evaluate(population)
        assert (first.generation, second.generation) == (0, 1)
