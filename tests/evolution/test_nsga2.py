"""
Unit tests for non-dominated sorting and crowding distance.
"""

import math
import random

import numpy as np
import pytest

from evolution.interfaces import Chromosome, ObjectiveDirection, dominates
from evolution.nsga2 import (
    assign_ranks,
    domination_matrix,
    fast_non_dominated_sort,
    get_top,
    sort_by_crowded_comparison,
)
from neuroevolve.errors import ContractViolationError


def make(values, cid):
    return Chromosome(fitness_values=list(values), id=cid)


@pytest.fixture
def tradeoff_population():
    """A=(1,5), B=(3,3), C=(2,4), D=(5,1): mutually non-dominated"""
    return [
        make((1, 5), 0),
        make((3, 3), 1),
        make((2, 4), 2),
        make((5, 1), 3),
    ]


@pytest.fixture
def random_population():
    rng = random.Random(42)
    return [make([rng.random() for _ in range(3)], i) for i in range(60)]


class TestDomination:
    """Test the domination relation."""

    def test_better_in_all(self):
        assert dominates([0.9, 0.9], [0.1, 0.1])
        assert not dominates([0.1, 0.1], [0.9, 0.9])

    def test_equal_vectors_do_not_dominate(self):
        assert not dominates([0.5, 0.5], [0.5, 0.5])

    def test_no_worse_and_one_better(self):
        assert dominates([0.5, 0.6], [0.5, 0.5])

    def test_tradeoff(self):
        assert not dominates([1, 5], [2, 4])
        assert not dominates([2, 4], [1, 5])

    def test_minimize_direction(self):
        directions = [ObjectiveDirection.MINIMIZE, ObjectiveDirection.MAXIMIZE]
        assert dominates([0.1, 0.5], [0.2, 0.5], directions)
        assert not dominates([0.2, 0.5], [0.1, 0.5], directions)

    def test_chromosome_dominates(self):
        a = make((0.8, 0.8), 0)
        b = make((0.2, 0.8), 1)
        assert a.dominates(b)
        assert not b.dominates(a)

    def test_antisymmetry(self, random_population):
        for a in random_population:
            for b in random_population:
                if a is not b:
                    assert not (a.dominates(b) and b.dominates(a))

    def test_matrix_matches_pairwise(self, random_population):
        values = np.array([c.fitness_values for c in random_population])
        matrix = domination_matrix(values)
        for p, a in enumerate(random_population):
            for q, b in enumerate(random_population):
                assert matrix[p, q] == a.dominates(b)

    def test_direction_count_must_match(self):
        values = np.array([[0.9, 0.9], [0.1, 0.1]])
        with pytest.raises(ContractViolationError):
            domination_matrix(values, [ObjectiveDirection.MINIMIZE])
        with pytest.raises(ContractViolationError):
            dominates([0.9, 0.9], [0.1, 0.1], [ObjectiveDirection.MINIMIZE])


class TestFastNonDominatedSort:
    """Test front partitioning."""

    def test_empty_input(self):
        assert fast_non_dominated_sort([]) == []

    def test_tradeoffs_form_single_front(self, tradeoff_population):
        fronts = fast_non_dominated_sort(tradeoff_population)
        assert len(fronts) == 1
        assert {c.id for c in fronts[0]} == {0, 1, 2, 3}

    def test_chain_forms_one_front_each(self):
        population = [make((0.1, 0.1), 0), make((0.3, 0.3), 1), make((0.2, 0.2), 2)]
        fronts = fast_non_dominated_sort(population)
        assert [[c.id for c in f] for f in fronts] == [[1], [2], [0]]

    def test_identical_vectors_share_a_front(self):
        population = [make((0.5, 0.5), 0), make((0.5, 0.5), 1), make((0.1, 0.1), 2)]
        fronts = fast_non_dominated_sort(population)
        assert [sorted(c.id for c in f) for f in fronts] == [[0, 1], [2]]

    def test_front_zero_keeps_input_order(self):
        population = [make((0.9, 0.1), 5), make((0.1, 0.9), 2), make((0.5, 0.5), 9)]
        fronts = fast_non_dominated_sort(population)
        assert [c.id for c in fronts[0]] == [5, 2, 9]

    def test_minimize_reverses_ranking(self):
        population = [make((0.1,), 0), make((0.9,), 1)]
        fronts = fast_non_dominated_sort(population, [ObjectiveDirection.MINIMIZE])
        assert [[c.id for c in f] for f in fronts] == [[0], [1]]

    def test_partition_is_complete(self, random_population):
        fronts = fast_non_dominated_sort(random_population)
        ids = [c.id for f in fronts for c in f]
        assert sorted(ids) == list(range(60))

    def test_no_domination_within_front(self, random_population):
        fronts = fast_non_dominated_sort(random_population)
        for front in fronts:
            for a in front:
                for b in front:
                    assert not a.dominates(b)

    def test_later_fronts_are_dominated_by_earlier(self, random_population):
        fronts = fast_non_dominated_sort(random_population)
        for k in range(1, len(fronts)):
            for c in fronts[k]:
                assert any(p.dominates(c) for p in fronts[k - 1])

    def test_assign_ranks(self):
        population = [make((0.1,), 0), make((0.9,), 1), make((0.5,), 2)]
        fronts = fast_non_dominated_sort(population)
        assign_ranks(fronts)
        assert {c.id: c.rank for c in population} == {1: 0, 2: 1, 0: 2}

    def test_single_direction_not_broadcast(self):
        population = [make((0.9, 0.9), 1), make((0.1, 0.1), 2)]
        with pytest.raises(ContractViolationError):
            fast_non_dominated_sort(population, [ObjectiveDirection.MINIMIZE])


class TestCrowdingDistance:
    """Test crowding distance assignment and ordering."""

    def test_worked_example(self, tradeoff_population):
        front = sort_by_crowded_comparison(list(tradeoff_population))
        distances = {c.id: c.crowding_distance for c in front}

        assert math.isinf(distances[0])
        assert math.isinf(distances[3])
        assert distances[1] == pytest.approx(1.5)
        assert distances[2] == pytest.approx(1.0)
        assert [c.id for c in front] == [0, 3, 1, 2]

    def test_boundaries_are_infinite(self, random_population):
        front = fast_non_dominated_sort(random_population)[0]
        sort_by_crowded_comparison(front)
        for m in range(3):
            values = [c.fitness_values[m] for c in front]
            for c in front:
                if c.fitness_values[m] in (min(values), max(values)):
                    assert math.isinf(c.crowding_distance)

    def test_zero_range_objective_contributes_nothing(self):
        front = [make((0.5, 0.1), 0), make((0.5, 0.5), 1), make((0.5, 0.9), 2)]
        sort_by_crowded_comparison(front)
        assert [c.id for c in front] == [0, 2, 1]
        assert front[2].crowding_distance == pytest.approx(1.0)

    def test_single_member_front(self):
        front = [make((0.3, 0.3), 0)]
        sort_by_crowded_comparison(front)
        assert math.isinf(front[0].crowding_distance)

    def test_distance_is_reset_each_call(self, tradeoff_population):
        for c in tradeoff_population:
            c.crowding_distance = 100.0
        sort_by_crowded_comparison(tradeoff_population)
        assert {c.id: c.crowding_distance for c in tradeoff_population}[2] == pytest.approx(1.0)

    def test_ties_broken_by_id(self):
        front = [make((0.5, 0.5), 7), make((0.5, 0.5), 3)]
        sort_by_crowded_comparison(front)
        assert [c.id for c in front] == [3, 7]


class TestGetTop:
    """Test getTop selection."""

    def test_worked_example_takes_extremes(self, tradeoff_population):
        fronts = fast_non_dominated_sort(tradeoff_population)
        top = get_top(fronts, 2)
        assert [c.id for c in top] == [0, 3]

    def test_whole_fronts_before_partial(self):
        population = [
            make((0.9, 0.9), 0),
            make((0.8, 0.95), 1),
            make((0.1, 0.5), 2),
            make((0.5, 0.1), 3),
            make((0.3, 0.3), 4),
        ]
        fronts = fast_non_dominated_sort(population)
        assert [sorted(c.id for c in f) for f in fronts] == [[0, 1], [2, 3, 4]]

        top = get_top(fronts, 4)
        assert [c.id for c in top[:2]] == [0, 1]
        assert {c.id for c in top[2:]} == {2, 3}

    def test_exact_size(self, random_population):
        fronts = fast_non_dominated_sort(random_population)
        for n in (0, 1, 7, 30, 60):
            assert len(get_top(fronts, n)) == n

    def test_short_list_when_too_few(self, tradeoff_population):
        fronts = fast_non_dominated_sort(tradeoff_population)
        top = get_top(fronts, 10)
        assert len(top) == 4

    def test_negative_request(self, tradeoff_population):
        fronts = fast_non_dominated_sort(tradeoff_population)
        assert get_top(fronts, -3) == []
