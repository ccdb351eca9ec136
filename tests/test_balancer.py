"""Tests for least-loaded selection."""

import random

import pytest

from balancer import select_least_loaded
from models import Agent


def agents_with(*counts):
    return [Agent(id=f"a{i}", first_name=f"Agent{i}", is_online=True, open_work_count=c) for i, c in enumerate(counts)]


class TestSelectLeastLoaded:
    def test_picks_minimum(self):
        agents = agents_with(2, 0, 5)
        assert select_least_loaded(agents).id == "a1"

    @pytest.mark.parametrize("counts,expected", [
        ((1, 1, 1), "a0"),
        ((3, 1, 1), "a1"),
        ((4, 2, 7, 2), "a1"),
        ((0,), "a0"),
    ])
    def test_ties_go_to_first_in_input_order(self, counts, expected):
        assert select_least_loaded(agents_with(*counts)).id == expected

    def test_empty_is_no_selection(self):
        assert select_least_loaded([]) is None

    def test_no_defined_counts_is_no_selection(self):
        assert select_least_loaded(agents_with(None, None)) is None

    def test_undefined_counts_are_skipped(self):
        assert select_least_loaded(agents_with(None, 4, 3)).id == "a2"

    def test_does_not_mutate_input(self):
        agents = agents_with(3, 1, 2)
        before = [a.model_dump() for a in agents]
        select_least_loaded(agents)
        select_least_loaded(agents)
        assert [a.model_dump() for a in agents] == before

    def test_minimum_and_earliest_over_random_collections(self):
        rng = random.Random(20261017)
        for _ in range(500):
            counts = [rng.randint(0, 6) for _ in range(rng.randint(1, 8))]
            chosen = select_least_loaded(agents_with(*counts))
            assert all(chosen.open_work_count <= c for c in counts)
            assert chosen.id == f"a{counts.index(min(counts))}"
