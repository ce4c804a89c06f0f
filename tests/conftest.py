import numpy as np
import pytest

from lrp import ProblemModel, SimultaneousClusterer


GARDEN = [
    [-1, 2, 3, 0, 1, 4],
    [1, 5, -2, 2, 0, 3],
    [0, 2, -2, 6, 1, 2],
    [3, 1, 0, 2, -10, 1],
    [2, 4, 1, 0, 3, 2],
]


@pytest.fixture
def row_problem():
    """One row [2, 0, 3, 0], depot on the last cell, capacity 5."""
    return ProblemModel([[2, 0, 3, 0]], depot=(0, 3), start=(0, 0), max_cluster_leaves=5)


@pytest.fixture
def tight_row_problem():
    """Same row with capacity 4."""
    return ProblemModel([[2, 0, 3, 0]], depot=(0, 3), start=(0, 0), max_cluster_leaves=4)


@pytest.fixture
def garden_problem():
    """5x6 garden with a shed, two trees and a depot marker, capacity 8."""
    return ProblemModel(GARDEN, max_cluster_leaves=8)


@pytest.fixture
def orthogonal_garden_problem():
    return ProblemModel(GARDEN, max_cluster_leaves=8, diagonal_weight=0)


@pytest.fixture
def greedy_successors(garden_problem):
    return SimultaneousClusterer().fit_predict(garden_problem)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
