import numpy as np
import pandas as pd
import pytest

from lrp import DEPOT, CostWeights, InvalidProblemError, ProblemModel


def test_row_major_lookups(row_problem):
    assert row_problem.shape == (1, 4)
    assert len(row_problem) == 4
    assert row_problem.index(0, 2) == 2
    assert row_problem.coords(3) == (0, 3)
    assert row_problem.leaf_quantity(2) == 3
    assert list(row_problem.neighbors(1)) == [0, 2]
    assert row_problem.distance(0, 3) == 3
    assert row_problem.depot == 3
    assert row_problem.start == 0
    assert row_problem.total_leaves == 5
    assert list(row_problem.nodes) == [0, 1, 2, 3]


def test_depot_marker_is_blocked_but_walkable():
    problem = ProblemModel([[1, DEPOT], [2, 3]])
    assert problem.depot == 1
    assert problem.start == 0
    assert problem.is_blocked(1)
    assert list(problem.nodes) == [0, 2, 3]
    assert list(problem.neighbors(0)) == [2, 3]
    assert problem.distance(0, 1) == 1
    assert problem.distance(0, 3) == pytest.approx(1.4142)


def test_diagonal_moves_can_be_disabled():
    problem = ProblemModel([[1, DEPOT], [2, 3]], diagonal_weight=0)
    assert not problem.allows_diagonal
    assert list(problem.neighbors(0)) == [2]
    assert problem.distance(0, 3) == 2


def test_expensive_diagonal_is_bypassed_by_orthogonal_steps():
    problem = ProblemModel([[1, DEPOT], [2, 3]], diagonal_weight=3)
    assert list(problem.neighbors(0)) == [2, 3]
    assert problem.distance(0, 3) == 2


def test_default_start_prefers_a_shed(garden_problem):
    assert garden_problem.start == 0
    assert garden_problem.depot == garden_problem.index(3, 4)
    assert garden_problem.is_blocked(garden_problem.start)
    assert np.isfinite(garden_problem.distances[garden_problem.depot, garden_problem.nodes]).all()


def test_blocked_cells_are_not_neighbours(garden_problem):
    tree = garden_problem.index(1, 2)
    for node in garden_problem.nodes:
        assert tree not in garden_problem.neighbors(node)
        assert garden_problem.depot not in garden_problem.neighbors(node)


@pytest.mark.parametrize("garden, kwargs", [
    ([[1, 2], [3, 4]], {}),                                        # no depot
    ([[DEPOT, 1, DEPOT]], {}),                                     # two depots
    ([[1, 2, 3]], {'depot': (0, 2), 'start': (0, 2)}),             # start on depot
    ([[1, -2, 3]], {'depot': (0, 2), 'start': (0, 1)}),            # start on a tree
    ([[1, -2, 3]], {'depot': (0, 1)}),                             # depot on a tree
    ([[1, -2, DEPOT]], {}),                                        # isolated depot
    ([[1, -2, 1, 1, DEPOT]], {'start': (0, 3)}),                   # unreachable cell
    ([[30, 1, DEPOT]], {}),                                        # cell above capacity
    ([[1, 2, DEPOT]], {'max_cluster_leaves': 0}),
    ([[1, 2, DEPOT]], {'max_transport': -1}),
    ([[1, 2, DEPOT]], {'diagonal_weight': -1}),
    ([[1, 2, DEPOT]], {'depot': (2, 0)}),
    ([1, 2, DEPOT], {}),                                           # not 2-D
])
def test_invalid_problems_fail_at_construction(garden, kwargs):
    with pytest.raises(InvalidProblemError):
        ProblemModel(garden, **kwargs)


def test_explicit_depot_may_only_block_a_shed_or_depot_cell(garden_problem):
    garden = garden_problem.garden
    assert ProblemModel(garden, depot=(0, 0), max_cluster_leaves=8).start == 1
    assert ProblemModel(garden, depot=(3, 4), max_cluster_leaves=8).depot == 22
    with pytest.raises(InvalidProblemError):
        ProblemModel(garden, depot=(1, 2), max_cluster_leaves=8)


def test_shed_start_needs_free_garden_next_to_it():
    with pytest.raises(InvalidProblemError):
        ProblemModel([[-1, -2, 1, DEPOT]], start=(0, 0))


def test_negative_cost_weight_is_rejected():
    with pytest.raises(InvalidProblemError):
        CostWeights(rake=-1)


def test_invalid_problem_error_is_a_value_error():
    with pytest.raises(ValueError):
        ProblemModel([[1, 2], [3, 4]])


def test_problem_arrays_are_read_only(row_problem):
    with pytest.raises(ValueError):
        row_problem.leaves[0] = 7
    with pytest.raises(ValueError):
        row_problem.distances[0, 1] = 0


def test_from_dataframe(row_problem):
    problem = ProblemModel.from_dataframe(pd.DataFrame([[2, 0, 3, 0]]), depot=(0, 3), max_cluster_leaves=5)
    assert np.array_equal(problem.leaves, row_problem.leaves)
    assert problem.depot == row_problem.depot


def test_describe(row_problem):
    text = row_problem.describe()
    assert "Collectible cells: 4 (5 leaves)" in text
    assert "Depot: (0, 3)" in text
