import numpy as np
import pytest

from lrp import (
    ClusterAnalyzer,
    InvalidSolutionError,
    ProblemModel,
    Role,
    accumulated_leaves,
    node_roles,
    skip_zero_hubs,
    successor_frame,
    trace_to_hub,
    validate_successors,
)


def test_two_clusters():
    analysis = ClusterAnalyzer().analyze([0, 0, 2, 2])
    assert list(analysis.hubs) == [0, 2]
    assert list(analysis.sources) == [1, 3]
    assert [list(c) for c in analysis.clusters] == [[0, 1], [2, 3]]
    assert analysis.num_clusters == 2


def test_single_chain():
    analysis = ClusterAnalyzer().analyze([1, 1, 1, 2])
    assert list(analysis.hubs) == [1]
    assert list(analysis.sources) == [0, 3]
    assert [list(c) for c in analysis.clusters] == [[0, 1, 2, 3]]


def test_hub_without_predecessors_is_not_a_source():
    analysis = ClusterAnalyzer().analyze([0, 1, 1])
    assert list(analysis.hubs) == [0, 1]
    assert list(analysis.sources) == [2]


def test_blocked_cells_are_skipped():
    analysis = ClusterAnalyzer().analyze([-1, 1, 1, -1])
    assert list(analysis.hubs) == [1]
    assert list(analysis.sources) == [2]
    assert [list(c) for c in analysis.clusters] == [[1, 2]]


def test_fast_path_skips_clusters():
    analysis = ClusterAnalyzer().analyze([0, 0, 2, 2], with_clusters=False)
    assert analysis.clusters is None
    assert list(analysis.hubs) == [0, 2]
    with pytest.raises(ValueError):
        analysis.cluster_leaves(None)


def test_cluster_leaves(row_problem):
    analysis = ClusterAnalyzer().analyze([0, 0, 2, 2])
    assert analysis.cluster_leaves(row_problem) == [2.0, 3.0]


@pytest.mark.parametrize("successors", [
    [1, 0, 2],          # cycle
    [0, -1, 1],         # rakes into a blocked cell
    [0, 5],             # out of range
    [0, -3],            # invalid marker
])
def test_malformed_successors_are_rejected(successors):
    with pytest.raises(InvalidSolutionError):
        validate_successors(successors)
    with pytest.raises(InvalidSolutionError):
        ClusterAnalyzer().analyze(successors)


def test_validate_against_problem(row_problem):
    s = validate_successors([0, 0, 2, 2], row_problem)
    assert s.dtype == np.int64
    with pytest.raises(InvalidSolutionError):
        validate_successors([0, 0, 2], row_problem)
    with pytest.raises(InvalidSolutionError):
        validate_successors([0, 0, 2, -1], row_problem)


def test_invalid_solution_error_is_an_assertion_error():
    with pytest.raises(AssertionError):
        validate_successors([1, 0])


def test_trace_to_hub():
    assert trace_to_hub([1, 1, 1, 2], 3) == [3, 2, 1]
    assert trace_to_hub([1, 1, 1, 2], 1) == [1]
    with pytest.raises(InvalidSolutionError):
        trace_to_hub([1, 0, 2], 0)


def test_accumulated_leaves(row_problem):
    assert list(accumulated_leaves(row_problem, [1, 1, 1, 2])) == [2, 5, 3, 0]
    assert list(accumulated_leaves(row_problem, [0, 0, 2, 2])) == [2, 0, 3, 0]


def test_accumulated_leaves_of_hubs_are_cluster_totals(garden_problem, greedy_successors):
    acc = accumulated_leaves(garden_problem, greedy_successors)
    analysis = ClusterAnalyzer().analyze(greedy_successors)
    assert list(acc[analysis.hubs]) == analysis.cluster_leaves(garden_problem)
    assert acc[garden_problem.start] == 0


def test_node_roles():
    assert list(node_roles([1, 1, 1, 2])) == [Role.SOURCE, Role.HUB, Role.BRIDGE, Role.SOURCE]
    assert list(node_roles([0, 0, 2, -1])) == [Role.HUB, Role.SOURCE, Role.SINGLE, Role.BLOCKED]


def test_skip_zero_hubs(row_problem):
    assert list(skip_zero_hubs(row_problem, [1, 1, 1, 2])) == [1, 1, 1, 3]
    assert list(skip_zero_hubs(row_problem, [0, 0, 2, 2])) == [0, 1, 2, 3]


def test_skip_zero_hubs_repeats_along_empty_chains():
    problem = ProblemModel([[1, 0, 0, 0]], depot=(0, 3), start=(0, 0))
    assert list(skip_zero_hubs(problem, [0, 0, 1, 2])) == [0, 1, 2, 3]


def test_skip_zero_hubs_keeps_a_valid_forest(garden_problem, greedy_successors):
    s = skip_zero_hubs(garden_problem, greedy_successors)
    validate_successors(s, garden_problem)
    zero_sources = ClusterAnalyzer().analyze(s).sources
    assert (garden_problem.leaves[zero_sources] > 0).all()


def test_successor_frame(row_problem):
    frame = successor_frame(row_problem, [1, 1, 1, 2])
    assert list(frame.columns) == ['node', 'row', 'col', 'leaves', 'successor', 'role', 'accumulated', 'hub']
    assert len(frame) == 4
    hub_row = frame.set_index('node').loc[1]
    assert hub_row['role'] == 'HUB'
    assert hub_row['accumulated'] == 5
    assert (frame['hub'] == 1).all()


def test_trace_names_the_blocked_cell_it_runs_into():
    # 1 is blocked, so its own successor is -1
    with pytest.raises(InvalidSolutionError, match="blocked cell 1$"):
        trace_to_hub([1, -1, 1], 0)
