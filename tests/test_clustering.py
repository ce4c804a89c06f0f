import itertools

import numpy as np
import pytest

from lrp import (
    DEPOT,
    CandidateSelection,
    ClusterAnalyzer,
    HubStrategy,
    ProblemModel,
    QueueDiscipline,
    RandomClusterer,
    SimultaneousClusterer,
    SuccessiveClusterer,
    ZigzagClusterer,
    UnsupportedPolicyError,
    validate_successors,
)

CENTERING_STRATEGIES = [s for s in HubStrategy if s is not HubStrategy.KEEP_HUBS]


def assert_valid_forest(problem, s):
    validate_successors(s, problem)
    analysis = ClusterAnalyzer().analyze(s)
    members = np.sort(np.concatenate(analysis.clusters))
    assert np.array_equal(members, problem.nodes)
    assert max(analysis.cluster_leaves(problem)) <= problem.max_cluster_leaves
    for node in problem.nodes:
        if s[node] != node:
            assert s[node] in problem.neighbors(node)


def test_row_example(row_problem):
    clusterer = SimultaneousClusterer(CandidateSelection.NW, CandidateSelection.NW, HubStrategy.SMALLEST_INDEX)
    s = clusterer.fit_predict(row_problem)
    assert list(s) == [0, 0, 2, 2]
    assert clusterer.get_num_clusters() == 2
    assert clusterer.get_cluster_leaves(row_problem) == {0: 2.0, 2: 3.0}


def test_policy_values_are_accepted(row_problem):
    s = SimultaneousClusterer('NW', 'NW', 'SmallestIndex').fit_predict(row_problem)
    assert list(s) == [0, 0, 2, 2]


def test_cells_that_would_overflow_stay_apart():
    problem = ProblemModel([[4, 4]], depot=(0, 1), start=(0, 0), max_cluster_leaves=5)
    assert list(SimultaneousClusterer().fit_predict(problem)) == [0, 1]


def test_pairing_that_fills_capacity_exactly_is_not_admitted():
    problem = ProblemModel([[2, 3]], depot=(0, 1), start=(0, 0), max_cluster_leaves=5)
    assert list(SimultaneousClusterer().fit_predict(problem)) == [0, 1]


def test_uniform_row_ends_up_in_one_cluster():
    problem = ProblemModel([[1, 1, 1, 1]], depot=(0, 3), start=(0, 0), max_cluster_leaves=10)
    s = SimultaneousClusterer('NW', 'NW', 'SmallestIndex').fit_predict(problem)
    assert list(s) == [0, 0, 1, 2]


@pytest.mark.parametrize("assignment, contact, hub_strategy", list(itertools.product(
    CandidateSelection, CandidateSelection, CENTERING_STRATEGIES
)))
def test_simultaneous_invariants(garden_problem, assignment, contact, hub_strategy):
    clusterer = SimultaneousClusterer(assignment, contact, hub_strategy)
    s = clusterer.fit_predict(garden_problem)
    assert_valid_forest(garden_problem, s)
    assert clusterer.get_num_clusters() == ClusterAnalyzer().analyze(s).num_clusters
    assert np.array_equal(SimultaneousClusterer(assignment, contact, hub_strategy).fit_predict(garden_problem), s)


def test_simultaneous_without_diagonals(orthogonal_garden_problem):
    s = SimultaneousClusterer().fit_predict(orthogonal_garden_problem)
    assert_valid_forest(orthogonal_garden_problem, s)


def test_keep_hubs_is_rejected_for_new_clusterings():
    with pytest.raises(UnsupportedPolicyError):
        SimultaneousClusterer(hub_strategy=HubStrategy.KEEP_HUBS)


def test_unknown_policy_is_rejected():
    with pytest.raises(UnsupportedPolicyError):
        SimultaneousClusterer(assignment='SE')
    with pytest.raises(UnsupportedPolicyError):
        SuccessiveClusterer(queue_discipline='random')


def test_unfitted_clusterer_reports_nothing(row_problem):
    clusterer = SuccessiveClusterer()
    assert clusterer.get_num_clusters() == 0
    assert clusterer.get_cluster_leaves(row_problem) == {}


def test_successive_row(row_problem):
    clusterer = SuccessiveClusterer()
    s = clusterer.fit_predict(row_problem)
    assert list(s) == [0, 0, 1, 3]
    assert clusterer.get_num_clusters() == 2
    assert clusterer.get_cluster_leaves(row_problem) == {0: 5.0, 3: 0.0}


@pytest.mark.parametrize("candidate, discipline, selection", list(itertools.product(
    CandidateSelection, QueueDiscipline, CandidateSelection
)))
def test_successive_invariants(garden_problem, candidate, discipline, selection):
    s = SuccessiveClusterer(candidate, discipline, selection).fit_predict(garden_problem)
    assert_valid_forest(garden_problem, s)


@pytest.mark.parametrize("seed", range(5))
def test_random_invariants(garden_problem, seed):
    s = RandomClusterer(random_state=seed).fit_predict(garden_problem)
    assert_valid_forest(garden_problem, s)


def test_random_clusterer_is_reproducible(garden_problem):
    first = RandomClusterer(node_to_cluster_probability=0.3, random_state=7).fit_predict(garden_problem)
    second = RandomClusterer(node_to_cluster_probability=0.3, random_state=7).fit_predict(garden_problem)
    assert np.array_equal(first, second)


def test_zigzag_row(row_problem, tight_row_problem):
    assert list(ZigzagClusterer().fit_predict(row_problem)) == [1, 2, 3, 3]
    clusterer = ZigzagClusterer()
    assert list(clusterer.fit_predict(tight_row_problem)) == [1, 1, 3, 3]
    assert clusterer.get_cluster_leaves(tight_row_problem) == {1: 2.0, 3: 3.0}


def test_zigzag_turns_into_the_next_row():
    problem = ProblemModel([[1, 1, 1], [1, 1, DEPOT]])
    # the second row runs right to left and ends at the blocked depot cell
    assert list(ZigzagClusterer().fit_predict(problem)) == [1, 2, 2, 3, 3, -1]


def test_zigzag_invariants(garden_problem, orthogonal_garden_problem):
    for problem in (garden_problem, orthogonal_garden_problem):
        s = ZigzagClusterer().fit_predict(problem)
        assert_valid_forest(problem, s)
