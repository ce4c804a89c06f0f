"""
Hub centering: choose a hub per cluster and rake along shortest paths to it.
"""

from __future__ import annotations
import logging
import numpy as np
from typing import Callable, Dict, Iterable, Optional, Union
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import dijkstra

from .analysis import ClusterAnalyzer, as_successors
from .core import BLOCKED, ProblemModel
from .exceptions import InvalidClusterError, UnsupportedPolicyError
from .policies import HubStrategy, resolve

logger = logging.getLogger(__name__)

HubSelector = Callable[[ProblemModel, np.ndarray, csr_matrix, Optional[np.ndarray]], int]


def _local_graph(problem: ProblemModel, cluster: np.ndarray) -> csr_matrix:
    """Weighted adjacency of the subgraph induced by cluster."""
    return problem.adjacency[cluster][:, cluster]


def _smallest_index(problem, cluster, graph, successors) -> int:
    return 0


def _leaf_max(problem, cluster, graph, successors) -> int:
    return int(np.argmax(problem.leaves[cluster]))


def _leaf_min(problem, cluster, graph, successors) -> int:
    return int(np.argmin(problem.leaves[cluster]))


def _depot_nearest(problem, cluster, graph, successors) -> int:
    return int(np.argmin(problem.distances[cluster, problem.depot]))


def _median(problem, cluster, graph, successors) -> int:
    # Leaf-weighted distance sum over cluster-local shortest paths.
    local = dijkstra(graph, directed=False)
    if not np.isfinite(local).all():
        raise InvalidClusterError(f"Cluster containing node {cluster[0]} is disconnected")
    return int(np.argmin(problem.leaves[cluster] @ local))


def _keep_hub(problem, cluster, graph, successors) -> int:
    own = np.flatnonzero(successors[cluster] == cluster)
    if len(own):
        return int(own[0])
    logger.debug("Cluster containing node %d has no hub to keep, using the median", cluster[0])
    return _median(problem, cluster, graph, successors)


_HUB_SELECTORS: Dict[HubStrategy, HubSelector] = {
    HubStrategy.SMALLEST_INDEX: _smallest_index,
    HubStrategy.LEAF_MAX: _leaf_max,
    HubStrategy.LEAF_MIN: _leaf_min,
    HubStrategy.MEDIAN: _median,
    HubStrategy.DEPOT_NEAREST: _depot_nearest,
    HubStrategy.KEEP_HUBS: _keep_hub,
}


def _check_strategy(strategy, successors) -> HubStrategy:
    strategy = resolve(HubStrategy, strategy)
    if strategy is HubStrategy.KEEP_HUBS and successors is None:
        raise UnsupportedPolicyError("KeepHubs needs an existing successor function")
    return strategy


def select_hub(
    problem: ProblemModel,
    cluster: Iterable[int],
    strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN,
    successors=None
) -> int:
    """
    Choose the hub of a single cluster.

    Ties go to the smallest node index.
    """
    strategy = _check_strategy(strategy, successors)
    nodes = np.unique(np.asarray(list(cluster), dtype=np.int64))
    if nodes.size == 0:
        raise InvalidClusterError("Cannot choose the hub of an empty cluster")
    if successors is not None:
        successors = as_successors(successors)
    position = _HUB_SELECTORS[strategy](problem, nodes, _local_graph(problem, nodes), successors)
    return int(nodes[position])


def center_hubs(
    problem: ProblemModel,
    clusters: Iterable[Iterable[int]],
    strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN,
    successors=None,
    allow_partial: bool = False
) -> np.ndarray:
    """
    Build a successor function from a cluster partition.

    Every cluster gets a hub chosen by strategy; every other member rakes
    into its parent on the shortest path to the hub, using only cells of
    its own cluster.

    Args:
        problem: The problem.
        clusters: Node sets partitioning the collectible cells.
        strategy: Hub selection policy.
        successors: Existing successor function, required for KEEP_HUBS.
        allow_partial: Accept clusters that leave collectible cells out;
            those cells keep BLOCKED as successor.

    Returns:
        The new successor function.

    Raises:
        InvalidClusterError: If a cluster is disconnected, contains a blocked
            cell, or overlaps another cluster, or if cells are left out.
    """
    strategy = _check_strategy(strategy, successors)
    if successors is not None:
        successors = as_successors(successors)
    selector = _HUB_SELECTORS[strategy]

    result = np.full(problem.n_cells, BLOCKED, dtype=np.int64)
    assigned = np.zeros(problem.n_cells, dtype=bool)

    for members in clusters:
        members = np.asarray(list(members), dtype=np.int64)
        if members.size == 0:
            continue
        cluster = np.unique(members)
        if cluster.size != members.size:
            raise InvalidClusterError("A cluster lists a node twice")
        if cluster[0] < 0 or cluster[-1] >= problem.n_cells:
            raise InvalidClusterError("A cluster contains a node outside the garden")
        if not problem.free[cluster].all():
            raise InvalidClusterError(f"Cluster containing node {cluster[0]} contains blocked cells")
        if assigned[cluster].any():
            raise InvalidClusterError(f"Cluster containing node {cluster[0]} overlaps another cluster")
        assigned[cluster] = True

        graph = _local_graph(problem, cluster)
        hub = selector(problem, cluster, graph, successors)
        distance, predecessor = dijkstra(graph, directed=False, indices=hub, return_predecessors=True)
        if not np.isfinite(distance).all():
            raise InvalidClusterError(f"Cluster with hub {cluster[hub]} is disconnected")
        parents = np.where(predecessor < 0, hub, predecessor)
        result[cluster] = cluster[parents]

    if not allow_partial and not assigned[problem.nodes].all():
        missing = problem.nodes[~assigned[problem.nodes]]
        raise InvalidClusterError(f"{len(missing)} collectible cells belong to no cluster")
    return result


def recenter(
    problem: ProblemModel,
    successors,
    strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN
) -> np.ndarray:
    """Re-center the hubs of an existing successor function, keeping its clusters."""
    analysis = ClusterAnalyzer().analyze(successors)
    return center_hubs(problem, analysis.clusters, strategy, successors=successors)
