"""
Analysis of successor functions: hubs, sources, clusters and roles.

A successor function is an int array with one entry per cell. A hub maps to
itself, every other collectible cell maps to the cell it rakes into, and
blocked cells hold BLOCKED (-1).
"""

from __future__ import annotations
import logging
import numpy as np
import pandas as pd
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from .core import BLOCKED, ProblemModel, Role
from .exceptions import InvalidSolutionError

logger = logging.getLogger(__name__)


@dataclass
class SuccessorAnalysis:
    """Hubs, sources and (optionally) clusters of a successor function."""
    hubs: np.ndarray
    sources: np.ndarray
    clusters: Optional[List[np.ndarray]] = None

    @property
    def num_clusters(self) -> int:
        return len(self.hubs)

    def cluster_leaves(self, problem: ProblemModel) -> List[float]:
        """Leaf total of every cluster, in cluster order."""
        if self.clusters is None:
            raise ValueError("Clusters were not extracted")
        return [float(problem.leaves[cluster].sum()) for cluster in self.clusters]


def as_successors(successors) -> np.ndarray:
    """Validate the shape and range of a successor array and return it as int64."""
    s = np.asarray(successors, dtype=np.int64)
    if s.ndim != 1:
        raise InvalidSolutionError(f"Successor function must be 1-D, got shape {s.shape}")
    if ((s < BLOCKED) | (s >= len(s))).any():
        raise InvalidSolutionError("Successor function points outside the garden")
    return s


def _in_degree(s: np.ndarray) -> np.ndarray:
    """Number of predecessors of every node, self-loops excluded."""
    raking = np.flatnonzero((s >= 0) & (s != np.arange(len(s))))
    return np.bincount(s[raking], minlength=len(s))


def _topological_order(s: np.ndarray) -> List[int]:
    """
    Active nodes ordered so that every node precedes its successor.

    Raises:
        InvalidSolutionError: If the successor function has a cycle other
            than a self-loop.
    """
    indegree = _in_degree(s)
    active = np.flatnonzero(s >= 0)
    queue = deque(int(node) for node in active if indegree[node] == 0)
    order = []
    while queue:
        node = queue.popleft()
        order.append(node)
        target = int(s[node])
        if s[target] < 0:
            raise InvalidSolutionError(f"Node {node} rakes into blocked cell {target}")
        if target != node:
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)
    if len(order) != len(active):
        raise InvalidSolutionError(
            f"Successor function contains a cycle through {len(active) - len(order)} nodes"
        )
    return order


def validate_successors(successors, problem: Optional[ProblemModel] = None) -> np.ndarray:
    """
    Check that a successor function is a forest of hub-terminated chains.

    With a problem, also checks that exactly the collectible cells are mapped.

    Returns:
        The successor function as an int64 array.

    Raises:
        InvalidSolutionError: On any structural violation.
    """
    s = as_successors(successors)
    active = s >= 0
    if problem is not None:
        if len(s) != problem.n_cells:
            raise InvalidSolutionError(
                f"Successor function has {len(s)} entries, garden has {problem.n_cells} cells"
            )
        if (active != problem.free).any():
            raise InvalidSolutionError("Successor function does not map exactly the collectible cells")
    if (~active[s[active]]).any():
        raise InvalidSolutionError("A node rakes into a blocked cell")
    _topological_order(s)
    return s


def trace_to_hub(successors, node: int) -> List[int]:
    """The chain from node to its hub, both included."""
    s = np.asarray(successors)
    path = [int(node)]
    current = int(node)
    for _ in range(len(s)):
        target = int(s[current])
        if target < 0:
            raise InvalidSolutionError(f"Chain from {node} runs into blocked cell {current}")
        if target == current:
            return path
        path.append(target)
        current = target
    raise InvalidSolutionError(f"Chain from {node} does not end in a hub")


def accumulated_leaves(problem: ProblemModel, successors) -> np.ndarray:
    """
    Leaves each node holds once its whole subtree has been raked onto it.

    Blocked cells get 0. For a hub this is the leaf total of its cluster.
    """
    s = as_successors(successors)
    acc = np.where(s >= 0, problem.leaves, 0.0)
    for node in _topological_order(s):
        target = s[node]
        if target != node:
            acc[target] += acc[node]
    return acc


def node_roles(successors) -> np.ndarray:
    """Role of every node (see core.Role) as an int array."""
    s = as_successors(successors)
    indegree = _in_degree(s)
    hub = s == np.arange(len(s))
    roles = np.where(hub, int(Role.SINGLE), int(Role.SOURCE))
    roles[hub & (indegree > 0)] = int(Role.HUB)
    roles[~hub & (indegree > 0)] = int(Role.BRIDGE)
    roles[s < 0] = int(Role.BLOCKED)
    return roles


class ClusterAnalyzer:
    """
    Extracts hubs, sources and clusters from successor functions.

    Sources are the nodes nobody rakes into. Since a hub is its own target it
    is never a source, not even a hub without predecessors.
    """

    def analyze(self, successors, with_clusters: bool = True) -> SuccessorAnalysis:
        """
        Analyze a successor function.

        Args:
            successors: The successor function.
            with_clusters: Also collect cluster members. Without it only
                vectorised lookups are performed.

        Returns:
            SuccessorAnalysis with sorted hubs and sources; clusters are
            sorted node arrays ordered by hub.
        """
        s = as_successors(successors)
        nodes = np.flatnonzero(s >= 0)
        hubs = nodes[s[nodes] == nodes]

        targeted = np.zeros(len(s), dtype=bool)
        targeted[s[nodes]] = True
        sources = nodes[~targeted[nodes]]

        clusters = self._collect_clusters(s, hubs, nodes) if with_clusters else None
        return SuccessorAnalysis(hubs=hubs, sources=sources, clusters=clusters)

    def _collect_clusters(self, s: np.ndarray, hubs: np.ndarray, nodes: np.ndarray) -> List[np.ndarray]:
        children: List[List[int]] = [[] for _ in range(len(s))]
        for node in nodes:
            target = s[node]
            if target != node:
                children[target].append(int(node))

        clusters = []
        covered = 0
        for hub in hubs:
            members = [int(hub)]
            queue = deque(members)
            while queue:
                current = queue.popleft()
                for child in children[current]:
                    members.append(child)
                    queue.append(child)
            clusters.append(np.sort(np.array(members, dtype=np.int64)))
            covered += len(members)

        if covered != len(nodes):
            raise InvalidSolutionError(f"{len(nodes) - covered} nodes do not reach a hub")
        return clusters


def skip_zero_hubs(problem: ProblemModel, successors) -> np.ndarray:
    """
    Turn cells that never carry leaves into hubs of their own.

    A source without leaves is made a hub; this can turn its former successor
    into a leafless source, so the step repeats until nothing changes. Such
    single hubs cost nothing and keep nobody walking over empty cells.
    """
    s = as_successors(successors).copy()
    indegree = _in_degree(s)
    leafless = problem.leaves == 0
    queue = deque(
        int(node) for node in np.flatnonzero(s >= 0)
        if indegree[node] == 0 and s[node] != node and leafless[node]
    )
    while queue:
        node = queue.popleft()
        target = int(s[node])
        s[node] = node
        indegree[target] -= 1
        if indegree[target] == 0 and s[target] != target and leafless[target]:
            queue.append(target)
    return s


def successor_frame(problem: ProblemModel, successors) -> pd.DataFrame:
    """Tabular view of a successor function, one row per collectible cell."""
    s = as_successors(successors)
    analysis = ClusterAnalyzer().analyze(s)
    hub_of = np.full(len(s), BLOCKED, dtype=np.int64)
    for hub, cluster in zip(analysis.hubs, analysis.clusters):
        hub_of[cluster] = hub
    acc = accumulated_leaves(problem, s)
    roles = node_roles(s)

    rows = []
    for node in problem.nodes:
        row, col = problem.coords(node)
        rows.append({
            'node': int(node),
            'row': row,
            'col': col,
            'leaves': float(problem.leaves[node]),
            'successor': int(s[node]),
            'role': Role(int(roles[node])).name,
            'accumulated': float(acc[node]),
            'hub': int(hub_of[node]),
        })
    return pd.DataFrame(rows)
