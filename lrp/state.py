"""
Incrementally maintained solution state for stochastic search.

ForestState wraps a successor function together with every aggregate a
search step needs: the leaves accumulated on each node, roles, in-degrees,
children and the clusters with their leaf totals. Mutation operators check
their preconditions first and then update only the chains they touch, so an
operator either completes or leaves the state untouched.
"""

from __future__ import annotations
import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

from .analysis import ClusterAnalyzer, accumulated_leaves, node_roles, validate_successors
from .centering import select_hub
from .core import ProblemModel, role_of
from .evaluator import CostBreakdown, CostEvaluator
from .policies import HubStrategy

logger = logging.getLogger(__name__)


@dataclass
class ClusterRecord:
    """A cluster of the forest: its hub, members and leaf total."""
    hub: int
    members: Set[int] = field(default_factory=set)
    leaves: float = 0.0

    def copy(self) -> ClusterRecord:
        return ClusterRecord(self.hub, set(self.members), self.leaves)


class ForestState:
    """
    Mutable successor function with consistent caches.

    Cluster ids are opaque and stable: a cluster keeps its id while it
    exists and ids of removed clusters are never reused.
    """

    def __init__(self, problem: ProblemModel, successors):
        s = validate_successors(successors, problem)
        self.problem = problem
        self._s = s.copy()
        self._acc = accumulated_leaves(problem, s)
        self._roles = node_roles(s)

        self._children: List[Set[int]] = [set() for _ in range(problem.n_cells)]
        for node in problem.nodes:
            target = int(s[node])
            if target != node:
                self._children[target].add(int(node))
        self._indegree = np.array([len(c) for c in self._children], dtype=np.int64)

        self._cluster_of = np.full(problem.n_cells, -1, dtype=np.int64)
        self._clusters: Dict[int, ClusterRecord] = {}
        self._next_cluster_id = 0
        analysis = ClusterAnalyzer().analyze(s)
        for hub, members in zip(analysis.hubs, analysis.clusters):
            self._new_cluster(int(hub), [int(m) for m in members], float(self._acc[hub]))

    @classmethod
    def from_successors(cls, problem: ProblemModel, successors) -> ForestState:
        return cls(problem, successors)

    def copy(self) -> ForestState:
        """Create an independent copy sharing only the problem."""
        other = ForestState.__new__(ForestState)
        other.problem = self.problem
        other._s = self._s.copy()
        other._acc = self._acc.copy()
        other._roles = self._roles.copy()
        other._children = [set(c) for c in self._children]
        other._indegree = self._indegree.copy()
        other._cluster_of = self._cluster_of.copy()
        other._clusters = {cid: record.copy() for cid, record in self._clusters.items()}
        other._next_cluster_id = self._next_cluster_id
        return other

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def successors(self) -> np.ndarray:
        return self._s.copy()

    @property
    def accumulated(self) -> np.ndarray:
        return self._acc.copy()

    @property
    def roles(self) -> np.ndarray:
        return self._roles.copy()

    @property
    def indegree(self) -> np.ndarray:
        return self._indegree.copy()

    @property
    def num_clusters(self) -> int:
        return len(self._clusters)

    def successor(self, node: int) -> int:
        return int(self._s[node])

    def is_hub(self, node: int) -> bool:
        return self._s[node] == node

    def cluster_of(self, node: int) -> int:
        return int(self._cluster_of[node])

    def hub_of(self, node: int) -> int:
        return self._clusters[self._cluster_of[node]].hub

    def cluster_ids(self) -> List[int]:
        return sorted(self._clusters)

    def cluster(self, cid: int) -> ClusterRecord:
        return self._clusters[cid]

    def hubs(self) -> List[int]:
        return sorted(record.hub for record in self._clusters.values())

    def clusters_by_hub(self) -> Dict[int, np.ndarray]:
        return {record.hub: np.array(sorted(record.members), dtype=np.int64)
                for record in self._clusters.values()}

    def cluster_leaves_by_hub(self) -> Dict[int, float]:
        return {record.hub: record.leaves for record in self._clusters.values()}

    def path_to_hub(self, node: int) -> List[int]:
        """The chain from node to its hub, both included."""
        path = [int(node)]
        current = int(node)
        while self._s[current] != current:
            current = int(self._s[current])
            path.append(current)
        return path

    def subtree(self, node: int) -> List[int]:
        """Node and every node whose chain passes through it."""
        nodes = [int(node)]
        stack = [int(node)]
        while stack:
            for child in self._children[stack.pop()]:
                nodes.append(child)
                stack.append(child)
        return nodes

    # ------------------------------------------------------------------
    # Pre-checks
    # ------------------------------------------------------------------

    def check_loop_prevention(self, node: int, new_successor: int) -> bool:
        """True if node may rake into new_successor without closing a cycle."""
        if new_successor == node:
            return True
        current = int(new_successor)
        while True:
            if current == node:
                return False
            target = int(self._s[current])
            if target == current:
                return True
            current = target

    def check_maximum_capacity(self, node: int, new_successor: int) -> bool:
        """True if the cluster receiving node's subtree stays within capacity."""
        if new_successor == node:
            return True
        own = self._cluster_of[node]
        other = self._cluster_of[new_successor]
        if own == other:
            return True
        total = self._acc[node] + self._clusters[other].leaves
        return total <= self.problem.max_cluster_leaves

    def _is_candidate(self, node: int) -> bool:
        return 0 <= node < self.problem.n_cells and bool(self.problem.free[node])

    def can_retarget(self, node: int, new_successor: int) -> bool:
        if not (self._is_candidate(node) and self._is_candidate(new_successor)):
            return False
        if new_successor != node and new_successor not in self.problem.neighbors(node):
            return False
        return (self.check_loop_prevention(node, new_successor)
                and self.check_maximum_capacity(node, new_successor))

    # ------------------------------------------------------------------
    # Mutation operators
    # ------------------------------------------------------------------

    def retarget(self, node: int, new_successor: int) -> bool:
        """
        Let node rake into new_successor (itself to become a hub).

        The target must be node itself or one of its neighbours, must not lie
        in node's subtree, and the receiving cluster must have room for the
        leaves of node's subtree.

        Returns:
            False if rejected, in which case nothing changed.
        """
        node, new_successor = int(node), int(new_successor)
        if not self.can_retarget(node, new_successor):
            return False
        old = int(self._s[node])
        if old != new_successor:
            self._apply_retarget(node, old, new_successor)
        return True

    def _apply_retarget(self, node: int, old: int, new: int):
        value = self._acc[node]
        was_hub = old == node
        source = int(self._cluster_of[node])

        if not was_hub:
            self._add_along_chain(old, -value)
            self._children[old].discard(node)
            self._indegree[old] -= 1
        self._s[node] = new
        if new != node:
            self._children[new].add(node)
            self._indegree[new] += 1
            self._add_along_chain(new, value)

        if new == node:
            moved = self.subtree(node)
            self._clusters[source].members.difference_update(moved)
            self._clusters[source].leaves -= value
            self._new_cluster(node, moved, value)
        else:
            target = int(self._cluster_of[new])
            if target != source:
                moved = self.subtree(node)
                self._clusters[source].members.difference_update(moved)
                self._clusters[source].leaves -= value
                self._clusters[target].members.update(moved)
                self._clusters[target].leaves += value
                self._cluster_of[moved] = target
                if was_hub:
                    del self._clusters[source]

        for changed in {node, old, new}:
            self._refresh_role(changed)

    def reroot_cluster(self, node: int) -> bool:
        """
        Make node the hub of its cluster by reversing its chain to the hub.

        Returns:
            False if node is not a collectible cell.
        """
        node = int(node)
        if not self._is_candidate(node):
            return False
        path = self.path_to_hub(node)
        if len(path) == 1:
            return True

        old = [self._acc[p] for p in path]
        own = [old[0]] + [old[k] - old[k - 1] for k in range(1, len(path))]
        new = [0.0] * len(path)
        new[-1] = own[-1]
        for k in range(len(path) - 2, -1, -1):
            new[k] = own[k] + new[k + 1]

        for k in range(len(path) - 1):
            lower, upper = path[k], path[k + 1]
            self._children[upper].discard(lower)
            self._children[lower].add(upper)
            self._s[upper] = lower
        self._s[node] = node

        for p, value in zip(path, new):
            self._acc[p] = value
            self._indegree[p] = len(self._children[p])
            self._refresh_role(p)
        self._clusters[self._cluster_of[node]].hub = node
        return True

    def split_cluster(self, node: int, strategy: Optional[Union[HubStrategy, str]] = None) -> bool:
        """
        Cut node's subtree off its cluster as a cluster of its own.

        Args:
            node: A non-hub node.
            strategy: If given, both halves are re-rooted at the hub this
                strategy selects.

        Returns:
            False if node is a hub or not a collectible cell.

        Raises:
            InvalidClusterError: If the strategy cannot place a hub in one of
                the halves (a half is disconnected). The state is unchanged.
        """
        node = int(node)
        if not self._is_candidate(node) or self.is_hub(node):
            return False

        hubs = []
        if strategy is not None:
            # Both hubs are chosen before anything moves.
            moved = self.subtree(node)
            remainder = self._clusters[self._cluster_of[node]].members.difference(moved)
            split_view = self._s.copy()
            split_view[node] = node
            hubs = [select_hub(self.problem, members, strategy, successors=split_view)
                    for members in (remainder, moved)]

        self._apply_retarget(node, int(self._s[node]), node)
        for hub in hubs:
            self.reroot_cluster(hub)
        return True

    def merge_clusters(self, node: int, other: int) -> bool:
        """
        Hang node's cluster onto the neighbouring cluster containing other.

        node becomes the hub of its cluster first and then rakes into other.

        Returns:
            False if the nodes are not neighbours, already share a cluster,
            or the merged cluster would exceed the capacity.
        """
        node, other = int(node), int(other)
        if not (self._is_candidate(node) and self._is_candidate(other)):
            return False
        if other not in self.problem.neighbors(node):
            return False
        own, target = self._cluster_of[node], self._cluster_of[other]
        if own == target:
            return False
        if self._clusters[own].leaves + self._clusters[target].leaves > self.problem.max_cluster_leaves:
            return False
        self.reroot_cluster(node)
        return self.retarget(node, other)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_cluster(self, hub: int, members: List[int], leaves: float) -> int:
        cid = self._next_cluster_id
        self._next_cluster_id += 1
        self._clusters[cid] = ClusterRecord(hub, set(members), float(leaves))
        self._cluster_of[members] = cid
        return cid

    def _add_along_chain(self, start: int, delta: float):
        current = start
        while True:
            self._acc[current] += delta
            target = self._s[current]
            if target == current:
                return
            current = target

    def _refresh_role(self, node: int):
        if self._s[node] >= 0:
            self._roles[node] = int(role_of(self._s[node] == node, self._indegree[node] > 0))

    # ------------------------------------------------------------------
    # Scoring and comparison
    # ------------------------------------------------------------------

    def costs(self, evaluator: CostEvaluator) -> CostBreakdown:
        """Full cost evaluation of the current successor function."""
        return evaluator.evaluate(self._s)

    def cheap_costs(self, evaluator: CostEvaluator) -> CostBreakdown:
        """Walk-free costs from the maintained subtree sums."""
        return evaluator.evaluate_cheap(self._s, accumulated=self._acc)

    def compare(self, other: ForestState) -> List[str]:
        """
        Differences between the caches of two states.

        Returns:
            A description per differing cache; empty if the states agree.
        """
        differences = []
        if not np.array_equal(self._s, other._s):
            differences.append("successors differ")
        if not np.allclose(self._acc, other._acc):
            differences.append("accumulated leaves differ")
        if not np.array_equal(self._roles, other._roles):
            differences.append("roles differ")
        if not np.array_equal(self._indegree, other._indegree):
            differences.append("in-degrees differ")
        if self._children != other._children:
            differences.append("children differ")
        mine = {hub: set(m.tolist()) for hub, m in self.clusters_by_hub().items()}
        theirs = {hub: set(m.tolist()) for hub, m in other.clusters_by_hub().items()}
        if mine != theirs:
            differences.append("cluster members differ")
        leaves, other_leaves = self.cluster_leaves_by_hub(), other.cluster_leaves_by_hub()
        if leaves.keys() != other_leaves.keys() or any(
                not np.isclose(leaves[hub], other_leaves[hub]) for hub in leaves):
            differences.append("cluster leaves differ")
        for node in self.problem.nodes:
            if self.hub_of(node) != other.hub_of(node):
                differences.append("hub assignment differs")
                break
        return differences
