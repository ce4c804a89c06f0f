"""
Cluster builders that turn a garden into an initial successor function.
"""

from __future__ import annotations
import logging
import numpy as np
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Union

from .analysis import ClusterAnalyzer
from .centering import center_hubs
from .core import BLOCKED, ProblemModel
from .exceptions import UnsupportedPolicyError
from .policies import (
    CandidateSelection,
    HubStrategy,
    QueueDiscipline,
    order_candidates,
    pick_candidate,
    resolve,
)

logger = logging.getLogger(__name__)


class BaseClusterer(ABC):
    """Abstract base class for cluster construction strategies."""

    def __init__(self):
        self._successors: Optional[np.ndarray] = None

    @abstractmethod
    def fit_predict(self, problem: ProblemModel) -> np.ndarray:
        """
        Cluster the garden and return the successor function.
        """
        pass

    def get_num_clusters(self) -> int:
        """Return the number of clusters of the last result."""
        if self._successors is None:
            return 0
        return ClusterAnalyzer().analyze(self._successors, with_clusters=False).num_clusters

    def get_cluster_leaves(self, problem: ProblemModel) -> Dict[int, float]:
        """Return the leaf total of each cluster of the last result, keyed by hub."""
        if self._successors is None:
            return {}
        analysis = ClusterAnalyzer().analyze(self._successors)
        return {int(hub): float(problem.leaves[cluster].sum())
                for hub, cluster in zip(analysis.hubs, analysis.clusters)}


class _ClusterArena:
    """Clusters under construction, keyed by ids that never change."""

    def __init__(self, n_cells: int, leaves: np.ndarray):
        self.leaves = leaves
        self.cluster_of = np.full(n_cells, -1, dtype=np.int64)
        self.members: Dict[int, List[int]] = {}
        self.totals: Dict[int, float] = {}
        self._next_id = 0

    def open(self, *nodes: int) -> int:
        cid = self._next_id
        self._next_id += 1
        self.members[cid] = list(nodes)
        self.totals[cid] = float(sum(self.leaves[node] for node in nodes))
        self.cluster_of[list(nodes)] = cid
        return cid

    def join(self, cid: int, node: int):
        self.members[cid].append(node)
        self.totals[cid] += self.leaves[node]
        self.cluster_of[node] = cid

    def merge(self, first: int, second: int) -> int:
        """Merge two clusters into the one with the higher id."""
        keep, drop = max(first, second), min(first, second)
        moved = self.members.pop(drop)
        self.members[keep].extend(moved)
        self.totals[keep] += self.totals.pop(drop)
        self.cluster_of[moved] = keep
        return keep

    def clusters(self) -> List[List[int]]:
        return [self.members[cid] for cid in sorted(self.members)]


class SimultaneousClusterer(BaseClusterer):
    """
    Greedy node-by-node clustering.

    Nodes are taken as assignment candidates in the order of the assignment
    policy. For each candidate the unvisited neighbours are tried as contacts
    in the order of the contact policy, and the first pairing the capacity
    allows is applied:

        - neither clustered: both open a new cluster
        - only the contact clustered: the candidate joins it
        - only the candidate clustered: the contact joins it
        - both clustered: the clusters merge (same cluster: nothing to do)

    A pairing is admitted while the combined leaves stay strictly below the
    capacity. A candidate left without cluster opens a singleton. The
    clusters are finally turned into a successor function by hub centering.
    """

    def __init__(
        self,
        assignment: Union[CandidateSelection, str] = CandidateSelection.LEAF_MIN,
        contact: Union[CandidateSelection, str] = CandidateSelection.LEAF_MAX,
        hub_strategy: Union[HubStrategy, str] = HubStrategy.SMALLEST_INDEX
    ):
        """
        Args:
            assignment: Order in which assignment candidates are taken.
            contact: Order in which neighbours are tried as contacts.
            hub_strategy: Hub selection applied to the finished clusters.
        """
        super().__init__()
        self.assignment = resolve(CandidateSelection, assignment)
        self.contact = resolve(CandidateSelection, contact)
        self.hub_strategy = resolve(HubStrategy, hub_strategy)
        if self.hub_strategy is HubStrategy.KEEP_HUBS:
            raise UnsupportedPolicyError("KeepHubs needs existing hubs, a new clustering has none")
        self._clusters: List[List[int]] = []

    @staticmethod
    def _admits(total: float, capacity: float) -> bool:
        return total < capacity

    def _pair(self, arena: _ClusterArena, candidate: int, contact: int, capacity: float) -> bool:
        """Try one candidate/contact pairing; True ends the search for this candidate."""
        leaves = arena.leaves
        own = arena.cluster_of[candidate]
        other = arena.cluster_of[contact]

        if own < 0 and other < 0:
            if self._admits(leaves[candidate] + leaves[contact], capacity):
                arena.open(candidate, contact)
                return True
        elif own < 0:
            if self._admits(leaves[candidate] + arena.totals[other], capacity):
                arena.join(other, candidate)
                return True
        elif other < 0:
            if self._admits(leaves[contact] + arena.totals[own], capacity):
                arena.join(own, contact)
                return True
        elif own == other:
            return True
        elif self._admits(arena.totals[own] + arena.totals[other], capacity):
            arena.merge(own, other)
            return True
        return False

    def _partition(self, problem: ProblemModel) -> List[List[int]]:
        arena = _ClusterArena(problem.n_cells, problem.leaves)
        capacity = problem.max_cluster_leaves
        unvisited = problem.free.copy()

        while unvisited.any():
            candidate = pick_candidate(problem, np.flatnonzero(unvisited), self.assignment)
            unvisited[candidate] = False

            neighbours = problem.neighbors(candidate)
            for contact in order_candidates(problem, neighbours[unvisited[neighbours]], self.contact):
                if self._pair(arena, candidate, int(contact), capacity):
                    break

            if arena.cluster_of[candidate] < 0:
                arena.open(candidate)

        return arena.clusters()

    def fit_predict(self, problem: ProblemModel) -> np.ndarray:
        self._clusters = self._partition(problem)
        self._successors = center_hubs(problem, self._clusters, self.hub_strategy)
        logger.debug(
            "Simultaneous clustering (%s/%s/%s): %d clusters",
            self.assignment.value, self.contact.value, self.hub_strategy.value, len(self._clusters),
        )
        return self._successors

    def get_num_clusters(self) -> int:
        return len(self._clusters)


class SuccessiveClusterer(BaseClusterer):
    """
    Grows one cluster at a time around a hub.

    Starting from a hub chosen by cluster_selection, unvisited neighbours of
    the current node are absorbed in candidate_selection order as long as the
    cluster total stays within capacity. Absorbed nodes rake into the node
    that absorbed them and are queued (FIFO or LIFO) to be expanded in turn.
    When the queue runs empty the next hub is chosen.
    """

    def __init__(
        self,
        candidate_selection: Union[CandidateSelection, str] = CandidateSelection.NW,
        queue_discipline: Union[QueueDiscipline, str] = QueueDiscipline.FIFO,
        cluster_selection: Union[CandidateSelection, str] = CandidateSelection.NW
    ):
        super().__init__()
        self.candidate_selection = resolve(CandidateSelection, candidate_selection)
        self.queue_discipline = resolve(QueueDiscipline, queue_discipline)
        self.cluster_selection = resolve(CandidateSelection, cluster_selection)

    def fit_predict(self, problem: ProblemModel) -> np.ndarray:
        capacity = problem.max_cluster_leaves
        leaves = problem.leaves
        s = np.full(problem.n_cells, BLOCKED, dtype=np.int64)
        unvisited = problem.free.copy()

        while unvisited.any():
            hub = pick_candidate(problem, np.flatnonzero(unvisited), self.cluster_selection)
            unvisited[hub] = False
            s[hub] = hub
            total = leaves[hub]
            frontier = deque([hub])

            while frontier and total < capacity:
                current = frontier.popleft()
                neighbours = problem.neighbors(current)
                for node in order_candidates(problem, neighbours[unvisited[neighbours]],
                                             self.candidate_selection):
                    node = int(node)
                    if total + leaves[node] > capacity:
                        continue
                    unvisited[node] = False
                    s[node] = current
                    total += leaves[node]
                    if self.queue_discipline is QueueDiscipline.FIFO:
                        frontier.append(node)
                    else:
                        frontier.appendleft(node)
                    if total == capacity:
                        break

        self._successors = s
        logger.debug("Successive clustering: %d clusters", self.get_num_clusters())
        return s


class ZigzagClusterer(BaseClusterer):
    """
    Serpentine baseline: rake along the rows like a plough.

    Even rows run left to right and odd rows right to left; at the end of a
    row the chain turns down into the next row. A cell whose next cell is
    blocked or outside the garden becomes a hub. Each chain is then cut
    wherever the leaves raked along it would exceed the capacity, so the
    predecessor of the overflowing cell becomes a hub.
    """

    @staticmethod
    def _serpentine(shape) -> List[int]:
        rows, cols = shape
        order = []
        for row in range(rows):
            columns = range(cols) if row % 2 == 0 else range(cols - 1, -1, -1)
            order.extend(row * cols + col for col in columns)
        return order

    def fit_predict(self, problem: ProblemModel) -> np.ndarray:
        order = self._serpentine(problem.shape)
        free = problem.free
        leaves = problem.leaves
        capacity = problem.max_cluster_leaves

        s = np.full(problem.n_cells, BLOCKED, dtype=np.int64)
        for position, node in enumerate(order):
            if not free[node]:
                continue
            nxt = order[position + 1] if position + 1 < len(order) else None
            s[node] = nxt if nxt is not None and free[nxt] else node

        load = 0.0
        previous = None
        for node in order:
            if not free[node]:
                previous = None
                continue
            if previous is not None and s[previous] == node:
                load += leaves[node]
                if load > capacity:
                    s[previous] = previous
                    load = leaves[node]
            else:
                load = leaves[node]
            previous = node

        self._successors = s
        logger.debug("Zigzag clustering: %d clusters", self.get_num_clusters())
        return s


class RandomClusterer(BaseClusterer):
    """
    Random cluster growth, the starting point of stochastic search.

    A random unvisited node starts a cluster that grows along a random walk
    over unvisited neighbours. The walk stops when the next node would break
    the capacity, carries no leaves, or with probability
    node_to_cluster_probability. Leafless start nodes stay single. Hubs are
    placed at the cluster medians.
    """

    def __init__(self, node_to_cluster_probability: float = 0.1, random_state: Optional[int] = None):
        super().__init__()
        self.node_to_cluster_probability = node_to_cluster_probability
        self.random_state = random_state
        self._rng = np.random.default_rng(random_state)

    def _grow(self, problem: ProblemModel, start: int, unvisited: np.ndarray) -> List[int]:
        members = [start]
        total = problem.leaves[start]
        if total == 0:
            return members
        current = start
        while True:
            neighbours = problem.neighbors(current)
            options = neighbours[unvisited[neighbours]]
            if options.size == 0:
                break
            nxt = int(self._rng.choice(options))
            leaf = problem.leaves[nxt]
            if (total + leaf > problem.max_cluster_leaves
                    or self._rng.random() < self.node_to_cluster_probability
                    or leaf == 0):
                break
            total += leaf
            members.append(nxt)
            unvisited[nxt] = False
            current = nxt
        return members

    def fit_predict(self, problem: ProblemModel) -> np.ndarray:
        unvisited = problem.free.copy()
        clusters = []
        while unvisited.any():
            start = int(self._rng.choice(np.flatnonzero(unvisited)))
            unvisited[start] = False
            clusters.append(self._grow(problem, start, unvisited))
        self._successors = center_hubs(problem, clusters, HubStrategy.MEDIAN)
        return self._successors
