"""
Cost evaluation of successor functions.
"""

from __future__ import annotations
import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .analysis import ClusterAnalyzer, accumulated_leaves, as_successors, validate_successors
from .core import ProblemModel
from .exceptions import CapacityExceededError, InvalidSolutionError
from .policies import CapacityViolationPolicy, resolve

logger = logging.getLogger(__name__)


@dataclass
class CostBreakdown:
    """Cost components of a solution."""
    rake: float
    walk: float
    transport: float
    mode: str = 'full'

    @property
    def total(self) -> float:
        return self.rake + self.walk + self.transport

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.total)

    @property
    def is_cheap(self) -> bool:
        return self.mode == 'cheap'

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.rake, self.walk, self.transport, self.total)

    @classmethod
    def infinite(cls, mode: str = 'full') -> CostBreakdown:
        return cls(math.inf, math.inf, math.inf, mode)

    def __str__(self) -> str:
        s = f"Costs ({self.mode}):\n"
        s += f"  Raking: {self.rake:.2f}\n"
        s += f"  Walking: {self.walk:.2f}\n"
        s += f"  Transport: {self.transport:.2f}\n"
        s += f"  Total: {self.total:.2f}\n"
        return s


class _CapacityBreach(Exception):
    """Internal signal that the INFINITE policy short-circuits evaluation."""


class CostEvaluator:
    """
    Scores successor functions of one problem.

    The full evaluation simulates a worker raking the garden: starting at the
    start cell, the worker walks to the nearest source, rakes along the chain
    and walks on to the nearest remaining source whenever a hub or a node
    still waiting for leaves is reached. Afterwards the worker walks back to
    the start and makes the round trip to the depot. Transport hauls every
    hub's load to the depot in batches of max_transport.

    The cheap evaluation skips the walking term and derives raking costs from
    subtree sums; it is meant for fast search scoring only.
    """

    def __init__(
        self,
        problem: ProblemModel,
        violation_policy: Union[CapacityViolationPolicy, str]
    ):
        """
        Args:
            problem: The problem whose solutions are scored.
            violation_policy: Reaction to a node exceeding the cluster
                capacity (IGNORE, INFINITE or THROW).
        """
        self.problem = problem
        self.violation_policy = resolve(CapacityViolationPolicy, violation_policy)
        self._analyzer = ClusterAnalyzer()

    def _rake_stroke_cost(self, load: float, distance: float) -> float:
        return math.ceil(load / self.problem.max_rake) * self.problem.weights.rake * distance

    def _check_load(self, node: int, load: float):
        capacity = self.problem.max_cluster_leaves
        if load <= capacity:
            return
        if self.violation_policy is CapacityViolationPolicy.THROW:
            raise CapacityExceededError(node, load, capacity)
        if self.violation_policy is CapacityViolationPolicy.INFINITE:
            raise _CapacityBreach()
        logger.debug("Ignoring load %g on node %d (capacity %g)", load, node, capacity)

    def _transport_cost(self, hubs: np.ndarray, loads: np.ndarray) -> float:
        problem = self.problem
        total = 0.0
        for hub in hubs:
            trips = math.ceil(loads[hub] / problem.max_transport)
            total += trips * problem.distances[hub, problem.depot] * 2 * problem.weights.transport
        return total

    def evaluate(self, successors) -> CostBreakdown:
        """
        Full cost evaluation.

        Raises:
            CapacityExceededError: With the THROW policy, when a load exceeds
                the cluster capacity.
            InvalidSolutionError: If the successor function is malformed.
        """
        try:
            return self._simulate(validate_successors(successors))
        except _CapacityBreach:
            return CostBreakdown.infinite('full')

    def _simulate(self, s: np.ndarray) -> CostBreakdown:
        problem = self.problem
        dist = problem.distances
        walk_weight = problem.weights.walk
        analysis = self._analyzer.analyze(s, with_clusters=False)

        loads = np.where(s >= 0, problem.leaves, 0.0)
        nodes = np.flatnonzero(s >= 0)
        pending = set(int(node) for node in nodes[s[nodes] != nodes])
        waiting = np.bincount(s[list(pending)], minlength=len(s)) if pending else np.zeros(len(s), int)
        sources = [int(node) for node in analysis.sources]

        rake = 0.0
        walk = 0.0
        position = problem.start

        if pending:
            current = self._nearest(position, sources)
            walk += dist[position, current] * walk_weight
            while True:
                target = int(s[current])
                step = dist[current, target]
                rake += self._rake_stroke_cost(loads[current], step)
                walk += step * walk_weight

                pending.discard(current)
                waiting[target] -= 1
                loads[target] += loads[current]
                loads[current] = 0
                self._check_load(target, loads[target])

                if not pending:
                    position = target
                    break

                current = target
                if s[current] == current or waiting[current] > 0:
                    nxt = self._nearest(current, sources)
                    walk += dist[current, nxt] * walk_weight
                    current = nxt

        walk += dist[position, problem.start] * walk_weight
        walk += 2 * dist[problem.depot, problem.start] * walk_weight
        transport = self._transport_cost(analysis.hubs, loads)
        return CostBreakdown(rake=rake, walk=walk, transport=transport, mode='full')

    def _nearest(self, position: int, sources: list) -> int:
        """Remove and return the source closest to position (first on ties)."""
        if not sources:
            raise InvalidSolutionError("Unraked nodes remain but no source is left")
        row = self.problem.distances[position]
        best = min(range(len(sources)), key=lambda i: row[sources[i]])
        return sources.pop(best)

    def evaluate_cheap(self, successors, accumulated: Optional[np.ndarray] = None) -> CostBreakdown:
        """
        Raking and transport costs without any walking.

        Args:
            successors: The successor function.
            accumulated: Subtree leaf sums of the successor function, if the
                caller already maintains them.
        """
        problem = self.problem
        s = as_successors(successors)
        acc = accumulated if accumulated is not None else accumulated_leaves(problem, s)
        try:
            rake = 0.0
            nodes = np.flatnonzero(s >= 0)
            for node in nodes:
                self._check_load(int(node), acc[node])
                target = s[node]
                if target != node:
                    rake += self._rake_stroke_cost(acc[node], problem.distances[node, target])
        except _CapacityBreach:
            return CostBreakdown.infinite('cheap')
        hubs = nodes[s[nodes] == nodes]
        return CostBreakdown(rake=rake, walk=0.0, transport=self._transport_cost(hubs, acc), mode='cheap')
