"""
Simulated annealing over forest states.
"""

from __future__ import annotations
import logging
import time
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .core import ProblemModel
from .evaluator import CostBreakdown, CostEvaluator
from .policies import CapacityViolationPolicy, HubStrategy
from .state import ForestState

logger = logging.getLogger(__name__)


# =============================================================================
# Operator Base Class
# =============================================================================

class StateOperator(ABC):
    """Base class for neighbourhood moves on a ForestState."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        """
        Apply one random move in place.

        Args:
            state: State to modify.
            rng: Random generator of the search.

        Returns:
            True if the state changed.
        """
        pass


# =============================================================================
# Operators
# =============================================================================

class MergeClusters(StateOperator):
    """Merge a cluster with room left into a neighbouring cluster."""

    def __init__(self):
        super().__init__("merge_clusters")

    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        capacity = state.problem.max_cluster_leaves
        candidates = [cid for cid in state.cluster_ids()
                      if 0 < state.cluster(cid).leaves < capacity]
        for cid in rng.permutation(candidates) if candidates else []:
            record = state.cluster(int(cid))
            for node in rng.permutation(sorted(record.members)):
                neighbours = state.problem.neighbors(int(node))
                for other in rng.permutation(neighbours):
                    other_record = state.cluster(state.cluster_of(int(other)))
                    if other_record is record or other_record.leaves == 0:
                        continue
                    if state.merge_clusters(int(node), int(other)):
                        return True
        return False


class SplitCluster(StateOperator):
    """Cut a random subtree off its cluster and re-hub both halves."""

    def __init__(self, hub_strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN):
        super().__init__("split_cluster")
        self.hub_strategy = hub_strategy

    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        problem = state.problem
        for node in rng.permutation(problem.nodes):
            node = int(node)
            if state.is_hub(node) or problem.leaves[node] <= 0:
                continue
            return state.split_cluster(node, self.hub_strategy)
        return False


class SplitAndMerge(StateOperator):
    """Split one cluster, then merge two others."""

    def __init__(self, hub_strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN):
        super().__init__("split_and_merge")
        self._split = SplitCluster(hub_strategy)
        self._merge = MergeClusters()

    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        split = self._split(state, rng)
        merged = self._merge(state, rng)
        return split or merged


class RetargetNode(StateOperator):
    """Let a random node rake into a different neighbour (or become a hub)."""

    def __init__(self, attempts: int = 20):
        super().__init__("retarget_node")
        self.attempts = attempts

    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        problem = state.problem
        for _ in range(self.attempts):
            node = int(rng.choice(problem.nodes))
            options = [int(n) for n in problem.neighbors(node) if n != state.successor(node)]
            if not state.is_hub(node):
                options.append(node)
            if not options:
                continue
            if state.retarget(node, options[int(rng.integers(len(options)))]):
                return True
        return False


class RerootCluster(StateOperator):
    """Move the hub of a cluster to a random member."""

    def __init__(self):
        super().__init__("reroot_cluster")

    def __call__(self, state: ForestState, rng: np.random.Generator) -> bool:
        non_hubs = [int(n) for n in state.problem.nodes if not state.is_hub(int(n))]
        if not non_hubs:
            return False
        return state.reroot_cluster(non_hubs[int(rng.integers(len(non_hubs)))])


# =============================================================================
# Simulated Annealing Framework
# =============================================================================

@dataclass
class AnnealingConfig:
    """Configuration for simulated annealing."""
    max_iterations: int = 10000
    max_time: float = 300.0  # seconds
    num_chains: int = 4

    # Temperature schedule
    initial_temperature: Optional[float] = None  # None: best initial cost
    cooling_rate: float = 0.97
    min_temperature: float = 1e-8
    max_stagnation: Optional[int] = None  # None: number of cells

    # Scoring
    cheap_costs: bool = False

    # Adaptive weight updates
    sigma_best: float = 33.0
    sigma_better: float = 9.0
    sigma_accept: float = 13.0
    weight_decay: float = 0.8
    segment_length: int = 100


@dataclass
class AnnealingStats:
    """Statistics from an annealing run."""
    iterations: int = 0
    time_elapsed: float = 0.0
    initial_objective: float = 0.0
    final_objective: float = 0.0
    best_iteration: int = 0
    improvements: int = 0
    accepted: int = 0
    rejected_moves: int = 0
    operator_stats: Dict = field(default_factory=dict)


class SimulatedAnnealing:
    """
    Simulated annealing with adaptive operator selection.

    Several independent chains are advanced in lockstep. Each step applies a
    roulette-selected operator to a copy of a chain's state and accepts it
    with the Metropolis criterion. The temperature starts at the best initial
    cost and cools geometrically; the run stops after max_iterations, after
    max_time, or once the temperature is negligible and the best cost has not
    improved for max_stagnation steps.
    """

    def __init__(
        self,
        operators: List[StateOperator],
        config: Optional[AnnealingConfig] = None,
        random_state: Optional[int] = None
    ):
        self.operators = operators
        self.config = config or AnnealingConfig()
        self._rng = np.random.default_rng(random_state)

        self.weights = np.ones(len(operators))
        self.scores = np.zeros(len(operators))
        self.uses = np.zeros(len(operators))

    def _select_operator(self) -> int:
        """Roulette wheel selection based on weights."""
        probs = self.weights / self.weights.sum()
        return int(self._rng.choice(len(self.weights), p=probs))

    def _objective(self, state: ForestState, evaluator: CostEvaluator) -> float:
        if self.config.cheap_costs:
            return state.cheap_costs(evaluator).total
        return state.costs(evaluator).total

    def _accept(self, delta: float, temperature: float) -> bool:
        """Metropolis acceptance criterion."""
        if delta < 0:
            return True
        if temperature <= 0 or not np.isfinite(delta):
            return False
        return self._rng.random() < np.exp(-delta / temperature)

    def _update_weights(self):
        """Update operator weights based on scores."""
        cfg = self.config
        for i in range(len(self.operators)):
            if self.uses[i] > 0:
                self.weights[i] = (
                    cfg.weight_decay * self.weights[i] +
                    (1 - cfg.weight_decay) * self.scores[i] / self.uses[i]
                )
        # keep every operator selectable
        self.weights = np.maximum(self.weights, 1e-3)
        self.scores.fill(0)
        self.uses.fill(0)

    def run(
        self,
        states: Union[ForestState, List[ForestState]],
        evaluator: Optional[CostEvaluator] = None
    ) -> Tuple[ForestState, AnnealingStats]:
        """
        Run the annealing.

        Args:
            states: Initial state, or one initial state per chain. A single
                state is copied into config.num_chains chains.
            evaluator: Cost evaluator; defaults to one with the INFINITE
                violation policy.

        Returns:
            Tuple of (best state, statistics).
        """
        cfg = self.config
        start_time = time.time()

        if isinstance(states, ForestState):
            states = [states.copy() for _ in range(max(1, cfg.num_chains))]
        else:
            states = [state.copy() for state in states]
        if not states:
            raise ValueError("At least one initial state is required")
        problem: ProblemModel = states[0].problem
        if evaluator is None:
            evaluator = CostEvaluator(problem, CapacityViolationPolicy.INFINITE)

        objectives = [self._objective(state, evaluator) for state in states]
        best_idx = int(np.argmin(objectives))
        best = states[best_idx].copy()
        best_obj = objectives[best_idx]

        stats = AnnealingStats(
            initial_objective=best_obj,
            operator_stats={op.name: {'uses': 0, 'changes': 0} for op in self.operators},
        )

        temperature = cfg.initial_temperature if cfg.initial_temperature is not None else best_obj
        if not np.isfinite(temperature):
            temperature = 1.0
        max_stagnation = cfg.max_stagnation if cfg.max_stagnation is not None else problem.n_cells
        stagnation = 0

        iteration = 0
        while iteration < cfg.max_iterations:
            if time.time() - start_time > cfg.max_time:
                break

            improved = False
            for chain, state in enumerate(states):
                op_idx = self._select_operator()
                operator = self.operators[op_idx]
                candidate = state.copy()
                changed = operator(candidate, self._rng)
                self.uses[op_idx] += 1
                stats.operator_stats[operator.name]['uses'] += 1
                if not changed:
                    stats.rejected_moves += 1
                    continue
                stats.operator_stats[operator.name]['changes'] += 1

                candidate_obj = self._objective(candidate, evaluator)
                delta = candidate_obj - objectives[chain]

                score = 0.0
                if candidate_obj < best_obj:
                    best = candidate.copy()
                    best_obj = candidate_obj
                    score = cfg.sigma_best
                    stats.best_iteration = iteration
                    stats.improvements += 1
                    improved = True
                elif candidate_obj < objectives[chain]:
                    score = cfg.sigma_better
                    stats.improvements += 1
                elif self._accept(delta, temperature):
                    score = cfg.sigma_accept
                    stats.accepted += 1

                if score > 0:
                    states[chain] = candidate
                    objectives[chain] = candidate_obj
                self.scores[op_idx] += score

            if (iteration + 1) % cfg.segment_length == 0:
                self._update_weights()

            temperature *= cfg.cooling_rate
            stagnation = 0 if improved else stagnation + 1

            if iteration % 100 == 0:
                logger.debug("Iter %d: best=%.2f, T=%.4g", iteration, best_obj, temperature)

            iteration += 1
            if temperature < cfg.min_temperature and stagnation > max_stagnation:
                break

        stats.iterations = iteration
        stats.time_elapsed = time.time() - start_time
        stats.final_objective = best_obj
        logger.info(
            "Annealing finished after %d iterations: %.2f -> %.2f",
            iteration, stats.initial_objective, best_obj,
        )
        return best, stats


def create_default_annealing(
    config: Optional[AnnealingConfig] = None,
    hub_strategy: Union[HubStrategy, str] = HubStrategy.MEDIAN,
    random_state: Optional[int] = None
) -> SimulatedAnnealing:
    """Create simulated annealing with the default operators."""
    operators = [
        MergeClusters(),
        SplitCluster(hub_strategy),
        SplitAndMerge(hub_strategy),
        RetargetNode(),
        RerootCluster(),
    ]
    return SimulatedAnnealing(operators, config, random_state)
