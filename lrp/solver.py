"""
Main leaf-raking solver combining cluster construction, hub centering and
optional stochastic improvement.
"""

from __future__ import annotations
import logging
import time
import numpy as np
from typing import Any, Dict, Optional, Union

from .analysis import ClusterAnalyzer, skip_zero_hubs, validate_successors
from .centering import recenter
from .clustering import (
    BaseClusterer,
    RandomClusterer,
    SimultaneousClusterer,
    SuccessiveClusterer,
    ZigzagClusterer,
)
from .core import ProblemModel
from .evaluator import CostBreakdown, CostEvaluator
from .exceptions import UnsupportedPolicyError
from .policies import (
    CandidateSelection,
    CapacityViolationPolicy,
    HubStrategy,
    QueueDiscipline,
    resolve,
)
from .search import AnnealingConfig, AnnealingStats, create_default_annealing
from .state import ForestState

logger = logging.getLogger(__name__)


class LeafRakingSolver:
    """
    Main solver for leaf-raking problems.

    Implements a cluster-first approach:
    1. Build clusters and a successor function (simultaneous, successive, zigzag or random)
    2. Optionally turn leafless sources into hubs and re-center the hubs
    3. Optionally improve with simulated annealing
    4. Score the result with the full cost evaluation
    """

    def __init__(
        self,
        clustering_method: str = 'simultaneous',
        assignment: Union[CandidateSelection, str] = CandidateSelection.LEAF_MIN,
        contact: Union[CandidateSelection, str] = CandidateSelection.LEAF_MAX,
        hub_strategy: Union[HubStrategy, str] = HubStrategy.SMALLEST_INDEX,
        queue_discipline: Union[QueueDiscipline, str] = QueueDiscipline.FIFO,
        recenter_strategy: Optional[Union[HubStrategy, str]] = None,
        skip_zero_hubs: bool = False,
        anneal: bool = False,
        annealing_config: Optional[AnnealingConfig] = None,
        violation_policy: Union[CapacityViolationPolicy, str] = CapacityViolationPolicy.THROW,
        random_state: int = 0
    ):
        """
        Args:
            clustering_method: 'simultaneous', 'successive', 'zigzag' or 'random'.
            assignment: Assignment candidate policy ('simultaneous'), or the
                hub selection of 'successive'.
            contact: Contact candidate policy ('simultaneous'), or the
                neighbour order of 'successive'.
            hub_strategy: Hub strategy of the simultaneous builder.
            queue_discipline: FIFO or LIFO expansion for 'successive'.
            recenter_strategy: Re-center hubs with this strategy after building.
            skip_zero_hubs: Turn leafless sources into single hubs.
            anneal: Improve the built solution with simulated annealing.
            annealing_config: Configuration of the annealing.
            violation_policy: Capacity policy of the final evaluation.
            random_state: Random seed for reproducibility.
        """
        self.clustering_method = clustering_method
        self.assignment = resolve(CandidateSelection, assignment)
        self.contact = resolve(CandidateSelection, contact)
        self.hub_strategy = resolve(HubStrategy, hub_strategy)
        self.queue_discipline = resolve(QueueDiscipline, queue_discipline)
        self.recenter_strategy = (resolve(HubStrategy, recenter_strategy)
                                  if recenter_strategy is not None else None)
        self.skip_zero_hubs = skip_zero_hubs
        self.anneal = anneal
        self.annealing_config = annealing_config
        self.violation_policy = resolve(CapacityViolationPolicy, violation_policy)
        self.random_state = random_state

        self._clusterer: Optional[BaseClusterer] = None
        self._successors: Optional[np.ndarray] = None
        self._costs: Optional[CostBreakdown] = None
        self._annealing_stats: Optional[AnnealingStats] = None
        self._stats: Dict[str, Any] = {}

    def _create_clusterer(self) -> BaseClusterer:
        """Create the cluster construction component."""
        if self.clustering_method == 'simultaneous':
            return SimultaneousClusterer(
                assignment=self.assignment,
                contact=self.contact,
                hub_strategy=self.hub_strategy
            )
        elif self.clustering_method == 'successive':
            return SuccessiveClusterer(
                candidate_selection=self.contact,
                queue_discipline=self.queue_discipline,
                cluster_selection=self.assignment
            )
        elif self.clustering_method == 'zigzag':
            return ZigzagClusterer()
        elif self.clustering_method == 'random':
            return RandomClusterer(random_state=self.random_state)
        else:
            raise UnsupportedPolicyError(f"Unknown clustering method: {self.clustering_method}")

    def solve(self, problem: ProblemModel) -> np.ndarray:
        """
        Solve a leaf-raking problem.

        Args:
            problem: The problem to solve.

        Returns:
            The successor function of the solution.
        """
        start_time = time.time()

        # Phase 1: Clustering
        logger.info("Phase 1: %s clustering of %d cells", self.clustering_method, len(problem.nodes))
        cluster_start = time.time()
        self._clusterer = self._create_clusterer()
        successors = self._clusterer.fit_predict(problem)
        cluster_time = time.time() - cluster_start

        # Phase 2: Normalisation
        if self.skip_zero_hubs:
            successors = skip_zero_hubs(problem, successors)
        if self.recenter_strategy is not None:
            successors = recenter(problem, successors, self.recenter_strategy)
            if self.skip_zero_hubs:
                successors = skip_zero_hubs(problem, successors)
        validate_successors(successors, problem)

        # Phase 3: Stochastic improvement
        search_time = 0.0
        self._annealing_stats = None
        if self.anneal:
            logger.info("Phase 3: simulated annealing")
            search_start = time.time()
            annealing = create_default_annealing(
                config=self.annealing_config,
                random_state=self.random_state
            )
            best, self._annealing_stats = annealing.run(ForestState(problem, successors))
            successors = best.successors
            search_time = time.time() - search_start

        # Phase 4: Evaluation
        self._successors = successors
        self._costs = CostEvaluator(problem, self.violation_policy).evaluate(successors)
        analysis = ClusterAnalyzer().analyze(successors)

        total_time = time.time() - start_time
        self._stats = {
            'total_time': total_time,
            'cluster_time': cluster_time,
            'search_time': search_time,
            'num_clusters': analysis.num_clusters,
            'max_cluster_leaves': max(analysis.cluster_leaves(problem), default=0.0),
            'rake_cost': self._costs.rake,
            'walk_cost': self._costs.walk,
            'transport_cost': self._costs.transport,
            'total_cost': self._costs.total,
        }
        logger.info(
            "Solution: %d clusters, total cost %.2f (%.2fs)",
            analysis.num_clusters, self._costs.total, total_time,
        )
        return successors

    @property
    def successors(self) -> Optional[np.ndarray]:
        """Get the current successor function."""
        return self._successors

    @property
    def costs(self) -> Optional[CostBreakdown]:
        """Get the costs of the current solution."""
        return self._costs

    @property
    def annealing_stats(self) -> Optional[AnnealingStats]:
        return self._annealing_stats

    @property
    def stats(self) -> Dict[str, Any]:
        """Get solver statistics."""
        return self._stats
