"""
Leaf Raking Solver Package
==========================

Clustering and cost engine for the leaf-raking problem: partition a garden
into capacity-bounded clusters, rake every cluster onto a hub and haul the
leaves to the depot at minimum cost.

Main Components:
- Core: Problem model (garden, distances, capacities, cost weights)
- Analysis: Hubs, sources and clusters of successor functions
- Clustering: Simultaneous, successive, zigzag and random cluster builders
- Centering: Hub selection and shortest-path raking trees
- Evaluator: Full and cheap cost evaluation
- State: Incrementally maintained forest for stochastic search
- Search: Simulated annealing over forest states
"""

from .core import (
    BLOCKED,
    DEPOT,
    SHED,
    TREE,
    CostWeights,
    ProblemModel,
    Role,
)
from .exceptions import (
    CapacityExceededError,
    InvalidClusterError,
    InvalidProblemError,
    InvalidSolutionError,
    LeafRakingError,
    UnsupportedPolicyError,
)
from .policies import (
    CandidateSelection,
    CapacityViolationPolicy,
    HubStrategy,
    QueueDiscipline,
)
from .analysis import (
    ClusterAnalyzer,
    SuccessorAnalysis,
    accumulated_leaves,
    node_roles,
    skip_zero_hubs,
    successor_frame,
    trace_to_hub,
    validate_successors,
)
from .centering import center_hubs, recenter, select_hub
from .clustering import (
    BaseClusterer,
    RandomClusterer,
    SimultaneousClusterer,
    SuccessiveClusterer,
    ZigzagClusterer,
)
from .evaluator import CostBreakdown, CostEvaluator
from .state import ClusterRecord, ForestState
from .search import (
    AnnealingConfig,
    AnnealingStats,
    SimulatedAnnealing,
    create_default_annealing,
    # Operators
    MergeClusters,
    SplitCluster,
    SplitAndMerge,
    RetargetNode,
    RerootCluster,
)
from .solver import LeafRakingSolver
from .logging_config import get_log_level, setup_logging

__version__ = "0.1.0"
__all__ = [
    # Core
    "BLOCKED",
    "DEPOT",
    "SHED",
    "TREE",
    "CostWeights",
    "ProblemModel",
    "Role",
    # Errors
    "CapacityExceededError",
    "InvalidClusterError",
    "InvalidProblemError",
    "InvalidSolutionError",
    "LeafRakingError",
    "UnsupportedPolicyError",
    # Policies
    "CandidateSelection",
    "CapacityViolationPolicy",
    "HubStrategy",
    "QueueDiscipline",
    # Analysis
    "ClusterAnalyzer",
    "SuccessorAnalysis",
    "accumulated_leaves",
    "node_roles",
    "skip_zero_hubs",
    "successor_frame",
    "trace_to_hub",
    "validate_successors",
    # Centering
    "center_hubs",
    "recenter",
    "select_hub",
    # Clustering
    "BaseClusterer",
    "RandomClusterer",
    "SimultaneousClusterer",
    "SuccessiveClusterer",
    "ZigzagClusterer",
    # Evaluator
    "CostBreakdown",
    "CostEvaluator",
    # State
    "ClusterRecord",
    "ForestState",
    # Search
    "AnnealingConfig",
    "AnnealingStats",
    "SimulatedAnnealing",
    "create_default_annealing",
    "MergeClusters",
    "SplitCluster",
    "SplitAndMerge",
    "RetargetNode",
    "RerootCluster",
    # Solver
    "LeafRakingSolver",
    "get_log_level",
    "setup_logging",
]
