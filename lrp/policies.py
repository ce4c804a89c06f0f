"""
Selection policies shared by the cluster builders, hub centering and the
cost evaluator.

Policies are enums whose values are the short names used in configuration
files of the garden experiments (``"NW"``, ``"LM_max"``, ``"Median"`` ...).
Strategy functions are looked up in dictionaries keyed by the enum member.
"""

from __future__ import annotations
import numpy as np
from enum import Enum
from typing import Callable, Dict, Type, TypeVar, Union

from .core import ProblemModel
from .exceptions import UnsupportedPolicyError


class CandidateSelection(Enum):
    """Order in which candidate nodes are taken."""
    NW = 'NW'                   # smallest index first
    LEAF_MAX = 'LM_max'         # most leaves first
    LEAF_MIN = 'LM_min'         # fewest leaves first
    DEPOT_NEAREST = 'KP_min'    # closest to the depot first


class HubStrategy(Enum):
    """How the hub of a cluster is chosen."""
    SMALLEST_INDEX = 'SmallestIndex'
    LEAF_MAX = 'MaxLaub'
    LEAF_MIN = 'MinLaub'
    MEDIAN = 'Median'
    DEPOT_NEAREST = 'MinKompost'
    KEEP_HUBS = 'KeepHubs'


class CapacityViolationPolicy(Enum):
    """What the cost evaluator does when a node exceeds the cluster capacity."""
    IGNORE = 'ignore'
    INFINITE = 'infinite'
    THROW = 'throw'


class QueueDiscipline(Enum):
    """Order in which the successive builder expands absorbed nodes."""
    FIFO = 'FIFO'
    LIFO = 'LIFO'


P = TypeVar('P', bound=Enum)


def resolve(policy_type: Type[P], value: Union[P, str]) -> P:
    """
    Turn a policy member, value or member name into a policy member.

    Raises:
        UnsupportedPolicyError: If the value names no member of policy_type.
    """
    if isinstance(value, policy_type):
        return value
    try:
        return policy_type(value)
    except ValueError:
        pass
    if isinstance(value, str) and value in policy_type.__members__:
        return policy_type[value]
    choices = ", ".join(member.value for member in policy_type)
    raise UnsupportedPolicyError(f"Unknown {policy_type.__name__}: {value!r} (expected one of {choices})")


# Sort keys; ties are always broken by the node index.
_CANDIDATE_KEYS: Dict[CandidateSelection, Callable[[ProblemModel, np.ndarray], np.ndarray]] = {
    CandidateSelection.NW: lambda problem, nodes: np.zeros(len(nodes)),
    CandidateSelection.LEAF_MAX: lambda problem, nodes: -problem.leaves[nodes],
    CandidateSelection.LEAF_MIN: lambda problem, nodes: problem.leaves[nodes],
    CandidateSelection.DEPOT_NEAREST: lambda problem, nodes: problem.distances[nodes, problem.depot],
}


def order_candidates(
    problem: ProblemModel,
    nodes,
    selection: Union[CandidateSelection, str]
) -> np.ndarray:
    """
    Sort nodes by a candidate selection policy.

    Args:
        problem: The problem the nodes belong to.
        nodes: Node indices to order.
        selection: Policy defining the order.

    Returns:
        The nodes as an int64 array, best candidate first.
    """
    key_fn = _CANDIDATE_KEYS[resolve(CandidateSelection, selection)]
    nodes = np.asarray(nodes, dtype=np.int64)
    if nodes.size == 0:
        return nodes
    return nodes[np.lexsort((nodes, key_fn(problem, nodes)))]


def pick_candidate(
    problem: ProblemModel,
    nodes,
    selection: Union[CandidateSelection, str]
) -> int:
    """The best node under a candidate selection policy."""
    ordered = order_candidates(problem, nodes, selection)
    if ordered.size == 0:
        raise ValueError("No candidates to pick from")
    return int(ordered[0])
