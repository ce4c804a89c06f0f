"""
Typed failures raised by the leaf-raking core.
"""

from __future__ import annotations
from typing import Optional


class LeafRakingError(Exception):
    """Base class for all errors raised by the package."""


class InvalidProblemError(LeafRakingError, ValueError):
    """The garden, depot, start or parameters of a problem are unusable."""


class UnsupportedPolicyError(LeafRakingError, ValueError):
    """A selection or violation policy name is not known."""


class CapacityExceededError(LeafRakingError):
    """
    Raised when the leaves accumulated on a node exceed the cluster capacity.

    Attributes:
        node: Node on which the load was exceeded.
        load: Accumulated leaf quantity at that node.
        capacity: The configured maximum.
    """

    def __init__(self, node: int, load: float, capacity: float,
                 message: Optional[str] = None):
        self.node = node
        self.load = load
        self.capacity = capacity
        super().__init__(
            message or f"Node {node} accumulates {load:g} leaves (capacity {capacity:g})"
        )


class InvalidSolutionError(LeafRakingError, AssertionError):
    """A successor function breaks a structural invariant (cycles, dangling targets)."""


class InvalidClusterError(InvalidSolutionError):
    """A cluster is disconnected, overlaps another cluster or contains blocked cells."""
