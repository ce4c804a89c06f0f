"""
Core data structures for the leaf-raking solver.
"""

from __future__ import annotations
import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple, Union
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import shortest_path

from .exceptions import InvalidProblemError

logger = logging.getLogger(__name__)


# Cell markers (negative leaf quantities)
SHED = -1
TREE = -2
DEPOT = -10

# Successor of a blocked cell
BLOCKED = -1

# Defaults
DEFAULT_MAX_CLUSTER_LEAVES = 25
DEFAULT_MAX_TRANSPORT = 25
DEFAULT_DIAGONAL_WEIGHT = 1.4142

Cell = Union[int, Tuple[int, int]]

# Half of the 8-neighbourhood; the other half follows by symmetry.
_ORTHOGONAL_OFFSETS = ((0, 1), (1, 0))
_DIAGONAL_OFFSETS = ((1, 1), (1, -1))


class Role(IntEnum):
    """Role of a node in a successor function."""
    BLOCKED = -1
    BRIDGE = 0
    SOURCE = 1
    HUB = 2
    SINGLE = 3


def role_of(is_hub: bool, has_predecessors: bool) -> Role:
    """Role of a non-blocked node from its hub flag and in-degree."""
    if is_hub:
        return Role.HUB if has_predecessors else Role.SINGLE
    return Role.BRIDGE if has_predecessors else Role.SOURCE


@dataclass(frozen=True)
class CostWeights:
    """Weights of the three cost components."""
    rake: float = 1.0
    walk: float = 1.0
    transport: float = 1.0

    def __post_init__(self):
        for name in ('rake', 'walk', 'transport'):
            value = getattr(self, name)
            # also rejects NaN
            if not value >= 0:
                raise InvalidProblemError(
                    f"Cost weight '{name}' must be nonnegative, got {value}"
                )


def _shifted_pairs(index_grid: np.ndarray, dr: int, dc: int) -> Tuple[np.ndarray, np.ndarray]:
    """All index pairs (a, b) where b lies at offset (dr, dc) from a."""
    rows, cols = index_grid.shape
    a = index_grid[max(0, -dr):rows - max(0, dr), max(0, -dc):cols - max(0, dc)]
    b = index_grid[max(0, dr):rows - max(0, -dr), max(0, dc):cols - max(0, -dc)]
    return a.ravel(), b.ravel()


class ProblemModel:
    """
    A leaf-raking problem on a rectangular garden.

    Cells are indexed row-major. Nonnegative values are leaf quantities;
    negative values mark blocked cells (SHED, TREE, DEPOT). The model is
    read-only after construction and can be shared between search runs.
    """

    def __init__(
        self,
        garden,
        depot: Optional[Cell] = None,
        start: Optional[Cell] = None,
        max_cluster_leaves: float = DEFAULT_MAX_CLUSTER_LEAVES,
        max_transport: float = DEFAULT_MAX_TRANSPORT,
        weights: Optional[CostWeights] = None,
        diagonal_weight: float = DEFAULT_DIAGONAL_WEIGHT,
        max_rake: float = 1,
    ):
        """
        Args:
            garden: 2-D array-like of leaf quantities and cell markers.
            depot: (row, col) or node index of the depot. None looks up the
                unique DEPOT marker; an explicit depot keeps its cell value.
            start: (row, col) or node index where the worker starts. None picks
                the first shed next to free garden, else the first free cell.
            max_cluster_leaves: Capacity of a cluster (Max_Val).
            max_transport: Leaves hauled per transport trip.
            weights: Cost weights, defaults to all ones.
            diagonal_weight: Length of a diagonal step; 0 or inf disables them.
            max_rake: Leaves moved by a single rake stroke.
        """
        grid = np.array(garden, dtype=float)
        if grid.ndim != 2 or grid.size == 0:
            raise InvalidProblemError(f"Garden must be a non-empty 2-D grid, got shape {grid.shape}")
        if np.isnan(grid).any():
            raise InvalidProblemError("Garden contains NaN values")

        self.garden = grid
        self.shape: Tuple[int, int] = grid.shape
        self.n_cells = grid.size
        self.leaves = grid.ravel().copy()
        self.free = self.leaves >= 0

        self.max_cluster_leaves = float(max_cluster_leaves)
        self.max_transport = float(max_transport)
        self.max_rake = float(max_rake)
        for name, value in (('max_cluster_leaves', self.max_cluster_leaves),
                            ('max_transport', self.max_transport),
                            ('max_rake', self.max_rake)):
            if not value > 0:
                raise InvalidProblemError(f"{name} must be positive, got {value}")

        self.weights = weights if weights is not None else CostWeights()

        self.diagonal_weight = float(diagonal_weight)
        if not self.diagonal_weight >= 0:
            raise InvalidProblemError(f"Diagonal weight must be nonnegative, got {diagonal_weight}")
        self.allows_diagonal = 0 < self.diagonal_weight < np.inf

        self._nodes = np.flatnonzero(self.free)
        if len(self._nodes) == 0:
            raise InvalidProblemError("Garden has no collectible cells")

        self.depot = self._resolve_depot(depot)
        self.start = self._resolve_start(start)
        self._validate_endpoints()

        walkable = self.free.copy()
        walkable[[self.depot, self.start]] = True
        walk_graph = self._build_graph(walkable)
        self.distances = shortest_path(walk_graph, method='D', directed=False)
        self.adjacency = self._build_graph(self.free)
        self._neighbors: List[np.ndarray] = [
            self.adjacency.indices[self.adjacency.indptr[i]:self.adjacency.indptr[i + 1]].astype(np.int64)
            for i in range(self.n_cells)
        ]

        self._validate_reachability()
        self._validate_leaves()

        for array in (self.leaves, self.free, self._nodes, self.distances):
            array.flags.writeable = False

        logger.debug(
            "Problem %dx%d: %d free cells, %g leaves, depot %s, start %s",
            self.shape[0], self.shape[1], len(self._nodes), self.total_leaves,
            self.coords(self.depot), self.coords(self.start),
        )

    def __len__(self) -> int:
        return self.n_cells

    def __repr__(self) -> str:
        return (f"ProblemModel(shape={self.shape}, depot={self.coords(self.depot)}, "
                f"start={self.coords(self.start)}, max_cluster_leaves={self.max_cluster_leaves:g})")

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    def _cell_index(self, cell: Cell, what: str) -> int:
        if isinstance(cell, (tuple, list)):
            row, col = int(cell[0]), int(cell[1])
            if not (0 <= row < self.shape[0] and 0 <= col < self.shape[1]):
                raise InvalidProblemError(f"{what} {tuple(cell)} lies outside the garden {self.shape}")
            return self.index(row, col)
        node = int(cell)
        if not 0 <= node < self.n_cells:
            raise InvalidProblemError(f"{what} index {node} lies outside the garden")
        return node

    def _resolve_depot(self, depot: Optional[Cell]) -> int:
        if depot is not None:
            return self._cell_index(depot, 'Depot')
        markers = np.flatnonzero(self.leaves == DEPOT)
        if len(markers) != 1:
            raise InvalidProblemError(f"Expected exactly one depot cell, found {len(markers)}")
        return int(markers[0])

    def _resolve_start(self, start: Optional[Cell]) -> int:
        if start is not None:
            return self._cell_index(start, 'Start')
        for shed in np.flatnonzero(self.leaves == SHED):
            if shed != self.depot and self._has_free_neighbour(int(shed)):
                return int(shed)
        candidates = self._nodes[self._nodes != self.depot]
        if len(candidates) == 0:
            raise InvalidProblemError("No cell available as start")
        return int(candidates[0])

    def _offsets(self) -> List[Tuple[int, int, float]]:
        offsets = [(dr, dc, 1.0) for dr, dc in _ORTHOGONAL_OFFSETS]
        if self.allows_diagonal:
            offsets += [(dr, dc, self.diagonal_weight) for dr, dc in _DIAGONAL_OFFSETS]
        return offsets

    def _has_free_neighbour(self, node: int) -> bool:
        row, col = self.coords(node)
        rows, cols = self.shape
        for dr, dc, _ in self._offsets():
            for r, c in ((row + dr, col + dc), (row - dr, col - dc)):
                if 0 <= r < rows and 0 <= c < cols and self.garden[r, c] >= 0:
                    return True
        return False

    def _build_graph(self, mask: np.ndarray) -> csr_matrix:
        """Symmetric weighted adjacency between the cells selected by mask."""
        index_grid = np.arange(self.n_cells).reshape(self.shape)
        heads, tails, weights = [], [], []
        for dr, dc, weight in self._offsets():
            a, b = _shifted_pairs(index_grid, dr, dc)
            keep = mask[a] & mask[b]
            heads.append(a[keep])
            tails.append(b[keep])
            weights.append(np.full(int(keep.sum()), weight))
        rows = np.concatenate(heads + tails)
        cols = np.concatenate(tails + heads)
        data = np.concatenate(weights + weights)
        graph = csr_matrix((data, (rows, cols)), shape=(self.n_cells, self.n_cells))
        graph.sort_indices()
        return graph

    def _validate_endpoints(self):
        if self.start == self.depot:
            raise InvalidProblemError("Start and depot must be different cells")
        depot_value = self.leaves[self.depot]
        if depot_value < 0 and depot_value not in (DEPOT, SHED):
            raise InvalidProblemError(
                f"Depot {self.coords(self.depot)} lies on a blocked cell ({depot_value:g})"
            )
        start_value = self.leaves[self.start]
        if start_value < 0 and start_value != SHED:
            raise InvalidProblemError(
                f"Start {self.coords(self.start)} lies on a blocked cell ({start_value:g})"
            )
        if not self._has_free_neighbour(self.depot):
            raise InvalidProblemError(f"Depot {self.coords(self.depot)} is isolated")
        if not self._has_free_neighbour(self.start):
            raise InvalidProblemError(f"Start {self.coords(self.start)} is isolated")

    def _validate_reachability(self):
        from_depot = self.distances[self.depot]
        if not np.isfinite(from_depot[self.start]):
            raise InvalidProblemError("Start is not reachable from the depot")
        unreachable = self._nodes[~np.isfinite(from_depot[self._nodes])]
        if len(unreachable):
            cells = [self.coords(int(node)) for node in unreachable[:5]]
            raise InvalidProblemError(
                f"{len(unreachable)} cells are not reachable from the depot, e.g. {cells}"
            )

    def _validate_leaves(self):
        heaviest = self.leaves[self._nodes].max()
        if heaviest > self.max_cluster_leaves:
            raise InvalidProblemError(
                f"A cell holds {heaviest:g} leaves, more than the cluster capacity "
                f"{self.max_cluster_leaves:g}"
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> np.ndarray:
        """Indices of all collectible cells, ascending."""
        return self._nodes

    @property
    def total_leaves(self) -> float:
        return float(self.leaves[self._nodes].sum())

    def index(self, row: int, col: int) -> int:
        return int(row) * self.shape[1] + int(col)

    def coords(self, node: int) -> Tuple[int, int]:
        row, col = divmod(int(node), self.shape[1])
        return row, col

    def leaf_quantity(self, node: int) -> float:
        """Leaves on a cell; negative for blocked cells."""
        return float(self.leaves[node])

    def is_blocked(self, node: int) -> bool:
        return not self.free[node]

    def neighbors(self, node: int) -> np.ndarray:
        """Collectible cells adjacent to node, ascending."""
        return self._neighbors[node]

    def distance(self, a: int, b: int) -> float:
        """Shortest walking distance; inf when unreachable."""
        return float(self.distances[a, b])

    def describe(self) -> str:
        """Readable summary of the problem."""
        s = f"Leaf raking problem {self.shape[0]}x{self.shape[1]}\n"
        s += f"  Collectible cells: {len(self._nodes)} ({self.total_leaves:g} leaves)\n"
        s += f"  Blocked cells: {self.n_cells - len(self._nodes)}\n"
        s += f"  Depot: {self.coords(self.depot)}  Start: {self.coords(self.start)}\n"
        s += f"  Max leaves per cluster: {self.max_cluster_leaves:g}\n"
        s += f"  Max leaves per transport: {self.max_transport:g}\n"
        s += (f"  Weights: rake={self.weights.rake:g}, walk={self.weights.walk:g}, "
              f"transport={self.weights.transport:g}\n")
        diagonal = f"{self.diagonal_weight:g}" if self.allows_diagonal else "disabled"
        s += f"  Diagonal weight: {diagonal}\n"
        return s

    @classmethod
    def from_dataframe(cls, frame: pd.DataFrame, **kwargs) -> ProblemModel:
        """Create a problem from a DataFrame holding the garden grid."""
        return cls(frame.to_numpy(dtype=float), **kwargs)
