"""K-d tree with exact or approximate k-nearest-neighbour search."""

from __future__ import annotations

import heapq
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from drivingslam.bfnn import INVALID_ID, as_points

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class KdTreeNode:
    """A tree node: a split plane for inner nodes, a point index for leaves."""

    id: int = -1
    point_idx: int = 0
    axis_index: int = 0
    split_thresh: float = 0.0
    left: KdTreeNode | None = None
    right: KdTreeNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class KdTree:
    """K-d tree split at the mean of the axis with the largest variance."""

    def __init__(self) -> None:
        self._root: KdTreeNode | None = None
        self._cloud = np.zeros((0, 3))
        self._nodes: dict[int, KdTreeNode] = {}
        self._size = 0
        self._next_id = 0
        self.approximate = True
        self.alpha = 0.1

    def __len__(self) -> int:
        """Number of leaves."""
        return self._size

    def set_enable_ann(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        """Enable approximate search, pruning with ``alpha`` times the current worst distance."""
        self.approximate = use_ann
        self.alpha = alpha

    def clear(self) -> None:
        self._nodes = {}
        self._root = None
        self._size = 0
        self._next_id = 0

    def build_tree(self, cloud) -> bool:
        """Build the tree over ``cloud``; False for an empty cloud."""
        pts = as_points(cloud)
        if len(pts) == 0:
            return False
        self._cloud = pts.copy()
        self.clear()
        self._root = self._new_node()
        self._insert(np.arange(len(pts)), self._root)
        return True

    def _new_node(self) -> KdTreeNode:
        node = KdTreeNode(id=self._next_id)
        self._next_id += 1
        return node

    def _insert(self, points: np.ndarray, node: KdTreeNode) -> None:
        self._nodes[node.id] = node
        if len(points) == 0:
            return
        if len(points) == 1:
            self._size += 1
            node.point_idx = int(points[0])
            return

        split = self._find_split(points)
        if split is None:
            self._size += 1
            node.point_idx = int(points[0])
            return

        node.axis_index, node.split_thresh, left, right = split
        node.left = self._new_node()
        self._insert(left, node.left)
        node.right = self._new_node()
        self._insert(right, node.right)

    def _find_split(self, points: np.ndarray):
        sub = self._cloud[points]
        mean = sub.mean(axis=0)
        var = ((sub - mean) ** 2).sum(axis=0) / (len(sub) - 1)
        axis = int(np.argmax(var))
        thresh = float(mean[axis])
        mask = sub[:, axis] < thresh
        left, right = points[mask], points[~mask]
        # Coincident points cannot be separated; they end in a single leaf.
        if len(left) == 0 or len(right) == 0:
            return None
        return axis, thresh, left, right

    def get_closest_point(self, pt, k: int = 5) -> list[int]:
        """Indices of the ``k`` nearest points, nearest first."""
        if k < 1:
            raise ValueError(f"k must be positive, got {k}")
        if k > self._size:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")
        query = np.asarray(pt, dtype=float).reshape(-1)[:3]
        heap: list[tuple[float, int]] = []
        self._knn(query, self._root, heap, k)
        return [idx for _, idx in sorted(heap, key=lambda entry: -entry[0])]

    def get_closest_point_mt(self, cloud, k: int = 5) -> list[tuple[int, int]]:
        """k (tree index, query index) pairs per query point; missing ones are INVALID_ID."""
        if k < 1:
            raise ValueError(f"k must be positive, got {k}")
        queries = as_points(cloud)

        def search(pt) -> list[int]:
            if k > self._size:
                return []
            return self.get_closest_point(pt, k)

        with ThreadPoolExecutor() as pool:
            results = list(pool.map(search, queries))

        matches = []
        for idx, found in enumerate(results):
            padded = found + [INVALID_ID] * (k - len(found))
            matches.extend((n, idx) for n in padded)
        return matches

    def _knn(self, pt: np.ndarray, node: KdTreeNode, heap: list, k: int) -> None:
        if node.is_leaf:
            self._compute_dis_for_leaf(pt, node, heap, k)
            return
        if pt[node.axis_index] < node.split_thresh:
            this_side, that_side = node.left, node.right
        else:
            this_side, that_side = node.right, node.left
        self._knn(pt, this_side, heap, k)
        if self._need_expand(pt, node, heap, k):
            self._knn(pt, that_side, heap, k)

    def _need_expand(self, pt: np.ndarray, node: KdTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = pt[node.axis_index] - node.split_thresh
        worst = -heap[0][0]
        if self.approximate:
            return d * d < worst * self.alpha
        return d * d < worst

    def _compute_dis_for_leaf(self, pt: np.ndarray, node: KdTreeNode, heap: list, k: int) -> None:
        diff = pt - self._cloud[node.point_idx]
        dis2 = float(diff @ diff)
        if len(heap) < k:
            heapq.heappush(heap, (-dis2, node.point_idx))
        elif dis2 < -heap[0][0]:
            heapq.heapreplace(heap, (-dis2, node.point_idx))

    def describe(self) -> list[str]:
        """One line per node, in id order; each line is also logged."""
        lines = []
        for node_id in sorted(self._nodes):
            node = self._nodes[node_id]
            if node.is_leaf:
                line = f"leaf node: {node.id}, idx: {node.point_idx}"
            else:
                line = f"node: {node.id}, axis: {node.axis_index}, th: {node.split_thresh}"
            logger.info(line)
            lines.append(line)
        return lines