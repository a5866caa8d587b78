"""Octree with exact or approximate k-nearest-neighbour search."""

from __future__ import annotations

import heapq
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from drivingslam.bfnn import INVALID_ID, as_points


def _zeros3() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class Box3D:
    """Axis-aligned box given by its minimum and maximum corners."""

    min: np.ndarray = field(default_factory=_zeros3)
    max: np.ndarray = field(default_factory=_zeros3)

    def __post_init__(self) -> None:
        self.min = np.asarray(self.min, dtype=float).reshape(3).copy()
        self.max = np.asarray(self.max, dtype=float).reshape(3).copy()

    @classmethod
    def from_bounds(cls, min_x, max_x, min_y, max_y, min_z, max_z) -> Box3D:
        return cls((min_x, min_y, min_z), (max_x, max_y, max_z))

    def inside(self, pt) -> bool:
        """True when ``pt`` lies in the box, faces included."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        return bool(np.all(p <= self.max) and np.all(p >= self.min))

    def distance(self, pt) -> float:
        """Largest distance by which ``pt`` lies outside the box along any axis."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        below = self.min - p
        above = p - self.max
        return float(max(0.0, below.max(), above.max()))


@dataclass(eq=False)
class OctoTreeNode:
    """A tree node: eight children for inner nodes, a point index (or -1) for leaves."""

    id: int = -1
    point_idx: int = -1
    box: Box3D = field(default_factory=Box3D)
    children: list[OctoTreeNode] | None = None

    @property
    def is_leaf(self) -> bool:
        return self.children is None


class OctoTree:
    """Octree whose nodes split their box into eight equal octants."""

    def __init__(self) -> None:
        self._root: OctoTreeNode | None = None
        self._cloud = np.zeros((0, 3))
        self._nodes: dict[int, OctoTreeNode] = {}
        self._size = 0
        self._next_id = 0
        self.approximate = False
        self.alpha = 1.0

    def __len__(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def set_approximate(self, use_ann: bool = True, alpha: float = 0.1) -> None:
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
        self._root = self._new_node(Box3D(pts.min(axis=0), pts.max(axis=0)))
        self._insert(np.arange(len(pts)), self._root)
        return True

    def _new_node(self, box: Box3D) -> OctoTreeNode:
        node = OctoTreeNode(id=self._next_id, box=box)
        self._next_id += 1
        return node

    def _insert(self, points: np.ndarray, node: OctoTreeNode) -> None:
        self._nodes[node.id] = node
        if len(points) == 0:
            return
        sub = self._cloud[points]
        # A single point, or coincident points that no split can separate, make a leaf.
        if len(points) == 1 or np.all(sub == sub[0]):
            self._size += 1
            node.point_idx = int(points[0])
            return

        for child, child_points in zip(*self._expand_node(node, points)):
            self._insert(child_points, child)

    def _expand_node(self, node: OctoTreeNode, parent_idx: np.ndarray):
        lo, hi = node.box.min, node.box.max
        c = 0.5 * (lo + hi)
        boxes = []
        for z_lo, z_hi in ((lo[2], c[2]), (c[2], hi[2])):
            for y_lo, y_hi in ((lo[1], c[1]), (c[1], hi[1])):
                for x_lo, x_hi in ((lo[0], c[0]), (c[0], hi[0])):
                    boxes.append(Box3D((x_lo, y_lo, z_lo), (x_hi, y_hi, z_hi)))
        node.children = [self._new_node(box) for box in boxes]

        buckets: list[list[int]] = [[] for _ in range(8)]
        for idx in parent_idx:
            pt = self._cloud[idx]
            for i, child in enumerate(node.children):
                if child.box.inside(pt):
                    buckets[i].append(int(idx))
                    break
        return node.children, [np.array(b, dtype=int) for b in buckets]

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

    def _knn(self, pt: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> None:
        if node.is_leaf:
            if node.point_idx != -1:
                self._compute_dis_for_leaf(pt, node, heap, k)
            return

        idx_child = -1
        min_dis = float("inf")
        for i, child in enumerate(node.children):
            if child.box.inside(pt):
                idx_child = i
                break
            d = child.box.distance(pt)
            if d < min_dis:
                idx_child = i
                min_dis = d

        self._knn(pt, node.children[idx_child], heap, k)
        for i, child in enumerate(node.children):
            if i != idx_child and self._need_expand(pt, child, heap, k):
                self._knn(pt, child, heap, k)

    def _need_expand(self, pt: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = node.box.distance(pt)
        worst = -heap[0][0]
        if self.approximate:
            return d * d < worst * self.alpha
        return d * d < worst

    def _compute_dis_for_leaf(self, pt: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> None:
        diff = pt - self._cloud[node.point_idx]
        dis2 = float(diff @ diff)
        if len(heap) < k:
            heapq.heappush(heap, (-dis2, node.point_idx))
        elif dis2 < -heap[0][0]:
            heapq.heapreplace(heap, (-dis2, node.point_idx))