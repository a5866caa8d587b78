"""Brute-force nearest-neighbour search over point clouds."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import numpy as np

INVALID_ID = -1
"""Index used in match lists where no neighbour was found."""


def as_points(cloud) -> np.ndarray:
    """Return the x, y, z columns of ``cloud`` as an (N, 3) float array."""
    pts = np.asarray(cloud, dtype=float)
    if pts.size == 0:
        return np.zeros((0, 3))
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError(f"a cloud must be an (N, 3) array of points, got shape {pts.shape}")
    return pts[:, :3]


def _as_point(point) -> np.ndarray:
    p = np.asarray(point, dtype=float).reshape(-1)
    if p.size < 3:
        raise ValueError("a point needs x, y and z")
    return p[:3]


def _dist2(points: np.ndarray, point: np.ndarray) -> np.ndarray:
    d = points - point
    return np.einsum("ij,ij->i", d, d)


def bfnn_point(cloud, point) -> int:
    """Index of the point of ``cloud`` closest to ``point``; the first one on ties."""
    pts = as_points(cloud)
    if len(pts) == 0:
        raise ValueError("cannot search an empty cloud")
    return int(np.argmin(_dist2(pts, _as_point(point))))


def bfnn_point_k(cloud, point, k: int = 5) -> list[int]:
    """Indices of the ``k`` points closest to ``point``, nearest first."""
    pts = as_points(cloud)
    if k > len(pts):
        raise ValueError(f"cannot set k larger than cloud size: {k}, {len(pts)}")
    order = np.argsort(_dist2(pts, _as_point(point)), kind="stable")
    return [int(i) for i in order[:k]]


def bfnn_cloud(cloud1, cloud2) -> list[tuple[int, int]]:
    """Nearest point of ``cloud1`` for every point of ``cloud2``, as (index1, index2) pairs."""
    target = as_points(cloud1)
    return [(bfnn_point(target, q), i) for i, q in enumerate(as_points(cloud2))]


def bfnn_cloud_mt(cloud1, cloud2) -> list[tuple[int, int]]:
    """Same result as :func:`bfnn_cloud`, computed on a thread pool."""
    target = as_points(cloud1)
    queries = as_points(cloud2)
    with ThreadPoolExecutor() as pool:
        nearest = list(pool.map(lambda q: bfnn_point(target, q), queries))
    return [(n, i) for i, n in enumerate(nearest)]


def bfnn_cloud_mt_k(cloud1, cloud2, k: int = 5) -> list[tuple[int, int]]:
    """The ``k`` nearest points of ``cloud1`` for each point of ``cloud2``, k pairs per query."""
    target = as_points(cloud1)
    queries = as_points(cloud2)
    with ThreadPoolExecutor() as pool:
        neighbours = list(pool.map(lambda q: bfnn_point_k(target, q, k), queries))
    return [(n, i) for i, found in enumerate(neighbours) for n in found]