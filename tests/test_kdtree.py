import numpy as np
import pytest

from drivingslam.bfnn import INVALID_ID, bfnn_cloud_mt_k, bfnn_point_k
from drivingslam.kdtree import KdTree

SQUARE = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]


def _random_cloud(seed, n):
    return np.random.default_rng(seed).uniform(-5.0, 5.0, size=(n, 3))


def _precision_recall(truth, esti):
    truth_set = set(truth)
    esti_set = set(esti)
    effective = [d for d in esti if d[0] != INVALID_ID and d[1] != INVALID_ID]
    fp = sum(1 for d in effective if d not in truth_set)
    fn = sum(1 for d in truth if d not in esti_set)
    return 1.0 - fp / len(effective), 1.0 - fn / len(truth)


def test_kdtree_basics():
    tree = KdTree()
    assert tree.build_tree(SQUARE)
    assert len(tree) == 4
    lines = tree.describe()
    assert len(lines) == 7
    assert lines[0] == "node: 0, axis: 0, th: 0.5"
    leaves = sorted(line for line in lines if line.startswith("leaf"))
    assert leaves == [
        "leaf node: 2, idx: 0",
        "leaf node: 3, idx: 2",
        "leaf node: 5, idx: 1",
        "leaf node: 6, idx: 3",
    ]


def test_build_empty_cloud():
    tree = KdTree()
    assert tree.build_tree([]) is False
    assert len(tree) == 0


def test_clear_resets_size():
    tree = KdTree()
    tree.build_tree(SQUARE)
    tree.clear()
    assert len(tree) == 0
    assert tree.describe() == []


def test_k_larger_than_size():
    tree = KdTree()
    tree.build_tree(SQUARE)
    with pytest.raises(ValueError):
        tree.get_closest_point((0, 0, 0), 5)


def test_nonpositive_k():
    tree = KdTree()
    tree.build_tree(SQUARE)
    with pytest.raises(ValueError):
        tree.get_closest_point((0, 0, 0), 0)


def test_exact_knn_pinned():
    tree = KdTree()
    tree.build_tree(SQUARE)
    tree.set_enable_ann(False)
    assert tree.get_closest_point((0.9, 0.8, 0.0), 4) == [3, 1, 2, 0]
    assert tree.get_closest_point((0.1, 0.1, 0.0), 1) == [0]


def test_duplicate_points_do_not_recurse_forever():
    tree = KdTree()
    assert tree.build_tree([[1, 1, 1]] * 5)
    assert len(tree) == 1
    assert tree.get_closest_point((0, 0, 0), 1) == [0]


def test_exact_knn_matches_brute_force():
    first = _random_cloud(21, 300)
    second = _random_cloud(22, 60)
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 1.0)
    for q in second:
        assert tree.get_closest_point(q, 5) == bfnn_point_k(first, q, 5)


def test_knn_mt_precision_and_recall():
    first = _random_cloud(23, 400)
    second = _random_cloud(24, 80)
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 1.0)
    assert len(tree) == 400
    truth = bfnn_cloud_mt_k(first, second)
    matches = tree.get_closest_point_mt(second, 5)
    assert len(matches) == 80 * 5
    precision, recall = _precision_recall(truth, matches)
    assert precision == 1.0
    assert recall == 1.0


def test_approximate_results_are_valid_neighbours():
    first = _random_cloud(25, 300)
    second = _random_cloud(26, 40)
    tree = KdTree()
    tree.build_tree(first)
    tree.set_enable_ann(True, 0.1)
    for q in second:
        found = tree.get_closest_point(q, 5)
        assert len(set(found)) == 5
        d = np.linalg.norm(first[found] - q, axis=1)
        assert np.all(np.diff(d) >= -1e-12)
        best = np.linalg.norm(first - q, axis=1).min()
        assert d[0] >= best - 1e-12


def test_mt_with_k_too_large_is_invalid():
    tree = KdTree()
    tree.build_tree(SQUARE)
    matches = tree.get_closest_point_mt([[0, 0, 0]], 6)
    assert matches == [(INVALID_ID, 0)] * 6