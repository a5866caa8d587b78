import numpy as np
import pytest

from drivingslam.bfnn import INVALID_ID, bfnn_cloud_mt_k, bfnn_point_k
from drivingslam.octo_tree import Box3D, OctoTree


@pytest.fixture
def square_cloud():
    return np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype=float)


@pytest.fixture
def random_clouds():
    rng = np.random.default_rng(7)
    return rng.uniform(-5, 5, size=(300, 3)), rng.uniform(-5, 5, size=(40, 3))


def test_basics_leaves_equal_points(square_cloud):
    tree = OctoTree()
    assert tree.build_tree(square_cloud)
    tree.set_approximate(False)
    assert len(tree) == 4


def test_basics_nearest(square_cloud):
    tree = OctoTree()
    tree.build_tree(square_cloud)
    tree.set_approximate(False)
    assert tree.get_closest_point([0.1, 0.1, 0.0], k=1) == [0]
    assert tree.get_closest_point([0.9, 0.95, 0.0], k=1) == [3]
    found = tree.get_closest_point([0.0, 0.0, 0.0], k=4)
    assert sorted(found) == [0, 1, 2, 3]
    assert found[0] == 0
    assert found[-1] == 3


def test_empty_cloud_is_rejected():
    tree = OctoTree()
    assert tree.build_tree(np.zeros((0, 3))) is False
    assert len(tree) == 0


def test_k_larger_than_size_raises(square_cloud):
    tree = OctoTree()
    tree.build_tree(square_cloud)
    with pytest.raises(ValueError):
        tree.get_closest_point([0, 0, 0], k=5)


def test_mt_pads_with_invalid_when_k_too_large(square_cloud):
    tree = OctoTree()
    tree.build_tree(square_cloud)
    matches = tree.get_closest_point_mt(np.array([[0.0, 0.0, 0.0]]), k=5)
    assert matches == [(INVALID_ID, 0)] * 5


def test_knn_matches_brute_force(random_clouds):
    first, second = random_clouds
    tree = OctoTree()
    tree.build_tree(first)
    tree.set_approximate(False)
    assert len(tree) == len(first)
    for q in second:
        assert tree.get_closest_point(q, k=5) == bfnn_point_k(first, q, 5)


def test_knn_mt_with_alpha_one_matches_brute_force(random_clouds):
    first, second = random_clouds
    tree = OctoTree()
    tree.build_tree(first)
    tree.set_approximate(True, 1.0)
    assert tree.get_closest_point_mt(second, 5) == bfnn_cloud_mt_k(first, second, 5)


def test_approximate_results_are_subset_of_cloud(random_clouds):
    first, second = random_clouds
    tree = OctoTree()
    tree.build_tree(first)
    tree.set_approximate(True, 0.1)
    for q in second:
        found = tree.get_closest_point(q, k=3)
        assert len(found) == 3
        assert len(set(found)) == 3
        d = [np.sum((first[i] - q) ** 2) for i in found]
        assert d == sorted(d)


def test_coincident_points_do_not_recurse_forever():
    cloud = np.array([[1.0, 1.0, 1.0]] * 5 + [[2.0, 2.0, 2.0]])
    tree = OctoTree()
    tree.build_tree(cloud)
    assert len(tree) == 2
    assert tree.get_closest_point([2.1, 2.0, 2.0], k=1) == [5]


def test_clear_resets_size(square_cloud):
    tree = OctoTree()
    tree.build_tree(square_cloud)
    tree.clear()
    assert len(tree) == 0


def test_box_inside_and_distance():
    box = Box3D.from_bounds(0, 1, 0, 2, 0, 3)
    assert box.inside([0.5, 1.0, 3.0])
    assert box.inside([0.0, 0.0, 0.0])
    assert not box.inside([1.5, 1.0, 1.0])
    assert box.distance([0.5, 0.5, 0.5]) == 0.0
    assert box.distance([3.0, 1.0, 1.0]) == pytest.approx(2.0)
    assert box.distance([2.0, -3.0, 1.0]) == pytest.approx(3.0)