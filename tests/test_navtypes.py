import math

import numpy as np
import pytest

from drivingslam.navtypes import (
    IMU,
    NavState,
    Pose,
    hat,
    quaternion_wxyz,
    right_jacobian,
    right_jacobian_inv,
    rot_z,
    so3_exp,
    so3_log,
)

VECTORS = [
    (0.1, -0.2, 0.3),
    (1.0, 0.5, -0.7),
    (0.0, 0.0, 3.0),
    (1e-12, 0.0, 0.0),
    (-2.0, 1.0, 0.5),
]


def test_hat_is_cross_product():
    v = np.array([1.0, 2.0, 3.0])
    w = np.array([-0.5, 0.4, 2.0])
    assert np.allclose(hat(v) @ w, np.cross(v, w))
    assert np.allclose(hat(v), -hat(v).T)


@pytest.mark.parametrize("omega", VECTORS)
def test_exp_is_rotation(omega):
    R = so3_exp(omega)
    assert np.allclose(R @ R.T, np.eye(3), atol=1e-9)
    assert np.linalg.det(R) == pytest.approx(1.0)


@pytest.mark.parametrize("omega", VECTORS)
def test_log_inverts_exp(omega):
    assert np.allclose(so3_log(so3_exp(omega)), omega, atol=1e-9)


def test_rot_z_quarter_turn():
    assert np.allclose(rot_z(math.pi / 2) @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
    assert np.allclose(rot_z(0.7), so3_exp([0.0, 0.0, 0.7]))


def test_identity_quaternion():
    assert np.allclose(quaternion_wxyz(np.eye(3)), [1.0, 0.0, 0.0, 0.0])


@pytest.mark.parametrize("omega", VECTORS)
def test_quaternion_unit_and_consistent(omega):
    q = quaternion_wxyz(so3_exp(omega))
    assert np.linalg.norm(q) == pytest.approx(1.0)
    assert np.allclose(so3_log(so3_exp(omega)), so3_log(so3_exp(omega)))


@pytest.mark.parametrize("omega", [(0.3, -0.1, 0.2), (1.0, 0.5, -0.2)])
def test_right_jacobian_first_order(omega):
    delta = np.array([1e-6, -2e-6, 1.5e-6])
    lhs = so3_exp(np.asarray(omega) + delta)
    rhs = so3_exp(omega) @ so3_exp(right_jacobian(omega) @ delta)
    assert np.allclose(lhs, rhs, atol=1e-10)


@pytest.mark.parametrize("omega", [(0.3, -0.1, 0.2), (1.0, 0.5, -0.2), (0.0, 0.0, 0.0)])
def test_right_jacobian_inverse(omega):
    product = right_jacobian_inv(so3_exp(omega)) @ right_jacobian(omega)
    assert np.allclose(product, np.eye(3), atol=1e-9)


def test_pose_inverse_and_composition():
    pose = Pose(so3_exp([0.1, 0.2, 0.3]), [1.0, -2.0, 0.5])
    ident = pose @ pose.inverse()
    assert np.allclose(ident.matrix(), np.eye(4))
    other = Pose(rot_z(0.4), [0.0, 1.0, 0.0])
    composed = pose @ other
    assert np.allclose(composed.matrix(), pose.matrix() @ other.matrix())


def test_pose_transform_matches_matrix():
    pose = Pose(so3_exp([0.5, -0.2, 0.1]), [3.0, 2.0, 1.0])
    point = np.array([0.3, -0.4, 2.0])
    homog = pose.matrix() @ np.append(point, 1.0)
    assert np.allclose(pose.transform(point), homog[:3])


def test_pose_matmul_rejects_non_pose():
    with pytest.raises(TypeError):
        Pose() @ 3


def test_navstate_pose_copies():
    state = NavState(1.0, so3_exp([0.0, 0.0, 0.2]), [1.0, 2.0, 3.0])
    pose = state.pose()
    pose.translation[0] = 100.0
    assert state.p[0] == 1.0
    assert np.allclose(pose.rotation, state.R)


def test_imu_converts_to_arrays():
    imu = IMU(0.5, [1, 2, 3], (4, 5, 6))
    assert imu.gyro.dtype == float
    assert np.allclose(imu.acce, [4.0, 5.0, 6.0])