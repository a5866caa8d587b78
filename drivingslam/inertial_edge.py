"""Preintegration residual between two frames and its Jacobians."""

from __future__ import annotations

import numpy as np

from drivingslam.imu_preintegration import IMUPreintegration
from drivingslam.navtypes import Pose, hat, right_jacobian, right_jacobian_inv, so3_log


def _vec3(v) -> np.ndarray:
    return np.asarray(v, dtype=float).reshape(3)


class InertialEdge:
    """Nine-dimensional residual (rotation, velocity, position) of a preintegration.

    It joins the pose, velocity, gyro bias and accelerometer bias of one frame with
    the pose and velocity of the next. Poses are perturbed as R * exp(dr) and p + dp.
    """

    def __init__(self, preinteg: IMUPreintegration, gravity, weight: float = 1.0) -> None:
        self.preint = preinteg
        self.dt = preinteg.dt
        self.grav = _vec3(gravity).copy()
        try:
            self.information = np.linalg.inv(preinteg.cov) * weight
        except np.linalg.LinAlgError as exc:
            raise ValueError("preintegration covariance is singular") from exc

    def compute_error(self, pose1: Pose, v1, bg1, ba1, pose2: Pose, v2) -> np.ndarray:
        """Residual ordered as rotation, velocity, position."""
        v1, v2 = _vec3(v1), _vec3(v2)
        bg, ba = _vec3(bg1), _vec3(ba1)
        dt, g = self.dt, self.grav

        dR = self.preint.delta_rotation(bg)
        dv = self.preint.delta_velocity(bg, ba)
        dp = self.preint.delta_position(bg, ba)

        R1T = pose1.rotation.T
        er = so3_log(dR.T @ R1T @ pose2.rotation)
        ev = R1T @ (v2 - v1 - g * dt) - dv
        ep = R1T @ (pose2.translation - pose1.translation - v1 * dt - g * dt * dt / 2) - dp
        return np.concatenate([er, ev, ep])

    def linearize(self, pose1: Pose, v1, bg1, ba1, pose2: Pose, v2) -> tuple[np.ndarray, ...]:
        """Jacobians of the residual for pose1 (9x6), v1, bg1, ba1 (9x3), pose2 (9x6), v2 (9x3)."""
        vi, vj = _vec3(v1), _vec3(v2)
        bg = _vec3(bg1)
        dt, g = self.dt, self.grav
        pre = self.preint
        dbg = bg - pre.bg

        R1 = pose1.rotation
        R1T = R1.T
        R2 = pose2.rotation
        pi, pj = pose1.translation, pose2.translation

        dR = pre.delta_rotation(bg)
        eR = dR.T @ R1T @ R2
        inv_jr = right_jacobian_inv(eR)

        j_pose1 = np.zeros((9, 6))
        j_pose1[0:3, 0:3] = -inv_jr @ (R2.T @ R1)
        j_pose1[3:6, 0:3] = hat(R1T @ (vj - vi - g * dt))
        j_pose1[6:9, 0:3] = hat(R1T @ (pj - pi - vi * dt - 0.5 * g * dt * dt))
        j_pose1[6:9, 3:6] = -R1T

        j_v1 = np.zeros((9, 3))
        j_v1[3:6, :] = -R1T
        j_v1[6:9, :] = -R1T * dt

        j_bg1 = np.zeros((9, 3))
        j_bg1[0:3, :] = -inv_jr @ eR.T @ right_jacobian(pre.dR_dbg @ dbg) @ pre.dR_dbg
        j_bg1[3:6, :] = -pre.dV_dbg
        j_bg1[6:9, :] = -pre.dP_dbg

        j_ba1 = np.zeros((9, 3))
        j_ba1[3:6, :] = -pre.dV_dba
        j_ba1[6:9, :] = -pre.dP_dba

        j_pose2 = np.zeros((9, 6))
        j_pose2[0:3, 0:3] = inv_jr
        j_pose2[6:9, 3:6] = R1T

        j_v2 = np.zeros((9, 3))
        j_v2[3:6, :] = R1T

        return j_pose1, j_v1, j_bg1, j_ba1, j_pose2, j_v2

    def hessian(self, pose1: Pose, v1, bg1, ba1, pose2: Pose, v2) -> np.ndarray:
        """24x24 Gauss-Newton Hessian J^T * information * J over all six variables."""
        J = np.hstack(self.linearize(pose1, v1, bg1, ba1, pose2, v2))
        return J.T @ self.information @ J