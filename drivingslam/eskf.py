"""18-dimensional error-state Kalman filter fusing IMU, wheel odometry and poses."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

import numpy as np

from drivingslam.navtypes import DEG2RAD, GNSS, IMU, NavState, Odom, Pose, hat, so3_exp, so3_log

logger = logging.getLogger(__name__)


@dataclass
class ESKFOptions:
    imu_dt: float = 0.01
    gyro_var: float = 1e-5
    acce_var: float = 1e-2
    bias_gyro_var: float = 1e-6
    bias_acce_var: float = 1e-4
    odom_var: float = 0.5
    odom_span: float = 0.1
    wheel_radius: float = 0.155
    circle_pulse: float = 1024.0
    gnss_pos_noise: float = 0.1
    gnss_height_noise: float = 0.1
    gnss_ang_noise: float = 1.0 * DEG2RAD
    update_bias_gyro: bool = True
    update_bias_acce: bool = True


class ESKF:
    """Error-state Kalman filter; state order p, v, R, bg, ba, g."""

    def __init__(self, options: ESKFOptions | None = None) -> None:
        self.options = replace(options) if options is not None else ESKFOptions()
        self.current_time = 0.0
        self.p = np.zeros(3)
        self.v = np.zeros(3)
        self.R = np.eye(3)
        self.bg = np.zeros(3)
        self.ba = np.zeros(3)
        self.g = np.array([0.0, 0.0, -9.8])
        self.dx = np.zeros(18)
        self.cov = np.eye(18)
        self.Q = np.zeros((18, 18))
        self.odom_noise = np.zeros((3, 3))
        self.gnss_noise = np.zeros((6, 6))
        self._first_gnss = True
        self._build_noise(self.options)

    @property
    def gravity(self) -> np.ndarray:
        return self.g.copy()

    def set_initial_conditions(self, options, init_bg, init_ba, gravity=(0.0, 0.0, -9.8)) -> None:
        self._build_noise(options)
        self.options = replace(options)
        self.bg = np.asarray(init_bg, dtype=float).reshape(3).copy()
        self.ba = np.asarray(init_ba, dtype=float).reshape(3).copy()
        self.g = np.asarray(gravity, dtype=float).reshape(3).copy()
        self.cov = np.eye(18) * 1e-4

    def _build_noise(self, options: ESKFOptions) -> None:
        ev, et = options.acce_var, options.gyro_var
        eg, ea = options.bias_gyro_var, options.bias_acce_var
        self.Q = np.diag([0.0] * 3 + [ev] * 3 + [et] * 3 + [eg] * 3 + [ea] * 3 + [0.0] * 3)

        # The odometry noise follows the options currently held, not the new ones.
        o2 = self.options.odom_var * self.options.odom_var
        self.odom_noise = np.diag([o2, o2, o2])

        gp2 = options.gnss_pos_noise ** 2
        gh2 = options.gnss_height_noise ** 2
        ga2 = options.gnss_ang_noise ** 2
        self.gnss_noise = np.diag([gp2, gp2, gh2, ga2, ga2, ga2])

    def predict(self, imu: IMU) -> bool:
        """Propagate the state with one IMU reading; False when the interval is invalid."""
        dt = imu.timestamp - self.current_time
        if dt > 5 * self.options.imu_dt or dt < 0:
            logger.info("skip this imu because dt = %s", dt)
            self.current_time = imu.timestamp
            return False

        acc = imu.acce - self.ba
        gyr = imu.gyro - self.bg
        new_p = self.p + self.v * dt + 0.5 * (self.R @ acc) * dt * dt + 0.5 * self.g * dt * dt
        new_v = self.v + (self.R @ acc) * dt + self.g * dt
        new_R = self.R @ so3_exp(gyr * dt)

        self.R = new_R
        self.v = new_v
        self.p = new_p

        eye3 = np.eye(3)
        F = np.eye(18)
        F[0:3, 3:6] = eye3 * dt
        F[3:6, 6:9] = -self.R @ hat(acc) * dt
        F[3:6, 12:15] = -self.R * dt
        F[3:6, 15:18] = eye3 * dt
        F[6:9, 6:9] = so3_exp(-gyr * dt)
        F[6:9, 9:12] = -eye3 * dt

        self.dx = F @ self.dx
        self.cov = F @ self.cov @ F.T + self.Q
        self.current_time = imu.timestamp
        return True

    def observe_wheel_speed(self, odom: Odom) -> bool:
        """Correct the velocity with the mean wheel speed along the body x axis."""
        H = np.zeros((3, 18))
        H[:, 3:6] = np.eye(3)
        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + self.odom_noise)

        o = self.options
        scale = o.wheel_radius / o.circle_pulse * 2 * math.pi / o.odom_span
        velo_l = scale * odom.left_pulse
        velo_r = scale * odom.right_pulse
        average_vel = 0.5 * (velo_l + velo_r)

        vel_world = self.R @ np.array([average_vel, 0.0, 0.0])
        self.dx = K @ (vel_world - self.v)
        self.cov = (np.eye(18) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def observe_gps(self, gnss: GNSS) -> bool:
        """Use a GNSS pose; the first one sets the state directly."""
        if self._first_gnss:
            self.R = gnss.utm_pose.rotation.copy()
            self.p = gnss.utm_pose.translation.copy()
            self._first_gnss = False
            self.current_time = gnss.unix_time
            return True

        self.observe_se3(gnss.utm_pose, self.options.gnss_pos_noise, self.options.gnss_ang_noise)
        self.current_time = gnss.unix_time
        return True

    def observe_se3(self, pose: Pose, trans_noise: float = 0.1, ang_noise: float = 1.0 * DEG2RAD) -> bool:
        """Correct position and rotation with an observed pose."""
        H = np.zeros((6, 18))
        H[0:3, 0:3] = np.eye(3)
        H[3:6, 6:9] = np.eye(3)

        V = np.diag([trans_noise] * 3 + [ang_noise] * 3)
        K = self.cov @ H.T @ np.linalg.inv(H @ self.cov @ H.T + V)

        innov = np.concatenate([pose.translation - self.p, so3_log(self.R.T @ pose.rotation)])
        self.dx = K @ innov
        self.cov = (np.eye(18) - K @ H) @ self.cov
        self._update_and_reset()
        return True

    def nominal_state(self) -> NavState:
        return NavState(self.current_time, self.R, self.p, self.v, self.bg, self.ba)

    def nominal_se3(self) -> Pose:
        return Pose(self.R, self.p)

    def set_x(self, x: NavState, grav) -> None:
        self.current_time = x.timestamp
        self.R = x.R.copy()
        self.p = x.p.copy()
        self.v = x.v.copy()
        self.bg = x.bg.copy()
        self.ba = x.ba.copy()
        self.g = np.asarray(grav, dtype=float).reshape(3).copy()

    def set_cov(self, cov) -> None:
        cov = np.asarray(cov, dtype=float)
        if cov.shape != (18, 18):
            raise ValueError(f"covariance must be 18x18, got {cov.shape}")
        self.cov = cov.copy()

    def _update_and_reset(self) -> None:
        dx = self.dx
        self.p = self.p + dx[0:3]
        self.v = self.v + dx[3:6]
        self.R = self.R @ so3_exp(dx[6:9])
        if self.options.update_bias_gyro:
            self.bg = self.bg + dx[9:12]
        if self.options.update_bias_acce:
            self.ba = self.ba + dx[12:15]
        self.g = self.g + dx[15:18]
        self._project_cov()
        self.dx = np.zeros(18)

    def _project_cov(self) -> None:
        J = np.eye(18)
        J[6:9, 6:9] = np.eye(3) - 0.5 * hat(self.dx[6:9])
        self.cov = J @ self.cov @ J.T