"""Dead reckoning by direct integration of IMU readings."""

from __future__ import annotations

import numpy as np

from drivingslam.navtypes import IMU, NavState, so3_exp


class IMUIntegration:
    """Integrates IMU readings into rotation, velocity and position with known biases."""

    def __init__(self, gravity, init_bg, init_ba) -> None:
        self.gravity = np.asarray(gravity, dtype=float).reshape(3).copy()
        self.bg = np.asarray(init_bg, dtype=float).reshape(3).copy()
        self.ba = np.asarray(init_ba, dtype=float).reshape(3).copy()
        self.R = np.eye(3)
        self.v = np.zeros(3)
        self.p = np.zeros(3)
        self.timestamp = 0.0

    def add_imu(self, imu: IMU) -> None:
        """Integrate one reading; intervals outside (0, 0.1) s only advance the clock."""
        dt = imu.timestamp - self.timestamp
        if 0.0 < dt < 0.1:
            acc = self.R @ (imu.acce - self.ba)
            self.p = self.p + self.v * dt + 0.5 * self.gravity * dt * dt + 0.5 * acc * dt * dt
            self.v = self.v + acc * dt + self.gravity * dt
            self.R = self.R @ so3_exp((imu.gyro - self.bg) * dt)
        self.timestamp = imu.timestamp

    def nav_state(self) -> NavState:
        return NavState(self.timestamp, self.R, self.p, self.v, self.bg, self.ba)