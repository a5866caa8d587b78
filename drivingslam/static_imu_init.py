"""Estimates initial IMU biases, noise and gravity while the vehicle stands still."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from drivingslam.navtypes import IMU, Odom

logger = logging.getLogger(__name__)


@dataclass
class StaticIMUInitOptions:
    init_time_seconds: float = 10.0
    init_imu_queue_max_size: int = 2000
    static_odom_pulse: int = 5
    max_static_gyro_var: float = 0.5
    max_static_acce_var: float = 0.05
    gravity_norm: float = 9.81
    use_speed_for_static_checking: bool = True


def _mean_and_cov_diag(samples: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    mean = samples.mean(axis=0)
    cov = ((samples - mean) ** 2).sum(axis=0) / (len(samples) - 1)
    return mean, cov


class StaticIMUInit:
    """Collects IMU readings while static and estimates biases, noise and gravity."""

    def __init__(self, options: StaticIMUInitOptions | None = None) -> None:
        self.options = options if options is not None else StaticIMUInitOptions()
        self.init_success = False
        self.cov_gyro = np.zeros(3)
        self.cov_acce = np.zeros(3)
        self.init_bg = np.zeros(3)
        self.init_ba = np.zeros(3)
        self.gravity = np.zeros(3)
        self._is_static = False
        self._queue: deque[IMU] = deque()
        self._current_time = 0.0
        self._init_start_time = 0.0

    def add_imu(self, imu: IMU) -> bool:
        """Add a reading; True once initialisation has succeeded."""
        if self.init_success:
            return True

        if self.options.use_speed_for_static_checking and not self._is_static:
            logger.warning("waiting for the vehicle to stand still")
            self._queue.clear()
            return False

        if not self._queue:
            self._init_start_time = imu.timestamp

        self._queue.append(imu)

        if imu.timestamp - self._init_start_time > self.options.init_time_seconds:
            self._try_init()

        while len(self._queue) > self.options.init_imu_queue_max_size:
            self._queue.popleft()

        self._current_time = imu.timestamp
        return False

    def add_odom(self, odom: Odom) -> bool:
        """Update the static flag from wheel pulses."""
        if self.init_success:
            return True
        limit = self.options.static_odom_pulse
        self._is_static = odom.left_pulse < limit and odom.right_pulse < limit
        self._current_time = odom.timestamp
        return True

    def _try_init(self) -> bool:
        if len(self._queue) < 10:
            return False

        gyros = np.array([imu.gyro for imu in self._queue])
        acces = np.array([imu.acce for imu in self._queue])

        mean_gyro, self.cov_gyro = _mean_and_cov_diag(gyros)
        mean_acce, self.cov_acce = _mean_and_cov_diag(acces)

        logger.info("mean acce: %s", mean_acce)
        self.gravity = -mean_acce / np.linalg.norm(mean_acce) * self.options.gravity_norm

        mean_acce, self.cov_acce = _mean_and_cov_diag(acces + self.gravity)

        gyro_norm = float(np.linalg.norm(self.cov_gyro))
        if gyro_norm > self.options.max_static_gyro_var:
            logger.error("gyro noise too large: %s > %s", gyro_norm, self.options.max_static_gyro_var)
            return False

        acce_norm = float(np.linalg.norm(self.cov_acce))
        if acce_norm > self.options.max_static_acce_var:
            logger.error("acce noise too large: %s > %s", acce_norm, self.options.max_static_acce_var)
            return False

        self.init_bg = mean_gyro
        self.init_ba = mean_acce

        logger.info(
            "IMU initialised after %s s, bg = %s, ba = %s, gyro sq = %s, acce sq = %s, grav = %s",
            self._current_time - self._init_start_time,
            self.init_bg,
            self.init_ba,
            self.cov_gyro,
            self.cov_acce,
            self.gravity,
        )
        self.init_success = True
        return True