"""Rotation helpers, rigid poses and the sensor and navigation-state records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

DEG2RAD = math.pi / 180.0
RAD2DEG = 180.0 / math.pi

_EPS = 1e-10


def _vec3(v) -> np.ndarray:
    return np.asarray(v, dtype=float).reshape(3).copy()


def _zeros3() -> np.ndarray:
    return np.zeros(3)


def _eye3() -> np.ndarray:
    return np.eye(3)


def hat(v) -> np.ndarray:
    """Skew-symmetric matrix such that hat(v) @ w == cross(v, w)."""
    x, y, z = _vec3(v)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def so3_exp(omega) -> np.ndarray:
    """Rotation matrix for the rotation vector ``omega``."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _EPS:
        return np.eye(3) + k + 0.5 * (k @ k)
    return (
        np.eye(3)
        + (math.sin(theta) / theta) * k
        + ((1.0 - math.cos(theta)) / (theta * theta)) * (k @ k)
    )


def quaternion_wxyz(R) -> np.ndarray:
    """Unit quaternion (w, x, y, z) of a rotation matrix."""
    m = np.asarray(R, dtype=float)
    tr = m[0, 0] + m[1, 1] + m[2, 2]
    if tr > 0.0:
        s = math.sqrt(tr + 1.0) * 2.0
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    q = np.array(q)
    return q / np.linalg.norm(q)


def so3_log(R) -> np.ndarray:
    """Rotation vector of a rotation matrix."""
    q = quaternion_wxyz(R)
    w = q[0]
    xyz = q[1:]
    n = float(np.linalg.norm(xyz))
    if n < _EPS:
        factor = 2.0 / w - 2.0 / 3.0 * (n * n) / (w ** 3)
    elif abs(w) < _EPS:
        factor = (math.pi if w > 0 else -math.pi) / n
    else:
        factor = 2.0 * math.atan(n / w) / n
    return factor * xyz


def right_jacobian(omega) -> np.ndarray:
    """Right Jacobian of SO(3) at the rotation vector ``omega``."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _EPS:
        return np.eye(3) - 0.5 * k
    t2 = theta * theta
    return (
        np.eye(3)
        - ((1.0 - math.cos(theta)) / t2) * k
        + ((theta - math.sin(theta)) / (t2 * theta)) * (k @ k)
    )


def right_jacobian_inv(R) -> np.ndarray:
    """Inverse right Jacobian of SO(3) at the rotation matrix ``R``."""
    w = so3_log(R)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _EPS:
        return np.eye(3) + 0.5 * k + (k @ k) / 12.0
    coeff = 1.0 / (theta * theta) - (1.0 + math.cos(theta)) / (2.0 * theta * math.sin(theta))
    return np.eye(3) + 0.5 * k + coeff * (k @ k)


def rot_z(angle: float) -> np.ndarray:
    """Rotation matrix about the z axis by ``angle`` radians."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


@dataclass(eq=False)
class Pose:
    """Rigid transform made of a rotation matrix and a translation."""

    rotation: np.ndarray = field(default_factory=_eye3)
    translation: np.ndarray = field(default_factory=_zeros3)

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=float).reshape(3, 3).copy()
        self.translation = _vec3(self.translation)

    def inverse(self) -> Pose:
        rt = self.rotation.T
        return Pose(rt, -rt @ self.translation)

    def __matmul__(self, other):
        if not isinstance(other, Pose):
            return NotImplemented
        return Pose(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def transform(self, point) -> np.ndarray:
        return self.rotation @ _vec3(point) + self.translation


@dataclass(eq=False)
class IMU:
    """One IMU reading: gyroscope (rad/s) and accelerometer (m/s^2)."""

    timestamp: float = 0.0
    gyro: np.ndarray = field(default_factory=_zeros3)
    acce: np.ndarray = field(default_factory=_zeros3)

    def __post_init__(self) -> None:
        self.gyro = _vec3(self.gyro)
        self.acce = _vec3(self.acce)


@dataclass
class Odom:
    """Wheel encoder pulses of the left and right wheels."""

    timestamp: float = 0.0
    left_pulse: float = 0.0
    right_pulse: float = 0.0


@dataclass(eq=False)
class GNSS:
    """A GNSS reading already expressed as a pose in the map frame."""

    unix_time: float = 0.0
    utm_pose: Pose = field(default_factory=Pose)
    heading_valid: bool = False


@dataclass(eq=False)
class NavState:
    """Navigation state: time, rotation, position, velocity and IMU biases."""

    timestamp: float = 0.0
    R: np.ndarray = field(default_factory=_eye3)
    p: np.ndarray = field(default_factory=_zeros3)
    v: np.ndarray = field(default_factory=_zeros3)
    bg: np.ndarray = field(default_factory=_zeros3)
    ba: np.ndarray = field(default_factory=_zeros3)

    def __post_init__(self) -> None:
        self.R = np.asarray(self.R, dtype=float).reshape(3, 3).copy()
        self.p = _vec3(self.p)
        self.v = _vec3(self.v)
        self.bg = _vec3(self.bg)
        self.ba = _vec3(self.ba)

    def pose(self) -> Pose:
        return Pose(self.R, self.p)