"""Bird's-eye and range images of point clouds."""

from __future__ import annotations

import colorsys
import math

import numpy as np
from PIL import Image

from drivingslam.bfnn import as_points

_BEV_BACKGROUND = (255, 255, 255)
_BEV_POINT = (79, 143, 227)


def bird_eye_view(points, resolution: float = 0.1, min_z: float = 0.2, max_z: float = 2.5) -> np.ndarray:
    """RGB top-down image of the points whose height lies in [min_z, max_z].

    The image spans the x/y extent of the cloud at ``resolution`` metres per pixel;
    the background is white and occupied pixels are blue.
    """
    pts = as_points(points)
    if len(pts) == 0:
        raise ValueError("cannot build a bird's-eye view of an empty cloud")

    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    max_x, max_y = pts[:, 0].max(), pts[:, 1].max()
    inv_r = 1.0 / resolution

    rows = int((max_y - min_y) * inv_r)
    cols = int((max_x - min_x) * inv_r)
    x_center = 0.5 * (max_x + min_x)
    y_center = 0.5 * (max_y + min_y)
    x_center_image = float(cols // 2)
    y_center_image = float(rows // 2)

    image = np.empty((rows, cols, 3), dtype=np.uint8)
    image[:, :] = _BEV_BACKGROUND

    xs = np.trunc((pts[:, 0] - x_center) * inv_r + x_center_image).astype(int)
    ys = np.trunc((pts[:, 1] - y_center) * inv_r + y_center_image).astype(int)
    keep = (
        (xs >= 0) & (xs < cols) & (ys >= 0) & (ys < rows)
        & (pts[:, 2] >= min_z) & (pts[:, 2] <= max_z)
    )
    image[ys[keep], xs[keep]] = _BEV_POINT
    return image


def _hsv8_to_rgb(h: int, s: int, v: int) -> tuple[int, int, int]:
    # 8-bit hue covers 0..180 for a full turn and wraps beyond it.
    hue = (h / 180.0) % 1.0
    r, g, b = colorsys.hsv_to_rgb(hue, s / 255.0, v / 255.0)
    return round(r * 255), round(g * 255), round(b * 255)


def range_image(points, azimuth_resolution_deg: float = 0.3, elevation_rows: int = 16,
                elevation_range: float = 15.0, lidar_height: float = 1.128) -> np.ndarray:
    """RGB range image: azimuth along columns, elevation along rows with up at the top.

    Hue encodes the horizontal range of the point written last to a pixel; empty
    pixels are black.
    """
    pts = as_points(points)
    cols = int(360 / azimuth_resolution_deg)
    rows = elevation_rows
    hsv = np.zeros((rows, cols, 3), dtype=np.uint8)
    ele_resolution = elevation_range * 2 / elevation_rows

    for x, y, z in pts:
        azimuth = math.degrees(math.atan2(y, x))
        rng = math.hypot(x, y)
        if rng == 0.0:
            continue
        ratio = (z - lidar_height) / rng
        if not -1.0 <= ratio <= 1.0:
            continue
        elevation = math.degrees(math.asin(ratio))
        if azimuth < 0:
            azimuth += 360

        col = int(azimuth / azimuth_resolution_deg)
        row = int((elevation + elevation_range) / ele_resolution + 0.5)
        if 0 <= col < cols and 0 <= row < rows:
            hsv[row, col] = (int(rng / 100 * 255.0) % 256, 255, 127)

    flipped = hsv[::-1]
    image = np.zeros_like(flipped)
    for r, c in zip(*np.nonzero(flipped.any(axis=2))):
        image[r, c] = _hsv8_to_rgb(*(int(v) for v in flipped[r, c]))
    return image


def save_image(image, path) -> None:
    """Write an RGB uint8 image array to ``path``; the format follows the extension."""
    Image.fromarray(np.asarray(image, dtype=np.uint8)).save(path)