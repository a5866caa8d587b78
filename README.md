# drivingslam

This package provides building blocks for localisation in autonomous driving. It is written with numpy.

## Modules

- **`drivingslam.navtypes`**: rotation and pose helpers.
  - SO(3) functions: `hat`, `so3_exp`, `so3_log`, `right_jacobian`, `right_jacobian_inv`, `rot_z` and `quaternion_wxyz`.
  - `Pose` is a rigid transform. It supports `inverse()`, `matrix()` and `transform(point)`. Two poses compose as `pose_a @ pose_b`.
  - The records `IMU`, `Odom`, `GNSS` and `NavState`. `NavState.pose()` returns the state as a `Pose`.
- **`drivingslam.imu_integration.IMUIntegration`**: dead reckoning by integrating IMU readings with known biases.
  - A reading is integrated only when its interval is between 0 and 0.1 s.
- **`drivingslam.static_imu_init.StaticIMUInit`**: initialisation while the vehicle stands still.
  - Feed it readings with `add_imu` and `add_odom`.
  - Once `init_success` is true, it holds `init_bg`, `init_ba`, `cov_gyro`, `cov_acce` and `gravity`.
  - Options are set with `StaticIMUInitOptions`.
- **`drivingslam.eskf.ESKF`**: an 18-dimensional error-state Kalman filter. The state order is p, v, R, bg, ba, g.
  - `predict(imu)` propagates the state from an IMU reading.
  - The observation methods are `observe_wheel_speed(odom)`, `observe_gps(gnss)` and `observe_se3(pose, trans_noise, ang_noise)`. The first GNSS reading sets the pose directly.
  - `nominal_state()` and `nominal_se3()` return the current estimate.
  - `set_x` and `set_cov` overwrite the state and the covariance.
  - Options are set with `ESKFOptions`.
- **`drivingslam.imu_preintegration.IMUPreintegration`**: IMU preintegration with bias Jacobians and a propagated noise covariance.
  - `integrate(imu, dt)` adds a reading.
  - `predict(start, grav)` returns the state reached from `start`.
  - `delta_rotation`, `delta_velocity` and `delta_position` return the increments corrected to first order for new biases.
- **`drivingslam.inertial_edge.InertialEdge`**: the 9-dimensional preintegration residual (rotation, velocity, position) between two frames.
  - `compute_error` returns the residual.
  - `linearize` returns the Jacobians.
  - `hessian` returns the 24x24 product J^T · information · J.
- **`drivingslam.bfnn`**: brute-force nearest-neighbour search.
  - Functions: `bfnn_point`, `bfnn_point_k`, `bfnn_cloud`, `bfnn_cloud_mt` and `bfnn_cloud_mt_k`. The `_mt` variants use a thread pool.
  - Clouds are `(N, 3)` arrays, or wider arrays of which the first three columns are used.
- **`drivingslam.kdtree.KdTree`**: a k-d tree split at the mean of the axis with the largest variance.
  - Exact search, or approximate search through `set_enable_ann(use_ann, alpha)`. Approximate search is on by default with `alpha = 0.1`.
  - `get_closest_point(pt, k)` returns the nearest indices, nearest first.
  - `get_closest_point_mt(cloud, k)` returns `(tree index, query index)` pairs. Missing neighbours are `INVALID_ID` (-1).
  - `describe()` lists the nodes.
  - `len(tree)` is the number of leaves.
- **`drivingslam.octo_tree.OctoTree`**: an octree over the bounding box of the cloud, with the same search interface.
  - Approximate search is switched with `set_approximate(use_ann, alpha)`. It is off by default.
  - `Box3D` is the axis-aligned box it uses.
- **`drivingslam.images`**: images of point clouds.
  - `bird_eye_view(points, resolution, min_z, max_z)` returns a white top-down RGB image with occupied pixels in blue.
  - `range_image(points, azimuth_resolution_deg, elevation_rows, elevation_range, lidar_height)` returns an RGB range image. Hue encodes horizontal range.
  - `save_image(image, path)` writes an image array with Pillow.

A k-d tree or octree query raises `ValueError` when `k` exceeds the number of points in the tree.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Integrate a constant rotation with preintegration:

```python
import numpy as np
from drivingslam.navtypes import IMU, NavState
from drivingslam.imu_preintegration import IMUPreintegration

gravity = np.array([0.0, 0.0, -9.8])
preinteg = IMUPreintegration()
for i in range(1, 101):
    imu = IMU(timestamp=0.01 * i, gyro=np.array([0.0, 0.0, np.pi]), acce=-gravity)
    preinteg.integrate(imu, 0.01)

end = preinteg.predict(NavState(timestamp=0.0), gravity)
```

Find the k nearest neighbours in a point cloud:

```python
import numpy as np
from drivingslam.kdtree import KdTree
from drivingslam.bfnn import bfnn_point_k

cloud = np.random.default_rng(0).random((1000, 3))
tree = KdTree()
tree.build_tree(cloud)
tree.set_enable_ann(False, 1.0)
print(tree.get_closest_point(cloud[0], 5))
print(bfnn_point_k(cloud, cloud[0], 5))
```

Render a bird's-eye view:

```python
import numpy as np
from drivingslam.images import bird_eye_view, save_image

cloud = np.random.default_rng(1).random((5000, 3)) * [20.0, 20.0, 3.0]
image = bird_eye_view(cloud, resolution=0.1, min_z=0.2, max_z=2.5)
save_image(image, "bev.png")
```

## What it does not do

- **No command-line programs.** Everything is used from Python.
- **No file readers.** Nothing reads sensor logs, recorded datasets or point-cloud files. Readings are built as `IMU`, `Odom` and `GNSS` objects, and clouds are passed as numpy arrays.
- **No coordinate conversion.** Nothing converts latitude and longitude to map coordinates. A `GNSS` reading must already carry its pose in the map frame.
- **No optimiser.** `InertialEdge` supplies residuals, Jacobians and the Hessian for use in an optimiser of your own.
- **No viewer or display window.** Images can only be returned as arrays or written to files.