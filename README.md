# orbslam

Building blocks for feature-based visual SLAM, written with NumPy (and Pillow for drawing).

## Modules

- `orbslam.converter`: conversions between 4x4 pose matrices, rigid transforms (`SE3Quat`) and similarity transforms (`Sim3`), 3-vectors, 3x3 matrices and quaternions. Functions: `to_descriptor_vector`, `to_se3_quat`, `se3_to_mat`, `sim3_to_mat`, `to_cv_se3`, `to_vector3d`, `to_matrix3d`, `to_quaternion` (returns `[x, y, z, w]`).
- `orbslam.twoview`: two-view geometry on `KeyPoint` objects. It has `normalize`, DLT homography estimation (`compute_h21`), eight-point fundamental matrix estimation (`compute_f21`), scoring by transfer and epipolar error (`check_homography`, `check_fundamental`), linear triangulation (`triangulate`), essential matrix decomposition (`decompose_e`) and `check_rt`, which triangulates the matches under one motion hypothesis and returns a `TriangulationCheck` (count of good points, the points, per-key flags and the parallax in degrees).
- `orbslam.initializer`: monocular map initialization. `Initializer` fits a homography and a fundamental matrix by RANSAC over the same random samples (seeded, so runs are repeatable). It picks one by the ratio of their scores and returns a `Reconstruction` (rotation, translation, points, triangulated flags), or `None` when no reliable reconstruction is found. It raises `ValueError` for fewer than eight matches.
- `orbslam.frame`: `Frame` holds keypoints and descriptors that were extracted beforehand. It undistorts keypoints with `undistort_points` (k1, k2, p1, p2[, k3[, k4, k5, k6]]), computes the image bounds with `compute_image_bounds` and assigns keypoints to a 64x48 grid. `get_features_in_area` searches that grid. The frame reads per-key depth from an optional depth image (`stereo_from_depth`), and once `set_pose` is called, `unproject_stereo` back-projects keypoints into world coordinates.
- `orbslam.ar`: plane detection for augmented reality. `detect_plane` fits a plane by RANSAC to map points seen by more than five keyframes and needs at least fifty of them. It returns a `Plane` whose `tpw` pose has the plane normal as its y axis. The module also has `exp_so3`, `gl_matrix` (a column-major 16-element list), `status_message` and a thread-safe `PoseImageBuffer`. Map points passed in need `world_pos()`, `observations()` and `is_bad()` methods.
- `orbslam.frame_drawer`: `FrameDrawer` and `TrackingState`. `update` stores the latest image and keypoints. `draw_frame` returns an RGB array that shows initialization matches as lines, or tracked keypoints as boxes (green for map points, blue for visual-odometry points), with a status line added beneath the image.
- `orbslam.sequences`: `ImageSequence` and loaders for monocular EuRoC (`load_euroc_mono`), KITTI (`load_kitti_mono`) and TUM (`load_tum_mono`) image lists. It also has the timing helpers `frame_wait_time` and `tracking_time_stats`.
- `orbslam.stereo_sequences`: `StereoSequence`, `load_euroc_stereo` and `load_kitti_stereo`.
- `orbslam.rgbd_sequences`: `RGBDSequence` and `load_tum_rgbd` for TUM association files.

## Installation

```
pip install .
```

## Examples

Two-view initialization:

```python
import numpy as np
from orbslam.twoview import KeyPoint
from orbslam.initializer import Initializer

k = np.array([[500.0, 0, 320], [0, 500.0, 240], [0, 0, 1]])
# reference_keys, current_keys: lists of KeyPoint (undistorted pixels)
# matches12[i]: index into current_keys matched to reference_keys[i], or -1
init = Initializer(reference_keys, k, sigma=1.0, iterations=200)
result = init.initialize(current_keys, matches12)
if result is not None:
    print(result.rotation, result.translation)
```

A frame and a feature search:

```python
import numpy as np
from orbslam.frame import Frame
from orbslam.twoview import KeyPoint

keys = [KeyPoint(100.0, 120.0), KeyPoint(300.0, 200.0, octave=1)]
descriptors = np.zeros((2, 32), dtype=np.uint8)
frame = Frame(keys, descriptors, 0.0, k, [0, 0, 0, 0], bf=40.0, th_depth=35.0,
              image_shape=(480, 640))
print(frame.get_features_in_area(100.0, 120.0, 5.0))
```

Loading a sequence:

```python
from orbslam.sequences import load_tum_mono

seq = load_tum_mono("rgbd_dataset/rgb.txt")
print(len(seq), seq.timestamps[:3])
```

## What it does not do

The package has no feature extractor, no bag-of-words vocabulary, no tracking, local mapping or loop-closing threads, no map storage and no optimizer. `Frame` takes keypoints and descriptors that were computed elsewhere. It does not match a stereo image pair, and it gets depth only from a depth image. There is no viewer window and no command-line program. `FrameDrawer` and the `ar` helpers return arrays and matrices for the caller to display. The sequence loaders return file names and timestamps only and do not read images.

## Tests

```
pip install .[test]
pytest
```