# semslam

Building blocks for a semantic RGB-D SLAM pipeline, in plain Python with numpy.
The package is a library. It has no command-line entry point.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `semslam.kmeans` clusters the grey values of an image with one-dimensional
  k-means. It provides `DepthPoint`, `KMeans` (`run`, `compute_cost`,
  `closest_center_labels` and related steps), `to_grayscale`,
  `initialize_centers`, `initialize_points` and `cluster_image`.
- `semslam.converter` converts between 4x4 transforms, rotation and translation
  pairs, similarity transforms and quaternions. It provides `descriptor_rows`,
  `to_se3`, `se3_to_matrix`, `sim3_to_matrix`, `to_vector3`, `to_matrix3` and
  `to_quaternion`. `to_quaternion` returns `[x, y, z, w]`.
- `semslam.detections` reads association files (`load_associations`, which
  returns `Association` records) and object-detector output
  (`load_detections`). `align_detections` renumbers detections from file order
  to image order and drops a fixed set of excluded classes.
- `semslam.frame` holds a camera frame. `Frame` takes key points, a depth
  image, a camera matrix and distortion coefficients. It undistorts the key
  points and assigns them to a feature grid. It then offers `features_in_area`,
  `pos_in_grid`, `set_pose`, `unproject_camera`, `unproject_stereo`,
  `is_in_frustum` and `frame_objects`. `frame_objects` places detections in the
  world as `DetectedObject`s. The module also provides `KeyPoint`,
  `CameraIntrinsics` and `undistort_points`.
- `semslam.keyframe` defines `KeyFrame`, built from a posed `Frame`. It keeps a
  weighted covisibility graph (`add_connection`, `update_connections`,
  `best_covisibility_keyframes`, `covisibles_by_weight` and others) and a
  spanning tree (`parent`, `children`, `change_parent`). It also holds map-point
  matches, and removes itself from the graph with `set_bad_flag`.
- `semslam.keyframe_database` defines `KeyFrameDatabase`, an inverted index of
  key frames by visual word. It provides `detect_loop_candidates` and
  `detect_relocalization_candidates`.
- `semslam.frame_drawer` provides `TrackingState` and `status_text`. Its
  `FrameDrawer` records tracking results and builds a `FrameOverlay`: match
  lines, tracked-point boxes and the status line.
- `semslam.plane` fits planes to map points. It provides `detect_plane`, which
  uses RANSAC, along with `Plane` (`recompute`, `from_normal`, `gl_matrix`),
  `exp_so3` and `status_message`.
- `semslam.euroc`, `semslam.kitti` and `semslam.tum` build image lists for
  those datasets (`load_euroc_mono`, `load_euroc_stereo`, `load_kitti_mono`,
  `load_kitti_stereo`, `load_tum_mono`). `semslam.tum` also has the timing
  helpers `frame_wait` and `tracking_statistics`, which returns a
  `TrackingStatistics`.

Several classes work with collaborators that the package does not define, such
as map points, the map, and the vocabulary. Each of these classes accepts any
object with the methods named in its docstring.

## Examples

```python
import numpy as np
from semslam.kmeans import cluster_image

image = np.zeros((4, 4), dtype=np.uint8)
image[:, 2:] = 200
model = cluster_image(image, k=2, seed=1)
print(model.compute_cost(), [c.depth for c in model.centers])
```

```python
from semslam.tum import load_tum_mono, frame_wait, tracking_statistics

names, timestamps = load_tum_mono("rgb.txt")
print(frame_wait(timestamps, 0, 0.01))
stats = tracking_statistics([0.02, 0.03, 0.025])
print(stats.median, stats.mean)
```

## What it does not do

This is not a complete SLAM system. The package does not:

- extract features;
- build or load a visual vocabulary;
- define map points or a map;
- run a tracking, mapping or loop-closing loop;
- read images from disk;
- save trajectories.

`FrameDrawer` and `Plane` only compute what to draw. Nothing is rendered to an
image or a window. There is no command to run a dataset sequence.