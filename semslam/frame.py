"""A camera frame: undistorted key points, depths, a feature grid and a pose."""

from __future__ import annotations

import itertools
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import ClassVar

import numpy as np

FRAME_GRID_COLS = 64
FRAME_GRID_ROWS = 48
_UNDISTORT_ITERATIONS = 5
_SEARCH_HALF_WINDOW = 5

CLASS_NAMES = {
    73: "book",
    66: "keyboard",
    64: "mouse",
    62: "tvmonitor",
    41: "cup",
    56: "chair",
    67: "cell phone",
    65: "remote",
}


@dataclass(frozen=True)
class KeyPoint:
    """An image feature position with its pyramid level."""

    x: float
    y: float
    octave: int = 0


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole parameters of a camera."""

    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_matrix(cls, camera_matrix) -> CameraIntrinsics:
        k = np.asarray(camera_matrix, dtype=np.float64)
        if k.shape != (3, 3):
            raise ValueError(f"camera matrix must be 3x3, got shape {k.shape}")
        return cls(float(k[0, 0]), float(k[1, 1]), float(k[0, 2]), float(k[1, 2]))

    @property
    def invfx(self) -> float:
        return 1.0 / self.fx

    @property
    def invfy(self) -> float:
        return 1.0 / self.fy


@dataclass(eq=False)
class DetectedObject:
    """An object detection placed in the world at its deepest nearby pixel."""

    position: np.ndarray
    class_id: int
    u: int
    v: int
    left: int
    right: int
    top: int
    bottom: int
    name: str = ""


def _distortion_terms(distortion) -> tuple[float, float, float, float, float]:
    coeffs = [float(c) for c in np.asarray(distortion, dtype=np.float64).reshape(-1)]
    if len(coeffs) > 5:
        raise ValueError("only k1, k2, p1, p2 and k3 distortion terms are supported")
    coeffs += [0.0] * (5 - len(coeffs))
    return coeffs[0], coeffs[1], coeffs[2], coeffs[3], coeffs[4]


def undistort_points(points, camera_matrix, distortion) -> np.ndarray:
    """Remove radial and tangential distortion from pixel points, keeping the same camera."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    camera = CameraIntrinsics.from_matrix(camera_matrix)
    k1, k2, p1, p2, k3 = _distortion_terms(distortion)
    x0 = (pts[:, 0] - camera.cx) / camera.fx
    y0 = (pts[:, 1] - camera.cy) / camera.fy
    x, y = x0.copy(), y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = 1.0 / (1.0 + ((k3 * r2 + k2) * r2 + k1) * r2)
        delta_x = 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
        delta_y = p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
        x = (x0 - delta_x) * icdist
        y = (y0 - delta_y) * icdist
    return np.column_stack((x * camera.fx + camera.cx, y * camera.fy + camera.cy))


def _round_half_away(value: float) -> int:
    if value >= 0:
        return math.floor(value + 0.5)
    return -math.floor(-value + 0.5)


class Frame:
    """Key points of one RGB-D image with their depths, grid and camera pose."""

    _ids: ClassVar[itertools.count] = itertools.count()

    def __init__(
        self,
        keypoints: Sequence[KeyPoint],
        depth,
        timestamp: float,
        camera_matrix,
        distortion=(0.0, 0.0, 0.0, 0.0),
        bf: float = 0.0,
        depth_threshold: float = 0.0,
        image_size: tuple[int, int] | None = None,
        grid_cols: int = FRAME_GRID_COLS,
        grid_rows: int = FRAME_GRID_ROWS,
    ):
        self.id = next(Frame._ids)
        self.timestamp = timestamp
        self.camera_matrix = np.asarray(camera_matrix, dtype=np.float64).copy()
        self.distortion = np.asarray(distortion, dtype=np.float64).reshape(-1).copy()
        self.camera = CameraIntrinsics.from_matrix(self.camera_matrix)
        self.bf = bf
        self.depth_threshold = depth_threshold
        self.grid_cols = grid_cols
        self.grid_rows = grid_rows

        depth_image = np.asarray(depth)
        if image_size is None:
            image_size = (depth_image.shape[1], depth_image.shape[0])
        self.width, self.height = image_size

        self.keys = list(keypoints)
        self.n = len(self.keys)
        self.keys_un = self._undistort_keypoints()
        self.depth, self.u_right = self._stereo_from_rgbd(depth_image)
        self.map_points: list[object | None] = [None] * self.n
        self.outliers = [False] * self.n

        self.min_x, self.max_x, self.min_y, self.max_y = self._image_bounds()
        self.grid_element_width_inv = grid_cols / (self.max_x - self.min_x)
        self.grid_element_height_inv = grid_rows / (self.max_y - self.min_y)
        self.mb = self.bf / self.camera.fx

        self.pose: np.ndarray | None = None
        self.rcw = self.tcw = self.rwc = self.ow = None

        self.grid: list[list[list[int]]] = [[[] for _ in range(grid_rows)] for _ in range(grid_cols)]
        for index, keypoint in enumerate(self.keys_un):
            cell = self.pos_in_grid(keypoint)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(index)

    def _has_distortion(self) -> bool:
        return self.distortion.size > 0 and self.distortion[0] != 0.0

    def _undistort_keypoints(self) -> list[KeyPoint]:
        if not self._has_distortion() or not self.keys:
            return list(self.keys)
        corrected = undistort_points([(k.x, k.y) for k in self.keys], self.camera_matrix, self.distortion)
        return [KeyPoint(float(x), float(y), k.octave) for k, (x, y) in zip(self.keys, corrected)]

    def _image_bounds(self) -> tuple[float, float, float, float]:
        if not self._has_distortion():
            return 0.0, float(self.width), 0.0, float(self.height)
        corners = undistort_points(
            [(0.0, 0.0), (self.width, 0.0), (0.0, self.height), (self.width, self.height)],
            self.camera_matrix,
            self.distortion,
        )
        return (
            float(min(corners[0, 0], corners[2, 0])),
            float(max(corners[1, 0], corners[3, 0])),
            float(min(corners[0, 1], corners[1, 1])),
            float(max(corners[2, 1], corners[3, 1])),
        )

    def _stereo_from_rgbd(self, depth_image: np.ndarray) -> tuple[list[float], list[float]]:
        depths = [-1.0] * self.n
        u_right = [-1.0] * self.n
        for index, (key, key_un) in enumerate(zip(self.keys, self.keys_un)):
            d = float(depth_image[int(key.y), int(key.x)])
            if d > 0:
                depths[index] = d
                u_right[index] = key_un.x - self.bf / d
        return depths, u_right

    def set_pose(self, pose) -> None:
        """Set the world-to-camera transform and derive rotation, translation and centre."""
        matrix = np.array(pose, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"pose must be 4x4, got shape {matrix.shape}")
        self.pose = matrix
        self.rcw = matrix[:3, :3].copy()
        self.rwc = self.rcw.T
        self.tcw = matrix[:3, 3].copy()
        self.ow = -self.rcw.T @ self.tcw

    def _require_pose(self) -> None:
        if self.pose is None:
            raise RuntimeError("frame pose has not been set")

    def pos_in_grid(self, keypoint: KeyPoint) -> tuple[int, int] | None:
        """Grid cell of an undistorted key point, or None when it falls outside."""
        pos_x = _round_half_away((keypoint.x - self.min_x) * self.grid_element_width_inv)
        pos_y = _round_half_away((keypoint.y - self.min_y) * self.grid_element_height_inv)
        if pos_x < 0 or pos_x >= self.grid_cols or pos_y < 0 or pos_y >= self.grid_rows:
            return None
        return pos_x, pos_y

    def features_in_area(self, x: float, y: float, r: float, min_level: int = -1, max_level: int = -1) -> list[int]:
        """Indices of key points within a square of half-side ``r`` around (x, y)."""
        min_cell_x = max(0, math.floor((x - self.min_x - r) * self.grid_element_width_inv))
        if min_cell_x >= self.grid_cols:
            return []
        max_cell_x = min(self.grid_cols - 1, math.ceil((x - self.min_x + r) * self.grid_element_width_inv))
        if max_cell_x < 0:
            return []
        min_cell_y = max(0, math.floor((y - self.min_y - r) * self.grid_element_height_inv))
        if min_cell_y >= self.grid_rows:
            return []
        max_cell_y = min(self.grid_rows - 1, math.ceil((y - self.min_y + r) * self.grid_element_height_inv))
        if max_cell_y < 0:
            return []

        check_levels = min_level > 0 or max_level >= 0
        indices = []
        for ix in range(min_cell_x, max_cell_x + 1):
            for iy in range(min_cell_y, max_cell_y + 1):
                for index in self.grid[ix][iy]:
                    key = self.keys_un[index]
                    if check_levels:
                        if key.octave < min_level:
                            continue
                        if max_level >= 0 and key.octave > max_level:
                            continue
                    if abs(key.x - x) < r and abs(key.y - y) < r:
                        indices.append(index)
        return indices

    def unproject_camera(self, index: int) -> np.ndarray | None:
        """Camera-frame 3D point of a key point, or None without a valid depth."""
        z = self.depth[index]
        if z <= 0:
            return None
        key = self.keys_un[index]
        x = (key.x - self.camera.cx) * z * self.camera.invfx
        y = (key.y - self.camera.cy) * z * self.camera.invfy
        return np.array([x, y, z])

    def unproject_stereo(self, index: int) -> np.ndarray | None:
        """World-frame 3D point of a key point, or None without a valid depth."""
        self._require_pose()
        camera_point = self.unproject_camera(index)
        if camera_point is None:
            return None
        return self.rwc @ camera_point + self.ow

    def is_in_frustum(self, point, viewing_cos_limit: float) -> bool:
        """Whether a map point projects into this frame within its scale and angle limits.

        ``point`` provides ``world_position()``, ``normal()``,
        ``min_distance_invariance()``, ``max_distance_invariance()`` and
        ``predict_scale(distance, frame)``. Its ``track_*`` attributes are
        filled in when it is visible.
        """
        self._require_pose()
        point.track_in_view = False
        world = np.asarray(point.world_position(), dtype=np.float64).reshape(3)
        pc = self.rcw @ world + self.tcw
        pc_x, pc_y, pc_z = pc
        if pc_z <= 0.0:
            return False
        invz = 1.0 / pc_z
        u = self.camera.fx * pc_x * invz + self.camera.cx
        v = self.camera.fy * pc_y * invz + self.camera.cy
        if u < self.min_x or u > self.max_x:
            return False
        if v < self.min_y or v > self.max_y:
            return False

        offset = world - self.ow
        dist = float(np.linalg.norm(offset))
        if dist < point.min_distance_invariance() or dist > point.max_distance_invariance():
            return False
        normal = np.asarray(point.normal(), dtype=np.float64).reshape(3)
        view_cos = float(offset @ normal) / dist
        if view_cos < viewing_cos_limit:
            return False

        point.track_in_view = True
        point.track_proj_x = u
        point.track_proj_xr = u - self.bf * invz
        point.track_proj_y = v
        point.track_scale_level = point.predict_scale(dist, self)
        point.track_view_cos = view_cos
        return True

    def frame_objects(self, detections: Sequence[Sequence[int]], depth) -> list[DetectedObject]:
        """Place this frame's detections in the world.

        Each detection row is ``[frame, _, class, left, right, top, bottom, ...]``.
        The deepest pixel in a 10x10 window around the box centre gives the
        depth; boxes with no positive depth there are skipped.
        """
        self._require_pose()
        depth_image = np.asarray(depth)
        rows, cols = depth_image.shape[:2]
        objects = []
        for row in detections:
            if row[0] != self.id:
                continue
            class_id = row[2]
            left, right, top, bottom = row[3], row[4], row[5], row[6]
            u = int((right + left) / 2)
            v = int((bottom + top) / 2)

            d_max = 0.0
            u_max = v_max = 0
            for i in range(v - _SEARCH_HALF_WINDOW, v + _SEARCH_HALF_WINDOW):
                if not 0 <= i < rows:
                    continue
                for j in range(u - _SEARCH_HALF_WINDOW, u + _SEARCH_HALF_WINDOW):
                    if not 0 <= j < cols:
                        continue
                    d = float(depth_image[i, j])
                    if d > d_max:
                        d_max, u_max, v_max = d, j, i
            if d_max == 0:
                continue

            x = (u_max - self.camera.cx) * d_max * self.camera.invfx
            y = (v_max - self.camera.cy) * d_max * self.camera.invfy
            position = self.rwc @ np.array([x, y, d_max]) + self.ow
            objects.append(
                DetectedObject(
                    position=position,
                    class_id=class_id,
                    u=u_max,
                    v=v_max,
                    left=left,
                    right=right,
                    top=top,
                    bottom=bottom,
                    name=CLASS_NAMES.get(class_id, ""),
                )
            )
        return objects