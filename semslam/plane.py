"""Plane fitting on tracked map points, used to anchor virtual objects."""

from __future__ import annotations

import math
import random
from collections.abc import Sequence

import numpy as np

EPS = 1e-4
MIN_OBSERVATIONS = 5
MIN_PLANE_POINTS = 50
DEFAULT_ITERATIONS = 50
INLIER_FACTOR = 1.4
_UP = np.array([0.0, 1.0, 0.0])

_STATUS_COLOURS = {
    1: (255, 0, 0),
    2: (0, 255, 0),
    3: (255, 0, 0),
}


def exp_so3(x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix of the rotation vector (x, y, z)."""
    identity = np.eye(3)
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    w = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    if d < EPS:
        return identity + w + 0.5 * (w @ w)
    return identity + w * math.sin(d) / d + (w @ w) * (1.0 - math.cos(d)) / d2


def _exp_so3_vector(vector) -> np.ndarray:
    x, y, z = (float(v) for v in np.asarray(vector, dtype=np.float64).reshape(3))
    return exp_so3(x, y, z)


def status_message(status: int, localization_mode: bool = False) -> tuple[str, tuple[int, int, int]] | None:
    """Text and RGB colour describing a tracking state, or None for other states."""
    if status == 1:
        text = "SLAM NOT INITIALIZED"
    elif status == 2:
        text = "LOCALIZATION ON" if localization_mode else "SLAM ON"
    elif status == 3:
        text = "LOCALIZATION LOST" if localization_mode else "SLAM LOST"
    else:
        return None
    return text, _STATUS_COLOURS[status]


def _position(point) -> np.ndarray:
    return np.asarray(point.world_position(), dtype=np.float64).reshape(3)


def _random_rang(rng: random.Random | None = None) -> float:
    rng = rng or random.Random()
    return -3.14 / 2 + rng.random() * 3.14


class Plane:
    """A plane with an origin, a unit normal and a world-to-plane transform.

    Map points must provide ``world_position()`` and ``is_bad()``.
    """

    def __init__(self, map_points: Sequence, pose, rang: float | None = None):
        self.map_points = list(map_points)
        self.pose = np.array(pose, dtype=np.float64)
        if self.pose.shape != (4, 4):
            raise ValueError(f"pose must be 4x4, got shape {self.pose.shape}")
        self.rang = _random_rang() if rang is None else float(rang)
        self.xc: np.ndarray | None = None
        self.normal = np.zeros(3)
        self.origin = np.zeros(3)
        self.tpw = np.eye(4)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang: float | None = None) -> Plane:
        """A plane given directly by its normal and origin, with no map points."""
        plane = cls.__new__(cls)
        plane.map_points = []
        plane.pose = None
        plane.rang = _random_rang() if rang is None else float(rang)
        plane.xc = None
        plane.normal = np.asarray(normal, dtype=np.float64).reshape(3).copy()
        plane.origin = np.asarray(origin, dtype=np.float64).reshape(3).copy()
        plane._set_transform()
        return plane

    def _set_transform(self) -> None:
        v = np.cross(_UP, self.normal)
        sa = float(np.linalg.norm(v))
        ca = float(_UP @ self.normal)
        ang = math.atan2(sa, ca)
        if sa > 0:
            align = _exp_so3_vector(v * ang / sa)
        elif ca >= 0:
            align = np.eye(3)
        else:
            align = exp_so3(math.pi, 0.0, 0.0)
        tpw = np.eye(4)
        tpw[:3, :3] = align @ _exp_so3_vector(_UP * self.rang)
        tpw[:3, 3] = self.origin
        self.tpw = tpw

    @property
    def gl_matrix(self) -> list[float]:
        """The transform as 16 values in column-major order."""
        return [float(v) for v in self.tpw.T.reshape(-1)]

    def recompute(self) -> None:
        """Refit the plane to the map points that are not bad."""
        if self.pose is None:
            raise ValueError("plane has no map points to fit")
        positions = [_position(p) for p in self.map_points if not p.is_bad()]
        if not positions:
            raise ValueError("plane has no good map points to fit")
        points = np.vstack(positions)
        a_matrix = np.hstack((points, np.ones((len(points), 1))))
        _, _, vt = np.linalg.svd(a_matrix, full_matrices=True)
        abc = vt[3, :3].copy()
        self.origin = points.mean(axis=0)
        f = 1.0 / float(np.linalg.norm(abc))

        if self.xc is None:
            rotation = self.pose[:3, :3]
            camera_center = -rotation.T @ self.pose[:3, 3]
            self.xc = camera_center - self.origin

        if float(self.xc @ abc) > 0:
            abc = -abc
        self.normal = abc * f
        self._set_transform()


def detect_plane(
    pose,
    map_points: Sequence,
    iterations: int = DEFAULT_ITERATIONS,
    rng: random.Random | None = None,
) -> Plane | None:
    """Fit a plane to well-observed map points with RANSAC, or None if too few.

    Map points provide ``observations()`` (sized), ``world_position()`` and
    ``is_bad()``; ``None`` entries are skipped.
    """
    rng = rng or random.Random()
    candidates = [
        p for p in map_points
        if p is not None and len(p.observations()) > MIN_OBSERVATIONS
    ]
    n = len(candidates)
    if n < MIN_PLANE_POINTS:
        return None
    points = np.vstack([_position(p) for p in candidates])

    best_dist = 1e10
    best_distances: np.ndarray | None = None
    nth = max(int(0.2 * n), 20)
    for _ in range(iterations):
        chosen = rng.sample(range(n), 3)
        a_matrix = np.hstack((points[chosen], np.ones((3, 1))))
        _, _, vt = np.linalg.svd(a_matrix, full_matrices=True)
        a, b, c, d = vt[3]
        f = 1.0 / math.sqrt(a * a + b * b + c * c + d * d)
        distances = np.abs(points @ np.array([a, b, c]) + d) * f
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    threshold = INLIER_FACTOR * best_dist
    inliers = [p for p, dist in zip(candidates, best_distances) if dist < threshold]
    return Plane(inliers, pose, _random_rang(rng))