"""Key frames: frames kept in the map with covisibility links and a spanning tree."""

from __future__ import annotations

import itertools
import math
import threading
from typing import ClassVar

import numpy as np

CONNECTION_THRESHOLD = 15


class KeyFrame:
    """A frame kept in the map.

    Map points stored in a key frame must provide ``is_bad()``,
    ``observations()`` (a mapping from key frame to feature index),
    ``erase_observation(keyframe)``, ``index_in_keyframe(keyframe)`` and
    ``world_position()``. ``world_map`` must provide ``erase_keyframe(keyframe)``
    and ``database`` must provide ``erase(keyframe)``; either may be None.
    """

    _ids: ClassVar[itertools.count] = itertools.count()

    def __init__(self, frame, world_map=None, database=None):
        if frame.pose is None:
            raise ValueError("a key frame needs a frame with a pose")
        self.id = next(KeyFrame._ids)
        self.frame_id = frame.id
        self.timestamp = frame.timestamp

        self.grid_cols = frame.grid_cols
        self.grid_rows = frame.grid_rows
        self.grid_element_width_inv = frame.grid_element_width_inv
        self.grid_element_height_inv = frame.grid_element_height_inv
        self.grid = [[list(cell) for cell in column] for column in frame.grid]

        self.camera = frame.camera
        self.camera_matrix = np.array(frame.camera_matrix, dtype=np.float64)
        self.bf = frame.bf
        self.mb = frame.mb
        self.depth_threshold = frame.depth_threshold
        self.half_baseline = frame.mb / 2

        self.n = frame.n
        self.keys = list(frame.keys)
        self.keys_un = list(frame.keys_un)
        self.u_right = list(frame.u_right)
        self.depth = list(frame.depth)
        self.min_x, self.max_x = frame.min_x, frame.max_x
        self.min_y, self.max_y = frame.min_y, frame.max_y

        self.bow_vec = dict(getattr(frame, "bow_vec", {}) or {})
        self.feat_vec = dict(getattr(frame, "feat_vec", {}) or {})

        self.track_reference_for_frame = 0
        self.fuse_target_for_kf = 0
        self.ba_local_for_kf = 0
        self.ba_fixed_for_kf = 0
        self.ba_global_for_kf = 0
        self.loop_query = 0
        self.loop_words = 0
        self.loop_score = 0.0
        self.reloc_query = 0
        self.reloc_words = 0
        self.reloc_score = 0.0

        self._map_points: list[object | None] = list(frame.map_points)
        self._map = world_map
        self._database = database

        self._connection_weights: dict[KeyFrame, int] = {}
        self._ordered_connected: list[KeyFrame] = []
        self._ordered_weights: list[int] = []
        self._first_connection = True
        self._parent: KeyFrame | None = None
        self._children: set[KeyFrame] = set()
        self._loop_edges: set[KeyFrame] = set()

        self._not_erase = False
        self._to_be_erased = False
        self._bad = False
        self.tcp: np.ndarray | None = None

        self._pose_lock = threading.RLock()
        self._connections_lock = threading.RLock()
        self._features_lock = threading.RLock()

        self.set_pose(frame.pose)

    def __repr__(self) -> str:
        return f"KeyFrame(id={self.id}, frame_id={self.frame_id})"

    # Pose

    def set_pose(self, pose) -> None:
        """Set the world-to-camera transform and derive its inverse and centres."""
        matrix = np.array(pose, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"pose must be 4x4, got shape {matrix.shape}")
        with self._pose_lock:
            self._tcw = matrix
            rcw = matrix[:3, :3]
            tcw = matrix[:3, 3]
            rwc = rcw.T
            self._ow = -rwc @ tcw
            twc = np.eye(4)
            twc[:3, :3] = rwc
            twc[:3, 3] = self._ow
            self._twc = twc
            self._cw = twc @ np.array([self.half_baseline, 0.0, 0.0, 1.0])

    def pose(self) -> np.ndarray:
        with self._pose_lock:
            return self._tcw.copy()

    def pose_inverse(self) -> np.ndarray:
        with self._pose_lock:
            return self._twc.copy()

    def camera_center(self) -> np.ndarray:
        with self._pose_lock:
            return self._ow.copy()

    @property
    def stereo_center(self) -> np.ndarray:
        """Homogeneous world position of the point half a baseline along the camera x axis."""
        with self._pose_lock:
            return self._cw.copy()

    def rotation(self) -> np.ndarray:
        with self._pose_lock:
            return self._tcw[:3, :3].copy()

    def translation(self) -> np.ndarray:
        with self._pose_lock:
            return self._tcw[:3, 3].copy()

    # Covisibility graph

    def add_connection(self, keyframe: KeyFrame, weight: int) -> None:
        """Link to a key frame that shares ``weight`` map points with this one."""
        with self._connections_lock:
            if self._connection_weights.get(keyframe) == weight:
                return
            self._connection_weights[keyframe] = weight
        self.update_best_covisibles()

    @staticmethod
    def _ordered(pairs) -> tuple[list[KeyFrame], list[int]]:
        ordered = sorted(pairs, key=lambda pair: (pair[0], pair[1].id), reverse=True)
        return [kf for _, kf in ordered], [w for w, _ in ordered]

    def update_best_covisibles(self) -> None:
        """Re-sort the connected key frames by decreasing weight."""
        with self._connections_lock:
            pairs = [(w, kf) for kf, w in self._connection_weights.items()]
            self._ordered_connected, self._ordered_weights = self._ordered(pairs)

    def connected_keyframes(self) -> set[KeyFrame]:
        with self._connections_lock:
            return set(self._connection_weights)

    def covisible_keyframes(self) -> list[KeyFrame]:
        with self._connections_lock:
            return list(self._ordered_connected)

    def best_covisibility_keyframes(self, n: int) -> list[KeyFrame]:
        """The ``n`` key frames with the highest weights."""
        with self._connections_lock:
            return list(self._ordered_connected[:n])

    def covisibles_by_weight(self, weight: int) -> list[KeyFrame]:
        """Connected key frames ahead of the first one weighing less than ``weight``.

        When no connected key frame weighs less than ``weight`` the result is empty.
        """
        with self._connections_lock:
            for position, w in enumerate(self._ordered_weights):
                if weight > w:
                    return list(self._ordered_connected[:position])
            return []

    def weight(self, keyframe: KeyFrame) -> int:
        with self._connections_lock:
            return self._connection_weights.get(keyframe, 0)

    # Map points

    def add_map_point(self, point, index: int) -> None:
        with self._features_lock:
            self._map_points[index] = point

    def erase_map_point_match(self, index: int) -> None:
        with self._features_lock:
            self._map_points[index] = None

    def erase_map_point(self, point) -> None:
        """Drop the match with ``point`` at the index the point records for this key frame."""
        index = point.index_in_keyframe(self)
        if index >= 0:
            self._map_points[index] = None

    def replace_map_point_match(self, index: int, point) -> None:
        self._map_points[index] = point

    def map_points(self) -> set:
        """Matched map points that are not bad."""
        with self._features_lock:
            return {p for p in self._map_points if p is not None and not p.is_bad()}

    def tracked_map_points(self, min_obs: int) -> int:
        """Count good matched map points seen at least ``min_obs`` times (when positive)."""
        with self._features_lock:
            count = 0
            for point in self._map_points:
                if point is None or point.is_bad():
                    continue
                if min_obs > 0 and len(point.observations()) < min_obs:
                    continue
                count += 1
            return count

    def map_point_matches(self) -> list:
        with self._features_lock:
            return list(self._map_points)

    def map_point(self, index: int):
        with self._features_lock:
            return self._map_points[index]

    def update_connections(self) -> None:
        """Rebuild covisibility links from the key frames that observe the same map points."""
        with self._features_lock:
            points = list(self._map_points)

        counter: dict[KeyFrame, int] = {}
        for point in points:
            if point is None or point.is_bad():
                continue
            for keyframe in point.observations():
                if keyframe.id == self.id:
                    continue
                counter[keyframe] = counter.get(keyframe, 0) + 1

        if not counter:
            return

        best_count = 0
        best_keyframe = None
        pairs = []
        for keyframe, count in counter.items():
            if count > best_count:
                best_count = count
                best_keyframe = keyframe
            if count >= CONNECTION_THRESHOLD:
                pairs.append((count, keyframe))
                keyframe.add_connection(self, count)

        if not pairs:
            pairs.append((best_count, best_keyframe))
            best_keyframe.add_connection(self, best_count)

        ordered, weights = self._ordered(pairs)
        with self._connections_lock:
            self._connection_weights = counter
            self._ordered_connected = ordered
            self._ordered_weights = weights
            if self._first_connection and self.id != 0:
                self._parent = ordered[0]
                self._parent.add_child(self)
                self._first_connection = False

    # Spanning tree

    def add_child(self, keyframe: KeyFrame) -> None:
        with self._connections_lock:
            self._children.add(keyframe)

    def erase_child(self, keyframe: KeyFrame) -> None:
        with self._connections_lock:
            self._children.discard(keyframe)

    def change_parent(self, keyframe: KeyFrame) -> None:
        with self._connections_lock:
            self._parent = keyframe
            keyframe.add_child(self)

    def children(self) -> set[KeyFrame]:
        with self._connections_lock:
            return set(self._children)

    def parent(self) -> KeyFrame | None:
        with self._connections_lock:
            return self._parent

    def has_child(self, keyframe: KeyFrame) -> bool:
        with self._connections_lock:
            return keyframe in self._children

    def add_loop_edge(self, keyframe: KeyFrame) -> None:
        with self._connections_lock:
            self._not_erase = True
            self._loop_edges.add(keyframe)

    def loop_edges(self) -> set[KeyFrame]:
        with self._connections_lock:
            return set(self._loop_edges)

    # Removal

    def set_not_erase(self) -> None:
        with self._connections_lock:
            self._not_erase = True

    def set_erase(self) -> None:
        """Allow erasing again (unless loop edges hold it) and erase if it was requested."""
        with self._connections_lock:
            if not self._loop_edges:
                self._not_erase = False
        if self._to_be_erased:
            self.set_bad_flag()

    def set_bad_flag(self) -> None:
        """Remove this key frame from the graph, the tree, the map and the database."""
        with self._connections_lock:
            if self.id == 0:
                return
            if self._not_erase:
                self._to_be_erased = True
                return
            if self._parent is None:
                raise RuntimeError("cannot remove a key frame that has no parent")

        for keyframe in list(self._connection_weights):
            keyframe.erase_connection(self)
        for point in list(self._map_points):
            if point is not None:
                point.erase_observation(self)

        with self._connections_lock, self._features_lock:
            self._connection_weights.clear()
            self._ordered_connected.clear()
            self._ordered_weights.clear()

            candidates = {self._parent}
            while self._children:
                best_weight = -1
                best_child = best_parent = None
                for child in self._children:
                    if child.is_bad():
                        continue
                    for connected in child.covisible_keyframes():
                        if any(connected.id == c.id for c in candidates):
                            w = child.weight(connected)
                            if w > best_weight:
                                best_weight = w
                                best_child, best_parent = child, connected
                if best_child is None:
                    break
                best_child.change_parent(best_parent)
                candidates.add(best_child)
                self._children.discard(best_child)

            for child in list(self._children):
                child.change_parent(self._parent)

            self._parent.erase_child(self)
            self.tcp = self.pose() @ self._parent.pose_inverse()
            self._bad = True

        if self._map is not None:
            self._map.erase_keyframe(self)
        if self._database is not None:
            self._database.erase(self)

    def is_bad(self) -> bool:
        with self._connections_lock:
            return self._bad

    def erase_connection(self, keyframe: KeyFrame) -> None:
        with self._connections_lock:
            removed = self._connection_weights.pop(keyframe, None) is not None
        if removed:
            self.update_best_covisibles()

    # Geometry

    def features_in_area(self, x: float, y: float, r: float) -> list[int]:
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

        indices = []
        for ix in range(min_cell_x, max_cell_x + 1):
            for iy in range(min_cell_y, max_cell_y + 1):
                for index in self.grid[ix][iy]:
                    key = self.keys_un[index]
                    if abs(key.x - x) < r and abs(key.y - y) < r:
                        indices.append(index)
        return indices

    def is_in_image(self, x: float, y: float) -> bool:
        return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y

    def unproject_stereo(self, index: int) -> np.ndarray | None:
        """World position of a key point from its depth, or None without one."""
        z = self.depth[index]
        if z <= 0:
            return None
        key = self.keys[index]
        x = (key.x - self.camera.cx) * z * self.camera.invfx
        y = (key.y - self.camera.cy) * z * self.camera.invfy
        with self._pose_lock:
            return self._twc[:3, :3] @ np.array([x, y, z]) + self._twc[:3, 3]

    def compute_scene_median_depth(self, q: int = 2) -> float:
        """The ``(n-1)//q``-th smallest camera depth of the matched map points."""
        with self._features_lock, self._pose_lock:
            points = list(self._map_points)
            pose = self._tcw.copy()
        row = pose[2, :3]
        z_cw = pose[2, 3]
        depths = sorted(
            float(row @ np.asarray(p.world_position(), dtype=np.float64).reshape(3) + z_cw)
            for p in points
            if p is not None
        )
        if not depths:
            raise ValueError("key frame has no map points")
        return depths[(len(depths) - 1) // q]