"""Tracking status text and the per-frame overlay of tracked features."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum

Point = tuple[float, float]

BOX_RADIUS = 5.0


class TrackingState(IntEnum):
    """States of the tracker."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def status_text(state: int, keyframes: int = 0, map_points: int = 0, tracked: int = 0, tracked_vo: int = 0) -> str:
    """The status line shown under a frame."""
    if state == TrackingState.NO_IMAGES_YET:
        return " WAITING FOR IMAGES"
    if state == TrackingState.NOT_INITIALIZED:
        return " TRYING TO INITIALIZE "
    if state == TrackingState.OK:
        text = f"SLAM MODE |  KFs: {keyframes}, MPs: {map_points}, Matches: {tracked}"
        if tracked_vo > 0:
            text += f", + VO matches: {tracked_vo}"
        return text
    if state == TrackingState.LOST:
        return " TRACK LOST. TRYING TO RELOCALIZE "
    if state == TrackingState.SYSTEM_NOT_READY:
        return " LOADING ORB VOCABULARY. PLEASE WAIT..."
    return ""


@dataclass
class FrameOverlay:
    """What to draw over a frame: match lines, tracked boxes and status text."""

    state: int
    text: str
    match_lines: list[tuple[Point, Point]] = field(default_factory=list)
    tracked_points: list[tuple[Point, bool]] = field(default_factory=list)
    tracked: int = 0
    tracked_vo: int = 0

    def boxes(self) -> list[tuple[Point, Point, bool]]:
        """Corner pairs of the square around each tracked point, with its map flag."""
        return [
            ((x - BOX_RADIUS, y - BOX_RADIUS), (x + BOX_RADIUS, y + BOX_RADIUS), in_map)
            for (x, y), in_map in self.tracked_points
        ]


class FrameDrawer:
    """Keeps the last tracking result and builds its overlay.

    ``world_map`` must provide ``keyframes_in_map()`` and ``map_points_in_map()``.
    """

    def __init__(self, world_map):
        self._map = world_map
        self._lock = threading.Lock()
        self._state: int = TrackingState.SYSTEM_NOT_READY
        self._keys: list[Point] = []
        self._initial_keys: list[Point] = []
        self._initial_matches: list[int] = []
        self._vo: list[bool] = []
        self._in_map: list[bool] = []
        self.tracked = 0
        self.tracked_vo = 0

    def update(
        self,
        state: int,
        keys: Sequence[Point],
        map_points: Sequence[int | None] = (),
        outliers: Sequence[bool] = (),
        initial_keys: Sequence[Point] = (),
        initial_matches: Sequence[int] = (),
    ) -> None:
        """Record a tracking result.

        ``map_points`` holds, per key point, ``None`` or the observation count
        of the matched map point; ``outliers`` flags rejected matches.
        """
        with self._lock:
            self._keys = list(keys)
            count = len(self._keys)
            self._vo = [False] * count
            self._in_map = [False] * count
            if state == TrackingState.NOT_INITIALIZED:
                self._initial_keys = list(initial_keys)
                self._initial_matches = list(initial_matches)
            elif state == TrackingState.OK:
                for index, (observations, outlier) in enumerate(zip(map_points[:count], outliers)):
                    if observations is None or outlier:
                        continue
                    if observations > 0:
                        self._in_map[index] = True
                    else:
                        self._vo[index] = True
            self._state = int(state)

    def draw_frame(self) -> FrameOverlay:
        """Build the overlay of the last recorded result."""
        keys: list[Point] = []
        initial_keys: list[Point] = []
        matches: list[int] = []
        vo: list[bool] = []
        in_map: list[bool] = []
        with self._lock:
            state = self._state
            if self._state == TrackingState.SYSTEM_NOT_READY:
                self._state = TrackingState.NO_IMAGES_YET
            if self._state == TrackingState.NOT_INITIALIZED:
                keys, initial_keys, matches = list(self._keys), list(self._initial_keys), list(self._initial_matches)
            elif self._state == TrackingState.OK:
                keys, vo, in_map = list(self._keys), list(self._vo), list(self._in_map)
            elif self._state == TrackingState.LOST:
                keys = list(self._keys)

        overlay = FrameOverlay(state=state, text="")
        if state == TrackingState.NOT_INITIALIZED:
            overlay.match_lines = [
                (start, keys[match])
                for start, match in zip(initial_keys, matches)
                if match >= 0
            ]
        elif state == TrackingState.OK:
            self.tracked = 0
            self.tracked_vo = 0
            for point, is_vo, is_map in zip(keys, vo, in_map):
                if not (is_vo or is_map):
                    continue
                overlay.tracked_points.append((point, is_map))
                if is_map:
                    self.tracked += 1
                else:
                    self.tracked_vo += 1
            overlay.tracked = self.tracked
            overlay.tracked_vo = self.tracked_vo

        if state == TrackingState.OK:
            overlay.text = status_text(
                state,
                self._map.keyframes_in_map(),
                self._map.map_points_in_map(),
                self.tracked,
                self.tracked_vo,
            )
        else:
            overlay.text = status_text(state)
        return overlay