"""TUM sequence lists, frame pacing and tracking-time statistics."""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass

HEADER_LINES = 3


@dataclass(frozen=True)
class TrackingStatistics:
    """Median and mean of per-frame tracking times, in seconds."""

    median: float
    mean: float


def load_tum_mono(rgb_file: str | os.PathLike) -> tuple[list[str], list[float]]:
    """Image names and timestamps from a TUM ``rgb.txt``; the first three lines are skipped."""
    names: list[str] = []
    timestamps: list[float] = []
    with open(rgb_file, encoding="utf-8") as stream:
        for number, raw in enumerate(stream):
            if number < HEADER_LINES:
                continue
            line = raw.rstrip("\r\n")
            if not line:
                continue
            tokens = line.split()
            if not tokens:
                raise ValueError(f"no timestamp in line {line!r}")
            timestamps.append(float(tokens[0]))
            names.append(tokens[1] if len(tokens) > 1 else "")
    return names, timestamps


def frame_wait(timestamps: Sequence[float], index: int, elapsed: float) -> float:
    """Seconds to wait after tracking frame ``index`` took ``elapsed`` seconds.

    The frame interval is the gap to the next timestamp, or to the previous one
    for the last frame; a single frame has no interval.
    """
    count = len(timestamps)
    if not 0 <= index < count:
        raise IndexError(f"frame index {index} out of range for {count} frames")
    interval = 0.0
    if index < count - 1:
        interval = timestamps[index + 1] - timestamps[index]
    elif index > 0:
        interval = timestamps[index] - timestamps[index - 1]
    return interval - elapsed if elapsed < interval else 0.0


def tracking_statistics(times: Sequence[float]) -> TrackingStatistics:
    """Median (upper middle element) and mean of tracking times."""
    if not times:
        raise ValueError("no tracking times")
    ordered = sorted(times)
    return TrackingStatistics(median=ordered[len(ordered) // 2], mean=sum(ordered) / len(ordered))