"""Image lists of KITTI odometry sequences, read from their ``times.txt``."""

from __future__ import annotations

import os

TIMES_FILE = "times.txt"
LEFT_FOLDER = "image_2"
RIGHT_FOLDER = "image_3"


def _load_times(sequence: str) -> list[float]:
    """Timestamps of a sequence, one per non-empty line of its times file."""
    timestamps: list[float] = []
    with open(os.path.join(sequence, TIMES_FILE), encoding="utf-8") as stream:
        for raw in stream:
            line = raw.rstrip("\r\n")
            if not line:
                continue
            tokens = line.split()
            if not tokens:
                raise ValueError(f"no timestamp in line {line!r}")
            timestamps.append(float(tokens[0]))
    return timestamps


def _image_names(sequence: str, folder: str, count: int) -> list[str]:
    return [f"{sequence}/{folder}/{index:06d}.png" for index in range(count)]


def load_kitti_mono(sequence: str) -> tuple[list[str], list[float]]:
    """Image paths (from ``image_3``) and timestamps of a monocular sequence."""
    timestamps = _load_times(sequence)
    return _image_names(sequence, RIGHT_FOLDER, len(timestamps)), timestamps


def load_kitti_stereo(sequence: str) -> tuple[list[str], list[str], list[float]]:
    """Left (``image_2``) and right (``image_3``) image paths and timestamps."""
    timestamps = _load_times(sequence)
    count = len(timestamps)
    return (
        _image_names(sequence, LEFT_FOLDER, count),
        _image_names(sequence, RIGHT_FOLDER, count),
        timestamps,
    )