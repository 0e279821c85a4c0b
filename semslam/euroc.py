"""Image lists of EuRoC sequences, read from their timestamp files."""

from __future__ import annotations

import os
from collections.abc import Iterator


def _timestamp_lines(times_path: str | os.PathLike) -> Iterator[tuple[str, float]]:
    """Yield each non-empty line and its timestamp in seconds."""
    with open(times_path, encoding="utf-8") as stream:
        for raw in stream:
            line = raw.rstrip("\n")
            if not line:
                continue
            tokens = line.split()
            if not tokens:
                raise ValueError(f"no timestamp in line {line!r}")
            yield line, float(tokens[0]) / 1e9


def load_euroc_mono(image_path: str, times_path: str | os.PathLike) -> tuple[list[str], list[float]]:
    """Image paths and timestamps (seconds) of a monocular sequence."""
    images: list[str] = []
    timestamps: list[float] = []
    for line, timestamp in _timestamp_lines(times_path):
        images.append(f"{image_path}/{line}.png")
        timestamps.append(timestamp)
    return images, timestamps


def load_euroc_stereo(
    left_path: str, right_path: str, times_path: str | os.PathLike
) -> tuple[list[str], list[str], list[float]]:
    """Left and right image paths and timestamps (seconds) of a stereo sequence."""
    left: list[str] = []
    right: list[str] = []
    timestamps: list[float] = []
    for line, timestamp in _timestamp_lines(times_path):
        left.append(f"{left_path}/{line}.png")
        right.append(f"{right_path}/{line}.png")
        timestamps.append(timestamp)
    return left, right, timestamps