"""Reading image associations and object detections, and aligning them."""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import takewhile

EXCLUDED_CLASSES = frozenset({60, 0, 14, 42, 67, 16, 56, 63})


@dataclass(frozen=True)
class Association:
    """One line of an association file: a timestamp, an RGB and a depth image."""

    timestamp: float
    rgb: str
    depth: str


def load_associations(path: str | os.PathLike) -> list[Association]:
    """Read ``timestamp rgb timestamp depth`` lines, skipping empty ones."""
    associations = []
    with open(path, encoding="utf-8") as stream:
        for line in stream:
            tokens = line.split()
            if not tokens:
                continue
            rgb = tokens[1] if len(tokens) > 1 else ""
            depth = tokens[3] if len(tokens) > 3 else ""
            associations.append(Association(float(tokens[0]), rgb, depth))
    return associations


def _is_int(token: str) -> bool:
    try:
        int(token)
    except ValueError:
        return False
    return True


def load_detections(path: str | os.PathLike) -> list[list[int]]:
    """Read one row of integers per line; a row ends at its first non-integer."""
    with open(path, encoding="utf-8") as stream:
        return [
            [int(token) for token in takewhile(_is_int, line.split())]
            for line in stream
        ]


def _tokens(path: str | os.PathLike) -> Iterable[str]:
    with open(path, encoding="utf-8") as stream:
        for line in stream:
            yield from line.split()


def align_detections(
    filenames_path: str | os.PathLike,
    rgb_names: Sequence[str],
    detections: Sequence[Sequence[int]],
) -> list[list[int]]:
    """Renumber detections from file order to image order.

    The n-th name in ``filenames_path`` matches detections whose first column
    is n. For every image whose name equals that name, each kept detection is
    copied with its first column set to the image index. Detections of the
    excluded classes are dropped.
    """
    aligned: list[list[int]] = []
    for file_number, name in enumerate(_tokens(filenames_path)):
        for image_index, rgb_name in enumerate(rgb_names):
            if rgb_name != name:
                continue
            for row in detections:
                if row[0] == file_number and row[2] not in EXCLUDED_CLASSES:
                    aligned.append([image_index, *row[1:]])
    return aligned