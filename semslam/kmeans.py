"""Grey-level k-means clustering of image pixels."""

from __future__ import annotations

import math
import random
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

NUM_CLUSTERS = 2
_RGB_WEIGHTS = np.array([0.299, 0.587, 0.114])


@dataclass(frozen=True)
class DepthPoint:
    """A pixel position with its grey (depth) value."""

    row: int
    col: int
    depth: float


def to_grayscale(image) -> np.ndarray:
    """Convert a three-channel image to 8-bit grey; grey images pass through."""
    array = np.asarray(image)
    if array.ndim == 2:
        return array
    if array.ndim != 3 or array.shape[2] < 3:
        raise ValueError(f"expected a grey or colour image, got shape {array.shape}")
    gray = array[..., :3].astype(np.float64) @ _RGB_WEIGHTS
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def initialize_centers(image, k: int = NUM_CLUSTERS, rng: random.Random | None = None) -> list[DepthPoint]:
    """Pick ``k`` random pixels of a grey image as starting centres."""
    array = np.asarray(image)
    if array.ndim != 2:
        raise ValueError("initial centres need a grey image")
    rows, cols = array.shape
    if rows == 0 or cols == 0:
        raise ValueError("image is empty")
    rng = rng or random.Random()
    centers = []
    for _ in range(k):
        row = rng.randrange(rows)
        col = rng.randrange(cols)
        centers.append(DepthPoint(row, col, float(array[row, col])))
    return centers


def initialize_points(image) -> list[DepthPoint]:
    """Return every pixel of a grey image in row-major order."""
    array = np.asarray(image)
    if array.ndim != 2:
        raise ValueError("points need a grey image")
    return [
        DepthPoint(row, col, float(value))
        for (row, col), value in np.ndenumerate(array)
    ]


class KMeans:
    """One-dimensional k-means over the depth values of points."""

    def __init__(self, points: Sequence[DepthPoint], centers: Sequence[DepthPoint], k: int):
        if k < 1:
            raise ValueError("k must be at least 1")
        if len(centers) != k:
            raise ValueError(f"expected {k} centres, got {len(centers)}")
        self.points = list(points)
        self.centers = list(centers)
        self.k = k
        self.clusters: list[list[DepthPoint]] = [[] for _ in range(k)]
        self.labels: list[int] = []

    def distance(self, first: DepthPoint, second: DepthPoint) -> float:
        """Euclidean distance between the depth values of two points."""
        return abs(first.depth - second.depth)

    def closest_center_labels(self) -> list[int]:
        """Index of the nearest centre for each point; ties go to the lower index."""
        labels = []
        for point in self.points:
            best_label = 0
            best = self.distance(point, self.centers[0])
            for index, center in enumerate(self.centers[1:], start=1):
                candidate = self.distance(point, center)
                if candidate < best:
                    best = candidate
                    best_label = index
            labels.append(best_label)
        return labels

    def compute_clusters(self, labels: Sequence[int]) -> None:
        """Put each point into the cluster its label names."""
        self.clusters = [[] for _ in range(self.k)]
        for point, label in zip(self.points, labels):
            self.clusters[label].append(point)
        self.labels = list(labels)

    def compute_centers(self) -> None:
        """Replace the centres by the mean depth of each cluster (NaN if empty)."""
        self.centers = [
            DepthPoint(-1, -1, math.fsum(p.depth for p in cluster) / len(cluster) if cluster else math.nan)
            for cluster in self.clusters
        ]

    def compute_cost(self) -> float:
        """Mean distance of the points to the centre of their cluster."""
        if not self.points:
            raise ValueError("no points to cluster")
        total = sum(
            self.distance(point, center)
            for cluster, center in zip(self.clusters, self.centers)
            for point in cluster
        )
        return total / len(self.points)

    def run(self) -> float:
        """Iterate until the cost stops changing; return the final cost."""
        if not self.points:
            raise ValueError("no points to cluster")
        self.compute_clusters(self.closest_center_labels())
        new_cost = self.compute_cost()
        while True:
            old_cost = new_cost
            self.compute_centers()
            self.compute_clusters(self.closest_center_labels())
            new_cost = self.compute_cost()
            if old_cost == new_cost:
                return new_cost


def cluster_image(image, k: int = NUM_CLUSTERS, seed: int | None = None) -> KMeans:
    """Cluster the grey values of an image and return the finished model."""
    gray = to_grayscale(image)
    rng = random.Random(seed)
    centers = initialize_centers(gray, k, rng)
    points = initialize_points(gray)
    model = KMeans(points, centers, k)
    model.run()
    return model