"""Conversions between pose matrices, vectors and quaternions."""

from __future__ import annotations

import math

import numpy as np


def descriptor_rows(descriptors) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    array = np.asarray(descriptors)
    return [row.copy() for row in array]


def to_se3(matrix) -> tuple[np.ndarray, np.ndarray]:
    """Split a 4x4 (or 3x4) transform into rotation and translation."""
    array = np.asarray(matrix, dtype=np.float64)
    if array.shape[0] < 3 or array.shape[1] < 4:
        raise ValueError(f"expected a 3x4 or 4x4 transform, got shape {array.shape}")
    return array[:3, :3].copy(), array[:3, 3].copy()


def se3_to_matrix(rotation, translation) -> np.ndarray:
    """Build a 4x4 float32 homogeneous transform."""
    rotation = np.asarray(rotation, dtype=np.float64)
    translation = np.asarray(translation, dtype=np.float64).reshape(-1)
    if rotation.shape != (3, 3) or translation.shape != (3,):
        raise ValueError("rotation must be 3x3 and translation of length 3")
    result = np.eye(4, dtype=np.float32)
    result[:3, :3] = rotation
    result[:3, 3] = translation
    return result


def sim3_to_matrix(scale: float, rotation, translation) -> np.ndarray:
    """Build a 4x4 transform from a similarity: scaled rotation and translation."""
    return se3_to_matrix(scale * np.asarray(rotation, dtype=np.float64), translation)


def to_vector3(vector) -> np.ndarray:
    """Return the first three entries of a vector as a float64 array."""
    flat = np.asarray(vector, dtype=np.float64).reshape(-1)
    if flat.size < 3:
        raise ValueError("a 3-vector needs at least three values")
    return flat[:3].copy()


def to_matrix3(matrix) -> np.ndarray:
    """Return the top-left 3x3 block as float64."""
    array = np.asarray(matrix, dtype=np.float64)
    if array.ndim != 2 or array.shape[0] < 3 or array.shape[1] < 3:
        raise ValueError("a 3x3 block needs a matrix of at least 3x3")
    return array[:3, :3].copy()


def to_quaternion(matrix) -> list[float]:
    """Quaternion of a rotation matrix as [x, y, z, w]."""
    m = to_matrix3(matrix)
    q = [0.0, 0.0, 0.0]
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0:
        t = math.sqrt(trace + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        q = [(m[2, 1] - m[1, 2]) * t, (m[0, 2] - m[2, 0]) * t, (m[1, 0] - m[0, 1]) * t]
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        t = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        q[i] = 0.5 * t
        t = 0.5 / t
        w = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return [float(np.float32(v)) for v in (*q, w)]