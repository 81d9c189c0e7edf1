"""Conversions between rigid and similarity transforms, matrices and quaternions.

Quaternions are stored as ``(x, y, z, w)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


def _quaternion_from_matrix(matrix) -> np.ndarray:
    """Return the quaternion ``(x, y, z, w)`` of a 3x3 rotation matrix."""
    m = np.asarray(matrix, dtype=np.float64)
    q = np.empty(4)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        t = math.sqrt(trace + 1.0)
        q[3] = 0.5 * t
        t = 0.5 / t
        q[0] = (m[2, 1] - m[1, 2]) * t
        q[1] = (m[0, 2] - m[2, 0]) * t
        q[2] = (m[1, 0] - m[0, 1]) * t
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
        q[3] = (m[k, j] - m[j, k]) * t
        q[j] = (m[j, i] + m[i, j]) * t
        q[k] = (m[k, i] + m[i, k]) * t
    return q


def _matrix_from_quaternion(quaternion) -> np.ndarray:
    """Return the 3x3 rotation matrix of a quaternion ``(x, y, z, w)``."""
    x, y, z, w = (float(v) for v in quaternion)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def _as_vector3(values) -> np.ndarray:
    flat = np.asarray(values, dtype=np.float64).reshape(-1)
    if flat.size < 3:
        raise ValueError("a 3-vector needs at least three elements")
    return flat[:3].copy()


@dataclass(eq=False)
class SE3Quat:
    """Rigid transform held as a unit quaternion with non-negative w and a translation."""

    quaternion: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        q = np.asarray(self.quaternion, dtype=np.float64).reshape(4).copy()
        if q[3] < 0:
            q = -q
        norm = np.linalg.norm(q)
        if norm == 0:
            raise ValueError("rotation quaternion must not be zero")
        self.quaternion = q / norm
        self.translation = _as_vector3(self.translation)

    @classmethod
    def from_rt(cls, rotation, translation) -> "SE3Quat":
        """Build from a 3x3 rotation matrix and a translation."""
        return cls(_quaternion_from_matrix(rotation), translation)

    def rotation_matrix(self) -> np.ndarray:
        return _matrix_from_quaternion(self.quaternion)

    def to_homogeneous_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix of this transform."""
        m = np.eye(4)
        m[:3, :3] = self.rotation_matrix()
        m[:3, 3] = self.translation
        return m


@dataclass(eq=False)
class Sim3:
    """Similarity transform: rotation quaternion, translation and scale."""

    quaternion: np.ndarray
    translation: np.ndarray
    scale: float = 1.0

    def __post_init__(self) -> None:
        self.quaternion = np.asarray(self.quaternion, dtype=np.float64).reshape(4).copy()
        self.translation = _as_vector3(self.translation)
        self.scale = float(self.scale)

    @classmethod
    def from_rt(cls, rotation, translation, scale=1.0) -> "Sim3":
        """Build from a 3x3 rotation matrix, a translation and a scale."""
        return cls(_quaternion_from_matrix(rotation), translation, scale)

    def rotation_matrix(self) -> np.ndarray:
        return _matrix_from_quaternion(self.quaternion)


def to_descriptor_vector(descriptors) -> list[np.ndarray]:
    """Split a descriptor matrix into a list of its rows."""
    return list(np.asarray(descriptors))


def to_se3_quat(tcw) -> SE3Quat:
    """Convert a 4x4 (or 3x4) pose matrix into an SE3Quat."""
    m = np.asarray(tcw, dtype=np.float64)
    if m.shape[0] < 3 or m.shape[1] < 4:
        raise ValueError("pose matrix must be at least 3x4")
    return SE3Quat.from_rt(m[:3, :3], m[:3, 3])


def se3_to_mat(se3: SE3Quat) -> np.ndarray:
    """Return the 4x4 single-precision matrix of an SE3Quat."""
    return se3.to_homogeneous_matrix().astype(np.float32)


def sim3_to_mat(sim3: Sim3) -> np.ndarray:
    """Return the 4x4 single-precision matrix [sR | t] of a Sim3."""
    return to_cv_se3(sim3.scale * sim3.rotation_matrix(), sim3.translation)


def to_cv_se3(rotation, translation) -> np.ndarray:
    """Compose a 4x4 single-precision matrix from a 3x3 block and a translation."""
    m = np.eye(4, dtype=np.float32)
    m[:3, :3] = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    m[:3, 3] = _as_vector3(translation)
    return m


def to_vector3d(vector) -> np.ndarray:
    """Return a double-precision 3-vector from a matrix or an object with x, y, z."""
    if all(hasattr(vector, name) for name in ("x", "y", "z")):
        return np.array([vector.x, vector.y, vector.z], dtype=np.float64)
    return _as_vector3(vector)


def to_matrix3d(matrix) -> np.ndarray:
    """Return the upper-left 3x3 block as a double-precision matrix."""
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim != 2 or m.shape[0] < 3 or m.shape[1] < 3:
        raise ValueError("matrix must be at least 3x3")
    return m[:3, :3].copy()


def to_quaternion(matrix) -> list[float]:
    """Return the quaternion ``[x, y, z, w]`` of a rotation matrix in single precision."""
    q = _quaternion_from_matrix(to_matrix3d(matrix))
    return [float(np.float32(v)) for v in q]