"""Augmented-reality helpers: plane detection on map points and plane poses.

Map points handed to these functions need three methods:
``world_pos()`` returning a 3-vector, ``observations()`` returning how many
keyframes see the point, and ``is_bad()``.
"""

from __future__ import annotations

import math
import random
import threading
from typing import NamedTuple, Optional, Protocol, Sequence

import numpy as np

_EPS = 1e-4
_MIN_PLANE_POINTS = 50
_MIN_OBSERVATIONS = 5
_UP = np.array([0.0, 1.0, 0.0])

_RED = (255, 0, 0)
_GREEN = (0, 255, 0)


class MapPointLike(Protocol):
    def world_pos(self): ...

    def observations(self) -> int: ...

    def is_bad(self) -> bool: ...


def _random_angle(rng: Optional[random.Random] = None) -> float:
    draw = rng.random() if rng is not None else random.random()
    return -3.14 / 2 + draw * 3.14


def exp_so3(x, y=None, z=None) -> np.ndarray:
    """Rotation matrix of the rotation vector ``(x, y, z)``.

    A single 3-element sequence may be passed as ``x`` instead.
    """
    if y is None and z is None:
        x, y, z = (float(v) for v in np.asarray(x, dtype=np.float64).reshape(-1)[:3])
    x, y, z = float(x), float(y), float(z)
    identity = np.eye(3)
    d2 = x * x + y * y + z * z
    d = math.sqrt(d2)
    w = np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])
    if d < _EPS:
        return identity + w + 0.5 * (w @ w)
    return identity + w * math.sin(d) / d + (w @ w) * (1.0 - math.cos(d)) / d2


def gl_matrix(transform) -> list[float]:
    """Column-major 16-element matrix of a 4x4 transform, last row forced to (0, 0, 0, 1)."""
    m = np.array(transform, dtype=np.float64)
    if m.shape[0] < 3 or m.shape[1] < 4:
        raise ValueError("transform must be at least 3x4")
    out = np.eye(4)
    out[:3, :4] = m[:3, :4]
    return [float(v) for v in out.T.reshape(-1)]


def status_message(status: int, localization_mode: bool) -> Optional[tuple[str, tuple[int, int, int]]]:
    """Text and RGB colour shown for a tracking status, or None for other states."""
    mode = "LOCALIZATION" if localization_mode else "SLAM"
    if status == 1:
        return "SLAM NOT INITIALIZED", _RED
    if status == 2:
        return f"{mode} ON", _GREEN
    if status == 3:
        return f"{mode} LOST", _RED
    return None


def detect_plane(
    tcw,
    map_points: Sequence[Optional[MapPointLike]],
    iterations: int = 50,
    rng: Optional[random.Random] = None,
) -> Optional["Plane"]:
    """Fit a dominant plane to well-observed map points by RANSAC.

    Returns None when fewer than fifty points are seen by more than five keyframes.
    """
    rng = rng if rng is not None else random.Random()
    candidates = [
        mp for mp in map_points if mp is not None and mp.observations() > _MIN_OBSERVATIONS
    ]
    n = len(candidates)
    if n < _MIN_PLANE_POINTS:
        return None
    points = np.array(
        [np.asarray(mp.world_pos(), dtype=np.float64).reshape(-1)[:3] for mp in candidates]
    )
    homogeneous = np.column_stack([points, np.ones(n)])
    nth = max(int(0.2 * n), 20)

    best_dist = 1e10
    best_distances: Optional[np.ndarray] = None
    for _ in range(iterations):
        available = list(range(n))
        chosen = []
        for _ in range(3):
            pick = rng.randint(0, len(available) - 1)
            chosen.append(available[pick])
            available[pick] = available[-1]
            available.pop()
        _, _, vt = np.linalg.svd(homogeneous[chosen], full_matrices=True)
        plane = vt[3]
        distances = np.abs(homogeneous @ plane) / np.linalg.norm(plane)
        median = float(np.sort(distances)[nth])
        if median < best_dist:
            best_dist = median
            best_distances = distances

    if best_distances is None:
        return None
    threshold = 1.4 * best_dist
    inliers = [mp for mp, dist in zip(candidates, best_distances) if dist < threshold]
    return Plane(inliers, tcw, _random_angle(rng))


class Plane:
    """A plane through map points with a pose whose y axis is the plane normal."""

    def __init__(self, map_points: Sequence[MapPointLike], tcw, rang: Optional[float] = None) -> None:
        self.map_points = list(map_points)
        self.tcw: Optional[np.ndarray] = np.array(tcw, dtype=np.float64).reshape(4, 4)
        self.xc: Optional[np.ndarray] = None
        self.rang = float(rang) if rang is not None else _random_angle()
        self.normal = np.zeros(3)
        self.origin = np.zeros(3)
        self.tpw = np.eye(4)
        self.gl_tpw = gl_matrix(self.tpw)
        self.recompute()

    @classmethod
    def from_normal(cls, normal, origin, rang: Optional[float] = None) -> "Plane":
        """Build a plane from a normal and an origin, without map points."""
        plane = cls.__new__(cls)
        plane.map_points = []
        plane.tcw = None
        plane.xc = None
        plane.rang = float(rang) if rang is not None else _random_angle()
        plane.normal = np.asarray(normal, dtype=np.float64).reshape(-1)[:3].copy()
        plane.origin = np.asarray(origin, dtype=np.float64).reshape(-1)[:3].copy()
        plane._update_transform()
        return plane

    def recompute(self) -> None:
        """Refit the plane to its map points that are still good."""
        good = [
            np.asarray(mp.world_pos(), dtype=np.float64).reshape(-1)[:3]
            for mp in self.map_points
            if not mp.is_bad()
        ]
        if not good:
            raise ValueError("plane has no good map points to fit")
        points = np.array(good)
        homogeneous = np.column_stack([points, np.ones(len(points))])
        _, _, vt = np.linalg.svd(homogeneous, full_matrices=True)
        abc = vt[3, :3].copy()
        self.origin = points.mean(axis=0)

        if self.xc is None:
            if self.tcw is None:
                raise ValueError("plane has no camera pose to orient its normal")
            rotation = self.tcw[:3, :3]
            centre = -rotation.T @ self.tcw[:3, 3]
            self.xc = centre - self.origin

        if float(np.dot(self.xc, abc)) > 0:
            abc = -abc
        self.normal = abc / np.linalg.norm(abc)
        self._update_transform()

    def _update_transform(self) -> None:
        axis = np.cross(_UP, self.normal)
        sa = float(np.linalg.norm(axis))
        ca = float(np.dot(_UP, self.normal))
        angle = math.atan2(sa, ca)
        if sa > 0:
            align = exp_so3(axis * angle / sa)
        elif ca >= 0:
            align = np.eye(3)
        else:
            align = exp_so3(math.pi, 0.0, 0.0)
        tpw = np.eye(4)
        tpw[:3, :3] = align @ exp_so3(_UP * self.rang)
        tpw[:3, 3] = self.origin
        self.tpw = tpw
        self.gl_tpw = gl_matrix(tpw)


class PoseImage(NamedTuple):
    image: Optional[np.ndarray]
    tcw: Optional[np.ndarray]
    status: int
    keys: list
    map_points: list


class PoseImageBuffer:
    """Thread-safe holder of the last image, pose and tracked points."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._image: Optional[np.ndarray] = None
        self._tcw: Optional[np.ndarray] = None
        self._status = 0
        self._keys: list = []
        self._map_points: list = []

    @staticmethod
    def _copy(array) -> Optional[np.ndarray]:
        return None if array is None else np.array(array, copy=True)

    def set(self, image, tcw, status: int, keys, map_points) -> None:
        with self._lock:
            self._image = self._copy(image)
            self._tcw = self._copy(tcw)
            self._status = int(status)
            self._keys = list(keys)
            self._map_points = list(map_points)

    def get(self) -> PoseImage:
        with self._lock:
            return PoseImage(
                self._copy(self._image),
                self._copy(self._tcw),
                self._status,
                list(self._keys),
                list(self._map_points),
            )