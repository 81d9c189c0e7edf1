"""A tracked image frame: undistorted keypoints, stereo depth, a search grid and a pose."""

from __future__ import annotations

import copy as _copy
import itertools
import math
from dataclasses import replace
from typing import Optional, Sequence

import numpy as np

from orbslam.twoview import KeyPoint

GRID_ROWS = 48
GRID_COLS = 64

_UNDISTORT_ITERATIONS = 5


def _round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def _distortion_terms(dist_coef) -> np.ndarray:
    coef = np.asarray(dist_coef, dtype=np.float64).reshape(-1)
    if coef.size not in (4, 5, 8):
        raise ValueError("distortion coefficients must have 4, 5 or 8 elements")
    padded = np.zeros(8)
    padded[: coef.size] = coef
    return padded


def undistort_points(points, k, dist_coef) -> np.ndarray:
    """Remove lens distortion from pixel points, returning pixel points under the same K.

    ``dist_coef`` holds ``k1, k2, p1, p2[, k3[, k4, k5, k6]]``. The inverse of
    the distortion model is found by fixed-point iteration.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    k = np.asarray(k, dtype=np.float64).reshape(3, 3)
    k1, k2, p1, p2, k3, k4, k5, k6 = _distortion_terms(dist_coef)
    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]

    x0 = (pts[:, 0] - cx) / fx
    y0 = (pts[:, 1] - cy) / fy
    x = x0.copy()
    y = y0.copy()
    for _ in range(_UNDISTORT_ITERATIONS):
        r2 = x * x + y * y
        icdist = (1 + ((k6 * r2 + k5) * r2 + k4) * r2) / (1 + ((k3 * r2 + k2) * r2 + k1) * r2)
        delta_x = 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
        delta_y = p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
        x = (x0 - delta_x) * icdist
        y = (y0 - delta_y) * icdist
    return np.column_stack([x * fx + cx, y * fy + cy])


def compute_image_bounds(width, height, k, dist_coef) -> tuple[float, float, float, float]:
    """Return ``(min_x, max_x, min_y, max_y)`` of the undistorted image."""
    coef = np.asarray(dist_coef, dtype=np.float64).reshape(-1)
    if coef.size == 0 or coef[0] == 0.0:
        return 0.0, float(width), 0.0, float(height)
    corners = np.array(
        [[0.0, 0.0], [width, 0.0], [0.0, height], [width, height]], dtype=np.float64
    )
    und = undistort_points(corners, k, coef)
    min_x = float(min(und[0, 0], und[2, 0]))
    max_x = float(max(und[1, 0], und[3, 0]))
    min_y = float(min(und[0, 1], und[1, 1]))
    max_y = float(max(und[2, 1], und[3, 1]))
    return min_x, max_x, min_y, max_y


def stereo_from_depth(
    keys: Sequence[KeyPoint], keys_un: Sequence[KeyPoint], depth, bf
) -> tuple[list[float], list[float]]:
    """Read each keypoint's depth from a depth image.

    Returns ``(u_right, depths)``: the virtual right-image coordinate and the
    depth per keypoint, both -1 where the depth is not positive.
    """
    depth = np.asarray(depth)
    u_right = [-1.0] * len(keys)
    depths = [-1.0] * len(keys)
    for i, (kp, kp_un) in enumerate(zip(keys, keys_un)):
        d = float(depth[int(kp.y), int(kp.x)])
        if d > 0:
            depths[i] = d
            u_right[i] = kp_un.x - bf / d
    return u_right, depths


class Frame:
    """Keypoints of one image with their undistorted positions, depths and grid."""

    _ids = itertools.count()

    def __init__(
        self,
        keys: Sequence[KeyPoint],
        descriptors,
        timestamp: float,
        k,
        dist_coef,
        bf: float,
        th_depth: float,
        image_shape: tuple[int, int],
        depth=None,
    ) -> None:
        self.id = next(Frame._ids)
        self.timestamp = float(timestamp)
        self.k = np.array(k, dtype=np.float64).reshape(3, 3)
        self.dist_coef = np.array(dist_coef, dtype=np.float64).reshape(-1)
        self.bf = float(bf)
        self.th_depth = float(th_depth)
        self.keys = list(keys)
        self.descriptors = np.array(descriptors)
        self.n = len(self.keys)
        self.reference_kf = None

        self.fx = self.k[0, 0]
        self.fy = self.k[1, 1]
        self.cx = self.k[0, 2]
        self.cy = self.k[1, 2]
        self.invfx = 1.0 / self.fx
        self.invfy = 1.0 / self.fy
        self.mb = self.bf / self.fx

        rows, cols = image_shape[0], image_shape[1]
        self.min_x, self.max_x, self.min_y, self.max_y = compute_image_bounds(
            cols, rows, self.k, self.dist_coef
        )
        self.grid_element_width_inv = GRID_COLS / (self.max_x - self.min_x)
        self.grid_element_height_inv = GRID_ROWS / (self.max_y - self.min_y)

        self.keys_un = self._undistort_keys()
        if depth is not None:
            self.u_right, self.depth = stereo_from_depth(self.keys, self.keys_un, depth, self.bf)
        else:
            self.u_right = [-1.0] * self.n
            self.depth = [-1.0] * self.n

        self.map_points: list = [None] * self.n
        self.outliers = [False] * self.n

        self.tcw: Optional[np.ndarray] = None
        self.rcw: Optional[np.ndarray] = None
        self.rwc: Optional[np.ndarray] = None
        self.t_cw: Optional[np.ndarray] = None
        self.ow: Optional[np.ndarray] = None

        self.grid: list[list[list[int]]] = [[[] for _ in range(GRID_ROWS)] for _ in range(GRID_COLS)]
        for i, kp in enumerate(self.keys_un):
            cell = self.pos_in_grid(kp)
            if cell is not None:
                self.grid[cell[0]][cell[1]].append(i)

    def _undistort_keys(self) -> list[KeyPoint]:
        if not self.keys or self.dist_coef.size == 0 or self.dist_coef[0] == 0.0:
            return list(self.keys)
        pts = np.array([(kp.x, kp.y) for kp in self.keys], dtype=np.float64)
        und = undistort_points(pts, self.k, self.dist_coef)
        return [replace(kp, x=float(u), y=float(v)) for kp, (u, v) in zip(self.keys, und)]

    def copy(self) -> "Frame":
        """Return an independent copy with the same id."""
        other = _copy.copy(self)
        other.k = self.k.copy()
        other.dist_coef = self.dist_coef.copy()
        other.descriptors = self.descriptors.copy()
        other.keys = list(self.keys)
        other.keys_un = list(self.keys_un)
        other.u_right = list(self.u_right)
        other.depth = list(self.depth)
        other.map_points = list(self.map_points)
        other.outliers = list(self.outliers)
        other.grid = [[list(cell) for cell in column] for column in self.grid]
        if self.tcw is not None:
            other.set_pose(self.tcw)
        return other

    def set_pose(self, tcw) -> None:
        """Set the world-to-camera pose and derive rotation, translation and centre."""
        self.tcw = np.array(tcw, dtype=np.float64).reshape(4, 4)
        self.rcw = self.tcw[:3, :3].copy()
        self.rwc = self.rcw.T
        self.t_cw = self.tcw[:3, 3].copy()
        self.ow = -self.rcw.T @ self.t_cw

    def pos_in_grid(self, kp: KeyPoint) -> Optional[tuple[int, int]]:
        """Return the grid cell of a keypoint, or None when it falls outside the grid."""
        pos_x = _round_half_away((kp.x - self.min_x) * self.grid_element_width_inv)
        pos_y = _round_half_away((kp.y - self.min_y) * self.grid_element_height_inv)
        if pos_x < 0 or pos_x >= GRID_COLS or pos_y < 0 or pos_y >= GRID_ROWS:
            return None
        return pos_x, pos_y

    def get_features_in_area(self, x, y, r, min_level=-1, max_level=-1) -> list[int]:
        """Return indices of undistorted keypoints within a square window of half-side r."""
        indices: list[int] = []

        min_cell_x = max(0, math.floor((x - self.min_x - r) * self.grid_element_width_inv))
        if min_cell_x >= GRID_COLS:
            return indices
        max_cell_x = min(GRID_COLS - 1, math.ceil((x - self.min_x + r) * self.grid_element_width_inv))
        if max_cell_x < 0:
            return indices
        min_cell_y = max(0, math.floor((y - self.min_y - r) * self.grid_element_height_inv))
        if min_cell_y >= GRID_ROWS:
            return indices
        max_cell_y = min(GRID_ROWS - 1, math.ceil((y - self.min_y + r) * self.grid_element_height_inv))
        if max_cell_y < 0:
            return indices

        check_levels = min_level > 0 or max_level >= 0

        for column in self.grid[min_cell_x : max_cell_x + 1]:
            for cell in column[min_cell_y : max_cell_y + 1]:
                for idx in cell:
                    kp = self.keys_un[idx]
                    if check_levels:
                        if kp.octave < min_level:
                            continue
                        if max_level >= 0 and kp.octave > max_level:
                            continue
                    if abs(kp.x - x) < r and abs(kp.y - y) < r:
                        indices.append(idx)
        return indices

    def unproject_stereo(self, i: int) -> Optional[np.ndarray]:
        """Back-project keypoint i into world coordinates, or None without valid depth."""
        z = self.depth[i]
        if z <= 0:
            return None
        if self.rwc is None or self.ow is None:
            raise RuntimeError("frame pose is not set")
        kp = self.keys_un[i]
        x = (kp.x - self.cx) * z * self.invfx
        y = (kp.y - self.cy) * z * self.invfy
        return self.rwc @ np.array([x, y, z]) + self.ow