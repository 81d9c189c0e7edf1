"""Two-view geometry: normalisation, homography and fundamental estimation, triangulation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

Match = tuple[int, int]

_HOMOGRAPHY_THRESHOLD = 5.991
_FUNDAMENTAL_THRESHOLD = 3.841
_FUNDAMENTAL_SCORE_THRESHOLD = 5.991
_MAX_COS_PARALLAX = 0.99998


@dataclass(frozen=True)
class KeyPoint:
    """An image keypoint with its pyramid level."""

    x: float
    y: float
    octave: int = 0
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0

    @property
    def pt(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(eq=False)
class TriangulationCheck:
    """Outcome of testing one motion hypothesis against the matches."""

    n_good: int
    points: np.ndarray
    good: list[bool]
    parallax: float


def _keys_to_array(keys: Sequence[KeyPoint]) -> np.ndarray:
    return np.array([(kp.x, kp.y) for kp in keys], dtype=np.float64).reshape(-1, 2)


def _matched_points(keys1, keys2, matches) -> tuple[np.ndarray, np.ndarray]:
    pts1 = np.array([(keys1[i].x, keys1[i].y) for i, _ in matches], dtype=np.float64)
    pts2 = np.array([(keys2[j].x, keys2[j].y) for _, j in matches], dtype=np.float64)
    return pts1.reshape(-1, 2), pts2.reshape(-1, 2)


def _as_point_pairs(points1, points2) -> tuple[np.ndarray, np.ndarray]:
    p1 = np.asarray(points1, dtype=np.float64).reshape(-1, 2)
    p2 = np.asarray(points2, dtype=np.float64).reshape(-1, 2)
    if len(p1) != len(p2):
        raise ValueError("point sets must have the same length")
    if len(p1) == 0:
        raise ValueError("point sets must not be empty")
    return p1, p2


def _score(chi_square: np.ndarray, threshold: float, score_threshold: float) -> float:
    return float(np.sum(np.where(chi_square > threshold, 0.0, score_threshold - chi_square)))


def normalize(keys: Sequence[KeyPoint]) -> tuple[np.ndarray, np.ndarray]:
    """Centre keypoints and scale them to unit mean absolute deviation.

    Returns the normalised points (N x 2) and the 3x3 transform that maps
    homogeneous pixel coordinates onto them.
    """
    if len(keys) == 0:
        raise ValueError("cannot normalize an empty set of keypoints")
    pts = _keys_to_array(keys)
    mean = pts.mean(axis=0)
    centred = pts - mean
    mean_dev = np.abs(centred).mean(axis=0)
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = 1.0 / mean_dev
        normalized = centred * scale
    transform = np.eye(3)
    transform[0, 0] = scale[0]
    transform[1, 1] = scale[1]
    transform[0, 2] = -mean[0] * scale[0]
    transform[1, 2] = -mean[1] * scale[1]
    return normalized, transform


def compute_h21(points1, points2) -> np.ndarray:
    """Estimate the homography mapping points1 onto points2 by DLT."""
    p1, p2 = _as_point_pairs(points1, points2)
    u1, v1 = p1.T
    u2, v2 = p2.T
    zeros = np.zeros_like(u1)
    ones = np.ones_like(u1)
    a = np.empty((2 * len(p1), 9))
    a[0::2] = np.column_stack([zeros, zeros, zeros, -u1, -v1, -ones, v2 * u1, v2 * v1, v2])
    a[1::2] = np.column_stack([u1, v1, ones, zeros, zeros, zeros, -u2 * u1, -u2 * v1, -u2])
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    return vt[8].reshape(3, 3)


def compute_f21(points1, points2) -> np.ndarray:
    """Estimate the rank-2 fundamental matrix with the eight-point algorithm."""
    p1, p2 = _as_point_pairs(points1, points2)
    u1, v1 = p1.T
    u2, v2 = p2.T
    a = np.column_stack(
        [u2 * u1, u2 * v1, u2, v2 * u1, v2 * v1, v2, u1, v1, np.ones_like(u1)]
    )
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    f_pre = vt[8].reshape(3, 3)
    u, w, vt = np.linalg.svd(f_pre, full_matrices=True)
    w[2] = 0.0
    return u @ np.diag(w) @ vt


def _transfer(h: np.ndarray, pts: np.ndarray) -> np.ndarray:
    homogeneous = np.column_stack([pts, np.ones(len(pts))]) @ h.T
    return homogeneous[:, :2] * (1.0 / homogeneous[:, 2:3])


def check_homography(h21, h12, keys1, keys2, matches, sigma) -> tuple[float, list[bool]]:
    """Score a homography by symmetric transfer error; return (score, inlier flags)."""
    h21 = np.asarray(h21, dtype=np.float64).reshape(3, 3)
    h12 = np.asarray(h12, dtype=np.float64).reshape(3, 3)
    pts1, pts2 = _matched_points(keys1, keys2, matches)
    th = _HOMOGRAPHY_THRESHOLD
    inv_sigma2 = 1.0 / (sigma * sigma)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        chi1 = np.sum((pts1 - _transfer(h12, pts2)) ** 2, axis=1) * inv_sigma2
        chi2 = np.sum((pts2 - _transfer(h21, pts1)) ** 2, axis=1) * inv_sigma2
        score = _score(chi1, th, th) + _score(chi2, th, th)
    inliers = ~(chi1 > th) & ~(chi2 > th)
    return score, [bool(v) for v in inliers]


def check_fundamental(f21, keys1, keys2, matches, sigma) -> tuple[float, list[bool]]:
    """Score a fundamental matrix by epipolar distances; return (score, inlier flags)."""
    f = np.asarray(f21, dtype=np.float64).reshape(3, 3)
    pts1, pts2 = _matched_points(keys1, keys2, matches)
    h1 = np.column_stack([pts1, np.ones(len(pts1))])
    h2 = np.column_stack([pts2, np.ones(len(pts2))])
    inv_sigma2 = 1.0 / (sigma * sigma)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        line2 = h1 @ f.T
        num2 = np.sum(line2 * h2, axis=1)
        chi1 = num2 * num2 / (line2[:, 0] ** 2 + line2[:, 1] ** 2) * inv_sigma2
        line1 = h2 @ f
        num1 = np.sum(line1 * h1, axis=1)
        chi2 = num1 * num1 / (line1[:, 0] ** 2 + line1[:, 1] ** 2) * inv_sigma2
        score = _score(chi1, _FUNDAMENTAL_THRESHOLD, _FUNDAMENTAL_SCORE_THRESHOLD)
        score += _score(chi2, _FUNDAMENTAL_THRESHOLD, _FUNDAMENTAL_SCORE_THRESHOLD)
    inliers = ~(chi1 > _FUNDAMENTAL_THRESHOLD) & ~(chi2 > _FUNDAMENTAL_THRESHOLD)
    return score, [bool(v) for v in inliers]


def triangulate(kp1: KeyPoint, kp2: KeyPoint, p1, p2) -> np.ndarray:
    """Linear triangulation of one correspondence from two 3x4 projection matrices."""
    p1 = np.asarray(p1, dtype=np.float64)
    p2 = np.asarray(p2, dtype=np.float64)
    a = np.vstack(
        [
            kp1.x * p1[2] - p1[0],
            kp1.y * p1[2] - p1[1],
            kp2.x * p2[2] - p2[0],
            kp2.y * p2[2] - p2[1],
        ]
    )
    _, _, vt = np.linalg.svd(a, full_matrices=True)
    x = vt[3]
    with np.errstate(divide="ignore", invalid="ignore"):
        return x[:3] / x[3]


def decompose_e(essential) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split an essential matrix into two rotations and a unit translation."""
    u, _, vt = np.linalg.svd(np.asarray(essential, dtype=np.float64))
    t = u[:, 2] / np.linalg.norm(u[:, 2])
    w = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    r1 = u @ w @ vt
    if np.linalg.det(r1) < 0:
        r1 = -r1
    r2 = u @ w.T @ vt
    if np.linalg.det(r2) < 0:
        r2 = -r2
    return r1, r2, t


def _square_reprojection_error(point, kp, fx, fy, cx, cy) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_z = np.float64(1.0) / point[2]
        u = fx * point[0] * inv_z + cx
        v = fy * point[1] * inv_z + cy
        return float((u - kp.x) ** 2 + (v - kp.y) ** 2)


def check_rt(rotation, translation, keys1, keys2, matches, inliers, k, th2) -> TriangulationCheck:
    """Triangulate inlier matches under a motion hypothesis and count the valid ones."""
    k = np.asarray(k, dtype=np.float64).reshape(3, 3)
    r = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    t = np.asarray(translation, dtype=np.float64).reshape(3)
    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]

    good = [False] * len(keys1)
    points = np.zeros((len(keys1), 3))
    cos_parallaxes: list[float] = []

    p1 = np.zeros((3, 4))
    p1[:, :3] = k
    p2 = k @ np.column_stack([r, t])
    o2 = -r.T @ t

    n_good = 0
    for (i1, i2), is_inlier in zip(matches, inliers):
        if not is_inlier:
            continue
        kp1 = keys1[i1]
        kp2 = keys2[i2]
        p3d_c1 = triangulate(kp1, kp2, p1, p2)
        if not np.all(np.isfinite(p3d_c1)):
            good[i1] = False
            continue

        normal1 = p3d_c1
        normal2 = p3d_c1 - o2
        with np.errstate(divide="ignore", invalid="ignore"):
            cos_parallax = float(
                np.dot(normal1, normal2)
                / (np.float64(np.linalg.norm(normal1)) * np.linalg.norm(normal2))
            )

        if p3d_c1[2] <= 0 and cos_parallax < _MAX_COS_PARALLAX:
            continue
        p3d_c2 = r @ p3d_c1 + t
        if p3d_c2[2] <= 0 and cos_parallax < _MAX_COS_PARALLAX:
            continue

        if _square_reprojection_error(p3d_c1, kp1, fx, fy, cx, cy) > th2:
            continue
        if _square_reprojection_error(p3d_c2, kp2, fx, fy, cx, cy) > th2:
            continue

        cos_parallaxes.append(cos_parallax)
        points[i1] = p3d_c1
        n_good += 1
        if cos_parallax < _MAX_COS_PARALLAX:
            good[i1] = True

    if n_good > 0:
        cos_parallaxes.sort()
        chosen = cos_parallaxes[min(50, len(cos_parallaxes) - 1)]
        parallax = math.degrees(math.acos(max(-1.0, min(1.0, chosen))))
    else:
        parallax = 0.0

    return TriangulationCheck(n_good=n_good, points=points, good=good, parallax=parallax)