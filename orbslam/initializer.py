"""Monocular map initialisation from two views.

A homography and a fundamental matrix are fitted in parallel by RANSAC. The
model with the better score is decomposed into a relative motion, and the
matches are triangulated under it.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from orbslam.twoview import (
    KeyPoint,
    Match,
    check_fundamental,
    check_homography,
    check_rt,
    compute_f21,
    compute_h21,
    decompose_e,
    normalize,
)

_SAMPLE_SIZE = 8
_HOMOGRAPHY_RATIO = 0.40
_MIN_PARALLAX = 1.0
_MIN_TRIANGULATED = 50


@dataclass(eq=False)
class Reconstruction:
    """Relative motion of the second view and the triangulated structure.

    ``points`` and ``triangulated`` are indexed by reference keypoint.
    """

    rotation: np.ndarray
    translation: np.ndarray
    points: np.ndarray
    triangulated: list[bool]


class Initializer:
    """Two-view initialiser bound to a reference set of undistorted keypoints."""

    def __init__(
        self,
        reference_keys: Sequence[KeyPoint],
        k,
        sigma: float = 1.0,
        iterations: int = 200,
    ) -> None:
        self.k = np.array(k, dtype=np.float64).reshape(3, 3)
        self.keys1 = list(reference_keys)
        self.sigma = float(sigma)
        self.sigma2 = self.sigma * self.sigma
        self.max_iterations = int(iterations)
        self.keys2: list[KeyPoint] = []
        self.matches12: list[Match] = []
        self.matched1: list[bool] = []
        self.sets: list[list[int]] = []
        self._rng = random.Random(0)

    def initialize(self, current_keys: Sequence[KeyPoint], matches12: Sequence[int]) -> Optional[Reconstruction]:
        """Try to initialise from the current keypoints and matches to the reference.

        ``matches12[i]`` is the index of the current keypoint matched to
        reference keypoint ``i``, or a negative value when unmatched.
        Returns ``None`` when no reliable reconstruction is found.
        """
        self.keys2 = list(current_keys)
        self.matches12 = [(i, int(m)) for i, m in enumerate(matches12) if m >= 0]
        self.matched1 = [False] * len(self.keys1)
        for i, m in enumerate(matches12):
            if i < len(self.matched1):
                self.matched1[i] = m >= 0

        n = len(self.matches12)
        if n < _SAMPLE_SIZE:
            raise ValueError(f"at least {_SAMPLE_SIZE} matches are needed, got {n}")

        self.sets = [self._draw_sample(n) for _ in range(self.max_iterations)]

        h21, score_h, inliers_h = self.find_homography()
        f21, score_f, inliers_f = self.find_fundamental()

        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = np.float64(score_h) / (score_h + score_f)

        if ratio > _HOMOGRAPHY_RATIO:
            return self.reconstruct_h(inliers_h, h21, _MIN_PARALLAX, _MIN_TRIANGULATED)
        return self.reconstruct_f(inliers_f, f21, _MIN_PARALLAX, _MIN_TRIANGULATED)

    def _draw_sample(self, n: int) -> list[int]:
        available = list(range(n))
        sample = []
        for _ in range(_SAMPLE_SIZE):
            pick = self._rng.randint(0, len(available) - 1)
            sample.append(available[pick])
            available[pick] = available[-1]
            available.pop()
        return sample

    def _require_matches(self) -> None:
        if not self.sets:
            raise RuntimeError("no matches loaded; call initialize() first")

    def find_homography(self) -> tuple[Optional[np.ndarray], float, list[bool]]:
        """RANSAC a homography; return (H21 or None, score, inlier flags per match)."""
        self._require_matches()
        pn1, t1 = normalize(self.keys1)
        pn2, t2 = normalize(self.keys2)
        t2_inv = np.linalg.inv(t2)

        best_h: Optional[np.ndarray] = None
        best_score = 0.0
        best_inliers = [False] * len(self.matches12)

        for sample in self.sets:
            pts1 = pn1[[self.matches12[idx][0] for idx in sample]]
            pts2 = pn2[[self.matches12[idx][1] for idx in sample]]
            h21 = t2_inv @ compute_h21(pts1, pts2) @ t1
            try:
                h12 = np.linalg.inv(h21)
            except np.linalg.LinAlgError:
                h12 = np.zeros((3, 3))
            score, inliers = check_homography(h21, h12, self.keys1, self.keys2, self.matches12, self.sigma)
            if score > best_score:
                best_h = h21.copy()
                best_score = score
                best_inliers = inliers
        return best_h, best_score, best_inliers

    def find_fundamental(self) -> tuple[Optional[np.ndarray], float, list[bool]]:
        """RANSAC a fundamental matrix; return (F21 or None, score, inlier flags per match)."""
        self._require_matches()
        pn1, t1 = normalize(self.keys1)
        pn2, t2 = normalize(self.keys2)
        t2_t = t2.T

        best_f: Optional[np.ndarray] = None
        best_score = 0.0
        best_inliers = [False] * len(self.matches12)

        for sample in self.sets:
            pts1 = pn1[[self.matches12[idx][0] for idx in sample]]
            pts2 = pn2[[self.matches12[idx][1] for idx in sample]]
            f21 = t2_t @ compute_f21(pts1, pts2) @ t1
            score, inliers = check_fundamental(f21, self.keys1, self.keys2, self.matches12, self.sigma)
            if score > best_score:
                best_f = f21.copy()
                best_score = score
                best_inliers = inliers
        return best_f, best_score, best_inliers

    def _check(self, rotation, translation, inliers):
        return check_rt(
            rotation,
            translation,
            self.keys1,
            self.keys2,
            self.matches12,
            inliers,
            self.k,
            4.0 * self.sigma2,
        )

    def reconstruct_f(self, inliers, f21, min_parallax, min_triangulated) -> Optional[Reconstruction]:
        """Recover motion from a fundamental matrix, choosing among four hypotheses."""
        if f21 is None:
            return None
        n_inliers = sum(bool(v) for v in inliers)

        e21 = self.k.T @ np.asarray(f21, dtype=np.float64).reshape(3, 3) @ self.k
        r1, r2, t = decompose_e(e21)
        hypotheses = [(r1, t), (r2, t), (r1, -t), (r2, -t)]
        checks = [self._check(r, tr, inliers) for r, tr in hypotheses]

        goods = [c.n_good for c in checks]
        max_good = max(goods)
        min_good = max(int(0.9 * n_inliers), min_triangulated)
        similar = sum(1 for g in goods if g > 0.7 * max_good)

        if max_good < min_good or similar > 1:
            return None

        best = goods.index(max_good)
        check = checks[best]
        if check.parallax > min_parallax:
            rotation, translation = hypotheses[best]
            return Reconstruction(
                rotation=rotation.copy(),
                translation=translation.copy(),
                points=check.points,
                triangulated=check.good,
            )
        return None

    def reconstruct_h(self, inliers, h21, min_parallax, min_triangulated) -> Optional[Reconstruction]:
        """Recover motion from a homography with the eight-solution decomposition."""
        if h21 is None:
            return None
        n_inliers = sum(bool(v) for v in inliers)

        a = np.linalg.inv(self.k) @ np.asarray(h21, dtype=np.float64).reshape(3, 3) @ self.k
        u, w, vt = np.linalg.svd(a, full_matrices=True)
        s = np.linalg.det(u) * np.linalg.det(vt)
        d1, d2, d3 = (float(v) for v in w)

        with np.errstate(divide="ignore", invalid="ignore"):
            if d1 / d2 < 1.00001 or d2 / d3 < 1.00001:
                return None

            aux1 = np.sqrt((d1 * d1 - d2 * d2) / (d1 * d1 - d3 * d3))
            aux3 = np.sqrt((d2 * d2 - d3 * d3) / (d1 * d1 - d3 * d3))
            x1 = [aux1, aux1, -aux1, -aux1]
            x3 = [aux3, -aux3, aux3, -aux3]

            root = np.sqrt((d1 * d1 - d2 * d2) * (d2 * d2 - d3 * d3))
            aux_stheta = root / ((d1 + d3) * d2)
            ctheta = (d2 * d2 + d1 * d3) / ((d1 + d3) * d2)
            stheta = [aux_stheta, -aux_stheta, -aux_stheta, aux_stheta]

            aux_sphi = root / ((d1 - d3) * d2)
            cphi = (d1 * d3 - d2 * d2) / ((d1 - d3) * d2)
            sphi = [aux_sphi, -aux_sphi, -aux_sphi, aux_sphi]

            hypotheses: list[tuple[np.ndarray, np.ndarray]] = []
            for i in range(4):
                rp = np.eye(3)
                rp[0, 0] = ctheta
                rp[0, 2] = -stheta[i]
                rp[2, 0] = stheta[i]
                rp[2, 2] = ctheta
                t = u @ (np.array([x1[i], 0.0, -x3[i]]) * (d1 - d3))
                hypotheses.append((s * u @ rp @ vt, t / np.linalg.norm(t)))

            for i in range(4):
                rp = np.eye(3)
                rp[0, 0] = cphi
                rp[0, 2] = sphi[i]
                rp[1, 1] = -1.0
                rp[2, 0] = sphi[i]
                rp[2, 2] = -cphi
                t = u @ (np.array([x1[i], 0.0, x3[i]]) * (d1 + d3))
                hypotheses.append((s * u @ rp @ vt, t / np.linalg.norm(t)))

        best_good = 0
        second_best_good = 0
        best_index = -1
        best_parallax = -1.0
        best_check = None

        for index, (rotation, translation) in enumerate(hypotheses):
            check = self._check(rotation, translation, inliers)
            if check.n_good > best_good:
                second_best_good = best_good
                best_good = check.n_good
                best_index = index
                best_parallax = check.parallax
                best_check = check
            elif check.n_good > second_best_good:
                second_best_good = check.n_good

        if (
            best_check is not None
            and second_best_good < 0.75 * best_good
            and best_parallax >= min_parallax
            and best_good > min_triangulated
            and best_good > 0.9 * n_inliers
        ):
            rotation, translation = hypotheses[best_index]
            return Reconstruction(
                rotation=rotation.copy(),
                translation=translation.copy(),
                points=best_check.points,
                triangulated=best_check.good,
            )
        return None