import numpy as np
import pytest

from orbslam.initializer import Initializer, Reconstruction
from orbslam.twoview import KeyPoint

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rot_y(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def _rot_x(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


R_TRUE = _rot_y(0.08) @ _rot_x(0.03)
T_TRUE = np.array([-1.0, 0.1, 0.05])


def _project(points):
    proj = points @ K.T
    return proj[:, :2] / proj[:, 2:3]


def _scene(points, n_unmatched=0):
    second = points @ R_TRUE.T + T_TRUE
    uv1 = _project(points)
    uv2 = _project(second)
    keys1 = [KeyPoint(float(x), float(y)) for x, y in uv1]
    keys2 = [KeyPoint(float(x), float(y)) for x, y in uv2]
    matches = list(range(len(points)))
    extra = np.random.default_rng(7).uniform([0, 0], [640, 480], size=(n_unmatched, 2))
    keys1 += [KeyPoint(float(x), float(y)) for x, y in extra]
    matches += [-1] * n_unmatched
    return keys1, keys2, matches


def _general_points(n=120):
    rng = np.random.default_rng(3)
    return rng.uniform([-2.0, -1.5, 4.0], [2.0, 1.5, 8.0], size=(n, 3))


def _planar_points(n=120):
    rng = np.random.default_rng(5)
    xy = rng.uniform([-2.0, -1.5], [2.0, 1.5], size=(n, 2))
    z = 5.0 + 0.3 * xy[:, 0] - 0.2 * xy[:, 1]
    return np.column_stack([xy, z])


@pytest.fixture
def general():
    points = _general_points()
    keys1, keys2, matches = _scene(points, n_unmatched=10)
    init = Initializer(keys1, K, 1.0, 200)
    result = init.initialize(keys2, matches)
    return points, init, result


def test_initialize_recovers_motion_on_general_scene(general):
    points, _, result = general
    assert isinstance(result, Reconstruction)
    assert np.allclose(result.rotation, R_TRUE, atol=1e-5)
    assert np.allclose(result.translation, T_TRUE / np.linalg.norm(T_TRUE), atol=1e-5)
    scaled = points / np.linalg.norm(T_TRUE)
    assert np.allclose(result.points[: len(points)], scaled, atol=1e-4)


def test_triangulated_flags_follow_matches(general):
    points, init, result = general
    n = len(points)
    assert all(result.triangulated[:n])
    assert not any(result.triangulated[n:])
    assert np.all(result.points[n:] == 0)
    assert init.matched1 == [True] * n + [False] * 10


def test_fundamental_scores_higher_than_homography_on_general_scene(general):
    _, init, _ = general
    _, score_h, _ = init.find_homography()
    f21, score_f, inliers_f = init.find_fundamental()
    assert score_f > score_h
    assert all(inliers_f)
    assert np.linalg.matrix_rank(f21, tol=1e-9 * np.abs(f21).max()) == 2


def test_reconstruct_f_needs_enough_triangulated_points(general):
    _, init, _ = general
    f21, _, inliers = init.find_fundamental()
    assert init.reconstruct_f(inliers, f21, 1.0, 10**6) is None
    assert init.reconstruct_f(inliers, f21, 1.0, 50) is not None


def test_reconstruct_f_needs_parallax(general):
    _, init, _ = general
    f21, _, inliers = init.find_fundamental()
    assert init.reconstruct_f(inliers, f21, 89.0, 50) is None


def test_reconstruct_f_without_model_gives_none(general):
    _, init, _ = general
    assert init.reconstruct_f([True] * len(init.matches12), None, 1.0, 50) is None
    assert init.reconstruct_h([True] * len(init.matches12), None, 1.0, 50) is None


def test_find_homography_fits_planar_scene():
    points = _planar_points()
    keys1, keys2, matches = _scene(points)
    init = Initializer(keys1, K, 1.0, 100)
    init.initialize(keys2, matches)
    h21, score, inliers = init.find_homography()
    assert all(inliers)
    assert score > 0
    pts1 = np.array([kp.pt for kp in keys1])
    pts2 = np.array([kp.pt for kp in keys2])
    mapped = np.column_stack([pts1, np.ones(len(pts1))]) @ h21.T
    mapped = mapped[:, :2] / mapped[:, 2:3]
    assert np.allclose(mapped, pts2, atol=1e-4)


def test_reconstruct_h_rejects_pure_rotation():
    keys = [KeyPoint(float(i), float(2 * i)) for i in range(10)]
    init = Initializer(keys, K, 1.0, 10)
    h21 = K @ R_TRUE @ np.linalg.inv(K)
    assert init.reconstruct_h([True] * 10, h21, 1.0, 5) is None


def test_too_few_matches_raise():
    keys = [KeyPoint(float(i), float(i * i)) for i in range(10)]
    init = Initializer(keys, K)
    with pytest.raises(ValueError):
        init.initialize(keys, [0, 1, 2, 3, 4, 5, 6, -1, -1, -1])


def test_model_search_requires_matches():
    init = Initializer([KeyPoint(1.0, 2.0)], K)
    with pytest.raises(RuntimeError):
        init.find_homography()
    with pytest.raises(RuntimeError):
        init.find_fundamental()


def test_samples_are_distinct_and_deterministic():
    points = _general_points(40)
    keys1, keys2, matches = _scene(points)
    first = Initializer(keys1, K, 1.0, 30)
    second = Initializer(keys1, K, 1.0, 30)
    first.initialize(keys2, matches)
    second.initialize(keys2, matches)
    assert first.sets == second.sets
    assert len(first.sets) == 30
    for sample in first.sets:
        assert len(set(sample)) == 8
        assert all(0 <= idx < 40 for idx in sample)