import math
import random
from dataclasses import dataclass

import numpy as np
import pytest

from orbslam.ar import (
    Plane,
    PoseImageBuffer,
    detect_plane,
    exp_so3,
    gl_matrix,
    status_message,
)


@dataclass(eq=False)
class StubPoint:
    pos: tuple
    n_obs: int = 10
    bad: bool = False

    def world_pos(self):
        return np.array(self.pos, dtype=np.float64)

    def observations(self):
        return self.n_obs

    def is_bad(self):
        return self.bad


def planar_points(height=1.0, count_x=10, count_z=6):
    points = []
    i = 0
    for ix in range(count_x):
        for iz in range(count_z):
            noise = 0.002 * ((i * 7) % 5 - 2)
            points.append(StubPoint((ix * 0.5 - 2.0, height + noise, iz * 0.5 + 3.0)))
            i += 1
    return points


def test_exp_so3_zero_is_identity():
    assert np.allclose(exp_so3(0.0, 0.0, 0.0), np.eye(3))


@pytest.mark.parametrize("vec", [(0.1, 0.2, 0.3), (1.0, -2.0, 0.5), (1e-6, 0.0, 0.0)])
def test_exp_so3_is_rotation(vec):
    r = exp_so3(*vec)
    assert np.allclose(r @ r.T, np.eye(3), atol=1e-6)
    assert math.isclose(np.linalg.det(r), 1.0, abs_tol=1e-6)


def test_exp_so3_quarter_turn_about_z():
    r = exp_so3(0.0, 0.0, math.pi / 2)
    assert np.allclose(r @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-9)


def test_exp_so3_accepts_vector():
    assert np.allclose(exp_so3([0.3, -0.1, 0.2]), exp_so3(0.3, -0.1, 0.2))


def test_gl_matrix_is_column_major():
    t = np.arange(16, dtype=np.float64).reshape(4, 4)
    m = gl_matrix(t)
    assert len(m) == 16
    assert m[1] == t[1, 0]
    assert m[4] == t[0, 1]
    assert m[12:15] == [t[0, 3], t[1, 3], t[2, 3]]
    assert (m[3], m[7], m[11], m[15]) == (0.0, 0.0, 0.0, 1.0)


def test_gl_matrix_rejects_small_matrix():
    with pytest.raises(ValueError):
        gl_matrix(np.eye(3))


def test_status_messages():
    assert status_message(1, False) == ("SLAM NOT INITIALIZED", (255, 0, 0))
    assert status_message(2, False) == ("SLAM ON", (0, 255, 0))
    assert status_message(3, False) == ("SLAM LOST", (255, 0, 0))
    assert status_message(1, True) == ("SLAM NOT INITIALIZED", (255, 0, 0))
    assert status_message(2, True) == ("LOCALIZATION ON", (0, 255, 0))
    assert status_message(3, True) == ("LOCALIZATION LOST", (255, 0, 0))
    assert status_message(0, False) is None


def test_detect_plane_needs_enough_points():
    points = planar_points()[:49]
    assert detect_plane(np.eye(4), points, 50, random.Random(0)) is None


def test_detect_plane_ignores_poorly_observed_points():
    points = planar_points()
    for p in points[:20]:
        p.n_obs = 5
    assert detect_plane(np.eye(4), points + [None], 50, random.Random(0)) is None


def test_detect_plane_finds_dominant_plane():
    planar = planar_points()
    outliers = [StubPoint((0.1 * i, 3.0, 4.0 + 0.1 * i)) for i in range(5)]
    plane = detect_plane(np.eye(4), planar + outliers, 50, random.Random(1))
    assert plane is not None
    assert len(plane.map_points) > 0
    assert all(mp not in outliers for mp in plane.map_points)
    assert plane.normal[1] > 0.99
    assert abs(plane.origin[1] - 1.0) < 0.01


def test_plane_recompute_orients_normal_away_from_camera():
    points = [StubPoint((x, y, 2.0)) for x in (-1.0, 0.0, 1.0) for y in (-1.0, 0.0, 1.0)]
    plane = Plane(points, np.eye(4), 0.3)
    assert np.allclose(plane.normal, [0.0, 0.0, 1.0], atol=1e-9)
    assert np.allclose(plane.origin, [0.0, 0.0, 2.0])
    assert np.allclose(plane.tpw[:3, :3] @ np.array([0.0, 1.0, 0.0]), plane.normal, atol=1e-9)
    assert np.allclose(plane.tpw[:3, 3], plane.origin)
    assert plane.gl_tpw == gl_matrix(plane.tpw)


def test_plane_skips_bad_points():
    points = [StubPoint((x, 1.0, z)) for x in (0.0, 1.0, 2.0) for z in (0.0, 1.0)]
    points.append(StubPoint((50.0, 50.0, 50.0), bad=True))
    plane = Plane(points, np.eye(4), 0.0)
    assert np.allclose(plane.origin, [1.0, 1.0, 0.5])


def test_plane_with_only_bad_points_raises():
    with pytest.raises(ValueError):
        Plane([StubPoint((0.0, 0.0, 0.0), bad=True)], np.eye(4), 0.0)


def test_plane_recompute_keeps_first_camera_side():
    points = [StubPoint((x, y, 2.0)) for x in (-1.0, 0.0, 1.0) for y in (-1.0, 0.0, 1.0)]
    plane = Plane(points, np.eye(4), 0.0)
    first_normal = plane.normal.copy()
    plane.recompute()
    assert np.allclose(plane.normal, first_normal)


def test_from_normal_up_uses_only_spin():
    plane = Plane.from_normal([0.0, 1.0, 0.0], [1.0, 2.0, 3.0], 0.5)
    assert np.allclose(plane.tpw[:3, :3], exp_so3(0.0, 0.5, 0.0))
    assert np.allclose(plane.tpw[:3, 3], [1.0, 2.0, 3.0])


def test_from_normal_maps_up_to_normal():
    normal = np.array([1.0, 1.0, 0.0]) / math.sqrt(2.0)
    plane = Plane.from_normal(normal, [0.0, 0.0, 0.0], -0.7)
    assert np.allclose(plane.tpw[:3, :3] @ np.array([0.0, 1.0, 0.0]), normal, atol=1e-9)


def test_pose_image_buffer_round_trip_and_isolation():
    buffer = PoseImageBuffer()
    image = np.zeros((4, 5, 3), dtype=np.uint8)
    tcw = np.eye(4)
    keys = ["k1", "k2"]
    buffer.set(image, tcw, 2, keys, [None, None])
    image[0, 0, 0] = 9
    tcw[0, 3] = 5.0
    keys.append("k3")
    snapshot = buffer.get()
    assert snapshot.status == 2
    assert snapshot.image[0, 0, 0] == 0
    assert np.allclose(snapshot.tcw, np.eye(4))
    assert snapshot.keys == ["k1", "k2"]
    assert snapshot.map_points == [None, None]


def test_pose_image_buffer_starts_empty():
    snapshot = PoseImageBuffer().get()
    assert snapshot.image is None
    assert snapshot.tcw is None
    assert snapshot.keys == []