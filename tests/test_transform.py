import math

import numpy as np

from panolidar.transform import SE3, hat3


def _random_tf(seed):
    rng = np.random.default_rng(seed)
    return SE3.from_rotvec(rng.normal(size=3), rng.normal(size=3))


def test_hat3_is_cross_product():
    v = np.array([0.3, -1.2, 2.0])
    w = np.array([1.5, 0.7, -0.4])
    np.testing.assert_allclose(hat3(v) @ w, np.cross(v, w))
    np.testing.assert_allclose(hat3(v), -hat3(v).T)


def test_identity_leaves_points():
    pts = np.arange(12.0).reshape(4, 3)
    np.testing.assert_allclose(SE3.identity().apply(pts), pts)
    np.testing.assert_allclose(SE3.identity().matrix(), np.eye(4))


def test_from_rotvec_is_rotation():
    tf = _random_tf(1)
    np.testing.assert_allclose(tf.rotation @ tf.rotation.T, np.eye(3), atol=1e-12)
    assert math.isclose(np.linalg.det(tf.rotation), 1.0, rel_tol=1e-12)


def test_from_rotvec_quarter_turn():
    tf = SE3.from_rotvec([0.0, 0.0, math.pi / 2])
    np.testing.assert_allclose(tf.apply([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)


def test_inverse_round_trip():
    tf = _random_tf(2)
    ident = tf @ tf.inverse()
    np.testing.assert_allclose(ident.matrix(), np.eye(4), atol=1e-12)
    p = np.array([0.5, -2.0, 3.0])
    np.testing.assert_allclose(tf.inverse().apply(tf.apply(p)), p, atol=1e-12)


def test_compose_matches_sequential_apply():
    a = _random_tf(3)
    b = _random_tf(4)
    pts = np.random.default_rng(5).normal(size=(6, 3))
    np.testing.assert_allclose((a @ b).apply(pts), a.apply(b.apply(pts)), atol=1e-12)
    np.testing.assert_allclose((a @ b).matrix(), a.matrix() @ b.matrix(), atol=1e-12)


def test_matmul_with_points_applies():
    tf = _random_tf(6)
    p = np.array([1.0, 2.0, 3.0])
    np.testing.assert_allclose(tf @ p, tf.apply(p))