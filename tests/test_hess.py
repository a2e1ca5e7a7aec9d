import numpy as np
import pytest

from panolidar.hess import Hess1, MeanCovar


def test_hess1_ctor():
    hess = Hess1()
    assert hess.c == 0
    assert hess.n == 0
    assert np.all(hess.H == 0)
    assert np.all(hess.b == 0)


def test_hess1_op_plus():
    h1 = Hess1()
    h1.c = 1
    h1.n = 1
    h2 = Hess1()
    h2.c = 2
    h2.n = 2

    h3 = h1 + h2
    assert h3.c == 3
    assert h3.n == 3
    assert h1.n == 1


def test_hess1_iadd_ignores_empty():
    h1 = Hess1()
    h1.n = 4
    h1.c = 2.5
    empty = Hess1()
    empty.c = 100.0
    h1 += empty
    assert h1.n == 4
    assert h1.c == 2.5


def test_hess1_solve():
    hess = Hess1()
    hess.H = np.eye(6)
    hess.b = np.ones(6)
    hess.n = 10
    np.testing.assert_array_equal(hess.solve(), np.ones(6))


def test_hess1_solve_uses_lower_triangle():
    hess = Hess1()
    hess.H = np.eye(6) * 2.0
    hess.H[0, 5] = 1000.0  # upper triangle is ignored
    hess.b = np.ones(6)
    hess.n = 6
    np.testing.assert_allclose(hess.solve(), np.full(6, 0.5))


def test_hess1_solve_too_few_costs():
    hess = Hess1()
    hess.H = np.eye(6)
    hess.n = 5
    with pytest.raises(ValueError):
        hess.solve()


def test_hess1_add():
    hess = Hess1()
    J = np.ones((3, 6))
    W = np.eye(3)
    r = np.zeros(3)
    hess.add(J, W, r)
    assert hess.n == 1
    assert hess.c == 0
    np.testing.assert_allclose(hess.H, J.T @ J)
    np.testing.assert_allclose(hess.b, np.zeros(6))


def test_hess1_add_residual_accumulates_cost():
    hess = Hess1()
    r = np.array([1.0, 2.0, 2.0])
    hess.add(np.ones((3, 6)), np.eye(3), r)
    hess.add(np.ones((3, 6)), np.eye(3), r)
    assert hess.n == 2
    assert hess.c == pytest.approx(2 * float(r @ r))


def test_mean_covar_matches_numpy():
    rng = np.random.default_rng(0)
    pts = rng.normal(size=(10, 3))
    mc = MeanCovar()
    for p in pts:
        mc.add(p)
    assert mc.n == 10
    assert mc.ok()
    np.testing.assert_allclose(mc.mean, pts.mean(axis=0))
    np.testing.assert_allclose(mc.covar(), np.cov(pts.T))


def test_mean_covar_reset_and_copy():
    mc = MeanCovar()
    for p in ([1, 2, 3], [2, 3, 4]):
        mc.add(p)
    assert not mc.ok()
    dup = mc.copy()
    mc.reset()
    assert mc.n == 0
    np.testing.assert_array_equal(mc.mean, np.zeros(3))
    assert dup.n == 2
    np.testing.assert_allclose(dup.mean, [1.5, 2.5, 3.5])