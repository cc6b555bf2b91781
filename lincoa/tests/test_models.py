import warnings

import numpy as np
import pytest

from ..models import Interpolation, Quadratic
from ..utils import omega_product


def _kkt_inverse(interpolation):
    """
    Invert the KKT matrix of interpolation explicitly.
    """
    npt, n = interpolation.npt, interpolation.n
    xpt = interpolation.xpt
    kkt = np.zeros((npt + n + 1, npt + n + 1))
    kkt[:npt, :npt] = 0.5 * np.square(xpt @ xpt.T)
    kkt[:npt, npt] = 1.0
    kkt[:npt, npt + 1:] = xpt
    kkt[npt:, :npt] = kkt[:npt, npt:].T
    return np.linalg.inv(kkt)


def _assert_kkt_inverse(interpolation):
    npt = interpolation.npt
    inv = _kkt_inverse(interpolation)
    atol = 1e-8 * max(1.0, np.max(np.abs(inv)))
    dz = np.ones(interpolation.zmat.shape[1])
    dz[:interpolation.idz] = -1.0
    omega = interpolation.zmat @ np.diag(dz) @ interpolation.zmat.T
    np.testing.assert_allclose(omega, inv[:npt, :npt], atol=atol)
    np.testing.assert_allclose(interpolation.bmat[:npt, :], inv[:npt, npt + 1:], atol=atol)
    np.testing.assert_allclose(interpolation.bmat[npt:, :], inv[npt + 1:, npt + 1:], atol=atol)


def _quadratic(rng, n):
    grad = rng.standard_normal(n)
    hess = rng.standard_normal((n, n))
    hess = hess + hess.T

    def fun(x):
        return grad @ x + 0.5 * x @ hess @ x

    return fun, grad, hess


def _assert_interpolation(model, interpolation, fval, kopt):
    xpt = interpolation.xpt
    hess = model.hess(interpolation)
    for k in range(interpolation.npt):
        d = xpt[k, :] - xpt[kopt, :]
        value = model.gopt @ d + 0.5 * d @ hess @ d
        np.testing.assert_allclose(value, fval[k] - fval[kopt], atol=1e-8 * max(1.0, np.max(np.abs(fval))))


class TestInterpolation:

    @pytest.mark.parametrize('n', [2, 3, 5])
    @pytest.mark.parametrize('npt_rel', ['min', 'mid', 'max'])
    def test_init(self, n, npt_rel):
        npt = {'min': n + 2, 'mid': 2 * n + 1, 'max': ((n + 1) * (n + 2)) // 2}[npt_rel]
        x0 = np.arange(n, dtype=float)
        interpolation = Interpolation(x0, 0.5, npt)
        assert interpolation.n == n
        assert interpolation.npt == npt
        assert interpolation.idz == 0
        assert interpolation.bmat.shape == (npt + n, n)
        assert interpolation.zmat.shape == (npt, npt - n - 1)
        np.testing.assert_array_equal(interpolation.x_base, x0)
        np.testing.assert_array_equal(interpolation.xpt[0, :], np.zeros(n))

        # The interpolation points are distinct, and close to the base point.
        dist = np.linalg.norm(interpolation.xpt[:, np.newaxis, :] - interpolation.xpt[np.newaxis, :, :], axis=2)
        assert np.all(dist[~np.eye(npt, dtype=bool)] > 0.0)
        assert np.all(np.linalg.norm(interpolation.xpt, axis=1) <= np.sqrt(2.0) * 0.5 + 1e-12)
        _assert_kkt_inverse(interpolation)

    def test_base_unchanged(self):
        x0 = np.array([1.0, 2.0, 3.0])
        interpolation = Interpolation(x0, 1.0, 7)
        interpolation.shift_x_base(1)
        np.testing.assert_array_equal(x0, [1.0, 2.0, 3.0])

    @pytest.mark.parametrize('n', [2, 4])
    def test_lagrange(self, n):
        rng = np.random.default_rng(n)
        interpolation = Interpolation(rng.standard_normal(n), 1.0, 2 * n + 1)
        kopt = 0

        # The Lagrange polynomials take the values of the identity matrix at
        # the interpolation points, and their sum is one everywhere.
        for k in range(interpolation.npt):
            vlag, _ = interpolation.get_lag_values(interpolation.xpt[k, :] - interpolation.xpt[kopt, :], kopt)
            np.testing.assert_allclose(vlag[:interpolation.npt], np.eye(interpolation.npt)[k], atol=1e-10)
        for _ in range(10):
            vlag, _ = interpolation.get_lag_values(rng.standard_normal(n), kopt)
            np.testing.assert_allclose(np.sum(vlag[:interpolation.npt]), 1.0, atol=1e-10)

    @pytest.mark.parametrize('n', [2, 3, 5])
    @pytest.mark.parametrize('seed', range(3))
    def test_update(self, n, seed):
        rng = np.random.default_rng(seed)
        npt = 2 * n + 1
        interpolation = Interpolation(rng.standard_normal(n), 1.0, npt)
        kopt = 0
        for _ in range(npt):
            step = rng.standard_normal(n)
            step *= rng.uniform(0.2, 1.0) / np.linalg.norm(step)
            knew = interpolation.update(step, kopt)
            assert 0 <= knew < npt
            assert knew != kopt
            interpolation.replace_point(knew, interpolation.xpt[kopt, :] + step)
            if rng.random() < 0.5:
                kopt = knew
        assert 0 <= interpolation.idz <= npt - n - 1
        bmat = interpolation.bmat[npt:, :]
        np.testing.assert_array_equal(bmat, bmat.T)
        _assert_kkt_inverse(interpolation)

    def test_update_given_index(self):
        interpolation = Interpolation(np.zeros(3), 1.0, 7)
        step = np.array([0.3, -0.2, 0.4])
        assert interpolation.update(step, 0, 4) == 4
        interpolation.replace_point(4, step)
        _assert_kkt_inverse(interpolation)

    def test_update_zero_denominator(self):
        interpolation = Interpolation(np.zeros(2), 1.0, 5)

        # A zero step cannot replace any interpolation point.
        with pytest.raises(ZeroDivisionError):
            interpolation.update(np.zeros(2), 0)

    @pytest.mark.parametrize('n', [2, 3, 5])
    def test_shift_x_base(self, n):
        rng = np.random.default_rng(0)
        npt = 2 * n + 1
        interpolation = Interpolation(np.zeros(n), 1.0, npt)
        step = 0.5 * rng.standard_normal(n)
        knew = interpolation.update(step, 0)
        interpolation.replace_point(knew, step)
        points = np.array([interpolation.point(k) for k in range(npt)])

        interpolation.shift_x_base(knew)
        np.testing.assert_allclose(interpolation.x_base, step, atol=1e-14)
        np.testing.assert_array_equal(interpolation.xpt[knew, :], np.zeros(n))
        for k in range(npt):
            np.testing.assert_allclose(interpolation.point(k), points[k], atol=1e-14)
        bmat = interpolation.bmat[npt:, :]
        np.testing.assert_array_equal(bmat, bmat.T)
        _assert_kkt_inverse(interpolation)

    def test_lagrange_gradient(self):
        rng = np.random.default_rng(0)
        interpolation = Interpolation(np.zeros(3), 1.0, 7)
        x = rng.standard_normal(3)
        for k in range(interpolation.npt):
            h = 1e-6
            grad = np.zeros(3)
            for i in range(3):
                e = h * np.eye(3)[i]
                vlag_plus, _ = interpolation.get_lag_values(x + e, 0)
                vlag_minus, _ = interpolation.get_lag_values(x - e, 0)
                grad[i] = (vlag_plus[k] - vlag_minus[k]) / (2.0 * h)
            np.testing.assert_allclose(interpolation.lagrange_gradient(k, x), grad, atol=1e-6)

    def test_get_index_to_remove(self):
        interpolation = Interpolation(np.zeros(2), 1.0, 5)
        assert interpolation.get_index_to_remove(0, 2.0) is None
        knew = interpolation.get_index_to_remove(1, 0.5)
        np.testing.assert_allclose(np.linalg.norm(interpolation.xpt[knew, :] - interpolation.xpt[1, :]), 2.0)

    def test_alpha(self):
        interpolation = Interpolation(np.zeros(3), 1.0, 8)
        alpha = interpolation.get_alpha()
        np.testing.assert_allclose(alpha, np.diag(_kkt_inverse(interpolation))[:interpolation.npt], atol=1e-10)


class TestQuadratic:

    def setup_method(self):
        self.rng = np.random.default_rng(0)

    @pytest.mark.parametrize('n', [2, 3, 5])
    def test_init(self, n):
        fun, _, _ = _quadratic(self.rng, n)
        interpolation = Interpolation(self.rng.standard_normal(n), 1.0, 2 * n + 1)
        fval = np.array([fun(interpolation.point(k)) for k in range(interpolation.npt)])
        kopt = int(np.argmin(fval))
        model = Quadratic(interpolation, fval, kopt)
        assert model.n == n
        assert model.npt == interpolation.npt
        np.testing.assert_array_equal(model.hq, np.zeros((n, n)))
        _assert_interpolation(model, interpolation, fval, kopt)
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            model.check_interpolation_conditions(interpolation, fval, kopt)

    @pytest.mark.parametrize('n', [2, 3])
    def test_fully_determined(self, n):
        fun, grad, hess = _quadratic(self.rng, n)
        interpolation = Interpolation(np.zeros(n), 1.0, ((n + 1) * (n + 2)) // 2)
        fval = np.array([fun(interpolation.point(k)) for k in range(interpolation.npt)])
        model = Quadratic(interpolation, fval, 0)
        np.testing.assert_allclose(model.gopt, grad, atol=1e-10)
        np.testing.assert_allclose(model.hess(interpolation), hess, atol=1e-10)
        v = self.rng.standard_normal(n)
        np.testing.assert_allclose(model.hess_prod(v, interpolation), hess @ v, atol=1e-10)
        np.testing.assert_allclose(model.curv(v, interpolation), v @ hess @ v, atol=1e-10)
        np.testing.assert_allclose(model.change(v, interpolation), fun(v) - fun(np.zeros(n)), atol=1e-10)

    @pytest.mark.parametrize('n', [2, 3, 5])
    @pytest.mark.parametrize('seed', range(3))
    def test_update(self, n, seed):
        rng = np.random.default_rng(seed)
        fun, _, _ = _quadratic(rng, n)
        interpolation = Interpolation(np.zeros(n), 1.0, 2 * n + 1)
        fval = np.array([fun(interpolation.point(k)) for k in range(interpolation.npt)])
        kopt = int(np.argmin(fval))
        model = Quadratic(interpolation, fval, kopt)
        for _ in range(10):
            step = 0.5 * rng.standard_normal(n)
            xopt = np.copy(interpolation.xpt[kopt, :])
            fun_val = fun(interpolation.x_base + xopt + step)
            diff = fun_val - fval[kopt] - model.change(step, interpolation)
            knew = interpolation.update(step, kopt)
            x_old = np.copy(interpolation.xpt[knew, :])
            interpolation.replace_point(knew, xopt + step)
            model.update(interpolation, knew, x_old, diff, xopt)
            fval[knew] = fun_val
            if fun_val < fval[kopt]:
                model.shift_center(step, interpolation)
                kopt = knew
            _assert_interpolation(model, interpolation, fval, kopt)

    @pytest.mark.parametrize('n', [2, 4])
    def test_shift_x_base(self, n):
        fun, _, _ = _quadratic(self.rng, n)
        interpolation = Interpolation(np.zeros(n), 1.0, 2 * n + 1)
        fval = np.array([fun(interpolation.point(k)) for k in range(interpolation.npt)])
        kopt = int(np.argmin(fval))
        model = Quadratic(interpolation, fval, kopt)
        hess = model.hess(interpolation)
        gopt = np.copy(model.gopt)

        model.shift_x_base(interpolation, kopt)
        interpolation.shift_x_base(kopt)
        np.testing.assert_allclose(model.hess(interpolation), hess, atol=1e-10)
        np.testing.assert_array_equal(model.gopt, gopt)
        _assert_interpolation(model, interpolation, fval, kopt)

    def test_reset(self):
        fun, _, _ = _quadratic(self.rng, 3)
        interpolation = Interpolation(np.zeros(3), 1.0, 7)
        fval = np.array([fun(interpolation.point(k)) for k in range(interpolation.npt)])
        model = Quadratic(interpolation, fval, 0)
        model.shift_center(np.ones(3), interpolation)
        model.reset(interpolation, fval, 0)
        np.testing.assert_allclose(model.gopt, Quadratic(interpolation, fval, 0).gopt)
        np.testing.assert_array_equal(model.hq, np.zeros((3, 3)))

    def test_check_interpolation_conditions(self):
        interpolation = Interpolation(np.zeros(2), 1.0, 5)
        fval = np.arange(5, dtype=float)
        model = Quadratic(interpolation, fval, 0)
        fval[3] += 1.0
        with pytest.warns(RuntimeWarning):
            model.check_interpolation_conditions(interpolation, fval, 0)

    def test_implicit_hessian(self):
        interpolation = Interpolation(np.zeros(3), 1.0, 7)
        fval = self.rng.standard_normal(7)
        model = Quadratic(interpolation, fval, 0)
        pq = omega_product(interpolation.zmat, interpolation.idz, fval - fval[0])
        np.testing.assert_allclose(model.pq, pq)

    def test_exception(self):
        interpolation = Interpolation(np.zeros(2), 1.0, 5)
        with pytest.raises(AssertionError):
            Quadratic(interpolation, np.zeros(4), 0)
