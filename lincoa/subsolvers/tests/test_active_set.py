import numpy as np
import pytest

from lincoa.subsolvers import ActiveSet, getact


def _normals(rng, m, n):
    amat = rng.standard_normal((m, n))
    return amat / np.linalg.norm(amat, axis=1)[:, np.newaxis]


def _assert_factorization(active_set, amat):
    n = active_set.n
    nact = active_set.nact
    tol = 1e3 * np.finfo(float).eps * n
    np.testing.assert_allclose(active_set.qfac.T @ active_set.qfac, np.eye(n), atol=tol)
    np.testing.assert_allclose(np.triu(active_set.rfac[:nact, :nact]), active_set.rfac[:nact, :nact], atol=tol)
    for k, j in enumerate(active_set.indices):
        np.testing.assert_allclose(active_set.qfac[:, :k + 1] @ active_set.rfac[:k + 1, k], amat[j, :], atol=tol)


class TestActiveSet:

    def setup_method(self):
        self.rng = np.random.default_rng(0)

    @pytest.mark.parametrize('n', [2, 5, 10])
    def test_add(self, n):
        amat = _normals(self.rng, n, n)
        active_set = ActiveSet(n)
        assert active_set.nact == 0
        assert active_set.null_space().shape == (n, n)
        for j in range(n):
            active_set.add(amat, j, 0.0)
            assert active_set.nact == j + 1
            assert np.all(np.diag(active_set.rfac)[:j + 1] >= 0.0)
            _assert_factorization(active_set, amat)
        assert active_set.null_space().shape == (n, 0)

        # The active set is full.
        with pytest.raises(AssertionError):
            active_set.add(amat, 0, 0.0)

    @pytest.mark.parametrize('n', [2, 5, 10])
    @pytest.mark.parametrize('seed', range(5))
    def test_remove(self, n, seed):
        rng = np.random.default_rng(seed)
        amat = _normals(rng, n, n)
        active_set = ActiveSet(n)
        for j in range(n):
            active_set.add(amat, j, float(j))
        while active_set.nact > 0:
            k = int(rng.integers(active_set.nact))
            removed = active_set.iact[k]
            indices = np.delete(active_set.indices, k)
            resact = np.delete(active_set.resact[:active_set.nact], k)
            active_set.remove(k)
            assert removed not in active_set.indices
            np.testing.assert_array_equal(active_set.indices, indices)
            np.testing.assert_array_equal(active_set.resact[:active_set.nact], resact)
            _assert_factorization(active_set, amat)

            # The null space is orthogonal to the remaining normals.
            null_space = active_set.null_space()
            np.testing.assert_allclose(amat[active_set.indices, :] @ null_space, 0.0, atol=1e-12)

    def test_exception(self):
        active_set = ActiveSet(3)
        with pytest.raises(AssertionError):
            active_set.remove(0)


class TestGetact:

    @pytest.mark.parametrize('n', [2, 5, 10])
    @pytest.mark.parametrize('m', [1, 5, 20])
    def test_simple(self, n, m):
        for seed in range(20):
            rng = np.random.default_rng(seed)
            amat = _normals(rng, m, n)
            g = rng.standard_normal(n)
            snorm = 1.0
            resnew = rng.uniform(0.0, 0.3, m)
            active_set = ActiveSet(n)
            dw, dd = getact(amat, active_set, g, snorm, resnew)

            # Check whether the direction is a projected steepest descent
            # direction for the active constraints.
            assert dw.shape == (n,)
            assert np.isfinite(dw).all()
            assert dd >= 0.0
            np.testing.assert_allclose(dd, dw @ dw, atol=1e-14)
            assert dw @ g <= 0.0
            assert dd <= g @ g + 1e-12
            if dd > 0.0:
                np.testing.assert_allclose(amat[active_set.indices, :] @ dw, 0.0, atol=1e-10 * np.linalg.norm(g))
                projection = active_set.null_space() @ (active_set.null_space().T @ g)
                np.testing.assert_allclose(dw, -projection, atol=1e-10 * np.linalg.norm(g))
            np.testing.assert_array_equal(resnew[active_set.indices], 0.0)
            _assert_factorization(active_set, amat)

            # The Lagrange multipliers of the active constraints are negative.
            assert np.all(active_set.vlam[:active_set.nact] <= 0.0)

    def test_unconstrained(self):
        rng = np.random.default_rng(0)
        g = rng.standard_normal(4)
        active_set = ActiveSet(4)
        dw, dd = getact(np.empty((0, 4)), active_set, g, 1.0, np.empty(0))
        np.testing.assert_allclose(dw, -g)
        np.testing.assert_allclose(dd, g @ g)
        assert active_set.nact == 0

    def test_far_constraints(self):
        # Constraints whose residuals exceed the threshold are ignored.
        amat = np.eye(3)
        g = -np.ones(3)
        active_set = ActiveSet(3)
        dw, dd = getact(amat, active_set, g, 1.0, np.full(3, 0.5))
        assert active_set.nact == 0
        np.testing.assert_allclose(dw, np.ones(3))

    def test_blocking_constraint(self):
        # The first constraint blocks the steepest descent direction.
        amat = np.array([[1.0, 0.0], [0.0, 1.0]])
        g = np.array([-1.0, 1.0])
        active_set = ActiveSet(2)
        resnew = np.array([0.1, 0.1])
        dw, dd = getact(amat, active_set, g, 1.0, resnew)
        assert active_set.nact == 1
        assert active_set.iact[0] == 0
        np.testing.assert_allclose(dw, [0.0, -1.0], atol=1e-14)
        np.testing.assert_allclose(dd, 1.0)
