import numpy as np
import pytest

from ..problem import ObjectiveFunction, LinearConstraints
from ..settings import PRINT_OPTIONS


class BaseTest:

    @staticmethod
    def rosen(x, c=100.0):
        x = np.asarray(x)
        return np.sum(c * (x[1:] - x[:-1] ** 2.0) ** 2.0
                      + (1.0 - x[:-1]) ** 2.0)

    class Rosen:

        def __call__(self, x):
            return BaseTest.rosen(x)


class TestObjectiveFunction(BaseTest):

    def test_simple(self, capsys):
        obj = ObjectiveFunction(self.rosen, False, False, True)
        x = [1.5, 1.5]
        assert obj.n_eval == 0
        assert obj(x) == self.rosen(x)
        assert obj.n_eval == 1
        assert obj.name == "rosen"
        captured = capsys.readouterr()
        assert captured.out == ""

    def test_args(self):
        obj = ObjectiveFunction(self.rosen, False, False, True, 2.0)
        x = [1.5, 1.5]
        assert obj(x) == self.rosen(x, 2.0)

    def test_wrapper(self):
        obj = ObjectiveFunction(self.Rosen(), False, False, True)
        assert obj.name == "fun"

    def test_array_output(self):
        obj = ObjectiveFunction(lambda x: np.array([[np.sum(x)]]), False, False, True)
        f = obj([1.0, 2.0])
        assert isinstance(f, float)
        assert f == 3.0

    def test_verbose(self, capsys):
        obj = ObjectiveFunction(self.rosen, True, False, True)
        x = np.array([1.5, 1.5])
        obj(x)
        captured = capsys.readouterr()
        with np.printoptions(**PRINT_OPTIONS):
            assert captured.out == f"rosen({x}) = {self.rosen(x)}\n"

    def test_history(self):
        obj = ObjectiveFunction(self.rosen, False, True, True)
        x = np.array([1.5, 1.5])
        obj(x)
        x[0] = 2.0
        obj(x)
        np.testing.assert_array_equal(obj.fun_history, [self.rosen([1.5, 1.5]), self.rosen([2.0, 1.5])])
        np.testing.assert_array_equal(obj.x_history, [[1.5, 1.5], [2.0, 1.5]])

        # The history is not stored if not requested.
        obj = ObjectiveFunction(self.rosen, False, False, True)
        obj(x)
        assert obj.fun_history.size == 0
        assert obj.x_history.size == 0

    def test_exception(self):
        with pytest.raises(AssertionError):
            ObjectiveFunction(None, False, False, True)


class TestLinearConstraints:

    def test_simple(self):
        aub = np.array([[3.0, 4.0], [0.0, -2.0]])
        bub = np.array([10.0, 2.0])
        constraints = LinearConstraints(aub, bub)
        assert constraints.m == 2
        assert not constraints.has_zero_gradient
        np.testing.assert_array_equal(constraints.aub, aub)
        np.testing.assert_array_equal(constraints.bub, bub)
        assert constraints.maxcv([0.0, 0.0]) == 0.0
        assert constraints.maxcv([2.0, 2.0]) == 4.0
        assert constraints.maxcv([0.0, -3.0]) == 4.0

    def test_normalize(self):
        aub = np.array([[3.0, 4.0], [0.0, -2.0]])
        bub = np.array([10.0, 2.0])
        constraints = LinearConstraints(aub, bub)
        amat, b = constraints.normalize(np.zeros(2), 1e-6)
        np.testing.assert_allclose(np.linalg.norm(amat, axis=1), 1.0)
        np.testing.assert_allclose(amat, [[0.6, 0.8], [0.0, -1.0]])
        np.testing.assert_allclose(b, [2.0, 1.0])

        # The original constraints are not modified.
        np.testing.assert_array_equal(constraints.aub, aub)
        np.testing.assert_array_equal(constraints.bub, bub)

    def test_infeasible_x0(self, caplog):
        constraints = LinearConstraints(np.array([[1.0, 0.0], [0.0, 1.0]]), np.array([0.0, 5.0]))
        with pytest.warns(RuntimeWarning):
            amat, b = constraints.normalize(np.array([1.0, 1.0]), 1e-6)
        np.testing.assert_allclose(b, [1.0, 5.0])
        assert np.all(amat @ np.array([1.0, 1.0]) <= b)
        assert any(record.levelname == "WARNING" for record in caplog.records)

    def test_nearly_feasible_x0(self, recwarn):
        # A violation below the threshold is not reported.
        constraints = LinearConstraints(np.array([[2.0, 0.0]]), np.array([0.0]))
        amat, b = constraints.normalize(np.array([1e-13, 0.0]), 1e-6)
        assert len(recwarn) == 0
        np.testing.assert_allclose(b, [1e-13])

    def test_zero_gradient(self):
        constraints = LinearConstraints(np.array([[1.0, 0.0], [0.0, 0.0]]), np.array([1.0, 1.0]))
        assert constraints.has_zero_gradient
        constraints = LinearConstraints(np.array([[1.0, 0.0], [0.0, 1e-300]]), np.array([1.0, 1.0]))
        assert not constraints.has_zero_gradient

    def test_empty(self):
        constraints = LinearConstraints(np.empty((0, 3)), np.empty(0))
        assert constraints.m == 0
        assert not constraints.has_zero_gradient
        assert constraints.maxcv(np.ones(3)) == 0.0
        amat, b = constraints.normalize(np.zeros(3), 1e-6)
        assert amat.shape == (0, 3)
        assert b.shape == (0,)
