import logging
import warnings

import numpy as np

from .settings import PRINT_OPTIONS

_log = logging.getLogger(__name__)


class ObjectiveFunction:
    """
    Real-valued objective function.
    """

    def __init__(self, fun, verbose, store_history, debug, *args):
        """
        Initialize the objective function.

        Parameters
        ----------
        fun : callable
            Function to evaluate.

                ``fun(x, *args) -> float``

            where ``x`` is an array with shape (n,) and `args` is a tuple.
        verbose : bool
            Whether to print the function evaluations.
        store_history : bool
            Whether to store the function evaluations.
        debug : bool
            Whether to make debugging tests during the execution.
        *args : tuple
            Additional arguments to be passed to the function.
        """
        if debug:
            assert callable(fun)
            assert isinstance(verbose, bool)
            assert isinstance(store_history, bool)

        self._fun = fun
        self._verbose = verbose
        self._store_history = store_history
        self._args = args
        self._n_eval = 0
        self._fun_history = []
        self._x_history = []

    def __call__(self, x):
        """
        Evaluate the objective function.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the objective function is evaluated.

        Returns
        -------
        float
            Function value at `x`.
        """
        x = np.array(x, dtype=float)
        f = float(np.squeeze(self._fun(x, *self._args)))
        self._n_eval += 1
        if self._store_history:
            self._fun_history.append(f)
            self._x_history.append(x)
        if self._verbose:
            with np.printoptions(**PRINT_OPTIONS):
                print(f"{self.name}({x}) = {f}")
        return f

    @property
    def n_eval(self):
        """
        Number of function evaluations.

        Returns
        -------
        int
            Number of function evaluations.
        """
        return self._n_eval

    @property
    def name(self):
        """
        Name of the objective function.

        Returns
        -------
        str
            Name of the objective function.
        """
        try:
            return self._fun.__name__
        except AttributeError:
            return "fun"

    @property
    def fun_history(self):
        """
        History of the function values.

        Returns
        -------
        numpy.ndarray, shape (n_eval,)
            History of the function values.
        """
        return np.array(self._fun_history, dtype=float)

    @property
    def x_history(self):
        """
        History of the evaluated points.

        Returns
        -------
        numpy.ndarray, shape (n_eval, n)
            History of the evaluated points.
        """
        return np.array(self._x_history, dtype=float)


class LinearConstraints:
    """
    Linear inequality constraints ``aub @ x <= bub``.
    """

    def __init__(self, aub, bub):
        """
        Initialize the linear constraints.

        Parameters
        ----------
        aub : numpy.ndarray, shape (m, n)
            Left-hand side matrix. Each row stores the gradient of a linear
            constraint.
        bub : numpy.ndarray, shape (m,)
            Right-hand side vector.
        """
        self._aub = aub
        self._bub = bub
        self._norms = np.linalg.norm(aub, axis=1)

    @property
    def m(self):
        """
        Number of linear constraints.

        Returns
        -------
        int
            Number of linear constraints.
        """
        return self._bub.size

    @property
    def aub(self):
        """
        Left-hand side matrix of the linear constraints.

        Returns
        -------
        numpy.ndarray, shape (m, n)
            Left-hand side matrix of the linear constraints.
        """
        return self._aub

    @property
    def bub(self):
        """
        Right-hand side vector of the linear constraints.

        Returns
        -------
        numpy.ndarray, shape (m,)
            Right-hand side vector of the linear constraints.
        """
        return self._bub

    @property
    def has_zero_gradient(self):
        """
        Whether a linear constraint has a zero gradient.

        Returns
        -------
        bool
            Whether a linear constraint has a zero gradient.
        """
        return bool(np.any(self._norms == 0.0))

    def maxcv(self, x):
        """
        Evaluate the maximum constraint violation.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the maximum constraint violation is evaluated.

        Returns
        -------
        float
            Maximum constraint violation at `x`.
        """
        return float(np.max(np.dot(self._aub, x) - self._bub, initial=0.0))

    def normalize(self, x0, rhoend):
        """
        Scale the constraints so that their gradients have unit norms.

        The right-hand sides are increased if necessary, so that `x0` is
        feasible. Such a modification is reported by a `RuntimeWarning`.
        The gradients of the constraints must be nonzero.

        Parameters
        ----------
        x0 : numpy.ndarray, shape (n,)
            Initial guess.
        rhoend : float
            Final trust-region radius.

        Returns
        -------
        numpy.ndarray, shape (m, n)
            Normalized gradients of the linear constraints.
        numpy.ndarray, shape (m,)
            Normalized right-hand sides of the linear constraints.
        """
        values = np.dot(self._aub, x0)
        infeasible = values - self._bub > 1e-6 * rhoend * self._norms
        if np.any(infeasible):
            message = f'The initial guess has been made feasible by increasing the right-hand sides of the constraints {np.flatnonzero(infeasible).tolist()}.'
            _log.warning(message)
            warnings.warn(message, RuntimeWarning, 3)
        amat = self._aub / self._norms[:, np.newaxis]
        b = np.maximum(self._bub, values) / self._norms
        return amat, b
