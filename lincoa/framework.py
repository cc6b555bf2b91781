import logging
import warnings

import numpy as np

from .models import Interpolation, Quadratic
from .settings import Options
from .subsolvers import ActiveSet, constrained_cg_step, geometry_step
from .utils import get_arrays_tol, omega_product

_log = logging.getLogger(__name__)


class TrustRegion:
    """
    Trust-region framework.

    This class gathers the interpolation set, the quadratic model of the
    objective function, the linear constraints relative to the base point, and
    the trust-region parameters.
    """

    def __init__(self, obj, x0, amat, b, options):
        """
        Initialize the trust-region framework.

        The initial interpolation points are built around `x0`. A point that
        slightly violates a constraint is moved, so that its greatest
        constraint violation is ``0.2 * rhobeg``. The objective function is
        then evaluated at every interpolation point.

        Parameters
        ----------
        obj : ObjectiveFunction
            Objective function.
        x0 : numpy.ndarray, shape (n,)
            Initial guess, which must be feasible.
        amat : numpy.ndarray, shape (m, n)
            Normalized gradients of the linear constraints.
        b : numpy.ndarray, shape (m,)
            Normalized right-hand sides of the linear constraints.
        options : dict
            Options of the solver.
        """
        rhobeg = options[Options.RHOBEG]
        npt = options[Options.NPT]
        self._interpolation = Interpolation(x0, rhobeg, npt)
        self._amat = amat
        self._b = b - np.dot(amat, x0)

        # Move the interpolation points that slightly violate a constraint.
        feasible = np.ones(npt, dtype=bool)
        test = 0.2 * rhobeg
        if amat.shape[0] > 0:
            for k in range(1, npt):
                resid = np.dot(amat, self._interpolation.xpt[k, :]) - self._b
                jsav = int(np.argmax(resid))
                bigv = resid[jsav]
                if bigv > 0.0:
                    feasible[k] = False
                    if bigv < test:
                        step = self._interpolation.xpt[k, :] + (test - bigv) * amat[jsav, :]
                        self._interpolation.update(step, 0, k)
                        self._interpolation.replace_point(k, step)

        # Evaluate the objective function at the interpolation points. The
        # best point is chosen among the feasible ones only.
        self._fval = np.empty(npt)
        self._kopt = 0
        for k in range(npt):
            self._fval[k] = obj(self._interpolation.point(k))
            if feasible[k] and self._fval[k] < self._fval[self._kopt]:
                self._kopt = k
        self._x_best = self._interpolation.point(self._kopt)
        self._model = Quadratic(self._interpolation, self._fval, self._kopt)

        self._rho = rhobeg
        self._delta = rhobeg
        self._rescon = self._get_residuals(rhobeg)
        self._active_set = ActiveSet(self._interpolation.n)

    @property
    def interpolation(self):
        """
        Interpolation set.

        Returns
        -------
        Interpolation
            Interpolation set.
        """
        return self._interpolation

    @property
    def model(self):
        """
        Quadratic model of the objective function.

        Returns
        -------
        Quadratic
            Quadratic model of the objective function.
        """
        return self._model

    @property
    def active_set(self):
        """
        Active set of the linear constraints.

        Returns
        -------
        ActiveSet
            Active set of the linear constraints.
        """
        return self._active_set

    @property
    def amat(self):
        """
        Normalized gradients of the linear constraints.

        Returns
        -------
        numpy.ndarray, shape (m, n)
            Normalized gradients of the linear constraints.
        """
        return self._amat

    @property
    def b(self):
        """
        Right-hand sides of the linear constraints, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (m,)
            Right-hand sides of the linear constraints.
        """
        return self._b

    @property
    def rescon(self):
        """
        Residuals of the linear constraints at the center of the trust region.

        A nonnegative value is the distance to the boundary of the constraint,
        and a negative value ``-r`` means that this distance is at least
        ``r >= delta``.

        Returns
        -------
        numpy.ndarray, shape (m,)
            Residuals of the linear constraints.
        """
        return self._rescon

    @property
    def fval(self):
        """
        Objective function values at the interpolation points.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Objective function values at the interpolation points.
        """
        return self._fval

    @property
    def kopt(self):
        """
        Index of the center of the trust region.

        Returns
        -------
        int
            Index of the center of the trust region.
        """
        return self._kopt

    @property
    def xopt(self):
        """
        Center of the trust region, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Center of the trust region.
        """
        return self._interpolation.xpt[self._kopt, :]

    @property
    def x_best(self):
        """
        Best feasible point so far.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Best feasible point so far.
        """
        return self._x_best

    @property
    def fun_best(self):
        """
        Objective function value at the best feasible point so far.

        Returns
        -------
        float
            Objective function value at the best feasible point so far.
        """
        return self._fval[self._kopt]

    @property
    def rho(self):
        """
        Resolution of the trust-region framework.

        Returns
        -------
        float
            Resolution of the trust-region framework.
        """
        return self._rho

    @property
    def delta(self):
        """
        Trust-region radius.

        Returns
        -------
        float
            Trust-region radius.
        """
        return self._delta

    @delta.setter
    def delta(self, delta):
        """
        Set the trust-region radius.

        The radius is set to the resolution if it is close to it.

        Parameters
        ----------
        delta : float
            New trust-region radius.
        """
        self._delta = delta
        if self._delta <= 1.4 * self._rho:
            self._delta = self._rho

    def needs_shift(self):
        """
        Whether the base point should be moved to the center of the trust
        region.

        Returns
        -------
        bool
            Whether the center of the trust region is far from the base point,
            compared with the trust-region radius.
        """
        return np.dot(self.xopt, self.xopt) >= 1e4 * self._delta ** 2.0

    def shift_x_base(self):
        """
        Move the base point to the center of the trust region.
        """
        _log.debug(f"Shift the base point by {self.xopt}")
        self._b -= np.dot(self._amat, self.xopt)
        self._model.shift_x_base(self._interpolation, self._kopt)
        self._interpolation.shift_x_base(self._kopt)

    def get_trust_region_step(self):
        """
        Get the trust-region step.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Trust-region step.
        float
            Length of the trust-region step, or zero if it is negligible.
        bool
            Whether the active set has been revised during the calculations.
        """
        return constrained_cg_step(self._model.gopt, self._hess_prod, self._amat, self._rescon, self._active_set, self._delta)

    def get_geometry_step(self, knew):
        """
        Get a step that improves the geometry of the interpolation set.

        Parameters
        ----------
        knew : int
            Index of the interpolation point to be replaced.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Geometry-improving step.
        StepStatus
            Feasibility of the trial point.
        """
        radius = max(0.1 * self._delta, self._rho)
        glag = self._interpolation.bmat[knew, :]
        pqw = omega_product(self._interpolation.zmat, self._interpolation.idz, knew)
        return geometry_step(self._interpolation.xpt, self._kopt, knew, glag, pqw, self._amat, self._rescon, self._active_set, radius)

    def get_alternative_diff(self, step, fun_val):
        """
        Evaluate the error of the least Frobenius norm interpolant of the
        current objective function values at the trial point.

        This method must be called before the interpolation set is updated.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trial step from the center of the trust region.
        fun_val : float
            Objective function value at the trial point.

        Returns
        -------
        float
            Difference between `fun_val` and the prediction of the alternative
            model.
        """
        npt = self._interpolation.npt
        xpt = self._interpolation.xpt
        values = self._fval - self._fval[self._kopt]
        pqw = omega_product(self._interpolation.zmat, self._interpolation.idz, values)
        sp_opt = np.dot(xpt, self.xopt)
        sp_step = np.dot(xpt, step)
        vqalt = np.dot(np.dot(self._interpolation.bmat[:npt, :], step), values)
        vqalt += np.dot(pqw, sp_step * (0.5 * sp_step + sp_opt))
        return fun_val - self.fun_best - vqalt

    def update_radius(self, step, ratio):
        """
        Update the trust-region radius according to the reduction ratio.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trust-region step.
        ratio : float
            Reduction ratio of the trust-region step.
        """
        s_norm = np.linalg.norm(step)
        if ratio <= 0.1:
            delta = 0.5 * self._delta
        elif ratio <= 0.7:
            delta = max(0.5 * self._delta, s_norm)
        else:
            delta = min(max(0.5 * self._delta, 2.0 * s_norm), np.sqrt(2.0) * self._delta)
        self.delta = delta
        _log.debug(f"Trust-region radius: {self._delta}")

    def update_interpolation(self, step, knew=None):
        """
        Replace an interpolation point by the trial point.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trial step from the center of the trust region.
        knew : int, optional
            Index of the interpolation point to be replaced. By default, it is
            chosen by the updating formula.

        Returns
        -------
        int
            Index of the interpolation point that has been replaced.
        numpy.ndarray, shape (n,)
            Replaced interpolation point, relative to the base point.

        Raises
        ------
        ZeroDivisionError
            The denominator of the updating formula is zero.
        """
        xnew = self.xopt + step
        knew = self._interpolation.update(step, self._kopt, knew)
        x_old = np.copy(self._interpolation.xpt[knew, :])
        self._interpolation.replace_point(knew, xnew)
        return knew, x_old

    def update_model(self, knew, x_old, diff):
        """
        Update the quadratic model after the `knew`-th interpolation point has
        been replaced.

        Parameters
        ----------
        knew : int
            Index of the interpolation point that has been replaced.
        x_old : numpy.ndarray, shape (n,)
            Replaced interpolation point, relative to the base point.
        diff : float
            Difference between the new objective function value and its
            prediction by the quadratic model.
        """
        self._model.update(self._interpolation, knew, x_old, diff, self.xopt)

    def set_fun_val(self, knew, fun_val):
        """
        Store the objective function value at the `knew`-th interpolation
        point.
        """
        self._fval[knew] = fun_val

    def set_best_index(self, knew, step, shift_model):
        """
        Move the center of the trust region to the `knew`-th interpolation
        point, and update the residuals of the linear constraints.

        Parameters
        ----------
        knew : int
            Index of the new center of the trust region.
        step : numpy.ndarray, shape (n,)
            Displacement of the center of the trust region.
        shift_model : bool
            Whether the gradient of the quadratic model should be moved to the
            new center of the trust region.
        """
        self._kopt = knew
        self._x_best = self._interpolation.point(knew)
        s_norm = np.linalg.norm(step)
        far = self._rescon >= self._delta + s_norm
        self._rescon[far] = s_norm - self._rescon[far]
        self._rescon[~far] += s_norm
        update = ~far & (self._rescon + self._delta > 0.0)
        resid = np.maximum(self._b[update] - np.dot(self._amat[update, :], self.xopt), 0.0)
        resid[resid >= self._delta] = -resid[resid >= self._delta]
        self._rescon[update] = resid
        if shift_model:
            self._model.shift_center(step, self._interpolation)

    def reset_model(self):
        """
        Replace the quadratic model by the least Frobenius norm interpolant of
        the current objective function values.
        """
        _log.debug("Replace the quadratic model by the alternative model")
        self._model.reset(self._interpolation, self._fval, self._kopt)

    def get_index_to_remove(self):
        """
        Get the index of an interpolation point that is far from the center
        of the trust region.

        Returns
        -------
        {int, None}
            Index of the farthest interpolation point if its distance to the
            center of the trust region exceeds ``max(delta, 2 * rho)``, None
            otherwise.
        """
        threshold = max(self._delta ** 2.0, 4.0 * self._rho ** 2.0)
        return self._interpolation.get_index_to_remove(self._kopt, threshold)

    def reduce_resolution(self, rhoend):
        """
        Reduce the resolution of the trust-region framework.

        Parameters
        ----------
        rhoend : float
            Final resolution.
        """
        delta = 0.5 * self._rho
        if self._rho > 250.0 * rhoend:
            self._rho *= 0.1
        elif self._rho <= 16.0 * rhoend:
            self._rho = rhoend
        else:
            self._rho = np.sqrt(self._rho * rhoend)
        self._delta = max(delta, self._rho)
        _log.debug(f"Resolution: {self._rho}, trust-region radius: {self._delta}")

    def check_models(self):
        """
        Check the consistency of the quadratic model and the factorizations.

        A `RuntimeWarning` is raised if an inconsistency is detected.
        """
        self._model.check_interpolation_conditions(self._interpolation, self._fval, self._kopt)
        npt = self._interpolation.npt
        bmat = self._interpolation.bmat
        if np.max(np.abs(bmat[npt:, :] - bmat[npt:, :].T), initial=0.0) > get_arrays_tol(bmat):
            warnings.warn('The last rows of bmat are not symmetric.', RuntimeWarning)
        qfac = self._active_set.qfac
        if np.max(np.abs(np.dot(qfac.T, qfac) - np.eye(qfac.shape[1]))) > get_arrays_tol(qfac):
            warnings.warn('The columns of qfac are not orthonormal.', RuntimeWarning)

    def _hess_prod(self, v):
        return self._model.hess_prod(v, self._interpolation)

    def _get_residuals(self, delta):
        resid = np.maximum(self._b - np.dot(self._amat, self.xopt), 0.0)
        resid[resid >= delta] = -resid[resid >= delta]
        return resid
