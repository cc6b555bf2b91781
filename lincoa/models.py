import warnings

import numpy as np

from .utils import omega_product


class Interpolation:
    """
    Interpolation set.

    This class stores a base point around which the models are expanded, the
    interpolation points, and a factorization of the inverse of the KKT matrix
    of interpolation. The coordinates of the interpolation points are relative
    to the base point.

    The inverse KKT matrix is represented as

    .. math::

        \\begin{bmatrix}
            Z D Z^{\\mathsf{T}} & \\cdot\\\\
            B_{:npt} & B_{npt:}
        \\end{bmatrix},

    where :math:`Z` is `zmat`, :math:`B` is `bmat`, and :math:`D` is a diagonal
    matrix whose first `idz` diagonal elements are -1 and the others are 1. The
    row and column of the inverse KKT matrix associated with the constant term
    of the quadratic functions are not stored, since they are not needed.
    """

    def __init__(self, x0, rhobeg, npt):
        """
        Build the initial interpolation set.

        The initial interpolation points are ``0``, ``rhobeg * e_i``, and
        ``-rhobeg * e_i`` for ``i < npt - n - 1``. If ``npt > 2 * n + 1``, the
        remaining points are sums of two steps along coordinate directions. The
        inverse KKT matrix of interpolation is known in closed form for this
        design.

        Parameters
        ----------
        x0 : numpy.ndarray, shape (n,)
            Base point.
        rhobeg : float
            Initial trust-region radius.
        npt : int
            Number of interpolation points.
        """
        n = x0.size
        self._x_base = np.copy(x0)
        self._xpt = np.zeros((npt, n))
        self._bmat = np.zeros((npt + n, n))
        self._zmat = np.zeros((npt, npt - n - 1))
        self._idz = 0

        rhosq = rhobeg ** 2.0
        recip = 1.0 / rhosq
        reciq = np.sqrt(0.5) / rhosq
        for j in range(n):
            self._xpt[j + 1, j] = rhobeg
            if j < npt - n - 1:
                jp = n + j + 1
                self._xpt[jp, j] = -rhobeg
                self._bmat[j + 1, j] = 0.5 / rhobeg
                self._bmat[jp, j] = -0.5 / rhobeg
                self._zmat[0, j] = -reciq - reciq
                self._zmat[j + 1, j] = reciq
                self._zmat[jp, j] = reciq
            else:
                self._bmat[0, j] = -1.0 / rhobeg
                self._bmat[j + 1, j] = 1.0 / rhobeg
                self._bmat[npt + j, j] = -0.5 * rhosq

        # Each remaining point moves along two coordinate directions. The k-th
        # point below is associated with the (k - 1)-th column of zmat.
        for k in range(n + 1, npt - n):
            spread = (k - 1) // n
            ipt = k - spread * n
            jpt = ipt + spread
            if jpt > n:
                jpt -= n
            self._xpt[n + k, ipt - 1] = rhobeg
            self._xpt[n + k, jpt - 1] = rhobeg
            self._zmat[0, k - 1] = recip
            self._zmat[ipt, k - 1] = -recip
            self._zmat[jpt, k - 1] = -recip
            self._zmat[n + k, k - 1] = recip

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self._xpt.shape[1]

    @property
    def npt(self):
        """
        Number of interpolation points.

        Returns
        -------
        int
            Number of interpolation points.
        """
        return self._xpt.shape[0]

    @property
    def x_base(self):
        """
        Base point around which the models are expanded.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Base point around which the models are expanded.
        """
        return self._x_base

    @property
    def xpt(self):
        """
        Interpolation points, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (npt, n)
            Interpolation points.
        """
        return self._xpt

    @property
    def bmat(self):
        """
        Last ``n`` columns of the inverse KKT matrix of interpolation.

        Returns
        -------
        numpy.ndarray, shape (npt + n, n)
            Last ``n`` columns of the inverse KKT matrix of interpolation.
        """
        return self._bmat

    @property
    def zmat(self):
        """
        Factor of the leading submatrix of the inverse KKT matrix.

        Returns
        -------
        numpy.ndarray, shape (npt, npt - n - 1)
            Factor of the leading submatrix of the inverse KKT matrix.
        """
        return self._zmat

    @property
    def idz(self):
        """
        Number of columns of `zmat` with a negative sign.

        Returns
        -------
        int
            Number of columns of `zmat` with a negative sign.
        """
        return self._idz

    def point(self, k):
        """
        Get the `k`-th interpolation point, relative to the origin.

        Parameters
        ----------
        k : int
            Index of the interpolation point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            `k`-th interpolation point.
        """
        assert 0 <= k < self.npt, 'The index `k` is not valid.'
        return self.x_base + self.xpt[k, :]

    def replace_point(self, k, x):
        """
        Replace the `k`-th interpolation point.

        The factorization must be updated by `update` beforehand.

        Parameters
        ----------
        k : int
            Index of the interpolation point.
        x : numpy.ndarray, shape (n,)
            New interpolation point, relative to the base point.
        """
        assert 0 <= k < self.npt, 'The index `k` is not valid.'
        self._xpt[k, :] = x

    def lagrange_gradient(self, k, x):
        """
        Evaluate the gradient of the `k`-th Lagrange polynomial at `x`.

        Parameters
        ----------
        k : int
            Index of the Lagrange polynomial.
        x : numpy.ndarray, shape (n,)
            Point at which the gradient is evaluated, relative to the base
            point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Gradient of the `k`-th Lagrange polynomial at `x`.
        """
        pqw = omega_product(self.zmat, self.idz, k)
        return self.bmat[k, :] + np.dot(self.xpt.T, pqw * np.dot(self.xpt, x))

    def get_alpha(self):
        """
        Get the diagonal elements of the leading submatrix of the inverse KKT
        matrix.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Diagonal elements of ``zmat @ diag(dz) @ zmat.T``.
        """
        zsq = np.square(self.zmat)
        return np.sum(zsq[:, self.idz:], axis=1) - np.sum(zsq[:, :self.idz], axis=1)

    def get_index_to_remove(self, kopt, threshold):
        """
        Get the index of the interpolation point farthest from ``xpt[kopt]``.

        Parameters
        ----------
        kopt : int
            Index of the center of the trust region.
        threshold : float
            The point is returned only if its squared distance to
            ``xpt[kopt]`` exceeds `threshold`.

        Returns
        -------
        {int, None}
            Index of the farthest interpolation point, or None if every point
            is close enough to ``xpt[kopt]``.
        """
        distsq = np.sum(np.square(self.xpt - self.xpt[kopt, np.newaxis, :]), axis=1)
        knew = int(np.argmax(distsq))
        if distsq[knew] > threshold:
            return knew
        return None

    def get_lag_values(self, step, kopt):
        """
        Evaluate the Lagrange polynomials and the scalar ``beta`` of the
        updating formula at ``xpt[kopt] + step``.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Step from the `kopt`-th interpolation point.
        kopt : int
            Index of the center of the trust region.

        Returns
        -------
        numpy.ndarray, shape (npt + n,)
            Values of the Lagrange polynomials at the trial point, followed by
            the last ``n`` components of the corresponding column of the
            inverse KKT matrix.
        float
            Value of ``beta``.
        """
        npt = self.npt
        xopt = self.xpt[kopt, :]
        sp_opt = np.dot(self.xpt, xopt)
        sp_step = np.dot(self.xpt, step)
        w = sp_step * (0.5 * sp_step + sp_opt)

        vlag = np.empty(npt + self.n)
        vlag[:npt] = np.dot(self.bmat[:npt, :], step)
        temp = np.dot(self.zmat.T, w)
        beta = np.sum(np.square(temp[:self.idz])) - np.sum(np.square(temp[self.idz:]))
        temp[:self.idz] = -temp[:self.idz]
        vlag[:npt] += np.dot(self.zmat, temp)

        bw = np.dot(self.bmat[:npt, :].T, w)
        bsum = np.dot(bw, step)
        vlag[npt:] = bw + np.dot(self.bmat[npt:, :], step)
        bsum += np.dot(vlag[npt:], step)
        dx = np.dot(step, xopt)
        ssq = np.dot(step, step)
        beta = dx ** 2.0 + ssq * (sp_opt[kopt] + dx + dx + 0.5 * ssq) + beta - bsum
        vlag[kopt] += 1.0
        return vlag, beta

    def update(self, step, kopt, knew=None):
        """
        Update the factorization of the inverse KKT matrix when the `knew`-th
        interpolation point is replaced by ``xpt[kopt] + step``.

        The interpolation points themselves are not modified.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Step from the `kopt`-th interpolation point.
        kopt : int
            Index of the center of the trust region.
        knew : int, optional
            Index of the interpolation point to be replaced. By default, it is
            chosen to maximize the modulus of the denominator of the updating
            formula, weighted by the distances to ``xpt[kopt]``.

        Returns
        -------
        int
            Index of the interpolation point that has been replaced.

        Raises
        ------
        ZeroDivisionError
            The denominator of the updating formula is zero.
        """
        npt = self.npt
        vlag, beta = self.get_lag_values(step, kopt)

        if knew is None:
            hdiag = self.get_alpha()
            distsq = np.sum(np.square(self.xpt - self.xpt[kopt, np.newaxis, :]), axis=1)
            weights = np.abs(beta * hdiag + np.square(vlag[:npt])) * np.square(distsq)
            knew = int(np.argmax(weights))
            if weights[knew] <= 0.0:
                raise ZeroDivisionError('No interpolation point can be replaced.')

        # Apply Givens rotations to put zeros in the knew-th row of zmat. The
        # columns with a negative sign are rotated into the first one, and the
        # remaining columns into the idz-th one.
        zmat = self._zmat
        jl = 0
        for j in range(1, npt - self.n - 1):
            if j == self.idz:
                jl = self.idz
            elif zmat[knew, j] != 0.0:
                temp = np.hypot(zmat[knew, jl], zmat[knew, j])
                tempa = zmat[knew, jl] / temp
                tempb = zmat[knew, j] / temp
                zmat_jl = np.copy(zmat[:, jl])
                zmat[:, jl] = tempa * zmat_jl + tempb * zmat[:, j]
                zmat[:, j] = tempa * zmat[:, j] - tempb * zmat_jl
                zmat[knew, j] = 0.0

        # Evaluate the knew-th column of the leading submatrix, and calculate
        # the parameters of the updating formula.
        w = np.empty(npt + self.n)
        tempa = -zmat[knew, 0] if self.idz >= 1 else zmat[knew, 0]
        w[:npt] = tempa * zmat[:, 0]
        if jl > 0:
            w[:npt] += zmat[knew, jl] * zmat[:, jl]
        alpha = w[knew]
        tau = vlag[knew]
        denom = alpha * beta + tau ** 2.0
        vlag[knew] -= 1.0
        if denom == 0.0:
            raise ZeroDivisionError('The denominator of the updating formula is zero.')

        # Update zmat and idz.
        sqrtdn = np.sqrt(abs(denom))
        reduce_idz = False
        if jl == 0:
            tempa = tau / sqrtdn
            tempb = zmat[knew, 0] / sqrtdn
            zmat[:, 0] = tempa * zmat[:, 0] - tempb * vlag[:npt]
            if denom < 0.0:
                if self.idz == 0:
                    self._idz = 1
                else:
                    reduce_idz = True
        else:
            ja = jl if beta >= 0.0 else 0
            jb = jl - ja
            temp = zmat[knew, jb] / denom
            tempa = temp * beta
            tempb = temp * tau
            temp = zmat[knew, ja]
            scala = 1.0 / np.sqrt(abs(beta) * temp ** 2.0 + tau ** 2.0)
            scalb = scala * sqrtdn
            zmat[:, ja] = scala * (tau * zmat[:, ja] - temp * vlag[:npt])
            zmat[:, jb] = scalb * (zmat[:, jb] - tempa * w[:npt] - tempb * vlag[:npt])
            if denom <= 0.0:
                if beta < 0.0:
                    self._idz += 1
                else:
                    reduce_idz = True
        if reduce_idz:
            self._idz -= 1
            zmat[:, [0, self.idz]] = zmat[:, [self.idz, 0]]

        # Update bmat. The last n rows of bmat remain exactly symmetric.
        w[npt:] = self._bmat[knew, :]
        tempa = (alpha * vlag[npt:] - tau * w[npt:]) / denom
        tempb = (-beta * w[npt:] - tau * vlag[npt:]) / denom
        self._bmat[:npt, :] += np.outer(vlag[:npt], tempa) + np.outer(w[:npt], tempb)
        bmat_sym = np.triu(self._bmat[npt:, :] + np.outer(vlag[npt:], tempa) + np.outer(w[npt:], tempb))
        self._bmat[npt:, :] = bmat_sym + np.triu(bmat_sym, 1).T
        return knew

    def shift_x_base(self, kopt):
        """
        Move the base point to the `kopt`-th interpolation point.

        The factorization of the inverse KKT matrix is revised accordingly, so
        that it does not need to be recomputed.

        Parameters
        ----------
        kopt : int
            Index of the new base point.
        """
        npt = self.npt
        xopt = np.copy(self.xpt[kopt, :])
        xoptsq = np.dot(xopt, xopt)
        qoptsq = 0.25 * xoptsq
        sp_opt = np.dot(self.xpt, xopt) - 0.5 * xoptsq
        xpt_half = self.xpt - 0.5 * xopt[np.newaxis, :]

        # Make the changes to bmat that do not depend on zmat.
        wv = sp_opt[:, np.newaxis] * xpt_half + qoptsq * xopt[np.newaxis, :]
        update = np.dot(self.bmat[:npt, :].T, wv)
        self._bmat[npt:, :] += update + update.T

        # Then calculate the revisions of bmat that depend on zmat.
        steps = qoptsq * np.outer(xopt, np.sum(self.zmat, axis=0))
        steps += np.dot(xpt_half.T, sp_opt[:, np.newaxis] * self.zmat)
        signed_steps = np.copy(steps)
        signed_steps[:, :self.idz] = -signed_steps[:, :self.idz]
        self._bmat[:npt, :] += np.dot(self.zmat, signed_steps.T)
        bmat_sym = np.tril(self._bmat[npt:, :] + np.dot(signed_steps, steps.T))
        self._bmat[npt:, :] = bmat_sym + np.tril(bmat_sym, -1).T

        self._xpt -= xopt[np.newaxis, :]
        self._xpt[kopt, :] = 0.0
        self._x_base += xopt


class Quadratic:
    """
    Quadratic model.

    This class stores the Hessian matrix of the quadratic model using the
    implicit/explicit representation designed by Powell for NEWUOA [1]_. The
    gradient is stored at the center of the trust region.

    References
    ----------
    .. [1] M. J. D. Powell. The NEWUOA software for unconstrained optimization
       without derivatives. In G. Di Pillo and M. Roma, editors, *Large-Scale
       Nonlinear Optimization*, volume 83 of *Nonconvex Optimization and Its
       Applications*, pages 255--297. Springer, Boston, MA, USA, 2006.
    """

    def __init__(self, interpolation, fval, kopt):
        """
        Build the least Frobenius norm interpolant of the given values.

        Parameters
        ----------
        interpolation : Interpolation
            Interpolation set.
        fval : numpy.ndarray, shape (npt,)
            Values of the interpolated function at the interpolation points.
        kopt : int
            Index of the center of the trust region.
        """
        assert fval.shape == (interpolation.npt,), 'The shape of `fval` is not valid.'
        self._hq = np.zeros((interpolation.n, interpolation.n))
        self._gopt, self._pq = self._mfn(interpolation, fval, kopt)

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self._gopt.size

    @property
    def npt(self):
        """
        Number of interpolation points used to define the quadratic model.

        Returns
        -------
        int
            Number of interpolation points used to define the quadratic model.
        """
        return self._pq.size

    @property
    def gopt(self):
        """
        Gradient of the quadratic model at the center of the trust region.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Gradient of the quadratic model.
        """
        return self._gopt

    @property
    def hq(self):
        """
        Explicit part of the Hessian matrix of the quadratic model.

        Returns
        -------
        numpy.ndarray, shape (n, n)
            Explicit part of the Hessian matrix.
        """
        return self._hq

    @property
    def pq(self):
        """
        Implicit part of the Hessian matrix of the quadratic model.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Implicit part of the Hessian matrix.
        """
        return self._pq

    def hess(self, interpolation):
        """
        Evaluate the Hessian matrix of the quadratic model.

        Parameters
        ----------
        interpolation : Interpolation
            Interpolation set.

        Returns
        -------
        numpy.ndarray, shape (n, n)
            Hessian matrix of the quadratic model.
        """
        return self._hq + np.dot(interpolation.xpt.T, self._pq[:, np.newaxis] * interpolation.xpt)

    def hess_prod(self, v, interpolation):
        """
        Evaluate the right product of the Hessian matrix of the quadratic model
        with a given vector.

        Parameters
        ----------
        v : numpy.ndarray, shape (n,)
            Vector with which the Hessian matrix of the quadratic model is
            multiplied from the right.
        interpolation : Interpolation
            Interpolation set.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Right product of the Hessian matrix of the quadratic model with `v`.
        """
        assert v.shape == (self.n,), 'The shape of `v` is not valid.'
        return np.dot(self._hq, v) + np.dot(interpolation.xpt.T, self._pq * np.dot(interpolation.xpt, v))

    def curv(self, v, interpolation):
        """
        Evaluate the curvature of the quadratic model along a given direction.

        Parameters
        ----------
        v : numpy.ndarray, shape (n,)
            Direction along which the curvature of the quadratic model is
            evaluated.
        interpolation : Interpolation
            Interpolation set.

        Returns
        -------
        float
            Curvature of the quadratic model along `v`.
        """
        assert v.shape == (self.n,), 'The shape of `v` is not valid.'
        return np.dot(v, np.dot(self._hq, v)) + np.dot(self._pq, np.square(np.dot(interpolation.xpt, v)))

    def change(self, step, interpolation):
        """
        Evaluate the change of the quadratic model when a step is made from the
        center of the trust region.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Step from the center of the trust region.
        interpolation : Interpolation
            Interpolation set.

        Returns
        -------
        float
            Change of the quadratic model.
        """
        return np.dot(step, self._gopt) + 0.5 * self.curv(step, interpolation)

    def update(self, interpolation, knew, x_old, diff, xopt):
        """
        Apply the derivative-free symmetric Broyden update.

        The `knew`-th interpolation point and the factorization of the inverse
        KKT matrix must be updated before calling this method.

        Parameters
        ----------
        interpolation : Interpolation
            Updated interpolation set.
        knew : int
            Index of the updated interpolation point.
        x_old : numpy.ndarray, shape (n,)
            Value of ``interpolation.xpt[knew, :]`` before the update.
        diff : float
            Difference between the new function value and its prediction by
            the quadratic model.
        xopt : numpy.ndarray, shape (n,)
            Point at which the gradient is stored, relative to the base point.
        """
        assert 0 <= knew < self.npt, 'The index `knew` is not valid.'
        assert x_old.shape == (self.n,), 'The shape of `x_old` is not valid.'

        # The knew-th element of the implicit Hessian matrix is related to the
        # old knew-th interpolation point. It is forwarded to the explicit part.
        self._hq += self._pq[knew] * np.outer(x_old, x_old)
        self._pq[knew] = 0.0
        self._pq += diff * omega_product(interpolation.zmat, interpolation.idz, knew)
        self._gopt += diff * interpolation.lagrange_gradient(knew, xopt)

    def shift_center(self, step, interpolation):
        """
        Move the point at which the gradient is stored by `step`.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Displacement of the center of the trust region.
        interpolation : Interpolation
            Interpolation set.
        """
        self._gopt += self.hess_prod(step, interpolation)

    def shift_x_base(self, interpolation, kopt):
        """
        Revise the explicit Hessian matrix before the base point is moved to
        the `kopt`-th interpolation point.

        Parameters
        ----------
        interpolation : Interpolation
            Interpolation set, before the base point is moved.
        kopt : int
            Index of the new base point.
        """
        xopt = interpolation.xpt[kopt, :]
        w = np.dot((interpolation.xpt - 0.5 * xopt[np.newaxis, :]).T, self._pq)
        update = np.outer(w, xopt)
        self._hq += update + update.T

    def reset(self, interpolation, fval, kopt):
        """
        Replace the quadratic model by the least Frobenius norm interpolant.

        Parameters
        ----------
        interpolation : Interpolation
            Interpolation set.
        fval : numpy.ndarray, shape (npt,)
            Values of the interpolated function at the interpolation points.
        kopt : int
            Index of the center of the trust region.
        """
        self._hq.fill(0.0)
        self._gopt, self._pq = self._mfn(interpolation, fval, kopt)

    def check_interpolation_conditions(self, interpolation, fval, kopt):
        """
        Check the interpolation conditions of the quadratic model.

        A `RuntimeWarning` is raised if the conditions are not satisfied, up to
        a tolerance depending on the dimensions of the problem.

        Parameters
        ----------
        interpolation : Interpolation
            Interpolation set.
        fval : numpy.ndarray, shape (npt,)
            Values of the interpolated function at the interpolation points.
        kopt : int
            Index of the center of the trust region.
        """
        xpt = interpolation.xpt
        dpt = xpt - xpt[kopt, np.newaxis, :]
        values = np.dot(dpt, self._gopt)
        values += 0.5 * np.einsum('ij,jk,ik->i', dpt, self._hq, dpt)
        values += 0.5 * np.dot(np.square(np.dot(dpt, xpt.T)), self._pq)
        error = np.max(np.abs(values - (fval - fval[kopt])))
        tol = 10.0 * np.sqrt(np.finfo(float).eps) * max(self.n, self.npt)
        if error > tol * np.max(np.abs(fval), initial=1.0):
            warnings.warn('The interpolation conditions for the objective function are not satisfied.', RuntimeWarning)

    @staticmethod
    def _mfn(interpolation, fval, kopt):
        """
        Solve the least Frobenius norm interpolation problem with the
        factorization of the inverse KKT matrix.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Gradient of the interpolant at ``xpt[kopt]``.
        numpy.ndarray, shape (npt,)
            Implicit Hessian matrix of the interpolant.
        """
        npt = interpolation.npt
        xpt = interpolation.xpt
        values = fval - fval[kopt]
        pq = omega_product(interpolation.zmat, interpolation.idz, values)
        gopt = np.dot(interpolation.bmat[:npt, :].T, values)
        gopt += np.dot(xpt.T, pq * np.dot(xpt, xpt[kopt, :]))
        return gopt, pq
