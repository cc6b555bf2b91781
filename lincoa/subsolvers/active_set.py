import numpy as np
from scipy.linalg import solve_triangular

from ..settings import TINY


class ActiveSet:
    """
    Active set of the linear constraints.

    The normals of the active constraints are stored through a QR
    factorization: the ``k``-th active normal is
    ``qfac[:, :k + 1] @ rfac[:k + 1, k]``. The factorization is maintained by
    Givens rotations whenever a constraint enters or leaves the active set, so
    that the columns of `qfac` remain orthonormal.
    """

    def __init__(self, n):
        """
        Initialize an empty active set.

        Parameters
        ----------
        n : int
            Number of variables.
        """
        self.nact = 0
        self.iact = np.zeros(n, dtype=int)
        self.qfac = np.eye(n)
        self.rfac = np.zeros((n, n))
        self.resact = np.zeros(n)
        self.vlam = np.zeros(n)

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self.qfac.shape[0]

    @property
    def indices(self):
        """
        Indices of the active constraints.

        Returns
        -------
        numpy.ndarray, shape (nact,)
            Indices of the active constraints.
        """
        return self.iact[:self.nact]

    def null_space(self):
        """
        Orthonormal basis of the null space of the active normals.

        Returns
        -------
        numpy.ndarray, shape (n, n - nact)
            Last columns of `qfac`.
        """
        return self.qfac[:, self.nact:]

    def add(self, amat, j, resid):
        """
        Add the `j`-th constraint to the active set.

        Parameters
        ----------
        amat : numpy.ndarray, shape (m, n)
            Normals of the linear constraints.
        j : int
            Index of the constraint to add.
        resid : float
            Residual of the constraint to add.
        """
        assert self.nact < self.n, 'The active set is full.'
        nact = self.nact
        rdiag = 0.0
        for k in range(self.n - 1, -1, -1):
            sprod = np.dot(self.qfac[:, k], amat[j, :])
            if k < nact:
                self.rfac[k, nact] = sprod
            elif abs(rdiag) <= 1e-20 * abs(sprod):
                rdiag = sprod
            else:
                temp = np.hypot(sprod, rdiag)
                cosv = sprod / temp
                sinv = rdiag / temp
                rdiag = temp
                qfac_k = np.copy(self.qfac[:, k])
                self.qfac[:, k] = cosv * qfac_k + sinv * self.qfac[:, k + 1]
                self.qfac[:, k + 1] = cosv * self.qfac[:, k + 1] - sinv * qfac_k
        if rdiag < 0.0:
            self.qfac[:, nact] = -self.qfac[:, nact]
        self.rfac[nact, nact] = abs(rdiag)
        self.iact[nact] = j
        self.resact[nact] = resid
        self.vlam[nact] = 0.0
        self.nact += 1

    def remove(self, k):
        """
        Remove the `k`-th active constraint from the active set.

        The constraints that follow are shifted by one position, and the
        factorization is revised by Givens rotations.

        Parameters
        ----------
        k : int
            Position of the constraint in the active set.
        """
        assert 0 <= k < self.nact, 'The index `k` is not valid.'
        rfac = self.rfac
        for jc in range(k, self.nact - 1):
            jcp = jc + 1
            temp = np.hypot(rfac[jc, jcp], rfac[jcp, jcp])
            cval = rfac[jcp, jcp] / temp
            sval = rfac[jc, jcp] / temp
            diag = rfac[jc, jc]
            rfac[jc, jcp] = sval * diag
            rfac[jcp, jcp] = cval * diag
            rfac[jc, jc] = temp
            rfac[jcp, jc] = 0.0
            rfac_jc = np.copy(rfac[jc, jcp + 1:self.nact])
            rfac[jc, jcp + 1:self.nact] = sval * rfac_jc + cval * rfac[jcp, jcp + 1:self.nact]
            rfac[jcp, jcp + 1:self.nact] = cval * rfac_jc - sval * rfac[jcp, jcp + 1:self.nact]
            rfac[:jc, [jc, jcp]] = rfac[:jc, [jcp, jc]]
            qfac_jc = np.copy(self.qfac[:, jc])
            self.qfac[:, jc] = sval * qfac_jc + cval * self.qfac[:, jcp]
            self.qfac[:, jcp] = cval * qfac_jc - sval * self.qfac[:, jcp]
            self.iact[jc] = self.iact[jcp]
            self.resact[jc] = self.resact[jcp]
            self.vlam[jc] = self.vlam[jcp]
        self.nact -= 1
        self.rfac[:, self.nact] = 0.0
        self.rfac[self.nact, :] = 0.0


def getact(amat, active_set, g, snorm, resnew):
    r"""
    Choose the active set and the projected steepest descent direction.

    The active set is chosen so that the step along the returned direction
    does not move closer to the boundaries of the constraints that are nearly
    active, namely those whose residuals are at most ``0.2 * snorm``. The
    direction is the projection of ``-g`` onto the null space of the active
    normals, and is obtained by a dual active-set method in the manner of
    Goldfarb and Idnani [1]_.

    Parameters
    ----------
    amat : numpy.ndarray, shape (m, n)
        Normals of the linear constraints, with unit norms.
    active_set : ActiveSet
        Current active set, modified in place.
    g : numpy.ndarray, shape (n,)
        Gradient of the quadratic model.
    snorm : float
        Scale of the step.
    resnew : numpy.ndarray, shape (m,)
        Residuals of the constraints, modified in place. A zero value marks an
        active constraint, and a negative value marks a constraint that is
        irrelevant to the current step.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Projected steepest descent direction.
    float
        Square of the length of the direction. A zero value indicates that no
        useful descent direction has been found.

    References
    ----------
    .. [1] D. Goldfarb and A. Idnani. A numerically stable dual method for
       solving strictly convex quadratic programs. *Math. Program.*,
       27(1):1--33, 1983.
    """
    n = g.size
    tdel = 0.2 * snorm
    ddsav = 2.0 * np.dot(g, g)
    vlam = active_set.vlam
    vlam.fill(0.0)

    if active_set.nact == 0:
        active_set.qfac = np.eye(n)
    else:
        # Remove the constraints whose residuals exceed the threshold.
        for ic in range(active_set.nact - 1, -1, -1):
            if active_set.resact[ic] > tdel:
                resnew[active_set.iact[ic]] = max(active_set.resact[ic], TINY)
                active_set.remove(ic)

        # Remove the constraints whose Lagrange multipliers are nonnegative.
        # The multipliers are recalculated after each removal.
        ic = active_set.nact - 1
        while ic >= 0:
            temp = np.dot(active_set.qfac[:, ic], g)
            temp -= np.dot(active_set.rfac[ic, ic + 1:active_set.nact], vlam[ic + 1:active_set.nact])
            if temp >= 0.0:
                resnew[active_set.iact[ic]] = max(active_set.resact[ic], TINY)
                active_set.remove(ic)
                ic = active_set.nact - 1
            else:
                vlam[ic] = temp / active_set.rfac[ic, ic]
                ic -= 1

    while active_set.nact < n:
        # Set the new search direction.
        zmat = active_set.null_space()
        dw = -np.dot(zmat, np.dot(zmat.T, g))
        dd = np.dot(dw, dw)
        if dd >= ddsav:
            break
        if dd == 0.0:
            return dw, 0.0
        ddsav = dd
        dnorm = np.sqrt(dd)

        # Pick the next integer l, or terminate. A constraint is relevant if
        # its residual is positive and at most the threshold, and if moving
        # along the direction reduces the residual too quickly.
        l_new = -1
        violmx = 0.0
        test = dnorm / snorm
        for j in range(amat.shape[0]):
            if 0.0 < resnew[j] <= tdel:
                temp = np.dot(amat[j, :], dw)
                if temp > test * resnew[j] and temp > violmx:
                    l_new = j
                    violmx = temp
        ctol = 0.0
        if 0.0 < violmx < 0.01 * dnorm and active_set.nact > 0:
            ctol = np.max(np.abs(np.dot(amat[active_set.indices, :], dw)))
        if l_new < 0 or violmx <= 10.0 * ctol:
            return dw, dd

        # Add the l_new-th constraint to the active set.
        active_set.add(amat, l_new, resnew[l_new])
        resnew[l_new] = 0.0

        while True:
            # Set the components of the vector that gives the change of the
            # multipliers when the violation of the new constraint is reduced.
            nact = active_set.nact
            rhs = np.zeros(nact)
            rhs[-1] = 1.0 / active_set.rfac[nact - 1, nact - 1]
            vmu = solve_triangular(active_set.rfac[:nact, :nact], rhs)

            # Calculate the multiple of vmu to subtract from vlam, and update
            # the multipliers.
            vmult = violmx
            ic = -1
            for j in range(nact - 1):
                if vlam[j] >= vmult * vmu[j]:
                    ic = j
                    vmult = vlam[j] / vmu[j]
            vlam[:nact] -= vmult * vmu
            if ic >= 0:
                vlam[ic] = 0.0
            violmx = max(violmx - vmult, 0.0)
            if ic < 0:
                violmx = 0.0

            # Remove the constraints whose multipliers are nonnegative.
            for ic in range(nact - 1, -1, -1):
                if vlam[ic] >= 0.0:
                    resnew[active_set.iact[ic]] = max(active_set.resact[ic], TINY)
                    active_set.remove(ic)
            if violmx <= 0.0:
                break

    return np.zeros(n), 0.0
