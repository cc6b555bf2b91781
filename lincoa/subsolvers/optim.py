import numpy as np
from scipy.linalg import solve_triangular

from .active_set import getact
from ..settings import TINY


def constrained_cg_step(gopt, hess_prod, amat, rescon, active_set, delta):
    r"""
    Minimize approximately a quadratic function subject to a trust-region
    constraint and linear inequality constraints, using a truncated conjugate
    gradient method.

    The problem solved is

    .. math::

        \min_{s \in \mathbb{R}^n} \quad g^{\mathsf{T}} s + \frac{1}{2} s^{\mathsf{T}} H s \quad \text{s.t.} \quad A s \le r, \quad \lVert s \rVert \le \Delta,

    where :math:`r` holds the residuals of the constraints at the center of
    the trust region. The active set is revised by `getact` at the start, and
    whenever a new constraint becomes active while the step is still well
    inside the trust region.

    Parameters
    ----------
    gopt : numpy.ndarray, shape (n,)
        Gradient of the quadratic function at the center of the trust region.
    hess_prod : callable
        Product of the Hessian matrix of the quadratic function with a vector.

            ``hess_prod(v) -> numpy.ndarray, shape (n,)``

    amat : numpy.ndarray, shape (m, n)
        Normals of the linear constraints, with unit norms.
    rescon : numpy.ndarray, shape (m,)
        Residuals of the linear constraints at the center of the trust region.
        A negative value ``-r`` indicates that the residual is at least
        ``r >= delta``, so that the constraint can be ignored.
    active_set : ActiveSet
        Active set, modified in place.
    delta : float
        Trust-region radius.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Step from the center of the trust region.
    float
        Length of the step, or zero if the constraints do not allow a long
        enough step.
    bool
        Whether the active set has been revised during the calculations.
    """
    n = gopt.size
    snsq = delta ** 2.0
    ctest = 0.01

    # Set the initial residuals. A negative value indicates that the
    # constraint does not restrict the step, and a zero value indicates that
    # the constraint is active.
    resnew = np.copy(rescon)
    resnew[rescon >= delta] = -1.0
    near = (rescon >= 0.0) & (rescon < delta)
    resnew[near] = np.maximum(resnew[near], TINY)
    active = active_set.indices
    active_set.resact[:active_set.nact] = rescon[active]
    resnew[active] = 0.0

    step = np.zeros(n)
    g = np.copy(gopt)
    ss = 0.0
    reduct = 0.0
    ncall = 0
    while True:
        ncall += 1
        dw, dd = getact(amat, active_set, g, delta, resnew)
        if dd == 0.0:
            break
        dw *= 0.2 * delta / np.sqrt(dd)
        nact = active_set.nact

        # If the residual of an active constraint is substantial, the step is
        # moved towards the boundaries of the active constraints.
        resmax = np.max(active_set.resact[:nact], initial=0.0)
        gamma = 0.0
        if resmax > 1e-4 * delta:
            w = solve_triangular(active_set.rfac[:nact, :nact], active_set.resact[:nact], trans='T')
            d = np.dot(active_set.qfac[:, :nact], w)
            rhs = snsq - np.inner(step + dw, step + dw)
            ds = np.dot(d, step + dw)
            dd = np.dot(d, d)
            if rhs > 0.0:
                temp = np.sqrt(ds ** 2.0 + dd * rhs)
                if ds <= 0.0:
                    gamma = (temp - ds) / dd
                else:
                    gamma = rhs / (temp + ds)
            for j in np.flatnonzero(resnew > 0.0):
                if gamma <= 0.0:
                    break
                ad = np.dot(amat[j, :], d)
                if ad > 0.0:
                    gamma = min(gamma, max((resnew[j] - np.dot(amat[j, :], dw)) / ad, 0.0))
            gamma = min(gamma, 1.0)
        if gamma <= 0.0:
            d = dw
            icount = nact
        else:
            d = dw + gamma * d
            icount = nact - 1
        alpbd = 1.0

        restart = False
        while True:
            icount += 1
            rhs = snsq - ss
            if rhs <= 0.0:
                break
            dg = np.dot(d, g)
            ds = np.dot(d, step)
            dd = np.dot(d, d)
            if dg >= 0.0:
                break
            temp = np.sqrt(rhs * dd + ds ** 2.0)
            if ds <= 0.0:
                alpha = (temp - ds) / dd
            else:
                alpha = rhs / (temp + ds)
            if -alpha * dg <= ctest * reduct:
                break

            # Reduce the steplength to the minimizer of the quadratic function
            # along the direction if necessary.
            dw = hess_prod(d)
            dgd = np.dot(d, dw)
            alpht = alpha
            if dg + alpha * dgd > 0.0:
                alpha = -dg / dgd
            alphm = alpha

            # Make a further reduction to preserve feasibility.
            jsav = -1
            ad = np.zeros(amat.shape[0])
            for j in np.flatnonzero(resnew > 0.0):
                ad[j] = np.dot(amat[j, :], d)
                if alpha * ad[j] > resnew[j]:
                    alpha = resnew[j] / ad[j]
                    jsav = j
            alpha = max(alpha, alpbd)
            alpha = min(alpha, alphm)
            if icount == nact:
                alpha = min(alpha, 1.0)

            # Update the step, the gradient, and the residuals.
            step += alpha * d
            ss = np.dot(step, step)
            g += alpha * dw
            positive = resnew > 0.0
            resnew[positive] = np.maximum(resnew[positive] - alpha * ad[positive], TINY)
            if icount == nact and nact > 0:
                active_set.resact[:nact] *= 1.0 - gamma
            reduct -= alpha * (dg + 0.5 * alpha * dgd)

            # Test for termination. The active set is revised if a new
            # constraint is hit well inside the trust region.
            if alpha == alpht:
                break
            if -alphm * (dg + 0.5 * alphm * dgd) <= ctest * reduct:
                break
            if jsav >= 0:
                restart = ss <= 0.64 * snsq
                break
            if icount == n:
                break

            # Calculate the next search direction, which is conjugate to the
            # previous one, except in the case icount == nact.
            if nact > 0:
                zmat = active_set.null_space()
                w = np.dot(zmat, np.dot(zmat.T, g))
            else:
                w = np.copy(g)
            beta = 0.0 if icount == nact else np.dot(w, dw) / dgd
            d = -w + beta * d
            alpbd = 0.0
        if not restart:
            break

    snorm = np.sqrt(ss) if reduct > 0.0 else 0.0
    return step, snorm, ncall > 1
