import numpy as np

from ..settings import StepStatus


def geometry_step(xpt, kopt, knew, glag, pqw, amat, rescon, active_set, delta):
    """
    Choose a step that improves the geometry of the interpolation set.

    The step provides a relatively large value of the modulus of the `knew`-th
    Lagrange polynomial at ``xpt[kopt] + step``, subject to
    ``norm(step) <= delta``. A step along the projected gradient of the
    Lagrange polynomial, which does not alter the residuals of the active
    constraints, is preferred if it provides at least one fifth of the
    original modulus. The greatest constraint violation of an infeasible step
    must be at least ``0.2 * delta``, so that the interpolation points remain
    apart.

    Parameters
    ----------
    xpt : numpy.ndarray, shape (npt, n)
        Interpolation points.
    kopt : int
        Index of the center of the trust region.
    knew : int
        Index of the interpolation point to be replaced.
    glag : numpy.ndarray, shape (n,)
        Gradient of the `knew`-th Lagrange polynomial at the origin.
    pqw : numpy.ndarray, shape (npt,)
        Implicit Hessian matrix of the `knew`-th Lagrange polynomial.
    amat : numpy.ndarray, shape (m, n)
        Normals of the linear constraints, with unit norms.
    rescon : numpy.ndarray, shape (m,)
        Residuals of the linear constraints at the center of the trust region.
    active_set : ActiveSet
        Active set.
    delta : float
        Bound on the length of the step.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Step from the center of the trust region.
    StepStatus
        Feasibility of ``xpt[kopt] + step``.
    """
    n = xpt.shape[1]
    nact = active_set.nact
    test = 0.2 * delta
    xopt = xpt[kopt, :]

    # Evaluate the gradient of the Lagrange polynomial at the center of the
    # trust region. The constraints whose residuals exceed the bound on the
    # step are irrelevant.
    glag = glag + np.dot(xpt.T, pqw * np.dot(xpt, xopt))
    rstat = np.ones(amat.shape[0])
    rstat[np.abs(rescon) >= delta] = -1.0
    rstat[active_set.indices] = 0.0

    # Find the greatest modulus of the Lagrange polynomial on a line through
    # the center of the trust region and another interpolation point.
    ksav = -1
    stpsav = 0.0
    vbig = 0.0
    for k in range(xpt.shape[0]):
        if k == kopt:
            continue
        dist = xpt[k, :] - xopt
        sp = np.dot(glag, dist)
        stp = -delta / np.linalg.norm(dist)
        if k == knew:
            if sp * (sp - 1.0) < 0.0:
                stp = -stp
            vlag = abs(stp * sp) + stp ** 2.0 * abs(sp - 1.0)
        else:
            vlag = abs(stp * (1.0 - stp) * sp)
        if vlag > vbig:
            ksav = k
            stpsav = stp
            vbig = vlag
    if ksav >= 0:
        step = stpsav * (xpt[ksav, :] - xopt)
    else:
        step = np.zeros(n)

    # Replace the step by a steepest ascent step if it provides a larger
    # modulus of the Lagrange polynomial.
    gg = np.dot(glag, glag)
    vgrad = delta * np.sqrt(gg)
    if vgrad > 0.1 * vbig:
        ghg = np.dot(pqw, np.square(np.dot(xpt, glag)))
        vnew = vgrad + abs(0.5 * delta ** 2.0 * ghg / gg)
        if vnew > vbig:
            vbig = vnew
            stp = delta / np.sqrt(gg)
            if ghg < 0.0:
                stp = -stp
            step = stp * glag

        if 0 < nact < n:
            zmat = active_set.null_space()
            glag = np.dot(zmat, np.dot(zmat.T, glag))
            gg = np.dot(glag, glag)
            vgrad = delta * np.sqrt(gg)
            if vgrad > 0.1 * vbig:
                ghg = np.dot(pqw, np.square(np.dot(xpt, glag)))
                vnew = vgrad + abs(0.5 * delta ** 2.0 * ghg / gg)
                stp = delta / np.sqrt(gg)
                if ghg < 0.0:
                    stp = -stp
                w = stp * glag

                # Accept the projected step if it either preserves feasibility
                # or violates a constraint by at least the threshold. The
                # tolerance ctol accounts for computer rounding errors.
                if vnew / vbig >= 0.2:
                    status = StepStatus.FEASIBLE
                    bigv = 0.0
                    for j in range(amat.shape[0]):
                        if rstat[j] == 1.0:
                            bigv = max(bigv, np.dot(w, amat[j, :]) - rescon[j])
                        if bigv >= test:
                            status = StepStatus.INFEASIBLE
                            break
                    ctol = 0.0
                    if 0.0 < bigv < 0.01 * np.linalg.norm(w) and nact > 0:
                        ctol = np.max(np.abs(np.dot(amat[active_set.indices, :], w)))
                    if bigv <= 10.0 * ctol or bigv >= test:
                        return w, status

    # Calculate the greatest constraint violation at the trial point, and
    # modify the step if this violation is too small.
    status = StepStatus.FEASIBLE
    jsav = -1
    bigv = 0.0
    for j in range(amat.shape[0]):
        if rstat[j] < 0.0:
            continue
        temp = np.dot(step, amat[j, :]) - rescon[j]
        if temp >= test:
            status = StepStatus.INFEASIBLE
            break
        if temp > bigv:
            bigv = temp
            jsav = j
            status = StepStatus.CLAMPED
    if status == StepStatus.CLAMPED:
        step = step + (test - bigv) * amat[jsav, :]
    return step, status
