import logging
import warnings

import numpy as np
from scipy.optimize import OptimizeResult

from .framework import TrustRegion
from .problem import ObjectiveFunction, LinearConstraints
from .settings import ExitStatus, Options, StepStatus, DEFAULT_OPTIONS, PRINT_OPTIONS
from .utils import MaxEvalError, RoundingError

_log = logging.getLogger(__name__)


def minimize(fun, x0, args=(), aub=None, bub=None, options=None):
    r"""
    Minimize a scalar function subject to linear inequality constraints using
    the LINCOA method.

    The LINCOA method is a derivative-free trust-region method designed by
    Powell [1]_. At each iteration, the objective function is approximated by
    a quadratic model that interpolates it at ``npt`` points. The model is
    updated by the derivative-free symmetric Broyden formula [2]_, and the
    trust-region subproblems are solved by a truncated conjugate gradient
    method with an active set of the linear constraints.

    Parameters
    ----------
    fun : callable
        Objective function to be minimized.

            ``fun(x, *args) -> float``

        where ``x`` is an array with shape (n,) and `args` is a tuple.
    x0 : array_like, shape (n,)
        Initial guess. It is not modified.
    args : tuple, optional
        Extra arguments passed to the objective function.
    aub : array_like, shape (m, n), optional
        Left-hand side matrix of the linear inequality constraints
        ``aub @ x <= bub``.
    bub : array_like, shape (m,), optional
        Right-hand side vector of the linear inequality constraints
        ``aub @ x <= bub``.
    options : dict, optional
        Options passed to the solver. Accepted keys are:

            disp : int, optional
                Verbosity level. No output is printed if it is 0, the final
                result is printed if it is 1, each new trust-region radius
                lower bound is also printed if it is 2, and each function
                evaluation is also printed if it is 3.
            maxfev : int, optional
                Maximum number of function evaluations.
            rhobeg : float, optional
                Initial trust-region radius.
            rhoend : float, optional
                Final trust-region radius.
            npt : int, optional
                Number of interpolation points.
            store_history : bool, optional
                Whether to store the history of the function evaluations.
            debug : bool, optional
                Whether to perform additional checks. This option should be
                used only for debugging purposes and is highly discouraged.

    Returns
    -------
    `scipy.optimize.OptimizeResult`
        Result of the optimization procedure, with the following fields:

            message : str
                Description of the cause of the termination.
            success : bool
                Whether the optimization procedure terminated successfully.
            status : int
                Termination status of the optimization procedure.
            x : `numpy.ndarray`, shape (n,)
                Solution point.
            fun : float
                Objective function value at the solution point.
            maxcv : float
                Maximum constraint violation at the solution point.
            nit : int
                Number of iterations.
            nfev : int
                Number of function evaluations.

        If the ``store_history`` option is True, the result also has the
        following fields:

            fun_history : `numpy.ndarray`, shape (nfev,)
                History of the objective function values.
            x_history : `numpy.ndarray`, shape (nfev, n)
                History of the evaluated points.

        A description of the termination statuses is given below.

        .. list-table::
            :widths: 25 75
            :header-rows: 1

            * - Exit status
              - Description
            * - 0
              - The lower bound for the trust-region radius has been reached.
            * - 1
              - The maximum number of function evaluations has been exceeded.
            * - 2
              - Rounding errors prevent reasonable changes to x.
            * - -1
              - The denominator of the updating formula is zero.
            * - -2
              - The number of variables is less than two.
            * - -3
              - The number of interpolation points is not valid.
            * - -4
              - The maximum number of function evaluations does not exceed
                the number of interpolation points.
            * - -5
              - A linear constraint has a zero gradient.

    References
    ----------
    .. [1] M. J. D. Powell. On fast trust region methods for quadratic models
       with linear constraints. *Math. Program. Comput.*, 7(3):237--267, 2015.
    .. [2] M. J. D. Powell. Least Frobenius norm updating of quadratic models
       that satisfy interpolation conditions. *Math. Program.*, 100(1):183--215,
       2004.

    Examples
    --------
    .. testsetup::

        import numpy as np
        np.set_printoptions(precision=3, suppress=True)

    >>> import numpy as np
    >>> from lincoa import minimize

    We solve Example 16.4 of Nocedal and Wright, defined as

    .. math::

        \begin{aligned}
            \min_{x \in \mathbb{R}^2}   & \quad (x_1 - 1)^2 + (x_2 - 2.5)^2\\
            \text{s.t.}                 & \quad -x_1 + 2x_2 \le 2,\\
                                        & \quad x_1 + 2x_2 \le 6,\\
                                        & \quad x_1 - 2x_2 \le 2,\\
                                        & \quad x_1 \ge 0,\\
                                        & \quad x_2 \ge 0.
        \end{aligned}

    Its objective function can be implemented as:

    >>> def fun(x):
    ...     return (x[0] - 1.0) ** 2.0 + (x[1] - 2.5) ** 2.0

    This problem can be solved using `minimize` as:

    >>> x0 = [2.0, 0.0]
    >>> aub = [[-1.0, 2.0], [1.0, 2.0], [1.0, -2.0], [-1.0, 0.0], [0.0, -1.0]]
    >>> bub = [2.0, 6.0, 2.0, 0.0, 0.0]
    >>> res = minimize(fun, x0, aub=aub, bub=bub)
    >>> res.x
    array([1.4, 1.7])
    """
    # Get basic options that are needed for the initialization.
    if options is None:
        options = {}
    else:
        options = dict(options)

    # Build the initial guess and the linear constraints.
    x0 = np.array(x0, dtype=float)
    if x0.ndim != 1:
        x0 = x0.flatten()
    n = x0.size
    if aub is None:
        aub = np.empty((0, n))
    if bub is None:
        bub = np.empty(0)
    aub = np.array(aub, dtype=float)
    bub = np.array(bub, dtype=float).flatten()
    if aub.size == 0:
        aub = np.reshape(aub, (0, n))
    if aub.ndim != 2 or aub.shape != (bub.size, n):
        raise ValueError(f'The shape of aub must be ({bub.size}, {n}).')
    _set_default_options(options, n)

    # Initialize the objective function and the constraints.
    if not isinstance(args, tuple):
        args = (args,)
    verbose = options[Options.VERBOSE]
    obj = ObjectiveFunction(fun, verbose >= 3, options[Options.STORE_HISTORY], options[Options.DEBUG], *args)
    constraints = LinearConstraints(aub, bub)

    # Skip the computations if the problem is not valid.
    status = _check_inputs(constraints, n, options)
    if status is not None:
        return _build_result(obj, constraints, x0, np.nan, status, 0, options)

    # Initialize the trust-region framework.
    rhoend = options[Options.RHOEND]
    amat, b = constraints.normalize(x0, rhoend)
    try:
        framework = TrustRegion(obj, x0, amat, b, options)
    except ZeroDivisionError:
        return _build_result(obj, constraints, x0, np.nan, ExitStatus.DENOMINATOR_ERROR, 0, options)
    if options[Options.DEBUG]:
        framework.check_models()

    # Start the optimization procedure.
    _log.debug("Start the main loop")
    x_best = None
    fun_best = None
    n_iter = 0
    n_alt_models = 3
    n_short_steps = 0
    n_very_short_steps = 0
    k_new = None
    ratio = 0.0
    while True:
        n_iter += 1
        fun_save = framework.fun_best

        # Update the point around which the quadratic model is built.
        if framework.needs_shift():
            framework.shift_x_base()

        # Evaluate a trust-region step, or a geometry-improving step if an
        # interpolation point has been selected for replacement.
        radius_save = framework.delta
        improve_geometry = k_new is not None
        feasible = True
        final_step = False
        check_geometry = False
        reduce_resolution = False
        if not improve_geometry:
            step, s_norm, revised = framework.get_trust_region_step()

            # If the trial step is too short, the objective function is not
            # evaluated. The resolution is reduced only if several short steps
            # have been computed.
            if s_norm <= (0.1999 if revised else 0.5) * framework.delta:
                framework.delta = 0.5 * framework.delta
                n_short_steps += 1
                n_very_short_steps += 1
                ratio_short = 1.0 if radius_save > framework.rho else s_norm / framework.rho
                if ratio_short >= 0.5:
                    n_short_steps = 0
                if ratio_short >= 0.1:
                    n_very_short_steps = 0
                if radius_save > framework.rho or (n_short_steps < 5 and n_very_short_steps < 3):
                    check_geometry = True
                else:
                    final_step = s_norm > 0.0
                    reduce_resolution = True
            else:
                n_short_steps = 0
                n_very_short_steps = 0
        else:
            step, step_status = framework.get_geometry_step(k_new)
            feasible = step_status == StepStatus.FEASIBLE

        if not check_geometry and not reduce_resolution:
            model_change = framework.model.change(step, framework.interpolation)
            if not improve_geometry and model_change >= 0.0:
                check_geometry = True

        if not check_geometry and not reduce_resolution:
            # Evaluate the objective function.
            try:
                fun_val = _eval(obj, framework, step, False, options)
            except MaxEvalError:
                status = ExitStatus.MAX_EVAL_WARNING
                break
            except RoundingError:
                status = ExitStatus.ROUNDING_WARNING
                break
            _log.debug(f"Trial point: {framework.interpolation.x_base + framework.xopt + step}")
            diff = fun_val - framework.fun_best - model_change

            # Evaluate the error of the alternative model.
            diff_alt = None
            if feasible and n_alt_models < 3:
                diff_alt = framework.get_alternative_diff(step, fun_val)
            if n_alt_models == 3:
                diff_alt = diff
                n_alt_models = 0

            # Update the trust-region radius.
            if not improve_geometry:
                ratio = (fun_val - framework.fun_best) / model_change
                framework.update_radius(step, ratio)

            # Update the interpolation set.
            try:
                k_new, x_old = framework.update_interpolation(step, k_new)
            except ZeroDivisionError:
                status = ExitStatus.DENOMINATOR_ERROR
                break

            # Update the quadratic model. It is replaced by the alternative
            # model if the latter has been more accurate for three consecutive
            # feasible trial points.
            if feasible:
                n_alt_models += 1
                if abs(diff_alt) >= 0.1 * abs(diff):
                    n_alt_models = 0
            if n_alt_models < 3:
                framework.update_model(k_new, x_old, diff)
            framework.set_fun_val(k_new, fun_val)
            if fun_val < framework.fun_best and feasible:
                framework.set_best_index(k_new, step, n_alt_models < 3)
            if n_alt_models == 3:
                framework.reset_model()
            if options[Options.DEBUG]:
                framework.check_models()
            k_new = None

            if improve_geometry or ratio >= 0.1:
                continue
            check_geometry = True

        # Check whether an interpolation point should be replaced to improve
        # the geometry of the interpolation set.
        if check_geometry:
            k_new = framework.get_index_to_remove()
            if k_new is not None or framework.fun_best < fun_save or radius_save > framework.rho:
                continue
            reduce_resolution = True

        # Reduce the resolution, or terminate the optimization procedure.
        if framework.rho > rhoend:
            framework.reduce_resolution(rhoend)
            n_short_steps = 0
            n_very_short_steps = 0
            if verbose >= 2:
                _print_step(f'New trust-region radius: {framework.rho}', obj, framework.x_best, framework.fun_best, obj.n_eval)
            continue
        status = ExitStatus.RADIUS_SUCCESS
        if final_step:
            # Evaluate the objective function at the last short step.
            try:
                fun_val = _eval(obj, framework, step, True, options)
            except MaxEvalError:
                status = ExitStatus.MAX_EVAL_WARNING
                break
            if fun_val < framework.fun_best:
                x_best = framework.interpolation.x_base + (framework.xopt + step)
                fun_best = fun_val
        break

    if x_best is None:
        x_best = framework.x_best
        fun_best = framework.fun_best
    return _build_result(obj, constraints, x_best, fun_best, status, n_iter, options)


def _check_inputs(constraints, n, options):
    """
    Check whether the problem can be solved.
    """
    if n < 2:
        return ExitStatus.DIMENSION_ERROR
    if not n + 2 <= options[Options.NPT] <= ((n + 1) * (n + 2)) // 2:
        return ExitStatus.NPT_ERROR
    if options[Options.MAX_EVAL] <= options[Options.NPT]:
        return ExitStatus.BUDGET_ERROR
    if constraints.has_zero_gradient:
        return ExitStatus.ZERO_GRADIENT_ERROR
    return None


def _set_default_options(options, n):
    """
    Set the default options.
    """
    if Options.RHOBEG in options and options[Options.RHOBEG] <= 0.0:
        raise ValueError('The initial trust-region radius must be positive.')
    if Options.RHOEND in options and options[Options.RHOEND] <= 0.0:
        raise ValueError('The final trust-region radius must be positive.')
    if Options.RHOBEG in options and Options.RHOEND in options:
        if options[Options.RHOBEG] < options[Options.RHOEND]:
            raise ValueError('The initial trust-region radius must be greater than or equal to the final trust-region radius.')
    elif Options.RHOBEG in options:
        options[Options.RHOEND.value] = min(DEFAULT_OPTIONS[Options.RHOEND], options[Options.RHOBEG])
    elif Options.RHOEND in options:
        options[Options.RHOBEG.value] = max(DEFAULT_OPTIONS[Options.RHOBEG], options[Options.RHOEND])
    else:
        options[Options.RHOBEG.value] = DEFAULT_OPTIONS[Options.RHOBEG]
        options[Options.RHOEND.value] = DEFAULT_OPTIONS[Options.RHOEND]
    options[Options.RHOBEG.value] = float(options[Options.RHOBEG])
    options[Options.RHOEND.value] = float(options[Options.RHOEND])
    options.setdefault(Options.NPT.value, DEFAULT_OPTIONS[Options.NPT](n))
    options[Options.NPT.value] = int(options[Options.NPT])
    options.setdefault(Options.MAX_EVAL.value, max(DEFAULT_OPTIONS[Options.MAX_EVAL](n), options[Options.NPT] + 1))
    options[Options.MAX_EVAL.value] = int(options[Options.MAX_EVAL])
    options.setdefault(Options.VERBOSE.value, DEFAULT_OPTIONS[Options.VERBOSE])
    options[Options.VERBOSE.value] = int(options[Options.VERBOSE])
    options.setdefault(Options.STORE_HISTORY.value, DEFAULT_OPTIONS[Options.STORE_HISTORY])
    options[Options.STORE_HISTORY.value] = bool(options[Options.STORE_HISTORY])
    options.setdefault(Options.DEBUG.value, DEFAULT_OPTIONS[Options.DEBUG])
    options[Options.DEBUG.value] = bool(options[Options.DEBUG])

    # Check whether they are any unknown options.
    for key in options:
        if key not in Options.__members__.values():
            warnings.warn(f'Unknown option: {key}.', RuntimeWarning, 3)


def _eval(obj, framework, step, final, options):
    """
    Evaluate the objective function at the trial point.
    """
    if obj.n_eval >= options[Options.MAX_EVAL]:
        raise MaxEvalError
    x_eval = framework.interpolation.x_base + (framework.xopt + step)
    if not final:
        x_diff = np.linalg.norm(x_eval - framework.x_best)
        if x_diff <= 0.1 * framework.rho or x_diff >= 2.0 * framework.delta:
            raise RoundingError
    return obj(x_eval)


def _build_result(obj, constraints, x, fun, status, n_iter, options):
    """
    Build the result of the optimization process.
    """
    result = OptimizeResult()
    result.message = {
        ExitStatus.RADIUS_SUCCESS: 'The lower bound for the trust-region radius has been reached',
        ExitStatus.MAX_EVAL_WARNING: 'The maximum number of function evaluations has been exceeded',
        ExitStatus.ROUNDING_WARNING: 'Rounding errors prevent reasonable changes to x',
        ExitStatus.DENOMINATOR_ERROR: 'The denominator of the updating formula is zero',
        ExitStatus.DIMENSION_ERROR: 'The number of variables must be at least 2',
        ExitStatus.NPT_ERROR: f'The number of interpolation points must be between {x.size + 2} and {((x.size + 1) * (x.size + 2)) // 2}',
        ExitStatus.BUDGET_ERROR: 'The maximum number of function evaluations must exceed the number of interpolation points',
        ExitStatus.ZERO_GRADIENT_ERROR: 'A linear constraint has a zero gradient',
    }.get(status, 'Unknown exit status')
    result.success = status == ExitStatus.RADIUS_SUCCESS
    result.status = status.value
    result.x = np.copy(x)
    result.fun = fun
    result.maxcv = constraints.maxcv(x)
    result.nfev = obj.n_eval
    result.nit = n_iter
    if options[Options.STORE_HISTORY]:
        result.fun_history = obj.fun_history
        result.x_history = obj.x_history
    _log.info(f"{result.message} after {result.nfev} function evaluations")

    # Print the result if requested.
    if options[Options.VERBOSE] >= 1:
        _print_step(result.message, obj, result.x, result.fun, result.nfev)
    return result


def _print_step(message, obj, x, fun_val, n_eval):
    """
    Print information about the current state of the optimization process.
    """
    print()
    print(f'{message}.')
    print(f'Number of function evaluations: {n_eval}.')
    print(f'Least value of {obj.name}: {fun_val}.')
    with np.printoptions(**PRINT_OPTIONS):
        print(f'Corresponding point: {x}.')
