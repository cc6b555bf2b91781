import sys
from enum import Enum

import numpy as np


# Exit status.
class ExitStatus(Enum):
    """
    Exit statuses.
    """
    RADIUS_SUCCESS = 0
    MAX_EVAL_WARNING = 1
    ROUNDING_WARNING = 2
    DENOMINATOR_ERROR = -1
    DIMENSION_ERROR = -2
    NPT_ERROR = -3
    BUDGET_ERROR = -4
    ZERO_GRADIENT_ERROR = -5


class Options(str, Enum):
    """
    Option names.
    """
    DEBUG = 'debug'
    MAX_EVAL = 'maxfev'
    NPT = 'npt'
    RHOBEG = 'rhobeg'
    RHOEND = 'rhoend'
    STORE_HISTORY = 'store_history'
    VERBOSE = 'disp'


class StepStatus(Enum):
    """
    Feasibility of a geometry step.
    """
    FEASIBLE = 1
    INFEASIBLE = 0
    CLAMPED = -1


# Default options.
DEFAULT_OPTIONS = {
    Options.DEBUG.value: False,
    Options.MAX_EVAL.value: lambda n: 500 * n,
    Options.NPT.value: lambda n: 2 * n + 1,
    Options.RHOBEG.value: 1.0,
    Options.RHOEND.value: 1e-6,
    Options.STORE_HISTORY.value: False,
    Options.VERBOSE.value: 0,
}


# Printing options.
PRINT_OPTIONS = {
    'threshold': 6,
    'edgeitems': 2,
    'linewidth': sys.maxsize,
    'formatter': {'float_kind': lambda x: np.format_float_scientific(x, precision=3, unique=False, pad_left=2)}
}


# Constants.
TINY = 1e-60
