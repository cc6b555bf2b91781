from .exceptions import MaxEvalError, RoundingError
from .math import get_arrays_tol, omega_product
from ._show_versions import show_versions

__all__ = ['MaxEvalError', 'RoundingError', 'get_arrays_tol', 'omega_product', 'show_versions']
