class MaxEvalError(Exception):
    """
    Exception raised when the maximum number of evaluations is reached.
    """
    pass


class RoundingError(Exception):
    """
    Exception raised when rounding errors prevent reasonable changes to the
    variables.
    """
    pass
