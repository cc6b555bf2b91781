import numpy as np


def get_arrays_tol(*arrays):
    """
    Get a relative tolerance for a set of arrays.

    Parameters
    ----------
    *arrays: tuple
        Set of `arrays` to get the tolerance for.

    Returns
    -------
    float
        Relative tolerance for the set of arrays.
    """
    if len(arrays) == 0:
        raise ValueError('At least one array must be provided.')
    size = max(array.size for array in arrays)
    weight = max(np.max(np.abs(array[np.isfinite(array)]), initial=1.0) for array in arrays)
    return 10.0 * np.sqrt(np.finfo(float).eps) * max(size, 1.0) * weight


def omega_product(zmat, idz, x):
    """
    Compute the product of the leading ``npt``-by-``npt`` submatrix of the
    inverse KKT matrix of interpolation with a vector.

    This submatrix is ``zmat @ np.diag(dz) @ zmat.T``, where the first `idz`
    components of ``dz`` are -1 and the others are 1.

    Parameters
    ----------
    zmat : numpy.ndarray, shape (npt, npt - n - 1)
        Factor of the leading submatrix.
    idz : int
        Number of columns of `zmat` with a negative sign.
    x : {int, numpy.ndarray, shape (npt,)}
        Vector to multiply. An integer value represents the ``npt``-dimensional
        vector whose components are all zero, except the `x`-th one whose value
        is one.

    Returns
    -------
    numpy.ndarray, shape (npt,)
        Product of the submatrix with `x`.
    """
    if isinstance(x, (int, np.integer)):
        temp = np.r_[-zmat[x, :idz], zmat[x, idz:]]
    else:
        temp = np.dot(zmat.T, x)
        temp[:idz] = -temp[:idz]
    return np.dot(zmat, temp)
