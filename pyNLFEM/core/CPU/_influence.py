import numpy as np
from numba import njit

CONSTANT = 0
POLYNOMIAL = 1
NORMAL = 2


@njit(cache=True)
def influence_value(kind, params, x, y):
    """
    Influence between points x and y.

    params = [norm, r_0, ..., r_{dim-1}, extra...]; the horizon is the
    ellipsoid with semi-axes r.
    """
    dim = x.shape[0]
    h2 = 0.0
    for a in range(dim):
        z = (x[a] - y[a]) / params[1 + a]
        h2 += z * z
    if h2 > 1.0:
        return 0.0
    if kind == CONSTANT:
        return params[0]
    elif kind == POLYNOMIAL:
        return params[0] * (1.0 - h2 ** (0.5 * params[1 + dim])) ** params[2 + dim]
    else:
        k = params[1 + dim]
        return params[0] * np.exp(-0.5 * k * k * h2)
