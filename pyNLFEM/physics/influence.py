import numpy as np
from scipy.special import beta, erf
from ..core.CPU._influence import CONSTANT, POLYNOMIAL, NORMAL

_SPHERE_AREA = {1: 2.0, 2: 2.0 * np.pi}


class InfluenceFunction:
    """
    Base class for nonlocal influence kernels.

    An influence kernel is a symmetric weight of two points that vanishes
    outside the horizon (an ellipse with semi-axes ``radius``) and integrates
    to one over it. Instances are numpy callables; the numba assembly kernels
    evaluate the same function from the ``(kind, params)`` pair.

    Parameters
    ----------
    radius : float or sequence of float
        Horizon radius, or one radius per axis

    Methods
    -------
    params(dim)
        Flat parameter array consumed by the numba kernels
    __call__(x, y)
        Influence between points x and y, broadcasting over leading axes
    """
    kind = None

    def __init__(self, radius):
        self.radius = np.atleast_1d(np.asarray(radius, dtype=np.float64))
        if np.any(self.radius <= 0):
            raise ValueError(f"Influence radius must be positive, got {radius}")

    def radii(self, dim):
        if self.radius.shape[0] not in (1, dim):
            raise ValueError(f"Influence radius has {self.radius.shape[0]} components for a {dim}D mesh")
        return np.broadcast_to(self.radius, (dim,)).copy()

    @property
    def max_radius(self):
        return float(self.radius.max())

    def _unit_integral(self, dim):
        raise NotImplementedError("_unit_integral method must be implemented in subclasses.")

    def _extra(self):
        return []

    def normalization(self, dim):
        return 1.0 / (self._unit_integral(dim) * np.prod(self.radii(dim)))

    def params(self, dim):
        return np.array([self.normalization(dim), *self.radii(dim), *self._extra()], dtype=np.float64)

    def _profile(self, h2):
        raise NotImplementedError("_profile method must be implemented in subclasses.")

    def __call__(self, x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        dim = x.shape[-1]
        h2 = (((x - y) / self.radii(dim))**2).sum(axis=-1)
        inside = h2 <= 1.0
        return np.where(inside, self.normalization(dim) * self._profile(np.minimum(h2, 1.0)), 0.0)


class ConstantInfluence(InfluenceFunction):
    """Uniform weight over the horizon."""
    kind = CONSTANT

    def _unit_integral(self, dim):
        return _SPHERE_AREA[dim] / dim

    def _profile(self, h2):
        return np.ones_like(h2)


class PolynomialInfluence(InfluenceFunction):
    """
    Polynomial kernel ``c (1 - |z|^p)^q`` with ``z = (x - y) / radius``.

    Parameters
    ----------
    radius : float or sequence of float
        Horizon radius, or one radius per axis
    p, q : float, optional
        Exponents (default: p=2, q=1, the parabolic kernel)

    Notes
    -----
    The normalisation constant uses the Beta function:
    ``∫_{|z|<1} (1 - |z|^p)^q dz = S_d B(d/p, q+1) / p`` with ``S_d`` the
    surface of the unit sphere.
    """
    kind = POLYNOMIAL

    def __init__(self, radius, p=2, q=1):
        super().__init__(radius)
        if p <= 0 or q < 0:
            raise ValueError(f"Polynomial influence needs p > 0 and q >= 0, got p={p}, q={q}")
        self.p = float(p)
        self.q = float(q)

    def _unit_integral(self, dim):
        return _SPHERE_AREA[dim] * beta(dim / self.p, self.q + 1) / self.p

    def _extra(self):
        return [self.p, self.q]

    def _profile(self, h2):
        return (1.0 - h2**(0.5 * self.p))**self.q


class NormalInfluence(InfluenceFunction):
    """
    Gaussian kernel truncated at the horizon.

    Parameters
    ----------
    radius : float or sequence of float
        Horizon radius, or one radius per axis
    sigma : float, optional
        Standard deviation as a fraction of the radius (default: 1/3)
    """
    kind = NORMAL

    def __init__(self, radius, sigma=1/3):
        super().__init__(radius)
        if sigma <= 0:
            raise ValueError(f"sigma must be positive, got {sigma}")
        self.k = 1.0 / sigma

    def _unit_integral(self, dim):
        k = self.k
        if dim == 1:
            return np.sqrt(2 * np.pi) / k * erf(k / np.sqrt(2))
        return 2 * np.pi * (1 - np.exp(-0.5 * k * k)) / (k * k)

    def _extra(self):
        return [self.k]

    def _profile(self, h2):
        return np.exp(-0.5 * self.k * self.k * h2)
