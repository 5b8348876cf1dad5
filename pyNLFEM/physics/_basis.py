from functools import lru_cache
import numpy as np
import sympy
from sympy import Matrix, Rational, symbols, lambdify
from scipy.special import roots_jacobi

xi, eta = symbols('xi eta')

_ELEMENT_NAMES = {
    (1, 2): 'segment2',
    (1, 3): 'segment3',
    (1, 4): 'segment4',
    (2, 3): 'triangle3',
    (2, 6): 'triangle6',
    (2, 4): 'quad4',
    (2, 8): 'quad8',
    (2, 9): 'quad9',
}


class ReferenceElement:
    """
    Lagrange reference element with numeric basis tables.

    Shape functions are built symbolically once with sympy and differentiated
    with ``Matrix.jacobian``; the lambdified results are only ever evaluated
    at fixed quadrature points, so assembly works with plain numeric tables.

    Parameters
    ----------
    name : str
        Element name, e.g. ``'quad4'``
    family : str
        ``'segment'``, ``'triangle'`` or ``'quadrilateral'``
    degree : int
        Polynomial degree of the basis
    nodes : list
        Reference coordinates of the element nodes
    N : list
        Sympy expressions of the shape functions, one per node

    Attributes
    ----------
    dim : int
        Reference dimension (1 or 2)
    n_nodes : int
        Number of nodes (and shape functions)
    N, dN : sympy.Matrix
        Symbolic shape functions and their reference gradients

    Examples
    --------
    >>> element = reference_element('quad4')
    >>> points, weights, N, dN = element.tables(2)
    >>> N.sum(axis=1)  # partition of unity
    array([1., 1., 1., 1.])
    """
    def __init__(self, name, family, degree, nodes, N):
        self.name = name
        self.family = family
        self.degree = degree
        self.dim = 1 if family == 'segment' else 2
        self.nodes = np.array([[float(c) for c in node] for node in nodes], dtype=np.float64)
        self.variables = [xi] if self.dim == 1 else [xi, eta]

        self.N = Matrix(N)
        self.dN = self.N.jacobian(self.variables)
        self._N = lambdify(self.variables, self.N, 'numpy')
        self._dN = lambdify(self.variables, self.dN, 'numpy')
        self._tables = {}

    @property
    def n_nodes(self):
        return self.N.shape[0]

    @property
    def default_order(self):
        return 2 * self.degree

    def shapes(self, points):
        return np.array([np.asarray(self._N(*p), dtype=np.float64).reshape(-1) for p in points])

    def gradients(self, points):
        return np.array([np.asarray(self._dN(*p), dtype=np.float64).reshape(self.n_nodes, self.dim) for p in points])

    def tables(self, order=None):
        """
        Quadrature points, weights, shape values and reference gradients.

        Parameters
        ----------
        order : int, optional
            Polynomial order integrated exactly (default: twice the basis degree)

        Returns
        -------
        points : ndarray
            Quadrature points, shape (nq, dim)
        weights : ndarray
            Quadrature weights, shape (nq,)
        N : ndarray
            Shape values, shape (nq, n_nodes)
        dN : ndarray
            Reference gradients, shape (nq, n_nodes, dim)
        """
        if order is None:
            order = self.default_order
        if order not in self._tables:
            points, weights = gauss_points(self.family, order)
            self._tables[order] = (points, weights, self.shapes(points), self.gradients(points))
        return self._tables[order]


def gauss_points(family, order):
    """
    Gauss rule on a reference domain, exact for polynomials of degree ``order``.

    Segments and quadrilaterals use (tensor) Gauss-Legendre rules on [-1, 1].
    Triangles collapse the square onto the unit triangle and absorb the
    Duffy Jacobian with a Gauss-Jacobi rule in the collapsed direction.
    """
    if order < 0:
        raise ValueError(f"Quadrature order must be non-negative, got {order}.")
    n = order // 2 + 1
    p, w = np.polynomial.legendre.leggauss(n)
    if family == 'segment':
        return p[:, None], w
    elif family == 'quadrilateral':
        X, Y = np.meshgrid(p, p, indexing='ij')
        return np.stack([X.reshape(-1), Y.reshape(-1)], axis=-1), np.outer(w, w).reshape(-1)
    elif family == 'triangle':
        b, wb = roots_jacobi(n, 1, 0)
        A, B = np.meshgrid(p, b, indexing='ij')
        points = np.stack([((1 + A) * (1 - B) / 4).reshape(-1), ((1 + B) / 2).reshape(-1)], axis=-1)
        return points, (np.outer(w, wb) / 8).reshape(-1)
    else:
        raise ValueError(f"Unknown element family: {family}")


def _equispaced(degree):
    return [Rational(-1) + Rational(2 * i, degree) for i in range(degree + 1)]


def _lagrange_1d(points, var):
    N = []
    for i, pi in enumerate(points):
        expr = sympy.S.One
        for k, pk in enumerate(points):
            if k != i:
                expr *= (var - pk) / (pi - pk)
        N.append(sympy.expand(expr))
    return N


def _tensor_product(nodes, degree):
    points = _equispaced(degree)
    Lx = _lagrange_1d(points, xi)
    Ly = _lagrange_1d(points, eta)
    return [Lx[points.index(a)] * Ly[points.index(b)] for a, b in nodes]


@lru_cache(maxsize=None)
def reference_element(name):
    """Build (once) the reference element called ``name``."""
    if name.startswith('segment'):
        degree = int(name[len('segment'):]) - 1
        points = _equispaced(degree)
        return ReferenceElement(name, 'segment', degree, [[p] for p in points], _lagrange_1d(points, xi))

    L1, L2, L3 = 1 - xi - eta, xi, eta
    half = Rational(1, 2)
    if name == 'triangle3':
        return ReferenceElement(name, 'triangle', 1, [[0, 0], [1, 0], [0, 1]], [L1, L2, L3])
    if name == 'triangle6':
        nodes = [[0, 0], [1, 0], [0, 1], [half, 0], [half, half], [0, half]]
        N = [L1 * (2 * L1 - 1), L2 * (2 * L2 - 1), L3 * (2 * L3 - 1), 4 * L1 * L2, 4 * L2 * L3, 4 * L3 * L1]
        return ReferenceElement(name, 'triangle', 2, nodes, [sympy.expand(n) for n in N])

    corners = [[-1, -1], [1, -1], [1, 1], [-1, 1]]
    mids = [[0, -1], [1, 0], [0, 1], [-1, 0]]
    if name == 'quad4':
        return ReferenceElement(name, 'quadrilateral', 1, corners, _tensor_product(corners, 1))
    if name == 'quad8':
        N = [(1 + xi * a) * (1 + eta * b) * (xi * a + eta * b - 1) / 4 for a, b in corners]
        N += [(1 - xi**2) * (1 + eta * b) / 2 if a == 0 else (1 + xi * a) * (1 - eta**2) / 2 for a, b in mids]
        return ReferenceElement(name, 'quadrilateral', 2, corners + mids, [sympy.expand(n) for n in N])
    if name == 'quad9':
        nodes = corners + mids + [[0, 0]]
        return ReferenceElement(name, 'quadrilateral', 2, nodes, _tensor_product(nodes, 2))

    raise ValueError(f"Unknown element type: {name}")


def element_for(dim, n_nodes):
    """Reference element of a ``dim``-dimensional element with ``n_nodes`` nodes."""
    if (dim, n_nodes) not in _ELEMENT_NAMES:
        raise ValueError(f"Unsupported element: {n_nodes} nodes in {dim}D. Supported (dim, nodes): {sorted(_ELEMENT_NAMES)}")
    return reference_element(_ELEMENT_NAMES[(dim, n_nodes)])
