import numpy as np
from ..commons import Solver
from ...stiffness.CPU._FEA import StiffnessKernel
from scipy.sparse.linalg import minres as sp_minres
from scipy.sparse.linalg import splu, spsolve
import logging
logger = logging.getLogger(__name__)

MAX_DIRECT_DOFS = 3e6


def relative_residual(kernel, rhs, out):
    """``||rhs - K out|| / ||rhs||``, or the absolute residual for a zero right-hand side."""
    r = rhs - kernel @ out
    res = np.linalg.norm(r)
    normb = np.linalg.norm(rhs)
    return res / normb if normb > 0 else res


def jacobi(kernel):
    """Inverse diagonal of the kernel, unit where the diagonal vanishes."""
    d = np.asarray(kernel.diagonal(), dtype=np.float64).copy()
    d[d == 0] = 1.0
    return 1.0 / d


def cg(A, b, x0=None, rtol=1e-5, maxiter=1000, M=None):
    """
    Preconditioned conjugate gradient on a matrix-free operator.

    ``A`` only needs ``matvec``. ``M`` is an optional inverse diagonal
    applied elementwise to the residual.

    Returns
    -------
    x : ndarray
        Approximate solution
    iterations : int
        Iterations performed
    """
    normb = np.linalg.norm(b)
    if normb == 0:
        return np.zeros_like(b), 0

    x = np.zeros_like(b) if x0 is None else x0.copy()
    r = b - A.matvec(x)
    z = r if M is None else M * r
    p = z.copy()
    rz = r @ z

    for iteration in range(maxiter):
        if np.linalg.norm(r) / normb < rtol:
            return x, iteration
        q = A.matvec(p)
        alpha = rz / (p @ q)
        x += alpha * p
        r -= alpha * q
        z = r if M is None else M * r
        rz_new = r @ z
        p *= rz_new / rz
        p += z
        rz = rz_new

    return x, maxiter


class CG(Solver):
    """
    Jacobi preconditioned conjugate gradient.

    Matrix-free Krylov solver for symmetric positive definite systems. Works
    on the kernel's symmetric operator view, so the upper-stored inner
    matrix is never mirrored explicitly.

    Parameters
    ----------
    kernel : StiffnessKernel
        Constructed stiffness kernel
    maxiter : int, optional
        Maximum iterations (default: 1000)
    tol : float, optional
        Relative convergence tolerance (default: 1e-5)
    precondition : bool, optional
        Scale residuals by the inverse diagonal (default: True)

    Attributes
    ----------
    last_x0 : ndarray
        Last solution, the initial guess of the next solve

    Notes
    -----
    Needs a positive definite system. Heat problems need at least one
    first-kind condition, elasticity enough supports to remove rigid modes.
    Pure Neumann systems carry a compatibility row and are indefinite: use
    MINRES or SPSOLVE for them.

    Examples
    --------
    >>> solver = CG(kernel=kernel, maxiter=500, tol=1e-8)
    >>> U, residual = solver.solve(rhs=system.rhs)
    """
    def __init__(self, kernel: StiffnessKernel, maxiter=1000, tol=1e-5, precondition=True):
        super().__init__()
        self.kernel = kernel
        self.maxiter = maxiter
        self.tol = tol
        self.precondition = precondition
        self.last_x0 = None

    def reset(self):
        self.last_x0 = None

    def solve(self, rhs, use_last=True):
        warm = use_last and self.last_x0 is not None and self.last_x0.shape == rhs.shape
        M = jacobi(self.kernel) if self.precondition else None
        out, iterations = cg(self.kernel, rhs, x0=self.last_x0 if warm else None,
                             rtol=self.tol, maxiter=self.maxiter, M=M)
        if use_last:
            self.last_x0 = out

        residual = relative_residual(self.kernel, rhs, out)
        if residual > self.tol:
            logger.warning(f"CG stopped after {iterations} iterations with residual {residual:.2e}")
        else:
            logger.info(f"CG converged in {iterations} iterations")
        return out, residual


class MINRES(Solver):
    """
    Minimum residual solver for symmetric, possibly indefinite, systems.

    Wraps ``scipy.sparse.linalg.minres`` on the mirrored matrix, which suits
    the saddle-point system of pure Neumann problems.

    Parameters
    ----------
    kernel : StiffnessKernel
        Constructed stiffness kernel
    maxiter : int, optional
        Maximum iterations (default: 5000)
    tol : float, optional
        Relative convergence tolerance (default: 1e-10)
    """
    def __init__(self, kernel: StiffnessKernel, maxiter=5000, tol=1e-10):
        super().__init__()
        self.kernel = kernel
        self.maxiter = maxiter
        self.tol = tol

    def solve(self, rhs, **kwargs):
        out, info = sp_minres(self.kernel.full(), rhs, rtol=self.tol, maxiter=self.maxiter)
        if info > 0:
            logger.warning(f"MINRES did not reach rtol={self.tol:g} within {info} iterations")
        return out, relative_residual(self.kernel, rhs, out)


class _DirectSolver(Solver):
    name = "direct"

    def __init__(self, kernel: StiffnessKernel):
        super().__init__()
        if kernel.shape is not None and kernel.shape[0] > MAX_DIRECT_DOFS:
            raise ValueError(f"{self.name} is limited to {MAX_DIRECT_DOFS:.0e} degrees of freedom, got {kernel.shape[0]}. Use CG or MINRES instead.")
        self.kernel = kernel

    def _matrix(self):
        return self.kernel.full().tocsc()

    def solve(self, rhs, **kwargs):
        out = self._direct(rhs)
        return out, relative_residual(self.kernel, rhs, out)


class SPLU(_DirectSolver):
    """
    Direct sparse LU solver using SuperLU.

    The factorization is kept and reused while the kernel values stay the
    same, so several right-hand sides of one assembly cost one factorization.

    Parameters
    ----------
    kernel : StiffnessKernel
        Constructed stiffness kernel, at most 3M DOF

    Examples
    --------
    >>> solver = SPLU(kernel=kernel)
    >>> U, residual = solver.solve(rhs=system.rhs)
    """
    name = "SuperLU"

    def __init__(self, kernel: StiffnessKernel):
        super().__init__(kernel)
        self._lu = None
        self._values = None

    def reset(self):
        self._lu = None
        self._values = None

    def _direct(self, rhs):
        values = self.kernel.matrix_inner.data
        if self._lu is None or self._values is None or not np.array_equal(self._values, values):
            self._lu = splu(self._matrix())
            self._values = values.copy()
            logger.info("SuperLU factorization updated")
        return self._lu.solve(rhs)


class SPSOLVE(_DirectSolver):
    """
    Direct sparse solver using ``scipy.sparse.linalg.spsolve``.

    No factorization is kept. Handles the indefinite pure Neumann system and
    is the default solver of ``FiniteElement``.

    Parameters
    ----------
    kernel : StiffnessKernel
        Constructed stiffness kernel, at most 3M DOF
    """
    name = "spsolve"

    def _direct(self, rhs):
        return spsolve(self._matrix(), rhs)
