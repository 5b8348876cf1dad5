import numpy as np
from ..._errors import UnsolvableNeumannProblem
import logging
logger = logging.getLogger(__name__)

NEUMANN_TOLERANCE = {np.dtype(np.float64): 1e-10, np.dtype(np.float32): 1e-5}


class LinearSystem:
    """
    Assembled system of the owned rows, ready for a linear solver.

    Holds the inner and bound matrices of a constructed kernel together with
    the load vector before elimination. ``rhs`` is the eliminated
    right-hand side. Elimination always restarts from the stored load, so
    repeating it with unchanged prescribed values leaves ``rhs`` unchanged.

    Parameters
    ----------
    inner : csr_matrix
        Inner matrix, upper-triangular storage
    bound : csr_matrix
        Free-row by constrained-column couplings
    load : ndarray
        Owned rows of the assembled load vector (sources, fluxes, point loads)
    constraints : ndarray (bool)
        First-kind mask of the owned rows
    first_row : int, optional
        Global index of the first owned row (default: 0)

    Attributes
    ----------
    rhs : ndarray
        Right-hand side after ``eliminate`` (a copy of ``load`` before)
    """
    def __init__(self, inner, bound, load, constraints, first_row=0):
        self.first_row = int(first_row)
        self.inner = inner
        self.bound = bound
        self.load = np.asarray(load)
        self.constraints = np.asarray(constraints, dtype=np.bool_)
        if self.load.shape[0] != inner.shape[0] or self.constraints.shape[0] != inner.shape[0]:
            raise ValueError(f"Load and constraints must have {inner.shape[0]} rows, got {self.load.shape[0]} and {self.constraints.shape[0]}")
        self.rhs = self.load.copy()

    @property
    def shape(self):
        return self.inner.shape

    def eliminate(self, prescribed):
        """
        Eliminate prescribed first-kind values from the right-hand side.

        ``rhs = load - bound @ prescribed`` on free rows and
        ``rhs = prescribed`` on constrained rows.

        Parameters
        ----------
        prescribed : ndarray
            Prescribed values over all columns, zero on free DOFs

        Returns
        -------
        ndarray
            The eliminated right-hand side
        """
        prescribed = np.asarray(prescribed, dtype=np.float64)
        if prescribed.shape[0] != self.bound.shape[1]:
            raise ValueError(f"Prescribed values must have length {self.bound.shape[1]}, got {prescribed.shape[0]}")
        rhs = self.load - self.bound @ prescribed
        owned = prescribed[self.first_row:self.first_row + self.inner.shape[0]]
        rhs[self.constraints] = owned[self.constraints]
        self.rhs = rhs.astype(self.load.dtype)
        return self.rhs

    def check_neumann(self, n_rows, tolerance=None, reduce=None):
        """
        Solvability of the pure Neumann problem.

        The sum of the load over the owned rows (the boundary flux integral
        plus sources), reduced over all ranges by ``reduce``, must vanish.

        Parameters
        ----------
        n_rows : int
            Number of load rows belonging to mesh nodes (the compatibility row excluded)
        tolerance : float, optional
            Absolute tolerance (default: 1e-10 for float64, 1e-5 for float32)
        reduce : callable, optional
            Collective sum over all owned ranges (default: identity)

        Raises
        ------
        UnsolvableNeumannProblem
            If the reduced sum exceeds the tolerance
        """
        if tolerance is None:
            tolerance = NEUMANN_TOLERANCE.get(self.load.dtype, 1e-10)
        total = float(np.sum(self.load[:n_rows], dtype=np.float64))
        if reduce is not None:
            total = float(reduce(total))
        if abs(total) >= tolerance:
            raise UnsolvableNeumannProblem(total, tolerance)
        if total != 0.0:
            logger.warning(f"Neumann compatibility residual {total:.3e} is within tolerance {tolerance:.1e}")
        return total
