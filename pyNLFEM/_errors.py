class DegenerateElementError(ValueError):
    """
    Raised when an element has a (near) zero Jacobian determinant.

    Gradient transforms divide by the Jacobian, so such meshes are rejected
    at construction instead of producing ``inf`` entries during assembly.

    Attributes
    ----------
    elements : ndarray
        Indices of the offending elements
    """
    def __init__(self, elements):
        self.elements = elements
        super().__init__(f"Degenerate (zero area) elements found: {elements}")


class UnsolvableNeumannProblem(ValueError):
    """
    Raised when a pure flux (Neumann) problem violates the compatibility condition.

    The integral of the prescribed boundary flux must vanish for the problem
    to admit a solution. The caller may adjust the loads and solve again.

    Attributes
    ----------
    residual : float
        Sum of the assembled boundary flux contributions
    tolerance : float
        Tolerance the residual was checked against
    """
    def __init__(self, residual, tolerance):
        self.residual = residual
        self.tolerance = tolerance
        super().__init__(f"Unsolvable Neumann problem: contour integral != 0 (|{residual:.3e}| >= {tolerance:.1e}).")
