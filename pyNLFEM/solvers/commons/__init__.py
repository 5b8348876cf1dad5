class Solver:
    """
    Base class of the linear solvers.

    A solver is bound to a stiffness kernel and solves ``K U = rhs`` with
    the right-hand side produced by boundary elimination. Calling the solver
    is the same as calling ``solve``.

    Methods
    -------
    solve(rhs, **kwargs)
        Returns ``(U, residual)`` with the relative residual ``||K U - rhs|| / ||rhs||``
    reset()
        Drop cached state (warm starts, factorizations)
    """
    def __call__(self, *args, **kwargs):
        return self.solve(*args, **kwargs)

    def solve(self, *args, **kwargs):
        raise NotImplementedError("solve method must be implemented in subclasses.")

    def reset(self):
        pass
