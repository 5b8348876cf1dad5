class FiniteElement:
    """Abstract finite-element session.

    A session couples a mesh, a stiffness kernel and a solver with the
    boundary groups and loads of one problem. Backends provide the
    implementation; ``FiniteElement.CPU.FiniteElement`` is the numba one.
    """

    def add_boundary_condition(self, name, condition, **kwargs):
        """Attach a condition, or one per field component, to a boundary group."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_boundary_conditions(self):
        raise NotImplementedError("This method should be implemented by subclasses.")

    def set_source(self, source):
        """Volume source (heat generation or body force)."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def add_point_forces(self, forces, **kwargs):
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_forces(self):
        """Clear point loads and the volume source."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def load_vector(self, **kwargs):
        raise NotImplementedError("This method should be implemented by subclasses.")

    def assemble(self, **kwargs):
        """Assemble and eliminate the linear system without solving it.

        Returns the ``LinearSystem`` of the owned rows.
        """
        raise NotImplementedError("This method should be implemented by subclasses.")

    def solve(self, **kwargs):
        """Assemble and solve, returning the nodal solution and the solver residual."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def solution(self, U):
        raise NotImplementedError("This method should be implemented by subclasses.")

    def visualize_problem(self, **kwargs):
        raise NotImplementedError("This method should be implemented by subclasses.")

    def visualize_field(self, field, **kwargs):
        raise NotImplementedError("This method should be implemented by subclasses.")
