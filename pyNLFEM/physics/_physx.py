import numpy as np


class Physx:
    """
    Base class for physics models in pyNLFEM.

    A physics model turns the mesh basis tables into the two ingredients of a
    symmetric bilinear form ``a(u, v) = ∫ (Bop v)ᵀ D (Bop u)``:

    - the operator ``Bop``, shape (n_strain, dof), evaluated for every local
      node at every quadrature point (gradient, strain-displacement matrix,
      shape value, ...)
    - the material matrix ``D``, shape (n_strain, n_strain), one per element

    Methods
    -------
    dof(dim)
        Degrees of freedom per node (the block factor)
    n_strain(dim)
        Number of rows of the operator
    operator(shapes, grads)
        Operator for every (quadrature point, local node) row
    material(mesh)
        Material matrices, shape (n_elements, n_strain, n_strain)
    tables(mesh)
        Flat ``Bop`` and ``D @ Bop`` arrays laid out like ``mesh.shapes_flat``

    Notes
    -----
    Material parameters may be scalars or per-element arrays, which is how
    piecewise materials (e.g. one conductivity per 1D segment) are expressed.

    Examples
    --------
    >>> from pyNLFEM import Physics
    >>> physics = Physics.SteadyHeatTransfer(k=2.0)
    >>> B_flat, DB_flat = physics.tables(mesh)
    """
    def __init__(self):
        pass

    def dof(self, dim):
        raise NotImplementedError("dof method must be implemented in subclasses.")

    def n_strain(self, dim):
        raise NotImplementedError("n_strain method must be implemented in subclasses.")

    def operator(self, shapes, grads):
        raise NotImplementedError("operator method must be implemented in subclasses.")

    def material(self, mesh):
        raise NotImplementedError("material method must be implemented in subclasses.")

    def tables(self, mesh):
        """
        Operator and material-weighted operator for every quadrature row.

        Returns
        -------
        B_flat : ndarray
            Operator values; element e starts at ``shapes_ptr[e] * n_strain * dof``
        DB_flat : ndarray
            ``D_e @ Bop`` in the same layout
        """
        grads = mesh.grads_flat.reshape(-1, mesh.dim)
        B = self.operator(mesh.shapes_flat, grads)
        D = self.material(mesh)
        DB = np.einsum("rst,rtb->rsb", D[mesh.row_element], B)
        return B.reshape(-1).astype(mesh.dtype), DB.reshape(-1).astype(mesh.dtype)


def per_element(value, n_elements, shape, name):
    """
    Broadcast a material parameter to one value per element.

    ``value`` may have shape ``shape`` (uniform) or ``(n_elements, *shape)``.
    """
    value = np.asarray(value, dtype=np.float64)
    if value.shape == tuple(shape):
        return np.broadcast_to(value, (n_elements, *shape)).copy()
    if value.shape == (n_elements, *shape):
        return value.copy()
    raise ValueError(f"{name} must have shape {tuple(shape)} or {(n_elements, *shape)}, got {value.shape}")
