class Mesh:
    """
    Base class for finite element meshes.

    Abstract interface for mesh representations. Meshes store node coordinates,
    element connectivity and the quadrature data every assembly pass reads.

    Notes
    -----
    Subclasses must provide:
    - nodes: Node coordinates, shape (n_nodes, spatial_dim)
    - elements_flat, elements_ptr: Flat element connectivity
    - quad_ptr, jxw, quad_coords: Flat quadrature data
    - shapes_flat, grads_flat, shapes_ptr: Basis values and physical gradients
    - boundaries: Named boundary groups
    - volume: Total domain volume
    """
    pass


class StructuredMesh(Mesh):
    """
    Base class for structured (uniform grid) meshes.

    Structured meshes are generated from a handful of sizes rather than read
    from arrays, and name their boundary groups after the sides of the domain.
    Use StructuredMesh1D or StructuredMesh2D for concrete implementations.
    """
    pass
