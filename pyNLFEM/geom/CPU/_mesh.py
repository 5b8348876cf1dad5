from ...core.CPU._geom import generate_structured_mesh, generate_segmented_mesh, split_quads
from ...physics._basis import element_for
from ..._errors import DegenerateElementError
import numpy as np
import logging
logger = logging.getLogger(__name__)
from ..commons._mesh import Mesh, StructuredMesh

DEGENERATE_TOL = 1e-12


class GeneralMesh(Mesh):
    """
    General unstructured 1D/2D mesh with precomputed quadrature data.

    Handles meshes with heterogeneous element types. On construction every
    element is mapped to its Lagrange reference element, and the quadrature
    weights, physical coordinates, shape values and physical shape gradients
    are evaluated once and stored in flat arrays indexed through pointer
    arrays. The mesh is immutable afterwards.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, spatial_dim) or (n_nodes,) in 1D
    elements : list or ndarray
        Element connectivity. For uniform meshes: array of shape (n_elements, nodes_per_element).
        For heterogeneous meshes: list of arrays with varying lengths
    boundaries : dict, optional
        Named boundary groups. Every group is an array of boundary elements:
        edges of shape (n_edges, 2..4) in 2D or single nodes of shape (n_nodes,)
    quadrature_order : int, optional
        Polynomial order integrated exactly by the element rules (default: twice
        the basis degree). Lower orders make the nonlocal double quadrature cheaper.
    dtype : np.dtype, optional
        Data type for arrays (default: np.float64)

    Attributes
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, dim)
    dim : int
        Spatial dimension (1 or 2)
    is_uniform : bool
        True if all elements have the same number of nodes
    elements_flat, elements_ptr : ndarray
        Flat element connectivity and its pointer array
    element_sizes : ndarray
        Nodes per element
    quad_ptr : ndarray
        Pointer into the quadrature arrays, shape (n_elements + 1,)
    jxw : ndarray
        Quadrature weight times |det J| for every quadrature point
    quad_coords : ndarray
        Physical coordinates of the quadrature points, shape (n_qpoints, dim)
    shapes_ptr : ndarray
        Pointer into shapes_flat; element e stores (nq, n_nodes) values
    shapes_flat : ndarray
        Shape values at quadrature points
    grads_flat : ndarray
        Physical shape gradients, element e stored as (nq, n_nodes, dim) from dim*shapes_ptr[e]
    row_element, row_qpoint, row_node : ndarray
        Element, quadrature point and node of every (quadrature point, local node) row of shapes_flat
    qpoint_element : ndarray
        Element of every quadrature point
    As : ndarray
        Element areas (lengths in 1D)
    volume : float
        Total domain volume
    centroids : ndarray
        Element centroid coordinates
    boundaries : dict
        Named boundary groups as int32 arrays of shape (n_boundary_elements, nodes_per_boundary_element)

    Raises
    ------
    ValueError
        On malformed nodes/elements, nodes without elements or unsupported element types
    DegenerateElementError
        If any element has a (near) zero Jacobian determinant

    Examples
    --------
    >>> from pyNLFEM.CPU import GeneralMesh
    >>> nodes = np.array([[0,0], [1,0], [0,1], [1,1]])
    >>> elements = np.array([[0,1,2], [1,3,2]])
    >>> mesh = GeneralMesh(nodes, elements, boundaries={"bottom": [[0, 1]]})
    >>> mesh.volume
    1.0
    """
    def __init__(self, nodes, elements, boundaries=None, quadrature_order=None, dtype=np.float64):
        nodes = np.asarray(nodes, dtype=dtype)
        if nodes.ndim == 1:
            nodes = nodes[:, None]
        if nodes.ndim != 2 or nodes.shape[1] not in (1, 2):
            raise ValueError(f"Nodes must have shape (n_nodes, 1) or (n_nodes, 2), got {nodes.shape}")
        if len(elements) == 0:
            raise ValueError("Mesh must contain at least one element")

        self.nodes = nodes
        self.n_nodes = nodes.shape[0]
        self.dim = nodes.shape[1]
        self.dtype = dtype
        self.quadrature_order = quadrature_order

        self.element_sizes = np.array([len(e) for e in elements], dtype=np.int32)
        self.is_uniform = bool(np.all(self.element_sizes == self.element_sizes[0]))
        if self.is_uniform:
            self.elements = np.asarray(elements, dtype=np.int32)
            self.elements_flat = self.elements.reshape(-1)
        else:
            self.elements = [np.asarray(e, dtype=np.int32) for e in elements]
            self.elements_flat = np.concatenate(self.elements).astype(np.int32)
        self.elements_ptr = np.concatenate(([0], np.cumsum(self.element_sizes)), dtype=np.int32)
        self.n_elements = self.element_sizes.shape[0]

        logger.info("Checking Mesh ...")
        if self.elements_flat.min() < 0 or self.elements_flat.max() >= self.n_nodes:
            raise ValueError(f"Element connectivity references nodes outside [0, {self.n_nodes})")
        orphans = np.setdiff1d(np.arange(self.n_nodes), self.elements_flat)
        if orphans.shape[0]:
            raise ValueError(f"Mesh has {orphans.shape[0]} nodes without elements (first: {orphans[:5].tolist()}); remove them from the node array")

        self.centroids = np.add.reduceat(self.nodes[self.elements_flat], self.elements_ptr[:-1], axis=0) / self.element_sizes[:, None]

        self._compute_quadrature()
        self.volume = float(np.sum(self.As))

        self.boundaries = {}
        if boundaries is not None:
            for name, group in boundaries.items():
                self.boundaries[name] = self._check_boundary(name, group)

        logger.info(f"Mesh: {self.n_nodes} nodes, {self.n_elements} elements, {self.jxw.shape[0]} quadrature points")

    def _compute_quadrature(self):
        reference = {}
        for size in np.unique(self.element_sizes):
            reference[int(size)] = element_for(self.dim, int(size))

        nq = np.zeros(self.n_elements, dtype=np.int32)
        for size, element in reference.items():
            nq[self.element_sizes == size] = element.tables(self.quadrature_order)[1].shape[0]

        self.element_nq = nq
        self.quad_ptr = np.concatenate(([0], np.cumsum(nq)), dtype=np.int32)
        self.shapes_ptr = np.concatenate(([0], np.cumsum(nq * self.element_sizes)), dtype=np.int32)

        self.jxw = np.zeros(self.quad_ptr[-1], dtype=self.dtype)
        self.quad_coords = np.zeros((self.quad_ptr[-1], self.dim), dtype=self.dtype)
        self.shapes_flat = np.zeros(self.shapes_ptr[-1], dtype=self.dtype)
        self.grads_flat = np.zeros(self.shapes_ptr[-1] * self.dim, dtype=self.dtype)
        self.As = np.zeros(self.n_elements, dtype=self.dtype)

        for size, element in reference.items():
            idx = np.where(self.element_sizes == size)[0]
            conn = self.elements_flat[self.elements_ptr[idx][:, None] + np.arange(size)]
            X = self.nodes[conn].astype(np.float64)
            points, weights, N, dN = element.tables(self.quadrature_order)
            n_q = weights.shape[0]

            J = np.einsum('ena,qnb->eqab', X, dN)
            detJ = np.linalg.det(J)

            h = (X.max(axis=1) - X.min(axis=1)).max(axis=1)
            bad = np.any(np.abs(detJ) <= DEGENERATE_TOL * h[:, None]**self.dim, axis=1)
            if np.any(bad):
                raise DegenerateElementError(idx[bad])

            invJ = np.linalg.inv(J)
            G = np.einsum('qnb,eqba->eqna', dN, invJ)
            jxw = weights[None, :] * np.abs(detJ)

            q_idx = self.quad_ptr[idx][:, None] + np.arange(n_q)
            self.jxw[q_idx] = jxw
            self.quad_coords[q_idx] = np.einsum('qn,ena->eqa', N, X)

            s_idx = self.shapes_ptr[idx][:, None] + np.arange(n_q * size)
            self.shapes_flat[s_idx] = N.reshape(-1)[None, :]

            g_idx = self.dim * self.shapes_ptr[idx][:, None] + np.arange(n_q * size * self.dim)
            self.grads_flat[g_idx] = G.reshape(idx.shape[0], -1)

            self.As[idx] = jxw.sum(axis=1)

        self.row_element = np.repeat(np.arange(self.n_elements, dtype=np.int32), nq * self.element_sizes)
        offset = np.arange(self.shapes_ptr[-1], dtype=np.int64) - self.shapes_ptr[self.row_element]
        sizes = self.element_sizes[self.row_element]
        self.row_qpoint = (self.quad_ptr[self.row_element] + offset // sizes).astype(np.int32)
        self.row_node = self.elements_flat[self.elements_ptr[self.row_element] + offset % sizes]
        self.qpoint_element = np.repeat(np.arange(self.n_elements, dtype=np.int32), nq)

    def _check_boundary(self, name, group):
        group = np.asarray(group, dtype=np.int32)
        if group.ndim == 1:
            group = group[:, None]
        if group.ndim != 2 or group.shape[0] == 0:
            raise ValueError(f"Boundary group '{name}' must be a non-empty array of boundary elements")
        if self.dim == 1 and group.shape[1] != 1:
            raise ValueError(f"Boundary group '{name}': 1D boundaries consist of single nodes")
        if group.shape[1] > 4:
            raise ValueError(f"Boundary group '{name}': boundary elements have at most 4 nodes, got {group.shape[1]}")
        if group.min() < 0 or group.max() >= self.n_nodes:
            raise ValueError(f"Boundary group '{name}' references nodes outside [0, {self.n_nodes})")
        return group

    def boundary_quadrature(self, group, order=None):
        """
        Quadrature data over a boundary group.

        Point groups (one node per boundary element) integrate with a unit
        weight at the node; edge groups use the Lagrange segment rule of
        matching size.

        Parameters
        ----------
        group : str or ndarray
            Name of a mesh boundary group or an explicit boundary element array
        order : int, optional
            Quadrature order of the edge rule

        Returns
        -------
        conn : ndarray
            Boundary element connectivity, shape (n_b, m)
        jxw : ndarray
            Weights times edge Jacobian, shape (n_b, nq)
        N : ndarray
            Shape values, shape (nq, m)
        coords : ndarray
            Physical quadrature coordinates, shape (n_b, nq, dim)
        """
        conn = self.boundaries[group] if isinstance(group, str) else self._check_boundary('<explicit>', group)
        X = self.nodes[conn].astype(np.float64)
        if conn.shape[1] == 1:
            return conn, np.ones((conn.shape[0], 1)), np.ones((1, 1)), X

        element = element_for(1, conn.shape[1])
        points, weights, N, dN = element.tables(order)
        tangent = np.einsum('qm,bma->bqa', dN[:, :, 0], X)
        length = np.linalg.norm(tangent, axis=-1)
        if np.any(length <= DEGENERATE_TOL):
            raise DegenerateElementError(np.where(np.any(length <= DEGENERATE_TOL, axis=1))[0])
        coords = np.einsum('qm,bma->bqa', N, X)
        return conn, weights[None, :] * length, N, coords

    def element(self, e):
        """Node indices of element ``e``."""
        return self.elements_flat[self.elements_ptr[e]:self.elements_ptr[e+1]]


class StructuredMesh1D(GeneralMesh, StructuredMesh):
    """
    1D mesh made of consecutive uniform segments.

    Every segment has its own length and element count, so material or
    model parameters can vary per segment through ``segment_ids``.

    Parameters
    ----------
    segments : list of (float, int)
        ``(length, n_elements)`` per segment, left to right
    order : int, optional
        Lagrange order of the elements: 1 (linear), 2 (quadratic) or 3 (cubic)
    x0 : float, optional
        Coordinate of the left end (default: 0)
    quadrature_order : int, optional
        See GeneralMesh
    dtype : np.dtype, optional
        Data type for arrays (default: np.float64)

    Attributes
    ----------
    segment_ids : ndarray
        Segment index of every element
    length : float
        Total length

    Notes
    -----
    Boundary groups ``'left'`` and ``'right'`` hold the end nodes.

    Examples
    --------
    >>> mesh = StructuredMesh1D([(0.5, 10), (0.5, 20)], order=2)
    >>> mesh.boundaries['right']
    array([[60]], dtype=int32)
    """
    def __init__(self, segments, order=1, x0=0.0, quadrature_order=None, dtype=np.float64):
        elements, nodes, segment_ids = generate_segmented_mesh(segments, order=order, x0=x0, dtype=dtype)
        self.segments = list(segments)
        self.segment_ids = segment_ids
        self.order = order
        self.length = float(sum(length for length, _ in segments))
        super().__init__(
            nodes, elements,
            boundaries={'left': [0], 'right': [nodes.shape[0] - 1]},
            quadrature_order=quadrature_order, dtype=dtype
        )


class StructuredMesh2D(GeneralMesh, StructuredMesh):
    """
    2D structured mesh of a rectangle with quadrilateral or triangular elements.

    Parameters
    ----------
    nx : int
        Number of elements in x-direction
    ny : int
        Number of elements in y-direction
    lx : float
        Physical length of domain in x-direction
    ly : float
        Physical length of domain in y-direction
    element : str, optional
        ``'quad4'`` (default) or ``'triangle3'`` (every cell split in two)
    quadrature_order : int, optional
        See GeneralMesh
    dtype : np.dtype, optional
        Data type for arrays (default: np.float64)

    Attributes
    ----------
    nelx, nely : int
        Number of elements in x and y directions
    dx, dy : float
        Cell dimensions

    Notes
    -----
    - Element node ordering is counter-clockwise starting from bottom-left
    - Boundary groups ``'bottom'``, ``'right'``, ``'top'`` and ``'left'`` hold two-node edges

    Examples
    --------
    >>> from pyNLFEM.CPU import StructuredMesh2D
    >>> mesh = StructuredMesh2D(nx=16, ny=8, lx=2.0, ly=1.0)
    >>> print(f"Elements: {mesh.n_elements}, Nodes: {mesh.n_nodes}")
    Elements: 128, Nodes: 153
    """
    def __init__(self, nx, ny, lx, ly, element='quad4', quadrature_order=None, dtype=np.float64):
        self.nelx = nx
        self.nely = ny
        self.lx = lx
        self.ly = ly
        self.dx = lx / nx
        self.dy = ly / ny

        elements, nodes = generate_structured_mesh(np.array([lx, ly], dtype=dtype), np.array([nx, ny], dtype=np.int32), dtype=dtype)
        if element == 'triangle3':
            elements = split_quads(elements)
        elif element != 'quad4':
            raise ValueError(f"Structured meshes support 'quad4' and 'triangle3' elements, got '{element}'")

        NX = nx + 1
        i = np.arange(nx)
        j = np.arange(ny)
        boundaries = {
            'bottom': np.stack([i, i + 1], axis=-1),
            'right': np.stack([j * NX + nx, (j + 1) * NX + nx], axis=-1),
            'top': np.stack([ny * NX + i, ny * NX + i + 1], axis=-1),
            'left': np.stack([j * NX, (j + 1) * NX], axis=-1),
        }
        super().__init__(nodes, elements, boundaries=boundaries, quadrature_order=quadrature_order, dtype=dtype)
