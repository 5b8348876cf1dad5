from ...core.CPU._portrait import node_element_map, node_chunks, build_portrait, classify, INNER, BOUND
from ...core.CPU._assembly import assemble_local, assemble_nonlocal
from ...geom.CPU._mesh import GeneralMesh
from ...geom.CPU._neighbors import NeighborMap
from ...physics._physx import Physx
import numpy as np
from numba import get_num_threads
from scipy.sparse import csr_matrix, triu
import time
import logging
logger = logging.getLogger(__name__)

MAX_NONLOCAL_WEIGHT = 0.999
THEORIES = ('local', 'nonlocal')


class StiffnessKernel:
    """
    Base class for stiffness matrix assembly kernels.

    Provides the explicit matrix and the symmetric operator view of a
    finite element system matrix assembled from a physics model.

    Attributes
    ----------
    shape : tuple
        Dimensions of the owned block of the system matrix (n_rows, n_columns)
    constraints : ndarray (bool)
        Boolean array marking first-kind (constrained) DOFs
    has_cons : bool
        True if boundary conditions have been applied

    Methods
    -------
    construct(p1, influence=None, theory=None)
        Build the explicit CSR matrices
    dot(rhs)
        Symmetric matrix-vector product K @ rhs
    diagonal()
        Diagonal of the system matrix
    add_constraints(dof_indices)
        Apply first-kind boundary conditions
    reset()
        Clear constraints and cached matrices

    Notes
    -----
    Subclasses store only the upper triangle of the free block; ``dot`` and
    ``full`` mirror it.
    """
    def __init__(self):
        self.shape = None
        self.matvec = self.dot
        self.rmatvec = self.dot

    def construct(self, *args, **kwargs):
        """
        Build the explicit CSR matrices.

        Returns
        -------
        csr_matrix
            Inner system matrix in upper-triangular storage
        """
        raise NotImplementedError("construct method must be implemented in subclasses.")

    def dot(self, rhs):
        """
        Matrix-vector product K @ rhs with the mirrored upper triangle.

        Parameters
        ----------
        rhs : ndarray
            Input vector, shape (n_columns,)

        Returns
        -------
        ndarray
            Output vector, shape (n_columns,)
        """
        raise NotImplementedError("dot method must be implemented in subclasses.")

    def diagonal(self):
        """Diagonal entries of the system matrix."""
        raise NotImplementedError("diagonal method must be implemented in subclasses.")

    def reset(self):
        """
        Reset kernel state.

        Clears constraints and any cached matrices so the next ``construct``
        starts from a fresh portrait.
        """
        self.has_cons = False
        if hasattr(self, 'constraints'):
            self.constraints[:] = False
        self.clear()

    def clear(self):
        pass

    def __matmul__(self, rhs):
        """Convenience: kernel @ rhs calls dot(rhs)."""
        return self.dot(rhs)


class NonlocalStiffnessKernel(StiffnessKernel):
    """
    Mixed local/nonlocal stiffness assembly over an owned node range.

    The system matrix is split in two CSR matrices over the owned rows:

    - the **inner** matrix holds the upper triangle (``row <= col``) of the
      free-free block and a unit diagonal for every constrained row
    - the **bound** matrix holds the free-row by constrained-column couplings,
      used to eliminate prescribed values from the right-hand side

    Their exact nonzero patterns (the portrait) are built by a two-pass
    symbolic traversal before any value is written, and cached until the
    constraints, the neighbour map, the operator kind or the Neumann flag
    change. Values are recomputed on every ``construct``.

    Parameters
    ----------
    mesh : GeneralMesh
        Mesh with precomputed quadrature data
    physics : Physx
        Physics model providing the operator and material tables
    neighbors : NeighborMap, optional
        Element neighbour sets of the nonlocal term. If None, the map is built
        from the influence radius on the first nonlocal ``construct``
    first_node, last_node : int, optional
        Owned node range [first_node, last_node) (default: the whole mesh)
    n_chunks : int, optional
        Number of parallel chunks of the node range (default: numba threads)

    Attributes
    ----------
    dof : int
        Block factor (DOFs per node)
    n_dofs : int
        Number of global DOFs, ``dof * n_nodes``
    neumann : bool
        True when the pure Neumann compatibility column is enabled
    matrix_inner, matrix_bound : csr_matrix
        Assembled matrices after ``construct`` (None before)
    shape : tuple
        (n_rows, n_columns) of the owned block

    Notes
    -----
    - The operator is local when ``p1 >= MAX_NONLOCAL_WEIGHT`` and nonlocal
      otherwise. The local term is always weighted by ``p1`` and the
      nonlocal term by ``1 - p1``
    - ``dot``, ``full`` and the solvers need the owned range to be the whole
      mesh
    - A MemoryError during portrait construction leaves the kernel cleared

    Examples
    --------
    >>> from pyNLFEM.CPU import StructuredMesh1D, NonlocalStiffnessKernel
    >>> from pyNLFEM import Physics
    >>> from pyNLFEM.physics.influence import PolynomialInfluence
    >>> mesh = StructuredMesh1D([(1.0, 100)])
    >>> kernel = NonlocalStiffnessKernel(mesh, Physics.SteadyHeatTransfer())
    >>> K = kernel.construct(p1=0.5, influence=PolynomialInfluence(0.05))
    """
    def __init__(self, mesh: GeneralMesh, physics: Physx, neighbors: NeighborMap = None,
                 first_node=0, last_node=None, n_chunks=None):
        super().__init__()
        self.mesh = mesh
        self.physics = physics
        self.dtype = mesh.dtype
        self.n_nodes = mesh.n_nodes
        self.dof = physics.dof(mesh.dim)
        self.n_strain = physics.n_strain(mesh.dim)
        self.n_dofs = self.n_nodes * self.dof

        self.first_node = int(first_node)
        self.last_node = self.n_nodes if last_node is None else int(last_node)
        if not 0 <= self.first_node <= self.last_node <= self.n_nodes:
            raise ValueError(f"Owned node range [{first_node}, {last_node}) is outside [0, {self.n_nodes}]")
        self.n_chunks = get_num_threads() if n_chunks is None else int(n_chunks)

        if neighbors is not None:
            neighbors.check(mesh)
        self.neighbors = neighbors
        self._search_radius = None
        self.local_neighbors = NeighborMap.local(mesh.n_elements)

        self.el_ids, self.sorter, self.node_ids = node_element_map(mesh.elements_flat, mesh.elements_ptr, self.n_nodes)
        self.chunks = node_chunks(self.first_node, self.last_node, self.n_chunks)

        self.B_flat, self.DB_flat = physics.tables(mesh)
        self.D = np.ascontiguousarray(physics.material(mesh), dtype=np.float64)

        self.constraints = np.zeros(self.n_dofs, dtype=np.bool_)
        self.idx_map = np.arange(self.n_dofs, dtype=np.int32)
        self.non_con_map = self.idx_map
        self.has_cons = False
        self.neumann = False

        self.matrix_inner = None
        self.matrix_bound = None
        self._portrait_key = None
        self.theory = None
        self._update_shape()

    def _update_shape(self):
        extra = 1 if self.neumann else 0
        n_rows = self.dof * (self.last_node - self.first_node) + (extra if self.last_node == self.n_nodes else 0)
        self.shape = (n_rows, self.n_dofs + extra)

    @property
    def is_full_range(self):
        return self.first_node == 0 and self.last_node == self.n_nodes

    @property
    def owned_rows(self):
        """Global row indices of the owned block."""
        return np.arange(self.dof * self.first_node, self.dof * self.first_node + self.shape[0])

    def set_constraints(self, constraints):
        """
        Set first-kind boundary conditions (replaces existing constraints).

        Parameters
        ----------
        constraints : ndarray
            DOF indices to constrain, or a boolean mask over all DOFs
        """
        self.constraints[:] = False
        self.add_constraints(constraints)

    def add_constraints(self, constraints):
        """
        Add first-kind boundary conditions (accumulates with existing constraints).

        Parameters
        ----------
        constraints : ndarray
            DOF indices to constrain, or a boolean mask over all DOFs
        """
        self.constraints[constraints] = True
        self.has_cons = bool(self.constraints.any())
        self.non_con_map = self.idx_map[~self.constraints]

    def set_neumann(self, neumann):
        """
        Enable or disable the compatibility column of the pure Neumann problem.

        Raises
        ------
        NotImplementedError
            For vector fields
        """
        neumann = bool(neumann)
        if neumann and self.dof != 1:
            raise NotImplementedError("Pure traction problems of vector fields are not supported; constrain the rigid body modes.")
        if neumann != self.neumann:
            self.neumann = neumann
            self.clear()
        self._update_shape()

    def operator_kind(self, p1, theory=None):
        """
        Choose between the local and the local plus nonlocal operator.

        Parameters
        ----------
        p1 : float
            Local weight in [0, 1]
        theory : str, optional
            'local' or 'nonlocal' overrides the choice made from p1

        Returns
        -------
        str
            'local' or 'nonlocal'
        """
        if not 0.0 <= p1 <= 1.0:
            raise ValueError(f"Local weight p1 must lie in [0, 1], got {p1}")
        if theory is None:
            return 'local' if p1 >= MAX_NONLOCAL_WEIGHT else 'nonlocal'
        if theory not in THEORIES:
            raise ValueError(f"Unknown operator kind '{theory}', expected one of {THEORIES}")
        return theory

    def _neighbors_for(self, influence):
        if self.neighbors is None or (self._search_radius is not None and self._search_radius != influence.max_radius):
            self._search_radius = influence.max_radius
            logger.info(f"Searching neighbours within radius {influence.max_radius:g} ...")
            self.neighbors = NeighborMap.from_radius(self.mesh, influence.max_radius)
        return self.neighbors

    def create_portrait(self, theory, neighbors=None):
        """
        Build the inner and bound portraits for the given operator kind.

        Parameters
        ----------
        theory : str
            'local' or 'nonlocal'
        neighbors : NeighborMap, optional
            Neighbour sets of the nonlocal operator
        """
        self.clear()
        neighbors = self.local_neighbors if theory == 'local' else neighbors
        start_time = time.time()
        try:
            inner_ptr, inner_idx, bound_ptr, bound_idx = build_portrait(
                self.mesh.elements_flat, self.mesh.elements_ptr, self.el_ids, self.sorter, self.node_ids,
                neighbors.neighbors_flat, neighbors.neighbors_ptr, self.constraints, self.dof,
                self.first_node, self.last_node, self.n_nodes, self.neumann, self.n_chunks
            )
            self.matrix_inner = csr_matrix(
                (np.zeros(inner_idx.shape[0], dtype=self.dtype), inner_idx, inner_ptr), shape=self.shape
            )
            self.matrix_bound = csr_matrix(
                (np.zeros(bound_idx.shape[0], dtype=self.dtype), bound_idx, bound_ptr), shape=self.shape
            )
        except MemoryError:
            self.clear()
            raise
        end_time = time.time()

        self._portrait_key = (theory, id(neighbors), self.neumann, self.constraints.tobytes())
        logger.info(f"Portrait ({theory}) built in {end_time - start_time:.3f} s")
        logger.info(f"inner matrix non-zero elements count: {self.matrix_inner.nnz}")
        logger.info(f"bound matrix non-zero elements count: {self.matrix_bound.nnz}")

    def clear(self):
        """Drop the portrait and the values."""
        self.matrix_inner = None
        self.matrix_bound = None
        self._portrait_key = None

    def construct(self, p1=1.0, influence=None, theory=None):
        """
        Assemble the inner and bound matrices.

        Parameters
        ----------
        p1 : float, optional
            Local weight (default: 1.0, purely local)
        influence : InfluenceFunction, optional
            Influence kernel of the nonlocal term (required for the nonlocal operator)
        theory : str, optional
            Explicit operator kind, 'local' or 'nonlocal'

        Returns
        -------
        csr_matrix
            Inner matrix, upper-triangular storage of the owned rows

        Raises
        ------
        ValueError
            On an unknown operator kind, p1 outside [0, 1] or a missing influence
        """
        theory = self.operator_kind(p1, theory)
        neighbors = None
        if theory == 'nonlocal':
            if influence is None:
                raise ValueError("The nonlocal operator needs an influence function")
            neighbors = self._neighbors_for(influence)

        key = (theory, id(self.local_neighbors if theory == 'local' else neighbors), self.neumann, self.constraints.tobytes())
        if self._portrait_key != key:
            self.create_portrait(theory, neighbors)
        else:
            self.matrix_inner.data[:] = 0
            self.matrix_bound.data[:] = 0
        self.theory = theory

        inner, bound = self.matrix_inner, self.matrix_bound
        mesh = self.mesh
        start_time = time.time()
        assemble_local(
            self.chunks, self.first_node, self.dof, self.n_strain, float(p1),
            mesh.elements_flat, mesh.elements_ptr, self.el_ids, self.sorter, self.node_ids,
            mesh.shapes_ptr, mesh.quad_ptr, mesh.jxw, self.B_flat, self.DB_flat, self.constraints,
            inner.indptr, inner.indices, inner.data, bound.indptr, bound.indices, bound.data
        )
        if theory == 'nonlocal' and p1 < 1.0:
            assemble_nonlocal(
                self.chunks, self.first_node, self.dof, self.n_strain, float(1.0 - p1),
                influence.kind, influence.params(mesh.dim),
                mesh.elements_flat, mesh.elements_ptr, self.el_ids, self.sorter, self.node_ids,
                neighbors.neighbors_flat, neighbors.neighbors_ptr, mesh.shapes_ptr, mesh.quad_ptr,
                mesh.jxw, mesh.quad_coords, self.B_flat, self.D, self.constraints,
                inner.indptr, inner.indices, inner.data, bound.indptr, bound.indices, bound.data
            )
        logger.info(f"Assembly ({theory}, p1={p1:g}) done in {time.time() - start_time:.3f} s")
        return self.matrix_inner

    def set_neumann_column(self, column):
        """
        Write the compatibility column ``c_i = integral of N_i`` of the pure Neumann problem.

        Parameters
        ----------
        column : ndarray
            Integral of every basis function, shape (n_nodes,)
        """
        if not self.neumann or self.matrix_inner is None:
            raise ValueError("The Neumann column needs a constructed kernel with the Neumann flag set")
        rows = self.owned_rows[:self.dof * (self.last_node - self.first_node)]
        self.scatter(rows, np.full(rows.shape[0], self.n_nodes), column[rows])

    def scatter(self, rows, cols, values):
        """
        Add values at global (row, col) positions, routed like the assembled entries.

        Entries outside the owned rows, in the lower triangle of the free
        block or in constrained rows are ignored, so a symmetric contribution
        is passed with both (i, j) and (j, i).

        Raises
        ------
        ValueError
            If a routed entry is missing from the portrait
        """
        inner, bound = self.matrix_inner, self.matrix_bound
        start = self.dof * self.first_node
        constraints = np.concatenate([self.constraints, [False]]) if self.neumann else self.constraints
        for row, col, value in zip(np.asarray(rows), np.asarray(cols), np.asarray(values)):
            lrow = row - start
            if not 0 <= lrow < self.shape[0]:
                continue
            kind = classify(row, col, constraints)
            if kind == INNER and not constraints[row]:
                matrix = inner
            elif kind == BOUND:
                matrix = bound
            else:
                continue
            s, e = matrix.indptr[lrow], matrix.indptr[lrow + 1]
            pos = s + np.searchsorted(matrix.indices[s:e], col)
            if pos >= e or matrix.indices[pos] != col:
                raise ValueError(f"Entry ({row}, {col}) is not part of the matrix portrait")
            matrix.data[pos] += value

    def _check_full_range(self):
        if not self.is_full_range:
            raise NotImplementedError("The symmetric operator view needs the owned range to cover the whole mesh")
        if self.matrix_inner is None:
            raise ValueError("Kernel has not been constructed. Call construct() first.")

    def full(self):
        """Full symmetric matrix, the inner matrix mirrored across its diagonal."""
        self._check_full_range()
        K = self.matrix_inner
        return (K + triu(K, k=1, format='csr').T).tocsr()

    def dot(self, rhs):
        self._check_full_range()
        if not isinstance(rhs, np.ndarray):
            raise NotImplementedError("Only numpy arrays are supported.")
        if rhs.shape[0] != self.shape[1]:
            raise ValueError("Shape of the input vector does not match the number of dofs.")
        K = self.matrix_inner
        return K @ rhs + K.T @ rhs - K.diagonal() * rhs

    def diagonal(self):
        if self.matrix_inner is None:
            raise ValueError("Kernel has not been constructed. Call construct() first.")
        return self.matrix_inner.diagonal(k=self.dof * self.first_node)
