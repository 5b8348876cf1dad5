from ..FiniteElement import FiniteElement as FE
from ._system import LinearSystem
from ...geom.CPU._mesh import GeneralMesh
from ...stiffness.CPU._FEA import NonlocalStiffnessKernel
from ...solvers.CPU._solvers import SPSOLVE
from ...boundary._conditions import (
    BoundaryKind,
    normalize_conditions,
    first_kind_mask,
    prescribed_values,
    evaluate,
)
from ...physics.LinearElasticity import LinearElasticity
from ...post._solution import HeatEquationSolution, StructuralSolution
from ...visualizers._2d import plot_problem_2D, plot_field_2D, plot_field_1D
from typing import Optional
from scipy.spatial import KDTree
import numpy as np
import logging
logger = logging.getLogger(__name__)


class FiniteElement(FE):
    """
    Finite element session managing boundary conditions, loads, assembly and solution.

    Central class coordinating the mesh, the nonlocal stiffness kernel and
    the linear solver. Boundary conditions are attached to named boundary
    groups (or explicit boundary elements / node positions), loads are
    accumulated, and ``assemble`` turns everything into an eliminated
    ``LinearSystem`` for the owned rows.

    Parameters
    ----------
    mesh : GeneralMesh
        Finite element mesh with quadrature data
    kernel : NonlocalStiffnessKernel
        Stiffness assembly kernel built on ``mesh``
    solver : Solver, optional
        Linear solver (default: SPSOLVE on the kernel)
    overlap_policy : str, optional
        Which prescribed value a DOF shared by several first-kind groups keeps:
        'first_nonzero' (default), 'first' or 'last'
    neumann_tolerance : float, optional
        Tolerance of the pure Neumann solvability check (default depends on dtype)
    reduce : callable, optional
        Collective sum over all owned node ranges, applied to the Neumann sum

    Attributes
    ----------
    groups : list
        (label, boundary elements, conditions) in insertion order
    point_loads : ndarray
        Accumulated nodal loads, shape (n_nodes * dof,)
    system : LinearSystem
        Last assembled system
    p1 : float
        Local weight of the last assembly
    influence : InfluenceFunction
        Influence kernel of the last assembly

    Methods
    -------
    add_boundary_condition(name, condition, elements=None, positions=None)
        Attach conditions to a boundary group
    set_source(source)
        Volume source (heat source or body force)
    add_point_forces(forces, node_ids=None, positions=None)
        Apply point loads
    assemble(p1=1.0, influence=None, theory=None, integral=0.0)
        Assemble and eliminate the system
    solve(p1=1.0, influence=None, theory=None, integral=0.0)
        Assemble and solve, returns (U, residual)
    solution(U)
        Post-processing object of a solution vector

    Notes
    -----
    - A scalar problem whose conditions are all of the second kind is a pure
      Neumann problem: it gets a compatibility row fixing ``∫ T = integral``
      and its load must sum to zero
    - Third-kind (convection) conditions are supported for scalar fields only

    Examples
    --------
    >>> from pyNLFEM.CPU import *
    >>> from pyNLFEM import Physics
    >>> mesh = StructuredMesh1D([(1.0, 4)])
    >>> kernel = NonlocalStiffnessKernel(mesh, Physics.SteadyHeatTransfer())
    >>> FE = FiniteElement(mesh, kernel)
    >>> FE.add_boundary_condition('left', Temperature(0.0))
    >>> FE.add_boundary_condition('right', Flux(1.0))
    >>> T, residual = FE.solve()
    """
    def __init__(self,
                 mesh: GeneralMesh,
                 kernel: NonlocalStiffnessKernel,
                 solver=None,
                 overlap_policy: str = 'first_nonzero',
                 neumann_tolerance: Optional[float] = None,
                 reduce=None):
        super().__init__()

        if kernel.mesh is not mesh:
            raise ValueError("The kernel must be built on the same mesh as the finite element session.")

        self.mesh = mesh
        self.kernel = kernel
        self.solver = solver if solver is not None else SPSOLVE(kernel)
        self.dtype = mesh.dtype
        self.dof = kernel.dof
        self.overlap_policy = overlap_policy
        self.neumann_tolerance = neumann_tolerance
        self.reduce = reduce

        self.groups = []
        self.point_loads = np.zeros(mesh.n_nodes * self.dof, dtype=np.float64)
        self.source = None
        self.KDTree = None

        self.system = None
        self.p1 = 1.0
        self.influence = None

        prescribed_values([], mesh.nodes, self.dof, overlap_policy)

    def _nodes_at(self, positions):
        if self.KDTree is None:
            self.KDTree = KDTree(self.mesh.nodes)
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, self.mesh.dim)
        _, node_ids = self.KDTree.query(positions)
        return np.asarray(node_ids, dtype=np.int32)

    def add_boundary_condition(self,
                               name: Optional[str],
                               condition,
                               elements: Optional[np.ndarray] = None,
                               positions: Optional[np.ndarray] = None):
        """
        Attach boundary conditions to a group.

        Parameters
        ----------
        name : str
            Name of a mesh boundary group. With ``elements`` or ``positions``
            it is only a label
        condition : BoundaryCondition or tuple
            One condition (or None) per field component; a bare condition for scalar fields
        elements : ndarray, optional
            Explicit boundary elements (edges in 2D, nodes in 1D)
        positions : ndarray, optional
            Physical coordinates of nodes forming a point group (KDTree search)

        Raises
        ------
        ValueError
            On an unknown group name, wrong condition count or unknown condition
        NotImplementedError
            For third-kind conditions on vector fields

        Examples
        --------
        >>> FE.add_boundary_condition('left', (Displacement(0.0), Displacement(0.0)))
        >>> FE.add_boundary_condition('top', (None, Pressure(-1.0)))
        """
        if elements is not None and positions is not None:
            raise ValueError("Only one of elements or positions should be provided.")

        conditions = normalize_conditions(condition, self.dof)

        if positions is not None:
            conn = self._nodes_at(positions)[:, None]
        elif elements is not None:
            conn = self.mesh._check_boundary(name, elements)
        else:
            if name not in self.mesh.boundaries:
                raise ValueError(f"Unknown boundary group '{name}'. Mesh groups: {sorted(self.mesh.boundaries)}")
            conn = self.mesh.boundaries[name]

        self.groups.append((name, conn, conditions))
        self.system = None

    def set_source(self, source):
        """
        Set the volume source (heat source or body force).

        Parameters
        ----------
        source : float, ndarray or callable
            Constant, one value per component, or a function of quadrature
            positions (n, dim) returning (n,) or (n, dof) values
        """
        self.source = source

    def add_point_forces(self,
                         forces: np.ndarray,
                         node_ids: Optional[np.ndarray] = None,
                         positions: Optional[np.ndarray] = None):
        """
        Apply point loads to specified nodes.

        Parameters
        ----------
        forces : ndarray
            Load vectors, shape (n_forces, dof) or (1, dof) for the same load everywhere
        node_ids : ndarray, optional
            Node indices for load application, shape (n_forces,)
        positions : ndarray, optional
            Physical coordinates for load application (uses KDTree search)

        Notes
        -----
        - Provide either node_ids OR positions
        - Multiple calls accumulate loads
        - Loads on constrained DOFs are overridden by the prescribed values
        """
        if node_ids is None and positions is None:
            raise ValueError("Either node_ids or positions must be provided.")
        if node_ids is not None and positions is not None:
            raise ValueError("Only one of node_ids or positions should be provided.")

        if positions is not None:
            node_ids = self._nodes_at(positions)
        node_ids = np.asarray(node_ids, dtype=np.int64).reshape(-1)
        forces = np.asarray(forces, dtype=np.float64).reshape(-1, self.dof)

        if forces.shape[0] != node_ids.shape[0] and forces.shape[0] != 1:
            raise ValueError("forces must have shape (N_forces, dof).")
        if forces.shape[0] == 1:
            forces = np.tile(forces, (node_ids.shape[0], 1))

        for i in range(self.dof):
            np.add.at(self.point_loads, node_ids * self.dof + i, forces[:, i])

    def reset_forces(self):
        """Clear point loads and the volume source."""
        self.point_loads[:] = 0
        self.source = None

    def reset_boundary_conditions(self):
        """Remove all boundary groups and constraints."""
        self.groups = []
        self.kernel.set_constraints([])
        self.kernel.has_cons = False
        self.system = None

    def is_neumann(self):
        """True if no group carries a first or third kind condition."""
        for _, _, conditions in self.groups:
            for condition in conditions:
                if condition is not None and condition.kind != BoundaryKind.SECOND_KIND:
                    return False
        return True

    def _group_nodes(self):
        return [(np.unique(conn), conditions) for _, conn, conditions in self.groups]

    def _source_values(self):
        mesh = self.mesh
        n_q = mesh.jxw.shape[0]
        s = self.source(mesh.quad_coords) if callable(self.source) else self.source
        s = np.asarray(s, dtype=np.float64)
        if s.ndim == 0 or s.shape == (self.dof,):
            return np.broadcast_to(s, (n_q, self.dof))
        if s.shape == (n_q,) and self.dof == 1:
            return s[:, None]
        if s.shape == (n_q, self.dof):
            return s
        raise ValueError(f"Source must be a scalar, shape ({self.dof},), ({n_q},) or ({n_q}, {self.dof}), got {s.shape}")

    def load_vector(self, integral=0.0):
        """
        Assembled load over all columns: source, boundary fluxes, convection and point loads.

        The compatibility entry of a pure Neumann problem holds ``integral``.
        """
        mesh = self.mesh
        n_dofs = mesh.n_nodes * self.dof
        load = np.zeros(self.kernel.shape[1], dtype=np.float64)

        if self.source is not None:
            s = self._source_values()
            w = mesh.jxw[mesh.row_qpoint] * mesh.shapes_flat
            for comp in range(self.dof):
                load[comp:n_dofs:self.dof] += np.bincount(mesh.row_node, weights=w * s[mesh.row_qpoint, comp], minlength=mesh.n_nodes)

        for _, conn, conditions in self.groups:
            for comp, condition in enumerate(conditions):
                if condition is None or condition.kind == BoundaryKind.FIRST_KIND:
                    continue
                c, jxw, N, coords = mesh.boundary_quadrature(conn)
                density = evaluate(condition.value, coords.reshape(-1, mesh.dim)).reshape(jxw.shape)
                if condition.kind == BoundaryKind.THIRD_KIND:
                    density = condition.heat_transfer * density
                np.add.at(load, self.dof * c + comp, np.einsum('bq,qm->bm', jxw * density, N))

        load[:n_dofs] += self.point_loads
        if self.kernel.neumann:
            load[n_dofs] = integral
        return load

    def _add_convection(self):
        for _, conn, conditions in self.groups:
            condition = conditions[0]
            if condition is None or condition.kind != BoundaryKind.THIRD_KIND:
                continue
            c, jxw, N, _ = self.mesh.boundary_quadrature(conn)
            Mb = condition.heat_transfer * np.einsum('bq,qm,qn->bmn', jxw, N, N)
            m = c.shape[1]
            rows = np.repeat(c[:, :, None], m, axis=2)
            cols = np.repeat(c[:, None, :], m, axis=1)
            self.kernel.scatter(rows.ravel(), cols.ravel(), Mb.ravel())

    def assemble(self, p1=1.0, influence=None, theory=None, integral=0.0):
        """
        Assemble the system and eliminate the prescribed values.

        Parameters
        ----------
        p1 : float, optional
            Local weight in [0, 1] (default: 1.0)
        influence : InfluenceFunction, optional
            Influence kernel, required for the nonlocal operator
        theory : str, optional
            Explicit operator kind, 'local' or 'nonlocal'
        integral : float, optional
            Prescribed ``∫ T`` of a pure Neumann problem (default: 0)

        Returns
        -------
        LinearSystem
            Eliminated system of the owned rows

        Raises
        ------
        UnsolvableNeumannProblem
            If the load of a pure Neumann problem does not sum to zero
        """
        groups = self._group_nodes()
        mask = first_kind_mask(groups, self.mesh.n_nodes, self.dof)
        self.kernel.set_constraints(mask)
        neumann = self.is_neumann()
        self.kernel.set_neumann(neumann)

        self.kernel.construct(p1=p1, influence=influence, theory=theory)
        self._add_convection()
        self.p1 = float(p1)
        self.influence = influence

        rows = self.kernel.owned_rows
        n_node_rows = self.dof * (self.kernel.last_node - self.kernel.first_node)
        load = self.load_vector(integral)
        constraints = np.concatenate([mask, [False]]) if neumann else mask

        system = LinearSystem(
            self.kernel.matrix_inner, self.kernel.matrix_bound,
            load[rows].astype(self.dtype), constraints[rows], first_row=rows[0] if rows.shape[0] else 0
        )

        if neumann:
            logger.info("Pure Neumann problem: adding the compatibility row")
            w = self.mesh.jxw[self.mesh.row_qpoint] * self.mesh.shapes_flat
            column = np.bincount(self.mesh.row_node, weights=w, minlength=self.mesh.n_nodes)
            self.kernel.set_neumann_column(column)
            system.check_neumann(n_node_rows, tolerance=self.neumann_tolerance, reduce=self.reduce)

        prescribed = prescribed_values(groups, self.mesh.nodes, self.dof, self.overlap_policy)
        if neumann:
            prescribed = np.concatenate([prescribed, [0.0]])
        system.eliminate(prescribed)

        self.system = system
        return system

    def solve(self, p1=1.0, influence=None, theory=None, integral=0.0):
        """
        Assemble and solve the finite element system.

        Parameters
        ----------
        p1, influence, theory, integral
            See ``assemble``

        Returns
        -------
        U : ndarray
            Nodal solution, shape (n_nodes * dof,). Interleaved DOFs: [ux0, uy0, ux1, uy1, ...]
        residual : float
            Normalized residual ||K@U - F|| / ||F|| reported by the solver

        Raises
        ------
        NotImplementedError
            If the kernel owns only part of the mesh
        """
        if not self.kernel.is_full_range:
            raise NotImplementedError("Solving needs the kernel to own the whole mesh; use assemble() for partial ranges.")
        system = self.assemble(p1=p1, influence=influence, theory=theory, integral=integral)
        U, residual = self.solver.solve(system.rhs)
        return U[:self.kernel.n_dofs], residual

    def solution(self, U):
        """
        Post-processing object for a solution of the last assembly.

        Returns
        -------
        StructuralSolution or HeatEquationSolution
        """
        cls = StructuralSolution if isinstance(self.kernel.physics, LinearElasticity) else HeatEquationSolution
        return cls(self.mesh, self.kernel.physics, U, p1=self.p1, influence=self.influence, neighbors=self.kernel.neighbors)

    def visualize_problem(self, ax=None, **kwargs):
        """
        Visualize a 2D mesh with first-kind constraints and point loads.

        Returns
        -------
        matplotlib.axes.Axes
        """
        if self.mesh.dim != 2:
            raise ValueError("visualize_problem supports 2D meshes only")
        mask = first_kind_mask(self._group_nodes(), self.mesh.n_nodes, self.dof)
        return plot_problem_2D(
            self.mesh,
            c=mask.reshape(-1, self.dof),
            f=self.point_loads.reshape(-1, self.dof),
            ax=ax,
            **kwargs)

    def visualize_field(self, field, ax=None, **kwargs):
        """
        Visualize a scalar field (temperature, a flux or stress component, ...).

        Parameters
        ----------
        field : ndarray
            One value per node (1D and 2D) or per element (2D)
        """
        if self.mesh.dim == 1:
            return plot_field_1D(self.mesh, field, ax=ax, **kwargs)
        return plot_field_2D(self.mesh, field, ax=ax, **kwargs)
