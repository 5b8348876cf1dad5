from ..core.CPU._post import nonlocal_node_integral
from ..core.CPU._portrait import node_element_map, node_chunks
from ..stiffness.CPU._FEA import MAX_NONLOCAL_WEIGHT
from numba import get_num_threads
import numpy as np
import logging
logger = logging.getLogger(__name__)


class Solution:
    """
    Base class of solved fields.

    Recovers the generalised gradient ``Bop u`` at the quadrature points,
    applies the material matrix and averages the result to the nodes. For a
    nonlocal run the nodal value is ``p1 D grad`` averaged over the incident
    elements plus ``(1 - p1)`` times the influence-weighted integral of
    ``D grad`` over the horizon of the node.

    Parameters
    ----------
    mesh : GeneralMesh
        Mesh the field was solved on
    physics : Physx
        Physics model of the solve
    U : ndarray
        Nodal solution, shape (n_nodes * dof,)
    p1 : float, optional
        Local weight of the solve (default: 1.0)
    influence : InfluenceFunction, optional
        Influence kernel of the solve (required when p1 < 1)
    neighbors : NeighborMap, optional
        Neighbour map of the solve (required when p1 < 1)

    Raises
    ------
    ValueError
        If the solution length does not match the mesh
    """
    def __init__(self, mesh, physics, U, p1=1.0, influence=None, neighbors=None):
        self.mesh = mesh
        self.physics = physics
        self.dof = physics.dof(mesh.dim)
        self.n_strain = physics.n_strain(mesh.dim)
        U = np.asarray(U)
        if U.shape[0] != mesh.n_nodes * self.dof:
            raise ValueError(f"Solution vector has length {U.shape[0]}, expected {mesh.n_nodes * self.dof} ({mesh.n_nodes} nodes x {self.dof} dof)")
        self.U = U
        self.p1 = float(p1)
        self.is_nonlocal = self.p1 < MAX_NONLOCAL_WEIGHT
        if self.is_nonlocal and (influence is None or neighbors is None):
            raise ValueError("Nonlocal post-processing needs the influence function and the neighbour map of the solve")
        self.influence = influence
        self.neighbors = neighbors
        self._gradient = None

    def gradient_in_qpoints(self):
        """Generalised gradient ``Bop u`` at every quadrature point, shape (n_qpoints, n_strain)."""
        if self._gradient is None:
            mesh = self.mesh
            B = self.physics.operator(mesh.shapes_flat, mesh.grads_flat.reshape(-1, mesh.dim))
            u = self.U.reshape(-1, self.dof)[mesh.row_node]
            contrib = np.einsum('rsb,rb->rs', B, u)
            self._gradient = np.zeros((mesh.jxw.shape[0], self.n_strain))
            for s in range(self.n_strain):
                self._gradient[:, s] = np.bincount(mesh.row_qpoint, weights=contrib[:, s], minlength=mesh.jxw.shape[0])
        return self._gradient

    def material_response(self):
        """``D grad`` at every quadrature point."""
        D = self.physics.material(self.mesh)
        return np.einsum('qst,qt->qs', D[self.mesh.qpoint_element], self.gradient_in_qpoints())

    def to_nodes(self, values):
        """
        Average quadrature values to the nodes, weighted by ``jxw`` over the incident elements.
        """
        mesh = self.mesh
        w = mesh.jxw[mesh.row_qpoint]
        den = np.bincount(mesh.row_node, weights=w, minlength=mesh.n_nodes)
        out = np.zeros((mesh.n_nodes, values.shape[1]))
        for s in range(values.shape[1]):
            out[:, s] = np.bincount(mesh.row_node, weights=w * values[mesh.row_qpoint, s], minlength=mesh.n_nodes)
        used = den > 0
        out[used] /= den[used, None]
        return out

    def mixed_response(self):
        """Nodal ``p1 D grad`` plus the nonlocal contribution, shape (n_nodes, n_strain)."""
        mesh = self.mesh
        response = self.material_response()
        out = self.p1 * self.to_nodes(response)
        if self.is_nonlocal:
            el_ids, sorter, node_ids = node_element_map(mesh.elements_flat, mesh.elements_ptr, mesh.n_nodes)
            chunks = node_chunks(0, mesh.n_nodes, get_num_threads())
            out += (1.0 - self.p1) * nonlocal_node_integral(
                chunks, mesh.nodes, el_ids, sorter, node_ids,
                self.neighbors.neighbors_flat, self.neighbors.neighbors_ptr,
                mesh.quad_ptr, mesh.jxw, mesh.quad_coords, np.ascontiguousarray(response),
                self.influence.kind, self.influence.params(mesh.dim)
            )
        return out

    def integrate(self, nodal):
        """Integral of a nodal scalar field over the mesh."""
        mesh = self.mesh
        return float(np.sum(mesh.jxw[mesh.row_qpoint] * mesh.shapes_flat * np.asarray(nodal)[mesh.row_node]))


class HeatEquationSolution(Solution):
    """
    Solved temperature field.

    Attributes
    ----------
    temperature : ndarray
        Nodal temperature, shape (n_nodes,)

    Methods
    -------
    calc_flux()
        Nodal heat flux ``λ ∇T`` (local plus nonlocal), shape (n_nodes, dim)
    calc_energy()
        Integral of the temperature over the domain

    Examples
    --------
    >>> solution = FE.solution(T)
    >>> flux = solution.calc_flux()
    """
    def __init__(self, mesh, physics, U, p1=1.0, influence=None, neighbors=None):
        super().__init__(mesh, physics, U, p1, influence, neighbors)
        self.temperature = self.U
        self.flux = None

    def calc_flux(self):
        if self.flux is None:
            self.flux = self.mixed_response()
        return self.flux

    def calc_energy(self):
        return self.integrate(self.temperature)


class StructuralSolution(Solution):
    """
    Solved displacement field.

    Attributes
    ----------
    displacement : ndarray
        Nodal displacement, shape (n_nodes, dim)

    Methods
    -------
    calc_strain()
        Nodal strain ``[ε_xx, ε_yy, γ_xy]`` (``[ε_xx]`` in 1D), local average
    calc_stress()
        Nodal stress, local plus nonlocal
    calc_energy()
        Strain energy ``½ ∫ ε:σ`` of the local material law
    von_mises()
        Nodal von Mises stress (plane stress form; ``|σ|`` in 1D)
    """
    def __init__(self, mesh, physics, U, p1=1.0, influence=None, neighbors=None):
        super().__init__(mesh, physics, U, p1, influence, neighbors)
        self.displacement = self.U.reshape(-1, self.dof)
        self.stress = None

    def calc_strain(self):
        return self.to_nodes(self.gradient_in_qpoints())

    def calc_stress(self):
        if self.stress is None:
            self.stress = self.mixed_response()
        return self.stress

    def calc_energy(self):
        strain = self.gradient_in_qpoints()
        stress = self.material_response()
        return float(0.5 * np.sum(self.mesh.jxw * np.einsum('qs,qs->q', strain, stress)))

    def von_mises(self):
        s = self.calc_stress()
        if s.shape[1] == 1:
            return np.abs(s[:, 0])
        return np.sqrt(s[:, 0]**2 - s[:, 0] * s[:, 1] + s[:, 1]**2 + 3 * s[:, 2]**2)
