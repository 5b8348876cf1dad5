import numpy as np
import pytest

from pyNLFEM.CPU import (
    StructuredMesh1D, StructuredMesh2D, NonlocalStiffnessKernel, FiniteElement, CG, MINRES,
    PolynomialInfluence, Temperature, Displacement, Flux, Pressure, Convection,
    UnsolvableNeumannProblem, StructuralSolution,
)
from pyNLFEM import Physics


def heat_session(mesh, **kwargs):
    kernel = NonlocalStiffnessKernel(mesh, Physics.SteadyHeatTransfer(k=1.0))
    return FiniteElement(mesh, kernel, **kwargs)


def test_ramp_with_flux(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Flux(1.0))

    system = FE.assemble()
    K = system.inner.toarray()
    assert np.array_equal(K[0], [1, 0, 0, 0, 0])
    assert np.allclose(np.triu(K[1:, 1:], 2), 0.0)
    assert np.isclose(system.rhs[-1], 1.0)

    T, residual = FE.solve()
    assert np.allclose(T, mesh_1d.nodes[:, 0])
    assert residual < 1e-10


def test_dirichlet_both_ends_with_cg(mesh_1d):
    kernel = NonlocalStiffnessKernel(mesh_1d, Physics.SteadyHeatTransfer(k=2.0))
    FE = FiniteElement(mesh_1d, kernel, solver=CG(kernel, tol=1e-12))
    FE.add_boundary_condition('left', Temperature(1.0))
    FE.add_boundary_condition('right', Temperature(3.0))
    T, _ = FE.solve()
    assert np.allclose(T, 1.0 + 2.0 * mesh_1d.nodes[:, 0])


def test_constant_source_is_nodally_exact():
    mesh = StructuredMesh1D([(1.0, 8)])
    FE = heat_session(mesh)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(0.0))
    FE.set_source(2.0)
    T, _ = FE.solve()
    x = mesh.nodes[:, 0]
    assert np.allclose(T, x * (1.0 - x))


def test_quadratic_elements_with_source_function():
    mesh = StructuredMesh1D([(1.0, 3)], order=2)
    FE = heat_session(mesh)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(0.0))
    FE.set_source(lambda x: np.full(x.shape[0], 2.0))
    T, _ = FE.solve()
    x = mesh.nodes[:, 0]
    assert np.allclose(T, x * (1.0 - x))


def test_convection(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Temperature(1.0))
    FE.add_boundary_condition('right', Convection(1.0, 0.0))
    T, _ = FE.solve()
    assert np.allclose(T, 1.0 - 0.5 * mesh_1d.nodes[:, 0])


def test_pure_neumann(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Flux(-1.0))
    FE.add_boundary_condition('right', Flux(1.0))
    assert FE.is_neumann()

    T, _ = FE.solve()
    assert T.shape == (5,)
    assert np.allclose(T, mesh_1d.nodes[:, 0] - 0.5)


def test_pure_neumann_prescribed_integral(mesh_1d):
    kernel = NonlocalStiffnessKernel(mesh_1d, Physics.SteadyHeatTransfer())
    FE = FiniteElement(mesh_1d, kernel, solver=MINRES(kernel))
    FE.add_boundary_condition('left', Flux(-1.0))
    FE.add_boundary_condition('right', Flux(1.0))
    T, _ = FE.solve(integral=2.0)
    assert np.allclose(T, mesh_1d.nodes[:, 0] + 1.5, atol=1e-6)


def test_unsolvable_neumann(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Flux(1.0))
    FE.add_boundary_condition('right', Flux(1.0))
    with pytest.raises(UnsolvableNeumannProblem) as err:
        FE.solve()
    assert np.isclose(err.value.residual, 2.0)


def test_unknown_group(mesh_1d):
    FE = heat_session(mesh_1d)
    with pytest.raises(ValueError):
        FE.add_boundary_condition('top', Temperature(0.0))


def test_elimination_is_idempotent_in_session(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Temperature(2.0))
    FE.add_boundary_condition('right', Flux(1.0))
    first = FE.assemble().rhs.copy()
    second = FE.assemble().rhs
    assert np.array_equal(first, second)


def test_partial_range_assembly(mesh_1d):
    influence = PolynomialInfluence(0.3)
    full = heat_session(mesh_1d)
    full.add_boundary_condition('left', Temperature(2.0))
    full.add_boundary_condition('right', Flux(1.0))
    rhs = full.assemble(p1=0.5, influence=influence).rhs

    kernel = NonlocalStiffnessKernel(mesh_1d, Physics.SteadyHeatTransfer(), first_node=0, last_node=3)
    part = FiniteElement(mesh_1d, kernel)
    part.add_boundary_condition('left', Temperature(2.0))
    part.add_boundary_condition('right', Flux(1.0))
    assert np.allclose(part.assemble(p1=0.5, influence=influence).rhs, rhs[:3])
    with pytest.raises(NotImplementedError):
        part.solve(p1=0.5, influence=influence)


def test_nonlocal_solution_is_antisymmetric():
    mesh = StructuredMesh1D([(1.0, 20)])
    FE = heat_session(mesh)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(1.0))
    T, _ = FE.solve(p1=0.5, influence=PolynomialInfluence(0.12))
    assert np.allclose(T + T[::-1], 1.0)
    assert np.isclose(T[0], 0.0) and np.isclose(T[-1], 1.0)


def test_point_forces_by_position(mesh_1d):
    FE = heat_session(mesh_1d)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_point_forces([[1.0]], positions=[[1.0]])
    T, _ = FE.solve()
    assert np.allclose(T, mesh_1d.nodes[:, 0])


def test_bar_under_traction():
    mesh = StructuredMesh1D([(1.0, 4)])
    kernel = NonlocalStiffnessKernel(mesh, Physics.LinearElasticity(E=2.0))
    FE = FiniteElement(mesh, kernel)
    FE.add_boundary_condition('left', Displacement(0.0))
    FE.add_boundary_condition('right', Pressure(1.0))
    U, _ = FE.solve()
    assert np.allclose(U, mesh.nodes[:, 0] / 2.0)
    assert isinstance(FE.solution(U), StructuralSolution)


@pytest.mark.parametrize("element", ['quad4', 'triangle3'])
def test_plate_uniaxial_tension(element):
    mesh = StructuredMesh2D(nx=4, ny=2, lx=2.0, ly=1.0, element=element)
    kernel = NonlocalStiffnessKernel(mesh, Physics.LinearElasticity(E=1.0, nu=0.3))
    FE = FiniteElement(mesh, kernel)
    FE.add_boundary_condition('left', (Displacement(0.0), None))
    FE.add_boundary_condition('pin', (None, Displacement(0.0)), positions=[[0.0, 0.0]])
    FE.add_boundary_condition('right', (Pressure(1.0), None))

    U, _ = FE.solve()
    assert np.allclose(U[0::2], mesh.nodes[:, 0])
    assert np.allclose(U[1::2], -0.3 * mesh.nodes[:, 1])


def test_plate_heat_on_triangles():
    mesh = StructuredMesh2D(nx=3, ny=3, lx=1.0, ly=1.0, element='triangle3')
    FE = heat_session(mesh)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(1.0))
    T, _ = FE.solve()
    assert np.allclose(T, mesh.nodes[:, 0])


def test_vector_field_without_supports(mesh_2d, elasticity):
    FE = FiniteElement(mesh_2d, NonlocalStiffnessKernel(mesh_2d, elasticity))
    FE.add_boundary_condition('right', (Pressure(1.0), None))
    with pytest.raises(NotImplementedError):
        FE.assemble()


def test_kernel_mesh_mismatch(mesh_1d, mesh_2d, heat):
    with pytest.raises(ValueError):
        FiniteElement(mesh_1d, NonlocalStiffnessKernel(mesh_2d, heat))
