import numpy as np
import pytest

from pyNLFEM.CPU import (
    StructuredMesh1D, NonlocalStiffnessKernel, FiniteElement, PolynomialInfluence, NeighborMap,
    Temperature, Displacement, Pressure, HeatEquationSolution,
)
from pyNLFEM import Physics


def ramp(mesh, p1=1.0, influence=None):
    kernel = NonlocalStiffnessKernel(mesh, Physics.SteadyHeatTransfer(k=3.0))
    FE = FiniteElement(mesh, kernel)
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(1.0))
    T, _ = FE.solve(p1=p1, influence=influence)
    return FE, T


def test_local_flux_and_energy(mesh_1d):
    FE, T = ramp(mesh_1d)
    solution = FE.solution(T)
    assert isinstance(solution, HeatEquationSolution)
    assert np.allclose(solution.calc_flux(), 3.0)
    assert np.isclose(solution.calc_energy(), 0.5)


def test_nonlocal_flux_in_the_interior():
    mesh = StructuredMesh1D([(1.0, 40)])
    influence = PolynomialInfluence(0.1)
    FE, T = ramp(mesh, p1=1.0)
    # a linear field: the nonlocal part reproduces the local flux where the horizon is inside the domain
    solution = HeatEquationSolution(mesh, FE.kernel.physics, T, p1=0.5, influence=influence,
                                    neighbors=NeighborMap.from_radius(mesh, 0.1))
    flux = solution.calc_flux()[:, 0]
    x = mesh.nodes[:, 0]
    interior = (x > 0.2) & (x < 0.8)
    assert np.allclose(flux[interior], 3.0, rtol=2e-2)
    assert np.all(flux[[0, -1]] < 3.0)


def test_strain_stress_energy():
    mesh = StructuredMesh1D([(1.0, 4)])
    kernel = NonlocalStiffnessKernel(mesh, Physics.LinearElasticity(E=2.0))
    FE = FiniteElement(mesh, kernel)
    FE.add_boundary_condition('left', Displacement(0.0))
    FE.add_boundary_condition('right', Pressure(1.0))
    U, _ = FE.solve()
    solution = FE.solution(U)
    assert np.allclose(solution.calc_strain(), 0.5)
    assert np.allclose(solution.calc_stress(), 1.0)
    assert np.isclose(solution.calc_energy(), 0.25)
    assert np.allclose(solution.von_mises(), 1.0)


def test_length_mismatch(mesh_1d, heat):
    with pytest.raises(ValueError):
        HeatEquationSolution(mesh_1d, heat, np.zeros(4))


def test_nonlocal_needs_influence(mesh_1d, heat):
    with pytest.raises(ValueError):
        HeatEquationSolution(mesh_1d, heat, np.zeros(5), p1=0.5)
