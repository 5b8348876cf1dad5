import numpy as np
import pytest

from pyNLFEM.CPU import NonlocalStiffnessKernel, CG, MINRES, SPLU, SPSOLVE, PolynomialInfluence
from pyNLFEM.solvers.CPU._solvers import cg


@pytest.fixture
def constructed(mesh_2d, heat):
    kernel = NonlocalStiffnessKernel(mesh_2d, heat)
    left = np.where(np.isclose(mesh_2d.nodes[:, 0], 0.0))[0]
    kernel.set_constraints(left)
    kernel.construct(p1=0.5, influence=PolynomialInfluence(0.6))
    rhs = np.random.default_rng(2).standard_normal(kernel.shape[0])
    return kernel, rhs


@pytest.mark.parametrize("solver_cls", [SPSOLVE, SPLU, MINRES])
def test_direct_and_minres(constructed, solver_cls):
    kernel, rhs = constructed
    U, residual = solver_cls(kernel)(rhs)
    assert residual < 1e-8
    assert np.allclose(kernel.full() @ U, rhs)


def test_cg_warm_start(mesh_2d, heat):
    kernel = NonlocalStiffnessKernel(mesh_2d, heat)
    kernel.set_constraints(np.where(np.isclose(mesh_2d.nodes[:, 0], 0.0))[0])
    kernel.construct()
    rhs = np.random.default_rng(3).standard_normal(kernel.shape[0])
    solver = CG(kernel, tol=1e-10)
    U, residual = solver.solve(rhs)
    assert residual < 1e-9
    assert solver.last_x0 is U
    solver.reset()
    assert solver.last_x0 is None


def test_cg_zero_rhs(constructed):
    kernel, _ = constructed
    x, iterations = cg(kernel, np.zeros(kernel.shape[0]))
    assert np.all(x == 0.0)
    assert iterations == 0


def test_splu_reuses_factorization(constructed):
    kernel, rhs = constructed
    solver = SPLU(kernel)
    U1, _ = solver(rhs)
    lu = solver._lu
    U2, _ = solver(2 * rhs)
    assert solver._lu is lu
    assert np.allclose(U2, 2 * U1)
    kernel.construct(p1=0.8, influence=PolynomialInfluence(0.6))
    solver(rhs)
    assert solver._lu is not lu


def test_cg_without_preconditioner(mesh_2d, heat):
    kernel = NonlocalStiffnessKernel(mesh_2d, heat)
    kernel.set_constraints(np.where(np.isclose(mesh_2d.nodes[:, 0], 0.0))[0])
    kernel.construct()
    rhs = np.random.default_rng(5).standard_normal(kernel.shape[0])
    U, residual = CG(kernel, tol=1e-10, precondition=False).solve(rhs)
    assert residual < 1e-9
    assert np.allclose(kernel.full() @ U, rhs)
