import numpy as np
import pytest

from pyNLFEM.CPU import NonlocalStiffnessKernel, PolynomialInfluence, NormalInfluence, StructuredMesh1D
from pyNLFEM import Physics

from conftest import csr_pattern


def dense_reference(mesh, physics, p1, influence=None, neighbors=None):
    """Direct double loop over elements and quadrature points."""
    dof = physics.dof(mesh.dim)
    n_strain = physics.n_strain(mesh.dim)
    B = physics.operator(mesh.shapes_flat, mesh.grads_flat.reshape(-1, mesh.dim))
    D = physics.material(mesh)
    K = np.zeros((mesh.n_nodes * dof, mesh.n_nodes * dof))

    def element_data(e):
        nodes = mesh.element(e)
        dofs = (dof * nodes[:, None] + np.arange(dof)).ravel()
        out = []
        for qi, q in enumerate(range(mesh.quad_ptr[e], mesh.quad_ptr[e + 1])):
            rows = mesh.shapes_ptr[e] + qi * nodes.shape[0] + np.arange(nodes.shape[0])
            out.append((q, B[rows].transpose(1, 0, 2).reshape(n_strain, -1)))
        return dofs, out

    for e in range(mesh.n_elements):
        dofs, data = element_data(e)
        for q, Bq in data:
            K[np.ix_(dofs, dofs)] += p1 * mesh.jxw[q] * Bq.T @ D[e] @ Bq

    if p1 < 1.0:
        for eL in range(mesh.n_elements):
            dofsL, dataL = element_data(eL)
            for eNL in neighbors[eL]:
                dofsNL, dataNL = element_data(eNL)
                Dm = 0.5 * (D[eL] + D[eNL])
                for qL, BL in dataL:
                    for qNL, BNL in dataNL:
                        g = influence(mesh.quad_coords[qL], mesh.quad_coords[qNL])
                        w = (1.0 - p1) * mesh.jxw[qL] * mesh.jxw[qNL] * g
                        K[np.ix_(dofsL, dofsNL)] += w * BL.T @ Dm @ BNL
    return K


def test_local_1d_values(mesh_1d, heat):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    kernel.set_constraints([0])
    kernel.construct()
    K = kernel.matrix_inner.toarray()
    expected = np.array([
        [1, 0, 0, 0, 0],
        [0, 8, -4, 0, 0],
        [0, 0, 8, -4, 0],
        [0, 0, 0, 8, -4],
        [0, 0, 0, 0, 4],
    ], dtype=float)
    assert np.allclose(K, expected)
    assert np.allclose(kernel.matrix_bound.toarray()[1, 0], -4.0)


def test_nonlocal_heat_matches_dense_reference():
    mesh = StructuredMesh1D([(0.4, 3), (0.6, 3)])
    physics = Physics.SteadyHeatTransfer(k=np.array([1.0, 1.0, 1.0, 3.0, 3.0, 3.0]))
    influence = PolynomialInfluence(0.25)
    kernel = NonlocalStiffnessKernel(mesh, physics, n_chunks=2)
    kernel.construct(p1=0.4, influence=influence)

    K = dense_reference(mesh, physics, 0.4, influence, kernel.neighbors)
    assert np.allclose(kernel.full().toarray(), K)


def test_nonlocal_elasticity_matches_dense_reference(mesh_2d, elasticity):
    influence = NormalInfluence(0.6)
    kernel = NonlocalStiffnessKernel(mesh_2d, elasticity, n_chunks=3)
    kernel.construct(p1=0.6, influence=influence)

    K = dense_reference(mesh_2d, elasticity, 0.6, influence, kernel.neighbors)
    assert np.allclose(K, K.T)
    assert np.allclose(kernel.full().toarray(), K)


def test_local_limit(mesh_2d, heat):
    local = NonlocalStiffnessKernel(mesh_2d, heat)
    local.construct(p1=1.0)
    forced = NonlocalStiffnessKernel(mesh_2d, heat)
    forced.construct(p1=1.0, influence=PolynomialInfluence(0.6), theory='nonlocal')

    assert forced.theory == 'nonlocal'
    assert csr_pattern(local.matrix_inner) < csr_pattern(forced.matrix_inner)
    assert np.allclose(local.full().toarray(), forced.full().toarray())


def test_weight_boundary_selects_operator(mesh_1d, heat):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    assert kernel.operator_kind(0.9995) == 'local'
    assert kernel.operator_kind(0.5) == 'nonlocal'
    assert kernel.operator_kind(0.5, theory='local') == 'local'


def test_deterministic_across_chunks(mesh_2d, elasticity):
    influence = PolynomialInfluence(0.6)
    mask = np.zeros(mesh_2d.n_nodes * 2, dtype=bool)
    mask[:8:2] = True
    results = []
    for n_chunks in (1, 2, 5):
        kernel = NonlocalStiffnessKernel(mesh_2d, elasticity, n_chunks=n_chunks)
        kernel.set_constraints(mask)
        kernel.construct(p1=0.3, influence=influence)
        results.append((kernel.matrix_inner.copy(), kernel.matrix_bound.copy()))

    for inner, bound in results[1:]:
        assert np.array_equal(inner.indptr, results[0][0].indptr)
        assert np.array_equal(inner.indices, results[0][0].indices)
        assert np.array_equal(inner.data, results[0][0].data)
        assert np.array_equal(bound.data, results[0][1].data)


def test_constrained_rows_are_identity(mesh_2d, elasticity):
    kernel = NonlocalStiffnessKernel(mesh_2d, elasticity)
    mask = np.zeros(mesh_2d.n_nodes * 2, dtype=bool)
    mask[[0, 1, 9]] = True
    kernel.set_constraints(mask)
    kernel.construct(p1=0.5, influence=PolynomialInfluence(0.6))

    K = kernel.matrix_inner
    for row in np.where(mask)[0]:
        assert np.array_equal(K.indices[K.indptr[row]:K.indptr[row + 1]], [row])
        assert K.data[K.indptr[row]] == 1.0
        assert kernel.matrix_bound.indptr[row] == kernel.matrix_bound.indptr[row + 1]


def test_values_reset_between_assemblies(mesh_1d, heat):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    first = kernel.construct(p1=0.5, influence=PolynomialInfluence(0.3)).toarray()
    K = kernel.construct(p1=0.5, influence=PolynomialInfluence(0.3))
    assert np.allclose(K.toarray(), first)


def test_portrait_is_reused(mesh_1d, heat):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    K1 = kernel.construct()
    K2 = kernel.construct()
    assert K1 is K2
    kernel.set_constraints([4])
    K3 = kernel.construct()
    assert K3 is not K1


def test_dot_matches_full(mesh_2d, elasticity):
    kernel = NonlocalStiffnessKernel(mesh_2d, elasticity)
    kernel.construct(p1=0.7, influence=PolynomialInfluence(0.6))
    x = np.random.default_rng(1).standard_normal(kernel.shape[1])
    assert np.allclose(kernel @ x, kernel.full() @ x)
    assert np.allclose(kernel.diagonal(), kernel.full().diagonal())


def test_partial_range_matches_full(mesh_1d, heat):
    influence = PolynomialInfluence(0.3)
    full = NonlocalStiffnessKernel(mesh_1d, heat)
    full.set_constraints([0])
    full.construct(p1=0.5, influence=influence)
    part = NonlocalStiffnessKernel(mesh_1d, heat, neighbors=full.neighbors, first_node=1, last_node=3)
    part.set_constraints([0])
    part.construct(p1=0.5, influence=influence)

    assert part.shape == (2, 5)
    assert np.allclose(part.matrix_inner.toarray(), full.matrix_inner.toarray()[1:3])
    assert np.allclose(part.matrix_bound.toarray(), full.matrix_bound.toarray()[1:3])
    assert np.allclose(part.diagonal(), full.diagonal()[1:3])
    with pytest.raises(NotImplementedError):
        part.dot(np.ones(5))


def test_scatter_routing(mesh_1d, heat):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    kernel.set_constraints([0])
    kernel.construct()
    kernel.scatter([1, 2, 0], [2, 1, 0], [0.5, 0.5, 7.0])
    K = kernel.matrix_inner.toarray()
    assert np.isclose(K[1, 2], -3.5)
    assert K[0, 0] == 1.0
    with pytest.raises(ValueError):
        kernel.scatter([1], [4], [1.0])


@pytest.mark.parametrize("kwargs", [dict(p1=1.5), dict(p1=0.5), dict(p1=1.0, theory='peridynamic')])
def test_invalid_construct_arguments(mesh_1d, heat, kwargs):
    kernel = NonlocalStiffnessKernel(mesh_1d, heat)
    with pytest.raises(ValueError):
        kernel.construct(**kwargs)


def test_mass_operator(mesh_1d):
    kernel = NonlocalStiffnessKernel(mesh_1d, Physics.Mass(rho=2.0))
    kernel.construct()
    M = kernel.full().toarray()
    assert np.isclose(M.sum(), 2.0 * mesh_1d.volume)
    assert np.isclose(M[0, 0], 2.0 * 0.25 / 3.0)
    assert np.isclose(M[0, 1], 2.0 * 0.25 / 6.0)
