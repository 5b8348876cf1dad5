import numpy as np
import pytest

from pyNLFEM.CPU import StructuredMesh1D, StructuredMesh2D
from pyNLFEM import Physics


def csr_pattern(K):
    """Set of stored (row, col) positions, explicit zeros included."""
    rows = np.repeat(np.arange(K.shape[0]), np.diff(K.indptr))
    return set(zip(rows.tolist(), K.indices.tolist()))


def brute_force_pattern(mesh, neighbors, constraints, dof, first=0):
    """Inner and bound positions from a direct loop over element pairs."""
    inner, bound = set(), set()
    for e in range(mesh.n_elements):
        for f in neighbors[e]:
            for n in mesh.element(e):
                for m in mesh.element(f):
                    for a in range(dof):
                        for b in range(dof):
                            row, col = dof * n + a, dof * m + b
                            lrow = row - dof * first
                            if constraints[row]:
                                if row == col:
                                    inner.add((lrow, col))
                            elif constraints[col]:
                                bound.add((lrow, col))
                            elif row <= col:
                                inner.add((lrow, col))
    return inner, bound


@pytest.fixture
def mesh_1d():
    return StructuredMesh1D([(1.0, 4)])


@pytest.fixture
def mesh_2d():
    return StructuredMesh2D(nx=3, ny=2, lx=1.5, ly=1.0)


@pytest.fixture
def heat():
    return Physics.SteadyHeatTransfer(k=1.0)


@pytest.fixture
def elasticity():
    return Physics.LinearElasticity(E=1.0, nu=0.3, type='PlaneStress')
