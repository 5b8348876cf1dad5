import numpy as np
import pytest

from pyNLFEM.CPU import NeighborMap, StructuredMesh1D


def is_symmetric(neighbors):
    pairs = {(e, int(f)) for e in range(len(neighbors)) for f in neighbors[e]}
    return all((f, e) in pairs for e, f in pairs)


def test_one_hop_radius(mesh_1d):
    neighbors = NeighborMap.from_radius(mesh_1d, 0.3)
    assert np.array_equal(neighbors[0], [0, 1])
    assert np.array_equal(neighbors[2], [1, 2, 3])
    assert is_symmetric(neighbors)


def test_self_only_for_tiny_radius(mesh_1d):
    neighbors = NeighborMap.from_radius(mesh_1d, 0.01)
    assert np.array_equal(neighbors.neighbors_flat, np.arange(4))


def test_per_element_radius_is_symmetrized():
    mesh = StructuredMesh1D([(1.0, 4)])
    # element 0 reaches element 2, element 2 only sees its immediate neighbours
    neighbors = NeighborMap.from_radius(mesh, np.array([0.55, 0.3, 0.3, 0.3]))
    assert 2 in neighbors[0]
    assert 0 in neighbors[2]
    assert is_symmetric(neighbors)


def test_from_lists_adds_self_and_mirror():
    neighbors = NeighborMap.from_lists([[1], [], []])
    assert np.array_equal(neighbors[0], [0, 1])
    assert np.array_equal(neighbors[1], [0, 1])
    assert np.array_equal(neighbors[2], [2])


def test_from_lists_out_of_range():
    with pytest.raises(ValueError):
        NeighborMap.from_lists([[3], [], []])


def test_local_map():
    neighbors = NeighborMap.local(3)
    assert [list(neighbors[e]) for e in range(3)] == [[0], [1], [2]]


def test_check_mesh_mismatch(mesh_1d):
    with pytest.raises(ValueError):
        NeighborMap.local(3).check(mesh_1d)
