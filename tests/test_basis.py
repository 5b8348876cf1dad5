import numpy as np
import pytest

from pyNLFEM.physics._basis import reference_element, element_for, gauss_points


ELEMENTS = ['segment2', 'segment3', 'segment4', 'triangle3', 'triangle6', 'quad4', 'quad8', 'quad9']


@pytest.mark.parametrize("name", ELEMENTS)
def test_partition_of_unity(name):
    element = reference_element(name)
    points, weights, N, dN = element.tables()
    assert np.allclose(N.sum(axis=1), 1.0)
    assert np.allclose(dN.sum(axis=1), 0.0)


@pytest.mark.parametrize("name", ELEMENTS)
def test_kronecker_property(name):
    element = reference_element(name)
    N = element.shapes(element.nodes)
    assert np.allclose(N, np.eye(element.n_nodes))


def test_reference_areas():
    assert np.isclose(gauss_points('segment', 2)[1].sum(), 2.0)
    assert np.isclose(gauss_points('quadrilateral', 2)[1].sum(), 4.0)
    assert np.isclose(gauss_points('triangle', 2)[1].sum(), 0.5)


def test_triangle_rule_exact_for_quadratics():
    points, weights = gauss_points('triangle', 2)
    # ∫ x^2 over the unit triangle is 1/12
    assert np.isclose(np.sum(weights * points[:, 0]**2), 1.0 / 12.0)


def test_unsupported_element():
    with pytest.raises(ValueError):
        element_for(2, 5)
