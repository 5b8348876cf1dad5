import numpy as np
import pytest

from pyNLFEM.CPU import ConstantInfluence, PolynomialInfluence, NormalInfluence
from pyNLFEM.core.CPU._influence import influence_value


@pytest.mark.parametrize("influence", [ConstantInfluence(0.2), PolynomialInfluence(0.2), PolynomialInfluence(0.2, p=1, q=2), NormalInfluence(0.2)])
def test_normalised_1d(influence):
    x = np.linspace(-0.25, 0.25, 50001)
    g = influence(np.zeros((x.shape[0], 1)), x[:, None])
    assert np.isclose(np.sum(g) * (x[1] - x[0]), 1.0, atol=2e-3)


@pytest.mark.parametrize("influence", [ConstantInfluence(0.3), PolynomialInfluence(0.3), NormalInfluence(0.3)])
def test_normalised_2d(influence):
    t = np.linspace(-0.3, 0.3, 601)
    X, Y = np.meshgrid(t, t)
    points = np.stack([X.reshape(-1), Y.reshape(-1)], axis=-1)
    g = influence(np.zeros_like(points), points)
    assert np.isclose(np.sum(g) * (t[1] - t[0])**2, 1.0, atol=1e-2)


def test_anisotropic_horizon():
    influence = PolynomialInfluence([0.2, 0.1])
    assert influence([0.0, 0.0], [0.15, 0.0]) > 0.0
    assert influence([0.0, 0.0], [0.0, 0.15]) == 0.0


@pytest.mark.parametrize("influence", [ConstantInfluence(0.3), PolynomialInfluence(0.3, p=3, q=2), NormalInfluence(0.3, sigma=0.5)])
def test_compiled_kernel_matches(influence):
    rng = np.random.default_rng(0)
    params = influence.params(2)
    for _ in range(20):
        x, y = rng.uniform(-0.3, 0.3, 2), rng.uniform(-0.3, 0.3, 2)
        assert np.isclose(influence_value(influence.kind, params, x, y), influence(x, y))


def test_symmetric():
    influence = NormalInfluence(0.4)
    x, y = np.array([0.1, 0.2]), np.array([-0.05, 0.3])
    assert influence(x, y) == influence(y, x)


def test_invalid_radius():
    with pytest.raises(ValueError):
        PolynomialInfluence(0.0)
