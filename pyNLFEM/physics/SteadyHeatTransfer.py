from ._physx import Physx, per_element
import numpy as np


class SteadyHeatTransfer(Physx):
    """
    Steady-state heat conduction physics.

    Implements Fourier heat conduction ∇·(λ∇T) + Q = 0 where T is the
    temperature, λ the conductivity tensor and Q the heat source. The
    operator is the temperature gradient and the material matrix the
    conductivity tensor.

    Parameters
    ----------
    k : float or ndarray, optional
        Thermal conductivity (default: 1.0). Its shape depends on ``material``:
        scalar for 'isotropic', (dim,) for 'orthotropic', (dim, dim) for
        'anisotropic'; a leading (n_elements,) axis gives per-element values
    material : str, optional
        'isotropic' (default), 'orthotropic' or 'anisotropic'

    Attributes
    ----------
    k : ndarray
        Thermal conductivity as given
    material_type : str
        Conductivity model

    Notes
    -----
    - **DOF**: 1 per node (temperature)
    - **BCs**: first kind (temperature), second kind (flux), third kind (convection)
    - **Elements**: Lagrange segments, triangles and quadrilaterals
    - The flux recovered in post-processing is ``λ∇T``, the sign convention of
      the prescribed boundary flux (inflow is positive)

    Examples
    --------
    >>> from pyNLFEM import Physics
    >>> physics = Physics.SteadyHeatTransfer(k=[1.0, 0.1], material='orthotropic')
    """
    def __init__(self, k=1.0, material='isotropic'):
        super().__init__()
        if material not in ('isotropic', 'orthotropic', 'anisotropic'):
            raise ValueError(f"Unknown conductivity model: {material}")
        self.k = np.asarray(k, dtype=np.float64)
        self.material_type = material

    def dof(self, dim):
        return 1

    def n_strain(self, dim):
        return dim

    def operator(self, shapes, grads):
        return grads[:, :, None]

    def material(self, mesh):
        dim = mesh.dim
        n = mesh.n_elements
        if self.material_type == 'isotropic':
            k = self.k if self.k.ndim == 0 else per_element(self.k, n, (), 'Isotropic conductivity')
            return np.asarray(k)[..., None, None] * np.eye(dim) * np.ones((n, 1, 1))
        elif self.material_type == 'orthotropic':
            k = per_element(self.k, n, (dim,), 'Orthotropic conductivity')
            return k[:, :, None] * np.eye(dim)[None]
        else:
            k = per_element(self.k, n, (dim, dim), 'Anisotropic conductivity')
            if not np.allclose(k, np.swapaxes(k, 1, 2)):
                raise ValueError("Anisotropic conductivity must be symmetric")
            return k
