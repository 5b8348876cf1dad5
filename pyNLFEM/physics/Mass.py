from ._physx import Physx, per_element
import numpy as np


class Mass(Physx):
    """
    Basis-product (mass-like) operator ``∫ ρ N_i N_j``.

    Useful as a capacity matrix or as a zero-order reaction term; assembled
    by the same portrait and scatter machinery as the stiffness operators.

    Parameters
    ----------
    rho : float or ndarray, optional
        Density (or heat capacity), scalar or one value per element (default: 1.0)
    """
    def __init__(self, rho=1.0):
        super().__init__()
        self.rho = np.asarray(rho, dtype=np.float64)

    def dof(self, dim):
        return 1

    def n_strain(self, dim):
        return 1

    def operator(self, shapes, grads):
        return shapes[:, None, None]

    def material(self, mesh):
        rho = per_element(self.rho, mesh.n_elements, (), 'rho') if self.rho.ndim else np.full(mesh.n_elements, float(self.rho))
        return rho[:, None, None]
