from ._physx import Physx, per_element
import numpy as np


class LinearElasticity(Physx):
    """
    Linear isotropic elasticity physics model.

    Implements small-deformation elasticity in 2D (plane stress/strain) and
    for 1D rods. The operator is the strain-displacement matrix with
    engineering shear strain, the material matrix is Hooke's law.

    Parameters
    ----------
    E : float or ndarray, optional
        Young's modulus (default: 1.0), scalar or one value per element
    nu : float or ndarray, optional
        Poisson's ratio (default: 1/3), scalar or one value per element
    type : str, optional
        2D formulation: 'PlaneStress' or 'PlaneStrain' (default: 'PlaneStress')

    Attributes
    ----------
    E : ndarray
        Young's modulus
    nu : ndarray
        Poisson's ratio
    type : int
        0 for plane stress, 1 for plane strain

    Notes
    -----
    **Plane Stress vs Plane Strain:**
    - Plane Stress: σ_z = 0 (thin plates), D_11 = E/(1-ν²)
    - Plane Strain: ε_z = 0 (thick sections), D_11 = E(1-ν)/[(1+ν)(1-2ν)]

    **Strain ordering:** [ε_xx, ε_yy, γ_xy]; DOFs per node are [u_x, u_y],
    so the block factor is 2 in 2D and 1 in 1D.

    Examples
    --------
    >>> from pyNLFEM import Physics
    >>> physics = Physics.LinearElasticity(E=70e9, nu=0.33, type='PlaneStress')
    """
    def __init__(self, E=1.0, nu=1./3., type='PlaneStress'):
        super().__init__()
        self.E = np.asarray(E, dtype=np.float64)
        self.nu = np.asarray(nu, dtype=np.float64)
        if type == 'PlaneStress':
            self.type = 0
        elif type == 'PlaneStrain':
            self.type = 1
        else:
            raise ValueError("Type must be either 'PlaneStress' or 'PlaneStrain'")
        if np.any(self.nu <= -1.0) or np.any(self.nu >= 0.5):
            raise ValueError("Poisson's ratio must lie in (-1, 0.5)")

    def dof(self, dim):
        return dim

    def n_strain(self, dim):
        return 1 if dim == 1 else 3

    def operator(self, shapes, grads):
        n_rows, dim = grads.shape
        if dim == 1:
            return grads[:, :, None]
        B = np.zeros((n_rows, 3, 2))
        B[:, 0, 0] = grads[:, 0]
        B[:, 1, 1] = grads[:, 1]
        B[:, 2, 0] = grads[:, 1]
        B[:, 2, 1] = grads[:, 0]
        return B

    def hooke(self, n_elements):
        """Hooke matrices of the 2D formulation, shape (n_elements, 3, 3)."""
        E = per_element(self.E, n_elements, (), 'E') if self.E.ndim else np.full(n_elements, float(self.E))
        nu = per_element(self.nu, n_elements, (), 'nu') if self.nu.ndim else np.full(n_elements, float(self.nu))
        D = np.zeros((n_elements, 3, 3))
        if self.type == 0:
            c = E / (1 - nu**2)
            D[:, 0, 0] = D[:, 1, 1] = c
            D[:, 0, 1] = D[:, 1, 0] = c * nu
            D[:, 2, 2] = c * (1 - nu) / 2
        else:
            c = E / ((1 + nu) * (1 - 2 * nu))
            D[:, 0, 0] = D[:, 1, 1] = c * (1 - nu)
            D[:, 0, 1] = D[:, 1, 0] = c * nu
            D[:, 2, 2] = c * (1 - 2 * nu) / 2
        return D

    def material(self, mesh):
        if mesh.dim == 1:
            E = per_element(self.E, mesh.n_elements, (), 'E') if self.E.ndim else np.full(mesh.n_elements, float(self.E))
            return E[:, None, None]
        return self.hooke(mesh.n_elements)
