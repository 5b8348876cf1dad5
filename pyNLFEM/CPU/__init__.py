"""CPU backend public API.

Importing from this module gives access to CPU implementations of the core
pyNLFEM components (meshes, neighbour maps, kernels, solvers, boundary
conditions and finite-element helpers):

>>> from pyNLFEM.CPU import StructuredMesh2D, NonlocalStiffnessKernel, FiniteElement
"""

from ..geom.CPU._mesh import GeneralMesh, StructuredMesh1D, StructuredMesh2D
from ..geom.CPU._neighbors import NeighborMap
from ..stiffness.CPU._FEA import StiffnessKernel, NonlocalStiffnessKernel, MAX_NONLOCAL_WEIGHT
from ..solvers.CPU._solvers import CG, MINRES, SPLU, SPSOLVE
from ..FiniteElement.CPU.FiniteElement import FiniteElement
from ..FiniteElement.CPU._system import LinearSystem
from ..boundary._conditions import (
    BoundaryKind,
    BoundaryCondition,
    Temperature,
    Displacement,
    Flux,
    Pressure,
    Convection,
)
from ..post._solution import HeatEquationSolution, StructuralSolution
from ..physics.influence import ConstantInfluence, PolynomialInfluence, NormalInfluence
from .._errors import DegenerateElementError, UnsolvableNeumannProblem
