"""Physics models exported by pyNLFEM.

This module exposes the built-in physics model classes. Each physics model
implements the :class:`pyNLFEM.physics._physx.Physx` interface and provides
the generalised gradient operator and the material matrix used by the
assembly kernels.

Available models
- SteadyHeatTransfer: steady-state thermal conduction (scalar field)
- LinearElasticity: small-strain linear elasticity (vector field)
- Mass: mass (zero order) bilinear form
"""

from .physics._physx import Physx
from .physics.SteadyHeatTransfer import SteadyHeatTransfer
from .physics.LinearElasticity import LinearElasticity
from .physics.Mass import Mass
