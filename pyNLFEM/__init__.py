"""pyNLFEM public package.

This package exposes the public API for assembling and solving local and
nonlocal (Eringen type) finite element models of heat conduction and linear
elasticity in 1D and 2D. Typical usage imports the CPU backend and physics
models from :mod:`pyNLFEM.Physics`.

Examples
--------
>>> from pyNLFEM.CPU import StructuredMesh1D, NonlocalStiffnessKernel, FiniteElement
>>> from pyNLFEM import Physics
"""
