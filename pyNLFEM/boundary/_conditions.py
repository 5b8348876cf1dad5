from enum import Enum
from typing import NamedTuple, Any
import numpy as np

OVERLAP_POLICIES = ('first_nonzero', 'first', 'last')


class BoundaryKind(Enum):
    FIRST_KIND = 1
    SECOND_KIND = 2
    THIRD_KIND = 3


class BoundaryCondition(NamedTuple):
    """
    Tagged boundary condition.

    Attributes
    ----------
    kind : BoundaryKind
        Condition kind; dispatch is on this tag
    value : float or callable
        Prescribed value, flux density or ambient value. A callable receives
        positions of shape (n, dim) and returns n values
    heat_transfer : float
        Heat transfer coefficient of third-kind conditions
    """
    kind: BoundaryKind
    value: Any = 0.0
    heat_transfer: float = 0.0


def Temperature(value):
    """Prescribed temperature (first kind)."""
    return BoundaryCondition(BoundaryKind.FIRST_KIND, value)


def Displacement(value):
    """Prescribed displacement component (first kind)."""
    return BoundaryCondition(BoundaryKind.FIRST_KIND, value)


def Flux(value):
    """Prescribed inflowing flux density (second kind)."""
    return BoundaryCondition(BoundaryKind.SECOND_KIND, value)


def Pressure(value):
    """Prescribed traction density component (second kind)."""
    return BoundaryCondition(BoundaryKind.SECOND_KIND, value)


def Convection(heat_transfer, ambient):
    """Convective exchange ``h (T_amb - T)`` with the surroundings (third kind)."""
    if heat_transfer < 0:
        raise ValueError(f"Heat transfer coefficient must be non-negative, got {heat_transfer}")
    return BoundaryCondition(BoundaryKind.THIRD_KIND, ambient, float(heat_transfer))


def evaluate(value, coords):
    """Evaluate a constant or callable condition value at positions of shape (n, dim)."""
    n = coords.shape[0]
    if callable(value):
        out = np.asarray(value(coords), dtype=np.float64)
        if out.shape not in ((n,), ()):
            raise ValueError(f"Boundary value function returned shape {out.shape} for {n} points")
        return np.broadcast_to(out, (n,)).astype(np.float64)
    return np.full(n, float(value))


def normalize_conditions(conditions, dof):
    """
    One condition (or None) per field component.

    Raises
    ------
    ValueError
        On a wrong component count or something that is not a BoundaryCondition
    NotImplementedError
        For third-kind conditions on vector fields
    """
    if isinstance(conditions, BoundaryCondition) or conditions is None:
        conditions = (conditions,)
    conditions = tuple(conditions)
    if len(conditions) != dof:
        raise ValueError(f"Expected {dof} boundary conditions (one per component), got {len(conditions)}")
    for condition in conditions:
        if condition is None:
            continue
        if not isinstance(condition, BoundaryCondition) or not isinstance(condition.kind, BoundaryKind):
            raise ValueError(f"Unknown boundary condition: {condition!r}")
        if condition.kind == BoundaryKind.THIRD_KIND and dof != 1:
            raise NotImplementedError("Third kind boundary conditions are only supported for scalar fields")
    return conditions


def first_kind_mask(groups, n_nodes, dof):
    """
    Boolean first-kind mask over the ``dof * n_nodes`` global DOFs.

    Parameters
    ----------
    groups : list of (ndarray, tuple)
        Boundary nodes and normalised conditions of every group

    Notes
    -----
    Marks are only ever set, so the mask does not depend on group order.
    """
    mask = np.zeros(n_nodes * dof, dtype=np.bool_)
    for nodes, conditions in groups:
        for comp, condition in enumerate(conditions):
            if condition is not None and condition.kind == BoundaryKind.FIRST_KIND:
                mask[dof * nodes + comp] = True
    return mask


def prescribed_values(groups, node_coords, dof, overlap_policy='first_nonzero'):
    """
    DOF vector of prescribed first-kind values.

    Groups are applied in insertion order. Where a DOF belongs to several
    groups, ``overlap_policy`` decides which value it keeps:

    - ``'first_nonzero'``: the first nonzero value wins; a zero set by an
      earlier group does not block a later nonzero value
    - ``'first'``: the first group wins
    - ``'last'``: the last group wins

    Parameters
    ----------
    groups : list of (ndarray, tuple)
        Boundary nodes and normalised conditions of every group
    node_coords : ndarray
        Mesh node coordinates
    dof : int
        Block factor
    overlap_policy : str, optional
        See above (default: 'first_nonzero')

    Returns
    -------
    ndarray
        Prescribed values, zero on free DOFs
    """
    if overlap_policy not in OVERLAP_POLICIES:
        raise ValueError(f"Unknown overlap policy '{overlap_policy}', expected one of {OVERLAP_POLICIES}")
    values = np.zeros(node_coords.shape[0] * dof)
    assigned = np.zeros(node_coords.shape[0] * dof, dtype=np.bool_)
    for nodes, conditions in groups:
        for comp, condition in enumerate(conditions):
            if condition is None or condition.kind != BoundaryKind.FIRST_KIND:
                continue
            dofs = dof * nodes + comp
            v = evaluate(condition.value, node_coords[nodes])
            if overlap_policy == 'first_nonzero':
                write = ~assigned[dofs] | (values[dofs] == 0.0)
            elif overlap_policy == 'first':
                write = ~assigned[dofs]
            else:
                write = np.ones(dofs.shape[0], dtype=np.bool_)
            values[dofs[write]] = v[write]
            assigned[dofs] = True
    return values
