from numba import njit, prange
import numpy as np
from ._portrait import classify, INNER, BOUND
from ._influence import influence_value


@njit(cache=True)
def _block_needed(node, col_node, dof, constraints):
    """
    0 if the (node, col_node) block writes nothing, 1 if it only touches
    forced diagonals, 2 if it needs the integral.
    """
    status = 0
    for a in range(dof):
        row = dof * node + a
        for b in range(dof):
            kind = classify(row, dof * col_node + b, constraints)
            if kind == BOUND:
                return 2
            if kind == INNER:
                if constraints[row]:
                    status = 1
                else:
                    return 2
    return status


@njit(cache=True)
def _find(ptr, idx, lrow, col):
    start = ptr[lrow]
    return start + np.searchsorted(idx[start:ptr[lrow + 1]], col)


@njit(cache=True)
def _scatter(node, col_node, dof, first, factor, block, force_diagonal, constraints,
             inner_ptr, inner_idx, inner_val, bound_ptr, bound_idx, bound_val):
    for a in range(dof):
        row = dof * node + a
        lrow = row - dof * first
        for b in range(dof):
            col = dof * col_node + b
            kind = classify(row, col, constraints)
            if kind == INNER:
                if constraints[row]:
                    if force_diagonal:
                        inner_val[_find(inner_ptr, inner_idx, lrow, col)] = 1.0
                else:
                    inner_val[_find(inner_ptr, inner_idx, lrow, col)] += factor * block[a, b]
            elif kind == BOUND:
                bound_val[_find(bound_ptr, bound_idx, lrow, col)] += factor * block[a, b]


@njit(cache=True, parallel=True)
def assemble_local(chunks, first, dof, n_strain, factor,
                   elements_flat, elements_ptr, el_ids, sorter, node_ids,
                   shapes_ptr, quad_ptr, jxw, B_flat, DB_flat, constraints,
                   inner_ptr, inner_idx, inner_val, bound_ptr, bound_idx, bound_val):
    """
    Local term ``factor * sum_q jxw B_i^T D B_j`` and the unit diagonal of constrained rows.

    Every owned node integrates its own rows against the nodes of its
    incident elements, so chunks write disjoint rows.
    """
    stride = n_strain * dof
    for c in prange(chunks.shape[0] - 1):
        block = np.zeros((dof, dof))
        for node in range(chunks[c], chunks[c + 1]):
            for p in range(node_ids[node], node_ids[node + 1]):
                pos = sorter[p]
                e = el_ids[pos]
                start = elements_ptr[e]
                size = elements_ptr[e + 1] - start
                i = pos - start
                nq = quad_ptr[e + 1] - quad_ptr[e]
                for j in range(size):
                    col_node = elements_flat[start + j]
                    needed = _block_needed(node, col_node, dof, constraints)
                    if needed == 0:
                        continue
                    block[:, :] = 0.0
                    if needed == 2:
                        for q in range(nq):
                            w = jxw[quad_ptr[e] + q]
                            ri = (shapes_ptr[e] + q * size + i) * stride
                            rj = (shapes_ptr[e] + q * size + j) * stride
                            for a in range(dof):
                                for b in range(dof):
                                    s_ab = 0.0
                                    for s in range(n_strain):
                                        s_ab += B_flat[ri + s * dof + a] * DB_flat[rj + s * dof + b]
                                    block[a, b] += w * s_ab
                    _scatter(node, col_node, dof, first, factor, block, True, constraints,
                             inner_ptr, inner_idx, inner_val, bound_ptr, bound_idx, bound_val)


@njit(cache=True, parallel=True)
def assemble_nonlocal(chunks, first, dof, n_strain, factor, kind, params,
                      elements_flat, elements_ptr, el_ids, sorter, node_ids,
                      neighbors_flat, neighbors_ptr, shapes_ptr, quad_ptr, jxw, quad_coords,
                      B_flat, D, constraints,
                      inner_ptr, inner_idx, inner_val, bound_ptr, bound_idx, bound_val):
    """
    Nonlocal term over element pairs (eL, eNL), eNL in the neighbour set of eL::

        factor * sum_qL jxw B_iL^T Dm [sum_qNL jxw g(x_qL, x_qNL) B_jNL]

    with ``Dm`` the mean material matrix of the pair. The influence value of
    a (qL, qNL) pair is evaluated once for all trial nodes of eNL.
    """
    stride = n_strain * dof
    max_nodes = 0
    for e in range(elements_ptr.shape[0] - 1):
        max_nodes = max(max_nodes, elements_ptr[e + 1] - elements_ptr[e])

    for c in prange(chunks.shape[0] - 1):
        blocks = np.zeros((max_nodes, dof, dof))
        inner = np.zeros((max_nodes, n_strain, dof))
        needed = np.zeros(max_nodes, dtype=np.int64)
        Dm = np.zeros((n_strain, n_strain))
        tmp = np.zeros((n_strain, dof))
        for node in range(chunks[c], chunks[c + 1]):
            for p in range(node_ids[node], node_ids[node + 1]):
                pos = sorter[p]
                eL = el_ids[pos]
                startL = elements_ptr[eL]
                sizeL = elements_ptr[eL + 1] - startL
                iL = pos - startL
                nqL = quad_ptr[eL + 1] - quad_ptr[eL]
                for k in range(neighbors_ptr[eL], neighbors_ptr[eL + 1]):
                    eNL = neighbors_flat[k]
                    startNL = elements_ptr[eNL]
                    sizeNL = elements_ptr[eNL + 1] - startNL
                    nqNL = quad_ptr[eNL + 1] - quad_ptr[eNL]

                    any_needed = False
                    for j in range(sizeNL):
                        needed[j] = _block_needed(node, elements_flat[startNL + j], dof, constraints)
                        if needed[j] == 2:
                            any_needed = True
                    if not any_needed:
                        continue

                    for s in range(n_strain):
                        for t in range(n_strain):
                            Dm[s, t] = 0.5 * (D[eL, s, t] + D[eNL, s, t])
                    blocks[:sizeNL] = 0.0

                    for qL in range(nqL):
                        gL = quad_ptr[eL] + qL
                        inner[:sizeNL] = 0.0
                        for qNL in range(nqNL):
                            gNL = quad_ptr[eNL] + qNL
                            g = influence_value(kind, params, quad_coords[gL], quad_coords[gNL])
                            if g == 0.0:
                                continue
                            w = jxw[gNL] * g
                            for j in range(sizeNL):
                                if needed[j] != 2:
                                    continue
                                rj = (shapes_ptr[eNL] + qNL * sizeNL + j) * stride
                                for s in range(n_strain):
                                    for b in range(dof):
                                        inner[j, s, b] += w * B_flat[rj + s * dof + b]

                        wL = jxw[gL]
                        ri = (shapes_ptr[eL] + qL * sizeL + iL) * stride
                        for j in range(sizeNL):
                            if needed[j] != 2:
                                continue
                            for s in range(n_strain):
                                for b in range(dof):
                                    acc = 0.0
                                    for t in range(n_strain):
                                        acc += Dm[s, t] * inner[j, t, b]
                                    tmp[s, b] = acc
                            for a in range(dof):
                                for b in range(dof):
                                    acc = 0.0
                                    for s in range(n_strain):
                                        acc += B_flat[ri + s * dof + a] * tmp[s, b]
                                    blocks[j, a, b] += wL * acc

                    for j in range(sizeNL):
                        if needed[j] == 2:
                            _scatter(node, elements_flat[startNL + j], dof, first, factor, blocks[j], False, constraints,
                                     inner_ptr, inner_idx, inner_val, bound_ptr, bound_idx, bound_val)
