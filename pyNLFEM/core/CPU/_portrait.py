from numba import njit, prange
import numpy as np

# entry routing
NONE = 0
INNER = 1
BOUND = 2

# traversal stages
COUNT = 0
FILL = 1


@njit(cache=True)
def classify(row, col, constraints):
    """
    Route the global entry (row, col).

    Constrained rows keep only their diagonal in the inner matrix. Free rows
    send constrained columns to the bound matrix and keep the upper triangle
    of free columns in the inner matrix.
    """
    if constraints[row]:
        if row == col:
            return INNER
        return NONE
    if constraints[col]:
        return BOUND
    if row <= col:
        return INNER
    return NONE


@njit(cache=True)
def _visit_block(node, col_node, dof, first, constraints, stage,
                 inner_ptr, inner_idx, inner_cur, bound_ptr, bound_idx, bound_cur):
    for a in range(dof):
        row = dof * node + a
        lrow = row - dof * first
        for b in range(dof):
            col = dof * col_node + b
            kind = classify(row, col, constraints)
            if kind == INNER:
                if stage == COUNT:
                    inner_ptr[lrow + 1] += 1
                else:
                    inner_idx[inner_cur[lrow]] = col
                    inner_cur[lrow] += 1
            elif kind == BOUND:
                if stage == COUNT:
                    bound_ptr[lrow + 1] += 1
                else:
                    bound_idx[bound_cur[lrow]] = col
                    bound_cur[lrow] += 1


@njit(cache=True, parallel=True)
def portrait_pass(stage, chunks, first, dof, n_nodes, neumann,
                  elements_flat, elements_ptr, el_ids, sorter, node_ids,
                  neighbors_flat, neighbors_ptr, constraints,
                  inner_ptr, inner_idx, inner_cur, bound_ptr, bound_idx, bound_cur):
    """
    One traversal of the owned node range.

    For every owned node, every incident element and every element in that
    element's neighbour set, the nodes of the neighbour become candidate
    columns. A per-chunk marker stores the last row node that visited a
    column node, so every (row node, column node) block is routed once.

    With ``stage == COUNT`` the row counts are accumulated in
    ``inner_ptr[1:]`` and ``bound_ptr[1:]``. With ``stage == FILL`` the column
    indices are written at the row cursors. Chunks own disjoint rows.
    """
    for c in prange(chunks.shape[0] - 1):
        seen = np.full(n_nodes, -1, dtype=np.int64)
        for node in range(chunks[c], chunks[c + 1]):
            for p in range(node_ids[node], node_ids[node + 1]):
                e = el_ids[sorter[p]]
                for k in range(neighbors_ptr[e], neighbors_ptr[e + 1]):
                    f = neighbors_flat[k]
                    for t in range(elements_ptr[f], elements_ptr[f + 1]):
                        col_node = elements_flat[t]
                        if seen[col_node] == node:
                            continue
                        seen[col_node] = node
                        _visit_block(node, col_node, dof, first, constraints, stage,
                                     inner_ptr, inner_idx, inner_cur, bound_ptr, bound_idx, bound_cur)

            # compatibility column of the pure Neumann problem (dof == 1)
            if neumann and not constraints[node]:
                lrow = node - first
                if stage == COUNT:
                    inner_ptr[lrow + 1] += 1
                else:
                    inner_idx[inner_cur[lrow]] = n_nodes
                    inner_cur[lrow] += 1


@njit(cache=True, parallel=True)
def sort_rows(ptr, idx):
    for r in prange(ptr.shape[0] - 1):
        idx[ptr[r]:ptr[r + 1]] = np.sort(idx[ptr[r]:ptr[r + 1]])


def node_element_map(elements_flat, elements_ptr, n_nodes):
    """
    Node to incident element lookup.

    Returns
    -------
    el_ids : ndarray
        Element of every position in ``elements_flat``
    sorter : ndarray
        Positions of ``elements_flat`` sorted by node
    node_ids : ndarray
        ``sorter[node_ids[n]:node_ids[n+1]]`` are the positions holding node n
    """
    sizes = np.diff(elements_ptr)
    el_ids = np.repeat(np.arange(sizes.shape[0], dtype=np.int32), sizes)
    sorter = np.argsort(elements_flat, kind='stable').astype(np.int32)
    node_ids = np.searchsorted(elements_flat[sorter], np.arange(n_nodes + 1)).astype(np.int32)
    return el_ids, sorter, node_ids


def node_chunks(first, last, n_chunks):
    """Contiguous split of the node range [first, last) into at most n_chunks pieces."""
    n_chunks = max(1, min(int(n_chunks), last - first))
    return np.linspace(first, last, n_chunks + 1).round().astype(np.int64)


def build_portrait(elements_flat, elements_ptr, el_ids, sorter, node_ids,
                   neighbors_flat, neighbors_ptr, constraints, dof, first, last,
                   n_nodes, neumann=False, n_chunks=1):
    """
    Exact CSR patterns of the inner and bound matrices over the owned rows.

    Parameters
    ----------
    elements_flat, elements_ptr : ndarray
        Flat mesh connectivity
    el_ids, sorter, node_ids : ndarray
        Node to element lookup from ``node_element_map``
    neighbors_flat, neighbors_ptr : ndarray
        Element neighbour sets; the local operator passes the identity map
    constraints : ndarray (bool)
        First-kind mask over the ``dof * n_nodes`` global DOFs
    dof : int
        Block factor
    first, last : int
        Owned node range
    n_nodes : int
        Number of mesh nodes
    neumann : bool, optional
        Add the compatibility column of the pure Neumann problem
    n_chunks : int, optional
        Number of parallel chunks

    Returns
    -------
    inner_ptr, inner_idx, bound_ptr, bound_idx : ndarray
        Row pointers and sorted column indices. Index arrays are int32 unless
        the pattern needs 64-bit offsets.
    """
    n_rows = dof * (last - first) + (1 if neumann and last == n_nodes else 0)
    chunks = node_chunks(first, last, n_chunks)

    inner_ptr = np.zeros(n_rows + 1, dtype=np.int64)
    bound_ptr = np.zeros(n_rows + 1, dtype=np.int64)
    empty = np.zeros(0, dtype=np.int64)
    portrait_pass(COUNT, chunks, first, dof, n_nodes, neumann,
                  elements_flat, elements_ptr, el_ids, sorter, node_ids,
                  neighbors_flat, neighbors_ptr, constraints,
                  inner_ptr, empty, empty, bound_ptr, empty, empty)

    inner_ptr = np.cumsum(inner_ptr)
    bound_ptr = np.cumsum(bound_ptr)

    index_dtype = np.int32 if max(inner_ptr[-1], bound_ptr[-1], dof * n_nodes + 1) < 2**31 else np.int64
    inner_idx = np.zeros(int(inner_ptr[-1]), dtype=index_dtype)
    bound_idx = np.zeros(int(bound_ptr[-1]), dtype=index_dtype)

    portrait_pass(FILL, chunks, first, dof, n_nodes, neumann,
                  elements_flat, elements_ptr, el_ids, sorter, node_ids,
                  neighbors_flat, neighbors_ptr, constraints,
                  inner_ptr, inner_idx, inner_ptr[:-1].copy(),
                  bound_ptr, bound_idx, bound_ptr[:-1].copy())

    inner_ptr = inner_ptr.astype(index_dtype)
    bound_ptr = bound_ptr.astype(index_dtype)
    sort_rows(inner_ptr, inner_idx)
    sort_rows(bound_ptr, bound_idx)
    return inner_ptr, inner_idx, bound_ptr, bound_idx
