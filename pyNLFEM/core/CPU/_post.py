from numba import njit, prange
import numpy as np
from ._influence import influence_value


@njit(cache=True, parallel=True)
def nonlocal_node_integral(chunks, nodes, el_ids, sorter, node_ids, neighbors_flat, neighbors_ptr,
                           quad_ptr, jxw, quad_coords, values, kind, params):
    """
    ``out[n] = sum_e sum_q jxw g(x_q, x_n) values[q]`` over the elements e in the
    neighbour sets of the elements incident to node n (each element once).
    """
    n_nodes = nodes.shape[0]
    n_elements = neighbors_ptr.shape[0] - 1
    m = values.shape[1]
    out = np.zeros((n_nodes, m))
    for c in prange(chunks.shape[0] - 1):
        seen = np.full(n_elements, -1, dtype=np.int64)
        for node in range(chunks[c], chunks[c + 1]):
            for p in range(node_ids[node], node_ids[node + 1]):
                e = el_ids[sorter[p]]
                for k in range(neighbors_ptr[e], neighbors_ptr[e + 1]):
                    f = neighbors_flat[k]
                    if seen[f] == node:
                        continue
                    seen[f] = node
                    for q in range(quad_ptr[f], quad_ptr[f + 1]):
                        g = influence_value(kind, params, quad_coords[q], nodes[node])
                        if g == 0.0:
                            continue
                        w = jxw[q] * g
                        for s in range(m):
                            out[node, s] += w * values[q, s]
    return out
