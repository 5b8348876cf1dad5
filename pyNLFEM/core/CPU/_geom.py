import numpy as np
from numba import int32, njit, prange


@njit(int32[:,:](int32, int32), cache=True, parallel=True)
def generate_elements_2d(nx, ny):
    """
    Quadrilateral connectivity of an (nx-1) x (ny-1) grid, counter-clockwise.
    """
    nel_x, nel_y = nx-1, ny-1
    num_elem = nel_x * nel_y
    elements = np.zeros((num_elem, 4), dtype=np.int32)

    for counter in prange(num_elem):
        i = counter // nel_y  # i varies slowest
        j = counter % nel_y   # j varies fastest

        elements[counter, 0] = j * nx + i
        elements[counter, 1] = j * nx + i + 1
        elements[counter, 2] = (j + 1) * nx + i + 1
        elements[counter, 3] = (j + 1) * nx + i

    return elements


@njit(int32[:,:](int32[:,:]), cache=True, parallel=True)
def split_quads(quads):
    """
    Split every quadrilateral along its 0-2 diagonal into two triangles.
    """
    triangles = np.zeros((2 * quads.shape[0], 3), dtype=np.int32)
    for e in prange(quads.shape[0]):
        triangles[2*e, 0] = quads[e, 0]
        triangles[2*e, 1] = quads[e, 1]
        triangles[2*e, 2] = quads[e, 2]
        triangles[2*e+1, 0] = quads[e, 0]
        triangles[2*e+1, 1] = quads[e, 2]
        triangles[2*e+1, 2] = quads[e, 3]
    return triangles


@njit(int32[:,:](int32, int32), cache=True)
def generate_elements_1d(n_elements, order):
    """
    Connectivity of consecutive Lagrange segments with ``order + 1`` nodes each.
    """
    elements = np.zeros((n_elements, order + 1), dtype=np.int32)
    for e in range(n_elements):
        for i in range(order + 1):
            elements[e, i] = e * order + i
    return elements


def generate_structured_mesh(dim, nel, dtype=np.float64):
    """
    Nodes and quadrilateral elements of a rectangle ``dim`` split into ``nel`` cells.
    """
    if len(dim) != len(nel):
        raise ValueError("Dimensions of dim and nel must match")
    if len(dim) != 2:
        raise ValueError("Only 2D structured meshes are generated here; use StructuredMesh1D for segments")

    nx, ny = nel[0] + 1, nel[1] + 1
    L, H = dim[0], dim[1]

    x = np.linspace(0, L, nx, dtype=dtype)
    y = np.linspace(0, H, ny, dtype=dtype)
    xx, yy = np.meshgrid(x, y)
    node_positions = np.stack([xx.flatten(), yy.flatten()], axis=-1)

    elements = generate_elements_2d(np.int32(nx), np.int32(ny))

    return elements, node_positions


def generate_segmented_mesh(segments, order=1, x0=0.0, dtype=np.float64):
    """
    Nodes and elements of a 1D mesh made of consecutive uniform segments.

    Parameters
    ----------
    segments : list of (float, int)
        ``(length, n_elements)`` for every segment, left to right
    order : int
        Lagrange order of the elements (1, 2 or 3)
    x0 : float
        Coordinate of the leftmost node

    Returns
    -------
    elements : ndarray
        Connectivity, shape (n_elements, order + 1)
    nodes : ndarray
        Node coordinates, shape (n_nodes, 1)
    segment_ids : ndarray
        Segment index of every element
    """
    if order not in (1, 2, 3):
        raise ValueError(f"Segment order must be 1, 2 or 3, got {order}")

    coordinates = [np.array([x0], dtype=dtype)]
    segment_ids = []
    start = x0
    for s, (length, n_elements) in enumerate(segments):
        if length <= 0 or n_elements <= 0:
            raise ValueError(f"Segment {s} must have positive length and element count, got ({length}, {n_elements})")
        coordinates.append(np.linspace(start, start + length, n_elements * order + 1, dtype=dtype)[1:])
        segment_ids.append(np.full(n_elements, s, dtype=np.int32))
        start += length

    nodes = np.concatenate(coordinates)[:, None]
    segment_ids = np.concatenate(segment_ids)
    elements = generate_elements_1d(np.int32(segment_ids.shape[0]), np.int32(order))

    return elements, nodes, segment_ids
