import numpy as np
from scipy.spatial import KDTree
from scipy.sparse import csr_matrix, identity
import logging
logger = logging.getLogger(__name__)


class NeighborMap:
    """
    Element to element adjacency within the nonlocal horizon.

    Every element maps to the sorted set of elements whose centroids lie
    within the horizon radius of its own centroid. An element is always its
    own neighbour and the relation is symmetric (b in N(a) iff a in N(b)),
    which the upper-triangular storage of the assembled matrices relies on.
    The map is stored in CSR form so numba kernels can walk it.

    Parameters
    ----------
    neighbors_flat : ndarray
        Concatenated neighbour lists
    neighbors_ptr : ndarray
        Pointer array, shape (n_elements + 1,)
    radius : float or ndarray, optional
        Horizon radius the map was built for (None for user supplied maps)

    Examples
    --------
    >>> neighbors = NeighborMap.from_radius(mesh, radius=0.1)
    >>> neighbors[0]
    array([0, 1, 2], dtype=int32)
    """
    def __init__(self, neighbors_flat, neighbors_ptr, radius=None):
        self.neighbors_flat = np.asarray(neighbors_flat, dtype=np.int32)
        self.neighbors_ptr = np.asarray(neighbors_ptr, dtype=np.int32)
        self.radius = radius
        self.n_elements = self.neighbors_ptr.shape[0] - 1

    @classmethod
    def from_radius(cls, mesh, radius):
        """
        Build the map from a horizon radius with a KD-tree over element centroids.

        Parameters
        ----------
        mesh : GeneralMesh
            Mesh whose elements are searched
        radius : float or ndarray
            Horizon radius, or one radius per element (e.g. per mesh segment)
        """
        radius_arr = np.broadcast_to(np.asarray(radius, dtype=np.float64), (mesh.n_elements,))
        if np.any(radius_arr < 0):
            raise ValueError("Horizon radius must be non-negative")

        search_tree = KDTree(mesh.centroids)
        Ne = search_tree.query_ball_point(mesh.centroids, radius_arr)

        lists = []
        for e in range(mesh.n_elements):
            lists.append(np.union1d(np.asarray(Ne[e], dtype=np.int32), [e]))
        neighbors = cls._from_sorted(lists, radius=radius)

        counts = np.diff(neighbors.neighbors_ptr)
        logger.info(f"Neighbour search: {counts.mean():.1f} neighbours per element on average, {counts.max()} at most")
        if counts.max() == 1:
            logger.warning("Horizon radius is smaller than the element spacing; the nonlocal term only couples elements with themselves.")
        return neighbors

    @classmethod
    def from_lists(cls, lists):
        """Build the map from explicit per-element neighbour lists (self is added if missing)."""
        n = len(lists)
        lists = [np.union1d(np.asarray(l, dtype=np.int32), [e]) for e, l in enumerate(lists)]
        for e, l in enumerate(lists):
            if l[0] < 0 or l[-1] >= n:
                raise ValueError(f"Neighbours of element {e} reference elements outside [0, {n})")
        return cls._from_sorted(lists)

    @classmethod
    def local(cls, n_elements):
        """Map in which every element only neighbours itself, the support of the local operator."""
        return cls(np.arange(n_elements, dtype=np.int32), np.arange(n_elements + 1, dtype=np.int32))

    @classmethod
    def _from_sorted(cls, lists, radius=None):
        n = len(lists)
        counts = np.array([len(l) for l in lists], dtype=np.int32)
        ptr = np.concatenate(([0], np.cumsum(counts)), dtype=np.int32)
        flat = np.concatenate(lists).astype(np.int32) if n else np.zeros(0, dtype=np.int32)

        A = csr_matrix((np.ones(flat.shape[0], dtype=np.int8), flat, ptr), shape=(n, n))
        S = (A + A.T + identity(n, dtype=np.int8, format='csr')).tocsr()
        S.sort_indices()
        if S.nnz != A.nnz:
            logger.info(f"Neighbour map symmetrized: {S.nnz - A.nnz} one-sided pairs added")
        return cls(S.indices, S.indptr, radius=radius)

    def __len__(self):
        return self.n_elements

    def __getitem__(self, e):
        return self.neighbors_flat[self.neighbors_ptr[e]:self.neighbors_ptr[e+1]]

    def check(self, mesh):
        """Raise ValueError if the map does not match ``mesh``."""
        if self.n_elements != mesh.n_elements:
            raise ValueError(f"Neighbour map covers {self.n_elements} elements, mesh has {mesh.n_elements}")
        if self.neighbors_flat.shape[0] and (self.neighbors_flat.min() < 0 or self.neighbors_flat.max() >= mesh.n_elements):
            raise ValueError("Neighbour map references elements outside the mesh")
