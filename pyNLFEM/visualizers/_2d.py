from matplotlib.collections import PolyCollection
import matplotlib.pyplot as plt
import numpy as np
from matplotlib import markers
from matplotlib.path import Path

_H_SHIFT = {"right": -0.5, "middle": 0.0, "center": 0.0, "left": 0.5}
_V_SHIFT = {"top": -0.5, "middle": 0.0, "center": 0.0, "bottom": 0.5}


def align_marker(marker, halign="center", valign="middle"):
    """
    Marker path shifted so that its tip, not its centre, sits on the data point.

    ``halign`` and ``valign`` are names ('left', 'right', 'top', ...) or
    shifts in units of the marker size.
    """
    dx = _H_SHIFT[halign] if isinstance(halign, str) else halign / 2
    dy = _V_SHIFT[valign] if isinstance(valign, str) else valign / 2
    style = markers.MarkerStyle(marker)
    path = style.get_path().transformed(style.get_transform())
    vertices = path.vertices + np.array([dx, dy])
    return Path(vertices, path.codes)


def corner_polygons(mesh):
    """
    Corner node indices of every 2D element, padded to four vertices.

    Higher order elements list their corners first, so the first three
    (triangles) or four (quadrilaterals) nodes outline the element.
    """
    polygons = np.zeros((mesh.n_elements, 4), dtype=np.int32)
    for e in range(mesh.n_elements):
        nodes = mesh.element(e)
        n_corners = 3 if nodes.shape[0] in (3, 6) else 4
        polygons[e, :n_corners] = nodes[:n_corners]
        polygons[e, n_corners:] = nodes[n_corners - 1]
    return polygons


def _polycollection(mesh, ax, **kwargs):
    verts = mesh.nodes[corner_polygons(mesh)]
    pc = PolyCollection(verts, **kwargs)
    ax.add_collection(pc)
    ax.autoscale()
    return pc


def plot_mesh_2D(
    mesh,
    ax=None,
    face_color="grey",
    edge_color="black",
    **kwargs
):

    if mesh.dim != 2:
        raise ValueError("This function only supports 2D meshes")

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")
    _polycollection(mesh, ax, color=edge_color, facecolor=face_color)

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax


def plot_problem_2D(
    mesh,
    c: np.ndarray,
    f: np.ndarray,
    ax=None,
    face_color="lightgrey",
    edge_color="black",
    x_color="tomato",
    y_color="royalblue",
    f_color="#8e0000",
    **kwargs,
):
    """
    Mesh with first-kind constraints and loads.

    ``c`` and ``f`` have shape (n_nodes, dof). Scalar fields mark
    constrained nodes with dots and loaded nodes with their load magnitude;
    vector fields use the arrow markers per component and a quiver of the
    nodal loads.
    """
    if ax is None:
        ax = plt.gca()

    plot_mesh_2D(mesh, ax=ax, face_color=face_color, edge_color=edge_color)
    nodes = mesh.nodes

    if c.shape[1] == 1:
        fixed = c[:, 0] != 0
        ax.scatter(nodes[fixed, 0], nodes[fixed, 1], s=40, color=x_color, zorder=3)
        loaded = f[:, 0] != 0
        if loaded.any():
            ax.scatter(nodes[loaded, 0], nodes[loaded, 1], c=f[loaded, 0], s=40, marker="s", cmap="coolwarm", zorder=3)
        return ax

    for component, (color, marker) in enumerate(
        ((x_color, align_marker(">", "right", "middle")), (y_color, align_marker("^", "middle", "top")))
    ):
        fixed = c[:, component] != 0
        ax.scatter(nodes[fixed, 0], nodes[fixed, 1], marker=marker, s=500, color=color, alpha=0.7)

    loaded = np.any(f != 0, axis=1)
    if loaded.any():
        scale = np.abs(f).max()
        ax.quiver(nodes[loaded, 0], nodes[loaded, 1], f[loaded, 0] / scale, f[loaded, 1] / scale,
                  color=f_color, scale=15, width=0.005)

    return ax


def plot_field_2D(
    mesh,
    field: np.ndarray,
    ax=None,
    edge_color="black",
    colormap='viridis',
    show_colorbar=True,
    colorbar_label=None,
    **kwargs,
):
    """
    Element-wise colour plot of a scalar field.

    ``field`` holds one value per element, or one per node (averaged over
    the element nodes).
    """
    field = np.asarray(field)
    if field.shape[0] == mesh.n_nodes and field.shape[0] != mesh.n_elements:
        field = np.add.reduceat(field[mesh.elements_flat], mesh.elements_ptr[:-1]) / mesh.element_sizes
    elif field.shape[0] != mesh.n_elements:
        raise ValueError(f"Field must have one value per node ({mesh.n_nodes}) or per element ({mesh.n_elements})")

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")
    pc = _polycollection(mesh, ax, edgecolor=edge_color, cmap=colormap, **kwargs)
    pc.set_array(field)

    if show_colorbar:
        cbar = plt.colorbar(pc, ax=ax)
        if colorbar_label:
            cbar.set_label(colorbar_label)

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax


def plot_field_1D(
    mesh,
    field: np.ndarray,
    ax=None,
    color="royalblue",
    label=None,
    **kwargs,
):
    """Line plot of a nodal field over a 1D mesh."""
    if mesh.dim != 1:
        raise ValueError("This function only supports 1D meshes")
    field = np.asarray(field)
    if field.shape[0] != mesh.n_nodes:
        raise ValueError(f"Field must have one value per node ({mesh.n_nodes}), got {field.shape[0]}")

    if ax is None:
        ax = plt.gca()

    order = np.argsort(mesh.nodes[:, 0])
    ax.plot(mesh.nodes[order, 0], field[order], color=color, label=label, **kwargs)
    ax.set_xlabel("X Axis")
    if label:
        ax.legend()

    return ax
