import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from pyNLFEM.CPU import FiniteElement, NonlocalStiffnessKernel, Temperature, Displacement, Pressure
from pyNLFEM.visualizers._2d import corner_polygons, plot_mesh_2D


def test_corner_polygons(mesh_2d):
    polygons = corner_polygons(mesh_2d)
    assert polygons.shape == (mesh_2d.n_elements, 4)
    assert np.array_equal(polygons[0], mesh_2d.element(0))


def test_plot_mesh(mesh_2d):
    fig, ax = plt.subplots()
    assert plot_mesh_2D(mesh_2d, ax=ax) is ax
    plt.close(fig)


def test_visualize_problem_and_field(mesh_2d, elasticity):
    FE = FiniteElement(mesh_2d, NonlocalStiffnessKernel(mesh_2d, elasticity))
    FE.add_boundary_condition('left', (Displacement(0.0), Displacement(0.0)))
    FE.add_boundary_condition('right', (Pressure(1.0), None))
    FE.add_point_forces([[0.0, -1.0]], node_ids=[mesh_2d.n_nodes - 1])
    fig, ax = plt.subplots()
    FE.visualize_problem(ax=ax)
    U, _ = FE.solve()
    FE.visualize_field(FE.solution(U).von_mises(), ax=ax)
    plt.close(fig)


def test_visualize_1d_field(mesh_1d, heat):
    FE = FiniteElement(mesh_1d, NonlocalStiffnessKernel(mesh_1d, heat))
    FE.add_boundary_condition('left', Temperature(0.0))
    FE.add_boundary_condition('right', Temperature(1.0))
    T, _ = FE.solve()
    fig, ax = plt.subplots()
    assert FE.visualize_field(T, ax=ax, label='T') is ax
    plt.close(fig)
