import numpy as np
import trimesh as tm

from pymcskel.laplacian import compute_edge_weights
from pymcskel.mesh import HalfEdgeMesh
from pymcskel.weights import CotangentWeight


def regular_tetrahedron():
    V = np.array([[1, 1, 1], [1, -1, -1], [-1, 1, -1], [-1, -1, 1]], dtype=float)
    F = np.array([[0, 1, 2], [0, 3, 1], [0, 2, 3], [1, 3, 2]])
    return HalfEdgeMesh.from_arrays(V, F)


def test_equilateral_weights():
    mesh = regular_tetrahedron()
    weight = CotangentWeight()
    # two opposite angles of 60 degrees each
    for e in mesh.edges():
        assert np.isclose(weight(mesh, e), 2.0 / np.sqrt(3.0))


def test_weights_finite_on_sphere():
    mesh = HalfEdgeMesh.from_trimesh(tm.creation.icosphere(subdivisions=2))
    w = compute_edge_weights(mesh)
    assert w.shape == (mesh.n_edges,)
    assert np.all(np.isfinite(w))
    # a fine sphere has no obtuse angles
    assert np.all(w > 0)


def test_degenerate_triangle_uses_fallback():
    # face 1 has three collinear corners
    V = np.array([[0, 0, 0], [1, 0, 0], [0.5, 0, 0], [0.5, 1, 0]], dtype=float)
    F = np.array([[0, 1, 3], [1, 0, 2]])
    mesh = HalfEdgeMesh.from_arrays(V, F)

    weight = CotangentWeight(fallback=0.25)
    w01 = weight(mesh, mesh.find_halfedge(0, 1) >> 1, 1e-7)
    w02 = weight(mesh, mesh.find_halfedge(0, 2) >> 1, 1e-7)
    assert np.isfinite(w01)
    # apex (0.5, 1) of the healthy face has cot = 0.75
    assert np.isclose(w01, 0.75 + 0.25)
    assert np.isclose(w02, 0.25)

    w = compute_edge_weights(mesh, CotangentWeight(), zero_TH=1e-7)
    assert np.all(np.isfinite(w))


def test_secure_clamps_obtuse_cotangent():
    # the corner at vertex 2 is obtuse, the one at vertex 3 is a right angle
    V = np.array([[0, 0, 0], [2, 0, 0], [1, 0.1, 0], [1, -1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [1, 0, 3]])
    mesh = HalfEdgeMesh.from_arrays(V, F)
    e = mesh.find_halfedge(0, 1) >> 1

    assert np.isclose(CotangentWeight()(mesh, e), -4.95)
    assert np.isclose(CotangentWeight(secure=True)(mesh, e), 0.0)
