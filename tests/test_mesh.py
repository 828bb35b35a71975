import numpy as np
import pytest
import trimesh as tm

from pymcskel.errors import TopologyError
from pymcskel.mesh import HalfEdgeMesh, example_mesh


def octahedron():
    V = np.array(
        [[1, 0, 0], [-1, 0, 0], [0, 1, 0], [0, -1, 0], [0, 0, 1], [0, 0, -1]], dtype=float
    )
    F = np.array(
        [[0, 2, 4], [2, 1, 4], [1, 3, 4], [3, 0, 4], [2, 0, 5], [1, 2, 5], [3, 1, 5], [0, 3, 5]]
    )
    return V, F


def test_from_trimesh_counts_and_topology():
    sphere = tm.creation.icosphere(subdivisions=2)
    mesh = HalfEdgeMesh.from_trimesh(sphere)

    assert mesh.n_vertices == len(sphere.vertices)
    assert mesh.n_faces == len(sphere.faces)
    assert mesh.n_edges == len(sphere.edges_unique)
    assert mesh.euler_characteristic() == 2
    assert all(mesh.edge_face_count(e) == 2 for e in mesh.edges())
    mesh.validate()


def test_ids_are_dense():
    mesh = HalfEdgeMesh.from_arrays(*octahedron())
    mesh.reindex()
    assert sorted(mesh.vertex_index.values()) == list(range(mesh.n_vertices))
    assert sorted(mesh.edge_index.values()) == list(range(mesh.n_edges))
    assert sorted(mesh.face_index.values()) == list(range(mesh.n_faces))


def test_injected_index_maps_are_filled():
    vmap, emap = {}, {}
    mesh = HalfEdgeMesh.from_arrays(*octahedron())
    mesh.bind_index_maps(vmap, emap)
    assert mesh.vertex_index is vmap
    assert sorted(vmap.values()) == list(range(6))
    assert sorted(emap.values()) == list(range(12))


def test_round_trip_arrays():
    V, F = octahedron()
    mesh = HalfEdgeMesh.from_arrays(V, F)
    V2, F2 = mesh.to_arrays()
    assert np.allclose(V2, V)
    # same triangles, possibly rotated corner order
    key = lambda tri: tuple(np.roll(tri, -int(np.argmin(tri))))
    assert sorted(map(key, F2)) == sorted(map(key, F))
    assert np.isclose(mesh.to_trimesh().area, tm.Trimesh(V, F, process=False).area)


def test_edge_shared_by_three_faces_is_rejected():
    V = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, -1, 0], [0, 0, 1]], dtype=float)
    F = np.array([[0, 1, 2], [1, 0, 3], [0, 1, 4]])
    with pytest.raises(TopologyError):
        HalfEdgeMesh.from_arrays(V, F)


def test_inconsistent_winding_is_rejected():
    V = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, -1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [0, 1, 3]])
    with pytest.raises(TopologyError):
        HalfEdgeMesh.from_arrays(V, F)


def test_pinched_vertex_is_rejected():
    # two triangles touching only at vertex 0
    V = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [-1, 0, 0], [0, -1, 0]], dtype=float)
    F = np.array([[0, 1, 2], [0, 3, 4]])
    with pytest.raises(TopologyError):
        HalfEdgeMesh.from_arrays(V, F)


def test_isolated_vertices_are_dropped():
    V = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [5, 5, 5]], dtype=float)
    mesh = HalfEdgeMesh.from_arrays(V, np.array([[0, 1, 2]]))
    assert mesh.n_vertices == 3
    assert all(mesh.is_boundary_vertex(v) for v in mesh.vertices())
    assert all(mesh.is_boundary_edge(e) for e in mesh.edges())
    mesh.validate()


def test_collapse_then_collect_garbage():
    mesh = HalfEdgeMesh.from_arrays(*octahedron())
    h = mesh.find_halfedge(0, 2)
    survivor = mesh.collapse(h)
    assert survivor == 2
    assert mesh.n_vertices == 5
    assert mesh.n_faces == 6
    assert mesh.n_edges == 9
    mesh.validate()

    mesh.collect_garbage()
    assert list(mesh.vertices()) == list(range(5))
    assert list(mesh.edges()) == list(range(9))
    assert list(mesh.faces()) == list(range(6))
    assert mesh.euler_characteristic() == 2
    mesh.validate()


def test_split_edge_retriangulates_both_sides():
    mesh = HalfEdgeMesh.from_arrays(*octahedron())
    area = mesh.surface_area()
    h = mesh.find_halfedge(0, 2)
    m = mesh.split_edge(h, 0.5 * (mesh.point(0) + mesh.point(2)))

    assert mesh.n_vertices == 7
    assert mesh.n_faces == 10
    assert mesh.valence(m) == 4
    assert sorted(mesh.neighbors(m)) == [0, 2, 4, 5]
    assert np.isclose(mesh.surface_area(), area)
    mesh.validate()


def test_analyze_reports_closed_sphere():
    mesh = HalfEdgeMesh.from_trimesh(example_mesh("sphere", subdivisions=1))
    report = mesh.analyze()
    assert report["is_closed"] is True
    assert report["is_manifold"] is True
    assert report["component_count"] == 1
    assert report["genus"] == 0
    assert report["issues"] == []


def test_copy_is_independent():
    mesh = HalfEdgeMesh.from_arrays(*octahedron())
    other = mesh.copy()
    other.set_point(0, [2.0, 0.0, 0.0])
    other.set_fixed(1)
    assert np.allclose(mesh.point(0), [1.0, 0.0, 0.0])
    assert not mesh.is_fixed(1)
