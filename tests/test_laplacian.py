import numpy as np
import scipy.sparse as sp
import trimesh as tm

from pymcskel.laplacian import assemble_LHS, assemble_RHS, compute_edge_weights
from pymcskel.mesh import HalfEdgeMesh


def sphere_mesh(subdivisions=2):
    return HalfEdgeMesh.from_trimesh(tm.creation.icosphere(subdivisions=subdivisions))


def test_lhs_shape_and_structure():
    mesh = sphere_mesh()
    n = mesh.n_vertices
    w = compute_edge_weights(mesh)
    A = assemble_LHS(mesh, w, omega_L=1.0, omega_H=0.1)

    assert sp.isspmatrix_csr(A)
    assert A.shape == (2 * n, n)

    # Laplacian block: zero row sums with omega_L = 1, symmetric
    L = A[:n]
    rowsum = np.array(L.sum(axis=1)).ravel()
    assert np.allclose(rowsum, 0.0, atol=1e-10)
    assert abs(L - L.T).max() < 1e-12

    # anchoring block: omega_H on the diagonal only
    H = A[n:]
    assert H.nnz == n
    assert np.allclose(H.diagonal(), 0.1)


def test_lhs_scales_off_diagonal_by_omega_L():
    mesh = sphere_mesh(1)
    n = mesh.n_vertices
    w = compute_edge_weights(mesh)
    A1 = assemble_LHS(mesh, w, omega_L=1.0, omega_H=0.1).tocsr()
    A3 = assemble_LHS(mesh, w, omega_L=3.0, omega_H=0.1).tocsr()

    off = A1[:n] - sp.diags(A1[:n].diagonal())
    off3 = A3[:n] - sp.diags(A3[:n].diagonal())
    assert np.allclose(off3.toarray(), 3.0 * off.toarray())
    # the diagonal stays the plain negative weight sum
    assert np.allclose(A3[:n].diagonal(), A1[:n].diagonal())


def test_fixed_vertex_uses_omega_P():
    mesh = sphere_mesh(1)
    n = mesh.n_vertices
    mesh.set_fixed(0)
    w = compute_edge_weights(mesh)
    A = assemble_LHS(mesh, w, omega_L=1.0, omega_H=0.1, omega_P=1e3)
    diag = A[n:].diagonal()
    assert diag[mesh.vertex_index[0]] == 1e3
    assert np.allclose(np.delete(diag, mesh.vertex_index[0]), 0.1)


def test_rhs_anchors_current_positions():
    mesh = sphere_mesh(1)
    n = mesh.n_vertices
    mesh.set_fixed(3)
    Bx, By, Bz = assemble_RHS(mesh, omega_H=0.5, omega_P=10.0)
    V = mesh.vertex_array()

    for k, B in enumerate((Bx, By, Bz)):
        assert B.shape == (2 * n,)
        assert np.all(B[:n] == 0.0)
        expected = 0.5 * V[:, k]
        expected[mesh.vertex_index[3]] = 10.0 * V[mesh.vertex_index[3], k]
        assert np.allclose(B[n:], expected)


def test_assembly_after_collapse_uses_live_ids():
    mesh = sphere_mesh(1)
    v = next(iter(mesh.vertices()))
    mesh.collapse(next(iter(mesh.outgoing(v))))
    w = compute_edge_weights(mesh)
    A = assemble_LHS(mesh, w, omega_L=1.0, omega_H=0.1)
    n = mesh.n_vertices
    assert A.shape == (2 * n, n)
    assert sorted(mesh.vertex_index.values()) == list(range(n))
    assert np.allclose(np.array(A[:n].sum(axis=1)).ravel(), 0.0, atol=1e-10)


def test_fixed_vertex_has_no_laplacian_row():
    mesh = sphere_mesh(1)
    n = mesh.n_vertices
    mesh.set_fixed(0)
    w = compute_edge_weights(mesh)
    A = assemble_LHS(mesh, w, omega_L=1.0, omega_H=0.1, omega_P=1e3)
    i = mesh.vertex_index[0]
    assert A[i].nnz == 0
    # neighbours still pull toward the fixed vertex
    assert A[:n, i].nnz == mesh.valence(0)
