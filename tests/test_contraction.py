import numpy as np
import pytest
import trimesh as tm

from pymcskel.config import ContractionParameters
from pymcskel.contraction import contract_geometry
from pymcskel.errors import NumericalError
from pymcskel.mesh import HalfEdgeMesh
from pymcskel.solver import LSQRSolver


def zero_weight(mesh, e, zero_TH):
    return 0.0


def test_contraction_shrinks_icosahedron():
    mesh = HalfEdgeMesh.from_trimesh(tm.creation.icosahedron())
    area_before = mesh.surface_area()
    step = contract_geometry(mesh, ContractionParameters(omega_L=1.0, omega_H=0.1))

    assert step.area < area_before
    assert np.isclose(step.area, mesh.surface_area())
    assert step.max_displacement > 0
    assert np.isfinite(step.log_determinant)
    assert np.all(np.isfinite(mesh.vertex_array()))
    # connectivity is untouched
    assert mesh.n_vertices == 12
    assert mesh.n_faces == 20


def test_fixed_vertices_keep_their_position():
    mesh = HalfEdgeMesh.from_trimesh(tm.creation.icosphere(subdivisions=1))
    v = 5
    mesh.set_fixed(v)
    p = mesh.point(v).copy()
    contract_geometry(mesh, ContractionParameters())
    assert np.array_equal(mesh.point(v), p)
    assert not np.allclose(mesh.point(0), tm.creation.icosphere(subdivisions=1).vertices[0])


def test_lsqr_backend_gives_same_step():
    params = ContractionParameters(omega_L=1.0, omega_H=0.5)
    m1 = HalfEdgeMesh.from_trimesh(tm.creation.icosphere(subdivisions=1))
    m2 = m1.copy()
    contract_geometry(m1, params)
    contract_geometry(m2, params, solver=LSQRSolver())
    assert np.allclose(m1.vertex_array(), m2.vertex_array(), atol=1e-6)


def test_singular_system_raises_and_leaves_mesh_untouched():
    mesh = HalfEdgeMesh.from_trimesh(tm.creation.icosahedron())
    V = mesh.vertex_array()
    with pytest.raises(NumericalError):
        contract_geometry(mesh, ContractionParameters(omega_H=0.0), weight=zero_weight)
    assert np.array_equal(mesh.vertex_array(), V)
