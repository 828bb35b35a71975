import dataclasses

import pytest
import trimesh as tm

from pymcskel.config import ContractionParameters, validate_parameter
from pymcskel.errors import ConfigurationError
from pymcskel.mesh import HalfEdgeMesh


def test_defaults():
    p = ContractionParameters()
    assert p.omega_L == 1.0
    assert p.omega_H == 0.1
    assert p.zero_TH == 1e-7
    assert p.edge_ratio_TH is None
    assert p.as_dict()["max_iterations"] == 100


@pytest.mark.parametrize(
    "name,value",
    [
        ("edgelength_TH", -1.0),
        ("omega_L", -0.5),
        ("omega_H", float("nan")),
        ("zero_TH", 0.0),
        ("alpha_TH", 200.0),
        ("edge_ratio_TH", 0.9),
        ("max_split_passes", 0),
        ("max_iterations", 2.5),
        ("max_iterations", True),
        ("omega_P", "heavy"),
    ],
)
def test_invalid_values_are_rejected(name, value):
    with pytest.raises(ConfigurationError):
        ContractionParameters(**{name: value})
    with pytest.raises(ConfigurationError):
        ContractionParameters().set(name, value)


def test_unknown_parameter():
    with pytest.raises(ConfigurationError):
        validate_parameter("omega_X", 1.0)


def test_values_are_coerced():
    p = ContractionParameters(max_iterations=10.0, alpha_TH=120)
    assert isinstance(p.max_iterations, int)
    assert isinstance(p.alpha_TH, float)
    assert dataclasses.replace(p, omega_H=2).omega_H == 2.0


def test_for_mesh_scales_edge_threshold():
    mesh = HalfEdgeMesh.from_trimesh(tm.creation.box(extents=(1.0, 2.0, 2.0)))
    p = ContractionParameters.for_mesh(mesh, omega_H=0.2)
    assert p.edgelength_TH == pytest.approx(0.002 * 3.0)
    assert p.omega_H == 0.2
