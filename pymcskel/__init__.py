"""pymcskel: mesh contraction and curve-skeleton extraction for triangle meshes.

Public API:
- HalfEdgeMesh.from_arrays(V, F) / HalfEdgeMesh.from_trimesh(mesh)
- MeanCurvatureSkeleton(mesh, omega_L=1, omega_H=0.1, ...).contract()
- contract_geometry(mesh, params), collapse_short_edges(mesh, params),
  iteratively_split_triangles(mesh, params), detect_degeneracies(mesh, params)
- NormalEquationSolver / LSQRSolver sparse least-squares backends

"""
from .config import ContractionParameters
from .contraction import ContractionStep, contract_geometry
from .degeneracy import detect_degeneracies
from .errors import ConfigurationError, MCSkeletonError, NumericalError, TopologyError
from .laplacian import assemble_LHS, assemble_RHS, compute_edge_weights
from .mesh import HalfEdgeMesh, example_mesh
from .skeleton import ContractionResult, ContractionState, MeanCurvatureSkeleton
from .solver import Factorization, LSQRSolver, NormalEquationSolver, SparseLinearSolver
from .topology import check_collapse, collapse_short_edges, iteratively_split_triangles
from .weights import CotangentWeight

__all__ = [
    "ContractionParameters",
    "ContractionStep",
    "contract_geometry",
    "detect_degeneracies",
    "ConfigurationError",
    "MCSkeletonError",
    "NumericalError",
    "TopologyError",
    "assemble_LHS",
    "assemble_RHS",
    "compute_edge_weights",
    "HalfEdgeMesh",
    "example_mesh",
    "ContractionResult",
    "ContractionState",
    "MeanCurvatureSkeleton",
    "Factorization",
    "LSQRSolver",
    "NormalEquationSolver",
    "SparseLinearSolver",
    "check_collapse",
    "collapse_short_edges",
    "iteratively_split_triangles",
    "CotangentWeight",
]
