from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logging
import numpy as np

from .config import ContractionParameters
from .errors import NumericalError
from .laplacian import WeightCalculator, assemble_LHS, assemble_RHS, compute_edge_weights
from .mesh import HalfEdgeMesh
from .solver import NormalEquationSolver, SparseLinearSolver

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@dataclass
class ContractionStep:
    max_displacement: float  # largest vertex move in this step
    mean_displacement: float
    log_determinant: float  # solver diagnostic, nan if unavailable
    rcond: float
    area: float  # surface area after the step


def contract_geometry(
    mesh: HalfEdgeMesh,
    params: Optional[ContractionParameters] = None,
    *,
    solver: Optional[SparseLinearSolver] = None,
    weight: Optional[WeightCalculator] = None,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> ContractionStep:
    """One implicit contraction step toward the medial axis.

    Solves, in the least-squares sense and once per coordinate channel,

        [ omega_L * L ]         [ 0        ]
        [ W_H         ] V'   =  [ W_H * V  ]

    where L is the cotangent Laplacian of the current geometry and W_H the
    diagonal anchoring weights (``omega_H``, or ``omega_P`` for fixed
    vertices). The solutions replace the positions of all non-fixed
    vertices; fixed vertices keep their position.

    Parameters
    ----------
    mesh : HalfEdgeMesh
        Mesh to contract in place. It is reindexed before assembly.
    params : ContractionParameters, optional
        Weights and tolerances. Defaults to ``ContractionParameters()``.
    solver : SparseLinearSolver, optional
        Least-squares backend. Defaults to ``NormalEquationSolver()``.
    weight : callable, optional
        Edge weight calculator ``weight(mesh, edge, zero_TH)``. Defaults to
        ``CotangentWeight()``.
    verbose : bool, default False
        If True, log basic progress information.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.

    Returns
    -------
    ContractionStep

    Raises
    ------
    NumericalError
        If the factorization fails (singular or ill-conditioned system) or
        the solve produces non-finite coordinates. The mesh is left untouched.
    """
    params = params or ContractionParameters()
    solver = solver or NormalEquationSolver()
    _log = log or logger

    mesh.reindex()
    n = mesh.n_vertices
    if n == 0:
        raise NumericalError("Cannot contract a mesh without vertices")

    w = compute_edge_weights(mesh, weight, zero_TH=params.zero_TH, verbose=verbose)
    A = assemble_LHS(
        mesh, w, omega_L=params.omega_L, omega_H=params.omega_H, omega_P=params.omega_P, verbose=verbose
    )
    Bx, By, Bz = assemble_RHS(mesh, omega_H=params.omega_H, omega_P=params.omega_P)

    factorization = solver.factor(A)
    if not factorization.success:
        _log.error("Contraction: factorization failed (%s)", factorization.message)
        raise NumericalError(f"Factorization failed: {factorization.message}")
    if verbose:
        _log.info(
            "Contraction: factorization complete (log|det|=%.4g, pivot ratio=%.3g)",
            factorization.log_determinant, factorization.rcond,
        )

    V_old = mesh.vertex_array()
    V_new = np.column_stack([solver.solve(factorization, B) for B in (Bx, By, Bz)])
    fixed = mesh.fixed_mask()
    V_new[fixed] = V_old[fixed]

    for v, i in mesh.vertex_index.items():
        if not fixed[i]:
            mesh.set_point(v, V_new[i])

    disp = np.linalg.norm(V_new - V_old, axis=1)
    step = ContractionStep(
        max_displacement=float(disp.max()),
        mean_displacement=float(disp.mean()),
        log_determinant=factorization.log_determinant,
        rcond=factorization.rcond,
        area=mesh.surface_area(),
    )
    if verbose:
        _log.info(
            "Contraction: %d vertices, mean displacement %.4g, area %.6g",
            n, step.mean_displacement, step.area,
        )
    return step
