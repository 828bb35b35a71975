from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, MutableMapping, Optional, Tuple

import numpy as np
import scipy.sparse as sp
import trimesh as tm

from .config import ContractionParameters
from .contraction import ContractionStep, contract_geometry
from .degeneracy import detect_degeneracies
from .errors import NumericalError
from .laplacian import WeightCalculator, assemble_LHS, assemble_RHS, compute_edge_weights
from .mesh import HalfEdgeMesh
from .solver import NormalEquationSolver, SparseLinearSolver
from .topology import collapse_short_edges, iteratively_split_triangles
from .weights import CotangentWeight

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class ContractionState(Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass
class ContractionResult:
    state: ContractionState
    iterations: int
    areas: List[float]  # surface area before the first and after each iteration
    fixed_points: np.ndarray  # (k,3) positions of fixed vertices, in fixing order
    collapsed: int = 0  # edges collapsed over the whole run
    split: int = 0
    fixed: int = 0  # vertices fixed by degeneracy detection
    error: Optional[NumericalError] = None


class MeanCurvatureSkeleton:
    """Iterative mesh contraction toward the medial axis.

    Each iteration contracts the geometry with one least-squares curvature
    flow solve, collapses edges that became too short, splits triangles that
    became too obtuse, and fixes vertices whose neighbourhood degenerated.
    The positions of fixed vertices accumulate in ``get_fixed_points()`` and
    seed the curve skeleton.

    The driver is a small state machine: RUNNING until the area stops
    shrinking (or every vertex is fixed, or ``max_iterations`` is reached),
    then CONVERGED; a failed solve ends the run in FAILED. The individual
    operations can also be called one at a time.

    Parameters
    ----------
    mesh : HalfEdgeMesh
        Closed manifold triangle mesh, contracted in place.
    vertex_index_map, edge_index_map : mutable mapping, optional
        Mappings from handle to dense id that the mesh keeps up to date.
    params : ContractionParameters, optional
        Thresholds and weights. When omitted, ``ContractionParameters.for_mesh``
        derives ``edgelength_TH`` from the bounding-box diagonal. Keyword
        arguments override individual fields either way.
    solver : SparseLinearSolver, optional
        Least-squares backend, ``NormalEquationSolver()`` by default.
    weight : callable, optional
        Edge weight calculator, ``CotangentWeight()`` by default.
    verbose : bool, default False
        If True, log progress at INFO level.
    log : logging.Logger, optional
        Custom logger. If None, use module logger.
    """

    def __init__(
        self,
        mesh: HalfEdgeMesh,
        vertex_index_map: Optional[MutableMapping[int, int]] = None,
        edge_index_map: Optional[MutableMapping[int, int]] = None,
        *,
        params: Optional[ContractionParameters] = None,
        solver: Optional[SparseLinearSolver] = None,
        weight: Optional[WeightCalculator] = None,
        verbose: bool = False,
        log: Optional[logging.Logger] = None,
        **overrides: Any,
    ):
        if params is None:
            params = ContractionParameters.for_mesh(mesh, **overrides)
        elif overrides:
            params = dataclasses.replace(params, **overrides)
        mesh.bind_index_maps(vertex_index_map, edge_index_map)

        self._mesh = mesh
        self.params = params
        self.solver = solver or NormalEquationSolver()
        self.weight = weight or CotangentWeight()
        self.verbose = verbose
        self._log = log or logger

        self._state = ContractionState.RUNNING
        self._error: Optional[NumericalError] = None
        self._fixed_points: List[np.ndarray] = [mesh.point(v).copy() for v in mesh.vertices() if mesh.is_fixed(v)]
        self._original_area = mesh.surface_area()
        self._areas: List[float] = [self._original_area]
        self._iterations = 0
        self._n_collapsed = 0
        self._n_split = 0
        self._n_fixed = 0

        if verbose:
            self._log.info(
                "Skeleton: %d vertices, %d faces, area=%.6g, edgelength_TH=%.4g",
                mesh.n_vertices, mesh.n_faces, self._original_area, params.edgelength_TH,
            )

    @classmethod
    def from_trimesh(cls, mesh: tm.Trimesh, **kwargs: Any) -> "MeanCurvatureSkeleton":
        """Build a driver on a half-edge copy of a ``trimesh.Trimesh``."""
        return cls(HalfEdgeMesh.from_trimesh(mesh), **kwargs)

    # =================================================================
    # PARAMETERS
    # =================================================================

    def get_parameter(self, name: str) -> Any:
        return getattr(self.params, name)

    def set_parameter(self, name: str, value: Any) -> None:
        """Validate and assign one parameter; takes effect on the next operation."""
        self.params.set(name, value)

    def get_omega_L(self) -> float:
        return self.params.omega_L

    def set_omega_L(self, value: float) -> None:
        self.params.set("omega_L", value)

    def get_omega_H(self) -> float:
        return self.params.omega_H

    def set_omega_H(self, value: float) -> None:
        self.params.set("omega_H", value)

    def get_edgelength_TH(self) -> float:
        return self.params.edgelength_TH

    def set_edgelength_TH(self, value: float) -> None:
        self.params.set("edgelength_TH", value)

    def get_zero_TH(self) -> float:
        return self.params.zero_TH

    def set_zero_TH(self, value: float) -> None:
        self.params.set("zero_TH", value)

    omega_L = property(get_omega_L, set_omega_L)
    omega_H = property(get_omega_H, set_omega_H)
    edgelength_TH = property(get_edgelength_TH, set_edgelength_TH)
    zero_TH = property(get_zero_TH, set_zero_TH)

    # =================================================================
    # ACCESSORS
    # =================================================================

    @property
    def state(self) -> ContractionState:
        return self._state

    @property
    def error(self) -> Optional[NumericalError]:
        return self._error

    @property
    def iterations(self) -> int:
        return self._iterations

    def get_mesh(self) -> HalfEdgeMesh:
        return self._mesh

    def get_fixed_points(self) -> np.ndarray:
        """(k,3) copy of the fixed-point positions, in the order they were fixed."""
        if not self._fixed_points:
            return np.zeros((0, 3), dtype=float)
        return np.vstack(self._fixed_points)

    def result(self) -> ContractionResult:
        return ContractionResult(
            state=self._state,
            iterations=self._iterations,
            areas=list(self._areas),
            fixed_points=self.get_fixed_points(),
            collapsed=self._n_collapsed,
            split=self._n_split,
            fixed=self._n_fixed,
            error=self._error,
        )

    # =================================================================
    # INDIVIDUAL OPERATIONS
    # =================================================================

    def compute_edge_weight(self) -> np.ndarray:
        """Current edge weights, indexed by edge id."""
        return compute_edge_weights(self._mesh, self.weight, zero_TH=self.params.zero_TH, verbose=self.verbose)

    def assemble_LHS(self, edge_weight: Optional[np.ndarray] = None) -> sp.csr_matrix:
        if edge_weight is None:
            edge_weight = self.compute_edge_weight()
        p = self.params
        return assemble_LHS(
            self._mesh, edge_weight, omega_L=p.omega_L, omega_H=p.omega_H, omega_P=p.omega_P, verbose=self.verbose
        )

    def assemble_RHS(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        self._mesh.reindex()
        return assemble_RHS(self._mesh, omega_H=self.params.omega_H, omega_P=self.params.omega_P)

    def contract_geometry(self) -> ContractionStep:
        """One least-squares contraction solve; raises NumericalError on failure."""
        return contract_geometry(
            self._mesh, self.params, solver=self.solver, weight=self.weight, verbose=self.verbose, log=self._log
        )

    def collapse_short_edges(self) -> int:
        n = collapse_short_edges(self._mesh, self.params, verbose=self.verbose, log=self._log)
        self._n_collapsed += n
        return n

    def iteratively_split_triangles(self) -> int:
        n = iteratively_split_triangles(self._mesh, self.params, verbose=self.verbose, log=self._log)
        self._n_split += n
        return n

    def detect_degeneracies(self) -> int:
        n = detect_degeneracies(self._mesh, self.params, self._fixed_points, verbose=self.verbose, log=self._log)
        self._n_fixed += n
        return n

    # =================================================================
    # ITERATION
    # =================================================================

    def step(self) -> ContractionState:
        """Run one full iteration if the driver is still RUNNING and return the new state."""
        if self._state is not ContractionState.RUNNING:
            return self._state

        try:
            self.contract_geometry()
        except NumericalError as e:
            self._error = e
            self._state = ContractionState.FAILED
            self._log.error("Skeleton: iteration %d failed: %s", self._iterations + 1, e)
            return self._state

        self.collapse_short_edges()
        self.iteratively_split_triangles()
        self.detect_degeneracies()
        self._mesh.collect_garbage()
        self._iterations += 1

        area = self._mesh.surface_area()
        previous = self._areas[-1]
        self._areas.append(area)
        variation = (previous - area) / self._original_area if self._original_area > 0 else 0.0

        if self.verbose:
            self._log.info(
                "Skeleton: iteration %d: %d vertices, area=%.6g, variation=%.3g",
                self._iterations, self._mesh.n_vertices, area, variation,
            )

        if self._mesh.fixed_mask().all():
            self._log.info("Skeleton: every vertex is fixed after %d iterations", self._iterations)
            self._state = ContractionState.CONVERGED
        elif variation < self.params.area_variation_TH:
            self._log.info("Skeleton: area variation %.3g below threshold after %d iterations", variation, self._iterations)
            self._state = ContractionState.CONVERGED
        return self._state

    def contract(self, max_iterations: Optional[int] = None) -> ContractionResult:
        """Iterate until CONVERGED or FAILED.

        Parameters
        ----------
        max_iterations : int, optional
            Cap on the total number of iterations; defaults to
            ``params.max_iterations``. Reaching it counts as convergence.

        Returns
        -------
        ContractionResult
        """
        limit = self.params.max_iterations if max_iterations is None else int(max_iterations)
        while self._state is ContractionState.RUNNING and self._iterations < limit:
            self.step()
        if self._state is ContractionState.RUNNING:
            self._log.info("Skeleton: stopped at the iteration limit (%d)", limit)
            self._state = ContractionState.CONVERGED
        return self.result()

    def __repr__(self) -> str:
        return (
            f"MeanCurvatureSkeleton(state={self._state.value}, iterations={self._iterations}, "
            f"fixed_points={len(self._fixed_points)}, mesh={self._mesh!r})"
        )
