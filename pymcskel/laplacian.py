from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from .mesh import HalfEdgeMesh
from .weights import CotangentWeight

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

WeightCalculator = Callable[[HalfEdgeMesh, int, float], float]


def compute_edge_weights(
    mesh: HalfEdgeMesh,
    weight: Optional[WeightCalculator] = None,
    *,
    zero_TH: float = 1e-7,
    verbose: bool = False,
) -> np.ndarray:
    """Evaluate the weight calculator on every live edge.

    The mesh is reindexed first; the returned array is indexed by edge id.
    """
    weight = weight or CotangentWeight()
    mesh.reindex()
    w = np.zeros(mesh.n_edges, dtype=float)
    for e, i in mesh.edge_index.items():
        w[i] = weight(mesh, e, zero_TH)
    if verbose:
        logger.info("Edge weights: %d edges, min=%.3g, max=%.3g", w.size, w.min(initial=0.0), w.max(initial=0.0))
    return w


def assemble_LHS(
    mesh: HalfEdgeMesh,
    edge_weight: np.ndarray,
    *,
    omega_L: float,
    omega_H: float,
    omega_P: Optional[float] = None,
    verbose: bool = False,
) -> sp.csr_matrix:
    """Build the (2n, n) contraction matrix.

    Rows [0, n) hold the weighted Laplacian:

        A(i, i) = -sum_j w_ij
        A(i, j) = w_ij * omega_L      for each neighbour j of i

    The Laplacian row of a fixed vertex is left empty since its position is
    not updated. Weights of edges joining two fixed vertices therefore never
    enter the system.

    Rows [n, 2n) hold the anchoring identity block, ``omega_H`` on the
    diagonal, or ``omega_P`` for a fixed vertex when given.

    ``edge_weight`` must be indexed by the current edge ids (see
    ``compute_edge_weights``).

    Returns
    -------
    A : (2n, n) csr_matrix
    """
    n = mesh.n_vertices
    if edge_weight.shape[0] != mesh.n_edges:
        raise ValueError("edge_weight must hold one value per live edge")
    if verbose:
        logger.info("Assembling LHS for %d vertices, %d edges", n, mesh.n_edges)

    vid = mesh.vertex_index
    eid = mesh.edge_index
    fixed_weight = omega_H if omega_P is None else omega_P

    I: list[int] = []
    J: list[int] = []
    W: list[float] = []

    for v in mesh.vertices():
        i = vid[v]
        if not mesh.is_fixed(v):
            diagonal = 0.0
            for h in mesh.outgoing(v):
                wij = edge_weight[eid[h >> 1]]
                I.append(i)
                J.append(vid[mesh.target(h)])
                W.append(wij * omega_L)
                diagonal -= wij
            I.append(i)
            J.append(i)
            W.append(diagonal)

        I.append(n + i)
        J.append(i)
        W.append(fixed_weight if mesh.is_fixed(v) else omega_H)

    A = sp.coo_matrix((np.array(W, dtype=float), (np.array(I, dtype=np.int64), np.array(J, dtype=np.int64))), shape=(2 * n, n)).tocsr()
    if verbose:
        logger.info("LHS built: shape=%s nnz=%d", A.shape, A.nnz)
    return A


def assemble_RHS(
    mesh: HalfEdgeMesh,
    *,
    omega_H: float,
    omega_P: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Right-hand sides (Bx, By, Bz) of length 2n.

    Rows [0, n) are zero (target is zero curvature flow); rows [n, 2n) hold
    the current coordinates scaled by the anchoring weight of each vertex.
    """
    n = mesh.n_vertices
    B = np.zeros((2 * n, 3), dtype=float)
    fixed_weight = omega_H if omega_P is None else omega_P
    for v in mesh.vertices():
        i = mesh.vertex_index[v]
        B[n + i] = mesh.point(v) * (fixed_weight if mesh.is_fixed(v) else omega_H)
    return B[:, 0].copy(), B[:, 1].copy(), B[:, 2].copy()
