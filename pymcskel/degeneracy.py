from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .config import ContractionParameters
from .errors import TopologyError
from .mesh import HalfEdgeMesh
from .topology import check_collapse, merged_point

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def local_area(mesh: HalfEdgeMesh, v: int) -> float:
    """Total area of the faces incident to ``v``."""
    return float(sum(mesh.face_area(f) for f in mesh.incident_faces(v)))


def stuck_edge(mesh: HalfEdgeMesh, v: int, edgelength_TH: float) -> Optional[int]:
    """First edge at ``v`` shorter than ``edgelength_TH`` that cannot be collapsed, or None."""
    for h in mesh.outgoing(v):
        if mesh.edge_length(h >> 1) >= edgelength_TH:
            continue
        try:
            check_collapse(mesh, h, merged_point(mesh, v, mesh.target(h)))
        except TopologyError:
            return h >> 1
    return None


def detect_degeneracies(
    mesh: HalfEdgeMesh,
    params: Optional[ContractionParameters] = None,
    fixed_points: Optional[List[np.ndarray]] = None,
    *,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> int:
    """Fix every vertex whose neighbourhood has collapsed.

    A vertex is degenerate when the total area of its incident faces is
    below ``zero_TH``, or when one of its edges is shorter than
    ``edgelength_TH`` but its collapse is refused (see ``check_collapse``).
    Such a vertex has reached the medial curve. It is marked fixed, and its
    current position is appended to ``fixed_points`` when given. Vertices
    already fixed are ignored, so a second call without an intervening
    contraction fixes nothing.

    Returns
    -------
    int
        Number of vertices newly fixed.
    """
    params = params or ContractionParameters()
    _log = log or logger

    # decide on the unmodified mesh, both endpoints of a stuck edge qualify
    newly_fixed = []
    for v in mesh.vertices():
        if mesh.is_fixed(v):
            continue
        if local_area(mesh, v) < params.zero_TH:
            newly_fixed.append(v)
            continue
        e = stuck_edge(mesh, v, params.edgelength_TH)
        if e is not None:
            _log.debug("Vertex %d is stuck on short edge %d", v, e)
            newly_fixed.append(v)

    for v in newly_fixed:
        mesh.set_fixed(v)
        if fixed_points is not None:
            fixed_points.append(mesh.point(v).copy())
        _log.debug("Fixed vertex %d at %s", v, mesh.point(v))

    if verbose:
        n_fixed = int(mesh.fixed_mask().sum())
        _log.info("Degeneracy: %d vertices newly fixed (%d/%d fixed)", len(newly_fixed), n_fixed, mesh.n_vertices)
    return len(newly_fixed)
