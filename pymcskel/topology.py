from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from .config import ContractionParameters
from .errors import TopologyError
from .mesh import HalfEdgeMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# =================================================================
# EDGE COLLAPSE
# =================================================================


def merged_point(mesh: HalfEdgeMesh, u: int, v: int) -> np.ndarray:
    """Position of the vertex replacing u and v: a fixed endpoint wins, else the midpoint."""
    fu, fv = mesh.is_fixed(u), mesh.is_fixed(v)
    if fu and not fv:
        return mesh.point(u).copy()
    if fv and not fu:
        return mesh.point(v).copy()
    return 0.5 * (mesh.point(u) + mesh.point(v))


def _check_opposite_vertex(mesh: HalfEdgeMesh, h: int) -> int:
    """Return the corner opposite ``h`` in its face after checking it survives the collapse."""
    h1 = mesh.next(h)
    h2 = mesh.next(h1)
    w = mesh.target(h1)
    if mesh.face(mesh.twin(h1)) == -1 and mesh.face(mesh.twin(h2)) == -1:
        raise TopologyError(f"both other edges of the triangle at vertex {w} lie on the boundary")
    # the opposite vertex loses one edge; it must keep a proper fan
    minimum = 3 if mesh.is_boundary_vertex(w) else 4
    if mesh.valence(w) < minimum:
        raise TopologyError(f"opposite vertex {w} would be left with a degenerate fan")
    return w


def _check_orientation(mesh: HalfEdgeMesh, h: int, point: np.ndarray) -> None:
    u, v = mesh.source(h), mesh.target(h)
    skip = {mesh.face(h), mesh.face(mesh.twin(h))}
    for w in (u, v):
        for f in mesh.incident_faces(w):
            if f in skip:
                continue
            corners = mesh.face_vertices(f)
            old = [mesh.point(x) for x in corners]
            new = [point if x in (u, v) else mesh.point(x) for x in corners]
            n_old = np.cross(old[1] - old[0], old[2] - old[0])
            n_new = np.cross(new[1] - new[0], new[2] - new[0])
            if float(np.dot(n_old, n_new)) < 0.0:
                raise TopologyError(f"collapse would flip the orientation of face {f}")


def check_collapse(mesh: HalfEdgeMesh, h: int, point: Optional[np.ndarray] = None) -> None:
    """Raise TopologyError if collapsing halfedge ``h`` into ``point`` is not allowed.

    Checks, in order: the triangles on either side keep a proper opposite
    vertex, the edge is not an interior chord between two boundary vertices,
    the one-rings of the endpoints only share the two opposite vertices
    (link condition, otherwise a non-manifold edge would appear), and no
    surrounding face flips when the endpoints move to ``point``.
    """
    if mesh.is_edge_removed(h >> 1):
        raise TopologyError(f"edge {h >> 1} was already removed")
    o = mesh.twin(h)
    u, v = mesh.source(h), mesh.target(h)

    vl = _check_opposite_vertex(mesh, h) if mesh.face(h) != -1 else -1
    vr = _check_opposite_vertex(mesh, o) if mesh.face(o) != -1 else -1
    if vl == vr:
        raise TopologyError(f"edge {h >> 1} has no proper incident triangles")

    if mesh.is_boundary_vertex(u) and mesh.is_boundary_vertex(v) and not mesh.is_boundary_edge(h >> 1):
        raise TopologyError("collapse would join two boundary vertices through the interior")

    common = (set(mesh.neighbors(u)) & set(mesh.neighbors(v))) - {vl, vr}
    if common:
        raise TopologyError(
            f"collapse would create a non-manifold edge (shared neighbours {sorted(common)})"
        )

    if point is not None:
        _check_orientation(mesh, h, point)


def collapse_short_edges(
    mesh: HalfEdgeMesh,
    params: Optional[ContractionParameters] = None,
    *,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> int:
    """Collapse every edge shorter than ``edgelength_TH``.

    Edges are visited shortest first and the scan is repeated until a pass
    collapses nothing. The surviving vertex is fixed if either endpoint was;
    it sits at the fixed endpoint's position, or at the midpoint. Edges whose
    collapse would break manifoldness or flip a face are skipped.

    Returns
    -------
    int
        Number of edges collapsed.
    """
    params = params or ContractionParameters()
    _log = log or logger
    threshold = params.edgelength_TH

    total = 0
    skipped = 0
    while True:
        candidates = [(mesh.edge_length(e), e) for e in mesh.edges()]
        candidates = sorted((length, e) for length, e in candidates if length < threshold)
        collapsed = 0
        skipped = 0
        for _, e in candidates:
            if mesh.is_edge_removed(e):
                continue
            # lengths change as neighbours collapse
            if mesh.edge_length(e) >= threshold:
                continue
            h = mesh.edge_halfedge(e)
            u, v = mesh.source(h), mesh.target(h)
            if mesh.is_fixed(u) and not mesh.is_fixed(v):
                # keep the fixed endpoint as survivor
                h = mesh.twin(h)
                u, v = v, u
            point = merged_point(mesh, u, v)
            try:
                check_collapse(mesh, h, point)
            except TopologyError as err:
                skipped += 1
                _log.debug("Skipping collapse of edge %d: %s", e, err)
                continue
            fixed = mesh.is_fixed(u) or mesh.is_fixed(v)
            survivor = mesh.collapse(h)
            mesh.set_point(survivor, point)
            mesh.set_fixed(survivor, fixed)
            collapsed += 1
        total += collapsed
        if collapsed == 0:
            break

    mesh.reindex()
    if verbose:
        _log.info("Collapse: %d edges collapsed, %d short edges kept", total, skipped)
    return total


# =================================================================
# TRIANGLE SPLITTING
# =================================================================


def _opposite_angles(mesh: HalfEdgeMesh, f: int) -> Tuple[Tuple[int, int, int], np.ndarray, np.ndarray]:
    """Halfedges of ``f``, the interior angle opposite each, and each edge length."""
    hs = mesh.face_halfedges(f)
    angles = np.zeros(3)
    lengths = np.zeros(3)
    for k, h in enumerate(hs):
        w = mesh.point(mesh.target(mesh.next(h)))
        a = mesh.point(mesh.source(h)) - w
        b = mesh.point(mesh.target(h)) - w
        lengths[k] = np.linalg.norm(mesh.point(mesh.target(h)) - mesh.point(mesh.source(h)))
        denom = np.linalg.norm(a) * np.linalg.norm(b)
        angles[k] = math.acos(np.clip(np.dot(a, b) / denom, -1.0, 1.0)) if denom > 0 else 0.0
    return hs, angles, lengths


def _split_target(
    mesh: HalfEdgeMesh, f: int, params: ContractionParameters
) -> Optional[Tuple[int, np.ndarray]]:
    """Halfedge to split in face ``f`` and the insertion point, or None if the face is fine."""
    if mesh.face_area(f) < params.zero_TH:
        return None
    hs, angles, lengths = _opposite_angles(mesh, f)

    k = int(np.argmax(angles))
    if angles[k] > math.radians(params.alpha_TH):
        # project the obtuse corner onto the opposite (longest) edge
        h = hs[k]
        pa, pb = mesh.point(mesh.source(h)), mesh.point(mesh.target(h))
        pw = mesh.point(mesh.target(mesh.next(h)))
        d = pb - pa
        t = float(np.clip(np.dot(pw - pa, d) / np.dot(d, d), 0.0, 1.0))
        return h, pa + t * d

    if params.edge_ratio_TH is not None:
        k = int(np.argmax(lengths))
        shortest = float(lengths.min())
        if shortest > 0 and lengths[k] / shortest > params.edge_ratio_TH:
            h = hs[k]
            return h, 0.5 * (mesh.point(mesh.source(h)) + mesh.point(mesh.target(h)))
    return None


def _creates_short_edge(mesh: HalfEdgeMesh, h: int, point: np.ndarray, threshold: float) -> bool:
    ends = [mesh.source(h), mesh.target(h)]
    for k in (h, mesh.twin(h)):
        if mesh.face(k) != -1:
            ends.append(mesh.target(mesh.next(k)))
    return any(np.linalg.norm(mesh.point(x) - point) < threshold for x in ends)


def iteratively_split_triangles(
    mesh: HalfEdgeMesh,
    params: Optional[ContractionParameters] = None,
    *,
    verbose: bool = False,
    log: Optional[logging.Logger] = None,
) -> int:
    """Split badly shaped triangles until none is left or the pass limit is hit.

    A triangle whose largest angle exceeds ``alpha_TH`` has its longest edge
    split at the foot of the obtuse corner; with ``edge_ratio_TH`` set, a
    triangle whose longest/shortest edge ratio exceeds it has its longest
    edge split at the midpoint. Both triangles sharing the edge are cut by an
    edge to the new vertex. Splits that would create an edge shorter than
    ``edgelength_TH`` are skipped, since the next collapse would undo them.

    Returns
    -------
    int
        Number of edges split.
    """
    params = params or ContractionParameters()
    _log = log or logger

    total = 0
    for n_pass in range(params.max_split_passes):
        split = 0
        for f in list(mesh.faces()):
            target = _split_target(mesh, f, params)
            if target is None:
                continue
            h, point = target
            if _creates_short_edge(mesh, h, point, params.edgelength_TH):
                _log.debug("Skipping split of face %d: new edge shorter than edgelength_TH", f)
                continue
            mesh.split_edge(h, point)
            split += 1
        total += split
        if split == 0:
            break
    else:
        _log.debug("Split: stopped after %d passes", params.max_split_passes)

    mesh.reindex()
    if verbose:
        _log.info("Split: %d edges split", total)
    return total
