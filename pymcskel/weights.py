from __future__ import annotations

import logging
import numpy as np

from .mesh import HalfEdgeMesh

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class CotangentWeight:
    """Discrete Laplace-Beltrami edge weight: cot(alpha) + cot(beta).

    alpha and beta are the angles opposite the edge in its two incident
    triangles; a boundary edge only has one. A triangle whose area is below
    ``zero_TH`` contributes ``fallback`` instead of its cotangent, so the
    weight is always finite.

    Parameters
    ----------
    fallback : float, default 0.0
        Cotangent substituted for a degenerate triangle.
    secure : bool, default False
        If True clamp negative cotangents (obtuse opposite angles) to zero.
    """

    def __init__(self, fallback: float = 0.0, secure: bool = False):
        if not np.isfinite(fallback):
            raise ValueError("fallback must be finite")
        self.fallback = float(fallback)
        self.secure = bool(secure)

    def corner_cotangent(self, mesh: HalfEdgeMesh, h: int, zero_TH: float) -> float:
        """Cotangent of the angle opposite halfedge ``h`` in its face."""
        w = mesh.target(mesh.next(h))
        a = mesh.point(mesh.source(h)) - mesh.point(w)
        b = mesh.point(mesh.target(h)) - mesh.point(w)
        cross = float(np.linalg.norm(np.cross(a, b)))
        # |a x b| = 2 * area
        if not np.isfinite(cross) or 0.5 * cross < zero_TH:
            return self.fallback
        cot = float(np.dot(a, b)) / cross
        if self.secure:
            cot = max(cot, 0.0)
        return cot

    def __call__(self, mesh: HalfEdgeMesh, e: int, zero_TH: float = 1e-7) -> float:
        h = mesh.edge_halfedge(e)
        total = 0.0
        for k in (h, mesh.twin(h)):
            if mesh.face(k) != -1:
                total += self.corner_cotangent(mesh, k, zero_TH)
        return total

    def __repr__(self) -> str:
        return f"CotangentWeight(fallback={self.fallback}, secure={self.secure})"
