"""
Half-edge surface mesh with arena storage
"""

import logging
from typing import Dict, Iterator, List, MutableMapping, Optional, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components
import trimesh

from .errors import TopologyError

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def example_mesh(
    kind: str = "icosahedron",
    *,
    # Sphere params
    subdivisions: int = 2,
    # Cylinder params
    radius: float = 0.5,
    height: float = 2.0,
    sections: int | None = 32,
    # Torus params
    major_radius: float = 1.0,
    minor_radius: float = 0.3,
    major_sections: int | None = 32,
    minor_sections: int | None = 16,
    # Common
    transform: np.ndarray | None = None,
    **kwargs,
) -> trimesh.Trimesh:
    """Create a closed demo mesh using trimesh primitives.

    Parameters
    ----------
    kind : {"icosahedron", "sphere", "cylinder", "torus"}
        Type of primitive to generate. Default "icosahedron".
    subdivisions : int
        Icosphere subdivision level (when kind="sphere"). Default 2.
    radius, height, sections
        Cylinder radius, height and radial resolution (when kind="cylinder").
    major_radius, minor_radius, major_sections, minor_sections
        Torus dimensions and resolution (when kind="torus").
    transform : (4,4) float array, optional
        Transform applied after creation.
    **kwargs : dict
        Passed through to the trimesh.creation helpers.

    Returns
    -------
    trimesh.Trimesh
        Generated primitive mesh.

    Examples
    --------
    >>> m = example_mesh("sphere", subdivisions=1)
    >>> t = example_mesh("torus", major_radius=1.0, minor_radius=0.25)
    """
    k = (kind or "icosahedron").lower()
    if k == "icosahedron":
        mesh = trimesh.creation.icosahedron(**kwargs)
    elif k == "sphere":
        mesh = trimesh.creation.icosphere(subdivisions=int(subdivisions), **kwargs)
    elif k == "cylinder":
        return trimesh.creation.cylinder(
            radius=float(radius),
            height=float(height),
            sections=None if sections is None else int(sections),
            transform=transform,
            **kwargs,
        )
    elif k == "torus":
        return trimesh.creation.torus(
            major_radius=float(major_radius),
            minor_radius=float(minor_radius),
            major_sections=None if major_sections is None else int(major_sections),
            minor_sections=None if minor_sections is None else int(minor_sections),
            transform=transform,
            **kwargs,
        )
    else:
        raise ValueError("example_mesh kind must be 'icosahedron', 'sphere', 'cylinder' or 'torus'")
    if transform is not None:
        mesh.apply_transform(transform)
    return mesh


class HalfEdgeMesh:
    """
    Mutable triangle surface stored as index-stable arenas.

    Vertices, halfedges and faces are integer handles into Python lists and
    are never reused while the mesh is alive; removal only sets a tombstone
    flag until ``collect_garbage()`` compacts the arenas. Halfedges are
    allocated in twin pairs, so ``h ^ 1`` is the twin of ``h`` and ``h >> 1``
    is its edge handle. Boundary halfedges carry face ``-1`` and are linked
    into boundary loops.

    Dense ids for the live elements live in ``vertex_index`` and
    ``edge_index`` (handle -> id). They are refreshed by ``reindex()`` and
    are stale after any collapse or split until the next call.
    """

    def __init__(self):
        # vertex arena
        self._points: List[np.ndarray] = []
        self._vhalfedge: List[int] = []
        self._vfixed: List[bool] = []
        self._vremoved: List[bool] = []
        # halfedge arena (target vertex, next, prev, face)
        self._hvertex: List[int] = []
        self._hnext: List[int] = []
        self._hprev: List[int] = []
        self._hface: List[int] = []
        # edge tombstones, one per halfedge pair
        self._eremoved: List[bool] = []
        # face arena
        self._fhalfedge: List[int] = []
        self._fremoved: List[bool] = []

        self.vertex_index: MutableMapping[int, int] = {}
        self.edge_index: MutableMapping[int, int] = {}
        self.face_index: Dict[int, int] = {}

    # =================================================================
    # CONSTRUCTION AND CONVERSION
    # =================================================================

    @classmethod
    def from_arrays(cls, vertices: np.ndarray, faces: np.ndarray) -> "HalfEdgeMesh":
        """Build a half-edge mesh from an (n,3) vertex and an (m,3) triangle array.

        Raises TopologyError if the triangles do not form an oriented
        2-manifold (edge shared by more than two faces, inconsistent winding,
        repeated corner, or a pinched vertex).
        """
        V = np.asarray(vertices, dtype=float)
        F = np.asarray(faces, dtype=np.int64)
        if V.ndim != 2 or V.shape[1] != 3:
            raise ValueError("vertices must have shape (n,3)")
        if F.ndim != 2 or F.shape[1] != 3:
            raise ValueError("faces must have shape (m,3)")
        if F.size and (F.min() < 0 or F.max() >= V.shape[0]):
            raise ValueError("faces reference vertices out of range")

        mesh = cls()
        for p in V:
            mesh._add_vertex(p)

        directed: Dict[Tuple[int, int], int] = {}
        for fi, (a, b, c) in enumerate(F.tolist()):
            if a == b or b == c or c == a:
                raise TopologyError(f"Face {fi} repeats a vertex: {(a, b, c)}")
            f = mesh._new_face()
            loop = []
            for u, v in ((a, b), (b, c), (c, a)):
                h = directed.get((u, v))
                if h is None:
                    h = mesh._new_edge(u, v)
                    directed[(u, v)] = h
                    directed[(v, u)] = h ^ 1
                elif mesh._hface[h] != -1:
                    raise TopologyError(
                        f"Edge ({u},{v}) is used twice in the same direction "
                        "(non-manifold edge or inconsistent winding)"
                    )
                mesh._hface[h] = f
                mesh._vhalfedge[u] = h
                loop.append(h)
            for i in range(3):
                mesh._link(loop[i], loop[(i + 1) % 3])
            mesh._fhalfedge[f] = loop[0]

        # Link boundary halfedges into loops
        boundary_out: Dict[int, int] = {}
        for h in range(len(mesh._hvertex)):
            if mesh._hface[h] == -1:
                u = mesh._hvertex[h ^ 1]
                if u in boundary_out:
                    raise TopologyError(f"Vertex {u} is pinched between two boundary loops")
                boundary_out[u] = h
        for h in boundary_out.values():
            mesh._link(h, boundary_out[mesh._hvertex[h]])
            # boundary vertices start their circulation on the boundary
            mesh._vhalfedge[mesh._hvertex[h ^ 1]] = h

        # Every outgoing halfedge must be reachable by circulation (no pinched vertices)
        out_degree = np.zeros(len(mesh._points), dtype=np.int64)
        for h in range(len(mesh._hvertex)):
            out_degree[mesh._hvertex[h ^ 1]] += 1
        isolated = 0
        for v in range(len(mesh._points)):
            if mesh._vhalfedge[v] < 0:
                mesh._vremoved[v] = True
                isolated += 1
                continue
            if sum(1 for _ in mesh.outgoing(v)) != out_degree[v]:
                raise TopologyError(f"Vertex {v} is non-manifold (its faces form several fans)")
        if isolated:
            logger.warning("Dropped %d isolated vertices not referenced by any face", isolated)

        mesh.reindex()
        return mesh

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "HalfEdgeMesh":
        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError("from_trimesh expects a trimesh.Trimesh")
        return cls.from_arrays(
            mesh.vertices.view(np.ndarray), mesh.faces.view(np.ndarray)
        )

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (V, F) of the live elements, ordered by their dense ids."""
        self.reindex()
        V = self.vertex_array()
        F = np.array(
            [[self.vertex_index[v] for v in self.face_vertices(f)] for f in self.faces()],
            dtype=np.int64,
        ).reshape(-1, 3)
        return V, F

    def to_trimesh(self) -> trimesh.Trimesh:
        V, F = self.to_arrays()
        return trimesh.Trimesh(vertices=V, faces=F, process=False)

    def copy(self) -> "HalfEdgeMesh":
        other = HalfEdgeMesh()
        other._points = [p.copy() for p in self._points]
        for name in (
            "_vhalfedge", "_vfixed", "_vremoved", "_hvertex", "_hnext",
            "_hprev", "_hface", "_eremoved", "_fhalfedge", "_fremoved",
        ):
            setattr(other, name, list(getattr(self, name)))
        other.reindex()
        return other

    # =================================================================
    # ARENA PRIMITIVES
    # =================================================================

    def _add_vertex(self, point) -> int:
        self._points.append(np.array(point, dtype=float).reshape(3))
        self._vhalfedge.append(-1)
        self._vfixed.append(False)
        self._vremoved.append(False)
        return len(self._points) - 1

    def _new_edge(self, u: int, v: int) -> int:
        """Allocate the halfedge pair (u -> v, v -> u); return the first one."""
        h = len(self._hvertex)
        self._hvertex.extend((v, u))
        self._hnext.extend((-1, -1))
        self._hprev.extend((-1, -1))
        self._hface.extend((-1, -1))
        self._eremoved.append(False)
        return h

    def _new_face(self) -> int:
        self._fhalfedge.append(-1)
        self._fremoved.append(False)
        return len(self._fhalfedge) - 1

    def _link(self, a: int, b: int) -> None:
        self._hnext[a] = b
        self._hprev[b] = a

    # =================================================================
    # ACCESSORS
    # =================================================================

    def vertices(self) -> Iterator[int]:
        return (v for v, dead in enumerate(self._vremoved) if not dead)

    def edges(self) -> Iterator[int]:
        return (e for e, dead in enumerate(self._eremoved) if not dead)

    def faces(self) -> Iterator[int]:
        return (f for f, dead in enumerate(self._fremoved) if not dead)

    @property
    def n_vertices(self) -> int:
        return len(self._vremoved) - sum(self._vremoved)

    @property
    def n_edges(self) -> int:
        return len(self._eremoved) - sum(self._eremoved)

    @property
    def n_faces(self) -> int:
        return len(self._fremoved) - sum(self._fremoved)

    def is_vertex_removed(self, v: int) -> bool:
        return self._vremoved[v]

    def is_edge_removed(self, e: int) -> bool:
        return self._eremoved[e]

    def is_face_removed(self, f: int) -> bool:
        return self._fremoved[f]

    def point(self, v: int) -> np.ndarray:
        return self._points[v]

    def set_point(self, v: int, p) -> None:
        self._points[v] = np.array(p, dtype=float).reshape(3)

    def is_fixed(self, v: int) -> bool:
        return self._vfixed[v]

    def set_fixed(self, v: int, fixed: bool = True) -> None:
        self._vfixed[v] = bool(fixed)

    def target(self, h: int) -> int:
        return self._hvertex[h]

    def source(self, h: int) -> int:
        return self._hvertex[h ^ 1]

    def next(self, h: int) -> int:
        return self._hnext[h]

    def prev(self, h: int) -> int:
        return self._hprev[h]

    def face(self, h: int) -> int:
        return self._hface[h]

    @staticmethod
    def twin(h: int) -> int:
        return h ^ 1

    @staticmethod
    def edge_halfedge(e: int) -> int:
        return e << 1

    def edge_vertices(self, e: int) -> Tuple[int, int]:
        h = e << 1
        return self._hvertex[h ^ 1], self._hvertex[h]

    def edge_length(self, e: int) -> float:
        u, v = self.edge_vertices(e)
        return float(np.linalg.norm(self._points[v] - self._points[u]))

    def is_boundary_edge(self, e: int) -> bool:
        h = e << 1
        return self._hface[h] == -1 or self._hface[h ^ 1] == -1

    def edge_face_count(self, e: int) -> int:
        h = e << 1
        return int(self._hface[h] != -1) + int(self._hface[h ^ 1] != -1)

    def face_halfedges(self, f: int) -> Tuple[int, int, int]:
        h0 = self._fhalfedge[f]
        h1 = self._hnext[h0]
        return h0, h1, self._hnext[h1]

    def face_vertices(self, f: int) -> Tuple[int, int, int]:
        h0, h1, h2 = self.face_halfedges(f)
        return self._hvertex[h2], self._hvertex[h0], self._hvertex[h1]

    def face_area(self, f: int) -> float:
        a, b, c = (self._points[v] for v in self.face_vertices(f))
        return 0.5 * float(np.linalg.norm(np.cross(b - a, c - a)))

    def outgoing(self, v: int) -> Iterator[int]:
        """Circulate the halfedges leaving ``v``."""
        h0 = self._vhalfedge[v]
        if h0 < 0:
            return
        h = h0
        while True:
            yield h
            h = self._hprev[h] ^ 1
            if h == h0:
                break

    def neighbors(self, v: int) -> List[int]:
        return [self._hvertex[h] for h in self.outgoing(v)]

    def valence(self, v: int) -> int:
        return sum(1 for _ in self.outgoing(v))

    def incident_faces(self, v: int) -> List[int]:
        return [self._hface[h] for h in self.outgoing(v) if self._hface[h] != -1]

    def is_boundary_vertex(self, v: int) -> bool:
        return any(self._hface[h] == -1 for h in self.outgoing(v))

    def find_halfedge(self, u: int, v: int) -> int:
        """Halfedge u -> v, or -1 when the vertices are not adjacent."""
        for h in self.outgoing(u):
            if self._hvertex[h] == v:
                return h
        return -1

    # =================================================================
    # IDS AND ARRAYS
    # =================================================================

    def bind_index_maps(
        self,
        vertex_index: Optional[MutableMapping[int, int]] = None,
        edge_index: Optional[MutableMapping[int, int]] = None,
    ) -> None:
        """Use caller-supplied mappings as the vertex/edge id maps."""
        if vertex_index is not None:
            self.vertex_index = vertex_index
        if edge_index is not None:
            self.edge_index = edge_index
        self.reindex()

    def reindex(self) -> None:
        """Assign dense ids in [0, count) to live vertices, edges and faces."""
        self.vertex_index.clear()
        for i, v in enumerate(self.vertices()):
            self.vertex_index[v] = i
        self.edge_index.clear()
        for i, e in enumerate(self.edges()):
            self.edge_index[e] = i
        self.face_index.clear()
        for i, f in enumerate(self.faces()):
            self.face_index[f] = i

    def vertex_array(self) -> np.ndarray:
        """(n,3) positions of live vertices in handle (= id) order."""
        pts = [self._points[v] for v in self.vertices()]
        if not pts:
            return np.zeros((0, 3), dtype=float)
        return np.vstack(pts)

    def fixed_mask(self) -> np.ndarray:
        return np.array([self._vfixed[v] for v in self.vertices()], dtype=bool)

    def surface_area(self) -> float:
        return float(sum(self.face_area(f) for f in self.faces()))

    def bounding_box_diagonal(self) -> float:
        V = self.vertex_array()
        if V.shape[0] == 0:
            return 0.0
        return float(np.linalg.norm(V.max(axis=0) - V.min(axis=0)))

    def euler_characteristic(self) -> int:
        return self.n_vertices - self.n_edges + self.n_faces

    # =================================================================
    # TOPOLOGY MUTATION
    # =================================================================

    def collapse(self, h: int) -> int:
        """Collapse halfedge ``h`` (u -> v) so that ``u`` merges into ``v``.

        The two triangles incident to the edge degenerate and are removed
        together with one of their remaining edges each. The caller is
        responsible for checking that the collapse is legal
        (see ``topology.check_collapse``). Returns the surviving vertex.
        """
        o = h ^ 1
        u, v = self._hvertex[o], self._hvertex[h]
        hn, hp = self._hnext[h], self._hprev[h]
        on, op = self._hnext[o], self._hprev[o]
        fh, fo = self._hface[h], self._hface[o]

        for x in list(self.outgoing(u)):
            self._hvertex[x ^ 1] = v

        self._link(hp, hn)
        self._link(op, on)
        if fh != -1:
            self._fhalfedge[fh] = hn
        if fo != -1:
            self._fhalfedge[fo] = on
        if self._vhalfedge[v] == o:
            self._vhalfedge[v] = hn

        self._vhalfedge[u] = -1
        self._vremoved[u] = True
        self._eremoved[h >> 1] = True

        if self._hnext[self._hnext[hn]] == hn:
            self._collapse_loop(self._hnext[hn])
        if self._hnext[self._hnext[on]] == on:
            self._collapse_loop(on)
        return v

    def _collapse_loop(self, h0: int) -> None:
        """Remove the two-halfedge loop (h0, next(h0)) left behind by a collapse."""
        h1 = self._hnext[h0]
        o0, o1 = h0 ^ 1, h1 ^ 1
        v0, v1 = self._hvertex[h0], self._hvertex[h1]
        fh, fo = self._hface[h0], self._hface[o0]

        self._link(h1, self._hnext[o0])
        self._link(self._hprev[o0], h1)
        self._hface[h1] = fo

        self._vhalfedge[v0] = h1
        self._vhalfedge[v1] = o1
        if fo != -1 and self._fhalfedge[fo] == o0:
            self._fhalfedge[fo] = h1
        if fh != -1:
            self._fremoved[fh] = True
        self._eremoved[h0 >> 1] = True

    def split_edge(self, h: int, point) -> int:
        """Insert a vertex at ``point`` on the edge of ``h`` and retriangulate.

        Each incident triangle is cut in two by an edge from the new vertex to
        the opposite corner. Returns the new vertex handle.
        """
        o = h ^ 1
        b = self._hvertex[h]
        fh, fo = self._hface[h], self._hface[o]
        hn, op = self._hnext[h], self._hprev[o]

        m = self._add_vertex(point)
        hb = self._new_edge(m, b)
        ob = hb ^ 1

        # h: a -> m, hb: m -> b ; ob: b -> m, o: m -> a
        self._hvertex[h] = m
        self._link(h, hb)
        self._link(hb, hn)
        self._hface[hb] = fh
        self._link(op, ob)
        self._link(ob, o)
        self._hface[ob] = fo

        if self._vhalfedge[b] == o:
            self._vhalfedge[b] = ob
        self._vhalfedge[m] = hb

        if fh != -1:
            self._split_quad(h)
        if fo != -1:
            self._split_quad(ob)
        return m

    def _split_quad(self, q0: int) -> None:
        """Cut the quad face whose loop starts at ``q0`` by a diagonal from target(q0)."""
        q1 = self._hnext[q0]
        q2 = self._hnext[q1]
        q3 = self._hnext[q2]
        f = self._hface[q0]

        x = self._new_edge(self._hvertex[q0], self._hvertex[q2])
        y = x ^ 1
        self._link(q0, x)
        self._link(x, q3)
        self._hface[x] = f
        self._fhalfedge[f] = q0

        g = self._new_face()
        self._link(q2, y)
        self._link(y, q1)
        for k in (q1, q2, y):
            self._hface[k] = g
        self._fhalfedge[g] = q1

    def collect_garbage(self) -> None:
        """Compact the arenas, dropping removed elements and renumbering handles.

        Handles held outside the mesh become invalid; the id maps are rebuilt.
        """
        vmap = {v: i for i, v in enumerate(self.vertices())}
        emap = {e: i for i, e in enumerate(self.edges())}
        fmap = {f: i for i, f in enumerate(self.faces())}

        def hmap(h: int) -> int:
            return (emap[h >> 1] << 1) | (h & 1)

        self._points = [self._points[v] for v in vmap]
        self._vhalfedge = [hmap(self._vhalfedge[v]) for v in vmap]
        self._vfixed = [self._vfixed[v] for v in vmap]
        self._vremoved = [False] * len(vmap)

        live_h = [h for e in emap for h in (e << 1, (e << 1) | 1)]
        self._hvertex = [vmap[self._hvertex[h]] for h in live_h]
        self._hnext = [hmap(self._hnext[h]) for h in live_h]
        self._hprev = [hmap(self._hprev[h]) for h in live_h]
        self._hface = [fmap[self._hface[h]] if self._hface[h] != -1 else -1 for h in live_h]
        self._eremoved = [False] * len(emap)

        self._fhalfedge = [hmap(self._fhalfedge[f]) for f in fmap]
        self._fremoved = [False] * len(fmap)
        self.reindex()

    # =================================================================
    # DIAGNOSTICS
    # =================================================================

    def validate(self) -> None:
        """Check half-edge connectivity and manifoldness; raise TopologyError on failure."""
        for e in self.edges():
            for h in (e << 1, (e << 1) | 1):
                n, p = self._hnext[h], self._hprev[h]
                if self._eremoved[n >> 1] or self._eremoved[p >> 1]:
                    raise TopologyError(f"Halfedge {h} links to a removed edge")
                if self._hprev[n] != h or self._hnext[p] != h:
                    raise TopologyError(f"Halfedge {h} has inconsistent next/prev links")
                if self._hvertex[p] != self._hvertex[h ^ 1]:
                    raise TopologyError(f"Halfedge {h} does not start where its predecessor ends")
                if self._vremoved[self._hvertex[h]]:
                    raise TopologyError(f"Halfedge {h} points to a removed vertex")
                if self._hface[n] != self._hface[h]:
                    raise TopologyError(f"Halfedge {h} and its successor disagree on the face")
            if self._hvertex[e << 1] == self._hvertex[(e << 1) | 1]:
                raise TopologyError(f"Edge {e} is a self-loop")
            if self.edge_face_count(e) == 0:
                raise TopologyError(f"Edge {e} has no incident face")
        for f in self.faces():
            h0, h1, h2 = self.face_halfedges(f)
            if self._hnext[h2] != h0:
                raise TopologyError(f"Face {f} is not a triangle")
            if len(set(self.face_vertices(f))) != 3:
                raise TopologyError(f"Face {f} is degenerate")
        seen = set()
        for v in self.vertices():
            ring = self.neighbors(v)
            if not ring:
                raise TopologyError(f"Vertex {v} is isolated")
            if len(set(ring)) != len(ring):
                raise TopologyError(f"Vertex {v} is joined to a neighbour by two edges")
            seen.update(self.outgoing(v))
        live = sum(2 for _ in self.edges())
        if len(seen) != live:
            raise TopologyError("Some halfedges are not reachable from their source vertex")

    def analyze(self) -> dict:
        """Return a diagnostic summary of the mesh (counts, topology, issues)."""
        n_boundary = sum(1 for e in self.edges() if self.is_boundary_edge(e))
        results = {
            "vertex_count": self.n_vertices,
            "edge_count": self.n_edges,
            "face_count": self.n_faces,
            "fixed_count": int(self.fixed_mask().sum()),
            "boundary_edge_count": n_boundary,
            "is_closed": n_boundary == 0,
            "euler_characteristic": self.euler_characteristic(),
            "surface_area": self.surface_area(),
            "bounding_box_diagonal": self.bounding_box_diagonal(),
            "issues": [],
        }

        self.reindex()
        ij = np.array(
            [[self.vertex_index[u], self.vertex_index[v]] for u, v in map(self.edge_vertices, self.edges())],
            dtype=np.int64,
        ).reshape(-1, 2)
        n = self.n_vertices
        adj = sp.coo_matrix((np.ones(len(ij)), (ij[:, 0], ij[:, 1])), shape=(n, n))
        n_comp, _ = connected_components(adj, directed=False)
        results["component_count"] = int(n_comp)
        if n_comp > 1:
            results["issues"].append(f"Mesh has {n_comp} disconnected components")

        if results["is_closed"] and n_comp == 1:
            # For a closed orientable surface: genus = (2 - euler) / 2
            results["genus"] = (2 - results["euler_characteristic"]) // 2
        else:
            results["genus"] = None

        degenerate = sum(1 for f in self.faces() if self.face_area(f) < 1e-12)
        results["degenerate_faces"] = degenerate
        if degenerate:
            results["issues"].append(f"Found {degenerate} degenerate faces")

        try:
            self.validate()
            results["is_manifold"] = True
        except TopologyError as e:
            results["is_manifold"] = False
            results["issues"].append(str(e))
        return results

    def __repr__(self) -> str:
        return f"HalfEdgeMesh(vertices={self.n_vertices}, edges={self.n_edges}, faces={self.n_faces})"
