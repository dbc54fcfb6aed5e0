"""
Mesh utilities: optional vertex welding and summary statistics.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
import trimesh
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

from .isosurface import TriangleSoup

logger = logging.getLogger(__name__)

RELATIVE_WELD_TOLERANCE = 1e-7


def default_weld_tolerance(soup: TriangleSoup) -> float:
    """Tolerance relative to the mesh bounding-box diagonal."""
    if soup.n_vertices == 0:
        return 0.0
    lo, hi = soup.bounds()
    return max(float(np.linalg.norm(hi - lo)) * RELATIVE_WELD_TOLERANCE, 1e-12)


def weld_vertices(soup: TriangleSoup, tolerance: Optional[float] = None) -> TriangleSoup:
    """
    Merge vertices closer than ``tolerance`` into one.

    Marching Cubes emits a separate copy of every edge vertex for each cell
    that touches the edge; welding collapses those copies. Groups are the
    connected components of the "within tolerance" graph, and each group is
    represented by its lowest-index member. Triangles that collapse to
    fewer than three distinct vertices are dropped. Normals are discarded
    and must be recomputed.

    Args:
        soup: Input mesh (not modified)
        tolerance: Merge distance; defaults to ``default_weld_tolerance``

    Returns:
        New TriangleSoup
    """
    if soup.n_vertices == 0:
        return TriangleSoup.empty()

    if tolerance is None:
        tolerance = default_weld_tolerance(soup)

    n = soup.n_vertices
    pairs = cKDTree(soup.positions).query_pairs(r=tolerance, output_type="ndarray")
    graph = coo_matrix(
        (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])),
        shape=(n, n)
    )
    n_groups, labels = connected_components(graph, directed=False)

    # Representatives in order of first appearance
    _, first = np.unique(labels, return_index=True)
    order = np.argsort(first)
    remap = np.empty(n_groups, dtype=np.int64)
    remap[order] = np.arange(n_groups)

    positions = soup.positions[first[order]]
    indices = remap[labels[soup.indices]]

    a, b, c = indices[:, 0], indices[:, 1], indices[:, 2]
    keep = (a != b) & (b != c) & (a != c)
    dropped = int((~keep).sum())

    logger.info(
        f"Welded {n} -> {n_groups} vertices (tolerance={tolerance:.3g}), "
        f"dropped {dropped} degenerate triangles"
    )
    return TriangleSoup(positions=positions, indices=indices[keep])


def compute_mesh_stats(soup: TriangleSoup, weld: bool = True) -> Dict[str, Any]:
    """
    Compute mesh statistics.

    Topological measures (watertightness, Euler number) are only meaningful
    on a welded mesh, so the soup is welded first unless ``weld`` is False.

    Args:
        soup: Mesh to measure
        weld: Weld a copy before building the trimesh object

    Returns:
        Dictionary of mesh statistics
    """
    if soup.is_empty:
        return {"n_vertices": soup.n_vertices, "n_faces": 0}

    measured = weld_vertices(soup) if weld else soup
    mesh = trimesh.Trimesh(vertices=measured.positions, faces=measured.indices, process=False)

    bounds = mesh.bounds
    extents = mesh.extents

    return {
        "n_vertices": soup.n_vertices,
        "n_faces": soup.n_triangles,
        "n_welded_vertices": len(mesh.vertices),
        "bounds": {
            "min": bounds[0].tolist(),
            "max": bounds[1].tolist()
        },
        "extents": extents.tolist(),
        "max_extent": float(max(extents)),
        "volume": float(mesh.volume) if mesh.is_watertight else None,
        "surface_area": float(mesh.area),
        "is_watertight": bool(mesh.is_watertight),
        "is_winding_consistent": bool(mesh.is_winding_consistent),
        "euler_number": int(mesh.euler_number)
    }
