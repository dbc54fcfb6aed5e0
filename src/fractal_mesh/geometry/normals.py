"""
Per-vertex normal estimation.

Unweighted average of the (unnormalized) face normals of every triangle
touching a vertex. Vertices whose accumulated normal vanishes get the
fixed up-vector.
"""

import logging

import numpy as np

from .isosurface import TriangleSoup

logger = logging.getLogger(__name__)

DEGENERATE_THRESHOLD = 1e-8
FALLBACK_NORMAL = np.array([0.0, 1.0, 0.0])


def face_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Unnormalized ``(v1 - v0) x (v2 - v0)`` for each triangle."""
    v0 = positions[indices[:, 0]]
    v1 = positions[indices[:, 1]]
    v2 = positions[indices[:, 2]]
    return np.cross(v1 - v0, v2 - v0)


def estimate_normals(soup: TriangleSoup) -> TriangleSoup:
    """
    Compute unit vertex normals and store them on ``soup``.

    Returns:
        The same soup, with ``normals`` set
    """
    accum = np.zeros_like(soup.positions)
    if soup.n_triangles:
        fn = face_normals(soup.positions, soup.indices)
        # Each triangle adds into its own three vertex slots
        for corner in range(3):
            np.add.at(accum, soup.indices[:, corner], fn)

    lengths = np.linalg.norm(accum, axis=1)
    degenerate = lengths < DEGENERATE_THRESHOLD

    normals = np.empty_like(accum)
    normals[~degenerate] = accum[~degenerate] / lengths[~degenerate, None]
    normals[degenerate] = FALLBACK_NORMAL

    n_degenerate = int(degenerate.sum())
    if n_degenerate:
        logger.debug(f"{n_degenerate} degenerate vertex normals set to {FALLBACK_NORMAL.tolist()}")

    soup.normals = normals
    return soup
