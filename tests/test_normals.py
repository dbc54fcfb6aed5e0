"""
Tests for vertex normal estimation
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fractal_mesh.geometry.field import BoundingBox, sample_field
from fractal_mesh.geometry.isosurface import TriangleSoup, extract_isosurface
from fractal_mesh.geometry.mesh_ops import weld_vertices
from fractal_mesh.geometry.normals import FALLBACK_NORMAL, estimate_normals


# ============== Fixtures ==============

@pytest.fixture
def sphere_soup():
    field = sample_field(lambda p: np.linalg.norm(p, axis=-1) - 1.0, BoundingBox.cube(1.4), 32)
    return extract_isosurface(field)


# ============== Normal Tests ==============

class TestNormals:
    """Tests for estimate_normals."""

    def test_single_triangle(self):
        soup = TriangleSoup(
            positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
            indices=np.array([[0, 1, 2]])
        )
        estimate_normals(soup)
        np.testing.assert_allclose(soup.normals, [[0, 0, 1]] * 3)

    def test_returns_same_soup(self, sphere_soup):
        assert estimate_normals(sphere_soup) is sphere_soup
        assert sphere_soup.normals.shape == sphere_soup.positions.shape

    def test_unit_length(self, sphere_soup):
        estimate_normals(sphere_soup)
        np.testing.assert_allclose(np.linalg.norm(sphere_soup.normals, axis=1), 1.0, atol=1e-9)

    def test_sphere_normals_point_outward(self, sphere_soup):
        estimate_normals(sphere_soup)
        radial = sphere_soup.positions / np.linalg.norm(sphere_soup.positions, axis=1, keepdims=True)
        cosines = np.einsum("ij,ij->i", sphere_soup.normals, radial)
        assert (cosines > 0).mean() > 0.99

    def test_welded_normals_are_smooth(self, sphere_soup):
        welded = estimate_normals(weld_vertices(sphere_soup))
        radial = welded.positions / np.linalg.norm(welded.positions, axis=1, keepdims=True)
        cosines = np.einsum("ij,ij->i", welded.normals, radial)
        assert np.median(cosines) > 0.99

    def test_degenerate_triangle_uses_fallback(self):
        soup = TriangleSoup(
            positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]]),
            indices=np.array([[0, 1, 2]])
        )
        estimate_normals(soup)
        np.testing.assert_allclose(soup.normals, [FALLBACK_NORMAL] * 3)

    def test_unreferenced_vertex_uses_fallback(self):
        soup = TriangleSoup(
            positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0], [5.0, 5.0, 5.0]]),
            indices=np.array([[0, 1, 2]])
        )
        estimate_normals(soup)
        np.testing.assert_allclose(soup.normals[:3], [[0, -1, 0]] * 3)
        np.testing.assert_allclose(soup.normals[3], [0, 1, 0])

    def test_opposing_faces_cancel(self):
        # Same triangle with both windings: the sum vanishes
        soup = TriangleSoup(
            positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
            indices=np.array([[0, 1, 2], [0, 2, 1]])
        )
        estimate_normals(soup)
        np.testing.assert_allclose(soup.normals, [FALLBACK_NORMAL] * 3)
