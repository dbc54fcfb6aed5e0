"""
Tests for scalar field sampling

Tests cover:
- Bounding boxes and resolution handling
- Sample ordering and lattice positions
- Progress reporting and cancellation
- Non-finite sample detection
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fractal_mesh.errors import ExportCancelled, InvalidParameterError, NumericInstabilityError
from fractal_mesh.geometry.field import (
    BoundingBox,
    ScalarField,
    iter_field_slices,
    normalize_resolution,
    notify_progress,
    sample_field,
)


# ============== Fixtures ==============

@pytest.fixture
def index_box():
    """Box whose lattice points sit on integer coordinates for a 4x3x5 grid."""
    return BoundingBox((0.0, 0.0, 0.0), (3.0, 2.0, 4.0))


def index_encoder(points):
    """Encode lattice coordinates as ix + 10 iy + 100 iz."""
    return points[..., 0] + 10 * points[..., 1] + 100 * points[..., 2]


def sphere(points):
    return np.linalg.norm(points, axis=-1) - 1.0


# ============== BoundingBox Tests ==============

class TestBoundingBox:
    """Tests for the sampling box."""

    def test_cube(self):
        box = BoundingBox.cube(2.5)
        assert box.min_corner == (-2.5, -2.5, -2.5)
        assert box.max_corner == (2.5, 2.5, 2.5)
        np.testing.assert_allclose(box.extent, [5.0, 5.0, 5.0])
        np.testing.assert_allclose(box.center, [0.0, 0.0, 0.0])

    @pytest.mark.parametrize("bounds", [
        [-1, -2, -3, 1, 2, 3],
        [(-1, -2, -3), (1, 2, 3)],
        {"min": [-1, -2, -3], "max": [1, 2, 3]},
    ])
    def test_from_bounds_forms(self, bounds):
        box = BoundingBox.from_bounds(bounds)
        assert box.min_corner == (-1.0, -2.0, -3.0)
        assert box.max_corner == (1.0, 2.0, 3.0)

    def test_rejects_inverted_box(self):
        with pytest.raises(InvalidParameterError):
            BoundingBox((0, 0, 0), (1, 0, 1))

    def test_rejects_non_finite(self):
        with pytest.raises(InvalidParameterError):
            BoundingBox((0, 0, float("nan")), (1, 1, 1))

    def test_spacing(self):
        box = BoundingBox((0, 0, 0), (1, 2, 4))
        assert box.spacing((5, 5, 5)) == (0.25, 0.5, 1.0)

    def test_contains(self):
        box = BoundingBox.cube(1.0)
        mask = box.contains(np.array([[0, 0, 0], [1, 1, 1], [1.1, 0, 0]]))
        assert mask.tolist() == [True, True, False]


# ============== Resolution Tests ==============

class TestResolution:
    """Tests for resolution normalization."""

    def test_int_is_cubic(self):
        assert normalize_resolution(64) == (64, 64, 64)

    def test_triple(self):
        assert normalize_resolution([8, 16, 32]) == (8, 16, 32)

    @pytest.mark.parametrize("bad", [1, 0, -5, (2, 2, 1), (4, 4), 2.5, (4.0, 4, 4), True, "64"])
    def test_rejected(self, bad):
        with pytest.raises(InvalidParameterError):
            normalize_resolution(bad)


# ============== Sampling Tests ==============

class TestSampling:
    """Tests for lattice sampling."""

    def test_sample_count(self):
        field = sample_field(sphere, BoundingBox.cube(1.5), (4, 5, 6))
        assert field.n_samples == 4 * 5 * 6
        assert field.shape == (4, 5, 6)
        assert field.grid.shape == (6, 5, 4)

    def test_storage_order(self, index_box):
        field = sample_field(index_encoder, index_box, (4, 3, 5))
        nx, ny, nz = field.shape
        for iz in range(nz):
            for iy in range(ny):
                for ix in range(nx):
                    idx = (iz * ny + iy) * nx + ix
                    assert field.values[idx] == pytest.approx(ix + 10 * iy + 100 * iz)
                    assert field.index(ix, iy, iz) == idx

    def test_lattice_includes_both_faces(self):
        box = BoundingBox((-1.0, -2.0, -3.0), (1.0, 2.0, 3.0))
        field = sample_field(lambda p: p[..., 0], box, (5, 5, 5))
        np.testing.assert_allclose(field.point_at(0, 0, 0), [-1.0, -2.0, -3.0])
        np.testing.assert_allclose(field.point_at(4, 4, 4), [1.0, 2.0, 3.0])
        assert field.value_at(4, 0, 0) == pytest.approx(1.0)

    def test_evaluator_called_once_per_slice(self):
        calls = []

        def evaluator(points):
            calls.append(points.shape)
            return sphere(points)

        sample_field(evaluator, BoundingBox.cube(1.0), (7, 6, 5))
        assert calls == [(6, 7, 3)] * 5

    def test_slices_are_yielded_in_order(self):
        slices = list(iter_field_slices(sphere, BoundingBox.cube(1.0), (3, 4, 5)))
        assert [iz for iz, _ in slices] == [0, 1, 2, 3, 4]
        assert all(values.shape == (4, 3) for _, values in slices)

    def test_from_grid_round_trip(self):
        grid = np.arange(24, dtype=float).reshape(2, 3, 4)
        field = ScalarField.from_grid(grid, BoundingBox.cube(1.0))
        assert field.shape == (4, 3, 2)
        assert field.value_at(3, 2, 1) == 23.0

    def test_buffer_size_mismatch(self):
        with pytest.raises(InvalidParameterError):
            ScalarField(values=np.zeros(10), shape=(2, 2, 2), bbox=BoundingBox.cube(1.0))


# ============== Progress Tests ==============

class TestProgress:
    """Tests for the advisory progress hook."""

    def test_progress_calls(self):
        calls = []
        sample_field(sphere, BoundingBox.cube(1.0), 50, on_progress=lambda *a: calls.append(a))
        assert calls == [
            (100000, 125000, "Sampling scalar field"),
            (125000, 125000, "Sampling complete"),
        ]

    def test_small_grid_reports_completion_only(self):
        calls = []
        sample_field(sphere, BoundingBox.cube(1.0), 8, on_progress=lambda *a: calls.append(a))
        assert calls == [(512, 512, "Sampling complete")]

    def test_cancellation(self):
        with pytest.raises(ExportCancelled) as excinfo:
            sample_field(sphere, BoundingBox.cube(1.0), 50, on_progress=lambda *a: False)
        assert excinfo.value.done == 100000
        assert excinfo.value.total == 125000

    def test_non_false_return_is_ignored(self):
        notify_progress(lambda *a: None, 1, 2, "x")
        notify_progress(lambda *a: 0, 1, 2, "x")
        notify_progress(None, 1, 2, "x")


# ============== Finiteness Tests ==============

class TestFiniteness:
    """Tests for non-finite sample detection."""

    def test_finite_field_passes(self):
        sample_field(sphere, BoundingBox.cube(1.0), 6).check_finite()

    def test_reports_first_offending_index(self):
        grid = np.zeros((4, 3, 2))
        grid[2, 1, 0] = np.inf
        grid[3, 0, 1] = np.nan
        field = ScalarField.from_grid(grid, BoundingBox.cube(1.0), label="mandelbulb")
        with pytest.raises(NumericInstabilityError) as excinfo:
            field.check_finite()
        err = excinfo.value
        assert err.grid_index == (0, 1, 2)
        assert err.variant == "mandelbulb"
        assert err.value == np.inf
        assert "(ix=0, iy=1, iz=2)" in str(err)

    def test_non_finite_samples_are_kept(self):
        field = sample_field(lambda p: np.full(p.shape[:-1], np.nan), BoundingBox.cube(1.0), 3)
        assert np.all(np.isnan(field.values))
