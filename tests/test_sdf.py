"""
Tests for the distance evaluators

Tests cover:
- Variant selection and mode codes
- Parameter records (defaults, overrides, aliases, validation)
- Determinism and finiteness of every variant
- Variant-specific properties (Gyroid periodicity, Mandelbox symmetry, ...)
"""

import math

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fractal_mesh.errors import InvalidParameterError
from fractal_mesh.sdf import (
    PARAMETER_TYPES,
    CosmicParams,
    FibonacciParams,
    FoLDomeParams,
    GyroidParams,
    MandelboxParams,
    MandelbulbParams,
    MetatronParams,
    QuaternionParams,
    TyphoonParams,
    Variant,
    distance,
    make_params,
)
from fractal_mesh.sdf._math import GOLDEN_ANGLE, box_fold, fibonacci_direction, smooth_min


# ============== Fixtures ==============

@pytest.fixture(params=list(Variant), ids=lambda v: v.value)
def default_params(request):
    """Default parameter record of every variant."""
    return PARAMETER_TYPES[request.param]()


def lattice_in(params, n=9):
    """Small lattice of points covering the variant's default box."""
    box = params.default_bounds()
    axes = [np.linspace(lo, hi, n) for lo, hi in zip(box.min_corner, box.max_corner)]
    grid = np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1)
    return grid.reshape(-1, 3)


# ============== Variant Tests ==============

class TestVariant:
    """Tests for the closed variant enumeration."""

    def test_mode_codes(self):
        codes = {v: v.code for v in Variant}
        assert sorted(codes.values()) == list(range(9))
        assert Variant.MANDELBULB.code == 0
        assert Variant.FOLDOME.code == 1
        assert Variant.COSMIC_BLOOM.code == 8

    def test_parse_forms(self):
        assert Variant.parse("mandelbox") is Variant.MANDELBOX
        assert Variant.parse("Fibonacci-Shell") is Variant.FIBONACCI_SHELL
        assert Variant.parse("QUATERNION_JULIA") is Variant.QUATERNION_JULIA
        assert Variant.parse(5) is Variant.GYROID
        assert Variant.parse("7") is Variant.QUATERNION_JULIA
        assert Variant.parse(Variant.TYPHOON) is Variant.TYPHOON

    @pytest.mark.parametrize("bad", ["tenth", 9, -1, True, None])
    def test_parse_rejects_unknown(self, bad):
        with pytest.raises(InvalidParameterError):
            Variant.parse(bad)

    def test_every_variant_has_parameters(self):
        assert set(PARAMETER_TYPES) == set(Variant)
        for variant, cls in PARAMETER_TYPES.items():
            assert cls.variant is variant


# ============== Parameter Tests ==============

class TestParameters:
    """Tests for parameter records."""

    def test_documented_defaults(self):
        assert MandelbulbParams().to_dict() == {
            "max_iterations": 15, "power_base": 8.0, "power_amp": 0.0, "time": 0.0
        }
        box = MandelboxParams()
        assert (box.mb_scale, box.mb_min_radius, box.mb_fixed_radius, box.mb_iter) == (-1.5, 0.5, 1.0, 10)
        gyro = GyroidParams()
        assert (gyro.gyro_level, gyro.gyro_scale, gyro.gyro_mod) == (0.0, 3.0, 0.0)
        assert FoLDomeParams().radius == 15.0
        assert QuaternionParams().quat_c == (-0.2, 0.6, 0.2, 0.0)

    def test_overrides_merge_onto_defaults(self):
        params = make_params("mandelbox", {"mb_scale": 2.0})
        assert params.mb_scale == 2.0
        assert params.mb_iter == 10

    def test_camel_case_keys(self):
        params = make_params(Variant.MANDELBOX, {"mbScale": -2.0, "mbIter": 12})
        assert params.mb_scale == -2.0
        assert params.mb_iter == 12

        fib = make_params("fibonacci_shell", {"fibBandGap": 0.7, "maxIterations": 40})
        assert fib.fib_band_gap == 0.7
        assert fib.max_iterations == 40

    def test_host_uniform_aliases(self):
        params = make_params("foldome", {"uFoLDomeRadius": 10, "uFoLDomeCount": 0.25})
        assert params.radius == 10.0
        assert params.count == 0.25

    def test_string_values_are_coerced(self):
        params = make_params("mandelbulb", {"max_iterations": "12", "power_base": "6.5"})
        assert params.max_iterations == 12
        assert isinstance(params.max_iterations, int)
        assert params.power_base == 6.5

        quat = make_params("quaternion_julia", {"quat_c": "0.1,0.2,0.3,0.4"})
        assert quat.quat_c == (0.1, 0.2, 0.3, 0.4)

    def test_explicit_zero_is_honored(self):
        params = make_params("gyroid", {"gyro_level": 0.0, "gyro_mod": 0})
        assert params.gyro_mod == 0.0
        params = make_params("foldome", {"strength": 0})
        assert params.strength == 0.0

    def test_unknown_key_rejected(self):
        with pytest.raises(InvalidParameterError, match="Unknown parameter"):
            make_params("gyroid", {"gyro_speed": 1.0})

    @pytest.mark.parametrize("variant,overrides", [
        ("mandelbulb", {"max_iterations": 0}),
        ("mandelbulb", {"max_iterations": 251}),
        ("mandelbulb", {"max_iterations": 2.5}),
        ("mandelbulb", {"power_base": float("nan")}),
        ("mandelbulb", {"power_base": "eight"}),
        ("foldome", {"radius": 0.0}),
        ("foldome", {"count": 1.5}),
        ("foldome", {"width": -0.1}),
        ("fibonacci_shell", {"fold": 2.0}),
        ("fibonacci_shell", {"box_size": 0.0}),
        ("mandelbox", {"mb_min_radius": 2.0, "mb_fixed_radius": 1.0}),
        ("mandelbox", {"mb_min_radius": -0.5}),
        ("metatron", {"meta_radius": 0.0}),
        ("gyroid", {"gyro_scale": 0.0}),
        ("gyroid", {"gyro_mod": 1.5}),
        ("quaternion_julia", {"quat_c": [0.1, 0.2, 0.3]}),
        ("quaternion_julia", {"quat_power": 0.0}),
        ("cosmic_bloom", {"cos_radius": -1.0}),
        ("typhoon", {"ty_eye": float("inf")}),
    ])
    def test_out_of_domain_rejected(self, variant, overrides):
        with pytest.raises(InvalidParameterError):
            make_params(variant, overrides)

    def test_records_are_immutable(self):
        params = MandelbulbParams()
        with pytest.raises(Exception):
            params.power_base = 3.0

    def test_default_bounds(self):
        np.testing.assert_allclose(MandelbulbParams().default_bounds().max_corner, (2.5, 2.5, 2.5))
        np.testing.assert_allclose(GyroidParams().default_bounds().min_corner, (-12, -12, -12))
        np.testing.assert_allclose(FibonacciParams().default_bounds().max_corner, (3.5, 3.5, 3.5))
        dome = FoLDomeParams(radius=15.0).default_bounds()
        np.testing.assert_allclose(dome.min_corner, (-18.0, 0.0, -18.0))
        np.testing.assert_allclose(dome.max_corner, (18.0, 18.0, 18.0))


# ============== Shared Helper Tests ==============

class TestHelpers:
    """Tests for the shared numeric helpers."""

    def test_box_fold(self):
        p = np.array([0.5, 1.5, -3.0])
        np.testing.assert_allclose(box_fold(p, 1.0), [0.5, 0.5, 1.0])

    def test_smooth_min_bounds(self):
        a = np.linspace(-1, 1, 21)
        b = 0.3
        k = 0.2
        s = smooth_min(a, b, k)
        assert np.all(s <= np.minimum(a, b) + 1e-12)
        assert np.all(s >= np.minimum(a, b) - k / 4 - 1e-12)

    def test_golden_angle(self):
        assert GOLDEN_ANGLE == pytest.approx(2.399963, abs=1e-6)

    def test_fibonacci_directions_are_unit(self):
        for i in range(18):
            d = fibonacci_direction(i, 18)
            assert np.linalg.norm(d) == pytest.approx(1.0)
        assert fibonacci_direction(0, 18)[1] > fibonacci_direction(17, 18)[1]


# ============== Common Property Tests ==============

class TestAllVariants:
    """Properties shared by every evaluator."""

    def test_deterministic(self, default_params):
        points = lattice_in(default_params)
        first = default_params.distance(points)
        second = default_params.distance(points.copy())
        assert np.array_equal(first, second)

    def test_finite_over_default_box(self, default_params):
        values = default_params.distance(lattice_in(default_params))
        assert np.all(np.isfinite(values))

    def test_shape_preserved(self, default_params):
        points = lattice_in(default_params, n=4).reshape(4, 16, 3)
        assert default_params.distance(points).shape == (4, 16)

    def test_single_point_matches_batch(self, default_params):
        points = lattice_in(default_params, n=5)
        batch = default_params.distance(points)
        for i in (0, 17, 62, len(points) - 1):
            assert distance(points[i], default_params) == pytest.approx(batch[i], rel=1e-12, abs=1e-12)


# ============== Variant Property Tests ==============

class TestVariantProperties:
    """Variant-specific geometric properties."""

    def test_gyroid_periodicity(self):
        params = GyroidParams(gyro_level=0.0, gyro_scale=1.0, gyro_mod=0.0)
        rng = np.random.default_rng(7)
        points = rng.uniform(-3, 3, size=(50, 3))
        base = params.distance(points)
        for axis in range(3):
            shifted = points.copy()
            shifted[:, axis] += 2 * np.pi
            assert np.max(np.abs(params.distance(shifted) - base)) < 0.1

    def test_gyroid_zero_on_surface(self):
        params = GyroidParams(gyro_scale=1.0)
        assert distance((0.0, 0.0, 0.0), params) == pytest.approx(0.0, abs=1e-12)

    def test_gyroid_repeat_cells(self):
        params = GyroidParams(gyro_scale=1.0, gyro_mod=0.5)
        period = 4.0 + 8.0 * 0.5
        p = np.array([0.7, -1.3, 2.1])
        assert distance(p, params) == pytest.approx(distance(p + [period, 0, 0], params), abs=1e-9)

    def test_mandelbox_axis_symmetry(self):
        params = MandelboxParams(mb_scale=2.0, mb_min_radius=0.5, mb_fixed_radius=1.0)
        for x in (0.1, 0.5, 1.3, 2.7, 4.0):
            d_pos = distance((x, 0.0, 0.0), params)
            d_neg = distance((-x, 0.0, 0.0), params)
            assert abs(d_pos - d_neg) < 1e-4

    def test_mandelbulb_inside_and_outside(self):
        params = MandelbulbParams()
        assert distance((0.0, 0.0, 0.0), params) <= 0.0
        far = distance((2.4, 0.0, 0.0), params)
        assert far == pytest.approx(0.5 * math.log(2.4) * 2.4)

    def test_fol_dome_center_returns_radius(self):
        params = FoLDomeParams(radius=15.0)
        assert distance((0.0, 0.0, 0.0), params) == 15.0

    def test_fol_dome_band_count(self):
        assert FoLDomeParams(count=0.0).band_count == 6
        assert FoLDomeParams(count=1.0).band_count == 30
        assert FoLDomeParams(count=0.5).band_count == 18
        # mix(6, 30, 0.0625) = 7.5 rounds up
        assert FoLDomeParams(count=0.0625).band_count == 8

    def test_fol_dome_strength_zero_is_plain_shell(self):
        params = FoLDomeParams(radius=10.0, strength=0.0)
        rng = np.random.default_rng(3)
        points = rng.normal(size=(40, 3)) * 6
        np.testing.assert_allclose(params.distance(points), np.abs(np.linalg.norm(points, axis=1) - 10.0))

    def test_metatron_center_node(self):
        params = MetatronParams()
        node_r = 0.08 + 0.37 * 0.5
        assert distance((0.0, 0.0, 0.0), params) == pytest.approx(-node_r * 2.0)
        assert distance((4.9, 4.9, 4.9), params) > 0.0

    def test_metatron_twist_changes_field(self):
        p = (1.2, 0.4, 0.3)
        assert distance(p, MetatronParams(meta_twist=1.0)) != distance(p, MetatronParams())

    def test_cosmic_close_to_sphere(self):
        params = CosmicParams()
        rng = np.random.default_rng(11)
        points = rng.normal(size=(100, 3))
        r = np.linalg.norm(points, axis=1)
        ripple_bound = params.cos_ripple * params.cos_radius * (0.1 + 0.04 + 0.02)
        assert np.all(np.abs(params.distance(points) - (r - params.cos_radius)) <= ripple_bound + 1e-12)

    def test_quaternion_escape_outside(self):
        params = QuaternionParams()
        assert distance((5.9, 0.0, 0.0), params) > 0.0

    def test_typhoon_far_field_positive(self):
        params = TyphoonParams()
        assert distance((5.5, 5.5, 5.5), params) > 0.0

    def test_fibonacci_time_changes_field(self):
        p = (0.4, 0.3, 0.2)
        assert distance(p, FibonacciParams(time=1.0)) != distance(p, FibonacciParams())

    def test_gyroid_default_iso_is_shell(self):
        assert GyroidParams(gyro_scale=3.0).default_iso_level == pytest.approx(0.3)
        assert MandelbulbParams().default_iso_level == 0.0
        assert MandelboxParams().default_iso_level > 0.0
