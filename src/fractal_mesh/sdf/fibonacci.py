"""
Fibonacci-Shell distance estimator.

A Mandelbulb-style power iteration whose azimuth advances by the golden
angle every step, with banded radial offsets, an inward vortex pull and an
optional blended box fold. Escape radius is 6.
"""

from dataclasses import dataclass

import numpy as np

from ._math import EPS_POWER, box_fold, clamp, escape_distance, length, mix, safe_acos
from .base import Variant, VariantParams, check_iterations
from ..geometry.field import BoundingBox

ESCAPE_RADIUS = 6.0
ITERATION_CAP = 250
GOLDEN_ANGLE = 2.399963229728653
TWO_PI_APPROX = 6.2831


@dataclass(frozen=True)
class FibonacciParams(VariantParams):
    variant = Variant.FIBONACCI_SHELL

    max_iterations: int = 80
    power_base: float = 8.0
    power_amp: float = 0.0
    time: float = 0.0
    fold: float = 1.0
    box_size: float = 2.0
    fib_spiral: float = 0.5
    fib_bend: float = 0.0
    fib_warp: float = 0.3
    fib_offset: float = 0.2
    fib_layer: float = 0.3
    fib_inward: float = 0.4
    fib_band_gap: float = 0.5
    fib_vortex: float = 0.3
    morph_on: float = 0.0

    def validate(self) -> None:
        check_iterations(self, "max_iterations")
        self._require_range("fold", 0.0, 1.0)
        self._require_positive("box_size")

    @property
    def power(self) -> float:
        raw = self.power_base + self.power_amp * np.sin(self.time * 0.5)
        return float(clamp(raw, 1.5, 12.0))

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_fibonacci(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(3.5)


def sdf_fibonacci(points: np.ndarray, params: FibonacciParams) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    p = points.reshape(-1, 3)
    n = p.shape[0]

    power = params.power
    t = params.time
    morph_on = params.morph_on
    iter_limit = min(params.max_iterations, ITERATION_CAP)
    max_iter_f = max(iter_limit - 1, 1.0)
    band_freq = max(params.fib_band_gap, 0.05)
    morph = 0.55 + 0.45 * morph_on

    z = p.copy()
    dr = np.ones(n)
    r = np.zeros(n)
    active = np.arange(n)

    with np.errstate(over="ignore"):
        for i in range(iter_limit):
            if active.size == 0:
                break
            r[active] = length(z[active])
            active = active[r[active] <= ESCAPE_RADIUS]
            if active.size == 0:
                break

            za = z[active]
            if params.fold > 0.0:
                za = mix(za, box_fold(za, params.box_size), params.fold)

            safe_r = np.maximum(r[active], EPS_POWER)
            theta = safe_acos(za[:, 2] / safe_r)
            phi = np.arctan2(za[:, 1], za[:, 0])
            iter_ratio = i / max_iter_f

            plane = np.sqrt(za[:, 0] ** 2 + za[:, 1] ** 2)
            plane_radius = np.maximum(plane, EPS_POWER)
            safe_plane = np.where(plane > 0, plane, 1.0)
            radial_x = np.where(plane > 0, za[:, 0] / safe_plane, 0.0)
            radial_y = np.where(plane > 0, za[:, 1] / safe_plane, 0.0)

            band_phase = iter_ratio * TWO_PI_APPROX * band_freq + t * 0.7
            layer_phase = iter_ratio * TWO_PI_APPROX * (0.6 + 0.4 * band_freq) + t * 0.45
            band_wave = np.sin(band_phase)
            band_pulse = 0.5 + 0.5 * band_wave

            za[:, 0] += radial_x * (params.fib_offset * band_pulse)
            za[:, 1] += radial_y * (params.fib_offset * band_pulse)
            za[:, 2] += params.fib_layer * 0.6 * np.sin(layer_phase)

            inward_pulse = 0.5 + 0.5 * np.sin(t * 0.52 + iter_ratio * 5.2 + band_wave * 0.6)
            inward = clamp(
                params.fib_inward * inward_pulse * np.exp(-plane_radius * (0.45 + 0.25 * band_pulse)),
                0.0, 0.95
            )
            za[:, 0] = mix(za[:, 0], za[:, 0] * (1.0 - 0.55 * inward), 0.7)
            za[:, 1] = mix(za[:, 1], za[:, 1] * (1.0 - 0.55 * inward), 0.7)
            za[:, 0] -= radial_x * (inward * 0.18)
            za[:, 1] -= radial_y * (inward * 0.18)

            spiral_osc = np.sin(t * 0.6 + i * params.fib_warp * 0.35 + band_phase * 0.25)
            spiral_push = (
                params.fib_spiral * morph * (0.4 + 0.6 * (0.5 + 0.5 * spiral_osc))
                + params.fib_layer * (iter_ratio - 0.5) * (0.7 + 0.3 * band_pulse)
            )
            bend_osc = params.fib_bend * np.sin(t * 0.5 + i * 0.38)
            vortex_base = params.fib_vortex * (0.25 + 0.75 * iter_ratio)
            vortex_accel = params.fib_vortex * (0.12 + 0.35 * inward) * (0.5 + 0.5 * band_wave)

            rp = safe_r ** power
            dr[active] = rp / safe_r * power * dr[active] + 1.0

            new_theta = (
                theta * power + bend_osc
                + (0.18 + 0.12 * params.fib_vortex) * np.sin(iter_ratio * 9.0 + t * 0.4)
                + params.fib_inward * 0.08 * np.cos(band_phase - t * 0.3)
            )
            new_phi = (
                phi + GOLDEN_ANGLE + spiral_push + vortex_base
                + vortex_accel * np.sin(t * 0.55 + i * 0.42 + band_phase)
            )

            sin_theta = np.sin(new_theta)
            zn = np.stack([
                rp * sin_theta * np.cos(new_phi),
                rp * sin_theta * np.sin(new_phi),
                rp * np.cos(new_theta),
            ], axis=-1)

            feedback = mix(0.18 + 0.22 * morph_on, 0.08 + 0.12 * morph_on, inward)
            z[active] = zn + mix(p[active], za, feedback[:, None])

        return escape_distance(r, dr).reshape(points.shape[:-1])
