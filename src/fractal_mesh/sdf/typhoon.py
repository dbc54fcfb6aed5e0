"""
Typhoon distance estimator.

Each iteration first swirls the xy-plane around an eye of radius
``ty_eye`` (spiral arms, inward pull, eyewall lift on z), then applies a
power-``n`` spherical step. Escape radius is 6; at most 220 iterations.
"""

from dataclasses import dataclass

import numpy as np

from ._math import EPS_POWER, clamp, escape_distance, length, mix
from .base import Variant, VariantParams, check_iterations
from .mandelbulb import spherical_power
from ..geometry.field import BoundingBox

ESCAPE_RADIUS = 6.0
ITERATION_CAP = 220
TWO_PI_APPROX = 6.2831


@dataclass(frozen=True)
class TyphoonParams(VariantParams):
    variant = Variant.TYPHOON

    max_iterations: int = 80
    power_base: float = 8.0
    power_amp: float = 0.0
    time: float = 0.0
    ty_eye: float = 0.4
    ty_pull: float = 0.6
    ty_wall: float = 1.2
    ty_spin: float = 1.5
    ty_band: float = 3.0
    ty_noise: float = 0.3
    morph_on: float = 0.0

    def validate(self) -> None:
        check_iterations(self, "max_iterations")

    @property
    def power(self) -> float:
        raw = self.power_base + self.power_amp * 0.3 * np.sin(self.time * 0.45)
        return float(clamp(raw, 2.0, 10.0))

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_typhoon(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(6.0)


def sdf_typhoon(points: np.ndarray, params: TyphoonParams) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    p = points.reshape(-1, 3)
    n = p.shape[0]

    power = params.power
    t = params.time
    morph_on = params.morph_on
    eye = params.ty_eye
    iter_limit = min(params.max_iterations, ITERATION_CAP)
    max_iter_f = max(iter_limit - 1, 1.0)
    offset_mix = 0.22 + 0.18 * morph_on

    z = p.copy()
    dr = np.ones(n)
    r = np.zeros(n)
    active = np.arange(n)

    with np.errstate(over="ignore"):
        for i in range(iter_limit):
            if active.size == 0:
                break
            za = z[active]
            iter_ratio = i / max_iter_f

            radius_2d = np.sqrt(za[:, 0] ** 2 + za[:, 1] ** 2) + 1e-4
            angle_2d = np.arctan2(za[:, 1], za[:, 0])

            breath = 0.82 + 0.18 * np.sin(t * 0.35 + iter_ratio * 3.14)

            arm_phase = angle_2d * params.ty_band - t * (0.65 + 0.15 * breath) + iter_ratio * 4.0
            arm_cos = np.cos(arm_phase)
            arm_sin = np.sin(arm_phase)
            arm_mask = 0.5 + 0.5 * arm_cos
            arm_width = mix(0.55, 1.45, arm_mask)

            pull = clamp(
                params.ty_pull * breath * np.exp(-radius_2d * (0.5 + 0.2 * arm_mask)),
                0.0, 0.88
            )
            inward_radius = mix(radius_2d, eye * (0.85 + 0.15 * arm_width), pull)
            contracted = inward_radius * np.maximum(0.05, 1.0 - pull)

            spiral_push = params.ty_pull * 0.18 * breath * arm_sin
            compressed = np.maximum(contracted - spiral_push, 0.0001)

            spin_ramp = np.exp((eye - compressed) * (0.8 + 0.4 * arm_mask))
            vortex_spin = params.ty_spin * spin_ramp * (0.75 + 0.25 * breath)

            noise_spin = params.ty_noise * (
                0.4 * np.sin(t * 0.9 + iter_ratio * TWO_PI_APPROX) + 0.3 * arm_sin
            )
            radius_noise = params.ty_noise * 0.05 * arm_sin

            swirl_scale = mix(1.0, 0.75 + 0.35 * arm_width, 0.4 + 0.3 * morph_on)
            final_radius = np.maximum(
                (compressed + radius_noise) * swirl_scale
                * np.maximum(0.05, 1.0 - pull * (0.6 + 0.4 * morph_on)),
                1e-4
            )

            new_angle = angle_2d + vortex_spin + noise_spin
            za[:, 0] = np.cos(new_angle) * final_radius
            za[:, 1] = np.sin(new_angle) * final_radius

            wall = params.ty_wall * np.exp(-((final_radius - eye) * (1.6 + params.ty_band * 0.2)) ** 2)
            wall_breath = (0.35 + 0.65 * arm_mask) * (0.8 + 0.2 * breath)
            za[:, 2] = mix(za[:, 2], wall * wall_breath, 0.62)
            za[:, 2] += eye * 0.05 * breath * np.sin(t * 0.3 + final_radius * (1.8 + 0.3 * arm_width))

            ra = length(za)
            r[active] = ra
            keep = ra <= ESCAPE_RADIUS
            active, za, ra = active[keep], za[keep], ra[keep]
            wall, arm_sin = wall[keep], arm_sin[keep]
            if active.size == 0:
                break

            safe_r = np.maximum(ra, EPS_POWER)
            rp = safe_r ** power
            dr[active] = rp / safe_r * power * dr[active] + 1.0

            swirl_offset = np.zeros_like(za)
            swirl_offset[:, 2] = wall * 0.18 * arm_sin
            z[active] = spherical_power(za, safe_r, power) + mix(p[active], swirl_offset, offset_mix)

        return escape_distance(r, dr).reshape(points.shape[:-1])
