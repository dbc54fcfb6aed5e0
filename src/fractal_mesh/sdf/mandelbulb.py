"""
Mandelbulb distance estimator.

Power-``n`` spherical iteration ``z -> z^n + p`` with the running
derivative ``dr -> n * r^(n-1) * dr + 1``.
"""

from dataclasses import dataclass

import numpy as np

from ._math import EPS_POWER, escape_distance, length, safe_acos
from .base import Variant, VariantParams, check_iterations
from ..geometry.field import BoundingBox

ESCAPE_RADIUS = 2.0


@dataclass(frozen=True)
class MandelbulbParams(VariantParams):
    variant = Variant.MANDELBULB

    max_iterations: int = 15
    power_base: float = 8.0
    power_amp: float = 0.0
    time: float = 0.0

    def validate(self) -> None:
        check_iterations(self, "max_iterations")

    @property
    def power(self) -> float:
        return self.power_base + self.power_amp * np.sin(self.time * 0.5)

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_mandelbulb(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(2.5)


def spherical_power(z: np.ndarray, safe_r: np.ndarray, power: float) -> np.ndarray:
    """Raise ``z`` (rows of xyz) to ``power`` in spherical coordinates."""
    theta = safe_acos(z[:, 2] / safe_r) * power
    phi = np.arctan2(z[:, 1], z[:, 0]) * power
    zr = safe_r ** power
    sin_theta = np.sin(theta)
    return np.stack([
        zr * sin_theta * np.cos(phi),
        zr * np.sin(phi) * sin_theta,
        zr * np.cos(theta),
    ], axis=-1)


def sdf_mandelbulb(points: np.ndarray, params: MandelbulbParams) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    p = points.reshape(-1, 3)
    n = p.shape[0]
    power = float(params.power)

    z = p.copy()
    dr = np.ones(n)
    r = np.zeros(n)
    active = np.arange(n)

    for _ in range(params.max_iterations):
        if active.size == 0:
            break
        r[active] = length(z[active])
        active = active[r[active] <= ESCAPE_RADIUS]
        if active.size == 0:
            break

        safe_r = np.maximum(r[active], EPS_POWER)
        dr[active] = safe_r ** (power - 1.0) * power * dr[active] + 1.0
        z[active] = spherical_power(z[active], safe_r, power) + p[active]

    return escape_distance(r, dr).reshape(points.shape[:-1])
