"""
Quaternion Julia set distance estimator.

Iterates ``z -> s * z^n + c`` on quaternions ``(x, y, z, w)``, starting at
``(p, 0)``. The power is taken in polar form around the scalar part ``w``.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ._math import EPS_QUAT, escape_distance, length, safe_acos
from .base import Variant, VariantParams, check_iterations
from ..geometry.field import BoundingBox

ESCAPE_RADIUS = 6.0
ITERATION_CAP = 250


@dataclass(frozen=True)
class QuaternionParams(VariantParams):
    variant = Variant.QUATERNION_JULIA

    max_iterations: int = 80
    quat_c: Tuple[float, float, float, float] = (-0.2, 0.6, 0.2, 0.0)
    quat_power: float = 2.0
    quat_scale: float = 1.0
    morph_on: float = 0.0
    time: float = 0.0

    def validate(self) -> None:
        check_iterations(self, "max_iterations")
        self._require_positive("quat_power")

    def animated_c(self) -> np.ndarray:
        c0, c1, c2, c3 = self.quat_c
        t, morph = self.time, self.morph_on
        return np.array([
            c0 + 0.25 * np.sin(t * 0.3) * morph,
            c1 + 0.25 * np.cos(t * 0.27) * morph,
            c2 + 0.2 * np.sin(t * 0.17 + 1.5) * morph,
            c3,
        ])

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_quaternion(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(6.0)


def sdf_quaternion(points: np.ndarray, params: QuaternionParams) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    p = points.reshape(-1, 3)
    n = p.shape[0]

    power = params.quat_power
    scale = params.quat_scale
    c = params.animated_c()

    z = np.zeros((n, 4))
    z[:, :3] = p
    dr = np.ones(n)
    r = np.zeros(n)
    active = np.arange(n)

    with np.errstate(over="ignore"):
        for _ in range(min(params.max_iterations, ITERATION_CAP)):
            if active.size == 0:
                break
            r[active] = length(z[active])
            active = active[r[active] <= ESCAPE_RADIUS]
            if active.size == 0:
                break

            za = z[active]
            safe_r = np.maximum(r[active], EPS_QUAT)
            theta = safe_acos(za[:, 3] / safe_r)

            v = za[:, :3]
            v_len = length(v)
            v_norm = np.where(
                (v_len > 0.0)[:, None], v / np.where(v_len > 0.0, v_len, 1.0)[:, None], 0.0
            )

            rn = safe_r ** power
            angle = theta * power
            z_pow = np.empty_like(za)
            z_pow[:, :3] = v_norm * (np.sin(angle) * rn)[:, None]
            z_pow[:, 3] = np.cos(angle) * rn

            z[active] = scale * z_pow + c
            dr[active] = dr[active] * power * safe_r ** (power - 1.0) * abs(scale) + 1.0

        return escape_distance(r, np.abs(dr), eps=EPS_QUAT).reshape(points.shape[:-1])
