"""
Gyroid triply-periodic minimal surface.

The implicit ``sin x cos y + sin y cos z + sin z cos x`` is turned into a
distance by dividing by its gradient magnitude (floored at 0.1).
``gyro_mod`` optionally repeats space into cells of period 4..12.
"""

from dataclasses import dataclass

import numpy as np

from ._math import clamp, length
from .base import Variant, VariantParams
from ..geometry.field import BoundingBox

SHELL_FRACTION = 0.1


@dataclass(frozen=True)
class GyroidParams(VariantParams):
    variant = Variant.GYROID

    gyro_level: float = 0.0
    gyro_scale: float = 3.0
    gyro_mod: float = 0.0

    def validate(self) -> None:
        self._require_positive("gyro_scale")
        self._require_range("gyro_mod", 0.0, 1.0)

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_gyroid(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(12.0)

    @property
    def default_iso_level(self) -> float:
        # Unsigned field: extract a thin shell around the surface
        return SHELL_FRACTION * max(self.gyro_scale, 0.1)


def repeat_around(q: np.ndarray, period: float) -> np.ndarray:
    """Wrap coordinates into ``[-period/2, period/2)``."""
    half = 0.5 * period
    return np.mod(q + half, period) - half


def sdf_gyroid(points: np.ndarray, params: GyroidParams) -> np.ndarray:
    scale = max(params.gyro_scale, 0.1)
    q = np.asarray(points, dtype=np.float64) / scale

    if params.gyro_mod > 0.01:
        period = 4.0 + 8.0 * clamp(params.gyro_mod, 0.0, 1.0)
        q = repeat_around(q, period)

    sx, sy, sz = np.sin(q[..., 0]), np.sin(q[..., 1]), np.sin(q[..., 2])
    cx, cy, cz = np.cos(q[..., 0]), np.cos(q[..., 1]), np.cos(q[..., 2])

    value = sx * cy + sy * cz + sz * cx
    dist = np.abs(value - params.gyro_level)

    gradient = np.stack([
        cx * cy - sz * sx,
        -sx * sy + cy * cz,
        -sy * sz + cz * cx,
    ], axis=-1)

    return dist / np.maximum(length(gradient), 0.1) * scale * 0.5
