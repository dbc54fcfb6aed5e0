"""Mandelbox: box fold, sphere fold, then scale-and-translate."""

from dataclasses import dataclass

import numpy as np

from ._math import box_fold, length
from .base import Variant, VariantParams, check_iterations
from ..geometry.field import BoundingBox

# r / |dr| is never negative; the default surface is a thin level above 0
SHELL_LEVEL = 0.01


@dataclass(frozen=True)
class MandelboxParams(VariantParams):
    variant = Variant.MANDELBOX

    mb_scale: float = -1.5
    mb_min_radius: float = 0.5
    mb_fixed_radius: float = 1.0
    mb_iter: int = 10

    def validate(self) -> None:
        check_iterations(self, "mb_iter")
        self._require_positive("mb_min_radius")
        self._require_positive("mb_fixed_radius")
        if self.mb_min_radius > self.mb_fixed_radius:
            self._fail(
                f"mb_min_radius={self.mb_min_radius} must not exceed "
                f"mb_fixed_radius={self.mb_fixed_radius}"
            )

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_mandelbox(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(6.0)

    @property
    def default_iso_level(self) -> float:
        return SHELL_LEVEL


def sdf_mandelbox(points: np.ndarray, params: MandelboxParams) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    offset = points.reshape(-1, 3)
    z = offset.copy()
    dr = np.ones(offset.shape[0])

    scale = params.mb_scale
    min_r2 = params.mb_min_radius ** 2
    fixed_r2 = params.mb_fixed_radius ** 2

    for _ in range(params.mb_iter):
        z = box_fold(z, 1.0)

        # sphere fold
        r2 = np.sum(z * z, axis=-1)
        factor = np.ones_like(r2)
        inner = r2 < min_r2
        middle = ~inner & (r2 < fixed_r2)
        factor[inner] = fixed_r2 / min_r2
        factor[middle] = fixed_r2 / r2[middle]
        z = z * factor[:, None]
        dr = dr * factor

        z = z * scale + offset
        dr = dr * abs(scale) + 1.0

    return (length(z) / np.abs(dr)).reshape(points.shape[:-1])
