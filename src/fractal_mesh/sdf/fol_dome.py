"""
FoLDome: a spherical shell carved by bands around Fibonacci directions.

All knobs except ``radius`` are normalized to [0, 1] and mapped onto
metric ranges proportional to the radius:

    band count   6 .. 30
    band width   0.05R .. 0.3R
    band depth   0.02R .. 0.15R
    smoothing    0.01R .. 0.2R
"""

from dataclasses import dataclass

import numpy as np

from ._math import clamp, fibonacci_direction, length, mix, round_half_up, smooth_min
from .base import Variant, VariantParams
from ..geometry.field import BoundingBox

CENTER_EPS = 1e-6
MARGIN_FRACTION = 0.2

_KNOBS = ("count", "width", "thickness", "smooth", "strength")


@dataclass(frozen=True)
class FoLDomeParams(VariantParams):
    variant = Variant.FOLDOME
    aliases = {
        "FoLDomeRadius": "radius",
        "FoLDomeCount": "count",
        "FoLDomeWidth": "width",
        "FoLDomeThickness": "thickness",
        "FoLDomeSmooth": "smooth",
        "FoLDomeStrength": "strength",
    }

    radius: float = 15.0
    count: float = 0.5
    width: float = 0.20
    thickness: float = 0.12
    smooth: float = 0.08
    strength: float = 0.30

    def validate(self) -> None:
        self._require_positive("radius")
        for name in _KNOBS:
            self._require_range(name, 0.0, 1.0)

    @property
    def band_count(self) -> int:
        return round_half_up(mix(6.0, 30.0, clamp(self.count, 0.0, 1.0)))

    @property
    def margin(self) -> float:
        return MARGIN_FRACTION * self.radius

    def band_directions(self) -> np.ndarray:
        n = self.band_count
        return np.stack([fibonacci_direction(i, n) for i in range(n)])

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_fol_dome(points, self)

    def default_bounds(self) -> BoundingBox:
        # Dome sits on the y = 0 ground plane
        extent = self.radius + self.margin
        return BoundingBox((-extent, 0.0, -extent), (extent, extent, extent))


def sdf_fol_dome(points: np.ndarray, params: FoLDomeParams) -> np.ndarray:
    R = params.radius
    band_width = mix(0.05, 0.3, clamp(params.width, 0.0, 1.0)) * R
    band_depth = mix(0.02, 0.15, clamp(params.thickness, 0.0, 1.0)) * R
    smooth_k = mix(0.01, 0.2, clamp(params.smooth, 0.0, 1.0)) * R
    strength = mix(0.0, 1.0, clamp(params.strength, 0.0, 1.0))

    p = np.asarray(points, dtype=np.float64)
    r = length(p)
    center = r < CENTER_EPS
    direction = p / np.where(center, 1.0, r)[..., None]

    base_shell = np.abs(r - R)

    field = np.full(r.shape, 1e6)
    for band_dir in params.band_directions():
        arc = R * np.arccos(clamp(direction @ band_dir, -1.0, 1.0))
        field = smooth_min(field, arc - band_width, smooth_k)

    result = base_shell + strength * np.minimum(field, band_depth)
    return np.where(center, R, result)
