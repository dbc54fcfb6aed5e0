"""Cosmic-Bloom: a breathing sphere rippled by spherical harmonics-like waves."""

from dataclasses import dataclass

import numpy as np

from ._math import PHI, length, safe_acos
from .base import Variant, VariantParams
from ..geometry.field import BoundingBox


@dataclass(frozen=True)
class CosmicParams(VariantParams):
    variant = Variant.COSMIC_BLOOM

    cos_radius: float = 2.0
    cos_expansion: float = 0.5
    cos_ripple: float = 0.6
    cos_spiral: float = 0.4
    time: float = 0.0

    def validate(self) -> None:
        self._require_positive("cos_radius")

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_cosmic(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(2.5)


def sdf_cosmic(points: np.ndarray, params: CosmicParams) -> np.ndarray:
    p = np.asarray(points, dtype=np.float64)
    t = params.time
    R = params.cos_radius
    spiral = params.cos_spiral
    ripple = params.cos_ripple

    r = length(p)
    time_phase = t * (0.2 + params.cos_expansion * 0.6)
    dyn_radius = R * (1.0 + params.cos_expansion * 0.35 * np.sin(time_phase))
    base = r - dyn_radius

    q = p / np.where(r > 0.0, r, 1.0)[..., None]
    theta = np.arctan2(q[..., 2], q[..., 0])
    phi = safe_acos(q[..., 1])

    harmonic = (
        np.sin((12.0 + spiral * 24.0) * theta + t * 0.8)
        * np.cos((8.0 + spiral * 18.0) * phi - t * 0.6)
    )
    golden_wave = np.sin(phi * PHI * 6.0 + theta * PHI * 5.0 + t * 1.4)
    radial_wave = np.sin(r * (18.0 + spiral * 40.0) + t * 1.1)

    bloom = base + ripple * R * 0.1 * (0.45 * harmonic + 0.35 * golden_wave + 0.2 * radial_wave)

    shells = np.sin((r / max(R, 1e-3)) * (6.0 + spiral * 10.0) + t * 0.4)
    bloom = bloom + ripple * R * 0.04 * shells

    filament = np.sin(
        theta * (20.0 + spiral * 22.0) + phi * (14.0 + spiral * 18.0) + t * 0.5
    )
    return bloom - ripple * R * 0.02 * filament
