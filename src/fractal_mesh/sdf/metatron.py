"""
Metatron lattice: a union of spheres (nodes) and capsules (struts).

The node graph is a hexagonal ring on y = 0, two smaller rings at
``y = +/- layer height``, their hubs, and four corner nodes tied to the hubs.
The whole lattice is built in unit space and scaled by ``meta_radius``.
"""

import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from ._math import EPS_QUAT, clamp, length
from .base import Variant, VariantParams
from ..geometry.field import BoundingBox

PI2 = 6.28318530718
TWIST_EPS = 1e-5

Sphere = Tuple[np.ndarray, float]
Capsule = Tuple[np.ndarray, np.ndarray, float]


@dataclass(frozen=True)
class MetatronParams(VariantParams):
    variant = Variant.METATRON

    meta_radius: float = 2.0
    meta_spacing: float = 1.0
    meta_node: float = 0.5
    meta_strut: float = 0.5
    meta_layer: float = 0.8
    meta_twist: float = 0.0

    def validate(self) -> None:
        self._require_positive("meta_radius")

    def distance(self, points: np.ndarray) -> np.ndarray:
        return sdf_metatron(points, self)

    def default_bounds(self) -> BoundingBox:
        return BoundingBox.cube(5.0)

    def primitives(self) -> Tuple[List[Sphere], List[Capsule]]:
        """Spheres and capsules of the lattice in unit (unscaled) space."""
        ring = 0.7 + 0.7 * clamp(self.meta_spacing, 0.0, 1.5)
        layer_h = 1.2 * clamp(self.meta_layer, 0.0, 1.5)
        node_r = 0.08 + 0.37 * clamp(self.meta_node, 0.0, 1.0)
        strut_r = node_r * (0.3 + 0.55 * clamp(self.meta_strut, 0.0, 1.0))

        origin = np.zeros(3)
        top_center = np.array([0.0, layer_h, 0.0])
        bottom_center = np.array([0.0, -layer_h, 0.0])

        spheres = [
            (origin, node_r),
            (top_center, node_r * 0.9),
            (bottom_center, node_r * 0.9),
        ]
        capsules = [(top_center, bottom_center, strut_r)]

        def ring_point(k: int, radius: float, y: float) -> np.ndarray:
            angle = PI2 * k / 6.0
            return np.array([math.cos(angle) * radius, y, math.sin(angle) * radius])

        for i in range(6):
            base, base_next = ring_point(i, ring, 0.0), ring_point(i + 1, ring, 0.0)
            top, top_next = ring_point(i, ring * 0.6, layer_h), ring_point(i + 1, ring * 0.6, layer_h)
            bottom, bottom_next = ring_point(i, ring * 0.6, -layer_h), ring_point(i + 1, ring * 0.6, -layer_h)

            spheres += [(base, node_r), (top, node_r * 0.85), (bottom, node_r * 0.85)]
            capsules += [
                (origin, base, strut_r),
                (top_center, top, strut_r * 0.85),
                (bottom_center, bottom, strut_r * 0.85),
                (base, base_next, strut_r),
                (top, top_next, strut_r * 0.75),
                (bottom, bottom_next, strut_r * 0.75),
                (base, top, strut_r * 0.72),
                (base, bottom, strut_r * 0.72),
            ]

        for sx in (-1.0, 1.0):
            for sz in (-1.0, 1.0):
                corner = np.array([sx * ring * 0.6, 0.0, sz * ring * 0.6])
                spheres.append((corner, node_r * 0.85))
                capsules += [
                    (top_center, corner, strut_r * 0.68),
                    (bottom_center, corner, strut_r * 0.68),
                ]

        return spheres, capsules


def sd_capsule(p: np.ndarray, a: np.ndarray, b: np.ndarray, radius: float) -> np.ndarray:
    pa = p - a
    ba = b - a
    h = clamp(pa @ ba / max(float(ba @ ba), EPS_QUAT), 0.0, 1.0)
    return length(pa - ba * h[..., None]) - radius


def rotate_plane(u: np.ndarray, v: np.ndarray, angle: float):
    c, s = math.cos(angle), math.sin(angle)
    return c * u - s * v, s * u + c * v


def sdf_metatron(points: np.ndarray, params: MetatronParams) -> np.ndarray:
    scale = max(params.meta_radius, 0.2)
    q = np.asarray(points, dtype=np.float64) / scale

    if abs(params.meta_twist) > TWIST_EPS:
        x, y = rotate_plane(q[..., 0], q[..., 1], params.meta_twist * 0.45)
        x, z = rotate_plane(x, q[..., 2], params.meta_twist * 0.22)
        q = np.stack([x, y, z], axis=-1)

    spheres, capsules = params.primitives()

    field = np.full(q.shape[:-1], np.inf)
    for center, radius in spheres:
        field = np.minimum(field, length(q - center) - radius)
    for a, b, radius in capsules:
        field = np.minimum(field, sd_capsule(q, a, b, radius))

    return field * scale
