"""
Signed-distance evaluators for the nine export variants.

Each variant is a frozen parameter record paired with a vectorized
evaluator. Selection is closed: ``PARAMETER_TYPES`` maps every Variant to
its record type.
"""

from typing import Any, Dict, Mapping, Optional, Type, Union

import numpy as np

from .base import Variant, VariantParams
from .cosmic import CosmicParams, sdf_cosmic
from .fibonacci import FibonacciParams, sdf_fibonacci
from .fol_dome import FoLDomeParams, sdf_fol_dome
from .gyroid import GyroidParams, sdf_gyroid
from .mandelbox import MandelboxParams, sdf_mandelbox
from .mandelbulb import MandelbulbParams, sdf_mandelbulb
from .metatron import MetatronParams, sdf_metatron
from .quaternion import QuaternionParams, sdf_quaternion
from .typhoon import TyphoonParams, sdf_typhoon

PARAMETER_TYPES: Dict[Variant, Type[VariantParams]] = {
    Variant.MANDELBULB: MandelbulbParams,
    Variant.FOLDOME: FoLDomeParams,
    Variant.FIBONACCI_SHELL: FibonacciParams,
    Variant.MANDELBOX: MandelboxParams,
    Variant.METATRON: MetatronParams,
    Variant.GYROID: GyroidParams,
    Variant.TYPHOON: TyphoonParams,
    Variant.QUATERNION_JULIA: QuaternionParams,
    Variant.COSMIC_BLOOM: CosmicParams,
}


def make_params(
    variant: Union[Variant, str, int],
    overrides: Optional[Mapping[str, Any]] = None
) -> VariantParams:
    """Build the parameter record for ``variant`` with caller overrides applied."""
    return PARAMETER_TYPES[Variant.parse(variant)].from_overrides(overrides)


def distance(point, params: VariantParams) -> float:
    """Signed distance estimate at a single point."""
    p = np.asarray(point, dtype=np.float64).reshape(1, 3)
    return float(params.distance(p)[0])


__all__ = [
    "Variant",
    "VariantParams",
    "PARAMETER_TYPES",
    "make_params",
    "distance",
    "MandelbulbParams",
    "FoLDomeParams",
    "FibonacciParams",
    "MandelboxParams",
    "MetatronParams",
    "GyroidParams",
    "TyphoonParams",
    "QuaternionParams",
    "CosmicParams",
    "sdf_mandelbulb",
    "sdf_fol_dome",
    "sdf_fibonacci",
    "sdf_mandelbox",
    "sdf_metatron",
    "sdf_gyroid",
    "sdf_typhoon",
    "sdf_quaternion",
    "sdf_cosmic",
]
