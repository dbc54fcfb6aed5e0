"""
Configuration for mesh export runs.

An ExportConfig is the loose, serializable description of a run (what a
JSON file or the command line provides). ``resolve()`` validates it into
an immutable ExportRequest; nothing is sampled until that succeeds.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .errors import InvalidParameterError
from .geometry.field import BoundingBox, normalize_resolution
from .geometry.gltf_exporter import MaterialSpec
from .sdf import Variant, VariantParams, make_params

DEFAULT_RESOLUTION = 128
DEFAULT_OUTPUT_DIR = Path("exports")


@dataclass(frozen=True)
class ExportRequest:
    """Validated, immutable inputs of one export."""
    params: VariantParams
    bbox: BoundingBox
    resolution: Tuple[int, int, int]
    iso_level: float = 0.0

    @property
    def variant(self) -> Variant:
        return self.params.variant


@dataclass
class ExportConfig:
    """
    Settings for one export run.

    ``params`` holds overrides only; every field not listed keeps the
    variant's default. ``bounds`` of None selects the variant's default box.
    """

    variant: Variant = Variant.FOLDOME
    params: Dict[str, Any] = field(default_factory=dict)

    # Sampling grid
    resolution: Union[int, Tuple[int, int, int]] = DEFAULT_RESOLUTION
    bounds: Optional[Tuple[Tuple[float, float, float], Tuple[float, float, float]]] = None
    iso_level: Optional[float] = None  # None: variant default

    # Post-processing
    compute_normals: bool = True
    weld_vertices: bool = False
    streaming: bool = False
    collect_stats: bool = True

    # Output
    output_path: Optional[Path] = None
    material: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.variant = Variant.parse(self.variant)
        if self.output_path is not None:
            self.output_path = Path(self.output_path)

    def get_output_path(self) -> Path:
        """Output file, defaulting to ``exports/<variant>.glb``."""
        if self.output_path is not None:
            return self.output_path
        return DEFAULT_OUTPUT_DIR / f"{self.variant.value}.glb"

    def resolve(self) -> ExportRequest:
        """
        Validate everything needed before sampling.

        Raises:
            InvalidParameterError: For any invalid field
        """
        params = make_params(self.variant, self.params)
        bbox = params.default_bounds() if self.bounds is None else BoundingBox.from_bounds(self.bounds)
        resolution = normalize_resolution(self.resolution)
        if self.iso_level is None:
            iso_level = params.default_iso_level
        else:
            try:
                iso_level = float(self.iso_level)
            except (TypeError, ValueError) as e:
                raise InvalidParameterError(f"iso_level must be numeric, got {self.iso_level!r}") from e
            if not math.isfinite(iso_level):
                raise InvalidParameterError(f"iso_level must be finite, got {self.iso_level!r}")
        return ExportRequest(params=params, bbox=bbox, resolution=resolution, iso_level=iso_level)

    def material_spec(self) -> MaterialSpec:
        return MaterialSpec.from_dict(self.material)

    def to_dict(self) -> Dict[str, Any]:
        bounds = None
        if self.bounds is not None:
            bounds = BoundingBox.from_bounds(self.bounds).to_dict()
        return {
            "variant": self.variant.value,
            "params": dict(self.params),
            "resolution": self.resolution if isinstance(self.resolution, int) else list(self.resolution),
            "bounds": bounds,
            "iso_level": self.iso_level,
            "compute_normals": self.compute_normals,
            "weld_vertices": self.weld_vertices,
            "streaming": self.streaming,
            "collect_stats": self.collect_stats,
            "output_path": str(self.output_path) if self.output_path is not None else None,
            "material": dict(self.material)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        data = dict(data)
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidParameterError(f"Unknown config keys: {sorted(unknown)}")
        if isinstance(data.get("resolution"), list):
            data["resolution"] = tuple(data["resolution"])
        if data.get("bounds") is not None:
            box = BoundingBox.from_bounds(data["bounds"])
            data["bounds"] = (box.min_corner, box.max_corner)
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "ExportConfig":
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


DEFAULT_CONFIG = ExportConfig()
