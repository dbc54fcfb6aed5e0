"""
Export pipeline: parameters -> field -> Marching Cubes -> normals -> GLB bytes.

The pipeline never touches the filesystem; it returns the container bytes
inside an ExportResult and leaves persistence to the caller.

Progress hook calls come in two kinds. At each stage boundary the hook is
called with ``(stage_index, STAGE_COUNT, message)``. Inside sampling and
extraction it is called with sample or cell counts (see
``geometry.field.iter_field_slices``). Returning ``False`` from any call
cancels the export with ExportCancelled.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config import ExportConfig, ExportRequest
from .geometry.field import BoundingBox, ProgressCallback, iter_field_slices, notify_progress, sample_field
from .geometry.gltf_exporter import GLBWriter, MaterialSpec
from .geometry.isosurface import TriangleSoup, extract_isosurface, extract_isosurface_streaming
from .geometry.mesh_ops import compute_mesh_stats, weld_vertices as weld_soup
from .geometry.normals import estimate_normals
from .sdf import Variant, VariantParams

logger = logging.getLogger(__name__)

STAGE_SAMPLING = "Sampling scalar field..."
STAGE_EXTRACTION = "Running Marching Cubes..."
STAGE_NORMALS = "Calculating normals..."
STAGE_GLB = "Generating GLB file..."
STAGE_DONE = "Export complete!"
STAGE_COUNT = 4

GENERATOR = "fractal-mesh-export"


@dataclass
class ExportResult:
    """Output of one export: the container plus what produced it."""
    glb: bytes
    variant: Variant
    params: VariantParams
    bounds: BoundingBox
    resolution: Tuple[int, int, int]
    n_vertices: int
    n_triangles: int
    iso_level: float = 0.0
    stats: Dict[str, Any] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Run summary (everything except the container bytes)."""
        return {
            "variant": self.variant.value,
            "mode_code": self.variant.code,
            "params": self.params.to_dict(),
            "bounds": self.bounds.to_dict(),
            "resolution": list(self.resolution),
            "iso_level": self.iso_level,
            "n_vertices": self.n_vertices,
            "n_triangles": self.n_triangles,
            "glb_bytes": len(self.glb),
            "stats": self.stats,
            "timings": self.timings
        }


class _StageTimer:
    def __init__(self, timings: Dict[str, float], name: str):
        self.timings = timings
        self.name = name

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, *exc):
        elapsed = time.perf_counter() - self.start
        self.timings[self.name] = elapsed
        if exc[0] is None:
            logger.info(f"  {self.name}: {elapsed:.2f}s")
        return False


def _build_mesh(
    request: ExportRequest,
    streaming: bool,
    on_progress: Optional[ProgressCallback],
    timings: Dict[str, float]
) -> TriangleSoup:
    params = request.params
    label = params.variant.value

    notify_progress(on_progress, 0, STAGE_COUNT, STAGE_SAMPLING)

    if streaming:
        # Sampling and extraction interleave slice by slice
        notify_progress(on_progress, 1, STAGE_COUNT, STAGE_EXTRACTION)
        with _StageTimer(timings, "sample_and_extract"):
            slices = iter_field_slices(
                params.distance, request.bbox, request.resolution, on_progress, label
            )
            return extract_isosurface_streaming(
                slices, request.bbox, request.resolution,
                iso_level=request.iso_level, on_progress=on_progress, label=label
            )

    with _StageTimer(timings, "sampling"):
        scalar_field = sample_field(
            params.distance, request.bbox, request.resolution, on_progress, label
        )

    notify_progress(on_progress, 1, STAGE_COUNT, STAGE_EXTRACTION)
    with _StageTimer(timings, "marching_cubes"):
        soup = extract_isosurface(scalar_field, request.iso_level, on_progress)
    return soup


def export_request(
    request: ExportRequest,
    compute_normals: bool = True,
    weld_vertices: bool = False,
    streaming: bool = False,
    collect_stats: bool = True,
    material: Optional[MaterialSpec] = None,
    on_progress: Optional[ProgressCallback] = None
) -> ExportResult:
    """Run every stage for an already validated request."""
    params = request.params
    nx, ny, nz = request.resolution
    timings: Dict[str, float] = {}

    logger.info("=" * 60)
    logger.info(f"Exporting {params.variant.title} at {nx}x{ny}x{nz}")
    logger.info("=" * 60)
    logger.debug(f"Parameters: {params.to_dict()}")
    logger.debug(f"Bounds: {request.bbox.to_dict()}")

    start = time.perf_counter()
    soup = _build_mesh(request, streaming, on_progress, timings)

    if weld_vertices and not soup.is_empty:
        with _StageTimer(timings, "weld"):
            soup = weld_soup(soup)

    notify_progress(on_progress, 2, STAGE_COUNT, STAGE_NORMALS)
    if compute_normals:
        with _StageTimer(timings, "normals"):
            estimate_normals(soup)

    stats: Dict[str, Any] = {}
    if collect_stats and not soup.is_empty:
        with _StageTimer(timings, "stats"):
            stats = compute_mesh_stats(soup, weld=not weld_vertices)

    notify_progress(on_progress, 3, STAGE_COUNT, STAGE_GLB)
    writer = GLBWriter(material=material, mesh_name=params.variant.title, generator=GENERATOR)
    with _StageTimer(timings, "glb"):
        glb = writer.build(soup, extras={"variant": params.variant.value, "params": params.to_dict()})

    timings["total"] = time.perf_counter() - start
    notify_progress(on_progress, STAGE_COUNT, STAGE_COUNT, STAGE_DONE)

    logger.info(
        f"Export complete: {soup.n_vertices} vertices, {soup.n_triangles} triangles, "
        f"{len(glb)} bytes in {timings['total']:.2f}s"
    )

    return ExportResult(
        glb=glb,
        variant=params.variant,
        params=params,
        bounds=request.bbox,
        resolution=request.resolution,
        n_vertices=soup.n_vertices,
        n_triangles=soup.n_triangles,
        iso_level=request.iso_level,
        stats=stats,
        timings=timings
    )


def export_model(
    variant: Union[Variant, str, int],
    params: Optional[Mapping[str, Any]] = None,
    resolution=128,
    bounds=None,
    iso_level: Optional[float] = None,
    compute_normals: bool = True,
    weld_vertices: bool = False,
    streaming: bool = False,
    collect_stats: bool = True,
    material: Optional[Union[MaterialSpec, Mapping[str, Any]]] = None,
    on_progress: Optional[ProgressCallback] = None
) -> ExportResult:
    """
    Export one variant to GLB bytes.

    Args:
        variant: Variant, its name or its mode code
        params: Parameter overrides (snake_case or host camelCase keys)
        resolution: Samples per axis, int or (nx, ny, nz)
        bounds: Sampling box; None for the variant's default box
        iso_level: Surface threshold; None for the variant default
        compute_normals: Attach per-vertex normals
        weld_vertices: Merge coincident Marching Cubes vertices
        streaming: Sample and polygonize slice by slice
        collect_stats: Include trimesh statistics in the result
        material: MaterialSpec or dict of its fields
        on_progress: Optional progress hook; return False to cancel

    Raises:
        InvalidParameterError: Before sampling, for invalid inputs
        NumericInstabilityError: A sample was NaN or Infinity
        SerializationError: The mesh could not be serialized (e.g. empty)
        ExportCancelled: The progress hook returned False
    """
    config = ExportConfig(
        variant=variant,
        params=dict(params or {}),
        resolution=resolution,
        bounds=bounds,
        iso_level=iso_level,
        compute_normals=compute_normals,
        weld_vertices=weld_vertices,
        streaming=streaming,
        collect_stats=collect_stats
    )
    if isinstance(material, MaterialSpec):
        material_spec = material
    else:
        config.material = dict(material or {})
        material_spec = config.material_spec()
    return _run(config, material_spec, on_progress)


def run_export(config: ExportConfig, on_progress: Optional[ProgressCallback] = None) -> ExportResult:
    """Export according to an ExportConfig."""
    return _run(config, config.material_spec(), on_progress)


def _run(
    config: ExportConfig,
    material: MaterialSpec,
    on_progress: Optional[ProgressCallback]
) -> ExportResult:
    request = config.resolve()
    return export_request(
        request,
        compute_normals=config.compute_normals,
        weld_vertices=config.weld_vertices,
        streaming=config.streaming,
        collect_stats=config.collect_stats,
        material=material,
        on_progress=on_progress
    )
