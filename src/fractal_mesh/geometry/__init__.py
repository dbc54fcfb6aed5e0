"""Geometry stages: field sampling, isosurface extraction, normals, GLB export."""

from .field import BoundingBox, ScalarField, iter_field_slices, sample_field
from .isosurface import TriangleSoup, extract_isosurface, extract_isosurface_streaming
from .normals import estimate_normals
from .gltf_exporter import MaterialSpec, build_glb, load_document, parse_glb, read_glb_header
from .mesh_ops import compute_mesh_stats, weld_vertices

__all__ = [
    "BoundingBox",
    "ScalarField",
    "iter_field_slices",
    "sample_field",
    "TriangleSoup",
    "extract_isosurface",
    "extract_isosurface_streaming",
    "estimate_normals",
    "MaterialSpec",
    "build_glb",
    "load_document",
    "parse_glb",
    "read_glb_header",
    "compute_mesh_stats",
    "weld_vertices",
]
