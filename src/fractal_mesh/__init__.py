"""
Fractal Mesh Export

Turns signed-distance fractals and patterns into triangle meshes and
serializes them as binary glTF (GLB).

    from fractal_mesh import export_model

    result = export_model("foldome", resolution=64)
    open("dome.glb", "wb").write(result.glb)
"""

__version__ = "1.0.0"

from .config import DEFAULT_CONFIG, ExportConfig, ExportRequest
from .errors import (
    ExportCancelled,
    FractalMeshError,
    InvalidParameterError,
    NumericInstabilityError,
    SerializationError,
)
from .pipeline import ExportResult, export_model, run_export
from .sdf import Variant, distance, make_params

__all__ = [
    "__version__",
    "DEFAULT_CONFIG",
    "ExportConfig",
    "ExportRequest",
    "ExportResult",
    "export_model",
    "run_export",
    "Variant",
    "distance",
    "make_params",
    "FractalMeshError",
    "InvalidParameterError",
    "NumericInstabilityError",
    "SerializationError",
    "ExportCancelled",
]
